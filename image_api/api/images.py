"""Image transformation endpoints."""

from typing import Any, TypeVar

from pydantic import BaseModel
from robyn import Request, Response, status_codes

from image_api.core.errors import UnsupportedFormat
from image_api.core.lifespan import State
from image_api.core.logger import LogIcon, logger
from image_api.core.router import Router
from image_api.core.settings import settings as st
from image_api.engine.codec import Codec, PillowCodec
from image_api.events.codec import CodecEvent
from image_api.events.process_pool import run_blocking
from image_api.models.core import MultipartForm
from image_api.models.images import (
    BatchResponse,
    ConvertOptions,
    CropBox,
    FilterOptions,
    FilterType,
    InfoData,
    InfoResponse,
    OriginalFile,
    OutputFormat,
    ResizeOptions,
    TransformRequest,
)
from image_api.services import images as service
from image_api.services.uploads import get_uploaded_file, get_uploaded_files

PREFIX = "/api/images"

router = Router(__file__, prefix=PREFIX)


def _state(global_dependencies: dict[str, Any] | None) -> State | None:
    return (global_dependencies or {}).get("state")


def _codec(state: State | None) -> Codec:
    codec = state.get(CodecEvent.name) if state is not None else None
    return codec or PillowCodec(max_pixels=st.MAX_PIXELS)


M = TypeVar("M", bound=BaseModel)


def _options(form: MultipartForm, model: type[M]) -> M:
    """Validate the JSON ``options`` text field, defaults when it is absent."""
    raw = form.get_field(st.OPTIONS_FIELD)
    return model.model_validate_json(raw) if raw else model()


def _image_response(processed: service.ProcessedImage) -> Response:
    return Response(status_code=status_codes.HTTP_200_OK, headers=processed.headers(), description=processed.data)


@router.post("/process")
async def process_image(form: MultipartForm, global_dependencies) -> Response:
    """Run the full transformation pipeline on the uploaded image."""
    part = get_uploaded_file(form)
    options = _options(form, TransformRequest)
    logger.info("Processing upload", icon=LogIcon.UPLOAD, filename=part.filename, size=part.size)

    state = _state(global_dependencies)
    processed = await run_blocking(state, service.process_image, part.data, options, _codec(state))
    return _image_response(processed)


@router.post("/info")
async def image_info(form: MultipartForm, global_dependencies) -> InfoResponse:
    part = get_uploaded_file(form)
    state = _state(global_dependencies)
    info = await run_blocking(state, service.inspect_image, part.data, _codec(state))
    return InfoResponse(
        data=InfoData(
            original=OriginalFile(name=part.filename, type=part.content_type, size=part.size),
            image=info,
        )
    )


@router.post("/resize")
async def resize_image(form: MultipartForm, global_dependencies) -> Response:
    part = get_uploaded_file(form)
    options = _options(form, ResizeOptions)

    state = _state(global_dependencies)
    processed = await run_blocking(state, service.resize_image, part.data, options, _codec(state))
    return _image_response(processed)


@router.post("/crop")
async def crop_image(form: MultipartForm, global_dependencies) -> Response:
    part = get_uploaded_file(form)
    box = _options(form, CropBox)

    state = _state(global_dependencies)
    processed = await run_blocking(state, service.crop_image, part.data, box, _codec(state))
    return _image_response(processed)


@router.post("/convert/:format")
async def convert_image(request: Request, form: MultipartForm, global_dependencies) -> Response:
    """Re-encode the upload; ``?quality=`` sets lossy quality (1-100)."""
    requested = request.path_params.get("format", "")
    try:
        output_format = OutputFormat(requested.lower())
    except ValueError as ex:
        raise UnsupportedFormat(f"Unsupported format: {requested}") from ex

    part = get_uploaded_file(form)
    options = ConvertOptions(quality=request.query_params.get("quality", None) or st.DEFAULT_QUALITY)

    state = _state(global_dependencies)
    processed = await run_blocking(
        state, service.convert_image, part.data, output_format, options.quality, _codec(state)
    )
    return _image_response(processed)


@router.post("/filter/:type")
async def filter_image(request: Request, form: MultipartForm, global_dependencies) -> Response:
    """Apply one filter; ``?sigma=`` sets the blur strength."""
    requested = request.path_params.get("type", "")
    try:
        filter_type = FilterType(requested.lower())
    except ValueError as ex:
        raise UnsupportedFormat(f"Unsupported filter type: {requested}") from ex

    part = get_uploaded_file(form)
    options = FilterOptions(sigma=request.query_params.get("sigma", None) or 1.0)

    state = _state(global_dependencies)
    processed = await run_blocking(state, service.filter_image, part.data, filter_type, options.sigma, _codec(state))
    return _image_response(processed)


@router.post("/batch")
async def batch_process(form: MultipartForm, global_dependencies) -> BatchResponse:
    """Process every uploaded file with the same options; failures are reported per file."""
    parts = get_uploaded_files(form)
    options = _options(form, TransformRequest)
    logger.info("Batch received", icon=LogIcon.BATCH, files=len(parts))

    state = _state(global_dependencies)
    result = await run_blocking(state, service.process_batch, parts, options, _codec(state))
    return BatchResponse(data=result)
