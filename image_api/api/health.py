"""Service index and health check endpoints."""

from pydantic import BaseModel

from image_api.api.images import PREFIX
from image_api.core.lifespan import State
from image_api.core.logger import LogIcon, logger
from image_api.core.router import Router
from image_api.core.settings import settings as st
from image_api.engine.codec import PillowCodec
from image_api.events.codec import CodecEvent
from image_api.events.process_pool import ProcessPoolEvent

router = Router(__file__, prefix="")

ENDPOINTS = (
    ("POST", "/process", "Full transformation pipeline driven by the JSON options field"),
    ("POST", "/info", "Dimensions, format and alpha of the uploaded image"),
    ("POST", "/resize", "Resize with a fit policy"),
    ("POST", "/crop", "Crop a region"),
    ("POST", "/convert/:format", "Re-encode as jpeg, png, webp or avif; ?quality= sets lossy quality"),
    ("POST", "/filter/:type", "Apply grayscale, blur or sharpen; ?sigma= sets the blur strength"),
    ("POST", "/batch", "Process every uploaded image with the same options"),
)
FEATURES = (
    "resize",
    "crop",
    "format conversion",
    "grayscale, blur and sharpen filters",
    "brightness, contrast and saturation",
    "rotation",
    "batch processing",
)


class EndpointDoc(BaseModel):
    method: str
    path: str
    summary: str


class UsageResponse(BaseModel):
    """Service index: endpoints, upload conventions and an example request."""

    service: str
    version: str
    description: str
    endpoints: list[EndpointDoc]
    features: list[str]
    upload_field: str
    options_field: str
    example: str


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    output_formats: list[str]
    max_file_size: int
    max_files: int
    process_pool: bool


def usage() -> UsageResponse:
    example = (
        f"curl -X POST {st.api_url}{PREFIX}/process "
        f'-F "{st.IMAGE_FIELD}=@example.jpg" '
        f'-F \'{st.OPTIONS_FIELD}={{"width":800,"height":600,"format":"webp","quality":80}}\''
    )
    return UsageResponse(
        service=st.API_NAME,
        version=st.API_VERSION,
        description=st.API_DESCRIPTION,
        endpoints=[
            EndpointDoc(method=method, path=f"{PREFIX}{path}", summary=summary)
            for method, path, summary in ENDPOINTS
        ],
        features=list(FEATURES),
        upload_field=st.IMAGE_FIELD,
        options_field=st.OPTIONS_FIELD,
        example=example,
    )


def health_status(state: State | None) -> HealthResponse:
    """Service status, with the formats the running codec can encode."""
    codec = (state.get(CodecEvent.name) if state is not None else None) or PillowCodec(max_pixels=st.MAX_PIXELS)
    return HealthResponse(
        status="healthy",
        service=st.API_NAME,
        version=st.API_VERSION,
        output_formats=[fmt.value for fmt in codec.output_formats],
        max_file_size=st.MAX_FILE_SIZE,
        max_files=st.MAX_FILES,
        process_pool=state is not None and ProcessPoolEvent.name in state,
    )


@router.get("/")
async def index() -> UsageResponse:
    return usage()


@router.get("/health")
async def health_check(global_dependencies) -> HealthResponse:
    logger.info("Health check requested", icon=LogIcon.HEALTHCHECK)
    return health_status((global_dependencies or {}).get("state"))
