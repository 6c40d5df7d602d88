"""Tests for the image endpoints, their helpers and the router request flow."""

import orjson
import pytest
from asgi_correlation_id import correlation_id
from pydantic import ValidationError

from image_api.api.images import _codec, _image_response, _options, router
from image_api.core.lifespan import State
from image_api.core.router import _create_method_wrapper
from image_api.core.settings import settings
from image_api.engine.codec import PillowCodec
from image_api.events.codec import CodecEvent
from image_api.events.process_pool import run_blocking
from image_api.models.core import MultipartForm
from image_api.models.images import CropBox, ImageInfo, ResizeOptions, TransformRequest
from image_api.services import images as service
from image_api.services.uploads import get_uploaded_file


@pytest.fixture
def upload_endpoints(monkeypatch) -> set[str]:
    endpoints: set[str] = set()
    monkeypatch.setattr("image_api.core.router.FILE_UPLOAD_ENDPOINTS", endpoints)
    return endpoints


@pytest.fixture
def info_handler(upload_endpoints):
    """An /api/images/info style handler wrapped the way Router wraps routes."""

    async def handler(form: MultipartForm, global_dependencies) -> ImageInfo:
        part = get_uploaded_file(form)
        state = global_dependencies["state"]
        return await run_blocking(state, service.inspect_image, part.data, _codec(state))

    register = _create_method_wrapper(lambda endpoint: (lambda wrapped: wrapped), "/api/images")
    return register("/info")(handler)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


class TestOptions:
    """Tests for parsing the JSON options field."""

    def test_absent_field_gives_defaults(self) -> None:
        assert _options(MultipartForm(), TransformRequest) == TransformRequest()

    def test_parses_json(self) -> None:
        form = MultipartForm(fields={"options": '{"width": 300, "fit": "contain", "grayscale": true}'})

        options = _options(form, TransformRequest)

        assert options.width == 300
        assert options.fit == "contain"
        assert options.grayscale is True

    def test_crop_box(self) -> None:
        form = MultipartForm(fields={"options": '{"left": 1, "top": 2, "width": 3, "height": 4}'})
        assert _options(form, CropBox) == CropBox(left=1, top=2, width=3, height=4)

    @pytest.mark.parametrize(
        "raw",
        ['{"width": 0}', '{"width": 4001}', '{"quality": 101}', '{"fit": "stretch"}', '{"unknown": 1}', "not json"],
    )
    def test_rejects_invalid_options(self, raw: str) -> None:
        with pytest.raises(ValidationError):
            _options(MultipartForm(fields={"options": raw}), TransformRequest)

    def test_resize_options_reject_transform_keys(self) -> None:
        with pytest.raises(ValidationError):
            _options(MultipartForm(fields={"options": '{"width": 10, "blur": 2}'}), ResizeOptions)


class TestCodecLookup:
    """Tests for the codec taken from app state."""

    def test_state_codec_is_used(self) -> None:
        state = State()
        codec = PillowCodec(max_pixels=5)
        setattr(state, CodecEvent.name, codec)

        assert _codec(state) is codec

    def test_fallback_codec(self) -> None:
        assert isinstance(_codec(None), PillowCodec)
        assert isinstance(_codec(State()), PillowCodec)


def test_image_response_headers(codec, make_image) -> None:
    processed = service.process_image(make_image(6, 4), TransformRequest(format="jpeg"), codec)

    response = _image_response(processed)

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["x-image-width"] == "6"
    assert response.headers["x-image-height"] == "4"


# -----------------------------------------------------------------------------
# Request flow
# -----------------------------------------------------------------------------


class TestRequestFlow:
    """Tests for a wrapped multipart handler, from raw request to response."""

    def test_registers_upload_endpoint(self, info_handler, upload_endpoints: set[str]) -> None:
        assert upload_endpoints == {"/api/images/info"}

    async def test_success(
        self, info_handler, make_mock_request, multipart_body, make_image, global_dependencies
    ) -> None:
        body = multipart_body(files=[("image", "cat.png", "image/png", make_image(12, 7))])

        response = await info_handler(make_mock_request(body), global_dependencies=global_dependencies)

        assert response.status_code == 200
        payload = orjson.loads(response.description)
        assert (payload["width"], payload["height"], payload["format"]) == (12, 7, "png")

    async def test_missing_file(self, info_handler, make_mock_request, multipart_body, global_dependencies) -> None:
        body = multipart_body(fields={"options": "{}"})

        response = await info_handler(make_mock_request(body), global_dependencies=global_dependencies)

        assert response.status_code == 400
        assert orjson.loads(response.description)["type"] == "MISSING_FILE"

    async def test_malformed_body(self, info_handler, make_mock_request, global_dependencies) -> None:
        response = await info_handler(make_mock_request(b"garbage"), global_dependencies=global_dependencies)

        assert response.status_code == 400
        assert orjson.loads(response.description)["type"] == "MALFORMED_MULTIPART"

    async def test_unknown_dimensions(
        self, info_handler, make_mock_request, multipart_body, global_dependencies
    ) -> None:
        truncated = b"\x89PNG\r\n\x1a\n\x00\x00"
        body = multipart_body(files=[("image", "bad.png", "image/png", truncated)])

        response = await info_handler(make_mock_request(body), global_dependencies=global_dependencies)

        assert response.status_code == 422
        assert orjson.loads(response.description)["type"] == "CANNOT_DETERMINE"

    async def test_correlation_id_is_reset(self, info_handler, make_mock_request, global_dependencies) -> None:
        request = make_mock_request(b"garbage")
        request.headers["x-request-id"] = "req-123"

        await info_handler(request, global_dependencies=global_dependencies)

        assert correlation_id.get() is None


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------


def route(path: str):
    return router.wrapped_handlers[f"POST /api/images{path}"]


@pytest.fixture(params=["no-state", "empty-state", "codec-state"])
def dependencies(request) -> dict | None:
    """Handlers run without app state, with an empty one, and with a started codec."""
    match request.param:
        case "no-state":
            return None
        case "empty-state":
            return {"state": State()}
        case _:
            return {"state": State(**{CodecEvent.name: PillowCodec(max_pixels=settings.MAX_PIXELS)})}


@pytest.fixture
def image_upload(multipart_body, make_image):
    """Multipart body carrying one image and an optional JSON options field."""

    def _make(width: int = 10, height: int = 6, format: str = "PNG", options: str | None = None) -> bytes:
        content_type = "image/jpeg" if format == "JPEG" else "image/png"
        fields = {"options": options} if options is not None else None
        data = make_image(width, height, format=format)
        return multipart_body(fields=fields, files=[("image", f"upload.{format.lower()}", content_type, data)])

    return _make


def error_type(response) -> str:
    return orjson.loads(response.description)["type"]


class TestImageRoutes:
    """Tests for the registered /api/images handlers."""

    def test_all_routes_registered(self) -> None:
        assert set(router.wrapped_handlers) == {
            "POST /api/images/process",
            "POST /api/images/info",
            "POST /api/images/resize",
            "POST /api/images/crop",
            "POST /api/images/convert/:format",
            "POST /api/images/filter/:type",
            "POST /api/images/batch",
        }

    async def test_process(self, image_upload, make_mock_request, dependencies) -> None:
        body = image_upload(options='{"width": 5, "format": "jpeg", "quality": 60}')

        response = await route("/process")(make_mock_request(body), global_dependencies=dependencies)

        assert response.status_code == 200
        assert response.headers.get("content-type") == "image/jpeg"
        assert response.headers.get("x-image-width") == "5"
        assert response.headers.get("x-image-height") == "3"
        assert response.headers.get("x-image-format") == "jpeg"
        assert response.headers.get("x-image-size") == response.headers.get("content-length")

    async def test_process_invalid_options(self, image_upload, make_mock_request, dependencies) -> None:
        body = image_upload(options='{"rotate": "sideways"}')

        response = await route("/process")(make_mock_request(body), global_dependencies=dependencies)

        assert response.status_code == 422

    async def test_process_over_pixel_budget(self, image_upload, make_mock_request, monkeypatch) -> None:
        monkeypatch.setattr(settings, "MAX_PIXELS", 16)

        response = await route("/process")(make_mock_request(image_upload(5, 5)), global_dependencies=None)

        assert response.status_code == 400
        assert error_type(response) == "UNSUPPORTED_FORMAT"
        assert "pixel limit" in orjson.loads(response.description)["error"]

    async def test_info_envelope(self, image_upload, make_mock_request, dependencies) -> None:
        response = await route("/info")(make_mock_request(image_upload(9, 4)), global_dependencies=dependencies)

        assert response.status_code == 200
        payload = orjson.loads(response.description)
        assert payload["success"] is True
        assert payload["data"]["original"]["name"] == "upload.png"
        assert (payload["data"]["image"]["width"], payload["data"]["image"]["height"]) == (9, 4)

    async def test_resize_keeps_source_format(self, image_upload, make_mock_request, dependencies) -> None:
        body = image_upload(10, 6, format="JPEG", options='{"width": 5}')

        response = await route("/resize")(make_mock_request(body), global_dependencies=dependencies)

        assert response.status_code == 200
        assert response.headers.get("content-type") == "image/jpeg"
        assert (response.headers.get("x-image-width"), response.headers.get("x-image-height")) == ("5", "3")

    async def test_crop(self, image_upload, make_mock_request, dependencies) -> None:
        body = image_upload(8, 8, options='{"left": 1, "top": 2, "width": 3, "height": 4}')

        response = await route("/crop")(make_mock_request(body), global_dependencies=dependencies)

        assert response.status_code == 200
        assert (response.headers.get("x-image-width"), response.headers.get("x-image-height")) == ("3", "4")

    async def test_crop_out_of_bounds(self, image_upload, make_mock_request, dependencies) -> None:
        body = image_upload(4, 4, options='{"left": 2, "top": 0, "width": 3, "height": 1}')

        response = await route("/crop")(make_mock_request(body), global_dependencies=dependencies)

        assert response.status_code == 400
        assert error_type(response) == "OUT_OF_BOUNDS"

    async def test_convert(self, image_upload, make_mock_request, dependencies) -> None:
        request = make_mock_request(image_upload(), path_params={"format": "JPEG"}, query_params={"quality": "50"})

        response = await route("/convert/:format")(request, global_dependencies=dependencies)

        assert response.status_code == 200
        assert response.headers.get("content-type") == "image/jpeg"
        assert response.headers.get("x-image-format") == "jpeg"

    async def test_convert_unknown_format(self, image_upload, make_mock_request, dependencies) -> None:
        request = make_mock_request(image_upload(), path_params={"format": "gif"})

        response = await route("/convert/:format")(request, global_dependencies=dependencies)

        assert response.status_code == 400
        assert error_type(response) == "UNSUPPORTED_FORMAT"
        assert orjson.loads(response.description)["error"] == "Unsupported format: gif"

    @pytest.mark.parametrize("quality", ["abc", "0", "101"])
    async def test_convert_invalid_quality(self, image_upload, make_mock_request, dependencies, quality: str) -> None:
        request = make_mock_request(image_upload(), path_params={"format": "png"}, query_params={"quality": quality})

        response = await route("/convert/:format")(request, global_dependencies=dependencies)

        assert response.status_code == 422

    @pytest.mark.parametrize("filter_type", ["grayscale", "blur", "sharpen"])
    async def test_filter(self, image_upload, make_mock_request, dependencies, filter_type: str) -> None:
        request = make_mock_request(image_upload(6, 6), path_params={"type": filter_type}, query_params={"sigma": "2"})

        response = await route("/filter/:type")(request, global_dependencies=dependencies)

        assert response.status_code == 200
        assert response.headers.get("content-type") == "image/png"
        assert (response.headers.get("x-image-width"), response.headers.get("x-image-height")) == ("6", "6")

    async def test_filter_unknown_type(self, image_upload, make_mock_request, dependencies) -> None:
        request = make_mock_request(image_upload(), path_params={"type": "emboss"})

        response = await route("/filter/:type")(request, global_dependencies=dependencies)

        assert response.status_code == 400
        assert error_type(response) == "UNSUPPORTED_FORMAT"
        assert orjson.loads(response.description)["error"] == "Unsupported filter type: emboss"

    @pytest.mark.parametrize("sigma", ["abc", "0.1"])
    async def test_filter_invalid_sigma(self, image_upload, make_mock_request, dependencies, sigma: str) -> None:
        request = make_mock_request(image_upload(), path_params={"type": "blur"}, query_params={"sigma": sigma})

        response = await route("/filter/:type")(request, global_dependencies=dependencies)

        assert response.status_code == 422

    async def test_batch_envelope(self, multipart_body, make_image, make_mock_request, dependencies) -> None:
        broken = make_image(64, 64)
        body = multipart_body(
            fields={"options": '{"width": 4}'},
            files=[
                ("image", "one.png", "image/png", make_image(8, 8)),
                ("image", "two.png", "image/png", broken[: len(broken) // 2]),
            ],
        )

        response = await route("/batch")(make_mock_request(body), global_dependencies=dependencies)

        assert response.status_code == 200
        assert response.headers.get("content-type") == "application/json"
        payload = orjson.loads(response.description)
        assert payload["success"] is True
        assert "timestamp" in payload
        assert (payload["data"]["processed"], payload["data"]["failed"]) == (1, 1)
        assert [item["original_name"] for item in payload["data"]["results"]] == ["one.png", "two.png"]
        assert payload["data"]["results"][1]["error_type"] == "UNSUPPORTED_FORMAT"

    async def test_batch_too_many_files(self, multipart_body, make_image, make_mock_request, monkeypatch) -> None:
        monkeypatch.setattr(settings, "MAX_FILES", 1)
        files = [("image", f"{index}.png", "image/png", make_image(2, 2)) for index in range(2)]

        response = await route("/batch")(make_mock_request(multipart_body(files=files)), global_dependencies=None)

        assert response.status_code == 400
        assert error_type(response) == "TOO_MANY_FILES"
