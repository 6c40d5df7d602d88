"""Test fixtures for robyn-image-api unit tests."""

import io
from dataclasses import dataclass, field

import numpy as np
import pytest
from PIL import Image

from image_api.core.lifespan import State
from image_api.engine.codec import PillowCodec
from image_api.engine.surface import RasterSurface

BOUNDARY = "----TestBoundary7MA4YWxkTrZu0gW"


# -----------------------------------------------------------------------------
# Mock classes for Robyn Request
# -----------------------------------------------------------------------------


@dataclass
class MockHeaders:
    """Mock Headers object for Robyn Request."""

    _data: dict = field(default_factory=dict)

    def get(self, key: str, default: str | None = None) -> str | None:
        return self._data.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value


@dataclass
class MockRequest:
    """Mock Request object for Robyn."""

    body: bytes | str = b""
    headers: MockHeaders = field(default_factory=MockHeaders)
    method: str = "POST"
    path: str = "/"
    path_params: dict = field(default_factory=dict)
    query_params: dict = field(default_factory=dict)


# -----------------------------------------------------------------------------
# Multipart bodies
# -----------------------------------------------------------------------------


def build_multipart(
    fields: dict[str, str] | None = None,
    files: list[tuple[str, str, str, bytes]] | None = None,
    boundary: str = BOUNDARY,
    preamble: bytes = b"",
    epilogue: bytes = b"",
) -> bytes:
    """Encode text fields and (field, filename, content_type, data) files like a browser would."""
    delimiter = f"--{boundary}".encode()
    chunks = [preamble]
    for name, value in (fields or {}).items():
        chunks += [
            delimiter,
            b"\r\n",
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode(),
            value.encode(),
            b"\r\n",
        ]
    for name, filename, content_type, data in files or []:
        chunks += [
            delimiter,
            b"\r\n",
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'.encode(),
            f"Content-Type: {content_type}\r\n\r\n".encode(),
            data,
            b"\r\n",
        ]
    chunks += [delimiter, b"--\r\n", epilogue]
    return b"".join(chunks)


@pytest.fixture
def multipart_body():
    """Factory fixture building multipart/form-data bodies."""
    return build_multipart


@pytest.fixture
def make_request():
    """Factory fixture for bare mock requests with arbitrary headers."""

    def _make(body: bytes | str | None = b"", headers: dict[str, str] | None = None, **kwargs) -> MockRequest:
        return MockRequest(body=body, headers=MockHeaders(dict(headers or {})), **kwargs)

    return _make


@pytest.fixture
def make_mock_request(global_dependencies):
    """Factory fixture to create multipart mock requests."""

    def _make(body: bytes = b"", content_type: str | None = None, **kwargs) -> MockRequest:
        headers = MockHeaders()
        headers["content-type"] = content_type or f"multipart/form-data; boundary={BOUNDARY}"
        return MockRequest(body=body, headers=headers, **kwargs)

    return _make


# -----------------------------------------------------------------------------
# Images
# -----------------------------------------------------------------------------


def encode_image(
    width: int,
    height: int,
    color: tuple[int, int, int, int] = (255, 0, 0, 255),
    format: str = "PNG",
) -> bytes:
    mode = "RGBA" if format in ("PNG", "WEBP") else "RGB"
    image = Image.new(mode, (width, height), color[: len(mode)])
    buffer = io.BytesIO()
    image.save(buffer, format=format)
    return buffer.getvalue()


@pytest.fixture
def make_image():
    """Factory fixture returning encoded image bytes made with Pillow."""
    return encode_image


@pytest.fixture
def make_surface():
    """Factory fixture for solid-color surfaces."""

    def _make(width: int, height: int, rgba: tuple[int, int, int, int] = (255, 0, 0, 255)) -> RasterSurface:
        return RasterSurface.filled(width, height, rgba)

    return _make


@pytest.fixture
def gradient_surface() -> RasterSurface:
    """8x6 surface whose channels vary per pixel."""
    ys, xs = np.mgrid[0:6, 0:8]
    pixels = np.stack([xs * 30, ys * 40, (xs + ys) * 15, np.full_like(xs, 255)], axis=-1).astype(np.uint8)
    return RasterSurface.from_array(pixels)


@pytest.fixture
def codec() -> PillowCodec:
    return PillowCodec()


# -----------------------------------------------------------------------------
# State fixture
# -----------------------------------------------------------------------------


@pytest.fixture(scope="session")
def test_state() -> State:
    """Create a test state container."""
    return State()


@pytest.fixture
def global_dependencies(test_state: State) -> dict:
    """Setup global dependencies for tests."""
    yield {"state": test_state}
    test_state.clear()
