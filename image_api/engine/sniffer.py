"""Container format and dimension sniffing from raw bytes.

Formats are recognised by fixed magic prefixes, checked in declaration
order of :class:`FormatTag`. Dimensions are read by walking format-specific
header offsets, without decoding any pixel data.
"""

import struct
from collections.abc import Callable
from enum import StrEnum
from typing import NamedTuple

from image_api.core.errors import CannotDetermine


class FormatTag(StrEnum):
    """Container formats known to the sniffer, in matching order."""

    PNG = "png"
    JPEG = "jpeg"
    GIF = "gif"
    WEBP = "webp"
    BMP = "bmp"

    @property
    def magic(self) -> bytes:
        return MAGIC[self]

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"


MAGIC: dict[FormatTag, bytes] = {
    FormatTag.PNG: b"\x89PNG",
    FormatTag.JPEG: b"\xff\xd8\xff",
    FormatTag.GIF: b"GIF",
    FormatTag.WEBP: b"RIFF",
    FormatTag.BMP: b"BM",
}

JPEG_SOF_MARKERS = frozenset({0xC0, 0xC1, 0xC2})
WEBP_LOSSY_CHUNK = b"VP8 "
WEBP_SIZE_MASK = 0x3FFF


class Dimensions(NamedTuple):
    width: int
    height: int


def _require(data: bytes, size: int, tag: FormatTag) -> None:
    if len(data) < size:
        raise CannotDetermine(f"{tag.value} header needs {size} bytes, got {len(data)}")


def _png_dimensions(data: bytes) -> Dimensions:
    _require(data, 24, FormatTag.PNG)
    width, height = struct.unpack_from(">II", data, 16)
    return Dimensions(width, height)


def _jpeg_dimensions(data: bytes) -> Dimensions:
    offset = data.find(b"\xff", 2)
    while offset != -1 and offset + 1 < len(data):
        if data[offset + 1] in JPEG_SOF_MARKERS:
            if offset + 9 > len(data):
                raise CannotDetermine("jpeg frame header is truncated")
            height, width = struct.unpack_from(">HH", data, offset + 5)
            return Dimensions(width, height)
        offset = data.find(b"\xff", offset + 1)
    raise CannotDetermine("jpeg has no start-of-frame marker")


def _gif_dimensions(data: bytes) -> Dimensions:
    _require(data, 10, FormatTag.GIF)
    width, height = struct.unpack_from("<HH", data, 6)
    return Dimensions(width, height)


def _webp_dimensions(data: bytes) -> Dimensions:
    _require(data, 30, FormatTag.WEBP)
    if data[8:12] != b"WEBP":
        raise CannotDetermine("RIFF container is not a webp image")
    if data[12:16] != WEBP_LOSSY_CHUNK:
        raise CannotDetermine("only simple lossy webp layouts are supported")
    width, height = struct.unpack_from("<HH", data, 26)
    return Dimensions((width & WEBP_SIZE_MASK) + 1, (height & WEBP_SIZE_MASK) + 1)


def _bmp_dimensions(data: bytes) -> Dimensions:
    _require(data, 26, FormatTag.BMP)
    width, height = struct.unpack_from("<ii", data, 18)
    # Negative height only flags top-down row order
    return Dimensions(width, abs(height))


DIMENSION_READERS: dict[FormatTag, Callable[[bytes], Dimensions]] = {
    FormatTag.PNG: _png_dimensions,
    FormatTag.JPEG: _jpeg_dimensions,
    FormatTag.GIF: _gif_dimensions,
    FormatTag.WEBP: _webp_dimensions,
    FormatTag.BMP: _bmp_dimensions,
}


def identify(data: bytes) -> FormatTag | None:
    """Return the first format whose magic prefix matches, None when unknown."""
    for tag in FormatTag:
        if data[: len(tag.magic)] == tag.magic:
            return tag
    return None


def dimensions(data: bytes) -> Dimensions:
    """Read width and height from the container header.

    Raises:
        CannotDetermine: unknown format, unsupported layout or truncated header.
    """
    tag = identify(data)
    if tag is None:
        raise CannotDetermine("Unknown image format")
    return DIMENSION_READERS[tag](bytes(data))


def is_valid_image(data: bytes) -> bool:
    return identify(data) is not None


def mime_type(tag: FormatTag | str | None) -> str:
    """MIME type for a format name, ``application/octet-stream`` when unknown."""
    if tag is None:
        return "application/octet-stream"
    name = str(tag).lower()
    if name == "jpg":
        name = FormatTag.JPEG.value
    try:
        return FormatTag(name).mime_type
    except ValueError:
        return "application/octet-stream"
