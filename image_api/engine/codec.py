"""Container decode/encode, delegated to Pillow."""

import io
from typing import Protocol

import numpy as np
from PIL import Image, UnidentifiedImageError, features

from image_api.core.errors import UnsupportedCodec, UnsupportedFormat
from image_api.engine.surface import RasterSurface
from image_api.models.images import OutputFormat

DEFAULT_QUALITY = 0.8

PILLOW_FORMATS: dict[OutputFormat, str] = {
    OutputFormat.JPEG: "JPEG",
    OutputFormat.PNG: "PNG",
    OutputFormat.WEBP: "WEBP",
}

# Formats whose encoder is an optional Pillow feature
OPTIONAL_FEATURES: dict[OutputFormat, str] = {
    OutputFormat.WEBP: "webp",
}


class Codec(Protocol):
    """Compressed bytes <-> RGBA surface."""

    def decode(self, data: bytes) -> RasterSurface: ...

    def encode(self, surface: RasterSurface, format: OutputFormat | str, quality: float = DEFAULT_QUALITY) -> bytes: ...


class PillowCodec:
    """Codec backed by Pillow; only the first frame of animated inputs is kept."""

    def __init__(self, max_pixels: int | None = Image.MAX_IMAGE_PIXELS) -> None:
        self.max_pixels = max_pixels

    @property
    def output_formats(self) -> list[OutputFormat]:
        return [fmt for fmt in OutputFormat if self.supports(fmt)]

    def supports(self, format: OutputFormat) -> bool:
        feature = OPTIONAL_FEATURES.get(format)
        return feature is None or bool(features.check(feature))

    def decode(self, data: bytes) -> RasterSurface:
        if not data:
            raise UnsupportedFormat("Empty image payload")
        try:
            with Image.open(io.BytesIO(data)) as image:
                if self.max_pixels and image.width * image.height > self.max_pixels:
                    raise UnsupportedFormat(f"Image of {image.width}x{image.height} exceeds the pixel limit")
                image.seek(0)
                rgba = image.convert("RGBA")
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as ex:
            raise UnsupportedFormat(f"Cannot decode image: {ex}") from ex

        return RasterSurface.from_array(np.asarray(rgba, dtype=np.uint8))

    def encode(
        self,
        surface: RasterSurface,
        format: OutputFormat | str,
        quality: float = DEFAULT_QUALITY,
    ) -> bytes:
        try:
            output_format = OutputFormat(str(format).lower())
        except ValueError as ex:
            raise UnsupportedFormat(f"Unsupported output format: {format}") from ex
        if not self.supports(output_format):
            raise UnsupportedCodec(f"Pillow was built without {output_format.value} support")

        image = Image.fromarray(surface.pixels)
        params: dict = {}
        match output_format:
            case OutputFormat.JPEG:
                image = image.convert("RGB")
                params["quality"] = _pillow_quality(quality)
            case OutputFormat.WEBP:
                params["quality"] = _pillow_quality(quality)
            case OutputFormat.PNG:
                params["optimize"] = True

        buffer = io.BytesIO()
        try:
            image.save(buffer, format=PILLOW_FORMATS[output_format], **params)
        except (OSError, ValueError) as ex:
            raise UnsupportedFormat(f"Cannot encode {output_format.value}: {ex}") from ex
        return buffer.getvalue()


def _pillow_quality(quality: float) -> int:
    """Map a [0, 1] quality onto Pillow's 1..100 scale."""
    return min(100, max(1, round(quality * 100)))
