"""Request and response models for the image endpoints."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from image_api.engine.transforms import Fit


class OutputFormat(StrEnum):
    """Formats the service can encode."""

    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"


class FilterType(StrEnum):
    GRAYSCALE = "grayscale"
    BLUR = "blur"
    SHARPEN = "sharpen"


class CropBox(BaseModel):
    """Crop rectangle in source pixels."""

    model_config = ConfigDict(extra="forbid")

    left: int = Field(ge=0)
    top: int = Field(ge=0)
    width: int = Field(ge=1)
    height: int = Field(ge=1)


class ResizeOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    width: int | None = Field(default=None, ge=1, le=4000)
    height: int | None = Field(default=None, ge=1, le=4000)
    fit: Fit = Fit.COVER


class TransformRequest(ResizeOptions):
    """Every transformation the process and batch endpoints accept."""

    quality: int | None = Field(default=None, ge=1, le=100)
    format: OutputFormat | None = None
    blur: float | None = Field(default=None, ge=0.3, le=1000)
    sharpen: bool = False
    grayscale: bool = False
    rotate: float | None = Field(default=None, ge=-360, le=360)
    brightness: float | None = Field(default=None, ge=0.1, le=3)
    contrast: float | None = Field(default=None, ge=0.1, le=3)
    saturation: float | None = Field(default=None, ge=0, le=3)
    crop: CropBox | None = None


class ConvertOptions(BaseModel):
    """Query options of the convert endpoint."""

    quality: int = Field(default=80, ge=1, le=100)


class FilterOptions(BaseModel):
    """Query options of the filter endpoint; ``sigma`` only affects blur."""

    sigma: float = Field(default=1.0, ge=0.3, le=1000)


class ImageInfo(BaseModel):
    width: int
    height: int
    format: str
    size: int
    channels: int = 4
    has_alpha: bool | None = None


class OriginalFile(BaseModel):
    name: str
    type: str
    size: int


class InfoData(BaseModel):
    original: OriginalFile
    image: ImageInfo


class BatchItemResult(BaseModel):
    """Outcome for one file of a batch; ``index`` is its 1-based position."""

    index: int
    original_name: str
    success: bool
    size: int | None = None
    format: str | None = None
    data: str | None = None
    error: str | None = None
    error_type: str | None = None


class BatchResult(BaseModel):
    processed: int
    failed: int
    results: list[BatchItemResult]

    @property
    def failures(self) -> list[BatchItemResult]:
        return [item for item in self.results if not item.success]


class Envelope(BaseModel):
    """Success wrapper for JSON responses."""

    success: Literal[True] = True
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class InfoResponse(Envelope):
    data: InfoData


class BatchResponse(Envelope):
    data: BatchResult
