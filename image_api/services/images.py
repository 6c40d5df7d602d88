"""Image operations behind the HTTP endpoints.

Every function here is synchronous and CPU bound: the handlers hand them to
the process pool as one blocking unit per request.
"""

import base64
from dataclasses import dataclass

from image_api.core.errors import ImageAPIError, UnsupportedFormat
from image_api.core.logger import LogIcon, logger
from image_api.core.settings import settings as st
from image_api.engine import sniffer
from image_api.engine.codec import Codec
from image_api.engine.pipeline import TransformPipeline
from image_api.models.core import FilePart
from image_api.models.images import (
    BatchItemResult,
    BatchResult,
    CropBox,
    FilterType,
    ImageInfo,
    OutputFormat,
    ResizeOptions,
    TransformRequest,
)
from image_api.services.uploads import validate_upload


@dataclass(frozen=True, slots=True)
class ProcessedImage:
    data: bytes
    width: int
    height: int
    format: OutputFormat

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return sniffer.mime_type(self.format)

    def headers(self) -> dict[str, str]:
        return {
            "content-type": self.mime_type,
            "content-length": str(self.size),
            "x-image-width": str(self.width),
            "x-image-height": str(self.height),
            "x-image-format": self.format.value,
            "x-image-size": str(self.size),
        }


def source_output_format(data: bytes) -> OutputFormat:
    """Encode back into the uploaded format when possible, else the default."""
    tag = sniffer.identify(data)
    try:
        return OutputFormat(tag.value) if tag else OutputFormat(st.DEFAULT_FORMAT)
    except ValueError:
        return OutputFormat(st.DEFAULT_FORMAT)


def process_image(
    data: bytes,
    request: TransformRequest,
    codec: Codec,
    keep_format: bool = False,
) -> ProcessedImage:
    """Decode, run the requested pipeline and re-encode."""
    surface = codec.decode(data)
    pipeline = TransformPipeline.from_request(request)
    result = pipeline(surface)

    output_format = request.format or (source_output_format(data) if keep_format else OutputFormat(st.DEFAULT_FORMAT))
    quality = (request.quality or st.DEFAULT_QUALITY) / 100
    encoded = codec.encode(result, output_format, quality)

    logger.info(
        "Image processed",
        icon=LogIcon.IMAGE,
        stages=",".join(pipeline.names) or "none",
        size_in=f"{surface.width}x{surface.height}",
        size_out=f"{result.width}x{result.height}",
        format=output_format.value,
    )
    return ProcessedImage(data=encoded, width=result.width, height=result.height, format=output_format)


def filter_request(filter_type: FilterType, sigma: float | str = 1.0) -> TransformRequest:
    """Single-filter request; ``sigma`` only matters for blur."""
    match filter_type:
        case FilterType.GRAYSCALE:
            return TransformRequest(grayscale=True)
        case FilterType.BLUR:
            return TransformRequest(blur=sigma)
        case FilterType.SHARPEN:
            return TransformRequest(sharpen=True)


def convert_image(data: bytes, output_format: OutputFormat, quality: int, codec: Codec) -> ProcessedImage:
    return process_image(data, TransformRequest(format=output_format, quality=quality), codec)


def resize_image(data: bytes, options: ResizeOptions, codec: Codec) -> ProcessedImage:
    """Resize only, re-encoded in the source format when it is encodable."""
    request = TransformRequest(width=options.width, height=options.height, fit=options.fit)
    return process_image(data, request, codec, keep_format=True)


def crop_image(data: bytes, box: CropBox, codec: Codec) -> ProcessedImage:
    return process_image(data, TransformRequest(crop=box), codec, keep_format=True)


def filter_image(data: bytes, filter_type: FilterType, sigma: float, codec: Codec) -> ProcessedImage:
    return process_image(data, filter_request(filter_type, sigma), codec, keep_format=True)


def inspect_image(data: bytes, codec: Codec) -> ImageInfo:
    """Image info from a full decode, or from the header when decoding fails."""
    tag = sniffer.identify(data)
    try:
        surface = codec.decode(data)
    except UnsupportedFormat as ex:
        if tag is None:
            raise
        logger.warning("Full decode failed, sniffing header", icon=LogIcon.DETECTION, error=ex.message)
        width, height = sniffer.dimensions(data)
        return ImageInfo(width=width, height=height, format=tag.value, size=len(data))

    return ImageInfo(
        width=surface.width,
        height=surface.height,
        format=tag.value if tag else "unknown",
        size=len(data),
        has_alpha=surface.has_transparency,
    )


def process_batch(files: list[FilePart], request: TransformRequest, codec: Codec) -> BatchResult:
    """Process files one after another; a failing file never stops the others."""
    results: list[BatchItemResult] = []
    for index, part in enumerate(files, start=1):
        try:
            validate_upload(part)
            processed = process_image(part.data, request, codec)
        except ImageAPIError as ex:
            logger.warning(
                "Batch item failed",
                icon=LogIcon.BATCH,
                index=index,
                filename=part.filename,
                error=ex.kind.value,
            )
            results.append(
                BatchItemResult(
                    index=index,
                    original_name=part.filename,
                    success=False,
                    error=ex.message,
                    error_type=ex.kind.value,
                )
            )
            continue

        results.append(
            BatchItemResult(
                index=index,
                original_name=part.filename,
                success=True,
                size=processed.size,
                format=processed.format.value,
                data=base64.b64encode(processed.data).decode("ascii"),
            )
        )

    processed_count = sum(1 for item in results if item.success)
    logger.info(
        "Batch complete",
        icon=LogIcon.BATCH,
        processed=processed_count,
        failed=len(results) - processed_count,
    )
    return BatchResult(processed=processed_count, failed=len(results) - processed_count, results=results)
