"""Typed errors raised by the multipart decoder, the engine and the services."""

from datetime import UTC, datetime
from enum import StrEnum
from http import HTTPStatus
from typing import Any


class ErrorKind(StrEnum):
    """Error kinds exposed in error responses."""

    MALFORMED_MULTIPART = "MALFORMED_MULTIPART"
    MISSING_FILE = "MISSING_FILE"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    OUT_OF_BOUNDS = "OUT_OF_BOUNDS"
    CANNOT_DETERMINE = "CANNOT_DETERMINE"
    UNSUPPORTED_CODEC = "UNSUPPORTED_CODEC"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    TOO_MANY_FILES = "TOO_MANY_FILES"


class ImageAPIError(Exception):
    """Base class for every recoverable request error."""

    kind: ErrorKind
    status_code: int = HTTPStatus.BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def __reduce__(self):
        # Keep details when the error crosses the process pool boundary
        return self.__class__, (self.message, self.details)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "type": self.kind.value,
            "details": self.details,
            "timestamp": datetime.now(UTC).isoformat(),
        }


class MalformedMultipart(ImageAPIError):
    kind = ErrorKind.MALFORMED_MULTIPART
    default_message = "Malformed multipart/form-data body"


class MissingFile(ImageAPIError):
    kind = ErrorKind.MISSING_FILE
    default_message = "Please upload an image file"


class UnsupportedFormat(ImageAPIError):
    kind = ErrorKind.UNSUPPORTED_FORMAT
    default_message = "Unsupported image format"


class OutOfBounds(ImageAPIError):
    kind = ErrorKind.OUT_OF_BOUNDS
    default_message = "Region is outside the image bounds"


class CannotDetermine(ImageAPIError):
    kind = ErrorKind.CANNOT_DETERMINE
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY
    default_message = "Cannot determine image dimensions"


class UnsupportedCodec(ImageAPIError):
    kind = ErrorKind.UNSUPPORTED_CODEC
    status_code = HTTPStatus.NOT_IMPLEMENTED
    default_message = "Codec is not available"


class FileTooLarge(ImageAPIError):
    kind = ErrorKind.FILE_TOO_LARGE
    status_code = HTTPStatus.REQUEST_ENTITY_TOO_LARGE
    default_message = "File exceeds the size limit"


class TooManyFiles(ImageAPIError):
    kind = ErrorKind.TOO_MANY_FILES
    default_message = "Too many files uploaded"
