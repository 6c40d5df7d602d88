"""Access and validation of uploaded image parts."""

from image_api.core.errors import FileTooLarge, MissingFile, TooManyFiles, UnsupportedFormat
from image_api.core.settings import settings as st
from image_api.engine import sniffer
from image_api.models.core import FilePart, MultipartForm
from image_api.multipart.decoder import DEFAULT_PART_TYPE


def validate_upload(
    part: FilePart,
    max_size: int | None = None,
    allowed_types: frozenset[str] | None = None,
) -> FilePart:
    """Check size, declared type and magic bytes of one uploaded file."""
    max_size = st.MAX_FILE_SIZE if max_size is None else max_size
    allowed_types = st.ALLOWED_CONTENT_TYPES if allowed_types is None else allowed_types

    if part.size > max_size:
        raise FileTooLarge(
            f"File size exceeds the limit ({max_size // (1024 * 1024)}MB)",
            details={"filename": part.filename, "size": part.size, "limit": max_size},
        )

    content_type = part.content_type.split(";", 1)[0].strip().lower()
    if content_type != DEFAULT_PART_TYPE and content_type not in allowed_types:
        raise UnsupportedFormat(f"Unsupported file type: {part.content_type}", details={"filename": part.filename})

    if not sniffer.is_valid_image(part.data):
        raise UnsupportedFormat("Invalid image format", details={"filename": part.filename})

    return part


def get_uploaded_file(form: MultipartForm, field_name: str | None = None) -> FilePart:
    """First file of the image field, validated."""
    field_name = field_name or st.IMAGE_FIELD
    part = form.get_file(field_name)
    if part is None:
        raise MissingFile(details={"field": field_name})
    return validate_upload(part)


def get_uploaded_files(form: MultipartForm, max_files: int | None = None) -> list[FilePart]:
    """Every uploaded file, in body order, unvalidated.

    Batch callers validate per file so one bad upload does not fail its siblings.
    """
    max_files = st.MAX_FILES if max_files is None else max_files
    parts = form.all_files()
    if not parts:
        raise MissingFile()
    if len(parts) > max_files:
        raise TooManyFiles(f"Too many files ({len(parts)} > {max_files})", details={"limit": max_files})
    return parts
