"""Hand-written multipart/form-data decoder.

The body is split on ``--<boundary>`` delimiters located with a single pass
of :class:`ByteScanner`. Everything between the end of one delimiter and the
start of the next is one part; the bytes before the first delimiter are the
preamble and the bytes after the terminal ``--<boundary>--`` are the
epilogue, both ignored. Payloads are kept as bytes end to end.
"""

import re
from itertools import pairwise

from image_api.core.errors import MalformedMultipart
from image_api.core.logger import logger
from image_api.models.core import FilePart, MultipartForm
from image_api.multipart.scanner import ByteScanner

CRLF = b"\r\n"
HEADER_END = b"\r\n\r\n"
CLOSE_MARKER = b"--"
DEFAULT_PART_TYPE = "application/octet-stream"
MULTIPART_FORM_DATA = "multipart/form-data"

_PARAM_RE = re.compile(r';\s*([\w.*-]+)\s*=\s*(?:"((?:[^"\\]|\\.)*)"|([^;\s]*))')
_ESCAPE_RE = re.compile(r"\\(.)")


def parse_header_params(value: str) -> tuple[str, dict[str, str]]:
    """Split a header value into its main token and lower-cased parameters.

    ``form-data; name="a"; filename="b.png"`` -> ``("form-data", {"name": "a", "filename": "b.png"})``
    """
    main, sep, rest = value.partition(";")
    params: dict[str, str] = {}
    for match in _PARAM_RE.finditer(sep + rest):
        key, quoted, bare = match.groups()
        params[key.lower()] = _ESCAPE_RE.sub(r"\1", quoted) if quoted is not None else bare
    return main.strip().lower(), params


def parse_boundary(content_type: str | None) -> str:
    """Extract the boundary token from a multipart/form-data content type."""
    if not content_type:
        raise MalformedMultipart("Missing Content-Type header")

    mime, params = parse_header_params(content_type)
    if mime != MULTIPART_FORM_DATA:
        raise MalformedMultipart(f"Expected {MULTIPART_FORM_DATA}, got {mime or 'nothing'}")

    boundary = params.get("boundary")
    if not boundary:
        raise MalformedMultipart("Content-Type has no boundary parameter")
    return boundary


def parse_part_headers(block: bytes) -> dict[str, str]:
    """Parse a part header block into a lower-cased name -> value mapping."""
    headers: dict[str, str] = {}
    for line in block.decode("utf-8", errors="replace").split("\r\n"):
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()
    return headers


class MultipartDecoder:
    """Decodes one multipart/form-data body into a :class:`MultipartForm`."""

    def __init__(self, boundary: str) -> None:
        if not boundary:
            raise MalformedMultipart("Empty multipart boundary")
        self.boundary = boundary
        self.delimiter = b"--" + boundary.encode("utf-8")

    def decode(self, raw_body: bytes | bytearray | memoryview) -> MultipartForm:
        scanner = ByteScanner(raw_body)
        offsets = scanner.index_table(self.delimiter)
        if not offsets:
            raise MalformedMultipart("No boundary delimiter found in body")

        form = MultipartForm()
        data = scanner.data
        for current, following in pairwise(offsets):
            start = current + len(self.delimiter)
            if scanner.startswith(CLOSE_MARKER, start):
                break
            if scanner.startswith(CRLF, start):
                start += len(CRLF)
            self._add_part(form, data[start:following])

        return form

    def _add_part(self, form: MultipartForm, part: bytes) -> None:
        if part.startswith(CRLF):
            # Empty header block: the blank line follows the delimiter directly
            headers: dict[str, str] = {}
            body = part[len(CRLF):]
        else:
            header_end = part.find(HEADER_END)
            if header_end == -1:
                raise MalformedMultipart("Part has no header-terminating blank line")
            headers = parse_part_headers(part[:header_end])
            body = part[header_end + len(HEADER_END):]
        # The CRLF before the next delimiter is framing, not payload
        if body.endswith(CRLF):
            body = body[: -len(CRLF)]

        _, disposition = parse_header_params(headers.get("content-disposition", ""))
        name = disposition.get("name")
        if name is None:
            logger.debug("Skipping multipart part without a name", headers=headers)
            return

        if "filename" not in disposition:
            form.add_field(name, body.decode("utf-8", errors="replace").strip())
            return

        form.add_file(
            FilePart(
                field_name=name,
                filename=disposition["filename"],
                content_type=headers.get("content-type") or DEFAULT_PART_TYPE,
                data=body,
            )
        )


def decode(raw_body: bytes | bytearray | memoryview, boundary: str) -> MultipartForm:
    """Decode ``raw_body`` framed with ``boundary``."""
    return MultipartDecoder(boundary).decode(raw_body)


def decode_request(content_type: str | None, raw_body: bytes | bytearray | memoryview) -> MultipartForm:
    """Decode a request body given its Content-Type header."""
    return decode(raw_body, parse_boundary(content_type))
