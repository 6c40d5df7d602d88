"""Decoded multipart form models shared by the router and the decoder."""

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class FilePart:
    """One file part of a multipart/form-data body."""

    field_name: str
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(slots=True)
class MultipartForm:
    """Text fields and file parts decoded from a multipart/form-data body.

    Repeated text field names keep only the last value. File parts keep
    every occurrence, in body order.
    """

    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, list[FilePart]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.fields or self.files)

    def __iter__(self):
        return iter(self.files.items())

    def add_field(self, name: str, value: str) -> None:
        self.fields[name] = value

    def add_file(self, part: FilePart) -> None:
        self.files.setdefault(part.field_name, []).append(part)

    def get_field(self, name: str, default: str | None = None) -> str | None:
        """Get a text field value by name."""
        return self.fields.get(name, default)

    def get_file(self, name: str) -> FilePart | None:
        """Get the first file uploaded under ``name``."""
        parts = self.files.get(name)
        return parts[0] if parts else None

    def get_files(self, name: str) -> list[FilePart]:
        return list(self.files.get(name, ()))

    def all_files(self) -> list[FilePart]:
        """All file parts across every field, in field then body order."""
        return [part for parts in self.files.values() for part in parts]

    def keys(self) -> list[str]:
        """Get all file field names."""
        return list(self.files.keys())
