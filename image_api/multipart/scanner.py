"""Exact byte-pattern search over an immutable buffer."""

from collections.abc import Iterator


class ByteScanner:
    """Finds occurrences of a fixed byte pattern inside a buffer.

    The buffer is copied once into ``bytes`` so callers may hand in
    ``bytearray`` or ``memoryview`` objects and release them afterwards.
    """

    __slots__ = ("_data",)

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._data = bytes(data)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def data(self) -> bytes:
        return self._data

    def find(self, pattern: bytes, start: int = 0) -> int:
        """Return the offset of the next occurrence at or after ``start``, or -1."""
        if not pattern:
            raise ValueError("pattern must not be empty")
        if start < 0 or start > len(self._data) - len(pattern):
            return -1
        return self._data.find(pattern, start)

    def iter_find(self, pattern: bytes, start: int = 0) -> Iterator[int]:
        """Yield every non-overlapping occurrence from ``start`` in one pass."""
        offset = self.find(pattern, start)
        while offset != -1:
            yield offset
            offset = self.find(pattern, offset + len(pattern))

    def index_table(self, pattern: bytes, start: int = 0) -> list[int]:
        """Offsets of all occurrences, computed once for the whole buffer."""
        return list(self.iter_find(pattern, start))

    def startswith(self, pattern: bytes, offset: int) -> bool:
        return self._data.startswith(pattern, offset)
