"""RGBA8 raster surface."""

from dataclasses import dataclass

import numpy as np

CHANNELS = 4


@dataclass(frozen=True, slots=True, eq=False)
class RasterSurface:
    """A width x height grid of non-premultiplied RGBA8 pixels.

    ``pixels`` is a ``uint8`` array of shape ``(height, width, 4)`` in
    R, G, B, A order. Transforms never write into an existing surface: every
    stage allocates the array of the surface it returns.
    """

    width: int
    height: int
    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Surface dimensions must be positive, got {self.width}x{self.height}")
        if self.pixels.dtype != np.uint8:
            raise ValueError(f"Surface pixels must be uint8, got {self.pixels.dtype}")
        if self.pixels.shape != (self.height, self.width, CHANNELS):
            raise ValueError(
                f"Surface pixels have shape {self.pixels.shape}, expected {(self.height, self.width, CHANNELS)}"
            )

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterSurface":
        height, width = pixels.shape[:2]
        return cls(width=width, height=height, pixels=np.ascontiguousarray(pixels, dtype=np.uint8))

    @classmethod
    def from_buffer(cls, width: int, height: int, buffer: bytes | bytearray | memoryview) -> "RasterSurface":
        """Build a surface from a raw RGBA buffer of exactly width*height*4 bytes."""
        expected = width * height * CHANNELS
        if len(buffer) != expected:
            raise ValueError(f"RGBA buffer for {width}x{height} needs {expected} bytes, got {len(buffer)}")
        pixels = np.frombuffer(bytes(buffer), dtype=np.uint8).reshape(height, width, CHANNELS).copy()
        return cls(width=width, height=height, pixels=pixels)

    @classmethod
    def blank(cls, width: int, height: int) -> "RasterSurface":
        """Fully transparent surface."""
        return cls(width=width, height=height, pixels=np.zeros((height, width, CHANNELS), dtype=np.uint8))

    @classmethod
    def filled(cls, width: int, height: int, rgba: tuple[int, int, int, int]) -> "RasterSurface":
        pixels = np.empty((height, width, CHANNELS), dtype=np.uint8)
        pixels[...] = rgba
        return cls(width=width, height=height, pixels=pixels)

    @property
    def buffer(self) -> bytes:
        return self.pixels.tobytes()

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def has_transparency(self) -> bool:
        return bool((self.pixels[..., 3] != 255).any())

    def pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        return tuple(int(channel) for channel in self.pixels[y, x])

    def copy(self) -> "RasterSurface":
        return RasterSurface(width=self.width, height=self.height, pixels=self.pixels.copy())
