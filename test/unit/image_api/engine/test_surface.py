"""Tests for RasterSurface."""

import numpy as np
import pytest

from image_api.engine.surface import RasterSurface


class TestRasterSurface:
    """Tests for RasterSurface construction and accessors."""

    def test_buffer_length_matches_dimensions(self, make_surface) -> None:
        surface = make_surface(5, 3)
        assert len(surface.buffer) == 5 * 3 * 4

    def test_from_buffer_round_trip_pixel_order(self) -> None:
        buffer = bytes([1, 2, 3, 4, 5, 6, 7, 8])
        surface = RasterSurface.from_buffer(2, 1, buffer)
        assert surface.pixel(0, 0) == (1, 2, 3, 4)
        assert surface.pixel(1, 0) == (5, 6, 7, 8)
        assert surface.buffer == buffer

    def test_from_buffer_rejects_wrong_length(self) -> None:
        with pytest.raises(ValueError, match="needs 16 bytes"):
            RasterSurface.from_buffer(2, 2, b"\x00" * 15)

    @pytest.mark.parametrize(("width", "height"), [(0, 1), (1, 0), (-2, 3)])
    def test_rejects_non_positive_dimensions(self, width: int, height: int) -> None:
        with pytest.raises(ValueError):
            RasterSurface(width=width, height=height, pixels=np.zeros((1, 1, 4), dtype=np.uint8))

    def test_rejects_shape_mismatch(self) -> None:
        with pytest.raises(ValueError, match="shape"):
            RasterSurface(width=3, height=2, pixels=np.zeros((3, 2, 4), dtype=np.uint8))

    def test_rejects_non_uint8(self) -> None:
        with pytest.raises(ValueError, match="uint8"):
            RasterSurface(width=1, height=1, pixels=np.zeros((1, 1, 4), dtype=np.float32))

    def test_blank_is_transparent(self) -> None:
        surface = RasterSurface.blank(4, 2)
        assert surface.size == (4, 2)
        assert surface.has_transparency
        assert not surface.pixels.any()

    def test_filled_opaque_has_no_transparency(self, make_surface) -> None:
        assert not make_surface(2, 2).has_transparency

    def test_copy_is_independent(self, make_surface) -> None:
        surface = make_surface(2, 2)
        clone = surface.copy()
        clone.pixels[0, 0] = (0, 0, 0, 0)
        assert surface.pixel(0, 0) == (255, 0, 0, 255)
