"""Pure pixel transforms over :class:`RasterSurface`.

Every function takes a surface and returns a new one. Color math runs in
float64 and is stored through :func:`to_channels`, which rounds to the
nearest integer and clamps to [0, 255].
"""

import math
from enum import StrEnum

import numpy as np

from image_api.core.errors import OutOfBounds
from image_api.engine.surface import RasterSurface

LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)
SHARPEN_KERNEL = ((0, -1, 0), (-1, 5, -1), (0, -1, 0))
CONTRAST_EPSILON = 1e-6
# Samples this close outside the source edge still count as covered
EDGE_TOLERANCE = 1e-6


class Fit(StrEnum):
    """How a resize relates to its target box."""

    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"


def to_channels(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def _with_rgb(surface: RasterSurface, rgb: np.ndarray) -> RasterSurface:
    pixels = surface.pixels.copy()
    pixels[..., :3] = to_channels(rgb)
    return RasterSurface(width=surface.width, height=surface.height, pixels=pixels)


def _luma(rgb: np.ndarray) -> np.ndarray:
    return rgb @ LUMA_WEIGHTS


def _sample_bilinear(source: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """Bilinear sample of ``source`` at pixel-index coordinates, clamped to the edges."""
    height, width = source.shape[:2]
    xs = np.clip(xs, 0, width - 1)
    ys = np.clip(ys, 0, height - 1)
    x0 = np.floor(xs).astype(np.intp)
    y0 = np.floor(ys).astype(np.intp)
    x1 = np.minimum(x0 + 1, width - 1)
    y1 = np.minimum(y0 + 1, height - 1)
    wx = (xs - x0)[..., None]
    wy = (ys - y0)[..., None]

    top = source[y0, x0] * (1 - wx) + source[y0, x1] * wx
    bottom = source[y1, x0] * (1 - wx) + source[y1, x1] * wx
    return top * (1 - wy) + bottom * wy


def resolve_resize(
    current_width: int,
    current_height: int,
    width: int | None = None,
    height: int | None = None,
    fit: Fit | str = Fit.COVER,
) -> tuple[int, int]:
    """Output size for a resize of ``current`` towards the ``width`` x ``height`` box."""
    fit = Fit(fit)
    aspect = current_width / current_height
    new_width: float = width or current_width
    new_height: float = height or current_height

    if width and height:
        wider = aspect > width / height
        match fit:
            case Fit.COVER | Fit.OUTSIDE:
                if wider:
                    new_width = height * aspect
                else:
                    new_height = width / aspect
            case Fit.CONTAIN | Fit.INSIDE:
                if wider:
                    new_height = width / aspect
                else:
                    new_width = height * aspect
            case Fit.FILL:
                pass
    elif width:
        new_height = width / aspect
    elif height:
        new_width = height * aspect

    return max(1, round(new_width)), max(1, round(new_height))


def resize(
    surface: RasterSurface,
    width: int | None = None,
    height: int | None = None,
    fit: Fit | str = Fit.COVER,
) -> RasterSurface:
    """Bilinear resize honouring the fit policy."""
    new_width, new_height = resolve_resize(surface.width, surface.height, width, height, fit)
    if (new_width, new_height) == surface.size:
        return surface.copy()

    # Pixel centers of the output mapped back onto the source grid
    xs = (np.arange(new_width) + 0.5) * (surface.width / new_width) - 0.5
    ys = (np.arange(new_height) + 0.5) * (surface.height / new_height) - 0.5
    grid_x, grid_y = np.meshgrid(xs, ys)
    sampled = _sample_bilinear(surface.pixels.astype(np.float64), grid_x, grid_y)
    return RasterSurface(width=new_width, height=new_height, pixels=to_channels(sampled))


def crop(surface: RasterSurface, left: int, top: int, width: int, height: int) -> RasterSurface:
    if left < 0 or top < 0 or width < 1 or height < 1:
        raise OutOfBounds(
            "Crop region must start inside the image and be non-empty",
            details={"left": left, "top": top, "width": width, "height": height},
        )
    if left + width > surface.width or top + height > surface.height:
        raise OutOfBounds(
            f"Crop region {width}x{height}+{left}+{top} exceeds image {surface.width}x{surface.height}",
            details={"left": left, "top": top, "width": width, "height": height},
        )
    pixels = surface.pixels[top : top + height, left : left + width].copy()
    return RasterSurface(width=width, height=height, pixels=pixels)


def rotate(surface: RasterSurface, angle: float) -> RasterSurface:
    """Rotate clockwise by ``angle`` degrees onto a transparent bounding box."""
    if angle % 360 == 0:
        return surface.copy()

    theta = math.radians(angle)
    cos, sin = math.cos(theta), math.sin(theta)
    width, height = surface.width, surface.height
    new_width = max(1, round(width * abs(cos) + height * abs(sin)))
    new_height = max(1, round(width * abs(sin) + height * abs(cos)))

    # Inverse-map every output pixel center into the source
    grid_y, grid_x = np.mgrid[0:new_height, 0:new_width].astype(np.float64)
    dx = grid_x + 0.5 - new_width / 2
    dy = grid_y + 0.5 - new_height / 2
    src_x = dx * cos + dy * sin + width / 2
    src_y = -dx * sin + dy * cos + height / 2

    covered = (
        (src_x >= -EDGE_TOLERANCE)
        & (src_x <= width + EDGE_TOLERANCE)
        & (src_y >= -EDGE_TOLERANCE)
        & (src_y <= height + EDGE_TOLERANCE)
    )
    sampled = _sample_bilinear(surface.pixels.astype(np.float64), src_x - 0.5, src_y - 0.5)

    pixels = np.zeros((new_height, new_width, 4), dtype=np.uint8)
    pixels[covered] = to_channels(sampled[covered])
    return RasterSurface(width=new_width, height=new_height, pixels=pixels)


def grayscale(surface: RasterSurface) -> RasterSurface:
    rgb = surface.pixels[..., :3].astype(np.float64)
    luma = _luma(rgb)[..., None]
    return _with_rgb(surface, np.broadcast_to(luma, rgb.shape))


def brightness(surface: RasterSurface, value: float) -> RasterSurface:
    rgb = surface.pixels[..., :3].astype(np.float64)
    return _with_rgb(surface, rgb + (value - 1) * 255)


def contrast_factor(value: float) -> float:
    """Contrast gain for ``value``, where 1.0 leaves the image unchanged.

    Past the pole of the curve the denominator stays at a tiny positive
    number, so the gain saturates and channels are pushed to the bounds.
    The pole sits at ``value`` ~ 2.016, so everything from there up to 3
    pushes every channel other than exactly 128 to 0 or 255.
    """
    level = 255 * (value - 1)
    denominator = max(255 * (259 - level), CONTRAST_EPSILON)
    return 259 * (level + 255) / denominator


def contrast(surface: RasterSurface, value: float) -> RasterSurface:
    factor = contrast_factor(value)
    rgb = surface.pixels[..., :3].astype(np.float64)
    return _with_rgb(surface, factor * (rgb - 128) + 128)


def saturation(surface: RasterSurface, value: float) -> RasterSurface:
    rgb = surface.pixels[..., :3].astype(np.float64)
    luma = _luma(rgb)[..., None]
    return _with_rgb(surface, luma + (rgb - luma) * value)


def blur_radius(sigma: float) -> int:
    return max(1, math.floor(sigma))


def _window_sums(
    values: np.ndarray, radius: int, axis: int, dtype: type = np.int64
) -> tuple[np.ndarray, np.ndarray]:
    """Sums over ``[i - radius, i + radius]`` along ``axis``, clipped to the array, and the window lengths."""
    length = values.shape[axis]
    prefix = np.cumsum(values, axis=axis, dtype=dtype)
    pad = [(0, 0)] * values.ndim
    pad[axis] = (1, 0)
    prefix = np.pad(prefix, pad)

    index = np.arange(length)
    lo = np.clip(index - radius, 0, length)
    hi = np.clip(index + radius + 1, 0, length)
    return np.take(prefix, hi, axis=axis) - np.take(prefix, lo, axis=axis), hi - lo


def blur(surface: RasterSurface, sigma: float) -> RasterSurface:
    """Box blur over a square window, shrunk at the edges, alpha included.

    The window is separable: prefix sums run down the columns, then along
    the rows of that result.
    """
    radius = blur_radius(sigma)
    # Column sums fit in int32 (255 * image height)
    column_sums, row_counts = _window_sums(surface.pixels, radius, axis=0, dtype=np.int32)
    sums, col_counts = _window_sums(column_sums, radius, axis=1)

    counts = np.outer(row_counts, col_counts)[..., None]
    return RasterSurface(width=surface.width, height=surface.height, pixels=to_channels(sums / counts))


def sharpen(surface: RasterSurface) -> RasterSurface:
    """3x3 sharpen on R, G, B; the outer ring and alpha are left as they are."""
    pixels = surface.pixels.copy()
    if surface.width < 3 or surface.height < 3:
        return RasterSurface(width=surface.width, height=surface.height, pixels=pixels)

    rgb = surface.pixels[..., :3].astype(np.int32)
    height, width = surface.height, surface.width
    acc = np.zeros((height - 2, width - 2, 3), dtype=np.int32)
    for ky, row in enumerate(SHARPEN_KERNEL):
        for kx, weight in enumerate(row):
            if weight:
                acc += weight * rgb[ky : ky + height - 2, kx : kx + width - 2]

    pixels[1:-1, 1:-1, :3] = np.clip(acc, 0, 255).astype(np.uint8)
    return RasterSurface(width=width, height=height, pixels=pixels)
