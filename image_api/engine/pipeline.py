"""Ordered, pure transform pipeline built from a :class:`TransformRequest`."""

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial, reduce

from image_api.core.logger import LogIcon, logger
from image_api.engine import transforms
from image_api.engine.surface import RasterSurface
from image_api.models.images import TransformRequest

Stage = Callable[[RasterSurface], RasterSurface]


@dataclass(frozen=True, slots=True)
class TransformPipeline:
    """Named stages applied left to right, each returning a new surface."""

    stages: tuple[tuple[str, Stage], ...] = ()

    @classmethod
    def from_request(cls, request: TransformRequest) -> "TransformPipeline":
        """Build the stages for ``request`` in their fixed order:

        resize, crop, rotate, blur, sharpen, grayscale, brightness, contrast, saturation.
        """
        stages: list[tuple[str, Stage]] = []

        if request.width or request.height:
            stages.append(
                ("resize", partial(transforms.resize, width=request.width, height=request.height, fit=request.fit))
            )
        if request.crop is not None:
            box = request.crop
            stages.append(
                ("crop", partial(transforms.crop, left=box.left, top=box.top, width=box.width, height=box.height))
            )
        if request.rotate:
            stages.append(("rotate", partial(transforms.rotate, angle=request.rotate)))
        if request.blur is not None:
            stages.append(("blur", partial(transforms.blur, sigma=request.blur)))
        if request.sharpen:
            stages.append(("sharpen", transforms.sharpen))
        if request.grayscale:
            stages.append(("grayscale", transforms.grayscale))
        if request.brightness is not None:
            stages.append(("brightness", partial(transforms.brightness, value=request.brightness)))
        if request.contrast is not None:
            stages.append(("contrast", partial(transforms.contrast, value=request.contrast)))
        if request.saturation is not None:
            stages.append(("saturation", partial(transforms.saturation, value=request.saturation)))

        return cls(stages=tuple(stages))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.stages]

    def __bool__(self) -> bool:
        return bool(self.stages)

    def __len__(self) -> int:
        return len(self.stages)

    def __call__(self, surface: RasterSurface) -> RasterSurface:
        return reduce(self._apply, self.stages, surface)

    @staticmethod
    def _apply(surface: RasterSurface, named_stage: tuple[str, Stage]) -> RasterSurface:
        name, stage = named_stage
        result = stage(surface)
        logger.debug(
            f"Stage {name} applied",
            icon=LogIcon.PROCESSOR,
            size_in=f"{surface.width}x{surface.height}",
            size_out=f"{result.width}x{result.height}",
        )
        return result
