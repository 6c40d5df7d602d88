"""Codec lifespan event."""

from image_api.core.lifespan import BaseEvent
from image_api.core.logger import LogIcon, logger
from image_api.core.settings import settings as st
from image_api.engine.codec import PillowCodec


class CodecEvent(BaseEvent[PillowCodec]):
    """Builds the shared Pillow codec and reports which encoders are available."""

    name = "codec"

    async def startup(self) -> PillowCodec:
        codec = PillowCodec(max_pixels=st.MAX_PIXELS)
        formats = ",".join(fmt.value for fmt in codec.output_formats)
        logger.info("Codec ready", icon=LogIcon.CODEC, output_formats=formats, max_pixels=codec.max_pixels)
        return codec
