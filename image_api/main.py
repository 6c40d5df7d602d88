"""robyn-image-api - image transformation API powered by Robyn."""

from robyn import Robyn

from image_api.api.health import router as health_router
from image_api.api.images import router as images_router
from image_api.core.lifespan import create_lifespan
from image_api.core.logger import LogIcon, logger
from image_api.core.settings import settings as st
from image_api.events.codec import CodecEvent
from image_api.events.process_pool import ProcessPoolEvent
from image_api.middlewares.base import MiddlewareHandler
from image_api.middlewares.files import FileUploadOpenAPIMiddleware

app = Robyn(__file__)

# Lifespan events
lifespan = create_lifespan(app)
lifespan.register(CodecEvent).register(ProcessPoolEvent)

app.startup_handler(lifespan.startup)
app.shutdown_handler(lifespan.shutdown)

# Routers
app.include_router(health_router)
app.include_router(images_router)

# Middlewares
middlewares = MiddlewareHandler(app)
middlewares.register(FileUploadOpenAPIMiddleware())


def main() -> None:
    logger.info(f"Starting {st.API_NAME}", icon=LogIcon.START, url=st.api_url, version=st.API_VERSION)
    app.start(host=st.API_HOST, port=st.API_PORT)


if __name__ == "__main__":
    main()
