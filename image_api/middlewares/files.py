"""File upload middleware for OpenAPI multipart/form-data patching."""

import orjson
from robyn import Response

from image_api.core.logger import LogIcon, logger
from image_api.core.router import FILE_UPLOAD_ENDPOINTS
from image_api.core.settings import settings as st
from image_api.middlewares.base import BaseMiddleware


def upload_request_body(batch: bool = False) -> dict:
    """OpenAPI requestBody for an image upload with a JSON options field."""
    binary = {"type": "string", "format": "binary"}
    image_schema = {"type": "array", "items": binary} if batch else binary
    return {
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {
                        st.IMAGE_FIELD: {**image_schema, "description": "Image file(s) to transform"},
                        st.OPTIONS_FIELD: {
                            "type": "string",
                            "description": "JSON encoded transformation options",
                        },
                    },
                    "required": [st.IMAGE_FIELD],
                }
            }
        },
        "required": True,
    }


class FileUploadOpenAPIMiddleware(BaseMiddleware):
    """Patches OpenAPI responses to use multipart/form-data for file upload endpoints."""

    def __init__(self) -> None:
        super().__init__(["/openapi.json"])

    def after(self, response: Response) -> Response:
        """Patch the OpenAPI document with multipart/form-data for file upload endpoints."""
        if not FILE_UPLOAD_ENDPOINTS:
            return response

        try:
            document = orjson.loads(response.description)
        except orjson.JSONDecodeError:
            logger.warning("OpenAPI response is not JSON, leaving it untouched", icon=LogIcon.WARNING)
            return response

        paths = document.get("paths", {})
        for endpoint in FILE_UPLOAD_ENDPOINTS:
            # Robyn documents path params as {name}
            documented = "/".join(
                f"{{{segment[1:]}}}" if segment.startswith(":") else segment for segment in endpoint.split("/")
            )
            for path in {endpoint, documented} & paths.keys():
                for method in paths[path]:
                    paths[path][method]["requestBody"] = upload_request_body(batch=endpoint.endswith("/batch"))

        response.description = orjson.dumps(document).decode()
        return response
