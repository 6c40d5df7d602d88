"""Router that decodes multipart uploads and renders handler results.

Handlers declare a ``MultipartForm`` parameter to receive the decoded body.
The wrapper also owns the request-scoped concerns: correlation id, latency
logging, and turning ``ImageAPIError`` / ``ValidationError`` into JSON.
"""

import inspect
import time
from collections.abc import Callable
from functools import wraps
from typing import Any
from uuid import uuid4

import orjson
from asgi_correlation_id import correlation_id
from pydantic import BaseModel, ValidationError
from robyn import Request, Response, SubRouter, status_codes

from image_api.core.errors import ImageAPIError
from image_api.core.logger import LogIcon, logger
from image_api.models.core import MultipartForm
from image_api.multipart.decoder import decode_request

FILE_UPLOAD_ENDPOINTS: set[str] = set()
JSON_HEADERS = {"content-type": "application/json"}
ROUTED_METHODS = ("get", "post")


def form_parameters(sig: inspect.Signature) -> frozenset[str]:
    """Names of the parameters annotated as ``MultipartForm``."""
    return frozenset(name for name, param in sig.parameters.items() if param.annotation is MultipartForm)


def json_response(description: str, status_code: int = status_codes.HTTP_200_OK) -> Response:
    return Response(status_code=status_code, headers=dict(JSON_HEADERS), description=description)


def error_response(error: ImageAPIError) -> Response:
    """JSON response for a typed request error."""
    return json_response(orjson.dumps(error.to_dict()).decode(), int(error.status_code))


def validation_response(error: ValidationError) -> Response:
    return json_response(error.json(), status_codes.HTTP_422_UNPROCESSABLE_ENTITY)


def request_header(request: Request, name: str) -> str | None:
    """Header lookup tolerant of the casing the transport preserved."""
    return request.headers.get(name) or request.headers.get(name.title())


def request_body_bytes(request: Request) -> bytes:
    body = request.body
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body or b"")


def parse_request_form(
    form_params: frozenset[str] | set[str],
    request: Request,
    kwargs: dict[str, Any],
) -> Response | None:
    """Decode the multipart body into every form parameter, or return the 400 response."""
    if not form_params:
        return None

    try:
        form = decode_request(request_header(request, "content-type"), request_body_bytes(request))
    except ImageAPIError as ex:
        logger.warning("Rejected multipart body", icon=LogIcon.UPLOAD, error=ex.message)
        return error_response(ex)

    kwargs.update(dict.fromkeys(form_params, form))
    return None


def parse_response(result: Any) -> Response:
    """Convert handler result to Response."""
    match result:
        case Response():
            return result
        case BaseModel():
            return json_response(result.model_dump_json(indent=4))
        case dict() | list():
            return json_response(orjson.dumps(result).decode())
        case _:
            return Response(
                status_code=status_codes.HTTP_200_OK,
                headers={"content-type": "text/plain"},
                description=str(result),
            )


async def dispatch(handler: Callable, h_kwargs: dict[str, Any]) -> Response:
    """Await ``handler`` and turn typed errors into JSON responses."""
    try:
        result = await handler(**h_kwargs)
    except ImageAPIError as ex:
        logger.warning(f"Request failed: {ex.kind.value}", icon=LogIcon.ERROR, error=ex.message)
        return error_response(ex)
    except ValidationError as ex:
        logger.warning("Request failed validation", icon=LogIcon.VALIDATION, errors=ex.error_count())
        return validation_response(ex)
    return parse_response(result)


def _robyn_signature(sig: inspect.Signature, form_params: frozenset[str]) -> inspect.Signature:
    """Signature Robyn injects into: ``request`` first, form parameters hidden."""
    request_param = inspect.Parameter("request", inspect.Parameter.POSITIONAL_OR_KEYWORD, annotation=Request)
    rest = [param for name, param in sig.parameters.items() if name != "request" and name not in form_params]
    return sig.replace(parameters=[request_param, *rest])


def _create_method_wrapper(
    original_method: Callable,
    router_prefix: str = "",
    registry: dict[str, Callable] | None = None,
) -> Callable:
    @wraps(original_method)
    def method_wrapper(*args, **kwargs) -> Callable:
        endpoint = args[0] if args else kwargs.get("endpoint", "")
        full_path = f"{router_prefix}{endpoint}".replace("//", "/")
        decorator = original_method(*args, **kwargs)

        def handler_decorator(handler: Callable) -> Callable:
            sig = inspect.signature(handler)
            form_params = form_parameters(sig)
            wants_request = "request" in sig.parameters

            if form_params:
                FILE_UPLOAD_ENDPOINTS.add(full_path)

            @wraps(handler)
            async def wrapped_handler(request: Request, **h_kwargs):
                token = correlation_id.set(request_header(request, "x-request-id") or uuid4().hex)
                started = time.perf_counter()
                try:
                    if error := parse_request_form(form_params, request, h_kwargs):
                        return error
                    if wants_request:
                        h_kwargs["request"] = request

                    response = await dispatch(handler, h_kwargs)
                    logger.info(
                        f"{handler.__name__} handled",
                        icon=LogIcon.LATENCY,
                        status=response.status_code,
                        elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
                    )
                    return response
                finally:
                    correlation_id.reset(token)

            wrapped_handler.__signature__ = _robyn_signature(sig, form_params)  # type: ignore[attr-defined]
            if registry is not None:
                registry[f"{original_method.__name__.upper()} {full_path}"] = wrapped_handler
            return decorator(wrapped_handler)

        return handler_decorator

    return method_wrapper


class Router(SubRouter):
    """SubRouter whose GET and POST routes decode uploads and render results."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        prefix = kwargs.get("prefix", "")
        # "POST /api/images/process" -> the handler as wrapped, before Robyn registers it
        self.wrapped_handlers: dict[str, Callable] = {}
        for method_name in ROUTED_METHODS:
            wrapper = _create_method_wrapper(getattr(self, method_name), prefix, self.wrapped_handlers)
            setattr(self, method_name, wrapper)
