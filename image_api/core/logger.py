"""Structured logging for robyn-image-api.

Debug mode renders pipe-separated lines with icons; otherwise events are
emitted as JSON lines. Raw payloads (encoded images, pixel arrays) are
replaced by a short size summary before rendering.
"""

import logging
from dataclasses import dataclass, field
from enum import StrEnum

import numpy as np
import orjson
import structlog
from asgi_correlation_id import correlation_id
from beartype import beartype

from image_api.core.settings import settings

MAX_EVENT_LENGTH = 80
DEV_RESERVED_KEYS = frozenset({"timestamp", "level", "event", "filename", "lineno"})


class LoggerError(Exception):
    """Exception for logger related issues."""


class LogIcon(StrEnum):
    """Icon shown before the event in debug output."""

    DEFAULT = "📋"

    # Outcome
    SUCCESS = "✅"
    COMPLETE = "✨"
    WARNING = "⚠️"
    ERROR = "❌"

    # App lifecycle
    START = "🚀"
    PROCESSING = "🔄"
    TOOL = "🔧"
    ADAPTER = "🔌"

    # Request handling
    UPLOAD = "📤"
    VALIDATION = "✓"
    LATENCY = "⚡"
    HEALTHCHECK = "❤️"

    # Image pipeline
    DETECTION = "🔍"
    CODEC = "🎞️"
    PROCESSOR = "⚙️"
    IMAGE = "🖼️"
    BATCH = "🗂️"


@dataclass
class LoggerConfig:
    debug: bool = field(default_factory=lambda: settings.DEBUG)
    app_name: str = field(default=settings.API_NAME)
    log_level: str = field(default_factory=lambda: settings.LOG_LEVEL)

    @property
    def level_number(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level.upper()]


def add_correlation_id(logger, method_name: str, event_dict: dict) -> dict:
    """Attach the request's correlation id when one is set."""
    if request_id := correlation_id.get():
        event_dict["correlation_id"] = request_id
    return event_dict


def summarize_payloads(logger, method_name: str, event_dict: dict) -> dict:
    """Replace byte payloads and pixel arrays with their size."""
    for key, value in event_dict.items():
        match value:
            case bytes() | bytearray() | memoryview():
                event_dict[key] = f"<{len(value)} bytes>"
            case np.ndarray():
                shape = "x".join(str(dim) for dim in value.shape)
                event_dict[key] = f"<{value.dtype} array {shape}>"
    return event_dict


class BusinessRulesProcessor:
    """Normalize the event text of every log line.

    Events are upper-cased and cut to ``MAX_EVENT_LENGTH`` characters. The
    ``icon`` keyword must be a ``LogIcon`` (``DEFAULT`` when omitted) and is
    only rendered in debug mode, in front of the event.
    """

    def __init__(self, debug: bool) -> None:
        self.debug = debug

    @beartype
    def __call__(self, logger, name: str, event_dict: dict) -> dict:
        try:
            icon = LogIcon(event_dict.pop("icon", LogIcon.DEFAULT))
        except ValueError as err:
            raise LoggerError("Wrong Icon chosen, please choose a valid LogIcon enum member") from err

        event = str(event_dict.get("event", ""))[:MAX_EVENT_LENGTH].upper()
        event_dict["event"] = f"{icon.value} {event}" if self.debug else event
        return event_dict


def dev_pipeline_renderer(logger, name: str, event_dict: dict) -> str:
    """One pipe-separated line: time, level, event, extra key=value pairs, call site."""
    extras = [f"{key}={value}" for key, value in event_dict.items() if key not in DEV_RESERVED_KEYS]
    call_site = f"{event_dict['filename']}:{event_dict.get('lineno', '')}" if event_dict.get("filename") else ""

    columns = [
        event_dict.get("timestamp", ""),
        str(event_dict.get("level", "info")).upper(),
        event_dict.get("event", ""),
        *extras,
        call_site,
    ]
    return " | ".join(column for column in columns if column)


def setup_logging(config: LoggerConfig) -> None:
    """Configure structlog: pipe lines on stdout in debug, orjson lines otherwise."""
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
            additional_ignores=["logger"],
        ),
        add_correlation_id,
        summarize_payloads,
        BusinessRulesProcessor(debug=config.debug),
    ]

    if config.debug:
        renderers = [dev_pipeline_renderer]
        logger_factory = structlog.PrintLoggerFactory()
    else:
        renderers = [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(serializer=orjson.dumps),
        ]
        # orjson renders bytes
        logger_factory = structlog.BytesLoggerFactory()

    structlog.configure(
        processors=shared_processors + renderers,
        logger_factory=logger_factory,
        wrapper_class=structlog.make_filtering_bound_logger(config.level_number),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


setup_logging(LoggerConfig())

logger = structlog.get_logger()
