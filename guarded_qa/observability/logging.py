"""
Structured Logging Configuration.

Configures structlog for guarded query answering:
- JSON output in production, colored console output in development
- Correlation ID and per-query context (query id, user) on every event
- Free-text fields (questions, prompts, model output) clipped to a budget
- Credentials and service tokens redacted
"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_query_context: ContextVar[dict[str, Any]] = ContextVar("query_context", default={})

SENSITIVE_KEYS = frozenset({
    "password", "api_key", "apikey", "api-key", "secret", "token",
    "service_token", "authorization", "bearer", "credential", "private_key",
})

# Event keys that may carry user questions or model text
FREE_TEXT_KEYS = ("query", "prompt", "answer", "generated_text", "raw_output")

REDACTED = "***REDACTED***"


class QueryLogContext:
    """
    Bind fields to every log event emitted while one query is handled.

    Usage:
        with QueryLogContext(query_id="a1b2", user_id="201"):
            await service.answer(query, user)
    """

    def __init__(self, **fields: Any):
        self._fields = fields
        self._token = None

    def __enter__(self) -> "QueryLogContext":
        merged = {**_query_context.get(), **self._fields}
        self._token = _query_context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _query_context.reset(self._token)
        return False


def current_query_context() -> dict[str, Any]:
    return dict(_query_context.get())


def add_correlation_id(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add correlation ID to log events."""
    correlation_id = correlation_id_var.get()
    if correlation_id:
        event_dict.setdefault("correlation_id", correlation_id)
    return event_dict


def add_query_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Add bound query fields; explicit event keys win."""
    for key, value in _query_context.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def clip_free_text(max_chars: int) -> Processor:
    """Build a processor that shortens long question/prompt/answer values."""

    def processor(
        logger: WrappedLogger,
        method_name: str,
        event_dict: EventDict,
    ) -> EventDict:
        for key in FREE_TEXT_KEYS:
            value = event_dict.get(key)
            if isinstance(value, str) and len(value) > max_chars:
                event_dict[key] = f"{value[:max_chars]}... [{len(value)} chars]"
        return event_dict

    return processor


def censor_sensitive_data(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Redact credential-like string values, including inside nested dicts."""

    def censor(key: str, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: censor(k, v) for k, v in value.items()}
        if isinstance(value, str) and any(s in key.lower() for s in SENSITIVE_KEYS):
            return REDACTED
        return value

    for key in list(event_dict.keys()):
        event_dict[key] = censor(key, event_dict[key])
    return event_dict


def build_processors(
    format: Literal["json", "console"] = "json",
    service_name: str = "guarded-qa",
    max_text_chars: int = 200,
) -> list[Processor]:
    """Processor chain shared by the application and tests."""

    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["service"] = service_name
        return event_dict

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    return [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_timestamp,
        add_service,
        add_correlation_id,
        add_query_context,
        clip_free_text(max_text_chars),
        censor_sensitive_data,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "json",
    service_name: str = "guarded-qa",
    max_text_chars: int = 200,
) -> None:
    """
    Configure structlog for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: "json" for production, "console" for development
        service_name: Value of the ``service`` key on every event
        max_text_chars: Clip length for questions, prompts and model output
    """
    structlog.configure(
        processors=build_processors(format, service_name, max_text_chars),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    # Request lines from the metrics client are logged by the provider itself
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
