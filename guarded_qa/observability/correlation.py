"""
Request correlation IDs.

One ID follows a question from the HTTP request through resolver, gateway,
model and validator log lines into the audit row it produces, so a failed
validation in the audit log can be joined back to its request logs.

Caller-supplied IDs are accepted only when they are short and made of safe
characters; anything else is replaced with a generated ID.
"""

import re
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from guarded_qa.observability.logging import correlation_id_var, get_logger

logger = get_logger(__name__)

CORRELATION_ID_HEADERS = ("X-Correlation-ID", "X-Request-ID")

MAX_CORRELATION_ID_LENGTH = 64

_SAFE_ID_RE = re.compile(r"[A-Za-z0-9._:-]+")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:12]


def get_correlation_id() -> str | None:
    """Correlation ID of the request being handled, if any."""
    return correlation_id_var.get()


def is_acceptable_correlation_id(value: str) -> bool:
    return len(value) <= MAX_CORRELATION_ID_LENGTH and bool(_SAFE_ID_RE.fullmatch(value))


def extract_correlation_id(request: Request) -> str | None:
    """First acceptable ID among the known headers."""
    for header in CORRELATION_ID_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        value = value.strip()
        if is_acceptable_correlation_id(value):
            return value
        logger.warning("Ignoring malformed correlation header", header=header, length=len(value))
    return None


@contextmanager
def correlation_scope(correlation_id: str | None = None) -> Iterator[str]:
    """
    Bind a correlation ID for the duration of a block.

    Used by the middleware for HTTP requests and directly by batch jobs or
    tests that call the query service without a request.
    """
    correlation_id = correlation_id or generate_correlation_id()
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Binds a correlation ID per request and echoes it in the response.

    Usage:
        app.add_middleware(CorrelationMiddleware)
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with correlation_scope(extract_correlation_id(request)) as correlation_id:
            request.state.correlation_id = correlation_id
            started = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as e:
                logger.error(
                    "Request failed",
                    method=request.method,
                    path=request.url.path,
                    error_type=type(e).__name__,
                )
                raise

            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            response.headers["X-Correlation-ID"] = correlation_id
            response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
            return response
