"""
Observability Module.

Structured logging with JSON output, per-query context and request
correlation IDs.
"""

from guarded_qa.observability.logging import (
    QueryLogContext,
    configure_logging,
    correlation_id_var,
    get_logger,
)
from guarded_qa.observability.correlation import (
    CorrelationMiddleware,
    correlation_scope,
    get_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "QueryLogContext",
    "correlation_id_var",
    "CorrelationMiddleware",
    "correlation_scope",
    "get_correlation_id",
]
