"""
Error taxonomy for guarded query answering.

Fatal errors stop the performance answer for one query; non-fatal ones are
logged and the pipeline continues with reduced data.
"""

from datetime import datetime, timezone


class GuardedQAError(Exception):
    """Base class for all guarded query answering errors."""

    fatal: bool = True

    def __init__(self, message: str):
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)


class EntityNotResolved(GuardedQAError):
    """No person/store/market could be matched; caller falls back to the current user."""

    fatal = False

    def __init__(self, query: str, candidates: list[str] | None = None):
        self.query = query
        self.candidates = candidates or []
        super().__init__(f"No entity resolved for query: {query!r}")


class MetricsUnavailable(GuardedQAError):
    """The authoritative metrics provider is unreachable or returned no data."""

    def __init__(self, message: str, kind: str, entity_id: str, endpoint: str | None = None):
        self.kind = kind
        self.entity_id = entity_id
        self.endpoint = endpoint
        super().__init__(message)


class IncompleteMetrics(GuardedQAError):
    """Required fields for an entity kind are missing; returned data is marked, not padded."""

    fatal = False

    def __init__(self, kind: str, entity_id: str, missing_fields: list[str]):
        self.kind = kind
        self.entity_id = entity_id
        self.missing_fields = missing_fields
        super().__init__(
            f"Missing required fields in {kind} scorecard {entity_id}: {', '.join(missing_fields)}"
        )


class MalformedModelOutput(GuardedQAError):
    """A strict-JSON model reply could not be parsed."""

    def __init__(self, reason: str, raw_output: str):
        self.reason = reason
        self.raw_output = raw_output
        super().__init__(f"Model output is not valid scorecard JSON: {reason}")


class ModelUnavailable(GuardedQAError):
    """The generative model call failed or exceeded its timeout."""

    def __init__(self, message: str, provider: str | None = None):
        self.provider = provider
        super().__init__(message)


class ValidationSystemError(GuardedQAError):
    """The validator itself failed; the answer is returned but flagged untrusted."""

    fatal = False

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Validation failed: {cause}")


class AuditPersistenceError(GuardedQAError):
    """Writing an audit entry failed. Logged only, never surfaced."""

    fatal = False

    def __init__(self, message: str, entry_id: str | None = None):
        self.entry_id = entry_id
        super().__init__(message)
