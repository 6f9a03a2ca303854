"""
Core Infrastructure Module.

Provides foundational patterns and utilities:
- Error taxonomy for guarded query answering
- TTL-refreshing settings store
"""

from guarded_qa.core.errors import (
    AuditPersistenceError,
    EntityNotResolved,
    GuardedQAError,
    IncompleteMetrics,
    MalformedModelOutput,
    MetricsUnavailable,
    ModelUnavailable,
    ValidationSystemError,
)
from guarded_qa.core.settings_store import (
    SettingsSource,
    SettingsStore,
    StaticSettingsSource,
)

__all__ = [
    # Errors
    "GuardedQAError",
    "EntityNotResolved",
    "MetricsUnavailable",
    "IncompleteMetrics",
    "MalformedModelOutput",
    "ModelUnavailable",
    "ValidationSystemError",
    "AuditPersistenceError",
    # Settings
    "SettingsSource",
    "SettingsStore",
    "StaticSettingsSource",
]
