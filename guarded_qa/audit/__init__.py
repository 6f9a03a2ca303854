"""
Validation Audit Module.
"""

from guarded_qa.audit.recorder import AuditRecorder
from guarded_qa.audit.store import AuditLogEntry, AuditStore, FileAuditStore, InMemoryAuditStore

__all__ = [
    "AuditRecorder",
    "AuditLogEntry",
    "AuditStore",
    "FileAuditStore",
    "InMemoryAuditStore",
]
