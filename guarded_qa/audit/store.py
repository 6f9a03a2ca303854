"""
Validation Audit Log Storage.

Append-only record of every validated response:
- One entry per validation outcome with its enforcement mode
- Backends: in-memory and JSON-lines file
- Read access for statistics, trends and failure listings
"""

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog

from guarded_qa.core.errors import AuditPersistenceError
from guarded_qa.domain.models import EnforcementMode, ValidationResult

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuditLogEntry:
    """Row of the ai_validation_audit_log."""

    entry_id: str
    user_id: str | None
    query: str
    validation_type: str
    is_valid: bool
    mismatch_count: int
    confidence_score: float
    expected_values: dict[str, Any] = field(default_factory=dict)
    detected_values: dict[str, Any] = field(default_factory=dict)
    mismatches: list[dict[str, Any]] = field(default_factory=list)
    disclaimer: str | None = None
    enforcement_mode: EnforcementMode = EnforcementMode.STRICT
    admin_override: bool = False
    error: str | None = None
    correlation_id: str | None = None
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_result(
        cls,
        result: ValidationResult,
        mode: EnforcementMode,
        correlation_id: str | None = None,
    ) -> "AuditLogEntry":
        return cls(
            entry_id=str(uuid.uuid4()),
            user_id=result.audit_log.user_id,
            query=result.audit_log.query,
            validation_type=result.audit_log.validation_type,
            is_valid=result.is_valid,
            mismatch_count=len(result.mismatches),
            confidence_score=result.confidence_score,
            expected_values=dict(result.expected_values),
            detected_values=dict(result.detected_values),
            mismatches=[m.to_dict() for m in result.mismatches],
            disclaimer=result.disclaimer,
            enforcement_mode=mode,
            admin_override=mode == EnforcementMode.BYPASSED,
            error=result.audit_log.error,
            correlation_id=correlation_id,
            created_at=result.audit_log.timestamp,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "user_id": self.user_id,
            "query": self.query,
            "validation_type": self.validation_type,
            "is_valid": self.is_valid,
            "mismatch_count": self.mismatch_count,
            "confidence_score": self.confidence_score,
            "expected_values": self.expected_values,
            "detected_values": self.detected_values,
            "mismatches": self.mismatches,
            "disclaimer": self.disclaimer,
            "enforcement_mode": self.enforcement_mode.value,
            "admin_override": self.admin_override,
            "error": self.error,
            "correlation_id": self.correlation_id,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditLogEntry":
        return cls(
            entry_id=data["entry_id"],
            user_id=data.get("user_id"),
            query=data.get("query", ""),
            validation_type=data.get("validation_type", "performance_metric_validation"),
            is_valid=data["is_valid"],
            mismatch_count=data.get("mismatch_count", 0),
            confidence_score=data.get("confidence_score", 1.0),
            expected_values=data.get("expected_values", {}),
            detected_values=data.get("detected_values", {}),
            mismatches=data.get("mismatches", []),
            disclaimer=data.get("disclaimer"),
            enforcement_mode=EnforcementMode(data.get("enforcement_mode", "strict")),
            admin_override=data.get("admin_override", False),
            error=data.get("error"),
            correlation_id=data.get("correlation_id"),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else _utcnow(),
        )


class AuditStore(ABC):
    """Abstract base class for audit log storage."""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> str:
        """Persist an entry. Returns entry_id."""
        pass

    @abstractmethod
    async def entries(self, since: datetime | None = None) -> list[AuditLogEntry]:
        """All entries created at or after ``since``, oldest first."""
        pass

    @abstractmethod
    async def size(self) -> int:
        pass


class InMemoryAuditStore(AuditStore):
    """In-memory audit store."""

    def __init__(self):
        self._entries: list[AuditLogEntry] = []

    async def append(self, entry: AuditLogEntry) -> str:
        self._entries.append(entry)
        return entry.entry_id

    async def entries(self, since: datetime | None = None) -> list[AuditLogEntry]:
        selected = [e for e in self._entries if since is None or e.created_at >= since]
        return sorted(selected, key=lambda e: e.created_at)

    async def size(self) -> int:
        return len(self._entries)


class FileAuditStore(AuditStore):
    """
    JSON-lines audit store.

    Each entry is one line appended to a single file; existing lines are
    never rewritten.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    async def append(self, entry: AuditLogEntry) -> str:
        line = json.dumps(entry.to_dict(), ensure_ascii=False, default=str)
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            raise AuditPersistenceError(
                f"Failed to write audit entry to {self._path}: {e}", entry.entry_id
            ) from e
        return entry.entry_id

    async def entries(self, since: datetime | None = None) -> list[AuditLogEntry]:
        if not self._path.exists():
            return []
        selected = []
        with open(self._path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    entry = AuditLogEntry.from_dict(json.loads(line))
                except (ValueError, KeyError) as e:
                    logger.warning(
                        "Skipping unreadable audit line",
                        path=str(self._path),
                        line=line_number,
                        error=str(e),
                    )
                    continue
                if since is None or entry.created_at >= since:
                    selected.append(entry)
        return sorted(selected, key=lambda e: e.created_at)

    async def size(self) -> int:
        return len(await self.entries())
