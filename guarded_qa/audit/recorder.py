"""
Audit recording and validation statistics.

Writes happen in the background so a slow or failing store never delays
an answer. Read-side helpers aggregate the log for monitoring.
"""

import asyncio
from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import structlog

from guarded_qa.audit.store import AuditLogEntry, AuditStore
from guarded_qa.core.errors import AuditPersistenceError
from guarded_qa.domain.models import EnforcementMode, ValidationResult
from guarded_qa.observability.correlation import get_correlation_id

logger = structlog.get_logger(__name__)


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


class AuditRecorder:
    """
    Fire-and-forget audit writer with read-side aggregation.

    Usage:
        recorder = AuditRecorder(InMemoryAuditStore())
        recorder.record(result, EnforcementMode.STRICT)
        await recorder.drain()
        summary = await recorder.stats(days=7)
    """

    def __init__(
        self,
        store: AuditStore,
        write_timeout_seconds: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._write_timeout = write_timeout_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._pending: set[asyncio.Task] = set()
        self.failed_writes = 0

    # =========================================================================
    # Write side
    # =========================================================================

    def record(self, result: ValidationResult, mode: EnforcementMode) -> AuditLogEntry:
        """Schedule a write stamped with the current correlation ID and return immediately."""
        entry = AuditLogEntry.from_result(result, mode, correlation_id=get_correlation_id())
        task = asyncio.create_task(self._write(entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return entry

    async def _write(self, entry: AuditLogEntry) -> None:
        try:
            try:
                await asyncio.wait_for(self._store.append(entry), timeout=self._write_timeout)
            except asyncio.TimeoutError as e:
                raise AuditPersistenceError(
                    f"Audit write exceeded {self._write_timeout}s", entry.entry_id
                ) from e
            except AuditPersistenceError:
                raise
            except Exception as e:
                raise AuditPersistenceError(str(e), entry.entry_id) from e
        except AuditPersistenceError as e:
            self.failed_writes += 1
            logger.error(
                "Audit write failed",
                entry_id=e.entry_id,
                error=str(e),
            )
            return

        logger.info(
            "Validation audit recorded",
            entry_id=entry.entry_id,
            is_valid=entry.is_valid,
            mismatch_count=entry.mismatch_count,
            confidence_score=entry.confidence_score,
            enforcement_mode=entry.enforcement_mode.value,
            admin_override=entry.admin_override,
        )

    async def drain(self) -> None:
        """Wait for all scheduled writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    # =========================================================================
    # Read side
    # =========================================================================

    async def _window(self, days: int) -> list[AuditLogEntry]:
        since = self._clock() - timedelta(days=days)
        return await self._store.entries(since=since)

    async def stats(self, days: int = 7) -> dict[str, Any]:
        """Pass/fail summary over the last ``days`` days."""
        entries = await self._window(days)
        total = len(entries)
        passed = sum(1 for e in entries if e.is_valid)
        failed = total - passed

        metric_counts: Counter[str] = Counter()
        for entry in entries:
            for mismatch in entry.mismatches:
                metric_counts[mismatch["field"]] += 1

        return {
            "period_days": days,
            "total": total,
            "passed": passed,
            "failed": failed,
            "pass_rate": _percent(passed, total),
            "fail_rate": _percent(failed, total),
            "avg_confidence": (
                round(sum(e.confidence_score for e in entries) / total, 4) if total else 1.0
            ),
            "avg_mismatch_count": (
                round(sum(e.mismatch_count for e in entries) / total, 4) if total else 0.0
            ),
            "unique_users": len({e.user_id for e in entries if e.user_id is not None}),
            "admin_overrides": sum(1 for e in entries if e.admin_override),
            "top_mismatched_fields": [
                {"field": name, "count": count} for name, count in metric_counts.most_common(5)
            ],
        }

    async def trends(self, days: int = 30) -> list[dict[str, Any]]:
        """Per-day totals, newest day first."""
        buckets: dict[str, list[AuditLogEntry]] = defaultdict(list)
        for entry in await self._window(days):
            buckets[entry.created_at.date().isoformat()].append(entry)

        trends = []
        for day in sorted(buckets, reverse=True):
            entries = buckets[day]
            total = len(entries)
            failed = sum(1 for e in entries if not e.is_valid)
            mismatch_fields = Counter(m["field"] for e in entries for m in e.mismatches)
            most_common = mismatch_fields.most_common(1)
            trends.append({
                "date": day,
                "total": total,
                "failed": failed,
                "pass_rate": _percent(total - failed, total),
                "avg_confidence": round(sum(e.confidence_score for e in entries) / total, 4),
                "most_common_mismatch": most_common[0][0] if most_common else None,
            })
        return trends

    async def recent_failures(self, days: int = 7, limit: int = 50) -> list[dict[str, Any]]:
        """Failed validations, newest first."""
        failures = [e for e in await self._window(days) if not e.is_valid]
        failures.sort(key=lambda e: e.created_at, reverse=True)
        return [e.to_dict() for e in failures[:limit]]

    async def for_request(self, correlation_id: str, days: int = 30) -> list[dict[str, Any]]:
        """Entries written while handling one request, oldest first."""
        return [e.to_dict() for e in await self._window(days) if e.correlation_id == correlation_id]

    async def user_history(
        self,
        user_id: str,
        days: int = 30,
        limit: int = 100,
    ) -> dict[str, Any]:
        """Validation history and summary for one user."""
        entries = [e for e in await self._window(days) if e.user_id == user_id]
        entries.sort(key=lambda e: e.created_at, reverse=True)
        total = len(entries)
        failed = sum(1 for e in entries if not e.is_valid)
        return {
            "user_id": user_id,
            "period_days": days,
            "total": total,
            "passed": total - failed,
            "failed": failed,
            "pass_rate": _percent(total - failed, total) if total else 100.0,
            "avg_confidence": (
                round(sum(e.confidence_score for e in entries) / total, 4) if total else 1.0
            ),
            "history": [e.to_dict() for e in entries[:limit]],
        }
