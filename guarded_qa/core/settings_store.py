"""
TTL-refreshing settings store.

Prompt text and generation parameters are editable by administrators in an
upstream store. This module keeps a read-mostly copy:
- Pull-on-expiry refresh (no background timers)
- Last good value served when a refresh fails
- Defaults served when nothing has ever loaded

Writable sources (the JSON file source) persist admin edits; `update`
drops the cached copy so the next read sees the saved value.
"""

import asyncio
import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SettingsSource(ABC, Generic[T]):
    """Upstream provider of a settings object."""

    @abstractmethod
    async def load(self) -> T:
        """Load the current settings; may raise on failure."""
        pass

    async def save(self, value: T) -> None:
        raise NotImplementedError(f"{type(self).__name__} is read-only")


class StaticSettingsSource(SettingsSource[T]):
    """Source that always returns the same object."""

    def __init__(self, value: T):
        self._value = value

    async def load(self) -> T:
        return self._value


class JsonFileSettingsSource(SettingsSource[T]):
    """
    Settings persisted as one JSON document.

    A missing file decodes as an empty document, so the decoder's defaults
    apply until an administrator saves something. Writes replace the file
    atomically.
    """

    def __init__(
        self,
        path: str | Path,
        decode: Callable[[dict[str, Any]], T],
        encode: Callable[[T], dict[str, Any]],
    ):
        self._path = Path(path)
        self._decode = decode
        self._encode = encode

    async def load(self) -> T:
        if not self._path.exists():
            return self._decode({})
        with open(self._path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self._path} does not hold a JSON object")
        return self._decode(data)

    async def save(self, value: T) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(staging, "w", encoding="utf-8") as f:
            json.dump(self._encode(value), f, indent=2, ensure_ascii=False)
        os.replace(staging, self._path)
        logger.info("Settings saved", path=str(self._path))


@dataclass
class _Snapshot(Generic[T]):
    value: T
    loaded_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class SettingsStoreStats:
    loads: int = 0
    failures: int = 0
    hits: int = 0
    last_error: str | None = field(default=None)


class SettingsStore(Generic[T]):
    """
    Caches the result of a SettingsSource for ``ttl_seconds``.

    Usage:
        store = SettingsStore(source, default=AgentSettings(), ttl_seconds=300)
        settings = await store.get()
    """

    def __init__(
        self,
        source: SettingsSource[T],
        default: T,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._default = default
        self._ttl = ttl_seconds
        self._clock = clock
        self._snapshot: _Snapshot[T] | None = None
        self._lock = asyncio.Lock()
        self.stats = SettingsStoreStats()

    async def get(self) -> T:
        """Return cached settings, refreshing from the source when expired."""
        now = self._clock()
        snapshot = self._snapshot
        if snapshot is not None and not snapshot.is_expired(now):
            self.stats.hits += 1
            return snapshot.value

        async with self._lock:
            # Another caller may have refreshed while we waited
            now = self._clock()
            snapshot = self._snapshot
            if snapshot is not None and not snapshot.is_expired(now):
                self.stats.hits += 1
                return snapshot.value
            return await self._refresh(now)

    async def _refresh(self, now: float) -> T:
        try:
            value = await self._source.load()
        except Exception as e:
            self.stats.failures += 1
            self.stats.last_error = str(e)
            fallback = self._snapshot.value if self._snapshot else self._default
            logger.warning(
                "Settings refresh failed, serving previous value",
                error=str(e),
                has_previous=self._snapshot is not None,
            )
            # Retry on the next call after a full TTL, not immediately
            self._snapshot = _Snapshot(fallback, now, now + self._ttl)
            return fallback

        self.stats.loads += 1
        self._snapshot = _Snapshot(value, now, now + self._ttl)
        logger.debug("Settings loaded", ttl_seconds=self._ttl)
        return value

    async def update(self, value: T) -> T:
        """
        Persist new settings and drop the cached copy.

        Raises:
            NotImplementedError: the source is read-only
        """
        await self._source.save(value)
        self.invalidate()
        return await self.get()

    def invalidate(self) -> None:
        """Drop the cached value so the next ``get`` reloads."""
        self._snapshot = None
