"""In-memory key/value cache with per-entry expiry.

Used to remember web search results between the two search phases. Expiry
is enforced on every read; the periodic sweep only reclaims memory for keys
nobody reads again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger("msgbridge")

DEFAULT_TTL_S = 60 * 60
SWEEP_INTERVAL_S = 5 * 60


@dataclass
class CacheEntry:
    value: Any
    expire_at: float


class EphemeralCache:
    """TTL cache with a self-stopping background sweep."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_S,
        sweep_interval: float = SWEEP_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._sweep_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        lifetime = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(value=value, expire_at=self._clock() + lifetime)
        self._ensure_sweep()

    def get(self, key: str) -> Any:
        """Return the cached value, or None when absent or expired."""
        try:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expire_at:
                self._entries.pop(key, None)
                return None
            return entry.value
        except Exception as exc:
            logger.debug(f"Cache read failed for '{key}': {exc}")
            return None

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def ttl(self, key: str) -> float:
        """Seconds until the key expires, or -1 when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return -1
        remaining = entry.expire_at - self._clock()
        return remaining if remaining > 0 else -1

    def refresh(self, key: str) -> bool:
        """Restart the default lifetime of a live key."""
        value = self.get(key)
        if value is None:
            return False
        self.set(key, value)
        return True

    def keys(self) -> list[str]:
        now = self._clock()
        live: list[str] = []
        for key, entry in list(self._entries.items()):
            if now <= entry.expire_at:
                live.append(key)
            else:
                self._entries.pop(key, None)
        return live

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._stop_sweep()

    def cleanup(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expire_at]
        for key in expired:
            self._entries.pop(key, None)
        if not self._entries:
            self._stop_sweep()
        return len(expired)

    def close(self) -> None:
        self.clear()

    @property
    def sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def _ensure_sweep(self) -> None:
        if self.sweeping:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: reads still enforce expiry
            return
        self._sweep_task = loop.create_task(self._sweep_loop())

    def _stop_sweep(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            removed = self.cleanup()
            if removed:
                logger.debug(f"Cache sweep removed {removed} expired entries")
            if not self._entries:
                return


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
