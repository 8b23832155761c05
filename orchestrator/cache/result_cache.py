"""Content-addressed result cache with TTL expiry and group invalidation."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from threading import Lock
import time
from typing import Any, Callable

from .lru import LRUCache


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class CacheConfig:
    """Size, lifetime and sweep cadence for a result cache."""

    max_size: int = 100
    ttl_seconds: float = 3600.0
    sweep_interval_seconds: float = 300.0
    enabled: bool = True


@dataclass(slots=True)
class CacheEntry:
    """A cached inference result."""

    fingerprint: str
    value: str
    created_at: float
    last_accessed_at: float
    ttl_seconds: float
    group_ids: set[str] = field(default_factory=set)

    def is_expired(self, now: float) -> bool:
        return now - self.created_at > self.ttl_seconds


class ResultCache:
    """LRU-bounded store of results keyed by fingerprint.

    The LRU layer caps the number of entries. On top of it each entry has a
    TTL and an optional group id; a group can be dropped as a unit once the
    batch of work it belongs to is finished. Expired entries are removed on
    access and by a sweep that runs at most every ``sweep_interval_seconds``,
    triggered from ``get``/``put``.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: LRUCache[str, CacheEntry] = LRUCache(self.config.max_size)
        self._groups: dict[str, set[str]] = {}
        self._lock = Lock()
        self._last_sweep = clock()

        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self.expirations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, fingerprint: str) -> str | None:
        """Return the cached value or ``None`` on a miss or expired entry."""
        if not self.config.enabled:
            return None

        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)

            entry = self._entries.get(fingerprint)
            if entry is None:
                self.misses += 1
                return None

            if entry.is_expired(now):
                self._remove(entry)
                self.expirations += 1
                self.misses += 1
                LOGGER.debug("Cache entry expired key=%s...", fingerprint[:16])
                return None

            entry.last_accessed_at = now
            self.hits += 1
            LOGGER.debug("Cache hit key=%s...", fingerprint[:16])
            return entry.value

    def put(
        self,
        fingerprint: str,
        value: str,
        group_id: str | None = None,
        *,
        ttl_seconds: float | None = None,
    ) -> None:
        """Store ``value``; evicts the least recently used entry when full."""
        if not self.config.enabled:
            return

        with self._lock:
            now = self._clock()
            self._maybe_sweep(now)

            previous = self._entries.peek(fingerprint)
            if previous is not None:
                self._unindex(previous)

            entry = CacheEntry(
                fingerprint=fingerprint,
                value=value,
                created_at=now,
                last_accessed_at=now,
                ttl_seconds=ttl_seconds if ttl_seconds is not None else self.config.ttl_seconds,
                group_ids={group_id} if group_id is not None else set(),
            )
            evicted = self._entries.put(fingerprint, entry)
            if evicted is not None:
                self.evictions += 1
                self._unindex(evicted[1])
                LOGGER.debug("Evicted least recently used entry key=%s...", evicted[0][:16])

            for name in entry.group_ids:
                self._groups.setdefault(name, set()).add(fingerprint)

            LOGGER.debug(
                "Cached result key=%s... group=%s (%d/%d)",
                fingerprint[:16],
                group_id,
                len(self._entries),
                self.config.max_size,
            )

    def invalidate(self, fingerprint: str) -> bool:
        """Drop a single entry; return whether it was present."""
        with self._lock:
            entry = self._entries.peek(fingerprint)
            if entry is None:
                return False
            self._remove(entry)
            return True

    def add_to_group(self, fingerprint: str, group_id: str) -> bool:
        """File an existing live entry under one more group."""
        with self._lock:
            entry = self._entries.peek(fingerprint)
            if entry is None or entry.is_expired(self._clock()):
                return False
            entry.group_ids.add(group_id)
            self._groups.setdefault(group_id, set()).add(fingerprint)
            return True

    def invalidate_group(self, group_id: str) -> int:
        """Drop every entry stored under ``group_id``; return how many.

        An entry filed under several groups is removed from all of them.
        """
        with self._lock:
            fingerprints = self._groups.pop(group_id, set())
            removed = 0
            for fingerprint in fingerprints:
                entry = self._entries.peek(fingerprint)
                if entry is not None and group_id in entry.group_ids:
                    entry.group_ids.discard(group_id)
                    self._remove(entry)
                    removed += 1

        LOGGER.info("Invalidated group %s (%d entries removed)", group_id, removed)
        return removed

    def group_fingerprints(self, group_id: str) -> list[str]:
        """Return the live fingerprints stored under ``group_id``."""
        return list(self.get_group(group_id))

    def get_group(self, group_id: str) -> dict[str, str]:
        """Return live fingerprint -> value pairs stored under ``group_id``."""
        with self._lock:
            now = self._clock()
            results: dict[str, str] = {}
            for fingerprint in sorted(self._groups.get(group_id, ())):
                entry = self._entries.peek(fingerprint)
                if entry is not None and group_id in entry.group_ids and not entry.is_expired(now):
                    results[fingerprint] = entry.value
            return results

    def sweep(self) -> int:
        """Remove expired entries and empty groups now; return entries removed."""
        with self._lock:
            return self._sweep(self._clock())

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._groups.clear()
        LOGGER.info("Result cache cleared (%d entries removed)", count)

    def set_enabled(self, enabled: bool) -> None:
        self.config.enabled = enabled
        LOGGER.info("Result cache %s", "enabled" if enabled else "disabled")

    def stats(self) -> dict[str, Any]:
        """Return size and hit-rate counters."""
        with self._lock:
            lookups = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_size": self.config.max_size,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
                "evictions": self.evictions,
                "expirations": self.expirations,
                "groups": len(self._groups),
                "ttl_seconds": self.config.ttl_seconds,
                "enabled": self.config.enabled,
            }

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep >= self.config.sweep_interval_seconds:
            self._sweep(now)

    def _sweep(self, now: float) -> int:
        self._last_sweep = now
        expired = [entry for _, entry in self._entries.items() if entry.is_expired(now)]
        for entry in expired:
            self._remove(entry)
        self.expirations += len(expired)

        for group_id in list(self._groups):
            live = {fp for fp in self._groups[group_id] if fp in self._entries}
            if live:
                self._groups[group_id] = live
            else:
                del self._groups[group_id]

        if expired:
            LOGGER.info("Cache sweep removed %d expired entries", len(expired))
        return len(expired)

    def _remove(self, entry: CacheEntry) -> None:
        self._entries.pop(entry.fingerprint)
        self._unindex(entry)

    def _unindex(self, entry: CacheEntry) -> None:
        for group_id in entry.group_ids:
            members = self._groups.get(group_id)
            if members is None:
                continue
            members.discard(entry.fingerprint)
            if not members:
                del self._groups[group_id]
