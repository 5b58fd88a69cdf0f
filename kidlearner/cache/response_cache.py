# In-process HTTP response cache: per-route-group TTL and size caps, LRU eviction.
# One instance per process: built in the lifespan, stored on app.state.
# Stale entries are refused at read time and deleted by a periodic asyncio sweep.

from __future__ import annotations

import asyncio
import contextlib
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from cachetools import Cache, LRUCache  # type: ignore[import-untyped]

logger = structlog.get_logger(__name__)

DEFAULT_GROUP = "default"
SWEEP_INTERVAL_SECONDS = 300.0


@dataclass(frozen=True)
class GroupPolicy:
    """TTL and capacity shared by every route in one group."""

    ttl_ms: int
    max_entries: int

    def __post_init__(self) -> None:
        if self.ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {self.ttl_ms}")
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be at least 1, got {self.max_entries}")

    @property
    def ttl_seconds(self) -> float:
        return self.ttl_ms / 1000


DEFAULT_POLICIES: Mapping[str, GroupPolicy] = {
    "lessons": GroupPolicy(ttl_ms=600_000, max_entries=50),  # 10 min
    "health": GroupPolicy(ttl_ms=120_000, max_entries=10),  # 2 min
    DEFAULT_GROUP: GroupPolicy(ttl_ms=300_000, max_entries=100),  # 5 min
}


@dataclass
class CacheEntry:
    """One captured JSON response."""

    key: str
    payload: Any
    group: str
    created_at: float
    last_accessed_at: float
    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)


class _GroupStore(LRUCache):  # type: ignore[misc]
    """LRUCache for one group that reports capacity evictions to its owner.

    Recency is only touched by put and by confirmed fresh hits, so LRU order
    always matches last_accessed_at order.
    """

    def __init__(self, maxsize: int, on_evict: Callable[[CacheEntry], None]) -> None:
        super().__init__(maxsize=maxsize)
        self._on_evict = on_evict

    def peek(self, key: str) -> CacheEntry | None:
        """Read an entry without moving it in the LRU order."""
        if key not in self:
            return None
        return Cache.__getitem__(self, key)  # type: ignore[no-any-return]

    def touch(self, key: str) -> None:
        self[key]  # noqa: B018  LRUCache.__getitem__ marks the key most recently used

    def entries(self) -> Iterator[CacheEntry]:
        for key in list(self):
            yield Cache.__getitem__(self, key)

    def popitem(self) -> tuple[str, CacheEntry]:
        key, entry = super().popitem()
        self._on_evict(entry)
        return key, entry


class ResponseCache:
    """Bounded, per-group response cache with hit/miss/eviction statistics.

    Groups come from the path segment after /api/ (``/api/lessons/5`` is
    ``lessons``). Segments without their own policy share the ``default``
    group. Capacity and LRU eviction are scoped per group.
    """

    def __init__(
        self,
        policies: Mapping[str, GroupPolicy] | None = None,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policies = dict(policies if policies is not None else DEFAULT_POLICIES)
        if DEFAULT_GROUP not in self._policies:
            raise ValueError(f"policies must include a '{DEFAULT_GROUP}' group")

        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._stores = self._build_stores()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._created = clock()

        self._sweeper: asyncio.Task[None] | None = None

    def _build_stores(self) -> dict[str, _GroupStore]:
        return {
            name: _GroupStore(maxsize=policy.max_entries, on_evict=self._record_eviction)
            for name, policy in self._policies.items()
        }

    def _record_eviction(self, entry: CacheEntry) -> None:
        # Called from popitem while the lock is already held.
        self._evictions += 1
        logger.debug("cache_evicted", key=entry.key, group=entry.group, reason="lru")

    # ── Keys and groups ──────────────────────────────────────────────────

    @staticmethod
    def make_key(method: str, path: str, query: str = "") -> str:
        """Canonical request identity: method, path and raw query string."""
        target = f"{path}?{query}" if query else path
        return f"{method.upper()} {target}"

    def resolve_group(self, group: str) -> str:
        return group if group in self._policies else DEFAULT_GROUP

    def group_for_path(self, path: str) -> str:
        """Route-group for a request path: ``/api/<group>/...``."""
        parts = path.split("/")
        return self.resolve_group(parts[2] if len(parts) > 2 else "")

    def policy_for(self, group: str) -> GroupPolicy:
        return self._policies[self.resolve_group(group)]

    @property
    def policies(self) -> dict[str, GroupPolicy]:
        return dict(self._policies)

    # ── Store ────────────────────────────────────────────────────────────

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry for key regardless of freshness. No side effects."""
        with self._lock:
            for store in self._stores.values():
                entry = store.peek(key)
                if entry is not None:
                    return entry
        return None

    def is_fresh(self, entry: CacheEntry, now: float | None = None) -> bool:
        now = self._clock() if now is None else now
        return now - entry.created_at < self._policies[entry.group].ttl_seconds

    def lookup(self, key: str, group: str) -> CacheEntry | None:
        """Read path for request interception. Records a hit or a miss.

        A present but stale entry counts as a miss; the sweeper or the next
        put removes it.
        """
        name = self.resolve_group(group)
        with self._lock:
            store = self._stores[name]
            entry = store.peek(key)
            now = self._clock()
            if entry is not None and self.is_fresh(entry, now):
                store.touch(key)
                entry.last_accessed_at = now
                self._hits += 1
                return entry
            self._misses += 1
            return None

    def put(
        self,
        key: str,
        group: str,
        payload: Any,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
    ) -> CacheEntry:
        """Insert or overwrite. A new key in a full group evicts that group's LRU entry.

        A key stored under another group is moved, never duplicated.
        """
        name = self.resolve_group(group)
        now = self._clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            group=name,
            created_at=now,
            last_accessed_at=now,
            status_code=status_code,
            headers=dict(headers or {}),
        )
        with self._lock:
            for other, store in self._stores.items():
                if other != name and key in store:
                    del store[key]
            self._stores[name][key] = entry
        logger.debug("cache_stored", key=key, group=name)
        return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            for store in self._stores.values():
                if key in store:
                    del store[key]
                    return True
        return False

    def clear(self) -> int:
        """Drop every entry. Returns the size before clearing."""
        with self._lock:
            previous = sum(len(store) for store in self._stores.values())
            self._stores = self._build_stores()
            self._evictions += previous
        logger.info("cache_cleared", previous_size=previous)
        return previous

    # ── Eviction ─────────────────────────────────────────────────────────

    def evict_lru(self, group: str) -> CacheEntry | None:
        """Evict the least recently accessed entry of a group. No-op when empty."""
        with self._lock:
            store = self._stores[self.resolve_group(group)]
            if not store:
                return None
            _, entry = store.popitem()
            return entry

    # ── Expiry ───────────────────────────────────────────────────────────

    def sweep_expired(self, now: float | None = None) -> int:
        """Delete entries older than their group's TTL. Returns the count removed."""
        with self._lock:
            now = self._clock() if now is None else now
            removed = 0
            for name, store in self._stores.items():
                ttl = self._policies[name].ttl_seconds
                expired = [e.key for e in store.entries() if now - e.created_at > ttl]
                for key in expired:
                    del store[key]
                removed += len(expired)
            self._evictions += removed
        return removed

    @property
    def is_sweeping(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def start(self) -> None:
        """Schedule the periodic sweep on the running event loop."""
        if self.is_sweeping:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="response-cache-sweeper")
        logger.info("cache_sweeper_started", interval_seconds=self._sweep_interval)

    async def stop(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("cache_sweeper_stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                removed = self.sweep_expired()
            except Exception:
                logger.exception("cache_sweep_failed")
                continue
            if removed:
                logger.info("cache_swept", removed=removed, size=self.size)

    # ── Statistics ───────────────────────────────────────────────────────

    @property
    def size(self) -> int:
        with self._lock:
            return sum(len(store) for store in self._stores.values())

    def __len__(self) -> int:
        return self.size

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def stats(self) -> dict[str, Any]:
        """Read-only snapshot for GET /api/cache/stats."""
        with self._lock:
            groups = {name: len(store) for name, store in self._stores.items()}
            size = sum(groups.values())
            return {
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "size": size,
                "cacheSize": size,
                "config": {
                    name: {"ttlMillis": policy.ttl_ms, "maxEntries": policy.max_entries}
                    for name, policy in self._policies.items()
                },
                "uptime": round(self._clock() - self._created, 3),
                "groups": groups,
            }
