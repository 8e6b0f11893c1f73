"""Read-through TTL cache with write invalidation.

One instance is created by the composition root and handed to the engine.
Entries are keyed by ``ResourceKey`` (resource type + scope, e.g.
activities for ranger 7). A write against a resource type must call
``invalidate`` before returning so that the next read goes to the store.

The cache only shields reads: it does no merge or version checking between
concurrent writers.
"""

from __future__ import annotations

import enum
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

log = structlog.get_logger()

DEFAULT_TTL_SECONDS = 30.0


class Resource(enum.Enum):
    ACTIVITIES = "activities"
    FINDINGS = "findings"
    INCIDENTS = "incidents"
    ROUTES = "routes"
    USERS = "users"
    AREAS = "areas"
    EQUIPMENT = "equipment"


@dataclass(frozen=True)
class ResourceKey:
    resource: Resource
    scope: str = ""


@dataclass
class CacheEntry:
    payload: Any
    fetched_at: float


class TTLCache:
    """Per-key time-bounded cache.

    Consumers use ``read`` and ``invalidate``. ``clear`` is reserved for the
    session-expiry path, ``snapshot`` for the stats endpoint.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[ResourceKey, CacheEntry] = {}
        self.hits = 0
        self.misses = 0
        self.invalidations = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _valid(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.fetched_at < self._ttl

    async def read(self, key: ResourceKey, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached payload for ``key``, loading it on a miss or after expiry.

        Loader failures propagate and leave the cache untouched.
        """
        entry = self._entries.get(key)
        if entry is not None and self._valid(entry):
            self.hits += 1
            log.debug("cache_hit", resource=key.resource.value, scope=key.scope)
            return entry.payload

        self.misses += 1
        log.debug("cache_miss", resource=key.resource.value, scope=key.scope)
        payload = await loader()
        self._entries[key] = CacheEntry(payload=payload, fetched_at=self._clock())
        return payload

    def invalidate(self, target: ResourceKey | Resource) -> None:
        """Drop one key, or every key of a resource type."""
        if isinstance(target, Resource):
            stale = [k for k in self._entries if k.resource is target]
        else:
            stale = [target] if target in self._entries else []
        for key in stale:
            del self._entries[key]
        self.invalidations += 1
        log.debug("cache_invalidated",
                  resource=(target if isinstance(target, Resource) else target.resource).value,
                  dropped=len(stale))

    def clear(self) -> None:
        self._entries.clear()

    def snapshot(self) -> dict:
        return {
            "ttl_seconds": self._ttl,
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "invalidations": self.invalidations,
        }
