from __future__ import annotations

from collections import deque
from collections.abc import Callable
from functools import lru_cache
from threading import Lock
from typing import Any, TypeVar

T = TypeVar("T")


class CacheKeys:
    ALL_ALLOCATIONS = "allocations:all"
    ALL_PROPOSALS = "proposals:all"

    @staticmethod
    def proposal_allocations(proposal_id: str) -> str:
        return f"allocations:proposal:{proposal_id}"

    @staticmethod
    def proposal(proposal_id: str) -> str:
        return f"proposal:{proposal_id}"

    @staticmethod
    def allocation_mutation(proposal_id: str | None) -> list[str]:
        """Keys made stale by creating or deleting an allocation."""
        keys = [CacheKeys.ALL_ALLOCATIONS, CacheKeys.ALL_PROPOSALS]
        if proposal_id:
            keys.extend([CacheKeys.proposal_allocations(proposal_id), CacheKeys.proposal(proposal_id)])
        return keys

    @staticmethod
    def proposal_transition(proposal_id: str) -> list[str]:
        return [CacheKeys.proposal(proposal_id), CacheKeys.ALL_PROPOSALS]


class QueryCache:
    """Drop-and-refetch cache for remote reads.

    Values are stored under string tags and only ever dropped; a mutation never
    patches a cached value, the next read fetches the authoritative copy.
    Filtered list reads are stored under ``<tag>?<suffix>`` so invalidating the
    tag drops every variant.
    """

    def __init__(self, history_size: int = 256) -> None:
        self._entries: dict[str, Any] = {}
        self._lock = Lock()
        # Most recent invalidated keys, oldest dropped first.
        self.invalidations: deque[str] = deque(maxlen=history_size)

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._entries.get(key)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def get_or_fetch(self, key: str, fetcher: Callable[[], T]) -> T:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
        value = fetcher()
        self.set(key, value)
        return value

    def invalidate(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self.invalidations.append(key)
                for cached in [item for item in self._entries if item == key or item.startswith(f"{key}?")]:
                    del self._entries[cached]

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            self.invalidations.append(f"{prefix}*")
            for cached in [item for item in self._entries if item.startswith(prefix)]:
                del self._entries[cached]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.invalidations.clear()


@lru_cache
def get_query_cache() -> QueryCache:
    """Process-wide cache shared by every service built without an explicit one."""
    return QueryCache()
