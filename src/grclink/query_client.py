"""In-memory query cache with stale-time and garbage-collection policy."""

from __future__ import annotations

import time as time_module
from collections.abc import Callable, Hashable, Mapping, Sequence
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any

from grclink.config import Settings
from grclink.query_keys import QueryKey, normalize_query_key
from grclink.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_STALE_TIME_S = 60.0
DEFAULT_GC_TIME_S = 600.0

QueryFn = Callable[[QueryKey], Any]


def _freeze(value: Any) -> Hashable:
    if isinstance(value, Mapping):
        return ("__mapping__", tuple(sorted((str(k), _freeze(v)) for k, v in value.items())))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(slots=True)
class QueryCacheEntry:
    """Cached data for one query key."""

    query_key: QueryKey
    data: Any = None
    updated_at: float = 0.0
    last_accessed_at: float = 0.0
    is_invalidated: bool = False

    def is_stale(self, now: float, stale_time_s: float) -> bool:
        return self.is_invalidated or now - self.updated_at >= stale_time_s


class QueryClient:
    """Cache of server data keyed by query key.

    Data stays fresh for ``stale_time_s`` and is dropped once unused for
    ``gc_time_s``. Nothing refetches on its own: stale data is only replaced
    by the next ``fetch_query`` or by ``invalidate_queries(refetch=True)``.
    """

    def __init__(
        self,
        stale_time_s: float = DEFAULT_STALE_TIME_S,
        gc_time_s: float = DEFAULT_GC_TIME_S,
        default_query_fn: QueryFn | None = None,
    ) -> None:
        self.stale_time_s = stale_time_s
        self.gc_time_s = gc_time_s
        self._default_query_fn = default_query_fn
        self._lock = Lock()
        self._entries: dict[Hashable, QueryCacheEntry] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> QueryClient:
        return cls(stale_time_s=settings.stale_time_s, gc_time_s=settings.gc_time_s)

    def set_default_query_fn(self, query_fn: QueryFn | None) -> None:
        self._default_query_fn = query_fn

    def fetch_query(
        self,
        query_key: str | Sequence[Any],
        query_fn: QueryFn | None = None,
        stale_time_s: float | None = None,
    ) -> Any:
        """Return cached data when fresh, otherwise fetch and cache it.

        Args:
            query_key: Key of the query.
            query_fn: Fetch function; defaults to the configured default.
            stale_time_s: Per-call override of the freshness window.

        Returns:
            Query data.

        Raises:
            ValueError: When no query function is available.
        """

        key = normalize_query_key(query_key)
        frozen = _freeze(key)
        stale_after = self.stale_time_s if stale_time_s is None else stale_time_s
        now = time_module.monotonic()
        with self._lock:
            self._collect_garbage(now)
            entry = self._entries.get(frozen)
            if entry is not None and not entry.is_stale(now, stale_after):
                entry.last_accessed_at = now
                return entry.data
        fetch = query_fn or self._default_query_fn
        if fetch is None:
            raise ValueError(f"No query function configured for {key!r}")
        data = fetch(key)
        self._store(key, frozen, data)
        return data

    def get_query_data(self, query_key: str | Sequence[Any]) -> Any:
        frozen = _freeze(normalize_query_key(query_key))
        now = time_module.monotonic()
        with self._lock:
            self._collect_garbage(now)
            entry = self._entries.get(frozen)
            if entry is None:
                return None
            entry.last_accessed_at = now
            return entry.data

    def set_query_data(self, query_key: str | Sequence[Any], data: Any) -> Any:
        """Store data for a key.

        ``data`` may be a callable receiving the current data (or ``None``)
        and returning the new value. The updater runs without the cache lock
        held, so it may read the client. If another writer replaces the entry
        while it runs, the updater is applied again to the newer data.
        """

        key = normalize_query_key(query_key)
        frozen = _freeze(key)
        if not callable(data):
            self._store(key, frozen, data)
            return data
        while True:
            with self._lock:
                current = self._entries.get(frozen)
            value = data(current.data if current is not None else None)
            with self._lock:
                if self._entries.get(frozen) is current:
                    self._entries[frozen] = self._new_entry(key, value)
                    return value

    def get_query_state(self, query_key: str | Sequence[Any]) -> QueryCacheEntry | None:
        frozen = _freeze(normalize_query_key(query_key))
        with self._lock:
            entry = self._entries.get(frozen)
            return replace(entry) if entry is not None else None

    def invalidate_queries(
        self,
        query_key: str | Sequence[Any] | None = None,
        *,
        exact: bool = False,
        refetch: bool = False,
    ) -> int:
        """Mark matching entries stale, optionally refetching them.

        Keys match by prefix unless ``exact`` is set; no key matches all.

        Returns:
            Number of matched entries.
        """

        with self._lock:
            matched = self._matching(query_key, exact)
            for entry in matched:
                entry.is_invalidated = True
            keys = [entry.query_key for entry in matched]
        if refetch:
            for key in keys:
                self._refetch(key)
        return len(keys)

    def _refetch(self, key: QueryKey) -> None:
        if self._default_query_fn is None:
            return
        try:
            self.fetch_query(key)
        except Exception as exc:
            logger.warning("Refetch after invalidation failed for %s: %s", key, exc)

    def remove_queries(
        self, query_key: str | Sequence[Any] | None = None, *, exact: bool = False
    ) -> int:
        with self._lock:
            matched = self._matching(query_key, exact)
            for entry in matched:
                self._entries.pop(_freeze(entry.query_key), None)
            return len(matched)

    def clear(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            self._entries.clear()

    def garbage_collect(self) -> int:
        with self._lock:
            return self._collect_garbage(time_module.monotonic())

    def keys(self) -> list[QueryKey]:
        with self._lock:
            return [entry.query_key for entry in self._entries.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _store(self, key: QueryKey, frozen: Hashable, data: Any) -> None:
        with self._lock:
            self._entries[frozen] = self._new_entry(key, data)

    @staticmethod
    def _new_entry(key: QueryKey, data: Any) -> QueryCacheEntry:
        now = time_module.monotonic()
        return QueryCacheEntry(
            query_key=key,
            data=data,
            updated_at=now,
            last_accessed_at=now,
        )

    def _matching(
        self, query_key: str | Sequence[Any] | None, exact: bool
    ) -> list[QueryCacheEntry]:
        if query_key is None:
            return list(self._entries.values())
        prefix = _freeze(normalize_query_key(query_key))
        if exact:
            entry = self._entries.get(prefix)
            return [entry] if entry is not None else []
        size = len(prefix)
        return [
            entry
            for frozen, entry in self._entries.items()
            if isinstance(frozen, tuple) and frozen[:size] == prefix
        ]

    def _collect_garbage(self, now: float) -> int:
        expired = [
            frozen
            for frozen, entry in self._entries.items()
            if now - entry.last_accessed_at >= self.gc_time_s
        ]
        for frozen in expired:
            self._entries.pop(frozen, None)
        return len(expired)
