"""
OkanAssist — Cache Store.

Keyed, time-bounded cache of gateway results. Every entry is read through
`get()`: a fresh entry is served without I/O, anything else is refetched.
Failures never wipe a previously good value; the caller gets the error
together with whatever data was already cached.

Mutable state is only touched through `get`, `invalidate`,
`invalidate_resource` and `clear_all`. The store owns no global state: one
instance is built by the composition root and passed to whoever needs it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Generic, Iterable, TypeVar

from pydantic import BaseModel, field_validator

from okanassist.core.cache_keys import resource_of
from okanassist.core.errors import Result
from okanassist.ports.auth_port import AuthEvent

if TYPE_CHECKING:
    from okanassist.core.session_store import SessionStore
    from okanassist.data.models import Session

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_MS = 5 * 60 * 1000

FetchFn = Callable[[], Awaitable[Result[Any]]]


class CacheConfig(BaseModel):
    """TTL policy. `by_resource` overrides `ttl_ms` per key prefix."""

    ttl_ms: int = DEFAULT_TTL_MS
    by_resource: dict[str, int] = {}

    @field_validator("ttl_ms")
    @classmethod
    def ttl_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("ttl_ms must be >= 0")
        return v

    def ttl_seconds(self, key: str) -> float:
        return self.by_resource.get(resource_of(key), self.ttl_ms) / 1000


@dataclass
class CacheEntry(Generic[T]):
    """One cached query result.

    `stale` is the explicit invalidation flag; age-based staleness is
    computed against the TTL on every read.
    """

    key: str
    data: T | None = None
    fetched_at: float | None = None
    stale: bool = True

    def is_stale(self, now: float, ttl_seconds: float) -> bool:
        if self.stale or self.fetched_at is None:
            return True
        return now - self.fetched_at > ttl_seconds


class CacheStore:
    """Read-through cache with TTL, invalidation and in-flight de-duplication."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        session_store: SessionStore | None = None,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        # Bumped by clear_all(); fetches started before a clear never commit.
        self._generation = 0
        # Bumped by invalidate(); a fetch that overlaps an invalidation
        # commits its data but stays stale.
        self._global_version = 0
        self._key_versions: dict[str, int] = {}
        self._owner_id: str | None = None
        self._unsubscribe: Callable[[], None] | None = None

        if session_store is not None:
            self._unsubscribe = session_store.subscribe(self._on_auth_event)
            current = session_store.current_session()
            self._owner_id = current.user_id if current else None

    @property
    def config(self) -> CacheConfig:
        return self._config

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(
        self, key: str, fetch_fn: FetchFn, force_refresh: bool = False,
    ) -> Result[Any]:
        """Return cached data for `key` if fresh, otherwise fetch it.

        Concurrent calls for the same key share one fetch. The returned
        Result is tagged `from_cache=True` only when no fetch happened.
        """
        if not key:
            raise ValueError("cache key must be a non-empty string")
        if not callable(fetch_fn):
            raise TypeError("fetch_fn must be callable")

        entry = self._entries.get(key)
        if (
            not force_refresh
            and entry is not None
            and not entry.is_stale(self._clock(), self._config.ttl_seconds(key))
        ):
            logger.debug("Cache hit: %s", key)
            return Result.ok(entry.data, from_cache=True)

        task = self._in_flight.get(key)
        if task is None:
            if entry is None:
                self._entries[key] = CacheEntry(key=key)
            logger.debug("Cache %s: %s", "refresh" if entry else "miss", key)
            task = asyncio.ensure_future(self._fetch(key, fetch_fn))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, k=key: self._forget(k, done))
        else:
            logger.debug("Joining in-flight fetch: %s", key)

        # A caller that goes away must not cancel the fetch other callers share.
        return await asyncio.shield(task)

    async def _fetch(self, key: str, fetch_fn: FetchFn) -> Result[Any]:
        generation = self._generation
        version = self._version(key)

        result = await fetch_fn()

        if generation != self._generation:
            logger.info("Cache cleared during fetch of %s; result not stored", key)
            if result.success:
                return Result.ok(result.data)
            return Result(success=False, error=result.error)

        entry = self._entries.get(key)
        if not result.success:
            previous = entry.data if entry is not None else None
            logger.warning(
                "Fetch failed for %s: %s",
                key,
                result.error.kind.value if result.error else "unknown",
            )
            return Result(
                success=False,
                data=previous,
                error=result.error,
                from_cache=previous is not None,
            )

        if entry is None:
            entry = self._entries[key] = CacheEntry(key=key)
        overlapped = self._version(key) != version
        if overlapped and not entry.is_stale(self._clock(), self._config.ttl_seconds(key)):
            # A newer fetch already committed post-invalidation data.
            logger.debug("Superseded fetch discarded: %s", key)
            return Result.ok(result.data, from_cache=False)
        entry.data = result.data
        entry.fetched_at = self._clock()
        entry.stale = overlapped
        if entry.stale:
            logger.debug("Invalidated during fetch, stored as stale: %s", key)
        return Result.ok(result.data, from_cache=False)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    def _version(self, key: str) -> int:
        return self._global_version + self._key_versions.get(key, 0)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def entry(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    def peek(self, key: str) -> Any | None:
        """Cached data for `key` regardless of freshness, without fetching."""
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    def is_stale(self, key: str) -> bool:
        entry = self._entries.get(key)
        if entry is None:
            return True
        return entry.is_stale(self._clock(), self._config.ttl_seconds(key))

    def keys(self) -> list[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate(self, keys: Iterable[str] | None = None) -> None:
        """Mark `keys` (or every entry) stale. Data is kept; nothing is fetched.

        Fetches already in flight for those keys are detached: they still
        finish and store their data as stale, but later reads start anew.
        """
        if keys is None:
            self._global_version += 1
            self._in_flight.clear()
            for entry in self._entries.values():
                entry.stale = True
            logger.info("Invalidated all %d cache entries", len(self._entries))
            return

        marked = 0
        for key in keys:
            self._key_versions[key] = self._key_versions.get(key, 0) + 1
            self._in_flight.pop(key, None)
            entry = self._entries.get(key)
            if entry is not None:
                entry.stale = True
                marked += 1
        logger.debug("Invalidated %d cache entries", marked)

    def invalidate_resource(self, *resources: str) -> list[str]:
        """Mark every key belonging to the given resource types stale."""
        wanted = set(resources)
        keys = [
            key
            for key in set(self._entries) | set(self._in_flight)
            if resource_of(key) in wanted
        ]
        self.invalidate(keys)
        logger.info("Invalidated %s: %d key(s)", "/".join(sorted(wanted)), len(keys))
        return keys

    def clear_all(self) -> None:
        """Drop every entry and forget in-flight fetches."""
        count = len(self._entries)
        self._entries.clear()
        self._in_flight.clear()
        self._key_versions.clear()
        self._generation += 1
        logger.info("Cache cleared (%d entries)", count)

    # ------------------------------------------------------------------
    # Session wiring
    # ------------------------------------------------------------------

    def _on_auth_event(self, event: AuthEvent, session: Session | None) -> None:
        if event is AuthEvent.SIGNED_OUT:
            self.clear_all()
            self._owner_id = None
        elif event is AuthEvent.SIGNED_IN:
            user_id = session.user_id if session else None
            if self._owner_id is not None and user_id != self._owner_id:
                # Account switch without an explicit sign-out.
                self.clear_all()
            self._owner_id = user_id

    def detach(self) -> None:
        """Stop listening to the session store."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
