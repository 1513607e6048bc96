"""
Cache store: entries, pending operations, generations and versions for
every key, plus the timers and listeners bound to them.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional, Set, Union

from pydantic import ValidationError

from ..schemas import HydrationEntry
from .coalescer import RequestCoordinator
from .core import CacheEntry, PendingOperation
from .listeners import KeyListeners, Listener
from .timers import EntryTimers

logger = logging.getLogger("cache.store")

KeyOrPredicate = Union[str, Callable[[str], bool]]


class CacheStore:
    """
    Owns the key -> entry, key -> pending, key -> generation and
    key -> version maps.

    One instance per client session or per server request; instances share
    nothing. All methods are meant to be called from a single event loop.
    """

    def __init__(
        self,
        initial_data: Optional[Mapping[str, Any]] = None,
        clock: Callable[[], float] = time.time,
        coordinator_factory: Callable[["CacheStore"], RequestCoordinator] = RequestCoordinator,
    ):
        """
        Initialize the store.

        Args:
            initial_data: Hydration snapshot produced by ``snapshot()``
            clock: Wall-clock source, seconds since the epoch
            coordinator_factory: Builds the request coordinator for this store
        """
        self._clock = clock
        self._data: Dict[str, CacheEntry] = {}
        self._pending: Dict[str, PendingOperation] = {}
        self._generations: Dict[str, int] = {}
        self._versions: Dict[str, int] = {}
        self._deferred: Set[str] = set()
        self._listeners = KeyListeners()
        self._timers = EntryTimers(
            get_current_entry=self._data.get,
            on_stale=self._notify,
            on_expire=self._expire_entry,
            clock=clock,
        )
        self._hydrated = False
        self.coordinator = coordinator_factory(self)

        if initial_data:
            self.restore(initial_data)

    def now(self) -> float:
        return self._clock()

    # =========================================================================
    # Subscriptions and versions
    # =========================================================================

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Register a change listener for ``key``; returns the teardown."""
        return self._listeners.subscribe(key, listener)

    def version(self, key: str) -> int:
        """Monotonic counter bumped on every observable change to ``key``."""
        return self._versions.get(key, 0)

    def _broadcast(self, key: str) -> None:
        self._versions[key] = self.version(key) + 1
        self._listeners.notify(key)

    def _notify(self, key: str) -> None:
        # Changes found by earlier reads are reported before this one
        self.flush_notifications()
        self._broadcast(key)

    def _notify_later(self, key: str) -> None:
        self._deferred.add(key)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Delivered by the next mutation or flush_notifications()
            return
        loop.call_soon(self.flush_notifications)

    def flush_notifications(self) -> None:
        """
        Deliver notifications deferred by reads that found expired entries.

        Runs on the next loop iteration when a loop is running; sync callers
        get them with their next mutation or by calling this directly.
        """
        while self._deferred:
            self._broadcast(self._deferred.pop())

    # =========================================================================
    # Reads
    # =========================================================================

    def entry(self, key: str) -> Optional[CacheEntry]:
        """
        Current entry for ``key``, or None.

        An entry found past its expiry is dropped here. The notification for
        that drop is deferred (see ``flush_notifications``); listeners never
        run inside a read.
        """
        entry = self._data.get(key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._data[key]
            self._timers.clear(key)
            logger.debug(f"CACHE EXPIRED on read: {key}")
            self._notify_later(key)
            return None

        return entry

    def read(self, key: str, default: Any = None) -> Any:
        entry = self.entry(key)
        if entry is None:
            return default
        return entry.value

    def __contains__(self, key: str) -> bool:
        return self.entry(key) is not None

    def is_stale(self, key: str) -> bool:
        entry = self.entry(key)
        if entry is None:
            return True
        return not entry.is_fresh(self._clock())

    def is_pending(self, key: str) -> bool:
        return key in self._pending

    # =========================================================================
    # Writes
    # =========================================================================

    def _set_entry(self, key: str, value: Any, stale_time: float, gc_time: float) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            value=value,
            stale_at=now + stale_time,
            expires_at=now + max(gc_time, stale_time),
        )
        self._data[key] = entry
        self._timers.schedule(key, entry)
        return entry

    def write(self, key: str, value: Any, stale_time: float, gc_time: float) -> CacheEntry:
        """Replace the entry for ``key`` and notify its listeners."""
        entry = self._set_entry(key, value, stale_time, gc_time)
        self._notify(key)
        return entry

    def _expire_entry(self, key: str) -> None:
        self._data.pop(key, None)
        self._notify(key)

    def invalidate(self, key_or_predicate: KeyOrPredicate) -> int:
        """
        Drop data and pending work for matching keys.

        Bumps each key's generation, so an in-flight fetch that settles
        afterwards is discarded instead of written.

        Args:
            key_or_predicate: Exact key, or a predicate tested against every
                key that has data or pending work

        Returns:
            Number of keys invalidated
        """
        if callable(key_or_predicate):
            candidates = list(dict.fromkeys([*self._data, *self._pending]))
            keys = [key for key in candidates if key_or_predicate(key)]
        else:
            keys = [key_or_predicate]

        for key in keys:
            self._generations[key] = self.generation(key) + 1
            self._data.pop(key, None)
            self._pending.pop(key, None)
            self._timers.clear(key)
            self._notify(key)

        if keys:
            logger.info(f"Invalidated {len(keys)} cache key(s)")
        return len(keys)

    def clear(self) -> int:
        """Invalidate every key with data or pending work."""
        return self.invalidate(lambda key: True)

    # =========================================================================
    # Pending operations and commits (used by the request coordinator)
    # =========================================================================

    def generation(self, key: str) -> int:
        return self._generations.get(key, 0)

    def pending_operation(self, key: str) -> Optional[PendingOperation]:
        return self._pending.get(key)

    def track_pending(self, key: str, operation: PendingOperation) -> None:
        """Make ``operation`` the handle new callers for ``key`` will see."""
        self._pending[key] = operation
        self._notify(key)

    def drop_pending(self, key: str) -> None:
        """Forget a pending handle without notifying (its token already fired)."""
        self._pending.pop(key, None)

    def _release_if_current(self, key: str, operation: PendingOperation) -> bool:
        if self._pending.get(key) is operation:
            del self._pending[key]
            return True
        return False

    def release_pending(self, key: str, operation: PendingOperation) -> None:
        """Settle a failed or cancelled operation."""
        if self._release_if_current(key, operation):
            self._notify(key)

    def commit(
        self,
        key: str,
        value: Any,
        generation: int,
        stale_time: float,
        gc_time: float,
        operation: PendingOperation,
    ) -> bool:
        """
        Settle a successful operation.

        The value is written only when ``generation`` still matches the key's
        current generation. A single notification covers both the write and
        the pending slot being released.

        Returns:
            True if the value was written
        """
        written = generation == self.generation(key)
        if written:
            self._set_entry(key, value, stale_time, gc_time)

        released = self._release_if_current(key, operation)
        if written or released:
            self._notify(key)
        return written

    # =========================================================================
    # Fetch
    # =========================================================================

    async def fetch(self, key: str, producer: Callable[[], Any], **options: Any) -> Any:
        """
        Stale-while-revalidate fetch through this store's coordinator.

        See ``RequestCoordinator.fetch`` for the options.
        """
        return await self.coordinator.fetch(key, producer, **options)

    # =========================================================================
    # Hydration handoff
    # =========================================================================

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """
        Serialize every non-expired entry.

        Returns:
            ``{key: {"value": ..., "staleAt": ..., "expiresAt": ...}}``
        """
        now = self._clock()
        return {
            key: HydrationEntry(
                value=entry.value,
                stale_at=entry.stale_at,
                expires_at=entry.expires_at,
            ).model_dump(by_alias=True)
            for key, entry in self._data.items()
            if not entry.is_expired(now)
        }

    def restore(self, snapshot: Mapping[str, Any]) -> int:
        """
        Ingest a snapshot taken by another store.

        Entries already past their expiry are skipped. A store accepts one
        hydration only.

        Returns:
            Number of entries restored

        Raises:
            RuntimeError: the store was already hydrated
            ValueError: a snapshot entry is malformed
        """
        if self._hydrated:
            raise RuntimeError("Cache store has already been hydrated")
        self._hydrated = True

        now = self._clock()
        restored = 0
        for key, raw in snapshot.items():
            try:
                item = HydrationEntry.model_validate(raw)
            except ValidationError as e:
                raise ValueError(f"Invalid hydration entry for {key}: {e}") from e

            if now > item.expires_at:
                logger.debug(f"Skipping expired hydration entry: {key}")
                continue

            entry = CacheEntry(
                value=item.value,
                stale_at=min(item.resolved_stale_at, item.expires_at),
                expires_at=item.expires_at,
            )
            self._data[key] = entry
            self._timers.schedule(key, entry)
            self._notify(key)
            restored += 1

        logger.info(f"Hydrated {restored} cache entries")
        return restored

    def close(self) -> None:
        """
        Tear down every armed timer.

        Data stays readable (expiry is still enforced on read); use this when
        a store's owner goes away, e.g. at the end of a server request.
        """
        self._timers.clear_all()

    # =========================================================================
    # Stats
    # =========================================================================

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "entries": len(self._data),
            "pending": len(self._pending),
            "subscribed_keys": self._listeners.active_keys,
            "coordinator": self.coordinator.get_stats(),
        }
