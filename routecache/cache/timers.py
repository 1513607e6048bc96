"""
Stale and garbage-collect timers for cache entries.
"""
import asyncio
import logging
from typing import Callable, Dict, Optional

from .core import CacheEntry

logger = logging.getLogger("cache.timers")


class EntryTimers:
    """
    Two named timers per key, tied to one specific entry.

    - stale timer: fires at ``entry.stale_at``; data is kept, only a
      notification goes out
    - gc timer: fires at ``entry.expires_at``; the entry is dropped

    Callbacks compare the timestamps they were scheduled with against the
    store's current entry, so a timer orphaned by a newer write is a no-op.
    """

    def __init__(
        self,
        get_current_entry: Callable[[str], Optional[CacheEntry]],
        on_stale: Callable[[str], None],
        on_expire: Callable[[str], None],
        clock: Callable[[], float],
    ):
        self._get_current_entry = get_current_entry
        self._on_stale = on_stale
        self._on_expire = on_expire
        self._clock = clock
        self._stale_timers: Dict[str, asyncio.TimerHandle] = {}
        self._gc_timers: Dict[str, asyncio.TimerHandle] = {}

    def schedule(self, key: str, entry: CacheEntry) -> None:
        """Cancel both timers for ``key`` and arm them against ``entry``."""
        self.clear(key)

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Without a loop, expiry is still enforced lazily on read
            logger.debug(f"No running loop, timers not armed for {key}")
            return

        now = self._clock()
        stale_delay = entry.stale_at - now
        gc_delay = entry.expires_at - now

        if stale_delay > 0:
            self._stale_timers[key] = loop.call_later(
                stale_delay, self._fire_stale, key, entry.stale_at
            )

        if gc_delay > 0:
            self._gc_timers[key] = loop.call_later(
                gc_delay, self._fire_gc, key, entry.expires_at
            )

    def clear(self, key: str) -> None:
        self._clear_stale_timer(key)
        self._clear_gc_timer(key)

    def clear_all(self) -> None:
        for key in list({*self._stale_timers, *self._gc_timers}):
            self.clear(key)

    def has_timers(self, key: str) -> bool:
        return key in self._stale_timers or key in self._gc_timers

    def _fire_stale(self, key: str, stale_at: float) -> None:
        current = self._get_current_entry(key)
        if current is None or current.stale_at != stale_at:
            return

        self._stale_timers.pop(key, None)
        logger.debug(f"Entry went stale: {key}")
        self._on_stale(key)

    def _fire_gc(self, key: str, expires_at: float) -> None:
        current = self._get_current_entry(key)
        if current is None or current.expires_at != expires_at:
            return

        self.clear(key)
        logger.debug(f"Entry expired: {key}")
        self._on_expire(key)

    def _clear_stale_timer(self, key: str) -> None:
        handle = self._stale_timers.pop(key, None)
        if handle is not None:
            handle.cancel()

    def _clear_gc_timer(self, key: str) -> None:
        handle = self._gc_timers.pop(key, None)
        if handle is not None:
            handle.cancel()
