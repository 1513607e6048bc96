"""
Core cache data structures.
"""
import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from config.settings import settings

from .cancellation import CancellationToken


class DedupeMode(str, Enum):
    """How concurrent fetches for one key share an in-flight operation."""
    BY_KEY = "byKey"              # always join the pending operation
    SIGNAL_AWARE = "signalAware"  # join only within the same cancellation scope


@dataclass(frozen=True)
class CacheEntry:
    """
    A cached value with its staleness and expiry instants.

    Entries are replaced on every write, never mutated.
    """
    value: Any
    stale_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        """Within the staleness window."""
        return now <= self.stale_at

    def is_expired(self, now: float) -> bool:
        """Past the garbage-collect instant; must not be served."""
        return now > self.expires_at


@dataclass
class PendingOperation:
    """An in-flight fetch for one key, tracked until it settles."""
    token: Optional[CancellationToken] = None
    task: Optional["asyncio.Task[Any]"] = None


@dataclass(frozen=True)
class RetryPolicy:
    """Extra attempts on transient failures, with linear backoff."""
    count: int
    base_delay: float


@dataclass(frozen=True)
class FetchOptions:
    """Normalized options for one ``fetch`` call."""
    stale_time: float
    gc_time: float
    token: Optional[CancellationToken] = None
    dedupe_mode: DedupeMode = DedupeMode.SIGNAL_AWARE
    retry: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(
            count=settings.default_retry_count,
            base_delay=settings.default_retry_delay,
        )
    )


def normalize_fetch_options(
    stale_time: Optional[float] = None,
    gc_time: Optional[float] = None,
    token: Optional[CancellationToken] = None,
    dedupe_mode: Optional[Any] = None,
    retry: Optional[int] = None,
    retry_delay: Optional[float] = None,
) -> FetchOptions:
    """
    Fill in defaults and clamp values.

    - stale_time falls back to ``settings.default_stale_time``
    - gc_time falls back to a multiple of stale_time and is never shorter
      than it, so no entry is collected before it goes stale
    - retry counts and delays are clamped to zero

    Raises:
        ValueError: unknown dedupe mode
    """
    if stale_time is None:
        stale_time = settings.default_stale_time
    stale_time = max(stale_time, 0.0)

    if gc_time is None:
        gc_time = stale_time * settings.default_gc_multiplier

    if retry is None:
        retry = settings.default_retry_count
    if retry_delay is None:
        retry_delay = settings.default_retry_delay

    return FetchOptions(
        stale_time=stale_time,
        gc_time=max(gc_time, stale_time),
        token=token,
        dedupe_mode=DedupeMode(dedupe_mode or settings.default_dedupe_mode),
        retry=RetryPolicy(count=max(retry, 0), base_delay=max(retry_delay, 0.0)),
    )


def should_reuse_pending(pending: PendingOperation, options: FetchOptions) -> bool:
    """
    Decide whether a caller joins ``pending`` or starts its own operation.

    ``byKey`` always joins. ``signalAware`` starts a separate operation when
    both sides carry different tokens, so independent cancellation scopes
    never cancel each other's work.
    """
    if options.dedupe_mode is DedupeMode.BY_KEY:
        return True

    if options.token is None or pending.token is None:
        return True

    return options.token is pending.token
