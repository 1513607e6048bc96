"""
Client-side data cache with stale-while-revalidate, request coalescing,
retry and generation-based invalidation.
"""
from .core import CacheEntry, DedupeMode, FetchOptions, PendingOperation, RetryPolicy, normalize_fetch_options
from .cancellation import CancellationToken, cancellable_sleep
from .errors import (
    CacheError,
    CancellationError,
    PermanentError,
    TransientError,
    is_cancellation,
    is_transient_error,
)
from .listeners import KeyListeners
from .timers import EntryTimers
from .ttl_policies import TTL_CONFIG, DataCategory, get_ttl_for_category, route_fetch_options
from .retry import run_with_retry
from .coalescer import RequestCoordinator
from .store import CacheStore

__all__ = [
    # Core types
    "CacheEntry",
    "DedupeMode",
    "FetchOptions",
    "PendingOperation",
    "RetryPolicy",
    "normalize_fetch_options",
    # Cancellation
    "CancellationToken",
    "cancellable_sleep",
    # Errors
    "CacheError",
    "CancellationError",
    "PermanentError",
    "TransientError",
    "is_cancellation",
    "is_transient_error",
    # Building blocks
    "KeyListeners",
    "EntryTimers",
    # TTL policies
    "TTL_CONFIG",
    "DataCategory",
    "get_ttl_for_category",
    "route_fetch_options",
    # Retry
    "run_with_retry",
    # Coordination
    "RequestCoordinator",
    "CacheStore",
]
