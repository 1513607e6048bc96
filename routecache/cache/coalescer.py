"""
Request coalescing and stale-while-revalidate fetches.

When several callers ask for the same key while a fetch is in flight, they
share that one operation instead of hitting the producer again (subject to
the dedupe mode). Results are committed to the store only if the key was
not invalidated in the meantime.
"""
import asyncio
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from .cancellation import cancellable_sleep
from .core import FetchOptions, PendingOperation, normalize_fetch_options, should_reuse_pending
from .errors import CancellationError, is_cancellation
from .retry import SleepFn, run_with_retry

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .store import CacheStore

logger = logging.getLogger("cache.coalescer")

Producer = Callable[[], Awaitable[Any]]


def _consume_result(task: "asyncio.Task[Any]") -> None:
    # Background revalidations may have no awaiting caller
    if not task.cancelled():
        task.exception()


class RequestCoordinator:
    """
    Decides, per fetch, whether to serve cached data, join in-flight work,
    or start a new retried operation.

    Pattern:
    - Fresh entry: value returned without suspending
    - Stale entry: value returned, revalidation started in the background
    - Missing entry: join the pending operation or start one

    Usage:
        store = CacheStore()
        value = await store.coordinator.fetch("pokemon:1", load_pokemon, stale_time=30)
    """

    def __init__(self, store: "CacheStore", sleep: SleepFn = cancellable_sleep):
        """
        Initialize the coordinator.

        Args:
            store: The store whose maps this coordinator drives
            sleep: Backoff sleep, ``sleep(delay, token=...)``
        """
        self._store = store
        self._sleep = sleep
        self._stats = {
            "hits_fresh": 0,
            "hits_stale": 0,
            "misses": 0,
            "joins": 0,
            "revalidations": 0,
            "discarded": 0,
            "restarts": 0,
        }

    async def fetch(
        self,
        key: str,
        producer: Producer,
        *,
        stale_time: Optional[float] = None,
        gc_time: Optional[float] = None,
        token: Any = None,
        dedupe_mode: Any = None,
        retry: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ) -> Any:
        """
        Get ``key`` from the store or fetch it with ``producer``.

        Args:
            key: Cache key
            producer: Zero-argument coroutine function producing the value
            stale_time: Seconds the value stays fresh
            gc_time: Seconds until the value is dropped (>= stale_time)
            token: CancellationToken scoping the operation
            dedupe_mode: "byKey" or "signalAware" (default)
            retry: Extra attempts on transient failures
            retry_delay: Base backoff delay in seconds

        Returns:
            The cached, shared or freshly produced value

        Raises:
            CancellationError: the caller's token fired
            Exception: the producer's failure, after retries for transient ones
        """
        options = normalize_fetch_options(
            stale_time=stale_time,
            gc_time=gc_time,
            token=token,
            dedupe_mode=dedupe_mode,
            retry=retry,
            retry_delay=retry_delay,
        )

        entry = self._store.entry(key)
        if entry is not None:
            if entry.is_fresh(self._store.now()):
                logger.debug(f"CACHE HIT (fresh): {key}")
                self._stats["hits_fresh"] += 1
                return entry.value

            logger.info(f"CACHE HIT (stale, revalidating): {key}")
            self._stats["hits_stale"] += 1
            self._stats["revalidations"] += 1
            self._fetch_fresh(key, producer, options)
            return entry.value

        logger.info(f"CACHE MISS: {key}")
        self._stats["misses"] += 1
        return await self._await_operation(key, producer, options)

    async def _await_operation(self, key: str, producer: Producer, options: FetchOptions) -> Any:
        """
        Await the operation serving this caller.

        A joined operation cancelled by its owner's token is replaced by a
        new one, so only the caller's own token can cancel its fetch.
        """
        while True:
            operation = self._fetch_fresh(key, producer, options)
            try:
                # Shield: one caller's task cancellation must not kill shared work
                return await asyncio.shield(operation.task)
            except CancellationError:
                owner = operation.token
                if owner is None or owner is options.token or not owner.is_cancelled:
                    raise
                self._stats["restarts"] += 1
                logger.debug(f"Joined fetch for {key} was cancelled by its owner, restarting")

    def _fetch_fresh(
        self,
        key: str,
        producer: Producer,
        options: FetchOptions,
    ) -> PendingOperation:
        """Join a reusable pending operation or register a new one."""
        pending = self._store.pending_operation(key)

        if pending is not None:
            if pending.token is not None and pending.token.is_cancelled:
                self._store.drop_pending(key)
            elif should_reuse_pending(pending, options):
                self._stats["joins"] += 1
                logger.debug(f"Coalescing request for {key}")
                return pending

        generation = self._store.generation(key)
        operation = PendingOperation(token=options.token)
        operation.task = asyncio.ensure_future(
            self._run(key, producer, options, generation, operation)
        )
        operation.task.add_done_callback(_consume_result)
        # Registered before any suspension so same-iteration callers join it
        self._store.track_pending(key, operation)
        logger.debug(f"Initiating fetch for {key} (generation={generation})")
        return operation

    async def _run(
        self,
        key: str,
        producer: Producer,
        options: FetchOptions,
        generation: int,
        operation: PendingOperation,
    ) -> Any:
        try:
            value = await run_with_retry(
                producer,
                options.retry,
                token=options.token,
                sleep=self._sleep,
            )
        except asyncio.CancelledError:
            self._store.release_pending(key, operation)
            raise
        except Exception as e:
            if is_cancellation(e):
                logger.debug(f"Fetch cancelled for {key}")
            else:
                logger.warning(f"Fetch failed for {key}: {e}")
            self._store.release_pending(key, operation)
            raise

        written = self._store.commit(
            key,
            value,
            generation,
            options.stale_time,
            options.gc_time,
            operation,
        )
        if not written:
            self._stats["discarded"] += 1
            logger.debug(f"Discarded result for invalidated key {key}")
        return value

    def get_stats(self) -> Dict[str, Any]:
        """Get coordinator statistics."""
        total_hits = self._stats["hits_fresh"] + self._stats["hits_stale"]
        total_requests = total_hits + self._stats["misses"]
        hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

        return {
            **self._stats,
            "hit_rate_percent": round(hit_rate, 1),
        }
