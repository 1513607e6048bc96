"""
Cooperative cancellation tokens.

A token is shared by every suspension point of one logical operation
(producer call, retry backoff). Triggering it makes the next of those
suspension points fail with CancellationError.
"""
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, List, Optional

from .errors import CancellationError

logger = logging.getLogger("cache.cancellation")


def _discard(awaitable: Awaitable[Any]) -> None:
    """Close a coroutine that will never be awaited."""
    if inspect.iscoroutine(awaitable):
        awaitable.close()


class CancellationToken:
    """
    One cancellation scope.

    Usage:
        token = CancellationToken()
        value = await token.guard(producer())
        ...
        token.cancel()   # from anywhere on the loop
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []
        self.reason: Optional[str] = None

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<CancellationToken {state} at {id(self):#x}>"

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: Optional[str] = None) -> None:
        """Trigger the token. Subsequent calls are no-ops."""
        if self._cancelled:
            return

        self._cancelled = True
        self.reason = reason
        callbacks, self._callbacks = self._callbacks, []

        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def on_cancelled(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback run once when the token is cancelled.

        Runs immediately if the token is already cancelled.

        Returns:
            A function removing the callback; safe to call repeatedly.
        """
        if self._cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise CancellationError(self.reason or "The operation was cancelled.")

    async def guard(self, awaitable: Awaitable[Any]) -> Any:
        """
        Await ``awaitable`` unless the token fires first.

        A result that is already available wins over a cancellation that
        arrives in the same loop iteration.

        Raises:
            CancellationError: the token was cancelled before completion
        """
        if self._cancelled:
            _discard(awaitable)
            self.raise_if_cancelled()

        task = asyncio.ensure_future(awaitable)
        fired = asyncio.get_running_loop().create_future()

        def on_cancel() -> None:
            if not fired.done():
                fired.set_result(None)

        remove = self.on_cancelled(on_cancel)
        try:
            await asyncio.wait({task, fired}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            remove()
            fired.cancel()

        if task.done():
            return task.result()

        task.cancel()
        raise CancellationError(self.reason or "The operation was cancelled.")


async def cancellable_sleep(delay: float, token: Optional[CancellationToken] = None) -> None:
    """Sleep for ``delay`` seconds; the sleep fails early if ``token`` fires."""
    if token is not None:
        token.raise_if_cancelled()

    if delay <= 0:
        return

    if token is None:
        await asyncio.sleep(delay)
        return

    await token.guard(asyncio.sleep(delay))
