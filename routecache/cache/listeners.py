"""
Per-key listener sets used to broadcast cache mutations.
"""
import logging
from typing import Callable, Dict, Set

logger = logging.getLogger("cache.listeners")

Listener = Callable[[], None]


class KeyListeners:
    """
    Fire-and-forget notification bus keyed by cache key.

    Listeners carry no payload; they are told "something changed" and
    re-read whatever they need from the store.
    """

    def __init__(self):
        self._listeners_by_key: Dict[str, Set[Listener]] = {}

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """
        Register ``listener`` for ``key``.

        Returns:
            Teardown function; calling it more than once is harmless.
        """
        self._listeners_by_key.setdefault(key, set()).add(listener)

        def unsubscribe() -> None:
            listeners = self._listeners_by_key.get(key)
            if not listeners:
                return

            listeners.discard(listener)
            if not listeners:
                del self._listeners_by_key[key]

        return unsubscribe

    def notify(self, key: str) -> None:
        listeners = self._listeners_by_key.get(key)
        if not listeners:
            return

        # Copy: listeners may unsubscribe while being notified
        for listener in list(listeners):
            try:
                listener()
            except Exception:
                logger.exception(f"Listener for {key} failed")

    def listener_count(self, key: str) -> int:
        return len(self._listeners_by_key.get(key, ()))

    @property
    def active_keys(self) -> int:
        return len(self._listeners_by_key)
