"""
Cache-consuming view bound to one key.

Mostly a reader: it follows store notifications for its key. It also
triggers load reconciliation for the current route when the data it shows
is missing or stale, so a view never stays stuck waiting for data nobody is
loading.
"""
from typing import Any, Callable, List, Optional, Tuple

from ..cache.store import CacheStore
from .sequencer import NavigationLoadSequencer

_MISSING = object()


class DataView:
    """Reactive read of ``key`` with route reconciliation."""

    def __init__(
        self,
        store: CacheStore,
        sequencer: NavigationLoadSequencer,
        key: str,
        revalidate_on_focus: bool = False,
        revalidate_on_reconnect: bool = False,
        on_change: Optional[Callable[[], None]] = None,
    ):
        self.store = store
        self.key = key
        self.revalidate_on_focus = revalidate_on_focus
        self.revalidate_on_reconnect = revalidate_on_reconnect
        self._sequencer = sequencer
        self._on_change = on_change
        self._last_state: Optional[Tuple[Any, bool, bool]] = None

        self._unsubscribers: List[Callable[[], None]] = [
            store.subscribe(key, self._handle_change),
            sequencer.subscribe(self._handle_change),
        ]
        self._maybe_reconcile()

    @property
    def data(self) -> Any:
        return self.store.read(self.key)

    @property
    def is_loading(self) -> bool:
        """No data to show yet."""
        return self.key not in self.store

    @property
    def is_fetching(self) -> bool:
        return self.store.is_pending(self.key)

    @property
    def is_stale(self) -> bool:
        return self.key in self.store and self.store.is_stale(self.key)

    def _handle_change(self) -> None:
        if self._on_change is not None:
            self._on_change()
        self._maybe_reconcile()

    def _maybe_reconcile(self) -> None:
        # Re-run only when what the view shows changed
        data = self.store.read(self.key, _MISSING)
        state = (data, self.store.is_stale(self.key), self._sequencer.is_loading)
        if self._last_state is not None and (
            self._last_state[0] is state[0] and self._last_state[1:] == state[1:]
        ):
            return

        self._last_state = state
        self.reconcile()

    def reconcile(self) -> None:
        self._sequencer.reconcile(self.key)

    def handle_focus(self) -> None:
        """Window became visible again."""
        if self.revalidate_on_focus:
            self.reconcile()

    def handle_reconnect(self) -> None:
        """Network came back online."""
        if self.revalidate_on_reconnect:
            self.reconcile()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
