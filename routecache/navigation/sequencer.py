"""
Navigation load sequencing.

Every route change bumps a sequence number and cancels the load of the
route being left. A load that settles after a newer navigation started
never touches the visible loading state.
"""
import asyncio
import logging
from typing import Any, Callable, List, Optional, Set
from urllib.parse import SplitResult

from ..cache.cancellation import CancellationToken
from ..cache.errors import is_cancellation
from ..cache.store import CacheStore
from .router import (
    SSR_BASE_URL,
    MatchRoute,
    Params,
    RouteConfig,
    RouteMatch,
    Search,
    load_route_data,
    resolve_url,
    validate_route_search,
)

logger = logging.getLogger("navigation.sequencer")


class NavigationLoadSequencer:
    """
    Tracks the current location and runs route loads against a store.

    State:
    - current_sequence: bumped on every navigation attempt
    - active token: cancellation scope of the latest navigation load
    - is_loading: true while the latest navigation's load is in flight
    """

    def __init__(
        self,
        store: CacheStore,
        match_route: MatchRoute,
        initial_path: str = "/",
        base_url: str = SSR_BASE_URL,
        static_mode: bool = False,
    ):
        """
        Initialize the sequencer.

        Args:
            store: Cache store the route loads write into
            match_route: Route collaborator, path -> RouteMatch or None
            initial_path: Location at mount time
            base_url: Origin used to resolve relative paths
            static_mode: Ignore navigations (pre-rendered pages)
        """
        self.store = store
        self._match_route = match_route
        self._base_url = base_url
        self.static_mode = static_mode

        self._history: List[SplitResult] = [resolve_url(initial_path, base_url)]
        self._index = 0
        self._match = self._match_route(self.url.path)

        self.current_sequence = 0
        self._active_token: Optional[CancellationToken] = None
        self._is_loading = self._has_load(self._match)
        self._listeners: Set[Callable[[], None]] = set()
        self._tasks: Set["asyncio.Task[Any]"] = set()

    # =========================================================================
    # Location state
    # =========================================================================

    @property
    def url(self) -> SplitResult:
        return self._history[self._index]

    @property
    def path(self) -> str:
        return self.url.path

    @property
    def match(self) -> Optional[RouteMatch]:
        return self._match

    @property
    def route(self) -> Optional[RouteConfig]:
        return self._match.route if self._match else None

    @property
    def params(self) -> Params:
        return self._match.params if self._match else {}

    @property
    def search(self) -> Search:
        return validate_route_search(self.route, self.url)

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    def route_cache_key(self) -> Optional[str]:
        """Cache key the current route's data lives under, if it declares one."""
        route = self.route
        if route is None or route.cache_key is None:
            return None
        return route.cache_key(self.params, self.search, self.url)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Listen for location and loading-state changes."""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Navigation listener failed")

    def _set_loading(self, value: bool) -> None:
        if self._is_loading == value:
            return
        self._is_loading = value
        self._emit()

    @staticmethod
    def _has_load(match: Optional[RouteMatch]) -> bool:
        return match is not None and match.route.load is not None

    # =========================================================================
    # Route changes
    # =========================================================================

    def start(self) -> Optional["asyncio.Task[Any]"]:
        """Initial mount: load the data for the initial location."""
        return self._on_route_change()

    def navigate(self, path: str) -> Optional["asyncio.Task[Any]"]:
        """
        Push ``path`` onto the history and load its route.

        Navigating to the current path and query is a no-op.

        Returns:
            The load task, or None if nothing is loading
        """
        if self.static_mode:
            return None

        target = resolve_url(path, self._base_url)
        if target.path == self.url.path and target.query == self.url.query:
            return None

        del self._history[self._index + 1:]
        self._history.append(target)
        self._index += 1
        return self._on_route_change()

    def back(self) -> Optional["asyncio.Task[Any]"]:
        if self.static_mode or self._index == 0:
            return None
        self._index -= 1
        return self._on_route_change()

    def forward(self) -> Optional["asyncio.Task[Any]"]:
        if self.static_mode or self._index >= len(self._history) - 1:
            return None
        self._index += 1
        return self._on_route_change()

    def _on_route_change(self) -> Optional["asyncio.Task[Any]"]:
        self.current_sequence += 1
        sequence = self.current_sequence

        if self._active_token is not None:
            self._active_token.cancel("superseded by a newer navigation")
            self._active_token = None

        self._match = self._match_route(self.url.path)
        self._emit()

        if not self._has_load(self._match):
            self._set_loading(False)
            return None

        token = CancellationToken()
        self._active_token = token
        self._set_loading(True)
        logger.debug(f"Loading {self.url.path} (sequence={sequence})")

        return self._spawn(self._run_navigation_load(sequence, self._match, self.url, token))

    async def _run_navigation_load(
        self,
        sequence: int,
        match: RouteMatch,
        url: SplitResult,
        token: CancellationToken,
    ) -> None:
        try:
            await load_route_data(match, self.store, url, token)
        except Exception as e:
            if not is_cancellation(e):
                logger.error(f"Route data load failed for {url.path}: {e}")
        finally:
            if sequence == self.current_sequence and self._active_token is token:
                self._active_token = None
                self._set_loading(False)

    def _spawn(self, coro: Any) -> "asyncio.Task[Any]":
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # =========================================================================
    # Prefetch and passive reconciliation
    # =========================================================================

    def prefetch(self, href: str, token: Optional[CancellationToken] = None) -> Optional["asyncio.Task[Any]"]:
        """
        Load the route at ``href`` without navigating.

        Sequence and loading state are untouched; failures surface on the
        returned task.
        """
        url = resolve_url(href, self._base_url)
        match = self._match_route(url.path)
        if not self._has_load(match):
            return None

        return self._spawn(load_route_data(match, self.store, url, token))

    def reconcile(self, key: str) -> Optional["asyncio.Task[Any]"]:
        """
        Re-run the current route's load for ``key`` outside a navigation.

        Only fires when no navigation load is running, ``key`` is the current
        route's cache key, nothing is pending for it and its value is absent
        or stale. The load runs without a token.
        """
        if self._is_loading or not self._has_load(self._match):
            return None
        if self.route_cache_key() != key:
            return None
        if self.store.is_pending(key):
            return None
        if key in self.store and not self.store.is_stale(key):
            return None

        logger.debug(f"Reconciling {key} for {self.url.path}")
        return self._spawn(self._run_reconcile(key, self._match, self.url))

    async def _run_reconcile(self, key: str, match: RouteMatch, url: SplitResult) -> None:
        try:
            await load_route_data(match, self.store, url)
        except Exception as e:
            if not is_cancellation(e):
                logger.error(f"Route data reconciliation failed for {key} ({url.path}): {e}")

    def close(self) -> None:
        """Unmount: cancel the active navigation load."""
        if self._active_token is not None:
            self._active_token.cancel("sequencer closed")
            self._active_token = None
