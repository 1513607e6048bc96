"""
Hover prefetch for navigable links.

Hovering a link arms a short debounce; when it fires, the target route's
load starts under its own cancellation token. Leaving the link aborts that
load, except right after a click, when the navigation is about to join it.
"""
import asyncio
import logging
from typing import Any, Optional

from config.settings import settings

from ..cache.cancellation import CancellationToken
from ..cache.errors import is_cancellation
from .router import resolve_url
from .sequencer import NavigationLoadSequencer

logger = logging.getLogger("navigation.prefetch")


class LinkPrefetcher:
    """
    Interaction state for one link.

    Usage:
        link = LinkPrefetcher(sequencer, "/pokemon/25")
        link.pointer_enter()   # debounce, then prefetch
        link.click()           # navigate; the navigation joins the prefetch
        link.pointer_leave()   # prefetch kept alive by the click
        link.close()
    """

    def __init__(
        self,
        sequencer: NavigationLoadSequencer,
        href: str,
        prefetch_delay: Optional[float] = None,
        prefetch_on_hover: bool = True,
    ):
        """
        Initialize the link.

        Args:
            sequencer: Navigation sequencer handling clicks and loads
            href: Link target
            prefetch_delay: Hover debounce in seconds (settings default)
            prefetch_on_hover: Disable to make hovering a no-op
        """
        self._sequencer = sequencer
        self.href = href
        self.prefetch_delay = settings.prefetch_delay if prefetch_delay is None else prefetch_delay
        self.prefetch_on_hover = prefetch_on_hover

        self._timer: Optional[asyncio.TimerHandle] = None
        self._prefetch_token: Optional[CancellationToken] = None
        self._prefetch_task: Optional["asyncio.Task[Any]"] = None
        self._preserve_prefetch = False

    @property
    def is_active(self) -> bool:
        """Whether the current location is this link's target or below it."""
        target = resolve_url(self.href).path
        current = self._sequencer.path
        return current == target or (target != "/" and current.startswith(target))

    @property
    def prefetch_task(self) -> Optional["asyncio.Task[Any]"]:
        return self._prefetch_task

    @property
    def is_prefetching(self) -> bool:
        return self._prefetch_token is not None and not self._prefetch_token.is_cancelled

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _abort_prefetch(self) -> None:
        if self._prefetch_token is not None:
            self._prefetch_token.cancel("prefetch abandoned")
            self._prefetch_token = None

    def pointer_enter(self) -> None:
        if not self.prefetch_on_hover:
            return

        self._clear_timer()
        self._abort_prefetch()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.prefetch_delay, self._prefetch)

    def _prefetch(self) -> None:
        self._timer = None
        token = CancellationToken()
        self._prefetch_token = token

        task = self._sequencer.prefetch(self.href, token)
        self._prefetch_task = task
        if task is not None:
            logger.debug(f"Prefetching {self.href}")
            task.add_done_callback(self._on_prefetch_done)

    def _on_prefetch_done(self, task: "asyncio.Task[Any]") -> None:
        if task.cancelled():
            return

        err = task.exception()
        if err is not None and not is_cancellation(err):
            logger.error(f"Prefetch failed for {self.href}: {err}")

    def pointer_leave(self) -> None:
        self._clear_timer()
        if self._preserve_prefetch:
            return
        self._abort_prefetch()

    def click(
        self,
        button: int = 0,
        meta: bool = False,
        ctrl: bool = False,
        shift: bool = False,
        alt: bool = False,
    ) -> Optional["asyncio.Task[Any]"]:
        """
        Primary, unmodified click: navigate to the link target.

        The debounce timer is cancelled but an in-flight prefetch is kept,
        and stays protected from ``pointer_leave`` until the next loop
        iteration.

        Returns:
            The navigation's load task, or None
        """
        if button != 0 or meta or ctrl or shift or alt:
            return None

        self._clear_timer()
        self._preserve_prefetch = True
        asyncio.get_running_loop().call_soon(self._release_preserve)
        return self._sequencer.navigate(self.href)

    def _release_preserve(self) -> None:
        self._preserve_prefetch = False

    def close(self) -> None:
        """Unmount: clear the timer and abort unless a click preserved it."""
        self._clear_timer()
        if not self._preserve_prefetch:
            self._abort_prefetch()
