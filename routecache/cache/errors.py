"""
Error taxonomy for cache fetches and the transient-failure classifier.
"""
import asyncio
from typing import Optional

import requests

# Status codes worth another attempt besides the 5xx range
RETRYABLE_STATUSES = (408, 429)


class CacheError(Exception):
    """Base class for failures raised by producers and the coordinator."""

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class CancellationError(CacheError):
    """The operation's cancellation token was triggered."""

    def __init__(self, message: str = "The operation was cancelled.", status: Optional[int] = None):
        super().__init__(message, status)


class TransientError(CacheError):
    """Network trouble or a retryable status (408, 429, 5xx)."""
    pass


class PermanentError(CacheError):
    """Any other failure; surfaced to the caller without retrying."""
    pass


def is_cancellation(err: BaseException) -> bool:
    """True for token cancellations and asyncio task cancellation."""
    return isinstance(err, (CancellationError, asyncio.CancelledError))


def get_error_status(err: BaseException) -> Optional[int]:
    """Numeric ``status`` attribute of an error, if it carries one."""
    status = getattr(err, "status", None)
    if isinstance(status, bool) or not isinstance(status, int):
        return None
    return status


def is_retryable_status(status: Optional[int]) -> bool:
    if status is None:
        return False
    return status in RETRYABLE_STATUSES or status >= 500


def is_transient_error(err: BaseException) -> bool:
    """
    Classify a producer failure as transient.

    Cancellation is never transient. Network-level failures always are,
    otherwise the decision falls to the error's status code.
    """
    if is_cancellation(err):
        return False

    if isinstance(err, TransientError) and err.status is None:
        return True

    if isinstance(err, (ConnectionError, TimeoutError, requests.ConnectionError, requests.Timeout)):
        return True

    return is_retryable_status(get_error_status(err))
