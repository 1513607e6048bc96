"""
Upstream JSON API client.

Producers for the cache: blocking ``requests`` calls run in a worker thread
and failures are mapped onto the cache's error taxonomy so the retry policy
can classify them.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

from config.settings import settings
from routecache.cache.errors import PermanentError, TransientError, is_retryable_status

load_dotenv()

logger = logging.getLogger("api_client")


def _get_headers() -> dict:
    """Get API authentication headers."""
    headers = {"accept": "application/json"}
    if settings.upstream_api_key:
        headers["authorization"] = f"Bearer {settings.upstream_api_key}"
    return headers


def _url(endpoint: str) -> str:
    return f"{settings.upstream_base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def get_json(endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """
    Blocking GET of a JSON endpoint.

    Args:
        endpoint: Path relative to ``settings.upstream_base_url``
        params: Query parameters

    Returns:
        Decoded JSON body

    Raises:
        TransientError: network failure, 408, 429 or 5xx
        PermanentError: any other HTTP error status
    """
    url = _url(endpoint)
    try:
        response = requests.get(
            url,
            headers=_get_headers(),
            params=params,
            timeout=settings.request_timeout,
        )
    except (requests.ConnectionError, requests.Timeout) as e:
        logger.warning(f"Upstream unreachable: {url} - {e}")
        raise TransientError(f"Upstream unreachable: {e}") from e

    if response.status_code >= 400:
        status = response.status_code
        message = f"Upstream returned {status} for {endpoint}"
        logger.warning(message)
        if is_retryable_status(status):
            raise TransientError(message, status=status)
        raise PermanentError(message, status=status)

    return response.json()


async def fetch_json(endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Async wrapper around ``get_json`` for use as a cache producer."""
    return await asyncio.to_thread(get_json, endpoint, params)
