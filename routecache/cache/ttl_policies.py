"""
TTL configuration by data category and fetch option presets.
"""
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .core import DedupeMode


class DataCategory(Enum):
    """Categories of data with different caching behaviors."""
    VOLATILE = "volatile"    # seconds; changes under the user's feet
    STANDARD = "standard"    # default list/detail payloads
    STABLE = "stable"        # reference data, hours


# TTL Configuration by category (in seconds)
TTL_CONFIG: Dict[DataCategory, Dict[str, float]] = {
    DataCategory.VOLATILE: {
        "stale_time": 5,          # 5 seconds
        "gc_time": 30,            # dropped after 30s
    },
    DataCategory.STANDARD: {
        "stale_time": 10,         # 10 seconds
        "gc_time": 60,            # 6x the stale window
    },
    DataCategory.STABLE: {
        "stale_time": 3600,       # 1 hour
        "gc_time": 86400,         # 24 hours
    },
}


def get_ttl_for_category(category: DataCategory) -> Tuple[float, float]:
    """
    Get TTL configuration for a data category.

    Args:
        category: The data category

    Returns:
        (stale_time, gc_time)
    """
    config = TTL_CONFIG.get(category, TTL_CONFIG[DataCategory.STANDARD])
    return config["stale_time"], config["gc_time"]


def route_fetch_options(
    category: Optional[DataCategory] = None,
    **options: Any,
) -> Dict[str, Any]:
    """
    Fetch options for route loads and hover prefetches.

    Dedupes by key so a navigation joins the prefetch already in flight for
    the same key even though the two carry different tokens. For truly
    independent scopes pass ``dedupe_mode="signalAware"``.

    Args:
        category: Optional category supplying stale/gc windows
        **options: Any ``fetch`` option; explicit values win

    Returns:
        Keyword arguments for ``CacheStore.fetch``
    """
    resolved: Dict[str, Any] = {}
    if category is not None:
        resolved["stale_time"], resolved["gc_time"] = get_ttl_for_category(category)

    resolved.update(options)
    if resolved.get("dedupe_mode") is None:
        resolved["dedupe_mode"] = DedupeMode.BY_KEY
    return resolved
