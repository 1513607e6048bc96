"""
Navigation: route loads, hover prefetch and cache-consuming views.
"""
from .router import (
    SSR_BASE_URL,
    RouteConfig,
    RouteMatch,
    Router,
    load_route_data,
    match_path,
    resolve_url,
    search_params,
)
from .sequencer import NavigationLoadSequencer
from .prefetch import LinkPrefetcher
from .data_view import DataView

__all__ = [
    # Routing collaborator
    "SSR_BASE_URL",
    "RouteConfig",
    "RouteMatch",
    "Router",
    "load_route_data",
    "match_path",
    "resolve_url",
    "search_params",
    # Sequencing
    "NavigationLoadSequencer",
    "LinkPrefetcher",
    "DataView",
]
