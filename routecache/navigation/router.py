"""
Route table collaborator.

Maps a pathname to a handler, its path parameters and an optional load
function. The sequencer only ever sees the ``match_route`` callback, so any
other matcher with the same shape can replace ``Router.match``.
"""
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import SplitResult, parse_qsl, urljoin, urlsplit

from ..cache.cancellation import CancellationToken

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from ..cache.store import CacheStore

# Base used to resolve relative paths outside a browser
SSR_BASE_URL = "http://localhost"

Params = Dict[str, str]
Search = Dict[str, Any]
LoadFunction = Callable[
    ["CacheStore", Params, Search, SplitResult, Optional[CancellationToken]],
    Awaitable[Any],
]
CacheKeyFunction = Callable[[Params, Search, SplitResult], str]


@dataclass
class RouteConfig:
    """A route pattern such as ``/pokemon/:id`` and what it needs."""
    path: str
    handler: Any
    load: Optional[LoadFunction] = None
    cache_key: Optional[CacheKeyFunction] = None
    validate_search: Optional[Callable[[Dict[str, str]], Search]] = None


@dataclass
class RouteMatch:
    """A resolved route plus the parameters captured from the path."""
    route: RouteConfig
    params: Params = field(default_factory=dict)


MatchRoute = Callable[[str], Optional[RouteMatch]]


def resolve_url(path_or_url: Optional[str] = None, base: str = SSR_BASE_URL) -> SplitResult:
    """Absolute URL for a path, relative to ``base``."""
    return urlsplit(urljoin(base, path_or_url or "/"))


def search_params(url: SplitResult) -> Dict[str, str]:
    """Query string as a dict; the last value wins for repeated names."""
    return dict(parse_qsl(url.query))


def validate_route_search(route: Optional[RouteConfig], url: SplitResult) -> Search:
    raw = search_params(url)
    if route is None or route.validate_search is None:
        return raw
    return route.validate_search(raw)


def match_path(route_path: str, current_path: str) -> Optional[Params]:
    """
    Match ``/pokemon/:id`` style patterns segment by segment.

    Returns:
        Captured parameters, or None if the path does not match
    """
    route_parts = [part for part in route_path.split("/") if part]
    current_parts = [part for part in current_path.split("/") if part]

    if len(route_parts) != len(current_parts):
        return None

    params: Params = {}
    for route_part, current_part in zip(route_parts, current_parts):
        if route_part.startswith(":"):
            params[route_part[1:]] = current_part
        elif route_part != current_part:
            return None

    return params


class Router:
    """Ordered route table; the first matching route wins."""

    def __init__(self, routes: Optional[List[RouteConfig]] = None):
        self.routes: List[RouteConfig] = list(routes or [])

    def add(
        self,
        path: str,
        handler: Any,
        load: Optional[LoadFunction] = None,
        cache_key: Optional[CacheKeyFunction] = None,
        validate_search: Optional[Callable[[Dict[str, str]], Search]] = None,
    ) -> RouteConfig:
        route = RouteConfig(
            path=path,
            handler=handler,
            load=load,
            cache_key=cache_key,
            validate_search=validate_search,
        )
        self.routes.append(route)
        return route

    def match(self, pathname: str) -> Optional[RouteMatch]:
        for route in self.routes:
            if route.path == pathname:
                return RouteMatch(route=route)

            params = match_path(route.path, pathname)
            if params is not None:
                return RouteMatch(route=route, params=params)

        return None


async def load_route_data(
    match: Optional[RouteMatch],
    store: "CacheStore",
    url: SplitResult,
    token: Optional[CancellationToken] = None,
) -> Any:
    """Run the matched route's load function, if it has one."""
    if match is None or match.route.load is None:
        return None

    search = validate_route_search(match.route, url)
    return await match.route.load(store, match.params, search, url, token)
