"""
Bundled route table: a list view and a detail view over the upstream API.
"""
from typing import Any, Dict, Optional
from urllib.parse import SplitResult

from config.settings import settings

from routecache import api_client
from routecache.cache import CacheStore, CancellationToken, DataCategory, route_fetch_options
from routecache.navigation import Router

MAX_LIST_LIMIT = 50


def list_cache_key(limit: int) -> str:
    return f"pokemon-list:{limit}"


def detail_cache_key(pokemon_id: str) -> str:
    return f"pokemon:{pokemon_id}"


def validate_list_search(search: Dict[str, str]) -> Dict[str, Any]:
    """Clamp ``?limit=`` to 1..MAX_LIST_LIMIT, falling back to the default."""
    try:
        limit = int(search.get("limit", settings.list_limit))
    except (TypeError, ValueError):
        limit = settings.list_limit
    return {**search, "limit": min(max(limit, 1), MAX_LIST_LIMIT)}


def _required_param(params: Dict[str, str], key: str) -> str:
    value = params.get(key)
    if not value:
        raise ValueError(f'Missing required route param "{key}".')
    return value


async def load_list(
    store: CacheStore,
    params: Dict[str, str],
    search: Dict[str, Any],
    url: SplitResult,
    token: Optional[CancellationToken] = None,
) -> Any:
    limit = search["limit"]
    return await store.fetch(
        list_cache_key(limit),
        lambda: api_client.fetch_json("pokemon", {"limit": limit}),
        **route_fetch_options(DataCategory.STANDARD, token=token),
    )


async def load_detail(
    store: CacheStore,
    params: Dict[str, str],
    search: Dict[str, Any],
    url: SplitResult,
    token: Optional[CancellationToken] = None,
) -> Any:
    pokemon_id = _required_param(params, "id")
    return await store.fetch(
        detail_cache_key(pokemon_id),
        lambda: api_client.fetch_json(f"pokemon/{pokemon_id}"),
        **route_fetch_options(DataCategory.STABLE, token=token),
    )


def build_router() -> Router:
    router = Router()
    router.add(
        "/",
        handler="PokemonList",
        load=load_list,
        cache_key=lambda params, search, url: list_cache_key(search["limit"]),
        validate_search=validate_list_search,
    )
    router.add(
        "/pokemon/:id",
        handler="PokemonDetail",
        load=load_detail,
        cache_key=lambda params, search, url: detail_cache_key(params["id"]),
    )
    router.add("/about", handler="About")
    return router
