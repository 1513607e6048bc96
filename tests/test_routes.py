"""
Route table, URL helpers and upstream client tests
"""
import pytest
import requests

from routecache import api_client
from routecache.cache import PermanentError, TransientError
from routecache.navigation import Router, match_path, resolve_url, search_params
from routecache.routes import MAX_LIST_LIMIT, build_router, validate_list_search


# ===== URL HELPERS =====

def test_resolve_url_relative_to_base():
    url = resolve_url("/pokemon/25?tab=moves")
    assert url.path == "/pokemon/25"
    assert search_params(url) == {"tab": "moves"}
    assert resolve_url(None).path == "/"


def test_match_path_captures_params():
    assert match_path("/pokemon/:id", "/pokemon/25") == {"id": "25"}
    assert match_path("/pokemon/:id", "/pokemon") is None
    assert match_path("/pokemon/:id", "/berry/25") is None


def test_first_matching_route_wins():
    router = Router()
    router.add("/pokemon/new", handler="New")
    router.add("/pokemon/:id", handler="Detail")

    assert router.match("/pokemon/new").route.handler == "New"
    match = router.match("/pokemon/4")
    assert match.route.handler == "Detail"
    assert match.params == {"id": "4"}
    assert router.match("/nowhere") is None


# ===== BUNDLED ROUTES =====

def test_list_search_limit_is_clamped():
    assert validate_list_search({"limit": "3"})["limit"] == 3
    assert validate_list_search({"limit": "0"})["limit"] == 1
    assert validate_list_search({"limit": "9999"})["limit"] == MAX_LIST_LIMIT
    assert validate_list_search({"limit": "lots"})["limit"] == 5
    assert validate_list_search({})["limit"] == 5


def test_bundled_routes_cache_keys():
    router = build_router()

    detail = router.match("/pokemon/25")
    url = resolve_url("/pokemon/25")
    assert detail.route.cache_key(detail.params, {}, url) == "pokemon:25"

    home = router.match("/")
    assert home.route.cache_key({}, {"limit": 3}, resolve_url("/?limit=3")) == "pokemon-list:3"

    assert router.match("/about").route.load is None


# ===== UPSTREAM CLIENT =====

class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


def test_get_json_returns_payload(monkeypatch):
    seen = {}

    def fake_get(url, headers=None, params=None, timeout=None):
        seen["url"] = url
        seen["params"] = params
        return FakeResponse(200, {"name": "ditto"})

    monkeypatch.setattr(api_client.requests, "get", fake_get)

    assert api_client.get_json("pokemon/132", {"x": 1}) == {"name": "ditto"}
    assert seen["url"].endswith("/pokemon/132")
    assert seen["params"] == {"x": 1}


@pytest.mark.parametrize("status,error", [
    (404, PermanentError),
    (400, PermanentError),
    (429, TransientError),
    (503, TransientError),
])
def test_get_json_maps_error_statuses(monkeypatch, status, error):
    monkeypatch.setattr(api_client.requests, "get", lambda *args, **kwargs: FakeResponse(status))

    with pytest.raises(error) as exc_info:
        api_client.get_json("pokemon/1")
    assert exc_info.value.status == status


def test_get_json_network_failure_is_transient(monkeypatch):
    def fake_get(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(api_client.requests, "get", fake_get)

    with pytest.raises(TransientError) as exc_info:
        api_client.get_json("pokemon/1")
    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_fetch_json_runs_in_thread(monkeypatch):
    monkeypatch.setattr(api_client.requests, "get", lambda *args, **kwargs: FakeResponse(200, [1, 2]))

    assert await api_client.fetch_json("pokemon") == [1, 2]
