"""
Navigation load sequencer tests: superseded loads, loading state, history
and passive reconciliation.
"""
import asyncio
import logging

import pytest

from routecache.cache import CancellationToken, PermanentError
from routecache.navigation import NavigationLoadSequencer


async def settle(iterations: int = 20) -> None:
    for _ in range(iterations):
        await asyncio.sleep(0)


def make_sequencer(store, router, initial_path="/plain", **kwargs):
    return NavigationLoadSequencer(store, router.match, initial_path=initial_path, **kwargs)


# =============================================================================
# Loading state
# =============================================================================

def test_initial_loading_reflects_route_load(store, router):
    assert make_sequencer(store, router, "/a").is_loading
    assert not make_sequencer(store, router, "/plain").is_loading
    assert not make_sequencer(store, router, "/missing").is_loading


@pytest.mark.asyncio
async def test_start_loads_initial_route(store, router, producers):
    producers["a"].gate.set()
    sequencer = make_sequencer(store, router, "/a")

    await sequencer.start()

    assert store.read("a") == "A"
    assert not sequencer.is_loading
    assert sequencer.current_sequence == 1


@pytest.mark.asyncio
async def test_superseded_load_never_clears_loading(store, router, producers):
    """A then B: only B's completion ends the loading state."""
    sequencer = make_sequencer(store, router)
    states = []
    sequencer.subscribe(lambda: states.append((sequencer.path, sequencer.is_loading)))

    load_a = sequencer.navigate("/a")
    await settle()
    assert sequencer.is_loading
    assert store.is_pending("a")

    load_b = sequencer.navigate("/b")
    await load_a

    # A was cancelled and settled, B is still in flight
    assert sequencer.is_loading
    assert states[-1] == ("/b", True)
    assert not store.is_pending("a")
    assert "a" not in store

    producers["b"].gate.set()
    await load_b

    assert not sequencer.is_loading
    assert store.read("b") == "B"
    assert sequencer.current_sequence == 2
    assert states[-1] == ("/b", False)


@pytest.mark.asyncio
async def test_route_without_load_stops_loading(store, router):
    sequencer = make_sequencer(store, router)

    sequencer.navigate("/a")
    assert sequencer.is_loading

    assert sequencer.navigate("/plain") is None
    assert not sequencer.is_loading
    await settle()


@pytest.mark.asyncio
async def test_failed_load_is_logged_and_clears_loading(store, router, producers, caplog):
    producers["a"].result = PermanentError("not found", status=404)
    producers["a"].gate.set()
    sequencer = make_sequencer(store, router)

    with caplog.at_level(logging.ERROR):
        await sequencer.navigate("/a")

    assert not sequencer.is_loading
    assert "Route data load failed for /a" in caplog.text


# =============================================================================
# History
# =============================================================================

@pytest.mark.asyncio
async def test_same_location_is_a_no_op(store, router, producers):
    producers["a"].gate.set()
    sequencer = make_sequencer(store, router)
    await sequencer.navigate("/a")

    assert sequencer.navigate("/a") is None
    assert sequencer.current_sequence == 1

    # A different query string is a new location
    await sequencer.navigate("/a?tab=stats")
    assert sequencer.current_sequence == 2
    assert sequencer.search == {"tab": "stats"}


@pytest.mark.asyncio
async def test_back_and_forward(store, router, producers):
    producers["a"].gate.set()
    producers["b"].gate.set()
    sequencer = make_sequencer(store, router)
    await sequencer.navigate("/a")
    await sequencer.navigate("/b")

    sequencer.back()
    assert sequencer.path == "/a"
    sequencer.forward()
    assert sequencer.path == "/b"
    assert sequencer.forward() is None

    sequencer.back()
    sequencer.back()
    assert sequencer.path == "/plain"
    assert sequencer.back() is None

    # Navigating from the middle drops the forward entries
    sequencer.navigate("/b")
    assert sequencer.forward() is None
    await settle()


@pytest.mark.asyncio
async def test_static_mode_ignores_navigation(store, router):
    sequencer = make_sequencer(store, router, static_mode=True)

    assert sequencer.navigate("/a") is None
    assert sequencer.path == "/plain"
    assert sequencer.current_sequence == 0


def test_unknown_route_has_no_params(store, router):
    sequencer = make_sequencer(store, router, "/missing")

    assert sequencer.route is None
    assert sequencer.params == {}
    assert sequencer.route_cache_key() is None


# =============================================================================
# Prefetch
# =============================================================================

@pytest.mark.asyncio
async def test_prefetch_leaves_navigation_state_alone(store, router, producers):
    producers["b"].gate.set()
    sequencer = make_sequencer(store, router)

    await sequencer.prefetch("/b", CancellationToken())

    assert store.read("b") == "B"
    assert sequencer.path == "/plain"
    assert sequencer.current_sequence == 0
    assert not sequencer.is_loading
    assert sequencer.prefetch("/plain") is None


@pytest.mark.asyncio
async def test_navigation_joins_in_flight_prefetch(store, router, producers):
    sequencer = make_sequencer(store, router)
    prefetch = sequencer.prefetch("/b", CancellationToken())
    await settle()

    load = sequencer.navigate("/b")
    producers["b"].gate.set()
    await asyncio.gather(prefetch, load)

    assert producers["b"].calls == 1
    assert store.read("b") == "B"


# =============================================================================
# Reconciliation
# =============================================================================

@pytest.mark.asyncio
async def test_reconcile_reloads_missing_current_data(store, router, producers):
    producers["a"].gate.set()
    sequencer = make_sequencer(store, router)
    await sequencer.navigate("/a")

    assert sequencer.reconcile("a") is None  # fresh

    store.invalidate("a")
    assert sequencer.reconcile("b") is None  # not the current route's key
    task = sequencer.reconcile("a")
    assert task is not None

    await task
    assert store.read("a") == "A"
    assert producers["a"].calls == 2


@pytest.mark.asyncio
async def test_reconcile_skips_pending_key(store, router, producers):
    producers["a"].gate.set()
    sequencer = make_sequencer(store, router)
    await sequencer.navigate("/a")

    producers["a"].gate.clear()
    store.invalidate("a")
    task = sequencer.reconcile("a")
    await settle()

    assert store.is_pending("a")
    assert sequencer.reconcile("a") is None

    producers["a"].gate.set()
    await task
    assert producers["a"].calls == 2


@pytest.mark.asyncio
async def test_reconcile_waits_for_navigation_load(store, router, producers):
    sequencer = make_sequencer(store, router)
    load = sequencer.navigate("/a")

    assert sequencer.reconcile("a") is None

    producers["a"].gate.set()
    await load


@pytest.mark.asyncio
async def test_reconcile_revalidates_stale_data(store, router, producers, clock):
    producers["a"].gate.set()
    sequencer = make_sequencer(store, router)
    await sequencer.navigate("/a")
    clock.advance(11)

    # Served stale, revalidated in the background
    assert await sequencer.reconcile("a") is None
    await settle()

    assert producers["a"].calls == 2
    assert not store.is_stale("a")


@pytest.mark.asyncio
async def test_close_cancels_active_load(store, router, producers):
    sequencer = make_sequencer(store, router)
    load = sequencer.navigate("/a")
    await settle()

    sequencer.close()
    await load

    assert not store.is_pending("a")
    assert "a" not in store
