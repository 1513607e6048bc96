"""
Shared fixtures: a controllable clock, stores bound to it and a small
route table with gated producers.
"""
import asyncio

import pytest

from routecache.cache import CacheStore, RequestCoordinator, route_fetch_options
from routecache.navigation import Router


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Backoff sleep that records delays instead of waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay, token=None):
        if token is not None:
            token.raise_if_cancelled()
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return CacheStore(clock=clock)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def recording_store(clock, sleep_recorder):
    """Store whose retry backoff never actually sleeps."""
    return CacheStore(
        clock=clock,
        coordinator_factory=lambda s: RequestCoordinator(s, sleep=sleep_recorder),
    )


# =============================================================================
# Navigation fixtures
# =============================================================================

class GatedProducer:
    """Producer that blocks until its gate opens, then returns or raises."""

    def __init__(self, result, open_gate: bool = True):
        self.result = result
        self.calls = 0
        self.gate = asyncio.Event()
        if open_gate:
            self.gate.set()

    async def __call__(self):
        self.calls += 1
        await self.gate.wait()
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


@pytest.fixture
def producers():
    """Producers for the "/a" and "/b" routes, gates closed."""
    return {
        "a": GatedProducer("A", open_gate=False),
        "b": GatedProducer("B", open_gate=False),
    }


@pytest.fixture
def router(producers):
    """Routes "/a" and "/b" with loads keyed "a"/"b", plus "/plain" without a load."""
    table = Router()

    for name in ("a", "b"):
        async def load(store, params, search, url, token, name=name):
            return await store.fetch(name, producers[name], **route_fetch_options(token=token))

        table.add(
            f"/{name}",
            handler=name.upper(),
            load=load,
            cache_key=lambda params, search, url, name=name: name,
        )

    table.add("/plain", handler="Plain")
    return table
