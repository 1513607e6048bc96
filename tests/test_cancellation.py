"""
Cancellation token tests.
"""
import asyncio

import pytest

from routecache.cache import CancellationError, CancellationToken, cancellable_sleep


def test_cancel_runs_callbacks_once():
    token = CancellationToken()
    calls = []
    token.on_cancelled(lambda: calls.append("a"))

    token.cancel("first")
    token.cancel("second")

    assert token.is_cancelled
    assert token.reason == "first"
    assert calls == ["a"]


def test_removed_callback_is_not_called():
    token = CancellationToken()
    calls = []
    remove = token.on_cancelled(lambda: calls.append(1))

    remove()
    remove()
    token.cancel()

    assert calls == []


def test_callback_on_cancelled_token_runs_immediately():
    token = CancellationToken()
    token.cancel()
    calls = []

    token.on_cancelled(lambda: calls.append(1))

    assert calls == [1]


def test_failing_callback_does_not_block_others():
    token = CancellationToken()
    calls = []

    def broken():
        raise RuntimeError("boom")

    token.on_cancelled(broken)
    token.on_cancelled(lambda: calls.append(1))
    token.cancel()

    assert calls == [1]


def test_raise_if_cancelled():
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel()
    with pytest.raises(CancellationError):
        token.raise_if_cancelled()


@pytest.mark.asyncio
async def test_guard_returns_result():
    token = CancellationToken()

    async def work():
        await asyncio.sleep(0)
        return 42

    assert await token.guard(work()) == 42


@pytest.mark.asyncio
async def test_guard_raises_when_token_fires():
    token = CancellationToken()
    started = asyncio.Event()

    async def work():
        started.set()
        await asyncio.sleep(10)

    task = asyncio.ensure_future(token.guard(work()))
    await started.wait()
    token.cancel("superseded")

    with pytest.raises(CancellationError, match="superseded"):
        await task


@pytest.mark.asyncio
async def test_guard_on_cancelled_token_never_starts_work():
    token = CancellationToken()
    token.cancel()
    calls = []

    async def work():
        calls.append(1)

    with pytest.raises(CancellationError):
        await token.guard(work())
    assert calls == []


@pytest.mark.asyncio
async def test_cancellable_sleep_interrupted():
    token = CancellationToken()
    loop = asyncio.get_running_loop()
    loop.call_later(0.01, token.cancel)
    started = loop.time()

    with pytest.raises(CancellationError):
        await cancellable_sleep(5, token=token)

    assert loop.time() - started < 1


@pytest.mark.asyncio
async def test_cancellable_sleep_without_token():
    await cancellable_sleep(0)
    await cancellable_sleep(0.001)
