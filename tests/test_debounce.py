"""Tests for the debounce utility"""
import asyncio

import pytest

from cartsync.debounce import debounce

DELAY = 0.02


@pytest.mark.asyncio
async def test_burst_collapses_to_last_call():
    calls = []
    debounced = debounce(calls.append, DELAY)

    for value in range(5):
        debounced(value)

    assert calls == []
    assert debounced.pending is True

    await asyncio.sleep(DELAY * 5)

    assert calls == [4]
    assert debounced.pending is False


@pytest.mark.asyncio
async def test_calls_after_quiet_period_run_separately():
    calls = []
    debounced = debounce(calls.append, DELAY)

    debounced("a")
    await asyncio.sleep(DELAY * 5)
    debounced("b")
    await asyncio.sleep(DELAY * 5)

    assert calls == ["a", "b"]


@pytest.mark.asyncio
async def test_coroutine_function_runs_as_task():
    seen = []

    async def save(product_id, delta):
        await asyncio.sleep(0)
        seen.append((product_id, delta))

    debounced = debounce(save, DELAY)
    debounced("p1", 1)
    debounced("p1", 2)

    await asyncio.sleep(DELAY * 5)
    await debounced.task

    assert seen == [("p1", 2)]


@pytest.mark.asyncio
async def test_flush_fires_immediately():
    seen = []

    async def save(value):
        seen.append(value)

    debounced = debounce(save, 10.0)
    debounced("now")

    await debounced.flush()

    assert seen == ["now"]
    assert debounced.pending is False


@pytest.mark.asyncio
async def test_cancel_drops_scheduled_call():
    calls = []
    debounced = debounce(calls.append, DELAY)

    debounced("dropped")
    debounced.cancel()
    await asyncio.sleep(DELAY * 5)

    assert calls == []


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        debounce(print, -1)


@pytest.mark.asyncio
async def test_running_keeps_every_unfinished_burst():
    release = asyncio.Event()

    async def slow(value):
        await release.wait()

    debounced = debounce(slow, DELAY)
    debounced(1)
    await asyncio.sleep(DELAY * 3)
    first = debounced.task
    debounced(2)
    await asyncio.sleep(DELAY * 3)

    assert debounced.task is not first
    assert set(debounced.running) == {first, debounced.task}

    release.set()
    await asyncio.gather(*debounced.running)

    assert debounced.running == []
