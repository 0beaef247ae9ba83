"""
Unit tests for the async debouncer.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from command_center.utils.debounce import Debouncer


@pytest.mark.asyncio
async def test_burst_collapses_to_one_call():
    callback = AsyncMock()
    debouncer = Debouncer(callback, delay=0.05)

    for _ in range(5):
        debouncer.trigger()
    assert debouncer.pending is True

    await asyncio.sleep(0.15)

    callback.assert_awaited_once()
    assert debouncer.pending is False


@pytest.mark.asyncio
async def test_trigger_restarts_countdown():
    callback = AsyncMock()
    debouncer = Debouncer(callback, delay=0.1)

    debouncer.trigger()
    await asyncio.sleep(0.06)
    debouncer.trigger()
    await asyncio.sleep(0.06)

    callback.assert_not_awaited()
    await asyncio.sleep(0.1)
    callback.assert_awaited_once()


@pytest.mark.asyncio
async def test_flush_runs_immediately():
    callback = AsyncMock()
    debouncer = Debouncer(callback, delay=10)

    debouncer.trigger()
    await debouncer.flush()

    callback.assert_awaited_once()
    assert debouncer.pending is False


@pytest.mark.asyncio
async def test_flush_without_pending_is_noop():
    callback = AsyncMock()
    debouncer = Debouncer(callback, delay=0.01)

    await debouncer.flush()

    callback.assert_not_awaited()


@pytest.mark.asyncio
async def test_cancel_drops_pending_run():
    callback = AsyncMock()
    debouncer = Debouncer(callback, delay=0.02)

    debouncer.trigger()
    debouncer.cancel()
    await asyncio.sleep(0.05)

    callback.assert_not_awaited()
    assert debouncer.pending is False


@pytest.mark.asyncio
async def test_callback_error_is_logged_not_raised():
    callback = AsyncMock(side_effect=RuntimeError("db down"))
    debouncer = Debouncer(callback, delay=10, name="test")

    debouncer.trigger()
    await debouncer.flush()

    callback.assert_awaited_once()


@pytest.mark.asyncio
async def test_flush_waits_for_save_in_flight():
    completed = []

    async def slow_save():
        await asyncio.sleep(0.2)
        completed.append(True)

    debouncer = Debouncer(slow_save, delay=0.01)

    debouncer.trigger()
    await asyncio.sleep(0.05)
    assert debouncer.running is True
    await debouncer.flush()

    assert completed == [True]


@pytest.mark.asyncio
async def test_trigger_during_save_runs_again_after_it():
    completed = []

    async def slow_save():
        await asyncio.sleep(0.1)
        completed.append(len(completed))

    debouncer = Debouncer(slow_save, delay=0.01)

    debouncer.trigger()
    await asyncio.sleep(0.05)
    debouncer.trigger()
    await asyncio.sleep(0.3)

    assert completed == [0, 1]
    assert debouncer.pending is False


@pytest.mark.asyncio
async def test_flush_during_save_also_runs_later_edit():
    completed = []

    async def slow_save():
        await asyncio.sleep(0.1)
        completed.append(True)

    debouncer = Debouncer(slow_save, delay=0.01)

    debouncer.trigger()
    await asyncio.sleep(0.05)
    debouncer.trigger()
    await debouncer.flush()

    assert completed == [True, True]
    assert debouncer.pending is False
