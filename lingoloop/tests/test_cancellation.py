"""
Tests for the cancellation token and pause gate.
"""

import asyncio

import pytest

from lingoloop.common.cancellation import STOP_REASON, CancellationToken, PauseGate
from lingoloop.common.error_handling import GenerationCancelledError


def test_token_starts_clear():
    token = CancellationToken()
    assert token.cancelled is False
    token.raise_if_cancelled()


def test_cancel_is_idempotent():
    token = CancellationToken()
    token.cancel()
    token.cancel("second call")
    assert token.cancelled is True
    assert token.reason == STOP_REASON

    with pytest.raises(GenerationCancelledError) as exc_info:
        token.raise_if_cancelled()
    assert exc_info.value.message == "stopped by user"


@pytest.mark.asyncio
async def test_sleep_completes_when_not_cancelled():
    token = CancellationToken()
    await token.sleep(0.01)
    assert not token.cancelled


@pytest.mark.asyncio
async def test_run_returns_result():
    token = CancellationToken()

    async def work():
        await asyncio.sleep(0)
        return 42

    assert await token.run(work()) == 42


@pytest.mark.asyncio
async def test_run_aborts_in_flight_call():
    token = CancellationToken()
    aborted = asyncio.Event()

    async def slow_call():
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            aborted.set()
            raise

    asyncio.get_running_loop().call_later(0.05, token.cancel)
    with pytest.raises(GenerationCancelledError):
        await token.run(slow_call())

    assert aborted.is_set()


@pytest.mark.asyncio
async def test_run_after_cancel_raises_immediately():
    token = CancellationToken()
    token.cancel()

    with pytest.raises(GenerationCancelledError):
        await token.run(asyncio.sleep(30))


@pytest.mark.asyncio
async def test_gate_blocks_until_opened():
    gate = PauseGate()
    gate.close()
    assert not gate.is_open

    waiter = asyncio.create_task(gate.wait())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    gate.open()
    await asyncio.wait_for(waiter, timeout=1)
    assert gate.is_open


@pytest.mark.asyncio
async def test_closed_gate_wakes_on_cancel():
    gate = PauseGate()
    token = CancellationToken()
    gate.close()

    asyncio.get_running_loop().call_later(0.02, token.cancel)
    with pytest.raises(GenerationCancelledError):
        await asyncio.wait_for(gate.wait(token), timeout=1)
