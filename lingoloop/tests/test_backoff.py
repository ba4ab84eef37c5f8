"""
Tests for the backoff controller.

Covers:
1. Delay schedule
2. Which failures are retried
3. Retry exhaustion
4. Cancellation while waiting
"""

import asyncio
import random
import time

import pytest
from unittest.mock import AsyncMock

from lingoloop.common.backoff import BackoffController, is_rate_limited, retry_after_hint
from lingoloop.common.cancellation import CancellationToken
from lingoloop.common.error_handling import (
    ContentPolicyRefusalError,
    GenerationCancelledError,
    RateLimitedError,
    RetriesExhaustedError,
)


class UpstreamError(Exception):
    def __init__(self, message, status_code=None, code=None, retry_after=None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        if retry_after is not None:
            self.retry_after = retry_after


def test_delay_doubles_without_jitter():
    controller = BackoffController(base_delay=2.0, max_jitter=0)
    assert [controller.compute_delay(k) for k in range(4)] == [2.0, 4.0, 8.0, 16.0]


def test_jitter_stays_within_bounds():
    controller = BackoffController(base_delay=1.0, max_jitter=2.0, rng=random.Random(7))
    for attempt in range(5):
        delay = controller.compute_delay(attempt)
        assert 2 ** attempt <= delay <= 2 ** attempt + 2.0


def test_rate_limit_classification():
    assert is_rate_limited(UpstreamError("slow down", status_code=429))
    assert is_rate_limited(UpstreamError("HTTP 503: Too Many Requests"))
    assert is_rate_limited(UpstreamError("quota", code="rate_limit_exceeded"))
    assert is_rate_limited(RateLimitedError("window"))
    assert not is_rate_limited(UpstreamError("bad request", status_code=400))
    assert not is_rate_limited(ValueError("boom"))
    assert not is_rate_limited(ContentPolicyRefusalError("rate limit of offensive content"))


def test_retry_after_hint():
    assert retry_after_hint(UpstreamError("x", retry_after=12)) == 12.0
    assert retry_after_hint(ValueError("x")) is None


@pytest.mark.asyncio
async def test_retries_rate_limits_until_success():
    operation = AsyncMock(side_effect=[
        UpstreamError("too many requests", status_code=429),
        UpstreamError("too many requests", status_code=429),
        "ok",
    ])
    controller = BackoffController(max_retries=8, base_delay=0, max_jitter=0)

    result = await controller.execute(operation)

    assert result == "ok"
    assert operation.call_count == 3


@pytest.mark.asyncio
async def test_non_retryable_error_propagates_unchanged():
    error = ValueError("invalid payload")
    operation = AsyncMock(side_effect=error)
    controller = BackoffController(base_delay=0, max_jitter=0)

    with pytest.raises(ValueError) as exc_info:
        await controller.execute(operation)

    assert exc_info.value is error
    assert operation.call_count == 1


@pytest.mark.asyncio
async def test_content_policy_refusal_is_never_retried():
    operation = AsyncMock(side_effect=ContentPolicyRefusalError("declined"))
    controller = BackoffController(base_delay=0, max_jitter=0)

    with pytest.raises(ContentPolicyRefusalError):
        await controller.execute(operation)

    assert operation.call_count == 1


@pytest.mark.asyncio
async def test_gives_up_after_max_retries_plus_one_attempts():
    operation = AsyncMock(side_effect=UpstreamError("rate limit", status_code=429, retry_after=30))
    controller = BackoffController(max_retries=2, base_delay=0, max_jitter=0)

    with pytest.raises(RetriesExhaustedError) as exc_info:
        await controller.execute(operation)

    assert operation.call_count == 3
    assert exc_info.value.attempts == 3
    assert exc_info.value.retry_after == 30.0
    assert isinstance(exc_info.value, RateLimitedError)


@pytest.mark.asyncio
async def test_per_call_overrides():
    operation = AsyncMock(side_effect=UpstreamError("rate limit", status_code=429))
    controller = BackoffController(max_retries=8, base_delay=5.0, max_jitter=0)

    with pytest.raises(RetriesExhaustedError):
        await controller.execute(operation, max_retries=1, base_delay=0)

    assert operation.call_count == 2


@pytest.mark.asyncio
async def test_cancellation_interrupts_backoff_sleep():
    token = CancellationToken()
    operation = AsyncMock(side_effect=UpstreamError("rate limit", status_code=429))
    controller = BackoffController(max_retries=8, base_delay=30.0, max_jitter=0, token=token)

    asyncio.get_running_loop().call_later(0.05, token.cancel)
    started = time.perf_counter()
    with pytest.raises(GenerationCancelledError):
        await controller.execute(operation)

    assert time.perf_counter() - started < 5
    assert operation.call_count == 1
