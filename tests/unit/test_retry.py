"""
Unit tests for bounded retry and the request gate
"""

import asyncio
import time
from unittest.mock import AsyncMock

import pytest

from core.rate_limit import GateRegistry, RequestGate
from core.retry import retry_async


class TestRetryAsync:

    @pytest.mark.asyncio
    async def test_returns_value_on_first_success(self):
        operation = AsyncMock(return_value="ok")

        outcome = await retry_async(operation, max_attempts=3, delay=0)

        assert outcome.ok
        assert outcome.value == "ok"
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        operation = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), "ok"])
        sleep = AsyncMock()

        outcome = await retry_async(operation, max_attempts=3, delay=0.5, sleep=sleep)

        assert outcome.ok
        assert outcome.attempts == 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(0.5)

    @pytest.mark.asyncio
    async def test_exhausted_budget_returns_last_error(self):
        operation = AsyncMock(side_effect=ConnectionError("down"))
        sleep = AsyncMock()

        outcome = await retry_async(operation, max_attempts=3, delay=1, sleep=sleep)

        assert not outcome.ok
        assert isinstance(outcome.error, ConnectionError)
        assert outcome.attempts == 3
        assert operation.await_count == 3
        # No sleep after the final attempt
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_unlisted_exceptions_propagate(self):
        operation = AsyncMock(side_effect=KeyError("bug"))

        with pytest.raises(KeyError):
            await retry_async(operation, max_attempts=3, delay=0, retry_on=(ConnectionError,))

        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            await retry_async(AsyncMock(), max_attempts=0, delay=0)


class TestRequestGate:

    @pytest.mark.asyncio
    async def test_one_request_in_flight(self):
        gate = RequestGate(0)
        in_flight = 0
        peak = 0

        async def request():
            nonlocal in_flight, peak
            async with gate:
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.01)
                in_flight -= 1

        await asyncio.gather(*(request() for _ in range(5)))

        assert peak == 1

    @pytest.mark.asyncio
    async def test_minimum_interval_between_requests(self):
        gate = RequestGate(0.05)
        started = []

        async def request():
            async with gate:
                started.append(time.monotonic())

        await asyncio.gather(request(), request(), request())

        gaps = [b - a for a, b in zip(started, started[1:])]
        assert all(gap >= 0.045 for gap in gaps)

    def test_registry_shares_gate_per_feed(self):
        registry = GateRegistry(0.1)

        assert registry.get("midgard") is registry.get("midgard")
        assert registry.get("midgard") is not registry.get("chainflip")
        assert registry.get("chainflip").min_interval == 0.1
