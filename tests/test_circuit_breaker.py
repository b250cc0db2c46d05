import asyncio
import unittest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

from liquidity_engine.circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitState


class TestCircuitBreaker(unittest.IsolatedAsyncioTestCase):
    """Tests for the per-venue CircuitBreaker."""

    def setUp(self):
        self.cb = CircuitBreaker(venue="binance", failure_threshold=3, recovery_timeout=1)

    async def _trip(self):
        failing = AsyncMock(side_effect=Exception("fail"))
        for _ in range(3):
            with self.assertRaises(Exception):
                await self.cb.call(failing)

    # ========== HAPPY PATH TESTS ==========

    def test_init(self):
        cb = CircuitBreaker(venue="kraken", failure_threshold=5, recovery_timeout=30)
        self.assertEqual(cb.venue, "kraken")
        self.assertEqual(cb.failure_threshold, 5)
        self.assertEqual(cb.recovery_timeout, 30)
        self.assertEqual(cb.failures, 0)
        self.assertEqual(cb.state, CircuitState.CLOSED)

    def test_defaults_come_from_settings(self):
        with patch("liquidity_engine.circuit_breaker.settings") as mock_settings:
            mock_settings.circuit_failure_threshold = 7
            mock_settings.circuit_recovery_timeout = 45
            cb = CircuitBreaker(venue="okx")

        self.assertEqual(cb.failure_threshold, 7)
        self.assertEqual(cb.recovery_timeout, 45)

    async def test_call_success(self):
        async def double(val):
            return val * 2

        result = await self.cb.call(double, 10)
        self.assertEqual(result, 20)
        self.assertEqual(self.cb.state, CircuitState.CLOSED)

    async def test_success_resets_failure_count(self):
        with self.assertRaises(Exception):
            await self.cb.call(AsyncMock(side_effect=Exception("blip")))
        self.assertEqual(self.cb.failures, 1)

        await self.cb.call(AsyncMock(return_value="ok"))
        self.assertEqual(self.cb.failures, 0)

    async def test_recovery_half_open_to_closed(self):
        await self._trip()
        self.assertEqual(self.cb.state, CircuitState.OPEN)

        future_time = datetime.now() + timedelta(seconds=2)
        with patch("liquidity_engine.circuit_breaker.datetime") as mock_datetime:
            mock_datetime.now.return_value = future_time
            self.assertEqual(self.cb.state, CircuitState.HALF_OPEN)

            result = await self.cb.call(AsyncMock(return_value="ok"))

            self.assertEqual(result, "ok")
            self.assertEqual(self.cb.state, CircuitState.CLOSED)
            self.assertEqual(self.cb.failures, 0)

    # ========== EDGE CASE TESTS ==========

    async def test_opens_exactly_at_threshold(self):
        async def failing_func():
            raise Exception("error")

        for expected in (1, 2):
            with self.assertRaises(Exception):
                await self.cb.call(failing_func)
            self.assertEqual(self.cb.failures, expected)
            self.assertEqual(self.cb.state, CircuitState.CLOSED)

        with self.assertRaises(Exception):
            await self.cb.call(failing_func)
        self.assertEqual(self.cb.failures, 3)
        self.assertEqual(self.cb.state, CircuitState.OPEN)

    async def test_half_open_boundary(self):
        await self._trip()
        opened_at = self.cb._opened_at

        with patch("liquidity_engine.circuit_breaker.datetime") as mock_datetime:
            mock_datetime.now.return_value = opened_at + timedelta(seconds=0.5)
            self.assertEqual(self.cb.state, CircuitState.OPEN)

            mock_datetime.now.return_value = opened_at + timedelta(seconds=1.1)
            self.assertEqual(self.cb.state, CircuitState.HALF_OPEN)

    async def test_half_open_failure_reopens(self):
        await self._trip()
        self.cb._opened_at = datetime.now() - timedelta(seconds=2)
        self.assertEqual(self.cb.state, CircuitState.HALF_OPEN)

        with self.assertRaises(Exception):
            await self.cb.call(AsyncMock(side_effect=Exception("still failing")))

        self.assertEqual(self.cb.state, CircuitState.OPEN)
        self.assertEqual(self.cb.failures, 4)

    async def test_half_open_admits_a_single_trial_call(self):
        await self._trip()
        self.cb._opened_at = datetime.now() - timedelta(seconds=2)
        calls = 0

        async def slow_failure():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.01)
            raise Exception("venue still down")

        results = await asyncio.gather(*[self.cb.call(slow_failure) for _ in range(10)], return_exceptions=True)

        self.assertEqual(calls, 1)
        self.assertEqual(sum(isinstance(r, CircuitBreakerOpen) for r in results), 9)
        self.assertEqual(self.cb.state, CircuitState.OPEN)
        self.assertFalse(self.cb._trial_in_flight)

    async def test_half_open_trial_success_closes_for_everyone(self):
        await self._trip()
        self.cb._opened_at = datetime.now() - timedelta(seconds=2)

        async def slow_success():
            await asyncio.sleep(0.01)
            return "ok"

        results = await asyncio.gather(*[self.cb.call(slow_success) for _ in range(3)], return_exceptions=True)

        self.assertEqual(results.count("ok"), 1)
        self.assertEqual(self.cb.state, CircuitState.CLOSED)
        self.assertEqual(await self.cb.call(AsyncMock(return_value="next")), "next")

    # ========== ERROR SCENARIO TESTS ==========

    async def test_raises_open_without_calling(self):
        await self._trip()
        func = AsyncMock(return_value="wont run")

        with self.assertRaises(CircuitBreakerOpen) as ctx:
            await self.cb.call(func)

        func.assert_not_called()
        self.assertEqual(ctx.exception.venue, "binance")

    async def test_propagates_underlying_exception(self):
        class CustomError(Exception):
            pass

        async def failing_func():
            raise CustomError("custom")

        with self.assertRaises(CustomError):
            await self.cb.call(failing_func)


if __name__ == '__main__':
    unittest.main()
