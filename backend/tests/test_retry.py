"""
Tests for retry utilities and the feed health monitor.
"""
import asyncio
import pytest
from unittest.mock import patch, MagicMock, AsyncMock

import aiohttp

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from retry import (
    RetryConfig,
    FeedHealthMonitor,
    calculate_delay,
    retry_http_request,
)

NO_WAIT = RetryConfig(max_retries=2, base_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip real backoff sleeps."""
    with patch("retry.asyncio.sleep", AsyncMock()):
        yield


class TestCalculateDelay:

    def test_exponential_without_jitter(self):
        config = RetryConfig(base_delay=1.0, max_delay=60.0, jitter=False)

        assert [calculate_delay(i, config) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped(self):
        config = RetryConfig(base_delay=1.0, max_delay=5.0, jitter=False)
        assert calculate_delay(10, config) == 5.0

    def test_jitter_within_quarter(self):
        config = RetryConfig(base_delay=4.0, max_delay=60.0, jitter=True)
        for _ in range(100):
            assert 3.0 <= calculate_delay(0, config) <= 5.0

    def test_minimum_delay(self):
        assert calculate_delay(0, NO_WAIT) == 0.1


class TestRetryHttpRequest:

    @pytest.mark.asyncio
    async def test_retries_on_status(self):
        busy = MagicMock(status=503)
        ok = MagicMock(status=200)
        session = MagicMock()
        session.request = AsyncMock(side_effect=[busy, ok])

        resp = await retry_http_request(session, "GET", "https://example.test", config=NO_WAIT)

        assert resp is ok
        busy.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_final_bad_status_returned(self):
        session = MagicMock()
        session.request = AsyncMock(return_value=MagicMock(status=429))

        resp = await retry_http_request(session, "GET", "https://example.test", config=NO_WAIT)

        assert resp.status == 429
        assert session.request.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout_then_success(self):
        ok = MagicMock(status=200)
        session = MagicMock()
        session.request = AsyncMock(side_effect=[asyncio.TimeoutError(), ok])

        resp = await retry_http_request(session, "GET", "https://example.test", config=NO_WAIT)

        assert resp is ok
        assert session.request.await_count == 2

    @pytest.mark.asyncio
    async def test_client_error_exhausts(self):
        session = MagicMock()
        session.request = AsyncMock(side_effect=aiohttp.ClientError("refused"))

        with pytest.raises(aiohttp.ClientError):
            await retry_http_request(session, "POST", "https://example.test", config=NO_WAIT)


class TestFeedHealthMonitor:

    def test_unknown_feed_unhealthy(self, clock):
        monitor = FeedHealthMonitor(clock=clock)
        monitor.register("quotes")

        assert not monitor.is_healthy("quotes")
        assert monitor.get_status()["quotes"]["last_success_age_sec"] is None

    def test_success_then_stale(self, clock):
        monitor = FeedHealthMonitor(stale_threshold_sec=120, clock=clock)
        monitor.mark_success("polymarket")

        assert monitor.is_healthy("polymarket")
        clock.advance(121)
        assert not monitor.is_healthy("polymarket")

    def test_error_counts_reset_on_success(self, clock):
        monitor = FeedHealthMonitor(clock=clock)
        monitor.mark_error("quotes", RuntimeError("boom"))
        monitor.mark_error("quotes")

        status = monitor.get_status()["quotes"]
        assert status["error_count"] == 2
        assert status["last_error"] == "RuntimeError: boom"

        monitor.mark_success("quotes")
        assert monitor.get_status()["quotes"]["error_count"] == 0
        assert monitor.get_status()["quotes"]["last_error"] is None
