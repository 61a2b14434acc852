"""
Retry Utilities with Exponential Backoff

Helpers for the market-data and broker-signal HTTP calls,
plus a small per-feed health monitor.
"""

import asyncio
import logging
import random
import time
from typing import Callable, Optional
import aiohttp

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        retryable_exceptions: Optional[tuple] = None,
        retryable_status_codes: Optional[set] = None,
    ):
        """
        Args:
            max_retries: Maximum number of retry attempts (0 = no retries)
            base_delay: Initial delay in seconds
            max_delay: Maximum delay cap in seconds
            exponential_base: Base for exponential backoff (2.0 = 1s, 2s, 4s, 8s...)
            jitter: Add up to 25% random jitter
            retryable_exceptions: Tuple of exception types to retry on
            retryable_status_codes: Set of HTTP status codes to retry on
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.retryable_exceptions = retryable_exceptions or (
            aiohttp.ClientError,
            asyncio.TimeoutError,
            ConnectionError,
        )
        self.retryable_status_codes = retryable_status_codes or {
            408,  # Request Timeout
            429,  # Too Many Requests
            500,  # Internal Server Error
            502,  # Bad Gateway
            503,  # Service Unavailable
            504,  # Gateway Timeout
        }


# Feeds poll again on their own interval, so keep retries short
FEED_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    base_delay=1.0,
    max_delay=10.0,
)

SIGNAL_RETRY_CONFIG = RetryConfig(
    max_retries=2,
    base_delay=0.5,
    max_delay=5.0,
)


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay for retry attempt with exponential backoff and jitter."""
    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_range = delay * 0.25
        delay += random.uniform(-jitter_range, jitter_range)

    return max(0.1, delay)


async def retry_http_request(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    config: Optional[RetryConfig] = None,
    **kwargs,
) -> aiohttp.ClientResponse:
    """
    Execute HTTP request with automatic retry.

    A retryable status on the final attempt is returned, not raised;
    callers check `resp.status`.

    Example:
        async with aiohttp.ClientSession() as session:
            resp = await retry_http_request(session, "GET", url, params=params)
            data = await resp.json()
    """
    if config is None:
        config = FEED_RETRY_CONFIG

    for attempt in range(config.max_retries + 1):
        try:
            resp = await session.request(method, url, **kwargs)

            if resp.status in config.retryable_status_codes and attempt < config.max_retries:
                delay = calculate_delay(attempt, config)
                logger.warning(
                    f"[Retry] HTTP {method} {url} returned {resp.status} "
                    f"(attempt {attempt + 1}/{config.max_retries + 1}). Retrying in {delay:.1f}s..."
                )
                resp.release()
                await asyncio.sleep(delay)
                continue

            return resp

        except config.retryable_exceptions as e:
            if attempt >= config.max_retries:
                logger.error(
                    f"[Retry] HTTP {method} {url} failed after {config.max_retries + 1} attempts: "
                    f"{type(e).__name__}: {e}"
                )
                raise

            delay = calculate_delay(attempt, config)
            logger.warning(
                f"[Retry] HTTP {method} {url} failed (attempt {attempt + 1}/{config.max_retries + 1}): "
                f"{type(e).__name__}: {e}. Retrying in {delay:.1f}s..."
            )
            await asyncio.sleep(delay)


class FeedHealthMonitor:
    """
    Tracks last success and consecutive errors per named feed
    (e.g. "polymarket", "quotes").
    """

    def __init__(self, stale_threshold_sec: float = 120.0, clock: Callable[[], float] = time.time):
        self.stale_threshold = stale_threshold_sec
        self.clock = clock
        self._last_success: dict[str, float] = {}
        self._error_counts: dict[str, int] = {}
        self._last_error: dict[str, str] = {}

    def register(self, name: str):
        self._error_counts.setdefault(name, 0)

    def mark_success(self, name: str):
        self._last_success[name] = self.clock()
        self._error_counts[name] = 0
        self._last_error.pop(name, None)

    def mark_error(self, name: str, error: Optional[Exception] = None):
        self._error_counts[name] = self._error_counts.get(name, 0) + 1
        if error is not None:
            self._last_error[name] = f"{type(error).__name__}: {error}"

    def is_healthy(self, name: str) -> bool:
        """A feed is healthy once it has succeeded within the stale threshold"""
        last = self._last_success.get(name)
        if last is None:
            return False
        return self.clock() - last < self.stale_threshold

    def get_status(self) -> dict:
        now = self.clock()
        status = {}
        for name in sorted(set(self._error_counts) | set(self._last_success)):
            last = self._last_success.get(name)
            status[name] = {
                "is_healthy": self.is_healthy(name),
                "last_success_age_sec": round(now - last, 1) if last is not None else None,
                "error_count": self._error_counts.get(name, 0),
                "last_error": self._last_error.get(name),
            }
        return status


# Global monitor shared by the feeds
feed_monitor = FeedHealthMonitor()
