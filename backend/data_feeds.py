"""
Live data feeds for the simulator.

- PredictionMarketFeed: Polymarket Gamma markets snapshot for the edge scanner
- QuoteFeed: Yahoo Finance equity quotes used as reference prices

Both poll over REST with the shared retry layer and keep the last good
snapshot when a poll fails.
"""

import asyncio
import json
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional
import aiohttp

from retry import (
    retry_http_request,
    feed_monitor,
    FeedHealthMonitor,
    FEED_RETRY_CONFIG,
)
from config import (
    PolymarketAPI,
    YahooFinanceAPI,
    YAHOO_SYMBOLS,
    DEFAULT_CONFIG,
)
from prediction_markets import PredictionMarket

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=10)


class FeedError(Exception):
    """Upstream returned an unusable response"""


# ============================================================================
# PARSING
# ============================================================================

def _parse_outcome_prices(raw: Any) -> Optional[list[float]]:
    # Gamma returns outcomePrices as a JSON-encoded string, occasionally a list
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            return None
    if not isinstance(raw, list) or not raw:
        return None
    try:
        return [float(p) for p in raw]
    except (TypeError, ValueError):
        return None


def parse_market(data: dict) -> Optional[PredictionMarket]:
    """Parse one Gamma market record; None if it lacks id, question or a valid YES price"""
    market_id = data.get("id")
    question = data.get("question")
    if not market_id or not question:
        return None

    prices = _parse_outcome_prices(data.get("outcomePrices"))
    if not prices:
        return None
    yes = prices[0]
    if not math.isfinite(yes) or not 0 <= yes <= 1:
        return None

    try:
        volume = float(data.get("volume24hr") or 0)
    except (TypeError, ValueError):
        volume = 0.0

    return PredictionMarket(
        id=str(market_id),
        question=question,
        probability=yes,
        volume24h=volume,
        slug=data.get("slug"),
    )


def parse_markets(payload: Any) -> list[PredictionMarket]:
    if not isinstance(payload, list):
        raise FeedError(f"Expected a list of markets, got {type(payload).__name__}")

    markets = []
    dropped = 0
    for record in payload:
        market = parse_market(record) if isinstance(record, dict) else None
        if market:
            markets.append(market)
        else:
            dropped += 1

    if dropped:
        logger.warning(f"Dropped {dropped} invalid market record(s)")
    return markets


@dataclass
class Quote:
    symbol: str
    price: float
    updated_at: float
    change: Optional[float] = None
    change_pct: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change,
            "change_pct": self.change_pct,
            "updated_at": self.updated_at,
        }


def parse_quotes(payload: Any, yahoo_to_symbol: dict[str, str], now: float) -> dict[str, Quote]:
    """Parse a /v7/finance/quote response into simulator-symbol Quotes"""
    try:
        results = payload["quoteResponse"]["result"]
    except (KeyError, TypeError):
        raise FeedError("Quote response missing quoteResponse.result")
    if not isinstance(results, list):
        raise FeedError("quoteResponse.result is not a list")

    quotes = {}
    for item in results:
        if not isinstance(item, dict):
            continue
        symbol = yahoo_to_symbol.get(item.get("symbol"))
        price = item.get("regularMarketPrice")
        if symbol is None or not isinstance(price, (int, float)):
            continue
        if not math.isfinite(price) or price <= 0:
            continue
        quotes[symbol] = Quote(
            symbol=symbol,
            price=float(price),
            updated_at=now,
            change=item.get("regularMarketChange"),
            change_pct=item.get("regularMarketChangePercent"),
        )
    return quotes


# ============================================================================
# PREDICTION MARKETS
# ============================================================================

class PredictionMarketFeed:
    """
    Polls the Gamma markets endpoint for the most active open markets.
    """

    NAME = "polymarket"

    def __init__(
        self,
        limit: int = 50,
        monitor: FeedHealthMonitor = feed_monitor,
        clock: Callable[[], float] = time.time,
    ):
        self.limit = limit
        self.monitor = monitor
        self.clock = clock
        self.markets: list[PredictionMarket] = []
        self.updated_at: Optional[float] = None
        self.running = False
        self.monitor.register(self.NAME)

    @property
    def params(self) -> dict:
        return {
            "closed": "false",
            "limit": str(self.limit),
            "order": "volume24hr",
            "ascending": "false",
        }

    async def refresh(self, session: aiohttp.ClientSession) -> list[PredictionMarket]:
        """Fetch one snapshot; raises FeedError or aiohttp errors on failure"""
        resp = await retry_http_request(
            session, "GET", PolymarketAPI.MARKETS,
            params=self.params,
            timeout=REQUEST_TIMEOUT,
            config=FEED_RETRY_CONFIG,
        )
        async with resp:
            if resp.status != 200:
                raise FeedError(f"Gamma markets returned HTTP {resp.status}")
            payload = await resp.json(content_type=None)

        markets = parse_markets(payload)
        self.markets = markets
        self.updated_at = self.clock()
        self.monitor.mark_success(self.NAME)
        logger.debug(f"Fetched {len(markets)} prediction markets")
        return markets

    async def start(self, poll_interval: float = 60.0):
        """Poll until stopped, keeping the last good snapshot on errors"""
        self.running = True

        async with aiohttp.ClientSession(headers={"User-Agent": "Mozilla/5.0"}) as session:
            while self.running:
                try:
                    await self.refresh(session)
                except (FeedError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                    self.monitor.mark_error(self.NAME, e)
                    logger.warning(f"[PredictionMarketFeed] Poll failed, keeping last snapshot: {e}")

                await asyncio.sleep(poll_interval)

    def stop(self):
        self.running = False

    def get_markets(self) -> list[PredictionMarket]:
        return list(self.markets)


# ============================================================================
# QUOTES
# ============================================================================

class QuoteFeed:
    """
    Polls Yahoo Finance for the basket's equity quotes.

    Providers are tried in order; the first 200 response wins. Quotes older
    than `max_age_sec` are not reported as reference prices.
    """

    NAME = "quotes"

    def __init__(
        self,
        symbols: Optional[dict[str, str]] = None,
        max_age_sec: float = DEFAULT_CONFIG.quote_max_age_sec,
        monitor: FeedHealthMonitor = feed_monitor,
        clock: Callable[[], float] = time.time,
    ):
        self.symbols = dict(symbols if symbols is not None else YAHOO_SYMBOLS)
        self.yahoo_to_symbol = {v: k for k, v in self.symbols.items()}
        self.max_age_sec = max_age_sec
        self.monitor = monitor
        self.clock = clock
        self.quotes: dict[str, Quote] = {}
        self.running = False
        self.monitor.register(self.NAME)

    async def _fetch(self, session: aiohttp.ClientSession, provider: str) -> dict[str, Quote]:
        resp = await retry_http_request(
            session, "GET", f"{provider}{YahooFinanceAPI.QUOTE_PATH}",
            params={
                "symbols": ",".join(self.symbols.values()),
                "fields": YahooFinanceAPI.QUOTE_FIELDS,
            },
            headers=YahooFinanceAPI.HEADERS,
            timeout=REQUEST_TIMEOUT,
            config=FEED_RETRY_CONFIG,
        )
        async with resp:
            if resp.status != 200:
                raise FeedError(f"{provider} returned HTTP {resp.status}")
            payload = await resp.json(content_type=None)
        return parse_quotes(payload, self.yahoo_to_symbol, self.clock())

    async def refresh(self, session: aiohttp.ClientSession) -> dict[str, Quote]:
        """Fetch quotes from the first provider that answers"""
        errors = []
        for provider in YahooFinanceAPI.PROVIDERS:
            try:
                quotes = await self._fetch(session, provider)
            except (FeedError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                errors.append(f"{provider}: {e}")
                continue

            self.quotes.update(quotes)
            self.monitor.mark_success(self.NAME)
            logger.debug(f"Fetched {len(quotes)} quotes from {provider}")
            return quotes

        raise FeedError("All quote providers failed: " + "; ".join(errors))

    async def start(self, poll_interval: float = 30.0):
        self.running = True

        async with aiohttp.ClientSession() as session:
            while self.running:
                try:
                    await self.refresh(session)
                except FeedError as e:
                    self.monitor.mark_error(self.NAME, e)
                    logger.warning(f"[QuoteFeed] {e}")

                await asyncio.sleep(poll_interval)

    def stop(self):
        self.running = False

    def get_reference_prices(self) -> dict[str, float]:
        """Fresh quote prices only; stale symbols fall back to the static basket price"""
        cutoff = self.clock() - self.max_age_sec
        return {sym: q.price for sym, q in self.quotes.items() if q.updated_at >= cutoff}

    def get_quotes(self) -> list[dict]:
        return [q.to_dict() for q in self.quotes.values()]
