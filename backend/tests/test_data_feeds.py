"""
Tests for the Polymarket and Yahoo Finance feeds.
"""
import pytest
from unittest.mock import patch, MagicMock, AsyncMock

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data_feeds import (
    FeedError,
    PredictionMarketFeed,
    QuoteFeed,
    parse_market,
    parse_markets,
    parse_quotes,
)
from retry import FeedHealthMonitor


def mock_response(status=200, payload=None):
    """aiohttp-style response usable as an async context manager."""
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=payload)
    resp.__aenter__ = AsyncMock(return_value=resp)
    resp.__aexit__ = AsyncMock(return_value=False)
    return resp


GAMMA_RECORD = {
    "id": "512345",
    "question": "Will the Fed cut rates in March?",
    "slug": "fed-cut-march",
    "outcomePrices": "[\"0.965\", \"0.035\"]",
    "volume24hr": 125000.5,
}


class TestMarketParsing:

    def test_string_outcome_prices(self):
        market = parse_market(GAMMA_RECORD)

        assert market.id == "512345"
        assert market.probability == pytest.approx(0.965)
        assert market.volume24h == pytest.approx(125000.5)
        assert market.slug == "fed-cut-march"

    def test_list_outcome_prices(self):
        market = parse_market({**GAMMA_RECORD, "outcomePrices": [0.2, 0.8]})
        assert market.probability == pytest.approx(0.2)

    @pytest.mark.parametrize("override", [
        {"id": None},
        {"question": ""},
        {"outcomePrices": "not json"},
        {"outcomePrices": "[]"},
        {"outcomePrices": "[\"1.5\", \"-0.5\"]"},
        {"outcomePrices": None},
    ])
    def test_invalid_records_dropped(self, override):
        assert parse_market({**GAMMA_RECORD, **override}) is None

    def test_missing_volume_defaults_to_zero(self):
        record = {k: v for k, v in GAMMA_RECORD.items() if k != "volume24hr"}
        assert parse_market(record).volume24h == 0.0

    def test_parse_markets_filters(self):
        markets = parse_markets([GAMMA_RECORD, {"id": "x"}, "junk"])
        assert [m.id for m in markets] == ["512345"]

    def test_non_list_payload(self):
        with pytest.raises(FeedError):
            parse_markets({"error": "rate limited"})


class TestQuoteParsing:

    def test_maps_yahoo_symbols(self):
        payload = {"quoteResponse": {"result": [
            {"symbol": "AAPL", "regularMarketPrice": 251.3, "regularMarketChange": 1.2},
            {"symbol": "BRK-B", "regularMarketPrice": 470.0},
            {"symbol": "ZZZZ", "regularMarketPrice": 10.0},
            {"symbol": "MSFT", "regularMarketPrice": 0},
            {"symbol": "NVDA"},
        ]}}

        quotes = parse_quotes(payload, {"AAPL": "AAPL", "BRK-B": "BRK", "MSFT": "MSFT", "NVDA": "NVDA"}, now=10.0)

        assert set(quotes) == {"AAPL", "BRK"}
        assert quotes["AAPL"].price == 251.3
        assert quotes["AAPL"].change == 1.2
        assert quotes["BRK"].updated_at == 10.0

    @pytest.mark.parametrize("payload", [{}, {"quoteResponse": None}, {"quoteResponse": {"result": "x"}}, None])
    def test_malformed_payload(self, payload):
        with pytest.raises(FeedError):
            parse_quotes(payload, {}, now=0.0)


class TestQuoteFeed:

    def test_stale_quotes_excluded(self, clock):
        feed = QuoteFeed(symbols={"AAPL": "AAPL", "MSFT": "MSFT"}, max_age_sec=300,
                         monitor=FeedHealthMonitor(clock=clock), clock=clock)
        feed.quotes = parse_quotes(
            {"quoteResponse": {"result": [{"symbol": "AAPL", "regularMarketPrice": 250.0}]}},
            feed.yahoo_to_symbol, now=clock(),
        )
        clock.advance(200)
        feed.quotes.update(parse_quotes(
            {"quoteResponse": {"result": [{"symbol": "MSFT", "regularMarketPrice": 460.0}]}},
            feed.yahoo_to_symbol, now=clock(),
        ))

        assert feed.get_reference_prices() == {"AAPL": 250.0, "MSFT": 460.0}

        clock.advance(150)
        assert feed.get_reference_prices() == {"MSFT": 460.0}

    @pytest.mark.asyncio
    async def test_falls_back_to_second_provider(self, clock):
        monitor = FeedHealthMonitor(clock=clock)
        feed = QuoteFeed(symbols={"AAPL": "AAPL"}, monitor=monitor, clock=clock)
        bad = mock_response(status=503)
        good = mock_response(payload={"quoteResponse": {"result": [
            {"symbol": "AAPL", "regularMarketPrice": 249.0},
        ]}})

        with patch("data_feeds.retry_http_request", AsyncMock(side_effect=[bad, good])):
            quotes = await feed.refresh(MagicMock())

        assert quotes["AAPL"].price == 249.0
        assert feed.get_reference_prices() == {"AAPL": 249.0}
        assert monitor.is_healthy("quotes")

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, clock):
        feed = QuoteFeed(symbols={"AAPL": "AAPL"}, monitor=FeedHealthMonitor(clock=clock), clock=clock)

        with patch("data_feeds.retry_http_request",
                   AsyncMock(side_effect=[mock_response(500), mock_response(500)])):
            with pytest.raises(FeedError):
                await feed.refresh(MagicMock())

        assert feed.get_reference_prices() == {}


class TestPredictionMarketFeed:

    def test_query_params(self):
        feed = PredictionMarketFeed(monitor=FeedHealthMonitor())
        assert feed.params == {
            "closed": "false",
            "limit": "50",
            "order": "volume24hr",
            "ascending": "false",
        }

    @pytest.mark.asyncio
    async def test_refresh_stores_snapshot(self, clock):
        feed = PredictionMarketFeed(monitor=FeedHealthMonitor(clock=clock), clock=clock)

        with patch("data_feeds.retry_http_request", AsyncMock(return_value=mock_response(payload=[GAMMA_RECORD]))):
            markets = await feed.refresh(MagicMock())

        assert [m.id for m in markets] == ["512345"]
        assert feed.get_markets()[0].question == GAMMA_RECORD["question"]
        assert feed.updated_at == clock()

    @pytest.mark.asyncio
    async def test_error_keeps_last_snapshot(self, clock):
        feed = PredictionMarketFeed(monitor=FeedHealthMonitor(clock=clock), clock=clock)

        with patch("data_feeds.retry_http_request", AsyncMock(return_value=mock_response(payload=[GAMMA_RECORD]))):
            await feed.refresh(MagicMock())

        with patch("data_feeds.retry_http_request", AsyncMock(return_value=mock_response(status=502))):
            with pytest.raises(FeedError):
                await feed.refresh(MagicMock())

        assert len(feed.get_markets()) == 1
