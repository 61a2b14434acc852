"""
Tests for REST and WebSocket endpoints (server.py, routes/).

Tests cover:
- Health and instrument endpoints
- Simulator state, control and config
- API key enforcement on mutating endpoints
- Prediction-market snapshot
- Run history endpoints
- WebSocket init and ping/pong
- Broadcast fan-out and background send tracking
- Live quotes
"""
import asyncio
import random
import secrets
import pytest
from fastapi.testclient import TestClient
from unittest.mock import patch, MagicMock, AsyncMock

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import INSTRUMENTS, SimulatorConfig
from prediction_markets import PredictionMarket
from routes import deps
from run_history import RunRecord
from simulator import TradingSimulator


# Test API key for authentication
TEST_API_KEY = secrets.token_urlsafe(32)


@pytest.fixture
def auth_headers():
    """Return auth headers for protected endpoints."""
    return {"X-API-Key": TEST_API_KEY}


@pytest.fixture
def sim(run_history, clock):
    return TradingSimulator(config=SimulatorConfig(), history=run_history, rng=random.Random(5), clock=clock)


@pytest.fixture
def market_feed():
    feed = MagicMock()
    feed.updated_at = 1700000000.0
    feed.get_markets = MagicMock(return_value=[
        PredictionMarket(id="m1", question="Near certain?", probability=0.97),
        PredictionMarket(id="m2", question="Coin flip?", probability=0.52),
    ])
    return feed


@pytest.fixture
def client(sim, run_history, market_feed):
    """TestClient with global state wired to test objects."""
    deps.set_state("simulator", sim)
    deps.set_state("run_history", run_history)
    deps.set_state("market_feed", market_feed)
    with patch("routes.deps.API_KEY", TEST_API_KEY), patch("server.simulator", sim):
        from server import app
        yield TestClient(app)
    for key in ("simulator", "run_history", "market_feed"):
        deps.set_state(key, None)


class TestHealthEndpoints:

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["running"] is False
        assert "feeds" in data

    def test_instruments(self, client):
        data = client.get("/api/instruments").json()

        assert len(data["instruments"]) == len(INSTRUMENTS)
        assert data["instruments"][0]["symbol"] == "NAS100"


class TestSimulatorEndpoints:

    def test_state(self, client):
        data = client.get("/api/sim/state").json()

        assert data["balance"] == 1.0
        assert data["tick"] == 0
        assert data["running"] is False

    def test_prices(self, client):
        data = client.get("/api/sim/prices").json()

        assert data["prices"]["AAPL"]["price"] == INSTRUMENTS["AAPL"].price
        assert data["prices"]["AAPL"]["history"] == [INSTRUMENTS["AAPL"].price]

    def test_empty_logs(self, client):
        assert client.get("/api/sim/trades").json() == {"trades": []}
        assert client.get("/api/sim/pm-trades").json() == {"trades": []}
        assert client.get("/api/sim/signals").json() == {"signals": []}

    def test_trades_after_play(self, client, sim, auth_headers):
        client.post("/api/sim/start", headers=auth_headers)
        for _ in range(100):
            sim.advance_frame()

        trades = client.get("/api/sim/trades?limit=5").json()["trades"]
        assert len(trades) <= 5
        assert all("type" in t and "instrument" in t for t in trades)

    def test_start_stop(self, client, sim, auth_headers):
        assert client.post("/api/sim/start", headers=auth_headers).json() == {"running": True}
        assert sim.running
        assert client.post("/api/sim/stop", headers=auth_headers).json() == {"running": False}

    def test_start_after_bust_conflicts(self, client, sim, auth_headers):
        sim.state.balance = 0.5

        response = client.post("/api/sim/start", headers=auth_headers)

        assert response.status_code == 409

    def test_reset(self, client, sim, auth_headers):
        sim.start()
        sim.advance_frame()

        data = client.post("/api/sim/reset", headers=auth_headers).json()

        assert data["status"] == "ok"
        assert data["state"]["tick"] == 0
        assert sim.state.tick == 0

    def test_milestones(self, client):
        milestones = client.get("/api/sim/milestones").json()["milestones"]

        assert milestones[0] == {"level": 1, "reached": True}
        assert milestones[1] == {"level": 2, "reached": False}


class TestAuth:

    @pytest.mark.parametrize("method,path", [
        ("post", "/api/sim/start"),
        ("post", "/api/sim/stop"),
        ("post", "/api/sim/reset"),
        ("delete", "/api/runs"),
    ])
    def test_missing_key_rejected(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 403

    def test_wrong_key_rejected(self, client):
        response = client.post("/api/sim/start", headers={"X-API-Key": "nope"})
        assert response.status_code == 403

    def test_config_update_requires_key(self, client):
        response = client.post("/api/sim/config", json={"cooldown_ticks": 10})
        assert response.status_code == 403


class TestConfigEndpoints:

    def test_get_config(self, client):
        data = client.get("/api/sim/config").json()

        assert data["starting_balance"] == 1.0
        assert data["target"] == 1e12

    def test_update_config(self, client, sim, auth_headers):
        response = client.post("/api/sim/config", json={"extended_target": False, "cooldown_ticks": 80},
                               headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["config"]["target"] == 1e9
        assert sim.config.cooldown_ticks == 80

    @pytest.mark.parametrize("body", [
        {"not_a_field": 1},
        {"cooldown_ticks": "ten"},
        {"cooldown_ticks": 2.5},
        {"extended_target": 1},
        {"bust_floor": -1},
        {"max_series_len": 9},
        {"bust_floor": 1.0},
    ])
    def test_invalid_update(self, client, sim, auth_headers, body):
        response = client.post("/api/sim/config", json=body, headers=auth_headers)

        assert response.status_code == 400
        assert "error" in response.json()
        assert sim.config.cooldown_ticks == 50


class TestMarketsEndpoint:

    def test_markets_with_edges(self, client):
        data = client.get("/api/markets").json()

        assert data["updated_at"] == 1700000000.0
        assert [m["id"] for m in data["markets"]] == ["m1", "m2"]
        assert data["markets"][0]["has_edge"] is True
        assert data["markets"][0]["side"] == "YES"
        assert data["markets"][0]["recently_bet"] is False

    def test_edges_only(self, client):
        data = client.get("/api/markets?edges_only=true").json()
        assert [m["id"] for m in data["markets"]] == ["m1"]

    def test_recently_bet_flag(self, client, sim, clock):
        sim.state.pm_last_bet["m1"] = clock()

        data = client.get("/api/markets").json()

        assert data["markets"][0]["recently_bet"] is True


class TestRunEndpoints:

    def _record(self, run_history, won):
        run_history.save_run(RunRecord(
            won=won, final_balance=2e12 if won else 0.5, duration=10.0,
            trade_count=40, trade_win_rate=50.0, ticks=5000, target=1e12,
        ))

    def test_empty(self, client):
        assert client.get("/api/runs").json() == {"runs": []}
        assert client.get("/api/runs/stats").json() == {"stats": None}

    def test_runs_and_stats(self, client, run_history):
        self._record(run_history, True)
        self._record(run_history, False)

        runs = client.get("/api/runs").json()["runs"]
        stats = client.get("/api/runs/stats").json()["stats"]

        assert [r["won"] for r in runs] == [True, False]
        assert stats["total_runs"] == 2
        assert stats["win_rate"] == 50

    def test_clear(self, client, run_history, auth_headers):
        self._record(run_history, False)

        data = client.delete("/api/runs", headers=auth_headers).json()

        assert data == {"status": "ok", "cleared": 1}
        assert run_history.get_runs() == []


class TestNotInitialized:

    def test_state_unavailable(self, client):
        deps.set_state("simulator", None)

        assert client.get("/api/sim/state").status_code == 503
        assert client.get("/api/sim/trades").json() == {"trades": []}


class TestWebSocket:

    def test_init_and_ping(self, client):
        with client.websocket_connect("/ws") as ws:
            init = ws.receive_json()
            assert init["type"] == "init"
            assert len(init["instruments"]) == len(INSTRUMENTS)
            assert init["state"]["balance"] == 1.0

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"type": "get_prices"})
            prices = ws.receive_json()
            assert prices["type"] == "prices"
            assert "AAPL" in prices["data"]


class TestBrokerOrder:

    def test_order_shape(self):
        from server import build_broker_order

        order = build_broker_order({
            "action": "buy", "sym": "NVDA", "entry": 185.0, "stop": 181.9,
            "target": 194.3, "size": 0.0043, "ts": 1,
        })

        assert order == {
            "symbol": "NVDA",
            "qty": 0.0043,
            "side": "buy",
            "type": "market",
            "time_in_force": "day",
        }

    @pytest.mark.asyncio
    async def test_forward_signal_success(self):
        from server import forward_signal

        resp = MagicMock(status=200)
        resp.__aenter__ = AsyncMock(return_value=resp)
        resp.__aexit__ = AsyncMock(return_value=False)
        signal = {"action": "buy", "sym": "KO", "size": 0.02, "entry": 70.0, "stop": 68.8, "target": 73.5, "ts": 1}

        with patch("server.retry_http_request", AsyncMock(return_value=resp)) as request:
            assert await forward_signal(signal, "https://broker.test/orders") is True

        assert request.await_args.kwargs["json"]["symbol"] == "KO"

    @pytest.mark.asyncio
    async def test_forward_signal_rejected(self):
        from server import forward_signal

        resp = MagicMock(status=422)
        resp.text = AsyncMock(return_value="insufficient buying power")
        resp.__aenter__ = AsyncMock(return_value=resp)
        resp.__aexit__ = AsyncMock(return_value=False)
        signal = {"action": "buy", "sym": "KO", "size": 0.02}

        with patch("server.retry_http_request", AsyncMock(return_value=resp)):
            assert await forward_signal(signal, "https://broker.test/orders") is False


class SlowSocket:
    """WebSocket stand-in whose sends yield to the event loop"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send_text(self, data: str):
        await asyncio.sleep(0.01)
        if self.fail:
            raise ConnectionError("closed")
        self.sent.append(data)


class TestBroadcast:

    @pytest.mark.asyncio
    async def test_client_joins_during_broadcast(self):
        import server

        first, second, late = SlowSocket(), SlowSocket(), SlowSocket()
        clients = {first, second}

        async def join_midway():
            await asyncio.sleep(0.005)
            clients.add(late)

        with patch("server.ws_clients", clients):
            await asyncio.gather(server.broadcast({"type": "sim_state"}), join_midway())

        assert len(first.sent) == 1
        assert len(second.sent) == 1
        assert late in clients

    @pytest.mark.asyncio
    async def test_failed_client_dropped(self):
        import server

        good, dead = SlowSocket(), SlowSocket(fail=True)
        clients = {good, dead}

        with patch("server.ws_clients", clients):
            await server.broadcast({"type": "trade"})

        assert clients == {good}

    @pytest.mark.asyncio
    async def test_state_loop_survives_broadcast_error(self, sim):
        import server

        send = AsyncMock(side_effect=[RuntimeError("boom"), None, asyncio.CancelledError()])
        with patch("server.ws_clients", {SlowSocket()}), patch("server.simulator", sim), \
                patch("server.broadcast", send), patch("server.asyncio.sleep", AsyncMock()):
            with pytest.raises(asyncio.CancelledError):
                await server.broadcast_state_loop()

        assert send.await_count == 3


class TestBackgroundSends:

    @pytest.mark.asyncio
    async def test_task_held_until_done(self):
        import server

        async def send():
            return "sent"

        task = server.spawn(send())
        assert task in server.pending_sends

        await task
        await asyncio.sleep(0)
        assert task not in server.pending_sends

    @pytest.mark.asyncio
    async def test_failure_logged(self, caplog):
        import server

        async def send():
            raise ConnectionError("broker down")

        task = server.spawn(send())
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

        assert task not in server.pending_sends
        assert "broker down" in caplog.text


class TestQuotesEndpoint:

    def test_no_feed(self, client):
        assert client.get("/api/quotes").json() == {"quotes": []}

    def test_quotes_flag_freshness(self, client, clock):
        from data_feeds import QuoteFeed, Quote
        from retry import FeedHealthMonitor

        feed = QuoteFeed(symbols={"AAPL": "AAPL", "MSFT": "MSFT"}, max_age_sec=300,
                         monitor=FeedHealthMonitor(clock=clock), clock=clock)
        feed.quotes = {
            "MSFT": Quote(symbol="MSFT", price=460.0, updated_at=clock() - 400),
            "AAPL": Quote(symbol="AAPL", price=250.0, updated_at=clock(), change=1.5),
        }
        deps.set_state("quote_feed", feed)
        try:
            quotes = client.get("/api/quotes").json()["quotes"]
        finally:
            deps.set_state("quote_feed", None)

        assert [q["symbol"] for q in quotes] == ["AAPL", "MSFT"]
        assert quotes[0]["fresh"] is True
        assert quotes[0]["change"] == 1.5
        assert quotes[1]["fresh"] is False
