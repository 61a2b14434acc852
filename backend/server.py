#!/usr/bin/env python3
"""
API and WebSocket server for the Rise trading simulator.
Runs the simulation loop and streams session state to the frontend.
"""

import asyncio
import json
import logging
import os
from datetime import datetime
from typing import Optional, Set

import aiohttp
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from config import INSTRUMENTS, DEFAULT_CONFIG
from data_feeds import PredictionMarketFeed, QuoteFeed
from log_setup import setup_logging
from retry import retry_http_request, feed_monitor, SIGNAL_RETRY_CONFIG
from routes import simulator_router, markets_router, runs_router
from routes.deps import set_state
from run_history import RunHistory
from simulator import TradingSimulator

logger = logging.getLogger(__name__)

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR", "logs")
BROKER_SIGNAL_URL = os.getenv("BROKER_SIGNAL_URL")

# ============================================================================
# FASTAPI APP
# ============================================================================

app = FastAPI(
    title="Rise Simulator API",
    description="Simulated $1 to $1T trading session with prediction-market edge betting",
    version="1.0.0",
)

# CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(simulator_router)
app.include_router(markets_router)
app.include_router(runs_router)

# ============================================================================
# GLOBAL STATE
# ============================================================================

simulator: Optional[TradingSimulator] = None
run_history: Optional[RunHistory] = None
market_feed: Optional[PredictionMarketFeed] = None
quote_feed: Optional[QuoteFeed] = None

# WebSocket clients
ws_clients: Set[WebSocket] = set()

# Background tasks
background_tasks: list[asyncio.Task] = []

# Fire-and-forget sends started from simulator callbacks
pending_sends: Set[asyncio.Task] = set()


# ============================================================================
# STARTUP / SHUTDOWN
# ============================================================================

@app.on_event("startup")
async def startup():
    """Initialize feeds, the simulator and background loops"""
    global simulator, run_history, market_feed, quote_feed

    setup_logging(LOG_DIR)

    run_history = RunHistory(db_path=os.path.join(DATA_DIR, "runs.db"))
    market_feed = PredictionMarketFeed()
    quote_feed = QuoteFeed(max_age_sec=DEFAULT_CONFIG.quote_max_age_sec)

    simulator = TradingSimulator(
        history=run_history,
        reference_source=quote_feed.get_reference_prices,
    )
    simulator.on_signal = lambda sig: spawn(handle_signal(sig))
    simulator.on_trade = lambda entry: spawn(
        broadcast({"type": "trade", "data": entry.to_dict()})
    )
    simulator.on_session_end = lambda run: spawn(
        broadcast({"type": "run_complete", "data": run.to_dict()})
    )

    set_state("simulator", simulator)
    set_state("run_history", run_history)
    set_state("market_feed", market_feed)
    set_state("quote_feed", quote_feed)

    background_tasks.append(asyncio.create_task(quote_feed.start(poll_interval=30.0)))
    background_tasks.append(asyncio.create_task(market_feed.start(poll_interval=60.0)))
    background_tasks.append(asyncio.create_task(simulation_loop()))
    background_tasks.append(asyncio.create_task(pm_scan_loop()))
    background_tasks.append(asyncio.create_task(broadcast_state_loop()))

    logger.info(f"[Server] Started | data dir {DATA_DIR} | broker forwarding {'on' if BROKER_SIGNAL_URL else 'off'}")


@app.on_event("shutdown")
async def shutdown():
    """Clean up on shutdown"""
    if quote_feed:
        quote_feed.stop()
    if market_feed:
        market_feed.stop()
    if simulator:
        simulator.stop()

    for task in background_tasks + list(pending_sends):
        task.cancel()
    background_tasks.clear()
    pending_sends.clear()

    logger.info("[Server] Shutdown complete")


# ============================================================================
# BACKGROUND LOOPS
# ============================================================================

async def simulation_loop():
    """Advance the running session once per frame interval"""
    while True:
        await asyncio.sleep(simulator.config.frame_interval_sec)
        try:
            simulator.advance_frame()
        except Exception:
            logger.exception("Simulation frame failed")


async def pm_scan_loop():
    """Run the edge scanner against the latest market snapshot"""
    while True:
        await asyncio.sleep(simulator.config.pm_scan_interval_sec)
        try:
            result = simulator.scan_prediction_markets(market_feed.get_markets())
        except Exception:
            logger.exception("Prediction-market scan failed")
            continue
        if result:
            await broadcast({"type": "pm_bet", "data": result.to_dict()})


async def broadcast_state_loop():
    """Push session state to clients a few times a second"""
    while True:
        await asyncio.sleep(0.25)
        if not (ws_clients and simulator):
            continue
        try:
            await broadcast({"type": "sim_state", "data": simulator.get_summary()})
        except Exception:
            logger.exception("State broadcast failed")


# ============================================================================
# BROADCAST / SIGNAL HELPERS
# ============================================================================

def spawn(coro) -> asyncio.Task:
    """Schedule a send without blocking the frame; the task is held until it finishes"""
    task = asyncio.create_task(coro)
    pending_sends.add(task)
    task.add_done_callback(_send_done)
    return task


def _send_done(task: asyncio.Task):
    pending_sends.discard(task)
    if not task.cancelled() and task.exception():
        logger.error(f"Background send failed: {task.exception()}")


async def broadcast(message: dict):
    """Broadcast message to all connected WebSocket clients"""
    if not ws_clients:
        return

    data = json.dumps(message)
    disconnected = set()

    for ws in list(ws_clients):
        try:
            await ws.send_text(data)
        except Exception:
            disconnected.add(ws)

    for ws in disconnected:
        ws_clients.discard(ws)


def build_broker_order(signal: dict) -> dict:
    """Market order for the broker webhook from a simulator buy signal"""
    return {
        "symbol": signal["sym"],
        "qty": signal["size"],
        "side": signal["action"],
        "type": "market",
        "time_in_force": "day",
    }


async def forward_signal(signal: dict, url: str) -> bool:
    """POST a signal to the broker webhook; failures are logged, not raised"""
    order = build_broker_order(signal)
    try:
        async with aiohttp.ClientSession() as session:
            resp = await retry_http_request(
                session, "POST", url,
                json=order,
                timeout=aiohttp.ClientTimeout(total=10),
                config=SIGNAL_RETRY_CONFIG,
            )
            async with resp:
                if resp.status >= 400:
                    body = await resp.text()
                    logger.warning(f"[Broker] {order['symbol']} rejected: HTTP {resp.status} {body[:200]}")
                    return False
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning(f"[Broker] Failed to forward {order['symbol']} signal: {e}")
        return False

    logger.info(f"[Broker] Forwarded {order['side']} {order['symbol']} qty {order['qty']:.6g}")
    return True


async def handle_signal(signal: dict):
    await broadcast({"type": "signal", "data": signal})
    if BROKER_SIGNAL_URL:
        await forward_signal(signal, BROKER_SIGNAL_URL)


# ============================================================================
# REST ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "status": "ok",
        "timestamp": datetime.now().isoformat(),
        "running": simulator.running if simulator else False,
        "feeds": feed_monitor.get_status(),
    }


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """
    WebSocket endpoint for real-time session data.

    Clients receive:
    - init: Instruments and the current session state
    - sim_state: Session summary (4x per second)
    - signal: New position signals
    - trade: Trade log entries as they happen
    - pm_bet: Settled prediction-market bets
    - run_complete: Recorded run when a session ends
    """
    await ws.accept()
    ws_clients.add(ws)
    logger.info(f"[WS] Client connected. Total: {len(ws_clients)}")

    try:
        await ws.send_json({
            "type": "init",
            "instruments": [inst.to_dict() for inst in INSTRUMENTS.values()],
            "state": simulator.get_summary() if simulator else None,
        })

        while True:
            try:
                data = await asyncio.wait_for(ws.receive_text(), timeout=30)
                msg = json.loads(data)

                if msg.get("type") == "ping":
                    await ws.send_json({"type": "pong"})

                elif msg.get("type") == "get_prices" and simulator:
                    await ws.send_json({"type": "prices", "data": simulator.get_prices()})

            except asyncio.TimeoutError:
                await ws.send_json({"type": "ping"})

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[WS] Error: {e}")
    finally:
        ws_clients.discard(ws)
        logger.info(f"[WS] Client disconnected. Total: {len(ws_clients)}")


# ============================================================================
# MAIN
# ============================================================================

def main():
    """Run the server"""
    uvicorn.run(
        "server:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
