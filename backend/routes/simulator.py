"""
Simulator session endpoints: state, prices, logs, control and config.
"""

import logging

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from config import INSTRUMENTS
from .deps import get_simulator, verify_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["simulator"])


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Simulator not initialized"}, status_code=503)


@router.get("/api/instruments")
async def get_instruments():
    """The tradable basket with static reference prices"""
    return {"instruments": [inst.to_dict() for inst in INSTRUMENTS.values()]}


@router.get("/api/sim/state")
async def get_state():
    sim = get_simulator()
    if not sim:
        return _not_ready()
    return sim.get_summary()


@router.get("/api/sim/prices")
async def get_prices():
    sim = get_simulator()
    if not sim:
        return _not_ready()
    return {"tick": sim.state.tick, "prices": sim.get_prices()}


@router.get("/api/sim/trades")
async def get_trades(limit: int = 100):
    sim = get_simulator()
    if not sim:
        return {"trades": []}
    return {"trades": sim.get_trades(limit)}


@router.get("/api/sim/pm-trades")
async def get_pm_trades(limit: int = 50):
    sim = get_simulator()
    if not sim:
        return {"trades": []}
    return {"trades": sim.get_pm_trades(limit)}


@router.get("/api/sim/signals")
async def get_signals(limit: int = 20):
    sim = get_simulator()
    if not sim:
        return {"signals": []}
    return {"signals": sim.get_recent_signals(limit)}


@router.get("/api/sim/milestones")
async def get_milestones():
    sim = get_simulator()
    if not sim:
        return _not_ready()
    return {"milestones": sim.get_milestones()}


@router.get("/api/sim/config")
async def get_config():
    sim = get_simulator()
    if not sim:
        return _not_ready()
    return sim.config.to_dict()


# =============================================================================
# CONTROL (API key required)
# =============================================================================

@router.post("/api/sim/start")
async def start(_: str = Depends(verify_api_key)):
    sim = get_simulator()
    if not sim:
        return _not_ready()
    if sim.state.is_terminal:
        return JSONResponse({"error": "Session finished; reset before starting"}, status_code=409)
    sim.start()
    return {"running": sim.running}


@router.post("/api/sim/stop")
async def stop(_: str = Depends(verify_api_key)):
    sim = get_simulator()
    if not sim:
        return _not_ready()
    sim.stop()
    return {"running": sim.running}


@router.post("/api/sim/reset")
async def reset(_: str = Depends(verify_api_key)):
    sim = get_simulator()
    if not sim:
        return _not_ready()
    sim.reset()
    logger.info("Simulator reset via API")
    return {"status": "ok", "state": sim.get_summary()}


@router.post("/api/sim/config")
async def update_config(updates: dict = Body(...), _: str = Depends(verify_api_key)):
    sim = get_simulator()
    if not sim:
        return _not_ready()

    try:
        clean = sim.config.validate_updates(updates)
    except ValueError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    sim.update_config(**clean)
    logger.info(f"Config updated: {clean}")
    return {"status": "ok", "config": sim.config.to_dict()}
