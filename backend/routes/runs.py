"""
Completed-run history endpoints.
"""

import logging

from fastapi import APIRouter, Depends

from .deps import get_run_history, verify_api_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["runs"])


@router.get("/api/runs")
async def get_runs(limit: int = 50):
    """Stored runs, oldest first"""
    history = get_run_history()
    if not history:
        return {"runs": []}
    return {"runs": [r.to_dict() for r in history.get_runs(limit)]}


@router.get("/api/runs/stats")
async def get_run_stats():
    history = get_run_history()
    if not history:
        return {"stats": None}
    return {"stats": history.get_stats()}


@router.delete("/api/runs")
async def clear_runs(_: str = Depends(verify_api_key)):
    history = get_run_history()
    if not history:
        return {"status": "ok", "cleared": 0}
    count = len(history.get_runs())
    history.clear()
    logger.info(f"Cleared {count} stored run(s) via API")
    return {"status": "ok", "cleared": count}
