"""
Route modules for the Rise simulator API.

This package organizes API endpoints into logical groups:
- simulator: Session state, prices, logs, control and config
- markets: Prediction-market snapshot, detected edges and live quotes
- runs: Completed-run history and stats
"""

from .simulator import router as simulator_router
from .markets import router as markets_router
from .runs import router as runs_router

__all__ = [
    "simulator_router",
    "markets_router",
    "runs_router",
]
