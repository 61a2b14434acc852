"""
Shared dependencies for route modules.

This module provides access to global state and shared utilities.
"""

import logging
import os
import secrets
import sys

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

logger = logging.getLogger(__name__)

# =============================================================================
# SECURITY: API Key Authentication
# =============================================================================

ENV = os.getenv("ENV", "development").lower()
API_KEY = os.getenv("API_KEY")

if not API_KEY:
    if ENV == "production":
        logger.critical("[Security] FATAL: API_KEY environment variable not set.")
        sys.exit(1)
    else:
        API_KEY = secrets.token_urlsafe(32)
        logger.warning(f"[Security] Generated temporary key: {API_KEY}")

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    """Verify API key for protected endpoints"""
    if not api_key or not secrets.compare_digest(api_key, API_KEY):
        raise HTTPException(
            status_code=403,
            detail="Invalid or missing API key. Include X-API-Key header."
        )
    return api_key


# =============================================================================
# GLOBAL STATE ACCESSORS
# =============================================================================

# These will be set by server.py at startup
_state = {
    "simulator": None,
    "run_history": None,
    "market_feed": None,
    "quote_feed": None,
}


def set_state(key: str, value):
    """Set a global state value (called from server.py)"""
    if key not in _state:
        raise KeyError(f"Unknown state key: {key}")
    _state[key] = value


def get_simulator():
    return _state["simulator"]


def get_run_history():
    return _state["run_history"]


def get_market_feed():
    return _state["market_feed"]


def get_quote_feed():
    return _state["quote_feed"]
