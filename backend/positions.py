"""
Position Lifecycle Manager

NONE -> OPEN -> {STOPPED, TARGET_HIT} -> NONE

Checks the single open position against the latest price once per frame,
realizes P&L into the session balance and ratchets the trailing stop.
"""

import logging
from typing import Optional

from config import next_milestone
from models import (
    Position,
    PositionState,
    SessionState,
    TradeLogEntry,
    TradeType,
)
from position_sizing import PositionPlan

logger = logging.getLogger(__name__)

TRAIL_TRIGGER_PCT = 0.02  # Start trailing once up more than 2%
TRAIL_MULT = 0.97  # Trail 3% below the current price


def open_position(state: SessionState, plan: PositionPlan) -> Position:
    """Open a position from a sizing plan and log the BUY"""
    if state.position is not None:
        raise RuntimeError(f"Position already open on {state.position.symbol}")

    position = Position(
        symbol=plan.symbol,
        entry=plan.entry,
        size=plan.size,
        stop=plan.stop,
        target=plan.target,
        opened_tick=state.tick,
    )
    state.position = position
    state.last_traded = plan.symbol
    state.log_trade(TradeLogEntry(type=TradeType.BUY, instrument=plan.symbol, price=plan.entry))

    logger.info(
        f"BUY {plan.symbol} @ {plan.entry:.6g} | size {plan.size:.6g} | "
        f"stop {plan.stop:.6g} | target {plan.target:.6g}"
    )
    return position


def check_position(state: SessionState, current: Optional[float]) -> PositionState:
    """
    Apply stop-loss, take-profit and trailing-stop rules to the open position.

    Returns NONE when nothing is open, STOPPED / TARGET_HIT when the position
    closed on this check, otherwise OPEN.
    """
    position = state.position
    if position is None or current is None:
        return PositionState.NONE if position is None else PositionState.OPEN

    pnl = position.unrealized_pnl(current)

    if current <= position.stop:
        state.apply_pnl_floored(pnl)
        state.log_trade(TradeLogEntry(type=TradeType.STOP, instrument=position.symbol, pnl=pnl))
        state.symbol_losses[position.symbol] = state.symbol_losses.get(position.symbol, 0.0) + pnl
        state.cooldowns[position.symbol] = state.tick + state.config.cooldown_ticks
        state.position = None
        logger.info(f"STOP {position.symbol} @ {current:.6g} | P&L ${pnl:+,.2f} | balance ${state.balance:,.2f}")
        return PositionState.STOPPED

    if current >= position.target:
        # Uncapped: the balance may run past the current milestone
        state.balance += pnl
        state.log_trade(TradeLogEntry(type=TradeType.WIN, instrument=position.symbol, pnl=pnl))
        state.symbol_wins[position.symbol] = state.symbol_wins.get(position.symbol, 0.0) + pnl
        state.position = None

        if state.balance >= state.current_milestone:
            upcoming = next_milestone(state.balance)
            if upcoming:
                state.current_milestone = upcoming

        logger.info(f"WIN {position.symbol} @ {current:.6g} | P&L ${pnl:+,.2f} | balance ${state.balance:,.2f}")
        return PositionState.TARGET_HIT

    if position.return_pct(current) > TRAIL_TRIGGER_PCT:
        position.stop = max(position.stop, current * TRAIL_MULT)

    return PositionState.OPEN
