"""
Position Sizing Policy

Maps the account balance (and proximity to the next milestone) to the
fraction of balance risked on a new entry, the share count, and the
stop-loss / take-profit levels.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

from config import BILLION

logger = logging.getLogger(__name__)

MIN_SHARES = 0.0000001
NEAR_MILESTONE_PCT = 0.05  # Within 5% of the next milestone
NEAR_MILESTONE_CUT = 0.7  # 30% size reduction near milestones

STOP_MULT = 0.983  # 1.7% stop
STOP_MULT_NEAR_MILESTONE = 0.985  # 1.5% stop
TAKE_PROFIT_MULT = 1.05

MAX_GAIN_PCT = 0.05
OVERSHOOT_TOLERANCE = 1.1
OVERSHOOT_SAFETY = 0.8


@dataclass
class PositionPlan:
    """Sizing decision for a prospective entry"""
    symbol: str
    entry: float
    size: float  # Shares
    stop: float
    target: float
    fraction: float
    near_milestone: bool
    resized: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def standard_fraction(balance: float) -> float:
    if balance < 100:
        return 0.80
    if balance < 10_000:
        return 0.65
    if balance < 1_000_000:
        return 0.50
    if balance < 100_000_000:
        return 0.35
    return 0.25


# (threshold, fraction) from the top down; $1B-$2B falls through to 0.25
_EXTENDED_SCHEDULE = [
    (5e12, 0.35),
    (2e12, 0.38),
    (1e12, 0.40),
    (500e9, 0.45),
    (200e9, 0.40),
    (100e9, 0.38),
    (50e9, 0.35),
    (20e9, 0.33),
    (10e9, 0.32),
    (5e9, 0.30),
    (2e9, 0.28),
]


def extended_fraction(balance: float) -> float:
    for threshold, fraction in _EXTENDED_SCHEDULE:
        if balance >= threshold:
            return fraction
    return 0.25


def is_near_milestone(balance: float, milestone: Optional[float]) -> bool:
    """Only milestones of $1B and up get the extra caution"""
    if not milestone or milestone < BILLION:
        return False
    return (milestone - balance) / milestone < NEAR_MILESTONE_PCT


def size_fraction(balance: float, extended: bool, milestone: Optional[float] = None) -> float:
    """Fraction of balance to commit to a new position"""
    if extended and balance >= BILLION:
        fraction = extended_fraction(balance)
    else:
        fraction = standard_fraction(balance)

    if is_near_milestone(balance, milestone):
        fraction *= NEAR_MILESTONE_CUT
    return fraction


def take_profit_multiplier(balance: float, extended: bool) -> float:
    if not (extended and balance >= BILLION):
        return TAKE_PROFIT_MULT
    if balance >= 100e9:
        return 1.08
    if balance >= 10e9:
        return 1.07
    if balance >= 5e9:
        return 1.06
    return 1.055


def stop_multiplier(near_milestone: bool) -> float:
    return STOP_MULT_NEAR_MILESTONE if near_milestone else STOP_MULT


def plan_position(
    symbol: str,
    price: float,
    balance: float,
    terminal_target: float,
    extended: bool = True,
    milestone: Optional[float] = None,
) -> Optional[PositionPlan]:
    """
    Size an entry at `price`. Returns None when the entry should be skipped.

    The overshoot guard caps how far one winning trade may carry the balance
    past the terminal target: if a 5% gain would land beyond 110% of the
    target, the position is resized to 80% of the shares that would exactly
    reach it, or skipped when that is less than half the planned size.
    """
    near = is_near_milestone(balance, milestone)
    fraction = size_fraction(balance, extended, milestone)

    shares = balance * fraction / price
    if shares < MIN_SHARES:
        return None

    resized = False
    max_win = shares * price * MAX_GAIN_PCT
    if balance + max_win > terminal_target * OVERSHOOT_TOLERANCE:
        safe_shares = (terminal_target - balance) / (price * MAX_GAIN_PCT) * OVERSHOOT_SAFETY
        if safe_shares < shares * 0.5:
            logger.info(f"Skipping {symbol}: entry would overshoot target ${terminal_target:,.0f}")
            return None
        shares = min(shares, safe_shares)
        resized = True

    return PositionPlan(
        symbol=symbol,
        entry=price,
        size=shares,
        stop=price * stop_multiplier(near),
        target=price * take_profit_multiplier(balance, extended),
        fraction=fraction,
        near_milestone=near,
        resized=resized,
    )
