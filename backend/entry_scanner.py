"""
Entry Scanner

Evaluates every instrument against a multi-filter momentum rule and picks
at most one to enter. Pure function of its inputs; opening the position is
the caller's job.
"""

import math
from dataclasses import dataclass, asdict
from typing import Optional

from config import MIN_SERIES_LEN

MIN_SAMPLES = MIN_SERIES_LEN
SHORT_WINDOW = 10
LONG_WINDOW = 20
MAX_STDDEV = 0.025
MIN_RISING_BARS = 5

# Below this balance fractional entries of any size are allowed
DUST_FREE_BALANCE = 2.0
MIN_DUST_SHARES = 0.01


@dataclass
class EntryCandidate:
    symbol: str
    price: float
    strength: float  # (current - mean10) / mean10

    def to_dict(self) -> dict:
        return asdict(self)


def min_strength(balance: float) -> float:
    """Higher balances require a stronger momentum signal"""
    if balance < 2:
        return 0.008
    if balance < 10:
        return 0.009
    if balance < 100:
        return 0.010
    return 0.012


def presize_fraction(balance: float) -> float:
    """Rough position fraction used only for the dust pre-check"""
    if balance < 2:
        return 0.70
    if balance < 5:
        return 0.50
    if balance < 10:
        return 0.30
    return 0.15


def evaluate(prices: list[float], balance: float) -> Optional[float]:
    """
    Run the momentum filters on one price series.

    Returns the momentum strength if every filter passes and the strength
    clears the balance-tiered minimum, else None.
    """
    if len(prices) < MIN_SAMPLES:
        return None

    current = prices[-1]

    if balance >= DUST_FREE_BALANCE:
        if balance * presize_fraction(balance) / current < MIN_DUST_SHARES:
            return None

    recent = prices[-SHORT_WINDOW:]
    avg = sum(recent) / SHORT_WINDOW
    variance = sum(((p - avg) / avg) ** 2 for p in recent) / SHORT_WINDOW
    if math.sqrt(variance) > MAX_STDDEV:
        return None

    strength = (current - avg) / avg

    rising_bars = sum(1 for i in range(1, len(recent)) if recent[i] > recent[i - 1])
    if rising_bars < MIN_RISING_BARS:
        return None

    if len(prices) >= LONG_WINDOW:
        long_avg = sum(prices[-LONG_WINDOW:]) / LONG_WINDOW
        if current <= long_avg:
            return None

    # Previous bar must already sit above the short mean (no single-bar spikes)
    prev_strength = (prices[-2] - avg) / avg
    if prev_strength <= 0:
        return None

    if strength <= min_strength(balance):
        return None

    return strength


def scan(
    series: dict[str, list[float]],
    balance: float,
    last_traded: Optional[str] = None,
    cooldowns: Optional[dict[str, int]] = None,
    tick: int = 0,
) -> Optional[EntryCandidate]:
    """
    Pick the strongest eligible instrument.

    Args:
        series: symbol -> recent prices, oldest first
        balance: current account balance
        last_traded: symbol of the most recent entry (never re-entered directly)
        cooldowns: symbol -> tick at which its post-stop cooldown expires
        tick: current simulation tick
    """
    cooldowns = cooldowns or {}
    best: Optional[EntryCandidate] = None

    for sym, prices in series.items():
        if sym == last_traded:
            continue
        if tick < cooldowns.get(sym, 0):
            continue

        strength = evaluate(prices, balance)
        if strength is None:
            continue

        if best is None or strength > best.strength:
            best = EntryCandidate(symbol=sym, price=prices[-1], strength=strength)

    return best
