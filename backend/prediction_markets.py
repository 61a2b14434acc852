"""
Prediction-Market Edge Scanner

Periodically looks through the latest prediction-market snapshot for
near-certain binary outcomes and stakes a fractional-Kelly bet on the best
one. Bets settle immediately against a simulated house edge.
"""

import logging
import random
import time
from dataclasses import dataclass, asdict
from typing import Callable, Optional

from models import PredictionMarketTrade, SessionState, TradeLogEntry, TradeType

logger = logging.getLogger(__name__)

MIN_EDGE = 0.4  # Implied probability above 90% or below 10%
TOP_N = 3
KELLY_FRACTION = 0.25
KELLY_CAP = 0.1
MAX_BET_PCT = 0.05  # Hard cap per bet regardless of Kelly
MIN_BET = 0.50
MIN_BALANCE = 1.0
HOUSE_EDGE = 0.95  # Win probability is discounted to p * 0.95


@dataclass
class PredictionMarket:
    """Read-only market snapshot"""
    id: str
    question: str
    probability: float  # YES price, 0-1
    volume24h: float = 0.0
    slug: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class EdgeOpportunity:
    market: PredictionMarket
    edge: float  # Distance of the favoured side from 50%
    side: str  # "YES" or "NO"
    prob: float  # Probability of the favoured side

    @property
    def has_edge(self) -> bool:
        return self.edge > MIN_EDGE

    def to_dict(self) -> dict:
        return {
            **self.market.to_dict(),
            "edge": round(self.edge, 4),
            "side": self.side,
            "prob": round(self.prob, 4),
            "has_edge": self.has_edge,
        }


@dataclass
class BetResult:
    market_id: str
    side: str
    prob: float
    kelly: float
    size: float
    won: bool
    payout: float

    def to_dict(self) -> dict:
        return asdict(self)


def detect_edge(market: PredictionMarket) -> EdgeOpportunity:
    p = market.probability
    return EdgeOpportunity(
        market=market,
        edge=max(p, 1 - p) - 0.5,
        side="YES" if p > 0.5 else "NO",
        prob=max(p, 1 - p),
    )


def calculate_kelly(odds: float, win_prob: float, fractional: float = KELLY_FRACTION) -> float:
    """
    Fractional Kelly stake: f = (b*p - q) / b with b = odds - 1.

    Clamped to [0, KELLY_CAP]; degenerate odds (b <= 0) stake nothing.
    """
    b = odds - 1
    if b <= 0:
        return 0.0
    kelly = (b * win_prob - (1 - win_prob)) / b
    return max(0.0, min(kelly * fractional, KELLY_CAP))


def find_opportunities(markets: list[PredictionMarket]) -> list[EdgeOpportunity]:
    """Markets with an edge, strongest first, at most TOP_N"""
    opportunities = [detect_edge(m) for m in markets]
    opportunities = [o for o in opportunities if o.has_edge]
    opportunities.sort(key=lambda o: o.edge, reverse=True)
    return opportunities[:TOP_N]


def bet_size(balance: float, prob: float) -> tuple[float, float]:
    """Return (kelly fraction, dollar stake) for a bet on a side with probability prob"""
    if prob >= 1:
        return 0.0, 0.0
    kelly = calculate_kelly(prob / (1 - prob), prob)
    return kelly, min(balance * kelly, balance * MAX_BET_PCT)


class EdgeScanner:
    """Runs one scan-and-settle pass against a SessionState"""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rng = rng or random.Random()
        self.clock = clock

    def scan(self, state: SessionState, markets: list[PredictionMarket]) -> Optional[BetResult]:
        if not markets or state.balance <= MIN_BALANCE:
            return None

        opportunities = find_opportunities(markets)
        if not opportunities:
            return None

        opp = opportunities[0]
        kelly, size = bet_size(state.balance, opp.prob)
        if size <= MIN_BET:
            return None

        return self.settle(state, opp, kelly, size)

    def settle(self, state: SessionState, opp: EdgeOpportunity, kelly: float, size: float) -> BetResult:
        won = self.rng.random() < opp.prob * HOUSE_EDGE
        payout = size * (1 / opp.prob - 1) if won else -size

        state.apply_pnl_floored(payout)
        state.pm_balance += payout

        now = self.clock()
        market_id = opp.market.id or opp.market.slug
        state.pm_last_bet[market_id] = now

        trade_type = TradeType.PM_WIN if won else TradeType.PM_LOSS
        state.log_pm_trade(PredictionMarketTrade(
            type=trade_type,
            market_id=market_id,
            question=opp.market.question,
            side=opp.side,
            size=size,
            pnl=payout,
            prob=opp.prob,
            timestamp=now,
        ))
        state.log_trade(TradeLogEntry(type=trade_type, instrument=f"[PM] {opp.side}", pnl=payout))

        logger.info(
            f"{trade_type.value} {opp.side} @ {opp.prob:.1%} | stake ${size:,.2f} | "
            f"P&L ${payout:+,.2f} | {opp.market.question[:60]}"
        )

        return BetResult(
            market_id=market_id,
            side=opp.side,
            prob=opp.prob,
            kelly=kelly,
            size=size,
            won=won,
            payout=payout,
        )

    def recently_bet(self, state: SessionState, market_id: str, within_sec: float = 60.0) -> bool:
        ts = state.pm_last_bet.get(market_id)
        return ts is not None and self.clock() - ts < within_sec
