"""
Shared simulator state and records.

All mutable simulator state lives in one SessionState object that is
passed by reference to the lifecycle manager and the edge scanner.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from config import SimulatorConfig, DEFAULT_CONFIG


class TradeType(Enum):
    """Trade log entry types"""
    BUY = "BUY"
    WIN = "WIN"
    STOP = "STOP"
    PM_WIN = "PM_WIN"
    PM_LOSS = "PM_LOSS"


class PositionState(Enum):
    """Outcome of one lifecycle check"""
    NONE = "NONE"
    OPEN = "OPEN"
    STOPPED = "STOPPED"
    TARGET_HIT = "TARGET_HIT"


@dataclass(frozen=True)
class TradeLogEntry:
    type: TradeType
    instrument: str
    pnl: Optional[float] = None
    price: Optional[float] = None

    @property
    def is_exit(self) -> bool:
        return self.pnl is not None

    def to_dict(self) -> dict:
        d = {"type": self.type.value, "instrument": self.instrument}
        if self.pnl is not None:
            d["pnl"] = round(self.pnl, 2)
        if self.price is not None:
            d["price"] = round(self.price, 2)
        return d


@dataclass
class Position:
    """The single open simulated trade"""
    symbol: str
    entry: float
    size: float  # Fractional shares, not dollars
    stop: float
    target: float
    opened_tick: int = 0

    def unrealized_pnl(self, current: float) -> float:
        return (current - self.entry) * self.size

    def return_pct(self, current: float) -> float:
        return (current - self.entry) / self.entry

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "entry": self.entry,
            "size": self.size,
            "stop": self.stop,
            "target": self.target,
            "opened_tick": self.opened_tick,
        }


@dataclass
class PredictionMarketTrade:
    """A settled prediction-market bet"""
    type: TradeType
    market_id: str
    question: str
    side: str  # "YES" or "NO"
    size: float
    pnl: float
    prob: float
    timestamp: float

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "market_id": self.market_id,
            "market": self.question,
            "side": self.side,
            "size": round(self.size, 2),
            "pnl": round(self.pnl, 2),
            "prob": round(self.prob * 100),
            "timestamp": self.timestamp,
        }


@dataclass
class SessionState:
    """Everything a simulator session mutates"""
    config: SimulatorConfig = field(default_factory=lambda: DEFAULT_CONFIG)
    balance: float = 1.0
    position: Optional[Position] = None
    tick: int = 0
    last_traded: Optional[str] = None
    cooldowns: dict[str, int] = field(default_factory=dict)  # symbol -> tick when cooldown expires
    trade_log: list[TradeLogEntry] = field(default_factory=list)
    current_milestone: float = 1e9
    next_milestone: Optional[float] = None

    # Realized P&L per symbol, split by outcome
    symbol_wins: dict[str, float] = field(default_factory=dict)
    symbol_losses: dict[str, float] = field(default_factory=dict)

    # Prediction-market half
    pm_balance: float = 0.0
    pm_trades: list[PredictionMarketTrade] = field(default_factory=list)
    pm_last_bet: dict[str, float] = field(default_factory=dict)  # market id -> timestamp

    def log_trade(self, entry: TradeLogEntry):
        self.trade_log.append(entry)
        limit = self.config.trade_log_limit
        if len(self.trade_log) > limit:
            self.trade_log = self.trade_log[-limit:]

    def log_pm_trade(self, trade: PredictionMarketTrade):
        self.pm_trades.append(trade)
        limit = self.config.pm_log_limit
        if len(self.pm_trades) > limit:
            self.pm_trades = self.pm_trades[-limit:]

    def apply_pnl_floored(self, pnl: float):
        self.balance = max(self.config.bust_floor, self.balance + pnl)

    @property
    def is_busted(self) -> bool:
        return self.balance <= self.config.bust_floor

    @property
    def is_won(self) -> bool:
        return self.balance >= self.config.target

    @property
    def is_terminal(self) -> bool:
        return self.is_busted or self.is_won

    @property
    def exits(self) -> list[TradeLogEntry]:
        return [t for t in self.trade_log if t.is_exit]

    @property
    def trade_win_rate(self) -> float:
        """Percent of logged exits with positive P&L"""
        exits = self.exits
        if not exits:
            return 0.0
        return sum(1 for t in exits if t.pnl > 0) / len(exits) * 100

