"""
Simulated Trading Engine for the Rise dashboard.

Grows a $1 account toward a $1B/$1T target by trading synthetic price paths
for a fixed instrument basket, while a side scanner bets on near-certain
prediction-market outcomes. Both halves share one balance and one trade log.

Frame order:
1. Advance every price series `ticks_per_frame` times
2. Check the open position once against the latest prices
3. If no position was open at step 2, scan for one new entry

The prediction-market scan runs on its own interval and is driven by the
caller via `scan_prediction_markets`.
"""

import logging
import math
import random
import time
from typing import Callable, Optional

import entry_scanner
from config import SimulatorConfig, INSTRUMENTS, MILESTONES, next_milestone
from models import PositionState, SessionState, TradeLogEntry
from position_sizing import plan_position
from positions import check_position, open_position
from prediction_markets import BetResult, EdgeScanner, PredictionMarket
from price_path import PricePathGenerator
from run_history import RunHistory, RunRecord, SessionRecorder

logger = logging.getLogger(__name__)

# Each tick stands for 5 minutes of market time
MINUTES_PER_TICK = 5
HOURS_PER_TRADING_DAY = 6.5


def simulated_market_time(ticks: int) -> str:
    """Human-readable market time covered by `ticks`"""
    hours = ticks * MINUTES_PER_TICK / 60
    days = hours / HOURS_PER_TRADING_DAY
    if days / 252 >= 1:
        return f"{days / 252:.1f} years"
    if days / 21 >= 1:
        return f"{days / 21:.1f} months"
    if days / 5 >= 1:
        return f"{days / 5:.1f} weeks"
    if days >= 1:
        return f"{days:.1f} days"
    return f"{hours:.1f} hours"


class TradingSimulator:
    """
    Owns one simulator session.

    Handles:
    - Price path generation (live quotes as reference when fresh)
    - Entry scanning and position sizing
    - Position lifecycle (stop, target, trailing stop)
    - Prediction-market edge betting
    - Terminal detection and run recording
    """

    def __init__(
        self,
        config: Optional[SimulatorConfig] = None,
        history: Optional[RunHistory] = None,
        rng: Optional[random.Random] = None,
        reference_source: Optional[Callable[[], dict[str, float]]] = None,
        clock: Callable[[], float] = time.time,
        symbols: Optional[list[str]] = None,
    ):
        self.config = config or SimulatorConfig()
        self.rng = rng or random.Random()
        self.clock = clock
        self.reference_source = reference_source
        self.symbols = list(symbols) if symbols is not None else list(INSTRUMENTS.keys())

        self.generator = PricePathGenerator(self.symbols, rng=self.rng, max_len=self.config.max_series_len)
        self.edge_scanner = EdgeScanner(rng=self.rng, clock=clock)
        self.recorder = SessionRecorder(history)

        self.state = SessionState(config=self.config, balance=self.config.starting_balance)
        self.running = False
        self.started_at: Optional[float] = None
        self.ended_at: Optional[float] = None
        self.recent_signals: list[dict] = []

        # Callbacks
        self.on_signal: Optional[Callable[[dict], None]] = None
        self.on_trade: Optional[Callable[[TradeLogEntry], None]] = None
        self.on_session_end: Optional[Callable[[RunRecord], None]] = None

        self.reset()

    # -------------------------------------------------------------------------
    # SESSION CONTROL
    # -------------------------------------------------------------------------

    def reference_prices(self) -> dict[str, float]:
        if not self.reference_source:
            return {}
        try:
            return self.reference_source() or {}
        except Exception as e:
            logger.warning(f"Reference price source failed, using static prices: {e}")
            return {}

    def start(self) -> bool:
        """Begin or resume the session. A finished session must be reset first."""
        if self.running or self.state.is_terminal:
            return False

        self.running = True
        self.recorder.arm()
        if self.started_at is None:
            self.started_at = self.clock()
        logger.info(f"Simulator started | balance ${self.state.balance:,.2f} | tick {self.state.tick}")
        return True

    def stop(self) -> bool:
        """Pause scheduling; the open position and price series are kept"""
        if not self.running:
            return False
        self.running = False
        logger.info(f"Simulator stopped | balance ${self.state.balance:,.2f} | tick {self.state.tick}")
        return True

    def reset(self):
        """Discard the session and return to the initial state"""
        self.running = False
        self.state = SessionState(config=self.config, balance=self.config.starting_balance)
        self.generator.reseed(self.reference_prices())
        self.started_at = None
        self.ended_at = None
        self.recent_signals = []
        self.recorder.arm()

    def update_config(self, **kwargs):
        """Update configuration settings"""
        for key, value in kwargs.items():
            if hasattr(self.config, key):
                setattr(self.config, key, value)
        self.generator.set_max_len(self.config.max_series_len)

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.ended_at if self.ended_at is not None else self.clock()
        return max(0.0, end - self.started_at)

    # -------------------------------------------------------------------------
    # SIMULATION
    # -------------------------------------------------------------------------

    def advance_frame(self) -> bool:
        """One scheduled frame; does nothing unless the session is running"""
        if not self.running:
            return False
        return self.advance(self.config.ticks_per_frame)

    def advance(self, n_ticks: int) -> bool:
        """
        Apply `n_ticks` price ticks, then one position check, then one entry scan.

        Returns False without touching state once the session is terminal.
        """
        state = self.state
        if state.is_terminal:
            self._check_terminal()
            return False

        references = self.reference_prices()
        for _ in range(n_ticks):
            self.generator.step(references)
            state.tick += 1

        had_position = state.position is not None
        if had_position:
            outcome = check_position(state, self.generator.latest(state.position.symbol))
            if outcome in (PositionState.STOPPED, PositionState.TARGET_HIT):
                self._emit_trade(state.trade_log[-1])
        else:
            self._try_entry()

        self._check_terminal()
        return True

    def _try_entry(self):
        state = self.state
        if state.position is not None or state.is_busted:
            return None

        upcoming = next_milestone(state.balance)
        if upcoming:
            state.next_milestone = upcoming

        candidate = entry_scanner.scan(
            self.generator.get_series(),
            state.balance,
            last_traded=state.last_traded,
            cooldowns=state.cooldowns,
            tick=state.tick,
        )
        if candidate is None:
            return None

        try:
            plan = plan_position(
                candidate.symbol,
                candidate.price,
                state.balance,
                terminal_target=self.config.target,
                extended=self.config.extended_target,
                milestone=state.next_milestone,
            )
            if plan is None:
                return None
            position = open_position(state, plan)
        except Exception:
            logger.exception(f"Position creation failed for {candidate.symbol}")
            return None

        self._emit_trade(state.trade_log[-1])
        self._emit_signal({
            "action": "buy",
            "sym": position.symbol,
            "entry": position.entry,
            "stop": position.stop,
            "target": position.target,
            "size": position.size,
            "ts": int(self.clock() * 1000),
        })
        return position

    def scan_prediction_markets(self, markets: list[PredictionMarket]) -> Optional[BetResult]:
        """One edge-scanner pass; only while the session is running"""
        if not self.running or self.state.is_terminal:
            return None

        result = self.edge_scanner.scan(self.state, markets)
        if result:
            self._emit_trade(self.state.trade_log[-1])
            self._check_terminal()
        return result

    def _check_terminal(self):
        state = self.state
        if not state.is_terminal:
            return

        if self.running:
            self.running = False
            self.ended_at = self.clock()
            outcome = "WON" if state.is_won else "BUSTED"
            logger.info(f"Session {outcome} | balance ${state.balance:,.2f} | {state.tick} ticks")

        run = self.recorder.maybe_record(state, self.elapsed)
        if run and self.on_session_end:
            self.on_session_end(run)

    # -------------------------------------------------------------------------
    # CALLBACKS
    # -------------------------------------------------------------------------

    def _emit_trade(self, entry: TradeLogEntry):
        if self.on_trade:
            self.on_trade(entry)

    def _emit_signal(self, signal: dict):
        self.recent_signals.append(signal)
        limit = self.config.signal_log_limit
        if len(self.recent_signals) > limit:
            self.recent_signals = self.recent_signals[-limit:]

        if self.on_signal:
            try:
                self.on_signal(signal)
            except Exception as e:
                logger.error(f"Signal callback failed: {e}")

    # -------------------------------------------------------------------------
    # QUERIES
    # -------------------------------------------------------------------------

    def progress(self) -> float:
        """Log-scale progress from $1 toward the target, 0..1"""
        balance = self.state.balance
        if balance <= self.config.bust_floor or balance < 1.001:
            return 0.0
        return min(math.log10(balance) / math.log10(self.config.target), 1.0)

    def get_summary(self) -> dict:
        state = self.state
        position = state.position
        current = self.generator.latest(position.symbol) if position else None
        unrealized = position.unrealized_pnl(current) if position and current is not None else 0.0

        pm_count = len(state.pm_trades)
        pm_wins = sum(1 for t in state.pm_trades if t.pnl > 0)

        biggest_winner = max(state.symbol_wins.items(), key=lambda kv: kv[1], default=None)
        biggest_loser = min(state.symbol_losses.items(), key=lambda kv: kv[1], default=None)

        return {
            "running": self.running,
            "balance": state.balance,
            "equity": state.balance + unrealized,
            "unrealized_pnl": unrealized,
            "pnl": state.balance - self.config.starting_balance,
            "position": position.to_dict() if position else None,
            "current_price": current,
            "tick": state.tick,
            "busted": state.is_busted,
            "won": state.is_won,
            "target": self.config.target,
            "current_milestone": state.current_milestone,
            "next_milestone": state.next_milestone,
            "progress": round(self.progress(), 4),
            "trade_count": len(state.exits),
            "trade_win_rate": round(state.trade_win_rate, 1),
            "pm_balance": state.pm_balance,
            "pm_trade_count": pm_count,
            "pm_win_rate": round(pm_wins / pm_count * 100, 1) if pm_count else 0.0,
            "biggest_winner": {"symbol": biggest_winner[0], "pnl": biggest_winner[1]} if biggest_winner else None,
            "biggest_loser": {"symbol": biggest_loser[0], "pnl": biggest_loser[1]} if biggest_loser else None,
            "elapsed_sec": round(self.elapsed, 1),
            "market_time": simulated_market_time(state.tick),
            "last_run": self.recorder.last_run.to_dict() if self.recorder.last_run else None,
        }

    def get_trades(self, limit: int = 100) -> list[dict]:
        return [t.to_dict() for t in self.state.trade_log[-limit:]] if limit > 0 else []

    def get_pm_trades(self, limit: int = 50) -> list[dict]:
        return [t.to_dict() for t in self.state.pm_trades[-limit:]] if limit > 0 else []

    def get_recent_signals(self, limit: int = 20) -> list[dict]:
        return self.recent_signals[-limit:] if limit > 0 else []

    def get_prices(self) -> dict:
        return {
            sym: {
                "price": series.last,
                "base": INSTRUMENTS[sym].price,
                "history": list(series.prices),
                "in_cooldown": self.state.tick < self.state.cooldowns.get(sym, 0),
            }
            for sym, series in self.generator.series.items()
        }

    def get_milestones(self) -> list[dict]:
        return [
            {"level": level, "reached": self.state.balance >= level}
            for level in MILESTONES
        ]
