"""
Run History - SQLite-based persistent storage for completed sessions.

One RunRecord is written per session when it busts or hits its target.
Only the most recent runs are kept; aggregate stats fold over them.
"""

import sqlite3
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from models import SessionState


logger = logging.getLogger("run_history")

MAX_RUNS = 50


# ============================================================================
# RUN RECORD
# ============================================================================

@dataclass
class RunRecord:
    """Terminal outcome of one simulator session"""
    won: bool
    final_balance: float
    duration: float                 # Wall-clock seconds the session ran
    trade_count: int                # Logged exits (stock + prediction market)
    trade_win_rate: float           # % of exits with positive P&L
    ticks: int
    target: float

    id: Optional[int] = None        # Assigned on insert
    timestamp: Optional[str] = None  # ISO timestamp when recorded

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# RUN HISTORY
# ============================================================================

class RunHistory:
    """
    Append-only, capped history of RunRecords.

    Features:
    - Survives restarts (SQLite file)
    - Trims to the MAX_RUNS most recent records on every insert
    - Aggregate stats for the UI
    """

    def __init__(self, db_path: str = "runs.db", max_runs: int = MAX_RUNS):
        """
        Args:
            db_path: Path to SQLite database file
            max_runs: Number of most recent runs to keep
        """
        self.db_path = db_path
        self.max_runs = max_runs
        directory = os.path.dirname(os.path.abspath(db_path))
        os.makedirs(directory, exist_ok=True)
        self._init_database()
        logger.info(f"RunHistory initialized: {db_path}")

    def _init_database(self):
        """Create tables if they don't exist"""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    won INTEGER NOT NULL,
                    final_balance REAL NOT NULL,
                    duration REAL NOT NULL,
                    trade_count INTEGER NOT NULL,
                    trade_win_rate REAL NOT NULL,
                    ticks INTEGER NOT NULL,
                    target REAL NOT NULL,
                    timestamp TEXT NOT NULL
                )
            """)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    # -------------------------------------------------------------------------
    # WRITE OPERATIONS
    # -------------------------------------------------------------------------

    def save_run(self, run: RunRecord) -> bool:
        """
        Append a run and trim history to the most recent max_runs.

        Returns:
            True if stored, False on a database error
        """
        if not run.timestamp:
            run.timestamp = datetime.now(timezone.utc).isoformat()

        try:
            with self._get_connection() as conn:
                cursor = conn.execute("""
                    INSERT INTO runs (
                        won, final_balance, duration, trade_count,
                        trade_win_rate, ticks, target, timestamp
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    1 if run.won else 0, run.final_balance, run.duration, run.trade_count,
                    run.trade_win_rate, run.ticks, run.target, run.timestamp,
                ))
                run.id = cursor.lastrowid
                conn.execute("""
                    DELETE FROM runs WHERE id NOT IN (
                        SELECT id FROM runs ORDER BY id DESC LIMIT ?
                    )
                """, (self.max_runs,))
                conn.commit()

            logger.info(
                f"Recorded run #{run.id}: {'WIN' if run.won else 'BUST'} | "
                f"${run.final_balance:,.2f} | {run.trade_count} trades | {run.ticks} ticks"
            )
            return True

        except sqlite3.Error as e:
            logger.error(f"Failed to record run: {e}")
            return False

    def clear(self):
        """Delete all stored runs"""
        with self._get_connection() as conn:
            conn.execute("DELETE FROM runs")
            conn.commit()
        logger.info("Run history cleared")

    # -------------------------------------------------------------------------
    # READ OPERATIONS
    # -------------------------------------------------------------------------

    def _row_to_run(self, row: sqlite3.Row) -> RunRecord:
        return RunRecord(
            id=row["id"],
            won=bool(row["won"]),
            final_balance=row["final_balance"],
            duration=row["duration"],
            trade_count=row["trade_count"],
            trade_win_rate=row["trade_win_rate"],
            ticks=row["ticks"],
            target=row["target"],
            timestamp=row["timestamp"],
        )

    def get_runs(self, limit: Optional[int] = None) -> List[RunRecord]:
        """Stored runs, oldest first (the last `limit` when given)"""
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM runs ORDER BY id ASC").fetchall()
        runs = [self._row_to_run(r) for r in rows]
        if limit is not None:
            runs = runs[-limit:] if limit > 0 else []
        return runs

    def get_stats(self) -> Optional[Dict[str, Any]]:
        """Aggregate stats over stored runs, None when there are none"""
        runs = self.get_runs()
        if not runs:
            return None

        wins = sum(1 for r in runs if r.won)
        total = len(runs)

        return {
            "total_runs": total,
            "wins": wins,
            "losses": total - wins,
            "win_rate": round(wins / total * 100),
            "avg_trades": round(sum(r.trade_count for r in runs) / total),
            "avg_duration": round(sum(r.duration for r in runs) / total, 1),
            "best_balance": max(r.final_balance for r in runs),
            "avg_win_rate": round(sum(r.trade_win_rate for r in runs) / total),
        }


class SessionRecorder:
    """
    Writes exactly one RunRecord per session on its terminal transition.

    The one-shot flag is re-armed whenever a new session starts.
    """

    def __init__(self, history: Optional[RunHistory]):
        self.history = history
        self._saved = False
        self.last_run: Optional[RunRecord] = None

    def arm(self):
        self._saved = False

    @property
    def has_saved(self) -> bool:
        return self._saved

    def maybe_record(self, state: SessionState, duration: float) -> Optional[RunRecord]:
        """Record the session if it just reached bust or target; no-op otherwise"""
        if self._saved or state.tick <= 0 or not state.is_terminal:
            return None

        self._saved = True
        run = RunRecord(
            won=state.is_won,
            final_balance=state.balance,
            duration=duration,
            trade_count=len(state.exits),
            trade_win_rate=state.trade_win_rate,
            ticks=state.tick,
            target=state.config.target,
        )
        self.last_run = run

        if self.history:
            self.history.save_run(run)
        else:
            logger.info(f"Session ended ({'WIN' if run.won else 'BUST'}) with no history store configured")
        return run
