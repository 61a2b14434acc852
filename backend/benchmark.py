#!/usr/bin/env python3
"""
Headless simulator benchmark.

Runs complete sessions through the same frame loop the server uses (without
the prediction-market half) and reports per-run and aggregate stats.

Usage:
    python benchmark.py 100
    python benchmark.py 50 --seed 7 --extended --plot charts/benchmark.png
"""

import argparse
import os
import random
import time
from dataclasses import dataclass
from typing import Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from config import SimulatorConfig
from run_history import RunHistory
from simulator import TradingSimulator


MAX_TICKS = 500_000  # Safety cap per run


@dataclass
class BenchmarkResult:
    won: bool
    balance: float
    ticks: int
    trades: int
    win_rate: float  # % of exits with positive P&L


def run_session(
    seed: Optional[int] = None,
    extended: bool = False,
    max_ticks: int = MAX_TICKS,
    ticks_per_frame: int = 50,
    history: Optional[RunHistory] = None,
) -> BenchmarkResult:
    """Play one session to bust, target or the tick cap"""
    config = SimulatorConfig(extended_target=extended, ticks_per_frame=ticks_per_frame)
    sim = TradingSimulator(config=config, history=history, rng=random.Random(seed))
    sim.start()

    while sim.running and sim.state.tick < max_ticks:
        sim.advance_frame()

    state = sim.state
    return BenchmarkResult(
        won=state.is_won,
        balance=state.balance,
        ticks=state.tick,
        trades=len(state.exits),
        win_rate=state.trade_win_rate,
    )


def summarize(results: list[BenchmarkResult]) -> dict:
    """Aggregate stats across runs"""
    if not results:
        return {}

    ticks = np.array([r.ticks for r in results])
    trades = np.array([r.trades for r in results])
    win_rates = np.array([r.win_rate for r in results])
    wins = sum(1 for r in results if r.won)

    return {
        "runs": len(results),
        "wins": wins,
        "run_win_rate": wins / len(results) * 100,
        "avg_trade_win_rate": float(np.mean(win_rates)),
        "avg_trades": float(np.mean(trades)),
        "avg_ticks": float(np.mean(ticks)),
        "median_ticks": float(np.median(ticks)),
        "best_balance": max(r.balance for r in results),
    }


def format_balance(balance: float) -> str:
    if balance >= 1e12:
        return f"${balance / 1e12:.2f}T"
    if balance >= 1e9:
        return f"${balance / 1e9:.2f}B"
    return f"${balance:>10,.2f}"


def plot_results(results: list[BenchmarkResult], path: str):
    """Chart of final balances (log scale) and ticks per run"""
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    fig, axes = plt.subplots(1, 2, figsize=(14, 5))
    fig.suptitle(f"Simulator Benchmark: {len(results)} runs", fontsize=14)

    runs = np.arange(1, len(results) + 1)
    balances = [r.balance for r in results]
    colors = ['green' if r.won else 'red' for r in results]

    ax1 = axes[0]
    ax1.bar(runs, balances, color=colors, alpha=0.7)
    ax1.set_yscale("log")
    ax1.set_title("Final Balance")
    ax1.set_xlabel("Run #")
    ax1.set_ylabel("Balance (USD, log)")
    ax1.grid(True, alpha=0.3)

    ax2 = axes[1]
    ticks = np.array([r.ticks for r in results])
    ax2.bar(runs, ticks, color=colors, alpha=0.7)
    ax2.axhline(y=np.median(ticks), color='gray', linestyle='--', alpha=0.7, label='Median')
    ax2.set_title("Ticks to Finish")
    ax2.set_xlabel("Run #")
    ax2.set_ylabel("Ticks")
    ax2.legend()
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()
    plt.savefig(path, dpi=150)
    plt.close(fig)
    print(f"  Saved chart to {path}")


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(description="Run the trading simulator headless and report stats")
    parser.add_argument("runs", nargs="?", type=int, default=50, help="Number of sessions to run")
    parser.add_argument("--seed", type=int, default=None, help="Base seed; run i uses seed + i")
    parser.add_argument("--max-ticks", type=int, default=MAX_TICKS, help="Tick cap per run")
    parser.add_argument("--ticks-per-frame", type=int, default=50, help="Ticks between position checks")
    parser.add_argument("--extended", action="store_true", help="Play to $1T instead of $1B")
    parser.add_argument("--plot", default=None, help="Save a chart to this path")
    parser.add_argument("--record", default=None, help="Record runs into this SQLite history file")
    args = parser.parse_args(argv)

    if args.runs < 1:
        parser.error("runs must be at least 1")

    history = RunHistory(db_path=args.record) if args.record else None

    print(f"Running {args.runs} simulations...\n")
    started = time.time()
    results = []

    for i in range(args.runs):
        seed = args.seed + i if args.seed is not None else None
        r = run_session(
            seed=seed,
            extended=args.extended,
            max_ticks=args.max_ticks,
            ticks_per_frame=args.ticks_per_frame,
            history=history,
        )
        results.append(r)
        status = "WIN " if r.won else "BUST" if r.balance <= 0.5 else "CAP "
        print(f"  {i + 1:3} {status} | {format_balance(r.balance)} | {r.trades:5} trades | "
              f"{r.win_rate:.1f}% WR | {r.ticks} ticks")

    elapsed = time.time() - started
    stats = summarize(results)

    print("\n" + "=" * 60)
    print(f"RESULTS: {stats['runs']} runs in {elapsed:.1f}s")
    print(f"  Run Win Rate:   {stats['wins']}/{stats['runs']} = {stats['run_win_rate']:.0f}%")
    print(f"  Avg Trade WR:   {stats['avg_trade_win_rate']:.1f}%")
    print(f"  Avg Trades:     {stats['avg_trades']:.0f}")
    print(f"  Avg Ticks:      {stats['avg_ticks']:.0f}")
    print(f"  Median Ticks:   {stats['median_ticks']:.0f}")
    print(f"  Best Balance:   {format_balance(stats['best_balance']).strip()}")
    print("=" * 60)

    if args.plot:
        plot_results(results, args.plot)

    return stats


if __name__ == "__main__":
    main()
