"""
Pytest fixtures for the test suite.
"""
import pytest
import random
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import SimulatorConfig
from models import SessionState
from run_history import RunHistory
from simulator import TradingSimulator


class FakeClock:
    """Manually advanced clock for time-dependent code"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FixedRandom:
    """Stand-in for random.Random that always returns the same draw"""

    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


def rising_prices(start: float = 100.0, n: int = 20, step: float = 0.003) -> list[float]:
    """Smooth geometric uptrend that passes every momentum filter"""
    return [start * (1 + step) ** i for i in range(n)]


@pytest.fixture
def rng():
    """Seeded RNG so runs are reproducible."""
    return random.Random(42)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fixed_random():
    return FixedRandom


@pytest.fixture
def make_rising():
    return rising_prices


@pytest.fixture
def sim_config():
    """Default simulator config (fresh instance per test)."""
    return SimulatorConfig()


@pytest.fixture
def session_state(sim_config):
    return SessionState(config=sim_config, balance=1.0)


@pytest.fixture
def run_history(tmp_path):
    """Run history backed by a temp SQLite file."""
    return RunHistory(db_path=str(tmp_path / "runs.db"))


@pytest.fixture
def simulator(sim_config, run_history, rng, clock):
    """Simulator with seeded RNG, fake clock and temp history."""
    return TradingSimulator(config=sim_config, history=run_history, rng=rng, clock=clock)
