"""
Price Path Generator

Synthesizes a bounded random walk per instrument. Each walk reverts toward
a reference price (live quote when available, static fallback otherwise)
through a hard floor/ceiling band around that reference.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Optional

from config import INSTRUMENTS

# Random walk parameters
TREND_REDRAW_PROB = 0.05
TREND_SKEW = 0.45  # Redrawn trends average (0.5 - 0.45) * TREND_SCALE = +0.0003 per tick
TREND_SCALE = 0.006
DRIFT = 0.0001
NOISE_SCALE = 0.008
FLOOR_MULT = 0.7
CEILING_MULT = 1.5


@dataclass
class PriceSeries:
    """Most recent synthesized prices for one instrument"""
    symbol: str
    prices: list[float] = field(default_factory=list)
    trend: float = 0.0

    @property
    def last(self) -> Optional[float]:
        return self.prices[-1] if self.prices else None

    def __len__(self) -> int:
        return len(self.prices)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "prices": list(self.prices),
            "trend": self.trend,
        }


class PricePathGenerator:
    """
    Owns one PriceSeries per instrument and advances them one tick at a time.

    Randomness comes from an injected random.Random so runs can be replayed
    from a seed.
    """

    def __init__(
        self,
        symbols: Optional[list[str]] = None,
        rng: Optional[random.Random] = None,
        max_len: int = 30,
    ):
        self.symbols = list(symbols) if symbols is not None else list(INSTRUMENTS.keys())
        self.rng = rng or random.Random()
        self.max_len = max_len
        self.series: dict[str, PriceSeries] = {}
        self.reseed({})

    def reseed(self, reference_prices: dict[str, float]):
        """Reset every series to a single sample at its reference price and zero trend"""
        self.series = {
            sym: PriceSeries(symbol=sym, prices=[self._base_price(sym, reference_prices)])
            for sym in self.symbols
        }

    def _base_price(self, symbol: str, reference_prices: dict[str, float]) -> float:
        price = reference_prices.get(symbol)
        if isinstance(price, (int, float)) and math.isfinite(price) and price > 0:
            return float(price)
        return INSTRUMENTS[symbol].price

    def next_price(self, series: PriceSeries, base: float) -> float:
        """Compute the next sample for one series (mutates its trend)"""
        if self.rng.random() < TREND_REDRAW_PROB:
            series.trend = (self.rng.random() - TREND_SKEW) * TREND_SCALE

        move = DRIFT + series.trend + (self.rng.random() - 0.5) * NOISE_SCALE
        return max(base * FLOOR_MULT, min(base * CEILING_MULT, series.last * (1 + move)))

    def step(self, reference_prices: dict[str, float]):
        """Advance every instrument by one tick"""
        for sym in self.symbols:
            series = self.series[sym]
            base = self._base_price(sym, reference_prices)

            last = series.last
            if last is None or not math.isfinite(last):
                series.prices = [base]
                continue

            series.prices.append(self.next_price(series, base))
            if len(series.prices) > self.max_len:
                del series.prices[:-self.max_len]

    def set_max_len(self, max_len: int):
        """Change the series cap; longer series are cut to their newest samples"""
        self.max_len = max_len
        for series in self.series.values():
            if len(series.prices) > max_len:
                del series.prices[:-max_len]

    def latest(self, symbol: str) -> Optional[float]:
        series = self.series.get(symbol)
        return series.last if series else None

    def latest_prices(self) -> dict[str, float]:
        return {sym: s.last for sym, s in self.series.items() if s.last is not None}

    def get_series(self) -> dict[str, list[float]]:
        return {sym: s.prices for sym, s in self.series.items()}
