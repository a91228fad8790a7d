"""
Underlying Price Simulator

Regime-switching random walk for the synthetic underlying.

Two regimes:
- Small moves (every tick): base noise of 0.02%-0.08%, a slow sinusoidal
  trend and a momentum term from the last three prices
- Large moves: once 30-60 minutes have passed since the previous large move,
  each tick has a 40% chance of a 0.8%-1.5% jump in either direction

The random source is injected so a seeded generator replays the same path.

Usage:
    from optionsim.core.price_simulator import PriceSimulator

    sim = PriceSimulator(rng=np.random.default_rng(42))
    price = sim.next_price(None)                       # seed in [44000, 46000]
    price = sim.next_price(price, history, now=now)
"""

import math
from datetime import datetime, timedelta
from typing import Callable, Optional

import numpy as np
from loguru import logger

from optionsim.core.volatility import HistoryLike, VolatilityEstimator
from optionsim.exceptions import ensure_finite

logger = logger.bind(component="PriceSimulator")

LARGE_MOVE_PROBABILITY = 0.4
LARGE_MOVE_MIN = 0.008
LARGE_MOVE_MAX = 0.015
LARGE_MOVE_WAIT_MIN = timedelta(minutes=30)
LARGE_MOVE_WAIT_MAX = timedelta(minutes=60)

BASE_VOL_MIN = 0.0002
BASE_VOL_MAX = 0.0008
TREND_PERIOD_MS = 500_000
TREND_AMPLITUDE = 0.0001
MOMENTUM_BLEND = 0.1


class PriceSimulator:
    """
    Produce the next underlying tick from the previous one.

    Attributes:
        rng: Random source
        price_floor: Lower clamp
        price_ceiling: Upper clamp
        seed_low: Lower bound of the initial price
        seed_high: Upper bound of the initial price
        last_large_move_time: When the last large move fired (persisted)
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        price_floor: float = 30000.0,
        price_ceiling: float = 80000.0,
        seed_low: float = 44000.0,
        seed_high: float = 46000.0,
        estimator: Optional[VolatilityEstimator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.price_floor = price_floor
        self.price_ceiling = price_ceiling
        self.seed_low = seed_low
        self.seed_high = seed_high
        self.estimator = estimator or VolatilityEstimator(rng=self.rng)
        self.clock = clock
        self.last_large_move_time: Optional[datetime] = None
        self._large_move_wait = self._draw_wait()

    def _draw_wait(self) -> timedelta:
        seconds = self.rng.uniform(
            LARGE_MOVE_WAIT_MIN.total_seconds(), LARGE_MOVE_WAIT_MAX.total_seconds()
        )
        return timedelta(seconds=float(seconds))

    def seed_price(self) -> float:
        """Uniformly jittered starting price."""
        return float(self.rng.uniform(self.seed_low, self.seed_high))

    def clamp(self, price: float) -> float:
        return max(self.price_floor, min(self.price_ceiling, price))

    def next_price(
        self,
        previous: Optional[float],
        history: HistoryLike = (),
        now: Optional[datetime] = None,
    ) -> float:
        """
        Compute the next underlying price.

        Args:
            previous: Last price, or None/0 when the market has no price yet
            history: Recent prices, used for the momentum term
            now: Simulation time (defaults to the injected clock)

        Returns:
            New price within [price_floor, price_ceiling]

        Raises:
            SimulationInvariantViolation: If the step produced a non-finite price
        """
        if not previous:
            return self.seed_price()

        now = now or self.clock()
        if self.last_large_move_time is None:
            self.last_large_move_time = now

        if self._large_move_due(now):
            change = self._large_move()
            self.last_large_move_time = now
            self._large_move_wait = self._draw_wait()
            logger.debug(f"Large move {change:+.4%} at {now:%H:%M:%S}")
        else:
            change = self._small_move(history, now)

        price = ensure_finite(previous * (1 + change), "underlying price")
        return self.clamp(price)

    def _large_move_due(self, now: datetime) -> bool:
        elapsed = now - self.last_large_move_time
        if elapsed < self._large_move_wait:
            return False
        return bool(self.rng.random() < LARGE_MOVE_PROBABILITY)

    def _large_move(self) -> float:
        magnitude = self.rng.uniform(LARGE_MOVE_MIN, LARGE_MOVE_MAX)
        sign = 1.0 if self.rng.random() < 0.5 else -1.0
        return float(sign * magnitude)

    def _small_move(self, history: HistoryLike, now: datetime) -> float:
        base_vol = self.rng.uniform(BASE_VOL_MIN, BASE_VOL_MAX)
        noise = self.rng.uniform(-1.0, 1.0) * base_vol
        trend = math.sin(now.timestamp() * 1000 / TREND_PERIOD_MS) * TREND_AMPLITUDE
        momentum = self.estimator.momentum(history) * MOMENTUM_BLEND
        return float(noise + trend + momentum)
