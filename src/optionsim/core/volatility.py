"""
Volatility and Sentiment Estimation

Realized volatility, short-term sentiment, momentum and 24h change computed
from the recent underlying price history.

Usage:
    from optionsim.core.volatility import VolatilityEstimator

    estimator = VolatilityEstimator(rng=np.random.default_rng(7))
    vol = estimator.volatility(history)        # 0.01 .. 0.05
    mood = estimator.sentiment(history)        # -1 .. 1
"""

from typing import Iterable, Optional, Union

import numpy as np

from optionsim.core.models import PricePoint

DEFAULT_VOLATILITY = 0.02
MIN_VOLATILITY = 0.01
MAX_VOLATILITY = 0.05
SENTIMENT_WINDOW = 10
MOMENTUM_SCALE = 0.1
CHANGE_24H_POINTS = 24
CHANGE_24H_FALLBACK = 0.05

HistoryLike = Iterable[Union[PricePoint, float]]


def as_prices(history: HistoryLike) -> list[float]:
    """Flatten PricePoint or plain numbers into a list of floats."""
    return [p.price if isinstance(p, PricePoint) else float(p) for p in history]


class VolatilityEstimator:
    """
    Estimators over a price history.

    Every method accepts a sequence of PricePoint or plain floats and never
    raises on short histories: each falls back to a documented default.

    Attributes:
        rng: Random source used by the 24h change fallback
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def volatility(self, history: HistoryLike) -> float:
        """
        Population standard deviation of simple returns, clamped to [1%, 5%].

        Returns 2% when fewer than two points are available.
        """
        prices = np.asarray(as_prices(history), dtype=float)
        if prices.size < 2:
            return DEFAULT_VOLATILITY

        with np.errstate(divide="ignore", invalid="ignore"):
            returns = np.diff(prices) / prices[:-1]
        returns = returns[np.isfinite(returns)]
        if returns.size == 0:
            return DEFAULT_VOLATILITY

        vol = float(np.sqrt(np.var(returns)))
        return float(np.clip(vol, MIN_VOLATILITY, MAX_VOLATILITY))

    def sentiment(self, history: HistoryLike) -> float:
        """
        Balance of up and down moves over the last 10 points.

        Returns (U - D) / (U + D), or 0 with fewer than 10 points or no moves.
        """
        prices = as_prices(history)
        if len(prices) < SENTIMENT_WINDOW:
            return 0.0

        recent = prices[-SENTIMENT_WINDOW:]
        up = sum(1 for prev, cur in zip(recent, recent[1:]) if cur > prev)
        down = sum(1 for prev, cur in zip(recent, recent[1:]) if cur < prev)
        if up + down == 0:
            return 0.0
        return (up - down) / (up + down)

    def momentum(self, history: HistoryLike) -> float:
        """(p[-1] - p[-3]) / p[-3] scaled by 0.1; 0 with fewer than 3 points."""
        prices = as_prices(history)
        if len(prices) < 3 or prices[-3] == 0:
            return 0.0
        return (prices[-1] - prices[-3]) / prices[-3] * MOMENTUM_SCALE

    def change_24h(self, history: HistoryLike) -> float:
        """
        Relative change against the point 24 samples back.

        With fewer than 24 points there is nothing to compare against, so a
        random value in [-5%, +5%] is returned.
        """
        prices = as_prices(history)
        if len(prices) < CHANGE_24H_POINTS:
            return float(self.rng.uniform(-CHANGE_24H_FALLBACK, CHANGE_24H_FALLBACK))
        day_ago = prices[-CHANGE_24H_POINTS]
        if day_ago == 0:
            return 0.0
        return (prices[-1] - day_ago) / day_ago

    def last_change(self, history: HistoryLike) -> float:
        """Fractional change between the last two points."""
        prices = as_prices(history)
        if len(prices) < 2 or prices[-2] == 0:
            return 0.0
        return (prices[-1] - prices[-2]) / prices[-2]
