"""
Market Summary

Headline statistics shown next to the price: 24h change, traded volume and
market capitalisation. Volume rises with realized volatility.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from optionsim.core.volatility import HistoryLike, VolatilityEstimator

BASE_VOLUME = 30_000_000_000
CIRCULATING_SUPPLY = 19_500_000


@dataclass(slots=True, frozen=True)
class MarketSummary:
    """Snapshot of headline market statistics."""

    price: float
    change_24h: float
    volume: float
    market_cap: float

    def to_dict(self) -> dict:
        return {
            "price": self.price,
            "change_24h": self.change_24h,
            "volume": self.volume,
            "market_cap": self.market_cap,
        }


def summarize(
    history: HistoryLike,
    current_price: float,
    volatility: float,
    estimator: Optional[VolatilityEstimator] = None,
    rng: Optional[np.random.Generator] = None,
) -> MarketSummary:
    """
    Build a MarketSummary for the current tick.

    Args:
        history: Recent price history
        current_price: Underlying price
        volatility: Realized volatility (drives volume)
        estimator: Estimator used for the 24h change
        rng: Random source for the volume jitter

    Returns:
        MarketSummary
    """
    rng = rng if rng is not None else np.random.default_rng()
    estimator = estimator or VolatilityEstimator(rng=rng)

    volume = BASE_VOLUME * (1 + volatility * 2) * float(rng.uniform(0.8, 1.2))
    return MarketSummary(
        price=current_price,
        change_24h=estimator.change_24h(history),
        volume=volume,
        market_cap=current_price * CIRCULATING_SUPPLY,
    )
