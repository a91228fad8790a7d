"""
Market fixtures for testing the simulation core and the trade ledger.

Provides a seeded random source, a fixed clock, price histories, a generated
options chain and a stub MarketView.

Usage:
    def test_chain(sample_chain):
        assert len(sample_chain.calls) == 11
"""

from datetime import datetime, timedelta
from typing import Optional

import numpy as np
import pytest

from optionsim.core.models import Option, OptionKind, PricePoint
from optionsim.core.options_chain import OptionsChainBuilder

FIXED_NOW = datetime(2026, 10, 19, 12, 0, 0)


class StubMarket:
    """
    MarketView with a settable price and hand-placed options.

    Example:
        market = StubMarket(45000.0)
        market.add(make_option(OptionKind.CALL, 45000, premium=0.01))
        market.set_premium("call-45000-20261019", 0.02)
    """

    def __init__(self, current_price: float = 45000.0):
        self.current_price = current_price
        self.options: dict[str, Option] = {}

    def add(self, option: Option) -> Option:
        self.options[option.id] = option
        return option

    def set_premium(self, option_id: str, premium: float) -> None:
        self.options[option_id].premium = premium

    def remove(self, option_id: str) -> None:
        self.options.pop(option_id, None)

    def find_option(self, option_id: str) -> Optional[Option]:
        return self.options.get(option_id)


def make_option(
    kind: OptionKind,
    strike: float,
    premium: float = 150.0,
    expiry_hours: int = 24,
) -> Option:
    """Build an Option with the production id/description format."""
    return Option(
        id=f"{kind.value}-{strike:.0f}-{FIXED_NOW:%Y%m%d}",
        kind=kind,
        strike_price=strike,
        expiry_hours=expiry_hours,
        premium=premium,
        volume=1000,
        open_interest=5000,
        description=f"BTC {kind.value.title()} {strike:.0f}",
    )


@pytest.fixture
def rng():
    """Seeded random source so every test run draws the same numbers."""
    return np.random.default_rng(42)


@pytest.fixture
def fixed_now():
    """Midday timestamp, far from the midnight rollover."""
    return FIXED_NOW


@pytest.fixture
def rising_history(fixed_now):
    """
    30 strictly rising price points one second apart.

    Prices: 45000, 45010, ..., 45290
    """
    return [
        PricePoint(timestamp=fixed_now + timedelta(seconds=i), price=45000.0 + 10 * i)
        for i in range(30)
    ]


@pytest.fixture
def chain_builder(rng, fixed_now):
    """OptionsChainBuilder on the seeded rng and fixed clock."""
    return OptionsChainBuilder(rng=rng, clock=lambda: fixed_now)


@pytest.fixture
def sample_chain(chain_builder):
    """Chain generated at 45050 with 2% volatility (strikes 44500-45500)."""
    return chain_builder.generate(45050.0, volatility=0.02)


@pytest.fixture
def stub_market():
    """StubMarket at 45000 holding a call and a put at 45000."""
    market = StubMarket(45000.0)
    market.add(make_option(OptionKind.CALL, 45000.0, premium=150.0))
    market.add(make_option(OptionKind.PUT, 45000.0, premium=140.0))
    return market
