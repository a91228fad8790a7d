"""Test fixtures for optionsim tests.

This package provides reusable test fixtures for:
- Seeded random sources, a fixed clock and price histories
- Options chains and a stub MarketView
- Snapshot stores, channels and a started engine

Fixtures are auto-discovered by pytest through conftest.py.
"""

from tests.fixtures.market_fixtures import (
    FIXED_NOW,
    StubMarket,
    chain_builder,
    fixed_now,
    make_option,
    rising_history,
    rng,
    sample_chain,
    stub_market,
)
from tests.fixtures.engine_fixtures import (
    FailingSnapshotStore,
    channel,
    engine,
    events,
    memory_store,
    sim_config,
)

__all__ = [
    # Market fixtures
    "FIXED_NOW",
    "StubMarket",
    "make_option",
    "rng",
    "fixed_now",
    "rising_history",
    "chain_builder",
    "sample_chain",
    "stub_market",
    # Engine fixtures
    "FailingSnapshotStore",
    "sim_config",
    "memory_store",
    "channel",
    "engine",
    "events",
]
