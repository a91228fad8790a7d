"""
Data Package

Persisted records, snapshot storage backends and the snapshot change channel.
"""

from optionsim.data.channel import (
    InMemorySnapshotChannel,
    SnapshotChannel,
    SnapshotListener,
    SnapshotNotice,
)
from optionsim.data.records import (
    LEDGER_KEY,
    MARKET_KEY,
    LedgerRecord,
    MarketRecord,
    OptionRecord,
    PositionRecord,
    PricePointRecord,
    UserStatsRecord,
)
from optionsim.data.snapshot_store import (
    DeltaLakeSnapshotStore,
    InMemorySnapshotStore,
    SnapshotStore,
    StoredSnapshot,
)

__all__ = [
    # Records
    "LEDGER_KEY",
    "MARKET_KEY",
    "LedgerRecord",
    "MarketRecord",
    "OptionRecord",
    "PositionRecord",
    "PricePointRecord",
    "UserStatsRecord",
    # Storage
    "SnapshotStore",
    "StoredSnapshot",
    "DeltaLakeSnapshotStore",
    "InMemorySnapshotStore",
    # Channel
    "SnapshotChannel",
    "SnapshotListener",
    "SnapshotNotice",
    "InMemorySnapshotChannel",
]
