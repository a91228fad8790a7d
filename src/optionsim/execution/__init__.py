"""
Execution Package

Trade ledger (positions, settlement, close, live P&L), leaderboard and
performance tracking.
"""

from optionsim.execution.models import (
    LOT_SIZE,
    OrderKind,
    Position,
    PositionStatus,
    TradeDirection,
    UserStats,
)
from optionsim.execution.leaderboard import Leaderboard, LeaderboardEntry
from optionsim.execution.ledger import MarketView, TradeLedger
from optionsim.execution.performance import PerformanceTracker

__all__ = [
    # Models
    "LOT_SIZE",
    "OrderKind",
    "Position",
    "PositionStatus",
    "TradeDirection",
    "UserStats",
    # Components
    "Leaderboard",
    "LeaderboardEntry",
    "MarketView",
    "TradeLedger",
    "PerformanceTracker",
]
