"""
Performance Tracker

Aggregates the ledger's terminal positions into summary statistics, an
equity curve and maximum drawdown.

Usage:
    tracker = PerformanceTracker(ledger.trade_history)
    summary = tracker.summary()
    print(f"Win rate: {summary['win_rate']:.2%}")
    curve = tracker.equity_curve()
"""

from typing import Iterable

import numpy as np
import polars as pl
from loguru import logger

from optionsim.execution.models import Position

logger = logger.bind(component="PerformanceTracker")

TRADES_SCHEMA = pl.Schema(
    {
        "position_id": pl.String,
        "option_id": pl.String,
        "status": pl.String,
        "entry_time": pl.Datetime("us"),
        "exit_time": pl.Datetime("us"),
        "pnl": pl.Float64,
        "is_win": pl.Boolean,
        "duration_minutes": pl.Float64,
    }
)


class PerformanceTracker:
    """
    Performance metrics over terminal positions.

    Active positions passed in are ignored.

    Attributes:
        trades: DataFrame with one row per terminal position
    """

    def __init__(self, positions: Iterable[Position] = ()):
        rows = [
            {
                "position_id": p.id,
                "option_id": p.option.option_id,
                "status": p.status.value,
                "entry_time": p.entry_time,
                "exit_time": p.exit_time,
                "pnl": float(p.realized_pnl or 0.0),
                "is_win": bool(p.is_win),
                "duration_minutes": (p.exit_time - p.entry_time).total_seconds() / 60,
            }
            for p in positions
            if p.status.is_terminal and p.exit_time is not None
        ]
        self.trades = pl.DataFrame(rows, schema=TRADES_SCHEMA).sort("exit_time")

    def summary(self) -> dict:
        """
        Calculate trade summary statistics.

        Returns:
            Dict with trade summary:
                - total_trades: Number of terminal positions
                - winning_trades: Positions resolved as wins
                - losing_trades: Positions resolved as losses
                - win_rate: Winning share (0-1)
                - avg_pnl: Average realized P&L
                - avg_winning_pnl: Average P&L of wins
                - avg_losing_pnl: Average P&L of losses
                - avg_duration_minutes: Average time in trade
        """
        df = self.trades
        if df.height == 0:
            return {
                "total_trades": 0,
                "winning_trades": 0,
                "losing_trades": 0,
                "win_rate": 0.0,
                "avg_pnl": 0.0,
                "avg_winning_pnl": 0.0,
                "avg_losing_pnl": 0.0,
                "avg_duration_minutes": 0.0,
            }

        winners = df.filter(pl.col("is_win"))
        losers = df.filter(~pl.col("is_win"))

        return {
            "total_trades": df.height,
            "winning_trades": winners.height,
            "losing_trades": losers.height,
            "win_rate": winners.height / df.height,
            "avg_pnl": df["pnl"].mean(),
            "avg_winning_pnl": winners["pnl"].mean() if winners.height else 0.0,
            "avg_losing_pnl": losers["pnl"].mean() if losers.height else 0.0,
            "avg_duration_minutes": df["duration_minutes"].mean(),
        }

    def equity_curve(self) -> pl.DataFrame:
        """
        Cumulative realized P&L ordered by exit time.

        Returns:
            DataFrame with columns exit_time and equity
        """
        return self.trades.select(
            "exit_time",
            pl.col("pnl").cum_sum().alias("equity"),
        )

    def max_drawdown(self) -> float:
        """
        Largest peak-to-trough decline of the equity curve in dollars.

        The curve starts from zero equity, so an initial loss counts as
        drawdown. Always >= 0.
        """
        curve = self.equity_curve()
        if curve.height == 0:
            return 0.0

        equity = np.concatenate(([0.0], curve["equity"].to_numpy()))
        running_max = np.maximum.accumulate(equity)
        return float(np.max(running_max - equity))

    def all_metrics(self) -> dict:
        """Summary plus max_drawdown."""
        metrics = self.summary()
        metrics["max_drawdown"] = self.max_drawdown()
        return metrics
