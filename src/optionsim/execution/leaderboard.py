"""
Leaderboard

Ranks the user against a fixed field of rival players by cumulative P&L and
writes the user's 1-based rank into UserStats.rank.

Rivals do not trade; their scores are static. Ties keep rivals ahead of the
user.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from loguru import logger

from optionsim.execution.models import UserStats

logger = logger.bind(component="Leaderboard")

USER_NAME = "You"


@dataclass(slots=True, frozen=True)
class LeaderboardEntry:
    """
    One leaderboard row.

    Attributes:
        name: Player name
        score: Cumulative P&L
        trades: Number of trades
        win_rate: Win rate in percent (0-100)
        is_user: True for the user's own row
    """

    name: str
    score: float
    trades: int
    win_rate: float
    is_user: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "score": self.score,
            "trades": self.trades,
            "win_rate": self.win_rate,
            "is_user": self.is_user,
        }


class Leaderboard:
    """
    Fixed rival field plus the user.

    Usage:
        board = Leaderboard.from_dicts(config.rivals)
        entries = board.rank(stats)   # also sets stats.rank
    """

    def __init__(self, rivals: Optional[Iterable[LeaderboardEntry]] = None):
        self.rivals = list(rivals or ())
        self._entries: list[LeaderboardEntry] = []

    @classmethod
    def from_dicts(cls, rivals: Iterable[dict]) -> "Leaderboard":
        """Build from config dicts with name, score, trades and win_rate."""
        entries = []
        for rival in rivals:
            try:
                entries.append(
                    LeaderboardEntry(
                        name=str(rival["name"]),
                        score=float(rival.get("score", 0.0)),
                        trades=int(rival.get("trades", 0)),
                        win_rate=float(rival.get("win_rate", 0.0)),
                    )
                )
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed rival {rival!r}: {e}")
        return cls(entries)

    def rank(self, stats: UserStats) -> list[LeaderboardEntry]:
        """
        Rank the user among the rivals.

        Args:
            stats: User statistics; its rank attribute is updated in place

        Returns:
            Entries sorted by score, highest first
        """
        user = LeaderboardEntry(
            name=USER_NAME,
            score=stats.profit_loss,
            trades=stats.total_trades,
            win_rate=round(stats.win_rate * 100, 1),
            is_user=True,
        )
        entries = sorted([*self.rivals, user], key=lambda e: e.score, reverse=True)
        stats.rank = entries.index(user) + 1
        self._entries = entries

        logger.debug(f"User ranked #{stats.rank} with score {stats.profit_loss:.2f}")
        return list(entries)

    @property
    def entries(self) -> list[LeaderboardEntry]:
        """Result of the last rank() call."""
        return list(self._entries)
