"""
Trade Ledger Models

Positions and aggregate user statistics owned by the TradeLedger.
Uses dataclasses with slots=True (internal data, validated on entry).

Key patterns:
- dataclass(slots=True) for performance
- __post_init__ validation for data integrity
- Enum-based status, direction and order kind
- Terminal positions are sealed: any attribute assignment raises

Position lifecycle:
    ACTIVE → SETTLED  (expiry reached, resolved by the settlement rule)
    ACTIVE → CLOSED   (user closed before expiry, resolved at live P&L)
"""

from dataclasses import FrozenInstanceError, dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Union

from optionsim.core.models import OptionSnapshot

LOT_SIZE = 75


class TradeDirection(str, Enum):
    """Direction of the position."""

    BUY = "buy"
    SELL = "sell"


class OrderKind(str, Enum):
    """How the entry price is determined."""

    MARKET = "market"  # Fill at the live premium
    LIMIT = "limit"  # Fill at the supplied limit price


class PositionStatus(str, Enum):
    """Position status enum."""

    ACTIVE = "active"
    SETTLED = "settled"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self is not PositionStatus.ACTIVE


@dataclass(slots=True)
class Position:
    """
    A single speculative option position.

    Attributes:
        id: Unique position identifier
        option: Option terms copied at entry (never the live chain object)
        entry_underlying_price: Underlying price at entry
        entry_option_price: Premium paid/received per contract
        entry_time: When the position was opened
        expiry_time: entry_time + option.expiry_hours
        trade_direction: BUY or SELL
        order_kind: MARKET or LIMIT
        quantity_lots: Number of lots (>= 1)
        lot_size: Contracts per lot
        status: ACTIVE, SETTLED or CLOSED
        exit_underlying_price: Underlying price at the terminal transition
        exit_option_price: Option value used at the terminal transition
        exit_time: When the position left ACTIVE
        realized_pnl: Profit/loss booked at the terminal transition
        is_win: Outcome of the terminal transition
    """

    id: str
    option: OptionSnapshot
    entry_underlying_price: float
    entry_option_price: float
    entry_time: datetime
    expiry_time: datetime
    trade_direction: TradeDirection
    order_kind: OrderKind
    quantity_lots: int
    lot_size: int = LOT_SIZE
    status: PositionStatus = PositionStatus.ACTIVE
    exit_underlying_price: Optional[float] = None
    exit_option_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    realized_pnl: Optional[float] = None
    is_win: Optional[bool] = None
    _sealed: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self):
        """
        Validate position after initialization.

        Ensures data integrity before the position enters the ledger.
        """
        if not self.id or not str(self.id).strip():
            raise ValueError("Position ID cannot be empty")

        if self.quantity_lots < 1:
            raise ValueError(f"Quantity must be at least one lot, got {self.quantity_lots}")

        if self.lot_size < 1:
            raise ValueError(f"Lot size must be positive, got {self.lot_size}")

        if self.expiry_time < self.entry_time:
            raise ValueError("Expiry time cannot precede entry time")

        if self.status.is_terminal and self.exit_time is None:
            raise ValueError(f"{self.status.value} position must have exit_time")

        object.__setattr__(self, "_sealed", self.status.is_terminal)

    def __setattr__(self, name, value):
        if getattr(self, "_sealed", False):
            raise FrozenInstanceError(
                f"Position {self.id} is {self.status.value} and cannot be modified"
            )
        object.__setattr__(self, name, value)

    @property
    def total_contracts(self) -> int:
        return self.quantity_lots * self.lot_size

    @property
    def is_active(self) -> bool:
        return self.status is PositionStatus.ACTIVE

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_time <= now

    def time_remaining(self, now: datetime) -> timedelta:
        return max(timedelta(0), self.expiry_time - now)

    def finalize(
        self,
        status: PositionStatus,
        *,
        exit_underlying_price: float,
        exit_option_price: float,
        exit_time: datetime,
        realized_pnl: float,
        is_win: bool,
    ) -> None:
        """
        Apply the terminal transition and seal the position.

        Raises:
            ValueError: If status is not terminal
            FrozenInstanceError: If the position already left ACTIVE
        """
        if not status.is_terminal:
            raise ValueError(f"Cannot finalize into {status.value}")
        self.exit_underlying_price = exit_underlying_price
        self.exit_option_price = exit_option_price
        self.exit_time = exit_time
        self.realized_pnl = realized_pnl
        self.is_win = is_win
        self.status = status
        object.__setattr__(self, "_sealed", True)

    def copy(self) -> "Position":
        """Read copy for the view layer."""
        return replace(self)

    def __repr__(self) -> str:
        """Return string representation of position."""
        return (
            f"Position(id={self.id}, {self.trade_direction.value} {self.quantity_lots}x "
            f"{self.option.description or self.option.option_id}, status={self.status.value})"
        )


@dataclass(slots=True)
class UserStats:
    """
    Aggregate trading statistics.

    Attributes:
        total_trades: Positions opened
        wins: Terminal positions resolved as wins
        losses: Terminal positions resolved as losses
        profit_loss: Cumulative realized P&L
        rank: Leaderboard rank ("-" until ranked)
    """

    total_trades: int = 0
    wins: int = 0
    losses: int = 0
    profit_loss: float = 0.0
    rank: Union[int, str] = "-"

    @property
    def win_rate(self) -> float:
        """Wins over total trades (0-1)."""
        if self.total_trades <= 0:
            return 0.0
        return self.wins / self.total_trades

    def record_outcome(self, is_win: bool, pnl: float) -> None:
        if is_win:
            self.wins += 1
        else:
            self.losses += 1
        self.profit_loss += pnl

    def copy(self) -> "UserStats":
        return replace(self)
