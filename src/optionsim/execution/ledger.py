"""
Trade Ledger

Owns every position and the aggregate user statistics, computes live P&L
and performs the settlement / close transitions.

State machine per position:
    ACTIVE → SETTLED   tick() finds expiry_time <= now
    ACTIVE → CLOSED    close() called by the user before expiry

Two profit models are applied depending on how a position ends:
- Settlement: win/loss decided by option kind vs underlying at expiry;
  win pays premium * max(1, intrinsic / premium) * 100, loss costs premium * 100
- Close: live mark-to-market, (current - entry) * contracts for buys and
  (entry - current) * contracts for sells

The ledger reads the market through the MarketView protocol so it never
holds a reference to the live chain inside a position.

Usage:
    ledger = TradeLedger(market=engine)
    position = ledger.open(option, TradeDirection.BUY, OrderKind.MARKET, 2)
    ledger.tick(now)                 # settles expired positions
    ledger.close(position.id)        # books live P&L
"""

from datetime import datetime, timedelta
from numbers import Integral
from typing import Callable, Iterable, Optional, Protocol, Union, runtime_checkable

from loguru import logger

from optionsim.core.models import Option, OptionKind, OptionSnapshot
from optionsim.core.premium_model import intrinsic_value
from optionsim.exceptions import NotFoundError, ValidationError, finite_or
from optionsim.execution.models import (
    LOT_SIZE,
    OrderKind,
    Position,
    PositionStatus,
    TradeDirection,
    UserStats,
)

logger = logger.bind(component="TradeLedger")

SETTLEMENT_SCALE = 100


@runtime_checkable
class MarketView(Protocol):
    """Read-only view of the live market used by the ledger."""

    @property
    def current_price(self) -> float:
        """Current underlying price."""
        ...

    def find_option(self, option_id: str) -> Optional[Option]:
        """Live option with this id, or None if it is no longer quoted."""
        ...


class TradeLedger:
    """
    Position book with settlement and close transitions.

    Attributes:
        market: MarketView supplying the underlying price and live premiums
        lot_size: Contracts per lot
        clock: Time source used when callers do not pass `now`
        on_ranked: Optional callback re-ranking UserStats after each terminal
            transition (the Leaderboard)
    """

    def __init__(
        self,
        market: MarketView,
        lot_size: int = LOT_SIZE,
        clock: Callable[[], datetime] = datetime.now,
        on_ranked: Optional[Callable[[UserStats], object]] = None,
    ):
        self.market = market
        self.lot_size = lot_size
        self.clock = clock
        self.on_ranked = on_ranked
        self._stats = UserStats()
        self._active: dict[str, Position] = {}
        self._history: list[Position] = []

    # ------------------------------------------------------------------
    # Read accessors (copies only)
    # ------------------------------------------------------------------

    @property
    def user_stats(self) -> UserStats:
        return self._stats.copy()

    @property
    def active_trades(self) -> list[Position]:
        return [p.copy() for p in self._active.values()]

    @property
    def trade_history(self) -> list[Position]:
        return [p.copy() for p in self._history]

    def get_position(self, position_id: str) -> Position:
        """
        Look up any position by id.

        Raises:
            NotFoundError: If no position has this id
        """
        position = self._active.get(position_id)
        if position is None:
            position = next((p for p in self._history if p.id == position_id), None)
        if position is None:
            raise NotFoundError(f"Position not found: {position_id}", identifier=position_id)
        return position.copy()

    def recent_trades(self, limit: int = 10) -> list[Position]:
        """Active and terminal positions, most recent first."""
        positions = [*self._active.values(), *self._history]
        positions.sort(key=lambda p: p.exit_time or p.entry_time, reverse=True)
        return [p.copy() for p in positions[:limit]]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def open(
        self,
        option: Union[Option, OptionSnapshot],
        direction: TradeDirection,
        order_kind: OrderKind,
        quantity_lots: int,
        fill_price: Optional[float] = None,
        current_underlying_price: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Position:
        """
        Open a new ACTIVE position.

        Market orders fill at the option's current premium and ignore
        fill_price. Limit orders fill at fill_price.

        Args:
            option: Live option (copied by value) or a snapshot
            direction: BUY or SELL
            order_kind: MARKET or LIMIT
            quantity_lots: Number of lots, at least 1
            fill_price: Limit price (required and > 0 for LIMIT orders)
            current_underlying_price: Underlying at entry (defaults to market)
            now: Entry time (defaults to clock)

        Returns:
            Read copy of the new position

        Raises:
            ValidationError: On non-positive quantity or limit price
        """
        direction = TradeDirection(direction)
        order_kind = OrderKind(order_kind)

        if isinstance(quantity_lots, bool) or not isinstance(quantity_lots, Integral):
            raise ValidationError(
                f"Quantity must be a whole number of lots, got {quantity_lots!r}",
                field="quantity_lots",
                value=quantity_lots,
            )
        quantity_lots = int(quantity_lots)
        if quantity_lots < 1:
            raise ValidationError(
                f"Quantity must be at least 1 lot, got {quantity_lots}",
                field="quantity_lots",
                value=quantity_lots,
            )

        snapshot = option.snapshot() if isinstance(option, Option) else option

        if order_kind == OrderKind.LIMIT:
            if fill_price is None or finite_or(fill_price, 0.0) <= 0:
                raise ValidationError(
                    f"Limit price must be positive, got {fill_price!r}",
                    field="fill_price",
                    value=fill_price,
                )
            entry_option_price = float(fill_price)
        else:
            entry_option_price = finite_or(snapshot.premium, 0.0)

        now = now or self.clock()
        underlying = (
            current_underlying_price
            if current_underlying_price is not None
            else self.market.current_price
        )

        position = Position(
            id=self._new_id(now),
            option=snapshot,
            entry_underlying_price=finite_or(underlying, 0.0),
            entry_option_price=entry_option_price,
            entry_time=now,
            expiry_time=now + timedelta(hours=snapshot.expiry_hours),
            trade_direction=direction,
            order_kind=order_kind,
            quantity_lots=quantity_lots,
            lot_size=self.lot_size,
        )
        self._active[position.id] = position
        self._stats.total_trades += 1

        logger.info(
            f"✓ Opened {position.id}: {direction.value.upper()} {quantity_lots} lot(s) "
            f"{snapshot.description or snapshot.option_id} @ {entry_option_price:.4f} "
            f"({order_kind.value})"
        )
        return position.copy()

    def tick(self, now: Optional[datetime] = None) -> list[Position]:
        """
        Settle every active position whose expiry time has been reached.

        Args:
            now: Current time (defaults to clock)

        Returns:
            Read copies of the positions settled by this call
        """
        now = now or self.clock()
        expired = [p for p in self._active.values() if p.is_expired(now)]
        return [self._settle(position, now) for position in expired]

    def close(self, position_id: str, now: Optional[datetime] = None) -> Position:
        """
        Close an active position at its live P&L.

        Args:
            position_id: Id of an ACTIVE position
            now: Exit time (defaults to clock)

        Returns:
            Read copy of the CLOSED position

        Raises:
            NotFoundError: If the id does not reference an active position
        """
        position = self._active.get(position_id)
        if position is None:
            raise NotFoundError(
                f"No active position with id {position_id}", identifier=position_id
            )

        now = now or self.clock()
        pnl = self.pnl(position)
        position.finalize(
            PositionStatus.CLOSED,
            exit_underlying_price=finite_or(self.market.current_price, 0.0),
            exit_option_price=self._current_premium(position),
            exit_time=now,
            realized_pnl=pnl,
            is_win=pnl > 0,
        )
        self._retire(position)

        logger.info(f"✓ Closed {position.id}: P&L ${pnl:.2f}")
        return position.copy()

    def _settle(self, position: Position, now: datetime) -> Position:
        underlying = finite_or(self.market.current_price, 0.0)
        strike = position.option.strike_price
        premium = position.entry_option_price

        if position.option.kind == OptionKind.CALL:
            is_win = underlying > strike
        else:
            is_win = underlying < strike

        intrinsic = intrinsic_value(position.option.kind, strike, underlying)
        if is_win:
            multiplier = max(1.0, finite_or(intrinsic / premium, 1.0)) if premium > 0 else 1.0
            profit = premium * multiplier * SETTLEMENT_SCALE
        else:
            profit = -premium * SETTLEMENT_SCALE
        profit = finite_or(profit, 0.0)

        position.finalize(
            PositionStatus.SETTLED,
            exit_underlying_price=underlying,
            exit_option_price=intrinsic,
            exit_time=now,
            realized_pnl=profit,
            is_win=is_win,
        )
        self._retire(position)

        outcome = "won" if is_win else "lost"
        logger.info(f"✓ Settled {position.id}: {outcome}, P&L ${profit:.2f}")
        return position.copy()

    def _retire(self, position: Position) -> None:
        del self._active[position.id]
        self._history.append(position)
        self._stats.record_outcome(bool(position.is_win), position.realized_pnl or 0.0)
        self.rerank()

    def rerank(self) -> None:
        """Refresh UserStats.rank through the on_ranked callback."""
        if self.on_ranked is not None:
            self.on_ranked(self._stats)

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def pnl(self, position: Position) -> float:
        """
        Mark-to-market P&L of a position.

        Uses the live premium of the same option id, falling back to the entry
        premium when the option is no longer quoted. Terminal positions return
        their realized P&L. Never returns NaN.
        """
        if position.status.is_terminal:
            return finite_or(position.realized_pnl, 0.0)

        current = self._current_premium(position)
        entry = finite_or(position.entry_option_price, 0.0)
        if position.trade_direction == TradeDirection.BUY:
            value = (current - entry) * position.total_contracts
        else:
            value = (entry - current) * position.total_contracts
        return finite_or(value, 0.0)

    def live_pnl(self) -> dict[str, float]:
        """Current P&L of every active position keyed by id."""
        return {position_id: self.pnl(p) for position_id, p in self._active.items()}

    def _current_premium(self, position: Position) -> float:
        option = self.market.find_option(position.option.option_id)
        entry = finite_or(position.entry_option_price, 0.0)
        if option is None:
            return entry
        return finite_or(option.premium, entry)

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def restore(
        self,
        stats: UserStats,
        history: Iterable[Position],
        active: Iterable[Position],
    ) -> None:
        """Replace the ledger contents with persisted state."""
        self._stats = stats.copy()
        self._history = [p for p in history if p.status.is_terminal]
        self._active = {}
        for position in active:
            if position.status.is_terminal:
                self._history.append(position)
            else:
                self._active[position.id] = position
        logger.info(
            f"Restored ledger: {len(self._active)} active, {len(self._history)} in history"
        )

    def to_record(self, updated_at: Optional[datetime] = None):
        """Persistable LedgerRecord of the current state."""
        from optionsim.data.records import LedgerRecord  # records imports execution.models

        return LedgerRecord.from_state(
            self._stats,
            self._history,
            self._active.values(),
            updated_at=updated_at or self.clock(),
        )

    def load_record(self, record) -> None:
        """Replace the ledger contents with a LedgerRecord."""
        self.restore(*record.to_state())

    def reset(self) -> None:
        """Drop every position and zero the statistics."""
        self._stats = UserStats()
        self._active.clear()
        self._history.clear()
        logger.info("Ledger reset")

    def _new_id(self, now: datetime) -> str:
        base = str(int(now.timestamp() * 1000))
        candidate = base
        suffix = 1
        while candidate in self._active or any(p.id == candidate for p in self._history):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate
