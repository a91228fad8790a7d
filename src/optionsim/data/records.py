"""
Pydantic Models for Persisted Records

The two persisted records ("ledger" and "market") are external data: they are
read back from storage written by this or another engine instance, possibly by
an older version. Pydantic validates them before they re-enter the engine.

Key patterns:
- Field constraints: ge/gt for ranges
- Migration-safe reads: parse_lenient() drops malformed top-level fields
  (defaults apply) and malformed list items, logging a warning for each
- Datetimes accept ISO-8601 strings or epoch seconds/milliseconds and are
  normalized to naive local time

Decision tree:
    Does this data come from outside my process?
    ├─ Yes → Use Pydantic (validation critical) ← WE ARE HERE
    └─ No → Use dataclass (performance matters), see optionsim.core.models
"""

import json
from datetime import date, datetime
from typing import Iterable, Optional, Union

from loguru import logger
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
)

from optionsim.core.models import (
    Option,
    OptionKind,
    OptionsChain,
    OptionSnapshot,
    PriceHistory,
    PricePoint,
)
from optionsim.execution.models import (
    LOT_SIZE,
    OrderKind,
    Position,
    PositionStatus,
    TradeDirection,
    UserStats,
)

logger = logger.bind(component="Records")

LEDGER_KEY = "ledger"
MARKET_KEY = "market"


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert timezone-aware datetimes to naive local time."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _valid_items(model: type[BaseModel], items, field_name: str) -> list:
    """Validate list items one by one, dropping the malformed ones."""
    if items is None:
        return []
    if not isinstance(items, (list, tuple)):
        logger.warning(f"Ignoring {field_name}: expected a list, got {type(items).__name__}")
        return []

    valid = []
    for index, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except PydanticValidationError as e:
            logger.warning(
                f"Dropping malformed {field_name}[{index}]: {e.error_count()} error(s)"
            )
    return valid


class LenientRecord(BaseModel):
    """Base for top-level records whose fields all have defaults."""

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def parse_lenient(cls, data):
        """
        Validate data, falling back to defaults for malformed fields.

        Args:
            data: Decoded JSON payload

        Returns:
            Validated record (never raises on malformed input)
        """
        if not isinstance(data, dict):
            logger.warning(f"{cls.__name__}: payload is not an object, using defaults")
            return cls()

        payload = {k: v for k, v in data.items() if k in cls.model_fields}
        for _ in range(len(cls.model_fields) + 1):
            try:
                return cls.model_validate(payload)
            except PydanticValidationError as e:
                bad = {err["loc"][0] for err in e.errors() if err["loc"]} & payload.keys()
                if not bad:
                    break
                logger.warning(
                    f"{cls.__name__}: falling back to defaults for {sorted(bad)}"
                )
                for key in bad:
                    payload.pop(key)

        logger.warning(f"{cls.__name__}: payload unusable, using defaults")
        return cls()

    @classmethod
    def from_json(cls, payload: Union[str, bytes]):
        """Decode and validate a JSON payload leniently."""
        try:
            return cls.parse_lenient(json.loads(payload))
        except ValueError as e:
            logger.warning(f"{cls.__name__}: undecodable payload ({e}), using defaults")
            return cls()

    def to_json(self) -> str:
        return self.model_dump_json()


# ----------------------------------------------------------------------
# Ledger record
# ----------------------------------------------------------------------


class UserStatsRecord(BaseModel):
    """Persisted aggregate statistics."""

    total_trades: int = Field(0, ge=0)
    wins: int = Field(0, ge=0)
    losses: int = Field(0, ge=0)
    profit_loss: float = 0.0
    rank: Union[int, str] = "-"

    @classmethod
    def from_stats(cls, stats: UserStats) -> "UserStatsRecord":
        return cls(
            total_trades=stats.total_trades,
            wins=stats.wins,
            losses=stats.losses,
            profit_loss=stats.profit_loss,
            rank=stats.rank,
        )

    def to_stats(self) -> UserStats:
        return UserStats(
            total_trades=self.total_trades,
            wins=self.wins,
            losses=self.losses,
            profit_loss=self.profit_loss,
            rank=self.rank,
        )


class OptionSnapshotRecord(BaseModel):
    """Option terms captured at entry."""

    option_id: str = Field(..., min_length=1, validation_alias=AliasChoices("option_id", "id"))
    kind: OptionKind
    strike_price: float = Field(..., gt=0)
    expiry_hours: int = Field(..., gt=0)
    premium: float = Field(..., ge=0)
    description: str = ""

    @classmethod
    def from_snapshot(cls, snapshot: OptionSnapshot) -> "OptionSnapshotRecord":
        return cls(
            option_id=snapshot.option_id,
            kind=snapshot.kind,
            strike_price=snapshot.strike_price,
            expiry_hours=snapshot.expiry_hours,
            premium=snapshot.premium,
            description=snapshot.description,
        )

    def to_snapshot(self) -> OptionSnapshot:
        return OptionSnapshot(
            option_id=self.option_id,
            kind=self.kind,
            strike_price=self.strike_price,
            expiry_hours=self.expiry_hours,
            premium=self.premium,
            description=self.description,
        )


class PositionRecord(BaseModel):
    """Persisted position (active or terminal)."""

    id: str = Field(..., min_length=1)
    option: OptionSnapshotRecord
    entry_underlying_price: float = Field(..., ge=0)
    entry_option_price: float = Field(..., ge=0)
    entry_time: datetime
    expiry_time: datetime
    trade_direction: TradeDirection
    order_kind: OrderKind = OrderKind.MARKET
    quantity_lots: int = Field(..., ge=1)
    lot_size: int = Field(LOT_SIZE, ge=1)
    status: PositionStatus = PositionStatus.ACTIVE
    exit_underlying_price: Optional[float] = None
    exit_option_price: Optional[float] = None
    exit_time: Optional[datetime] = None
    realized_pnl: Optional[float] = None
    is_win: Optional[bool] = None

    @field_validator("entry_time", "expiry_time", "exit_time")
    @classmethod
    def normalize_time(cls, v):
        return to_local_naive(v)

    @classmethod
    def from_position(cls, position: Position) -> "PositionRecord":
        return cls(
            id=position.id,
            option=OptionSnapshotRecord.from_snapshot(position.option),
            entry_underlying_price=position.entry_underlying_price,
            entry_option_price=position.entry_option_price,
            entry_time=position.entry_time,
            expiry_time=position.expiry_time,
            trade_direction=position.trade_direction,
            order_kind=position.order_kind,
            quantity_lots=position.quantity_lots,
            lot_size=position.lot_size,
            status=position.status,
            exit_underlying_price=position.exit_underlying_price,
            exit_option_price=position.exit_option_price,
            exit_time=position.exit_time,
            realized_pnl=position.realized_pnl,
            is_win=position.is_win,
        )

    def to_position(self) -> Position:
        """
        Rebuild the engine Position.

        Raises:
            ValueError: If the record violates a Position invariant
        """
        return Position(
            id=self.id,
            option=self.option.to_snapshot(),
            entry_underlying_price=self.entry_underlying_price,
            entry_option_price=self.entry_option_price,
            entry_time=self.entry_time,
            expiry_time=self.expiry_time,
            trade_direction=self.trade_direction,
            order_kind=self.order_kind,
            quantity_lots=self.quantity_lots,
            lot_size=self.lot_size,
            status=self.status,
            exit_underlying_price=self.exit_underlying_price,
            exit_option_price=self.exit_option_price,
            exit_time=self.exit_time,
            realized_pnl=self.realized_pnl,
            is_win=self.is_win,
        )


def _to_positions(records: Iterable[PositionRecord], field_name: str) -> list[Position]:
    positions = []
    for record in records:
        try:
            positions.append(record.to_position())
        except ValueError as e:
            logger.warning(f"Dropping inconsistent {field_name} entry {record.id}: {e}")
    return positions


class LedgerRecord(LenientRecord):
    """
    Persisted ledger: {user_stats, trade_history, active_trades, updated_at}.
    """

    user_stats: UserStatsRecord = Field(default_factory=UserStatsRecord)
    trade_history: list[PositionRecord] = Field(default_factory=list)
    active_trades: list[PositionRecord] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    @field_validator("trade_history", "active_trades", mode="before")
    @classmethod
    def drop_malformed_positions(cls, v, info):
        return _valid_items(PositionRecord, v, info.field_name)

    @field_validator("updated_at")
    @classmethod
    def normalize_time(cls, v):
        return to_local_naive(v)

    @classmethod
    def from_state(
        cls,
        stats: UserStats,
        history: Iterable[Position],
        active: Iterable[Position],
        updated_at: Optional[datetime] = None,
    ) -> "LedgerRecord":
        return cls(
            user_stats=UserStatsRecord.from_stats(stats),
            trade_history=[PositionRecord.from_position(p) for p in history],
            active_trades=[PositionRecord.from_position(p) for p in active],
            updated_at=updated_at,
        )

    def to_state(self) -> tuple[UserStats, list[Position], list[Position]]:
        """Engine objects: (stats, trade_history, active_trades)."""
        return (
            self.user_stats.to_stats(),
            _to_positions(self.trade_history, "trade_history"),
            _to_positions(self.active_trades, "active_trades"),
        )


# ----------------------------------------------------------------------
# Market record
# ----------------------------------------------------------------------


class PricePointRecord(BaseModel):
    """Price observation; time as ISO-8601 or epoch seconds/milliseconds."""

    time: datetime = Field(validation_alias=AliasChoices("time", "timestamp"))
    price: float = Field(..., gt=0)

    @field_validator("time")
    @classmethod
    def normalize_time(cls, v):
        return to_local_naive(v)


class OptionRecord(BaseModel):
    """Persisted chain option."""

    id: str = Field(..., min_length=1)
    kind: OptionKind
    strike_price: float = Field(..., gt=0)
    expiry_hours: int = Field(..., gt=0)
    premium: float = Field(..., ge=0)
    volume: int = Field(0, ge=0)
    open_interest: int = Field(0, ge=0)
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    description: str = ""

    @classmethod
    def from_option(cls, option: Option) -> "OptionRecord":
        return cls(
            id=option.id,
            kind=option.kind,
            strike_price=option.strike_price,
            expiry_hours=option.expiry_hours,
            premium=option.premium,
            volume=option.volume,
            open_interest=option.open_interest,
            delta=option.delta,
            gamma=option.gamma,
            theta=option.theta,
            vega=option.vega,
            description=option.description,
        )

    def to_option(self) -> Option:
        return Option(**self.model_dump())


class MarketRecord(LenientRecord):
    """
    Persisted market snapshot.

    Attributes:
        current_price: Last underlying price (None before the first tick)
        price_history: Bounded price history
        call_options: Calls of the current chain
        put_options: Puts of the current chain
        last_sync_time: When this snapshot was written
        last_large_move_time: Regime timer of the price simulator
        trading_day: Day the chain was generated for
        source_id: Engine instance that wrote the snapshot
    """

    current_price: Optional[float] = Field(None, gt=0)
    price_history: list[PricePointRecord] = Field(default_factory=list)
    call_options: list[OptionRecord] = Field(default_factory=list)
    put_options: list[OptionRecord] = Field(default_factory=list)
    last_sync_time: Optional[datetime] = None
    last_large_move_time: Optional[datetime] = None
    trading_day: Optional[date] = None
    source_id: str = ""

    @field_validator("price_history", mode="before")
    @classmethod
    def drop_malformed_points(cls, v, info):
        return _valid_items(PricePointRecord, v, info.field_name)

    @field_validator("call_options", "put_options", mode="before")
    @classmethod
    def drop_malformed_options(cls, v, info):
        return _valid_items(OptionRecord, v, info.field_name)

    @field_validator("last_sync_time", "last_large_move_time")
    @classmethod
    def normalize_time(cls, v):
        return to_local_naive(v)

    @classmethod
    def from_market(
        cls,
        current_price: Optional[float],
        history: Iterable[PricePoint],
        chain: Optional[OptionsChain],
        last_sync_time: Optional[datetime],
        last_large_move_time: Optional[datetime],
        source_id: str = "",
    ) -> "MarketRecord":
        return cls(
            current_price=current_price or None,
            price_history=[PricePointRecord(time=p.timestamp, price=p.price) for p in history],
            call_options=[OptionRecord.from_option(o) for o in (chain.calls if chain else [])],
            put_options=[OptionRecord.from_option(o) for o in (chain.puts if chain else [])],
            last_sync_time=last_sync_time,
            last_large_move_time=last_large_move_time,
            trading_day=chain.trading_day if chain else None,
            source_id=source_id,
        )

    def to_history(self, limit: int) -> PriceHistory:
        return PriceHistory(
            limit=limit,
            points=(PricePoint(timestamp=p.time, price=p.price) for p in self.price_history),
        )

    def to_chain(self) -> Optional[OptionsChain]:
        """Rebuild the chain, or None when the snapshot holds no options."""
        if not self.call_options and not self.put_options:
            return None
        return OptionsChain(
            calls=[o.to_option() for o in self.call_options],
            puts=[o.to_option() for o in self.put_options],
            generated_at=self.last_sync_time,
            trading_day=self.trading_day,
        )
