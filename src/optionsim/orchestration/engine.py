"""
Market Engine

Composes the price simulator, volatility estimator, options chain builder,
trade ledger, leaderboard and snapshot persistence into a single pure engine
object. The engine holds no timers of its own: a host (SimulationRunner, or a
test) calls tick(elapsed_seconds) and the engine advances its simulated clock,
firing each periodic job as its accumulated interval elapses.

Periodic jobs:
- Fast tick (tick_interval_secs, default 1s): next price, in-place chain
  repricing, expiry/settlement check, live P&L re-evaluation, day rollover
- Market refresh (market_refresh_secs, default 30s): chain regeneration and
  market snapshot persistence
- Sync (sync_interval_secs, default 10s): re-read the shared snapshots and
  adopt any copy written later by another engine (Last-Write-Wins)

Every save publishes a SnapshotNotice. A notice from another engine that is
younger than freshness_window_secs schedules an early reload on the next
tick.

The presentation layer reads engine state through the read accessors (all
return copies), invokes the view actions, and receives EngineEvents through
subscribe(). tick() never raises: a failing step is logged and skipped.

Usage:
    engine = MarketEngine.from_config(SimulationConfig.load_from_file(path))
    engine.subscribe(lambda event: print(event.type, event.payload))
    engine.start()
    engine.tick(1.0)
    position = engine.open_position("call-45000-20261019", TradeDirection.BUY, OrderKind.MARKET, 1)
    engine.close_position(position.id)
    engine.stop()
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional
from uuid import uuid4

import numpy as np
from loguru import logger

from optionsim.config import SimulationConfig
from optionsim.core.market_summary import MarketSummary, summarize
from optionsim.core.models import Option, OptionsChain, PriceHistory, PricePoint
from optionsim.core.options_chain import OptionsChainBuilder
from optionsim.core.premium_model import PremiumModel
from optionsim.core.price_simulator import PriceSimulator
from optionsim.core.volatility import VolatilityEstimator
from optionsim.data.channel import InMemorySnapshotChannel, SnapshotChannel, SnapshotNotice
from optionsim.data.records import LEDGER_KEY, MARKET_KEY, LedgerRecord, MarketRecord
from optionsim.data.snapshot_store import (
    DeltaLakeSnapshotStore,
    InMemorySnapshotStore,
    SnapshotStore,
)
from optionsim.exceptions import (
    NotFoundError,
    PersistenceError,
    SimulationInvariantViolation,
)
from optionsim.execution.leaderboard import Leaderboard, LeaderboardEntry
from optionsim.execution.ledger import TradeLedger
from optionsim.execution.models import OrderKind, Position, TradeDirection, UserStats
from optionsim.execution.performance import PerformanceTracker

logger = logger.bind(component="MarketEngine")

# Fast ticks replayed per tick() call; a longer gap jumps the clock forward
MAX_CATCH_UP_TICKS = 3600


class EventType(str, Enum):
    """Events delivered to subscribers."""

    PRICE_UPDATED = "price_updated"
    CHAIN_REGENERATED = "chain_regenerated"
    DAY_ROLLOVER = "day_rollover"
    PNL_UPDATED = "pnl_updated"
    POSITION_OPENED = "position_opened"
    POSITION_SETTLED = "position_settled"
    POSITION_CLOSED = "position_closed"
    STATE_RELOADED = "state_reloaded"
    DATA_CLEARED = "data_cleared"


@dataclass(slots=True, frozen=True)
class EngineEvent:
    """
    Notification sent to the presentation layer.

    Attributes:
        type: What happened
        timestamp: Simulated time of the event
        payload: Event data (copies only)
    """

    type: EventType
    timestamp: datetime
    payload: dict = field(default_factory=dict)


EventHandler = Callable[[EngineEvent], None]


class MarketEngine:
    """
    Options market simulation engine.

    Attributes:
        config: SimulationConfig
        store: SnapshotStore for the ledger and market records
        channel: SnapshotChannel for change notices
        source_id: Identifier of this engine instance in persisted records
        rng: Random source shared by every stochastic component
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        store: Optional[SnapshotStore] = None,
        channel: Optional[SnapshotChannel] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now,
        source_id: Optional[str] = None,
    ):
        """
        Initialize engine.

        Args:
            config: SimulationConfig (defaults used if None)
            store: Snapshot store (in-memory if None)
            channel: Notice channel (private in-memory channel if None)
            rng: Random source (seeded from config.seed if None)
            clock: Wall clock used once to start the simulated clock
            source_id: Engine instance id (random if None)
        """
        self.config = config or SimulationConfig()
        self.store = store if store is not None else InMemorySnapshotStore()
        self.channel = channel if channel is not None else InMemorySnapshotChannel()
        self.source_id = source_id or f"engine-{uuid4().hex[:8]}"
        self.rng = rng if rng is not None else np.random.default_rng(self.config.seed)

        self._now = clock()
        self._pending = 0.0
        self._since_refresh = 0.0
        self._since_sync = 0.0

        self.estimator = VolatilityEstimator(rng=self.rng)
        self.simulator = PriceSimulator(
            rng=self.rng,
            price_floor=self.config.price_floor,
            price_ceiling=self.config.price_ceiling,
            seed_low=self.config.seed_price_low,
            seed_high=self.config.seed_price_high,
            estimator=self.estimator,
            clock=self._clock,
        )
        self.builder = OptionsChainBuilder(
            premium_model=PremiumModel(atm_band=self.config.atm_band, rng=self.rng),
            rng=self.rng,
            symbol=self.config.symbol,
            strike_step=self.config.strike_step,
            strikes_per_side=self.config.strikes_per_side,
            expiry_hours=self.config.option_expiry_hours,
            clock=self._clock,
        )
        self.board = Leaderboard.from_dicts(self.config.rivals)
        self.ledger = TradeLedger(
            market=self,
            lot_size=self.config.lot_size,
            clock=self._clock,
            on_ranked=self.board.rank,
        )

        self.history = PriceHistory(limit=self.config.history_limit)
        self._current_price: Optional[float] = None
        self._chain: Optional[OptionsChain] = None

        self._handlers: list[EventHandler] = []
        self._synced_at: dict[str, datetime] = {}
        self._reload_requested: set[str] = set()
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: SimulationConfig,
        store: Optional[SnapshotStore] = None,
        channel: Optional[SnapshotChannel] = None,
        **kwargs,
    ) -> "MarketEngine":
        """Build an engine persisting to Delta Lake under config.data_dir."""
        store = store if store is not None else DeltaLakeSnapshotStore(str(config.lake_path))
        return cls(config=config, store=store, channel=channel, **kwargs)

    def _clock(self) -> datetime:
        return self.now

    @property
    def now(self) -> datetime:
        """Simulated time."""
        return self._now + timedelta(seconds=self._pending)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Load persisted state and make sure a price and a chain exist.

        Idempotent. Called implicitly by the first tick().
        """
        if self._started:
            return

        self._load_market()
        self._load_ledger()

        if self._current_price is None:
            self._set_price(self.simulator.seed_price())
        if self.builder.needs_rollover(self._chain, self.now):
            self._regenerate_chain()

        self.ledger.rerank()
        self.channel.subscribe(self._on_notice)
        self._started = True

        logger.info(
            f"✓ Market engine {self.source_id} started: {self.config.symbol} "
            f"@ {self._current_price:.2f}, {len(self.ledger.active_trades)} active position(s)"
        )

    def stop(self) -> None:
        """Persist both records and stop listening for notices."""
        if not self._started:
            return
        self.flush()
        self.channel.unsubscribe(self._on_notice)
        self._started = False
        logger.info(f"✓ Market engine {self.source_id} stopped")

    def flush(self) -> None:
        """Best-effort save of the market and ledger records."""
        self._save_market()
        self._save_ledger()

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def tick(self, elapsed: float) -> int:
        """
        Advance the simulated clock and run every job that came due.

        Args:
            elapsed: Seconds since the previous call

        Returns:
            Number of fast ticks executed
        """
        if not self._started:
            self.start()

        if elapsed is None or not np.isfinite(elapsed) or elapsed < 0:
            logger.warning(f"Ignoring invalid elapsed time: {elapsed!r}")
            return 0

        interval = self.config.tick_interval_secs
        self._pending += elapsed

        due = int(self._pending // interval)
        if due > MAX_CATCH_UP_TICKS:
            skipped = (due - MAX_CATCH_UP_TICKS) * interval
            logger.warning(f"Clock jumped {skipped:.0f}s ahead, skipping missed ticks")
            self._now += timedelta(seconds=skipped)
            self._pending -= skipped
            due = MAX_CATCH_UP_TICKS

        for _ in range(due):
            self._pending -= interval
            self._now += timedelta(seconds=interval)
            self._step(interval)

        return due

    def _step(self, interval: float) -> None:
        self._guarded("reload", self._process_reloads)
        self._guarded("fast tick", self._fast_tick)

        self._since_refresh += interval
        if self._since_refresh >= self.config.market_refresh_secs:
            self._since_refresh = 0.0
            self._guarded("market refresh", self._market_refresh)

        self._since_sync += interval
        if self._since_sync >= self.config.sync_interval_secs:
            self._since_sync = 0.0
            self._guarded("sync", self._sync)

    def _guarded(self, name: str, job: Callable[[], None]) -> None:
        try:
            job()
        except Exception as e:
            logger.error(f"{name} failed, keeping last known state: {e}")

    def _fast_tick(self) -> None:
        now = self.now

        try:
            price = self.simulator.next_price(self._current_price, self.history, now)
        except SimulationInvariantViolation as e:
            logger.warning(f"{e}, keeping previous price")
            price = self._current_price
        self._set_price(price)
        self._emit(EventType.PRICE_UPDATED, price=price)

        if self.builder.needs_rollover(self._chain, now):
            logger.info(f"✓ Day rollover to {now:%Y-%m-%d}, regenerating chain")
            self._regenerate_chain()
            self._save_market()
            self._emit(EventType.DAY_ROLLOVER, trading_day=now.date())
        else:
            self.builder.refresh(
                self._chain,
                price,
                self.estimator.volatility(self.history),
                self.estimator.sentiment(self.history),
                self.estimator.last_change(self.history),
            )

        settled = self.ledger.tick(now)
        for position in settled:
            self._emit(EventType.POSITION_SETTLED, position=position)
        if settled:
            self._save_ledger()

        live = self.ledger.live_pnl()
        if live:
            self._emit(EventType.PNL_UPDATED, pnl=live)

    def _market_refresh(self) -> None:
        self._regenerate_chain()
        self._save_market()

    def _set_price(self, price: float) -> None:
        self._current_price = price
        self.history.record(self.now, price)

    def _regenerate_chain(self) -> None:
        self._chain = self.builder.generate(
            self._current_price,
            self.estimator.volatility(self.history),
            self.estimator.sentiment(self.history),
            now=self.now,
        )
        self._emit(EventType.CHAIN_REGENERATED, options=len(self._chain))

    # ------------------------------------------------------------------
    # MarketView
    # ------------------------------------------------------------------

    @property
    def current_price(self) -> float:
        return self._current_price or 0.0

    def find_option(self, option_id: str) -> Optional[Option]:
        """Copy of the live option with this id, or None."""
        if self._chain is None:
            return None
        option = self._chain.find(option_id)
        return replace(option) if option is not None else None

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def price_history(self) -> list[PricePoint]:
        return self.history.to_list()

    @property
    def chain(self) -> Optional[OptionsChain]:
        """Copy of the live chain."""
        if self._chain is None:
            return None
        return OptionsChain(
            calls=[replace(o) for o in self._chain.calls],
            puts=[replace(o) for o in self._chain.puts],
            generated_at=self._chain.generated_at,
            trading_day=self._chain.trading_day,
        )

    @property
    def active_trades(self) -> list[Position]:
        return self.ledger.active_trades

    @property
    def user_stats(self) -> UserStats:
        return self.ledger.user_stats

    def recent_trades(self, limit: int = 10) -> list[Position]:
        return self.ledger.recent_trades(limit)

    def pnl(self, position_id: str) -> float:
        """Live P&L of a position (realized P&L once terminal)."""
        return self.ledger.pnl(self.ledger.get_position(position_id))

    @property
    def leaderboard(self) -> list[LeaderboardEntry]:
        return self.board.rank(self.ledger.user_stats)

    def market_summary(self) -> MarketSummary:
        return summarize(
            self.history,
            self.current_price,
            self.estimator.volatility(self.history),
            estimator=self.estimator,
            rng=self.rng,
        )

    def performance(self) -> PerformanceTracker:
        return PerformanceTracker(self.ledger.trade_history)

    def time_until_rollover(self, now: Optional[datetime] = None) -> timedelta:
        """Time left until local midnight, when the chain rolls over."""
        now = now or self.now
        midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
        return midnight - now

    # ------------------------------------------------------------------
    # View actions
    # ------------------------------------------------------------------

    def open_position(
        self,
        option_id: str,
        direction: TradeDirection,
        order_kind: OrderKind = OrderKind.MARKET,
        quantity_lots: int = 1,
        fill_price: Optional[float] = None,
    ) -> Position:
        """
        Open a position on a quoted option.

        Raises:
            NotFoundError: If the option is not in the current chain
            ValidationError: On invalid quantity or limit price
        """
        if not self._started:
            self.start()

        option = self.find_option(option_id)
        if option is None:
            raise NotFoundError(f"Option not quoted: {option_id}", identifier=option_id)

        position = self.ledger.open(
            option,
            direction,
            order_kind,
            quantity_lots,
            fill_price=fill_price,
            current_underlying_price=self.current_price,
            now=self.now,
        )
        self._save_ledger()
        self._emit(EventType.POSITION_OPENED, position=position)
        return position

    def close_position(self, position_id: str) -> Position:
        """
        Close an active position at its live P&L.

        Raises:
            NotFoundError: If the id is not an active position
        """
        position = self.ledger.close(position_id, now=self.now)
        self._save_ledger()
        self._emit(EventType.POSITION_CLOSED, position=position)
        return position

    def refresh_market(self) -> OptionsChain:
        """Regenerate the chain now and persist the market snapshot."""
        if not self._started:
            self.start()
        self._since_refresh = 0.0
        self._market_refresh()
        return self.chain

    def clear_all_data(self) -> None:
        """Delete both records and restart from a fresh market and ledger."""
        for key in (LEDGER_KEY, MARKET_KEY):
            try:
                self.store.delete(key)
            except PersistenceError as e:
                logger.error(f"Failed to delete '{key}': {e}")
        self._synced_at.clear()
        self._reload_requested.clear()

        self.ledger.reset()
        self.ledger.rerank()
        self.history.clear()
        self.simulator.last_large_move_time = None
        self._current_price = None
        self._set_price(self.simulator.seed_price())
        self._regenerate_chain()

        logger.info("✓ Cleared all data")
        self._emit(EventType.DATA_CLEARED, price=self._current_price)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        """
        Register an event handler.

        Returns:
            Callable that unsubscribes the handler
        """
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def _emit(self, event_type: EventType, **payload) -> None:
        event = EngineEvent(type=event_type, timestamp=self.now, payload=payload)
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler failed on {event_type.value}: {e}")

    # ------------------------------------------------------------------
    # Persistence and reconciliation
    # ------------------------------------------------------------------

    def _save(self, key: str, payload: str) -> None:
        now = self.now
        try:
            self.store.save(key, payload, self.source_id, now)
        except PersistenceError as e:
            logger.error(f"Failed to persist '{key}': {e}")
            return
        self._synced_at[key] = now
        self.channel.publish(SnapshotNotice(key=key, source_id=self.source_id, changed_at=now))

    def _save_market(self) -> None:
        record = MarketRecord.from_market(
            self._current_price,
            self.history,
            self._chain,
            last_sync_time=self.now,
            last_large_move_time=self.simulator.last_large_move_time,
            source_id=self.source_id,
        )
        self._save(MARKET_KEY, record.to_json())

    def _save_ledger(self) -> None:
        self._save(LEDGER_KEY, self.ledger.to_record(updated_at=self.now).to_json())

    def _read_newer(self, key: str, force: bool = False):
        """Stored snapshot for key if another engine wrote it after our copy."""
        try:
            stored = self.store.load(key)
        except PersistenceError as e:
            logger.error(f"Failed to read '{key}': {e}")
            return None
        if stored is None:
            return None
        if not force:
            if stored.source_id == self.source_id:
                return None
            known = self._synced_at.get(key)
            if known is not None and stored.updated_at <= known:
                return None
        self._synced_at[key] = stored.updated_at
        return stored

    def _load_market(self, force: bool = True) -> bool:
        stored = self._read_newer(MARKET_KEY, force=force)
        if stored is None:
            return False

        record = MarketRecord.from_json(stored.payload)
        history = record.to_history(self.config.history_limit)
        if record.current_price is None and not len(history):
            return False

        self.history = history
        last = history.last()
        self._current_price = record.current_price or (last.price if last else None)
        if record.last_large_move_time is not None:
            self.simulator.last_large_move_time = record.last_large_move_time
        chain = record.to_chain()
        if chain is not None:
            self._chain = chain

        logger.info(
            f"Adopted market snapshot from {stored.source_id or 'unknown'} "
            f"written {stored.updated_at:%H:%M:%S}"
        )
        return True

    def _load_ledger(self, force: bool = True) -> bool:
        stored = self._read_newer(LEDGER_KEY, force=force)
        if stored is None:
            return False
        self.ledger.load_record(LedgerRecord.from_json(stored.payload))
        return True

    def _sync(self) -> None:
        changed = [
            key
            for key, load in ((MARKET_KEY, self._load_market), (LEDGER_KEY, self._load_ledger))
            if load(force=False)
        ]
        if changed:
            if LEDGER_KEY in changed:
                self.ledger.rerank()
            self._emit(EventType.STATE_RELOADED, keys=changed)

    def _on_notice(self, notice: SnapshotNotice) -> None:
        if notice.source_id == self.source_id:
            return
        age = (self.now - notice.changed_at).total_seconds()
        if age <= self.config.freshness_window_secs:
            logger.debug(f"Notice for '{notice.key}' from {notice.source_id}, reload scheduled")
            self._reload_requested.add(notice.key)

    def _process_reloads(self) -> None:
        if not self._reload_requested:
            return
        keys, self._reload_requested = self._reload_requested, set()
        changed = []
        if MARKET_KEY in keys and self._load_market(force=False):
            changed.append(MARKET_KEY)
        if LEDGER_KEY in keys and self._load_ledger(force=False):
            self.ledger.rerank()
            changed.append(LEDGER_KEY)
        if changed:
            self._emit(EventType.STATE_RELOADED, keys=changed)
