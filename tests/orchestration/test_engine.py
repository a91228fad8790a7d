"""
Tests for MarketEngine.

The engine runs on a fixed start time and advances only through tick(), so
every scenario is deterministic for a given seed.
"""

from datetime import timedelta

import pytest

from optionsim.config import SimulationConfig
from optionsim.data.channel import InMemorySnapshotChannel
from optionsim.data.records import LEDGER_KEY, MARKET_KEY
from optionsim.data.snapshot_store import DeltaLakeSnapshotStore, InMemorySnapshotStore
from optionsim.exceptions import NotFoundError, ValidationError
from optionsim.execution.models import OrderKind, PositionStatus, TradeDirection
from optionsim.orchestration.engine import MAX_CATCH_UP_TICKS, EventType, MarketEngine
from tests.fixtures.engine_fixtures import FailingSnapshotStore


def _event_types(events):
    return [e.type for e in events]


def _make_engine(config, store, channel, fixed_now, source_id):
    engine = MarketEngine(
        config=config,
        store=store,
        channel=channel,
        clock=lambda: fixed_now,
        source_id=source_id,
    )
    engine.start()
    return engine


class TestStartup:
    """Test a fresh engine."""

    def test_seeds_price_and_chain(self, engine, sim_config):
        assert sim_config.seed_price_low <= engine.current_price <= sim_config.seed_price_high
        assert len(engine.price_history) == 1
        assert len(engine.chain.calls) == 2 * sim_config.strikes_per_side + 1
        assert len(engine.chain.puts) == len(engine.chain.calls)

    def test_leaderboard_includes_user(self, engine):
        entries = engine.leaderboard

        assert len(entries) == 6
        assert engine.user_stats.rank == 6

    def test_market_summary(self, engine):
        summary = engine.market_summary()

        assert summary.price == engine.current_price
        assert summary.market_cap == pytest.approx(engine.current_price * 19_500_000)

    def test_time_until_rollover(self, engine):
        assert engine.time_until_rollover() == timedelta(hours=12)

    def test_from_config_uses_delta_lake(self, sim_config):
        engine = MarketEngine.from_config(sim_config)

        assert isinstance(engine.store, DeltaLakeSnapshotStore)
        assert engine.store.base_path == sim_config.lake_path


class TestTick:
    """Test clock stepping."""

    def test_counts_fast_ticks(self, engine, fixed_now):
        assert engine.tick(2.5) == 2
        assert engine.tick(0.5) == 1
        assert engine.now == fixed_now + timedelta(seconds=3)
        assert len(engine.price_history) == 4

    def test_invalid_elapsed_ignored(self, engine):
        assert engine.tick(-1.0) == 0
        assert engine.tick(float("nan")) == 0
        assert len(engine.price_history) == 1

    def test_emits_price_updates(self, engine, events):
        engine.tick(3.0)

        assert _event_types(events).count(EventType.PRICE_UPDATED) == 3

    def test_prices_stay_in_bounds(self, engine, sim_config):
        engine.tick(300.0)

        prices = [p.price for p in engine.price_history]
        assert all(sim_config.price_floor <= p <= sim_config.price_ceiling for p in prices)
        assert len(prices) == sim_config.history_limit

    def test_long_gap_jumps_clock(self, engine, fixed_now):
        ran = engine.tick(MAX_CATCH_UP_TICKS + 600.0)

        assert ran == MAX_CATCH_UP_TICKS
        assert engine.now == fixed_now + timedelta(seconds=MAX_CATCH_UP_TICKS + 600)

    def test_failing_handler_does_not_stop_tick(self, engine, events):
        def broken(event):
            raise RuntimeError("boom")

        engine.subscribe(broken)

        assert engine.tick(1.0) == 1
        assert EventType.PRICE_UPDATED in _event_types(events)

    def test_unsubscribe(self, engine):
        received = []
        unsubscribe = engine.subscribe(received.append)
        unsubscribe()

        engine.tick(1.0)

        assert received == []

    def test_market_persisted_on_refresh(self, engine, memory_store, events):
        engine.tick(29.0)
        assert MARKET_KEY not in memory_store

        engine.tick(1.0)

        assert MARKET_KEY in memory_store
        assert EventType.CHAIN_REGENERATED in _event_types(events)

    def test_same_seed_replays_same_prices(self, sim_config, fixed_now):
        first = _make_engine(sim_config, InMemorySnapshotStore(), None, fixed_now, "a")
        second = _make_engine(sim_config, InMemorySnapshotStore(), None, fixed_now, "b")

        first.tick(20.0)
        second.tick(20.0)

        assert [p.price for p in first.price_history] == [p.price for p in second.price_history]


class TestTrading:
    """Test the view actions."""

    def test_open_position(self, engine, memory_store, events):
        option = engine.chain.calls[0]

        position = engine.open_position(option.id, TradeDirection.BUY)

        assert position.entry_option_price == option.premium
        assert position.entry_underlying_price == engine.current_price
        assert [p.id for p in engine.active_trades] == [position.id]
        assert engine.user_stats.total_trades == 1
        assert engine.pnl(position.id) == pytest.approx(0.0)
        assert LEDGER_KEY in memory_store
        assert EventType.POSITION_OPENED in _event_types(events)

    def test_limit_order_fills_at_limit(self, engine):
        option = engine.chain.puts[0]

        position = engine.open_position(
            option.id, TradeDirection.SELL, OrderKind.LIMIT, 2, fill_price=option.premium + 5
        )

        assert position.entry_option_price == pytest.approx(option.premium + 5)
        assert position.quantity_lots == 2

    def test_unknown_option(self, engine):
        with pytest.raises(NotFoundError):
            engine.open_position("call-1-19700101", TradeDirection.BUY)

    def test_invalid_quantity(self, engine):
        with pytest.raises(ValidationError):
            engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY, quantity_lots=0)

        assert engine.active_trades == []

    def test_live_pnl_events(self, engine, events):
        engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)

        engine.tick(1.0)

        assert EventType.PNL_UPDATED in _event_types(events)

    def test_close_position(self, engine, events):
        opened = engine.open_position(engine.chain.calls[5].id, TradeDirection.BUY)
        engine.tick(5.0)

        closed = engine.close_position(opened.id)

        assert closed.status == PositionStatus.CLOSED
        assert closed.exit_time == engine.now
        assert engine.active_trades == []
        assert engine.recent_trades()[0].id == opened.id
        stats = engine.user_stats
        assert stats.wins + stats.losses == 1
        assert stats.profit_loss == pytest.approx(closed.realized_pnl)
        assert EventType.POSITION_CLOSED in _event_types(events)

    def test_close_unknown_position(self, engine):
        with pytest.raises(NotFoundError):
            engine.close_position("missing")

    def test_refresh_market(self, engine, memory_store):
        chain = engine.refresh_market()

        assert chain.calls
        assert MARKET_KEY in memory_store

    def test_performance(self, engine):
        opened = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        engine.close_position(opened.id)

        assert engine.performance().summary()["total_trades"] == 1


class TestSettlement:
    """Test expiry settlement across a day rollover."""

    @pytest.fixture
    def hourly_engine(self, tmp_path, memory_store, channel, fixed_now):
        config = SimulationConfig(
            seed=3,
            tick_interval_secs=60.0,
            market_refresh_secs=600.0,
            sync_interval_secs=600.0,
            data_dir=str(tmp_path / "lake"),
        )
        engine = _make_engine(config, memory_store, channel, fixed_now, "engine-h")
        yield engine
        engine.stop()

    def test_position_settles_at_expiry(self, hourly_engine, fixed_now):
        events = []
        hourly_engine.subscribe(events.append)
        opened = hourly_engine.open_position(
            hourly_engine.chain.calls[0].id, TradeDirection.BUY
        )

        hourly_engine.tick(25 * 3600.0)

        assert hourly_engine.active_trades == []
        settled = hourly_engine.recent_trades()[0]
        assert settled.id == opened.id
        assert settled.status == PositionStatus.SETTLED
        assert settled.exit_time >= opened.expiry_time
        assert hourly_engine.user_stats.wins + hourly_engine.user_stats.losses == 1
        types = _event_types(events)
        assert EventType.DAY_ROLLOVER in types
        assert EventType.POSITION_SETTLED in types

    def test_chain_regenerated_for_new_day(self, hourly_engine, fixed_now):
        first_day = hourly_engine.chain.trading_day

        hourly_engine.tick(13 * 3600.0)

        assert hourly_engine.chain.trading_day == first_day + timedelta(days=1)


class TestClearAllData:
    def test_resets_everything(self, engine, memory_store, events):
        engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        engine.tick(30.0)

        engine.clear_all_data()

        assert engine.active_trades == []
        assert engine.user_stats.total_trades == 0
        assert engine.user_stats.rank == 6
        assert len(engine.price_history) == 1
        assert engine.chain.calls
        assert LEDGER_KEY not in memory_store
        assert MARKET_KEY not in memory_store
        assert events[-1].type == EventType.DATA_CLEARED


class TestPersistence:
    """Test restore and multi-engine reconciliation."""

    def test_restore_from_store(self, engine, memory_store, sim_config, fixed_now):
        opened = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        engine.tick(3.0)
        engine.stop()

        restored = _make_engine(
            sim_config, memory_store, InMemorySnapshotChannel(), fixed_now, "engine-b"
        )

        assert [p.id for p in restored.active_trades] == [opened.id]
        assert restored.current_price == engine.current_price
        assert [o.id for o in restored.chain.calls] == [o.id for o in engine.chain.calls]
        assert restored.user_stats.total_trades == 1

    def test_notice_triggers_reload(self, engine, memory_store, channel, sim_config, fixed_now):
        other = _make_engine(sim_config, memory_store, channel, fixed_now, "engine-b")
        received = []
        other.subscribe(received.append)

        opened = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        other.tick(1.0)

        assert [p.id for p in other.active_trades] == [opened.id]
        assert EventType.STATE_RELOADED in _event_types(received)
        other.stop()

    def test_periodic_sync_without_notice(self, engine, memory_store, sim_config, fixed_now):
        other = _make_engine(
            sim_config, memory_store, InMemorySnapshotChannel(), fixed_now, "engine-b"
        )
        opened = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)

        other.tick(sim_config.sync_interval_secs - 1)
        assert other.active_trades == []

        other.tick(1.0)
        assert [p.id for p in other.active_trades] == [opened.id]

    def test_stale_snapshot_ignored(self, engine, memory_store, sim_config, fixed_now):
        """Test that an older write never replaces a newer local copy."""
        opened = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        stale = memory_store.load(LEDGER_KEY)

        other = _make_engine(
            sim_config, memory_store, InMemorySnapshotChannel(), fixed_now, "engine-b"
        )
        other.tick(2.0)
        other.close_position(opened.id)
        memory_store.save(LEDGER_KEY, stale.payload, stale.source_id, stale.updated_at)

        other.tick(sim_config.sync_interval_secs)

        assert other.active_trades == []
        assert other.recent_trades()[0].status == PositionStatus.CLOSED

    def test_failing_store_is_tolerated(self, sim_config, fixed_now):
        engine = _make_engine(sim_config, FailingSnapshotStore(), None, fixed_now, "engine-f")

        position = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        assert engine.tick(35.0) == 35
        engine.close_position(position.id)
        engine.clear_all_data()
        engine.stop()

        assert engine.user_stats.total_trades == 0
