"""
Tests for SimulationRunner.

Runs the asyncio loop with a short tick interval against the in-memory
engine fixture.
"""

import asyncio
import os
import signal

import pytest
from loguru import logger

from optionsim.data.records import LEDGER_KEY, MARKET_KEY
from optionsim.exceptions import NotFoundError
from optionsim.execution.models import TradeDirection
from optionsim.orchestration.runner import SimulationRunner, setup_logging

TICK = 0.01


@pytest.fixture
def runner(engine):
    return SimulationRunner(engine, tick_interval=TICK)


class TestRun:
    @pytest.mark.asyncio
    async def test_run_for_duration(self, runner, memory_store):
        await asyncio.wait_for(runner.run(duration=0.05), timeout=5)

        assert not runner.running
        assert MARKET_KEY in memory_store
        assert LEDGER_KEY in memory_store

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, runner):
        await runner.start()

        await runner.stop()
        await runner.stop()

        assert not runner.running

    @pytest.mark.asyncio
    async def test_shutdown_signal_ends_run(self, runner):
        task = asyncio.create_task(runner.run())
        await asyncio.sleep(TICK * 3)

        runner._handle_shutdown_signal(signal.SIGTERM)

        await asyncio.wait_for(task, timeout=5)
        assert not runner.running

    @pytest.mark.asyncio
    async def test_sigterm_delivered_through_loop(self, runner):
        """Test that a real SIGTERM stops the loop through the installed handler."""
        task = asyncio.create_task(runner.run())
        await asyncio.sleep(TICK * 3)
        if not runner._signals_installed:
            await runner.stop()
            await task
            pytest.skip("signal handlers unavailable on this platform")

        os.kill(os.getpid(), signal.SIGTERM)

        await asyncio.wait_for(task, timeout=5)
        assert not runner.running

    def test_default_tick_interval(self, engine):
        assert SimulationRunner(engine).tick_interval == engine.config.tick_interval_secs


class TestWatch:
    """Test per-position live P&L watches."""

    @pytest.mark.asyncio
    async def test_streams_pnl_until_closed(self, runner, engine):
        position = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        updates = []

        task = runner.watch(position.id, lambda pid, pnl: updates.append((pid, pnl)))
        await asyncio.sleep(TICK * 5)

        assert updates
        assert all(pid == position.id for pid, _ in updates)
        assert runner.watched == [position.id]

        engine.close_position(position.id)
        await asyncio.wait_for(task, timeout=1)

        assert runner.watched == []

    @pytest.mark.asyncio
    async def test_async_callback(self, runner, engine):
        position = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        received = asyncio.Event()

        async def on_pnl(pid, pnl):
            received.set()

        runner.watch(position.id, on_pnl)

        await asyncio.wait_for(received.wait(), timeout=1)
        await runner.unwatch(position.id)
        assert runner.watched == []

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_watching(self, runner, engine):
        position = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        calls = []

        def broken(pid, pnl):
            calls.append(pnl)
            raise RuntimeError("boom")

        runner.watch(position.id, broken)
        await asyncio.sleep(TICK * 5)

        assert len(calls) > 1
        await runner.unwatch(position.id)

    @pytest.mark.asyncio
    async def test_unknown_position(self, runner):
        with pytest.raises(NotFoundError):
            runner.watch("missing", lambda pid, pnl: None)

    @pytest.mark.asyncio
    async def test_stop_cancels_watches(self, runner, engine):
        position = engine.open_position(engine.chain.calls[0].id, TradeDirection.BUY)
        await runner.start()
        task = runner.watch(position.id, lambda pid, pnl: None)

        await runner.stop()

        assert task.cancelled()
        assert runner.watched == []


class TestSetupLogging:
    def test_file_sink(self, tmp_path):
        log_file = tmp_path / "logs" / "simulation.log"
        setup_logging("DEBUG", str(log_file))

        logger.info("runner log line")
        logger.complete()

        assert "runner log line" in log_file.read_text()
        setup_logging()
