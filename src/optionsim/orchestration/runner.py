"""
Simulation Runner

Asyncio host for MarketEngine: drives tick() from measured wall-clock time,
owns per-position live-update watches, and shuts down gracefully on
SIGINT/SIGTERM with a final flush of both persisted records.

Key features:
- Main loop calls engine.tick(elapsed) every tick_interval_secs
- watch(position_id, callback) streams live P&L for one position until it
  leaves ACTIVE (the watch task is then cancelled)
- stop() cancels every task and performs a best-effort final flush

Usage:
    from optionsim.orchestration import MarketEngine, SimulationRunner

    engine = MarketEngine.from_config(config)
    runner = SimulationRunner(engine)
    await runner.run(duration=60)
"""

import asyncio
import signal
import sys
from typing import Awaitable, Callable, Optional, Union

from loguru import logger

from optionsim.exceptions import NotFoundError
from optionsim.orchestration.engine import MarketEngine

logger = logger.bind(component="SimulationRunner")

PnlCallback = Callable[[str, float], Union[None, Awaitable[None]]]


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Configure loguru sinks: stderr plus an optional rotating file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )
    if log_file:
        logger.add(
            log_file,
            level=log_level,
            rotation="100 MB",
            retention="30 days",
            enqueue=True,
        )


class SimulationRunner:
    """
    Drive a MarketEngine from real time.

    Attributes:
        engine: MarketEngine being driven
        tick_interval: Seconds between tick() calls
    """

    def __init__(self, engine: MarketEngine, tick_interval: Optional[float] = None):
        """
        Initialize runner.

        Args:
            engine: Engine to drive
            tick_interval: Loop period (defaults to config.tick_interval_secs)
        """
        self.engine = engine
        self.tick_interval = tick_interval or engine.config.tick_interval_secs
        self.running = False
        self._shutdown_event = asyncio.Event()
        self._watches: dict[str, asyncio.Task] = {}
        self._signals_installed = False

    async def start(self) -> None:
        """
        Start the engine and install SIGINT/SIGTERM handlers.
        """
        self.engine.start()

        loop = asyncio.get_running_loop()
        try:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(sig, self._handle_shutdown_signal, sig)
            self._signals_installed = True
        except (NotImplementedError, RuntimeError):
            logger.warning("Signal handlers not supported here, use stop() to shut down")

        self.running = True
        logger.info(f"✓ Simulation runner started (tick every {self.tick_interval}s)")

    async def run(self, duration: Optional[float] = None) -> None:
        """
        Run the main loop until stop() is called, a signal arrives, or
        duration seconds have passed.

        Args:
            duration: Optional run time in seconds
        """
        if not self.running:
            await self.start()

        loop = asyncio.get_running_loop()
        started = last = loop.time()

        try:
            while self.running and not self._shutdown_event.is_set():
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.tick_interval)
                except asyncio.TimeoutError:
                    pass

                now = loop.time()
                self.engine.tick(now - last)
                last = now
                self._reap_watches()

                if duration is not None and now - started >= duration:
                    logger.info(f"Run duration of {duration}s reached")
                    break
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Cancel watches, remove signal handlers and flush the engine."""
        if not self.running and not self._watches:
            return
        self.running = False
        self._shutdown_event.set()

        for position_id in list(self._watches):
            await self.unwatch(position_id)

        if self._signals_installed:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            self._signals_installed = False

        try:
            self.engine.stop()
        except Exception as e:
            logger.error(f"Final flush failed: {e}")

        logger.info("✓ Simulation runner stopped")

    def _handle_shutdown_signal(self, sig) -> None:
        """
        Handle shutdown signals (SIGINT, SIGTERM).

        Args:
            sig: Signal number
        """
        logger.info(f"Received signal {sig.name}, shutting down...")
        self._shutdown_event.set()

    # ------------------------------------------------------------------
    # Position watches
    # ------------------------------------------------------------------

    def watch(self, position_id: str, callback: PnlCallback) -> asyncio.Task:
        """
        Stream live P&L of an active position to callback.

        The callback receives (position_id, pnl) every tick interval until the
        position settles or is closed.

        Raises:
            NotFoundError: If the id is not an active position
        """
        if not any(p.id == position_id for p in self.engine.active_trades):
            raise NotFoundError(f"No active position with id {position_id}", identifier=position_id)

        existing = self._watches.get(position_id)
        if existing is not None and not existing.done():
            existing.cancel()

        task = asyncio.create_task(self._watch_loop(position_id, callback))
        self._watches[position_id] = task
        logger.debug(f"Watching position {position_id}")
        return task

    async def unwatch(self, position_id: str) -> None:
        """Cancel the watch for a position (no-op when not watched)."""
        task = self._watches.pop(position_id, None)
        if task is None:
            return
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    @property
    def watched(self) -> list[str]:
        return [pid for pid, task in self._watches.items() if not task.done()]

    async def _watch_loop(self, position_id: str, callback: PnlCallback) -> None:
        while True:
            active = {p.id for p in self.engine.active_trades}
            if position_id not in active:
                logger.debug(f"Position {position_id} left active, watch ended")
                return
            try:
                result = callback(position_id, self.engine.pnl(position_id))
                if asyncio.iscoroutine(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Watch callback for {position_id} failed: {e}")
            await asyncio.sleep(self.tick_interval)

    def _reap_watches(self) -> None:
        active = {p.id for p in self.engine.active_trades}
        for position_id, task in list(self._watches.items()):
            if position_id not in active or task.done():
                if not task.done():
                    task.cancel()
                del self._watches[position_id]
