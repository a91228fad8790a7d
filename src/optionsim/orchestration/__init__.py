"""
Orchestration Package

MarketEngine (pure, tick-driven engine) and SimulationRunner (asyncio host).
"""

from optionsim.orchestration.engine import EngineEvent, EventType, MarketEngine
from optionsim.orchestration.runner import SimulationRunner, setup_logging

__all__ = [
    "EngineEvent",
    "EventType",
    "MarketEngine",
    "SimulationRunner",
    "setup_logging",
]
