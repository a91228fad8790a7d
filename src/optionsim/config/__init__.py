"""
Configuration Module

This module provides the configuration class for the simulation engine.
"""

from optionsim.config.simulation_config import SimulationConfig

__all__ = ["SimulationConfig"]
