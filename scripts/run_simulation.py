#!/usr/bin/env python3
"""
Run Options Market Simulation

This script runs the market engine under the asyncio runner: the underlying
price ticks every second, the options chain is repriced in place and
regenerated every refresh interval, and both records are persisted to Delta
Lake.

Usage:
    # Run with default config (config/simulation.yaml)
    python scripts/run_simulation.py

    # Run with custom config
    python scripts/run_simulation.py --config /path/to/config.yaml

    # Replayable run for two minutes with verbose logging
    python scripts/run_simulation.py --seed 42 --duration 120 --verbose
"""

import argparse
import asyncio
import sys

from loguru import logger

from optionsim.config import SimulationConfig
from optionsim.orchestration import MarketEngine, SimulationRunner, setup_logging


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run the options market simulation",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--config",
        type=str,
        default="config/simulation.yaml",
        help="Path to simulation config file",
    )

    parser.add_argument(
        "--env",
        action="store_true",
        help="Load config from environment variables instead of file",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed (overrides config)",
    )

    parser.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Stop after this many seconds (default: run until interrupted)",
    )

    return parser.parse_args()


async def main():
    """Main entry point for the simulation."""
    args = parse_args()

    # Load configuration
    try:
        if args.env:
            config = SimulationConfig.load_from_env()
        else:
            config = SimulationConfig.load_from_file(args.config)
    except FileNotFoundError as e:
        logger.error(f"Config file not found: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    if args.seed is not None:
        config.seed = args.seed

    # Configure logging
    setup_logging("DEBUG" if args.verbose else config.log_level, config.log_file)

    logger.info("=" * 80)
    logger.info(f"Options market simulation starting ({config.symbol})")
    logger.info("=" * 80)
    logger.info(f"Data dir: {config.data_dir}, seed: {config.seed}")

    engine = MarketEngine.from_config(config)
    runner = SimulationRunner(engine)

    try:
        await runner.run(duration=args.duration)
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        await runner.stop()

    stats = engine.user_stats
    logger.info("Session summary:")
    logger.info(f"  price: {engine.current_price:.2f}")
    logger.info(f"  trades: {stats.total_trades} (wins {stats.wins}, losses {stats.losses})")
    logger.info(f"  P&L: ${stats.profit_loss:.2f}, rank: {stats.rank}")
    for key, value in engine.performance().all_metrics().items():
        logger.info(f"  {key}: {value}")

    logger.info("Simulation stopped")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
