"""
Simulation Configuration

This module provides configuration for the market simulation and trading engine:
timer intervals, price bounds, chain layout, lot size, persistence location and
logging.

Usage:
    from optionsim.config import SimulationConfig

    config = SimulationConfig.load_from_file("config/simulation.yaml")
    engine = MarketEngine.from_config(config)
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from loguru import logger

logger = logger.bind(component="SimulationConfig")


def _default_rivals() -> list[dict]:
    return [
        {"name": "DeltaHunter", "score": 1250.0, "trades": 45, "win_rate": 78.0},
        {"name": "GammaScalper", "score": 980.0, "trades": 32, "win_rate": 72.0},
        {"name": "ThetaDecay", "score": 875.0, "trades": 28, "win_rate": 68.0},
        {"name": "VegaVandal", "score": 720.0, "trades": 25, "win_rate": 65.0},
        {"name": "StrikeSeeker", "score": 650.0, "trades": 22, "win_rate": 62.0},
    ]


@dataclass
class SimulationConfig:
    """
    Engine configuration with validated bounds.

    Attributes:
        symbol: Display symbol of the synthetic underlying
        seed: Random seed (None for a non-replayable run)
        tick_interval_secs: Fast tick period (price, repricing, expiry check)
        market_refresh_secs: Chain regeneration + persistence period
        sync_interval_secs: Period for re-reading the shared snapshot
        freshness_window_secs: Max age of a notice that triggers an early reload
        history_limit: Number of price points kept
        price_floor: Lower clamp for the underlying
        price_ceiling: Upper clamp for the underlying
        seed_price_low: Lower bound of the initial price
        seed_price_high: Upper bound of the initial price
        strike_step: Distance between adjacent strikes
        strikes_per_side: Strikes generated above and below the base strike
        option_expiry_hours: Expiry of every generated option
        lot_size: Contracts per lot
        atm_band: Relative distance from spot treated as at-the-money
        data_dir: Directory holding the Delta Lake snapshot tables
        log_level: Logging level
        log_file: Log file path
        rivals: Fixed leaderboard field
    """

    symbol: str = "BTC"
    seed: Optional[int] = None

    # Timers
    tick_interval_secs: float = 1.0
    market_refresh_secs: float = 30.0
    sync_interval_secs: float = 10.0
    freshness_window_secs: float = 5.0

    # Price simulation
    history_limit: int = 100
    price_floor: float = 30000.0
    price_ceiling: float = 80000.0
    seed_price_low: float = 44000.0
    seed_price_high: float = 46000.0

    # Options chain
    strike_step: float = 100.0
    strikes_per_side: int = 5
    option_expiry_hours: int = 24
    lot_size: int = 75
    atm_band: float = 0.001

    # Persistence
    data_dir: str = "data/lake"

    # Logging
    log_level: str = "INFO"
    log_file: str = "logs/simulation.log"

    rivals: list[dict] = field(default_factory=_default_rivals)

    def __post_init__(self):
        """Validate configuration after initialization."""
        for name in (
            "tick_interval_secs",
            "market_refresh_secs",
            "sync_interval_secs",
            "freshness_window_secs",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        if self.history_limit < 24:
            raise ValueError(
                f"history_limit={self.history_limit} is too small, "
                "24h change needs at least 24 points"
            )

        if not 0 < self.price_floor < self.price_ceiling:
            raise ValueError(
                f"Invalid price bounds: floor={self.price_floor}, ceiling={self.price_ceiling}"
            )

        if not self.price_floor <= self.seed_price_low <= self.seed_price_high <= self.price_ceiling:
            raise ValueError(
                f"Seed range [{self.seed_price_low}, {self.seed_price_high}] "
                f"must lie within [{self.price_floor}, {self.price_ceiling}]"
            )

        if self.strike_step <= 0 or self.strikes_per_side < 0:
            raise ValueError("strike_step must be positive and strikes_per_side non-negative")

        if self.option_expiry_hours < 1:
            raise ValueError(f"option_expiry_hours must be >= 1, got {self.option_expiry_hours}")

        if self.lot_size < 1:
            raise ValueError(f"lot_size must be >= 1, got {self.lot_size}")

        if not 0 <= self.atm_band < 1:
            raise ValueError(f"atm_band must be in [0, 1), got {self.atm_band}")

        self.symbol = self.symbol.upper()
        self.log_level = self.log_level.upper()

    @property
    def lake_path(self) -> Path:
        """Root directory of the snapshot tables."""
        return Path(self.data_dir)

    @classmethod
    def load_from_file(cls, config_path: str) -> "SimulationConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML config file

        Returns:
            SimulationConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}

        unknown = set(config_data) - set(cls.__dataclass_fields__)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
            for key in unknown:
                config_data.pop(key)

        logger.info(f"Loaded simulation config from {config_path}")
        return cls(**config_data)

    @classmethod
    def load_from_env(cls) -> "SimulationConfig":
        """
        Load configuration from environment variables.

        Environment variables:
            OPTIONSIM_SYMBOL
            OPTIONSIM_SEED
            OPTIONSIM_TICK_INTERVAL
            OPTIONSIM_MARKET_REFRESH
            OPTIONSIM_SYNC_INTERVAL
            OPTIONSIM_LOT_SIZE
            OPTIONSIM_DATA_DIR
            OPTIONSIM_LOG_LEVEL
            OPTIONSIM_LOG_FILE

        Returns:
            SimulationConfig instance
        """
        seed = os.getenv("OPTIONSIM_SEED")

        return cls(
            symbol=os.getenv("OPTIONSIM_SYMBOL", "BTC"),
            seed=int(seed) if seed else None,
            tick_interval_secs=float(os.getenv("OPTIONSIM_TICK_INTERVAL", "1.0")),
            market_refresh_secs=float(os.getenv("OPTIONSIM_MARKET_REFRESH", "30.0")),
            sync_interval_secs=float(os.getenv("OPTIONSIM_SYNC_INTERVAL", "10.0")),
            lot_size=int(os.getenv("OPTIONSIM_LOT_SIZE", "75")),
            data_dir=os.getenv("OPTIONSIM_DATA_DIR", "data/lake"),
            log_level=os.getenv("OPTIONSIM_LOG_LEVEL", "INFO"),
            log_file=os.getenv("OPTIONSIM_LOG_FILE", "logs/simulation.log"),
        )

    def save_to_file(self, config_path: str) -> None:
        """
        Save configuration to YAML file.

        Args:
            config_path: Path to save config file
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, sort_keys=False)

        logger.info(f"Saved simulation config to {config_path}")
