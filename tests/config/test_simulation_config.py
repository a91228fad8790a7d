"""
Tests for SimulationConfig.
"""

from pathlib import Path

import pytest
import yaml

from optionsim.config import SimulationConfig

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "simulation.yaml"


class TestDefaults:
    def test_defaults(self):
        config = SimulationConfig()

        assert config.tick_interval_secs == 1.0
        assert config.market_refresh_secs == 30.0
        assert config.sync_interval_secs == 10.0
        assert config.lot_size == 75
        assert config.history_limit == 100
        assert len(config.rivals) == 5

    def test_normalizes_case(self):
        config = SimulationConfig(symbol="btc", log_level="debug")

        assert config.symbol == "BTC"
        assert config.log_level == "DEBUG"

    def test_lake_path(self, tmp_path):
        config = SimulationConfig(data_dir=str(tmp_path / "lake"))

        assert config.lake_path == tmp_path / "lake"


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"tick_interval_secs": 0},
            {"sync_interval_secs": -1.0},
            {"history_limit": 10},
            {"price_floor": 90000.0},
            {"seed_price_low": 20000.0},
            {"strike_step": 0},
            {"option_expiry_hours": 0},
            {"lot_size": 0},
            {"atm_band": 1.5},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValueError):
            SimulationConfig(**overrides)


class TestFileLoading:
    """Test YAML loading and saving."""

    def test_repository_config_loads(self):
        config = SimulationConfig.load_from_file(str(REPO_CONFIG))

        assert config == SimulationConfig()

    def test_round_trip(self, tmp_path):
        path = tmp_path / "configs" / "sim.yaml"
        original = SimulationConfig(seed=42, lot_size=50, data_dir=str(tmp_path / "lake"))

        original.save_to_file(str(path))

        assert SimulationConfig.load_from_file(str(path)) == original

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "sim.yaml"
        path.write_text(yaml.dump({"lot_size": 25, "legacy_option": True}))

        config = SimulationConfig.load_from_file(str(path))

        assert config.lot_size == 25

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert SimulationConfig.load_from_file(str(path)) == SimulationConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SimulationConfig.load_from_file(str(tmp_path / "missing.yaml"))


class TestEnvLoading:
    def test_load_from_env(self, monkeypatch):
        monkeypatch.setenv("OPTIONSIM_SEED", "11")
        monkeypatch.setenv("OPTIONSIM_TICK_INTERVAL", "0.5")
        monkeypatch.setenv("OPTIONSIM_LOT_SIZE", "10")
        monkeypatch.setenv("OPTIONSIM_LOG_LEVEL", "warning")

        config = SimulationConfig.load_from_env()

        assert config.seed == 11
        assert config.tick_interval_secs == 0.5
        assert config.lot_size == 10
        assert config.log_level == "WARNING"

    def test_env_defaults(self, monkeypatch):
        monkeypatch.delenv("OPTIONSIM_SEED", raising=False)

        assert SimulationConfig.load_from_env().seed is None
