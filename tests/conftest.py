"""Shared pytest fixtures for optionsim tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

# Import all fixtures for global availability
from tests.fixtures.market_fixtures import *
from tests.fixtures.engine_fixtures import *


@pytest.fixture
def lake_path(tmp_path):
    """
    Create a fresh Delta Lake directory for each test.

    Returns:
        Path: Path to temporary Delta Lake directory

    Example:
        def test_with_lake(lake_path):
            store = DeltaLakeSnapshotStore(str(lake_path))
    """
    return tmp_path / "lake"
