"""
Unit tests for PriceSimulator.

Tests seeding, clamping to the price band, the large-move regime timer and
replayability with a seeded random source.
"""

from datetime import timedelta

import numpy as np
import pytest

from optionsim.core.price_simulator import PriceSimulator
from optionsim.exceptions import SimulationInvariantViolation


class TestSeeding:
    """Test the initial price."""

    @pytest.mark.parametrize("previous", [None, 0, 0.0])
    def test_seed_when_no_previous_price(self, rng, previous):
        """Test that a missing price is seeded in [44000, 46000]."""
        sim = PriceSimulator(rng=rng)

        price = sim.next_price(previous)

        assert 44000 <= price <= 46000

    def test_first_step_starts_regime_timer(self, rng, fixed_now):
        """Test that the first real step records the large-move timer start."""
        sim = PriceSimulator(rng=rng)
        assert sim.last_large_move_time is None

        sim.next_price(45000.0, now=fixed_now)

        assert sim.last_large_move_time == fixed_now


class TestBounds:
    """Test the [30000, 80000] clamp."""

    def test_random_walk_stays_in_band(self, rng, fixed_now):
        """Test 2000 steps (including large moves) never leave the band."""
        sim = PriceSimulator(rng=rng)
        price = None
        history = []

        for i in range(2000):
            now = fixed_now + timedelta(minutes=i)
            price = sim.next_price(price, history, now)
            history.append(price)
            assert 30000 <= price <= 80000

    def test_clamped_at_ceiling(self, rng, fixed_now):
        """Test that a step from the ceiling never exceeds it."""
        sim = PriceSimulator(rng=rng)

        for i in range(200):
            assert sim.next_price(80000.0, now=fixed_now + timedelta(seconds=i)) <= 80000

    def test_clamped_at_floor(self, rng, fixed_now):
        """Test that a step from the floor never goes below it."""
        sim = PriceSimulator(rng=rng)

        for i in range(200):
            assert sim.next_price(30000.0, now=fixed_now + timedelta(seconds=i)) >= 30000

    def test_non_finite_step_raises(self, rng, fixed_now):
        """Test that a NaN price is reported instead of propagated."""
        sim = PriceSimulator(rng=rng)

        with pytest.raises(SimulationInvariantViolation):
            sim.next_price(float("nan"), now=fixed_now)


class TestRegimes:
    """Test small moves and the large-move regime."""

    def test_small_moves_before_wait_elapses(self, rng, fixed_now):
        """Test that moves stay small within 30 minutes of the last large move."""
        sim = PriceSimulator(rng=rng)
        sim.last_large_move_time = fixed_now - timedelta(minutes=10)

        for i in range(200):
            price = sim.next_price(45000.0, now=fixed_now + timedelta(seconds=i))
            # noise <= 0.08% plus trend <= 0.01%, no momentum without history
            assert abs(price / 45000.0 - 1) < 0.001

        assert sim.last_large_move_time == fixed_now - timedelta(minutes=10)

    def test_large_move_after_wait(self, rng, fixed_now):
        """Test that a large move of 0.8%-1.5% fires once the wait is over."""
        sim = PriceSimulator(rng=rng)
        sim.last_large_move_time = fixed_now - timedelta(minutes=61)

        changes = []
        for _ in range(50):
            price = sim.next_price(45000.0, now=fixed_now)
            changes.append(abs(price / 45000.0 - 1))
            if sim.last_large_move_time == fixed_now:
                break

        assert sim.last_large_move_time == fixed_now
        assert 0.008 - 1e-9 <= changes[-1] <= 0.015 + 1e-9


class TestReplay:
    """Test replayability with an injected random source."""

    def test_same_seed_same_path(self, fixed_now):
        """Test that two simulators with the same seed produce the same path."""
        paths = []
        for _ in range(2):
            sim = PriceSimulator(rng=np.random.default_rng(123))
            price, path = None, []
            for i in range(100):
                price = sim.next_price(price, path, fixed_now + timedelta(seconds=i))
                path.append(price)
            paths.append(path)

        assert paths[0] == paths[1]
