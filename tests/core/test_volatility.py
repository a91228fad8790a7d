"""
Unit tests for VolatilityEstimator.
"""

import pytest

from optionsim.core.volatility import VolatilityEstimator


@pytest.fixture
def estimator(rng):
    return VolatilityEstimator(rng=rng)


class TestVolatility:
    """Test realized volatility."""

    @pytest.mark.parametrize("history", [[], [45000.0]])
    def test_default_for_short_history(self, estimator, history):
        """Test that fewer than two points yield 2%."""
        assert estimator.volatility(history) == 0.02

    def test_flat_prices_clamped_to_minimum(self, estimator):
        """Test that zero variance is clamped up to 1%."""
        assert estimator.volatility([45000.0] * 20) == 0.01

    def test_wild_prices_clamped_to_maximum(self, estimator):
        """Test that huge swings are clamped down to 5%."""
        assert estimator.volatility([40000.0, 60000.0, 40000.0, 60000.0]) == 0.05

    def test_within_bounds(self, estimator, rising_history):
        """Test that PricePoint input is accepted and clamped to [1%, 5%]."""
        vol = estimator.volatility(rising_history)

        assert 0.01 <= vol <= 0.05

    def test_population_std_of_returns(self, estimator):
        """Test the population standard deviation inside the band."""
        # returns: +3%, -3% -> population std 3%
        prices = [100.0, 103.0, 103.0 * 0.97]

        assert estimator.volatility(prices) == pytest.approx(0.03)


class TestSentiment:
    """Test up/down balance over the last 10 points."""

    def test_zero_below_window(self, estimator):
        """Test that fewer than 10 points yield 0."""
        assert estimator.sentiment([1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0, 9.0]) == 0.0

    def test_all_up(self, estimator, rising_history):
        """Test that a strictly rising window is fully bullish."""
        assert estimator.sentiment(rising_history) == 1.0

    def test_all_down(self, estimator):
        """Test that a strictly falling window is fully bearish."""
        assert estimator.sentiment([float(100 - i) for i in range(10)]) == -1.0

    def test_flat_window(self, estimator):
        """Test that a window without moves is neutral."""
        assert estimator.sentiment([45000.0] * 10) == 0.0

    def test_only_last_ten_points_count(self, estimator):
        """Test that older points are ignored."""
        prices = [float(100 - i) for i in range(20)] + [float(i) for i in range(10)]

        assert estimator.sentiment(prices) == 1.0


class TestMomentumAndChange:
    """Test momentum, 24h change and last change."""

    def test_momentum(self, estimator):
        """Test (p[-1] - p[-3]) / p[-3] scaled by 0.1."""
        assert estimator.momentum([100.0, 105.0, 110.0]) == pytest.approx(0.01)

    def test_momentum_short_history(self, estimator):
        """Test that fewer than 3 points yield 0."""
        assert estimator.momentum([100.0, 105.0]) == 0.0

    def test_change_24h(self, estimator):
        """Test change against the point 24 samples back."""
        prices = [100.0 + i for i in range(24)]

        assert estimator.change_24h(prices) == pytest.approx(0.23)

    def test_change_24h_fallback_is_bounded(self, estimator):
        """Test that a short history yields a random change within ±5%."""
        for _ in range(50):
            assert -0.05 <= estimator.change_24h([100.0, 101.0]) <= 0.05

    def test_last_change(self, estimator):
        """Test the fractional change between the last two points."""
        assert estimator.last_change([100.0, 200.0, 202.0]) == pytest.approx(0.01)
        assert estimator.last_change([100.0]) == 0.0
