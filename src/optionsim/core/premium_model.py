"""
Option Premium Model

Heuristic premium and Greeks for the simulated chain. This is NOT a
Black-Scholes implementation: time value is a volatility-smile scaled
fraction of the underlying, and the Greeks are closed-form proxies.

Two entry points:
- price(): premium + Greeks used when a chain is generated
- reprice(): price() followed by the moneyness-tiered adjustment and the
  directional nudge applied on every chain refresh

Usage:
    from optionsim.core.premium_model import PremiumModel

    model = PremiumModel()
    quote = model.price(45000, 24, 45120.0, 0.02, 0.2, OptionKind.CALL)
    print(quote.premium, quote.delta)
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from optionsim.core.models import Moneyness, OptionKind, classify_moneyness
from optionsim.exceptions import finite_or

PREMIUM_FLOOR = 0.001
REFRESH_PREMIUM_FLOOR = 0.0001
TIME_VALUE_SCALE = 0.15
SMILE_SLOPE = 0.5
SENTIMENT_WEIGHT = 0.2

ITM_TIME_VALUE_SHARE = 0.3
ITM_MAX_DEPTH_MARKUP = 0.5
DEPTH_UNIT = 1000.0
ATM_MARKUP = 0.2
OTM_DISCOUNT_PER_UNIT = 0.8
OTM_MIN_FACTOR = 0.2
NUDGE_SENSITIVITY = {
    Moneyness.ITM: 1.5,
    Moneyness.ATM: 1.0,
    Moneyness.OTM: 0.5,
}
NUDGE_NOISE = 0.005


@dataclass(slots=True, frozen=True)
class Quote:
    """Premium and Greeks for a single option."""

    premium: float
    delta: float
    gamma: float
    theta: float
    vega: float


def intrinsic_value(kind: OptionKind, strike_price: float, underlying_price: float) -> float:
    """Exercise value: max(0, S - K) for calls, max(0, K - S) for puts."""
    if kind == OptionKind.CALL:
        return max(0.0, underlying_price - strike_price)
    return max(0.0, strike_price - underlying_price)


class PremiumModel:
    """
    Price options from strike, expiry, volatility, sentiment and spot.

    Attributes:
        atm_band: Relative distance from spot treated as at-the-money
        rng: Random source for the refresh noise term
    """

    def __init__(self, atm_band: float = 0.001, rng: Optional[np.random.Generator] = None):
        self.atm_band = atm_band
        self.rng = rng if rng is not None else np.random.default_rng()

    def price(
        self,
        strike: float,
        expiry_hours: float,
        current_price: float,
        volatility: float,
        sentiment: float,
        kind: OptionKind,
    ) -> Quote:
        """
        Premium and Greeks at generation time.

        premium = max(0.001, intrinsic + time_value) * (1 + 0.2 * sentiment),
        never below 0.001.

        Args:
            strike: Strike price
            expiry_hours: Hours until expiry
            current_price: Underlying price
            volatility: Realized volatility (fraction)
            sentiment: Market sentiment in [-1, 1]
            kind: CALL or PUT

        Returns:
            Quote with premium and Greek proxies. Inputs that cannot be priced
            (non-positive prices, NaN) yield the floor premium and zero Greeks.
        """
        if not (
            _positive(strike)
            and _positive(current_price)
            and _positive(expiry_hours)
            and _positive(volatility)
        ):
            return Quote(PREMIUM_FLOOR, 0.0, 0.0, 0.0, 0.0)
        sentiment = finite_or(sentiment, 0.0)

        t = expiry_hours / 24
        sqrt_t = math.sqrt(t)
        moneyness = math.log(strike / current_price)
        smile_vol = volatility * (1 + SMILE_SLOPE * abs(moneyness))

        intrinsic = intrinsic_value(kind, strike, current_price)
        time_value = current_price * smile_vol * sqrt_t * TIME_VALUE_SCALE

        base = max(PREMIUM_FLOOR, intrinsic + time_value)
        premium = max(PREMIUM_FLOOR, base * (1 + SENTIMENT_WEIGHT * sentiment))

        scaled = moneyness / volatility
        gaussian = math.exp(-(scaled**2) / 2)

        call_delta = min(1.0, max(0.0, 0.5 - 0.5 * scaled))
        delta = call_delta if kind == OptionKind.CALL else call_delta - 1.0
        gamma = gaussian / (current_price * volatility * sqrt_t)
        theta = -(current_price * smile_vol * TIME_VALUE_SCALE) / (2 * sqrt_t)
        vega = current_price * sqrt_t * TIME_VALUE_SCALE * gaussian / 100

        return Quote(
            premium=finite_or(premium, PREMIUM_FLOOR),
            delta=finite_or(delta, 0.0),
            gamma=finite_or(gamma, 0.0),
            theta=finite_or(theta, 0.0),
            vega=finite_or(vega, 0.0),
        )

    def reprice(
        self,
        strike: float,
        expiry_hours: float,
        current_price: float,
        volatility: float,
        sentiment: float,
        kind: OptionKind,
        last_price_change: float = 0.0,
    ) -> Quote:
        """
        Premium and Greeks on chain refresh.

        Applies, on top of price():
        - ITM: intrinsic + 30% of time value, marked up by up to 50% with depth
          (full markup at $1000 in the money)
        - ATM: flat 20% markup
        - OTM: discount growing with distance, floored at 20% of the premium
        - Directional nudge following the last underlying move, scaled by
          tier (ITM 1.5, ATM 1.0, OTM 0.5), mirrored for puts, plus noise

        Floor after all adjustments: 0.0001.
        """
        quote = self.price(strike, expiry_hours, current_price, volatility, sentiment, kind)
        if not (_positive(strike) and _positive(current_price)):
            return Quote(REFRESH_PREMIUM_FLOOR, 0.0, 0.0, 0.0, 0.0)

        tier = classify_moneyness(kind, strike, current_price, self.atm_band)
        intrinsic = intrinsic_value(kind, strike, current_price)
        premium = self._tier_adjust(quote.premium, intrinsic, tier, abs(current_price - strike))

        direction = finite_or(last_price_change, 0.0) * NUDGE_SENSITIVITY[tier]
        if kind == OptionKind.PUT:
            direction = -direction
        noise = float(self.rng.uniform(-NUDGE_NOISE, NUDGE_NOISE))
        premium *= 1 + direction + noise

        premium = max(REFRESH_PREMIUM_FLOOR, finite_or(premium, REFRESH_PREMIUM_FLOOR))
        return Quote(premium, quote.delta, quote.gamma, quote.theta, quote.vega)

    def _tier_adjust(
        self, premium: float, intrinsic: float, tier: Moneyness, distance: float
    ) -> float:
        if tier == Moneyness.ITM:
            time_value = max(0.0, premium - intrinsic)
            depth_markup = ITM_MAX_DEPTH_MARKUP * min(intrinsic / DEPTH_UNIT, 1.0)
            return (intrinsic + ITM_TIME_VALUE_SHARE * time_value) * (1 + depth_markup)
        if tier == Moneyness.ATM:
            return premium * (1 + ATM_MARKUP)
        factor = max(OTM_MIN_FACTOR, 1 - OTM_DISCOUNT_PER_UNIT * distance / DEPTH_UNIT)
        return premium * factor

    def classify(self, kind: OptionKind, strike: float, current_price: float) -> Moneyness:
        return classify_moneyness(kind, strike, current_price, self.atm_band)


def _positive(value) -> bool:
    return finite_or(value, 0.0) > 0
