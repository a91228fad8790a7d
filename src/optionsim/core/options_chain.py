"""
Options Chain Builder

Generates the daily call/put chain around the current underlying price and
reprices it in place on every tick.

Layout:
- Base strike: current price rounded to the nearest strike step (100)
- 2 * strikes_per_side + 1 strikes (default 11), one call and one put each
- Fixed expiry (default 24 hours)

Option ids are "<kind>-<strike>-<YYYYMMDD>" so the same strike keeps its id
across regenerations within one trading day.

Usage:
    builder = OptionsChainBuilder(premium_model, rng=rng)
    chain = builder.generate(45050.0, volatility=0.02)
    builder.refresh(chain, 45110.0, 0.02, 0.2, last_price_change=0.0013)
"""

from datetime import date, datetime
from typing import Callable, Optional

import numpy as np
from loguru import logger

from optionsim.core.models import Option, OptionKind, OptionsChain
from optionsim.core.premium_model import PremiumModel

logger = logger.bind(component="OptionsChainBuilder")

VOLUME_RANGE = (200, 2200)
OPEN_INTEREST_RANGE = (1000, 9000)
VOLUME_STEP = 5
VOLUME_FLOOR = 50
OPEN_INTEREST_STEP = 10
OPEN_INTEREST_FLOOR = 100


def option_id(kind: OptionKind, strike: float, trading_day: date) -> str:
    """Identifier stable for a kind/strike within one trading day."""
    return f"{kind.value}-{strike:.0f}-{trading_day:%Y%m%d}"


class OptionsChainBuilder:
    """
    Build and refresh the options chain.

    Attributes:
        premium_model: PremiumModel used for every quote
        rng: Random source for volume / open interest
        symbol: Underlying symbol used in descriptions
        strike_step: Distance between strikes
        strikes_per_side: Strikes above and below the base strike
        expiry_hours: Expiry of generated options
    """

    def __init__(
        self,
        premium_model: Optional[PremiumModel] = None,
        rng: Optional[np.random.Generator] = None,
        symbol: str = "BTC",
        strike_step: float = 100.0,
        strikes_per_side: int = 5,
        expiry_hours: int = 24,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.rng = rng if rng is not None else np.random.default_rng()
        self.premium_model = premium_model or PremiumModel(rng=self.rng)
        self.symbol = symbol
        self.strike_step = strike_step
        self.strikes_per_side = strikes_per_side
        self.expiry_hours = expiry_hours
        self.clock = clock

    def base_strike(self, current_price: float) -> float:
        """Current price rounded to the nearest strike step."""
        return round(current_price / self.strike_step) * self.strike_step

    def strikes(self, current_price: float) -> list[float]:
        base = self.base_strike(current_price)
        return [
            base + offset * self.strike_step
            for offset in range(-self.strikes_per_side, self.strikes_per_side + 1)
        ]

    def generate(
        self,
        current_price: float,
        volatility: float,
        sentiment: float = 0.0,
        now: Optional[datetime] = None,
    ) -> OptionsChain:
        """
        Generate a fresh chain centered on the current price.

        Args:
            current_price: Underlying price
            volatility: Realized volatility
            sentiment: Market sentiment in [-1, 1]
            now: Generation time (defaults to the injected clock)

        Returns:
            OptionsChain with one call and one put per strike
        """
        now = now or self.clock()
        trading_day = now.date()
        chain = OptionsChain(generated_at=now, trading_day=trading_day)

        for strike in self.strikes(current_price):
            for kind, bucket in ((OptionKind.CALL, chain.calls), (OptionKind.PUT, chain.puts)):
                quote = self.premium_model.price(
                    strike, self.expiry_hours, current_price, volatility, sentiment, kind
                )
                bucket.append(
                    Option(
                        id=option_id(kind, strike, trading_day),
                        kind=kind,
                        strike_price=strike,
                        expiry_hours=self.expiry_hours,
                        premium=quote.premium,
                        volume=int(self.rng.integers(VOLUME_RANGE[0], VOLUME_RANGE[1] + 1)),
                        open_interest=int(
                            self.rng.integers(OPEN_INTEREST_RANGE[0], OPEN_INTEREST_RANGE[1] + 1)
                        ),
                        delta=quote.delta,
                        gamma=quote.gamma,
                        theta=quote.theta,
                        vega=quote.vega,
                        description=f"{self.symbol} {kind.value.title()} {strike:.0f}",
                    )
                )

        logger.debug(
            f"Generated chain: {len(chain.calls)} calls, {len(chain.puts)} puts, "
            f"strikes {chain.strikes()[0]:.0f}-{chain.strikes()[-1]:.0f}"
        )
        return chain

    def refresh(
        self,
        chain: OptionsChain,
        current_price: float,
        volatility: float,
        sentiment: float,
        last_price_change: float = 0.0,
    ) -> OptionsChain:
        """
        Reprice every option in place and random-walk volume / open interest.

        Option identity (id, strike, kind) is preserved.

        Returns:
            The same chain instance
        """
        for option in chain.all_options():
            quote = self.premium_model.reprice(
                option.strike_price,
                option.expiry_hours,
                current_price,
                volatility,
                sentiment,
                option.kind,
                last_price_change,
            )
            option.premium = quote.premium
            option.delta = quote.delta
            option.gamma = quote.gamma
            option.theta = quote.theta
            option.vega = quote.vega

            option.volume = max(
                VOLUME_FLOOR,
                option.volume + int(self.rng.integers(-VOLUME_STEP, VOLUME_STEP + 1)),
            )
            option.open_interest = max(
                OPEN_INTEREST_FLOOR,
                option.open_interest
                + int(self.rng.integers(-OPEN_INTEREST_STEP, OPEN_INTEREST_STEP + 1)),
            )

        return chain

    def needs_rollover(self, chain: Optional[OptionsChain], now: datetime) -> bool:
        """True when the chain belongs to an earlier trading day (or is missing)."""
        return chain is None or chain.trading_day is None or chain.trading_day != now.date()
