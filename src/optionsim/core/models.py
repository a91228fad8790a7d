"""
Market data models for the simulation engine.

This module contains dataclass definitions shared across the core and
execution packages to avoid circular imports.

Decision tree:
    Is this data internal to my process?
    ├─ Yes → Use dataclass (performance matters) ← WE ARE HERE
    └─ No → Use Pydantic (validation critical), see optionsim.data.records
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Iterable, Iterator, Optional


class OptionKind(str, Enum):
    """Option type enum."""

    CALL = "call"
    PUT = "put"


class Moneyness(str, Enum):
    """Option moneyness relative to the underlying."""

    ITM = "itm"
    ATM = "atm"
    OTM = "otm"


def classify_moneyness(
    kind: OptionKind,
    strike_price: float,
    current_price: float,
    atm_band: float = 0.001,
) -> Moneyness:
    """
    Classify an option as in-, at- or out-of-the-money.

    ATM when |S - K| / S is below atm_band; otherwise calls with S > K and
    puts with K > S are ITM.

    Args:
        kind: CALL or PUT
        strike_price: Strike price
        current_price: Underlying price
        atm_band: Relative distance treated as at-the-money

    Returns:
        Moneyness classification
    """
    if current_price <= 0:
        return Moneyness.OTM
    distance = current_price - strike_price
    if abs(distance) / current_price < atm_band:
        return Moneyness.ATM
    if kind == OptionKind.CALL:
        return Moneyness.ITM if distance > 0 else Moneyness.OTM
    return Moneyness.ITM if distance < 0 else Moneyness.OTM


@dataclass(slots=True, frozen=True)
class PricePoint:
    """Single underlying price observation."""

    timestamp: datetime
    price: float


class PriceHistory:
    """
    Bounded, append-only sequence of PricePoint.

    Keeps the most recent `limit` points (oldest evicted on overflow).
    Timestamps are kept non-decreasing: a point stamped earlier than the last
    one is re-stamped with the last timestamp.
    """

    def __init__(self, limit: int = 100, points: Optional[Iterable[PricePoint]] = None):
        if limit < 1:
            raise ValueError(f"History limit must be positive, got {limit}")
        self.limit = limit
        self._points: deque[PricePoint] = deque(maxlen=limit)
        for point in points or ():
            self.append(point)

    def append(self, point: PricePoint) -> PricePoint:
        if self._points and point.timestamp < self._points[-1].timestamp:
            point = PricePoint(timestamp=self._points[-1].timestamp, price=point.price)
        self._points.append(point)
        return point

    def record(self, timestamp: datetime, price: float) -> PricePoint:
        return self.append(PricePoint(timestamp=timestamp, price=price))

    def prices(self) -> list[float]:
        return [p.price for p in self._points]

    def last(self) -> Optional[PricePoint]:
        return self._points[-1] if self._points else None

    def clear(self) -> None:
        self._points.clear()

    def replace(self, points: Iterable[PricePoint]) -> None:
        self._points.clear()
        for point in points:
            self.append(point)

    def to_list(self) -> list[PricePoint]:
        return list(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[PricePoint]:
        return iter(self._points)

    def __getitem__(self, index: int) -> PricePoint:
        return self._points[index]

    def __repr__(self) -> str:
        return f"PriceHistory(len={len(self)}, limit={self.limit})"


@dataclass(slots=True)
class Option:
    """
    Quoted option in the live chain.

    Mutated in place by chain refresh; replaced wholesale on regeneration.

    Attributes:
        id: Identifier, stable for a strike/kind within one trading day
        kind: CALL or PUT
        strike_price: Strike price
        expiry_hours: Hours from entry until expiry
        premium: Current premium per contract
        volume: Simulated traded volume
        open_interest: Simulated open interest
        delta: Delta proxy
        gamma: Gamma proxy
        theta: Theta proxy (per day)
        vega: Vega proxy (per volatility point)
        description: Display label, e.g. "BTC Call 45000"
    """

    id: str
    kind: OptionKind
    strike_price: float
    expiry_hours: int
    premium: float
    volume: int
    open_interest: int
    delta: float = 0.0
    gamma: float = 0.0
    theta: float = 0.0
    vega: float = 0.0
    description: str = ""

    def snapshot(self) -> "OptionSnapshot":
        """Copy the contract terms and current premium by value."""
        return OptionSnapshot(
            option_id=self.id,
            kind=self.kind,
            strike_price=self.strike_price,
            expiry_hours=self.expiry_hours,
            premium=self.premium,
            description=self.description,
        )

    def moneyness(self, current_price: float, atm_band: float = 0.001) -> Moneyness:
        """Classify against the current underlying price."""
        return classify_moneyness(self.kind, self.strike_price, current_price, atm_band)


@dataclass(slots=True, frozen=True)
class OptionSnapshot:
    """Option terms captured at position entry. Never references the live chain."""

    option_id: str
    kind: OptionKind
    strike_price: float
    expiry_hours: int
    premium: float
    description: str = ""


@dataclass(slots=True)
class OptionsChain:
    """
    Calls and puts generated for one trading day.

    Attributes:
        calls: Call options ordered by strike
        puts: Put options ordered by strike
        generated_at: When the chain was generated
        trading_day: Local calendar day the chain belongs to
    """

    calls: list[Option] = field(default_factory=list)
    puts: list[Option] = field(default_factory=list)
    generated_at: Optional[datetime] = None
    trading_day: Optional[date] = None

    def all_options(self) -> list[Option]:
        return [*self.calls, *self.puts]

    def find(self, option_id: str) -> Optional[Option]:
        for option in self.calls:
            if option.id == option_id:
                return option
        for option in self.puts:
            if option.id == option_id:
                return option
        return None

    def strikes(self) -> list[float]:
        return [option.strike_price for option in self.calls]

    def __len__(self) -> int:
        return len(self.calls) + len(self.puts)
