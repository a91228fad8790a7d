"""
Engine Exceptions

Error kinds raised by the simulation and trading engine.

Propagation policy:
- ValidationError / NotFoundError: block the requested transition and surface
  to the caller (the view layer shows them to the user)
- PersistenceError: caught and logged by the engine, in-memory state is kept
- SimulationInvariantViolation: raised by numeric helpers, caught inside the
  tick and coerced to a safe value
"""

import math


class OptionSimError(Exception):
    """Base class for all engine errors."""


class ValidationError(OptionSimError, ValueError):
    """
    Order parameters rejected before any state changes.

    Attributes:
        field: Name of the offending parameter
        value: Rejected value
    """

    def __init__(self, message: str, *, field: str | None = None, value=None):
        self.message = message
        self.field = field
        self.value = value
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class NotFoundError(OptionSimError, LookupError):
    """Referenced position or option does not exist or is not in the expected state."""

    def __init__(self, message: str, *, identifier: str | None = None):
        self.message = message
        self.identifier = identifier
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class PersistenceError(OptionSimError):
    """Durable store read or write failed."""

    def __init__(self, message: str, *, key: str | None = None):
        self.message = message
        self.key = key
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class SimulationInvariantViolation(OptionSimError):
    """A computed price or premium is not a finite number."""

    def __init__(self, name: str, value):
        self.name = name
        self.value = value
        super().__init__(f"{name} is not finite: {value!r}")


def ensure_finite(value: float, name: str) -> float:
    """
    Return value as float, raising SimulationInvariantViolation if it is NaN/inf.

    Args:
        value: Number to check
        name: Label used in the error message

    Raises:
        SimulationInvariantViolation: If value is not a finite number
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise SimulationInvariantViolation(name, value) from None
    if not math.isfinite(number):
        raise SimulationInvariantViolation(name, value)
    return number


def finite_or(value: float, default: float) -> float:
    """Coerce non-finite or non-numeric values to default."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default
