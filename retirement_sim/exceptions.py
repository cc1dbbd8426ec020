"""Exception hierarchy shared by the simulation core and its calculators.

Configuration problems are raised while a plan is being built, before any
month is simulated.  Calculation problems abort only the run in which they
occur; the Monte Carlo runner records them per run.
"""

from __future__ import annotations

from datetime import date
from typing import Optional


class RetirementSimError(Exception):
    """Base class for every error raised by :mod:`retirement_sim`."""


class ConfigurationError(RetirementSimError, ValueError):
    """A plan, lever or collaborator was configured inconsistently."""


class MissingFieldError(ConfigurationError):
    """A required field is absent from a plan dictionary or dataclass."""

    def __init__(self, field: str, where: str = "plan"):
        super().__init__(f"{where} is missing required field '{field}'")
        self.field = field
        self.where = where


class InvalidDateRangeError(ConfigurationError):
    """A start date falls after its matching end date."""

    def __init__(self, start: date, end: date, what: str = "simulation"):
        super().__init__(f"{what} start {start.isoformat()} is after end {end.isoformat()}")
        self.start = start
        self.end = end


class CalculationError(RetirementSimError):
    """An injected calculator failed while a month was being simulated."""

    def __init__(self, message: str, month: Optional[date] = None):
        if month is not None:
            message = f"{month:%Y-%m}: {message}"
        super().__init__(message)
        self.month = month


class OverdrawnAccountError(RetirementSimError):
    """A withdrawal plan asked an account for more than it holds."""

    def __init__(self, account_id: str, requested: float, available: float):
        super().__init__(
            f"plan withdraws {requested:.2f} from '{account_id}' which only holds {available:.2f}"
        )
        self.account_id = account_id
        self.requested = requested
        self.available = available


class TimeSeriesOrderError(RetirementSimError):
    """A snapshot was appended out of order or with a gap."""


class SimulationCancelled(RetirementSimError):
    """A run observed its cancellation event and stopped early."""


__all__ = [
    "RetirementSimError",
    "ConfigurationError",
    "MissingFieldError",
    "InvalidDateRangeError",
    "CalculationError",
    "OverdrawnAccountError",
    "TimeSeriesOrderError",
    "SimulationCancelled",
]
