"""Investment return assumptions and monthly growth.

Annual returns are converted to monthly growth geometrically, so twelve
monthly steps compound to exactly the annual rate::

    monthly_factor = (1 + annual) ** (1 / 12)

Three market modes are supported:

* ``deterministic`` – every year earns ``expected_return`` (or an account's
  own expected return);
* ``monte_carlo`` – each calendar year draws one normally distributed return,
  clamped at ``min_return``;
* ``historical`` – replays ``historical_returns`` year by year, cycling when
  the plan outlasts the series.

Example
-------

>>> round(grow(996666.67, 0.08), 2)
1003079.25
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from ..exceptions import ConfigurationError


class MarketMode(str, Enum):
    DETERMINISTIC = "deterministic"
    MONTE_CARLO = "monte_carlo"
    HISTORICAL = "historical"


def annual_to_monthly_rate(annual: float) -> float:
    return (1 + annual) ** (1 / 12) - 1


def grow(balance: float, annual: float) -> float:
    """Balance after one month at the given annual rate."""
    return balance * (1 + annual) ** (1 / 12)


def _draw_return(mean: float, stdev: float, rng: np.random.Generator) -> float:
    return rng.normal(loc=mean, scale=stdev)


@dataclass(frozen=True)
class MarketLevers:
    """Return assumptions for the whole portfolio.

    Parameters
    ----------
    mode : MarketMode
        How annual returns are produced.
    expected_return : float
        Mean annual return (default 7 %).
    return_std_dev : float
        Standard deviation of annual returns in Monte Carlo mode (default 15 %).
    historical_returns : tuple of float
        Annual returns replayed in historical mode.
    min_return : float
        Floor applied to drawn returns.
    """

    mode: MarketMode = MarketMode.DETERMINISTIC
    expected_return: float = 0.07
    return_std_dev: float = 0.15
    historical_returns: Tuple[float, ...] = ()
    min_return: float = -0.95

    def __post_init__(self):
        if not isinstance(self.mode, MarketMode):
            object.__setattr__(self, "mode", MarketMode(self.mode))
        object.__setattr__(self, "historical_returns", tuple(float(r) for r in self.historical_returns))
        if self.expected_return <= -1:
            raise ConfigurationError("expected_return must be greater than -100%")
        if self.return_std_dev < 0:
            raise ConfigurationError("return_std_dev must be non-negative")
        if self.mode is MarketMode.HISTORICAL and not self.historical_returns:
            raise ConfigurationError("historical mode requires historical_returns")
        if any(r <= -1 for r in self.historical_returns):
            raise ConfigurationError("historical returns must be greater than -100%")
        if not -1 < self.min_return <= 0:
            raise ConfigurationError("min_return must be in (-1, 0]")


class ReturnGenerator:
    """Annual return per calendar year for one run.

    Draws are made lazily, once per year, from the run's own generator, so
    two runs with the same seed see the same market.
    """

    def __init__(self, levers: MarketLevers, rng: Optional[np.random.Generator] = None, start_year: int = 0):
        self.levers = levers
        self.rng = rng if rng is not None else np.random.default_rng()
        self.start_year = start_year
        self._by_year: Dict[int, float] = {}

    def market_return(self, year: int) -> float:
        if year not in self._by_year:
            self._by_year[year] = self._generate(year)
        return self._by_year[year]

    def _generate(self, year: int) -> float:
        levers = self.levers
        if levers.mode is MarketMode.MONTE_CARLO:
            drawn = _draw_return(levers.expected_return, levers.return_std_dev, self.rng)
            return max(levers.min_return, float(drawn))
        if levers.mode is MarketMode.HISTORICAL:
            series = levers.historical_returns
            return series[(year - self.start_year) % len(series)]
        return levers.expected_return

    def annual_rate(self, month: date, account_return: Optional[float] = None) -> float:
        if account_return is not None and self.levers.mode is MarketMode.DETERMINISTIC:
            return account_return
        return self.market_return(month.year)

    def monthly_rates(self, month: date, accounts: Iterable) -> Dict[str, float]:
        """Monthly growth rate per account id for ``month``."""
        return {
            acct.id: annual_to_monthly_rate(self.annual_rate(month, acct.expected_return))
            for acct in accounts
        }


__all__ = [
    "MarketMode",
    "MarketLevers",
    "ReturnGenerator",
    "annual_to_monthly_rate",
    "grow",
]
