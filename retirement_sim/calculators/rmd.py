"""Required Minimum Distribution (RMD) calculator.

RMD start ages follow SECURE Act 2.0:

* Individuals born in 1950 or earlier started at age 72 under earlier rules.
* Individuals born between 1951 and 1959 must start RMDs at age 73.
* Individuals born in 1960 or later will start at age 75.

The annual RMD is the account balance divided by the distribution period from
the IRS Uniform Lifetime Table (2022 update).  The simulation takes the
minimum in monthly slices through :class:`MinimumDistributionCalculator`.

Example
-------

>>> # Person born in 1955 (between 1951–1959) starts RMD at age 73
>>> rmd_start_age(1955)
73

>>> # Compute RMD for a 73‑year‑old with $100k in a traditional IRA
>>> round(compute_rmd(balance=100000, age=73), 2)
3773.58

>>> # The same minimum taken as a monthly slice
>>> round(MinimumDistributionCalculator()(100000, 73, 1955, 2028), 2)
314.47
"""

from __future__ import annotations

from typing import Dict


def rmd_start_age(birth_year: int) -> int:
    """Determine the age at which RMDs must begin based on year of birth.

    Parameters
    ----------
    birth_year : int
        Birth year of the account owner.

    Returns
    -------
    int
        The age when RMDs must commence.
    """
    if birth_year <= 1950:
        return 72
    elif 1951 <= birth_year <= 1959:
        return 73
    else:
        return 75


def _uniform_lifetime_table() -> Dict[int, float]:
    """Return the IRS Uniform Lifetime Table (distribution periods).

    The table is based on the 2022 update effective for distributions after
    January 1 2022.  For each age from 72–120 the table provides the
    distribution period (life expectancy factor).  Source: IRS Publication 590‑B
    (2024) and summarised values used widely in financial planning tools.

    Returns
    -------
    dict
        Mapping from age to distribution period.
    """
    return {
        72: 27.4,
        73: 26.5,
        74: 25.5,
        75: 24.6,
        76: 23.7,
        77: 22.9,
        78: 22.0,
        79: 21.1,
        80: 20.2,
        81: 19.4,
        82: 18.5,
        83: 17.7,
        84: 16.8,
        85: 16.0,
        86: 15.2,
        87: 14.4,
        88: 13.7,
        89: 12.9,
        90: 12.2,
        91: 11.5,
        92: 10.8,
        93: 10.1,
        94: 9.5,
        95: 8.9,
        96: 8.4,
        97: 7.8,
        98: 7.3,
        99: 6.8,
        100: 6.4,
        101: 6.0,
        102: 5.6,
        103: 5.2,
        104: 4.9,
        105: 4.6,
        106: 4.3,
        107: 4.1,
        108: 3.9,
        109: 3.7,
        110: 3.5,
        111: 3.4,
        112: 3.3,
        113: 3.1,
        114: 3.0,
        115: 2.9,
        116: 2.8,
        117: 2.7,
        118: 2.5,
        119: 2.3,
        120: 2.0,
    }


_TABLE = _uniform_lifetime_table()
_LAST_AGE = max(_TABLE)


def compute_rmd(balance: float, age: int) -> float:
    """Compute the Required Minimum Distribution for a given age and balance.

    Parameters
    ----------
    balance : float
        The retirement account balance the distribution is based on.
    age : int
        Age of the account owner in the distribution year.

    Returns
    -------
    float
        The annual RMD amount.  Returns zero below the first age in the
        table or for a non‑positive balance.  Ages past the end of the table
        use the final distribution period.
    """
    if balance <= 0 or age < min(_TABLE):
        return 0.0
    period = _TABLE.get(age, _TABLE[_LAST_AGE])
    return balance / period


class MinimumDistributionCalculator:
    """Default minimum-distribution collaborator used by the orchestrator.

    Called with ``(balance, age, birth_year, year)`` and returns the amount
    that must leave the account in the current period.  ``balance`` is the
    prior year-end balance, so the slices of one year add up to exactly that
    year's RMD.  Nothing is required before the owner's RMD start age.

    Parameters
    ----------
    periods_per_year : int
        Number of slices the annual RMD is spread over (12 for monthly steps).
    """

    def __init__(self, periods_per_year: int = 12):
        if periods_per_year <= 0:
            raise ValueError("periods_per_year must be positive")
        self.periods_per_year = periods_per_year

    def __call__(self, balance: float, age: int, birth_year: int, year: int) -> float:
        if age < rmd_start_age(birth_year):
            return 0.0
        return compute_rmd(balance, age) / self.periods_per_year


__all__ = ["rmd_start_age", "compute_rmd", "MinimumDistributionCalculator"]
