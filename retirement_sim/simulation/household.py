"""People in the plan, their life phases and mortality.

Each person moves through ``ACCUMULATION`` (working, contributing),
``TRANSITION`` (retired but not yet drawing on the portfolio) and
``DISTRIBUTION`` (withdrawing).  The phase is recomputed every month from the
date, the person's retirement and withdrawal-start dates and whether they have
died; surviving a spouse is tracked separately as a flag.

Example
-------

>>> alex = Person("alex", date(1960, 6, 1), retirement_date=date(2027, 1, 1))
>>> determine_phase(alex, date(2026, 12, 1))
<Phase.ACCUMULATION: 'accumulation'>
>>> determine_phase(alex, date(2027, 1, 1))
<Phase.DISTRIBUTION: 'distribution'>
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Mapping, Optional

from ..exceptions import ConfigurationError
from .dates import age_on, month_start


class Phase(str, Enum):
    ACCUMULATION = "accumulation"
    TRANSITION = "transition"
    DISTRIBUTION = "distribution"
    DECEASED = "deceased"

    @property
    def allows_contributions(self) -> bool:
        return self is Phase.ACCUMULATION

    @property
    def expects_withdrawals(self) -> bool:
        return self is Phase.DISTRIBUTION


@dataclass(frozen=True)
class MortalityModel:
    """Gompertz mortality: the force of mortality doubles every few years.

    ``modal_age`` is the most likely age at death and ``dispersion`` the
    Gompertz scale in years.  Conditional monthly death probabilities follow
    from the survival function ``S(x) = exp(-exp((x - m) / b))`` up to a
    constant.
    """

    modal_age: float = 88.0
    dispersion: float = 10.0

    def __post_init__(self):
        if self.dispersion <= 0:
            raise ConfigurationError("mortality dispersion must be positive")

    def annual_probability(self, age: float) -> float:
        return self._probability(age, 1.0)

    def monthly_probability(self, age: float) -> float:
        return self._probability(age, 1.0 / 12)

    def _probability(self, age: float, span: float) -> float:
        m, b = self.modal_age, self.dispersion
        hazard = math.exp((age - m) / b) * (math.exp(span / b) - 1.0)
        return 1.0 - math.exp(-hazard)


@dataclass(frozen=True)
class Person:
    """A member of the household.

    Parameters
    ----------
    id : str
        Identifier referenced by accounts and income profiles.
    birth_date : datetime.date
        Date of birth.
    retirement_date : datetime.date
        First month without salary.
    withdrawal_start_date : datetime.date, optional
        First month of portfolio withdrawals; defaults to the retirement date.
    death_date : datetime.date, optional
        Fixed month of death for deterministic plans.
    mortality : MortalityModel, optional
        Draws a random death month when set (and ``death_date`` is not).
    ltc_annual_probability : float
        Annual probability of needing long-term care, from ``ltc_onset_age``.
    """

    id: str
    birth_date: date
    retirement_date: date
    name: str = ""
    withdrawal_start_date: Optional[date] = None
    death_date: Optional[date] = None
    mortality: Optional[MortalityModel] = None
    ltc_annual_probability: float = 0.0
    ltc_onset_age: int = 80

    def __post_init__(self):
        if not self.id:
            raise ConfigurationError("person id must be non-empty")
        object.__setattr__(self, "retirement_date", month_start(self.retirement_date))
        start = self.withdrawal_start_date or self.retirement_date
        object.__setattr__(self, "withdrawal_start_date", month_start(start))
        if self.withdrawal_start_date < self.retirement_date:
            raise ConfigurationError(f"{self.id}: withdrawals cannot start before retirement")
        if self.death_date is not None:
            object.__setattr__(self, "death_date", month_start(self.death_date))
        if not 0 <= self.ltc_annual_probability <= 1:
            raise ConfigurationError(f"{self.id}: ltc_annual_probability must be in [0, 1]")

    @property
    def birth_year(self) -> int:
        return self.birth_date.year

    def age_on(self, when: date) -> int:
        return age_on(self.birth_date, when)

    def date_at_age(self, age: int) -> date:
        return date(self.birth_date.year + age, self.birth_date.month, 1)


def determine_phase(person: Person, month: date, deceased: bool = False) -> Phase:
    if deceased:
        return Phase.DECEASED
    if month < person.retirement_date:
        return Phase.ACCUMULATION
    if month < person.withdrawal_start_date:
        return Phase.TRANSITION
    return Phase.DISTRIBUTION


def household_phase(phases: Mapping[str, Phase]) -> Phase:
    """Phase that drives the portfolio for the living members of a household.

    Any working member keeps the household accumulating; otherwise any member
    drawing on the portfolio puts it in distribution.
    """
    living = [p for p in phases.values() if p is not Phase.DECEASED]
    if not living:
        return Phase.DECEASED
    if Phase.ACCUMULATION in living:
        return Phase.ACCUMULATION
    if Phase.DISTRIBUTION in living:
        return Phase.DISTRIBUTION
    return Phase.TRANSITION


__all__ = ["Phase", "MortalityModel", "Person", "determine_phase", "household_phase"]
