"""Life events: scheduled and probabilistic triggers, and what they change.

An event is created once per plan and fires at most once per run.  Scheduled
events fire in the first simulated month on or after their trigger month;
probabilistic events draw against a monthly probability from the run's own
random generator.  Firing produces an :class:`EventEffect` describing the
change; the engine applies it, so the engine remains the only writer of
simulation state.

Death of one spouse is turned into a :class:`SurvivorTransition` by
:func:`build_survivor_profile` and the engine: accounts are re-owned by the
survivor at unchanged balances, the survivor keeps the larger Social Security
benefit and pensions continue according to their payment form.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import date
from typing import Collection, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from ..calculators.income import IncomeProfile, PaymentForm, SocialSecurity
from ..calculators.rmd import rmd_start_age
from ..calculators.social_security import survivor_benefit
from ..exceptions import ConfigurationError
from .dates import month_start
from .household import MortalityModel, Person

logger = logging.getLogger(__name__)


def monthly_from_annual(probability: float) -> float:
    """Monthly probability equivalent to an annual one."""
    if probability <= 0:
        return 0.0
    if probability >= 1:
        return 1.0
    return 1.0 - (1.0 - probability) ** (1.0 / 12)


@dataclass(frozen=True)
class EventEffect:
    """What a fired event changes; applied by the engine."""

    event: str
    person_id: Optional[str] = None
    death: bool = False
    ended_expense: Optional[str] = None
    spending_phase: Optional[str] = None
    ltc_onset: bool = False
    contingency_category: Optional[str] = None
    contingency_amount: float = 0.0


class SimulationEvent(ABC):
    """Base class for events.

    Parameters
    ----------
    name : str
        Label recorded in the month's snapshot.
    person_id : str, optional
        Person the event belongs to; it is skipped once that person has died.
    """

    def __init__(self, name: str, person_id: Optional[str] = None):
        self.name = name
        self.person_id = person_id

    @abstractmethod
    def is_due(self, month: date, rng: np.random.Generator, ages: Mapping[str, float]) -> bool:
        """Whether the event fires this month."""

    def effect(self, month: date, rng: np.random.Generator) -> EventEffect:
        return EventEffect(event=self.name, person_id=self.person_id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class ScheduledEvent(SimulationEvent):
    """Fires in the first simulated month on or after ``trigger_month``."""

    def __init__(self, name: str, trigger_month: date, person_id: Optional[str] = None):
        super().__init__(name, person_id)
        self.trigger_month = month_start(trigger_month)

    def is_due(self, month, rng, ages):
        return month >= self.trigger_month


class ProbabilisticEvent(SimulationEvent):
    """Fires when a uniform draw falls below :meth:`probability`."""

    @abstractmethod
    def probability(self, month: date, ages: Mapping[str, float]) -> float:
        """Probability of firing in ``month``."""

    def is_due(self, month, rng, ages):
        p = self.probability(month, ages)
        if p <= 0:
            return False
        return float(rng.random()) < p


class RetirementStartEvent(ScheduledEvent):
    def __init__(self, person: Person):
        super().__init__("retirement_start", person.retirement_date, person.id)


class SocialSecurityStartEvent(ScheduledEvent):
    def __init__(self, person_id: str, claim_date: date):
        super().__init__("social_security_start", claim_date, person_id)


class RmdStartEvent(ScheduledEvent):
    def __init__(self, person: Person):
        super().__init__("rmd_start", person.date_at_age(rmd_start_age(person.birth_year)), person.id)


class ExpenseEndEvent(ScheduledEvent):
    """Retires a budget item, e.g. a mortgage payment once the loan is paid off."""

    def __init__(self, expense_name: str, trigger_month: date, name: Optional[str] = None):
        super().__init__(name or f"{expense_name}_ended", trigger_month)
        self.expense_name = expense_name

    @classmethod
    def mortgage_payoff(cls, trigger_month: date, expense_name: str = "mortgage") -> "ExpenseEndEvent":
        return cls(expense_name, trigger_month, name="mortgage_payoff")

    def effect(self, month, rng):
        return EventEffect(event=self.name, ended_expense=self.expense_name)


class SpendingPhaseEvent(ScheduledEvent):
    """Moves the household to the ``slow_go`` or ``no_go`` spending phase."""

    def __init__(self, phase: str, trigger_month: date):
        super().__init__(f"spending_phase:{phase}", trigger_month)
        self.phase = phase

    def effect(self, month, rng):
        return EventEffect(event=self.name, spending_phase=self.phase)


class ScheduledDeathEvent(ScheduledEvent):
    def __init__(self, person_id: str, trigger_month: date):
        super().__init__("death", trigger_month, person_id)

    def effect(self, month, rng):
        return EventEffect(event=self.name, person_id=self.person_id, death=True)


class MortalityEvent(ProbabilisticEvent):
    """Random death following a :class:`MortalityModel`."""

    def __init__(self, person_id: str, mortality: MortalityModel):
        super().__init__("death", person_id)
        self.mortality = mortality

    def probability(self, month, ages):
        age = ages.get(self.person_id)
        if age is None:
            return 0.0
        return self.mortality.monthly_probability(age)

    def effect(self, month, rng):
        return EventEffect(event=self.name, person_id=self.person_id, death=True)


class LongTermCareEvent(ProbabilisticEvent):
    """Onset of long-term care needs from ``onset_age`` on."""

    def __init__(self, person_id: str, annual_probability: float, onset_age: int = 80):
        super().__init__("ltc_onset", person_id)
        self.monthly = monthly_from_annual(annual_probability)
        self.onset_age = onset_age

    def probability(self, month, ages):
        age = ages.get(self.person_id)
        if age is None or age < self.onset_age:
            return 0.0
        return self.monthly

    def effect(self, month, rng):
        return EventEffect(event=self.name, person_id=self.person_id, ltc_onset=True)


class RandomExpenseEvent(ProbabilisticEvent):
    """An unplanned expense of a uniformly drawn size.

    Parameters
    ----------
    name : str
        Event label.
    category : str
        Contingency reserve category that pays for it first.
    min_amount, max_amount : float
        Range of the expense.
    annual_probability : float
        Chance of occurring in any given year.
    """

    def __init__(self, name: str, category: str, min_amount: float, max_amount: float, annual_probability: float):
        if min_amount < 0 or max_amount < min_amount:
            raise ConfigurationError(f"{name}: invalid amount range")
        if not 0 <= annual_probability <= 1:
            raise ConfigurationError(f"{name}: annual_probability must be in [0, 1]")
        super().__init__(name)
        self.category = category
        self.min_amount = min_amount
        self.max_amount = max_amount
        self.annual_probability = annual_probability

    def probability(self, month, ages):
        return monthly_from_annual(self.annual_probability)

    def effect(self, month, rng):
        amount = self.min_amount + (self.max_amount - self.min_amount) * float(rng.random())
        return EventEffect(event=self.name, contingency_category=self.category, contingency_amount=amount)

    @classmethod
    def hvac_failure(cls) -> "RandomExpenseEvent":
        return cls("hvac_failure", "home_repair", 8000.0, 15000.0, 0.05)

    @classmethod
    def roof_repair(cls) -> "RandomExpenseEvent":
        return cls("roof_repair", "home_repair", 10000.0, 25000.0, 0.03)

    @classmethod
    def vehicle_replacement(cls) -> "RandomExpenseEvent":
        return cls("vehicle_replacement", "vehicle", 25000.0, 45000.0, 0.08)


class EventRegistry:
    """Evaluates a run's events month by month; each fires at most once."""

    def __init__(self, events: Iterable[SimulationEvent]):
        self._events: List[SimulationEvent] = list(events)
        self._fired: set = set()

    def __len__(self) -> int:
        return len(self._events)

    @property
    def fired(self) -> List[str]:
        return [self._events[i].name for i in sorted(self._fired)]

    def evaluate(
        self,
        month: date,
        rng: np.random.Generator,
        ages: Mapping[str, float],
        living: Collection[str],
    ) -> List[EventEffect]:
        """Fire every due event for ``month`` in registration order."""
        effects = []
        for index, event in enumerate(self._events):
            if index in self._fired:
                continue
            if event.person_id is not None and event.person_id not in living:
                continue
            if event.is_due(month, rng, ages):
                self._fired.add(index)
                effect = event.effect(month, rng)
                logger.debug("%s: event %s fired", month, effect.event)
                effects.append(effect)
        return effects


@dataclass(frozen=True)
class ContingencyReserve:
    """Cash set aside for one category of unplanned expense."""

    category: str
    target: float
    balance: float = 0.0

    def __post_init__(self):
        if self.target < 0 or self.balance < 0:
            raise ConfigurationError(f"reserve '{self.category}' amounts must be non-negative")

    @property
    def deficit(self) -> float:
        return max(0.0, self.target - self.balance)

    @property
    def is_fully_funded(self) -> bool:
        return self.balance >= self.target


@dataclass(frozen=True)
class SurvivorTransition:
    """Record of one spouse's death and what passed to the survivor."""

    month: date
    deceased_id: str
    survivor_id: str
    transferred_accounts: Tuple[str, ...]
    balance_before: float
    balance_after: float
    survivor_social_security: float
    continued_pensions: Tuple[str, ...] = ()


def build_survivor_profile(
    deceased: Optional[IncomeProfile],
    survivor: Optional[IncomeProfile],
    survivor_id: str,
    survivor_age: float,
    month: date,
) -> IncomeProfile:
    """Merge the deceased's continuing income into the survivor's profile.

    * Social Security: the survivor keeps the larger of their own benefit and
      the survivor benefit computed from the deceased's benefit.
    * Pensions and annuities: continued at the payment form's survivor share;
      single-life payments stop.
    * Salary and other income of the deceased stop.
    """
    base = survivor or IncomeProfile(person_id=survivor_id)
    if deceased is None:
        return base

    social_security = base.social_security
    dss = deceased.social_security
    if dss is not None:
        deceased_monthly = dss.monthly(month) if month >= dss.claim_date else dss.pia
        inherited = survivor_benefit(deceased_monthly, survivor_age)
        own = 0.0
        if social_security is not None:
            own = social_security.monthly(max(month, social_security.claim_date))
        if inherited > own:
            social_security = SocialSecurity(
                pia=social_security.pia if social_security else 0.0,
                claim_date=month,
                claim_age=social_security.claim_age if social_security else 67,
                cola=dss.cola,
                monthly_override=inherited,
            )

    continued = []
    for pension in deceased.pensions:
        share = pension.payment_form.survivor_fraction
        if share <= 0:
            continue
        if pension.end_date is not None and pension.end_date < month:
            continue
        if month >= pension.start_date:
            amount, start = pension.monthly(month) * share, month
        else:
            amount, start = pension.monthly_amount * share, pension.start_date
        form = PaymentForm.PERIOD_CERTAIN if pension.payment_form is PaymentForm.PERIOD_CERTAIN else PaymentForm.SINGLE_LIFE
        continued.append(
            replace(
                pension,
                name=f"{pension.name} (survivor)",
                monthly_amount=amount,
                start_date=start,
                payment_form=form,
            )
        )

    return replace(
        base,
        person_id=survivor_id,
        social_security=social_security,
        pensions=tuple(base.pensions) + tuple(continued),
    )


__all__ = [
    "monthly_from_annual",
    "EventEffect",
    "SimulationEvent",
    "ScheduledEvent",
    "ProbabilisticEvent",
    "RetirementStartEvent",
    "SocialSecurityStartEvent",
    "RmdStartEvent",
    "ExpenseEndEvent",
    "SpendingPhaseEvent",
    "ScheduledDeathEvent",
    "MortalityEvent",
    "LongTermCareEvent",
    "RandomExpenseEvent",
    "EventRegistry",
    "ContingencyReserve",
    "SurvivorTransition",
    "build_survivor_profile",
]
