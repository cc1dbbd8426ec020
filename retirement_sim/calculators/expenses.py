"""Household budget and the default monthly expense calculator.

Budget items are stated in start-of-plan dollars and grow with their
category's inflation rate.  The calculator then applies the modifiers the
household flags switch on:

* spending curve – discretionary items scaled by the current spending phase
  (go-go 100 %, slow-go 80 %, no-go 50 %);
* healthcare age trend – healthcare grows an extra ``healthcare_age_trend``
  per year of age past 65;
* survivor adjustment – per-category multipliers once one spouse has died;
* long-term care – a monthly care cost for every person receiving care;
* ended expenses – items retired by an event (a paid-off mortgage).

Example
-------

>>> budget = Budget([ExpenseItem("groceries", ExpenseCategory.ESSENTIAL, 800.0)], start_date=date(2030, 1, 1))
>>> DefaultExpenseCalculator()(budget, date(2031, 1, 1), SimulationFlags()).total
820.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Sequence, Tuple

from ..exceptions import ConfigurationError
from ..simulation.dates import month_start, months_between

if TYPE_CHECKING:
    from ..simulation.state import SimulationFlags


class ExpenseCategory(str, Enum):
    ESSENTIAL = "essential"
    DISCRETIONARY = "discretionary"
    HOUSING = "housing"
    HEALTHCARE = "healthcare"
    LTC = "ltc"


SPENDING_CURVE = {"go_go": 1.0, "slow_go": 0.8, "no_go": 0.5}

SURVIVOR_MULTIPLIERS = {
    ExpenseCategory.ESSENTIAL: 0.7,
    ExpenseCategory.DISCRETIONARY: 0.6,
    ExpenseCategory.HOUSING: 1.0,
    ExpenseCategory.HEALTHCARE: 0.5,
    ExpenseCategory.LTC: 1.0,
}


@dataclass(frozen=True)
class ExpenseLevers:
    """Inflation and modifier assumptions for expenses."""

    general_inflation: float = 0.025
    healthcare_inflation: float = 0.055
    housing_inflation: float = 0.03
    ltc_inflation: float = 0.04
    healthcare_age_trend: float = 0.02
    ltc_monthly_cost: float = 9000.0
    spending_curve: Mapping[str, float] = field(default_factory=lambda: dict(SPENDING_CURVE))
    survivor_multipliers: Mapping[ExpenseCategory, float] = field(
        default_factory=lambda: dict(SURVIVOR_MULTIPLIERS)
    )

    def __post_init__(self):
        for label in ("general_inflation", "healthcare_inflation", "housing_inflation", "ltc_inflation"):
            if getattr(self, label) <= -1:
                raise ConfigurationError(f"{label} must be greater than -100%")
        if self.ltc_monthly_cost < 0:
            raise ConfigurationError("ltc_monthly_cost must be non-negative")
        object.__setattr__(self, "spending_curve", MappingProxyType(dict(self.spending_curve)))
        object.__setattr__(
            self,
            "survivor_multipliers",
            MappingProxyType({ExpenseCategory(k): v for k, v in self.survivor_multipliers.items()}),
        )

    def inflation_for(self, category: ExpenseCategory) -> float:
        if category is ExpenseCategory.HEALTHCARE:
            return self.healthcare_inflation
        if category is ExpenseCategory.HOUSING:
            return self.housing_inflation
        if category is ExpenseCategory.LTC:
            return self.ltc_inflation
        return self.general_inflation


@dataclass(frozen=True)
class ExpenseItem:
    name: str
    category: ExpenseCategory
    monthly_amount: float
    inflation_rate: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def __post_init__(self):
        if self.monthly_amount < 0:
            raise ConfigurationError(f"expense '{self.name}' must be non-negative")
        if not isinstance(self.category, ExpenseCategory):
            object.__setattr__(self, "category", ExpenseCategory(self.category))

    def active(self, month: date) -> bool:
        if self.start_date is not None and month < month_start(self.start_date):
            return False
        if self.end_date is not None and month > month_start(self.end_date):
            return False
        return True


@dataclass(frozen=True)
class Budget:
    """Expense items priced in ``start_date`` dollars."""

    items: Tuple[ExpenseItem, ...]
    start_date: date

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "start_date", month_start(self.start_date))
        names = [i.name for i in self.items]
        if len(set(names)) != len(names):
            raise ConfigurationError("budget item names must be unique")


@dataclass(frozen=True)
class ExpenseBreakdown:
    by_category: Mapping[str, float]
    by_item: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "by_category", MappingProxyType(dict(self.by_category)))
        object.__setattr__(self, "by_item", MappingProxyType(dict(self.by_item)))

    @property
    def total(self) -> float:
        return sum(self.by_category.values())


class DefaultExpenseCalculator:
    """Price a :class:`Budget` for one month under the household flags.

    Parameters
    ----------
    levers : ExpenseLevers, optional
        Inflation and modifier assumptions.
    """

    def __init__(self, levers: Optional[ExpenseLevers] = None):
        self.levers = levers or ExpenseLevers()

    def __call__(
        self,
        budget: Budget,
        month: date,
        flags: "SimulationFlags",
        age: Optional[int] = None,
    ) -> ExpenseBreakdown:
        levers = self.levers
        years = max(0, months_between(budget.start_date, month)) / 12
        by_category: Dict[str, float] = {}
        by_item: Dict[str, float] = {}
        for item in budget.items:
            if not item.active(month) or item.name in flags.ended_expenses:
                continue
            rate = item.inflation_rate if item.inflation_rate is not None else levers.inflation_for(item.category)
            amount = item.monthly_amount * (1 + rate) ** years
            amount *= self._modifier(item.category, flags, age)
            by_item[item.name] = amount
            by_category[item.category.value] = by_category.get(item.category.value, 0.0) + amount
        if flags.ltc_active and levers.ltc_monthly_cost > 0:
            care = levers.ltc_monthly_cost * len(flags.ltc_active) * (1 + levers.ltc_inflation) ** years
            by_item["long_term_care"] = care
            by_category[ExpenseCategory.LTC.value] = by_category.get(ExpenseCategory.LTC.value, 0.0) + care
        return ExpenseBreakdown(by_category=by_category, by_item=by_item)

    def _modifier(self, category: ExpenseCategory, flags: "SimulationFlags", age: Optional[int]) -> float:
        levers = self.levers
        factor = 1.0
        if category is ExpenseCategory.DISCRETIONARY:
            factor *= levers.spending_curve.get(flags.spending_phase, 1.0)
        if category is ExpenseCategory.HEALTHCARE and age is not None and age > 65:
            factor *= (1 + levers.healthcare_age_trend) ** (age - 65)
        if flags.survivor_mode:
            factor *= levers.survivor_multipliers.get(category, 1.0)
        return factor


def budget_from_items(items: Sequence[Mapping], start_date: date) -> Budget:
    """Build a :class:`Budget` from plain ``{"name", "category", "monthly_amount", ...}`` dicts."""
    return Budget(
        items=tuple(
            ExpenseItem(
                name=raw["name"],
                category=ExpenseCategory(raw.get("category", "essential")),
                monthly_amount=float(raw["monthly_amount"]),
                inflation_rate=raw.get("inflation_rate"),
                start_date=month_start(raw["start_date"]) if raw.get("start_date") else None,
                end_date=month_start(raw["end_date"]) if raw.get("end_date") else None,
            )
            for raw in items
        ),
        start_date=start_date,
    )


__all__ = [
    "ExpenseCategory",
    "SPENDING_CURVE",
    "SURVIVOR_MULTIPLIERS",
    "ExpenseLevers",
    "ExpenseItem",
    "Budget",
    "ExpenseBreakdown",
    "DefaultExpenseCalculator",
    "budget_from_items",
]
