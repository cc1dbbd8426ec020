"""Income profiles and the default monthly income processor.

A household member's :class:`IncomeProfile` bundles salary, Social Security,
pensions, annuities and other income.  :class:`DefaultIncomeProcessor`
converts profiles into the month's :class:`MonthlyIncome`:

* salary is paid only while the person is accumulating;
* Social Security, pensions, annuities and other income are paid once they
  have started (and until they end), whatever the phase.

Raises and cost-of-living adjustments compound once per full year since the
source started.

Example
-------

>>> profile = IncomeProfile("alex", social_security=SocialSecurity(2000, date(2027, 1, 1), claim_age=67))
>>> DefaultIncomeProcessor()([profile], date(2027, 1, 1), Phase.DISTRIBUTION).social_security
2000.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Sequence, Tuple

from ..exceptions import ConfigurationError
from ..simulation.dates import month_start, months_between
from ..simulation.household import Phase
from .social_security import adjusted_monthly_benefit

TAXABLE_SOCIAL_SECURITY = 0.85


class PaymentForm(str, Enum):
    """Pension/annuity payout option, with the share continued to a survivor."""

    SINGLE_LIFE = "single_life"
    JOINT_50 = "joint_50"
    JOINT_75 = "joint_75"
    JOINT_100 = "joint_100"
    PERIOD_CERTAIN = "period_certain"

    @property
    def survivor_fraction(self) -> float:
        return {
            PaymentForm.SINGLE_LIFE: 0.0,
            PaymentForm.JOINT_50: 0.5,
            PaymentForm.JOINT_75: 0.75,
            PaymentForm.JOINT_100: 1.0,
            PaymentForm.PERIOD_CERTAIN: 1.0,
        }[self]


def _years_since(start: Optional[date], month: date) -> int:
    if start is None:
        return 0
    return max(0, months_between(start, month)) // 12


def _active(month: date, start: Optional[date], end: Optional[date]) -> bool:
    if start is not None and month < start:
        return False
    if end is not None and month > end:
        return False
    return True


@dataclass(frozen=True)
class Salary:
    annual_amount: float
    growth_rate: float = 0.0
    start_date: Optional[date] = None

    def __post_init__(self):
        if self.annual_amount < 0:
            raise ConfigurationError("salary must be non-negative")

    def monthly(self, month: date) -> float:
        return self.annual_amount * (1 + self.growth_rate) ** _years_since(self.start_date, month) / 12


@dataclass(frozen=True)
class SocialSecurity:
    """Social Security benefit claimed at ``claim_date``.

    ``pia`` is the monthly benefit at full retirement age.  ``monthly_override``
    replaces the claiming-age formula (survivor benefits are stored that way).
    """

    pia: float
    claim_date: date
    claim_age: int = 67
    fra: int = 67
    cola: float = 0.0
    monthly_override: Optional[float] = None

    def __post_init__(self):
        if self.pia < 0:
            raise ConfigurationError("PIA must be non-negative")
        object.__setattr__(self, "claim_date", month_start(self.claim_date))

    @property
    def base_monthly(self) -> float:
        if self.monthly_override is not None:
            return self.monthly_override
        return adjusted_monthly_benefit(self.pia, self.claim_age, self.fra)

    def monthly(self, month: date) -> float:
        if month < self.claim_date:
            return 0.0
        return self.base_monthly * (1 + self.cola) ** _years_since(self.claim_date, month)


@dataclass(frozen=True)
class Pension:
    """A pension or annuity paying ``monthly_amount`` from ``start_date``."""

    name: str
    monthly_amount: float
    start_date: date
    payment_form: PaymentForm = PaymentForm.SINGLE_LIFE
    cola: float = 0.0
    end_date: Optional[date] = None
    is_annuity: bool = False

    def __post_init__(self):
        if self.monthly_amount < 0:
            raise ConfigurationError(f"pension '{self.name}' must pay a non-negative amount")
        if not isinstance(self.payment_form, PaymentForm):
            object.__setattr__(self, "payment_form", PaymentForm(self.payment_form))

    def monthly(self, month: date) -> float:
        if not _active(month, self.start_date, self.end_date):
            return 0.0
        return self.monthly_amount * (1 + self.cola) ** _years_since(self.start_date, month)


@dataclass(frozen=True)
class OtherIncome:
    name: str
    monthly_amount: float
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    growth_rate: float = 0.0
    taxable: bool = True

    def monthly(self, month: date) -> float:
        if not _active(month, self.start_date, self.end_date):
            return 0.0
        return self.monthly_amount * (1 + self.growth_rate) ** _years_since(self.start_date, month)


@dataclass(frozen=True)
class IncomeProfile:
    person_id: str
    salary: Optional[Salary] = None
    social_security: Optional[SocialSecurity] = None
    pensions: Tuple[Pension, ...] = ()
    other: Tuple[OtherIncome, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "pensions", tuple(self.pensions))
        object.__setattr__(self, "other", tuple(self.other))


@dataclass(frozen=True)
class MonthlyIncome:
    salary: float = 0.0
    social_security: float = 0.0
    pension: float = 0.0
    annuity: float = 0.0
    other: float = 0.0
    taxable: float = 0.0
    sources: Tuple[str, ...] = field(default=())

    @property
    def total(self) -> float:
        return self.salary + self.social_security + self.pension + self.annuity + self.other

    @property
    def non_salary(self) -> float:
        return self.total - self.salary

    def __add__(self, other: "MonthlyIncome") -> "MonthlyIncome":
        return MonthlyIncome(
            salary=self.salary + other.salary,
            social_security=self.social_security + other.social_security,
            pension=self.pension + other.pension,
            annuity=self.annuity + other.annuity,
            other=self.other + other.other,
            taxable=self.taxable + other.taxable,
            sources=self.sources + other.sources,
        )


class DefaultIncomeProcessor:
    """Compute a month's income for living household members."""

    def __call__(self, profiles: Sequence[IncomeProfile], month: date, phase: Phase) -> MonthlyIncome:
        result = MonthlyIncome()
        for profile in profiles:
            result = result + self._one(profile, month, phase)
        return result

    def _one(self, profile: IncomeProfile, month: date, phase: Phase) -> MonthlyIncome:
        if phase is Phase.DECEASED:
            return MonthlyIncome()
        salary = 0.0
        if profile.salary is not None and phase.allows_contributions:
            salary = profile.salary.monthly(month)
        ss = profile.social_security.monthly(month) if profile.social_security else 0.0
        pension = sum(p.monthly(month) for p in profile.pensions if not p.is_annuity)
        annuity = sum(p.monthly(month) for p in profile.pensions if p.is_annuity)
        other = 0.0
        taxable_other = 0.0
        for item in profile.other:
            amount = item.monthly(month)
            other += amount
            if item.taxable:
                taxable_other += amount
        sources = tuple(
            name
            for name, amount in (
                ("salary", salary),
                ("social_security", ss),
                ("pension", pension),
                ("annuity", annuity),
                ("other", other),
            )
            if amount > 0
        )
        return MonthlyIncome(
            salary=salary,
            social_security=ss,
            pension=pension,
            annuity=annuity,
            other=other,
            taxable=salary + pension + annuity + taxable_other + TAXABLE_SOCIAL_SECURITY * ss,
            sources=tuple(f"{profile.person_id}:{s}" for s in sources),
        )


__all__ = [
    "PaymentForm",
    "Salary",
    "SocialSecurity",
    "Pension",
    "OtherIncome",
    "IncomeProfile",
    "MonthlyIncome",
    "DefaultIncomeProcessor",
]
