"""Value objects exchanged between the engine, strategies and the orchestrator.

:class:`SpendingContext` is everything a strategy may read for one month;
:class:`WithdrawalPlan` is what comes back.  Both are frozen and validated
when they are built.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional, Tuple

from ..exceptions import ConfigurationError
from .dates import months_between

if TYPE_CHECKING:
    from .state import SimulationView


@dataclass(frozen=True)
class SpendingContext:
    """Inputs for one month's withdrawal decision.

    Parameters
    ----------
    view : SimulationView
        Frozen portfolio view for the month.
    date : datetime.date
        First day of the simulated month.
    total_expenses : float
        The month's expenses after all modifiers.
    other_income : float
        Non-portfolio income for the month (Social Security, pensions, ...).
    age, birth_year : int
        Age and birth year of the person whose plan drives withdrawals.
    retirement_start_date : datetime.date
        Month withdrawals began; drives inflation compounding and ratchet
        windows.
    filing_status : str
        Tax filing status for gross-up strategies.
    taxable_income : float
        Ordinary income year to date.
    strategy_params : mapping
        Free-form numeric parameters (``inflation_rate``, ``marginal_tax_rate``, ...).
    owner_ages : mapping
        ``{owner_id: (age, birth_year)}`` for per-account minimum distributions.
    """

    view: "SimulationView"
    date: date
    retirement_start_date: date
    total_expenses: float = 0.0
    other_income: float = 0.0
    age: int = 0
    birth_year: int = 0
    filing_status: str = "single"
    taxable_income: float = 0.0
    strategy_params: Mapping[str, Any] = field(default_factory=dict)
    owner_ages: Mapping[str, Tuple[int, int]] = field(default_factory=dict)

    def __post_init__(self):
        if self.view is None:
            raise ConfigurationError("spending context requires a simulation view")
        if self.date is None or self.retirement_start_date is None:
            raise ConfigurationError("spending context requires a date and retirement start date")
        if self.total_expenses < 0 or self.other_income < 0:
            raise ConfigurationError("expenses and income must be non-negative")
        object.__setattr__(self, "strategy_params", MappingProxyType(dict(self.strategy_params)))
        object.__setattr__(self, "owner_ages", MappingProxyType(dict(self.owner_ages)))

    @property
    def months_in_retirement(self) -> int:
        return max(0, months_between(self.retirement_start_date, self.date))

    @property
    def years_in_retirement(self) -> int:
        return self.months_in_retirement // 12

    @property
    def income_gap(self) -> float:
        return max(0.0, self.total_expenses - self.other_income)

    @property
    def current_balance(self) -> float:
        return self.view.total_balance

    @property
    def initial_balance(self) -> float:
        """Balance when withdrawals began (the opening balance before that)."""
        if self.view.withdrawal_base is not None:
            return self.view.withdrawal_base
        return self.view.initial_balance

    @property
    def current_withdrawal_rate(self) -> float:
        """Prior calendar year's strategy spending as a fraction of today's balance."""
        if self.current_balance <= 0:
            return 0.0
        return self.view.prior_year_spending / self.current_balance

    def param(self, key: str, default: Any = None) -> Any:
        return self.strategy_params.get(key, default)

    def owner_age(self, owner: str) -> Tuple[int, int]:
        return self.owner_ages.get(owner, (self.age, self.birth_year))


@dataclass(frozen=True)
class AccountWithdrawal:
    account_id: str
    account_name: str
    amount: float
    prior_balance: float

    def __post_init__(self):
        if self.amount < 0:
            raise ConfigurationError(f"negative withdrawal from '{self.account_id}'")

    @property
    def new_balance(self) -> float:
        return max(0.0, self.prior_balance - self.amount)


@dataclass(frozen=True)
class WithdrawalPlan:
    """Result of a withdrawal decision.

    ``target_withdrawal`` is what the strategy asked for.  ``adjusted_withdrawal``
    is what the plan actually takes after mandatory minimums and available
    balances; ``shortfall`` is the part of the effective target that could not
    be funded.
    """

    target_withdrawal: float
    adjusted_withdrawal: float
    account_withdrawals: Tuple[AccountWithdrawal, ...] = ()
    meets_target: bool = True
    shortfall: float = 0.0
    strategy_used: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.target_withdrawal < 0 or self.adjusted_withdrawal < 0:
            raise ConfigurationError("withdrawal amounts must be non-negative")
        if self.shortfall < 0:
            raise ConfigurationError("shortfall must be non-negative")
        object.__setattr__(self, "account_withdrawals", tuple(self.account_withdrawals))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def no_withdrawal(cls, strategy: str = "", **metadata: Any) -> "WithdrawalPlan":
        return cls(0.0, 0.0, strategy_used=strategy, metadata=metadata)

    @property
    def total_withdrawn(self) -> float:
        return sum(aw.amount for aw in self.account_withdrawals)

    def amount_from(self, account_id: str) -> float:
        return sum(aw.amount for aw in self.account_withdrawals if aw.account_id == account_id)


__all__ = ["SpendingContext", "AccountWithdrawal", "WithdrawalPlan"]
