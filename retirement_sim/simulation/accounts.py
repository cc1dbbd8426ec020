"""Account definitions and the immutable snapshots handed to strategies.

Every account type maps to a tax treatment and to whether minimum
distributions apply.  Employer Roth plans (401(k), 403(b)) are treated as RMD
accounts; Roth IRAs, HSAs and taxable brokerage accounts are not.

Example
-------

>>> AccountType.TRADITIONAL_IRA.tax_treatment
<TaxTreatment.PRE_TAX: 'pre_tax'>
>>> AccountType.ROTH_IRA.subject_to_rmd
False
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..exceptions import ConfigurationError


class TaxTreatment(str, Enum):
    PRE_TAX = "pre_tax"
    ROTH = "roth"
    TAXABLE = "taxable"
    HSA = "hsa"


class AccountType(str, Enum):
    TRADITIONAL_401K = "traditional_401k"
    ROTH_401K = "roth_401k"
    TRADITIONAL_IRA = "traditional_ira"
    ROTH_IRA = "roth_ira"
    HSA = "hsa"
    TAXABLE_BROKERAGE = "taxable_brokerage"
    TRADITIONAL_403B = "traditional_403b"
    ROTH_403B = "roth_403b"
    TRADITIONAL_457B = "traditional_457b"

    @property
    def tax_treatment(self) -> TaxTreatment:
        return _ACCOUNT_RULES[self][0]

    @property
    def subject_to_rmd(self) -> bool:
        return _ACCOUNT_RULES[self][1]

    @property
    def is_employer_plan(self) -> bool:
        return self.name.endswith(("401K", "403B", "457B"))


_ACCOUNT_RULES = {
    AccountType.TRADITIONAL_401K: (TaxTreatment.PRE_TAX, True),
    AccountType.ROTH_401K: (TaxTreatment.ROTH, True),
    AccountType.TRADITIONAL_IRA: (TaxTreatment.PRE_TAX, True),
    AccountType.ROTH_IRA: (TaxTreatment.ROTH, False),
    AccountType.HSA: (TaxTreatment.HSA, False),
    AccountType.TAXABLE_BROKERAGE: (TaxTreatment.TAXABLE, False),
    AccountType.TRADITIONAL_403B: (TaxTreatment.PRE_TAX, True),
    AccountType.ROTH_403B: (TaxTreatment.ROTH, True),
    AccountType.TRADITIONAL_457B: (TaxTreatment.PRE_TAX, True),
}


@dataclass(frozen=True)
class Allocation:
    """Target asset mix of an account, expressed as fractions summing to one."""

    stocks: float = 0.6
    bonds: float = 0.4
    cash: float = 0.0

    def __post_init__(self):
        parts = (self.stocks, self.bonds, self.cash)
        if any(p < 0 for p in parts):
            raise ConfigurationError("allocation fractions must be non-negative")
        if not math.isclose(sum(parts), 1.0, abs_tol=1e-6):
            raise ConfigurationError(f"allocation must sum to 1.0, got {sum(parts):.4f}")


@dataclass(frozen=True)
class Account:
    """Starting definition of a portfolio account.

    Parameters
    ----------
    id : str
        Unique identifier used in plans, flows and contribution rules.
    name : str
        Display name.
    type : AccountType
        Determines tax treatment and RMD eligibility.
    balance : float
        Opening balance at the simulation start.
    owner : str
        Identifier of the person who owns the account.
    allocation : Allocation
        Asset mix carried into every snapshot.
    expected_return : float, optional
        Account-specific annual return used in deterministic mode instead of
        the plan-wide expected return.
    """

    id: str
    name: str
    type: AccountType
    balance: float = 0.0
    owner: str = "primary"
    allocation: Allocation = field(default_factory=Allocation)
    expected_return: Optional[float] = None

    def __post_init__(self):
        if not self.id:
            raise ConfigurationError("account id must be non-empty")
        if self.balance < 0:
            raise ConfigurationError(f"account '{self.id}' has a negative opening balance")
        if not isinstance(self.type, AccountType):
            object.__setattr__(self, "type", AccountType(self.type))


@dataclass(frozen=True)
class AccountSnapshot:
    """Read-only picture of one account at the moment a view was taken.

    ``year_start_balance`` is the balance at the end of the previous calendar
    year (the opening balance in the first simulated year); ``None`` when the
    view was built without history.
    """

    id: str
    name: str
    type: AccountType
    balance: float
    tax_treatment: TaxTreatment
    subject_to_rmd: bool
    allocation: Allocation
    owner: str = "primary"
    year_start_balance: Optional[float] = None

    @property
    def has_balance(self) -> bool:
        return self.balance > 0.0

    @property
    def rmd_basis(self) -> float:
        """Balance minimum distributions are computed from."""
        return self.balance if self.year_start_balance is None else self.year_start_balance

    @classmethod
    def of(
        cls,
        account: Account,
        balance: float,
        owner: Optional[str] = None,
        year_start_balance: Optional[float] = None,
    ) -> "AccountSnapshot":
        return cls(
            id=account.id,
            name=account.name,
            type=account.type,
            balance=balance,
            tax_treatment=account.type.tax_treatment,
            subject_to_rmd=account.type.subject_to_rmd,
            allocation=account.allocation,
            owner=owner or account.owner,
            year_start_balance=year_start_balance,
        )


__all__ = ["TaxTreatment", "AccountType", "Allocation", "Account", "AccountSnapshot"]
