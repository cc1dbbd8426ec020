"""Routing of savings into portfolio accounts.

Savings are split across accounts by share.  Each destination is capped by
its remaining IRS annual limit, with catch-up amounts from age 50 (55 for
HSAs).  Roth IRA contributions are blocked once the prior year's income
exceeds ``roth_income_limit``, and tax-advantaged accounts only accept money
that comes from earned income.  Whatever a capped destination cannot take
goes to the overflow account, or is left unallocated.

Example
-------

>>> config = ContributionConfig(rules=(ContributionRule("k401", 1.0),), overflow_account_id="brokerage")
>>> alloc = DefaultContributionRouter()(30000, "salary", accounts, config, 2030, 45, 120000)  # doctest: +SKIP
>>> dict(alloc.allocations)                                                                     # doctest: +SKIP
{'k401': 23000.0, 'brokerage': 7000.0}
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence, Tuple

from ..exceptions import ConfigurationError
from ..simulation.accounts import AccountSnapshot, AccountType

EMPLOYER_LIMIT = 23000.0
EMPLOYER_CATCH_UP = 7500.0
IRA_LIMIT = 7000.0
IRA_CATCH_UP = 1000.0
HSA_LIMIT = 4150.0
HSA_CATCH_UP = 1000.0

EARNED_INCOME_SOURCES = frozenset({"salary"})


def limit_family(account_type: AccountType) -> Optional[str]:
    """Accounts sharing one annual limit, or ``None`` for unlimited accounts."""
    if account_type.is_employer_plan:
        return "employer"
    if account_type in (AccountType.TRADITIONAL_IRA, AccountType.ROTH_IRA):
        return "ira"
    if account_type is AccountType.HSA:
        return "hsa"
    return None


def annual_limit(account_type: AccountType, age: int) -> float:
    family = limit_family(account_type)
    if family == "employer":
        return EMPLOYER_LIMIT + (EMPLOYER_CATCH_UP if age >= 50 else 0.0)
    if family == "ira":
        return IRA_LIMIT + (IRA_CATCH_UP if age >= 50 else 0.0)
    if family == "hsa":
        return HSA_LIMIT + (HSA_CATCH_UP if age >= 55 else 0.0)
    return math.inf


@dataclass(frozen=True)
class ContributionRule:
    account_id: str
    share: float

    def __post_init__(self):
        if not 0 <= self.share <= 1:
            raise ConfigurationError(f"contribution share for '{self.account_id}' must be in [0, 1]")


@dataclass(frozen=True)
class ContributionConfig:
    """How surplus cash is saved.

    Parameters
    ----------
    rules : tuple of ContributionRule
        Destination shares; they may sum to less than one.
    overflow_account_id : str, optional
        Receives what the rules leave over or the limits reject.
    roth_income_limit : float
        Prior-year income above which Roth IRA contributions are refused.
    enforce_limits : bool
        Apply IRS annual limits.
    savings_share : float
        Share of the monthly surplus that is saved at all.
    """

    rules: Tuple[ContributionRule, ...] = ()
    overflow_account_id: Optional[str] = None
    roth_income_limit: float = math.inf
    enforce_limits: bool = True
    savings_share: float = 1.0

    def __post_init__(self):
        object.__setattr__(self, "rules", tuple(self.rules))
        if sum(r.share for r in self.rules) > 1 + 1e-9:
            raise ConfigurationError("contribution shares sum to more than 1")
        if not 0 <= self.savings_share <= 1:
            raise ConfigurationError("savings_share must be in [0, 1]")

    @property
    def account_ids(self) -> Tuple[str, ...]:
        ids = tuple(r.account_id for r in self.rules)
        if self.overflow_account_id:
            ids += (self.overflow_account_id,)
        return ids


@dataclass(frozen=True)
class ContributionAllocation:
    allocations: Mapping[str, float] = field(default_factory=dict)
    unallocated: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "allocations", MappingProxyType(dict(self.allocations)))

    @property
    def total(self) -> float:
        return sum(self.allocations.values())


class DefaultContributionRouter:
    """Split an amount across accounts under the configured rules and limits."""

    def __call__(
        self,
        amount: float,
        source: str,
        accounts: Sequence[AccountSnapshot],
        config: ContributionConfig,
        year: int,
        age: int,
        prior_income: float,
        ytd_contributions: Optional[Mapping[str, float]] = None,
    ) -> ContributionAllocation:
        if amount <= 0:
            return ContributionAllocation()
        by_id = {a.id: a for a in accounts}
        ytd = dict(ytd_contributions or {})
        family_used: Dict[str, float] = {}
        for account_id, used in ytd.items():
            snap = by_id.get(account_id)
            family = limit_family(snap.type) if snap else None
            if family:
                family_used[family] = family_used.get(family, 0.0) + used

        allocations: Dict[str, float] = {}
        leftover = amount
        for rule in config.rules:
            snap = by_id.get(rule.account_id)
            if snap is None:
                continue
            room = self._room(snap, source, config, age, prior_income, family_used)
            put = min(amount * rule.share, room, leftover)
            if put > 0:
                allocations[snap.id] = allocations.get(snap.id, 0.0) + put
                family = limit_family(snap.type)
                if family:
                    family_used[family] = family_used.get(family, 0.0) + put
                leftover -= put

        overflow = by_id.get(config.overflow_account_id) if config.overflow_account_id else None
        if overflow is not None and leftover > 0:
            room = self._room(overflow, source, config, age, prior_income, family_used)
            put = min(leftover, room)
            if put > 0:
                allocations[overflow.id] = allocations.get(overflow.id, 0.0) + put
                leftover -= put
        return ContributionAllocation(allocations=allocations, unallocated=max(0.0, leftover))

    @staticmethod
    def _room(
        snap: AccountSnapshot,
        source: str,
        config: ContributionConfig,
        age: int,
        prior_income: float,
        family_used: Mapping[str, float],
    ) -> float:
        family = limit_family(snap.type)
        if family is None:
            return math.inf
        if source not in EARNED_INCOME_SOURCES:
            return 0.0
        if snap.type is AccountType.ROTH_IRA and prior_income > config.roth_income_limit:
            return 0.0
        if not config.enforce_limits:
            return math.inf
        return max(0.0, annual_limit(snap.type, age) - family_used.get(family, 0.0))


__all__ = [
    "EMPLOYER_LIMIT",
    "IRA_LIMIT",
    "HSA_LIMIT",
    "limit_family",
    "annual_limit",
    "ContributionRule",
    "ContributionConfig",
    "ContributionAllocation",
    "DefaultContributionRouter",
]
