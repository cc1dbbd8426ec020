"""Tests covering contribution routing and IRS limits."""

import pytest

from retirement_sim.calculators.contributions import (
    ContributionConfig,
    ContributionRule,
    DefaultContributionRouter,
    annual_limit,
)
from retirement_sim.simulation.accounts import Account, AccountSnapshot, AccountType


def _accounts():
    accounts = [
        Account("k401", "401(k)", AccountType.TRADITIONAL_401K),
        Account("roth", "Roth IRA", AccountType.ROTH_IRA),
        Account("hsa", "HSA", AccountType.HSA),
        Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE),
    ]
    return [AccountSnapshot.of(a, a.balance) for a in accounts]


def test_catch_up_limits():
    assert annual_limit(AccountType.TRADITIONAL_401K, 49) == 23000.0
    assert annual_limit(AccountType.ROTH_401K, 50) == 30500.0
    assert annual_limit(AccountType.ROTH_IRA, 50) == 8000.0
    assert annual_limit(AccountType.HSA, 54) == 4150.0
    assert annual_limit(AccountType.HSA, 55) == 5150.0


def test_excess_over_limit_goes_to_overflow():
    config = ContributionConfig(rules=(ContributionRule("k401", 1.0),), overflow_account_id="brokerage")
    alloc = DefaultContributionRouter()(30000, "salary", _accounts(), config, 2030, 45, 120000)
    assert dict(alloc.allocations) == {"k401": 23000.0, "brokerage": 7000.0}
    assert alloc.unallocated == 0.0


def test_year_to_date_contributions_reduce_room():
    config = ContributionConfig(rules=(ContributionRule("k401", 1.0),))
    alloc = DefaultContributionRouter()(
        5000, "salary", _accounts(), config, 2030, 45, 120000, ytd_contributions={"k401": 20000.0}
    )
    assert dict(alloc.allocations) == {"k401": 3000.0}
    assert alloc.unallocated == pytest.approx(2000.0)


def test_roth_blocked_above_income_limit():
    config = ContributionConfig(
        rules=(ContributionRule("roth", 1.0),), overflow_account_id="brokerage", roth_income_limit=150000
    )
    alloc = DefaultContributionRouter()(1000, "salary", _accounts(), config, 2030, 45, 200000)
    assert "roth" not in alloc.allocations
    assert alloc.allocations["brokerage"] == 1000.0


def test_unearned_income_cannot_fund_tax_advantaged_accounts():
    config = ContributionConfig(rules=(ContributionRule("hsa", 0.5), ContributionRule("brokerage", 0.5)))
    alloc = DefaultContributionRouter()(1000, "pension", _accounts(), config, 2030, 60, 50000)
    assert dict(alloc.allocations) == {"brokerage": 500.0}
    assert alloc.total + alloc.unallocated == pytest.approx(1000.0)
