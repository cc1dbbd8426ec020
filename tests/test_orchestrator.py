"""Tests for the spending orchestrator and minimum distributions."""

from datetime import date

import pytest

from retirement_sim.calculators.rmd import MinimumDistributionCalculator
from retirement_sim.simulation.accounts import Account, AccountSnapshot, AccountType
from retirement_sim.simulation.context import SpendingContext
from retirement_sim.simulation.orchestrator import SpendingOrchestrator
from retirement_sim.simulation.sequencers import TaxEfficientSequencer
from retirement_sim.simulation.state import SimulationView
from retirement_sim.simulation.strategies import IncomeGapStrategy, StaticSpendingStrategy

MONTH = date(2030, 1, 1)


def _context(accounts, expenses=0.0, income=0.0, age=75, birth_year=1955):
    snaps = tuple(AccountSnapshot.of(a, a.balance) for a in accounts)
    total = sum(a.balance for a in accounts)
    view = SimulationView(month=MONTH, accounts=snaps, total_balance=total, initial_balance=total)
    return SpendingContext(
        view=view,
        date=MONTH,
        retirement_start_date=MONTH,
        total_expenses=expenses,
        other_income=income,
        age=age,
        birth_year=birth_year,
    )


def _fixed_minimum(amount):
    return lambda balance, age, birth_year, year: amount


def test_minimum_overrides_smaller_strategy_target():
    """A $5,000 minimum beats a $3,000 income gap and is reported as forced."""
    accounts = [Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 500000.0)]
    context = _context(accounts, expenses=3000.0)
    plan = SpendingOrchestrator(_fixed_minimum(5000.0)).execute(
        IncomeGapStrategy(), TaxEfficientSequencer(), context
    )
    assert plan.target_withdrawal == 3000.0
    assert plan.adjusted_withdrawal == 5000.0
    assert plan.amount_from("ira") == 5000.0
    assert plan.metadata["rmd_forced"] is True
    assert plan.metadata["rmd_excess"] == pytest.approx(2000.0)
    assert plan.meets_target


def test_minimum_drawn_from_owing_account_then_sequence():
    accounts = [
        Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 100000.0),
        Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 200000.0),
    ]
    context = _context(accounts, expenses=6000.0)
    plan = SpendingOrchestrator(_fixed_minimum(1000.0)).execute(
        IncomeGapStrategy(), TaxEfficientSequencer(), context
    )
    assert plan.amount_from("ira") == 1000.0
    assert plan.amount_from("brokerage") == 5000.0
    assert plan.metadata["rmd_forced"] is False
    assert plan.metadata["rmd_excess"] == 0.0


def test_withdrawals_never_exceed_balances():
    accounts = [
        Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 1000.0),
        Account("roth", "Roth", AccountType.ROTH_IRA, 500.0),
    ]
    context = _context(accounts, expenses=5000.0)
    plan = SpendingOrchestrator().execute(IncomeGapStrategy(), TaxEfficientSequencer(), context)
    assert plan.adjusted_withdrawal == 1500.0
    assert plan.shortfall == pytest.approx(3500.0)
    assert not plan.meets_target
    for aw in plan.account_withdrawals:
        assert aw.amount <= aw.prior_balance


def test_real_rmd_calculator_uses_account_owner_age():
    accounts = [Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 265000.0)]
    context = _context(accounts, age=73, birth_year=1957)
    owed = SpendingOrchestrator(MinimumDistributionCalculator()).minimums(context)
    assert owed["ira"] == pytest.approx(265000.0 / 26.5 / 12)
    young = _context(accounts, age=65, birth_year=1965)
    assert SpendingOrchestrator(MinimumDistributionCalculator()).minimums(young) == {}


def test_plan_amount_funds_fixed_need():
    accounts = [Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 10000.0)]
    plan = SpendingOrchestrator().plan_amount(2500.0, TaxEfficientSequencer(), _context(accounts), "bridge")
    assert plan.adjusted_withdrawal == 2500.0
    assert plan.strategy_used == "bridge"


def test_static_strategy_through_orchestrator():
    accounts = [Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 1_000_000.0)]
    plan = SpendingOrchestrator().execute(StaticSpendingStrategy(), TaxEfficientSequencer(), _context(accounts))
    assert plan.adjusted_withdrawal == pytest.approx(1_000_000 * 0.04 / 12)


def test_minimum_uses_year_start_balance():
    account = Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 400000.0)
    snap = AccountSnapshot.of(account, 400000.0, year_start_balance=492000.0)
    view = SimulationView(month=MONTH, accounts=(snap,), total_balance=400000.0, initial_balance=400000.0)
    context = SpendingContext(
        view=view,
        date=MONTH,
        retirement_start_date=MONTH,
        total_expenses=0.0,
        other_income=0.0,
        age=75,
        birth_year=1955,
    )
    owed = SpendingOrchestrator(MinimumDistributionCalculator()).minimums(context)
    assert owed["ira"] == pytest.approx(492000.0 / 24.6 / 12)
