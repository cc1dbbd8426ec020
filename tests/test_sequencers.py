"""Tests for account sequencers."""

from datetime import date

import pytest

from retirement_sim.simulation.accounts import Account, AccountSnapshot, AccountType
from retirement_sim.simulation.context import SpendingContext
from retirement_sim.simulation.sequencers import (
    CustomSequencer,
    ProRataSequencer,
    RmdFirstSequencer,
    TaxEfficientSequencer,
)
from retirement_sim.simulation.state import SimulationView

MONTH = date(2030, 1, 1)


def _context(*accounts, age=70, birth_year=1960):
    snaps = tuple(AccountSnapshot.of(a, a.balance) for a in accounts)
    total = sum(a.balance for a in accounts)
    view = SimulationView(month=MONTH, accounts=snaps, total_balance=total, initial_balance=total)
    return SpendingContext(view=view, date=MONTH, retirement_start_date=MONTH, age=age, birth_year=birth_year)


ROTH = Account("roth", "Roth IRA", AccountType.ROTH_IRA, 30000.0)
IRA = Account("ira", "Traditional IRA", AccountType.TRADITIONAL_IRA, 50000.0)
SMALL_TAXABLE = Account("cash", "Savings", AccountType.TAXABLE_BROKERAGE, 5000.0)
BIG_TAXABLE = Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 20000.0)
HSA = Account("hsa", "HSA", AccountType.HSA, 8000.0)
EMPTY = Account("empty", "Empty", AccountType.TAXABLE_BROKERAGE, 0.0)


def test_tax_efficient_order_and_balance_ties():
    context = _context(ROTH, HSA, IRA, SMALL_TAXABLE, BIG_TAXABLE, EMPTY)
    order = [s.id for s in TaxEfficientSequencer().sequence(context)]
    assert order == ["brokerage", "cash", "ira", "roth", "hsa"]


def test_allocate_drains_in_order():
    context = _context(ROTH, IRA, BIG_TAXABLE)
    draws = {s.id: amount for s, amount in TaxEfficientSequencer().allocate(60000.0, context)}
    assert draws == {"brokerage": 20000.0, "ira": 40000.0}


def test_allocate_stops_when_accounts_run_dry():
    context = _context(SMALL_TAXABLE)
    draws = TaxEfficientSequencer().allocate(9000.0, context)
    assert sum(amount for _, amount in draws) == 5000.0


def test_pro_rata_splits_by_balance():
    context = _context(IRA, ROTH, BIG_TAXABLE)
    draws = {s.id: amount for s, amount in ProRataSequencer().allocate(10000.0, context)}
    assert draws["ira"] == pytest.approx(5000.0)
    assert draws["roth"] == pytest.approx(3000.0)
    assert draws["brokerage"] == pytest.approx(2000.0)


def test_rmd_first_puts_owing_accounts_first():
    context = _context(BIG_TAXABLE, ROTH, IRA, age=75, birth_year=1955)
    order = [s.id for s in RmdFirstSequencer(lambda balance, age, by, year: balance / 20).sequence(context)]
    assert order == ["ira", "brokerage", "roth"]


def test_custom_order_appends_unlisted_accounts():
    context = _context(ROTH, IRA, BIG_TAXABLE, HSA)
    order = [s.id for s in CustomSequencer(["roth", "missing"]).sequence(context)]
    assert order == ["roth", "brokerage", "ira", "hsa"]
