"""Tests for the spending strategies."""

from datetime import date

import pytest

from retirement_sim.exceptions import ConfigurationError
from retirement_sim.simulation.accounts import Account, AccountSnapshot, AccountType
from retirement_sim.simulation.context import SpendingContext
from retirement_sim.simulation.state import SimulationView
from retirement_sim.simulation.strategies import (
    GuardrailsConfig,
    GuardrailsSpendingStrategy,
    IncomeGapStrategy,
    StaticSpendingStrategy,
)

START = date(2030, 1, 1)


def _context(
    balance=1_000_000.0,
    month=START,
    initial=1_000_000.0,
    prior_spending=0.0,
    prior_months=0,
    prior_return=0.0,
    last_ratchet=None,
    expenses=10_000.0,
    income=0.0,
    params=None,
):
    account = Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, balance)
    view = SimulationView(
        month=month,
        accounts=(AccountSnapshot.of(account, balance),),
        total_balance=balance,
        initial_balance=initial,
        prior_year_withdrawals=prior_spending,
        prior_year_withdrawal_months=prior_months,
        prior_year_spending=prior_spending,
        prior_year_spending_months=prior_months,
        prior_year_return=prior_return,
        last_ratchet_month=last_ratchet,
        withdrawal_base=initial,
    )
    return SpendingContext(
        view=view,
        date=month,
        retirement_start_date=START,
        total_expenses=expenses,
        other_income=income,
        strategy_params=params if params is not None else {"inflation_rate": 0.0},
    )


def test_static_four_percent_first_month():
    plan = StaticSpendingStrategy(withdrawal_rate=0.04).calculate(_context())
    assert plan.target_withdrawal == pytest.approx(3333.33, abs=0.01)
    assert plan.meets_target
    assert plan.strategy_used == "Static 4%"


def test_static_indexes_to_inflation():
    context = _context(month=date(2031, 1, 1), params={"inflation_rate": 0.03})
    plan = StaticSpendingStrategy().calculate(context)
    assert plan.target_withdrawal == pytest.approx(1_000_000 * 0.04 / 12 * 1.03)


def test_static_uses_starting_balance_not_current():
    plan = StaticSpendingStrategy().calculate(_context(balance=600_000.0))
    assert plan.target_withdrawal == pytest.approx(3333.33, abs=0.01)


def test_static_capped_by_balance_and_income_gap():
    plan = StaticSpendingStrategy().calculate(_context(balance=1000.0))
    assert plan.adjusted_withdrawal == 1000.0
    assert not plan.meets_target
    assert plan.shortfall == pytest.approx(2333.33, abs=0.01)
    capped = StaticSpendingStrategy(cap_at_income_gap=True).calculate(_context(expenses=3000.0, income=1000.0))
    assert capped.target_withdrawal == pytest.approx(2000.0)


def test_static_rejects_invalid_rate():
    with pytest.raises(ConfigurationError):
        StaticSpendingStrategy(withdrawal_rate=0.0)


def test_income_gap_and_gross_up():
    assert IncomeGapStrategy().calculate(_context(expenses=5000.0, income=2000.0)).target_withdrawal == 3000.0
    grossed = IncomeGapStrategy(marginal_tax_rate=0.25).calculate(_context(expenses=5000.0, income=2000.0))
    assert grossed.target_withdrawal == pytest.approx(4000.0)
    assert IncomeGapStrategy().calculate(_context(expenses=1000.0, income=2000.0)).target_withdrawal == 0.0


def test_income_gap_estimated_rate_only_when_enabled():
    params = {"inflation_rate": 0.0, "estimated_marginal_tax_rate": 0.2}
    context = _context(expenses=5000.0, income=1000.0, params=params)
    assert IncomeGapStrategy().calculate(context).target_withdrawal == 4000.0
    assert IncomeGapStrategy(use_estimated_rate=True).calculate(context).target_withdrawal == pytest.approx(5000.0)


def test_guardrails_first_year_uses_initial_rate():
    strategy = GuardrailsSpendingStrategy(GuardrailsConfig.guyton_klinger())
    plan = strategy.calculate(_context())
    assert plan.target_withdrawal == pytest.approx(52000.0 / 12)
    assert plan.metadata["adjustment"] == "first_year"


def test_guardrails_raise_spending_below_upper_guardrail():
    context = _context(balance=1_200_000.0, month=date(2031, 1, 1), prior_spending=40000.0, prior_months=12)
    plan = GuardrailsSpendingStrategy().calculate(context)
    assert plan.metadata["adjustment"] == "increase"
    assert plan.metadata["ratchet"] is True
    assert plan.target_withdrawal == pytest.approx(44000.0 / 12)


def test_guardrails_cut_spending_above_lower_guardrail():
    context = _context(month=date(2031, 1, 1), prior_spending=80000.0, prior_months=12)
    plan = GuardrailsSpendingStrategy().calculate(context)
    assert plan.metadata["adjustment"] == "decrease"
    assert plan.target_withdrawal == pytest.approx(72000.0 / 12)


def test_guardrails_annualise_partial_prior_year():
    context = _context(month=date(2031, 1, 1), prior_spending=25000.0, prior_months=6)
    plan = GuardrailsSpendingStrategy().calculate(context)
    assert plan.metadata["adjustment"] == "none"
    assert plan.metadata["annual_spending"] == pytest.approx(50000.0)


def test_guyton_klinger_skips_inflation_after_losing_year():
    context = _context(
        month=date(2031, 1, 1),
        prior_spending=55000.0,
        prior_months=12,
        prior_return=-0.1,
        params={"inflation_rate": 0.03},
    )
    plan = GuardrailsSpendingStrategy(GuardrailsConfig.guyton_klinger()).calculate(context)
    assert plan.metadata["inflation_skipped"] is True
    assert plan.metadata["annual_spending"] == pytest.approx(55000.0)


def test_kitces_waits_between_ratchets():
    strategy = GuardrailsSpendingStrategy(GuardrailsConfig.kitces_ratcheting())
    kwargs = dict(balance=2_000_000.0, prior_spending=40000.0, prior_months=12)
    blocked = strategy.calculate(_context(month=date(2033, 1, 1), last_ratchet=date(2031, 6, 1), **kwargs))
    assert blocked.metadata["adjustment"] == "none"
    allowed = strategy.calculate(_context(month=date(2034, 6, 1), last_ratchet=date(2031, 6, 1), **kwargs))
    assert allowed.metadata["adjustment"] == "increase"


def test_kitces_never_cuts_spending():
    strategy = GuardrailsSpendingStrategy(GuardrailsConfig.kitces_ratcheting())
    context = _context(balance=400_000.0, month=date(2031, 1, 1), prior_spending=40000.0, prior_months=12)
    plan = strategy.calculate(context)
    assert plan.metadata["annual_spending"] == pytest.approx(40000.0)


def test_vanguard_ceiling_and_floor():
    strategy = GuardrailsSpendingStrategy(GuardrailsConfig.vanguard_dynamic())
    high = strategy.calculate(_context(balance=1_500_000.0, month=date(2031, 1, 1), prior_spending=40000.0, prior_months=12))
    assert high.metadata["adjustment"] == "ceiling"
    assert high.metadata["annual_spending"] == pytest.approx(42000.0)
    low = strategy.calculate(_context(balance=500_000.0, month=date(2031, 1, 1), prior_spending=40000.0, prior_months=12))
    assert low.metadata["adjustment"] == "floor"
    assert low.metadata["annual_spending"] == pytest.approx(39000.0)


def test_guardrails_absolute_floor():
    config = GuardrailsConfig(absolute_floor=60000.0)
    plan = GuardrailsSpendingStrategy(config).calculate(_context())
    assert plan.target_withdrawal == pytest.approx(5000.0)


def test_guardrails_capped_at_income_gap_by_default():
    capped = GuardrailsSpendingStrategy().calculate(_context(expenses=3000.0, income=1000.0))
    assert capped.target_withdrawal == pytest.approx(2000.0)
    uncapped = GuardrailsSpendingStrategy(GuardrailsConfig(cap_at_income_gap=False)).calculate(
        _context(expenses=3000.0, income=1000.0)
    )
    assert uncapped.target_withdrawal == pytest.approx(50000.0 / 12)


def test_guardrails_ignore_withdrawals_outside_spending():
    account = Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 1_000_000.0)
    view = SimulationView(
        month=date(2031, 1, 1),
        accounts=(AccountSnapshot.of(account, 1_000_000.0),),
        total_balance=1_000_000.0,
        initial_balance=1_000_000.0,
        prior_year_withdrawals=100000.0,
        prior_year_withdrawal_months=12,
        prior_year_spending=50000.0,
        prior_year_spending_months=12,
        withdrawal_base=1_000_000.0,
    )
    context = SpendingContext(
        view=view,
        date=date(2031, 1, 1),
        retirement_start_date=START,
        total_expenses=10_000.0,
        other_income=0.0,
        strategy_params={"inflation_rate": 0.0},
    )
    plan = GuardrailsSpendingStrategy().calculate(context)
    assert plan.metadata["annual_spending"] == pytest.approx(50000.0)
    assert context.current_withdrawal_rate == pytest.approx(0.05)


def test_ratchet_spacing_counts_calendar_years():
    strategy = GuardrailsSpendingStrategy(GuardrailsConfig(upper_threshold=100.0, min_years_between_ratchets=2))
    kwargs = dict(prior_spending=40000.0, prior_months=12)
    same_year = _context(month=date(2031, 11, 1), last_ratchet=date(2031, 1, 1), **kwargs)
    assert strategy.can_ratchet(same_year)
    next_year = _context(month=date(2032, 12, 1), last_ratchet=date(2031, 1, 1), **kwargs)
    assert not strategy.can_ratchet(next_year)
    two_years = _context(month=date(2033, 1, 1), last_ratchet=date(2031, 12, 1), **kwargs)
    assert strategy.can_ratchet(two_years)
