"""Tests for the default expense calculator."""

from datetime import date

import pytest

from retirement_sim.calculators.expenses import (
    Budget,
    DefaultExpenseCalculator,
    ExpenseCategory,
    ExpenseItem,
    budget_from_items,
)
from retirement_sim.exceptions import ConfigurationError
from retirement_sim.simulation.state import SimulationFlags

START = date(2030, 1, 1)


def _budget():
    return Budget(
        (
            ExpenseItem("groceries", ExpenseCategory.ESSENTIAL, 800.0),
            ExpenseItem("travel", ExpenseCategory.DISCRETIONARY, 1000.0),
            ExpenseItem("medicare", ExpenseCategory.HEALTHCARE, 500.0),
            ExpenseItem("mortgage", ExpenseCategory.HOUSING, 2000.0, inflation_rate=0.0),
        ),
        START,
    )


def test_category_inflation():
    result = DefaultExpenseCalculator()(_budget(), date(2031, 1, 1), SimulationFlags())
    assert result.by_item["groceries"] == pytest.approx(820.0)
    assert result.by_item["medicare"] == pytest.approx(500.0 * 1.055)
    assert result.by_item["mortgage"] == 2000.0


def test_spending_curve_scales_discretionary_only():
    flags = SimulationFlags().with_spending_phase("slow_go")
    result = DefaultExpenseCalculator()(_budget(), START, flags)
    assert result.by_item["travel"] == pytest.approx(800.0)
    assert result.by_item["groceries"] == pytest.approx(800.0)


def test_healthcare_rises_with_age():
    result = DefaultExpenseCalculator()(_budget(), START, SimulationFlags(), age=70)
    assert result.by_item["medicare"] == pytest.approx(500.0 * 1.02 ** 5)


def test_survivor_multipliers_and_ended_expenses():
    flags = SimulationFlags().with_survivor_mode().with_ended_expense("mortgage")
    result = DefaultExpenseCalculator()(_budget(), START, flags)
    assert "mortgage" not in result.by_item
    assert result.by_item["groceries"] == pytest.approx(560.0)
    assert result.by_category["discretionary"] == pytest.approx(600.0)


def test_long_term_care_cost_per_person():
    flags = SimulationFlags().with_ltc("alex")
    result = DefaultExpenseCalculator()(Budget((), START), START, flags)
    assert result.by_category["ltc"] == pytest.approx(9000.0)
    assert result.total == pytest.approx(9000.0)


def test_budget_from_items_and_duplicates():
    budget = budget_from_items([{"name": "rent", "category": "housing", "monthly_amount": 1500}], START)
    assert budget.items[0].category is ExpenseCategory.HOUSING
    with pytest.raises(ConfigurationError):
        budget_from_items(
            [{"name": "rent", "monthly_amount": 1}, {"name": "rent", "monthly_amount": 2}], START
        )
