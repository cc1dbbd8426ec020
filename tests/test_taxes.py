"""Unit tests for the taxes module.

Values use the embedded 2024 IRS brackets for several filing statuses.
"""

import math

from retirement_sim.calculators import taxes as tax_calc


def test_federal_tax_example():
    """Federal tax on $60k of ordinary income for a single filer (2024)."""
    tax = tax_calc.compute_federal_tax(60000, year=2024)
    assert math.isclose(tax, 5216.0, rel_tol=1e-4)


def test_federal_married_joint():
    """Married filing jointly should use the wider brackets."""
    tax = tax_calc.compute_federal_tax(60000, filing_status="married_filing_jointly", year=2024)
    assert math.isclose(tax, 3232.0, rel_tol=1e-4)


def test_income_below_standard_deduction_is_untaxed():
    assert tax_calc.compute_federal_tax(14000, year=2024) == 0.0
    assert tax_calc.marginal_rate(14000, year=2024) == 0.0


def test_future_years_use_latest_table():
    assert tax_calc.compute_federal_tax(60000, year=2045) == tax_calc.compute_federal_tax(60000, year=2024)


def test_marginal_rate():
    assert tax_calc.marginal_rate(60000, year=2024) == 0.12
    assert tax_calc.marginal_rate(150000, year=2024) == 0.24
