"""Tests for the RMD calculator functions."""

import math

from retirement_sim.calculators import rmd


def test_rmd_start_age():
    """RMD start age changes based on birth year per SECURE Act 2.0 rules."""
    assert rmd.rmd_start_age(1950) == 72
    assert rmd.rmd_start_age(1955) == 73
    assert rmd.rmd_start_age(1965) == 75


def test_compute_rmd():
    """Compute RMD using the 2022 Uniform Lifetime Table (balance / period)."""
    amt = rmd.compute_rmd(100000, 73)  # period 26.5
    assert math.isclose(amt, 100000 / 26.5, rel_tol=1e-6)


def test_compute_rmd_outside_table():
    assert rmd.compute_rmd(100000, 70) == 0.0
    assert rmd.compute_rmd(0, 80) == 0.0
    assert math.isclose(rmd.compute_rmd(100000, 125), 100000 / 2.0, rel_tol=1e-6)


def test_monthly_minimum_calculator():
    calc = rmd.MinimumDistributionCalculator()
    assert math.isclose(calc(100000, 73, 1955, 2028), 100000 / 26.5 / 12, rel_tol=1e-6)
    # Born 1960: nothing owed until 75
    assert calc(100000, 74, 1960, 2034) == 0.0
    assert calc(100000, 75, 1960, 2035) > 0.0
