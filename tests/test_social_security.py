"""Tests for the simplified Social Security benefit estimator."""

import math
from datetime import date

from retirement_sim.calculators import social_security as ss
from retirement_sim.calculators.income import SocialSecurity


def test_early_claiming_reduction():
    """Claiming before FRA reduces benefits by approximately 7% per year."""
    benefit = ss.social_security_benefit(PIA=2000, start_age=65)
    assert math.isclose(benefit, 2000 * 0.86 * 12, rel_tol=1e-4)


def test_delayed_claiming_credit():
    """Claiming after FRA increases benefits by 8% per year up to age 70."""
    benefit = ss.social_security_benefit(PIA=2000, start_age=70)
    assert math.isclose(benefit, 2000 * 1.24 * 12, rel_tol=1e-4)


def test_survivor_of_couple_takes_larger_benefit():
    survivor = ss.social_security_benefit(PIA=1500, start_age=67, spouse_PIA=1000, spouse_start_age=67, survivor=True)
    assert math.isclose(survivor, 1500 * 12, rel_tol=1e-4)


def test_survivor_benefit_reduction_before_fra():
    assert ss.survivor_benefit(2000, survivor_age=59) == 0.0
    assert math.isclose(ss.survivor_benefit(2000, survivor_age=60), 2000 * 0.715, rel_tol=1e-9)
    assert math.isclose(ss.survivor_benefit(2000, survivor_age=67), 2000.0, rel_tol=1e-9)
    assert math.isclose(ss.survivor_benefit(2000, survivor_age=72), 2000.0, rel_tol=1e-9)


def test_benefit_paid_from_claim_month_with_cola():
    benefit = SocialSecurity(pia=2000.0, claim_date=date(2030, 6, 1), claim_age=62, cola=0.02)
    assert benefit.monthly(date(2030, 5, 1)) == 0.0
    expected = ss.social_security_benefit(PIA=2000.0, start_age=62) / 12
    assert math.isclose(benefit.monthly(date(2030, 6, 1)), expected, rel_tol=1e-9)
    assert math.isclose(benefit.monthly(date(2031, 6, 1)), expected * 1.02, rel_tol=1e-9)
