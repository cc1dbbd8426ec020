"""Simplified Social Security benefit estimator.

Benefits are derived from the Primary Insurance Amount (PIA) and the claiming
age, applying early retirement reductions or delayed retirement credits:

* FRA defaults to 67 unless explicitly provided.
* If the claiming age is below FRA, the benefit is reduced by 7 % per year of
  early claiming.
* If the claiming age is above FRA (up to age 70), the benefit is increased by
  8 % per year of delay.
* A surviving spouse receives the larger of their own benefit or the survivor
  benefit, which is the deceased's benefit reduced when the survivor is
  younger than FRA (71.5 % at age 60, rising linearly to 100 % at FRA).

Example
-------

>>> # A PIA of $2 000 per month claimed at 65 (two years early)
>>> round(social_security_benefit(PIA=2000, start_age=65), 2)
22272.0

>>> # Claimed at 70 (three years after FRA) – increased benefit
>>> round(social_security_benefit(PIA=2000, start_age=70), 2)
25920.0

>>> # Monthly survivor benefit for a 64-year-old whose spouse received $2 400
>>> round(survivor_benefit(2400, survivor_age=64), 2)
2106.86
"""

from __future__ import annotations

from typing import Optional

SURVIVOR_MIN_AGE = 60
SURVIVOR_MIN_FACTOR = 0.715


def adjusted_monthly_benefit(PIA: float, claim_age: int, FRA: int = 67) -> float:
    """Monthly benefit after the early-claiming reduction or delayed credit."""
    claim_age = max(62, min(70, claim_age))
    years_diff = claim_age - FRA
    if years_diff < 0:
        factor = 1 + 0.07 * years_diff
    else:
        factor = 1 + 0.08 * years_diff
    return PIA * factor


def social_security_benefit(
    PIA: float,
    start_age: int,
    FRA: int = 67,
    spouse_PIA: Optional[float] = None,
    spouse_start_age: Optional[int] = None,
    survivor: bool = False,
) -> float:
    """Estimate annual Social Security benefits for an individual or couple.

    Parameters
    ----------
    PIA : float
        Primary Insurance Amount (monthly benefit at full retirement age).
    start_age : int
        Age at which benefits begin.  Clamped to 62–70.
    FRA : int, optional
        Full retirement age (default 67).
    spouse_PIA : float, optional
        PIA of the spouse.
    spouse_start_age : int, optional
        Spouse’s claiming age.
    survivor : bool, optional
        If True, return the larger of the two benefits.

    Returns
    -------
    float
        Estimated annual Social Security benefit at the chosen claiming age.
    """
    primary_monthly = adjusted_monthly_benefit(PIA, start_age, FRA)
    if spouse_PIA is None:
        return primary_monthly * 12

    spouse_monthly = adjusted_monthly_benefit(spouse_PIA, spouse_start_age or start_age, FRA)
    if survivor:
        return max(primary_monthly, spouse_monthly) * 12
    return (primary_monthly + spouse_monthly) * 12


def survivor_benefit(deceased_monthly: float, survivor_age: float, FRA: int = 67) -> float:
    """Monthly survivor benefit payable from the deceased's monthly benefit.

    Nothing is payable before age 60.  Between 60 and FRA the benefit rises
    linearly from 71.5 % to 100 % of the deceased's benefit.
    """
    if deceased_monthly <= 0 or survivor_age < SURVIVOR_MIN_AGE:
        return 0.0
    if survivor_age >= FRA:
        return deceased_monthly
    span = FRA - SURVIVOR_MIN_AGE
    factor = SURVIVOR_MIN_FACTOR + (1 - SURVIVOR_MIN_FACTOR) * (survivor_age - SURVIVOR_MIN_AGE) / span
    return deceased_monthly * factor


__all__ = ["adjusted_monthly_benefit", "social_security_benefit", "survivor_benefit"]
