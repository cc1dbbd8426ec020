"""Tests for return generation and monthly compounding."""

import math
from datetime import date

import numpy as np
import pytest

from retirement_sim.calculators.returns import (
    MarketLevers,
    MarketMode,
    ReturnGenerator,
    annual_to_monthly_rate,
    grow,
)
from retirement_sim.exceptions import ConfigurationError
from retirement_sim.simulation.accounts import Account, AccountType


def test_twelve_monthly_steps_compound_to_annual_rate():
    balance = 1000.0
    for _ in range(12):
        balance = grow(balance, 0.07)
    assert balance == pytest.approx(1070.0, abs=1e-9)
    assert (1 + annual_to_monthly_rate(0.07)) ** 12 == pytest.approx(1.07)


def test_deterministic_mode_honours_account_return():
    gen = ReturnGenerator(MarketLevers(expected_return=0.05))
    accounts = [
        Account("a", "A", AccountType.TAXABLE_BROKERAGE),
        Account("b", "B", AccountType.ROTH_IRA, expected_return=0.08),
    ]
    rates = gen.monthly_rates(date(2030, 1, 1), accounts)
    assert rates["a"] == pytest.approx(annual_to_monthly_rate(0.05))
    assert rates["b"] == pytest.approx(annual_to_monthly_rate(0.08))


def test_monte_carlo_draws_once_per_year_and_is_seeded():
    levers = MarketLevers(mode=MarketMode.MONTE_CARLO, expected_return=0.06, return_std_dev=0.2)
    a = ReturnGenerator(levers, np.random.default_rng(11))
    b = ReturnGenerator(levers, np.random.default_rng(11))
    first = a.market_return(2030)
    assert a.annual_rate(date(2030, 7, 1)) == first
    assert [a.market_return(y) for y in range(2030, 2040)] == [b.market_return(y) for y in range(2030, 2040)]
    assert all(a.market_return(y) >= levers.min_return for y in range(2030, 2040))


def test_historical_mode_cycles():
    levers = MarketLevers(mode="historical", historical_returns=(0.1, -0.2, 0.05))
    gen = ReturnGenerator(levers, start_year=2030)
    assert [gen.market_return(y) for y in range(2030, 2035)] == [0.1, -0.2, 0.05, 0.1, -0.2]


def test_invalid_levers_rejected():
    with pytest.raises(ConfigurationError):
        MarketLevers(mode=MarketMode.HISTORICAL)
    with pytest.raises(ConfigurationError):
        MarketLevers(return_std_dev=-0.1)
    assert math.isclose(grow(100.0, 0.0), 100.0)
