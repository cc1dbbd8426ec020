"""Tests for plan validation and dictionary plans."""

from dataclasses import FrozenInstanceError
from datetime import date

import pytest

from retirement_sim.calculators.returns import MarketMode
from retirement_sim.exceptions import ConfigurationError, InvalidDateRangeError, MissingFieldError
from retirement_sim.simulation.accounts import Account, AccountType
from retirement_sim.simulation.config import RmdExcessDisposition, SimulationConfig
from retirement_sim.simulation.events import ExpenseEndEvent, RandomExpenseEvent
from retirement_sim.simulation.household import Person
from retirement_sim.simulation.sequencers import CustomSequencer
from retirement_sim.simulation.strategies import GuardrailsSpendingStrategy

ALEX = Person("alex", date(1965, 3, 1), retirement_date=date(2030, 1, 1))


def _plan():
    return {
        "start": "2030-01",
        "end": "2059-12",
        "persons": [
            {"id": "alex", "birth_date": "1965-03-01", "retirement_date": "2030-01"},
            {"id": "sam", "birth_date": "1967-08-15", "retirement_date": "2032-01"},
        ],
        "accounts": [
            {"id": "brokerage", "type": "taxable_brokerage", "balance": 400000},
            {"id": "ira", "type": "traditional_ira", "balance": 600000, "owner": "sam"},
        ],
        "income": [
            {"person_id": "sam", "salary": {"annual_amount": 90000}, "social_security": {"pia": 2200, "claim_age": 67}},
        ],
        "expenses": {
            "items": [
                {"name": "mortgage", "category": "housing", "monthly_amount": 1800},
                {"name": "groceries", "category": "essential", "monthly_amount": 900},
            ],
        },
        "market": {"mode": "monte_carlo", "expected_return": 0.06, "return_std_dev": 0.12},
        "strategy": {"type": "guardrails", "preset": "guyton_klinger"},
        "sequencer": {"type": "custom", "order": ["ira", "brokerage"]},
        "mortgage_payoff": {"date": "2036-06"},
        "random_expenses": ["hvac_failure"],
        "reserves": [{"category": "home_repair", "target": 15000, "balance": 15000}],
        "rmd_excess": "reinvest",
    }


def test_from_dict_builds_full_config():
    config = SimulationConfig.from_dict(_plan())
    assert config.is_couple
    assert config.household_filing_status == "married_filing_jointly"
    assert config.market.mode is MarketMode.MONTE_CARLO
    assert isinstance(config.strategy, GuardrailsSpendingStrategy)
    assert config.strategy.name == "Guyton-Klinger"
    assert isinstance(config.sequencer, CustomSequencer)
    assert config.rmd_excess is RmdExcessDisposition.REINVEST
    assert config.reinvest_target == "brokerage"
    assert config.income_profile("sam").social_security.claim_date == date(2034, 8, 1)
    assert any(isinstance(e, ExpenseEndEvent) for e in config.events)
    assert any(isinstance(e, RandomExpenseEvent) for e in config.events)


def test_household_events_include_derived_events():
    names = [e.name for e in SimulationConfig.from_dict(_plan()).household_events()]
    assert names.count("retirement_start") == 2
    assert "social_security_start" in names
    assert "rmd_start" in names
    assert "spending_phase:slow_go" in names


def test_missing_required_field():
    plan = _plan()
    del plan["persons"][0]["birth_date"]
    with pytest.raises(MissingFieldError) as err:
        SimulationConfig.from_dict(plan)
    assert err.value.field == "birth_date"


def test_start_after_end_rejected():
    with pytest.raises(InvalidDateRangeError):
        SimulationConfig(persons=(ALEX,), accounts=(), start_date=date(2040, 1, 1), end_date=date(2030, 1, 1))


def test_rmd_accounts_require_excess_disposition():
    ira = Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 100000.0, owner="alex")
    with pytest.raises(ConfigurationError):
        SimulationConfig(persons=(ALEX,), accounts=(ira,), start_date=date(2030, 1, 1), end_date=date(2040, 1, 1))
    config = SimulationConfig(
        persons=(ALEX,), accounts=(ira,), start_date=date(2030, 1, 1), end_date=date(2040, 1, 1), rmd_excess="hold"
    )
    assert config.rmd_excess is RmdExcessDisposition.HOLD


def test_reinvest_needs_a_taxable_account():
    ira = Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 100000.0, owner="alex")
    with pytest.raises(ConfigurationError):
        SimulationConfig(
            persons=(ALEX,), accounts=(ira,), start_date=date(2030, 1, 1), end_date=date(2040, 1, 1),
            rmd_excess=RmdExcessDisposition.REINVEST,
        )


def test_unknown_account_owner_rejected():
    acct = Account("brokerage", "Brokerage", AccountType.TAXABLE_BROKERAGE, 1000.0, owner="nobody")
    with pytest.raises(ConfigurationError):
        SimulationConfig(persons=(ALEX,), accounts=(acct,), start_date=date(2030, 1, 1), end_date=date(2040, 1, 1))


def test_unknown_strategy_type_rejected():
    plan = _plan()
    plan["strategy"] = {"type": "yolo"}
    with pytest.raises(ConfigurationError):
        SimulationConfig.from_dict(plan)


def test_config_is_frozen():
    config = SimulationConfig.from_dict(_plan())
    with pytest.raises(FrozenInstanceError):
        config.max_years = 5
