"""Simulation core: portfolio state, spending decisions, events and runners.

* ``accounts`` – account types, tax treatments and immutable snapshots.
* ``household`` – people, life phases and mortality.
* ``state`` – the engine-owned mutable state and the frozen views it hands out.
* ``context`` – spending context and withdrawal plan value objects.
* ``strategies`` – static, income-gap and guardrails spending strategies.
* ``sequencers`` – account orderings for withdrawals.
* ``orchestrator`` – combines strategy, sequencer and mandatory minimums.
* ``events`` – scheduled and probabilistic life events, survivor transitions.
* ``config`` – validated simulation configuration and dict loader.
* ``results`` – monthly snapshots and the append-only time series.
* ``engine`` – the monthly loop.
* ``monte_carlo`` – seeded fan-out of many runs and their aggregation.
"""

from . import dates, accounts, household  # noqa: F401
from .accounts import Account, AccountSnapshot, AccountType, Allocation, TaxTreatment
from .household import MortalityModel, Person, Phase
from .results import AccountMonthlyFlow, MonthlySnapshot, TerminationReason, TimeSeries
from .context import AccountWithdrawal, SpendingContext, WithdrawalPlan
from .state import SimulationFlags, SimulationState, SimulationView
from .strategies import (
    GuardrailsConfig,
    GuardrailsSpendingStrategy,
    IncomeGapStrategy,
    SpendingStrategy,
    StaticSpendingStrategy,
)
from .sequencers import (
    AccountSequencer,
    CustomSequencer,
    ProRataSequencer,
    RmdFirstSequencer,
    TaxEfficientSequencer,
)
from .orchestrator import SpendingOrchestrator
from .events import ContingencyReserve, EventRegistry, RandomExpenseEvent, SurvivorTransition
from .config import RmdExcessDisposition, SimulationConfig
from .engine import SimulationEngine, run
from .monte_carlo import MonteCarloResult, MonteCarloRunner, SeedPolicy, run_monte_carlo

__all__ = [
    "Account",
    "AccountSnapshot",
    "AccountType",
    "Allocation",
    "TaxTreatment",
    "MortalityModel",
    "Person",
    "Phase",
    "AccountMonthlyFlow",
    "MonthlySnapshot",
    "TerminationReason",
    "TimeSeries",
    "AccountWithdrawal",
    "SpendingContext",
    "WithdrawalPlan",
    "SimulationFlags",
    "SimulationState",
    "SimulationView",
    "GuardrailsConfig",
    "GuardrailsSpendingStrategy",
    "IncomeGapStrategy",
    "SpendingStrategy",
    "StaticSpendingStrategy",
    "AccountSequencer",
    "CustomSequencer",
    "ProRataSequencer",
    "RmdFirstSequencer",
    "TaxEfficientSequencer",
    "SpendingOrchestrator",
    "ContingencyReserve",
    "EventRegistry",
    "RandomExpenseEvent",
    "SurvivorTransition",
    "RmdExcessDisposition",
    "SimulationConfig",
    "SimulationEngine",
    "run",
    "MonteCarloResult",
    "MonteCarloRunner",
    "SeedPolicy",
    "run_monte_carlo",
]
