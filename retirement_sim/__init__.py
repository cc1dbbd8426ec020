"""Monthly retirement projection with pluggable withdrawal strategies.

The ``simulation`` package holds the engine and everything it orchestrates;
the ``calculators`` package holds the default collaborators it consumes
(taxes, RMDs, Social Security, returns, income, expenses, contributions).

>>> from retirement_sim import SimulationConfig, run, run_monte_carlo
>>> config = SimulationConfig.from_dict(plan)          # doctest: +SKIP
>>> series = run(config, seed=7)                       # doctest: +SKIP
>>> result = run_monte_carlo(config, num_runs=1000, seed_policy=7)  # doctest: +SKIP
"""

from .simulation import (  # noqa: F401
    SimulationConfig,
    SimulationEngine,
    TerminationReason,
    TimeSeries,
    run,
    run_monte_carlo,
)
from . import calculators  # noqa: F401

__version__ = "0.1.0"

__all__ = [
    "SimulationConfig",
    "SimulationEngine",
    "TerminationReason",
    "TimeSeries",
    "run",
    "run_monte_carlo",
    "calculators",
]
