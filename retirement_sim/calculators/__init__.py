"""Default calculators injected into the simulation engine.

Each module implements one collaborator the engine consumes, and can be
swapped for a caller-supplied callable with the same signature:

* ``taxes`` – progressive federal income tax and marginal rates.
* ``rmd`` – Required Minimum Distribution rules and the Uniform Lifetime table.
* ``social_security`` – claiming-age adjustments and survivor benefits.
* ``returns`` – market modes, return draws and monthly growth.
* ``income`` – income profiles and the monthly income processor.
* ``expenses`` – budgets, expense levers and the monthly expense calculator.
* ``contributions`` – routing savings into accounts under IRS limits.

Each module exposes a few public functions or classes with clear parameters
and returns.  See individual docstrings for details.
"""

from . import taxes, rmd, social_security, returns, income, expenses, contributions  # noqa: F401

__all__ = ["taxes", "rmd", "social_security", "returns", "income", "expenses", "contributions"]
