"""Federal income tax estimates.

The simulation itself never computes taxes; this module supplies the default
tax collaborator used for annual summaries and for the marginal rate handed to
gross-up strategies.  The defaults embed IRS data for 2024 with the 2023
tables kept for history.  Years outside the bundled tables use the nearest
available year, so long projections are taxed at today's brackets in nominal
dollars.  The standard deduction is applied before the progressive rates;
credits, AMT and state taxes are out of scope.

Example
-------

>>> # Federal tax on $60 000 of ordinary income for a single filer in 2024
>>> round(compute_federal_tax(60000, year=2024), 2)
5216.0

>>> marginal_rate(60000, year=2024)
0.12

The brackets can be customised by passing a dictionary matching the schema in
``data/tax_tables.json``.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional

_DEFAULT_TAX_TABLE_PATH = Path(__file__).resolve().parent.parent / "data" / "tax_tables.json"

FILING_STATUSES = (
    "single",
    "married_filing_jointly",
    "married_filing_separately",
    "head_of_household",
)


@lru_cache(maxsize=None)
def _load_default_tables() -> Dict[str, Dict]:
    with open(_DEFAULT_TAX_TABLE_PATH, "r", encoding="utf-8") as f:
        return json.load(f)


def _load_tax_tables(path: Optional[Path] = None) -> Dict[str, Dict]:
    """Load tax tables from JSON.  If ``path`` is not provided, load the
    default file shipped with the package.

    Parameters
    ----------
    path : Path, optional
        Path to a JSON file containing the tax tables.

    Returns
    -------
    dict
        The parsed tax tables.
    """
    if path is None:
        return _load_default_tables()
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _federal_table(tables: Dict[str, Dict], year: int, filing_status: str) -> Dict:
    years = sorted(int(y) for y in tables)
    chosen = min(years, key=lambda y: (abs(y - year), -y))
    federal = tables[str(chosen)]["federal"]
    if filing_status not in federal:
        raise ValueError(f"unknown filing status '{filing_status}'")
    return federal[filing_status]


def _brackets(table: Dict) -> List[Dict]:
    return table["brackets"]


def compute_federal_tax(
    income: float,
    filing_status: str = "single",
    year: int = 2024,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Compute federal income tax due on ordinary income.

    The tax is calculated progressively using the brackets defined under the
    chosen year and filing status.  Income is reduced by the standard deduction
    before applying the rates.
    """
    table = _federal_table(tax_tables or _load_tax_tables(), year, filing_status)
    taxable_income = max(0.0, income - table.get("standard_deduction", 0))
    tax = 0.0
    remaining = taxable_income
    for bracket in _brackets(table):
        rate = bracket["rate"]
        start = bracket["start"]
        end = bracket["end"] if bracket["end"] is not None else float("inf")
        if remaining <= 0 or taxable_income <= start:
            break
        amount = min(remaining, end - start)
        tax += amount * rate
        remaining -= amount
    return tax


def marginal_rate(
    income: float,
    filing_status: str = "single",
    year: int = 2024,
    tax_tables: Optional[Dict[str, Dict]] = None,
) -> float:
    """Rate applied to the next dollar of ordinary income (0 below the deduction)."""
    table = _federal_table(tax_tables or _load_tax_tables(), year, filing_status)
    taxable_income = income - table.get("standard_deduction", 0)
    if taxable_income < 0:
        return 0.0
    rate = 0.0
    for bracket in _brackets(table):
        if taxable_income >= bracket["start"]:
            rate = bracket["rate"]
    return rate


__all__ = ["compute_federal_tax", "marginal_rate", "FILING_STATUSES", "_load_tax_tables"]
