"""Monthly results of a simulation run.

A run produces a :class:`TimeSeries`: an append-only sequence of
:class:`MonthlySnapshot` objects, one per calendar month with no gaps, ending
with the snapshot that carries the run's :class:`TerminationReason`.

Example
-------

>>> series = run(config)                           # doctest: +SKIP
>>> series.termination_reason                      # doctest: +SKIP
<TerminationReason.COMPLETED: 'completed'>
>>> series.to_frame()[["total_balance", "total_withdrawals"]].head()  # doctest: +SKIP
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import pandas as pd

from ..calculators import taxes as tax_calc
from ..exceptions import TimeSeriesOrderError
from .dates import add_months


class TerminationReason(str, Enum):
    COMPLETED = "completed"
    ALL_PERSONS_DECEASED = "all_persons_deceased"
    PORTFOLIO_DEPLETED = "portfolio_depleted"
    MAX_YEARS_REACHED = "max_years_reached"

    @property
    def is_success(self) -> bool:
        return self is not TerminationReason.PORTFOLIO_DEPLETED


@dataclass(frozen=True)
class AccountMonthlyFlow:
    """Money movements of one account during one month."""

    account_id: str
    account_name: str
    starting_balance: float
    contributions: float
    withdrawals: float
    returns: float
    ending_balance: float

    @property
    def net_flow(self) -> float:
        return self.contributions - self.withdrawals + self.returns

    def is_balanced(self, tolerance: float = 1e-6) -> bool:
        """True when ending balance equals starting balance plus net flow."""
        expected = self.starting_balance + self.net_flow
        return abs(expected - self.ending_balance) <= tolerance * max(1.0, abs(expected))


def _frozen(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class MonthlySnapshot:
    """Everything that happened in one simulated month.

    Income and expense figures are the month's amounts.  ``taxable_income`` is
    the month's ordinary income (salary, pensions, annuities, 85% of Social
    Security and withdrawals from pre-tax accounts).  Cumulative counters run
    from the start of the simulation.

    ``spending_withdrawal`` is the part of the month's withdrawals driven by
    the spending strategy: the orchestrated plan less any forced minimum
    excess.  Deficit, bridge and contingency draws are not part of it.
    ``surplus_withdrawn`` is strategy money the household did not need, which
    was reinvested or held like a minimum-distribution excess.
    """

    month: date
    phase: str
    account_flows: Mapping[str, AccountMonthlyFlow] = field(default_factory=dict)
    salary_income: float = 0.0
    social_security_income: float = 0.0
    pension_income: float = 0.0
    annuity_income: float = 0.0
    other_income: float = 0.0
    total_expenses: float = 0.0
    expenses_by_category: Mapping[str, float] = field(default_factory=dict)
    withdrawal_target: float = 0.0
    shortfall: float = 0.0
    taxable_income: float = 0.0
    rmd_withdrawn: float = 0.0
    rmd_excess: float = 0.0
    spending_withdrawal: float = 0.0
    surplus_withdrawn: float = 0.0
    held_cash: float = 0.0
    reserve_balance: float = 0.0
    survivor_mode: bool = False
    events_triggered: Tuple[str, ...] = ()
    cumulative_contributions: float = 0.0
    cumulative_withdrawals: float = 0.0
    cumulative_returns: float = 0.0
    termination_reason: Optional[TerminationReason] = None

    def __post_init__(self):
        object.__setattr__(self, "account_flows", _frozen(self.account_flows))
        object.__setattr__(self, "expenses_by_category", _frozen(self.expenses_by_category))
        object.__setattr__(self, "events_triggered", tuple(self.events_triggered))

    @property
    def year(self) -> int:
        return self.month.year

    @property
    def total_balance(self) -> float:
        return sum(f.ending_balance for f in self.account_flows.values())

    @property
    def total_contributions(self) -> float:
        return sum(f.contributions for f in self.account_flows.values())

    @property
    def total_withdrawals(self) -> float:
        return sum(f.withdrawals for f in self.account_flows.values())

    @property
    def total_returns(self) -> float:
        return sum(f.returns for f in self.account_flows.values())

    @property
    def total_income(self) -> float:
        return (
            self.salary_income
            + self.social_security_income
            + self.pension_income
            + self.annuity_income
            + self.other_income
        )


@dataclass
class _YearTotals:
    withdrawals: float = 0.0
    withdrawal_months: int = 0
    spending: float = 0.0
    spending_months: int = 0
    returns: float = 0.0
    ending_balance: float = 0.0
    account_balances: Dict[str, float] = field(default_factory=dict)


class TimeSeries(Sequence):
    """Append-only, gap-free sequence of monthly snapshots."""

    def __init__(self):
        self._snapshots: List[MonthlySnapshot] = []
        self._years: Dict[int, _YearTotals] = {}
        self.termination_reason: Optional[TerminationReason] = None
        self.survivor_transitions: List = []

    def append(self, snapshot: MonthlySnapshot) -> None:
        if self.termination_reason is not None:
            raise TimeSeriesOrderError(
                f"series already terminated ({self.termination_reason.value})"
            )
        if self._snapshots:
            expected = add_months(self._snapshots[-1].month, 1)
            if snapshot.month != expected:
                raise TimeSeriesOrderError(
                    f"expected snapshot for {expected:%Y-%m}, got {snapshot.month:%Y-%m}"
                )
        self._snapshots.append(snapshot)
        totals = self._years.setdefault(snapshot.year, _YearTotals())
        totals.withdrawals += snapshot.total_withdrawals
        if snapshot.total_withdrawals > 0:
            totals.withdrawal_months += 1
        totals.spending += snapshot.spending_withdrawal
        if snapshot.spending_withdrawal > 0:
            totals.spending_months += 1
        totals.returns += snapshot.total_returns
        totals.ending_balance = snapshot.total_balance
        totals.account_balances = {k: f.ending_balance for k, f in snapshot.account_flows.items()}
        if snapshot.termination_reason is not None:
            self.termination_reason = snapshot.termination_reason

    def __len__(self) -> int:
        return len(self._snapshots)

    def __getitem__(self, index):
        return self._snapshots[index]

    def __iter__(self) -> Iterator[MonthlySnapshot]:
        return iter(self._snapshots)

    @property
    def months(self) -> List[date]:
        return [s.month for s in self._snapshots]

    @property
    def final_balance(self) -> float:
        return self._snapshots[-1].total_balance if self._snapshots else 0.0

    def withdrawals_in(self, year: int) -> float:
        totals = self._years.get(year)
        return totals.withdrawals if totals else 0.0

    def withdrawal_months_in(self, year: int) -> int:
        totals = self._years.get(year)
        return totals.withdrawal_months if totals else 0

    def spending_in(self, year: int) -> float:
        """Strategy-driven withdrawals of ``year``."""
        totals = self._years.get(year)
        return totals.spending if totals else 0.0

    def spending_months_in(self, year: int) -> int:
        totals = self._years.get(year)
        return totals.spending_months if totals else 0

    def returns_in(self, year: int) -> float:
        totals = self._years.get(year)
        return totals.returns if totals else 0.0

    def year_end_balance(self, year: int) -> Optional[float]:
        """Balance after the last recorded month of ``year`` (None if not simulated)."""
        totals = self._years.get(year)
        return totals.ending_balance if totals else None

    def year_end_account_balance(self, year: int, account_id: str) -> Optional[float]:
        totals = self._years.get(year)
        return totals.account_balances.get(account_id) if totals else None

    def balances(self) -> List[float]:
        return [s.total_balance for s in self._snapshots]

    def to_frame(self) -> pd.DataFrame:
        """One row per month with totals, income, expenses and per-account balances."""
        rows = []
        for s in self._snapshots:
            row = {
                "month": pd.Timestamp(s.month),
                "phase": s.phase,
                "total_balance": s.total_balance,
                "total_contributions": s.total_contributions,
                "total_withdrawals": s.total_withdrawals,
                "total_returns": s.total_returns,
                "salary_income": s.salary_income,
                "social_security_income": s.social_security_income,
                "pension_income": s.pension_income,
                "annuity_income": s.annuity_income,
                "other_income": s.other_income,
                "total_expenses": s.total_expenses,
                "taxable_income": s.taxable_income,
                "shortfall": s.shortfall,
                "rmd_withdrawn": s.rmd_withdrawn,
                "spending_withdrawal": s.spending_withdrawal,
                "survivor_mode": s.survivor_mode,
            }
            for account_id, flow in s.account_flows.items():
                row[f"balance:{account_id}"] = flow.ending_balance
            rows.append(row)
        if not rows:
            return pd.DataFrame(columns=["total_balance"])
        return pd.DataFrame(rows).set_index("month")

    def annual_summary(self, filing_status: str = "single") -> pd.DataFrame:
        """Calendar-year totals with an estimated federal income tax.

        Parameters
        ----------
        filing_status : str
            Filing status used for the tax estimate.  Years after the first
            survivor month are taxed as ``single``.

        Returns
        -------
        pandas.DataFrame
            Indexed by year with income, expense, flow and tax columns.
        """
        frame = self.to_frame()
        if frame.empty:
            return frame
        sums = frame.groupby(frame.index.year)[
            [
                "salary_income",
                "social_security_income",
                "pension_income",
                "annuity_income",
                "other_income",
                "total_expenses",
                "total_contributions",
                "total_withdrawals",
                "total_returns",
                "taxable_income",
                "shortfall",
            ]
        ].sum()
        survivor = frame.groupby(frame.index.year)["survivor_mode"].any()
        sums["ending_balance"] = frame.groupby(frame.index.year)["total_balance"].last()
        sums["federal_tax"] = [
            tax_calc.compute_federal_tax(
                income, "single" if survivor.loc[year] else filing_status, int(year)
            )
            for year, income in sums["taxable_income"].items()
        ]
        sums.index.name = "year"
        return sums


__all__ = ["TerminationReason", "AccountMonthlyFlow", "MonthlySnapshot", "TimeSeries"]
