"""Mutable portfolio state owned by a single simulation run, and the frozen
views it hands out.

Only the engine holds a :class:`SimulationState`.  Strategies, sequencers and
the orchestrator see the portfolio exclusively through
:class:`SimulationView`, which is rebuilt on every :meth:`SimulationState.snapshot`
call and never changes afterwards.

Example
-------

>>> state = SimulationState([Account("ira", "IRA", AccountType.TRADITIONAL_IRA, 100000.0)])
>>> view = state.snapshot(date(2030, 1, 1))
>>> view.total_balance
100000.0
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from ..exceptions import ConfigurationError, OverdrawnAccountError
from .accounts import Account, AccountSnapshot
from .context import WithdrawalPlan
from .results import AccountMonthlyFlow, TimeSeries

# Withdrawals within a tenth of a cent of the balance are treated as exact.
_TOLERANCE = 1e-3


@dataclass(frozen=True)
class SimulationFlags:
    """Household switches that gate expense modifiers and cash routing.

    Every ``with_*`` method returns a new flags object.
    """

    survivor_mode: bool = False
    refilling: FrozenSet[str] = frozenset()
    ended_expenses: FrozenSet[str] = frozenset()
    spending_phase: str = "go_go"
    ltc_active: FrozenSet[str] = frozenset()

    def with_survivor_mode(self) -> "SimulationFlags":
        return replace(self, survivor_mode=True)

    def with_refill(self, category: str, active: bool = True) -> "SimulationFlags":
        if active:
            return replace(self, refilling=self.refilling | {category})
        return replace(self, refilling=self.refilling - {category})

    def with_ended_expense(self, name: str) -> "SimulationFlags":
        return replace(self, ended_expenses=self.ended_expenses | {name})

    def with_spending_phase(self, phase: str) -> "SimulationFlags":
        return replace(self, spending_phase=phase)

    def with_ltc(self, person_id: str) -> "SimulationFlags":
        return replace(self, ltc_active=self.ltc_active | {person_id})

    def without_ltc(self, person_id: str) -> "SimulationFlags":
        return replace(self, ltc_active=self.ltc_active - {person_id})

    def is_refilling(self, category: str) -> bool:
        return category in self.refilling


@dataclass(frozen=True)
class SimulationView:
    """Read-only portfolio picture handed to strategies and sequencers.

    ``prior_year_withdrawals`` is the sum of the previous calendar year's
    monthly withdrawals of every kind; ``prior_year_spending`` counts only
    the strategy-driven part of them (see
    :attr:`MonthlySnapshot.spending_withdrawal`).  ``prior_year_return`` is
    the previous calendar year's total investment growth divided by the
    balance at the end of the year before it (the initial balance when that
    year was not simulated).
    """

    month: Optional[date]
    accounts: Tuple[AccountSnapshot, ...]
    total_balance: float
    initial_balance: float
    prior_year_withdrawals: float = 0.0
    prior_year_withdrawal_months: int = 0
    prior_year_spending: float = 0.0
    prior_year_spending_months: int = 0
    prior_year_return: float = 0.0
    last_ratchet_month: Optional[date] = None
    high_water_mark: float = 0.0
    withdrawal_base: Optional[float] = None
    cumulative_withdrawals: float = 0.0
    reserves: Mapping[str, float] = field(default_factory=dict)
    flags: SimulationFlags = field(default_factory=SimulationFlags)

    def __post_init__(self):
        object.__setattr__(self, "accounts", tuple(self.accounts))
        object.__setattr__(self, "reserves", MappingProxyType(dict(self.reserves)))

    def account(self, account_id: str) -> AccountSnapshot:
        for snap in self.accounts:
            if snap.id == account_id:
                return snap
        raise KeyError(account_id)

    @property
    def funded_accounts(self) -> Tuple[AccountSnapshot, ...]:
        return tuple(a for a in self.accounts if a.has_balance)

    def years_since_ratchet(self) -> Optional[int]:
        """Calendar years since the last spending increase, or None."""
        if self.last_ratchet_month is None or self.month is None:
            return None
        return self.month.year - self.last_ratchet_month.year


@dataclass
class _Reserve:
    target: float
    balance: float


@dataclass
class _Flow:
    starting_balance: float
    contributions: float = 0.0
    withdrawals: float = 0.0
    returns: float = 0.0


class SimulationState:
    """Balances, history, flags and counters of one run.

    Parameters
    ----------
    accounts : iterable of Account
        Opening accounts; identifiers must be unique.
    reserves : mapping, optional
        Contingency reserves as ``{category: (target, opening_balance)}``.
    """

    def __init__(self, accounts: Iterable[Account], reserves: Optional[Mapping[str, Tuple[float, float]]] = None):
        self._accounts: Dict[str, Account] = {}
        for acct in accounts:
            if acct.id in self._accounts:
                raise ConfigurationError(f"duplicate account id '{acct.id}'")
            self._accounts[acct.id] = acct
        self._balances: Dict[str, float] = {k: float(a.balance) for k, a in self._accounts.items()}
        self._owners: Dict[str, str] = {k: a.owner for k, a in self._accounts.items()}
        self._reserves: Dict[str, _Reserve] = {
            cat: _Reserve(float(target), float(balance)) for cat, (target, balance) in (reserves or {}).items()
        }
        self._flows: Dict[str, _Flow] = {}
        self.initial_balance = self.total_balance
        self.high_water_mark = self.initial_balance
        self.cumulative_contributions = 0.0
        self.cumulative_withdrawals = 0.0
        self.cumulative_returns = 0.0
        self.last_ratchet_month: Optional[date] = None
        self.withdrawal_base: Optional[float] = None
        self.flags = SimulationFlags()
        self.history = TimeSeries()

    # ------------------------------------------------------------------ reads
    @property
    def total_balance(self) -> float:
        return sum(self._balances.values())

    @property
    def account_ids(self) -> List[str]:
        return list(self._accounts)

    def balance(self, account_id: str) -> float:
        return self._balances[account_id]

    def owner_of(self, account_id: str) -> str:
        return self._owners[account_id]

    def account(self, account_id: str) -> Account:
        return self._accounts[account_id]

    @property
    def reserve_balance(self) -> float:
        return sum(r.balance for r in self._reserves.values())

    def snapshot(self, month: Optional[date] = None) -> SimulationView:
        """Build a frozen view of the current portfolio for ``month``."""
        prior_withdrawals = 0.0
        prior_months = 0
        prior_spending = 0.0
        prior_spending_months = 0
        prior_return = 0.0
        if month is not None:
            prior_year = month.year - 1
            prior_withdrawals = self.history.withdrawals_in(prior_year)
            prior_months = self.history.withdrawal_months_in(prior_year)
            prior_spending = self.history.spending_in(prior_year)
            prior_spending_months = self.history.spending_months_in(prior_year)
            base = self.history.year_end_balance(prior_year - 1)
            if base is None:
                base = self.initial_balance
            growth = self.history.returns_in(prior_year)
            prior_return = growth / base if base > 0 else 0.0
        return SimulationView(
            month=month,
            accounts=tuple(
                AccountSnapshot.of(
                    acct, self._balances[k], self._owners[k], self._year_start_balance(k, month)
                )
                for k, acct in self._accounts.items()
            ),
            total_balance=self.total_balance,
            initial_balance=self.initial_balance,
            prior_year_withdrawals=prior_withdrawals,
            prior_year_withdrawal_months=prior_months,
            prior_year_spending=prior_spending,
            prior_year_spending_months=prior_spending_months,
            prior_year_return=prior_return,
            last_ratchet_month=self.last_ratchet_month,
            high_water_mark=self.high_water_mark,
            cumulative_withdrawals=self.cumulative_withdrawals,
            withdrawal_base=self.withdrawal_base,
            reserves={cat: r.balance for cat, r in self._reserves.items()},
            flags=self.flags,
        )

    def _year_start_balance(self, account_id: str, month: Optional[date]) -> Optional[float]:
        if month is None:
            return None
        balance = self.history.year_end_account_balance(month.year - 1, account_id)
        return self._accounts[account_id].balance if balance is None else balance

    # ----------------------------------------------------------------- writes
    def begin_month(self) -> None:
        self._flows = {k: _Flow(starting_balance=v) for k, v in self._balances.items()}

    def _flow(self, account_id: str) -> _Flow:
        if account_id not in self._balances:
            raise KeyError(account_id)
        flow = self._flows.get(account_id)
        if flow is None:
            flow = self._flows[account_id] = _Flow(starting_balance=self._balances[account_id])
        return flow

    def apply(self, plan: WithdrawalPlan) -> float:
        """Subtract every account withdrawal in ``plan``; return the total taken.

        Raises
        ------
        OverdrawnAccountError
            If the plan asks an account for more than its balance.
        """
        taken = 0.0
        for aw in plan.account_withdrawals:
            available = self._balances.get(aw.account_id)
            if available is None:
                raise KeyError(aw.account_id)
            if aw.amount < 0 or aw.amount > available + _TOLERANCE:
                raise OverdrawnAccountError(aw.account_id, aw.amount, available)
            amount = min(aw.amount, available)
            self._balances[aw.account_id] = max(0.0, available - amount)
            self._flow(aw.account_id).withdrawals += amount
            self.cumulative_withdrawals += amount
            taken += amount
        return taken

    def deposit(self, account_id: str, amount: float) -> None:
        if amount < 0:
            raise ValueError("deposit amount must be non-negative")
        self._flow(account_id).contributions += amount
        self._balances[account_id] += amount
        self.cumulative_contributions += amount
        self.high_water_mark = max(self.high_water_mark, self.total_balance)

    def apply_returns(self, monthly_rates: Mapping[str, float]) -> Dict[str, float]:
        """Grow each account by its monthly rate; return growth per account."""
        growth: Dict[str, float] = {}
        for account_id, rate in monthly_rates.items():
            before = self._balances[account_id]
            after = max(0.0, before * (1.0 + rate))
            self._balances[account_id] = after
            growth[account_id] = after - before
            self._flow(account_id).returns += after - before
            self.cumulative_returns += after - before
        self.high_water_mark = max(self.high_water_mark, self.total_balance)
        return growth

    def transfer_ownership(self, from_owner: str, to_owner: str) -> Tuple[str, ...]:
        """Re-own every account of ``from_owner``; balances are untouched."""
        moved = tuple(k for k, owner in self._owners.items() if owner == from_owner)
        for account_id in moved:
            self._owners[account_id] = to_owner
        return moved

    def record_ratchet(self, month: date) -> None:
        """Remember the first month of a spending increase year.

        Every month of an increase year reports the ratchet; only the first one
        is kept so the spacing between ratchets is counted in calendar years.
        """
        last = self.last_ratchet_month
        if last is None or last.year < month.year:
            self.last_ratchet_month = month

    def mark_withdrawal_start(self) -> None:
        """Freeze the balance withdrawal rates are measured against."""
        if self.withdrawal_base is None:
            self.withdrawal_base = self.total_balance

    def draw_reserve(self, category: str, amount: float) -> float:
        """Take up to ``amount`` from a contingency reserve; return what was drawn."""
        reserve = self._reserves.get(category)
        if reserve is None or amount <= 0:
            return 0.0
        drawn = min(reserve.balance, amount)
        reserve.balance -= drawn
        return drawn

    def reserve_deficit(self, category: str) -> float:
        reserve = self._reserves.get(category)
        if reserve is None:
            return 0.0
        return max(0.0, reserve.target - reserve.balance)

    def refill_reserve(self, category: str, amount: float) -> float:
        """Add up to ``amount`` toward the reserve target; return what was used."""
        used = min(max(0.0, amount), self.reserve_deficit(category))
        if used:
            self._reserves[category].balance += used
        return used

    def close_month(self) -> Dict[str, AccountMonthlyFlow]:
        flows = {}
        for account_id, acct in self._accounts.items():
            flow = self._flow(account_id)
            flows[account_id] = AccountMonthlyFlow(
                account_id=account_id,
                account_name=acct.name,
                starting_balance=flow.starting_balance,
                contributions=flow.contributions,
                withdrawals=flow.withdrawals,
                returns=flow.returns,
                ending_balance=self._balances[account_id],
            )
        self._flows = {}
        return flows


__all__ = ["SimulationFlags", "SimulationView", "SimulationState"]
