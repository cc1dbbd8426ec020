"""Spending orchestrator: turns a strategy target into account withdrawals.

For every month in distribution the orchestrator

1. asks the minimum-distribution calculator what each RMD-eligible account
   owes this month, based on its balance at the start of the calendar year,
2. asks the strategy for its target,
3. takes the larger of the target and the sum of the minimums,
4. draws each minimum from its own account, then funds the rest through the
   sequencer,
5. records any amount it could not fund as a shortfall.

Plan metadata reports ``strategy_target``, ``rmd_required``, ``rmd_forced``
(minimums exceeded the strategy target) and ``rmd_excess`` (the forced amount
above the month's income gap).  What happens to that excess is decided by the
caller.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional

from .context import AccountWithdrawal, SpendingContext, WithdrawalPlan
from .sequencers import AccountSequencer
from .strategies import SpendingStrategy

logger = logging.getLogger(__name__)

MinimumCalculator = Callable[[float, int, int, int], float]

_EPSILON = 1e-6


class SpendingOrchestrator:
    """Combine a strategy, a sequencer and mandatory minimums into one plan.

    Parameters
    ----------
    minimum_calculator : callable, optional
        ``(balance, age, birth_year, year) -> amount`` owed this month, where
        ``balance`` is the account's year-start balance (its current balance
        for views built without history).  When omitted no minimums are
        enforced.
    """

    def __init__(self, minimum_calculator: Optional[MinimumCalculator] = None):
        self.minimum_calculator = minimum_calculator

    def minimums(self, context: SpendingContext) -> Dict[str, float]:
        """Minimum owed by each funded RMD-eligible account, capped at its balance."""
        if self.minimum_calculator is None:
            return {}
        owed: Dict[str, float] = {}
        for snap in context.view.funded_accounts:
            if not snap.subject_to_rmd:
                continue
            age, birth_year = context.owner_age(snap.owner)
            amount = self.minimum_calculator(snap.rmd_basis, age, birth_year, context.date.year)
            amount = min(max(0.0, float(amount)), snap.balance)
            if amount > 0:
                owed[snap.id] = amount
        return owed

    def execute(
        self,
        strategy: SpendingStrategy,
        sequencer: AccountSequencer,
        context: SpendingContext,
    ) -> WithdrawalPlan:
        """Build the month's withdrawal plan."""
        strategy_plan = strategy.calculate(context)
        target = strategy_plan.target_withdrawal
        minimums = self.minimums(context)
        required = sum(minimums.values())
        effective = max(target, required)

        draws: Dict[str, float] = dict(minimums)
        available = {
            s.id: s.balance - minimums.get(s.id, 0.0) for s in context.view.funded_accounts
        }
        for snap, amount in sequencer.allocate(effective - required, context, available):
            draws[snap.id] = draws.get(snap.id, 0.0) + amount

        withdrawals = self._withdrawals(context, draws)
        adjusted = sum(w.amount for w in withdrawals)
        shortfall = effective - adjusted
        if shortfall <= _EPSILON:
            shortfall = 0.0
        forced = required > target + _EPSILON
        excess = max(0.0, adjusted - context.income_gap) if forced else 0.0
        if shortfall:
            logger.debug(
                "%s: withdrawal shortfall %.2f of %.2f", context.date, shortfall, effective
            )

        metadata = dict(strategy_plan.metadata)
        metadata.update(
            strategy_target=target,
            effective_target=effective,
            rmd_required=required,
            rmd_forced=forced,
            rmd_excess=excess,
            rmd_withdrawn=required,
            discretionary_withdrawn=max(0.0, adjusted - required),
            sequencer=sequencer.name,
        )
        return WithdrawalPlan(
            target_withdrawal=target,
            adjusted_withdrawal=adjusted,
            account_withdrawals=withdrawals,
            meets_target=shortfall == 0.0,
            shortfall=shortfall,
            strategy_used=strategy.name,
            metadata=metadata,
        )

    def plan_amount(
        self,
        amount: float,
        sequencer: AccountSequencer,
        context: SpendingContext,
        purpose: str = "cash_need",
    ) -> WithdrawalPlan:
        """Fund a fixed cash need (a deficit or an uncovered expense) through ``sequencer``."""
        amount = max(0.0, amount)
        draws: Dict[str, float] = {}
        for snap, take in sequencer.allocate(amount, context):
            draws[snap.id] = draws.get(snap.id, 0.0) + take
        withdrawals = self._withdrawals(context, draws)
        adjusted = sum(w.amount for w in withdrawals)
        shortfall = amount - adjusted
        if shortfall <= _EPSILON:
            shortfall = 0.0
        return WithdrawalPlan(
            target_withdrawal=amount,
            adjusted_withdrawal=adjusted,
            account_withdrawals=withdrawals,
            meets_target=shortfall == 0.0,
            shortfall=shortfall,
            strategy_used=purpose,
            metadata={"sequencer": sequencer.name, "purpose": purpose},
        )

    @staticmethod
    def _withdrawals(context: SpendingContext, draws: Dict[str, float]) -> List[AccountWithdrawal]:
        out = []
        for account_id, amount in draws.items():
            if amount <= 0:
                continue
            snap = context.view.account(account_id)
            out.append(
                AccountWithdrawal(
                    account_id=account_id,
                    account_name=snap.name,
                    amount=min(amount, snap.balance),
                    prior_balance=snap.balance,
                )
            )
        return out


__all__ = ["SpendingOrchestrator", "MinimumCalculator"]
