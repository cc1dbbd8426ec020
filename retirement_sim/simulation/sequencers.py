"""Account sequencers: which accounts fund a withdrawal, and in what order.

A sequencer orders the funded accounts of a view and splits an amount across
them.  The default split walks the order, draining each account before moving
to the next; :class:`ProRataSequencer` instead splits by balance weight.
Ties in every ordering go to the larger balance.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from .accounts import AccountSnapshot, TaxTreatment
from .context import SpendingContext

TAX_EFFICIENT_PRIORITY = {
    TaxTreatment.TAXABLE: 1,
    TaxTreatment.PRE_TAX: 2,
    TaxTreatment.ROTH: 3,
    TaxTreatment.HSA: 4,
}

Allocation = List[Tuple[AccountSnapshot, float]]


def _tax_efficient_key(snap: AccountSnapshot):
    return (TAX_EFFICIENT_PRIORITY[snap.tax_treatment], -snap.balance, snap.id)


class AccountSequencer(ABC):
    """Base class for withdrawal orderings."""

    name = "sequencer"

    @abstractmethod
    def sequence(self, context: SpendingContext) -> List[AccountSnapshot]:
        """Funded accounts in the order they should be drawn."""

    def allocate(
        self,
        amount: float,
        context: SpendingContext,
        available: Optional[Mapping[str, float]] = None,
    ) -> Allocation:
        """Split ``amount`` across accounts without exceeding what each holds.

        Parameters
        ----------
        amount : float
            Total to withdraw.
        context : SpendingContext
            Supplies the view the ordering is computed from.
        available : mapping, optional
            Spendable balance per account id when part of the balance is
            already committed (defaults to the view balances).

        Returns
        -------
        list of (AccountSnapshot, float)
            Non-zero draws in sequence order; the total may fall short of
            ``amount`` when the accounts run dry.
        """
        remaining = amount
        draws: Allocation = []
        for snap in self.sequence(context):
            if remaining <= 1e-9:
                break
            spendable = snap.balance if available is None else available.get(snap.id, 0.0)
            take = min(remaining, spendable)
            if take > 0:
                draws.append((snap, take))
                remaining -= take
        return draws

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class TaxEfficientSequencer(AccountSequencer):
    """Taxable first, then pre-tax, then Roth, then HSA."""

    name = "tax_efficient"

    def sequence(self, context):
        return sorted(context.view.funded_accounts, key=_tax_efficient_key)


class ProRataSequencer(AccountSequencer):
    """Draw from every funded account in proportion to its balance."""

    name = "pro_rata"

    def sequence(self, context):
        return sorted(context.view.funded_accounts, key=lambda s: (-s.balance, s.id))

    def allocate(self, amount, context, available=None):
        accounts = self.sequence(context)
        spendable = {
            s.id: (s.balance if available is None else available.get(s.id, 0.0)) for s in accounts
        }
        total = sum(spendable.values())
        if total <= 0 or amount <= 0:
            return []
        if amount >= total:
            return [(s, spendable[s.id]) for s in accounts if spendable[s.id] > 0]
        return [(s, amount * spendable[s.id] / total) for s in accounts if spendable[s.id] > 0]


class RmdFirstSequencer(AccountSequencer):
    """Accounts owing a minimum distribution first, largest minimum first.

    Parameters
    ----------
    minimum_calculator : callable
        ``(balance, age, birth_year, year) -> amount`` used to size each
        account's minimum.  Remaining accounts follow in tax-efficient order.
    """

    name = "rmd_first"

    def __init__(self, minimum_calculator: Callable[[float, int, int, int], float]):
        self.minimum_calculator = minimum_calculator

    def sequence(self, context):
        minimums: Dict[str, float] = {}
        for snap in context.view.funded_accounts:
            if snap.subject_to_rmd:
                age, birth_year = context.owner_age(snap.owner)
                minimums[snap.id] = self.minimum_calculator(snap.rmd_basis, age, birth_year, context.date.year)
        first = sorted(
            (s for s in context.view.funded_accounts if minimums.get(s.id, 0.0) > 0),
            key=lambda s: (-minimums[s.id], -s.balance, s.id),
        )
        rest = sorted(
            (s for s in context.view.funded_accounts if minimums.get(s.id, 0.0) <= 0),
            key=_tax_efficient_key,
        )
        return first + rest


class CustomSequencer(AccountSequencer):
    """Caller-chosen order by account id.

    Accounts missing from ``order`` are appended in tax-efficient order.
    """

    name = "custom"

    def __init__(self, order: Sequence[str]):
        self.order = tuple(order)

    def sequence(self, context):
        funded = {s.id: s for s in context.view.funded_accounts}
        listed = [funded[i] for i in self.order if i in funded]
        rest = sorted((s for i, s in funded.items() if i not in self.order), key=_tax_efficient_key)
        return listed + rest

    def __repr__(self) -> str:
        return f"CustomSequencer({list(self.order)!r})"


__all__ = [
    "TAX_EFFICIENT_PRIORITY",
    "AccountSequencer",
    "TaxEfficientSequencer",
    "ProRataSequencer",
    "RmdFirstSequencer",
    "CustomSequencer",
]
