"""Spending strategies: how much to withdraw this month.

A strategy reads a :class:`~retirement_sim.simulation.context.SpendingContext`
and returns a :class:`~retirement_sim.simulation.context.WithdrawalPlan` with
the target amount.  Strategies hold configuration only; all history (prior
year withdrawals and return, last ratchet month) comes from the view, so a
single instance can be shared by every Monte Carlo run.

Three families are provided:

* :class:`StaticSpendingStrategy` – the classic "4 % rule": a fixed share of
  the starting balance, raised with inflation.
* :class:`IncomeGapStrategy` – withdraw exactly what income does not cover,
  optionally grossed up for taxes.
* :class:`GuardrailsSpendingStrategy` – dynamic spending with upper and lower
  withdrawal-rate guardrails, with Guyton-Klinger, Vanguard and Kitces
  presets on :class:`GuardrailsConfig`.

Example
-------

>>> strategy = StaticSpendingStrategy(withdrawal_rate=0.04)
>>> plan = strategy.calculate(context)             # doctest: +SKIP
>>> round(plan.target_withdrawal, 2)               # doctest: +SKIP
3333.33
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from ..exceptions import ConfigurationError
from .context import SpendingContext, WithdrawalPlan

DEFAULT_INFLATION = 0.025


class SpendingStrategy(ABC):
    """Base class for withdrawal strategies."""

    name = "strategy"

    @abstractmethod
    def monthly_target(self, context: SpendingContext) -> Tuple[float, Dict[str, Any]]:
        """Return the month's target withdrawal and strategy metadata."""

    def calculate(self, context: SpendingContext) -> WithdrawalPlan:
        target, metadata = self.monthly_target(context)
        target = max(0.0, target)
        adjusted = min(target, max(0.0, context.current_balance))
        shortfall = target - adjusted
        return WithdrawalPlan(
            target_withdrawal=target,
            adjusted_withdrawal=adjusted,
            meets_target=shortfall <= 1e-9,
            shortfall=shortfall if shortfall > 1e-9 else 0.0,
            strategy_used=self.name,
            metadata=metadata,
        )

    def _inflation(self, context: SpendingContext, configured: Optional[float]) -> float:
        if configured is not None:
            return configured
        return float(context.param("inflation_rate", DEFAULT_INFLATION))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class StaticSpendingStrategy(SpendingStrategy):
    """Fixed percentage of the starting balance, indexed to inflation.

    The monthly amount is ``initial_balance * withdrawal_rate / 12`` compounded
    by ``(1 + inflation) ** (months_in_retirement / 12)``.

    Parameters
    ----------
    withdrawal_rate : float
        Annual share of the starting balance (default 0.04).
    inflation_rate : float, optional
        Annual inflation; defaults to the ``inflation_rate`` strategy
        parameter, then 2.5 %.
    adjust_for_inflation : bool
        Whether to index the amount at all.
    cap_at_income_gap : bool
        Never withdraw more than expenses minus other income.
    """

    def __init__(
        self,
        withdrawal_rate: float = 0.04,
        inflation_rate: Optional[float] = None,
        adjust_for_inflation: bool = True,
        cap_at_income_gap: bool = False,
    ):
        if not 0 < withdrawal_rate < 1:
            raise ConfigurationError("withdrawal_rate must be between 0 and 1")
        self.withdrawal_rate = withdrawal_rate
        self.inflation_rate = inflation_rate
        self.adjust_for_inflation = adjust_for_inflation
        self.cap_at_income_gap = cap_at_income_gap
        self.name = f"Static {withdrawal_rate * 100:g}%"

    def monthly_target(self, context):
        inflation = self._inflation(context, self.inflation_rate)
        factor = 1.0
        if self.adjust_for_inflation:
            factor = (1 + inflation) ** (context.months_in_retirement / 12)
        monthly = context.initial_balance * self.withdrawal_rate * factor / 12
        if self.cap_at_income_gap:
            monthly = min(monthly, context.income_gap)
        return monthly, {
            "withdrawal_rate": self.withdrawal_rate,
            "inflation_rate": inflation,
            "inflation_factor": factor,
        }


class IncomeGapStrategy(SpendingStrategy):
    """Withdraw the shortfall between expenses and other income.

    With a marginal tax rate ``t`` the gap is grossed up to ``gap / (1 - t)``
    so the after-tax withdrawal still covers it.  The rate comes from the
    constructor or the ``marginal_tax_rate`` strategy parameter.  With
    ``use_estimated_rate`` set and no explicit rate, the engine's
    ``estimated_marginal_tax_rate`` (from year-to-date taxable income) is used.
    """

    name = "Income Gap"

    def __init__(self, marginal_tax_rate: Optional[float] = None, use_estimated_rate: bool = False):
        if marginal_tax_rate is not None and not 0 <= marginal_tax_rate < 1:
            raise ConfigurationError("marginal_tax_rate must be in [0, 1)")
        self.marginal_tax_rate = marginal_tax_rate
        self.use_estimated_rate = use_estimated_rate

    def _rate(self, context: SpendingContext) -> float:
        if self.marginal_tax_rate is not None:
            return self.marginal_tax_rate
        rate = context.param("marginal_tax_rate")
        if rate is None and self.use_estimated_rate:
            rate = context.param("estimated_marginal_tax_rate")
        return float(rate or 0.0)

    def monthly_target(self, context):
        rate = self._rate(context)
        gap = context.income_gap
        target = gap / (1 - rate) if rate > 0 else gap
        return target, {"income_gap": gap, "marginal_tax_rate": rate}


@dataclass(frozen=True)
class GuardrailsConfig:
    """Parameters of a guardrails withdrawal rule.

    Threshold multipliers are relative to ``initial_withdrawal_rate``: with an
    initial rate of 5 % and ``upper_threshold=0.8`` spending is raised once the
    current rate falls below 4 %.  ``None`` disables a guardrail.  Floors and
    ceilings are annual dollar amounts.

    With ``percent_of_portfolio`` set, spending is recomputed each year as
    ``balance * initial_withdrawal_rate`` and then held between
    ``(1 - decrease_adjustment)`` and ``(1 + increase_adjustment)`` times the
    prior year's inflation-adjusted spending (a ceiling-and-floor rule).
    """

    name: str = "Guardrails"
    initial_withdrawal_rate: float = 0.05
    inflation_rate: Optional[float] = None
    upper_threshold: Optional[float] = 0.8
    increase_adjustment: float = 0.10
    lower_threshold: Optional[float] = 1.2
    decrease_adjustment: float = 0.10
    absolute_floor: Optional[float] = None
    absolute_ceiling: Optional[float] = None
    allow_spending_cuts: bool = True
    skip_inflation_on_down_years: bool = False
    min_years_between_ratchets: int = 1
    years_before_cap_preservation_ends: int = 0
    percent_of_portfolio: bool = False
    cap_at_income_gap: bool = True

    def __post_init__(self):
        if not 0 < self.initial_withdrawal_rate < 1:
            raise ConfigurationError("initial_withdrawal_rate must be between 0 and 1")
        for label in ("increase_adjustment", "decrease_adjustment"):
            if not 0 <= getattr(self, label) < 1:
                raise ConfigurationError(f"{label} must be in [0, 1)")
        if self.upper_threshold is not None and self.upper_threshold <= 0:
            raise ConfigurationError("upper_threshold must be positive")
        if self.lower_threshold is not None and self.lower_threshold <= 0:
            raise ConfigurationError("lower_threshold must be positive")
        if (
            self.absolute_floor is not None
            and self.absolute_ceiling is not None
            and self.absolute_floor > self.absolute_ceiling
        ):
            raise ConfigurationError("absolute_floor exceeds absolute_ceiling")
        if self.min_years_between_ratchets < 0 or self.years_before_cap_preservation_ends < 0:
            raise ConfigurationError("year counts must be non-negative")

    @classmethod
    def guyton_klinger(cls) -> "GuardrailsConfig":
        return cls(
            name="Guyton-Klinger",
            initial_withdrawal_rate=0.052,
            upper_threshold=0.80,
            increase_adjustment=0.10,
            lower_threshold=1.20,
            decrease_adjustment=0.10,
            skip_inflation_on_down_years=True,
            min_years_between_ratchets=1,
            years_before_cap_preservation_ends=15,
        )

    @classmethod
    def vanguard_dynamic(cls) -> "GuardrailsConfig":
        return cls(
            name="Vanguard Dynamic",
            initial_withdrawal_rate=0.04,
            upper_threshold=None,
            increase_adjustment=0.05,
            lower_threshold=None,
            decrease_adjustment=0.025,
            percent_of_portfolio=True,
        )

    @classmethod
    def kitces_ratcheting(cls) -> "GuardrailsConfig":
        return cls(
            name="Kitces Ratcheting",
            initial_withdrawal_rate=0.04,
            upper_threshold=0.667,
            increase_adjustment=0.10,
            lower_threshold=None,
            decrease_adjustment=0.0,
            allow_spending_cuts=False,
            min_years_between_ratchets=3,
        )


class GuardrailsSpendingStrategy(SpendingStrategy):
    """Dynamic spending bounded by withdrawal-rate guardrails.

    The first calendar year withdraws ``initial_balance * initial_rate``.
    Afterwards the prior year's spending is raised by inflation (skipped after
    a losing year when the rate is already above its starting level, if so
    configured) and compared with the current balance:

    * below ``initial_rate * upper_threshold`` spending rises by
      ``increase_adjustment`` if a ratchet is allowed;
    * above ``initial_rate * lower_threshold`` spending falls by
      ``decrease_adjustment`` if cuts are allowed and capital preservation
      still applies.

    A ratchet is allowed when none has happened yet, when the last one was in
    the current calendar year, or when ``min_years_between_ratchets`` calendar
    years have passed since it.  Increases set ``metadata["ratchet"]`` so the
    engine can record the first month of the increase year.

    Prior-year spending is the view's ``prior_year_spending``, so one-off
    draws such as contingency payments never move the spending level.  By
    default the monthly amount is capped at the income gap.
    """

    def __init__(self, config: Optional[GuardrailsConfig] = None):
        self.config = config or GuardrailsConfig()
        self.name = self.config.name

    def can_ratchet(self, context: SpendingContext) -> bool:
        years = self.config.min_years_between_ratchets
        elapsed = context.view.years_since_ratchet()
        if years <= 1 or elapsed is None:
            return True
        return elapsed == 0 or elapsed >= years

    def _cap_preservation_active(self, context: SpendingContext) -> bool:
        limit = self.config.years_before_cap_preservation_ends
        return limit == 0 or context.years_in_retirement < limit

    def monthly_target(self, context):
        cfg = self.config
        view = context.view
        inflation = self._inflation(context, cfg.inflation_rate)
        balance = context.current_balance
        metadata: Dict[str, Any] = {"initial_withdrawal_rate": cfg.initial_withdrawal_rate}

        prior = view.prior_year_spending
        if 0 < view.prior_year_spending_months < 12:
            prior = prior * 12 / view.prior_year_spending_months

        if prior <= 0:
            annual = context.initial_balance * cfg.initial_withdrawal_rate
            metadata["adjustment"] = "first_year"
        else:
            current_rate = prior / balance if balance > 0 else float("inf")
            skip_inflation = (
                cfg.skip_inflation_on_down_years
                and view.prior_year_return < 0
                and current_rate > cfg.initial_withdrawal_rate
            )
            base = prior if skip_inflation else prior * (1 + inflation)
            metadata["inflation_skipped"] = skip_inflation
            if cfg.percent_of_portfolio:
                annual, adjustment = self._ceiling_floor(balance, base)
            else:
                annual, adjustment = self._guardrails(context, balance, base)
            metadata["adjustment"] = adjustment
            metadata["current_rate"] = base / balance if balance > 0 else float("inf")
            if adjustment == "increase" and not cfg.percent_of_portfolio:
                metadata["ratchet"] = True

        if cfg.absolute_floor is not None:
            annual = max(annual, cfg.absolute_floor)
        if cfg.absolute_ceiling is not None:
            annual = min(annual, cfg.absolute_ceiling)
        monthly = annual / 12
        if cfg.cap_at_income_gap:
            monthly = min(monthly, context.income_gap)
        metadata["annual_spending"] = annual
        return monthly, metadata

    def _guardrails(self, context: SpendingContext, balance: float, base: float) -> Tuple[float, str]:
        cfg = self.config
        if balance <= 0:
            return base, "none"
        rate = base / balance
        if (
            cfg.upper_threshold is not None
            and rate < cfg.initial_withdrawal_rate * cfg.upper_threshold
            and self.can_ratchet(context)
        ):
            return base * (1 + cfg.increase_adjustment), "increase"
        if (
            cfg.allow_spending_cuts
            and cfg.lower_threshold is not None
            and rate > cfg.initial_withdrawal_rate * cfg.lower_threshold
            and self._cap_preservation_active(context)
        ):
            return base * (1 - cfg.decrease_adjustment), "decrease"
        return base, "none"

    def _ceiling_floor(self, balance: float, base: float) -> Tuple[float, str]:
        cfg = self.config
        proposed = balance * cfg.initial_withdrawal_rate
        ceiling = base * (1 + cfg.increase_adjustment)
        floor = base * (1 - cfg.decrease_adjustment) if cfg.allow_spending_cuts else base
        if proposed > ceiling:
            return ceiling, "ceiling"
        if proposed < floor:
            return floor, "floor"
        return proposed, "none"


__all__ = [
    "SpendingStrategy",
    "StaticSpendingStrategy",
    "IncomeGapStrategy",
    "GuardrailsConfig",
    "GuardrailsSpendingStrategy",
]
