"""Monthly simulation engine.

One run is a sequential state machine over calendar months.  Each month:

1. every person's phase is derived from the date and their retirement,
   withdrawal-start and death status;
2. income is computed by the income processor;
3. due events fire and their effects are applied (deaths become survivor
   transitions);
4. expenses are priced by the expense calculator under the household flags;
5. while accumulating, surplus is routed into accounts by the contribution
   router (deficits are drawn from the portfolio); in distribution the
   orchestrator builds a withdrawal plan which the state applies, and any
   withdrawn money the household does not need (forced minimum excess or
   an uncapped strategy's surplus) is reinvested or held; contingency
   expenses are paid from reserves first, then from the portfolio;
6. every account grows by its monthly return on the post-transaction balance;
7. the month's snapshot is appended to the time series;
8. the run stops when everyone has died, the portfolio is empty, the horizon
   cap is hit or the end date is reached.

Collaborators are injected at construction, and all randomness comes from
generators seeded per run, so the same configuration and seed always produce
the same series.

Example
-------

>>> series = run(config, seed=42)                  # doctest: +SKIP
>>> series.termination_reason                      # doctest: +SKIP
<TerminationReason.COMPLETED: 'completed'>
"""

from __future__ import annotations

import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from ..calculators import taxes as tax_calc
from ..calculators.contributions import DefaultContributionRouter
from ..calculators.expenses import DefaultExpenseCalculator, ExpenseBreakdown
from ..calculators.income import DefaultIncomeProcessor, IncomeProfile, MonthlyIncome
from ..calculators.returns import ReturnGenerator
from ..calculators.rmd import MinimumDistributionCalculator
from ..exceptions import CalculationError, RetirementSimError, SimulationCancelled
from .accounts import TaxTreatment
from .config import RmdExcessDisposition, SimulationConfig
from .context import SpendingContext, WithdrawalPlan
from .dates import add_months, iter_months, month_start, months_between
from .events import EventEffect, EventRegistry, SurvivorTransition, build_survivor_profile
from .household import Person, Phase, determine_phase, household_phase
from .orchestrator import SpendingOrchestrator
from .results import MonthlySnapshot, TerminationReason, TimeSeries
from .state import SimulationState

logger = logging.getLogger(__name__)

_DEPLETED = 1e-6


class SimulationEngine:
    """Run a :class:`SimulationConfig` month by month.

    Parameters
    ----------
    config : SimulationConfig
        Validated, immutable plan.
    income_processor : callable, optional
        ``(profiles, month, phase) -> MonthlyIncome``.
    expense_calculator : callable, optional
        ``(budget, month, flags, age=...) -> ExpenseBreakdown``.
    contribution_router : callable, optional
        ``(amount, source, accounts, config, year, age, prior_income,
        ytd_contributions=...) -> ContributionAllocation``.
    minimum_calculator : callable, optional
        ``(balance, age, birth_year, year) -> amount`` owed this month.
    orchestrator : SpendingOrchestrator, optional
        Defaults to one built around ``minimum_calculator``.
    """

    def __init__(
        self,
        config: SimulationConfig,
        *,
        income_processor: Optional[Callable] = None,
        expense_calculator: Optional[Callable] = None,
        contribution_router: Optional[Callable] = None,
        minimum_calculator: Optional[Callable] = None,
        orchestrator: Optional[SpendingOrchestrator] = None,
    ):
        self.config = config
        self.income_processor = income_processor or DefaultIncomeProcessor()
        self.expense_calculator = expense_calculator or DefaultExpenseCalculator(config.expense_levers)
        self.contribution_router = contribution_router or DefaultContributionRouter()
        self.minimum_calculator = minimum_calculator or MinimumDistributionCalculator()
        self.orchestrator = orchestrator or SpendingOrchestrator(self.minimum_calculator)

    def run(self, seed: Optional[int] = None, cancel_event: Optional[threading.Event] = None) -> TimeSeries:
        """Simulate the whole plan and return its time series.

        Raises
        ------
        CalculationError
            If a collaborator fails; the run is abandoned.
        SimulationCancelled
            If ``cancel_event`` (a :class:`threading.Event` or a
            multiprocessing manager event) is set while the run is in progress.
        """
        return _Run(self, seed, cancel_event).execute()


class _Household:
    """People, deaths and income profiles of one run."""

    def __init__(self, config: SimulationConfig):
        self.persons: Dict[str, Person] = {p.id: p for p in config.persons}
        self.order: List[str] = [p.id for p in config.persons]
        self.deceased: set = set()
        self.profiles: Dict[str, IncomeProfile] = {p.person_id: p for p in config.income_profiles}

    @property
    def living(self) -> List[str]:
        return [pid for pid in self.order if pid not in self.deceased]

    def reference(self) -> Optional[Person]:
        living = self.living
        return self.persons[living[0]] if living else None

    def phases(self, month: date) -> Dict[str, Phase]:
        return {
            pid: determine_phase(self.persons[pid], month, pid in self.deceased) for pid in self.order
        }

    def exact_ages(self, month: date) -> Dict[str, float]:
        return {
            pid: months_between(month_start(self.persons[pid].birth_date), month) / 12
            for pid in self.living
        }


class _Run:
    def __init__(self, engine: SimulationEngine, seed: Optional[int], cancel_event: Optional[threading.Event]):
        cfg = engine.config
        self.engine = engine
        self.config = cfg
        self.seed = seed
        self.cancel_event = cancel_event
        market_seq, event_seq = np.random.SeedSequence(seed).spawn(2)
        self.event_rng = np.random.default_rng(event_seq)
        self.returns = ReturnGenerator(cfg.market, np.random.default_rng(market_seq), cfg.start_date.year)
        self.state = SimulationState(
            cfg.accounts, {r.category: (r.target, r.balance) for r in cfg.reserves}
        )
        for reserve in cfg.reserves:
            if not reserve.is_fully_funded:
                self.state.flags = self.state.flags.with_refill(reserve.category)
        self.household = _Household(cfg)
        self.registry = EventRegistry(cfg.household_events())
        self.ytd_contributions: Dict[str, float] = {}
        self.ytd_taxable = 0.0
        self.income_by_year: Dict[int, float] = {}
        self.held_cash = 0.0

    # ------------------------------------------------------------------ loop
    def execute(self) -> TimeSeries:
        cfg = self.config
        horizon = add_months(cfg.start_date, cfg.max_years * 12 - 1)
        last = min(cfg.end_date, horizon)
        logger.info(
            "Simulating %s to %s (seed=%s, strategy=%s)",
            cfg.start_date.isoformat(), last.isoformat(), self.seed, cfg.strategy.name,
        )
        for month in iter_months(cfg.start_date, last):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise SimulationCancelled(f"cancelled before {month:%Y-%m}")
            if self._step(month, last) is not None:
                break
        series = self.state.history
        logger.info(
            "Simulation finished after %d months: %s, final balance %.2f",
            len(series), series.termination_reason.value if series.termination_reason else "none",
            series.final_balance,
        )
        return series

    def _step(self, month: date, last: date) -> Optional[TerminationReason]:
        cfg = self.config
        state = self.state
        household = self.household
        if month.month == 1:
            self.ytd_contributions = {}
            self.ytd_taxable = 0.0
        state.begin_month()
        month_data: Dict[str, Any] = {
            "withdrawal_target": 0.0,
            "shortfall": 0.0,
            "rmd_withdrawn": 0.0,
            "rmd_excess": 0.0,
            "spending_withdrawal": 0.0,
            "surplus_withdrawn": 0.0,
            "pre_tax_withdrawn": 0.0,
        }

        phases = household.phases(month)
        income = MonthlyIncome()
        for pid in household.living:
            profile = household.profiles.get(pid)
            if profile is not None:
                income = income + self._call(
                    "income processor", month, self.engine.income_processor, [profile], month, phases[pid]
                )
        self.income_by_year[month.year] = self.income_by_year.get(month.year, 0.0) + income.total

        effects = self.registry.evaluate(month, self.event_rng, household.exact_ages(month), household.living)
        contingencies: List[Tuple[str, float]] = []
        for effect in effects:
            self._apply_effect(effect, month, contingencies)
        phase = household_phase(household.phases(month))

        reference = household.reference()
        age = reference.age_on(month) if reference else None
        expenses: ExpenseBreakdown = self._call(
            "expense calculator", month, self.engine.expense_calculator, cfg.budget, month, state.flags, age=age
        )

        if phase is Phase.ACCUMULATION:
            self._accumulate(month, income, expenses, month_data)
        elif phase is Phase.DISTRIBUTION:
            self._distribute(month, income, expenses, month_data)
        elif phase is Phase.TRANSITION:
            self._bridge(month, income, expenses, month_data)
        contingency_total = self._pay_contingencies(month, income, contingencies, month_data)

        accounts = [state.account(account_id) for account_id in state.account_ids]
        state.apply_returns(self.returns.monthly_rates(month, accounts))

        reason = self._termination(month, last, phase)
        taxable = income.taxable + month_data["pre_tax_withdrawn"]
        self.ytd_taxable += taxable
        by_category = dict(expenses.by_category)
        if contingency_total:
            by_category["contingency"] = by_category.get("contingency", 0.0) + contingency_total
        snapshot = MonthlySnapshot(
            month=month,
            phase=phase.value,
            account_flows=state.close_month(),
            salary_income=income.salary,
            social_security_income=income.social_security,
            pension_income=income.pension,
            annuity_income=income.annuity,
            other_income=income.other,
            total_expenses=expenses.total + contingency_total,
            expenses_by_category=by_category,
            withdrawal_target=month_data["withdrawal_target"],
            shortfall=month_data["shortfall"],
            taxable_income=taxable,
            rmd_withdrawn=month_data["rmd_withdrawn"],
            rmd_excess=month_data["rmd_excess"],
            spending_withdrawal=month_data["spending_withdrawal"],
            surplus_withdrawn=month_data["surplus_withdrawn"],
            held_cash=self.held_cash,
            reserve_balance=state.reserve_balance,
            survivor_mode=state.flags.survivor_mode,
            events_triggered=tuple(e.event for e in effects),
            cumulative_contributions=state.cumulative_contributions,
            cumulative_withdrawals=state.cumulative_withdrawals,
            cumulative_returns=state.cumulative_returns,
            termination_reason=reason,
        )
        state.history.append(snapshot)
        return reason

    # ------------------------------------------------------------- helpers
    @staticmethod
    def _call(what: str, month: date, fn: Callable, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except RetirementSimError:
            raise
        except Exception as exc:
            raise CalculationError(f"{what} failed: {exc}", month) from exc

    def _context(self, month: date, income: MonthlyIncome, expenses_total: float) -> SpendingContext:
        cfg = self.config
        household = self.household
        reference = household.reference() or cfg.primary
        owner_ages = {
            pid: (household.persons[pid].age_on(month), household.persons[pid].birth_year)
            for pid in household.living
        }
        filing_status = "single" if self.state.flags.survivor_mode else cfg.household_filing_status
        params = dict(cfg.strategy_params)
        params.setdefault("inflation_rate", cfg.expense_levers.general_inflation)
        annualised = self.ytd_taxable * 12 / month.month if month.month > 1 else income.taxable * 12
        params["estimated_marginal_tax_rate"] = tax_calc.marginal_rate(annualised, filing_status, month.year)
        return SpendingContext(
            view=self.state.snapshot(month),
            date=month,
            retirement_start_date=reference.withdrawal_start_date,
            total_expenses=max(0.0, expenses_total),
            other_income=income.non_salary,
            age=reference.age_on(month),
            birth_year=reference.birth_year,
            filing_status=filing_status,
            taxable_income=self.ytd_taxable,
            strategy_params=params,
            owner_ages=owner_ages,
        )

    def _apply_plan(self, plan: WithdrawalPlan, month_data: Dict[str, Any]) -> float:
        taken = self.state.apply(plan)
        for aw in plan.account_withdrawals:
            if self.state.account(aw.account_id).type.tax_treatment is TaxTreatment.PRE_TAX:
                month_data["pre_tax_withdrawn"] += aw.amount
        month_data["shortfall"] += plan.shortfall
        return taken

    def _accumulate(self, month, income, expenses, month_data) -> None:
        cfg = self.config
        surplus = income.total - expenses.total
        if surplus < 0:
            context = self._context(month, income, expenses.total)
            plan = self.engine.orchestrator.plan_amount(-surplus, cfg.sequencer, context, "deficit")
            month_data["withdrawal_target"] += plan.target_withdrawal
            self._apply_plan(plan, month_data)
            return
        surplus -= self._refill(surplus)
        saved = surplus * cfg.contributions.savings_share
        if saved <= 0 or (not cfg.contributions.rules and not cfg.contributions.overflow_account_id):
            return
        reference = self.household.reference()
        allocation = self._call(
            "contribution router",
            month,
            self.engine.contribution_router,
            saved,
            "salary" if income.salary > 0 else "surplus",
            self.state.snapshot(month).accounts,
            cfg.contributions,
            month.year,
            reference.age_on(month) if reference else 0,
            self.income_by_year.get(month.year - 1, 0.0),
            ytd_contributions=self.ytd_contributions,
        )
        for account_id, amount in allocation.allocations.items():
            if amount > 0:
                self.state.deposit(account_id, amount)
                self.ytd_contributions[account_id] = self.ytd_contributions.get(account_id, 0.0) + amount

    def _distribute(self, month, income, expenses, month_data) -> None:
        cfg = self.config
        state = self.state
        state.mark_withdrawal_start()
        context = self._context(month, income, expenses.total)
        plan = self.engine.orchestrator.execute(cfg.strategy, cfg.sequencer, context)
        withdrawn = self._apply_plan(plan, month_data)
        month_data["withdrawal_target"] += plan.target_withdrawal
        month_data["rmd_withdrawn"] += plan.metadata.get("rmd_withdrawn", 0.0)
        if plan.metadata.get("ratchet"):
            state.record_ratchet(month)

        excess = min(plan.metadata.get("rmd_excess", 0.0), withdrawn)
        if excess > 0:
            month_data["rmd_excess"] += excess
            self._set_aside(excess)
        spent = withdrawn - excess
        month_data["spending_withdrawal"] += spent
        cash = income.total + spent - expenses.total
        if cash > 0:
            # Only withdrawn money goes back; surplus income stays with the household.
            surplus = min(cash - self._refill(cash), spent)
            if surplus > _DEPLETED:
                month_data["surplus_withdrawn"] += surplus
                self._set_aside(surplus)

    def _set_aside(self, amount: float) -> None:
        """Reinvest or hold withdrawn money the household does not spend."""
        if self.config.rmd_excess is RmdExcessDisposition.REINVEST:
            self.state.deposit(self.config.reinvest_target, amount)
        else:
            self.held_cash += amount

    def _bridge(self, month, income, expenses, month_data) -> None:
        """Retired but not yet withdrawing: only an actual cash gap is drawn."""
        gap = expenses.total - income.total
        if gap <= 0:
            self._refill(-gap)
            return
        context = self._context(month, income, expenses.total)
        plan = self.engine.orchestrator.plan_amount(gap, self.config.sequencer, context, "bridge")
        month_data["withdrawal_target"] += plan.target_withdrawal
        self._apply_plan(plan, month_data)

    def _refill(self, cash: float) -> float:
        """Route surplus cash into reserves flagged for refill; return what was used."""
        state = self.state
        used = 0.0
        for category in sorted(state.flags.refilling):
            if cash - used <= 0:
                break
            used += state.refill_reserve(category, cash - used)
            if state.reserve_deficit(category) <= 0:
                state.flags = state.flags.with_refill(category, active=False)
        return used

    def _pay_contingencies(self, month, income, contingencies, month_data) -> float:
        total = 0.0
        for category, amount in contingencies:
            total += amount
            remaining = amount - self.state.draw_reserve(category, amount)
            if remaining > 0:
                context = self._context(month, income, 0.0)
                plan = self.engine.orchestrator.plan_amount(
                    remaining, self.config.sequencer, context, f"contingency:{category}"
                )
                self._apply_plan(plan, month_data)
            if self.state.reserve_deficit(category) > 0:
                self.state.flags = self.state.flags.with_refill(category)
        return total

    def _apply_effect(self, effect: EventEffect, month: date, contingencies: List[Tuple[str, float]]) -> None:
        state = self.state
        if effect.death and effect.person_id is not None:
            self._apply_death(effect.person_id, month)
        if effect.ended_expense:
            state.flags = state.flags.with_ended_expense(effect.ended_expense)
        if effect.spending_phase:
            state.flags = state.flags.with_spending_phase(effect.spending_phase)
        if effect.ltc_onset and effect.person_id is not None:
            state.flags = state.flags.with_ltc(effect.person_id)
        if effect.contingency_category and effect.contingency_amount > 0:
            contingencies.append((effect.contingency_category, effect.contingency_amount))

    def _apply_death(self, person_id: str, month: date) -> None:
        state = self.state
        household = self.household
        household.deceased.add(person_id)
        state.flags = state.flags.without_ltc(person_id)
        deceased_profile = household.profiles.pop(person_id, None)
        survivors = household.living
        if not survivors:
            logger.info("%s: last household member %s died", month, person_id)
            return
        survivor = household.persons[survivors[0]]
        before = state.total_balance
        moved = state.transfer_ownership(person_id, survivor.id)
        profile = build_survivor_profile(
            deceased_profile,
            household.profiles.get(survivor.id),
            survivor.id,
            household.exact_ages(month)[survivor.id],
            month,
        )
        household.profiles[survivor.id] = profile
        state.flags = state.flags.with_survivor_mode()
        transition = SurvivorTransition(
            month=month,
            deceased_id=person_id,
            survivor_id=survivor.id,
            transferred_accounts=moved,
            balance_before=before,
            balance_after=state.total_balance,
            survivor_social_security=profile.social_security.monthly(month) if profile.social_security else 0.0,
            continued_pensions=tuple(
                p.name for p in profile.pensions if p.name.endswith("(survivor)")
            ),
        )
        state.history.survivor_transitions.append(transition)
        logger.info(
            "%s: %s died; %d accounts pass to %s", month, person_id, len(moved), survivor.id
        )

    def _termination(self, month: date, last: date, phase: Phase) -> Optional[TerminationReason]:
        if not self.household.living:
            return TerminationReason.ALL_PERSONS_DECEASED
        if phase is not Phase.ACCUMULATION and self.state.total_balance <= _DEPLETED:
            return TerminationReason.PORTFOLIO_DEPLETED
        if month == last:
            if last < self.config.end_date:
                return TerminationReason.MAX_YEARS_REACHED
            return TerminationReason.COMPLETED
        return None


def run(config: SimulationConfig, seed: Optional[int] = None, **collaborators) -> TimeSeries:
    """Run ``config`` once with the default (or given) collaborators."""
    return SimulationEngine(config, **collaborators).run(seed=seed)


__all__ = ["SimulationEngine", "run"]
