"""Simulation configuration.

:class:`SimulationConfig` gathers the household, accounts, income, budget,
market and spending choices for a run.  It is frozen and validated on
construction: an inconsistent plan raises a :class:`ConfigurationError`
before a single month is simulated, and a valid one can be shared by any
number of concurrent runs.

Plans can also be described as plain dictionaries (for example loaded from
JSON) and converted with :meth:`SimulationConfig.from_dict`::

    plan = {
        "start": "2030-01",
        "end": "2059-12",
        "persons": [{"id": "alex", "birth_date": "1965-03-01", "retirement_date": "2030-01"}],
        "accounts": [{"id": "brokerage", "type": "taxable_brokerage", "balance": 1000000}],
        "market": {"expected_return": 0.06},
        "strategy": {"type": "static", "withdrawal_rate": 0.04},
    }
    config = SimulationConfig.from_dict(plan)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..calculators import taxes as tax_calc
from ..calculators.contributions import ContributionConfig, ContributionRule
from ..calculators.expenses import Budget, ExpenseLevers, budget_from_items
from ..calculators.income import IncomeProfile, OtherIncome, Pension, Salary, SocialSecurity
from ..calculators.returns import MarketLevers
from ..calculators.rmd import MinimumDistributionCalculator
from ..exceptions import ConfigurationError, InvalidDateRangeError, MissingFieldError
from .accounts import Account, AccountType, Allocation, TaxTreatment
from .dates import month_start
from .events import (
    ContingencyReserve,
    ExpenseEndEvent,
    LongTermCareEvent,
    MortalityEvent,
    RandomExpenseEvent,
    RetirementStartEvent,
    RmdStartEvent,
    ScheduledDeathEvent,
    SimulationEvent,
    SocialSecurityStartEvent,
    SpendingPhaseEvent,
)
from .household import MortalityModel, Person
from .sequencers import (
    AccountSequencer,
    CustomSequencer,
    ProRataSequencer,
    RmdFirstSequencer,
    TaxEfficientSequencer,
)
from .strategies import (
    GuardrailsConfig,
    GuardrailsSpendingStrategy,
    IncomeGapStrategy,
    SpendingStrategy,
    StaticSpendingStrategy,
)


class RmdExcessDisposition(str, Enum):
    """What happens to withdrawn money the household does not need.

    Covers forced minimum distributions above the income gap and the surplus of
    a strategy that is not capped at the gap.  ``REINVEST`` deposits it into a
    taxable account; ``HOLD`` keeps it as cash outside the portfolio (reported
    in each snapshot's ``held_cash``).  Plans without a disposition hold.
    """

    REINVEST = "reinvest"
    HOLD = "hold"


@dataclass(frozen=True)
class SimulationConfig:
    """Everything a run needs.

    Parameters
    ----------
    persons : tuple of Person
        One person, or two for a couple; the first is the primary planner.
    accounts : tuple of Account
        Portfolio accounts, each owned by one of ``persons``.
    start_date, end_date : datetime.date
        First and last simulated month (inclusive).
    strategy : SpendingStrategy
        Withdrawal strategy used in distribution.
    sequencer : AccountSequencer
        Account order for withdrawals and cash needs.
    income_profiles : tuple of IncomeProfile
        Income per person.
    budget : Budget, optional
        Household expenses in start-date dollars.
    market : MarketLevers
        Return assumptions.
    expense_levers : ExpenseLevers
        Inflation and expense modifier assumptions.
    contributions : ContributionConfig
        How surplus cash is saved while working.
    events : tuple of SimulationEvent
        Extra events on top of those derived from the household.
    reserves : tuple of ContingencyReserve
        Cash reserves for unplanned expenses.
    spending_curve_ages : tuple of int, optional
        Primary's ages for the slow-go and no-go phases; ``None`` disables the
        spending curve.
    strategy_params : mapping
        Parameters exposed to strategies through the spending context.
    filing_status : str, optional
        Defaults to ``married_filing_jointly`` for couples, else ``single``.
    rmd_excess : RmdExcessDisposition, optional
        Required when any account is subject to minimum distributions; also
        applies to unneeded strategy withdrawals.
    reinvest_account_id : str, optional
        Destination for reinvested excess; defaults to the first taxable
        account.
    max_years : int
        Hard cap on the simulated horizon.
    """

    persons: Tuple[Person, ...]
    accounts: Tuple[Account, ...]
    start_date: date
    end_date: date
    strategy: SpendingStrategy = field(default_factory=StaticSpendingStrategy)
    sequencer: AccountSequencer = field(default_factory=TaxEfficientSequencer)
    income_profiles: Tuple[IncomeProfile, ...] = ()
    budget: Optional[Budget] = None
    market: MarketLevers = field(default_factory=MarketLevers)
    expense_levers: ExpenseLevers = field(default_factory=ExpenseLevers)
    contributions: ContributionConfig = field(default_factory=ContributionConfig)
    events: Tuple[SimulationEvent, ...] = ()
    reserves: Tuple[ContingencyReserve, ...] = ()
    spending_curve_ages: Optional[Tuple[int, int]] = (75, 85)
    strategy_params: Mapping[str, Any] = field(default_factory=dict)
    filing_status: Optional[str] = None
    rmd_excess: Optional[RmdExcessDisposition] = None
    reinvest_account_id: Optional[str] = None
    max_years: int = 100

    def __post_init__(self):
        for name in ("persons", "accounts", "income_profiles", "events", "reserves"):
            object.__setattr__(self, name, tuple(getattr(self, name)))
        object.__setattr__(self, "start_date", month_start(self.start_date))
        object.__setattr__(self, "end_date", month_start(self.end_date))
        object.__setattr__(self, "strategy_params", MappingProxyType(dict(self.strategy_params)))
        if self.budget is None:
            object.__setattr__(self, "budget", Budget((), self.start_date))
        if self.rmd_excess is not None and not isinstance(self.rmd_excess, RmdExcessDisposition):
            object.__setattr__(self, "rmd_excess", RmdExcessDisposition(self.rmd_excess))
        self._validate()

    def _validate(self) -> None:
        if not self.persons:
            raise MissingFieldError("persons", "SimulationConfig")
        if len(self.persons) > 2:
            raise ConfigurationError("a household has at most two persons")
        person_ids = [p.id for p in self.persons]
        if len(set(person_ids)) != len(person_ids):
            raise ConfigurationError("person ids must be unique")
        if self.start_date > self.end_date:
            raise InvalidDateRangeError(self.start_date, self.end_date)
        if self.max_years <= 0:
            raise ConfigurationError("max_years must be positive")

        account_ids = [a.id for a in self.accounts]
        if len(set(account_ids)) != len(account_ids):
            raise ConfigurationError("account ids must be unique")
        for acct in self.accounts:
            if acct.owner not in person_ids:
                raise ConfigurationError(f"account '{acct.id}' is owned by unknown person '{acct.owner}'")
        for profile in self.income_profiles:
            if profile.person_id not in person_ids:
                raise ConfigurationError(f"income profile for unknown person '{profile.person_id}'")
        for account_id in self.contributions.account_ids:
            if account_id not in account_ids:
                raise ConfigurationError(f"contribution rule targets unknown account '{account_id}'")
        reserve_categories = [r.category for r in self.reserves]
        if len(set(reserve_categories)) != len(reserve_categories):
            raise ConfigurationError("reserve categories must be unique")
        if self.filing_status is not None and self.filing_status not in tax_calc.FILING_STATUSES:
            raise ConfigurationError(f"unknown filing status '{self.filing_status}'")
        if self.spending_curve_ages is not None:
            slow, no = self.spending_curve_ages
            if slow > no:
                raise ConfigurationError("slow-go age must not exceed no-go age")

        if any(a.type.subject_to_rmd for a in self.accounts) and self.rmd_excess is None:
            raise ConfigurationError(
                "accounts subject to minimum distributions require rmd_excess "
                "('reinvest' or 'hold') to say where unneeded distributions go"
            )
        if self.rmd_excess is RmdExcessDisposition.REINVEST and self.reinvest_target is None:
            raise ConfigurationError("rmd_excess='reinvest' needs a taxable account to reinvest into")
        if self.reinvest_account_id is not None and self.reinvest_account_id not in account_ids:
            raise ConfigurationError(f"unknown reinvest account '{self.reinvest_account_id}'")

    # -------------------------------------------------------------- helpers
    @property
    def primary(self) -> Person:
        return self.persons[0]

    @property
    def is_couple(self) -> bool:
        return len(self.persons) == 2

    @property
    def household_filing_status(self) -> str:
        if self.filing_status:
            return self.filing_status
        return "married_filing_jointly" if self.is_couple else "single"

    @property
    def reinvest_target(self) -> Optional[str]:
        if self.reinvest_account_id is not None:
            return self.reinvest_account_id
        for acct in self.accounts:
            if acct.type.tax_treatment is TaxTreatment.TAXABLE:
                return acct.id
        return None

    def person(self, person_id: str) -> Person:
        for p in self.persons:
            if p.id == person_id:
                return p
        raise KeyError(person_id)

    def income_profile(self, person_id: str) -> Optional[IncomeProfile]:
        for profile in self.income_profiles:
            if profile.person_id == person_id:
                return profile
        return None

    def household_events(self) -> List[SimulationEvent]:
        """Events implied by the household, followed by ``events``."""
        derived: List[SimulationEvent] = []
        for person in self.persons:
            derived.append(RetirementStartEvent(person))
            profile = self.income_profile(person.id)
            if profile is not None and profile.social_security is not None:
                derived.append(SocialSecurityStartEvent(person.id, profile.social_security.claim_date))
            if any(a.owner == person.id and a.type.subject_to_rmd for a in self.accounts):
                derived.append(RmdStartEvent(person))
            if person.ltc_annual_probability > 0:
                derived.append(LongTermCareEvent(person.id, person.ltc_annual_probability, person.ltc_onset_age))
            if person.death_date is not None:
                derived.append(ScheduledDeathEvent(person.id, person.death_date))
            elif person.mortality is not None:
                derived.append(MortalityEvent(person.id, person.mortality))
        if self.spending_curve_ages is not None:
            slow, no = self.spending_curve_ages
            derived.append(SpendingPhaseEvent("slow_go", self.primary.date_at_age(slow)))
            derived.append(SpendingPhaseEvent("no_go", self.primary.date_at_age(no)))
        return derived + list(self.events)

    # ------------------------------------------------------------ from_dict
    @classmethod
    def from_dict(cls, plan: Mapping[str, Any]) -> "SimulationConfig":
        """Build a configuration from a plain dictionary plan."""
        start = month_start(_require(plan, "start"))
        end = month_start(_require(plan, "end"))
        persons = tuple(_person(raw) for raw in _require(plan, "persons"))
        by_id = {p.id: p for p in persons}
        primary = persons[0].id if persons else "primary"

        accounts = tuple(_account(raw, primary) for raw in plan.get("accounts", ()))
        profiles = tuple(_income_profile(raw, by_id, start) for raw in plan.get("income", ()))

        expenses = plan.get("expenses", {})
        budget = budget_from_items(expenses.get("items", ()), start)
        levers = ExpenseLevers(**expenses.get("levers", {}))

        events: List[SimulationEvent] = []
        payoff = plan.get("mortgage_payoff")
        if payoff:
            events.append(
                ExpenseEndEvent.mortgage_payoff(
                    month_start(_require(payoff, "date", "mortgage_payoff")),
                    payoff.get("expense", "mortgage"),
                )
            )
        for raw in plan.get("random_expenses", ()):
            events.append(_random_expense(raw))

        contributions = plan.get("contributions", {})
        curve = plan.get("spending_curve_ages", (75, 85))
        return cls(
            persons=persons,
            accounts=accounts,
            start_date=start,
            end_date=end,
            strategy=_strategy(plan.get("strategy", {})),
            sequencer=_sequencer(plan.get("sequencer", {})),
            income_profiles=profiles,
            budget=budget,
            market=MarketLevers(**plan.get("market", {})),
            expense_levers=levers,
            contributions=ContributionConfig(
                rules=tuple(
                    ContributionRule(_require(r, "account_id", "contribution rule"), float(r.get("share", 1.0)))
                    for r in contributions.get("rules", ())
                ),
                overflow_account_id=contributions.get("overflow_account_id"),
                roth_income_limit=float(contributions.get("roth_income_limit", float("inf"))),
                enforce_limits=bool(contributions.get("enforce_limits", True)),
                savings_share=float(contributions.get("savings_share", 1.0)),
            ),
            events=tuple(events),
            reserves=tuple(
                ContingencyReserve(
                    _require(r, "category", "reserve"), float(r.get("target", 0.0)), float(r.get("balance", 0.0))
                )
                for r in plan.get("reserves", ())
            ),
            spending_curve_ages=tuple(curve) if curve else None,
            strategy_params=plan.get("strategy_params", {}),
            filing_status=plan.get("filing_status"),
            rmd_excess=plan.get("rmd_excess"),
            reinvest_account_id=plan.get("reinvest_account_id"),
            max_years=int(plan.get("max_years", 100)),
        )


def _require(raw: Mapping[str, Any], key: str, where: str = "plan") -> Any:
    if key not in raw or raw[key] is None:
        raise MissingFieldError(key, where)
    return raw[key]


def _optional_month(raw: Mapping[str, Any], key: str) -> Optional[date]:
    value = raw.get(key)
    return month_start(value) if value else None


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(value) if len(str(value)) == 10 else month_start(value)


def _person(raw: Mapping[str, Any]) -> Person:
    mortality = raw.get("mortality")
    return Person(
        id=_require(raw, "id", "person"),
        name=raw.get("name", ""),
        birth_date=_as_date(_require(raw, "birth_date", "person")),
        retirement_date=month_start(_require(raw, "retirement_date", "person")),
        withdrawal_start_date=_optional_month(raw, "withdrawal_start_date"),
        death_date=_optional_month(raw, "death_date"),
        mortality=MortalityModel(**mortality) if mortality else None,
        ltc_annual_probability=float(raw.get("ltc_annual_probability", 0.0)),
        ltc_onset_age=int(raw.get("ltc_onset_age", 80)),
    )


def _account(raw: Mapping[str, Any], default_owner: str) -> Account:
    account_id = _require(raw, "id", "account")
    allocation = raw.get("allocation")
    return Account(
        id=account_id,
        name=raw.get("name", account_id),
        type=AccountType(_require(raw, "type", "account")),
        balance=float(raw.get("balance", 0.0)),
        owner=raw.get("owner", default_owner),
        allocation=Allocation(**allocation) if allocation else Allocation(),
        expected_return=raw.get("expected_return"),
    )


def _income_profile(raw: Mapping[str, Any], persons: Mapping[str, Person], start: date) -> IncomeProfile:
    person_id = _require(raw, "person_id", "income")
    if person_id not in persons:
        raise ConfigurationError(f"income profile for unknown person '{person_id}'")
    person = persons[person_id]
    salary = raw.get("salary")
    ss = raw.get("social_security")
    social_security = None
    if ss:
        claim_age = int(ss.get("claim_age", 67))
        social_security = SocialSecurity(
            pia=float(_require(ss, "pia", "social_security")),
            claim_date=_optional_month(ss, "claim_date") or person.date_at_age(claim_age),
            claim_age=claim_age,
            fra=int(ss.get("fra", 67)),
            cola=float(ss.get("cola", 0.0)),
        )
    return IncomeProfile(
        person_id=person_id,
        salary=Salary(
            annual_amount=float(_require(salary, "annual_amount", "salary")),
            growth_rate=float(salary.get("growth_rate", 0.0)),
            start_date=_optional_month(salary, "start_date") or start,
        )
        if salary
        else None,
        social_security=social_security,
        pensions=tuple(
            Pension(
                name=_require(p, "name", "pension"),
                monthly_amount=float(_require(p, "monthly_amount", "pension")),
                start_date=month_start(_require(p, "start_date", "pension")),
                payment_form=p.get("payment_form", "single_life"),
                cola=float(p.get("cola", 0.0)),
                end_date=_optional_month(p, "end_date"),
                is_annuity=bool(p.get("is_annuity", False)),
            )
            for p in raw.get("pensions", ())
        ),
        other=tuple(
            OtherIncome(
                name=_require(o, "name", "other income"),
                monthly_amount=float(_require(o, "monthly_amount", "other income")),
                start_date=_optional_month(o, "start_date"),
                end_date=_optional_month(o, "end_date"),
                growth_rate=float(o.get("growth_rate", 0.0)),
                taxable=bool(o.get("taxable", True)),
            )
            for o in raw.get("other", ())
        ),
    )


def _strategy(raw: Mapping[str, Any]) -> SpendingStrategy:
    kind = raw.get("type", "static")
    params: Dict[str, Any] = {k: v for k, v in raw.items() if k not in ("type", "preset")}
    if kind == "static":
        return StaticSpendingStrategy(**params)
    if kind == "income_gap":
        return IncomeGapStrategy(**params)
    if kind == "guardrails":
        preset = raw.get("preset")
        presets = {
            "guyton_klinger": GuardrailsConfig.guyton_klinger,
            "vanguard": GuardrailsConfig.vanguard_dynamic,
            "kitces": GuardrailsConfig.kitces_ratcheting,
        }
        if preset is None:
            return GuardrailsSpendingStrategy(GuardrailsConfig(**params))
        if preset not in presets:
            raise ConfigurationError(f"unknown guardrails preset '{preset}'")
        config = presets[preset]()
        if params:
            config = replace(config, **params)
        return GuardrailsSpendingStrategy(config)
    raise ConfigurationError(f"unknown strategy type '{kind}'")


def _sequencer(raw: Mapping[str, Any]) -> AccountSequencer:
    kind = raw.get("type", "tax_efficient")
    if kind == "tax_efficient":
        return TaxEfficientSequencer()
    if kind == "pro_rata":
        return ProRataSequencer()
    if kind == "rmd_first":
        return RmdFirstSequencer(MinimumDistributionCalculator())
    if kind == "custom":
        return CustomSequencer(_require(raw, "order", "sequencer"))
    raise ConfigurationError(f"unknown sequencer type '{kind}'")


_RANDOM_EXPENSE_PRESETS = {
    "hvac_failure": RandomExpenseEvent.hvac_failure,
    "roof_repair": RandomExpenseEvent.roof_repair,
    "vehicle_replacement": RandomExpenseEvent.vehicle_replacement,
}


def _random_expense(raw: Any) -> RandomExpenseEvent:
    if isinstance(raw, str):
        factory = _RANDOM_EXPENSE_PRESETS.get(raw)
        if factory is None:
            raise ConfigurationError(f"unknown random expense preset '{raw}'")
        return factory()
    return RandomExpenseEvent(
        name=_require(raw, "name", "random expense"),
        category=raw.get("category", "general"),
        min_amount=float(_require(raw, "min_amount", "random expense")),
        max_amount=float(_require(raw, "max_amount", "random expense")),
        annual_probability=float(_require(raw, "annual_probability", "random expense")),
    )


__all__ = ["RmdExcessDisposition", "SimulationConfig"]
