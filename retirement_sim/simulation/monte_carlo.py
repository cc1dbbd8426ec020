"""Monte Carlo runner: many independent runs of one configuration.

Every run gets its own seed, spawned from a :class:`SeedPolicy` with
:class:`numpy.random.SeedSequence`, and its own engine state; the frozen
configuration is the only thing runs share.  Runs are fanned out over a
:class:`concurrent.futures.ProcessPoolExecutor` (a run is a CPU-bound Python
loop) or, with ``executor="thread"``, a
:class:`concurrent.futures.ThreadPoolExecutor`:

* a run that raises is recorded as a failure with its error message;
* with ``fail_fast`` (the default) the first failure sets a cancellation
  event, pending runs are cancelled and in-flight runs stop at their next
  month boundary; runs already finished keep their results;
* an optional ``timeout`` bounds the wall-clock time of the whole batch.

Process pools pickle the engine for every run, so custom collaborators must
be importable module-level callables there.

Aggregation sorts outcomes by run index, so results do not depend on the
order in which runs finish.

Example
-------

>>> result = run_monte_carlo(config, num_runs=1000, seed_policy=42)    # doctest: +SKIP
>>> round(result.success_rate, 3)                                      # doctest: +SKIP
0.912
>>> result.percentile_balances[["p10", "p50", "p90"]].tail(1)          # doctest: +SKIP
"""

from __future__ import annotations

import copyreg
import logging
import multiprocessing
import threading
import time
from concurrent.futures import (
    Executor,
    ProcessPoolExecutor,
    ThreadPoolExecutor,
    TimeoutError as FuturesTimeout,
    as_completed,
)
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..exceptions import ConfigurationError, SimulationCancelled
from .config import SimulationConfig
from .dates import add_months, iter_months
from .engine import SimulationEngine
from .results import TerminationReason, TimeSeries

logger = logging.getLogger(__name__)

PERCENTILES = (5, 10, 25, 50, 75, 90, 95)
EXECUTORS = ("process", "thread")


def _mapping_proxy(data: dict) -> MappingProxyType:
    return MappingProxyType(data)


def _reduce_mapping_proxy(proxy: MappingProxyType):
    return _mapping_proxy, (dict(proxy),)


# Plans and snapshots wrap their mappings read-only; they must still pickle
# to and from worker processes.
copyreg.pickle(MappingProxyType, _reduce_mapping_proxy)


@dataclass(frozen=True)
class SeedPolicy:
    """Where per-run seeds come from.

    Parameters
    ----------
    base_seed : int, optional
        Root of a :class:`numpy.random.SeedSequence`; each run gets one spawned
        child.  ``None`` draws fresh entropy (non-reproducible).
    explicit : tuple of int
        Seeds used as given, one per run, instead of spawning.
    """

    base_seed: Optional[int] = None
    explicit: Tuple[int, ...] = ()

    def seeds(self, num_runs: int) -> List[int]:
        if self.explicit:
            if len(self.explicit) < num_runs:
                raise ConfigurationError(
                    f"{len(self.explicit)} explicit seeds given for {num_runs} runs"
                )
            return [int(s) for s in self.explicit[:num_runs]]
        children = np.random.SeedSequence(self.base_seed).spawn(num_runs)
        return [int(child.generate_state(1, dtype=np.uint64)[0]) for child in children]

    @classmethod
    def coerce(cls, policy: Union["SeedPolicy", int, Sequence[int], None]) -> "SeedPolicy":
        if policy is None:
            return cls()
        if isinstance(policy, SeedPolicy):
            return policy
        if isinstance(policy, (int, np.integer)):
            return cls(base_seed=int(policy))
        return cls(explicit=tuple(int(s) for s in policy))


@dataclass
class RunOutcome:
    """Result of one Monte Carlo run (or the reason it has none)."""

    index: int
    seed: int
    termination_reason: Optional[TerminationReason] = None
    final_balance: float = 0.0
    months: int = 0
    balances: Optional[List[float]] = None
    series: Optional[TimeSeries] = None
    error: Optional[str] = None
    cancelled: bool = False

    @property
    def completed(self) -> bool:
        return self.error is None and not self.cancelled and self.termination_reason is not None


@dataclass
class MonteCarloResult:
    """Aggregated results of a Monte Carlo batch."""

    config: SimulationConfig
    outcomes: List[RunOutcome]
    percentiles: Tuple[int, ...] = PERCENTILES
    timed_out: bool = False
    percentile_balances: pd.DataFrame = field(init=False)

    def __post_init__(self):
        self.outcomes = sorted(self.outcomes, key=lambda o: o.index)
        self.percentile_balances = self._percentile_frame()

    @property
    def num_runs(self) -> int:
        return len(self.outcomes)

    @property
    def completed(self) -> List[RunOutcome]:
        return [o for o in self.outcomes if o.completed]

    @property
    def failures(self) -> List[RunOutcome]:
        return [o for o in self.outcomes if o.error is not None]

    @property
    def cancelled(self) -> int:
        return sum(1 for o in self.outcomes if o.cancelled)

    @property
    def success_rate(self) -> float:
        """Share of completed runs that did not deplete the portfolio."""
        done = self.completed
        if not done:
            return 0.0
        return sum(1 for o in done if o.termination_reason.is_success) / len(done)

    @property
    def termination_counts(self) -> Dict[str, int]:
        counts = {reason.value: 0 for reason in TerminationReason}
        for o in self.completed:
            counts[o.termination_reason.value] += 1
        return counts

    @property
    def median_terminal_balance(self) -> float:
        done = self.completed
        if not done:
            return 0.0
        return float(np.median([o.final_balance for o in done]))

    @property
    def sampled_series(self) -> Dict[int, TimeSeries]:
        return {o.index: o.series for o in self.outcomes if o.series is not None}

    def _percentile_frame(self) -> pd.DataFrame:
        cfg = self.config
        last = min(cfg.end_date, add_months(cfg.start_date, cfg.max_years * 12 - 1))
        months = [pd.Timestamp(m) for m in iter_months(cfg.start_date, last)]
        columns = [f"p{q}" for q in self.percentiles]
        paths = []
        for o in self.completed:
            path = list(o.balances or [])[: len(months)]
            if not path:
                continue
            path += [path[-1]] * (len(months) - len(path))
            paths.append(np.array(path))
        if not paths:
            return pd.DataFrame(index=pd.Index(months, name="month"), columns=columns, dtype=float)
        stacked = np.vstack(paths)  # runs x months
        data = {f"p{q}": np.percentile(stacked, q, axis=0) for q in self.percentiles}
        return pd.DataFrame(data, index=pd.Index(months, name="month"))

    def to_frame(self) -> pd.DataFrame:
        """One row per run with its seed, outcome and final balance."""
        return pd.DataFrame(
            [
                {
                    "run": o.index,
                    "seed": o.seed,
                    "termination_reason": o.termination_reason.value if o.termination_reason else None,
                    "final_balance": o.final_balance,
                    "months": o.months,
                    "error": o.error,
                    "cancelled": o.cancelled,
                }
                for o in self.outcomes
            ]
        ).set_index("run")


def _run_one(engine: SimulationEngine, index: int, seed: int, keep_series: bool, cancel) -> RunOutcome:
    """Execute one seeded run; module level so process pools can pickle it."""
    if cancel.is_set():
        return RunOutcome(index=index, seed=seed, cancelled=True)
    try:
        series = engine.run(seed=seed, cancel_event=cancel)
    except SimulationCancelled:
        return RunOutcome(index=index, seed=seed, cancelled=True)
    except Exception as exc:
        logger.exception("Monte Carlo run %d (seed %d) failed", index, seed)
        return RunOutcome(index=index, seed=seed, error=f"{type(exc).__name__}: {exc}")
    return RunOutcome(
        index=index,
        seed=seed,
        termination_reason=series.termination_reason,
        final_balance=series.final_balance,
        months=len(series),
        balances=series.balances(),
        series=series if keep_series else None,
    )


class MonteCarloRunner:
    """Fan a configuration out over many seeded runs.

    Parameters
    ----------
    max_workers : int, optional
        Pool size (``None`` lets :mod:`concurrent.futures` decide).
    timeout : float, optional
        Wall-clock budget in seconds for the whole batch.
    fail_fast : bool
        Cancel outstanding runs after the first failure.
    keep_series : int
        Number of runs (lowest indices) whose full time series are kept.
    percentiles : tuple of int
        Percentiles of the balance distribution reported per month.
    executor : {"process", "thread"}
        Pool kind.  Processes run in parallel; threads share one interpreter
        but accept collaborators that cannot be pickled.
    **collaborators
        Passed to :class:`SimulationEngine`; they are shared by all runs and
        must not hold per-run state.
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        timeout: Optional[float] = None,
        fail_fast: bool = True,
        keep_series: int = 10,
        percentiles: Sequence[int] = PERCENTILES,
        executor: str = "process",
        **collaborators,
    ):
        if timeout is not None and timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        if any(not 0 <= q <= 100 for q in percentiles):
            raise ConfigurationError("percentiles must be within [0, 100]")
        if executor not in EXECUTORS:
            raise ConfigurationError(f"executor must be one of {EXECUTORS}, got '{executor}'")
        self.max_workers = max_workers
        self.timeout = timeout
        self.fail_fast = fail_fast
        self.keep_series = keep_series
        self.percentiles = tuple(percentiles)
        self.executor = executor
        self.collaborators = collaborators

    def run(
        self,
        config: SimulationConfig,
        num_runs: int,
        seed_policy: Union[SeedPolicy, int, Sequence[int], None] = None,
    ) -> MonteCarloResult:
        if num_runs <= 0:
            raise ConfigurationError("num_runs must be positive")
        seeds = SeedPolicy.coerce(seed_policy).seeds(num_runs)
        engine = SimulationEngine(config, **self.collaborators)
        started = time.monotonic()
        logger.info("Starting Monte Carlo batch of %d runs in a %s pool", num_runs, self.executor)

        if self.executor == "process":
            with multiprocessing.Manager() as manager:
                outcomes, timed_out = self._fan_out(
                    ProcessPoolExecutor(max_workers=self.max_workers), engine, seeds, manager.Event()
                )
        else:
            outcomes, timed_out = self._fan_out(
                ThreadPoolExecutor(max_workers=self.max_workers), engine, seeds, threading.Event()
            )

        result = MonteCarloResult(
            config=config,
            outcomes=outcomes,
            percentiles=self.percentiles,
            timed_out=timed_out,
        )
        logger.info(
            "Monte Carlo batch finished in %.2fs: %d completed, %d failed, %d cancelled, success rate %.3f",
            time.monotonic() - started, len(result.completed), len(result.failures),
            result.cancelled, result.success_rate,
        )
        return result

    def _fan_out(
        self, executor: Executor, engine: SimulationEngine, seeds: List[int], cancel
    ) -> Tuple[List[RunOutcome], bool]:
        outcomes: Dict[int, RunOutcome] = {}
        timed_out = False
        futures = {}
        try:
            futures = {
                executor.submit(_run_one, engine, index, seed, index < self.keep_series, cancel): index
                for index, seed in enumerate(seeds)
            }
            try:
                for future in as_completed(futures, timeout=self.timeout):
                    if future.cancelled():
                        continue
                    outcome = future.result()
                    outcomes[outcome.index] = outcome
                    if outcome.error is not None and self.fail_fast and not cancel.is_set():
                        logger.warning("Run %d failed; cancelling remaining runs", outcome.index)
                        self._cancel(cancel, futures)
            except FuturesTimeout:
                timed_out = True
                logger.warning(
                    "Monte Carlo batch exceeded %.1fs with %d/%d runs done; cancelling",
                    self.timeout, len(outcomes), len(seeds),
                )
                self._cancel(cancel, futures)
        finally:
            executor.shutdown(wait=True)

        for future, index in futures.items():
            if index in outcomes:
                continue
            if future.cancelled():
                outcomes[index] = RunOutcome(index=index, seed=seeds[index], cancelled=True)
            else:
                outcomes[index] = future.result()
        return list(outcomes.values()), timed_out

    @staticmethod
    def _cancel(cancel, futures) -> None:
        cancel.set()
        for f in futures:
            f.cancel()


def run_monte_carlo(
    config: SimulationConfig,
    num_runs: int = 500,
    seed_policy: Union[SeedPolicy, int, Sequence[int], None] = None,
    **options,
) -> MonteCarloResult:
    """Run ``config`` ``num_runs`` times; ``options`` go to :class:`MonteCarloRunner`."""
    return MonteCarloRunner(**options).run(config, num_runs, seed_policy)


__all__ = [
    "PERCENTILES",
    "EXECUTORS",
    "SeedPolicy",
    "RunOutcome",
    "MonteCarloResult",
    "MonteCarloRunner",
    "run_monte_carlo",
]
