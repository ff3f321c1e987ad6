"""
Trial scheduling for one search round.

Fans K independent mutate-render-score trials out onto a single flat thread
pool and joins them before returning (a synchronous fork-join barrier).
Trial work never receives a handle to the pool, and dispatching a round from
inside a pool worker raises NestedDispatchError, so fan-out stays exactly
one level deep.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .data_models import (
    CandidateState,
    MutationDescriptor,
    TargetImage,
    evaluate_document,
)
from .fitness import FitnessEvaluator, SearchInvariantError
from .mutation import MutationEngine


logger = logging.getLogger(__name__)

_worker_context = threading.local()


class NestedDispatchError(SearchInvariantError):
    """A pool worker tried to dispatch work onto the trial pool."""
    pass


@dataclass
class TrialResult:
    """
    Outcome of one trial.

    Attributes:
        index: Stable trial index within the round
        state: Scored candidate state (None if the trial failed)
        descriptor: Mutation applied (None if the trial failed before mutating)
        error: Description of the failure, if any
    """
    index: int
    state: Optional[CandidateState] = None
    descriptor: Optional[MutationDescriptor] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is not None

    @property
    def fitness(self) -> Optional[float]:
        return self.state.fitness if self.state is not None else None


@dataclass
class RoundOutcome:
    """All trial results of a round plus the selected improvement (if any)."""
    round_index: int
    trials: List[TrialResult] = field(default_factory=list)
    selected: Optional[TrialResult] = None

    @property
    def failed_trials(self) -> int:
        return sum(1 for t in self.trials if not t.succeeded)

    @property
    def improved(self) -> bool:
        return self.selected is not None


def trial_rng(master_seed: int, round_index: int, trial_index: int) -> np.random.Generator:
    """
    Random source for one trial.

    Derived only from (master_seed, round_index, trial_index), so it does not
    depend on worker count, thread identity or completion order.
    """
    return np.random.default_rng(np.random.SeedSequence([master_seed, round_index, trial_index]))


def run_trial(
    current: CandidateState,
    target: TargetImage,
    engine: MutationEngine,
    evaluator: FitnessEvaluator,
    rng: np.random.Generator,
    index: int
) -> TrialResult:
    """
    Clone, mutate, render and score one candidate.

    Args:
        current: Current state (read-only; its document is never modified)
        target: Target image
        engine: Mutation engine
        evaluator: Fitness evaluator
        rng: This trial's random source
        index: Trial index within the round

    Returns:
        TrialResult holding the scored trial state
    """
    mutated, descriptor = engine.mutate(current.document, rng)
    state = evaluate_document(mutated, target, evaluator, generation=current.generation + 1)
    return TrialResult(index=index, state=state, descriptor=descriptor)


def select_best(trials: List[TrialResult], current_fitness: float) -> Optional[TrialResult]:
    """
    Pick the round's winning trial.

    The trial with strictly the highest fitness wins, ties going to the lowest
    index. The winner is returned only if it strictly beats `current_fitness`.

    Args:
        trials: Trial results in any order
        current_fitness: Fitness of the current state

    Returns:
        Winning TrialResult, or None if no trial improves
    """
    best = None
    for trial in sorted(trials, key=lambda t: t.index):
        if not trial.succeeded:
            continue
        if best is None or trial.fitness > best.fitness:
            best = trial

    if best is not None and best.fitness > current_fitness:
        return best
    return None


def in_worker() -> bool:
    """True when called from a thread currently executing a trial."""
    return getattr(_worker_context, "active", False)


class TrialScheduler:
    """
    Runs rounds of independent trials on one flat worker pool.

    Use as a context manager (or call close()) so the pool is shut down when
    the run ends.
    """

    def __init__(
        self,
        target: TargetImage,
        engine: MutationEngine,
        evaluator: FitnessEvaluator,
        trials_per_round: int,
        master_seed: int,
        workers: int = 1
    ):
        """
        Args:
            target: Target image shared read-only by all trials
            engine: Mutation engine
            evaluator: Fitness evaluator
            trials_per_round: Trials per round (K)
            master_seed: Seed every trial's random source derives from
            workers: Pool size
        """
        if trials_per_round <= 0:
            raise ValueError(f"trials_per_round must be positive, got {trials_per_round}")
        if workers <= 0:
            raise ValueError(f"workers must be positive, got {workers}")

        self.target = target
        self.engine = engine
        self.evaluator = evaluator
        self.trials_per_round = trials_per_round
        self.master_seed = master_seed
        self.workers = workers
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="vector-evo-trial")

    def __enter__(self) -> "TrialScheduler":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def _execute_trial(self, current: CandidateState, round_index: int, index: int) -> TrialResult:
        _worker_context.active = True
        try:
            rng = trial_rng(self.master_seed, round_index, index)
            return run_trial(current, self.target, self.engine, self.evaluator, rng, index)
        finally:
            _worker_context.active = False

    def run_round(self, current: CandidateState, round_index: int) -> RoundOutcome:
        """
        Execute one round and block until every trial has finished.

        A trial that raises fails on its own and the round continues with the
        others. Search invariant violations (raster mismatch, nested dispatch)
        abort the round by propagating.

        Args:
            current: Current state (not modified)
            round_index: Index of this round, used for seeding

        Returns:
            RoundOutcome with every trial result in index order

        Raises:
            NestedDispatchError: If called from inside a trial
            SearchInvariantError: If any trial broke a search invariant
        """
        if in_worker():
            raise NestedDispatchError(
                "run_round() was called from inside a trial; trials must not dispatch work"
            )

        futures = [
            self._executor.submit(self._execute_trial, current, round_index, index)
            for index in range(self.trials_per_round)
        ]
        wait(futures)

        trials = []
        for index, future in enumerate(futures):
            try:
                trials.append(future.result())
            except SearchInvariantError:
                raise
            except Exception as e:
                logger.warning("Round %d trial %d failed: %r", round_index, index, e)
                trials.append(TrialResult(index=index, error=repr(e)))

        return RoundOutcome(
            round_index=round_index,
            trials=trials,
            selected=select_best(trials, current.fitness),
        )
