"""
Acceptance and termination policies for the hill-climbing loop.
"""

from typing import Optional

from .config import SearchConfig
from .data_models import CandidateState, RunStatistics
from .scheduler import RoundOutcome


TARGET_ACCURACY = "target_accuracy"
MAX_ROUNDS = "max_rounds"
MAX_CONSECUTIVE_FAILS = "max_consecutive_fails"


class AcceptanceController:
    """
    Adopts a round's selected trial or records a failed round.

    Pure single-lineage hill climbing: the current state is either replaced
    wholesale by the winning trial or kept; trials are never merged.
    """

    def __init__(self, statistics: RunStatistics):
        self.statistics = statistics

    def apply(self, current: CandidateState, outcome: RoundOutcome) -> CandidateState:
        """
        Decide the state that carries into the next round.

        Args:
            current: Current state
            outcome: Finished round

        Returns:
            The selected trial's state, or `current` if nothing improved
        """
        stats = self.statistics
        stats.rounds_attempted += 1
        stats.failed_trials += outcome.failed_trials

        if outcome.selected is None:
            stats.consecutive_fails += 1
            return current

        accepted = outcome.selected.state
        stats.rounds_accepted += 1
        stats.consecutive_fails = 0
        stats.best_fitness = accepted.fitness
        stats.history.append((outcome.round_index, accepted.fitness))
        return accepted


class TerminationPolicy:
    """Stop conditions checked at every round boundary."""

    def __init__(self, config: SearchConfig):
        self.target_accuracy = config.target_accuracy
        self.max_rounds = config.max_rounds
        self.max_consecutive_fails = config.max_consecutive_fails

    def check(self, current: CandidateState, statistics: RunStatistics) -> Optional[str]:
        """
        Return the reason to stop, or None to run another round.

        Reasons are checked in the order target accuracy, round limit,
        fail streak.
        """
        if current.fitness >= self.target_accuracy:
            return TARGET_ACCURACY
        if self.max_rounds is not None and statistics.rounds_attempted >= self.max_rounds:
            return MAX_ROUNDS
        if statistics.consecutive_fails >= self.max_consecutive_fails:
            return MAX_CONSECUTIVE_FAILS
        return None
