"""
Tests for trial scheduling: seeding, selection, worker-count invariance,
failure isolation, and the flat-pool guard.
"""

import threading
import unittest
import numpy as np

from vector_evo.data_models import (
    CandidateDocument,
    CandidateState,
    Shape,
    TargetImage,
    evaluate_document,
)
from vector_evo.fitness import FitnessEvaluator, RasterInvariantError
from vector_evo.mutation import MutationEngine
from vector_evo.scheduler import (
    NestedDispatchError,
    TrialResult,
    TrialScheduler,
    in_worker,
    select_best,
    trial_rng,
)


def fake_trial(index, fitness):
    """TrialResult carrying only a fitness value."""
    return TrialResult(index=index, state=CandidateState(document=None, raster=None, fitness=fitness))


def make_target(size=24):
    rng = np.random.default_rng(5)
    pixels = rng.integers(0, 256, size=(size, size, 3), dtype=np.uint8)
    return TargetImage(pixels)


def make_state(target, evaluator):
    document = CandidateDocument(width=target.width, height=target.height, shapes=[
        Shape.circle((6, 6), 4, (120, 40, 40, 255), 0.7),
        Shape.polygon([(2, 20), (20, 20), (12, 3)], (30, 160, 90, 255), 0.5),
    ])
    return evaluate_document(document, target, evaluator)


class FailingEngine(MutationEngine):
    """Engine whose every mutation raises."""

    def mutate(self, document, rng, operator=None):
        raise RuntimeError("broken operator")


class FailOnceEngine(MutationEngine):
    """Engine that raises on its first call only."""

    def __init__(self, target):
        super().__init__(target)
        self._lock = threading.Lock()
        self._failed = False

    def mutate(self, document, rng, operator=None):
        with self._lock:
            fail = not self._failed
            self._failed = True
        if fail:
            raise RuntimeError("transient failure")
        return super().mutate(document, rng, operator)


class DispatchingEngine(MutationEngine):
    """Engine that tries to fan out from inside a trial."""

    scheduler = None

    def mutate(self, document, rng, operator=None):
        state = CandidateState(document=document, raster=None, fitness=0.0)
        self.scheduler.run_round(state, 0)
        return super().mutate(document, rng, operator)


class MismatchEvaluator(FitnessEvaluator):
    """Evaluator that reports a raster dimension mismatch."""

    def score(self, candidate, target):
        raise RasterInvariantError("mismatch")


class TestTrialSeeding(unittest.TestCase):
    """Test per-trial random sources."""

    def test_same_coordinates_same_stream(self):
        a = trial_rng(7, 3, 2).random(5)
        b = trial_rng(7, 3, 2).random(5)
        self.assertTrue(np.array_equal(a, b))

    def test_streams_differ_per_trial_and_round(self):
        base = trial_rng(7, 3, 2).random(5)
        self.assertFalse(np.array_equal(base, trial_rng(7, 3, 3).random(5)))
        self.assertFalse(np.array_equal(base, trial_rng(7, 4, 2).random(5)))
        self.assertFalse(np.array_equal(base, trial_rng(8, 3, 2).random(5)))


class TestSelectBest(unittest.TestCase):
    """Test round winner selection."""

    def test_highest_fitness_wins(self):
        trials = [fake_trial(0, 0.5), fake_trial(1, 0.7), fake_trial(2, 0.6)]
        self.assertEqual(select_best(trials, 0.4).index, 1)

    def test_ties_go_to_lowest_index(self):
        trials = [fake_trial(3, 0.7), fake_trial(1, 0.7), fake_trial(0, 0.5), fake_trial(2, 0.7)]
        self.assertEqual(select_best(trials, 0.4).index, 1)

    def test_must_strictly_improve(self):
        trials = [fake_trial(0, 0.5), fake_trial(1, 0.5)]
        self.assertIsNone(select_best(trials, 0.5))
        self.assertIsNone(select_best(trials, 0.6))

    def test_failed_trials_are_skipped(self):
        trials = [TrialResult(index=0, error="boom"), fake_trial(1, 0.3)]
        self.assertEqual(select_best(trials, 0.2).index, 1)
        self.assertIsNone(select_best([TrialResult(index=0, error="boom")], 0.0))


class TestTrialScheduler(unittest.TestCase):
    """Test round execution on the worker pool."""

    def setUp(self):
        """Set up target, evaluator, engine and starting state."""
        self.target = make_target()
        self.evaluator = FitnessEvaluator()
        self.engine = MutationEngine(self.target)
        self.state = make_state(self.target, self.evaluator)

    def run_rounds(self, workers, rounds=(0, 5, 17)):
        with TrialScheduler(self.target, self.engine, self.evaluator,
                            trials_per_round=8, master_seed=123, workers=workers) as scheduler:
            return [scheduler.run_round(self.state, r) for r in rounds]

    def test_round_returns_every_trial_in_index_order(self):
        outcome = self.run_rounds(workers=3, rounds=(0,))[0]

        self.assertEqual([t.index for t in outcome.trials], list(range(8)))
        self.assertEqual(outcome.failed_trials, 0)
        for trial in outcome.trials:
            self.assertEqual(trial.state.generation, self.state.generation + 1)
            self.assertIsNotNone(trial.descriptor)

    def test_selection_independent_of_worker_count(self):
        """One worker and four workers pick the same trial with the same fitness."""
        serial = self.run_rounds(workers=1)
        parallel = self.run_rounds(workers=4)

        for a, b in zip(serial, parallel):
            self.assertEqual([t.fitness for t in a.trials], [t.fitness for t in b.trials])
            self.assertEqual(a.improved, b.improved)
            if a.improved:
                self.assertEqual(a.selected.index, b.selected.index)
                self.assertEqual(a.selected.state.document.shapes, b.selected.state.document.shapes)

    def test_current_state_is_not_modified(self):
        before = list(self.state.document.shapes)
        self.run_rounds(workers=4)
        self.assertEqual(self.state.document.shapes, before)

    def test_failing_trials_are_isolated(self):
        """A raising trial is counted as failed and the round still completes."""
        engine = FailOnceEngine(self.target)
        with TrialScheduler(self.target, engine, self.evaluator,
                            trials_per_round=6, master_seed=1, workers=3) as scheduler:
            outcome = scheduler.run_round(self.state, 0)

        self.assertEqual(len(outcome.trials), 6)
        self.assertEqual(outcome.failed_trials, 1)
        failed = [t for t in outcome.trials if not t.succeeded]
        self.assertIn("transient failure", failed[0].error)

    def test_all_trials_failing_selects_nothing(self):
        engine = FailingEngine(self.target)
        with TrialScheduler(self.target, engine, self.evaluator,
                            trials_per_round=4, master_seed=1, workers=2) as scheduler:
            with self.assertLogs("vector_evo.scheduler", level="WARNING"):
                outcome = scheduler.run_round(self.state, 0)

        self.assertEqual(outcome.failed_trials, 4)
        self.assertIsNone(outcome.selected)

    def test_raster_invariant_propagates(self):
        with TrialScheduler(self.target, self.engine, MismatchEvaluator(),
                            trials_per_round=4, master_seed=1, workers=2) as scheduler:
            with self.assertRaises(RasterInvariantError):
                scheduler.run_round(self.state, 0)

    def test_nested_dispatch_is_rejected(self):
        """A trial that dispatches work onto the pool aborts the round."""
        engine = DispatchingEngine(self.target)
        with TrialScheduler(self.target, engine, self.evaluator,
                            trials_per_round=2, master_seed=1, workers=2) as scheduler:
            engine.scheduler = scheduler
            with self.assertRaises(NestedDispatchError):
                scheduler.run_round(self.state, 0)

    def test_worker_flag_only_inside_trials(self):
        self.assertFalse(in_worker())
        self.run_rounds(workers=2, rounds=(0,))
        self.assertFalse(in_worker())

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            TrialScheduler(self.target, self.engine, self.evaluator, trials_per_round=0, master_seed=1)
        with self.assertRaises(ValueError):
            TrialScheduler(self.target, self.engine, self.evaluator, trials_per_round=2,
                           master_seed=1, workers=0)


if __name__ == '__main__':
    unittest.main()
