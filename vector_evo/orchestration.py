"""
Orchestration module for the vector search.

Implements the hill-climbing control loop (`run_search`) and the file-based
vectorize workflow built on top of it (`run_vectorize`).
"""

import time
from pathlib import Path
from typing import Callable, Dict, Optional

import numpy as np

from .config import SearchConfig
from .data_models import (
    CandidateDocument,
    RunStatistics,
    SearchResult,
    Snapshot,
    TargetImage,
    evaluate_document,
)
from .fitness import FitnessEvaluator
from .io_utils import (
    load_document_svg,
    load_target_image,
    save_document_svg,
    save_metadata,
    save_raster_png,
    save_run_log,
)
from .mutation import MutationEngine, mutation_statistics
from .policies import AcceptanceController, TerminationPolicy
from .scheduler import RoundOutcome, TrialScheduler


PROGRESS_INTERVAL = 100


def resolve_background(target: TargetImage, background) -> tuple:
    """Background color for a fresh document ("average" = target mean color)."""
    if background == "average":
        return target.average_color()
    return tuple(background)


def create_initial_document(target: TargetImage, config: SearchConfig) -> CandidateDocument:
    """Empty document on the target's canvas."""
    return CandidateDocument(
        width=target.width,
        height=target.height,
        background=resolve_background(target, config.background),
        max_shapes=config.max_shapes,
    )


def draw_master_seed() -> int:
    return int(np.random.default_rng().integers(0, 2**31))


def _report_round(
    outcome: RoundOutcome,
    statistics: RunStatistics,
    previous: CandidateDocument
) -> None:
    if outcome.selected is not None:
        change = mutation_statistics(previous, outcome.selected.state.document)
        print(
            f"  Round {outcome.round_index}: accepted {outcome.selected.fitness:.6f}"
            f" ({outcome.selected.descriptor.describe()};"
            f" shapes {change['shapes_before']} -> {change['shapes_after']})"
        )
    if statistics.rounds_attempted % PROGRESS_INTERVAL == 0:
        print(
            f"  Progress: {statistics.rounds_attempted} rounds,"
            f" {statistics.rounds_accepted} accepted,"
            f" {statistics.consecutive_fails} consecutive fails,"
            f" fitness {statistics.best_fitness:.6f}"
        )


def run_search(
    target: TargetImage,
    config: SearchConfig,
    initial_document: Optional[CandidateDocument] = None,
    snapshot_callback: Optional[Callable[[Snapshot], None]] = None,
    engine: Optional[MutationEngine] = None,
    evaluator: Optional[FitnessEvaluator] = None,
    verbose: bool = False
) -> SearchResult:
    """
    Evolve a vector document toward the target by parallel hill climbing.

    Each round runs `trials_per_round` independent single-point mutations of
    the current document on the worker pool, joins them, and adopts the best
    one if it strictly improves fitness. The termination policy is checked at
    every round boundary, including before the first round.

    Args:
        target: Target image
        config: Validated search configuration
        initial_document: Starting document (default: empty document); its
            shapes are copied under the configured `max_shapes` cap
        snapshot_callback: Called with a Snapshot every `snapshot_interval` rounds
        engine: Mutation engine override
        evaluator: Fitness evaluator override
        verbose: Print accepted rounds and periodic progress

    Returns:
        SearchResult with the final state and run statistics

    Raises:
        ValueError: If the initial document's canvas differs from the target
            or it holds more than `max_shapes` shapes
        SearchInvariantError: If a trial broke a search invariant
    """
    if initial_document is None:
        document = create_initial_document(target, config)
    else:
        if (initial_document.width, initial_document.height) != (target.width, target.height):
            raise ValueError(
                f"Initial document canvas {initial_document.width}x{initial_document.height}"
                f" does not match target {target.width}x{target.height}"
            )
        if len(initial_document) > config.max_shapes:
            raise ValueError(
                f"Initial document holds {len(initial_document)} shapes,"
                f" more than max_shapes={config.max_shapes}"
            )
        document = CandidateDocument(
            width=initial_document.width,
            height=initial_document.height,
            background=initial_document.background,
            max_shapes=config.max_shapes,
            shapes=list(initial_document.shapes),
        )

    evaluator = evaluator or FitnessEvaluator.from_settings(config.fitness)
    engine = engine or MutationEngine(target, config.mutation)
    master_seed = config.rng_seed if config.rng_seed is not None else draw_master_seed()

    statistics = RunStatistics(master_seed=master_seed)
    start_time = time.perf_counter()

    current = evaluate_document(document, target, evaluator)
    statistics.initial_fitness = current.fitness
    statistics.best_fitness = current.fitness

    acceptance = AcceptanceController(statistics)
    termination = TerminationPolicy(config)

    with TrialScheduler(
        target=target,
        engine=engine,
        evaluator=evaluator,
        trials_per_round=config.trials_per_round,
        master_seed=master_seed,
        workers=config.resolved_workers()
    ) as scheduler:
        while True:
            reason = termination.check(current, statistics)
            if reason is not None:
                statistics.termination_reason = reason
                break

            previous = current.document
            outcome = scheduler.run_round(current, statistics.rounds_attempted)
            current = acceptance.apply(current, outcome)

            if verbose:
                _report_round(outcome, statistics, previous)

            if (snapshot_callback is not None and config.snapshot_interval > 0
                    and statistics.rounds_attempted % config.snapshot_interval == 0):
                snapshot_callback(Snapshot(
                    document=current.document.copy(),
                    fitness=current.fitness,
                    round_index=statistics.rounds_attempted,
                ))

    statistics.elapsed_seconds = time.perf_counter() - start_time

    return SearchResult(state=current, statistics=statistics)


def make_snapshot_writer(snapshot_dir: Path, export_png: bool = True) -> Callable[[Snapshot], None]:
    """
    Snapshot callback writing `round_NNNNNN.svg` (and `.png`) files.

    Args:
        snapshot_dir: Directory for snapshot files
        export_png: Also write the rendered raster

    Returns:
        Callback for run_search
    """
    def write_snapshot(snapshot: Snapshot) -> None:
        stem = f"round_{snapshot.round_index:06d}"
        save_document_svg(snapshot.document, snapshot_dir / f"{stem}.svg", overwrite=True)
        if export_png:
            save_raster_png(snapshot.document.render(), snapshot_dir / f"{stem}.png")
        print(f"  Snapshot: {stem} (fitness {snapshot.fitness:.6f})")

    return write_snapshot


def run_vectorize(run_config: Dict) -> SearchResult:
    """
    Vectorize a target image file according to a run configuration.

    Args:
        run_config: Run configuration dict from YAML

    Algorithm:
        1. Build SearchConfig from the search/mutation/fitness sections
        2. Load the target image (optionally resized to input.width)
        3. Load the optional seed document from input.initial_document
        4. Create output directory: run_config['output']['root']
        5. Run the search, writing snapshots to output_root/snapshots/
        6. Save final.svg, final.png, fitness_log.csv, run_metadata.yaml
           and (if output.plot) fitness_history.png and comparison.png
        7. Print summary report

    Returns:
        SearchResult of the run
    """
    print("=" * 70)
    print("VECTORIZE")
    print("=" * 70)

    config = SearchConfig.from_dict(run_config)

    input_config = run_config['input']
    target_path = input_config['target']
    print(f"Loading target image from: {target_path}")
    target = load_target_image(target_path, input_config.get('width'))
    print(f"Target size: {target.width}x{target.height}")

    initial_document = None
    if input_config.get('initial_document'):
        seed_path = input_config['initial_document']
        print(f"Loading initial document from: {seed_path}")
        initial_document = load_document_svg(seed_path, config.max_shapes)
        print(f"Initial shapes: {len(initial_document)}")

    # Create output directory
    output_config = run_config['output']
    output_root = Path(output_config['root'])
    overwrite = output_config.get('overwrite', False)

    if output_root.exists() and not overwrite:
        raise FileExistsError(
            f"Output directory already exists: {output_root}\n"
            f"Set 'output.overwrite: true' in config to overwrite"
        )

    output_root.mkdir(parents=True, exist_ok=overwrite)
    print(f"Output directory: {output_root}")

    snapshot_callback = None
    if config.snapshot_interval > 0:
        snapshot_callback = make_snapshot_writer(
            output_root / 'snapshots',
            export_png=output_config.get('snapshot_png', True)
        )

    print(f"Workers: {config.resolved_workers()}, trials per round: {config.trials_per_round}")
    print()

    result = run_search(
        target,
        config,
        initial_document=initial_document,
        snapshot_callback=snapshot_callback,
        verbose=True
    )
    stats = result.statistics

    svg_path = save_document_svg(result.document, output_root / 'final.svg', overwrite=overwrite)
    png_path = save_raster_png(result.state.raster, output_root / 'final.png', overwrite=overwrite)
    log_path = save_run_log(stats, output_root / 'fitness_log.csv', overwrite=overwrite)
    metadata = {
        'target': str(target_path),
        'canvas': f"{target.width}x{target.height}",
        'shapes': len(result.document),
        **stats.to_dict(),
    }
    save_metadata(metadata, output_root / 'run_metadata.yaml', overwrite=overwrite)

    if output_config.get('plot', True):
        from .visualization_utils import plot_fitness_history, plot_comparison
        plot_fitness_history(stats, output_root / 'fitness_history.png')
        plot_comparison(target, result.state.raster, output_root / 'comparison.png')

    # Print summary
    print()
    print("=" * 70)
    print("SUMMARY")
    print("=" * 70)
    print(f"Stopped by: {stats.termination_reason}")
    print(f"Rounds: {stats.rounds_attempted} ({stats.rounds_accepted} accepted, {stats.failed_trials} failed trials)")
    print(f"Fitness: {stats.initial_fitness:.6f} -> {stats.best_fitness:.6f}")
    print(f"Shapes: {len(result.document)}")
    print(f"Seed: {stats.master_seed}")
    print(f"Elapsed: {stats.elapsed_seconds:.2f}s")
    print(f"SVG: {svg_path}")
    print(f"PNG: {png_path}")
    print(f"Fitness log: {log_path}")

    return result
