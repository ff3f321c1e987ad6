"""
Visualization utilities for the vector search.

Plots fitness progress of a run and side-by-side target/result comparisons.
"""

from pathlib import Path
from typing import Tuple, Union

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from .data_models import RunStatistics, TargetImage


def plot_fitness_history(
    statistics: RunStatistics,
    output_path: Union[str, Path],
    figsize: Tuple[int, int] = (10, 5)
) -> Path:
    """
    Plot fitness against round number.

    The curve starts at the initial fitness and steps up at every accepted
    round. The title carries the acceptance count and termination reason.

    Args:
        statistics: Statistics of a finished run
        output_path: Path to save PNG file
        figsize: Figure size (width, height) in inches

    Returns:
        Path to saved plot
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    rounds = [0] + [r + 1 for r, _ in statistics.history]
    fitness = [statistics.initial_fitness] + [f for _, f in statistics.history]
    if statistics.rounds_attempted > rounds[-1]:
        rounds.append(statistics.rounds_attempted)
        fitness.append(fitness[-1])

    fig, ax = plt.subplots(figsize=figsize)
    ax.step(rounds, fitness, where="post", color="tab:blue", linewidth=1.5)
    ax.set_xlabel("Round")
    ax.set_ylabel("Fitness")
    ax.set_ylim(max(0.0, min(fitness) - 0.05), 1.0)
    ax.grid(True, alpha=0.3)
    ax.set_title(
        f"{statistics.rounds_accepted}/{statistics.rounds_attempted} rounds accepted"
        f" - stopped by {statistics.termination_reason or 'n/a'}"
    )

    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)

    return output_path


def plot_comparison(
    target: TargetImage,
    raster: np.ndarray,
    output_path: Union[str, Path],
    figsize: Tuple[int, int] = (10, 5)
) -> Path:
    """
    Save target and rendered result side by side.

    Args:
        target: Target image
        raster: Rendered candidate raster
        output_path: Path to save PNG file
        figsize: Figure size (width, height) in inches

    Returns:
        Path to saved plot
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fig, (ax_target, ax_result) = plt.subplots(1, 2, figsize=figsize)
    ax_target.imshow(target.pixels)
    ax_target.set_title("Target")
    ax_result.imshow(raster)
    ax_result.set_title("Result")
    for ax in (ax_target, ax_result):
        ax.axis("off")

    fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)

    return output_path
