"""
Vector Evolution - raster to vector approximation by hill climbing

This package evolves an ordered collection of filled shapes (polygons and
circles) so that its rendering resembles a target image, judged by a hybrid
SSIM/chroma similarity score.

Key Features:
- Single-lineage hill climbing (strict improvements only)
- K independent trials per round on one flat worker pool (fork-join)
- Deterministic rendering and per-trial seeding for reproducible runs
- YAML-driven runs with SVG/PNG output and fitness logs

Modules:
- data_models: Core data structures (TargetImage, Shape, CandidateDocument, ...)
- rendering: Document rasterization
- mutation: Single-point mutation operators and MutationEngine
- fitness: FitnessEvaluator
- scheduler: TrialScheduler (parallel trials per round)
- policies: AcceptanceController and TerminationPolicy
- orchestration: Control loop and file-based vectorize workflow
- io_utils: Image loading, SVG/PNG export, logs and metadata
- visualization_utils: Fitness progress plots
- cli: Run configuration loading and dispatch
"""

__version__ = "0.1.0"

from .config import SearchConfig, MutationSettings, FitnessSettings, ConfigValidationError
from .data_models import (
    TargetImage,
    Shape,
    ShapeKind,
    CandidateDocument,
    CandidateState,
    MutationDescriptor,
    RunStatistics,
    Snapshot,
    SearchResult,
)
from .fitness import FitnessEvaluator, RasterInvariantError, SearchInvariantError
from .mutation import MutationEngine
from .scheduler import TrialScheduler, NestedDispatchError
from .orchestration import run_search

__all__ = [
    "SearchConfig",
    "MutationSettings",
    "FitnessSettings",
    "ConfigValidationError",
    "TargetImage",
    "Shape",
    "ShapeKind",
    "CandidateDocument",
    "CandidateState",
    "MutationDescriptor",
    "RunStatistics",
    "Snapshot",
    "SearchResult",
    "FitnessEvaluator",
    "RasterInvariantError",
    "SearchInvariantError",
    "MutationEngine",
    "TrialScheduler",
    "NestedDispatchError",
    "run_search",
]
