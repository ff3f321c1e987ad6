"""
Search configuration.

Converts the `search`, `mutation` and `fitness` sections of a run
configuration into validated, immutable settings objects. Every check runs
at construction time, before any round is executed.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, Union, Tuple


class ConfigValidationError(Exception):
    """Raised when run configuration is invalid."""
    pass


OPERATOR_NAMES = (
    "add_shape",
    "remove_shape",
    "perturb_geometry",
    "perturb_color",
    "swap_z_order",
)

DEFAULT_OPERATOR_WEIGHTS = {
    "add_shape": 0.3,
    "remove_shape": 0.1,
    "perturb_geometry": 0.3,
    "perturb_color": 0.2,
    "swap_z_order": 0.1,
}


def _require_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigValidationError(f"'{name}' must be an integer, got: {value!r}")
    if value < minimum:
        raise ConfigValidationError(f"'{name}' must be >= {minimum}, got: {value}")


def _require_number(name: str, value: Any, low: float, high: float, low_inclusive: bool = True) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigValidationError(f"'{name}' must be a number, got: {value!r}")
    too_low = value < low if low_inclusive else value <= low
    if too_low or value > high:
        bracket = "[" if low_inclusive else "("
        raise ConfigValidationError(f"'{name}' must be in {bracket}{low}, {high}], got: {value}")


@dataclass(frozen=True)
class MutationSettings:
    """
    Tuning knobs for the mutation engine.

    Steps are bounds on a single perturbation: positional steps are
    fractions of the larger canvas dimension, color steps are in channel
    units.
    """
    operator_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_OPERATOR_WEIGHTS)
    )
    position_step: float = 0.1
    radius_step: float = 0.1
    color_step: int = 32
    opacity_step: float = 0.2
    max_vertices: int = 6
    polygon_probability: float = 0.5
    min_opacity: float = 0.2

    def __post_init__(self):
        weights = self.operator_weights
        if not isinstance(weights, dict) or not weights:
            raise ConfigValidationError("'mutation.operators' must be a non-empty mapping")
        for name, weight in weights.items():
            if name not in OPERATOR_NAMES:
                raise ConfigValidationError(
                    f"Unknown mutation operator: '{name}'. Must be one of {', '.join(OPERATOR_NAMES)}"
                )
            _require_number(f"mutation.operators.{name}", weight, 0.0, float("inf"))
        if sum(weights.values()) <= 0:
            raise ConfigValidationError("'mutation.operators' weights must not all be zero")

        _require_number("mutation.position_step", self.position_step, 0.0, 1.0, low_inclusive=False)
        _require_number("mutation.radius_step", self.radius_step, 0.0, 1.0, low_inclusive=False)
        _require_int("mutation.color_step", self.color_step, 1)
        _require_number("mutation.opacity_step", self.opacity_step, 0.0, 1.0, low_inclusive=False)
        _require_int("mutation.max_vertices", self.max_vertices, 3)
        _require_number("mutation.polygon_probability", self.polygon_probability, 0.0, 1.0)
        _require_number("mutation.min_opacity", self.min_opacity, 0.0, 1.0)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MutationSettings":
        data = dict(data or {})
        kwargs = {}
        if "operators" in data:
            kwargs["operator_weights"] = data.pop("operators")
        for key in ("position_step", "radius_step", "color_step", "opacity_step",
                    "max_vertices", "polygon_probability", "min_opacity"):
            if key in data:
                kwargs[key] = data.pop(key)
        if data:
            raise ConfigValidationError(f"Unknown 'mutation' fields: {', '.join(sorted(data))}")
        return cls(**kwargs)


@dataclass(frozen=True)
class FitnessSettings:
    """Weights of the luminance (SSIM) and per-channel chroma terms."""
    luminance_weight: float = 0.5
    chroma_weight: float = 0.25

    def __post_init__(self):
        _require_number("fitness.luminance_weight", self.luminance_weight, 0.0, float("inf"))
        _require_number("fitness.chroma_weight", self.chroma_weight, 0.0, float("inf"))
        if self.luminance_weight + self.chroma_weight <= 0:
            raise ConfigValidationError("Fitness weights must not all be zero")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "FitnessSettings":
        data = dict(data or {})
        unknown = set(data) - {"luminance_weight", "chroma_weight"}
        if unknown:
            raise ConfigValidationError(f"Unknown 'fitness' fields: {', '.join(sorted(unknown))}")
        return cls(**data)


@dataclass(frozen=True)
class SearchConfig:
    """
    Parameters of one hill-climbing run.

    Attributes:
        max_shapes: Upper bound on shapes in a document
        trials_per_round: Number of parallel trials (K) per round
        max_consecutive_fails: Stop after this many non-improving rounds in a row
        max_rounds: Stop after this many rounds (None = unbounded)
        target_accuracy: Stop once fitness reaches this value
        rng_seed: Master seed (None = draw one at run start)
        snapshot_interval: Rounds between snapshots (0 = none)
        workers: Worker pool size (0 = CPU count)
        background: RGB triple (default white), or "average" for the
            target's mean color
        mutation: Mutation engine settings
        fitness: Fitness evaluator settings
    """
    max_shapes: int = 500
    trials_per_round: int = 16
    max_consecutive_fails: int = 200
    max_rounds: Optional[int] = None
    target_accuracy: float = 1.0
    rng_seed: Optional[int] = None
    snapshot_interval: int = 0
    workers: int = 0
    background: Union[str, Tuple[int, int, int]] = (255, 255, 255)
    mutation: MutationSettings = field(default_factory=MutationSettings)
    fitness: FitnessSettings = field(default_factory=FitnessSettings)

    def __post_init__(self):
        _require_int("max_shapes", self.max_shapes, 1)
        _require_int("trials_per_round", self.trials_per_round, 1)
        _require_int("max_consecutive_fails", self.max_consecutive_fails, 1)
        if self.max_rounds is not None:
            _require_int("max_rounds", self.max_rounds, 0)
        _require_number("target_accuracy", self.target_accuracy, 0.0, 1.0, low_inclusive=False)
        if self.rng_seed is not None:
            _require_int("rng_seed", self.rng_seed, 0)
        _require_int("snapshot_interval", self.snapshot_interval, 0)
        _require_int("workers", self.workers, 0)

        background = self.background
        if isinstance(background, str):
            if background != "average":
                raise ConfigValidationError(
                    f"'background' must be 'average' or an RGB triple, got: '{background}'"
                )
        else:
            if not isinstance(background, (tuple, list)) or len(background) != 3 or any(
                isinstance(c, bool) or not isinstance(c, int) or not 0 <= c <= 255
                for c in background
            ):
                raise ConfigValidationError(
                    f"'background' must hold three integers in 0..255, got: {background!r}"
                )
            object.__setattr__(self, "background", tuple(background))

    def resolved_workers(self) -> int:
        """Worker pool size to actually use."""
        if self.workers > 0:
            return self.workers
        return os.cpu_count() or 1

    @classmethod
    def from_dict(cls, run_config: Dict[str, Any]) -> "SearchConfig":
        """
        Build a SearchConfig from a loaded run configuration.

        Args:
            run_config: Dictionary with optional 'search', 'mutation' and
                'fitness' sections

        Returns:
            Validated SearchConfig

        Raises:
            ConfigValidationError: If any section or value is invalid
        """
        search = run_config.get("search") or {}
        if not isinstance(search, dict):
            raise ConfigValidationError("'search' must be a dictionary")

        known = {
            "max_shapes", "trials_per_round", "max_consecutive_fails", "max_rounds",
            "target_accuracy", "rng_seed", "snapshot_interval", "workers", "background",
        }
        unknown = set(search) - known
        if unknown:
            raise ConfigValidationError(f"Unknown 'search' fields: {', '.join(sorted(unknown))}")

        kwargs = dict(search)
        if isinstance(kwargs.get("background"), list):
            kwargs["background"] = tuple(kwargs["background"])

        for section in ("mutation", "fitness"):
            if section in run_config and not isinstance(run_config[section], (dict, type(None))):
                raise ConfigValidationError(f"'{section}' must be a dictionary")

        return cls(
            mutation=MutationSettings.from_dict(run_config.get("mutation")),
            fitness=FitnessSettings.from_dict(run_config.get("fitness")),
            **kwargs,
        )
