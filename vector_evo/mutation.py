"""
Mutation operators for the vector search.

Implements single-point structural edits on candidate documents: add a
shape, remove a shape, perturb geometry, perturb color/opacity, and swap
z-order. Every operator works on a copy; the source document is never
touched.
"""

from dataclasses import replace
from typing import Callable, Dict, List, Tuple, Optional
import math

import numpy as np

from .config import MutationSettings, OPERATOR_NAMES
from .data_models import (
    COLOR_MAX,
    CandidateDocument,
    MutationDescriptor,
    Shape,
    ShapeKind,
    TargetImage,
)


MODIFY_OPERATORS = ("perturb_geometry", "perturb_color")

# Number of uniform draws whose minimum becomes a new shape's size; biases
# new shapes toward small ones.
SIZE_DRAWS = 4

COORD_DECIMALS = 2


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def _clamp_point(x: float, y: float, width: int, height: int) -> Tuple[float, float]:
    return (
        round(_clamp(x, 0.0, width - 1), COORD_DECIMALS),
        round(_clamp(y, 0.0, height - 1), COORD_DECIMALS),
    )


def random_shape(
    target: TargetImage,
    settings: MutationSettings,
    rng: np.random.Generator
) -> Shape:
    """
    Create a randomly parameterized shape.

    The shape is anchored at a random pixel and takes the target's color at
    that pixel; its size is the minimum of SIZE_DRAWS uniform draws.

    Args:
        target: Target image (read-only, used for canvas size and color)
        settings: Mutation settings
        rng: Random number generator

    Returns:
        New Shape inside the canvas bounds
    """
    width, height = target.width, target.height
    longest = max(width, height)

    cx = int(rng.integers(0, width))
    cy = int(rng.integers(0, height))
    size = int(min(rng.integers(1, longest + 1) for _ in range(SIZE_DRAWS)))

    r, g, b = target.pixel_at(cx, cy)
    color = (r, g, b, COLOR_MAX)
    opacity = round(float(rng.uniform(settings.min_opacity, 1.0)), 3)

    if rng.random() < settings.polygon_probability:
        num_vertices = int(rng.integers(3, settings.max_vertices + 1))
        angles = np.sort(rng.uniform(0.0, 2 * math.pi, size=num_vertices))
        radii = rng.uniform(0.5, 1.0, size=num_vertices) * max(size / 2.0, 1.0)
        vertices = [
            _clamp_point(cx + rad * math.cos(ang), cy + rad * math.sin(ang), width, height)
            for ang, rad in zip(angles, radii)
        ]
        return Shape.polygon(vertices, color, opacity)

    radius = _clamp(size / 2.0, 1.0, float(longest))
    return Shape.circle((cx, cy), round(radius, COORD_DECIMALS), color, opacity)


def add_shape(
    document: CandidateDocument,
    target: TargetImage,
    settings: MutationSettings,
    rng: np.random.Generator
) -> Tuple[CandidateDocument, MutationDescriptor]:
    """
    Append a new random shape on top of the document.

    Args:
        document: Source document (not modified, must not be full)
        target: Target image
        settings: Mutation settings
        rng: Random number generator

    Returns:
        Tuple of (mutated_document, descriptor)
    """
    mutated = document.copy()
    shape = random_shape(target, settings, rng)
    mutated.append_shape(shape)

    return mutated, MutationDescriptor(
        operator="add_shape",
        shape_index=len(mutated) - 1,
        params={"kind": shape.kind.value, "anchor": shape.anchor()},
    )


def remove_shape(
    document: CandidateDocument,
    target: TargetImage,
    settings: MutationSettings,
    rng: np.random.Generator
) -> Tuple[CandidateDocument, MutationDescriptor]:
    """Drop one random shape (document must not be empty)."""
    mutated = document.copy()
    index = int(rng.integers(0, len(mutated)))
    removed = mutated.remove_shape(index)

    return mutated, MutationDescriptor(
        operator="remove_shape",
        shape_index=index,
        params={"kind": removed.kind.value},
    )


def perturb_geometry(
    document: CandidateDocument,
    target: TargetImage,
    settings: MutationSettings,
    rng: np.random.Generator
) -> Tuple[CandidateDocument, MutationDescriptor]:
    """
    Move one polygon vertex, a circle center, or resize a circle.

    Offsets are uniform in [-step, step] where step is position_step (or
    radius_step) times the larger canvas dimension; results are clamped to
    the canvas.

    Args:
        document: Source document (not modified, must not be empty)
        target: Target image
        settings: Mutation settings
        rng: Random number generator

    Returns:
        Tuple of (mutated_document, descriptor)
    """
    mutated = document.copy()
    width, height = mutated.width, mutated.height
    longest = max(width, height)
    step = settings.position_step * longest

    index = int(rng.integers(0, len(mutated)))
    shape = mutated.shapes[index]

    if shape.kind is ShapeKind.POLYGON:
        vertex = int(rng.integers(0, len(shape.vertices)))
        x, y = shape.vertices[vertex]
        dx, dy = rng.uniform(-step, step, size=2)
        moved = _clamp_point(x + dx, y + dy, width, height)
        vertices = list(shape.vertices)
        vertices[vertex] = moved
        new_shape = replace(shape, vertices=tuple(vertices))
        params = {"vertex": vertex, "to": moved}
    elif rng.random() < 0.5:
        x, y = shape.center
        dx, dy = rng.uniform(-step, step, size=2)
        moved = _clamp_point(x + dx, y + dy, width, height)
        new_shape = replace(shape, center=moved)
        params = {"center": moved}
    else:
        radius_step = settings.radius_step * longest
        radius = shape.radius + float(rng.uniform(-radius_step, radius_step))
        radius = round(_clamp(radius, 1.0, float(longest)), COORD_DECIMALS)
        new_shape = replace(shape, radius=radius)
        params = {"radius": radius}

    mutated.replace_shape(index, new_shape)

    return mutated, MutationDescriptor(operator="perturb_geometry", shape_index=index, params=params)


def perturb_color(
    document: CandidateDocument,
    target: TargetImage,
    settings: MutationSettings,
    rng: np.random.Generator
) -> Tuple[CandidateDocument, MutationDescriptor]:
    """Shift one RGBA channel or the opacity of a random shape, clamped to range."""
    mutated = document.copy()
    index = int(rng.integers(0, len(mutated)))
    shape = mutated.shapes[index]

    # channels 0-3 are RGBA, 4 is opacity
    channel = int(rng.integers(0, 5))
    if channel < 4:
        offset = int(rng.integers(-settings.color_step, settings.color_step + 1))
        color = list(shape.color)
        color[channel] = int(_clamp(color[channel] + offset, 0, COLOR_MAX))
        new_shape = replace(shape, color=tuple(color))
        params = {"channel": "rgba"[channel], "value": color[channel]}
    else:
        offset = float(rng.uniform(-settings.opacity_step, settings.opacity_step))
        opacity = round(_clamp(shape.opacity + offset, 0.0, 1.0), 3)
        new_shape = replace(shape, opacity=opacity)
        params = {"channel": "opacity", "value": opacity}

    mutated.replace_shape(index, new_shape)

    return mutated, MutationDescriptor(operator="perturb_color", shape_index=index, params=params)


def swap_z_order(
    document: CandidateDocument,
    target: TargetImage,
    settings: MutationSettings,
    rng: np.random.Generator
) -> Tuple[CandidateDocument, MutationDescriptor]:
    """Swap the painting order of two distinct shapes (needs at least two)."""
    mutated = document.copy()
    first, second = (int(i) for i in rng.choice(len(mutated), size=2, replace=False))
    mutated.swap_shapes(first, second)

    return mutated, MutationDescriptor(
        operator="swap_z_order",
        shape_index=first,
        params={"with": second},
    )


OPERATORS: Dict[str, Callable] = {
    "add_shape": add_shape,
    "remove_shape": remove_shape,
    "perturb_geometry": perturb_geometry,
    "perturb_color": perturb_color,
    "swap_z_order": swap_z_order,
}


def is_applicable(operator: str, document: CandidateDocument) -> bool:
    """Whether an operator can edit the document as it stands."""
    if operator == "add_shape":
        return not document.is_full()
    if operator == "swap_z_order":
        return len(document) >= 2
    return not document.is_empty()


def resolve_operator(
    operator: str,
    document: CandidateDocument,
    rng: np.random.Generator
) -> Tuple[str, Optional[str]]:
    """
    Substitute an applicable operator when the drawn one cannot apply.

    Structural edits fall back to a modify operator; on an empty document
    every operator except add_shape falls back to add_shape. Since
    max_shapes > 0, an empty document is never full, so resolution always
    ends on an applicable operator.

    Args:
        operator: Operator originally drawn
        document: Document the operator would edit
        rng: Random number generator

    Returns:
        Tuple of (operator_to_apply, fallback_from or None)
    """
    if is_applicable(operator, document):
        return operator, None

    if document.is_empty():
        return "add_shape", operator

    fallback = MODIFY_OPERATORS[int(rng.integers(0, len(MODIFY_OPERATORS)))]
    return fallback, operator


class MutationEngine:
    """
    Produces one mutated document per call from a single random operator.

    The engine holds only read-only data (target and settings); all
    randomness comes from the generator passed in by the caller, so one
    engine instance can serve every trial concurrently.
    """

    def __init__(self, target: TargetImage, settings: Optional[MutationSettings] = None):
        self.target = target
        self.settings = settings or MutationSettings()

        weights = self.settings.operator_weights
        self.operator_names: List[str] = [name for name in OPERATOR_NAMES if name in weights]
        total = float(sum(weights[name] for name in self.operator_names))
        self.operator_probs = np.array([weights[name] / total for name in self.operator_names])

    def choose_operator(self, rng: np.random.Generator) -> str:
        return self.operator_names[int(rng.choice(len(self.operator_names), p=self.operator_probs))]

    def mutate(
        self,
        document: CandidateDocument,
        rng: np.random.Generator,
        operator: Optional[str] = None
    ) -> Tuple[CandidateDocument, MutationDescriptor]:
        """
        Apply exactly one structural edit to a copy of `document`.

        Args:
            document: Source document (left untouched)
            rng: Per-trial random number generator
            operator: Force a specific operator instead of drawing one

        Returns:
            Tuple of (mutated_document, descriptor)
        """
        if operator is None:
            operator = self.choose_operator(rng)
        elif operator not in OPERATORS:
            raise ValueError(f"Unknown mutation operator: {operator}")

        applied, fallback_from = resolve_operator(operator, document, rng)
        mutated, descriptor = OPERATORS[applied](document, self.target, self.settings, rng)
        descriptor.fallback_from = fallback_from

        return mutated, descriptor


def mutation_statistics(original: CandidateDocument, mutated: CandidateDocument) -> Dict:
    """
    Summarize how a mutation changed a document.

    Args:
        original: Document before mutation
        mutated: Document after mutation

    Returns:
        Dictionary with shape counts and number of positions that differ
    """
    common = min(len(original), len(mutated))
    changed = sum(1 for i in range(common) if original.shapes[i] != mutated.shapes[i])
    changed += abs(len(original) - len(mutated))

    return {
        "shapes_before": len(original),
        "shapes_after": len(mutated),
        "positions_changed": changed,
    }
