"""
Data models for the vector search engine.

Core value types: the target raster, shapes, candidate documents and states,
mutation descriptors, snapshots and run statistics.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Any

import numpy as np


COLOR_MAX = 255


class ShapeKind(Enum):
    """Primitive kinds the renderer understands."""
    POLYGON = "polygon"
    CIRCLE = "circle"


@dataclass(frozen=True, eq=False)
class TargetImage:
    """
    Decoded raster the search approximates.

    The pixel buffer is copied once on construction and flagged read-only so
    every worker can share it by reference for the whole run.

    Attributes:
        pixels: Array of shape (height, width, 3), dtype uint8, row-major RGB
    """
    pixels: np.ndarray

    def __post_init__(self):
        """Copy, validate and freeze the pixel buffer."""
        pixels = np.array(self.pixels, dtype=np.uint8, copy=True)
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(
                f"Target pixels must have shape (height, width, 3), got {pixels.shape}"
            )
        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            raise ValueError("Target image must not be empty")
        pixels.flags.writeable = False
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def pixel_at(self, x: float, y: float) -> tuple[int, int, int]:
        """
        Get the RGB color under a canvas coordinate.

        Args:
            x: Horizontal coordinate (clamped to the canvas)
            y: Vertical coordinate (clamped to the canvas)

        Returns:
            (r, g, b) tuple
        """
        col = min(max(int(x), 0), self.width - 1)
        row = min(max(int(y), 0), self.height - 1)
        r, g, b = self.pixels[row, col]
        return int(r), int(g), int(b)

    def average_color(self) -> tuple[int, int, int]:
        """Mean color over the whole image, rounded per channel."""
        mean = self.pixels.reshape(-1, 3).mean(axis=0)
        return tuple(int(round(c)) for c in mean)


@dataclass(frozen=True)
class Shape:
    """
    A single filled primitive.

    Shapes are immutable values: a mutation builds a new Shape with
    dataclasses.replace instead of editing one in place. Polygons use
    `vertices`; circles use `center` and `radius`.

    Attributes:
        kind: Which primitive this is
        color: RGBA fill, each channel in 0..255
        opacity: Extra opacity multiplier in [0, 1]
        vertices: Polygon vertices as (x, y) pairs
        center: Circle center as (x, y)
        radius: Circle radius in pixels
    """
    kind: ShapeKind
    color: tuple[int, int, int, int]
    opacity: float = 1.0
    vertices: tuple[tuple[float, float], ...] = ()
    center: tuple[float, float] = (0.0, 0.0)
    radius: float = 0.0

    def __post_init__(self):
        """Validate channel ranges and per-kind geometry."""
        if len(self.color) != 4:
            raise ValueError(f"Shape color must have 4 channels, got {len(self.color)}")
        if any(c < 0 or c > COLOR_MAX for c in self.color):
            raise ValueError(f"Shape color channels must be in 0..{COLOR_MAX}: {self.color}")
        if not 0.0 <= self.opacity <= 1.0:
            raise ValueError(f"Shape opacity must be in [0, 1], got {self.opacity}")
        if self.kind is ShapeKind.POLYGON and len(self.vertices) < 3:
            raise ValueError("Polygon needs at least 3 vertices")
        if self.kind is ShapeKind.CIRCLE and self.radius <= 0:
            raise ValueError(f"Circle radius must be positive, got {self.radius}")

    @classmethod
    def polygon(cls, vertices, color, opacity: float = 1.0) -> "Shape":
        return cls(
            kind=ShapeKind.POLYGON,
            color=tuple(int(c) for c in color),
            opacity=float(opacity),
            vertices=tuple((float(x), float(y)) for x, y in vertices),
        )

    @classmethod
    def circle(cls, center, radius: float, color, opacity: float = 1.0) -> "Shape":
        return cls(
            kind=ShapeKind.CIRCLE,
            color=tuple(int(c) for c in color),
            opacity=float(opacity),
            center=(float(center[0]), float(center[1])),
            radius=float(radius),
        )

    def effective_alpha(self) -> int:
        """Alpha actually painted: color alpha scaled by opacity."""
        return int(round(self.color[3] * self.opacity))

    def anchor(self) -> tuple[float, float]:
        """Reference point of the shape (vertex centroid or circle center)."""
        if self.kind is ShapeKind.POLYGON:
            xs = [x for x, _ in self.vertices]
            ys = [y for _, y in self.vertices]
            return sum(xs) / len(xs), sum(ys) / len(ys)
        return self.center

    def within_bounds(self, width: int, height: int, max_vertices: Optional[int] = None) -> bool:
        """
        Check the geometric invariants against a canvas.

        Args:
            width: Canvas width
            height: Canvas height
            max_vertices: Optional upper bound on polygon vertex count

        Returns:
            True if every coordinate lies on the canvas and the vertex
            count / radius are within bounds
        """
        def on_canvas(point):
            x, y = point
            return 0 <= x <= width - 1 and 0 <= y <= height - 1

        if self.kind is ShapeKind.POLYGON:
            if max_vertices is not None and len(self.vertices) > max_vertices:
                return False
            return all(on_canvas(p) for p in self.vertices)

        return on_canvas(self.center) and 1 <= self.radius <= max(width, height)


@dataclass
class CandidateDocument:
    """
    Ordered shape sequence being evolved.

    Later shapes are painted over earlier ones. The canvas always matches the
    target dimensions.

    Attributes:
        width: Canvas width in pixels
        height: Canvas height in pixels
        background: RGB color painted before any shape
        max_shapes: Upper bound on len(shapes)
        shapes: Shapes in z-order (first = bottom)
    """
    width: int
    height: int
    background: tuple[int, int, int] = (255, 255, 255)
    max_shapes: int = 200
    shapes: list[Shape] = field(default_factory=list)

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Canvas must be non-empty, got {self.width}x{self.height}")
        if self.max_shapes <= 0:
            raise ValueError(f"max_shapes must be positive, got {self.max_shapes}")
        if len(self.shapes) > self.max_shapes:
            raise ValueError(
                f"Document holds {len(self.shapes)} shapes, above the cap of {self.max_shapes}"
            )
        self.background = tuple(int(c) for c in self.background)

    def __len__(self) -> int:
        return len(self.shapes)

    def copy(self) -> "CandidateDocument":
        """
        Create an independent copy of this document.

        Shapes are immutable, so copying the sequence is enough for the copy
        never to alias the original.

        Returns:
            New CandidateDocument with its own shape list
        """
        return CandidateDocument(
            width=self.width,
            height=self.height,
            background=self.background,
            max_shapes=self.max_shapes,
            shapes=list(self.shapes),
        )

    def is_empty(self) -> bool:
        return not self.shapes

    def is_full(self) -> bool:
        return len(self.shapes) >= self.max_shapes

    def append_shape(self, shape: Shape) -> None:
        if self.is_full():
            raise ValueError(f"Document already holds the maximum of {self.max_shapes} shapes")
        self.shapes.append(shape)

    def remove_shape(self, index: int) -> Shape:
        return self.shapes.pop(index)

    def replace_shape(self, index: int, shape: Shape) -> None:
        self.shapes[index] = shape

    def swap_shapes(self, first: int, second: int) -> None:
        self.shapes[first], self.shapes[second] = self.shapes[second], self.shapes[first]

    def render(self) -> np.ndarray:
        """Rasterize this document (see rendering.render_document)."""
        from .rendering import render_document
        return render_document(self)


@dataclass(frozen=True, eq=False)
class CandidateState:
    """
    A document together with its raster and fitness.

    Build states through `evaluate_document` so the raster and the fitness
    always come from the stored document. A state is replaced, never edited.

    Attributes:
        document: The candidate document (owned exclusively by this state)
        raster: Rendered pixels, (height, width, 3) uint8, read-only
        fitness: Similarity to the target in [0, 1]
        generation: Number of accepted mutations in this lineage
    """
    document: CandidateDocument
    raster: np.ndarray
    fitness: float
    generation: int = 0


def evaluate_document(
    document: CandidateDocument,
    target: TargetImage,
    evaluator,
    generation: int = 0
) -> CandidateState:
    """
    Render and score a document.

    Args:
        document: Document to evaluate (taken over by the returned state)
        target: Target image
        evaluator: Object with a `score(candidate, target)` method
        generation: Generation counter for the new state

    Returns:
        Consistent CandidateState
    """
    raster = document.render()
    raster.flags.writeable = False
    fitness = evaluator.score(raster, target.pixels)
    return CandidateState(document=document, raster=raster, fitness=fitness, generation=generation)


@dataclass
class MutationDescriptor:
    """
    Record of one structural edit, for diagnostics only.

    Attributes:
        operator: Operator actually applied
        shape_index: Index of the affected shape (if any)
        params: Operator-specific parameters
        fallback_from: Operator originally drawn, when it could not apply
    """
    operator: str
    shape_index: Optional[int] = None
    params: dict[str, Any] = field(default_factory=dict)
    fallback_from: Optional[str] = None

    def describe(self) -> str:
        text = self.operator
        if self.shape_index is not None:
            text += f"[{self.shape_index}]"
        if self.params:
            details = ", ".join(f"{k}={v}" for k, v in self.params.items())
            text += f"({details})"
        if self.fallback_from:
            text += f" <- fallback from {self.fallback_from}"
        return text


@dataclass
class RunStatistics:
    """
    Counters accumulated over one run.

    Attributes:
        rounds_attempted: Rounds executed
        rounds_accepted: Rounds whose best trial was adopted
        consecutive_fails: Current streak of non-improving rounds
        best_fitness: Fitness of the current state
        initial_fitness: Fitness of the starting state
        failed_trials: Trials that raised instead of producing a state
        elapsed_seconds: Wall-clock duration of the run
        termination_reason: Which stop condition ended the run
        master_seed: Seed all per-trial random sources derive from
        history: (round, fitness) pairs, one per acceptance
    """
    rounds_attempted: int = 0
    rounds_accepted: int = 0
    consecutive_fails: int = 0
    best_fitness: float = 0.0
    initial_fitness: float = 0.0
    failed_trials: int = 0
    elapsed_seconds: float = 0.0
    termination_reason: Optional[str] = None
    master_seed: Optional[int] = None
    history: list[tuple[int, float]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Plain dictionary for the YAML metadata sidecar."""
        return {
            "rounds_attempted": self.rounds_attempted,
            "rounds_accepted": self.rounds_accepted,
            "consecutive_fails": self.consecutive_fails,
            "best_fitness": float(self.best_fitness),
            "initial_fitness": float(self.initial_fitness),
            "failed_trials": self.failed_trials,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "termination_reason": self.termination_reason,
            "master_seed": self.master_seed,
        }


@dataclass
class Snapshot:
    """Progress report handed to the snapshot callback."""
    document: CandidateDocument
    fitness: float
    round_index: int


@dataclass
class SearchResult:
    """Final state of a run plus its statistics."""
    state: CandidateState
    statistics: RunStatistics

    @property
    def document(self) -> CandidateDocument:
        return self.state.document
