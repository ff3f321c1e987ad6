"""
Rasterization of candidate documents.

Paints the background, then every shape in z-order with alpha blending,
using Pillow's ImageDraw in RGBA ink mode on an RGB canvas. The result is a
pure function of the document: the same document always yields the same
bytes.
"""

from typing import List, Tuple

import numpy as np
from PIL import Image, ImageDraw

from .data_models import CandidateDocument, Shape, ShapeKind


def shape_ink(shape: Shape) -> Tuple[int, int, int, int]:
    """RGBA ink used to paint a shape (opacity folded into alpha)."""
    r, g, b, _ = shape.color
    return r, g, b, shape.effective_alpha()


def circle_bounds(shape: Shape) -> List[float]:
    """Bounding box [x0, y0, x1, y1] of a circle shape."""
    cx, cy = shape.center
    r = shape.radius
    return [cx - r, cy - r, cx + r, cy + r]


def paint_shape(draw: ImageDraw.ImageDraw, shape: Shape) -> None:
    """
    Paint one shape onto a canvas.

    Args:
        draw: Drawing context opened in "RGBA" ink mode
        shape: Shape to paint
    """
    ink = shape_ink(shape)
    if ink[3] == 0:
        return

    if shape.kind is ShapeKind.POLYGON:
        draw.polygon(list(shape.vertices), fill=ink)
    elif shape.kind is ShapeKind.CIRCLE:
        draw.ellipse(circle_bounds(shape), fill=ink)
    else:
        raise ValueError(f"Unsupported shape kind: {shape.kind}")


def render_document(document: CandidateDocument) -> np.ndarray:
    """
    Render a document to an RGB raster.

    Args:
        document: Document to render

    Returns:
        Array of shape (height, width, 3), dtype uint8
    """
    canvas = Image.new("RGB", (document.width, document.height), tuple(document.background))
    draw = ImageDraw.Draw(canvas, "RGBA")

    for shape in document.shapes:
        paint_shape(draw, shape)

    return np.array(canvas, dtype=np.uint8)


def raster_to_image(raster: np.ndarray) -> Image.Image:
    """Wrap a rendered raster as a Pillow image (for PNG export)."""
    return Image.fromarray(np.ascontiguousarray(raster, dtype=np.uint8))
