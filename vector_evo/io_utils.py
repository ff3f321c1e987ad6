"""
I/O utilities for the vector search.

Handles target image decoding, SVG serialization and parsing of candidate
documents, PNG snapshot export, fitness logs and YAML metadata sidecars.
"""

import csv
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Union

import numpy as np
import yaml
from PIL import Image

from .data_models import (
    COLOR_MAX,
    CandidateDocument,
    RunStatistics,
    Shape,
    ShapeKind,
    TargetImage,
)
from .rendering import raster_to_image


SVG_NAMESPACE = "http://www.w3.org/2000/svg"

_RGB_PATTERN = re.compile(r"rgb\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*\)")


def _fmt(value: float) -> str:
    """Compact number formatting for SVG attributes."""
    text = f"{value:.4f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"


def _rgb(color) -> str:
    return f"rgb({int(color[0])},{int(color[1])},{int(color[2])})"


def load_target_image(
    image_path: Union[str, Path],
    width: Optional[int] = None
) -> TargetImage:
    """
    Decode an image file into a TargetImage.

    Args:
        image_path: Path to any format Pillow can read
        width: Optional comparison width; the image is resized to this width
            keeping its aspect ratio

    Returns:
        TargetImage with RGB pixels

    Raises:
        FileNotFoundError: If the image file doesn't exist
        ValueError: If width is not positive
    """
    image_path = Path(image_path)

    if not image_path.exists():
        raise FileNotFoundError(f"Target image not found: {image_path}")

    with Image.open(image_path) as img:
        img = img.convert("RGB")

        if width is not None:
            if width <= 0:
                raise ValueError(f"Comparison width must be positive, got {width}")
            if width != img.width:
                height = max(1, round(width / img.width * img.height))
                img = img.resize((width, height), Image.Resampling.BILINEAR)

        return TargetImage(np.asarray(img, dtype=np.uint8))


def document_to_svg(document: CandidateDocument) -> ET.Element:
    """
    Build the SVG element tree for a document.

    Polygons and circles become <polygon> and <circle> elements in z-order
    over a full-canvas background <rect>. The color alpha channel maps to
    `fill-opacity` and the shape opacity to `opacity`, which SVG multiplies
    the same way the renderer does.

    Args:
        document: Document to serialize

    Returns:
        Root <svg> element
    """
    width, height = str(document.width), str(document.height)
    root = ET.Element("svg", {
        "xmlns": SVG_NAMESPACE,
        "width": width,
        "height": height,
        "viewBox": f"0 0 {width} {height}",
    })
    ET.SubElement(root, "rect", {
        "x": "0",
        "y": "0",
        "width": width,
        "height": height,
        "fill": _rgb(document.background),
    })

    for shape in document.shapes:
        style = {
            "fill": _rgb(shape.color),
            "fill-opacity": _fmt(shape.color[3] / COLOR_MAX),
            "opacity": _fmt(shape.opacity),
        }
        if shape.kind is ShapeKind.POLYGON:
            points = " ".join(f"{_fmt(x)},{_fmt(y)}" for x, y in shape.vertices)
            ET.SubElement(root, "polygon", {"points": points, **style})
        elif shape.kind is ShapeKind.CIRCLE:
            cx, cy = shape.center
            ET.SubElement(root, "circle", {
                "cx": _fmt(cx),
                "cy": _fmt(cy),
                "r": _fmt(shape.radius),
                **style,
            })

    return root


def save_document_svg(
    document: CandidateDocument,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save a document as an SVG file.

    Args:
        document: Document to save
        output_path: Path for output SVG
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved SVG file

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    tree = ET.ElementTree(document_to_svg(document))
    tree.write(output_path, encoding="utf-8", xml_declaration=True)

    return output_path


def _parse_rgb(value: Optional[str], path: Path) -> tuple:
    match = _RGB_PATTERN.fullmatch((value or "").strip())
    if match is None:
        raise ValueError(f"Unsupported fill color {value!r} in {path}")
    return tuple(int(c) for c in match.groups())


def _parse_style(element: ET.Element, path: Path) -> tuple:
    r, g, b = _parse_rgb(element.get("fill"), path)
    alpha = int(round(float(element.get("fill-opacity", "1")) * COLOR_MAX))
    opacity = float(element.get("opacity", "1"))
    return (r, g, b, alpha), opacity


def load_document_svg(
    svg_path: Union[str, Path],
    max_shapes: int
) -> CandidateDocument:
    """
    Load a document previously written by save_document_svg.

    Only the subset this package writes is understood: a background <rect>
    followed by <polygon> and <circle> elements with rgb() fills.

    Args:
        svg_path: Path to SVG file
        max_shapes: Shape cap for the loaded document

    Returns:
        CandidateDocument

    Raises:
        FileNotFoundError: If the SVG file doesn't exist
        ValueError: If the SVG uses unsupported elements or attributes
    """
    svg_path = Path(svg_path)

    if not svg_path.exists():
        raise FileNotFoundError(f"SVG file not found: {svg_path}")

    root = ET.parse(svg_path).getroot()
    width = int(float(root.get("width")))
    height = int(float(root.get("height")))

    background = (255, 255, 255)
    shapes = []

    for element in root:
        tag = element.tag.split("}")[-1]
        if tag == "rect":
            background = _parse_rgb(element.get("fill"), svg_path)
        elif tag == "polygon":
            color, opacity = _parse_style(element, svg_path)
            vertices = [
                tuple(float(v) for v in pair.split(","))
                for pair in element.get("points", "").split()
            ]
            shapes.append(Shape.polygon(vertices, color, opacity))
        elif tag == "circle":
            color, opacity = _parse_style(element, svg_path)
            center = (float(element.get("cx")), float(element.get("cy")))
            shapes.append(Shape.circle(center, float(element.get("r")), color, opacity))
        else:
            raise ValueError(f"Unsupported SVG element <{tag}> in {svg_path}")

    return CandidateDocument(
        width=width,
        height=height,
        background=background,
        max_shapes=max_shapes,
        shapes=shapes,
    )


def save_raster_png(
    raster: np.ndarray,
    output_path: Union[str, Path],
    overwrite: bool = True
) -> Path:
    """
    Save a rendered raster as PNG.

    Args:
        raster: (height, width, 3) uint8 array
        output_path: Path for output PNG
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved PNG

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Output file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    raster_to_image(raster).save(output_path, format="PNG")

    return output_path


def save_run_log(
    statistics: RunStatistics,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save the fitness history of a run to CSV.

    CSV format:
        round,fitness
        -1,0.412345
        0,0.431002
        ...

    The first row (round -1) is the initial candidate's fitness; each further
    row is one accepted round.

    Args:
        statistics: Statistics of the finished run
        output_path: Path for output CSV
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved log

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Run log already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['round', 'fitness'])
        writer.writerow([-1, f"{statistics.initial_fitness:.6f}"])
        for round_index, fitness in statistics.history:
            writer.writerow([round_index, f"{fitness:.6f}"])

    return output_path


def save_metadata(
    metadata: dict,
    output_path: Union[str, Path],
    overwrite: bool = False
) -> Path:
    """
    Save metadata to YAML sidecar file.

    Args:
        metadata: Metadata dictionary
        output_path: Path for output YAML
        overwrite: If True, overwrite existing file

    Returns:
        Path to saved metadata file

    Raises:
        FileExistsError: If file exists and overwrite=False
    """
    output_path = Path(output_path)

    if output_path.exists() and not overwrite:
        raise FileExistsError(f"Metadata file already exists: {output_path}")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        yaml.safe_dump(metadata, f, default_flow_style=False, sort_keys=False)

    return output_path
