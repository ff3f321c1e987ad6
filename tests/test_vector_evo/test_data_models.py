"""
Tests for data models and rendering.

Tests target immutability, shape validation, document editing and copying,
and deterministic rasterization.
"""

import unittest
import numpy as np

from vector_evo.data_models import (
    TargetImage,
    Shape,
    ShapeKind,
    CandidateDocument,
    MutationDescriptor,
    RunStatistics,
    evaluate_document,
)
from vector_evo.fitness import FitnessEvaluator
from vector_evo.rendering import render_document


RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


class TestTargetImage(unittest.TestCase):
    """Test TargetImage construction and accessors."""

    def test_dimensions(self):
        target = TargetImage(np.zeros((4, 5, 3), dtype=np.uint8))
        self.assertEqual(target.width, 5)
        self.assertEqual(target.height, 4)

    def test_pixels_are_read_only_copy(self):
        """Target keeps its own frozen copy of the pixel buffer."""
        source = np.zeros((4, 4, 3), dtype=np.uint8)
        target = TargetImage(source)

        source[0, 0] = (9, 9, 9)
        self.assertEqual(target.pixel_at(0, 0), (0, 0, 0))

        with self.assertRaises(ValueError):
            target.pixels[0, 0, 0] = 1

    def test_rejects_bad_shape(self):
        with self.assertRaises(ValueError):
            TargetImage(np.zeros((4, 4), dtype=np.uint8))
        with self.assertRaises(ValueError):
            TargetImage(np.zeros((0, 4, 3), dtype=np.uint8))

    def test_pixel_at_clamps(self):
        pixels = np.zeros((3, 3, 3), dtype=np.uint8)
        pixels[2, 2] = (10, 20, 30)
        target = TargetImage(pixels)
        self.assertEqual(target.pixel_at(99, 99), (10, 20, 30))
        self.assertEqual(target.pixel_at(-5, -5), (0, 0, 0))

    def test_average_color(self):
        pixels = np.zeros((2, 2, 3), dtype=np.uint8)
        pixels[0, :] = (200, 100, 0)
        target = TargetImage(pixels)
        self.assertEqual(target.average_color(), (100, 50, 0))


class TestShape(unittest.TestCase):
    """Test Shape validation and helpers."""

    def test_polygon_factory(self):
        shape = Shape.polygon([(0, 0), (4, 0), (0, 4)], RED, 0.5)
        self.assertIs(shape.kind, ShapeKind.POLYGON)
        self.assertEqual(len(shape.vertices), 3)
        self.assertEqual(shape.vertices[1], (4.0, 0.0))

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            Shape.polygon([(0, 0), (4, 0), (0, 4)], (256, 0, 0, 255))
        with self.assertRaises(ValueError):
            Shape.polygon([(0, 0), (4, 0), (0, 4)], RED, opacity=1.5)
        with self.assertRaises(ValueError):
            Shape.polygon([(0, 0), (4, 0)], RED)
        with self.assertRaises(ValueError):
            Shape.circle((2, 2), 0, RED)
        with self.assertRaises(ValueError):
            Shape(kind=ShapeKind.CIRCLE, color=(1, 2, 3), radius=2.0)

    def test_effective_alpha(self):
        shape = Shape.circle((2, 2), 1, (0, 0, 0, 200), opacity=0.5)
        self.assertEqual(shape.effective_alpha(), 100)

    def test_anchor(self):
        polygon = Shape.polygon([(0, 0), (6, 0), (0, 6)], RED)
        self.assertEqual(polygon.anchor(), (2.0, 2.0))
        circle = Shape.circle((3, 4), 2, RED)
        self.assertEqual(circle.anchor(), (3.0, 4.0))

    def test_within_bounds(self):
        inside = Shape.polygon([(0, 0), (9, 0), (9, 9)], RED)
        outside = Shape.polygon([(0, 0), (10, 0), (9, 9)], RED)
        self.assertTrue(inside.within_bounds(10, 10))
        self.assertFalse(outside.within_bounds(10, 10))
        self.assertFalse(inside.within_bounds(10, 10, max_vertices=2))

        self.assertTrue(Shape.circle((5, 5), 10, RED).within_bounds(10, 10))
        self.assertFalse(Shape.circle((5, 5), 11, RED).within_bounds(10, 10))


class TestCandidateDocument(unittest.TestCase):
    """Test document editing operations."""

    def setUp(self):
        self.a = Shape.circle((2, 2), 1, RED)
        self.b = Shape.circle((5, 5), 2, BLUE)

    def test_append_respects_cap(self):
        doc = CandidateDocument(width=8, height=8, max_shapes=1)
        doc.append_shape(self.a)
        self.assertTrue(doc.is_full())
        with self.assertRaises(ValueError):
            doc.append_shape(self.b)

    def test_constructor_validation(self):
        with self.assertRaises(ValueError):
            CandidateDocument(width=0, height=8)
        with self.assertRaises(ValueError):
            CandidateDocument(width=8, height=8, max_shapes=0)
        with self.assertRaises(ValueError):
            CandidateDocument(width=8, height=8, max_shapes=1, shapes=[self.a, self.b])

    def test_copy_is_independent(self):
        doc = CandidateDocument(width=8, height=8, shapes=[self.a])
        clone = doc.copy()
        clone.append_shape(self.b)
        clone.swap_shapes(0, 1)

        self.assertEqual(doc.shapes, [self.a])
        self.assertEqual(clone.shapes, [self.b, self.a])

    def test_remove_and_replace(self):
        doc = CandidateDocument(width=8, height=8, shapes=[self.a, self.b])
        removed = doc.remove_shape(0)
        self.assertEqual(removed, self.a)
        doc.replace_shape(0, self.a)
        self.assertEqual(doc.shapes, [self.a])
        doc.remove_shape(0)
        self.assertTrue(doc.is_empty())


class TestRendering(unittest.TestCase):
    """Test rasterization of documents."""

    def test_empty_document_renders_background(self):
        doc = CandidateDocument(width=6, height=4, background=(10, 20, 30))
        raster = render_document(doc)

        self.assertEqual(raster.shape, (4, 6, 3))
        self.assertEqual(raster.dtype, np.uint8)
        self.assertTrue(np.all(raster == np.array([10, 20, 30], dtype=np.uint8)))

    def test_render_is_deterministic(self):
        """Rendering the same document twice yields identical bytes."""
        doc = CandidateDocument(width=32, height=32, shapes=[
            Shape.polygon([(1.5, 2.25), (30, 4), (16.75, 29.5)], (200, 40, 90, 180), 0.7),
            Shape.circle((12.3, 18.9), 7.6, (20, 160, 220, 255), 0.45),
            Shape.polygon([(0, 31), (31, 31), (20, 10), (5, 12)], (255, 255, 0, 90), 1.0),
        ])

        first = render_document(doc)
        second = render_document(doc.copy())

        self.assertEqual(first.tobytes(), second.tobytes())
        self.assertTrue(np.array_equal(first, doc.render()))

    def test_opaque_full_canvas_polygon(self):
        doc = CandidateDocument(width=8, height=8, background=(255, 255, 255), shapes=[
            Shape.polygon([(0, 0), (7, 0), (7, 7), (0, 7)], RED, 1.0),
        ])
        raster = render_document(doc)
        self.assertTrue(np.all(raster == np.array([255, 0, 0], dtype=np.uint8)))

    def test_translucent_shape_blends(self):
        doc = CandidateDocument(width=8, height=8, background=(255, 255, 255), shapes=[
            Shape.polygon([(0, 0), (7, 0), (7, 7), (0, 7)], (0, 0, 0, 255), 0.5),
        ])
        raster = render_document(doc)
        value = int(raster[4, 4, 0])
        self.assertGreater(value, 100)
        self.assertLess(value, 160)

    def test_zero_alpha_shape_is_invisible(self):
        doc = CandidateDocument(width=8, height=8, background=(1, 2, 3), shapes=[
            Shape.circle((4, 4), 3, RED, opacity=0.0),
        ])
        raster = render_document(doc)
        self.assertTrue(np.all(raster == np.array([1, 2, 3], dtype=np.uint8)))

    def test_z_order(self):
        """Later shapes paint over earlier ones."""
        red = Shape.circle((8, 8), 6, RED)
        blue = Shape.circle((8, 8), 6, BLUE)
        doc = CandidateDocument(width=16, height=16, shapes=[red, blue])

        self.assertEqual(tuple(render_document(doc)[8, 8]), (0, 0, 255))

        doc.swap_shapes(0, 1)
        self.assertEqual(tuple(render_document(doc)[8, 8]), (255, 0, 0))

    def test_circle_stays_local(self):
        doc = CandidateDocument(width=20, height=20, background=(255, 255, 255), shapes=[
            Shape.circle((5, 5), 3, BLUE),
        ])
        raster = render_document(doc)
        self.assertEqual(tuple(raster[5, 5]), (0, 0, 255))
        self.assertEqual(tuple(raster[18, 18]), (255, 255, 255))


class TestStateAndRecords(unittest.TestCase):
    """Test CandidateState construction and diagnostic records."""

    def test_evaluate_document_is_consistent(self):
        doc = CandidateDocument(width=8, height=8, shapes=[Shape.circle((4, 4), 2, RED)])
        target = TargetImage(render_document(doc))
        state = evaluate_document(doc, target, FitnessEvaluator(), generation=3)

        self.assertIs(state.document, doc)
        self.assertTrue(np.array_equal(state.raster, render_document(doc)))
        self.assertFalse(state.raster.flags.writeable)
        self.assertEqual(state.fitness, 1.0)
        self.assertEqual(state.generation, 3)

    def test_descriptor_describe(self):
        descriptor = MutationDescriptor(
            operator="perturb_color",
            shape_index=2,
            params={"channel": "r"},
            fallback_from="swap_z_order",
        )
        text = descriptor.describe()
        self.assertIn("perturb_color[2]", text)
        self.assertIn("channel=r", text)
        self.assertIn("fallback from swap_z_order", text)

    def test_statistics_to_dict(self):
        stats = RunStatistics(rounds_attempted=4, rounds_accepted=2, best_fitness=0.5,
                              termination_reason="max_rounds", master_seed=9)
        data = stats.to_dict()
        self.assertEqual(data["rounds_attempted"], 4)
        self.assertEqual(data["termination_reason"], "max_rounds")
        self.assertEqual(data["master_seed"], 9)


if __name__ == '__main__':
    unittest.main()
