# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Unit tests for collapse/expand shape algebra."""

from __future__ import annotations

import unittest

import onnx_ir as ir
import parameterized

from reshape_inference import _context, _shape_algebra
from reshape_inference._testing import dims


class CollapseShapeTest(unittest.TestCase):
    @parameterized.parameterized.expand(
        [
            ("leading_pair", [2, 3, 4], [[0, 1], [2]], [6, 4]),
            ("trailing_pair", [2, 3, 4], [[0], [1, 2]], [2, 12]),
            ("all", [2, 3, 4], [[0, 1, 2]], [24]),
            ("dynamic_in_band", [2, None, 4], [[0, 1], [2]], [None, 4]),
            ("dynamic_outside_band", [2, 3, None], [[0, 1], [2]], [6, None]),
            ("named_dynamic", ["batch", 8], [[0, 1]], [None]),
            ("zero_extent", [0, 5], [[0, 1]], [0]),
            ("to_rank_zero", [1, 1], [], []),
            ("empty_group", [2, 3, 4], [[0, 1, 2], []], [24, 1]),
        ]
    )
    def test_collapse_shape(self, _name, source, reassociation, expected):
        result = _shape_algebra.collapse_shape(source, reassociation)
        self.assertEqual(dims(result), expected)

    def test_accepts_ir_shape(self):
        result = _shape_algebra.collapse_shape(ir.Shape([4, 5]), ((0, 1),))
        self.assertEqual(dims(result), [20])


class ExpandShapeTest(unittest.TestCase):
    def test_static_expansion(self):
        result = _shape_algebra.expand_shape([6, 4], ((0, 1), (2,)), [2, 3, 4])
        self.assertEqual(dims(result), [2, 3, 4])

    def test_one_dynamic_position_per_group(self):
        result = _shape_algebra.expand_shape([None, 4], ((0, 1), (2,)), [2, "n", 4])
        self.assertEqual(dims(result), [2, "n", 4])

    def test_two_dynamic_positions_are_ambiguous(self):
        with self.assertRaises(_context.AmbiguousDynamicSplitError) as cm:
            _shape_algebra.expand_shape([None], ((0, 1, 2),), [None, 3, None])
        self.assertEqual(cm.exception.group_index, 0)
        self.assertEqual(cm.exception.positions, (0, 2))

    def test_ambiguous_positions_are_absolute(self):
        with self.assertRaises(_context.AmbiguousDynamicSplitError) as cm:
            _shape_algebra.expand_shape([5, None], ((0,), (1, 2, 3)), [5, None, 7, None])
        self.assertEqual(cm.exception.group_index, 1)
        self.assertEqual(cm.exception.positions, (1, 3))

    def test_static_product_mismatch(self):
        with self.assertRaises(_context.ShapeMismatchError) as cm:
            _shape_algebra.expand_shape([6], ((0, 1),), [2, 4])
        self.assertEqual(cm.exception.dim_index, 0)
        self.assertEqual(cm.exception.expected, 8)
        self.assertEqual(cm.exception.actual, 6)

    def test_dynamic_position_requires_dynamic_source(self):
        with self.assertRaises(_context.ShapeMismatchError) as cm:
            _shape_algebra.expand_shape([12], ((0, 1),), [3, None])
        self.assertIn("to be dynamic", str(cm.exception))


class VerifyReshapeShapesTest(unittest.TestCase):
    def _verify(self, collapsed, expanded, reassociation, *, is_expanding=False):
        ctx = _context.ShapeCheckContext("skip")
        ok = _shape_algebra.verify_reshape_shapes(
            ir.Shape(collapsed),
            ir.Shape(expanded),
            reassociation,
            is_expanding=is_expanding,
            ctx=ctx,
        )
        return ok, ctx.errors

    def test_matching_shapes(self):
        ok, errors = self._verify([6, None], [2, 3, None], ((0, 1), (2,)))
        self.assertTrue(ok)
        self.assertEqual(errors, [])

    def test_static_declared_for_dynamic_band(self):
        ok, errors = self._verify([6], [2, None], ((0, 1),))
        self.assertFalse(ok)
        self.assertIsInstance(errors[0], _context.ShapeMismatchError)
        self.assertIn("to be dynamic", errors[0].message)

    def test_dynamic_declared_for_static_band(self):
        ok, errors = self._verify([None], [2, 3], ((0, 1),))
        self.assertFalse(ok)
        self.assertEqual(errors[0].expected, 6)
        self.assertIn("static value of 6", str(errors[0]))

    def test_collapse_allows_several_dynamic_members(self):
        ok, _ = self._verify([None], [None, None], ((0, 1),))
        self.assertTrue(ok)

    def test_expand_rejects_several_dynamic_members(self):
        ok, errors = self._verify([None], [None, None], ((0, 1),), is_expanding=True)
        self.assertFalse(ok)
        self.assertIsInstance(errors[0], _context.AmbiguousDynamicSplitError)

    def test_collects_every_mismatch(self):
        ok, errors = self._verify([5, 7, 4], [2, 3, 7, 2, 2], ((0, 1), (2,), (3, 4)))
        self.assertFalse(ok)
        self.assertEqual([e.dim_index for e in errors], [0])
        ok, errors = self._verify([5, 8, 4], [2, 3, 7, 2, 2], ((0, 1), (2,), (3, 4)))
        self.assertEqual([e.dim_index for e in errors], [0, 1])


class VerifyReshapeTypesTest(unittest.TestCase):
    @parameterized.parameterized.expand(
        [
            ("collapse", [2, 3, 4], [6, 4], [[0, 1], [2]], "collapse"),
            ("expand", [6, 4], [2, 3, 4], [[0, 1], [2]], "expand"),
            ("direction_inferred", [6, 4], [2, 3, 4], [[0, 1], [2]], None),
            ("units_to_rank_zero", [1, 1, 1], [], [], "collapse"),
            ("rank_zero_to_units", [], [1, 1], [], "expand"),
            ("dynamic_collapse", [None, 8], [None], [[0, 1]], "collapse"),
            ("expand_through_empty_group", [24, 1], [2, 3, 4], [[0, 1, 2], []], "expand"),
        ]
    )
    def test_valid(self, _name, source, result, reassociation, direction):
        self.assertTrue(
            _shape_algebra.verify_reshape_types(source, result, reassociation, direction)
        )

    @parameterized.parameterized.expand(
        [
            ("same_rank", [2, 3], [3, 2], [[0], [1]], None, _context.RankMismatchError),
            ("both_rank_zero", [], [], [], None, _context.RankMismatchError),
            (
                "wrong_direction",
                [2, 3, 4],
                [6, 4],
                [[0, 1], [2]],
                "expand",
                _context.RankMismatchError,
            ),
            ("group_count", [2, 3, 4], [24], [[0, 1], [2]], None, _context.RankMismatchError),
            ("non_unit_to_rank_zero", [1, 2, 1], [], [], None, _context.RankMismatchError),
            ("dynamic_to_rank_zero", [1, None], [], [], None, _context.RankMismatchError),
            (
                "bad_reassociation",
                [2, 3, 4],
                [6, 4],
                [[0, 2], [1]],
                None,
                _context.InvalidReassociationError,
            ),
            ("bad_extent", [2, 3, 4], [5, 4], [[0, 1], [2]], None, _context.ShapeMismatchError),
            (
                "non_unit_empty_group",
                [24, 2],
                [2, 3, 4],
                [[0, 1, 2], []],
                None,
                _context.ShapeMismatchError,
            ),
        ]
    )
    def test_invalid(self, _name, source, result, reassociation, direction, error_type):
        with self.assertRaises(error_type):
            _shape_algebra.verify_reshape_types(source, result, reassociation, direction)

    def test_structural_error_stops_check_in_skip_mode(self):
        ctx = _context.ShapeCheckContext("skip")
        ok = _shape_algebra.verify_reshape_types(
            [2, 3, 4], [5, 4], [[0, 2], [1]], ctx=ctx
        )
        self.assertFalse(ok)
        self.assertEqual(len(ctx.errors), 1)
        self.assertIsInstance(ctx.errors[0], _context.InvalidReassociationError)


class ProvenanceTest(unittest.TestCase):
    def test_collapse_provenance(self):
        provenance = _shape_algebra.collapse_provenance(((0, 1), (2,)))
        self.assertEqual([p.source_dims for p in provenance], [(0, 1), (2,)])
        self.assertTrue(all(p.arithmetic == "product" for p in provenance))

    def test_expand_provenance(self):
        provenance = _shape_algebra.expand_provenance(
            ((0, 1, 2), (3,)), ir.Shape([2, None, 3, 4])
        )
        self.assertEqual(
            [p.arithmetic for p in provenance], ["constant", "floordiv", "constant", "constant"]
        )
        self.assertEqual(provenance[1].divisor, 6)
        self.assertEqual(provenance[3].source_dims, (1,))


if __name__ == "__main__":
    unittest.main()
