# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Strided layout compatibility of reshapes.

A band of source dimensions can be merged without a copy when every adjacent
pair nests in row-major order: the outer stride equals the inner stride times
the inner extent. Dynamic extents carry no relation to dynamic strides, so a
dynamic member makes the nesting unprovable.
"""

from __future__ import annotations

__all__ = [
    "collapse_layout",
    "expand_layout",
    "is_contiguous",
    "is_reshapable_band",
]

import logging
from collections.abc import Sequence

import onnx_ir as ir

from reshape_inference import _shape_algebra, _types

logger = logging.getLogger(__name__)


def is_contiguous(shape: _types.ShapeLike, layout: _types.StridedLayout | None) -> bool:
    """Return whether *layout* is provably the canonical row-major layout of *shape*.

    ``None`` is the identity layout and is always contiguous. A dynamic
    stride or offset is never provably canonical.
    """
    if layout is None:
        return True
    canonical = _types.StridedLayout.contiguous(shape)
    if layout.rank != canonical.rank or layout.offset != 0:
        return False
    return all(
        actual is not None and actual == expected
        for actual, expected in zip(layout.strides, canonical.strides)
    )


def is_reshapable_band(
    lo: int,
    hi: int,
    dims: Sequence[int | ir.SymbolicDim],
    strides: Sequence[int | None],
) -> bool:
    """Detect whether dims ``[lo, hi]`` can be merged without a copy."""
    if len(dims) != len(strides):
        raise ValueError(f"mismatched ranks: {len(dims)} dims vs {len(strides)} strides")
    for idx in range(lo, hi):
        inner_extent = dims[idx + 1]
        if not _types.is_static_dim(inner_extent):
            return False
        outer_stride, inner_stride = strides[idx], strides[idx + 1]
        if outer_stride is None or inner_stride is None:
            return False
        if outer_stride != inner_stride * inner_extent:
            return False
    return True


def collapse_layout(
    source_shape: _types.ShapeLike,
    layout: _types.StridedLayout | None,
    reassociation: _types.Reassociation,
) -> tuple[ir.Shape, _types.StridedLayout | _types.UnrepresentableLayout]:
    """Collapse a strided view and derive the layout of the result.

    A contiguous source always yields the canonical contiguous layout of the
    collapsed shape. Otherwise each mergeable band keeps the stride of its
    innermost member, while a band that cannot be merged gets a dynamic extent
    and turns the whole result into an :class:`UnrepresentableLayout`.
    The offset is carried through unchanged.

    The reassociation must already be valid.

    Returns:
        The collapsed shape and its layout.
    """
    shape = _types.as_shape(source_shape)
    if is_contiguous(shape, layout):
        new_shape = _shape_algebra.collapse_shape(shape, reassociation)
        return new_shape, _types.StridedLayout.contiguous(new_shape)

    assert layout is not None
    dims = shape.dims
    new_dims: list[int | ir.SymbolicDim] = []
    new_strides: list[int | None] = []
    non_mergeable: list[int] = []
    for group_index, group in enumerate(reassociation):
        if not group:
            # Unit extent; its stride is never read.
            new_dims.append(1)
            new_strides.append(1)
            continue
        lo, hi = group[0], group[-1]
        if not is_reshapable_band(lo, hi, dims, layout.strides):
            non_mergeable.append(group_index)
            new_dims.append(_types.dynamic_dim())
            new_strides.append(None)
            continue
        new_dims.append(_shape_algebra.band_extent(dims[lo : hi + 1]))
        new_strides.append(layout.strides[hi])

    new_shape = ir.Shape(new_dims)
    if non_mergeable:
        logger.debug(
            "Collapsed bands %s of %s are not mergeable without a copy", non_mergeable, shape
        )
        return new_shape, _types.UnrepresentableLayout(layout.offset, tuple(non_mergeable))
    return new_shape, _types.StridedLayout(tuple(new_strides), layout.offset)


def expand_layout(
    source_shape: _types.ShapeLike,
    layout: _types.StridedLayout | None,
    reassociation: _types.Reassociation,
    expanded_shape: _types.ShapeLike,
) -> _types.StridedLayout | _types.UnrepresentableLayout:
    """Derive the layout of an expanded view.

    Splitting a dimension of stride ``s`` into extents ``(e0, ..., en)``
    gives strides ``(s * e1 * ... * en, ..., s * en, s)``. This needs a
    static collapsed stride and static inner extents; any other group makes
    the result an :class:`UnrepresentableLayout`.
    """
    source = _types.as_shape(source_shape)
    expanded = _types.as_shape(expanded_shape)
    if is_contiguous(source, layout):
        return _types.StridedLayout.contiguous(expanded)

    assert layout is not None
    if not reassociation:
        return _types.StridedLayout(_types.StridedLayout.contiguous(expanded).strides, layout.offset)
    dims = expanded.dims
    new_strides: list[int | None] = []
    unrepresentable: list[int] = []
    for group_index, group in enumerate(reassociation):
        running = layout.strides[group_index]
        group_strides: list[int | None] = []
        for position in reversed(group):
            group_strides.append(running)
            if running is not None and _types.is_static_dim(dims[position]):
                running *= dims[position]
            else:
                running = None
        group_strides.reverse()
        if any(stride is None for stride in group_strides):
            unrepresentable.extend(group)
        new_strides.extend(group_strides)

    if unrepresentable:
        logger.debug("Expanded dims %s of %s have no static stride", unrepresentable, expanded)
        return _types.UnrepresentableLayout(layout.offset, tuple(unrepresentable))
    return _types.StridedLayout(tuple(new_strides), layout.offset)
