# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Reshape inference engine.

This module ties the reassociation validator, the shape algebra and the
layout checker together behind two entry points: :func:`infer_reshape`, which
raises on the first problem, and :func:`verify_reshape`, which can collect
every problem of a reshape.
"""

from __future__ import annotations

__all__ = [
    "infer_reshape",
    "verify_reshape",
]

import logging

import onnx_ir as ir

from reshape_inference import _context, _layout, _shape_algebra, _types

logger = logging.getLogger(__name__)


def infer_reshape(descriptor: _types.ReshapeDescriptor) -> _types.ReshapeResult:
    """Infer the result shape and layout of a reshape.

    When the descriptor declares a result shape, it is verified against the
    inferred one and returned (keeping its dimension names).

    Args:
        descriptor: The reshape to infer.

    Returns:
        The result shape, the result layout (``None`` when the source has no
        layout) and the provenance of every result extent.

    Raises:
        ReshapeUsageError: If the descriptor is malformed.
        ReshapeError: If the reshape is illegal.

    Example::

        from reshape_inference import ReshapeDescriptor, StridedLayout, infer_reshape

        result = infer_reshape(
            ReshapeDescriptor(
                "collapse",
                [2, 3, 4],
                [[0, 1], [2]],
                layout=StridedLayout((12, 4, 1)),
            )
        )
        assert result.shape == [6, 4]
    """
    ctx = _context.ShapeCheckContext("strict")
    result = _run(ctx, descriptor)
    assert result is not None
    return result


def verify_reshape(
    descriptor: _types.ReshapeDescriptor,
    *,
    policy: _context.ShapeCheckPolicy = "skip",
) -> list[_context.ReshapeError]:
    """Verify a reshape and return the errors found.

    Args:
        descriptor: The reshape to verify.
        policy: ``"skip"`` collects every error that can be found in one
            pass; ``"strict"`` raises the first one.

    Returns:
        The recorded errors; empty when the reshape is legal.

    Raises:
        ReshapeUsageError: If the descriptor is malformed.
    """
    ctx = _context.ShapeCheckContext(policy)
    _run(ctx, descriptor)
    return list(ctx.errors)


def _check_descriptor(descriptor: _types.ReshapeDescriptor) -> None:
    if descriptor.direction not in ("collapse", "expand"):
        raise _context.ReshapeUsageError(
            f"Unknown reshape direction {descriptor.direction!r}, "
            "expected 'collapse' or 'expand'"
        )
    if descriptor.direction == "expand" and descriptor.result_shape is None:
        raise _context.ReshapeUsageError("An expanding reshape must declare its result shape")
    layout = descriptor.layout
    if layout is not None and layout.rank != descriptor.source_shape.rank():
        raise _context.ReshapeUsageError(
            f"Layout has {layout.rank} strides but the source has rank "
            f"{descriptor.source_shape.rank()}"
        )


def _run(
    ctx: _context.ShapeCheckContext,
    descriptor: _types.ReshapeDescriptor,
) -> _types.ReshapeResult | None:
    """Run inference, returning ``None`` if an error was recorded."""
    _check_descriptor(descriptor)
    logger.debug(
        "Inferring %s reshape of %s with %s",
        descriptor.direction,
        descriptor.source_shape,
        descriptor.reassociation,
    )
    try:
        if not _verify(ctx, descriptor):
            return None
        if descriptor.direction == "collapse":
            result = _infer_collapse(ctx, descriptor)
        else:
            result = _infer_expand(descriptor)
    except (_context.ReshapeError, _context.ReshapeUsageError):
        raise
    except Exception as e:
        raise _context.ReshapeError(
            f"Reshape inference failed for source shape {descriptor.source_shape}",
            direction=descriptor.direction,
        ) from e
    if result is not None:
        logger.debug("Inferred %s with layout %s", result.shape, result.layout)
    return result


def _verify(ctx: _context.ShapeCheckContext, descriptor: _types.ReshapeDescriptor) -> bool:
    source = descriptor.source_shape
    if descriptor.result_shape is not None:
        return _shape_algebra.verify_reshape_types(
            source,
            descriptor.result_shape,
            descriptor.reassociation,
            descriptor.direction,
            ctx=ctx,
        )
    # A collapse without a declared result: only the structure can be checked.
    if not _shape_algebra.verify_reshape_structure(
        source.rank(),
        len(descriptor.reassociation),
        descriptor.reassociation,
        descriptor.direction,
        ctx=ctx,
    ):
        return False
    if not descriptor.reassociation:
        return _shape_algebra.verify_rank_zero_extents(source, ctx=ctx, direction="collapse")
    return True


def _infer_collapse(
    ctx: _context.ShapeCheckContext,
    descriptor: _types.ReshapeDescriptor,
) -> _types.ReshapeResult | None:
    reassociation = descriptor.reassociation
    layout: _types.StridedLayout | _types.UnrepresentableLayout | None
    if descriptor.layout is None:
        shape = _shape_algebra.collapse_shape(descriptor.source_shape, reassociation)
        layout = None
    else:
        shape, layout = _layout.collapse_layout(
            descriptor.source_shape, descriptor.layout, reassociation
        )

    declared = descriptor.result_shape
    if declared is not None:
        if not _check_declared(ctx, shape, declared):
            return None
        shape = declared
    return _types.ReshapeResult(
        shape, layout, _shape_algebra.collapse_provenance(reassociation)
    )


def _check_declared(
    ctx: _context.ShapeCheckContext, inferred: ir.Shape, declared: ir.Shape
) -> bool:
    # The layout can force extents to be dynamic beyond what the shapes say.
    ok = True
    for i, (expected, actual) in enumerate(zip(inferred.dims, declared.dims)):
        expected_static = _types.is_static_dim(expected)
        if expected_static == _types.is_static_dim(actual) and (
            not expected_static or expected == actual
        ):
            continue
        ctx.record_error(
            _context.ShapeMismatchError(i, expected, actual, direction="collapse")
        )
        ok = False
    return ok


def _infer_expand(descriptor: _types.ReshapeDescriptor) -> _types.ReshapeResult:
    declared = descriptor.result_shape
    assert declared is not None
    layout: _types.StridedLayout | _types.UnrepresentableLayout | None = None
    if descriptor.layout is not None:
        layout = _layout.expand_layout(
            descriptor.source_shape, descriptor.layout, descriptor.reassociation, declared
        )
    return _types.ReshapeResult(
        declared,
        layout,
        _shape_algebra.expand_provenance(descriptor.reassociation, declared),
    )
