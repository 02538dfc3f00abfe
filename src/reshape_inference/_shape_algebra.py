# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Result shapes of collapsing and expanding reshapes.

A collapsing reshape merges every group of source dimensions into one result
dimension whose extent is the product of the group. An expanding reshape
splits one source dimension into the declared extents of its group; at most
one of those may be dynamic, since otherwise the split is ambiguous.
"""

from __future__ import annotations

__all__ = [
    "band_extent",
    "collapse_provenance",
    "collapse_shape",
    "expand_provenance",
    "expand_shape",
    "verify_rank_zero_extents",
    "verify_reshape_shapes",
    "verify_reshape_structure",
    "verify_reshape_types",
]

import math
from collections.abc import Sequence

import onnx_ir as ir

from reshape_inference import _context, _reassociation, _types


def collapse_shape(
    source_shape: _types.ShapeLike,
    reassociation: _types.Reassociation,
) -> ir.Shape:
    """Compute the collapsed shape of *source_shape*.

    A result extent is the product of its band, or dynamic as soon as one
    member of the band is dynamic. The reassociation must already be valid.

    Example::

        >>> collapse_shape([2, 3, 4], ((0, 1), (2,)))
        Shape([6, 4])
        >>> collapse_shape([None, 8], ((0, 1),))
        Shape([SymbolicDim(None)])
    """
    dims = _types.as_shape(source_shape).dims
    return ir.Shape([band_extent([dims[d] for d in group]) for group in reassociation])


def band_extent(band: Sequence[int | ir.SymbolicDim]) -> int | ir.SymbolicDim:
    """Product of a band of extents; one dynamic member makes it dynamic."""
    if all(_types.is_static_dim(d) for d in band):
        return math.prod(band)
    return _types.dynamic_dim()


def expand_shape(
    source_shape: _types.ShapeLike,
    reassociation: _types.Reassociation,
    declared_shape: _types.ShapeLike,
) -> ir.Shape:
    """Check the declared expansion of *source_shape* and return it.

    Declared extents are ground truth. Each group may hold at most one
    dynamic extent, a dynamic extent requires the split source dimension to
    be dynamic, and a fully static group must multiply to the source extent.
    The reassociation must already be valid.

    Raises:
        AmbiguousDynamicSplitError: If a group has two dynamic extents.
        ShapeMismatchError: If a group disagrees with its source extent.
    """
    declared = _types.as_shape(declared_shape)
    verify_reshape_shapes(
        _types.as_shape(source_shape),
        declared,
        reassociation,
        is_expanding=True,
        ctx=_context.ShapeCheckContext("strict"),
    )
    return declared


def verify_reshape_shapes(
    collapsed_shape: ir.Shape,
    expanded_shape: ir.Shape,
    reassociation: _types.Reassociation,
    *,
    is_expanding: bool,
    ctx: _context.ShapeCheckContext,
) -> bool:
    """Cross-check a collapsed shape against the expanded shape it pairs with.

    For every group:

    1. If the expanded band is fully static, the collapsed extent must be the
       static product of the band.
    2. If the band has a dynamic member, the collapsed extent must be dynamic.
       When expanding, the band may not hold more than one dynamic member.

    Returns:
        ``True`` if no error was recorded.
    """
    direction = "expand" if is_expanding else "collapse"
    collapsed_dims = collapsed_shape.dims
    expanded_dims = expanded_shape.dims
    ok = True
    start = 0
    for group_index, group in enumerate(reassociation):
        band = expanded_dims[start : start + len(group)]
        dynamic_position: int | None = None
        static_product = 1
        ambiguous = False
        for offset, dim in enumerate(band):
            if _types.is_static_dim(dim):
                static_product *= dim
                continue
            if is_expanding and dynamic_position is not None:
                ctx.record_error(
                    _context.AmbiguousDynamicSplitError(
                        group_index,
                        (start + dynamic_position, start + offset),
                        direction=direction,
                    )
                )
                ambiguous = True
                break
            dynamic_position = offset
        start += len(group)
        if ambiguous:
            ok = False
            continue

        declared = collapsed_dims[group_index]
        if dynamic_position is not None:
            if _types.is_static_dim(declared):
                ctx.record_error(
                    _context.ShapeMismatchError(
                        group_index,
                        _types.dynamic_dim(),
                        declared,
                        f"expected dimension {group_index} of collapsed type to be dynamic "
                        "since one or more of the corresponding dimensions in the expanded "
                        "type is dynamic",
                        direction=direction,
                    )
                )
                ok = False
        elif not _types.is_static_dim(declared) or declared != static_product:
            ctx.record_error(
                _context.ShapeMismatchError(
                    group_index, static_product, declared, direction=direction
                )
            )
            ok = False
    return ok


def verify_reshape_structure(
    source_rank: int,
    result_rank: int,
    reassociation: _types.Reassociation,
    direction: _types.ReshapeDirection | None = None,
    *,
    ctx: _context.ShapeCheckContext,
) -> bool:
    """Verify ranks, group count and reassociation of a reshape.

    The higher-rank side is the expanded one. When *direction* is given it
    must agree with the ranks. A rank-0 collapsed side skips the
    reassociation check; see :func:`verify_rank_zero_extents`.

    Returns:
        ``True`` if no error was recorded.
    """
    is_collapse = source_rank > result_rank
    inferred_direction = "collapse" if is_collapse else "expand"
    expanded_rank, collapsed_rank = (
        (source_rank, result_rank) if is_collapse else (result_rank, source_rank)
    )

    if expanded_rank == 0:
        ctx.record_error(
            _context.RankMismatchError("expected non-zero ranks", direction=direction)
        )
        return False
    if expanded_rank == collapsed_rank:
        ctx.record_error(
            _context.RankMismatchError(
                f"expected to collapse or expand dims, but both ranks are {expanded_rank}",
                direction=direction,
            )
        )
        return False
    if direction is not None and direction != inferred_direction:
        ctx.record_error(
            _context.RankMismatchError(
                f"cannot go from rank {source_rank} to rank {result_rank}",
                direction=direction,
            )
        )
        return False
    if collapsed_rank != len(reassociation):
        ctx.record_error(
            _context.RankMismatchError(
                f"expected rank of the collapsed type ({collapsed_rank}) to be the "
                f"number of reassociation groups ({len(reassociation)})",
                direction=inferred_direction,
            )
        )
        return False
    if collapsed_rank == 0:
        return True

    invalid_index = _reassociation.find_invalid_group(reassociation, expanded_rank)
    if invalid_index is not None:
        ctx.record_error(
            _context.InvalidReassociationError(invalid_index, direction=inferred_direction)
        )
        return False
    return True


def verify_rank_zero_extents(
    expanded_shape: ir.Shape,
    *,
    ctx: _context.ShapeCheckContext,
    direction: _types.ReshapeDirection | None = None,
) -> bool:
    """Only all-unit static shapes can be reshaped to or from rank 0."""
    for dim in expanded_shape.dims:
        if not (_types.is_static_dim(dim) and dim == 1):
            ctx.record_error(
                _context.RankMismatchError(
                    "invalid to reshape tensor/memref with non-unit extent "
                    "dimensions to zero-rank tensor/memref",
                    direction=direction,
                )
            )
            return False
    return True


def verify_reshape_types(
    source_shape: _types.ShapeLike,
    result_shape: _types.ShapeLike,
    reassociation: _types.Reassociation,
    direction: _types.ReshapeDirection | None = None,
    *,
    ctx: _context.ShapeCheckContext | None = None,
) -> bool:
    """Verify the ranks, the reassociation and the extents of a reshape.

    Structural errors (ranks, group count, reassociation) stop the check,
    since the extent cross-check depends on them.

    Args:
        source_shape: Shape of the reshaped operand.
        result_shape: Declared result shape.
        reassociation: Groups of expanded-side dimension indices.
        direction: The direction the caller intends, if known.
        ctx: Context that receives the errors. Defaults to a strict one.

    Returns:
        ``True`` if no error was recorded.

    Raises:
        ReshapeError: Under the ``"strict"`` policy, on the first error.
    """
    if ctx is None:
        ctx = _context.ShapeCheckContext("strict")
    source = _types.as_shape(source_shape)
    result = _types.as_shape(result_shape)
    reassociation = _types.normalize_reassociation(reassociation)
    if not verify_reshape_structure(
        source.rank(), result.rank(), reassociation, direction, ctx=ctx
    ):
        return False

    is_collapse = source.rank() > result.rank()
    expanded, collapsed = (source, result) if is_collapse else (result, source)
    if collapsed.rank() == 0:
        return verify_rank_zero_extents(
            expanded, ctx=ctx, direction="collapse" if is_collapse else "expand"
        )
    return verify_reshape_shapes(
        collapsed, expanded, reassociation, is_expanding=not is_collapse, ctx=ctx
    )


def collapse_provenance(reassociation: _types.Reassociation) -> tuple[_types.DimProvenance, ...]:
    """Every collapsed extent is the product of its band."""
    return tuple(_types.DimProvenance(tuple(group), "product") for group in reassociation)


def expand_provenance(
    reassociation: _types.Reassociation,
    expanded_shape: ir.Shape,
) -> tuple[_types.DimProvenance, ...]:
    """Describe each expanded extent as a constant or a floor division."""
    dims = expanded_shape.dims
    if not reassociation:
        return tuple(_types.DimProvenance((), "constant") for _ in dims)
    provenance: list[_types.DimProvenance] = []
    for group_index, group in enumerate(reassociation):
        for position in group:
            if _types.is_static_dim(dims[position]):
                provenance.append(_types.DimProvenance((group_index,), "constant"))
                continue
            divisor = math.prod(dims[d] for d in group if d != position)
            provenance.append(_types.DimProvenance((group_index,), "floordiv", divisor))
    return tuple(provenance)
