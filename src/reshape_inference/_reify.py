# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Runtime shape reification for reshapes.

Static extents reify to plain integers. A dynamic source extent is fetched
through a caller-provided accessor, which may return a concrete ``int`` or
any SymPy expression standing for the runtime value. The default accessor
returns one integer symbol per dynamic source dimension.
"""

from __future__ import annotations

__all__ = [
    "DimAccessor",
    "default_dim_accessor",
    "evaluate_shape",
    "reify_collapsed_shape",
    "reify_expanded_shape",
    "reify_result_shape",
]

from collections.abc import Callable, Mapping, Sequence

import sympy

from reshape_inference import _context, _types

DimValue = int | sympy.Expr
DimAccessor = Callable[[int], DimValue]
"""Returns the runtime size of a (dynamic) source dimension by index."""


def _dim_symbol(name: str) -> sympy.Symbol:
    return sympy.Symbol(name, integer=True, positive=True)


def default_dim_accessor(source_shape: _types.ShapeLike) -> DimAccessor:
    """Create an accessor returning a symbol for every source dimension.

    Named dims whose name is a valid identifier reuse that name; all other
    dims get ``_d{k}`` where ``k`` is the dimension index.
    """
    dims = _types.as_shape(source_shape).dims

    def accessor(index: int) -> DimValue:
        dim = dims[index]
        if _types.is_static_dim(dim):
            return dim
        name = dim.value
        if name is not None and name.isidentifier():
            return _dim_symbol(name)
        return _dim_symbol(f"_d{index}")

    return accessor


def _source_value(
    dims: Sequence[object], index: int, dim_value: DimAccessor
) -> DimValue:
    dim = dims[index]
    if _types.is_static_dim(dim):
        return dim  # type: ignore[return-value]
    return dim_value(index)


def reify_collapsed_shape(
    source_shape: _types.ShapeLike,
    reassociation: _types.Reassociation,
    dim_value: DimAccessor | None = None,
) -> list[DimValue]:
    """Runtime extents of a collapsed result.

    Each result extent is the left-to-right product of its band, using the
    static extent where known and the accessor otherwise. The accessor is
    only called for dynamic source dims.
    """
    shape = _types.as_shape(source_shape)
    if dim_value is None:
        dim_value = default_dim_accessor(shape)
    dims = shape.dims
    values: list[DimValue] = []
    for group in reassociation:
        product: DimValue = 1
        for index in group:
            product = product * _source_value(dims, index, dim_value)
        values.append(product)
    return values


def reify_expanded_shape(
    source_shape: _types.ShapeLike,
    reassociation: _types.Reassociation,
    result_shape: _types.ShapeLike,
    dim_value: DimAccessor | None = None,
) -> list[DimValue]:
    """Runtime extents of an expanded result.

    Declared static extents are emitted as is. The unique dynamic extent of a
    group is the source extent floor-divided by the product of the other
    extents of the group. A zero static factor makes the dynamic extent 0.

    Raises:
        AmbiguousDynamicSplitError: If a group has two dynamic extents.
    """
    shape = _types.as_shape(source_shape)
    result_dims = _types.as_shape(result_shape).dims
    if dim_value is None:
        dim_value = default_dim_accessor(shape)
    if not reassociation:
        # Expanding a rank-0 source: every declared extent is a static 1.
        return list(result_dims)
    values: list[DimValue] = [0] * len(result_dims)
    for group_index, group in enumerate(reassociation):
        dynamic_positions = [p for p in group if not _types.is_static_dim(result_dims[p])]
        if len(dynamic_positions) > 1:
            raise _context.AmbiguousDynamicSplitError(
                group_index, (dynamic_positions[0], dynamic_positions[1])
            )
        for position in group:
            dim = result_dims[position]
            if _types.is_static_dim(dim):
                values[position] = dim
                continue
            divisor = 1
            for other in group:
                if other != position:
                    divisor *= result_dims[other]
            source = _source_value(shape.dims, group_index, dim_value)
            values[position] = _floor_div(source, divisor)
    return values


def _floor_div(value: DimValue, divisor: int) -> DimValue:
    if divisor == 0:
        # A zero static factor forces a zero source extent.
        return 0
    if divisor == 1:
        return value
    if isinstance(value, int):
        return value // divisor
    return sympy.floor(value / divisor)


def reify_result_shape(
    descriptor: _types.ReshapeDescriptor,
    dim_value: DimAccessor | None = None,
) -> list[DimValue]:
    """Reify the result extents of *descriptor* in result dimension order."""
    if descriptor.direction == "collapse":
        return reify_collapsed_shape(
            descriptor.source_shape, descriptor.reassociation, dim_value
        )
    if descriptor.result_shape is None:
        raise _context.ReshapeUsageError("an expanding reshape must declare its result shape")
    return reify_expanded_shape(
        descriptor.source_shape,
        descriptor.reassociation,
        descriptor.result_shape,
        dim_value,
    )


def evaluate_shape(
    values: Sequence[DimValue],
    bindings: Mapping[str, int],
) -> list[DimValue]:
    """Substitute concrete sizes into reified extents.

    Args:
        values: Reified extents.
        bindings: A mapping from symbol names to integer values.

    Returns:
        The extents with every bound symbol replaced. Fully evaluated extents
        are returned as ``int``.

    Example::

        >>> evaluate_shape(reify_collapsed_shape([None, 8], ((0, 1),)), {"_d0": 5})
        [40]
    """
    evaluated: list[DimValue] = []
    for value in values:
        if isinstance(value, int):
            evaluated.append(value)
            continue
        subs = {
            symbol: bindings[str(symbol)]
            for symbol in value.free_symbols
            if str(symbol) in bindings
        }
        result = value.subs(subs)
        if result.is_number and result.is_integer:
            evaluated.append(int(result))
        else:
            evaluated.append(result)
    return evaluated
