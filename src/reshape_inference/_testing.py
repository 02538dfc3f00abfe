# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Common test infrastructure for reshape inference tests."""

from __future__ import annotations

from collections.abc import Sequence

import onnx_ir as ir

from reshape_inference import _types


def dims(shape: ir.Shape) -> list[int | str | None]:
    """Flatten an :class:`ir.Shape` into plain Python values.

    Static extents stay ``int``, named dims become their name and anonymous
    dims become ``None``, which keeps assertions short::

        dims(ir.Shape([6, None, "batch"]))  # [6, None, "batch"]
    """
    return [d if isinstance(d, int) else d.value for d in shape.dims]


def collapse(
    source: Sequence[int | str | None],
    reassociation: Sequence[Sequence[int]],
    *,
    layout: Sequence[int | None] | None = None,
    offset: int | None = 0,
    result: Sequence[int | str | None] | None = None,
) -> _types.ReshapeDescriptor:
    """Create a collapsing :class:`ReshapeDescriptor`.

    Args:
        source: Source shape.
        reassociation: Groups of source dimensions.
        layout: Source strides; ``None`` for the identity layout.
        offset: Source offset, used only with *layout*.
        result: Declared result shape, if any.
    """
    return _types.ReshapeDescriptor(
        "collapse",
        ir.Shape(list(source)),
        reassociation,
        layout=_types.StridedLayout(tuple(layout), offset) if layout is not None else None,
        result_shape=ir.Shape(list(result)) if result is not None else None,
    )


def expand(
    source: Sequence[int | str | None],
    reassociation: Sequence[Sequence[int]],
    result: Sequence[int | str | None],
    *,
    layout: Sequence[int | None] | None = None,
    offset: int | None = 0,
) -> _types.ReshapeDescriptor:
    """Create an expanding :class:`ReshapeDescriptor`."""
    return _types.ReshapeDescriptor(
        "expand",
        ir.Shape(list(source)),
        reassociation,
        layout=_types.StridedLayout(tuple(layout), offset) if layout is not None else None,
        result_shape=ir.Shape(list(result)),
    )
