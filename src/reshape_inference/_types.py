# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Value types shared by the reshape inference components."""

from __future__ import annotations

__all__ = [
    "DimProvenance",
    "Reassociation",
    "ReshapeDescriptor",
    "ReshapeDirection",
    "ReshapeResult",
    "ShapeLike",
    "StridedLayout",
    "UnrepresentableLayout",
    "as_shape",
    "dynamic_dim",
    "is_static_dim",
    "normalize_reassociation",
]

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal, TypeAlias

import onnx_ir as ir

ReshapeDirection = Literal["collapse", "expand"]
"""Whether a reshape merges groups of dims (collapse) or splits dims (expand)."""

Reassociation: TypeAlias = tuple[tuple[int, ...], ...]

ShapeLike: TypeAlias = ir.Shape | Sequence[int | str | ir.SymbolicDim | None]


def is_static_dim(dim: object) -> bool:
    """Return whether *dim* is a statically known extent."""
    return isinstance(dim, int) and not isinstance(dim, bool)


def dynamic_dim() -> ir.SymbolicDim:
    """Return a fresh anonymous dynamic extent."""
    return ir.SymbolicDim(None)


def as_shape(shape: ShapeLike) -> ir.Shape:
    """Normalize a shape-like sequence into an :class:`ir.Shape`.

    Strings become named symbolic dims and ``None`` becomes an anonymous one.
    """
    if isinstance(shape, ir.Shape):
        return shape
    return ir.Shape(list(shape))


def normalize_reassociation(reassociation: Sequence[Sequence[int]]) -> Reassociation:
    """Convert nested sequences into the canonical tuple-of-tuples form.

    Entries are kept as given; use :func:`validate_reassociation` to check them.
    """
    return tuple(tuple(group) for group in reassociation)


@dataclass(frozen=True)
class StridedLayout:
    """Per-dimension strides plus a base offset.

    ``None`` marks a stride or offset only known at runtime.
    """

    strides: tuple[int | None, ...]
    offset: int | None = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "strides", tuple(self.strides))

    @property
    def rank(self) -> int:
        return len(self.strides)

    @classmethod
    def contiguous(cls, shape: ShapeLike) -> StridedLayout:
        """The canonical row-major layout of *shape* with a zero offset.

        A stride is dynamic once any extent inside of it is dynamic.
        """
        dims = as_shape(shape).dims
        strides: list[int | None] = []
        running: int | None = 1
        for dim in reversed(dims):
            strides.append(running)
            if running is not None and is_static_dim(dim):
                running *= dim
            else:
                running = None
        strides.reverse()
        return cls(tuple(strides), 0)


@dataclass(frozen=True)
class UnrepresentableLayout:
    """Marker for a result whose layout has no closed strided form.

    Callers must treat such a result as an opaque view (or copy it).

    Attributes:
        offset: The source offset, carried through unchanged.
        dims: Result dimensions whose source band could not be merged.
    """

    offset: int | None
    dims: tuple[int, ...] = ()


@dataclass(frozen=True)
class DimProvenance:
    """How one result extent is obtained from the source shape.

    Attributes:
        source_dims: Source dimensions feeding this extent.
        arithmetic: ``"product"`` of the source band, a declared ``"constant"``,
            or ``"floordiv"`` of the single source dim by :attr:`divisor`.
        divisor: Product of the other declared extents of the group.
    """

    source_dims: tuple[int, ...]
    arithmetic: Literal["product", "constant", "floordiv"]
    divisor: int = 1


@dataclass(frozen=True)
class ReshapeDescriptor:
    """Everything needed to infer or verify one reshape.

    Attributes:
        direction: ``"collapse"`` or ``"expand"``.
        source_shape: Shape of the reshaped operand.
        reassociation: Groups of indices into the higher-rank side.
        layout: Strided layout of the source, ``None`` for the identity layout.
        result_shape: Declared result shape. Required when expanding.
    """

    direction: ReshapeDirection
    source_shape: ir.Shape
    reassociation: Reassociation
    layout: StridedLayout | None = None
    result_shape: ir.Shape | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_shape", as_shape(self.source_shape))
        object.__setattr__(
            self, "reassociation", normalize_reassociation(self.reassociation)
        )
        if self.result_shape is not None:
            object.__setattr__(self, "result_shape", as_shape(self.result_shape))

    @property
    def expanded_shape(self) -> ir.Shape | None:
        return self.source_shape if self.direction == "collapse" else self.result_shape

    @property
    def collapsed_shape(self) -> ir.Shape | None:
        return self.result_shape if self.direction == "collapse" else self.source_shape


@dataclass(frozen=True)
class ReshapeResult:
    """The inferred shape and layout of a reshape."""

    shape: ir.Shape
    layout: StridedLayout | UnrepresentableLayout | None = None
    provenance: tuple[DimProvenance, ...] = field(default=())

    @property
    def requires_dynamic_layout(self) -> bool:
        return isinstance(self.layout, UnrepresentableLayout)
