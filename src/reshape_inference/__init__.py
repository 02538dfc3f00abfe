# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Reshape type inference and stride compatibility.

This package infers the result of reshapes that collapse groups of dimensions
into one or expand one dimension into several, following a *reassociation*:
the list of contiguous dimension groups of the higher-rank side. It also
decides whether a strided view can be reshaped without a copy, fuses chains
of reshapes and reifies dynamic result extents as SymPy expressions.

Example::

    from reshape_inference import ReshapeDescriptor, infer_reshape, reify_result_shape

    collapse = ReshapeDescriptor("collapse", [None, 8], [[0, 1]])
    result = infer_reshape(collapse)  # Shape([SymbolicDim(None)])

    reify_result_shape(collapse, lambda dim: 5)  # [40]

Fusing two collapses::

    from reshape_inference import fuse_reassociations

    fuse_reassociations([[0, 1], [2], [3, 4]], [[0, 1], [2]], "collapse", "collapse")
    # ((0, 1, 2), (3, 4))
"""

from __future__ import annotations

__all__ = [
    # Main API
    "infer_reshape",
    "verify_reshape",
    # Types
    "DimProvenance",
    "ReshapeDescriptor",
    "ReshapeDirection",
    "ReshapeResult",
    "StridedLayout",
    "UnrepresentableLayout",
    # Errors and policy
    "AmbiguousDynamicSplitError",
    "InvalidReassociationError",
    "RankMismatchError",
    "ReshapeError",
    "ReshapeUsageError",
    "ShapeCheckContext",
    "ShapeCheckPolicy",
    "ShapeMismatchError",
    # Reassociation
    "expanded_to_collapsed_map",
    "find_invalid_group",
    "group_bounds",
    "infer_expanded_rank",
    "reassociation_from_group_sizes",
    "validate_reassociation",
    # Shape algebra
    "collapse_shape",
    "expand_shape",
    "verify_reshape_types",
    # Layout
    "collapse_layout",
    "expand_layout",
    "is_contiguous",
    "is_reshapable_band",
    # Fusion
    "compose_reassociations",
    "fuse_reassociations",
    "fuse_reshapes",
    "reshapes_cancel",
    # Reification
    "default_dim_accessor",
    "evaluate_shape",
    "reify_collapsed_shape",
    "reify_expanded_shape",
    "reify_result_shape",
]

from reshape_inference._context import (
    AmbiguousDynamicSplitError,
    InvalidReassociationError,
    RankMismatchError,
    ReshapeError,
    ReshapeUsageError,
    ShapeCheckContext,
    ShapeCheckPolicy,
    ShapeMismatchError,
)
from reshape_inference._engine import infer_reshape, verify_reshape
from reshape_inference._fusion import (
    compose_reassociations,
    fuse_reassociations,
    fuse_reshapes,
    reshapes_cancel,
)
from reshape_inference._layout import (
    collapse_layout,
    expand_layout,
    is_contiguous,
    is_reshapable_band,
)
from reshape_inference._reassociation import (
    expanded_to_collapsed_map,
    find_invalid_group,
    group_bounds,
    infer_expanded_rank,
    reassociation_from_group_sizes,
    validate_reassociation,
)
from reshape_inference._reify import (
    default_dim_accessor,
    evaluate_shape,
    reify_collapsed_shape,
    reify_expanded_shape,
    reify_result_shape,
)
from reshape_inference._shape_algebra import (
    collapse_shape,
    expand_shape,
    verify_reshape_types,
)
from reshape_inference._types import (
    DimProvenance,
    ReshapeDescriptor,
    ReshapeDirection,
    ReshapeResult,
    StridedLayout,
    UnrepresentableLayout,
)


def __set_module() -> None:
    """Set the module of all functions in this module to this public module."""
    global_dict = globals()
    for name in __all__:
        obj = global_dict[name]
        if hasattr(obj, "__module__"):
            obj.__module__ = __name__


__set_module()

__version__ = "0.1.0"
