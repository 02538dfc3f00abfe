# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Reshape errors and the shape-check context."""

from __future__ import annotations

__all__ = [
    "AmbiguousDynamicSplitError",
    "InvalidReassociationError",
    "RankMismatchError",
    "ReshapeError",
    "ReshapeUsageError",
    "ShapeCheckContext",
    "ShapeCheckPolicy",
    "ShapeMismatchError",
]

import logging
from collections.abc import Sequence
from typing import Literal

import onnx_ir as ir

logger = logging.getLogger(__name__)


class ReshapeError(ValueError):
    """A rejection produced while inferring or verifying a reshape.

    Can be raised directly (it is a :class:`ValueError` subclass) or stored
    for later inspection via :attr:`ShapeCheckContext.errors`.

    Attributes:
        direction: ``"collapse"``, ``"expand"`` or ``None`` when the error is
            not tied to a reshape direction (e.g. fusion).
        message: Human-readable description of the error.
    """

    def __init__(self, message: str, *, direction: str | None = None) -> None:
        self.direction = direction
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.direction:
            return f"{self.direction} reshape: {self.message}"
        return self.message


class InvalidReassociationError(ReshapeError):
    """The grouping has a gap, an overlap, a reordering or a wrong total count."""

    def __init__(
        self, group_index: int, message: str | None = None, *, direction: str | None = None
    ) -> None:
        self.group_index = group_index
        if message is None:
            message = f"expected reassociation group #{group_index} to be valid and contiguous"
        super().__init__(message, direction=direction)


class RankMismatchError(ReshapeError):
    """Source and result ranks do not describe a real collapse or expansion."""


class AmbiguousDynamicSplitError(ReshapeError):
    """An expanding group has more than one dynamic output position."""

    def __init__(
        self,
        group_index: int,
        positions: tuple[int, int],
        *,
        direction: str | None = "expand",
    ) -> None:
        self.group_index = group_index
        self.positions = positions
        super().__init__(
            f"invalid to have a single dimension ({group_index}) expanded into "
            f"multiple dynamic dims ({positions[0]},{positions[1]})",
            direction=direction,
        )


class ShapeMismatchError(ReshapeError):
    """A declared extent disagrees with the inferred one.

    Attributes:
        dim_index: The collapsed-side dimension that disagrees.
        expected: The inferred extent (an ``int`` or a dynamic dim).
        actual: The declared extent.
    """

    def __init__(
        self,
        dim_index: int,
        expected: int | ir.SymbolicDim,
        actual: int | ir.SymbolicDim,
        message: str | None = None,
        *,
        direction: str | None = None,
    ) -> None:
        self.dim_index = dim_index
        self.expected = expected
        self.actual = actual
        if message is None:
            message = (
                f"expected dimension {dim_index} to be {_describe_dim(expected)}, "
                f"but got {_describe_dim(actual)}"
            )
        super().__init__(message, direction=direction)


class ReshapeUsageError(ValueError):
    """Raised when a reshape descriptor is structurally malformed.

    This indicates a caller bug rather than an illegal reshape: an unknown
    direction, a missing declared result shape, or a layout whose rank does
    not match its shape.
    """


def _describe_dim(dim: int | ir.SymbolicDim) -> str:
    if isinstance(dim, int):
        return f"static value of {dim}"
    return "dynamic"


ShapeCheckPolicy = Literal["strict", "skip"]
"""Policy for reporting reshape errors.

* ``"strict"``: Raise the first error.
* ``"skip"``: Log and record every error, continuing where possible.
"""


class ShapeCheckContext:
    """Collects the errors of a single reshape check.

    A context is created per call and never shared, so recorded errors
    belong to exactly one inference or verification.

    Attributes:
        policy: The error reporting policy.
    """

    def __init__(self, policy: ShapeCheckPolicy = "strict") -> None:
        self.policy = policy
        self._errors: list[ReshapeError] = []

    def record_error(self, error: ReshapeError) -> None:
        """Record an error.

        The error is raised immediately unless the policy is ``"skip"``,
        in which case it is only logged and appended to :attr:`errors`.

        Raises:
            ReshapeError: If the policy is ``"strict"``.
        """
        self._errors.append(error)
        if self.policy == "skip":
            logger.warning("Reshape check error: %s", error)
            return
        raise error

    @property
    def errors(self) -> Sequence[ReshapeError]:
        """All errors recorded so far."""
        return self._errors

    @property
    def failed(self) -> bool:
        return bool(self._errors)
