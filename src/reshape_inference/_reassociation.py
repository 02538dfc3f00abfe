# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Reassociation validation and index bookkeeping."""

from __future__ import annotations

__all__ = [
    "expanded_to_collapsed_map",
    "find_invalid_group",
    "group_bounds",
    "infer_expanded_rank",
    "reassociation_from_group_sizes",
    "validate_reassociation",
]

from collections.abc import Sequence

from reshape_inference import _context, _types


def _is_dim_index(entry: object) -> bool:
    # Groups are dimension-only: symbols, strings and bools are rejected.
    return isinstance(entry, int) and not isinstance(entry, bool)


def find_invalid_group(
    reassociation: Sequence[Sequence[int]],
    expanded_rank: int,
) -> int | None:
    """Return the index of the first malformed group, or ``None`` if valid.

    A reassociation is valid when concatenating its groups in order yields
    exactly ``0, 1, ..., expanded_rank - 1``. An empty group is allowed and
    stands for a unit extent on the collapsed side.
    When the groups are individually fine but do not cover every dimension,
    the last group is reported.

    Args:
        reassociation: Groups of expanded-side dimension indices.
        expanded_rank: Rank of the higher-rank side of the reshape.

    Returns:
        The offending group index, or ``None``.
    """
    next_expected = 0
    for index, group in enumerate(reassociation):
        for entry in group:
            if not _is_dim_index(entry) or entry != next_expected or entry >= expanded_rank:
                return index
            next_expected += 1
    if next_expected != expanded_rank:
        return max(len(reassociation) - 1, 0)
    return None


def validate_reassociation(
    reassociation: Sequence[Sequence[int]],
    expanded_rank: int,
    *,
    direction: str | None = None,
) -> _types.Reassociation:
    """Check *reassociation* and return it in canonical form.

    Raises:
        InvalidReassociationError: With the index of the first offending group.
    """
    invalid_index = find_invalid_group(reassociation, expanded_rank)
    if invalid_index is not None:
        raise _context.InvalidReassociationError(invalid_index, direction=direction)
    return _types.normalize_reassociation(reassociation)


def infer_expanded_rank(reassociation: Sequence[Sequence[int]]) -> int:
    """Return the expanded rank implied by the largest dimension index."""
    max_dim = -1
    for group in reassociation:
        for entry in group:
            max_dim = max(max_dim, entry)
    return max_dim + 1


def group_bounds(reassociation: _types.Reassociation) -> list[tuple[int, int]]:
    """Return the inclusive ``(lo, hi)`` expanded-side range of every group.

    An empty group sits between its neighbours and gets ``hi == lo - 1``.
    """
    bounds: list[tuple[int, int]] = []
    start = 0
    for group in reassociation:
        bounds.append((start, start + len(group) - 1))
        start += len(group)
    return bounds


def expanded_to_collapsed_map(reassociation: _types.Reassociation) -> dict[int, int]:
    """Map each expanded dimension to the index of the group that holds it."""
    mapping: dict[int, int] = {}
    for group_index, group in enumerate(reassociation):
        for dim in group:
            mapping[dim] = group_index
    return mapping


def reassociation_from_group_sizes(sizes: Sequence[int]) -> _types.Reassociation:
    """Build the contiguous reassociation whose groups have the given lengths.

    Example::

        >>> reassociation_from_group_sizes([2, 1, 2])
        ((0, 1), (2,), (3, 4))
    """
    groups: list[tuple[int, ...]] = []
    start = 0
    for size in sizes:
        if size < 0:
            raise ValueError(f"group sizes must be non-negative, got {size}")
        groups.append(tuple(range(start, start + size)))
        start += size
    return tuple(groups)
