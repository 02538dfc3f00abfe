# Copyright (c) ONNX Project Contributors
# SPDX-License-Identifier: Apache-2.0
"""Fusion of chained reshapes.

Two reshapes of the same direction compose into one: the consumer's groups
index the producer's groups, so substituting each index by the producer group
it names yields a reassociation over the producer's dimensions. For
example, fusing the collapses::

    producer = ((0, 1), (2,), (3, 4))
    consumer = ((0, 1), (2,))

gives ``((0, 1, 2), (3, 4))``.
"""

from __future__ import annotations

__all__ = [
    "compose_reassociations",
    "fuse_reassociations",
    "fuse_reshapes",
    "reshapes_cancel",
]

import logging
from collections.abc import Sequence

from reshape_inference import _context, _reassociation, _types

logger = logging.getLogger(__name__)


def compose_reassociations(
    outer: Sequence[Sequence[int]],
    inner: Sequence[Sequence[int]],
) -> _types.Reassociation:
    """Compose *inner*, whose indices name groups of *outer*, into one grouping.

    *outer* is over the highest-rank dimensions of the chain and *inner* over
    the intermediate ones. When *inner* is empty (the chain ends at rank 0)
    the result is the empty grouping.

    Raises:
        InvalidReassociationError: If either grouping is malformed.
    """
    outer = _reassociation.validate_reassociation(
        outer, _reassociation.infer_expanded_rank(outer)
    )
    if not inner:
        return ()
    inner = _reassociation.validate_reassociation(inner, len(outer))
    fused: list[tuple[int, ...]] = []
    for group in inner:
        span: list[int] = []
        for index in group:
            span.extend(outer[index])
        fused.append(tuple(span))
    return tuple(fused)


def fuse_reassociations(
    producer: Sequence[Sequence[int]],
    consumer: Sequence[Sequence[int]],
    producer_direction: _types.ReshapeDirection,
    consumer_direction: _types.ReshapeDirection,
) -> _types.Reassociation | None:
    """Fuse the reassociations of a producer reshape and its consumer.

    Both reshapes must collapse or both must expand. For collapses the
    producer works on the larger dimension space, for expansions the consumer
    does.

    Returns:
        The fused reassociation, or ``None`` when the directions differ and
        both reshapes must stay in place.
    """
    if producer_direction != consumer_direction:
        logger.debug(
            "Not fusing %s producer into %s consumer", producer_direction, consumer_direction
        )
        return None
    if producer_direction == "collapse":
        return compose_reassociations(producer, consumer)
    return compose_reassociations(consumer, producer)


def fuse_reshapes(
    producer: _types.ReshapeDescriptor,
    consumer: _types.ReshapeDescriptor,
) -> _types.ReshapeDescriptor | None:
    """Replace a producer/consumer reshape pair by a single reshape.

    The fused reshape reads the producer's source with the producer's layout
    and declares the consumer's result shape (if it has one).

    Returns:
        The fused descriptor, or ``None`` when the directions differ.

    Raises:
        ReshapeError: If the consumer does not read the producer's result.
    """
    if producer.direction != consumer.direction:
        logger.debug(
            "Not fusing %s producer into %s consumer", producer.direction, consumer.direction
        )
        return None
    if producer.direction == "expand" and producer.result_shape is None:
        raise _context.ReshapeUsageError("an expanding producer must declare its result shape")
    produced_rank = (
        len(producer.reassociation)
        if producer.direction == "collapse"
        else producer.result_shape.rank()
    )
    if consumer.source_shape.rank() != produced_rank:
        raise _context.ReshapeError(
            f"consumer source rank {consumer.source_shape.rank()} does not match "
            f"producer result rank {produced_rank}"
        )
    fused = fuse_reassociations(
        producer.reassociation,
        consumer.reassociation,
        producer.direction,
        consumer.direction,
    )
    if fused is None:
        return None
    logger.debug(
        "Fused %s reassociations %s and %s into %s",
        producer.direction,
        producer.reassociation,
        consumer.reassociation,
        fused,
    )
    return _types.ReshapeDescriptor(
        producer.direction,
        producer.source_shape,
        fused,
        layout=producer.layout,
        result_shape=consumer.result_shape,
    )


def reshapes_cancel(
    producer: _types.ReshapeDescriptor,
    consumer: _types.ReshapeDescriptor,
) -> bool:
    """Return whether the pair folds away to the producer's source.

    This is the case when the consumer declares exactly the producer's
    source shape, e.g. an expansion undone by the matching collapse.
    """
    if consumer.result_shape is None:
        return False
    return consumer.result_shape == producer.source_shape
