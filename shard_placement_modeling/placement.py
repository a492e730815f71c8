"""
Closed-form construction of the placement matrix.

Row ``r`` belongs to group ``r // rf`` at intra-group position ``r % rf``.
Every node of a row gets ``base + (offset + c) % node_count`` for its column
index ``c``, where ``base = group * node_count`` and ``offset`` is the
position's replica offset for the group's rank. Since ``c -> (offset + c) %
node_count`` is a bijection every row is a permutation of one contiguous id
range, and as long as the shift table keeps the three offsets of a group
distinct the replicas of a shard never share a node.
"""

import logging
from typing import Sequence

import numpy as np

from shard_placement_modeling.interface import DistributionVariant
from shard_placement_modeling.interface import PlacementConfigurationError
from shard_placement_modeling.interface import PlacementMatrix
from shard_placement_modeling.interface import PlacementRequest
from shard_placement_modeling.interface import REPLICATION_FACTOR
from shard_placement_modeling.rank_cycle import rank_cycle_length
from shard_placement_modeling.rank_cycle import replica_offsets
from shard_placement_modeling.rank_cycle import resolve_rank_cycle
from shard_placement_modeling.rank_cycle import rotation_shift_table

logger = logging.getLogger(__name__)


def _descending(variant: DistributionVariant, rank_offset: int, repetition: int):
    if variant == DistributionVariant.polar:
        return repetition % 2 == 1
    if variant == DistributionVariant.rotation:
        # ranks are 1-based in the rotation layout, even ranks flip
        return (rank_offset + 1) % 2 == 0
    return False


def _check_preconditions(  # pylint: disable=too-many-positional-arguments
    slots_per_node: int,
    node_count: int,
    replication_factor: int,
    rank_cycle: int,
    shift_table: Sequence[int],
    variant: DistributionVariant,
) -> None:
    if slots_per_node <= 0:
        raise PlacementConfigurationError(
            f"slots_per_node must be positive, got {slots_per_node}"
        )
    if node_count < 2:
        raise PlacementConfigurationError(
            f"Need at least 2 nodes to place replicas, got {node_count}"
        )
    if replication_factor != REPLICATION_FACTOR:
        raise PlacementConfigurationError(
            f"Only replication factor {REPLICATION_FACTOR} is supported, "
            f"got {replication_factor}"
        )
    if rank_cycle < 1:
        raise PlacementConfigurationError(
            f"rank_cycle must be positive, got {rank_cycle}"
        )
    if len(shift_table) != rank_cycle:
        raise PlacementConfigurationError(
            f"Shift table has {len(shift_table)} entries, "
            f"rank cycle {rank_cycle} needs {rank_cycle}"
        )

    # The rotation layout has no third-shift cycle that has to complete
    if variant == DistributionVariant.rotation:
        period = replication_factor
    else:
        period = replication_factor * rank_cycle
    if slots_per_node % period != 0:
        raise PlacementConfigurationError(
            f"slots_per_node ({slots_per_node}) must be a multiple of {period} "
            f"(replication factor {replication_factor} x rank cycle {rank_cycle})"
        )


# pylint: disable=too-many-positional-arguments,too-many-locals
def build_placement_matrix(
    slots_per_node: int,
    node_count: int,
    rank_cycle: int,
    shift_table: Sequence[int],
    replication_factor: int = REPLICATION_FACTOR,
    id_origin: int = 0,
    variant: DistributionVariant = DistributionVariant.shifted,
) -> PlacementMatrix:
    """Lay out every replica of every shard over the nodes.

    Args:
        slots_per_node: Number of shard slots on every node (rows)
        node_count: Number of nodes in the cluster (columns)
        rank_cycle: Number of groups after which the offsets repeat
        shift_table: Third shift for every rank offset in the cycle
        replication_factor: Replicas per shard, only 3 is supported
        id_origin: Added to every shard id, only changes how ids read
        variant: Node traversal order, see DistributionVariant

    Returns:
        An immutable PlacementMatrix

    Raises:
        PlacementConfigurationError: if the parameters cannot be laid out,
            notably when slots_per_node is not a multiple of
            replication_factor * rank_cycle
    """
    _check_preconditions(
        slots_per_node,
        node_count,
        replication_factor,
        rank_cycle,
        shift_table,
        variant,
    )

    if id_origin < 0:
        raise PlacementConfigurationError(
            f"Shard ids must not be negative, got id_origin {id_origin}"
        )

    columns = np.arange(node_count)
    data = np.zeros((node_count, slots_per_node), dtype=np.int64)
    for slot in range(slots_per_node):
        group = slot // replication_factor
        position = slot % replication_factor
        rank_offset = group % rank_cycle
        base = group * node_count

        offset = replica_offsets(rank_offset, shift_table)[position]
        values = base + (offset + columns) % node_count + id_origin
        if _descending(variant, rank_offset, group // rank_cycle):
            data[columns[::-1], slot] = values
        else:
            data[columns, slot] = values

    logger.debug(
        "Built %s layout of %d slots over %d nodes (rank cycle %d)",
        variant,
        slots_per_node,
        node_count,
        rank_cycle,
    )
    return PlacementMatrix(
        slots_per_node=slots_per_node,
        node_count=node_count,
        replication_factor=replication_factor,
        rank_cycle=rank_cycle,
        shift_table=tuple(int(s) for s in shift_table),
        id_origin=id_origin,
        variant=variant,
        cells=tuple(tuple(int(v) for v in column) for column in data),
    )


def build_from_request(request: PlacementRequest) -> PlacementMatrix:
    if request.variant == DistributionVariant.rotation:
        rank_cycle = rank_cycle_length(
            request.node_count, request.balanced, request.rank_order
        )
        shift_table = rotation_shift_table(rank_cycle)
    else:
        rank_cycle, shift_table = resolve_rank_cycle(
            request.node_count,
            balanced=request.balanced,
            rank_order=request.rank_order,
        )
    return build_placement_matrix(
        slots_per_node=request.slots_per_node,
        node_count=request.node_count,
        rank_cycle=rank_cycle,
        shift_table=shift_table,
        id_origin=request.id_origin,
        variant=request.variant,
    )
