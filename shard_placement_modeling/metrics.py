import logging
from typing import Dict
from typing import List
from typing import Tuple

import numpy as np
from scipy.stats import chisquare

from shard_placement_modeling.failover import simulate_failover
from shard_placement_modeling.interface import DistributionVariant
from shard_placement_modeling.interface import PlacementMatrix
from shard_placement_modeling.interface import SweepEntry
from shard_placement_modeling.placement import build_placement_matrix
from shard_placement_modeling.rank_cycle import rotation_shift_table

logger = logging.getLogger(__name__)


def distinct_shards_per_node(matrix: PlacementMatrix) -> Dict[int, int]:
    """How many different shards every node holds a replica of"""
    data = matrix.to_array()
    return {node: int(np.unique(data[node]).size) for node in range(matrix.node_count)}


def leader_slots_per_node(matrix: PlacementMatrix) -> Dict[int, int]:
    """How many slots on every node hold a leader replica"""
    leaders = sum(
        1 for slot in range(matrix.slots_per_node) if matrix.is_leader_slot(slot)
    )
    return {node: leaders for node in range(matrix.node_count)}


def find_colocations(matrix: PlacementMatrix) -> List[Tuple[int, int, int]]:
    """(group, shard_id, node) for every node holding a shard twice in a group

    Empty for any layout built from a collision-free shift table.
    """
    data = matrix.to_array()
    colocated = []
    for group in range(matrix.group_count):
        slots = matrix.group_slots(group)
        block = data[:, slots.start : slots.stop]
        for node in range(matrix.node_count):
            values, counts = np.unique(block[node], return_counts=True)
            for value in values[counts > 1]:
                colocated.append((group, int(value), node))
    return colocated


def _uniformity(hit_counts: np.ndarray) -> float:
    if hit_counts.size < 2 or hit_counts.sum() == 0:
        return 1.0
    if np.all(hit_counts == hit_counts[0]):
        return 1.0
    return float(chisquare(hit_counts).pvalue)


def sweep_entry(rank_cycle: int, hit_counts: Dict[int, int]) -> SweepEntry:
    counts = np.array([hit_counts[node] for node in sorted(hit_counts)], dtype=np.int64)
    return SweepEntry(
        rank_cycle=rank_cycle,
        per_node_hit_counts=tuple(int(c) for c in counts),
        min=int(counts.min()),
        max=int(counts.max()),
        uniformity_p_value=_uniformity(counts),
    )


def failover_delta_sweep(
    slots_per_node: int,
    node_count: int,
    failed_node: int,
    id_origin: int = 0,
) -> Dict[int, SweepEntry]:
    """Spread of failover load for every candidate rank cycle.

    Each candidate cycle in ``[1, node_count)`` gets its own rank-order
    rotation layout and its own failure simulation, then the per-node hit
    counts are reduced to min, max and delta. A small delta means the
    failed node's load is shared evenly by the survivors.
    """
    result: Dict[int, SweepEntry] = {}
    for rank_cycle in range(1, node_count):
        matrix = build_placement_matrix(
            slots_per_node=slots_per_node,
            node_count=node_count,
            rank_cycle=rank_cycle,
            shift_table=rotation_shift_table(rank_cycle),
            id_origin=id_origin,
            variant=DistributionVariant.rotation,
        )
        report = simulate_failover(matrix, failed_node)
        result[rank_cycle] = sweep_entry(rank_cycle, report.per_node_hit_count)
        logger.debug(
            "Rank cycle %d: delta %d over %s",
            rank_cycle,
            result[rank_cycle].delta,
            result[rank_cycle].per_node_hit_counts,
        )
    return result
