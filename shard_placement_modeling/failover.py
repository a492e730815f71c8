"""
Replay a single node failure against a placement matrix.

Every shard the failed node held loses one replica, so every surviving cell
with the same shard id takes a share of the failover load (a "hit"). For each
group the shard the failed node led needs a new leader: the surviving
replica sitting at the variant's promotion position is promoted. The walk is
node-major (ascending node, then ascending slot) and the first match wins, a
group is promoted at most once per failure.
"""

import logging
from typing import Dict
from typing import List
from typing import Set

import numpy as np

from shard_placement_modeling.interface import DistributionVariant
from shard_placement_modeling.interface import FailoverReport
from shard_placement_modeling.interface import PlacementConfigurationError
from shard_placement_modeling.interface import PlacementMatrix
from shard_placement_modeling.interface import Promotion

logger = logging.getLogger(__name__)


def promotion_position(matrix: PlacementMatrix, group: int) -> int:
    """Intra-group position of the follower that takes over leadership"""
    if matrix.variant == DistributionVariant.balanced_leader:
        return 1 if matrix.repetition(group) % 2 == 0 else 2
    return 1


def simulate_failover(matrix: PlacementMatrix, failed_node: int) -> FailoverReport:
    if not 0 <= failed_node < matrix.node_count:
        raise PlacementConfigurationError(
            f"failed_node {failed_node} is not one of the "
            f"{matrix.node_count} nodes"
        )

    data = matrix.to_array()
    lost_shard_ids = np.unique(data[failed_node])

    # The failed node leads exactly one shard in every group
    leader_values: Dict[int, int] = {
        group: matrix.cell(failed_node, group * matrix.replication_factor)
        for group in range(matrix.group_count)
    }
    promoted_groups: Set[int] = set()
    promotions: List[Promotion] = []

    hit_mask = np.isin(data, lost_shard_ids)
    per_node_hit_count: Dict[int, int] = {}
    per_node_leader_promotion_count: Dict[int, int] = {}
    for node in range(matrix.node_count):
        if node == failed_node:
            continue
        per_node_hit_count[node] = int(hit_mask[node].sum())
        per_node_leader_promotion_count[node] = 0

        for slot in map(int, np.flatnonzero(hit_mask[node])):
            group = matrix.group_of(slot)
            value = matrix.cell(node, slot)
            if (
                group not in promoted_groups
                and value == leader_values[group]
                and matrix.position_of(slot) == promotion_position(matrix, group)
            ):
                promoted_groups.add(group)
                promotions.append(
                    Promotion(
                        shard_id=value,
                        group=group,
                        slot=slot,
                        new_leader_node=node,
                    )
                )
                per_node_leader_promotion_count[node] += 1

    unpromoted = tuple(
        group for group in range(matrix.group_count) if group not in promoted_groups
    )
    if unpromoted:
        logger.warning(
            "No surviving replica to promote for groups %s after node %d failed",
            list(unpromoted),
            failed_node,
        )

    logger.debug(
        "Node %d failure: %d lost shards, %d promotions",
        failed_node,
        len(lost_shard_ids),
        len(promotions),
    )
    return FailoverReport(
        failed_node=failed_node,
        lost_shard_ids=tuple(int(v) for v in lost_shard_ids),
        promotions=tuple(promotions),
        per_node_hit_count=per_node_hit_count,
        per_node_leader_promotion_count=per_node_leader_promotion_count,
        unpromoted_groups=unpromoted,
    )
