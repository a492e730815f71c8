"""
Rank cycle and third-shift resolution.

A rank cycle is the number of consecutive replica groups after which the
placement pattern repeats. Within a cycle, the group at rank offset ``k``
places its followers at node offsets:

    first follower:  k + 1
    second follower: k + 1 + shift_table[k]

relative to the leader. The three offsets of a group must be pairwise
distinct modulo the node count, otherwise two replicas of one shard land on
the same node.

The natural table ``(1, 2, ..., cycle)`` puts the second follower at
``2 * (k + 1)``, which is fine for small cycles but wraps onto the leader at
the midpoint ``k + 1 == node_count / 2`` of an even sized cluster. Finding a
collision-free permutation for those clusters is a combinatorial design
problem, so the known-good tables are kept in a registry instead of derived.
"""

import logging
from types import MappingProxyType
from typing import Dict
from typing import List
from typing import Mapping
from typing import Optional
from typing import Sequence
from typing import Tuple

from shard_placement_modeling.interface import PlacementConfigurationError
from shard_placement_modeling.interface import RankCycle
from shard_placement_modeling.interface import UnsupportedRankCycleError

logger = logging.getLogger(__name__)

__all__ = [
    "SHIFT_TABLES",
    "natural_shift_table",
    "rank_cycle_length",
    "replica_offsets",
    "resolve_rank_cycle",
    "rotation_shift_table",
    "shift_table_collisions",
]


def natural_shift_table(rank_cycle: int) -> Tuple[int, ...]:
    return tuple(range(1, rank_cycle + 1))


def rotation_shift_table(rank_cycle: int) -> Tuple[int, ...]:
    """Shift table of the plain rank-order rotation

    The rotation layout puts follower ``p`` of rank ``k + 1`` at
    ``(k + 1) * p + p - 1``, which is a third shift of ``k + 2``.
    """
    return tuple(range(2, rank_cycle + 2))


def replica_offsets(rank_offset: int, shift_table: Sequence[int]) -> Tuple[int, ...]:
    """Node offsets of the leader and both followers of a group"""
    first = rank_offset + 1
    return (0, first, first + shift_table[rank_offset])


def shift_table_collisions(
    rank_cycle: int, node_count: int, shift_table: Sequence[int]
) -> List[int]:
    """Rank offsets at which the table co-locates two replicas of a shard"""
    if len(shift_table) != rank_cycle:
        raise PlacementConfigurationError(
            f"Shift table has {len(shift_table)} entries, "
            f"rank cycle {rank_cycle} needs {rank_cycle}"
        )
    colliding = []
    for rank_offset in range(rank_cycle):
        offsets = replica_offsets(rank_offset, shift_table)
        if len({o % node_count for o in offsets}) != len(offsets):
            colliding.append(rank_offset)
    return colliding


def _swap_midpoint(rank_cycle: int, node_count: int) -> Tuple[int, ...]:
    # The natural table collides where 2 * (k + 1) == node_count. Swapping
    # that entry with its successor moves both second followers to offset 1.
    table = list(natural_shift_table(rank_cycle))
    mid = node_count // 2 - 1
    table[mid], table[mid + 1] = table[mid + 1], table[mid]
    return tuple(table)


def _build_registry() -> Mapping[Tuple[int, int], Tuple[int, ...]]:
    known: Dict[Tuple[int, int], Tuple[int, ...]] = {
        # (rank_cycle, node_count): shift_table
        (17, 18): _swap_midpoint(17, 18),
        (41, 42): _swap_midpoint(41, 42),
    }
    for (rank_cycle, node_count), table in known.items():
        colliding = shift_table_collisions(rank_cycle, node_count, table)
        if colliding:
            raise PlacementConfigurationError(
                f"Registered shift table for rank cycle {rank_cycle} on "
                f"{node_count} nodes collides at rank offsets {colliding}"
            )
    return MappingProxyType(known)


# Known-good tables keyed by (rank_cycle, node_count), read-only
SHIFT_TABLES = _build_registry()


def rank_cycle_length(
    node_count: int, balanced: bool = False, rank_order: Optional[int] = None
) -> int:
    if node_count < 2:
        raise PlacementConfigurationError(
            f"Need at least 2 nodes to place replicas, got {node_count}"
        )

    if rank_order is not None:
        if not 1 <= rank_order < node_count:
            raise PlacementConfigurationError(
                f"rank_order must be in [1, {node_count - 1}], got {rank_order}"
            )
        return rank_order
    if (node_count - 1) % 2 == 0 and balanced:
        return (node_count - 1) // 2
    return node_count - 1


def resolve_rank_cycle(
    node_count: int,
    balanced: bool = False,
    rank_order: Optional[int] = None,
    registry: Mapping[Tuple[int, int], Tuple[int, ...]] = SHIFT_TABLES,
) -> RankCycle:
    """Pick the rank cycle for a cluster and the third shift to use with it.

    When ``node_count - 1`` is even the ``balanced`` policy halves the cycle,
    which doubles how evenly failover leadership spreads at the cost of
    needing an even-cycle table. An explicit ``rank_order`` overrides both.

    Raises:
        PlacementConfigurationError: node_count or rank_order out of range
        UnsupportedRankCycleError: an even cycle with no registered table
    """
    rank_cycle = rank_cycle_length(node_count, balanced, rank_order)

    registered = registry.get((rank_cycle, node_count))
    if registered is not None:
        shift_table = tuple(registered)
    elif rank_cycle % 2 == 1:
        shift_table = natural_shift_table(rank_cycle)
        colliding = shift_table_collisions(rank_cycle, node_count, shift_table)
        if colliding:
            logger.warning(
                "Shift table for rank cycle %d on %d nodes co-locates replicas "
                "at rank offsets %s",
                rank_cycle,
                node_count,
                colliding,
            )
    else:
        raise UnsupportedRankCycleError(
            f"Unsupported rank cycle {rank_cycle} for {node_count} nodes, "
            f"known tables: {sorted(registry.keys())}"
        )

    logger.debug(
        "Resolved rank cycle %d with shift table %s for %d nodes",
        rank_cycle,
        shift_table,
        node_count,
    )
    return RankCycle(rank_cycle=rank_cycle, shift_table=shift_table)
