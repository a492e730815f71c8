import pytest

from shard_placement_modeling.interface import PlacementMatrix
from shard_placement_modeling.placement import build_placement_matrix
from shard_placement_modeling.rank_cycle import resolve_rank_cycle


@pytest.fixture
def small_matrix() -> PlacementMatrix:
    """9 slots over 4 nodes with the natural (1, 2, 3) table.

    Group 1 co-locates replicas, 2 * 2 wraps onto the leader of 4 nodes.
    """
    return build_placement_matrix(
        slots_per_node=9, node_count=4, rank_cycle=3, shift_table=(1, 2, 3)
    )


@pytest.fixture
def registered_matrix() -> PlacementMatrix:
    """One full rank cycle over 18 nodes using the registered table"""
    rank_cycle, shift_table = resolve_rank_cycle(18)
    return build_placement_matrix(
        slots_per_node=3 * rank_cycle,
        node_count=18,
        rank_cycle=rank_cycle,
        shift_table=shift_table,
    )
