from typing import Tuple

from hypothesis import strategies as st

from shard_placement_modeling.interface import DistributionVariant
from shard_placement_modeling.interface import PlacementMatrix
from shard_placement_modeling.placement import build_placement_matrix
from shard_placement_modeling.rank_cycle import natural_shift_table
from shard_placement_modeling.rank_cycle import resolve_rank_cycle
from shard_placement_modeling.rank_cycle import rotation_shift_table

SHIFT_TABLE_VARIANTS = (
    DistributionVariant.shifted,
    DistributionVariant.polar,
    DistributionVariant.balanced_leader,
)


def balanced_seven(variant: DistributionVariant) -> PlacementMatrix:
    """Two repetitions of the halved rank cycle (3) over 7 nodes"""
    rank_cycle, shift_table = resolve_rank_cycle(7, balanced=True)
    return build_placement_matrix(
        slots_per_node=18,
        node_count=7,
        rank_cycle=rank_cycle,
        shift_table=shift_table,
        variant=variant,
    )


def holders(matrix: PlacementMatrix, group: int, shard_id: int) -> Tuple[int, ...]:
    """Nodes holding shard_id in each slot of the group, in slot order"""
    return tuple(
        node
        for slot in matrix.group_slots(group)
        for node in range(matrix.node_count)
        if matrix.cell(node, slot) == shard_id
    )


def assert_row_bijection(matrix: PlacementMatrix):
    for slot in range(matrix.slots_per_node):
        row = sorted(matrix.row(slot))
        start = row[0]
        assert row == list(range(start, start + matrix.node_count)), (
            f"slot {slot} is not a contiguous permutation: {matrix.row(slot)}"
        )


def assert_no_colocation(matrix: PlacementMatrix):
    for group in range(matrix.group_count):
        for shard_id in matrix.row(group * matrix.replication_factor):
            nodes = holders(matrix, group, shard_id)
            assert len(nodes) == matrix.replication_factor
            assert len(set(nodes)) == matrix.replication_factor, (
                f"shard {shard_id} of group {group} co-located on {nodes}"
            )


@st.composite
def collision_free_layouts(draw, variants=SHIFT_TABLE_VARIANTS):
    """Layouts whose shift table keeps every group's replicas apart.

    Either an odd cluster with the balanced (halved, odd) cycle, or an even
    cluster with a small explicit odd cycle that stays below the midpoint.
    """
    variant = draw(st.sampled_from(variants))
    if draw(st.booleans()):
        # node_count = 4m + 3 -> (node_count - 1) / 2 is odd
        node_count = 4 * draw(st.integers(0, 6)) + 3
        rank_cycle, shift_table = resolve_rank_cycle(node_count, balanced=True)
    else:
        node_count = 2 * draw(st.integers(2, 12))
        rank_cycle = draw(
            st.integers(1, max(1, node_count // 2 - 1)).filter(lambda c: c % 2 == 1)
        )
        shift_table = natural_shift_table(rank_cycle)
    repetitions = draw(st.integers(1, 3))
    return build_placement_matrix(
        slots_per_node=3 * rank_cycle * repetitions,
        node_count=node_count,
        rank_cycle=rank_cycle,
        shift_table=shift_table,
        id_origin=draw(st.integers(0, 1000)),
        variant=variant,
    )


@st.composite
def any_layouts(draw):
    """Valid layouts of every variant, including ones that co-locate"""
    node_count = draw(st.integers(2, 24))
    rank_cycle = draw(st.integers(1, node_count - 1))
    variant = draw(st.sampled_from(list(DistributionVariant)))
    if variant == DistributionVariant.rotation:
        shift_table = rotation_shift_table(rank_cycle)
        slots_per_node = 3 * draw(st.integers(1, 12))
    else:
        shift_table = natural_shift_table(rank_cycle)
        slots_per_node = 3 * rank_cycle * draw(st.integers(1, 3))
    return build_placement_matrix(
        slots_per_node=slots_per_node,
        node_count=node_count,
        rank_cycle=rank_cycle,
        shift_table=shift_table,
        id_origin=draw(st.integers(0, 1000)),
        variant=variant,
    )
