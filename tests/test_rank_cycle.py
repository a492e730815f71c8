import logging

import pytest
from hypothesis import given
from hypothesis import settings
from hypothesis import strategies as st

from shard_placement_modeling.interface import PlacementConfigurationError
from shard_placement_modeling.interface import UnsupportedRankCycleError
from shard_placement_modeling.rank_cycle import natural_shift_table
from shard_placement_modeling.rank_cycle import rank_cycle_length
from shard_placement_modeling.rank_cycle import replica_offsets
from shard_placement_modeling.rank_cycle import resolve_rank_cycle
from shard_placement_modeling.rank_cycle import rotation_shift_table
from shard_placement_modeling.rank_cycle import SHIFT_TABLES
from shard_placement_modeling.rank_cycle import shift_table_collisions


class TestRankCycleLength:
    def test_odd_cycle_is_never_halved(self):
        # 4 nodes -> node_count - 1 == 3 is odd
        assert rank_cycle_length(4) == 3
        assert rank_cycle_length(4, balanced=True) == 3

    def test_balanced_halves_even_cycle(self):
        assert rank_cycle_length(7) == 6
        assert rank_cycle_length(7, balanced=True) == 3

    def test_rank_order_overrides_policy(self):
        assert rank_cycle_length(7, balanced=True, rank_order=5) == 5

    @pytest.mark.parametrize("rank_order", [0, 7, 12])
    def test_rank_order_out_of_range(self, rank_order):
        with pytest.raises(PlacementConfigurationError):
            rank_cycle_length(7, rank_order=rank_order)

    def test_single_node_rejected(self):
        with pytest.raises(PlacementConfigurationError):
            rank_cycle_length(1)


class TestResolveRankCycle:
    def test_small_odd_cycle_uses_natural_table(self):
        rank_cycle, shift_table = resolve_rank_cycle(4)
        assert rank_cycle == 3
        assert shift_table == (1, 2, 3)

    def test_balanced_odd_cluster(self):
        resolved = resolve_rank_cycle(7, balanced=True)
        assert resolved.rank_cycle == 3
        assert resolved.shift_table == (1, 2, 3)
        assert shift_table_collisions(3, 7, resolved.shift_table) == []

    def test_even_cycle_without_table_is_unsupported(self):
        # 5 nodes -> rank cycle 4, nothing registered for (4, 5)
        with pytest.raises(UnsupportedRankCycleError, match="Unsupported rank cycle"):
            resolve_rank_cycle(5)

    def test_unsupported_is_a_configuration_error(self):
        with pytest.raises(PlacementConfigurationError):
            resolve_rank_cycle(9, balanced=True)

    @pytest.mark.parametrize("node_count", [18, 42])
    def test_registered_tables_win(self, node_count):
        rank_cycle, shift_table = resolve_rank_cycle(node_count)
        assert rank_cycle == node_count - 1
        assert shift_table == SHIFT_TABLES[(rank_cycle, node_count)]
        assert shift_table != natural_shift_table(rank_cycle)
        assert shift_table_collisions(rank_cycle, node_count, shift_table) == []

    def test_registered_table_is_a_permutation(self):
        shift_table = SHIFT_TABLES[(17, 18)]
        assert sorted(shift_table) == list(range(1, 18))
        # Only the midpoint and its neighbour move
        assert shift_table[8] == 10
        assert shift_table[9] == 9

    def test_custom_registry(self):
        registry = {(4, 5): (1, 2, 4, 3)}
        resolved = resolve_rank_cycle(5, registry=registry)
        assert resolved.rank_cycle == 4
        assert resolved.shift_table == (1, 2, 4, 3)

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            SHIFT_TABLES[(3, 4)] = (1, 2, 3)  # type: ignore

    def test_colliding_natural_table_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            resolve_rank_cycle(4)
        assert "co-locates replicas" in caplog.text


class TestShiftTables:
    def test_replica_offsets(self):
        assert replica_offsets(0, (1, 2, 3)) == (0, 1, 2)
        assert replica_offsets(2, (1, 2, 3)) == (0, 3, 6)

    def test_rotation_table_matches_rotation_formula(self):
        table = rotation_shift_table(5)
        for rank_offset in range(5):
            rank = rank_offset + 1
            assert replica_offsets(rank_offset, table) == (0, rank, 2 * rank + 1)

    def test_natural_table_collides_at_midpoint_of_even_cluster(self):
        assert shift_table_collisions(17, 18, natural_shift_table(17)) == [8]

    def test_wrong_length_rejected(self):
        with pytest.raises(PlacementConfigurationError):
            shift_table_collisions(3, 4, (1, 2))

    @given(node_count=st.integers(3, 99).filter(lambda n: n % 2 == 1))
    @settings(max_examples=50, deadline=None)
    def test_natural_table_never_collides_on_odd_clusters(self, node_count):
        rank_cycle = node_count - 2
        table = natural_shift_table(rank_cycle)
        assert shift_table_collisions(rank_cycle, node_count, table) == []
