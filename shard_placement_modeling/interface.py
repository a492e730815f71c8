from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Annotated
from typing import Dict
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Tuple

import numpy as np
from pydantic import AfterValidator
from pydantic import BaseModel
from pydantic import computed_field
from pydantic import ConfigDict
from pydantic import Field
from pydantic import model_validator
from pydantic import PlainSerializer

# Every shard is stored as one leader and two followers
REPLICATION_FACTOR = 3


def _read_only(counts: Mapping[int, int]) -> Mapping[int, int]:
    return MappingProxyType(dict(counts))


def _as_dict(counts: Mapping[int, int]) -> Dict[int, int]:
    return dict(counts)


# Node -> count, read-only once a model holds it
NodeCounts = Annotated[
    Mapping[int, int],
    AfterValidator(_read_only),
    PlainSerializer(_as_dict, return_type=Dict[int, int]),
]


class PlacementConfigurationError(ValueError):
    """The requested placement cannot be built with the known tables"""


class UnsupportedRankCycleError(PlacementConfigurationError):
    """No collision-free shift table is registered for a rank cycle"""


###############################################################################
#              Models (structs) for how we describe a layout                  #
###############################################################################


class DistributionVariant(str, Enum):
    """How the builder walks the nodes of a row, and which follower takes
    over leadership when a node fails.

    shifted walks nodes in ascending order and promotes the first follower.
    polar reverses the node order on every other repetition of the rank
    cycle so promotions spread over both halves of the cluster.
    balanced_leader keeps ascending order but alternates the promoted
    follower between the first and second follower on every other repetition.
    rotation is the plain rank-order layout, flipping the node order on
    even ranks.
    """

    def __str__(self):
        return str(self.value)

    shifted = "shifted"
    polar = "polar"
    balanced_leader = "balanced_leader"
    rotation = "rotation"


class RankCycle(NamedTuple):
    rank_cycle: int
    shift_table: Tuple[int, ...]


class PlacementMatrix(BaseModel):
    """Which shard replica is stored in every (node, slot) of the cluster.

    Slots are grouped in consecutive runs of ``replication_factor`` rows,
    the first row of a group holds the leader replicas and the remaining
    rows the followers. ``cells[node][slot]`` is the shard id.
    """

    slots_per_node: int
    node_count: int
    replication_factor: int = REPLICATION_FACTOR
    rank_cycle: int
    shift_table: Tuple[int, ...]
    id_origin: int = 0
    variant: DistributionVariant = DistributionVariant.shifted
    cells: Tuple[Tuple[int, ...], ...]

    model_config = ConfigDict(frozen=True)

    @property
    def group_count(self) -> int:
        return self.slots_per_node // self.replication_factor

    def cell(self, node: int, slot: int) -> int:
        return self.cells[node][slot]

    def column(self, node: int) -> Tuple[int, ...]:
        return self.cells[node]

    def row(self, slot: int) -> Tuple[int, ...]:
        return tuple(column[slot] for column in self.cells)

    def group_of(self, slot: int) -> int:
        return slot // self.replication_factor

    def position_of(self, slot: int) -> int:
        return slot % self.replication_factor

    def is_leader_slot(self, slot: int) -> bool:
        return self.position_of(slot) == 0

    def group_slots(self, group: int) -> range:
        start = group * self.replication_factor
        return range(start, start + self.replication_factor)

    def rank_offset(self, group: int) -> int:
        return group % self.rank_cycle

    def repetition(self, group: int) -> int:
        return group // self.rank_cycle

    def to_array(self) -> np.ndarray:
        """Read-only (node_count, slots_per_node) view of the cells"""
        arr = np.array(self.cells, dtype=np.int64).reshape(
            self.node_count, self.slots_per_node
        )
        arr.setflags(write=False)
        return arr


###############################################################################
#              Models (structs) for how we describe a failure                 #
###############################################################################


class Promotion(BaseModel):
    shard_id: int
    group: int
    slot: int
    new_leader_node: int

    model_config = ConfigDict(frozen=True)


class FailoverReport(BaseModel):
    """What happens to the layout when ``failed_node`` disappears.

    Hit counts only cover surviving nodes: a hit is a cell that holds a
    replica of a shard the failed node also held.
    """

    failed_node: int
    lost_shard_ids: Tuple[int, ...]
    promotions: Tuple[Promotion, ...] = ()
    per_node_hit_count: NodeCounts = Field(
        default_factory=dict, validate_default=True
    )
    per_node_leader_promotion_count: NodeCounts = Field(
        default_factory=dict, validate_default=True
    )
    # Groups whose lost leader had no surviving replica to promote
    unpromoted_groups: Tuple[int, ...] = ()

    model_config = ConfigDict(frozen=True)

    @computed_field(return_type=int)  # type: ignore
    @property
    def total_hits(self) -> int:
        return sum(self.per_node_hit_count.values())

    def promoted_node(self, shard_id: int) -> Optional[int]:
        for promotion in self.promotions:
            if promotion.shard_id == shard_id:
                return promotion.new_leader_node
        return None


class SweepEntry(BaseModel):
    rank_cycle: int
    per_node_hit_counts: Tuple[int, ...]
    min: int
    max: int
    # P-value of the hit counts against a perfectly even spread
    uniformity_p_value: float = 1.0

    model_config = ConfigDict(frozen=True)

    @computed_field(return_type=int)  # type: ignore
    @property
    def delta(self) -> int:
        return self.max - self.min


###############################################################################
#              Models (structs) for how we request a plan                     #
###############################################################################


class PlacementRequest(BaseModel):
    slots_per_node: int = Field(gt=0)
    node_count: int = Field(ge=2)
    failed_node: Optional[int] = Field(default=None, ge=0)
    # Explicit rank cycle, overrides the balanced policy when set
    rank_order: Optional[int] = Field(default=None, ge=1)
    balanced: bool = False
    id_origin: int = Field(default=0, ge=0)
    variant: DistributionVariant = DistributionVariant.shifted

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_node_ranges(self) -> "PlacementRequest":
        if self.failed_node is not None and self.failed_node >= self.node_count:
            raise ValueError(
                f"failed_node {self.failed_node} is not one of the "
                f"{self.node_count} nodes"
            )
        if self.rank_order is not None and self.rank_order >= self.node_count:
            raise ValueError(
                f"rank_order must be below node_count ({self.node_count}), "
                f"got {self.rank_order}"
            )
        return self


class PlacementPlan(BaseModel):
    request: PlacementRequest
    matrix: PlacementMatrix
    report: Optional[FailoverReport] = None
    distinct_shards_per_node: NodeCounts = Field(
        default_factory=dict, validate_default=True
    )

    model_config = ConfigDict(frozen=True)
