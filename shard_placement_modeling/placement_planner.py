import logging

from shard_placement_modeling.failover import simulate_failover
from shard_placement_modeling.interface import PlacementPlan
from shard_placement_modeling.interface import PlacementRequest
from shard_placement_modeling.metrics import distinct_shards_per_node
from shard_placement_modeling.placement import build_from_request

logger = logging.getLogger(__name__)


def plan_placement(request: PlacementRequest) -> PlacementPlan:
    """Build the layout for a request and, if asked, fail one of its nodes"""
    matrix = build_from_request(request)
    report = None
    if request.failed_node is not None:
        report = simulate_failover(matrix, request.failed_node)

    distinct = distinct_shards_per_node(matrix)
    if len(set(distinct.values())) > 1:
        logger.info("Uneven shard spread across nodes: %s", distinct)

    return PlacementPlan(
        request=request,
        matrix=matrix,
        report=report,
        distinct_shards_per_node=distinct,
    )
