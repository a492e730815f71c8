import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any
from typing import Optional
from typing import Sequence

from pydantic import ValidationError

from shard_placement_modeling.dot_graph import write_dot_graph
from shard_placement_modeling.interface import DistributionVariant
from shard_placement_modeling.interface import PlacementConfigurationError
from shard_placement_modeling.interface import PlacementRequest
from shard_placement_modeling.metrics import failover_delta_sweep
from shard_placement_modeling.placement_planner import plan_placement
from shard_placement_modeling.render import format_arrays
from shard_placement_modeling.render import format_matrix
from shard_placement_modeling.render import format_report
from shard_placement_modeling.render import format_sweep

logger = logging.getLogger(__name__)

EXIT_IO_ERROR = 1
EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shard-layout",
        description="Calculate shard distribution on multiple nodes",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("slots_per_node", type=int, help="Shard slots per node")
    parser.add_argument("node_count", type=int, help="Node count")
    parser.add_argument(
        "-m", "--matrix", action="store_true", help="Show the placement matrix"
    )
    parser.add_argument(
        "-d",
        "--delta",
        action="store_true",
        help="Show how the failover hit spread changes with the rank cycle, "
        "needs --fail-node",
    )
    parser.add_argument(
        "-r", "--rank-order", type=int, default=None, help="Rank cycle size"
    )
    parser.add_argument(
        "-b",
        "--balanced",
        action="store_true",
        help="Halve the rank cycle when node_count - 1 is even",
    )
    parser.add_argument(
        "-f",
        "--fail-node",
        type=int,
        default=None,
        help="Simulate the failure of this node, starting from 0",
    )
    parser.add_argument(
        "-g",
        "--dot-graph",
        type=Path,
        default=None,
        help="Write a Graphviz dot graph of the layout to this file",
    )
    parser.add_argument(
        "-a", "--arrays", action="store_true", help="Dump every node as a list"
    )
    parser.add_argument(
        "--id-origin", type=int, default=0, help="Added to every shard id"
    )
    parser.add_argument(
        "--variant",
        default=DistributionVariant.shifted.value,
        choices=[v.value for v in DistributionVariant],
    )
    parser.add_argument(
        "--json", action="store_true", help="Print the whole plan as JSON"
    )
    parser.add_argument("--debug", action="store_true", help="Show verbose output")
    return parser


def run(args: Any) -> int:
    try:
        request = PlacementRequest(
            slots_per_node=args.slots_per_node,
            node_count=args.node_count,
            failed_node=args.fail_node,
            rank_order=args.rank_order,
            balanced=args.balanced,
            id_origin=args.id_origin,
            variant=DistributionVariant(args.variant),
        )
        logger.debug("Planning %s", request)
        plan = plan_placement(request)
        sweep = None
        if args.delta and request.failed_node is not None:
            sweep = failover_delta_sweep(
                request.slots_per_node,
                request.node_count,
                request.failed_node,
                id_origin=request.id_origin,
            )
    except (ValidationError, PlacementConfigurationError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    if args.delta and sweep is None:
        print("WARNING: --delta is ignored without --fail-node", file=sys.stderr)

    matrix = plan.matrix
    print(
        f"rank cycle: {matrix.rank_cycle} shift table: {list(matrix.shift_table)}",
        file=sys.stderr,
    )
    if args.json:
        # Machine readable output replaces the text views
        output = plan.model_dump(mode="json")
        if sweep is not None:
            output["delta_sweep"] = {
                str(rank_cycle): entry.model_dump(mode="json")
                for rank_cycle, entry in sorted(sweep.items())
            }
        print(json.dumps(output, indent=2))
    else:
        if args.matrix:
            print(format_matrix(matrix))
        if args.arrays:
            print(format_arrays(matrix))
        if plan.report is not None:
            print(format_report(plan.report))
        if sweep is not None:
            print(format_sweep(sweep))

    if args.dot_graph is not None:
        try:
            write_dot_graph(matrix, args.dot_graph, report=plan.report)
        except OSError as e:
            print(
                f"ERROR: Unable to write dot graph to {args.dot_graph}: {e}",
                file=sys.stderr,
            )
            return EXIT_IO_ERROR
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
