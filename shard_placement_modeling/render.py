from typing import Dict
from typing import List

from shard_placement_modeling.interface import FailoverReport
from shard_placement_modeling.interface import PlacementMatrix
from shard_placement_modeling.interface import SweepEntry


def format_matrix(matrix: PlacementMatrix) -> str:
    """Text table of the layout, one column per node and one line per slot.

    Leader slots are marked with a ``*`` in front of the slot number.
    """
    width = max(3, len(str(max(max(column) for column in matrix.cells))))
    cell_width = width + 2
    lines = ["** Shard Distribution ::"]
    header = [" " * 6]
    for node in range(matrix.node_count):
        header.append(f"N-{node:03d}".ljust(cell_width))
    lines.append(" ".join(header).rstrip())
    for slot in range(matrix.slots_per_node):
        marker = "*" if matrix.is_leader_slot(slot) else " "
        row = [f"{marker}{slot:>5}"]
        row.extend(f"[{value:<{width}}]" for value in matrix.row(slot))
        lines.append(" ".join(row))
    return "\n".join(lines)


def format_arrays(matrix: PlacementMatrix) -> str:
    """Every node's shard ids in slot order as a list literal"""
    return "\n".join(
        "[" + ", ".join(str(v) for v in column) + "]," for column in matrix.cells
    )


def format_report(report: FailoverReport) -> str:
    lines = [
        f"** Node {report.failed_node} Failover ::",
        f"lost shards: {list(report.lost_shard_ids)}",
        "leader failover: "
        + str([(p.shard_id, p.new_leader_node) for p in report.promotions]),
    ]
    for node, hits in report.per_node_hit_count.items():
        promoted = report.per_node_leader_promotion_count.get(node, 0)
        lines.append(f"N-{node:03d}: hits={hits} promotions={promoted}")
    if report.unpromoted_groups:
        lines.append(f"groups left without leader: {list(report.unpromoted_groups)}")
    return "\n".join(lines)


def format_sweep(sweep: Dict[int, SweepEntry]) -> str:
    lines: List[str] = ["** Fail Delta Distribution ::"]
    for rank_cycle in sorted(sweep):
        entry = sweep[rank_cycle]
        lines.append(
            f"{rank_cycle}: delta: {entry.delta} => {list(entry.per_node_hit_counts)}"
        )
    return "\n".join(lines)
