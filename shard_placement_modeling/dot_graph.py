"""
Graphviz export of a placement matrix.

Each node becomes an HTML-table record listing its slots top to bottom, and
the first slot of every group is chained across the nodes so the rotation
of a group is easy to follow. With a failover report the cells are colored
by what the failure does to them:

    red     promoted to leader
    blue    holds a replica of a lost shard
    orange  unaffected leader slot
    white   unaffected follower slot

Render with ``dot -Tsvg layout.dot -o layout.svg``.
"""

import logging
from pathlib import Path
from typing import List
from typing import Optional
from typing import Set
from typing import Tuple
from typing import Union

from shard_placement_modeling.interface import FailoverReport
from shard_placement_modeling.interface import PlacementMatrix

logger = logging.getLogger(__name__)

GROUP_EDGE_COLORS = ("black", "red")


def _cell_color(
    matrix: PlacementMatrix,
    node: int,
    slot: int,
    lost: Set[int],
    promoted: Set[Tuple[int, int]],
) -> str:
    if matrix.cell(node, slot) in lost:
        return "red" if (node, slot) in promoted else "blue"
    return "orange" if matrix.is_leader_slot(slot) else "white"


def _node_record(
    matrix: PlacementMatrix, node: int, report: Optional[FailoverReport]
) -> List[str]:
    lost = set(report.lost_shard_ids) if report is not None else set()
    promoted = (
        {(p.new_leader_node, p.slot) for p in report.promotions}
        if report is not None
        else set()
    )
    lines = [
        f'\thost{node} [shape=none label=<<table><tr><td bgcolor="black">'
        f'<font color="white">Node-{node}</font></td></tr>'
    ]
    for slot in range(matrix.slots_per_node):
        color = _cell_color(matrix, node, slot, lost, promoted)
        value = matrix.cell(node, slot)
        if matrix.is_leader_slot(slot):
            port = f"g{node}_{matrix.group_of(slot)}"
            lines.append(
                f'<tr><td bgcolor="{color}" port="{port}">{value}</td></tr>'
            )
        else:
            lines.append(f'<tr><td bgcolor="{color}">{value}</td></tr>')

    if report is not None and node != report.failed_node:
        hits = report.per_node_hit_count.get(node, 0)
        promotions = report.per_node_leader_promotion_count.get(node, 0)
        lines.append(f'<tr><td bgcolor="green">{hits}</td></tr>')
        lines.append(f'<tr><td bgcolor="yellow">{promotions}</td></tr>')
    lines.append("</table>>];")
    return lines


def _group_edges(matrix: PlacementMatrix) -> List[str]:
    lines = []
    for group in range(matrix.group_count):
        color = GROUP_EDGE_COLORS[group % len(GROUP_EDGE_COLORS)]
        for node in range(matrix.node_count - 1):
            edge = (
                f"\thost{node}:g{node}_{group} -> "
                f"host{node + 1}:g{node + 1}_{group}"
            )
            if node == 0:
                lines.append(f'{edge} [ label="group{group}" color="{color}" ];')
            else:
                lines.append(f'{edge} [ color="{color}" ];')
    return lines


def render_dot_graph(
    matrix: PlacementMatrix, report: Optional[FailoverReport] = None
) -> str:
    lines = ["digraph G {", "\trankdir=LR;"]
    for node in range(matrix.node_count):
        lines.extend(_node_record(matrix, node, report))
    lines.extend(_group_edges(matrix))
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_dot_graph(
    matrix: PlacementMatrix,
    path: Union[str, Path],
    report: Optional[FailoverReport] = None,
) -> Path:
    """Write the graph to ``path``, OSError is left to the caller"""
    graph = render_dot_graph(matrix, report)
    output_path = Path(path)
    with open(output_path, "wt", encoding="utf-8") as fd:
        fd.write(graph)
    logger.debug("Wrote dot graph of %d nodes to %s", matrix.node_count, output_path)
    return output_path
