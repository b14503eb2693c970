import logging
from collections import Counter
from typing import Any

import networkx as nx

from koreo_graph.export import to_networkx
from koreo_graph.models import InflatedGraph

logger = logging.getLogger(__name__)


def validate_graph(inflated: InflatedGraph) -> dict[str, Any]:
    """
    Check an inflated graph for structural problems.

    Detects:
    - Duplicate node ids
    - Edges whose source or target is not a node
    - Cycles (a workflow graph should be a DAG)

    Args:
        inflated: Graph to validate

    Returns:
        Dictionary with ``valid``, ``node_count``, ``edge_count`` and ``issues``
    """
    issues: list[dict[str, Any]] = []

    id_counts = Counter(node.id for node in inflated.nodes)
    for node_id, count in id_counts.items():
        if count > 1:
            issues.append(
                {
                    "type": "duplicate_node",
                    "node_id": node_id,
                    "count": count,
                    "message": f"Node id {node_id} appears {count} times",
                }
            )

    for edge in inflated.edges:
        for end in ("source", "target"):
            node_id = getattr(edge, end)
            if node_id not in id_counts:
                issues.append(
                    {
                        "type": "dangling_edge",
                        "edge_id": edge.id,
                        "message": f"Edge {edge.id} has unknown {end} {node_id}",
                    }
                )

    cycles = check_graph_cycles(inflated)
    for cycle in cycles:
        issues.append(
            {
                "type": "cycle",
                "nodes": cycle,
                "message": f"Cycle through {' -> '.join(cycle)}",
            }
        )

    if issues:
        logger.warning(f"Graph validation found {len(issues)} issues")

    return {
        "valid": not issues,
        "node_count": len(inflated.nodes),
        "edge_count": len(inflated.edges),
        "issues": issues,
    }


def check_graph_cycles(inflated: InflatedGraph, limit: int = 10) -> list[list[str]]:
    """Return up to ``limit`` simple cycles of the graph."""
    graph = to_networkx(inflated)
    cycles: list[list[str]] = []
    for cycle in nx.simple_cycles(graph):
        cycles.append(cycle)
        if len(cycles) >= limit:
            break
    return cycles
