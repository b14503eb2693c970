import json
import logging
from pathlib import Path

import networkx as nx

from koreo_graph.models import InflatedGraph
from koreo_graph.node_identity import NodeIdentity

logger = logging.getLogger(__name__)


def to_networkx(inflated: InflatedGraph) -> nx.DiGraph:
    """
    Convert an inflated graph to a NetworkX DiGraph.

    Node attributes: ``label``, ``type``, ``is_domain_type``, ``kind``, ``namespace`` and
    ``metadata``. Edge attributes: ``id`` and ``type``.

    Example:
        >>> graph = to_networkx(await service.get_graph("default", "my-workflow"))
        >>> nx.is_directed_acyclic_graph(graph)
        True
    """
    graph = nx.DiGraph()
    identity = NodeIdentity()

    for node in inflated.nodes:
        attrs = identity.extract_node_attributes(node.underlying_object or {})
        graph.add_node(
            node.id,
            label=node.label,
            type=node.type.name,
            is_domain_type=node.type.is_domain_type,
            kind=attrs["kind"],
            namespace=attrs["namespace"],
            metadata=node.metadata or {},
        )

    for edge in inflated.edges:
        graph.add_edge(edge.source, edge.target, id=edge.id, type=edge.type.value)

    return graph


def export_json(inflated: InflatedGraph, output_file: str) -> None:
    """
    Write an inflated graph as JSON, with the camelCase keys UIs consume.

    Args:
        inflated: Graph to export
        output_file: Path to the JSON file (parent directories are created)
    """
    path = Path(output_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(inflated.to_dict(), indent=2))
    logger.info(
        f"Exported graph with {len(inflated.nodes)} nodes and {len(inflated.edges)} edges "
        f"to {output_file}"
    )


def load_json(input_file: str) -> InflatedGraph:
    return InflatedGraph.model_validate_json(Path(input_file).read_text())
