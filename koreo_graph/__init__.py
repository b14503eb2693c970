from koreo_graph.adapters import KubernetesAdapter
from koreo_graph.builder import WorkflowGraphBuilder
from koreo_graph.dependencies import find_references, find_step_references
from koreo_graph.exceptions import CircularReferenceError, KoreoGraphError, MaxDepthExceededError
from koreo_graph.export import export_json, load_json, to_networkx
from koreo_graph.graph import KoreoGraph
from koreo_graph.inflater import CollapsedStrategy, ExpandedStrategy, GraphInflater, inflate_graph
from koreo_graph.managed_resources import (
    classify,
    count_resources,
    parse_managed_resources,
    select_for_step,
)
from koreo_graph.models import (
    BuildOptions,
    EdgeType,
    InflatedEdge,
    InflatedGraph,
    InflatedNode,
    NodeType,
)
from koreo_graph.node_identity import NodeId, NodeIdentity
from koreo_graph.protocols import KoreoClientProtocol
from koreo_graph.service import WorkflowGraphService
from koreo_graph.validator import check_graph_cycles, validate_graph

__version__ = "0.1.0"

__all__ = [
    "KubernetesAdapter",
    "WorkflowGraphBuilder",
    "WorkflowGraphService",
    "GraphInflater",
    "CollapsedStrategy",
    "ExpandedStrategy",
    "inflate_graph",
    "KoreoGraph",
    "KoreoClientProtocol",
    "NodeId",
    "NodeIdentity",
    "BuildOptions",
    "EdgeType",
    "NodeType",
    "InflatedGraph",
    "InflatedNode",
    "InflatedEdge",
    "find_references",
    "find_step_references",
    "parse_managed_resources",
    "classify",
    "select_for_step",
    "count_resources",
    "KoreoGraphError",
    "CircularReferenceError",
    "MaxDepthExceededError",
    "export_json",
    "load_json",
    "to_networkx",
    "validate_graph",
    "check_graph_cycles",
]
