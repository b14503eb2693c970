import logging
from typing import Any, Literal, Union

import networkx as nx
from pydantic import BaseModel, ConfigDict, Field

from koreo_graph.models import EdgeType, ManagedKubernetesResource, NodeType
from koreo_graph.node_identity import NodeId

logger = logging.getLogger(__name__)


class _KNode(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: NodeId
    metadata: dict[str, Any] | None = None

    @property
    def label(self) -> str | None:
        if self.metadata:
            return self.metadata.get("label")
        return None


class WorkflowNode(_KNode):
    type: Literal[NodeType.WORKFLOW] = NodeType.WORKFLOW
    krm: dict[str, Any]


class ParentNode(_KNode):
    type: Literal[NodeType.PARENT] = NodeType.PARENT
    krm: dict[str, Any]


class ValueFunctionNode(_KNode):
    type: Literal[NodeType.VALUE_FUNCTION] = NodeType.VALUE_FUNCTION
    krm: dict[str, Any]


class ResourceFunctionNode(_KNode):
    type: Literal[NodeType.RESOURCE_FUNCTION] = NodeType.RESOURCE_FUNCTION
    krm: dict[str, Any]
    managed_resources: list[ManagedKubernetesResource] = Field(default_factory=list)


class SubWorkflowNode(_KNode):
    """A sub-workflow step. Its own graph is kept whole, not spliced into the parent."""

    type: Literal[NodeType.SUB_WORKFLOW] = NodeType.SUB_WORKFLOW
    workflow_graph: "KoreoGraph"
    leaf_node_ids: list[NodeId] = Field(default_factory=list)

    @property
    def workflow_node(self) -> WorkflowNode:
        return self.workflow_graph.workflow_node


LogicNode = Union[ValueFunctionNode, ResourceFunctionNode, SubWorkflowNode]


class RefSwitchNode(_KNode):
    type: Literal[NodeType.REF_SWITCH] = NodeType.REF_SWITCH
    switch_on: str
    case_nodes: dict[str, LogicNode] = Field(default_factory=dict)
    managed_resources: list[ManagedKubernetesResource] = Field(default_factory=list)


KNode = Union[WorkflowNode, ParentNode, ValueFunctionNode, ResourceFunctionNode, SubWorkflowNode, RefSwitchNode]


class GraphEdge(BaseModel):
    model_config = ConfigDict(frozen=True)

    source: NodeId
    target: NodeId
    type: EdgeType

    @property
    def id(self) -> str:
        return f"{self.source}:{self.target}"


class KoreoGraph:
    """
    Internal graph of one workflow, backed by a networkx DiGraph.

    Nodes are keyed by NodeId and carry their KNode under the ``node``
    attribute. Adding a node with an existing id replaces it; adding an edge
    that already exists is a no-op. One instance is built per workflow per
    request and owned by whoever requested it.
    """

    def __init__(self) -> None:
        self._graph = nx.DiGraph()
        self._workflow_node_id: NodeId | None = None
        self.managed_resources: list[ManagedKubernetesResource] = []

    def add_node(self, node: KNode) -> None:
        if node.type == NodeType.WORKFLOW and self._workflow_node_id is None:
            self._workflow_node_id = node.id
        self._graph.add_node(node.id, node=node)
        logger.debug(f"Added node: {node.type.value} {node.id}")

    def add_edge(self, source: NodeId, target: NodeId, edge_type: EdgeType) -> None:
        if self._graph.has_edge(source, target):
            return
        self._graph.add_edge(source, target, type=edge_type)
        logger.debug(f"Added edge: {source} --[{edge_type.value}]--> {target}")

    def get_node(self, node_id: NodeId) -> KNode | None:
        if not self._graph.has_node(node_id):
            return None
        return self._graph.nodes[node_id].get("node")

    @property
    def nodes(self) -> list[KNode]:
        return [attrs["node"] for _, attrs in self._graph.nodes(data=True) if "node" in attrs]

    @property
    def edges(self) -> list[GraphEdge]:
        return [
            GraphEdge(source=source, target=target, type=attrs["type"])
            for source, target, attrs in self._graph.edges(data=True)
        ]

    @property
    def workflow_node(self) -> WorkflowNode:
        if self._workflow_node_id is None:
            raise ValueError("Graph has no workflow node")
        return self._graph.nodes[self._workflow_node_id]["node"]

    def is_empty(self) -> bool:
        return self._graph.number_of_nodes() == 0

    def number_of_nodes(self) -> int:
        return self._graph.number_of_nodes()

    def number_of_edges(self) -> int:
        return self._graph.number_of_edges()


SubWorkflowNode.model_rebuild()
RefSwitchNode.model_rebuild()
