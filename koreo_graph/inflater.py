"""
Conversion of internal workflow graphs into presentation graphs.

Two views are produced by the same traversal:

- collapsed: one node per step; sub-workflows and RefSwitches are single nodes
- expanded: sub-workflows are spliced inline and RefSwitches become a
  switch-in/switch-out pair with their cases between them

The view-specific parts live in a strategy with two hooks, ``on_sub_workflow``
and ``on_ref_switch``. Hooks may register entry/exit redirects, which the
traversal applies to every edge of the graph being inflated.
"""

import logging
from typing import Any

from koreo_graph.graph import (
    KoreoGraph,
    ParentNode,
    RefSwitchNode,
    ResourceFunctionNode,
    SubWorkflowNode,
    ValueFunctionNode,
    WorkflowNode,
)
from koreo_graph.models import (
    DomainType,
    EdgeType,
    InflatedEdge,
    InflatedGraph,
    InflatedNode,
    InflatedNodeType,
    ManagedKubernetesResource,
)
from koreo_graph.node_identity import NodeId, NodeIdentity, NodeIdKind

logger = logging.getLogger(__name__)

REF_SWITCH_LABEL = "RefSwitch"
REF_SWITCH_RESULT_LABEL = "RefSwitch Result"


class Inflation:
    """
    Nodes and edges produced while inflating one internal graph.

    Attributes:
        aliases: Internal ids emitted under another id (a spliced
            sub-workflow's Workflow node takes its step's id)
        entries: Where edges targeting an internal id should land instead
        exits: Where edges sourced from an internal id should start instead
    """

    def __init__(self, aliases: dict[NodeId, NodeId] | None = None) -> None:
        self.nodes: dict[str, InflatedNode] = {}
        self.edges: dict[str, InflatedEdge] = {}
        self.aliases: dict[NodeId, NodeId] = aliases or {}
        self.entries: dict[NodeId, NodeId] = {}
        self.exits: dict[NodeId, list[NodeId]] = {}

    def resolve(self, node_id: NodeId) -> NodeId:
        return self.aliases.get(node_id, node_id)

    def add_node(self, node: InflatedNode) -> None:
        self.nodes[node.id] = node

    def add_edge(self, source: NodeId | str, target: NodeId | str, edge_type: EdgeType) -> None:
        edge = InflatedEdge.create(str(source), str(target), edge_type)
        self.edges.setdefault(edge.id, edge)

    def add_graph_edge(self, source: NodeId, target: NodeId, edge_type: EdgeType) -> None:
        source = self.resolve(source)
        target = self.resolve(target)
        target = self.entries.get(target, target)
        for exit_id in self.exits.get(source, [source]):
            self.add_edge(exit_id, target, edge_type)

    def splice(self, other: "Inflation") -> None:
        self.nodes.update(other.nodes)
        for edge_id, edge in other.edges.items():
            self.edges.setdefault(edge_id, edge)

    def exit_ids(self, leaf_node_ids: list[NodeId]) -> list[NodeId]:
        """Map a workflow's leaf ids to the ids edges should really leave from."""
        resolved: list[NodeId] = []
        for leaf_id in leaf_node_ids:
            leaf_id = self.resolve(leaf_id)
            resolved.extend(self.exits.get(leaf_id, [leaf_id]))
        return list(dict.fromkeys(resolved))


class InflationStrategy:
    """Hooks for the node kinds whose presentation differs between views."""

    def on_sub_workflow(
        self,
        inflater: "GraphInflater",
        node: SubWorkflowNode,
        out: Inflation,
        include_resources: bool,
    ) -> None:
        raise NotImplementedError

    def on_ref_switch(
        self,
        inflater: "GraphInflater",
        node: RefSwitchNode,
        out: Inflation,
        include_resources: bool,
    ) -> None:
        raise NotImplementedError


class CollapsedStrategy(InflationStrategy):
    def on_sub_workflow(self, inflater, node, out, include_resources):
        workflow_node = node.workflow_node
        out.add_node(
            InflatedNode(
                id=str(node.id),
                label=inflater.node_identity.get_label(workflow_node.krm, workflow_node.metadata),
                type=InflatedNodeType.domain(DomainType.SUB_WORKFLOW),
                underlying_object=workflow_node.krm,
            )
        )
        if include_resources:
            inflater.add_resource_nodes(out, node.id, node.workflow_graph.managed_resources)

    def on_ref_switch(self, inflater, node, out, include_resources):
        out.add_node(
            InflatedNode(
                id=str(node.id),
                label=node.label or REF_SWITCH_LABEL,
                type=InflatedNodeType.domain(DomainType.REF_SWITCH),
                metadata={"switchOn": node.switch_on, "cases": list(node.case_nodes)},
            )
        )
        if include_resources:
            inflater.add_resource_nodes(out, node.id, node.managed_resources)


class ExpandedStrategy(InflationStrategy):
    def on_sub_workflow(self, inflater, node, out, include_resources):
        # The sub-workflow's Workflow node takes the step's id so edges into
        # the step land on it.
        sub = inflater.inflate_into(
            node.workflow_graph,
            include_resources,
            aliases={node.workflow_node.id: node.id},
        )
        out.splice(sub)
        out.exits[node.id] = sub.exit_ids(node.leaf_node_ids) or [node.id]

    def on_ref_switch(self, inflater, node, out, include_resources):
        switch_in = node.id.derive(NodeIdKind.SWITCH_IN)
        switch_out = node.id.derive(NodeIdKind.SWITCH_OUT)

        out.add_node(
            InflatedNode(
                id=str(switch_in),
                label=node.label or REF_SWITCH_LABEL,
                type=InflatedNodeType.domain(DomainType.REF_SWITCH),
            )
        )
        out.add_node(
            InflatedNode(
                id=str(switch_out),
                label=node.label or REF_SWITCH_RESULT_LABEL,
                type=InflatedNodeType.domain(DomainType.REF_SWITCH_RESULT),
            )
        )

        for case, case_node in node.case_nodes.items():
            case_label = f"case: {case}"
            if isinstance(case_node, SubWorkflowNode):
                sub = inflater.inflate_into(
                    case_node.workflow_graph, False, workflow_label=case_label
                )
                out.splice(sub)
                entry = case_node.workflow_node.id
                exits = sub.exit_ids(case_node.leaf_node_ids) or [entry]
            else:
                out.add_node(inflater.function_node(case_node, out, False, label=case_label))
                entry = case_node.id
                exits = [case_node.id]

            out.add_edge(switch_in, entry, EdgeType.STEP_TO_STEP)
            for exit_id in exits:
                out.add_edge(exit_id, switch_out, EdgeType.STEP_TO_STEP)

        # Resources only exist once a case has been selected and run.
        if include_resources:
            inflater.add_resource_nodes(out, switch_out, node.managed_resources)

        out.entries[node.id] = switch_in
        out.exits[node.id] = [switch_out]


class GraphInflater:
    """
    Inflates internal graphs into InflatedGraphs using a view strategy.

    Example:
        >>> inflater = GraphInflater(ExpandedStrategy())
        >>> inflated = inflater.inflate(graph, include_resources=True)
    """

    def __init__(self, strategy: InflationStrategy):
        self.strategy = strategy
        self.node_identity = NodeIdentity()

    def inflate(self, graph: KoreoGraph, include_resources: bool) -> InflatedGraph:
        out = self.inflate_into(graph, include_resources)
        logger.debug(
            f"Inflated graph with {len(out.nodes)} nodes and {len(out.edges)} edges "
            f"using {self.strategy.__class__.__name__}"
        )
        return InflatedGraph(nodes=list(out.nodes.values()), edges=list(out.edges.values()))

    def inflate_into(
        self,
        graph: KoreoGraph,
        include_resources: bool,
        aliases: dict[NodeId, NodeId] | None = None,
        workflow_label: str | None = None,
    ) -> Inflation:
        """
        Inflate one internal graph (recursing through the strategy hooks).

        Args:
            graph: Internal graph to inflate
            include_resources: Whether managed resources become nodes
            aliases: Internal ids to emit under a different id
            workflow_label: Label overriding the Workflow node's own label

        Returns:
            Inflation holding the produced nodes, edges and redirects
        """
        out = Inflation(aliases)

        for node in graph.nodes:
            if isinstance(node, SubWorkflowNode):
                self.strategy.on_sub_workflow(self, node, out, include_resources)
            elif isinstance(node, RefSwitchNode):
                self.strategy.on_ref_switch(self, node, out, include_resources)
            elif isinstance(node, WorkflowNode):
                out.add_node(
                    InflatedNode(
                        id=str(out.resolve(node.id)),
                        label=workflow_label or self.node_identity.get_label(node.krm, node.metadata),
                        type=InflatedNodeType.domain(DomainType.WORKFLOW),
                        underlying_object=node.krm,
                    )
                )
            elif isinstance(node, ParentNode):
                out.add_node(
                    InflatedNode(
                        id=str(node.id),
                        label=self.node_identity.get_label(node.krm, node.metadata),
                        type=InflatedNodeType.kind(node.krm.get("kind") or "Unknown"),
                        underlying_object=node.krm,
                    )
                )
            else:
                out.add_node(self.function_node(node, out, include_resources))

        for edge in graph.edges:
            out.add_graph_edge(edge.source, edge.target, edge.type)

        return out

    def function_node(
        self,
        node: ValueFunctionNode | ResourceFunctionNode,
        out: Inflation,
        include_resources: bool,
        label: str | None = None,
    ) -> InflatedNode:
        """Build the node for a Function step, adding its managed resources if asked."""
        domain_type = (
            DomainType.RESOURCE_FUNCTION
            if isinstance(node, ResourceFunctionNode)
            else DomainType.VALUE_FUNCTION
        )
        if include_resources and isinstance(node, ResourceFunctionNode):
            self.add_resource_nodes(out, node.id, node.managed_resources)

        return InflatedNode(
            id=str(out.resolve(node.id)),
            label=label or self.node_identity.get_label(node.krm, node.metadata),
            type=InflatedNodeType.domain(domain_type),
            underlying_object=node.krm,
        )

    def add_resource_nodes(
        self,
        out: Inflation,
        owner_id: NodeId,
        managed_resources: list[ManagedKubernetesResource],
    ) -> None:
        for managed in managed_resources:
            resource = managed.resource
            resource_id = self.node_identity.get_node_id(resource)
            out.add_node(
                InflatedNode(
                    id=str(resource_id),
                    label=self.node_identity.get_name(resource),
                    type=InflatedNodeType.kind(resource.get("kind") or "Unknown"),
                    underlying_object=resource,
                    metadata=_resource_metadata(managed),
                )
            )
            out.add_edge(out.resolve(owner_id), resource_id, EdgeType.STEP_TO_RESOURCE)


def inflate_graph(graph: KoreoGraph, include_resources: bool, expanded: bool = False) -> InflatedGraph:
    """Inflate ``graph`` into the collapsed view, or the expanded one if ``expanded``."""
    strategy: InflationStrategy = ExpandedStrategy() if expanded else CollapsedStrategy()
    return GraphInflater(strategy).inflate(graph, include_resources)


def _resource_metadata(managed: ManagedKubernetesResource) -> dict[str, Any]:
    return {"managedResource": True, "readonly": managed.readonly}
