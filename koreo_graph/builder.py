import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from koreo_graph.dependencies import find_step_references
from koreo_graph.exceptions import CircularReferenceError, MaxDepthExceededError
from koreo_graph.graph import (
    KNode,
    KoreoGraph,
    LogicNode,
    ParentNode,
    RefSwitchNode,
    ResourceFunctionNode,
    SubWorkflowNode,
    ValueFunctionNode,
    WorkflowNode,
)
from koreo_graph.managed_resources import (
    ManagedResourceEntry,
    ManagedResources,
    ResourceRef,
    count_resources,
    parse_managed_resources,
    select_for_step,
)
from koreo_graph.models import (
    BuildOptions,
    EdgeType,
    ManagedKubernetesResource,
    Step,
    parse_workflow_spec,
)
from koreo_graph.node_identity import NodeId, NodeIdentity, NodeIdKind
from koreo_graph.protocols import KoreoClientProtocol

logger = logging.getLogger(__name__)

WorkflowChain = tuple[tuple[str, str], ...]
T = TypeVar("T")


class WorkflowGraphBuilder:
    """
    Builds the internal graph of a Koreo workflow, optionally for a live instance.

    The builder orchestrates:
    - Fetching the workflow, its functions and sub-workflows via the client
    - Building one node per step (Function, sub-workflow or RefSwitch)
    - Deriving step-to-step edges from the expressions each step uses
    - Attaching the live objects a running instance created to the steps that
      own them

    Steps of one workflow are built concurrently; edges are only computed
    once every step has finished. Sub-workflows are built recursively and
    kept whole inside their SubWorkflowNode.

    Example:
        >>> builder = WorkflowGraphBuilder(KubernetesAdapter())
        >>> graph = await builder.build("default", "my-workflow", instance_id="my-app")
    """

    def __init__(self, client: KoreoClientProtocol, options: BuildOptions | None = None):
        """
        Initialize the graph builder.

        Args:
            client: Koreo client implementation
            options: Build options (defaults if None)
        """
        self.client = client
        self.options = options or BuildOptions()
        self.node_identity = NodeIdentity()

        self._semaphore: asyncio.Semaphore | None = None
        self._stats = self._empty_stats()

    async def build(
        self,
        namespace: str,
        workflow_id: str,
        instance_id: str | None = None,
    ) -> KoreoGraph:
        """
        Build the graph of a workflow, or of one of its instances.

        Args:
            namespace: Namespace of the workflow
            workflow_id: Workflow name
            instance_id: Name of the workflow's parent custom resource, if the
                graph should include the resources that instance manages

        Returns:
            Internal graph; empty if the workflow or instance does not exist

        Raises:
            CircularReferenceError: If a workflow embeds itself
            MaxDepthExceededError: If sub-workflows nest deeper than max_depth
        """
        self._stats = self._empty_stats()
        self._semaphore = asyncio.Semaphore(self.options.fetch_concurrency)

        graph, leaf_node_ids = await self.build_with_leaf_nodes(
            namespace, workflow_id, instance_id=instance_id
        )

        logger.info(
            f"Built graph for workflow {namespace}/{workflow_id} with "
            f"{graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges "
            f"and {len(leaf_node_ids)} leaf nodes"
        )
        return graph

    async def build_with_leaf_nodes(
        self,
        namespace: str,
        workflow_id: str,
        step_label: str | None = None,
        instance_id: str | None = None,
        managed_resources: ManagedResources | None = None,
        _chain: WorkflowChain = (),
    ) -> tuple[KoreoGraph, list[NodeId]]:
        """
        Build a workflow graph and return it with its leaf node ids.

        Leaf nodes are step nodes no other step depends on; a parent workflow
        embedding this one wires its downstream steps from them.

        Args:
            namespace: Namespace of the workflow
            workflow_id: Workflow name
            step_label: Label of the calling step when built as a sub-workflow
            instance_id: Parent custom resource name; its managed-resources
                annotation replaces ``managed_resources``
            managed_resources: Managed resources inherited from the calling step

        Returns:
            Tuple of (graph, leaf node ids)
        """
        key = (namespace, workflow_id)
        if key in _chain:
            raise CircularReferenceError([*_chain, key])
        if len(_chain) >= self.options.max_depth:
            raise MaxDepthExceededError(namespace, workflow_id, self.options.max_depth)
        chain = (*_chain, key)

        graph = KoreoGraph()

        workflow = await self._fetch(
            "workflows",
            f"Workflow {namespace}/{workflow_id}",
            lambda: self.client.get_workflow(namespace, workflow_id),
        )
        if not workflow:
            logger.warning(f"Workflow not found: {namespace}/{workflow_id}")
            return graph, []

        workflow_node = WorkflowNode(
            id=self.node_identity.get_node_id(workflow),
            krm=workflow,
            metadata=_label_metadata(step_label),
        )
        graph.add_node(workflow_node)

        if instance_id:
            parent = await self._fetch(
                "instances",
                f"instance {instance_id} of {namespace}/{workflow_id}",
                lambda: self.client.get_workflow_instance(workflow, instance_id),
            )
            if not parent:
                logger.warning(f"Instance {instance_id} of workflow {namespace}/{workflow_id} not found")
                return KoreoGraph(), []

            parent_node = ParentNode(
                id=self.node_identity.get_node_id(parent, NodeIdKind.PARENT),
                krm=parent,
            )
            graph.add_node(parent_node)
            graph.add_edge(parent_node.id, workflow_node.id, EdgeType.PARENT_TO_WORKFLOW)

            managed_resources = parse_managed_resources(parent)
            logger.info(
                f"Instance {instance_id} reports {count_resources(managed_resources)} "
                f"managed resources"
            )

        steps = list(parse_workflow_spec(workflow).iter_steps(workflow_id))

        step_results = await _gather_or_cancel(
            *(
                self._build_step(
                    namespace, label, step, select_for_step(managed_resources, label), chain
                )
                for label, step in steps
            )
        )

        # Every step task has joined; the label index is complete from here on.
        step_nodes: dict[str, NodeId] = {}
        for (label, _), node in zip(steps, step_results):
            if node is None:
                continue
            graph.add_node(node)
            step_nodes[label] = node.id
            graph.managed_resources.extend(_node_resources(node))

        nodes_with_dependents: set[NodeId] = set()
        for label, step in steps:
            node_id = step_nodes.get(label)
            if node_id is None:
                continue

            has_dependency = False
            for reference in sorted(find_step_references(step)):
                dependency_id = step_nodes.get(reference)
                if dependency_id is None or dependency_id == node_id:
                    continue
                graph.add_edge(dependency_id, node_id, EdgeType.STEP_TO_STEP)
                nodes_with_dependents.add(dependency_id)
                has_dependency = True

            if not has_dependency:
                graph.add_edge(workflow_node.id, node_id, EdgeType.WORKFLOW_TO_STEP)

        leaf_node_ids = [
            node_id
            for node_id in dict.fromkeys(step_nodes.values())
            if node_id not in nodes_with_dependents
        ]
        return graph, leaf_node_ids

    async def _build_step(
        self,
        namespace: str,
        label: str,
        step: Step,
        managed_resource: ManagedResourceEntry | None,
        chain: WorkflowChain,
    ) -> KNode | None:
        if step.ref_switch is not None:
            return await self._build_ref_switch_node(namespace, label, step, managed_resource, chain)

        return await self._build_logic_node(
            namespace, label, step.ref.kind, step.ref.name, managed_resource, chain
        )

    async def _build_logic_node(
        self,
        namespace: str,
        label: str,
        kind: str,
        name: str,
        managed_resource: ManagedResourceEntry | None,
        chain: WorkflowChain,
    ) -> LogicNode | None:
        if kind == "Workflow":
            return await self._build_sub_workflow_node(namespace, label, name, managed_resource, chain)
        return await self._build_function_node(namespace, label, kind, name, managed_resource)

    async def _build_function_node(
        self,
        namespace: str,
        label: str,
        kind: str,
        name: str,
        managed_resource: ManagedResourceEntry | None,
    ) -> ValueFunctionNode | ResourceFunctionNode | None:
        function = await self._fetch(
            "functions",
            f"{kind} {namespace}/{name}",
            lambda: self.client.get_function(namespace, kind, name),
        )
        if not function:
            logger.warning(f"{kind} {namespace}/{name} for step '{label}' not found")
            return None

        node_id = self.node_identity.get_node_id(function)
        if kind == "ValueFunction":
            return ValueFunctionNode(id=node_id, krm=function, metadata=_label_metadata(label))

        descriptors = managed_resource.descriptors() if managed_resource is not None else []
        return ResourceFunctionNode(
            id=node_id,
            krm=function,
            managed_resources=await self._fetch_managed_resources(descriptors),
            metadata=_label_metadata(label),
        )

    async def _build_sub_workflow_node(
        self,
        namespace: str,
        label: str,
        workflow_id: str,
        managed_resource: ManagedResourceEntry | None,
        chain: WorkflowChain,
    ) -> SubWorkflowNode | None:
        """
        Build a sub-workflow step.

        A plain sub-workflow step records one nested map; a forEach over a
        sub-workflow (or a RefSwitch with sub-workflow cases) records a list
        with one map per iteration. The node's structure comes from the first
        iteration and its managed resources from all of them.
        """
        iterations = managed_resource.nested_maps() if managed_resource is not None else []

        if not iterations:
            workflow_graph, leaf_node_ids = await self.build_with_leaf_nodes(
                namespace, workflow_id, step_label=label, _chain=chain
            )
        else:
            results = await _gather_or_cancel(
                *(
                    self.build_with_leaf_nodes(
                        namespace,
                        workflow_id,
                        step_label=label,
                        managed_resources=iteration,
                        _chain=chain,
                    )
                    for iteration in iterations
                )
            )
            workflow_graph, leaf_node_ids = results[0]
            workflow_graph.managed_resources = _dedupe_resources(
                resource for graph, _ in results for resource in graph.managed_resources
            )

        if workflow_graph.is_empty():
            return None

        workflow_node = workflow_graph.workflow_node
        return SubWorkflowNode(
            id=workflow_node.id.derive(NodeIdKind.SUB_WORKFLOW),
            workflow_graph=workflow_graph,
            leaf_node_ids=leaf_node_ids,
            metadata=_label_metadata(label),
        )

    async def _build_ref_switch_node(
        self,
        namespace: str,
        label: str,
        step: Step,
        managed_resource: ManagedResourceEntry | None,
        chain: WorkflowChain,
    ) -> RefSwitchNode:
        cases = step.ref_switch.cases
        case_results = await _gather_or_cancel(
            *(
                self._build_logic_node(namespace, label, case.kind, case.name, managed_resource, chain)
                for case in cases
            )
        )
        case_nodes = {
            case.case: node for case, node in zip(cases, case_results) if node is not None
        }

        # Identical case sets produce the same switch id on every build.
        key = "-".join(sorted({str(node.id) for node in case_nodes.values()})) or label

        return RefSwitchNode(
            id=NodeId(kind=NodeIdKind.SWITCH, key=key),
            switch_on=step.ref_switch.switch_on,
            case_nodes=case_nodes,
            managed_resources=_dedupe_resources(
                resource for node in case_nodes.values() for resource in _node_resources(node)
            ),
            metadata=_label_metadata(label),
        )

    async def _fetch_managed_resources(
        self, descriptors: list[ResourceRef]
    ) -> list[ManagedKubernetesResource]:
        resources = await _gather_or_cancel(
            *(
                self._fetch(
                    "resources",
                    f"{ref.kind} {ref.namespace}/{ref.name}",
                    lambda ref=ref: self.client.get_resource(
                        ref.api_version, ref.kind, ref.namespace, ref.name
                    ),
                )
                for ref in descriptors
            )
        )

        managed: list[ManagedKubernetesResource] = []
        for ref, resource in zip(descriptors, resources):
            if not resource:
                logger.warning(f"Managed resource {ref.kind}/{ref.name} not found")
                continue
            managed.append(ManagedKubernetesResource(resource=resource, readonly=ref.readonly))
        return managed

    async def _fetch(
        self,
        category: str,
        description: str,
        fetch: Callable[[], Awaitable[dict[str, Any] | None]],
    ) -> dict[str, Any] | None:
        """Run one client call; failures are logged and reported as not found."""
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.options.fetch_concurrency)

        async with self._semaphore:
            try:
                result = await fetch()
            except Exception as e:
                logger.warning(f"Error fetching {description}: {e}")
                result = None

        self._stats[category] += 1
        if not result:
            self._stats["missing"] += 1
        return result

    @staticmethod
    def _empty_stats() -> dict[str, int]:
        return {"workflows": 0, "instances": 0, "functions": 0, "resources": 0, "missing": 0}

    def get_build_stats(self) -> dict[str, int]:
        """
        Get fetch statistics for the last build.

        Returns:
            Dictionary with the number of workflows, instances, functions and
            managed resources fetched, and how many fetches found nothing
        """
        return self._stats.copy()


def _label_metadata(label: str | None) -> dict[str, Any] | None:
    return {"label": label} if label else None


def _node_resources(node: KNode) -> list[ManagedKubernetesResource]:
    if isinstance(node, (ResourceFunctionNode, RefSwitchNode)):
        return node.managed_resources
    if isinstance(node, SubWorkflowNode):
        return node.workflow_graph.managed_resources
    return []


def _dedupe_resources(resources) -> list[ManagedKubernetesResource]:
    identity = NodeIdentity()
    unique: dict[str, ManagedKubernetesResource] = {}
    for managed in resources:
        unique.setdefault(identity.get_object_key(managed.resource), managed)
    return list(unique.values())


async def _gather_or_cancel(*aws: Awaitable[T]) -> list[T]:
    """
    Run awaitables concurrently and return their results in order.

    If one raises, or the caller is cancelled, every unfinished sibling is
    cancelled and awaited before the exception propagates.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
