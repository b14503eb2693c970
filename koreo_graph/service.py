import logging

from koreo_graph.builder import WorkflowGraphBuilder
from koreo_graph.inflater import inflate_graph
from koreo_graph.models import BuildOptions, InflatedGraph
from koreo_graph.protocols import KoreoClientProtocol

logger = logging.getLogger(__name__)


class WorkflowGraphService:
    """
    Produces presentation graphs for workflows and workflow instances.

    Each call builds a fresh internal graph and discards it once inflated.

    Example:
        >>> service = WorkflowGraphService(KubernetesAdapter())
        >>> graph = await service.get_instance_graph("default", "my-workflow", "my-app", expanded=True)
        >>> graph.to_dict()
    """

    def __init__(self, client: KoreoClientProtocol, options: BuildOptions | None = None):
        self.client = client
        self.options = options or BuildOptions()

    async def get_graph(
        self, namespace: str, workflow_id: str, expanded: bool = False
    ) -> InflatedGraph:
        """
        Graph of a workflow definition. Managed resources are never included.

        Returns an empty graph if the workflow does not exist.
        """
        builder = WorkflowGraphBuilder(self.client, self.options)
        graph = await builder.build(namespace, workflow_id)
        return inflate_graph(graph, include_resources=False, expanded=expanded)

    async def get_instance_graph(
        self,
        namespace: str,
        workflow_id: str,
        instance_id: str,
        expanded: bool = False,
    ) -> InflatedGraph:
        """
        Graph of a running workflow instance, including the resources it manages.

        Returns an empty graph if the workflow or the instance does not exist.
        """
        builder = WorkflowGraphBuilder(self.client, self.options)
        graph = await builder.build(namespace, workflow_id, instance_id=instance_id)
        inflated = inflate_graph(graph, include_resources=True, expanded=expanded)

        stats = builder.get_build_stats()
        if stats["missing"]:
            logger.info(
                f"Instance graph {namespace}/{workflow_id}/{instance_id}: "
                f"{stats['missing']} fetches found nothing"
            )
        return inflated
