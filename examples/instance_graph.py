"""Graph of a running Koreo workflow instance, with the resources it manages."""

import asyncio
import logging

from koreo_graph import BuildOptions, KubernetesAdapter, WorkflowGraphService
from koreo_graph.export import export_json


async def main():
    """Build the expanded instance graph of every instance of a workflow."""
    logging.basicConfig(level=logging.INFO)

    client = KubernetesAdapter()
    service = WorkflowGraphService(client, BuildOptions(max_depth=8, fetch_concurrency=16))

    workflow = await client.get_workflow("default", "my-workflow")
    if workflow is None:
        print("Workflow default/my-workflow not found")
        return

    instances = await client.list_workflow_instances(workflow)
    print(f"Found {len(instances)} instances")

    for instance in instances:
        name = instance["metadata"]["name"]
        graph = await service.get_instance_graph("default", "my-workflow", name, expanded=True)

        resources = [
            node for node in graph.nodes if node.metadata and node.metadata.get("managedResource")
        ]
        print(f"\n{name}: {len(graph.nodes)} nodes, {len(resources)} managed resources")
        for node in resources:
            access = "readonly" if node.metadata.get("readonly") else "managed"
            print(f"  {node.type.name}/{node.label} ({access})")

        export_json(graph, f"instance_graphs/{name}.json")


if __name__ == "__main__":
    asyncio.run(main())
