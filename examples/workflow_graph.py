import asyncio

from koreo_graph import KubernetesAdapter, WorkflowGraphService, validate_graph
from koreo_graph.export import export_json


async def main():
    client = KubernetesAdapter()
    service = WorkflowGraphService(client)

    print("Building graph of Koreo Workflow: default/my-workflow")

    collapsed = await service.get_graph("default", "my-workflow")
    expanded = await service.get_graph("default", "my-workflow", expanded=True)

    print(f"Collapsed: {len(collapsed.nodes)} nodes, {len(collapsed.edges)} edges")
    print(f"Expanded: {len(expanded.nodes)} nodes, {len(expanded.edges)} edges")

    print("\nSteps:")
    for node in collapsed.nodes:
        print(f"  {node.type.name}: {node.label}")

    result = validate_graph(expanded)
    if not result["valid"]:
        for issue in result["issues"]:
            print(f"  ! {issue['message']}")

    export_json(expanded, "workflow_graph.json")
    print("Exported to workflow_graph.json")

    stats = client.get_api_call_stats()
    print(f"API calls: {stats['total']}")


if __name__ == "__main__":
    asyncio.run(main())
