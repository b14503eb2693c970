from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class KoreoClientProtocol(Protocol):
    """
    Read-only access to Koreo workflows, functions and the objects they manage.

    Every method returns ``None`` when the object does not exist. Implementations
    may also return ``None`` for transport failures; the graph builder treats
    both the same way.
    """

    async def get_workflow(self, namespace: str, workflow_id: str) -> dict[str, Any] | None:
        """Fetch a Workflow by namespace and name."""
        ...

    async def get_workflow_instance(
        self, workflow: dict[str, Any], instance_id: str
    ) -> dict[str, Any] | None:
        """Fetch the custom resource instance (the workflow's parent) by name."""
        ...

    async def get_function(self, namespace: str, kind: str, name: str) -> dict[str, Any] | None:
        """Fetch a ResourceFunction or ValueFunction."""
        ...

    async def get_resource(
        self, api_version: str, kind: str, namespace: str | None, name: str
    ) -> dict[str, Any] | None:
        """Fetch any Kubernetes object."""
        ...
