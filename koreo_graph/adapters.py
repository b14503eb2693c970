import asyncio
import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import ResourceNotFoundError

from koreo_graph.models import CRDRef, parse_workflow_spec

logger = logging.getLogger(__name__)

KOREO_GROUP = "koreo.dev"
KOREO_VERSION = "v1beta1"

WORKFLOW_PLURAL = "workflows"
RESOURCE_TEMPLATE_PLURAL = "resourcetemplates"
FUNCTION_PLURALS = {
    "ResourceFunction": "resourcefunctions",
    "ValueFunction": "valuefunctions",
}


class KubernetesAdapter:
    """
    KoreoClientProtocol implementation backed by the official Kubernetes client.

    Koreo CRDs are read through CustomObjectsApi. Workflow instances and
    arbitrary managed objects are read through the dynamic client, which
    resolves plurals from API discovery. The Kubernetes client is blocking, so
    every call runs in a worker thread.

    Example:
        >>> adapter = KubernetesAdapter()
        >>> workflow = await adapter.get_workflow("default", "my-workflow")
    """

    def __init__(
        self,
        api_client: client.ApiClient | None = None,
        group: str = KOREO_GROUP,
        version: str = KOREO_VERSION,
    ):
        """
        Initialize the adapter.

        Args:
            api_client: Preconfigured API client (loads in-cluster config, then
                kubeconfig, if None)
            group: API group of the Koreo CRDs
            version: API version of the Koreo CRDs
        """
        self.api_client = api_client or self._load_api_client()
        self.group = group
        self.version = version
        self.custom_objects = client.CustomObjectsApi(self.api_client)
        self._dynamic_client: DynamicClient | None = None
        self._api_call_stats = {"get_resource": 0, "list_resources": 0, "total": 0}

    @staticmethod
    def _load_api_client() -> client.ApiClient:
        try:
            config.load_incluster_config()
        except config.ConfigException:
            config.load_kube_config()
        return client.ApiClient()

    async def get_workflow(self, namespace: str, workflow_id: str) -> dict[str, Any] | None:
        return await self._get_custom_object(namespace, WORKFLOW_PLURAL, workflow_id)

    async def get_function(self, namespace: str, kind: str, name: str) -> dict[str, Any] | None:
        plural = FUNCTION_PLURALS.get(kind)
        if plural is None:
            logger.error(f"Invalid function kind {kind}")
            return None
        return await self._get_custom_object(namespace, plural, name)

    async def get_workflow_instance(
        self, workflow: dict[str, Any], instance_id: str
    ) -> dict[str, Any] | None:
        crd_ref = parse_workflow_spec(workflow).crd_ref
        namespace = (workflow.get("metadata") or {}).get("namespace")
        if crd_ref is None or not namespace:
            logger.warning(
                f"Workflow {(workflow.get('metadata') or {}).get('name')} has no crdRef "
                f"or namespace, cannot look up instance {instance_id}"
            )
            return None
        return await self.get_resource(crd_ref.api_version, crd_ref.kind, namespace, instance_id)

    async def get_resource(
        self, api_version: str, kind: str, namespace: str | None, name: str
    ) -> dict[str, Any] | None:
        self._record_call("get_resource")

        def _read() -> dict[str, Any]:
            api = self._dynamic().resources.get(api_version=api_version, kind=kind)
            return api.get(name=name, namespace=namespace).to_dict()

        try:
            return await asyncio.to_thread(_read)
        except ApiException as e:
            self._log_api_exception(e, f"{kind}/{name}", namespace)
        except ResourceNotFoundError as e:
            logger.warning(f"Kind {api_version}/{kind} is not served by the cluster: {e}")
        except Exception as e:
            logger.warning(f"Failed to get resource {kind}/{name}: {e}")
        return None

    async def list_workflows(self, namespace: str) -> list[dict[str, Any]]:
        return await self._list_custom_objects(namespace, WORKFLOW_PLURAL)

    async def get_workflows_for_crd_ref(
        self, namespace: str, crd_ref: CRDRef
    ) -> list[dict[str, Any]]:
        """List the workflows in a namespace that are driven by the given CRD."""
        workflows = await self.list_workflows(namespace)
        return [
            workflow
            for workflow in workflows
            if parse_workflow_spec(workflow).crd_ref == crd_ref
        ]

    async def list_workflow_instances(self, workflow: dict[str, Any]) -> list[dict[str, Any]]:
        crd_ref = parse_workflow_spec(workflow).crd_ref
        namespace = (workflow.get("metadata") or {}).get("namespace")
        if crd_ref is None or not namespace:
            return []

        self._record_call("list_resources")

        def _list() -> list[dict[str, Any]]:
            api = self._dynamic().resources.get(api_version=crd_ref.api_version, kind=crd_ref.kind)
            return api.get(namespace=namespace).to_dict().get("items") or []

        try:
            return await asyncio.to_thread(_list)
        except Exception as e:
            logger.warning(f"Failed to list {crd_ref.kind} instances in {namespace}: {e}")
        return []

    async def list_resource_templates(self, namespaces: str | list[str]) -> list[dict[str, Any]]:
        if isinstance(namespaces, str):
            namespaces = [namespaces]
        results = await asyncio.gather(
            *(self._list_custom_objects(ns, RESOURCE_TEMPLATE_PLURAL) for ns in namespaces)
        )
        return [template for templates in results for template in templates]

    async def get_resource_template(self, namespace: str, name: str) -> dict[str, Any] | None:
        return await self._get_custom_object(namespace, RESOURCE_TEMPLATE_PLURAL, name)

    async def _get_custom_object(
        self, namespace: str, plural: str, name: str
    ) -> dict[str, Any] | None:
        self._record_call("get_resource")
        try:
            return await asyncio.to_thread(
                self.custom_objects.get_namespaced_custom_object,
                group=self.group,
                version=self.version,
                namespace=namespace,
                plural=plural,
                name=name,
            )
        except ApiException as e:
            self._log_api_exception(e, f"{plural}/{name}", namespace)
        except Exception as e:
            logger.warning(f"Failed to get {plural}/{name} in namespace {namespace}: {e}")
        return None

    async def _list_custom_objects(self, namespace: str, plural: str) -> list[dict[str, Any]]:
        self._record_call("list_resources")
        try:
            response = await asyncio.to_thread(
                self.custom_objects.list_namespaced_custom_object,
                group=self.group,
                version=self.version,
                namespace=namespace,
                plural=plural,
            )
        except ApiException as e:
            self._log_api_exception(e, plural, namespace)
            return []
        except Exception as e:
            logger.warning(f"Failed to list {plural} in namespace {namespace}: {e}")
            return []
        return response.get("items") or []

    def _dynamic(self) -> DynamicClient:
        # DynamicClient runs API discovery on construction.
        if self._dynamic_client is None:
            self._dynamic_client = DynamicClient(self.api_client)
        return self._dynamic_client

    def _record_call(self, call: str) -> None:
        self._api_call_stats[call] += 1
        self._api_call_stats["total"] += 1

    def _log_api_exception(self, e: ApiException, what: str, namespace: str | None) -> None:
        if e.status == 404:
            logger.debug(f"{what} not found in namespace {namespace}")
        else:
            logger.warning(f"Failed to get {what} in namespace {namespace}: {e.status} {e.reason}")

    def get_api_call_stats(self) -> dict[str, int]:
        return self._api_call_stats.copy()

    def reset_api_call_stats(self) -> None:
        self._api_call_stats = {"get_resource": 0, "list_resources": 0, "total": 0}
