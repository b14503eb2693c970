"""Shared test fixtures for koreo-graph tests."""

import asyncio
from typing import Any

import pytest

from tests.factories import (
    make_descriptor,
    make_function,
    make_instance,
    make_resource,
    make_workflow,
    ref_step,
)


class MockKoreoClient:
    """In-memory Koreo client with API statistics tracking for testing."""

    def __init__(self):
        self.workflows: dict[tuple[str, str], dict[str, Any]] = {}
        self.functions: dict[tuple[str, str, str], dict[str, Any]] = {}
        self.instances: dict[tuple[str, str], dict[str, Any]] = {}
        self.resources: dict[tuple[str, str, str | None, str], dict[str, Any]] = {}
        self.failing: set[str] = set()
        self.delays: dict[str, float] = {}
        self.completed: list[str] = []
        self._api_call_stats = {"get_resource": 0, "total": 0}

    def add_workflow(self, workflow: dict[str, Any]) -> None:
        metadata = workflow["metadata"]
        self.workflows[(metadata["namespace"], metadata["name"])] = workflow

    def add_function(self, function: dict[str, Any]) -> None:
        metadata = function["metadata"]
        self.functions[(metadata["namespace"], function["kind"], metadata["name"])] = function

    def add_instance(self, workflow_name: str, instance: dict[str, Any]) -> None:
        self.instances[(workflow_name, instance["metadata"]["name"])] = instance

    def add_resource(self, resource: dict[str, Any]) -> None:
        metadata = resource["metadata"]
        key = (resource["apiVersion"], resource["kind"], metadata.get("namespace"), metadata["name"])
        self.resources[key] = resource

    def _record_call(self, name: str) -> None:
        self._api_call_stats["get_resource"] += 1
        self._api_call_stats["total"] += 1
        if name in self.failing:
            raise ConnectionError(f"connection reset fetching {name}")

    async def _respond(self, name: str, value: dict[str, Any] | None) -> dict[str, Any] | None:
        self._record_call(name)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        self.completed.append(name)
        return value

    async def get_workflow(self, namespace: str, workflow_id: str) -> dict[str, Any] | None:
        return await self._respond(workflow_id, self.workflows.get((namespace, workflow_id)))

    async def get_workflow_instance(
        self, workflow: dict[str, Any], instance_id: str
    ) -> dict[str, Any] | None:
        instance = self.instances.get((workflow["metadata"]["name"], instance_id))
        return await self._respond(instance_id, instance)

    async def get_function(self, namespace: str, kind: str, name: str) -> dict[str, Any] | None:
        return await self._respond(name, self.functions.get((namespace, kind, name)))

    async def get_resource(
        self, api_version: str, kind: str, namespace: str | None, name: str
    ) -> dict[str, Any] | None:
        return await self._respond(name, self.resources.get((api_version, kind, namespace, name)))

    def get_api_call_stats(self) -> dict[str, int]:
        return self._api_call_stats.copy()


@pytest.fixture
def mock_client() -> MockKoreoClient:
    """Empty mock client."""
    return MockKoreoClient()


@pytest.fixture
def linear_client() -> MockKoreoClient:
    """
    Workflow ``linear``: config -> fetch -> deploy, plus an independent ``notify``.

    ``deploy`` is a ResourceFunction; the ``app`` instance recorded one
    Deployment for it.
    """
    client = MockKoreoClient()
    client.add_function(make_function("ValueFunction", "load-config"))
    client.add_function(make_function("ValueFunction", "fetch-image"))
    client.add_function(make_function("ResourceFunction", "deployment"))
    client.add_function(make_function("ValueFunction", "send-notification"))
    client.add_workflow(
        make_workflow(
            "linear",
            config_step={"ref": {"kind": "ValueFunction", "name": "load-config"}},
            steps=[
                ref_step("fetch", "ValueFunction", "fetch-image", inputs={"env": "=steps.config.env"}),
                ref_step(
                    "deploy",
                    "ResourceFunction",
                    "deployment",
                    inputs={"image": "=steps.fetch.image", "replicas": 2},
                ),
                ref_step("notify", "ValueFunction", "send-notification", inputs={"channel": "ops"}),
            ],
            crd_ref={"apiGroup": "example.com", "version": "v1", "kind": "TestApp"},
        )
    )
    client.add_resource(make_resource("Deployment", "app", api_version="apps/v1"))
    client.add_instance(
        "linear",
        make_instance(
            "app",
            {
                "config": None,
                "fetch": None,
                "deploy": make_descriptor("Deployment", "app", api_version="apps/v1"),
                "notify": None,
            },
        ),
    )
    return client
