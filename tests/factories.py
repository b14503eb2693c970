"""Builders for the Koreo objects used across tests."""

import json
from typing import Any

NAMESPACE = "default"


def make_workflow(
    name: str,
    steps: list[dict[str, Any]],
    uid: str | None = None,
    config_step: dict[str, Any] | None = None,
    crd_ref: dict[str, str] | None = None,
) -> dict[str, Any]:
    spec: dict[str, Any] = {"steps": steps}
    if config_step is not None:
        spec["configStep"] = config_step
    if crd_ref is not None:
        spec["crdRef"] = crd_ref
    return {
        "apiVersion": "koreo.dev/v1beta1",
        "kind": "Workflow",
        "metadata": {"name": name, "namespace": NAMESPACE, "uid": uid or f"wf-{name}"},
        "spec": spec,
    }


def make_function(kind: str, name: str, uid: str | None = None) -> dict[str, Any]:
    return {
        "apiVersion": "koreo.dev/v1beta1",
        "kind": kind,
        "metadata": {"name": name, "namespace": NAMESPACE, "uid": uid or f"fn-{name}"},
        "spec": {},
    }


def make_resource(
    kind: str,
    name: str,
    uid: str | None = None,
    api_version: str = "v1",
    namespace: str | None = NAMESPACE,
) -> dict[str, Any]:
    metadata: dict[str, Any] = {"name": name, "uid": uid or f"res-{name}"}
    if namespace:
        metadata["namespace"] = namespace
    return {"apiVersion": api_version, "kind": kind, "metadata": metadata}


def make_descriptor(
    kind: str,
    name: str,
    api_version: str = "v1",
    readonly: bool = False,
    namespace: str | None = NAMESPACE,
) -> dict[str, Any]:
    return {
        "apiVersion": api_version,
        "kind": kind,
        "plural": f"{kind.lower()}s",
        "name": name,
        "readonly": readonly,
        "namespace": namespace,
    }


def make_instance(
    name: str,
    managed_resources: dict[str, Any] | None = None,
    uid: str | None = None,
    kind: str = "TestApp",
) -> dict[str, Any]:
    annotations = {}
    if managed_resources is not None:
        annotations["koreo.dev/managed-resources"] = json.dumps(managed_resources)
    return {
        "apiVersion": "example.com/v1",
        "kind": kind,
        "metadata": {
            "name": name,
            "namespace": NAMESPACE,
            "uid": uid or f"inst-{name}",
            "annotations": annotations,
        },
        "spec": {},
    }


def ref_step(label: str, kind: str, name: str, **extra: Any) -> dict[str, Any]:
    return {"label": label, "ref": {"kind": kind, "name": name}, **extra}


def switch_step(
    label: str, switch_on: str, cases: list[tuple[str, str, str]], **extra: Any
) -> dict[str, Any]:
    return {
        "label": label,
        "refSwitch": {
            "switchOn": switch_on,
            "cases": [{"case": case, "kind": kind, "name": name} for case, kind, name in cases],
        },
        **extra,
    }
