"""
Managed-resource payloads recorded on running workflow instances.

Koreo writes a JSON document to the ``koreo.dev/managed-resources`` annotation
of every workflow instance, mapping step label to whatever that step created:

    null                                 step created nothing
    {descriptor}                         ResourceFunction step
    [{descriptor}, ...]                  forEach over a ResourceFunction
    {label: ...}                         sub-workflow step
    [{label: ...} | {descriptor}, ...]   forEach over a sub-workflow or RefSwitch

A descriptor and a nested map are both JSON objects, so the payload is
classified exactly once, here, into an explicit tagged union. Callers switch on
the variant instead of re-inspecting shapes.
"""

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

MANAGED_RESOURCES_ANNOTATION = "koreo.dev/managed-resources"

# A JSON object is a descriptor only if it carries all of these.
DESCRIPTOR_FIELDS = ("apiVersion", "kind", "name", "readonly")


class ResourceRef(BaseModel):
    """Pointer to one concrete Kubernetes object created by a step."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    api_version: str
    kind: str
    name: str
    readonly: bool
    namespace: str | None = None
    plural: str | None = None


class _Entry(BaseModel):
    model_config = ConfigDict(frozen=True)

    def descriptors(self) -> list[ResourceRef]:
        """Descriptors held directly by this entry (nested maps excluded)."""
        return []

    def nested_maps(self) -> list["ManagedResources"]:
        """Nested managed-resource maps held directly by this entry."""
        return []

    def count(self) -> int:
        return len(self.descriptors()) + sum(count_resources(m) for m in self.nested_maps())


class EmptyEntry(_Entry):
    variant: Literal["empty"] = "empty"


class SingleResource(_Entry):
    variant: Literal["single"] = "single"
    resource: ResourceRef

    def descriptors(self) -> list[ResourceRef]:
        return [self.resource]


class ResourceList(_Entry):
    variant: Literal["list"] = "list"
    resources: list[ResourceRef] = Field(default_factory=list)

    def descriptors(self) -> list[ResourceRef]:
        return list(self.resources)


class NestedMap(_Entry):
    variant: Literal["nested"] = "nested"
    entries: dict[str, "ManagedResourceEntry"] = Field(default_factory=dict)

    def nested_maps(self) -> list["ManagedResources"]:
        return [self.entries]


class MixedList(_Entry):
    variant: Literal["mixed"] = "mixed"
    items: list[ResourceRef | NestedMap] = Field(default_factory=list)

    def descriptors(self) -> list[ResourceRef]:
        return [item for item in self.items if isinstance(item, ResourceRef)]

    def nested_maps(self) -> list["ManagedResources"]:
        return [item.entries for item in self.items if isinstance(item, NestedMap)]


ManagedResourceEntry = Annotated[
    Union[EmptyEntry, SingleResource, ResourceList, NestedMap, MixedList],
    Field(discriminator="variant"),
]

ManagedResources = dict[str, ManagedResourceEntry]

NestedMap.model_rebuild()
MixedList.model_rebuild()


def parse_managed_resources(raw: str | dict[str, Any] | None) -> ManagedResources:
    """
    Decode a managed-resources payload.

    Args:
        raw: The annotation value, or a workflow instance object carrying it

    Returns:
        Classified map of step label to entry. Missing or malformed payloads
        yield an empty map.
    """
    if isinstance(raw, dict):
        annotations = (raw.get("metadata") or {}).get("annotations") or {}
        raw = annotations.get(MANAGED_RESOURCES_ANNOTATION)

    if raw is None:
        return {}

    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to parse managed-resources payload: {e}")
        return {}

    if not isinstance(decoded, dict):
        logger.warning(
            f"Managed-resources payload is a {type(decoded).__name__}, expected an object"
        )
        return {}

    return _classify_map(decoded)


def classify(value: Any) -> ManagedResourceEntry:
    """
    Classify one raw value from a managed-resources map.

    Descriptors are recognised before generic objects; lists are descriptor
    lists only when every item is a descriptor.
    """
    if value is None:
        return EmptyEntry()

    descriptor = _as_descriptor(value)
    if descriptor is not None:
        return SingleResource(resource=descriptor)

    if isinstance(value, dict):
        return NestedMap(entries=_classify_map(value))

    if isinstance(value, list):
        descriptors = [_as_descriptor(item) for item in value]
        if all(d is not None for d in descriptors):
            return ResourceList(resources=descriptors)

        if all(d is not None or isinstance(item, dict) for d, item in zip(descriptors, value)):
            items: list[ResourceRef | NestedMap] = [
                d if d is not None else NestedMap(entries=_classify_map(item))
                for d, item in zip(descriptors, value)
            ]
            return MixedList(items=items)

    logger.debug(f"Ignoring unrecognised managed-resources value: {value!r}")
    return EmptyEntry()


def select_for_step(resources: ManagedResources | None, step_label: str) -> ManagedResourceEntry | None:
    if not resources:
        return None
    return resources.get(step_label)


def count_resources(resources: ManagedResources) -> int:
    """Count every descriptor in the map, recursing into nested maps."""
    return sum(entry.count() for entry in resources.values())


def _classify_map(raw: dict[str, Any]) -> ManagedResources:
    return {str(label): classify(value) for label, value in raw.items()}


def _as_descriptor(value: Any) -> ResourceRef | None:
    if not isinstance(value, dict) or not all(field in value for field in DESCRIPTOR_FIELDS):
        return None
    try:
        return ResourceRef.model_validate(value)
    except ValidationError as e:
        logger.debug(f"Object has descriptor fields but is not a valid descriptor: {e}")
        return None
