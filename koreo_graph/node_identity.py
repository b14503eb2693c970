import hashlib
import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class NodeIdKind(str, Enum):
    """
    Namespaces for node ids.

    OBJECT ids are the underlying Kubernetes object's key. Every other kind is
    derived from an object key (or another node id) and renders with a prefix,
    so a parent instance that is also one of its own managed resources never
    shares an id with it.
    """

    OBJECT = "object"
    PARENT = "parent"
    SUB_WORKFLOW = "sub"
    SWITCH = "switch"
    SWITCH_IN = "switchIn"
    SWITCH_OUT = "switchOut"


class NodeId(BaseModel):
    """Structured node id, compared and hashed by value."""

    model_config = ConfigDict(frozen=True)

    kind: NodeIdKind
    key: str

    def __str__(self) -> str:
        if self.kind == NodeIdKind.OBJECT:
            return self.key
        return f"{self.kind.value}-{self.key}"

    @classmethod
    def object(cls, key: str) -> "NodeId":
        return cls(kind=NodeIdKind.OBJECT, key=key)

    def derive(self, kind: NodeIdKind) -> "NodeId":
        """Derive a junction/wrapper id from this one (e.g. switchIn from switch)."""
        return NodeId(kind=kind, key=str(self))


class NodeIdentity:
    """
    Derives stable node ids and display attributes from Kubernetes objects.

    Ids come from ``metadata.uid``. Objects without a uid (fixtures, dry-run
    objects, some aggregated API responses) get a content hash instead of a
    random token so repeated builds over unchanged inputs produce the same ids.
    """

    def get_object_key(self, resource: dict[str, Any]) -> str:
        uid = (resource.get("metadata") or {}).get("uid")
        if uid:
            return str(uid)
        return self._content_hash(resource)

    def get_node_id(self, resource: dict[str, Any], kind: NodeIdKind = NodeIdKind.OBJECT) -> NodeId:
        return NodeId(kind=kind, key=self.get_object_key(resource))

    def get_name(self, resource: dict[str, Any]) -> str:
        return (resource.get("metadata") or {}).get("name") or "unknown"

    def get_label(self, resource: dict[str, Any], metadata: dict[str, Any] | None = None) -> str:
        """Step label from node metadata when present, else the object's name."""
        if metadata and metadata.get("label"):
            return str(metadata["label"])
        return self.get_name(resource)

    def extract_node_attributes(self, resource: dict[str, Any]) -> dict[str, Any]:
        metadata = resource.get("metadata") or {}
        return {
            "kind": resource.get("kind", "Unknown"),
            "api_version": resource.get("apiVersion"),
            "name": metadata.get("name"),
            "namespace": metadata.get("namespace"),
            "uid": metadata.get("uid"),
        }

    def _content_hash(self, resource: dict[str, Any]) -> str:
        payload = json.dumps(resource, sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]
