"""Shared fixtures: an in-memory cluster standing in for the Kubernetes API."""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any, TypeAlias

import pytest
from kubernetes_asyncio.client.rest import ApiException

from vector_operator.client.kinds import VECTOR_API_VERSION, ResourceKind
from vector_operator.client.kube_client import KubeObject

ObjectKey: TypeAlias = tuple[str, str | None, str]


class FakeCluster:
    """Minimal API server: stores objects, bumps resourceVersion and enforces conflicts."""

    def __init__(self) -> None:
        self.objects: dict[ObjectKey, KubeObject] = {}
        self.calls: list[tuple[str, str, str]] = []
        self.pod_phase = "Succeeded"
        self.pod_logs: dict[str, str] = {}
        self._version = 0

    def _key(self, kind: ResourceKind, namespace: str | None, name: str) -> ObjectKey:
        return (kind.kind, namespace if kind.namespaced else None, name)

    def _bump(self, obj: KubeObject) -> KubeObject:
        self._version += 1
        obj.setdefault("metadata", {})["resourceVersion"] = str(self._version)
        return obj

    def add(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Store an object directly, bypassing call recording."""
        stored = self._bump(copy.deepcopy(obj))
        metadata = stored["metadata"]
        metadata.setdefault("uid", f"uid-{metadata['name']}")
        self.objects[self._key(kind, metadata.get("namespace"), metadata["name"])] = stored
        return copy.deepcopy(stored)

    def stored(self, kind: ResourceKind, name: str, namespace: str | None = None) -> KubeObject:
        """Return the stored object (not a copy)."""
        return self.objects[self._key(kind, namespace, name)]

    def count(self, verb: str, kind: str | None = None) -> int:
        """Count recorded calls of a verb, optionally for one kind."""
        return sum(1 for call_verb, call_kind, _ in self.calls if call_verb == verb and kind in (None, call_kind))

    async def create(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        metadata = obj["metadata"]
        self.calls.append(("create", kind.kind, metadata["name"]))
        key = self._key(kind, metadata.get("namespace"), metadata["name"])
        if key in self.objects:
            raise ApiException(status=409, reason="Conflict")
        stored = self.add(kind, obj)
        if kind.kind == "Pod":
            self.objects[key]["status"] = {"phase": self.pod_phase}
        return stored

    async def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> KubeObject:
        self.calls.append(("get", kind.kind, name))
        try:
            return copy.deepcopy(self.objects[self._key(kind, namespace, name)])
        except KeyError:
            raise ApiException(status=404, reason="Not Found") from None

    async def list_objects(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[KubeObject]:
        self.calls.append(("list", kind.kind, namespace or ""))
        wanted = dict(clause.split("=", 1) for clause in label_selector.split(",")) if label_selector else {}
        return [
            copy.deepcopy(obj)
            for (kind_name, obj_namespace, _), obj in sorted(self.objects.items(), key=lambda item: str(item[0]))
            if kind_name == kind.kind
            and (namespace is None or obj_namespace == namespace)
            and wanted.items() <= (obj["metadata"].get("labels") or {}).items()
        ]

    def _check_version(self, kind: ResourceKind, obj: KubeObject) -> ObjectKey:
        metadata = obj["metadata"]
        key = self._key(kind, metadata.get("namespace"), metadata["name"])
        if key not in self.objects:
            raise ApiException(status=404, reason="Not Found")
        current = self.objects[key]["metadata"]["resourceVersion"]
        if metadata.get("resourceVersion") != current:
            raise ApiException(status=409, reason="Conflict")
        return key

    async def update(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        self.calls.append(("update", kind.kind, obj["metadata"]["name"]))
        key = self._check_version(kind, obj)
        stored = self._bump(copy.deepcopy(obj))
        stored["status"] = copy.deepcopy(self.objects[key].get("status"))
        self.objects[key] = stored
        return copy.deepcopy(stored)

    async def update_status(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        self.calls.append(("update_status", kind.kind, obj["metadata"]["name"]))
        key = self._check_version(kind, obj)
        stored = self._bump(self.objects[key])
        stored["status"] = copy.deepcopy(obj.get("status"))
        return copy.deepcopy(stored)

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        self.calls.append(("delete", kind.kind, name))
        if self.objects.pop(self._key(kind, namespace, name), None) is None:
            raise ApiException(status=404, reason="Not Found")

    async def read_pod_log(self, name: str, namespace: str, *, tail_lines: int = 100) -> str:  # noqa: ARG002
        self.calls.append(("log", "Pod", name))
        return self.pod_logs.get(name, "")


@pytest.fixture
def cluster() -> FakeCluster:
    """Return an empty in-memory cluster."""
    return FakeCluster()


def vector_object(
    name: str = "agent",
    namespace: str = "vector",
    *,
    spec: dict[str, Any] | None = None,
    status: dict[str, Any] | None = None,
) -> KubeObject:
    """Return a Vector object as the API server would serve it."""
    obj: KubeObject = {
        "apiVersion": VECTOR_API_VERSION,
        "kind": "Vector",
        "metadata": {"name": name, "namespace": namespace, "uid": f"uid-{name}"},
        "spec": spec or {},
    }
    if status is not None:
        obj["status"] = status
    return obj


def pipeline_object(
    name: str,
    namespace: str | None,
    *,
    sources: dict[str, Any] | None = None,
    transforms: dict[str, Any] | None = None,
    sinks: dict[str, Any] | None = None,
    check_result: bool | None = True,
) -> KubeObject:
    """Return a pipeline object; ``namespace=None`` makes it a ClusterVectorPipeline."""
    metadata: dict[str, Any] = {"name": name}
    if namespace is not None:
        metadata["namespace"] = namespace
    spec: dict[str, Any] = {}
    if sources is not None:
        spec["sources"] = sources
    if transforms is not None:
        spec["transforms"] = transforms
    if sinks is not None:
        spec["sinks"] = sinks
    obj: KubeObject = {
        "apiVersion": VECTOR_API_VERSION,
        "kind": "ClusterVectorPipeline" if namespace is None else "VectorPipeline",
        "metadata": metadata,
        "spec": spec,
    }
    if check_result is not None:
        obj["status"] = {"configCheckResult": check_result}
    return obj


@pytest.fixture
def make_vector() -> Callable[..., KubeObject]:
    """Return the Vector object factory."""
    return vector_object


@pytest.fixture
def make_pipeline() -> Callable[..., KubeObject]:
    """Return the pipeline object factory."""
    return pipeline_object
