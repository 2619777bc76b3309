"""Pydantic models for the operator's custom resources.

``Pipeline`` wraps ``VectorPipeline`` and ``ClusterVectorPipeline`` objects;
``Vector`` wraps the agent instance whose status the operator owns. Both keep
the component payloads and unknown spec fields as raw data: decoding them is
the configuration builder's job.
"""

from __future__ import annotations

import copy
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .components import canonical_json, config_hash

NAMESPACE_NAME_LABEL = "kubernetes.io/metadata.name"
DEFAULT_AGENT_IMAGE = "timberio/vector:0.28.1-distroless-libc"


def namespace_selector(namespace: str) -> str:
    """Return the namespace label selector matching exactly ``namespace``."""
    return f"{NAMESPACE_NAME_LABEL}={namespace}"


class PipelineKind(StrEnum):
    """Scope of a pipeline resource."""

    NAMESPACED = "VectorPipeline"
    CLUSTER = "ClusterVectorPipeline"


class PipelineSpec(BaseModel):
    """Raw component declarations of a pipeline, keyed by local name."""

    model_config = ConfigDict(extra="allow")

    sources: Any = None
    transforms: Any = None
    sinks: Any = None


class PipelineStatus(BaseModel):
    """Status subresource of a pipeline: the outcome of its own check."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    config_check_result: bool | None = Field(default=None, alias="configCheckResult")
    reason: str | None = None
    last_applied_pipeline_hash: int | None = Field(default=None, alias="lastAppliedPipelineHash")


class Pipeline(BaseModel):
    """A tenant-authored pipeline declaration."""

    kind: PipelineKind
    name: str
    namespace: str = ""
    uid: str | None = None
    resource_version: str | None = None
    spec: PipelineSpec = Field(default_factory=PipelineSpec)
    status: PipelineStatus = Field(default_factory=PipelineStatus)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def is_cluster_scoped(self) -> bool:
        """Return True for ``ClusterVectorPipeline`` resources."""
        return self.kind is PipelineKind.CLUSTER

    @property
    def config_check_result(self) -> bool | None:
        """Outcome of the pipeline's own check; None until it has run."""
        return self.status.config_check_result

    @property
    def pipeline_hash(self) -> int:
        """Hash of the spec as last read, used to notice edits since the last check."""
        return config_hash(canonical_json(self.raw.get("spec") or {}))

    @property
    def needs_check(self) -> bool:
        """Return True when the current spec has not been checked yet."""
        return self.status.config_check_result is None or self.status.last_applied_pipeline_hash != self.pipeline_hash

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> Pipeline:
        """Parse a pipeline object as returned by the API server."""
        metadata = obj.get("metadata") or {}
        kind = PipelineKind(obj.get("kind", PipelineKind.NAMESPACED))
        return cls(
            kind=kind,
            name=metadata.get("name", ""),
            namespace="" if kind is PipelineKind.CLUSTER else metadata.get("namespace", ""),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
            spec=PipelineSpec.model_validate(obj.get("spec") or {}),
            status=PipelineStatus.model_validate(obj.get("status") or {}),
            raw=obj,
        )

    def status_object(self, status: PipelineStatus) -> dict[str, Any]:
        """Return the object to PUT to the status subresource, carrying ``status``."""
        obj = copy.deepcopy(self.raw)
        obj.setdefault("kind", self.kind.value)
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("name", self.name)
        if not self.is_cluster_scoped:
            metadata.setdefault("namespace", self.namespace)
        if self.resource_version is not None:
            metadata["resourceVersion"] = self.resource_version
        obj["status"] = status.model_dump(mode="json", by_alias=True, exclude_none=True)
        return obj

    def owner_reference(self) -> dict[str, Any]:
        """Return an owner reference pointing at this pipeline."""
        return {
            "apiVersion": self.raw.get("apiVersion", "observability.kaasops.io/v1alpha1"),
            "kind": self.kind.value,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
        }


class ApiSpec(BaseModel):
    """Settings of the agent's GraphQL API."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    address: str = "0.0.0.0:8686"
    enabled: bool = False
    playground: bool = False


class AgentSpec(BaseModel):
    """Settings of the agent DaemonSet and its global configuration."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    image: str = DEFAULT_AGENT_IMAGE
    data_dir: str = Field(default="/vector-data-dir", alias="dataDir")
    api: ApiSpec = Field(default_factory=ApiSpec)
    internal_metrics: bool = Field(default=False, alias="internalMetrics")
    tolerations: list[dict[str, Any]] | None = None
    resources: dict[str, Any] | None = None
    env: list[dict[str, Any]] | None = None


class VectorSpec(BaseModel):
    """Desired state of a Vector instance: agent settings plus merge toggles."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    agent: AgentSpec = Field(default_factory=AgentSpec)
    merge_kubernetes_sources: bool = Field(default=True, alias="mergeKubernetesSources")
    merge_sinks: bool = Field(default=True, alias="mergeSinks")


class VectorStatus(BaseModel):
    """Status subresource of a Vector instance."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    last_applied_config_hash: int | None = Field(default=None, alias="lastAppliedConfigHash")
    last_checked_config_hash: int | None = Field(default=None, alias="lastCheckedConfigHash")
    config_check_result: bool | None = Field(default=None, alias="configCheckResult")
    reason: str | None = None


class Vector(BaseModel):
    """A Vector agent instance.

    ``raw`` keeps the object exactly as last read from (or written to) the API
    server; status writes are built from it so the request carries the last
    observed ``resourceVersion``.
    """

    name: str
    namespace: str
    uid: str | None = None
    resource_version: str | None = None
    deleting: bool = False
    spec: VectorSpec = Field(default_factory=VectorSpec)
    status: VectorStatus = Field(default_factory=VectorStatus)
    raw: dict[str, Any] = Field(default_factory=dict, repr=False)

    @classmethod
    def from_resource(cls, obj: dict[str, Any]) -> Vector:
        """Parse a Vector object as returned by the API server."""
        metadata = obj.get("metadata") or {}
        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            uid=metadata.get("uid"),
            resource_version=metadata.get("resourceVersion"),
            deleting=metadata.get("deletionTimestamp") is not None,
            spec=VectorSpec.model_validate(obj.get("spec") or {}),
            status=VectorStatus.model_validate(obj.get("status") or {}),
            raw=obj,
        )

    def status_object(self, status: VectorStatus | None = None) -> dict[str, Any]:
        """Return the object to PUT to the status subresource, carrying ``status`` if given."""
        obj = copy.deepcopy(self.raw)
        metadata = obj.setdefault("metadata", {})
        metadata.setdefault("name", self.name)
        metadata.setdefault("namespace", self.namespace)
        if self.resource_version is not None:
            metadata["resourceVersion"] = self.resource_version
        obj["status"] = (status or self.status).model_dump(mode="json", by_alias=True, exclude_none=True)
        return obj

    def owner_reference(self) -> dict[str, Any]:
        """Return an owner reference pointing at this instance."""
        return {
            "apiVersion": self.raw.get("apiVersion", "observability.kaasops.io/v1alpha1"),
            "kind": "Vector",
            "name": self.name,
            "uid": self.uid,
            "controller": True,
        }


__all__ = [
    "DEFAULT_AGENT_IMAGE",
    "NAMESPACE_NAME_LABEL",
    "AgentSpec",
    "ApiSpec",
    "Pipeline",
    "PipelineKind",
    "PipelineSpec",
    "PipelineStatus",
    "Vector",
    "VectorSpec",
    "VectorStatus",
    "namespace_selector",
]
