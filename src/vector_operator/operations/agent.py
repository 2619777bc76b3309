"""Render and converge the objects that run a Vector agent.

An instance owns a ServiceAccount with cluster-wide read access to pods,
namespaces and nodes, a Secret holding the agent configuration, a Service for
the API and metrics ports and the DaemonSet itself. Namespaced objects carry
an owner reference to the instance so the API server removes them with it.
The cluster-scoped ClusterRole and ClusterRoleBinding cannot be owned by a
namespaced object; they are labelled with the instance namespace instead and
removed by ``VectorAgent.prune`` once their instance is gone.
"""

import base64
import logging
from collections.abc import Collection
from typing import Any

from ..client.kinds import CLUSTER_ROLE, CLUSTER_ROLE_BINDING, SERVICE
from ..client.kube_client import KubeObject
from ..models.components import config_hash
from ..models.resources import Vector
from .sync import ObjectClient, SyncResult, remove, sync

logger = logging.getLogger("vector_operator.operations.agent")

COMPONENT = "Agent"
CONFIG_FILE_NAME = "agent.json"
CONFIG_DIR = "/etc/vector"
API_PORT = 8686
METRICS_PORT = 9598
CONFIG_HASH_ANNOTATION = "observability.kaasops.io/config-hash"
INSTANCE_LABEL = "app.kubernetes.io/instance"
VECTOR_NAMESPACE_LABEL = "observability.kaasops.io/vector-namespace"
AGENT_SELECTOR = "app.kubernetes.io/component=Agent,app.kubernetes.io/managed-by=vector-operator"

_READ_VERBS = ["get", "list", "watch"]


def agent_name(vector: Vector) -> str:
    """Return the name shared by every object of an instance's agent."""
    return f"{vector.name}-agent"


def cluster_object_name(vector: Vector) -> str:
    """Return the name of the agent's cluster-scoped RBAC objects, unique across namespaces."""
    return f"{vector.namespace}-{agent_name(vector)}"


def labels(vector: Vector) -> dict[str, str]:
    """Return the labels identifying an instance's agent objects."""
    return {
        "app.kubernetes.io/name": "vector",
        INSTANCE_LABEL: vector.name,
        "app.kubernetes.io/component": COMPONENT,
        "app.kubernetes.io/managed-by": "vector-operator",
    }


def _metadata(vector: Vector, *, namespaced: bool = True) -> dict[str, Any]:
    if not namespaced:
        return {
            "name": cluster_object_name(vector),
            "labels": {**labels(vector), VECTOR_NAMESPACE_LABEL: vector.namespace},
        }
    return {
        "name": agent_name(vector),
        "namespace": vector.namespace,
        "labels": labels(vector),
        "ownerReferences": [vector.owner_reference()],
    }


def render_service_account(vector: Vector) -> KubeObject:
    """Return the agent's ServiceAccount."""
    return {"apiVersion": "v1", "kind": "ServiceAccount", "metadata": _metadata(vector)}


def render_cluster_role(vector: Vector) -> KubeObject:
    """Return the ClusterRole letting the agent enrich logs with pod and namespace metadata."""
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRole",
        "metadata": _metadata(vector, namespaced=False),
        "rules": [
            {"apiGroups": [""], "resources": ["pods", "namespaces", "nodes"], "verbs": list(_READ_VERBS)},
        ],
    }


def render_cluster_role_binding(vector: Vector) -> KubeObject:
    """Return the binding of the agent's ClusterRole to its ServiceAccount."""
    return {
        "apiVersion": "rbac.authorization.k8s.io/v1",
        "kind": "ClusterRoleBinding",
        "metadata": _metadata(vector, namespaced=False),
        "roleRef": {
            "apiGroup": "rbac.authorization.k8s.io",
            "kind": "ClusterRole",
            "name": cluster_object_name(vector),
        },
        "subjects": [
            {"kind": "ServiceAccount", "name": agent_name(vector), "namespace": vector.namespace},
        ],
    }


def render_config_secret(vector: Vector, config: bytes) -> KubeObject:
    """Return the Secret the agent reads its configuration from."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(vector),
        "data": {CONFIG_FILE_NAME: base64.b64encode(config).decode("ascii")},
    }


def _ports(vector: Vector) -> list[dict[str, Any]]:
    ports: list[dict[str, Any]] = []
    if vector.spec.agent.api.enabled:
        ports.append({"name": "api", "port": API_PORT, "protocol": "TCP", "targetPort": API_PORT})
    if vector.spec.agent.internal_metrics:
        ports.append({"name": "prom-exporter", "port": METRICS_PORT, "protocol": "TCP", "targetPort": METRICS_PORT})
    return ports


def render_service(vector: Vector) -> KubeObject | None:
    """Return the agent Service, or None when neither the API nor metrics are exposed."""
    ports = _ports(vector)
    if not ports:
        return None
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(vector),
        "spec": {"selector": labels(vector), "ports": ports},
    }


def _host_path_volume(name: str, path: str) -> dict[str, Any]:
    return {"name": name, "hostPath": {"path": path}}


def render_daemon_set(vector: Vector, config: bytes) -> KubeObject:
    """Return the agent DaemonSet.

    The pod template is annotated with the configuration hash so a new
    configuration rolls the agent pods.
    """
    agent = vector.spec.agent
    container: dict[str, Any] = {
        "name": "vector",
        "image": agent.image,
        "args": ["--config-dir", f"{CONFIG_DIR}/"],
        "env": [
            {"name": "VECTOR_SELF_NODE_NAME", "valueFrom": {"fieldRef": {"fieldPath": "spec.nodeName"}}},
            {"name": "VECTOR_SELF_POD_NAME", "valueFrom": {"fieldRef": {"fieldPath": "metadata.name"}}},
            {"name": "VECTOR_SELF_POD_NAMESPACE", "valueFrom": {"fieldRef": {"fieldPath": "metadata.namespace"}}},
            {"name": "PROCFS_ROOT", "value": "/host/proc"},
            {"name": "SYSFS_ROOT", "value": "/host/sys"},
            *(agent.env or []),
        ],
        "ports": [{"name": port["name"], "containerPort": port["port"], "protocol": "TCP"} for port in _ports(vector)],
        "volumeMounts": [
            {"name": "config", "mountPath": CONFIG_DIR, "readOnly": True},
            {"name": "data", "mountPath": agent.data_dir},
            {"name": "var-log", "mountPath": "/var/log/", "readOnly": True},
            {"name": "var-lib", "mountPath": "/var/lib/", "readOnly": True},
            {"name": "procfs", "mountPath": "/host/proc", "readOnly": True},
            {"name": "sysfs", "mountPath": "/host/sys", "readOnly": True},
        ],
    }
    if agent.resources is not None:
        container["resources"] = agent.resources

    pod_spec: dict[str, Any] = {
        "serviceAccountName": agent_name(vector),
        "containers": [container],
        "volumes": [
            {"name": "config", "secret": {"secretName": agent_name(vector)}},
            _host_path_volume("data", "/var/lib/vector"),
            _host_path_volume("var-log", "/var/log/"),
            _host_path_volume("var-lib", "/var/lib/"),
            _host_path_volume("procfs", "/proc"),
            _host_path_volume("sysfs", "/sys"),
        ],
    }
    if agent.tolerations is not None:
        pod_spec["tolerations"] = agent.tolerations

    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": _metadata(vector),
        "spec": {
            "selector": {"matchLabels": labels(vector)},
            "template": {
                "metadata": {
                    "labels": labels(vector),
                    "annotations": {CONFIG_HASH_ANNOTATION: str(config_hash(config))},
                },
                "spec": pod_spec,
            },
        },
    }


def render(vector: Vector, config: bytes) -> list[KubeObject]:
    """Return every object of the agent in apply order (identity and config before workload)."""
    objects = [
        render_service_account(vector),
        render_cluster_role(vector),
        render_cluster_role_binding(vector),
        render_config_secret(vector, config),
    ]
    service = render_service(vector)
    if service is not None:
        objects.append(service)
    objects.append(render_daemon_set(vector, config))
    return objects


class VectorAgent:
    """Converge an instance's agent objects to a given configuration."""

    def __init__(self, client: ObjectClient) -> None:
        """Initialize with the client the synchronizer writes through."""
        self._client = client

    async def apply(self, vector: Vector, config: bytes) -> dict[str, SyncResult]:
        """Sync every agent object, stopping at the first failure.

        Args:
            vector: The owning instance.
            config: The validated configuration.

        Returns:
            Sync result per object kind.

        """
        results: dict[str, SyncResult] = {}
        for obj in render(vector, config):
            results[obj["kind"]] = await sync(self._client, obj)
        if "Service" not in results:
            results["Service"] = await remove(self._client, SERVICE, agent_name(vector), vector.namespace)
        changed = sorted(kind for kind, result in results.items() if result is not SyncResult.UNCHANGED)
        if changed:
            logger.info("Vector %s/%s agent converged: %s", vector.namespace, vector.name, ", ".join(changed))
        return results

    async def prune(self, live: Collection[tuple[str, str]]) -> list[str]:
        """Delete cluster-scoped agent objects whose instance no longer exists.

        Args:
            live: ``(namespace, name)`` of every instance that still exists.

        Returns:
            Names of the deleted objects.

        """
        removed: list[str] = []
        # Bindings first so a role is never left bound after a partial prune
        for kind in (CLUSTER_ROLE_BINDING, CLUSTER_ROLE):
            for obj in await self._client.list_objects(kind, label_selector=AGENT_SELECTOR):
                metadata = obj.get("metadata") or {}
                obj_labels = metadata.get("labels") or {}
                owner = (obj_labels.get(VECTOR_NAMESPACE_LABEL), obj_labels.get(INSTANCE_LABEL))
                if None in owner or owner in live:
                    continue
                if await remove(self._client, kind, metadata["name"]) is SyncResult.DELETED:
                    removed.append(metadata["name"])
        return removed


__all__ = [
    "AGENT_SELECTOR",
    "API_PORT",
    "INSTANCE_LABEL",
    "METRICS_PORT",
    "VECTOR_NAMESPACE_LABEL",
    "VectorAgent",
    "agent_name",
    "cluster_object_name",
    "labels",
    "render",
    "render_cluster_role",
    "render_cluster_role_binding",
    "render_config_secret",
    "render_daemon_set",
    "render_service",
    "render_service_account",
]
