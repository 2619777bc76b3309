"""Resource kinds managed or read by the operator.

Each kind names the ``kubernetes_asyncio`` API class serving it and the
snake-case stem of that class's methods (``read_namespaced_<stem>`` and so
on). Custom resources are served by ``CustomObjectsApi`` and addressed by
group, version and plural instead.
"""

from dataclasses import dataclass

VECTOR_API_VERSION = "observability.kaasops.io/v1alpha1"

CORE_API = "core"
APPS_API = "apps"
RBAC_API = "rbac"
CUSTOM_OBJECTS_API = "custom"


@dataclass(frozen=True, slots=True)
class ResourceKind:
    """Addressing information for one Kubernetes resource kind."""

    api_version: str
    kind: str
    plural: str
    api: str = CUSTOM_OBJECTS_API
    stem: str = ""
    namespaced: bool = True

    @property
    def group(self) -> str:
        """API group, empty for the core group."""
        return self.api_version.rpartition("/")[0]

    @property
    def version(self) -> str:
        """API version within the group."""
        return self.api_version.rpartition("/")[2]

    @property
    def is_custom(self) -> bool:
        """Return True for kinds served by ``CustomObjectsApi``."""
        return self.api == CUSTOM_OBJECTS_API


POD = ResourceKind("v1", "Pod", "pods", api=CORE_API, stem="pod")
SECRET = ResourceKind("v1", "Secret", "secrets", api=CORE_API, stem="secret")
SERVICE = ResourceKind("v1", "Service", "services", api=CORE_API, stem="service")
SERVICE_ACCOUNT = ResourceKind("v1", "ServiceAccount", "serviceaccounts", api=CORE_API, stem="service_account")
DAEMON_SET = ResourceKind("apps/v1", "DaemonSet", "daemonsets", api=APPS_API, stem="daemon_set")
STATEFUL_SET = ResourceKind("apps/v1", "StatefulSet", "statefulsets", api=APPS_API, stem="stateful_set")
CLUSTER_ROLE = ResourceKind(
    "rbac.authorization.k8s.io/v1",
    "ClusterRole",
    "clusterroles",
    api=RBAC_API,
    stem="cluster_role",
    namespaced=False,
)
CLUSTER_ROLE_BINDING = ResourceKind(
    "rbac.authorization.k8s.io/v1",
    "ClusterRoleBinding",
    "clusterrolebindings",
    api=RBAC_API,
    stem="cluster_role_binding",
    namespaced=False,
)

VECTOR = ResourceKind(VECTOR_API_VERSION, "Vector", "vectors")
VECTOR_PIPELINE = ResourceKind(VECTOR_API_VERSION, "VectorPipeline", "vectorpipelines")
CLUSTER_VECTOR_PIPELINE = ResourceKind(
    VECTOR_API_VERSION,
    "ClusterVectorPipeline",
    "clustervectorpipelines",
    namespaced=False,
)


__all__ = [
    "APPS_API",
    "CLUSTER_ROLE",
    "CLUSTER_ROLE_BINDING",
    "CLUSTER_VECTOR_PIPELINE",
    "CORE_API",
    "CUSTOM_OBJECTS_API",
    "DAEMON_SET",
    "POD",
    "RBAC_API",
    "SECRET",
    "SERVICE",
    "SERVICE_ACCOUNT",
    "STATEFUL_SET",
    "VECTOR",
    "VECTOR_API_VERSION",
    "VECTOR_PIPELINE",
    "ResourceKind",
]
