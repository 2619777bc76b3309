"""Kubernetes API client setup and helpers.

Provides ``KubeClient``, which puts the typed ``kubernetes_asyncio`` API
classes behind one kind-driven interface, and the async context manager that
loads cluster credentials and creates one.

Objects go in and come out as plain dictionaries in the API's wire shape
(camelCase keys), so callers never handle generated models. API failures
raise ``ApiException`` unchanged; nothing is retried here.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeAlias

from kubernetes_asyncio import client
from kubernetes_asyncio import config as kube_config
from kubernetes_asyncio.client.rest import ApiException

from ..config import OperatorConfig
from .kinds import APPS_API, CORE_API, RBAC_API, ResourceKind

logger = logging.getLogger("vector_operator.kube_client")

# HTTP status codes
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409

KubeObject: TypeAlias = dict[str, Any]

# Typed API verbs and their CustomObjectsApi spelling
_CUSTOM_VERBS = {"read": "get", "list": "list", "create": "create", "replace": "replace", "delete": "delete"}


def object_key(obj: KubeObject) -> tuple[str | None, str]:
    """Return ``(namespace, name)`` of an API object."""
    metadata = obj.get("metadata") or {}
    name = metadata.get("name")
    if not name:
        msg = "Object has no metadata.name"
        raise ValueError(msg)
    return metadata.get("namespace"), name


class KubeClient:
    """Kind-driven access to the Kubernetes API."""

    def __init__(self, api_client: client.ApiClient, *, request_timeout: float | None = None) -> None:
        """Initialize the client.

        Args:
            api_client: Configured ``kubernetes_asyncio`` API client.
            request_timeout: Seconds allowed for each API request.

        """
        self._api_client = api_client
        self._request_timeout = request_timeout
        self._apis: dict[str, Any] = {
            CORE_API: client.CoreV1Api(api_client),
            APPS_API: client.AppsV1Api(api_client),
            RBAC_API: client.RbacAuthorizationV1Api(api_client),
        }
        self._custom = client.CustomObjectsApi(api_client)

    def _method(self, kind: ResourceKind, verb: str, namespace: str | None, *, status: bool = False) -> Callable[..., Awaitable[Any]]:
        scoped = kind.namespaced and namespace is not None
        suffix = "_status" if status else ""
        if kind.is_custom:
            scope = "namespaced" if scoped else "cluster"
            return getattr(self._custom, f"{_CUSTOM_VERBS[verb]}_{scope}_custom_object{suffix}")
        if scoped:
            name = f"{verb}_namespaced_{kind.stem}{suffix}"
        elif kind.namespaced:
            # Only list may address a namespaced kind without a namespace
            name = f"{verb}_{kind.stem}_for_all_namespaces"
        else:
            name = f"{verb}_{kind.stem}{suffix}"
        return getattr(self._apis[kind.api], name)

    async def _call(
        self,
        kind: ResourceKind,
        verb: str,
        namespace: str | None = None,
        *,
        status: bool = False,
        **params: Any,
    ) -> Any:
        method = self._method(kind, verb, namespace, status=status)
        if kind.is_custom:
            params.update(group=kind.group, version=kind.version, plural=kind.plural)
        if kind.namespaced and namespace is not None:
            params["namespace"] = namespace
        result = await method(**params, _request_timeout=self._request_timeout)
        return self._api_client.sanitize_for_serialization(result)

    async def get(self, kind: ResourceKind, name: str, namespace: str | None = None) -> KubeObject:
        """Fetch a single object."""
        return await self._call(kind, "read", namespace, name=name)

    async def list_objects(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[KubeObject]:
        """List objects of a kind, across all namespaces when ``namespace`` is None."""
        params = {"label_selector": label_selector} if label_selector else {}
        data = await self._call(kind, "list", namespace, **params)
        return list(data.get("items") or [])

    async def create(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Create an object; an existing one makes the API answer 409."""
        namespace, _ = object_key(obj)
        return await self._call(kind, "create", namespace, body=obj)

    async def update(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Replace an object; the body's ``resourceVersion`` guards against lost updates."""
        namespace, name = object_key(obj)
        return await self._call(kind, "replace", namespace, name=name, body=obj)

    async def update_status(self, kind: ResourceKind, obj: KubeObject) -> KubeObject:
        """Replace the status subresource of an object."""
        namespace, name = object_key(obj)
        return await self._call(kind, "replace", namespace, status=True, name=name, body=obj)

    async def delete(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        """Delete an object."""
        await self._call(kind, "delete", namespace, name=name)

    async def read_pod_log(self, name: str, namespace: str, *, tail_lines: int = 100) -> str:
        """Return the last ``tail_lines`` lines of a pod's log."""
        return await self._apis[CORE_API].read_namespaced_pod_log(
            name=name,
            namespace=namespace,
            tail_lines=tail_lines,
            _request_timeout=self._request_timeout,
        )


async def load_cluster_config(config: OperatorConfig) -> None:
    """Load in-cluster credentials, falling back to a kubeconfig file outside a cluster."""
    try:
        kube_config.load_incluster_config()
    except kube_config.ConfigException:
        config_file = str(config.kubeconfig) if config.kubeconfig is not None else None
        await kube_config.load_kube_config(config_file=config_file, context=config.kube_context)
        logger.info("Loaded kubeconfig credentials (context %s)", config.kube_context or "current")
    else:
        logger.info("Loaded in-cluster service account credentials")


@asynccontextmanager
async def create_kube_client(config: OperatorConfig) -> AsyncIterator[KubeClient]:
    """Create a configured Kubernetes API client.

    Args:
        config: The configuration containing the kubeconfig location and timeouts.

    Yields:
        Configured KubeClient instance.

    """
    await load_cluster_config(config)
    async with client.ApiClient() as api_client:
        yield KubeClient(api_client, request_timeout=config.timeout_ms / 1000)


__all__ = [
    "HTTP_CONFLICT",
    "HTTP_NOT_FOUND",
    "ApiException",
    "KubeClient",
    "KubeObject",
    "create_kube_client",
    "load_cluster_config",
    "object_key",
]
