"""Unit tests for the Kubernetes API client wrapper."""

from collections.abc import Iterator
from contextlib import ExitStack
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from kubernetes_asyncio.client.rest import ApiException
from kubernetes_asyncio.config import ConfigException

from vector_operator.client.kinds import (
    CLUSTER_ROLE,
    CLUSTER_VECTOR_PIPELINE,
    DAEMON_SET,
    POD,
    SERVICE_ACCOUNT,
    VECTOR,
    VECTOR_PIPELINE,
)
from vector_operator.client.kube_client import KubeClient, create_kube_client, load_cluster_config, object_key
from vector_operator.config import OperatorConfig

API_CLASSES = ("CoreV1Api", "AppsV1Api", "RbacAuthorizationV1Api", "CustomObjectsApi")
GROUP = "observability.kaasops.io"
VERSION = "v1alpha1"


@pytest.fixture
def apis() -> Iterator[dict[str, AsyncMock]]:
    """Replace the typed API classes with mocks, keyed by class name."""
    mocks = {name: AsyncMock(name=name) for name in API_CLASSES}
    with ExitStack() as stack:
        for name, mock in mocks.items():
            stack.enter_context(patch(f"kubernetes_asyncio.client.{name}", return_value=mock))
        yield mocks


@pytest.fixture
def kube(apis: dict[str, AsyncMock]) -> KubeClient:  # noqa: ARG001
    """Return a client whose API classes are mocked and whose results pass through unchanged."""
    api_client = MagicMock()
    api_client.sanitize_for_serialization.side_effect = lambda result: result
    return KubeClient(api_client, request_timeout=5.0)


class TestTypedKinds:
    """Tests for kinds served by the typed API classes."""

    @pytest.mark.asyncio
    async def test_get_namespaced(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """A namespaced read goes to read_namespaced_<kind>."""
        apis["CoreV1Api"].read_namespaced_pod.return_value = {"metadata": {"name": "p"}}

        assert await kube.get(POD, "p", "ns") == {"metadata": {"name": "p"}}

        apis["CoreV1Api"].read_namespaced_pod.assert_awaited_once_with(name="p", namespace="ns", _request_timeout=5.0)

    @pytest.mark.asyncio
    async def test_list_all_namespaces(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """A namespaced kind listed without a namespace covers every namespace."""
        apis["AppsV1Api"].list_daemon_set_for_all_namespaces.return_value = {"items": [{"metadata": {"name": "a"}}]}

        assert await kube.list_objects(DAEMON_SET) == [{"metadata": {"name": "a"}}]

        apis["AppsV1Api"].list_daemon_set_for_all_namespaces.assert_awaited_once_with(_request_timeout=5.0)

    @pytest.mark.asyncio
    async def test_create_uses_object_namespace(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """Creates address the namespace in the object's metadata."""
        obj = {"metadata": {"name": "sa", "namespace": "vector"}}
        apis["CoreV1Api"].create_namespaced_service_account.return_value = obj

        await kube.create(SERVICE_ACCOUNT, obj)

        apis["CoreV1Api"].create_namespaced_service_account.assert_awaited_once_with(
            body=obj,
            namespace="vector",
            _request_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_update_replaces(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """Updates are full replaces carrying the object's resourceVersion."""
        obj = {"metadata": {"name": "ds", "namespace": "vector", "resourceVersion": "7"}}
        apis["AppsV1Api"].replace_namespaced_daemon_set.return_value = obj

        await kube.update(DAEMON_SET, obj)

        apis["AppsV1Api"].replace_namespaced_daemon_set.assert_awaited_once_with(
            name="ds",
            body=obj,
            namespace="vector",
            _request_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_cluster_scoped_ignores_namespace(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """Cluster-scoped kinds never pass a namespace."""
        await kube.delete(CLUSTER_ROLE, "r", "ns")

        apis["RbacAuthorizationV1Api"].delete_cluster_role.assert_awaited_once_with(name="r", _request_timeout=5.0)

    @pytest.mark.asyncio
    async def test_errors_propagate(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """API errors reach the caller unchanged."""
        apis["CoreV1Api"].read_namespaced_pod.side_effect = ApiException(status=404, reason="Not Found")

        with pytest.raises(ApiException) as exc_info:
            await kube.get(POD, "p", "ns")

        assert exc_info.value.status == 404

    @pytest.mark.asyncio
    async def test_read_pod_log(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """Pod logs are requested with a line limit and returned as text."""
        apis["CoreV1Api"].read_namespaced_pod_log.return_value = "error: bad config\n"

        assert await kube.read_pod_log("p", "ns") == "error: bad config\n"

        apis["CoreV1Api"].read_namespaced_pod_log.assert_awaited_once_with(
            name="p",
            namespace="ns",
            tail_lines=100,
            _request_timeout=5.0,
        )


class TestCustomKinds:
    """Tests for kinds served by CustomObjectsApi."""

    @pytest.mark.asyncio
    async def test_list_across_cluster_with_selector(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """Listing without a namespace uses the cluster variant and passes label selectors."""
        apis["CustomObjectsApi"].list_cluster_custom_object.return_value = {"items": [{"metadata": {"name": "a"}}]}

        items = await kube.list_objects(VECTOR_PIPELINE, label_selector="app=x")

        assert items == [{"metadata": {"name": "a"}}]
        apis["CustomObjectsApi"].list_cluster_custom_object.assert_awaited_once_with(
            group=GROUP,
            version=VERSION,
            plural="vectorpipelines",
            label_selector="app=x",
            _request_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_get_namespaced(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """A namespaced read uses get_namespaced_custom_object."""
        apis["CustomObjectsApi"].get_namespaced_custom_object.return_value = {"metadata": {"name": "agent"}}

        await kube.get(VECTOR, "agent", "vector")

        apis["CustomObjectsApi"].get_namespaced_custom_object.assert_awaited_once_with(
            group=GROUP,
            version=VERSION,
            plural="vectors",
            namespace="vector",
            name="agent",
            _request_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_update_status_namespaced(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """Status writes target the status subresource with the full object."""
        obj = {"metadata": {"name": "agent", "namespace": "vector", "resourceVersion": "3"}, "status": {}}
        apis["CustomObjectsApi"].replace_namespaced_custom_object_status.return_value = obj

        assert await kube.update_status(VECTOR, obj) == obj

        apis["CustomObjectsApi"].replace_namespaced_custom_object_status.assert_awaited_once_with(
            group=GROUP,
            version=VERSION,
            plural="vectors",
            namespace="vector",
            name="agent",
            body=obj,
            _request_timeout=5.0,
        )

    @pytest.mark.asyncio
    async def test_update_status_cluster_scoped(self, kube: KubeClient, apis: dict[str, AsyncMock]) -> None:
        """Cluster pipelines are written through the cluster status variant."""
        obj = {"metadata": {"name": "infra"}, "status": {"configCheckResult": True}}
        apis["CustomObjectsApi"].replace_cluster_custom_object_status.return_value = obj

        await kube.update_status(CLUSTER_VECTOR_PIPELINE, obj)

        apis["CustomObjectsApi"].replace_cluster_custom_object_status.assert_awaited_once()
        assert apis["CustomObjectsApi"].replace_cluster_custom_object_status.await_args.kwargs["name"] == "infra"


@pytest.mark.asyncio
async def test_results_are_sanitized(apis: dict[str, AsyncMock]) -> None:
    """Generated models are turned into plain dictionaries in wire shape."""
    model = MagicMock(name="V1Pod")
    apis["CoreV1Api"].read_namespaced_pod.return_value = model
    api_client = MagicMock()
    api_client.sanitize_for_serialization.return_value = {"metadata": {"resourceVersion": "1"}}

    obj = await KubeClient(api_client).get(POD, "p", "ns")

    assert obj == {"metadata": {"resourceVersion": "1"}}
    api_client.sanitize_for_serialization.assert_called_once_with(model)


class TestClusterConfig:
    """Tests for credential loading."""

    @pytest.mark.asyncio
    async def test_in_cluster_preferred(self) -> None:
        """The mounted service account is used when present."""
        with (
            patch("kubernetes_asyncio.config.load_incluster_config") as incluster,
            patch("kubernetes_asyncio.config.load_kube_config", new_callable=AsyncMock) as kubeconfig,
        ):
            await load_cluster_config(OperatorConfig())

        incluster.assert_called_once_with()
        kubeconfig.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_kubeconfig_fallback(self, tmp_path: Path) -> None:
        """Outside a cluster the configured kubeconfig and context are loaded."""
        path = tmp_path / "config"
        path.write_text("apiVersion: v1\n", encoding="utf-8")
        config = OperatorConfig(kubeconfig=path, kube_context="kind-dev")

        with (
            patch("kubernetes_asyncio.config.load_incluster_config", side_effect=ConfigException("no sa")),
            patch("kubernetes_asyncio.config.load_kube_config", new_callable=AsyncMock) as kubeconfig,
        ):
            await load_cluster_config(config)

        kubeconfig.assert_awaited_once_with(config_file=str(path), context="kind-dev")

    @pytest.mark.asyncio
    async def test_create_kube_client_applies_timeout(self) -> None:
        """The yielded client uses the configured request timeout."""
        api_client_cls = MagicMock()
        api_client_cls.return_value.__aenter__.return_value = MagicMock()

        with (
            patch("vector_operator.client.kube_client.load_cluster_config", new_callable=AsyncMock) as load,
            patch("kubernetes_asyncio.client.ApiClient", api_client_cls),
        ):
            async with create_kube_client(OperatorConfig(timeout_ms=2500)) as kube:
                assert kube._request_timeout == 2.5  # type: ignore[reportPrivateUsage]

        load.assert_awaited_once()
        api_client_cls.return_value.__aexit__.assert_awaited_once()


def test_object_key_requires_name() -> None:
    """Objects without a name cannot be addressed."""
    assert object_key({"metadata": {"name": "a", "namespace": "b"}}) == ("b", "a")
    with pytest.raises(ValueError, match=r"metadata\.name"):
        object_key({"metadata": {}})
