"""Validate agent configurations with ``vector validate`` before rollout.

The check runs out of process: the configuration is stored in a Secret and a
short-lived Pod running the agent image validates it. A failed Pod means the
configuration was rejected; its log tail is the reason shown to the user.
Both objects are deleted once the check finishes.

Checks run on behalf of a ``CheckTarget``: a Vector instance before its
agents are updated, or a single pipeline when it is created or edited.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Protocol

from ..client.kinds import POD, SECRET
from ..client.kube_client import ApiException, KubeClient, KubeObject
from ..models.resources import Pipeline, Vector

logger = logging.getLogger("vector_operator.operations.config_check")

CONFIG_FILE_NAME = "agent.json"
CONFIG_MOUNT_PATH = "/etc/vector"
LOG_TAIL_LINES = 100
MAX_NAME_LENGTH = 63

POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"


class ConfigValidationError(Exception):
    """The validator rejected the configuration.

    Attributes:
        reason: The validator's explanation, shown on the object's status.

    """

    def __init__(self, reason: str) -> None:
        """Initialize with the validator's explanation."""
        self.reason = reason
        super().__init__(f"Configuration rejected: {reason}")


class ConfigCheckError(RuntimeError):
    """The validator itself failed (timeout or API error); says nothing about the configuration."""


class ConfigValidator(Protocol):
    """Validates a serialized configuration for a Vector instance."""

    async def validate(self, vector: Vector, config: bytes, *, timeout: float) -> None:
        """Return when valid; raise ``ConfigValidationError`` when rejected."""
        ...


@dataclass(frozen=True, slots=True)
class CheckTarget:
    """Where a check runs and who owns its objects.

    Attributes:
        name: Name of the owning object, used in check names and labels.
        namespace: Namespace the Pod and Secret are created in.
        image: Agent image running ``vector validate``.
        owner_reference: Owner of the Pod and Secret, so leftovers are collected.

    """

    name: str
    namespace: str
    image: str
    owner_reference: dict[str, Any]

    @classmethod
    def for_vector(cls, vector: Vector) -> CheckTarget:
        """Check in the instance's namespace with its own agent image."""
        return cls(vector.name, vector.namespace, vector.spec.agent.image, vector.owner_reference())

    @classmethod
    def for_pipeline(cls, pipeline: Pipeline, namespace: str, image: str) -> CheckTarget:
        """Check a pipeline in ``namespace`` with ``image``."""
        return cls(pipeline.name, namespace, image, pipeline.owner_reference())


def check_name(target: CheckTarget) -> str:
    """Return a unique name for one check's Pod and Secret."""
    suffix = secrets.token_hex(4)
    prefix = f"configcheck-{target.name}"[: MAX_NAME_LENGTH - len(suffix) - 1].rstrip("-.")
    return f"{prefix}-{suffix}"


def _metadata(target: CheckTarget, name: str) -> dict[str, Any]:
    return {
        "name": name,
        "namespace": target.namespace,
        "labels": {
            "app.kubernetes.io/name": "vector-configcheck",
            "app.kubernetes.io/instance": target.name,
            "app.kubernetes.io/managed-by": "vector-operator",
        },
        "ownerReferences": [target.owner_reference],
    }


def build_config_secret(target: CheckTarget, name: str, config: bytes) -> KubeObject:
    """Return the Secret holding the configuration under test."""
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _metadata(target, name),
        "data": {CONFIG_FILE_NAME: base64.b64encode(config).decode("ascii")},
    }


def build_check_pod(target: CheckTarget, name: str) -> KubeObject:
    """Return the Pod that runs ``vector validate`` against the Secret."""
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(target, name),
        "spec": {
            "restartPolicy": "Never",
            "containers": [
                {
                    "name": "config-check",
                    "image": target.image,
                    "args": ["validate", "--no-environment", f"{CONFIG_MOUNT_PATH}/{CONFIG_FILE_NAME}"],
                    "volumeMounts": [{"name": "config", "mountPath": CONFIG_MOUNT_PATH, "readOnly": True}],
                }
            ],
            "volumes": [{"name": "config", "secret": {"secretName": name}}],
        },
    }


class ConfigCheck:
    """Run ``vector validate`` in a Pod and report the outcome."""

    def __init__(self, client: KubeClient, *, poll_interval: float = 1.0) -> None:
        """Initialize the validator.

        Args:
            client: The Kubernetes API client.
            poll_interval: Seconds between Pod phase checks.

        """
        self._client = client
        self._poll_interval = poll_interval

    async def validate(self, vector: Vector, config: bytes, *, timeout: float) -> None:
        """Validate ``config`` with the instance's agent image.

        Args:
            vector: The instance the configuration is built for.
            config: The serialized configuration.
            timeout: Seconds to wait for the check Pod to finish.

        Raises:
            ConfigValidationError: The configuration is invalid.
            ConfigCheckError: The check could not be completed.

        """
        await self.run(CheckTarget.for_vector(vector), config, timeout=timeout)

    async def validate_pipeline(
        self,
        pipeline: Pipeline,
        config: bytes,
        *,
        namespace: str,
        image: str,
        timeout: float,
    ) -> None:
        """Validate the configuration built from a single pipeline."""
        await self.run(CheckTarget.for_pipeline(pipeline, namespace, image), config, timeout=timeout)

    async def run(self, target: CheckTarget, config: bytes, *, timeout: float) -> None:
        """Run one check for ``target``; raises as ``validate`` does."""
        name = check_name(target)
        namespace = target.namespace
        logger.info("Starting config check %s/%s", namespace, name)
        try:
            await self._client.create(SECRET, build_config_secret(target, name, config))
            await self._client.create(POD, build_check_pod(target, name))
            try:
                async with asyncio.timeout(timeout):
                    phase = await self._wait_finished(name, namespace)
            except TimeoutError as exc:
                msg = f"Config check {namespace}/{name} did not finish within {timeout}s"
                raise ConfigCheckError(msg) from exc

            if phase == POD_FAILED:
                reason = await self._client.read_pod_log(name, namespace, tail_lines=LOG_TAIL_LINES)
                raise ConfigValidationError(reason.strip() or "vector validate failed")
        except ApiException as exc:
            msg = f"Config check {namespace}/{name} failed: {exc.status} {exc.reason}"
            raise ConfigCheckError(msg) from exc
        finally:
            await self._cleanup(name, namespace)
        logger.info("Config check %s/%s passed", namespace, name)

    async def _wait_finished(self, name: str, namespace: str) -> str:
        while True:
            pod = await self._client.get(POD, name, namespace)
            phase = (pod.get("status") or {}).get("phase")
            if phase in (POD_SUCCEEDED, POD_FAILED):
                return phase
            await asyncio.sleep(self._poll_interval)

    async def _cleanup(self, name: str, namespace: str) -> None:
        for kind in (POD, SECRET):
            try:
                await self._client.delete(kind, name, namespace)
            except ApiException as exc:  # noqa: PERF203 - cleanup is best effort; owner references collect leftovers
                logger.warning(
                    "Failed to delete config check %s %s/%s: %s %s",
                    kind.kind,
                    namespace,
                    name,
                    exc.status,
                    exc.reason,
                )


__all__ = [
    "CheckTarget",
    "ConfigCheck",
    "ConfigCheckError",
    "ConfigValidationError",
    "ConfigValidator",
    "build_check_pod",
    "build_config_secret",
    "check_name",
]
