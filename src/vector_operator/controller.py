"""Reconciliation of Vector instances.

One pass for one instance runs, strictly in order:

1. Gate: wait (bounded) for in-flight pipeline checks.
2. Build the agent configuration from every valid pipeline.
3. Hash it and compare with ``status.lastAppliedConfigHash``.
4. Validate it externally, only when the hash changed and was not already
   rejected (``status.lastCheckedConfigHash`` with a failed check).
5. Apply it through the agent collaborator.
6. Record the hash and a successful check on the instance status.

A configuration rejected by the validator is recorded on the status and ends
the pass without error; the same configuration is not validated again. A
full resync ends by pruning the cluster-scoped objects of instances that no
longer exist. Every other failure propagates so the caller's retry loop
re-reads fresh state before trying again.
"""

import logging
from collections.abc import Awaitable, Callable, Collection
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol, TypeAlias

from .client.kinds import VECTOR
from .client.kube_client import HTTP_NOT_FOUND, ApiException, KubeObject
from .models.components import config_hash
from .models.resources import Pipeline, Vector
from .operations.config_build import build_config_bytes
from .operations.config_check import ConfigValidationError, ConfigValidator
from .operations.pending import PendingWork, wait_pending

logger = logging.getLogger("vector_operator.controller")

PipelineSource: TypeAlias = Callable[[], Awaitable[list[Pipeline]]]


class ReconcileOutcome(StrEnum):
    """How a reconcile pass for one instance ended."""

    APPLIED = "applied"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class ReconcileRequest:
    """A request to reconcile one instance, or all of them when ``namespace`` is empty."""

    namespace: str = ""
    name: str = ""

    @property
    def is_full_resync(self) -> bool:
        """Return True for a request covering every instance."""
        return not self.namespace


class VectorReader(Protocol):
    """Reads Vector instances from the cluster."""

    async def get(self, kind: Any, name: str, namespace: str | None = None) -> KubeObject:
        """Fetch an object."""
        ...

    async def list_objects(self, kind: Any, namespace: str | None = None) -> list[KubeObject]:
        """List objects."""
        ...


class AgentApplier(Protocol):
    """Converges the workload running an instance's configuration."""

    async def apply(self, vector: Vector, config: bytes) -> Any:
        """Apply ``config`` for ``vector``."""
        ...

    async def prune(self, live: Collection[tuple[str, str]]) -> Any:
        """Remove leftovers of instances not in ``live``."""
        ...


class StatusWriter(Protocol):
    """Persists the outcome of a pass on the instance status."""

    async def set_succeeded(self, vector: Vector, config_hash: int) -> None:
        """Record a successfully applied configuration."""
        ...

    async def set_failed(self, vector: Vector, reason: str, config_hash: int) -> None:
        """Record a rejected configuration."""
        ...


class VectorReconciler:
    """Drive Vector instances to the configuration their pipelines describe."""

    def __init__(
        self,
        *,
        client: VectorReader,
        pipeline_source: PipelineSource,
        validator: ConfigValidator,
        agent: AgentApplier,
        status: StatusWriter,
        pending: PendingWork,
        pipeline_check_timeout: float = 15.0,
        config_check_timeout: float = 300.0,
    ) -> None:
        """Initialize the reconciler with its collaborators.

        Args:
            client: Reads Vector instances.
            pipeline_source: Returns the valid pipelines.
            validator: Checks a configuration before it is applied.
            agent: Applies a configuration to the cluster.
            status: Writes instance status.
            pending: Tracker of in-flight pipeline checks to wait for.
            pipeline_check_timeout: Seconds to wait on ``pending``.
            config_check_timeout: Seconds the validator may take.

        """
        self._client = client
        self._pipeline_source = pipeline_source
        self._validator = validator
        self._agent = agent
        self._status = status
        self._pending = pending
        self._pipeline_check_timeout = pipeline_check_timeout
        self._config_check_timeout = config_check_timeout

    async def reconcile(self, request: ReconcileRequest) -> dict[str, ReconcileOutcome]:
        """Handle one request, returning the outcome per ``namespace/name``.

        A full resync reconciles every instance not being deleted and stops at
        the first error. A named instance that no longer exists is ignored.
        """
        if await wait_pending(self._pending, self._pipeline_check_timeout):
            logger.info("Continuing reconcile without waiting for pipeline checks")

        if request.is_full_resync:
            items = await self._client.list_objects(VECTOR)
            outcomes: dict[str, ReconcileOutcome] = {}
            live: set[tuple[str, str]] = set()
            for item in items:
                vector = Vector.from_resource(item)
                if vector.deleting:
                    continue
                live.add((vector.namespace, vector.name))
                outcomes[_ref(vector)] = await self.reconcile_vector(vector)
            await self._agent.prune(live)
            return outcomes

        key = f"{request.namespace}/{request.name}"
        try:
            obj = await self._client.get(VECTOR, request.name, request.namespace)
        except ApiException as exc:
            if exc.status != HTTP_NOT_FOUND:
                raise
            logger.info("Vector %s not found; it must have been deleted", key)
            return {key: ReconcileOutcome.NOT_FOUND}
        return {key: await self.reconcile_vector(Vector.from_resource(obj))}

    async def reconcile_vector(self, vector: Vector) -> ReconcileOutcome:
        """Run one pass for ``vector`` (steps 2 to 6; the gate is the caller's).

        Raises:
            PipelineTypeError: A namespaced pipeline declared a forbidden source.
            PipelineScopeError: A namespaced pipeline selected another namespace.
            ComponentDecodeError: A pipeline component is malformed.
            ConfigCheckError: The validator could not complete.
            ApiException: Any cluster API failure, including status conflicts.

        """
        pipelines = await self._pipeline_source()
        try:
            config = build_config_bytes(pipelines, vector.spec)
        except ValueError:
            logger.exception("Failed to build configuration for Vector %s", _ref(vector))
            raise
        new_hash = config_hash(config)
        status = vector.status

        if status.config_check_result is False and status.last_checked_config_hash == new_hash:
            logger.debug("Configuration for Vector %s already rejected (hash %d)", _ref(vector), new_hash)
            return ReconcileOutcome.REJECTED

        if status.last_applied_config_hash != new_hash:
            try:
                await self._validator.validate(vector, config, timeout=self._config_check_timeout)
            except ConfigValidationError as exc:
                logger.error("Configuration for Vector %s rejected: %s", _ref(vector), exc.reason)  # noqa: TRY400
                await self._status.set_failed(vector, exc.reason, new_hash)
                return ReconcileOutcome.REJECTED
        else:
            logger.debug("Configuration for Vector %s unchanged (hash %d)", _ref(vector), new_hash)

        await self._agent.apply(vector, config)
        await self._status.set_succeeded(vector, new_hash)
        logger.info("Reconciled Vector %s (config hash %d)", _ref(vector), new_hash)
        return ReconcileOutcome.APPLIED


def _ref(vector: Vector) -> str:
    return f"{vector.namespace}/{vector.name}"


__all__ = [
    "AgentApplier",
    "PipelineSource",
    "ReconcileOutcome",
    "ReconcileRequest",
    "StatusWriter",
    "VectorReader",
    "VectorReconciler",
]
