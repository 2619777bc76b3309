"""Status writes for Vector instances and pipelines.

Every write is a read-modify-write against the object's last observed
``resourceVersion``. A concurrent writer makes the API server answer 409
Conflict; that error is raised unchanged so the reconcile loop re-reads the
object before trying again. A status equal to the stored one is not written.
"""

import logging

from ..client.kinds import CLUSTER_VECTOR_PIPELINE, VECTOR, VECTOR_PIPELINE
from ..client.kube_client import HTTP_CONFLICT, ApiException, KubeClient
from ..models.resources import Pipeline, PipelineStatus, Vector, VectorStatus

logger = logging.getLogger("vector_operator.operations.status")


class StatusStore:
    """Persist check outcomes on Vector instances and pipelines."""

    def __init__(self, client: KubeClient) -> None:
        """Initialize with the client used for status writes."""
        self._client = client

    async def set_succeeded(self, vector: Vector, config_hash: int) -> None:
        """Record a successfully applied configuration."""
        status = vector.status.model_copy(
            update={
                "last_applied_config_hash": config_hash,
                "last_checked_config_hash": config_hash,
                "config_check_result": True,
                "reason": None,
            },
        )
        await self._write(vector, status)

    async def set_failed(self, vector: Vector, reason: str, config_hash: int) -> None:
        """Record a configuration rejected by the validator.

        The last applied hash is kept; ``config_hash`` is remembered as checked
        so the same configuration is not validated again.
        """
        status = vector.status.model_copy(
            update={"last_checked_config_hash": config_hash, "config_check_result": False, "reason": reason},
        )
        await self._write(vector, status)

    async def set_pipeline_result(self, pipeline: Pipeline, pipeline_hash: int, reason: str | None = None) -> None:
        """Record the outcome of a pipeline's own check; ``reason`` None means it passed."""
        status = pipeline.status.model_copy(
            update={
                "config_check_result": reason is None,
                "reason": reason,
                "last_applied_pipeline_hash": pipeline_hash,
            },
        )
        if status == pipeline.status:
            logger.debug("Status of %s %s unchanged; skipping write", pipeline.kind.value, pipeline.name)
            return

        kind = CLUSTER_VECTOR_PIPELINE if pipeline.is_cluster_scoped else VECTOR_PIPELINE
        updated = await self._client.update_status(kind, pipeline.status_object(status))
        pipeline.raw = updated
        pipeline.resource_version = (updated.get("metadata") or {}).get("resourceVersion", pipeline.resource_version)
        pipeline.status = status

    async def _write(self, vector: Vector, status: VectorStatus) -> None:
        if status == vector.status:
            logger.debug("Status of Vector %s/%s unchanged; skipping write", vector.namespace, vector.name)
            return

        try:
            updated = await self._client.update_status(VECTOR, vector.status_object(status))
        except ApiException as exc:
            if exc.status == HTTP_CONFLICT:
                logger.info("Status of Vector %s/%s changed concurrently; will retry", vector.namespace, vector.name)
            raise

        # Later writes in the same pass must carry the new resourceVersion
        vector.raw = updated
        vector.resource_version = (updated.get("metadata") or {}).get("resourceVersion", vector.resource_version)
        vector.status = status


__all__ = ["StatusStore"]
