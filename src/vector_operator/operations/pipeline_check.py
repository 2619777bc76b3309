"""Checks of individual pipelines.

A pipeline is checked when it is new or its spec changed since its last
check: a configuration is built from that pipeline alone and run through
``vector validate``. The outcome lands on the pipeline status, which decides
whether Vector instances include the pipeline at all.

Checks run as tasks registered with the ``PendingWork`` tracker the
reconciler gates on, so a pass started while they run waits for their
verdicts (up to its gate timeout).
"""

import asyncio
import logging
from typing import Protocol

from ..client.kube_client import ApiException, KubeClient
from ..models.resources import Pipeline, VectorSpec
from .config_build import build_config_bytes
from .config_check import ConfigCheckError, ConfigValidationError
from .pending import PendingWork
from .pipelines import list_pipelines

logger = logging.getLogger("vector_operator.operations.pipeline_check")


class PipelineValidator(Protocol):
    """Validates the configuration built from one pipeline."""

    async def validate_pipeline(
        self,
        pipeline: Pipeline,
        config: bytes,
        *,
        namespace: str,
        image: str,
        timeout: float,
    ) -> None:
        """Return when valid; raise ``ConfigValidationError`` when rejected."""
        ...


class PipelineStatusWriter(Protocol):
    """Persists a pipeline check outcome."""

    async def set_pipeline_result(self, pipeline: Pipeline, pipeline_hash: int, reason: str | None = None) -> None:
        """Record the outcome; ``reason`` None means the check passed."""
        ...


class PipelineChecker:
    """Validate new and edited pipelines and record the verdict on their status."""

    def __init__(
        self,
        *,
        client: KubeClient,
        validator: PipelineValidator,
        status: PipelineStatusWriter,
        pending: PendingWork,
        operator_namespace: str,
        image: str,
        timeout: float = 300.0,
    ) -> None:
        """Initialize the checker.

        Args:
            client: Lists pipelines.
            validator: Runs ``vector validate``.
            status: Writes pipeline status.
            pending: Tracker the reconciler waits on while checks run.
            operator_namespace: Where cluster pipelines are checked.
            image: Agent image used for pipeline checks.
            timeout: Seconds one check may take.

        """
        self._client = client
        self._validator = validator
        self._status = status
        self._pending = pending
        self._operator_namespace = operator_namespace
        self._image = image
        self._timeout = timeout

    def start(self) -> asyncio.Task[int]:
        """Check pending pipelines in a task tracked by the reconciler's gate."""
        return self._pending.spawn(self.check_pipelines())

    async def check_pipelines(self) -> int:
        """Check every pipeline whose current spec has no verdict yet.

        A check that cannot complete is logged and retried on a later call.

        Returns:
            Number of pipelines examined.

        """
        pipelines = [pipeline for pipeline in await list_pipelines(self._client) if pipeline.needs_check]
        for pipeline in pipelines:
            try:
                await self.check(pipeline)
            except (ConfigCheckError, ApiException) as exc:  # noqa: PERF203
                logger.warning("Check of %s %s did not complete: %s", pipeline.kind.value, _ref(pipeline), exc)
        return len(pipelines)

    async def check(self, pipeline: Pipeline) -> bool:
        """Check one pipeline and record the verdict.

        Returns:
            True when the pipeline passed.

        Raises:
            ConfigCheckError: The validator could not complete.
            ApiException: The status write failed.

        """
        pipeline_hash = pipeline.pipeline_hash
        try:
            config = build_config_bytes([pipeline], VectorSpec())
        except ValueError as exc:
            logger.warning("%s %s is invalid: %s", pipeline.kind.value, _ref(pipeline), exc)
            await self._status.set_pipeline_result(pipeline, pipeline_hash, str(exc))
            return False

        namespace = self._operator_namespace if pipeline.is_cluster_scoped else pipeline.namespace
        try:
            await self._validator.validate_pipeline(
                pipeline,
                config,
                namespace=namespace,
                image=self._image,
                timeout=self._timeout,
            )
        except ConfigValidationError as exc:
            logger.warning("%s %s rejected: %s", pipeline.kind.value, _ref(pipeline), exc.reason)
            await self._status.set_pipeline_result(pipeline, pipeline_hash, exc.reason)
            return False

        await self._status.set_pipeline_result(pipeline, pipeline_hash)
        logger.info("%s %s passed its config check", pipeline.kind.value, _ref(pipeline))
        return True


def _ref(pipeline: Pipeline) -> str:
    return pipeline.name if pipeline.is_cluster_scoped else f"{pipeline.namespace}/{pipeline.name}"


__all__ = ["PipelineChecker", "PipelineStatusWriter", "PipelineValidator"]
