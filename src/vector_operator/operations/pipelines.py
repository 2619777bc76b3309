"""Helpers for listing the pipelines a Vector instance should run.

Both pipeline kinds are listed cluster-wide in parallel. Only pipelines whose
own configuration check has passed (``status.configCheckResult: true``) are
returned; the others are still being checked or were rejected.
"""

import asyncio
import logging

from ..client.kinds import CLUSTER_VECTOR_PIPELINE, VECTOR_PIPELINE, ResourceKind
from ..client.kube_client import KubeClient, KubeObject
from ..models.resources import Pipeline

logger = logging.getLogger("vector_operator.operations.pipelines")

PIPELINE_KINDS: tuple[ResourceKind, ...] = (VECTOR_PIPELINE, CLUSTER_VECTOR_PIPELINE)


def _parse(kind: ResourceKind, items: list[KubeObject]) -> list[Pipeline]:
    # List responses omit kind on their items
    return [Pipeline.from_resource({**item, "kind": kind.kind}) for item in items]


async def list_pipelines(client: KubeClient) -> list[Pipeline]:
    """Return every pipeline in the cluster, ordered by (namespace, name, kind)."""
    results = await asyncio.gather(*(client.list_objects(kind) for kind in PIPELINE_KINDS))
    pipelines = [pipeline for kind, items in zip(PIPELINE_KINDS, results, strict=True) for pipeline in _parse(kind, items)]
    return sorted(pipelines, key=lambda item: (item.namespace, item.name, item.kind.value))


async def list_valid_pipelines(client: KubeClient) -> list[Pipeline]:
    """Return the pipelines that passed their own configuration check.

    Args:
        client: The Kubernetes API client.

    Returns:
        Valid pipelines ordered by (namespace, name, kind).

    """
    pipelines = await list_pipelines(client)
    valid = [pipeline for pipeline in pipelines if pipeline.config_check_result is True]
    skipped = len(pipelines) - len(valid)
    if skipped:
        logger.info("Skipping %d pipelines without a passed config check", skipped)
    return valid


__all__ = ["PIPELINE_KINDS", "list_pipelines", "list_valid_pipelines"]
