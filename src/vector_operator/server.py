"""Entry point for the Vector operator.

Wires the Kubernetes client, the pipeline checker and the reconciler together
around one shared ``PendingWork`` tracker, then reconciles every Vector
instance periodically. Each pass first starts a pipeline check in the
background; the reconciler gates on it. A failed pass is retried with
exponential backoff; a successful pass resets the delay to the configured
resync interval.
"""

import asyncio
import functools
import logging
import os
import signal
import sys

from .client.kube_client import KubeClient, create_kube_client
from .config import OperatorConfig
from .controller import ReconcileRequest, VectorReconciler
from .operations.agent import VectorAgent
from .operations.config_check import ConfigCheck
from .operations.pending import PendingWork
from .operations.pipeline_check import PipelineChecker
from .operations.pipelines import list_valid_pipelines
from .operations.status import StatusStore

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(name)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("vector_operator.server")

INITIAL_BACKOFF_S = 1.0
BACKOFF_FACTOR = 2.0
MAX_BACKOFF_S = 60.0


def next_backoff(current: float | None) -> float:
    """Return the delay before retrying after a failed pass."""
    if current is None:
        return INITIAL_BACKOFF_S
    return min(current * BACKOFF_FACTOR, MAX_BACKOFF_S)


def build_reconciler(client: KubeClient, config: OperatorConfig, pending: PendingWork) -> VectorReconciler:
    """Assemble a reconciler backed by the live cluster."""
    return VectorReconciler(
        client=client,
        pipeline_source=functools.partial(list_valid_pipelines, client),
        validator=ConfigCheck(client),
        agent=VectorAgent(client),
        status=StatusStore(client),
        pending=pending,
        pipeline_check_timeout=config.pipeline_check_timeout_s,
        config_check_timeout=config.config_check_timeout_s,
    )


def build_pipeline_checker(client: KubeClient, config: OperatorConfig, pending: PendingWork) -> PipelineChecker:
    """Assemble a pipeline checker registering its work with ``pending``."""
    return PipelineChecker(
        client=client,
        validator=ConfigCheck(client),
        status=StatusStore(client),
        pending=pending,
        operator_namespace=config.operator_namespace,
        image=config.pipeline_check_image,
        timeout=config.config_check_timeout_s,
    )


def _report_check(task: asyncio.Task[int] | None) -> None:
    if task is None or task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Pipeline check pass failed", exc_info=exc)
    else:
        logger.debug("Pipeline check pass examined %d pipelines", task.result())


async def run_resync_loop(
    reconciler: VectorReconciler,
    interval: float,
    *,
    checker: PipelineChecker | None = None,
    stop: asyncio.Event | None = None,
) -> None:
    """Reconcile all instances every ``interval`` seconds until ``stop`` is set.

    When a ``checker`` is given, each pass first starts a pipeline check unless
    the previous one is still running.
    """
    stop = stop or asyncio.Event()
    backoff: float | None = None
    check: asyncio.Task[int] | None = None
    try:
        while not stop.is_set():
            if checker is not None and (check is None or check.done()):
                _report_check(check)
                check = checker.start()

            try:
                outcomes = await reconciler.reconcile(ReconcileRequest())
            except Exception:
                backoff = next_backoff(backoff)
                logger.exception("Reconcile pass failed; retrying in %.0fs", backoff)
                delay = backoff
            else:
                backoff = None
                delay = interval
                logger.debug("Reconcile pass finished: %s", outcomes)

            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except TimeoutError:
                continue
    finally:
        if check is not None and not check.done():
            check.cancel()


async def run(config: OperatorConfig) -> None:
    """Run the operator until cancelled."""
    async with create_kube_client(config) as client:
        pending = PendingWork()
        reconciler = build_reconciler(client, config, pending)
        checker = build_pipeline_checker(client, config, pending)
        logger.info("Vector operator started (cluster pipelines checked in %s)", config.operator_namespace)
        await run_resync_loop(reconciler, config.resync_interval_s, checker=checker)


def handle_interrupt(signum: int, frame: object) -> None:  # noqa: ARG001
    """Handle keyboard interrupt gracefully."""
    logger.info("Received interrupt signal, shutting down...")
    sys.exit(0)


def main() -> None:
    """Entry point for the vector-operator console script."""
    signal.signal(signal.SIGINT, handle_interrupt)
    signal.signal(signal.SIGTERM, handle_interrupt)
    config = OperatorConfig.from_env()
    asyncio.run(run(config))


__all__ = [
    "BACKOFF_FACTOR",
    "INITIAL_BACKOFF_S",
    "MAX_BACKOFF_S",
    "build_pipeline_checker",
    "build_reconciler",
    "handle_interrupt",
    "main",
    "next_backoff",
    "run",
    "run_resync_loop",
]


if __name__ == "__main__":
    main()
