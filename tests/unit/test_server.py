"""Unit tests for the operator entry point.

Tests cover:
- Backoff computation
- The resync loop's retry behavior
- Reconciler and pipeline checker wiring
- Signal handling and main()
"""

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import vector_operator.server as server_module
from vector_operator.config import OperatorConfig
from vector_operator.controller import ReconcileRequest, VectorReconciler
from vector_operator.operations.pending import PendingWork
from vector_operator.operations.pipeline_check import PipelineChecker
from vector_operator.server import (
    MAX_BACKOFF_S,
    build_pipeline_checker,
    build_reconciler,
    handle_interrupt,
    main,
    next_backoff,
    run_resync_loop,
)


class TestBackoff:
    """Tests for next_backoff."""

    def test_starts_at_one_second(self) -> None:
        """The first retry waits one second."""
        assert next_backoff(None) == 1.0

    def test_doubles_and_caps(self) -> None:
        """Each retry doubles the delay up to the cap."""
        assert next_backoff(1.0) == 2.0
        assert next_backoff(32.0) == MAX_BACKOFF_S
        assert next_backoff(MAX_BACKOFF_S) == MAX_BACKOFF_S


class TestResyncLoop:
    """Tests for run_resync_loop."""

    @pytest.mark.asyncio
    async def test_failed_pass_retried(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A failing pass is retried after the backoff, then the loop keeps going."""
        monkeypatch.setattr(server_module, "INITIAL_BACKOFF_S", 0.01)
        stop = asyncio.Event()
        calls: list[ReconcileRequest] = []

        async def reconcile(request: ReconcileRequest) -> dict[str, str]:
            calls.append(request)
            if len(calls) == 1:
                msg = "api down"
                raise RuntimeError(msg)
            stop.set()
            return {}

        reconciler = MagicMock()
        reconciler.reconcile = reconcile

        await asyncio.wait_for(run_resync_loop(reconciler, 60, stop=stop), timeout=5)

        assert len(calls) == 2
        assert all(request.is_full_resync for request in calls)

    @pytest.mark.asyncio
    async def test_stop_before_start(self) -> None:
        """A set stop event ends the loop without reconciling."""
        stop = asyncio.Event()
        stop.set()
        reconciler = MagicMock()
        reconciler.reconcile = AsyncMock()

        await run_resync_loop(reconciler, 60, stop=stop)

        reconciler.reconcile.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_check_started_before_each_pass(self) -> None:
        """Each pass starts a pipeline check the reconciler then gates on."""
        stop = asyncio.Event()
        pending = PendingWork()
        release = asyncio.Event()
        seen: list[int] = []

        checker = MagicMock()
        checker.start.side_effect = lambda: pending.spawn(release.wait())

        async def reconcile(request: ReconcileRequest) -> dict[str, str]:  # noqa: ARG001
            seen.append(pending.count)
            stop.set()
            return {}

        reconciler = MagicMock()
        reconciler.reconcile = reconcile

        await asyncio.wait_for(run_resync_loop(reconciler, 60, checker=checker, stop=stop), timeout=5)

        checker.start.assert_called_once_with()
        assert seen == [1]
        # The unfinished check is cancelled when the loop stops
        await asyncio.wait_for(pending.wait(), timeout=1)
        assert not release.is_set()

    @pytest.mark.asyncio
    async def test_finished_check_restarted(self, caplog: pytest.LogCaptureFixture) -> None:
        """A finished check is replaced by a new one on the next pass; its failure is logged."""
        stop = asyncio.Event()
        passes = 0

        async def failing_check() -> int:
            msg = "list failed"
            raise RuntimeError(msg)

        checker = MagicMock()
        checker.start.side_effect = lambda: asyncio.create_task(failing_check())

        async def reconcile(request: ReconcileRequest) -> dict[str, str]:  # noqa: ARG001
            nonlocal passes
            passes += 1
            await asyncio.sleep(0)
            if passes == 2:
                stop.set()
            return {}

        reconciler = MagicMock()
        reconciler.reconcile = reconcile

        await asyncio.wait_for(run_resync_loop(reconciler, 0.01, checker=checker, stop=stop), timeout=5)

        assert checker.start.call_count == 2
        assert "Pipeline check pass failed" in caplog.text


def test_build_reconciler_wires_collaborators() -> None:
    """The reconciler is built from the client, the shared tracker and configured timeouts."""
    config = OperatorConfig(pipeline_check_timeout_s=3, config_check_timeout_s=30)
    pending = PendingWork()
    reconciler = build_reconciler(MagicMock(), config, pending)
    assert isinstance(reconciler, VectorReconciler)
    assert reconciler._pending is pending  # type: ignore[reportPrivateUsage]
    assert reconciler._pipeline_check_timeout == 3  # type: ignore[reportPrivateUsage]
    assert reconciler._config_check_timeout == 30  # type: ignore[reportPrivateUsage]


def test_build_pipeline_checker_shares_tracker() -> None:
    """The checker registers its work with the tracker the reconciler gates on."""
    config = OperatorConfig(operator_namespace="observability", pipeline_check_image="timberio/vector:0.34.0")
    pending = PendingWork()
    checker = build_pipeline_checker(MagicMock(), config, pending)
    assert isinstance(checker, PipelineChecker)
    assert checker._pending is pending  # type: ignore[reportPrivateUsage]
    assert checker._operator_namespace == "observability"  # type: ignore[reportPrivateUsage]
    assert checker._image == "timberio/vector:0.34.0"  # type: ignore[reportPrivateUsage]


class TestSignalHandler:
    """Tests for signal handler function."""

    def test_handle_interrupt_calls_sys_exit(self) -> None:
        """Test that handle_interrupt logs and exits cleanly."""
        with (
            patch("vector_operator.server.logger") as mock_logger,
            pytest.raises(SystemExit) as exc_info,
        ):
            handle_interrupt(2, None)  # SIGINT = 2

        mock_logger.info.assert_called_once_with("Received interrupt signal, shutting down...")
        assert exc_info.value.code == 0


class TestMainFunction:
    """Tests for the main() entry point function."""

    def test_main_registers_signal_handlers_and_runs(self) -> None:
        """Test that main() registers signal handlers and starts the operator."""
        config = MagicMock()
        with (
            patch("vector_operator.server.signal.signal") as mock_signal,
            patch("vector_operator.server.OperatorConfig.from_env", return_value=config),
            patch("vector_operator.server.run", new_callable=MagicMock) as mock_run,
            patch("vector_operator.server.asyncio.run") as mock_asyncio_run,
        ):
            main()

            assert mock_signal.call_count == 2
            mock_signal.assert_any_call(signal.SIGINT, handle_interrupt)
            mock_signal.assert_any_call(signal.SIGTERM, handle_interrupt)
            mock_run.assert_called_once_with(config)
            mock_asyncio_run.assert_called_once_with(mock_run.return_value)
