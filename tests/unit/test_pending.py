"""Unit tests for the pending pipeline check gate."""

import asyncio

import pytest

from vector_operator.operations.pending import PendingWork, wait_pending


class TestPendingWork:
    """Tests for PendingWork counting."""

    def test_track_counts_block(self) -> None:
        """The tracked block counts as one unit while it runs."""
        tracker = PendingWork()
        with tracker.track():
            assert tracker.count == 1
        assert tracker.count == 0

    def test_track_releases_on_error(self) -> None:
        """An exception inside the block still finishes the unit."""
        tracker = PendingWork()
        with pytest.raises(RuntimeError), tracker.track():
            raise RuntimeError
        assert tracker.count == 0

    def test_negative_count_rejected(self) -> None:
        """Finishing more units than were started is a bug."""
        with pytest.raises(ValueError, match="negative"):
            PendingWork().done()

    @pytest.mark.asyncio
    async def test_spawn_counts_until_done(self) -> None:
        """A spawned task is one unit until it finishes."""
        tracker = PendingWork()
        release = asyncio.Event()

        task = tracker.spawn(release.wait())
        assert tracker.count == 1

        release.set()
        await task
        await asyncio.sleep(0)
        assert tracker.count == 0

    @pytest.mark.asyncio
    async def test_spawn_releases_on_cancel(self) -> None:
        """A cancelled task still finishes its unit."""
        tracker = PendingWork()
        task = tracker.spawn(asyncio.Event().wait())

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)

        assert tracker.count == 0


class TestWaitPending:
    """Tests for wait_pending."""

    @pytest.mark.asyncio
    async def test_idle_returns_immediately(self) -> None:
        """No outstanding work means no timeout."""
        assert await wait_pending(PendingWork(), timeout=1) is False

    @pytest.mark.asyncio
    async def test_work_finishing_in_time(self) -> None:
        """Work finishing before the deadline releases the gate."""
        tracker = PendingWork()
        tracker.add()

        async def finish() -> None:
            await asyncio.sleep(0.01)
            tracker.done()

        task = asyncio.create_task(finish())
        assert await wait_pending(tracker, timeout=1) is False
        await task

    @pytest.mark.asyncio
    async def test_stuck_work_times_out(self) -> None:
        """Work that never finishes cannot block the caller past the timeout."""
        tracker = PendingWork()
        tracker.add()

        assert await wait_pending(tracker, timeout=0.01) is True
        assert tracker.count == 1
