"""Unit tests for atomic publishing.

Tests the staging/rename protocol, rename retry window, tolerance of a
concurrent writer winning the rename, and staging cleanup on failure.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from archive_cache.errors import RenameError, RenameErrorKind, RenameRetryExhaustedError
from archive_cache.publisher import AtomicPublisher, PublishOutcome


def _staging_files(directory: Path) -> list[Path]:
    return [p for p in directory.iterdir() if p.name.startswith(".")]


@pytest.fixture
def publisher(files, clock) -> AtomicPublisher:
    """Publisher with no pause between rename retries."""
    return AtomicPublisher(files, retry_seconds=120, retry_interval_seconds=0, clock=clock)


@pytest.fixture
def target(cache_dir: Path) -> Path:
    """Final path of the archive under test."""
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir / "acme.tool-1.0.0"


class TestPublish:
    """Tests for the happy path and idempotence."""

    @pytest.mark.asyncio
    async def test_publish_writes_target(self, publisher: AtomicPublisher, target: Path) -> None:
        """Test the produced bytes end up at the target, staging removed."""

        async def produce(staging: Path) -> None:
            assert staging.parent == target.parent
            assert staging.name.startswith(".")
            staging.write_bytes(b"archive")

        outcome = await publisher.publish(target, produce)

        assert outcome is PublishOutcome.PUBLISHED
        assert target.read_bytes() == b"archive"
        assert _staging_files(target.parent) == []

    @pytest.mark.asyncio
    async def test_existing_target_skips_producer(
        self,
        publisher: AtomicPublisher,
        target: Path,
    ) -> None:
        """Test an existing target is reused without producing."""
        target.write_bytes(b"cached")
        calls: list[Path] = []

        async def produce(staging: Path) -> None:
            calls.append(staging)

        outcome = await publisher.publish(target, produce)

        assert outcome is PublishOutcome.ALREADY_CACHED
        assert calls == []
        assert target.read_bytes() == b"cached"

    @pytest.mark.asyncio
    async def test_target_not_visible_while_producing(
        self,
        publisher: AtomicPublisher,
        target: Path,
    ) -> None:
        """Test the final name only appears after the producer finishes."""

        async def produce(staging: Path) -> None:
            staging.write_bytes(b"partial")
            assert not target.exists()
            with staging.open("ab") as f:
                f.write(b"-complete")

        await publisher.publish(target, produce)

        assert target.read_bytes() == b"partial-complete"


class TestRenameRetry:
    """Tests for retrying transient rename failures."""

    @pytest.mark.asyncio
    async def test_transient_failures_are_retried(
        self,
        publisher: AtomicPublisher,
        files,
        target: Path,
        downloader,
    ) -> None:
        """Test a rename succeeding after transient failures publishes normally."""
        files.rename_failures = [
            RenameErrorKind.TRANSIENT_PERMISSION,
            RenameErrorKind.TRANSIENT_PERMISSION,
        ]

        outcome = await publisher.publish(target, lambda staging: downloader(None, staging))

        assert outcome is PublishOutcome.PUBLISHED
        assert len(files.renames) == 3
        assert target.exists()

    @pytest.mark.asyncio
    async def test_retry_stops_after_deadline(
        self,
        publisher: AtomicPublisher,
        files,
        clock,
        target: Path,
        downloader,
    ) -> None:
        """Test a persistent transient failure surfaces once the window closes."""
        files.fail_rename_forever = RenameErrorKind.TRANSIENT_PERMISSION
        files.on_rename_failure = lambda: clock.advance(50)

        with pytest.raises(RenameRetryExhaustedError) as exc_info:
            await publisher.publish(target, lambda staging: downloader(None, staging))

        # Deadline is 120s after the first attempt: fails at t=50, 100, 150
        assert exc_info.value.attempts == 3
        assert exc_info.value.kind is RenameErrorKind.TRANSIENT_PERMISSION
        assert not target.exists()
        assert _staging_files(target.parent) == []

    @pytest.mark.asyncio
    async def test_retry_without_clock_progress_is_bounded_by_real_time(
        self,
        files,
        target: Path,
        downloader,
    ) -> None:
        """Test the default monotonic clock also ends the retry loop."""
        publisher = AtomicPublisher(files, retry_seconds=0.05, retry_interval_seconds=0.01)
        files.fail_rename_forever = RenameErrorKind.TRANSIENT_PERMISSION

        with pytest.raises(RenameRetryExhaustedError):
            await publisher.publish(target, lambda staging: downloader(None, staging))

        assert len(files.renames) >= 2


class TestRenameConflicts:
    """Tests for failures other than transient permission errors."""

    @pytest.mark.asyncio
    async def test_non_empty_conflict_is_success(
        self,
        publisher: AtomicPublisher,
        files,
        target: Path,
        downloader,
    ) -> None:
        """Test losing the rename race to another writer does not raise."""
        files.rename_failures = [RenameErrorKind.NON_EMPTY_CONFLICT]

        outcome = await publisher.publish(target, lambda staging: downloader(None, staging))

        assert outcome is PublishOutcome.PUBLISHED_CONCURRENTLY
        assert len(files.renames) == 1
        assert _staging_files(target.parent) == []

    @pytest.mark.asyncio
    async def test_other_rename_failure_propagates(
        self,
        publisher: AtomicPublisher,
        files,
        target: Path,
        downloader,
    ) -> None:
        """Test other rename failures raise after discarding the staging file."""
        files.rename_failures = [RenameErrorKind.OTHER]

        with pytest.raises(RenameError) as exc_info:
            await publisher.publish(target, lambda staging: downloader(None, staging))

        assert exc_info.value.kind is RenameErrorKind.OTHER
        assert len(files.renames) == 1
        assert _staging_files(target.parent) == []
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_staging_cleanup_failure_is_swallowed(
        self,
        publisher: AtomicPublisher,
        files,
        target: Path,
    ) -> None:
        """Test a failed staging cleanup does not mask the rename error."""
        files.rename_failures = [RenameErrorKind.OTHER]
        produced: list[Path] = []

        async def produce(staging: Path) -> None:
            staging.write_bytes(b"archive")
            produced.append(staging)
            files.delete_failures.add(staging)

        with pytest.raises(RenameError):
            await publisher.publish(target, produce)

        assert files.deletes == produced


class TestProducerFailure:
    """Tests for download failures."""

    @pytest.mark.asyncio
    async def test_producer_error_propagates_unchanged(
        self,
        publisher: AtomicPublisher,
        target: Path,
    ) -> None:
        """Test the producer's exception reaches the caller as-is."""

        class NetworkDown(Exception):
            pass

        async def produce(staging: Path) -> None:
            staging.write_bytes(b"half an arch")
            raise NetworkDown("connection reset")

        with pytest.raises(NetworkDown, match="connection reset"):
            await publisher.publish(target, produce)

        assert not target.exists()
        assert _staging_files(target.parent) == []

    @pytest.mark.asyncio
    async def test_cancelled_download_discards_staging(
        self,
        publisher: AtomicPublisher,
        target: Path,
    ) -> None:
        """Test cancelling a publish mid-download leaves no staging file."""
        started = asyncio.Event()

        async def produce(staging: Path) -> None:
            staging.write_bytes(b"half an arch")
            started.set()
            await asyncio.Event().wait()

        task = asyncio.create_task(publisher.publish(target, produce))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert not target.exists()
        assert _staging_files(target.parent) == []

    @pytest.mark.asyncio
    async def test_timeout_discards_staging(
        self,
        publisher: AtomicPublisher,
        target: Path,
    ) -> None:
        """Test asyncio.wait_for() around a stalled download cleans up."""

        async def produce(staging: Path) -> None:
            staging.write_bytes(b"half an arch")
            await asyncio.sleep(60)

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(publisher.publish(target, produce), timeout=0.05)

        assert _staging_files(target.parent) == []

    @pytest.mark.asyncio
    async def test_kind_appears_in_logs(
        self,
        publisher: AtomicPublisher,
        files,
        target: Path,
        downloader,
    ) -> None:
        """Test the conflict log event names the file kind."""
        files.rename_failures = [RenameErrorKind.NON_EMPTY_CONFLICT]

        with capture_logs() as logs:
            await publisher.publish(
                target,
                lambda staging: downloader(None, staging),
                kind="signature archive",
            )

        conflicts = [log for log in logs if log["event"] == "cache_publish_conflict"]
        assert len(conflicts) == 1
        assert conflicts[0]["kind"] == "signature archive"
        assert conflicts[0]["log_level"] == "info"
