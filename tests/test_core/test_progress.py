"""Tests for packsync.core.progress module."""

import threading

import pytest

from packsync.core.errors import PackSyncError, SyncCancelled
from packsync.core.progress import CancellationToken, ProgressReporter, SyncPhase


class TestCancellationToken:
    """Test CancellationToken class."""

    def test_not_cancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        with pytest.raises(SyncCancelled):
            token.raise_if_cancelled()

    def test_wait_times_out(self):
        assert CancellationToken().wait(0.01) is False

    def test_wait_wakes_on_cancel(self):
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()
        try:
            assert token.wait(30) is True
        finally:
            timer.cancel()

    def test_cancellation_is_pack_sync_error(self):
        assert issubclass(SyncCancelled, PackSyncError)


class TestProgressReporter:
    """Test ProgressReporter class."""

    def test_without_sink(self):
        reporter = ProgressReporter()
        reporter.report(0.5, "Working...")
        assert reporter.fraction == 0.5
        assert reporter.label == "Working..."

    def test_label_kept_for_fraction_updates(self):
        events: list[tuple[float | None, str | None]] = []
        reporter = ProgressReporter(lambda fraction, label: events.append((fraction, label)))

        reporter.report(None, "Downloading...")
        reporter.report(0.25)
        reporter.report(0.5)

        assert events == [(None, "Downloading..."), (0.25, "Downloading..."), (0.5, "Downloading...")]

    def test_fraction_clamped(self):
        reporter = ProgressReporter()
        reporter.report(1.5)
        assert reporter.fraction == 1.0
        reporter.report(-1)
        assert reporter.fraction == 0.0

    def test_report_label_keeps_fraction(self):
        events: list[tuple[float | None, str | None]] = []
        reporter = ProgressReporter(lambda fraction, label: events.append((fraction, label)))

        reporter.report(0.3, "First")
        reporter.report_label("Second")

        assert events[-1] == (0.3, "Second")

    def test_enter_phase(self):
        reporter = ProgressReporter()
        assert reporter.phase is SyncPhase.idle
        reporter.enter_phase(SyncPhase.apply_patches)
        assert reporter.phase is SyncPhase.apply_patches
