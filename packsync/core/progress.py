"""Cancellation and progress reporting primitives.

Long-running operations accept a ``CancellationToken`` and check it at each
natural suspension point. Progress is reported to a ``ProgressReporter``
which forwards (fraction, label) pairs to an optional sink. The sink is
never required for correctness.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from enum import Enum

from packsync.core.errors import SyncCancelled

ProgressSink = Callable[[float | None, str | None], None]
"""Receives a fraction in 0..1 (None when indeterminate) and a phase label."""


class SyncPhase(Enum):
    """Phases of a single sync run."""

    idle = "idle"
    fetch_manifest = "fetch_manifest"
    load_state = "load_state"
    rebuild_base = "rebuild_base"
    skip_rebuild = "skip_rebuild"
    apply_patches = "apply_patches"
    install_optional_extension = "install_optional_extension"
    persist_state = "persist_state"
    cleanup = "cleanup"
    done = "done"
    aborted = "aborted"


class CancellationToken:
    """Thread-safe cooperative cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds, waking early on cancellation.

        Returns:
            True if cancellation was requested
        """
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        """Raise SyncCancelled if cancellation has been requested."""
        if self._event.is_set():
            raise SyncCancelled("Operation cancelled")


class ProgressReporter:
    """Serializes progress updates from all phases into a single sink.

    Keeps the last label so fraction-only updates (such as byte counts
    from a download) are surfaced with the label of the current step.

    Args:
        sink: Optional callable receiving (fraction, label)
    """

    def __init__(self, sink: ProgressSink | None = None) -> None:
        self._sink = sink
        self._lock = threading.Lock()
        self.phase = SyncPhase.idle
        self.label: str | None = None
        self.fraction: float | None = None

    def enter_phase(self, phase: SyncPhase) -> None:
        with self._lock:
            self.phase = phase

    def report(self, fraction: float | None = None, label: str | None = None) -> None:
        """Report progress.

        Args:
            fraction: Progress in 0..1, or None for indeterminate
            label: Human-readable step label; keeps the previous one if None
        """
        if fraction is not None:
            fraction = min(max(fraction, 0.0), 1.0)

        with self._lock:
            if label is not None:
                self.label = label
            self.fraction = fraction
            if self._sink is not None:
                self._sink(fraction, self.label)

    def report_label(self, label: str) -> None:
        """Update the label while keeping the current fraction."""
        with self._lock:
            self.label = label
            if self._sink is not None:
                self._sink(self.fraction, label)
