"""
Progress reporting for repository scans.

Tracks files processed with rate and ETA calculation.
"""

import time
from dataclasses import dataclass
from typing import Optional, Callable


@dataclass
class ProgressEvent:
    """
    Event emitted after each file of a scan.

    Attributes:
        current: Number of files processed so far
        total: Number of files known so far (grows while the scan is lazy)
        filename: File just processed
        status: Outcome for the file ("indexed", "skipped", "failed")
        elapsed_seconds: Time elapsed since start
        eta_seconds: Estimated time remaining (None if unknown)
        files_per_second: Processing rate
    """
    current: int
    total: int
    filename: str
    status: str
    elapsed_seconds: float
    eta_seconds: Optional[float] = None
    files_per_second: float = 0.0


class ProgressReporter:
    """Counts processed files and emits ProgressEvents via a callback."""

    def __init__(self, total: int = 0, callback: Optional[Callable[[ProgressEvent], None]] = None):
        """
        Args:
            total: Expected number of files (0 if unknown)
            callback: Optional callback receiving each ProgressEvent
        """
        self.total = total
        self.current = 0
        self.start_time = time.time()
        self.callback = callback

    def update(self, filename: str, status: str) -> ProgressEvent:
        """
        Record one processed file.

        Args:
            filename: File just processed
            status: Outcome for the file

        Returns:
            ProgressEvent with current statistics
        """
        self.current += 1
        self.total = max(self.total, self.current)
        elapsed = time.time() - self.start_time

        files_per_second = self.current / elapsed if elapsed > 0 else 0.0
        remaining = self.total - self.current
        eta = remaining / files_per_second if files_per_second > 0 else None

        event = ProgressEvent(
            current=self.current,
            total=self.total,
            filename=filename,
            status=status,
            elapsed_seconds=elapsed,
            eta_seconds=eta,
            files_per_second=files_per_second,
        )

        if self.callback:
            self.callback(event)

        return event

    @staticmethod
    def format_eta(seconds: Optional[float]) -> str:
        """
        Format ETA in human-readable form.

        Returns:
            Formatted string like "2m 30s", "1h 15m", or "unknown"
        """
        if seconds is None:
            return "unknown"

        minutes, secs = divmod(int(seconds), 60)
        hours, minutes = divmod(minutes, 60)

        if hours > 0:
            return f"{hours}h {minutes}m"
        elif minutes > 0:
            return f"{minutes}m {secs}s"
        else:
            return f"{secs}s"
