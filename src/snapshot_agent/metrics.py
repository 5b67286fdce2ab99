#!/usr/bin/env python3
"""
Metrics Collection for Snapshot Capture Agent

In-process counters describing what the capture loop has done. There is
no HTTP endpoint; the collector is summarized in the log on shutdown.
"""

import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, Optional


class MetricsCollector:
    """
    Thread-safe metrics collector for capture statistics.

    Tracks:
    - Capture cycles started, succeeded, failed, skipped while asleep
    - Failures per stage
    - Snapshots stored locally and uploaded
    - Service uptime
    """

    def __init__(self):
        """Initialize metrics with zero values."""
        self._lock = threading.Lock()
        self.start_time = time.time()

        # Counters
        self.cycles_total = 0
        self.cycles_failed_total = 0
        self.cycles_skipped_total = 0
        self.fetch_failures_total = 0
        self.crop_failures_total = 0
        self.stored_locally_total = 0
        self.local_write_failures_total = 0
        self.uploaded_total = 0
        self.upload_failures_total = 0

        # State
        self.last_capture_time: Optional[str] = None
        self.last_successful_upload: Optional[str] = None

    def increment_cycles(self):
        """Increment capture cycles counter."""
        with self._lock:
            self.cycles_total += 1
            self.last_capture_time = datetime.now().isoformat()

    def increment_cycles_failed(self):
        with self._lock:
            self.cycles_failed_total += 1

    def increment_skipped(self):
        """Increment ticks skipped by the sleep/wake schedule."""
        with self._lock:
            self.cycles_skipped_total += 1

    def increment_fetch_failures(self):
        with self._lock:
            self.fetch_failures_total += 1

    def increment_crop_failures(self):
        with self._lock:
            self.crop_failures_total += 1

    def increment_stored_locally(self):
        """Increment snapshots stored locally counter."""
        with self._lock:
            self.stored_locally_total += 1

    def increment_local_write_failures(self):
        with self._lock:
            self.local_write_failures_total += 1

    def increment_uploaded(self):
        """Increment snapshots uploaded counter."""
        with self._lock:
            self.uploaded_total += 1
            self.last_successful_upload = datetime.now().isoformat()

    def increment_upload_failures(self):
        with self._lock:
            self.upload_failures_total += 1

    def get_uptime_seconds(self) -> float:
        """Get service uptime in seconds."""
        return time.time() - self.start_time

    def get_snapshot(self) -> Dict[str, Any]:
        """
        Get thread-safe snapshot of all metrics.

        Returns:
            Dictionary containing all current metrics
        """
        with self._lock:
            return {
                'uptime_seconds': self.get_uptime_seconds(),
                'cycles_total': self.cycles_total,
                'cycles_failed_total': self.cycles_failed_total,
                'cycles_skipped_total': self.cycles_skipped_total,
                'fetch_failures_total': self.fetch_failures_total,
                'crop_failures_total': self.crop_failures_total,
                'stored_locally_total': self.stored_locally_total,
                'local_write_failures_total': self.local_write_failures_total,
                'uploaded_total': self.uploaded_total,
                'upload_failures_total': self.upload_failures_total,
                'last_capture_time': self.last_capture_time,
                'last_successful_upload': self.last_successful_upload,
            }

    def log_summary(self):
        """Write the current counters to the log."""
        snapshot = self.get_snapshot()
        logging.info(
            "Capture summary: %d cycles (%d failed, %d skipped), "
            "%d stored locally, %d uploaded, uptime %.0f seconds",
            snapshot['cycles_total'],
            snapshot['cycles_failed_total'],
            snapshot['cycles_skipped_total'],
            snapshot['stored_locally_total'],
            snapshot['uploaded_total'],
            snapshot['uptime_seconds'],
        )
