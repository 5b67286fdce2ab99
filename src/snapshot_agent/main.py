#!/usr/bin/env python3
"""
Snapshot Capture Agent - Main Entry Point

This module implements the snapshot capture daemon. It handles:
- A warm-start capture as soon as the agent starts
- Periodic capture on a fixed interval (ten minutes by default)
- Pausing capture between the configured sleep and wake hours
- Graceful shutdown on SIGINT/SIGTERM
"""

import argparse
import logging
import signal
import sys
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from snapshot_agent import __version__
from snapshot_agent.config import Config
from snapshot_agent.exceptions import ConfigError
from snapshot_agent.metrics import MetricsCollector
from snapshot_agent.pipeline import SnapshotPipeline
from snapshot_agent.utils import is_awake, setup_logging


# ============================================================================
# Main Capture Loop
# ============================================================================

class SnapshotAgent:
    """
    Main capture agent driving the snapshot pipeline on a timer.

    Cycles run strictly one after another on the calling thread. stop()
    may be called from any thread (or a signal handler); it only stops
    further cycles from being scheduled.
    """

    def __init__(self, config: Config, pipeline: Optional[SnapshotPipeline] = None,
                 metrics: Optional[MetricsCollector] = None,
                 clock: Callable[[], datetime] = datetime.now):
        """
        Initialize the capture agent.

        Args:
            config: Configuration object
            pipeline: SnapshotPipeline override; built from config if omitted
            metrics: MetricsCollector shared with the pipeline
            clock: Returns the local wall-clock time used by the schedule
        """
        self.config = config
        self.metrics = metrics or MetricsCollector()
        self.pipeline = pipeline or SnapshotPipeline(config, metrics=self.metrics)
        self.clock = clock
        self._shutdown_event = threading.Event()

    @property
    def running(self) -> bool:
        return not self._shutdown_event.is_set()

    def start(self):
        """
        Run the capture loop until stop() is called.

        The first snapshot is taken immediately regardless of the schedule.
        After that a snapshot is taken on every interval tick while awake.
        Ticks missed because a cycle overran are dropped, not queued.
        """
        interval = self.config.capture_interval_sec

        logging.info("Running...")
        self.pipeline.process_snapshot()

        next_tick = time.monotonic() + interval
        while not self._shutdown_event.wait(max(0.0, next_tick - time.monotonic())):
            now = time.monotonic()
            if now - next_tick >= interval:
                skipped = int((now - next_tick) // interval)
                logging.warning("Capture overran, dropping %d tick(s)", skipped)
                next_tick += skipped * interval
            next_tick += interval

            if not is_awake(self.clock(), self.config.sleep_hour, self.config.wake_hour):
                logging.debug("Outside capture hours, skipping snapshot")
                self.metrics.increment_skipped()
                continue

            self.pipeline.process_snapshot()

        logging.info("Capture loop stopped")

    def stop(self):
        """Stop the capture agent."""
        logging.info("Stopping capture agent...")
        self._shutdown_event.set()


# ============================================================================
# Signal Handling
# ============================================================================

agent: Optional[SnapshotAgent] = None


def signal_handler(signum, frame):
    """
    Handle shutdown signals gracefully.

    Ensures clean shutdown on SIGINT and SIGTERM.
    """
    logging.info("Received signal %d, initiating graceful shutdown...", signum)
    if agent is not None:
        agent.stop()


# ============================================================================
# Main Entry Point
# ============================================================================

def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Args:
        argv: Argument list (defaults to sys.argv[1:])

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        prog='snapshot-agent',
        description='Snapshot Capture Agent',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
        Examples:
        # Save a cropped snapshot locally every ten minutes
        snapshot-agent --image-url http://camera.local/snap.jpg --dir ./snapshots --rect 0,0,640,480

        # Upload to S3, pausing between 22:00 and 07:00
        snapshot-agent --image-url http://camera.local/snap.jpg --s3-bucket my-bucket \\
            --sleep-hour 22 --wake-hour 7

        # Run from a configuration file
        snapshot-agent --config /etc/snapshot-agent/config.yaml
        """
    )

    parser.add_argument('--image-url', type=str, default=None,
                        help='The URL of the image to fetch')
    parser.add_argument('--s3-region', type=str, default=None,
                        help='The AWS region to use (default: us-east-1)')
    parser.add_argument('--s3-bucket', type=str, default=None,
                        help='The S3 bucket name (not the ARN) to upload snapshots to')
    parser.add_argument('--s3-endpoint-url', type=str, default=None,
                        help='Endpoint URL for S3-compatible object storage')
    parser.add_argument('--dir', dest='directory', type=str, default=None,
                        help='The local directory to store captured images in')
    parser.add_argument('--rect', type=str, default=None,
                        help='Crop rectangle in the form left,top,right,bottom')
    parser.add_argument('--sleep-hour', type=int, default=None,
                        help='The hour to pause image capture (0-23)')
    parser.add_argument('--wake-hour', type=int, default=None,
                        help='The hour to resume image capture (0-23)')
    parser.add_argument('--interval', type=float, default=None,
                        help='Seconds between captures (default: 600)')
    parser.add_argument('--timeout', type=float, default=None,
                        help='HTTP request timeout in seconds (default: 30)')
    parser.add_argument('--jpeg-quality', type=int, default=None,
                        help='JPEG quality for cropped snapshots (default: 75)')
    parser.add_argument('--no-verify-status', action='store_true',
                        help='Accept non-2xx HTTP responses from the image source')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to YAML configuration file')
    parser.add_argument(
        '--log-level',
        type=str,
        default='INFO',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main entry point for the snapshot capture agent.

    Workflow:
    1. Parse arguments
    2. Setup logging
    3. Resolve configuration
    4. Create the pipeline and its sinks
    5. Run the capture loop until a shutdown signal arrives

    Returns:
        Process exit code
    """
    global agent

    args = parse_arguments(argv)
    setup_logging(args.log_level)

    logging.info("=" * 70)
    logging.info("Snapshot Capture Agent v%s", __version__)
    logging.info("=" * 70)

    try:
        config = Config.from_args(args)
        logging.info(
            "Source: %s, interval: %.0f seconds, crop: %s",
            config.image_url, config.capture_interval_sec, config.rect or "none"
        )
        if config.schedule_enabled:
            logging.info(
                "Capture paused from %02d:00 until %02d:00",
                config.sleep_hour, config.wake_hour
            )

        metrics = MetricsCollector()
        pipeline = SnapshotPipeline(config, metrics=metrics)

        if pipeline.local_storage is None and pipeline.uploader is None:
            logging.warning("No --dir or --s3-bucket given; snapshots will be discarded")

        agent = SnapshotAgent(config, pipeline=pipeline, metrics=metrics)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        agent.start()
        metrics.log_summary()
        logging.info("Shutdown complete")
        return 0

    except ConfigError as e:
        logging.error("Configuration error: %s", e.to_log_dict())
        return 1
    except Exception as e:
        logging.error("Fatal error: %s", e, exc_info=True)
        return 1
    finally:
        agent = None


if __name__ == '__main__':
    sys.exit(main())
