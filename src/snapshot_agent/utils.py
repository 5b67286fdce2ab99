#!/usr/bin/env python3
"""
Utility Functions for Snapshot Capture Agent

This module contains utility functions for:
- Sleep/wake schedule gating
- Content type sniffing
- Logging setup
"""

import logging
import sys
from datetime import datetime


# ============================================================================
# Sleep/Wake Schedule
# ============================================================================

def is_awake(now: datetime, sleep_hour: int, wake_hour: int) -> bool:
    """
    Check whether capture is enabled at the given time.

    Only the hour component of `now` is compared. The hour equal to
    sleep_hour is always asleep and the hour equal to wake_hour is always
    awake. Equal sleep and wake hours disable the schedule.

    Examples:
        sleep 22, wake 7: awake from 07:00 until 21:59
        sleep 1, wake 7: asleep from 01:00 until 06:59

    Args:
        now: Current local time
        sleep_hour: Hour (0-23) at which capture pauses
        wake_hour: Hour (0-23) at which capture resumes

    Returns:
        True if a snapshot should be taken, False otherwise
    """
    if sleep_hour == wake_hour:
        return True

    hour = now.hour

    if sleep_hour > wake_hour:
        return wake_hour <= hour < sleep_hour

    return hour < sleep_hour or hour >= wake_hour


# ============================================================================
# Content Type Sniffing
# ============================================================================

# (signature, offset, content type)
_IMAGE_SIGNATURES = (
    (b"\xff\xd8\xff", 0, "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", 0, "image/png"),
    (b"GIF87a", 0, "image/gif"),
    (b"GIF89a", 0, "image/gif"),
    (b"BM", 0, "image/bmp"),
    (b"\x00\x00\x01\x00", 0, "image/x-icon"),
    (b"\x00\x00\x02\x00", 0, "image/x-icon"),
)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def detect_content_type(data: bytes) -> str:
    """
    Determine the MIME type of image bytes from their leading signature.

    The bytes are inspected directly; headers supplied by the image source
    are never trusted.

    Args:
        data: Raw or encoded image bytes

    Returns:
        MIME type string, or application/octet-stream if unrecognized
    """
    for signature, offset, content_type in _IMAGE_SIGNATURES:
        if data[offset:offset + len(signature)] == signature:
            return content_type

    # RIFF container with a WEBP form type
    if data[:4] == b"RIFF" and data[8:14] == b"WEBPVP":
        return "image/webp"

    return DEFAULT_CONTENT_TYPE


# ============================================================================
# Logging Setup
# ============================================================================

def setup_logging(log_level: str = "INFO"):
    """
    Configure structured logging for the service.

    Logs are written to stdout in a structured format suitable
    for systemd journald.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ],
    )

    logging.info("Logging initialized at %s level", log_level)
