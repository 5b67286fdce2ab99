#!/usr/bin/env python3
"""
Error Taxonomy for Snapshot Capture Agent

Every failure the agent can report carries a machine-readable error code
and an optional context dictionary, so a single log line identifies the
stage that failed. ConfigError is the only fatal kind; all others are
recovered at the capture cycle boundary.
"""

from typing import Any, ClassVar, Dict, Optional


class SnapshotError(Exception):
    """
    Base exception for all snapshot agent errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable error code
        context: Additional debugging information
    """

    error_code: ClassVar[str] = "SNAPSHOT_ERROR"

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_log_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for logging.

        Returns:
            Dictionary with error code, message, and context
        """
        return {
            'error_code': self.error_code,
            'message': self.message,
            'context': self.context,
            'exception_type': self.__class__.__name__,
        }


class ConfigError(SnapshotError):
    """Invalid startup configuration. Terminates the process."""

    error_code: ClassVar[str] = "CONFIG_ERROR"


class FetchError(SnapshotError):
    """Image download failed (transport, status, or stream error)."""

    error_code: ClassVar[str] = "FETCH_FAILED"


class DecodeError(SnapshotError):
    """Fetched bytes could not be decoded as an image."""

    error_code: ClassVar[str] = "DECODE_FAILED"


class CropOutOfBoundsError(SnapshotError):
    """Crop rectangle is empty or lies outside the decoded image."""

    error_code: ClassVar[str] = "CROP_OUT_OF_BOUNDS"


class EncodeError(SnapshotError):
    """Cropped image could not be re-encoded as JPEG."""

    error_code: ClassVar[str] = "ENCODE_FAILED"


class LocalWriteError(SnapshotError):
    """Snapshot could not be written to the local directory."""

    error_code: ClassVar[str] = "LOCAL_WRITE_FAILED"


class RemoteUploadError(SnapshotError):
    """Snapshot could not be uploaded to object storage."""

    error_code: ClassVar[str] = "REMOTE_UPLOAD_FAILED"
