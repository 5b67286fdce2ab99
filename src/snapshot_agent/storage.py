#!/usr/bin/env python3
"""
Snapshot Storage for Snapshot Capture Agent

This module persists finished snapshots. LocalStorage writes them to a
directory on disk; S3Uploader puts them into an S3 (or S3-compatible)
bucket. Both name the snapshot after its capture time so files and keys
sort chronologically.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from snapshot_agent.exceptions import ConfigError, LocalWriteError, RemoteUploadError
from snapshot_agent.utils import detect_content_type


SNAPSHOT_EXTENSION = ".jpeg"
FILE_MODE = 0o644


def snapshot_name(timestamp: datetime) -> str:
    """
    Build the RFC 3339 file name / object key for a snapshot.

    Args:
        timestamp: Timezone-aware capture time

    Returns:
        Name such as 2026-10-19T10:20:00+02:00.jpeg
    """
    return timestamp.isoformat(timespec='seconds') + SNAPSHOT_EXTENSION


@dataclass(frozen=True)
class SnapshotArtifact:
    """A finished snapshot ready to hand to the configured sinks."""

    data: bytes
    timestamp: datetime

    @classmethod
    def create(cls, data: bytes, timestamp: Optional[datetime] = None) -> 'SnapshotArtifact':
        """Stamp `data` with the current local time (timezone-aware)."""
        if timestamp is None:
            timestamp = datetime.now().astimezone()
        return cls(data=data, timestamp=timestamp)

    @property
    def filename(self) -> str:
        return snapshot_name(self.timestamp)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class LocalStorage:
    """Writes snapshots into a local directory."""

    def __init__(self, directory: str):
        """
        Initialize local storage.

        Args:
            directory: Output directory; created if it doesn't exist

        Raises:
            ConfigError: If the directory cannot be created
        """
        self.storage_path = Path(directory)
        self._ensure_storage_directory()

    def _ensure_storage_directory(self):
        """Create storage directory if it doesn't exist."""
        try:
            self.storage_path.mkdir(parents=True, exist_ok=True)
            logging.info("Storage directory: %s", self.storage_path)
        except OSError as e:
            raise ConfigError(
                f"Failed to create storage directory: {e}",
                context={'directory': str(self.storage_path)},
            ) from e

    def store(self, artifact: SnapshotArtifact) -> Path:
        """
        Write a snapshot to disk.

        Args:
            artifact: Snapshot to store

        Returns:
            Path of the written file

        Raises:
            LocalWriteError: If the file cannot be written
        """
        filepath = self.storage_path / artifact.filename
        # Written under a temporary name, then renamed, so a failed write
        # never leaves a partial snapshot behind.
        tmp_path = self.storage_path / ('.' + artifact.filename + '.tmp')

        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
            with os.fdopen(fd, 'wb') as f:
                f.write(artifact.data)
            os.replace(tmp_path, filepath)
        except OSError as e:
            try:
                tmp_path.unlink()
            except OSError:
                pass
            raise LocalWriteError(
                str(e),
                context={'path': str(filepath)},
            ) from e

        logging.info(
            "Snapshot stored locally: %s (%.2f KB)",
            filepath, artifact.size_bytes / 1024
        )
        return filepath


class S3Uploader:
    """
    Uploads snapshots to an S3 bucket.

    Objects are private, served as attachments, and encrypted at rest
    with AES-256.
    """

    def __init__(self, bucket_name: str, region: str,
                 endpoint_url: Optional[str] = None, client=None):
        """
        Initialize the uploader and its S3 client.

        Args:
            bucket_name: Bucket name (not the ARN)
            region: AWS region of the bucket
            endpoint_url: Optional endpoint for S3-compatible stores
            client: Pre-built boto3 S3 client, used instead of creating one

        Raises:
            ConfigError: If the AWS session or client cannot be created
        """
        self.bucket_name = bucket_name
        self.region = region

        if client is not None:
            self.s3_client = client
            return

        logging.info("Initializing S3 client (region=%s)", region)
        try:
            session = boto3.Session(region_name=region)
            self.s3_client = session.client('s3', endpoint_url=endpoint_url)
        except (BotoCoreError, ValueError) as e:
            raise ConfigError(
                f"Error initializing AWS session: {e}",
                context={'region': region, 'endpoint_url': endpoint_url},
            ) from e

    def upload(self, artifact: SnapshotArtifact) -> str:
        """
        Upload a snapshot.

        Args:
            artifact: Snapshot to upload

        Returns:
            Object key the snapshot was stored under

        Raises:
            RemoteUploadError: If the put fails
        """
        key = artifact.filename

        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                ACL='private',
                Body=artifact.data,
                ContentLength=artifact.size_bytes,
                ContentType=detect_content_type(artifact.data),
                ContentDisposition='attachment',
                ServerSideEncryption='AES256',
            )
        except (BotoCoreError, ClientError) as e:
            raise RemoteUploadError(
                str(e),
                context={'bucket': self.bucket_name, 'key': key},
            ) from e

        logging.debug("Uploaded s3://%s/%s", self.bucket_name, key)
        return key
