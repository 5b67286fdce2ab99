#!/usr/bin/env python3
"""
Snapshot Pipeline for Snapshot Capture Agent

Runs one capture cycle: fetch, optional crop, then each configured sink.
A failed fetch or crop abandons the cycle. Sinks are independent, so a
failed local write never prevents an upload and vice versa. Nothing
raised inside a cycle escapes process_snapshot().
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from snapshot_agent.capture import ImageCropper, ImageFetcher
from snapshot_agent.config import Config
from snapshot_agent.exceptions import SnapshotError
from snapshot_agent.metrics import MetricsCollector
from snapshot_agent.storage import LocalStorage, S3Uploader, SnapshotArtifact


class Stage(str, Enum):
    """Capture cycle stages, in order."""

    IDLE = "idle"
    FETCHING = "fetching"
    CROPPING = "cropping"
    SINKING = "sinking"


@dataclass
class CycleResult:
    """Outcome of one capture cycle."""

    stage: Stage = Stage.IDLE
    completed: bool = False
    filename: Optional[str] = None
    local_path: Optional[Path] = None
    remote_key: Optional[str] = None
    errors: List[SnapshotError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.completed and not self.errors


class SnapshotPipeline:
    """
    Sequences fetch, crop, and store for a single snapshot.

    Coordinates:
    - ImageFetcher (always)
    - ImageCropper (only when a crop rectangle is configured)
    - LocalStorage and S3Uploader (each only when configured)
    """

    def __init__(self, config: Config, metrics: Optional[MetricsCollector] = None,
                 fetcher: Optional[ImageFetcher] = None,
                 cropper: Optional[ImageCropper] = None,
                 local_storage: Optional[LocalStorage] = None,
                 uploader: Optional[S3Uploader] = None):
        """
        Initialize the pipeline.

        Sinks are built from the configuration unless passed in.

        Args:
            config: Resolved agent configuration
            metrics: MetricsCollector to update, or a private one
            fetcher: ImageFetcher override
            cropper: ImageCropper override
            local_storage: LocalStorage override
            uploader: S3Uploader override

        Raises:
            ConfigError: If a configured sink cannot be initialized
        """
        self.config = config
        self.metrics = metrics or MetricsCollector()
        self.fetcher = fetcher or ImageFetcher(
            timeout_sec=config.request_timeout_sec,
            verify_status=config.verify_status,
        )
        self.cropper = cropper or ImageCropper(jpeg_quality=config.jpeg_quality)

        self.local_storage = local_storage
        if self.local_storage is None and config.directory:
            self.local_storage = LocalStorage(config.directory)

        self.uploader = uploader
        if self.uploader is None and config.s3_bucket:
            self.uploader = S3Uploader(
                config.s3_bucket,
                config.s3_region,
                endpoint_url=config.s3_endpoint_url,
            )

    def process_snapshot(self) -> CycleResult:
        """
        Run one capture cycle.

        Returns:
            CycleResult describing how far the cycle got and what failed
        """
        result = CycleResult()
        self.metrics.increment_cycles()

        try:
            self._run(result)
        except Exception as e:
            # Unexpected failure; the loop must keep running.
            logging.error(
                "Snapshot cycle failed during %s: %s", result.stage.value, e,
                exc_info=True
            )
            result.completed = False

        if not result.ok:
            self.metrics.increment_cycles_failed()

        result.stage = Stage.IDLE
        return result

    def _run(self, result: CycleResult):
        result.stage = Stage.FETCHING
        try:
            data = self.fetcher.fetch(self.config.image_url)
        except SnapshotError as e:
            logging.error("Download failed. %s", e.to_log_dict())
            self.metrics.increment_fetch_failures()
            result.errors.append(e)
            return

        if self.config.rect is not None:
            result.stage = Stage.CROPPING
            try:
                data = self.cropper.crop(data, self.config.rect)
            except SnapshotError as e:
                logging.error("Crop failed. %s", e.to_log_dict())
                self.metrics.increment_crop_failures()
                result.errors.append(e)
                return

        result.stage = Stage.SINKING
        artifact = SnapshotArtifact.create(data)
        result.filename = artifact.filename

        if self.local_storage is not None:
            try:
                result.local_path = self.local_storage.store(artifact)
                self.metrics.increment_stored_locally()
            except SnapshotError as e:
                logging.error("Error saving image locally. %s", e.to_log_dict())
                self.metrics.increment_local_write_failures()
                result.errors.append(e)

        if self.uploader is not None:
            try:
                result.remote_key = self.uploader.upload(artifact)
                self.metrics.increment_uploaded()
                logging.info("Upload successful: %s", result.remote_key)
            except SnapshotError as e:
                logging.error("Error uploading image to S3. %s", e.to_log_dict())
                self.metrics.increment_upload_failures()
                result.errors.append(e)

        result.completed = True
