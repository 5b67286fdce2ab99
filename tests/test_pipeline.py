"""Tests for SnapshotPipeline capture cycles."""

import logging
from unittest.mock import MagicMock, patch

import pytest
import requests

from conftest import decode_image, make_config, make_response
from snapshot_agent.config import CropRect
from snapshot_agent.exceptions import (
    CropOutOfBoundsError,
    FetchError,
    LocalWriteError,
    RemoteUploadError,
)
from snapshot_agent.metrics import MetricsCollector
from snapshot_agent.pipeline import SnapshotPipeline, Stage
from snapshot_agent.storage import LocalStorage, S3Uploader


def _patch_get(**kwargs):
    return patch("snapshot_agent.capture.requests.get", **kwargs)


class TestPipelineInit:
    def test_no_sinks_by_default(self):
        pipeline = SnapshotPipeline(make_config())
        assert pipeline.local_storage is None
        assert pipeline.uploader is None

    def test_builds_configured_sinks(self, tmp_path, s3_bucket):
        pipeline = SnapshotPipeline(make_config(directory=str(tmp_path), s3_bucket="test-bucket"))
        assert isinstance(pipeline.local_storage, LocalStorage)
        assert isinstance(pipeline.uploader, S3Uploader)
        assert pipeline.uploader.bucket_name == "test-bucket"

    def test_fetcher_uses_config(self):
        pipeline = SnapshotPipeline(make_config(request_timeout_sec=7, verify_status=False))
        assert pipeline.fetcher.timeout_sec == 7
        assert pipeline.fetcher.verify_status is False


class TestEndToEnd:
    def test_crop_and_store_locally(self, tmp_path, jpeg_200, caplog):
        config = make_config(rect=CropRect(10, 10, 110, 110), directory=str(tmp_path))
        pipeline = SnapshotPipeline(config)

        with caplog.at_level(logging.INFO), _patch_get(return_value=make_response(jpeg_200)):
            result = pipeline.process_snapshot()

        assert result.ok
        assert result.stage == Stage.IDLE
        files = list(tmp_path.glob("*.jpeg"))
        assert files == [result.local_path]
        assert files[0].name == result.filename
        assert decode_image(files[0].read_bytes()).shape[:2] == (100, 100)
        assert "Snapshot stored locally" in caplog.text

    def test_crop_and_upload(self, jpeg_200, s3_bucket, caplog):
        config = make_config(rect=CropRect(10, 10, 110, 110), s3_bucket="test-bucket")
        pipeline = SnapshotPipeline(config)

        with caplog.at_level(logging.INFO), _patch_get(return_value=make_response(jpeg_200)):
            result = pipeline.process_snapshot()

        assert result.ok
        body = s3_bucket.get_object(Bucket="test-bucket", Key=result.remote_key)["Body"].read()
        assert decode_image(body).shape[:2] == (100, 100)
        assert "Upload successful" in caplog.text

    def test_local_and_remote_share_name(self, tmp_path, jpeg_200, s3_bucket):
        config = make_config(directory=str(tmp_path), s3_bucket="test-bucket")
        pipeline = SnapshotPipeline(config)

        with _patch_get(return_value=make_response(jpeg_200)):
            result = pipeline.process_snapshot()

        assert result.local_path.name == result.remote_key == result.filename

    def test_without_rect_bytes_pass_through(self, tmp_path, jpeg_200):
        pipeline = SnapshotPipeline(make_config(directory=str(tmp_path)))
        pipeline.cropper = MagicMock()

        with _patch_get(return_value=make_response(jpeg_200)):
            result = pipeline.process_snapshot()

        pipeline.cropper.crop.assert_not_called()
        assert result.local_path.read_bytes() == jpeg_200

    def test_unreachable_source(self, tmp_path, caplog):
        metrics = MetricsCollector()
        pipeline = SnapshotPipeline(make_config(directory=str(tmp_path)), metrics=metrics)

        with caplog.at_level(logging.INFO), _patch_get(
                side_effect=requests.exceptions.ConnectionError("unreachable")):
            result = pipeline.process_snapshot()

        assert not result.ok
        assert isinstance(result.errors[0], FetchError)
        assert list(tmp_path.iterdir()) == []
        assert "Download failed" in caplog.text
        assert "FETCH_FAILED" in caplog.text
        assert metrics.fetch_failures_total == 1
        assert metrics.cycles_failed_total == 1


class TestStageFailures:
    def test_fetch_failure_skips_crop_and_sinks(self):
        fetcher = MagicMock()
        fetcher.fetch.side_effect = FetchError("down")
        cropper, local, uploader = MagicMock(), MagicMock(), MagicMock()
        pipeline = SnapshotPipeline(
            make_config(rect=CropRect(0, 0, 10, 10)),
            fetcher=fetcher, cropper=cropper, local_storage=local, uploader=uploader,
        )

        result = pipeline.process_snapshot()

        assert not result.completed
        cropper.crop.assert_not_called()
        local.store.assert_not_called()
        uploader.upload.assert_not_called()

    def test_crop_failure_skips_sinks(self, jpeg_200, caplog):
        fetcher = MagicMock()
        fetcher.fetch.return_value = jpeg_200
        local, uploader = MagicMock(), MagicMock()
        metrics = MetricsCollector()
        pipeline = SnapshotPipeline(
            make_config(rect=CropRect(150, 150, 250, 250)),
            metrics=metrics, fetcher=fetcher, local_storage=local, uploader=uploader,
        )

        with caplog.at_level(logging.ERROR):
            result = pipeline.process_snapshot()

        assert not result.completed
        assert isinstance(result.errors[0], CropOutOfBoundsError)
        local.store.assert_not_called()
        uploader.upload.assert_not_called()
        assert "Crop failed" in caplog.text
        assert metrics.crop_failures_total == 1

    def test_unexpected_exception_contained(self, caplog):
        fetcher = MagicMock()
        fetcher.fetch.side_effect = RuntimeError("bug")
        pipeline = SnapshotPipeline(make_config(), fetcher=fetcher)

        with caplog.at_level(logging.ERROR):
            result = pipeline.process_snapshot()

        assert not result.ok
        assert "Snapshot cycle failed during fetching" in caplog.text


class TestSinkIsolation:
    def test_local_failure_still_uploads(self, tmp_path, jpeg_200, s3_bucket):
        metrics = MetricsCollector()
        pipeline = SnapshotPipeline(
            make_config(directory=str(tmp_path), s3_bucket="test-bucket"), metrics=metrics
        )
        # Directory vanishes after startup so the local write fails
        tmp_path.rmdir()

        with _patch_get(return_value=make_response(jpeg_200)):
            result = pipeline.process_snapshot()

        assert result.completed
        assert [type(e) for e in result.errors] == [LocalWriteError]
        assert result.local_path is None
        body = s3_bucket.get_object(Bucket="test-bucket", Key=result.remote_key)["Body"].read()
        assert body == jpeg_200
        assert metrics.local_write_failures_total == 1
        assert metrics.uploaded_total == 1

    def test_upload_failure_still_stores_locally(self, tmp_path, jpeg_200, s3_bucket):
        metrics = MetricsCollector()
        pipeline = SnapshotPipeline(
            make_config(directory=str(tmp_path), s3_bucket="no-such-bucket"), metrics=metrics
        )

        with _patch_get(return_value=make_response(jpeg_200)):
            result = pipeline.process_snapshot()

        assert result.completed
        assert [type(e) for e in result.errors] == [RemoteUploadError]
        assert result.remote_key is None
        assert result.local_path.read_bytes() == jpeg_200
        assert metrics.stored_locally_total == 1
        assert metrics.upload_failures_total == 1

    def test_both_sinks_fail(self, jpeg_200):
        fetcher = MagicMock()
        fetcher.fetch.return_value = jpeg_200
        local, uploader = MagicMock(), MagicMock()
        local.store.side_effect = LocalWriteError("disk full")
        uploader.upload.side_effect = RemoteUploadError("denied")
        pipeline = SnapshotPipeline(
            make_config(), fetcher=fetcher, local_storage=local, uploader=uploader
        )

        result = pipeline.process_snapshot()

        assert result.completed
        assert len(result.errors) == 2
        local.store.assert_called_once()
        uploader.upload.assert_called_once()

    @pytest.mark.parametrize("cycles", [1, 3])
    def test_cycles_counted(self, jpeg_200, cycles):
        fetcher = MagicMock()
        fetcher.fetch.return_value = jpeg_200
        metrics = MetricsCollector()
        pipeline = SnapshotPipeline(make_config(), metrics=metrics, fetcher=fetcher)

        for _ in range(cycles):
            pipeline.process_snapshot()

        assert metrics.cycles_total == cycles
        assert metrics.cycles_failed_total == 0
