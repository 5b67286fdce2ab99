"""Shared test fixtures."""

import os
from unittest.mock import MagicMock

import boto3
import cv2
import numpy as np
import pytest
import requests
from moto import mock_aws

from snapshot_agent.config import Config


def make_image_bytes(width=200, height=200, ext='.jpg'):
    """Encode a gradient test image of the given size."""
    x = np.linspace(0, 255, width, dtype=np.uint8)
    y = np.linspace(0, 255, height, dtype=np.uint8)
    frame = np.zeros((height, width, 3), dtype=np.uint8)
    frame[:, :, 0] = x[np.newaxis, :]
    frame[:, :, 1] = y[:, np.newaxis]
    frame[:, :, 2] = 128
    success, encoded = cv2.imencode(ext, frame)
    assert success
    return encoded.tobytes()


def decode_image(data):
    return cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)


def make_response(body=b'', status_code=200, chunk_size=None):
    """Create a fake streaming requests.Response."""
    response = MagicMock()
    response.status_code = status_code
    response.__enter__.return_value = response
    response.__exit__.return_value = False

    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Client Error"
        )

    def iter_content(chunk_size=1):
        step = chunk_size or len(body) or 1
        for start in range(0, len(body), step):
            yield body[start:start + step]

    response.iter_content.side_effect = iter_content
    return response


def make_config(**overrides):
    """Create a Config for testing."""
    defaults = {
        'image_url': 'http://camera.test/snapshot.jpg',
        'capture_interval_sec': 600,
    }
    defaults.update(overrides)
    return Config(**defaults)


@pytest.fixture()
def jpeg_200():
    return make_image_bytes(200, 200)


@pytest.fixture(autouse=True)
def _aws_credentials(monkeypatch):
    """Point boto3 at fake credentials so nothing reaches AWS."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')
    for var in ('AWS_PROFILE', 'AWS_ENDPOINT_URL', 'AWS_ENDPOINT_URL_S3'):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture()
def s3_bucket():
    """Create a mock S3 bucket and yield a client for it."""
    with mock_aws():
        s3 = boto3.client('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture()
def restore_umask():
    old = os.umask(0o022)
    yield
    os.umask(old)
