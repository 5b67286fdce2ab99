#!/usr/bin/env python3
"""
Image Capture for Snapshot Capture Agent

This module implements the fetch and crop stages of a capture cycle.
ImageFetcher downloads the source image into a reusable buffer;
ImageCropper decodes it, extracts the configured region, and re-encodes
it as JPEG.
"""

import io
import logging
from typing import Optional

import cv2
import numpy as np
import requests

from snapshot_agent.config import CropRect
from snapshot_agent.exceptions import (
    CropOutOfBoundsError,
    DecodeError,
    EncodeError,
    FetchError,
)


_CHUNK_SIZE = 64 * 1024


class ImageFetcher:
    """
    Downloads snapshot images over HTTP.

    Owns a single byte buffer that is truncated at the start of every
    fetch. Capture cycles never overlap, so the buffer is never shared.
    """

    def __init__(self, timeout_sec: float, verify_status: bool = True,
                 session: Optional[requests.Session] = None):
        """
        Initialize the fetcher.

        Args:
            timeout_sec: Connect and read timeout for the request
            verify_status: Treat non-2xx responses as failures
            session: Optional requests session to reuse connections
        """
        self.timeout_sec = timeout_sec
        self.verify_status = verify_status
        self.session = session
        self._buffer = io.BytesIO()

    def _reset_buffer(self):
        self._buffer.seek(0)
        self._buffer.truncate(0)

    def fetch(self, url: str) -> bytes:
        """
        Download the image at `url`.

        Args:
            url: Image source URL

        Returns:
            The full response body

        Raises:
            FetchError: On transport, status, or stream errors
        """
        self._reset_buffer()
        get = self.session.get if self.session is not None else requests.get

        try:
            response = get(url, stream=True, timeout=self.timeout_sec)
            with response:
                if self.verify_status:
                    response.raise_for_status()
                for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                    self._buffer.write(chunk)

        except requests.exceptions.RequestException as e:
            self._reset_buffer()
            raise FetchError(str(e), context={'url': url}) from e

        data = self._buffer.getvalue()
        if not data:
            raise FetchError("Empty response body", context={'url': url})

        logging.debug("Fetched %d bytes from %s", len(data), url)
        return data


class ImageCropper:
    """
    Crops encoded images to a fixed rectangle.

    The decoded image is copied into a contiguous pixel array before the
    region is extracted, so slicing works the same for every source format.
    """

    def __init__(self, jpeg_quality: int = 75):
        """
        Initialize the cropper.

        Args:
            jpeg_quality: JPEG quality (1-100) used when re-encoding
        """
        self.jpeg_quality = jpeg_quality

    def crop(self, raw_bytes: bytes, rect: CropRect) -> bytes:
        """
        Crop an encoded image and re-encode it as JPEG.

        Args:
            raw_bytes: Encoded source image (any format OpenCV can read)
            rect: Region to keep; right and bottom are exclusive

        Returns:
            JPEG bytes of the cropped region

        Raises:
            DecodeError: If raw_bytes is not a readable image
            CropOutOfBoundsError: If rect is empty or outside the image
            EncodeError: If JPEG encoding fails
        """
        encoded = np.frombuffer(raw_bytes, dtype=np.uint8)
        # Crop coordinates refer to the stored pixel grid, not the EXIF-rotated view
        flags = cv2.IMREAD_COLOR | cv2.IMREAD_IGNORE_ORIENTATION
        source = cv2.imdecode(encoded, flags) if encoded.size else None
        if source is None:
            raise DecodeError(
                "Unable to decode image",
                context={'size_bytes': len(raw_bytes)},
            )

        frame = np.ascontiguousarray(source)
        height, width = frame.shape[:2]

        if (rect.left < 0 or rect.top < 0
                or rect.right > width or rect.bottom > height
                or rect.right <= rect.left or rect.bottom <= rect.top):
            raise CropOutOfBoundsError(
                f"Crop rectangle {rect} outside image bounds {width}x{height}",
                context={'rect': str(rect), 'width': width, 'height': height},
            )

        cropped = frame[rect.top:rect.bottom, rect.left:rect.right]
        logging.debug(
            "Applied crop: (%d,%d) to (%d,%d)",
            rect.left, rect.top, rect.right, rect.bottom
        )

        try:
            success, buffer = cv2.imencode(
                '.jpg', cropped, [cv2.IMWRITE_JPEG_QUALITY, self.jpeg_quality]
            )
        except cv2.error as e:
            raise EncodeError(str(e), context={'rect': str(rect)}) from e

        if not success:
            raise EncodeError("Failed to encode image as JPEG", context={'rect': str(rect)})

        return buffer.tobytes()
