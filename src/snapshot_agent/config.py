#!/usr/bin/env python3
"""
Configuration Management for Snapshot Capture Agent

Configuration is resolved once at startup from command-line flags and an
optional YAML file (flags win), validated, and frozen. See
configs/snapshot_capture.yaml for an example file.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, NamedTuple, Optional

import yaml

from snapshot_agent.exceptions import ConfigError


DEFAULT_S3_REGION = "us-east-1"
DEFAULT_CAPTURE_INTERVAL_SEC = 600
DEFAULT_REQUEST_TIMEOUT_SEC = 30.0
DEFAULT_JPEG_QUALITY = 75

_INTEGER_PATTERN = re.compile(r"-?[0-9]+")


class CropRect(NamedTuple):
    """Crop rectangle in pixels. right and bottom are exclusive."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    def __str__(self) -> str:
        return f"{self.left},{self.top},{self.right},{self.bottom}"


def parse_rect(value: str) -> CropRect:
    """
    Parse a crop rectangle in the form left,top,right,bottom.

    Ordering and image bounds are not checked here; they are only known
    once an image has been fetched.

    Args:
        value: Four comma-separated integers

    Returns:
        Parsed CropRect

    Raises:
        ConfigError: If the value is not four integers
    """
    points = value.split(',')
    if len(points) != 4:
        raise ConfigError(
            "rect not in the form of left,top,right,bottom",
            context={'rect': value},
        )

    numbers = []
    for point in points:
        if not _INTEGER_PATTERN.fullmatch(point.strip()):
            raise ConfigError(
                f"Error converting number {point!r} to int",
                context={'rect': value},
            )
        numbers.append(int(point.strip()))

    return CropRect(*numbers)


def _parse_bool(value: Any, name: str) -> bool:
    """Accept only real YAML booleans; quoted strings such as "false" are errors."""
    if not isinstance(value, bool):
        raise ConfigError(
            f"{name} must be true or false",
            context={name: value},
        )
    return value


@dataclass(frozen=True)
class Config:
    """
    Configuration data class for the snapshot capture agent.

    Immutable once resolved. An empty s3_bucket disables remote upload,
    an empty directory disables local save, and a missing rect disables
    cropping. Equal sleep_hour and wake_hour disable the schedule.
    """
    # Source
    image_url: str

    # Capture settings
    capture_interval_sec: float = DEFAULT_CAPTURE_INTERVAL_SEC
    rect: Optional[CropRect] = None
    jpeg_quality: int = DEFAULT_JPEG_QUALITY

    # Schedule
    sleep_hour: int = 0
    wake_hour: int = 0

    # HTTP settings
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    verify_status: bool = True

    # Storage settings
    directory: str = ""

    # S3 settings
    s3_bucket: str = ""
    s3_region: str = DEFAULT_S3_REGION
    s3_endpoint_url: Optional[str] = None

    @property
    def schedule_enabled(self) -> bool:
        return self.sleep_hour != self.wake_hour

    def validate(self) -> 'Config':
        """
        Check startup invariants.

        Returns:
            self, for chaining

        Raises:
            ConfigError: If any setting is out of range
        """
        if not self.image_url:
            raise ConfigError("image URL is required")

        for name in ('sleep_hour', 'wake_hour'):
            hour = getattr(self, name)
            if not 0 <= hour <= 23:
                raise ConfigError(
                    f"{name} must be between 0 and 23",
                    context={name: hour},
                )

        if self.capture_interval_sec <= 0:
            raise ConfigError(
                "capture interval must be positive",
                context={'capture_interval_sec': self.capture_interval_sec},
            )

        if self.request_timeout_sec <= 0:
            raise ConfigError(
                "request timeout must be positive",
                context={'request_timeout_sec': self.request_timeout_sec},
            )

        if not 1 <= self.jpeg_quality <= 100:
            raise ConfigError(
                "jpeg_quality must be between 1 and 100",
                context={'jpeg_quality': self.jpeg_quality},
            )

        return self

    @classmethod
    def from_yaml(cls, config_path: str) -> 'Config':
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings (not yet validated)

        Raises:
            ConfigError: If the file is missing, malformed, or has bad values
        """
        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(
                f"Configuration file not readable: {e}",
                context={'path': config_path},
            ) from e
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Failed to parse configuration file: {e}",
                context={'path': config_path},
            ) from e

        if not isinstance(data, dict):
            raise ConfigError(
                "Configuration file must contain a mapping",
                context={'path': config_path},
            )

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """
        Build configuration from a parsed YAML mapping.

        Args:
            data: Nested configuration mapping

        Returns:
            Config instance (not yet validated)
        """
        # Parse nested configuration
        schedule = data.get('schedule') or {}
        storage = data.get('storage') or {}
        s3 = data.get('s3') or {}
        http = data.get('http') or {}
        encoding = data.get('encoding') or {}

        rect = None
        crop = data.get('crop')
        if isinstance(crop, dict):
            try:
                rect = CropRect(
                    int(crop['left']),
                    int(crop['top']),
                    int(crop['right']),
                    int(crop['bottom']),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(
                    "crop must define integer left, top, right and bottom",
                    context={'crop': crop},
                ) from e
        elif data.get('rect'):
            rect = parse_rect(str(data['rect']))

        try:
            return cls(
                # Source
                image_url=data.get('image_url', ''),

                # Capture
                capture_interval_sec=float(
                    data.get('capture_interval_sec', DEFAULT_CAPTURE_INTERVAL_SEC)
                ),
                rect=rect,
                jpeg_quality=int(encoding.get('jpeg_quality', DEFAULT_JPEG_QUALITY)),

                # Schedule
                sleep_hour=int(schedule.get('sleep_hour', 0)),
                wake_hour=int(schedule.get('wake_hour', 0)),

                # HTTP
                request_timeout_sec=float(
                    http.get('timeout_sec', DEFAULT_REQUEST_TIMEOUT_SEC)
                ),
                verify_status=_parse_bool(http.get('verify_status', True), 'http.verify_status'),

                # Storage
                directory=storage.get('directory') or '',

                # S3
                s3_bucket=s3.get('bucket') or '',
                s3_region=s3.get('region') or DEFAULT_S3_REGION,
                s3_endpoint_url=s3.get('endpoint_url'),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

    @classmethod
    def from_args(cls, args) -> 'Config':
        """
        Resolve configuration from parsed command-line arguments.

        Values given on the command line override values from the YAML
        file named by --config, which override the defaults.

        Args:
            args: argparse.Namespace from parse_arguments()

        Returns:
            Validated Config instance

        Raises:
            ConfigError: If the resulting configuration is invalid
        """
        if args.config:
            logging.info("Loading configuration from: %s", args.config)
            config = cls.from_yaml(args.config)
        else:
            config = cls(image_url='')

        overrides: Dict[str, Any] = {}
        if args.image_url is not None:
            overrides['image_url'] = args.image_url
        if args.s3_region is not None:
            overrides['s3_region'] = args.s3_region
        if args.s3_bucket is not None:
            overrides['s3_bucket'] = args.s3_bucket
        if args.s3_endpoint_url is not None:
            overrides['s3_endpoint_url'] = args.s3_endpoint_url
        if args.directory is not None:
            overrides['directory'] = args.directory
        if args.rect:
            overrides['rect'] = parse_rect(args.rect)
        if args.sleep_hour is not None:
            overrides['sleep_hour'] = args.sleep_hour
        if args.wake_hour is not None:
            overrides['wake_hour'] = args.wake_hour
        if args.interval is not None:
            overrides['capture_interval_sec'] = args.interval
        if args.timeout is not None:
            overrides['request_timeout_sec'] = args.timeout
        if args.jpeg_quality is not None:
            overrides['jpeg_quality'] = args.jpeg_quality
        if args.no_verify_status:
            overrides['verify_status'] = False

        return replace(config, **overrides).validate()
