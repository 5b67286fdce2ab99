"""Snapshot Capture Agent: periodic image fetch, crop, and storage."""

__version__ = "1.0.0"
