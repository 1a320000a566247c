# errors.py
# SPDX-License-Identifier: MIT
"""Exception hierarchy shared by openers, the pipeline, and the CLI."""

from __future__ import annotations

__all__ = [
    "HealthStreamError",
    "StorageError",
    "StorageConfigurationError",
    "StorageNotFoundError",
    "StoragePermissionError",
    "StorageUnavailableError",
]


class HealthStreamError(Exception):
    """Base class for errors raised by healthstream itself."""


class StorageError(HealthStreamError):
    """A blob could not be opened or read from its backing store."""


class StorageConfigurationError(StorageError):
    """Storage settings are missing or inconsistent (bucket, credentials)."""


class StorageNotFoundError(StorageError):
    """The requested key does not exist."""

    def __init__(self, key: str):
        super().__init__(f"Blob not found: {key}")
        self.key = key


class StoragePermissionError(StorageError):
    """Credentials were rejected or lack access to the key."""


class StorageUnavailableError(StorageError):
    """The store timed out, throttled, or could not be reached."""
