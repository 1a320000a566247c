# s3.py
# SPDX-License-Identifier: MIT
"""Stream objects out of S3-compatible storage (AWS S3, MinIO)."""

from __future__ import annotations

import asyncio
from typing import Any

from ..core.config import S3Config
from ..core.errors import (
    StorageConfigurationError,
    StorageError,
    StorageNotFoundError,
    StoragePermissionError,
    StorageUnavailableError,
)
from ..core.log import get_logger
from ..core.streams import ThreadedByteStream

__all__ = ["S3BlobOpener", "map_storage_error"]

log = get_logger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}
_PERMISSION_CODES = {"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "403"}
_UNAVAILABLE_CODES = {"SlowDown", "RequestTimeout", "ServiceUnavailable", "InternalError", "503", "500"}


def map_storage_error(exc: Exception, *, key: str, action: str) -> StorageError:
    """Translate a boto3/botocore exception into the :class:`StorageError` family."""
    from botocore.exceptions import (
        ClientError,
        ConnectionClosedError,
        ConnectTimeoutError,
        EndpointConnectionError,
        NoCredentialsError,
        ReadTimeoutError,
        ResponseStreamingError,
    )

    if isinstance(exc, StorageError):
        return exc
    if isinstance(
        exc,
        (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, ConnectionClosedError, ResponseStreamingError),
    ):
        log.warning("Storage unavailable during %s of %s: %s", action, key, exc)
        return StorageUnavailableError(f"Storage unavailable during {action} of {key}: {exc}")
    if isinstance(exc, NoCredentialsError):
        return StorageConfigurationError("No S3 credentials found")
    if isinstance(exc, ClientError):
        code = str((exc.response.get("Error") or {}).get("Code") or "")
        if code in _NOT_FOUND_CODES:
            return StorageNotFoundError(key)
        if code in _PERMISSION_CODES:
            return StoragePermissionError(f"Access denied during {action} of {key} (code={code})")
        if code in _UNAVAILABLE_CODES:
            return StorageUnavailableError(f"Storage temporarily unavailable (code={code})")
        log.error("S3 ClientError during %s of %s: code=%s", action, key, code)
        return StorageError(f"Storage failure during {action} of {key} (code={code})")
    if isinstance(exc, OSError):
        return StorageUnavailableError(f"Connection error during {action} of {key}: {exc}")
    log.error("Unexpected storage error during %s of %s: %r", action, key, exc)
    return StorageError(f"Storage failure during {action} of {key}")


class S3BlobOpener:
    """Open streaming reads of ``s3://bucket/key`` objects.

    Args:
        config (S3Config): Bucket, region, endpoint and optional credentials.
        client: Pre-built boto3 S3 client; tests pass a fake here.
        read_size (int): Bytes requested per body read.
    """

    def __init__(self, config: S3Config, *, client: Any = None, read_size: int = 64 * 1024) -> None:
        self._config = config
        self._bucket = (config.bucket or "").strip()
        if not self._bucket:
            raise StorageConfigurationError("S3 bucket is required")
        if bool(config.access_key) != bool(config.secret_key):
            raise StorageConfigurationError("access_key and secret_key must be set together")
        self._read_size = read_size

        if client is not None:
            self._client = client
            return

        import boto3

        self._client = boto3.client(
            "s3",
            aws_access_key_id=config.access_key or None,
            aws_secret_access_key=config.secret_key or None,
            region_name=config.region or None,
            endpoint_url=config.endpoint_url or None,
        )

    @property
    def bucket(self) -> str:
        return self._bucket

    async def open(self, key: str) -> ThreadedByteStream:
        """Issue ``GetObject`` for ``key`` and stream its body.

        Raises:
            StorageError: Any SDK failure, mapped to a specific subclass.
        """
        _require_key(key)
        try:
            response = await asyncio.to_thread(self._client.get_object, Bucket=self._bucket, Key=key)
        except Exception as exc:
            raise map_storage_error(exc, key=key, action="open") from exc
        log.debug(
            "Opened s3://%s/%s (%s bytes)",
            self._bucket,
            key,
            response.get("ContentLength", "?"),
        )
        return ThreadedByteStream(
            response["Body"],
            read_size=self._read_size,
            map_error=lambda exc: map_storage_error(exc, key=key, action="read"),
        )

    def presigned_url(self, key: str, *, expires_in: int = 3600, filename: str | None = None) -> str:
        """Return a time-limited download URL for ``key``."""
        _require_key(key)
        if expires_in <= 0:
            expires_in = 3600
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": key}
        if filename:
            safe_name = filename.replace('"', "'")
            params["ResponseContentDisposition"] = f'attachment; filename="{safe_name}"'
        try:
            url = self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params=params,
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise map_storage_error(exc, key=key, action="presign") from exc
        return str(url)


def _require_key(key: str) -> None:
    if not (key or "").strip():
        raise StorageError("A storage key is required")
