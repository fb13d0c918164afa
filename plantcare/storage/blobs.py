"""Blob storage for plant photographs.

Two backends are supported: a local ``uploads/`` directory served at
``/uploads/<key>``, and Cloudflare R2 through its S3-compatible API.
"""

import logging
from pathlib import Path
from typing import Protocol

import boto3
from botocore.exceptions import ClientError

from plantcare.config import Settings, get_settings

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/uploads/"


class BlobStore(Protocol):
    """Minimal object store interface used by the backup pipeline."""

    def read_by_key(self, key: str) -> bytes: ...

    def write_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str: ...

    def exists(self, key: str) -> bool: ...

    def delete_by_key(self, key: str) -> None: ...


def _check_key(key: str) -> str:
    """Reject keys that could escape the store root."""
    if not key or key.startswith("/") or "\\" in key or ".." in key.split("/"):
        raise ValueError(f"Invalid storage key: {key!r}")
    return key


class LocalBlobStore:
    """Blob store backed by a directory on the local filesystem."""

    def __init__(self, root: str | Path):
        """Initialize the store.

        Args:
            root: Directory holding the stored files.
        """
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root / _check_key(key)

    def read_by_key(self, key: str) -> bytes:
        """Read a stored file.

        Raises:
            FileNotFoundError: If the key does not exist.
        """
        return self._path(key).read_bytes()

    def write_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Write a file and return its public reference (``/uploads/<key>``)."""
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"{LOCAL_URL_PREFIX}{key}"

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete_by_key(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)

    @staticmethod
    def key_from_url(image_url: str | None) -> str | None:
        """Return the storage key for a local ``/uploads/...`` reference, else None."""
        if not image_url or not image_url.startswith(LOCAL_URL_PREFIX):
            return None
        key = image_url[len(LOCAL_URL_PREFIX) :]
        try:
            return _check_key(key)
        except ValueError:
            return None


class R2BlobStore:
    """Blob store backed by a Cloudflare R2 bucket."""

    def __init__(self, settings: Settings, client=None):
        """Initialize the store.

        Args:
            settings: Application settings with R2 credentials.
            client: Optional preconfigured S3 client (for tests).
        """
        self.bucket = settings.r2_bucket_name
        self.public_url = settings.r2_public_url.rstrip("/")
        self.client = client or _get_s3_client(settings)

    def read_by_key(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=_check_key(key))
        return response["Body"].read()

    def write_bytes(self, key: str, data: bytes, content_type: str | None = None) -> str:
        """Upload an object and return its reference.

        Returns the public URL when one is configured, otherwise the bare key.
        """
        extra = {"ContentType": content_type} if content_type else {}
        self.client.put_object(Bucket=self.bucket, Key=_check_key(key), Body=data, **extra)
        return f"{self.public_url}/{key}" if self.public_url else key

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=_check_key(key))
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise
        return True

    def delete_by_key(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket, Key=_check_key(key))


def _get_s3_client(settings: Settings):
    """Create a boto3 S3 client configured for Cloudflare R2."""
    if not settings.r2_configured:
        raise RuntimeError(
            "R2 storage is not configured. Set R2_ACCOUNT_ID, R2_ACCESS_KEY_ID "
            "and R2_SECRET_ACCESS_KEY."
        )
    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        region_name="auto",
    )


def get_local_blob_store(settings: Settings | None = None) -> LocalBlobStore:
    """Get the local uploads store."""
    settings = settings or get_settings()
    return LocalBlobStore(settings.upload_dir)


def get_image_store(settings: Settings | None = None) -> BlobStore:
    """Get the store new plant images should be written to.

    R2 is preferred when configured; otherwise images go to the local
    uploads directory.
    """
    settings = settings or get_settings()
    if settings.r2_configured:
        logger.debug(f"Using R2 bucket {settings.r2_bucket_name} for image storage")
        return R2BlobStore(settings)
    return get_local_blob_store(settings)
