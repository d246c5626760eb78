"""Object storage gateway supporting multiple backends.

Supports: S3, MinIO and other S3-compatible storage, plus a local
filesystem backend (one directory per bucket) for development and tests.

Backend failures are raised as typed errors so the caller can tell a
missing object from a permission problem from a transient outage.
"""

import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from hls_pipeline.core.config import Settings


NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound", "NoSuchBucket"})
ACCESS_DENIED_CODES = frozenset({"403", "AccessDenied", "AllAccessDisabled", "InvalidAccessKeyId", "SignatureDoesNotMatch"})


class StorageError(Exception):
    """Base class for object store failures."""

    def __init__(self, message: str, bucket: str = "", key: str = ""):
        super().__init__(message)
        self.bucket = bucket
        self.key = key


class NotFound(StorageError):
    """The object (or its bucket) does not exist."""


class AccessDenied(StorageError):
    """Credentials are missing or not allowed to perform the operation."""


class TransientStorageError(StorageError):
    """Network, throttling or server-side failure; may succeed on redelivery."""


@dataclass
class StorageConfig:
    """Storage configuration."""
    backend: str  # s3, minio, local
    region: str = "us-east-1"
    access_key: str = ""
    secret_key: str = ""
    endpoint_url: Optional[str] = None
    use_ssl: bool = True
    max_attempts: int = 3
    local_path: str = "./storage"
    public_base_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        return cls(
            backend=settings.STORAGE_BACKEND,
            region=settings.AWS_REGION,
            access_key=settings.STORAGE_ACCESS_KEY,
            secret_key=settings.STORAGE_SECRET_KEY,
            endpoint_url=settings.STORAGE_ENDPOINT_URL,
            use_ssl=settings.STORAGE_USE_SSL,
            max_attempts=settings.STORAGE_MAX_ATTEMPTS,
            local_path=settings.LOCAL_STORAGE_PATH,
            public_base_url=settings.PUBLIC_BASE_URL,
        )


def map_client_error(error: Exception, bucket: str, key: str) -> StorageError:
    """Translate a botocore exception into the gateway's error taxonomy.

    Args:
        error: Exception raised by a boto3 call
        bucket: Bucket of the failed operation
        key: Object key of the failed operation

    Returns:
        NotFound, AccessDenied or TransientStorageError
    """
    if isinstance(error, ClientError):
        code = str(error.response.get("Error", {}).get("Code", ""))
        message = f"s3://{bucket}/{key}: {code or 'ClientError'}"
        if code in NOT_FOUND_CODES:
            return NotFound(message, bucket, key)
        if code in ACCESS_DENIED_CODES:
            return AccessDenied(message, bucket, key)
        return TransientStorageError(message, bucket, key)
    return TransientStorageError(f"s3://{bucket}/{key}: {error}", bucket, key)


class StorageGateway(ABC):
    """Abstract object store used by the transcoding pipeline."""

    @abstractmethod
    def fetch(self, bucket: str, key: str, destination: str) -> str:
        """Download an object to a local path.

        Returns:
            The local destination path

        Raises:
            NotFound, AccessDenied, TransientStorageError
        """

    @abstractmethod
    def push(
        self,
        local_path: str,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
        cache_control: Optional[str] = None,
    ) -> None:
        """Upload a local file to a key with content-type and cache metadata.

        Raises:
            AccessDenied, TransientStorageError
        """

    @abstractmethod
    def list_keys(self, bucket: str, prefix: str = "") -> list[str]:
        """List every key under a prefix."""

    @abstractmethod
    def delete(self, bucket: str, key: str) -> None:
        """Delete one object."""

    @abstractmethod
    def exists(self, bucket: str, key: str) -> bool:
        """Check whether an object exists."""

    @abstractmethod
    def get_public_url(self, bucket: str, key: str) -> str:
        """URL under which a published object is reachable."""


class LocalStorageGateway(StorageGateway):
    """Local filesystem storage, ``<base>/<bucket>/<key>``."""

    def __init__(self, config: StorageConfig):
        self.base_path = Path(config.local_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = config.public_base_url
        # (bucket, key) -> (content_type, cache_control) of pushed objects
        self.object_metadata: dict[tuple[str, str], tuple[str, Optional[str]]] = {}

    def _get_full_path(self, bucket: str, key: str) -> Path:
        return self.base_path / bucket / key

    def fetch(self, bucket: str, key: str, destination: str) -> str:
        src_path = self._get_full_path(bucket, key)
        if not src_path.is_file():
            raise NotFound(f"{bucket}/{key} does not exist", bucket, key)
        try:
            shutil.copyfile(src_path, destination)
        except PermissionError as e:
            raise AccessDenied(str(e), bucket, key) from e
        except OSError as e:
            raise TransientStorageError(str(e), bucket, key) from e
        return destination

    def push(
        self,
        local_path: str,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
        cache_control: Optional[str] = None,
    ) -> None:
        dest_path = self._get_full_path(bucket, key)
        try:
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, dest_path)
        except PermissionError as e:
            raise AccessDenied(str(e), bucket, key) from e
        except OSError as e:
            raise TransientStorageError(str(e), bucket, key) from e
        self.object_metadata[(bucket, key)] = (content_type, cache_control)

    def list_keys(self, bucket: str, prefix: str = "") -> list[str]:
        bucket_path = self.base_path / bucket
        if not bucket_path.exists():
            return []

        keys = []
        for path in bucket_path.rglob("*"):
            if path.is_file():
                key = path.relative_to(bucket_path).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def delete(self, bucket: str, key: str) -> None:
        file_path = self._get_full_path(bucket, key)
        try:
            file_path.unlink(missing_ok=True)
        except PermissionError as e:
            raise AccessDenied(str(e), bucket, key) from e
        self.object_metadata.pop((bucket, key), None)

    def exists(self, bucket: str, key: str) -> bool:
        return self._get_full_path(bucket, key).is_file()

    def get_public_url(self, bucket: str, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return self._get_full_path(bucket, key).absolute().as_uri()


class S3StorageGateway(StorageGateway):
    """S3/MinIO compatible storage backend.

    The boto3 client is created lazily and reused for every operation of
    this gateway; boto3 clients are thread safe, so one gateway can serve
    concurrent runs.
    """

    def __init__(self, config: StorageConfig, client=None):
        self.config = config
        self._client = client

    def _get_client(self):
        """Get or create S3 client."""
        if self._client is None:
            client_kwargs = {
                "service_name": "s3",
                "region_name": self.config.region or "us-east-1",
            }

            if self.config.access_key and self.config.secret_key:
                client_kwargs["aws_access_key_id"] = self.config.access_key
                client_kwargs["aws_secret_access_key"] = self.config.secret_key

            boto_config = {"retries": {"max_attempts": self.config.max_attempts, "mode": "standard"}}

            # For MinIO or other S3-compatible storage
            if self.config.endpoint_url:
                client_kwargs["endpoint_url"] = self.config.endpoint_url
                boto_config["signature_version"] = "s3v4"
                boto_config["s3"] = {"addressing_style": "path"}
                if not self.config.use_ssl:
                    client_kwargs["use_ssl"] = False

            client_kwargs["config"] = BotoConfig(**boto_config)
            self._client = boto3.client(**client_kwargs)

        return self._client

    def fetch(self, bucket: str, key: str, destination: str) -> str:
        try:
            self._get_client().download_file(bucket, key, destination)
        except (ClientError, BotoCoreError) as e:
            raise map_client_error(e, bucket, key) from e
        return destination

    def push(
        self,
        local_path: str,
        bucket: str,
        key: str,
        content_type: str = "application/octet-stream",
        cache_control: Optional[str] = None,
    ) -> None:
        extra = {}
        if cache_control:
            extra["CacheControl"] = cache_control

        try:
            with open(local_path, "rb") as f:
                self._get_client().put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=f,
                    ContentType=content_type,
                    **extra,
                )
        except (ClientError, BotoCoreError) as e:
            raise map_client_error(e, bucket, key) from e
        except OSError as e:
            raise TransientStorageError(f"cannot read {local_path}: {e}", bucket, key) from e

    def list_keys(self, bucket: str, prefix: str = "") -> list[str]:
        keys = []
        try:
            paginator = self._get_client().get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
        except (ClientError, BotoCoreError) as e:
            raise map_client_error(e, bucket, prefix) from e
        return keys

    def delete(self, bucket: str, key: str) -> None:
        try:
            self._get_client().delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise map_client_error(e, bucket, key) from e

    def exists(self, bucket: str, key: str) -> bool:
        try:
            self._get_client().head_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            error = map_client_error(e, bucket, key)
            if isinstance(error, NotFound):
                return False
            raise error from e
        return True

    def get_public_url(self, bucket: str, key: str) -> str:
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{key}"
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{bucket}/{key}"
        region = self.config.region or "us-east-1"
        return f"https://{bucket}.s3.{region}.amazonaws.com/{key}"


def create_storage_gateway(config: StorageConfig) -> StorageGateway:
    """Create the storage gateway for the configured backend.

    Raises:
        ValueError: If the backend name is unknown
    """
    backend_type = config.backend.lower()

    if backend_type == "local":
        return LocalStorageGateway(config)
    elif backend_type in ("s3", "minio", "aws"):
        return S3StorageGateway(config)
    else:
        raise ValueError(f"Unsupported storage backend: {backend_type}")
