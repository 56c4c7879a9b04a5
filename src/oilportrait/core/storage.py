"""Object storage for uploaded portraits and generated paintings.

Two kinds of object are written:

- **public** objects (originals, watermarked previews, thumbnails) get a URL
  that browsers can load directly;
- **private** objects (full-resolution paintings) get no public URL and are
  only ever read back through :meth:`ObjectStorage.stream` by the download
  endpoint after the purchase check.

Backends
--------
LocalObjectStorage
    Writes under ``media_dir/public`` and ``media_dir/private``.  The API
    mounts only the public directory as static files.
S3ObjectStorage
    Writes to an S3 (or S3-compatible) bucket with ``boto3``.  Public URLs
    are built from ``s3_public_base_url``; private objects stay behind the
    bucket policy.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

from .config import OilPortraitConfig
from .errors import StorageError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


def _validate_key(key: str) -> str:
    """Reject keys that could escape the storage root."""
    path = PurePosixPath(key)
    if not key or path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Invalid object key: {key!r}")
    return str(path)


class ObjectStorage(ABC):
    """Interface for the object storage collaborator."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str, *, public: bool = False) -> str:
        """Store an object.

        Args:
            key: Object key, e.g. ``"previews/<id>.jpg"``
            data: Object bytes
            content_type: MIME type of the object
            public: Whether the object gets a browser-loadable URL

        Returns:
            The public URL for public objects, otherwise an internal URI

        Raises:
            StorageError: If the write fails
        """

    @abstractmethod
    def stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield a private object's bytes in chunks.

        Raises:
            StorageError: If the object cannot be read
        """

    @abstractmethod
    def delete(self, key: str, *, public: bool = False) -> None:
        """Remove an object; missing objects are ignored."""


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed storage rooted at ``media_dir``."""

    def __init__(self, root: Path, url_prefix: str = "/media") -> None:
        self.root = Path(root)
        self.public_dir = self.root / "public"
        self.private_dir = self.root / "private"
        self.url_prefix = url_prefix.rstrip("/")
        self.public_dir.mkdir(parents=True, exist_ok=True)
        self.private_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initialized local object storage at {self.root}")

    def _path(self, key: str, public: bool) -> Path:
        base = self.public_dir if public else self.private_dir
        return base / _validate_key(key)

    def put(self, key: str, data: bytes, content_type: str, *, public: bool = False) -> str:
        path = self._path(key, public)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError() from e

        logger.debug("Stored %s (%d bytes, %s)", path, len(data), content_type)
        if public:
            return f"{self.url_prefix}/{_validate_key(key)}"
        return f"local://{_validate_key(key)}"

    def stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        path = self._path(key, public=False)
        try:
            handle = open(path, "rb")
        except OSError as e:
            raise StorageError() from e

        def _chunks() -> Iterator[bytes]:
            with handle:
                while chunk := handle.read(chunk_size):
                    yield chunk

        return _chunks()

    def delete(self, key: str, *, public: bool = False) -> None:
        path = self._path(key, public)
        if path.exists():
            path.unlink()


class S3ObjectStorage(ObjectStorage):
    """S3-backed storage using a single bucket.

    Access is set per object: previews and thumbnails are written
    ``public-read`` and paintings ``private``, so the bucket itself must stay
    private (with object ACLs enabled) for paintings to remain gated.
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        public_base_url: str | None = None,
        client=None,
    ) -> None:
        if not bucket:
            raise ValueError("S3 storage requires a bucket name")

        if client is None:
            import boto3

            client = boto3.client("s3", region_name=region, endpoint_url=endpoint_url)

        self.bucket = bucket
        self.client = client
        self.public_base_url = (
            public_base_url or f"https://{bucket}.s3.{region or 'us-east-1'}.amazonaws.com"
        ).rstrip("/")
        logger.info(f"Initialized S3 object storage for bucket {bucket}")

    def put(self, key: str, data: bytes, content_type: str, *, public: bool = False) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        key = _validate_key(key)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                ACL="public-read" if public else "private",
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError() from e

        if public:
            return f"{self.public_base_url}/{key}"
        return f"s3://{self.bucket}/{key}"

    def stream(self, key: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = self.client.get_object(Bucket=self.bucket, Key=_validate_key(key))
        except (BotoCoreError, ClientError) as e:
            raise StorageError() from e
        return response["Body"].iter_chunks(chunk_size=chunk_size)

    def delete(self, key: str, *, public: bool = False) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self.client.delete_object(Bucket=self.bucket, Key=_validate_key(key))
        except (BotoCoreError, ClientError) as e:
            raise StorageError() from e


def create_storage(config: OilPortraitConfig) -> ObjectStorage:
    """Build the storage backend selected by ``config.storage_backend``."""
    if config.storage_backend == "s3":
        return S3ObjectStorage(
            config.s3_bucket,
            region=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
            public_base_url=config.s3_public_base_url,
        )
    return LocalObjectStorage(config.media_dir, config.media_url_prefix)
