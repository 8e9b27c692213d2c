"""
Blob storage backends for file content.

A blob store maps an opaque key to binary content. Keys are generated by
the file manager, so the stores only need to guard against keys that
would escape their root.
"""

import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from api.files.errors import StorageError
from core.config import Settings
from core.logger import logger

MISSING_OBJECT_CODES = ("404", "NoSuchKey", "NotFound")


@dataclass
class StoredBlob:
    key: str
    last_modified: datetime


class BlobStore(Protocol):
    """Key to bytes store used by the file manager"""

    def put(self, key: str, stream: BinaryIO) -> str:
        """Store stream under key, returning the storage path"""
        ...

    def get(self, key: str) -> BinaryIO:
        """Open a readable stream for key"""
        ...

    def delete(self, key: str) -> bool:
        """Delete key, returning False if there was nothing to delete"""
        ...

    def list_blobs(self) -> list[StoredBlob]:
        """List every blob currently held by the store"""
        ...


def parse_s3_path(s3_path: str) -> tuple[str, str]:
    """Parse S3 path into bucket and prefix"""
    if not s3_path.startswith("s3://"):
        raise ValueError("Invalid S3 path format. Must start with s3://")

    # Remove s3:// prefix
    path_without_scheme = s3_path[5:]

    # Check for empty path after s3://
    if not path_without_scheme:
        raise ValueError("Invalid S3 path format. Bucket name is required")

    # Check for leading slash (s3:///)
    if path_without_scheme.startswith("/"):
        raise ValueError("Invalid S3 path format. Bucket name cannot start with /")

    # Check for double slashes anywhere in the path
    if "//" in path_without_scheme:
        raise ValueError("Invalid S3 path format. Path cannot contain double slashes")

    # Split into bucket and key
    if "/" in path_without_scheme:
        bucket, key = path_without_scheme.split("/", 1)
    else:
        bucket = path_without_scheme
        key = ""

    return bucket, key


class LocalBlobStore:
    """Keeps blobs as files under a root directory"""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def _resolve(self, key: str) -> Path:
        path = (self.root / key).resolve()
        # Security check: ensure the resolved path is within the root
        try:
            path.relative_to(self.root)
        except ValueError as exc:
            raise StorageError(f"Invalid storage key: {key}") from exc
        if path == self.root:
            raise StorageError(f"Invalid storage key: {key}")
        return path

    def put(self, key: str, stream: BinaryIO) -> str:
        path = self._resolve(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as out:
                shutil.copyfileobj(stream, out)
        except OSError as exc:
            # Don't leave a truncated blob behind
            try:
                path.unlink(missing_ok=True)
            except OSError as unlink_exc:
                logger.warning("Could not remove partial file %s: %s", path, unlink_exc)
            raise StorageError(f"Failed to store file {key}: {exc}") from exc
        return str(path)

    def get(self, key: str) -> BinaryIO:
        path = self._resolve(key)
        try:
            return open(path, "rb")
        except FileNotFoundError as exc:
            raise StorageError(f"File {key} not found in storage") from exc
        except OSError as exc:
            raise StorageError(f"Failed to read file {key}: {exc}") from exc

    def delete(self, key: str) -> bool:
        path = self._resolve(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete file {key}: {exc}") from exc
        return True

    def list_blobs(self) -> list[StoredBlob]:
        if not self.root.is_dir():
            return []
        blobs = [
            StoredBlob(
                key=path.relative_to(self.root).as_posix(),
                last_modified=datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc),
            )
            for path in self.root.rglob("*")
            if path.is_file()
        ]
        blobs.sort(key=lambda blob: blob.key)
        return blobs


class S3BlobStore:
    """Keeps blobs as objects under an S3 bucket/prefix"""

    def __init__(self, bucket_uri: str, s3_client):
        self.bucket, prefix = parse_s3_path(bucket_uri)
        if prefix and not prefix.endswith("/"):
            prefix += "/"
        self.prefix = prefix
        self.s3_client = s3_client

    def _object_key(self, key: str) -> str:
        if not key or key.startswith("/") or ".." in key.split("/"):
            raise StorageError(f"Invalid storage key: {key}")
        return f"{self.prefix}{key}"

    def put(self, key: str, stream: BinaryIO) -> str:
        object_key = self._object_key(key)
        try:
            self.s3_client.upload_fileobj(stream, self.bucket, object_key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to upload file {key} to S3: {exc}") from exc
        return f"s3://{self.bucket}/{object_key}"

    def get(self, key: str) -> BinaryIO:
        object_key = self._object_key(key)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket, Key=object_key)
        except ClientError as exc:
            if exc.response["Error"]["Code"] in MISSING_OBJECT_CODES:
                raise StorageError(f"File {key} not found in storage") from exc
            raise StorageError(
                f"Failed to download file {key} from S3: {exc.response['Error']['Message']}"
            ) from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to download file {key} from S3: {exc}") from exc
        return response["Body"]

    def delete(self, key: str) -> bool:
        object_key = self._object_key(key)
        try:
            # delete_object succeeds for missing keys, so check first
            self.s3_client.head_object(Bucket=self.bucket, Key=object_key)
        except ClientError as exc:
            if exc.response["Error"]["Code"] in MISSING_OBJECT_CODES:
                return False
            raise StorageError(f"Failed to delete file {key} from S3: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to delete file {key} from S3: {exc}") from exc

        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=object_key)
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to delete file {key} from S3: {exc}") from exc
        return True

    def list_blobs(self) -> list[StoredBlob]:
        blobs = []
        try:
            paginator = self.s3_client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix):
                for obj in page.get("Contents", []):
                    key = obj["Key"][len(self.prefix):]
                    if key:
                        blobs.append(StoredBlob(key=key, last_modified=obj["LastModified"]))
        except (ClientError, BotoCoreError) as exc:
            raise StorageError(f"Failed to list files in S3: {exc}") from exc
        blobs.sort(key=lambda blob: blob.key)
        return blobs


def build_blob_store(settings: Settings, s3_client=None) -> BlobStore:
    """
    Create the blob store selected by STORAGE_BACKEND.

    Args:
        settings: Application settings
        s3_client: boto3 S3 client, required for the s3 backend

    Raises:
        ValueError: If the backend is unknown or misconfigured
    """
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "local":
        return LocalBlobStore(settings.FILE_STORAGE_ROOT)
    if backend == "s3":
        if not settings.FILE_STORAGE_BUCKET_URI:
            raise ValueError("FILE_STORAGE_BUCKET_URI must be set for the s3 storage backend")
        if s3_client is None:
            raise ValueError("An S3 client is required for the s3 storage backend")
        return S3BlobStore(settings.FILE_STORAGE_BUCKET_URI, s3_client)
    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")
