"""
Services for the Files API

FileAssetManager keeps catalog records and stored blobs consistent:

    add     upload blob -> insert record
    update  upload new blob -> upsert record -> delete old blob
    remove  delete record -> delete blob

A record is never written before its blob exists, so readers never see a
record pointing at missing content. Blob deletions that follow a
successful catalog write are best effort; a failure there leaves an
orphan blob behind and is reported as a CleanupEvent instead of failing
the operation.
"""

import re
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Callable, Mapping

from api.files.catalog import FileCatalog
from api.files.errors import (
    CatalogError,
    FileOperationResult,
    FileValidationError,
    StorageError,
)
from api.files.models import FileInfo
from api.files.storage import BlobStore
from core.logger import logger

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
# Leaves room for the "-<uuid4>" suffix within a 255 byte file name
MAX_STORAGE_BASE_LENGTH = 200


class CleanupReason(str, Enum):
    UPDATE = "update"
    REMOVE = "remove"


class CleanupOutcome(str, Enum):
    DELETED = "deleted"
    MISSING = "missing"
    FAILED = "failed"


@dataclass
class CleanupEvent:
    """Outcome of deleting a blob that is no longer referenced"""

    stored_file_name: str
    reason: CleanupReason
    outcome: CleanupOutcome
    error: str | None = None


@dataclass
class FileDownload:
    record: FileInfo
    stream: BinaryIO


def log_cleanup_event(event: CleanupEvent) -> None:
    """Default cleanup listener, writes the event to the application log"""
    if event.outcome == CleanupOutcome.FAILED:
        logger.warning(
            "Delete action for File [%s] from storage after %s is [failure]: %s",
            event.stored_file_name, event.reason.value, event.error,
        )
    else:
        logger.info(
            "Delete action for File [%s] from storage after %s is [%s]",
            event.stored_file_name, event.reason.value, event.outcome.value,
        )


def get_file_storage_name(file_name: str | None) -> str:
    """
    Generate a unique storage key for a file.

    Blank names become "file"; characters other than letters, digits,
    '.', '_' and '-' are replaced with '_' and long names are
    truncated.
    """
    if file_name is None or not file_name.strip():
        base = "file"
    else:
        base = _UNSAFE_NAME_CHARS.sub("_", file_name.strip())[:MAX_STORAGE_BASE_LENGTH]
    return f"{base}-{uuid.uuid4()}"


def current_time_millis() -> int:
    return int(time.time() * 1000)


class FileAssetManager:
    """Create, update, remove and download files backed by a catalog and a blob store"""

    def __init__(
        self,
        catalog: FileCatalog,
        blob_store: BlobStore,
        cleanup_listener: Callable[[CleanupEvent], None] = log_cleanup_event,
    ):
        self.catalog = catalog
        self.blob_store = blob_store
        self.cleanup_listener = cleanup_listener

    def list_files(self, filters: Mapping[str, str] | None = None) -> FileOperationResult:
        """List records, optionally restricted to those whose fields equal every filter value"""
        try:
            return FileOperationResult.ok(list(self.catalog.list(filters)))
        except (CatalogError, FileValidationError) as exc:
            return FileOperationResult.failure(exc)

    def add_file(self, content: BinaryIO, info: FileInfo) -> FileOperationResult:
        """
        Upload content and insert a new record for it.

        If the upload fails nothing is inserted. If the insert fails the
        uploaded blob is left in storage as an orphan.
        """
        logger.info("Received fileInfo: [%s]", info)
        # The catalog assigns ids to new records
        info.id = None
        try:
            record = self._upload_and_save(content, info, self.catalog.insert)
        except (StorageError, CatalogError) as exc:
            logger.error("Failed to add file [%s]: %s", info.name, exc)
            return FileOperationResult.failure(exc)
        return FileOperationResult.ok(record)

    def update_file(self, content: BinaryIO, info: FileInfo) -> FileOperationResult:
        """
        Replace the content and metadata of an existing record.

        The new blob is uploaded under a fresh key and the record is
        updated before the previous blob is deleted.
        """
        logger.info("Received fileInfo: [%s]", info)
        if info.id is None:
            return FileOperationResult.failure(
                FileValidationError("File id is required to update a file")
            )

        try:
            existing = self.catalog.get(info.id)
        except CatalogError as exc:
            return FileOperationResult.failure(exc)
        if existing is None:
            logger.info("File entry with id [%s] is not found", info.id)
            return FileOperationResult.not_found(f"File with id {info.id} not found")
        old_stored_file_name = existing.stored_file_name

        try:
            record = self._upload_and_save(content, info, self.catalog.upsert)
        except (StorageError, CatalogError) as exc:
            logger.error("Failed to update file with id [%s]: %s", info.id, exc)
            return FileOperationResult.failure(exc)

        if old_stored_file_name:
            self._cleanup_blob(old_stored_file_name, CleanupReason.UPDATE)
        return FileOperationResult.ok(record)

    def get_file(self, file_id: int) -> FileOperationResult:
        try:
            record = self.catalog.get(file_id)
        except CatalogError as exc:
            return FileOperationResult.failure(exc)
        if record is None:
            return FileOperationResult.not_found(f"File with id {file_id} not found")
        return FileOperationResult.ok(record)

    def remove_file(self, file_id: int) -> FileOperationResult:
        """Remove the record and then its blob, returning the removed record"""
        try:
            removed = self.catalog.delete(file_id)
        except CatalogError as exc:
            logger.error("Encountered error in removing file with id [%s]: %s", file_id, exc)
            return FileOperationResult.failure(exc)
        if removed is None:
            logger.info("File entry with id [%s] is not found", file_id)
            return FileOperationResult.not_found(f"File with id {file_id} not found")

        logger.info("Removed File entry is [%s]", removed)
        if removed.stored_file_name:
            self._cleanup_blob(removed.stored_file_name, CleanupReason.REMOVE)
        return FileOperationResult.ok(removed)

    def download_file(self, file_id: int) -> FileOperationResult:
        """Open the stored content of a file, the caller must close the stream"""
        result = self.get_file(file_id)
        if not result.is_ok:
            return result
        record = result.value
        try:
            stream = self.blob_store.get(record.stored_file_name)
        except StorageError as exc:
            logger.error("Failed to download file with id [%s]: %s", file_id, exc)
            return FileOperationResult.failure(exc)
        return FileOperationResult.ok(FileDownload(record=record, stream=stream))

    def _upload_and_save(
        self,
        content: BinaryIO,
        info: FileInfo,
        save: Callable[[FileInfo], FileInfo],
    ) -> FileInfo:
        info.stored_file_name = get_file_storage_name(info.name)
        logger.info("Uploading File with fileInfo [%s]", info)
        storage_path = self.blob_store.put(info.stored_file_name, content)
        logger.info("Received File with fileInfo is uploaded to [%s]", storage_path)
        info.timestamp = current_time_millis()
        return save(info)

    def _cleanup_blob(self, stored_file_name: str, reason: CleanupReason) -> CleanupEvent:
        try:
            deleted = self.blob_store.delete(stored_file_name)
        except StorageError as exc:
            event = CleanupEvent(
                stored_file_name=stored_file_name,
                reason=reason,
                outcome=CleanupOutcome.FAILED,
                error=str(exc),
            )
        else:
            event = CleanupEvent(
                stored_file_name=stored_file_name,
                reason=reason,
                outcome=CleanupOutcome.DELETED if deleted else CleanupOutcome.MISSING,
            )
        self.cleanup_listener(event)
        return event
