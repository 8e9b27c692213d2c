"""
Exceptions and operation results for the Files API
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FileCatalogException(Exception):
    """Base class for file catalog failures"""


class StorageError(FileCatalogException):
    """The blob store failed to store, read or delete content"""


class CatalogError(FileCatalogException):
    """The metadata catalog failed to read or write a record"""


class FileValidationError(FileCatalogException):
    """A request was missing a required field or used an unknown one"""


class ResultKind(str, Enum):
    """Outcome categories of a file manager operation"""

    OK = "ok"
    NOT_FOUND = "not_found"
    VALIDATION_ERROR = "validation_error"
    STORAGE_ERROR = "storage_error"
    CATALOG_ERROR = "catalog_error"


@dataclass
class FileOperationResult:
    """
    Result of a file manager operation.

    value is only set for OK results, message only for the others.
    """

    kind: ResultKind
    value: Any = None
    message: str | None = None

    @property
    def is_ok(self) -> bool:
        return self.kind == ResultKind.OK

    @classmethod
    def ok(cls, value: Any) -> "FileOperationResult":
        return cls(kind=ResultKind.OK, value=value)

    @classmethod
    def not_found(cls, message: str) -> "FileOperationResult":
        return cls(kind=ResultKind.NOT_FOUND, message=message)

    @classmethod
    def failure(cls, exc: FileCatalogException) -> "FileOperationResult":
        """Map a raised catalog/storage/validation exception to its result kind"""
        if isinstance(exc, StorageError):
            kind = ResultKind.STORAGE_ERROR
        elif isinstance(exc, CatalogError):
            kind = ResultKind.CATALOG_ERROR
        elif isinstance(exc, FileValidationError):
            kind = ResultKind.VALIDATION_ERROR
        else:
            raise TypeError(f"Unsupported exception type: {type(exc).__name__}")
        return cls(kind=kind, message=str(exc))
