"""
Models for the Files API
"""

from typing import Any
from sqlalchemy import BigInteger, Column, JSON
from sqlmodel import SQLModel, Field
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

# Range of the 64-bit INTEGER columns
MIN_INT64 = -(2**63)
MAX_INT64 = 2**63 - 1


class FileInfo(SQLModel, table=True):
    """
    Metadata record for a file whose content lives in the blob store.

    stored_file_name and timestamp are owned by the file manager;
    every other field comes from the caller.
    """

    id: int | None = Field(default=None, primary_key=True)
    name: str | None = Field(default=None, max_length=255, index=True)
    class_name: str | None = Field(default=None, max_length=255)
    stored_file_name: str | None = Field(default=None, max_length=1024, unique=True)
    version: int | None = None
    timestamp: int | None = Field(default=None, sa_column=Column(BigInteger))  # epoch millis
    auxiliary_info: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))

    model_config = ConfigDict(from_attributes=True)


# Fields that can be used as equality filters when listing files
FILTERABLE_FIELDS = (
    "id",
    "name",
    "class_name",
    "stored_file_name",
    "version",
    "timestamp",
)


class FileInfoIn(SQLModel):
    """
    Metadata sent with an upload (the fileInfo part).

    storedFileName and timestamp are not accepted from callers and are
    silently dropped.
    """

    id: int | None = None
    name: str | None = None
    class_name: str | None = None
    version: int | None = Field(default=None, ge=MIN_INT64, le=MAX_INT64)
    auxiliary_info: dict[str, Any] | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class FileInfoPublic(SQLModel):
    """Public file representation"""

    id: int
    name: str | None = None
    class_name: str | None = None
    stored_file_name: str | None = None
    version: int | None = None
    timestamp: int | None = None
    auxiliary_info: dict[str, Any] | None = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
