"""
Metadata catalog for file records
"""

from typing import Mapping, Sequence
from pydantic import TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from api.files.errors import CatalogError, FileValidationError
from api.files.models import FileInfo, FILTERABLE_FIELDS, MAX_INT64, MIN_INT64

# Accept both snake_case and camelCase names in filters
_FILTER_NAMES = {name: name for name in FILTERABLE_FIELDS} | {
    to_camel(name): name for name in FILTERABLE_FIELDS
}


def _fits_column(value: int) -> bool:
    return MIN_INT64 <= value <= MAX_INT64


def _build_conditions(filters: Mapping[str, str]) -> list:
    """Turn {field: value} pairs into equality conditions on FileInfo"""
    conditions = []
    for key, raw_value in filters.items():
        field = _FILTER_NAMES.get(key)
        if field is None:
            raise FileValidationError(f"Cannot filter files by '{key}'")
        annotation = FileInfo.model_fields[field].annotation
        try:
            value = TypeAdapter(annotation).validate_python(raw_value)
        except ValidationError as exc:
            raise FileValidationError(
                f"Invalid value '{raw_value}' for filter '{key}'"
            ) from exc
        if isinstance(value, int) and not _fits_column(value):
            raise FileValidationError(f"Invalid value '{raw_value}' for filter '{key}'")
        conditions.append(getattr(FileInfo, field) == value)
    return conditions


class FileCatalog:
    """Stores FileInfo records in the database"""

    def __init__(self, session: Session):
        self.session = session

    def insert(self, record: FileInfo) -> FileInfo:
        """Insert a new record, the database assigns its id"""
        try:
            self.session.add(record)
            self.session.commit()
            self.session.refresh(record)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise CatalogError(f"Failed to add file record: {exc}") from exc
        return record

    def upsert(self, record: FileInfo) -> FileInfo:
        """Insert the record or replace the one with the same id"""
        try:
            merged = self.session.merge(record)
            self.session.commit()
            self.session.refresh(merged)
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise CatalogError(f"Failed to update file record: {exc}") from exc
        return merged

    def get(self, file_id: int) -> FileInfo | None:
        if not _fits_column(file_id):
            # No record can have an id the database cannot store
            return None
        try:
            return self.session.get(FileInfo, file_id)
        except SQLAlchemyError as exc:
            raise CatalogError(f"Failed to get file record {file_id}: {exc}") from exc

    def delete(self, file_id: int) -> FileInfo | None:
        """Delete a record, returning a copy of it or None if it did not exist"""
        record = self.get(file_id)
        if record is None:
            return None
        removed = FileInfo(**record.model_dump())
        try:
            self.session.delete(record)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise CatalogError(f"Failed to remove file record {file_id}: {exc}") from exc
        return removed

    def list(self, filters: Mapping[str, str] | None = None) -> Sequence[FileInfo]:
        """
        List records matching every filter (field == value).

        Raises:
            FileValidationError: If a filter names an unknown field or has
                a value of the wrong type
        """
        statement = select(FileInfo)
        if filters:
            statement = statement.where(*_build_conditions(filters))
        statement = statement.order_by(FileInfo.id)
        try:
            return self.session.exec(statement).all()
        except SQLAlchemyError as exc:
            raise CatalogError(f"Failed to list file records: {exc}") from exc
