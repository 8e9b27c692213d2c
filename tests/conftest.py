import io
import os
from datetime import datetime, timezone

# Must be set before the application modules read their settings
os.environ.setdefault("SETTINGS_MODE", "test")

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool

from api.files.catalog import FileCatalog
from api.files.services import CleanupEvent, FileAssetManager
from api.files.storage import LocalBlobStore
from core.deps import get_db, get_blob_store
from main import app


class MockS3Paginator:
    """Mock S3 paginator for list_objects_v2"""

    def __init__(self, client):
        self.client = client

    def paginate(self, Bucket: str, Prefix: str = ""):
        """Return a single page with every object under the prefix"""
        self.client.check_error("ListObjectsV2")
        contents = [
            {"Key": key, "LastModified": last_modified, "Size": len(data)}
            for (bucket, key), (data, last_modified) in sorted(self.client.objects.items())
            if bucket == Bucket and key.startswith(Prefix)
        ]
        page = {}
        if contents:
            page["Contents"] = contents
        yield page


class MockS3Client:
    """Mock S3 client for testing"""

    def __init__(self):
        # {(bucket, key): (data, last_modified)}
        self.objects = {}
        self.error_mode = None  # For simulating errors

    def check_error(self, operation: str):
        if self.error_mode == "AccessDenied":
            raise ClientError(
                {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
                operation,
            )

    def put(self, bucket: str, key: str, data: bytes, last_modified: datetime | None = None):
        """Place an object directly in the mock bucket"""
        self.objects[(bucket, key)] = (data, last_modified or datetime.now(timezone.utc))

    def upload_fileobj(self, Fileobj, Bucket: str, Key: str):
        self.check_error("PutObject")
        self.put(Bucket, Key, Fileobj.read())

    def get_object(self, Bucket: str, Key: str):
        self.check_error("GetObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        data, last_modified = self.objects[(Bucket, Key)]
        return {"Body": io.BytesIO(data), "LastModified": last_modified}

    def head_object(self, Bucket: str, Key: str):
        self.check_error("HeadObject")
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        data, last_modified = self.objects[(Bucket, Key)]
        return {"ContentLength": len(data), "LastModified": last_modified}

    def delete_object(self, Bucket: str, Key: str):
        self.check_error("DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}

    def get_paginator(self, operation: str):
        """Return a mock paginator"""
        if operation == "list_objects_v2":
            return MockS3Paginator(self)
        raise NotImplementedError(f"Paginator for {operation} not implemented")

    def simulate_error(self, error_type: str):
        """
        Configure client to raise specific errors

        Args:
            error_type: Currently only "AccessDenied"
        """
        self.error_mode = error_type


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="mock_s3_client")
def mock_s3_client_fixture():
    """Provide a mock S3 client for testing"""
    return MockS3Client()


@pytest.fixture(name="blob_store")
def blob_store_fixture(tmp_path):
    """Local blob store rooted in a temporary directory"""
    return LocalBlobStore(tmp_path / "storage")


@pytest.fixture(name="cleanup_events")
def cleanup_events_fixture():
    """Collects cleanup events emitted by file_manager"""
    return []


@pytest.fixture(name="file_manager")
def file_manager_fixture(
    session: Session,
    blob_store: LocalBlobStore,
    cleanup_events: list[CleanupEvent],
):
    return FileAssetManager(
        catalog=FileCatalog(session),
        blob_store=blob_store,
        cleanup_listener=cleanup_events.append,
    )


@pytest.fixture(name="client")
def client_fixture(session: Session, blob_store: LocalBlobStore):
    def get_db_override():
        return session

    def get_blob_store_override():
        return blob_store

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_blob_store] = get_blob_store_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
