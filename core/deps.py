"""
Define functions/aliases for dependency injection
"""
from collections.abc import Generator
from typing import Annotated, TypeAlias
from sqlmodel import Session
from fastapi import Depends
import boto3

from api.files.catalog import FileCatalog
from api.files.services import FileAssetManager
from api.files.storage import BlobStore, build_blob_store
from core.config import get_settings
from core.db import get_engine

# Define db dependency
def get_db() -> Generator[Session, None, None]:
  with Session(get_engine()) as session:
    yield session

# S3 client, only created when blobs are kept in S3
def get_s3_client():
  settings = get_settings()
  if settings.STORAGE_BACKEND.lower() != "s3":
    return None
  return boto3.client(
    "s3",
    region_name=settings.AWS_REGION,
    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
  )

def get_blob_store(s3_client=Depends(get_s3_client)) -> BlobStore:
  return build_blob_store(get_settings(), s3_client=s3_client)

SessionDep: TypeAlias = Annotated[Session, Depends(get_db)]
BlobStoreDep: TypeAlias = Annotated[BlobStore, Depends(get_blob_store)]

def get_file_manager(session: SessionDep, blob_store: BlobStoreDep) -> FileAssetManager:
  return FileAssetManager(catalog=FileCatalog(session), blob_store=blob_store)

FileManagerDep: TypeAlias = Annotated[FileAssetManager, Depends(get_file_manager)]
