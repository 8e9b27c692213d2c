"""
Routes/endpoints for the Files API

HTTP   URI                                 Action
----   ---                                 ------
GET    /api/v1/files                       List files, query parameters filter by field
POST   /api/v1/files                       Upload a file with its metadata
PUT    /api/v1/files                       Replace the content and metadata of a file
GET    /api/v1/files/[id]                  Retrieve metadata of a specific file
DELETE /api/v1/files/[id]                  Remove a file and its content
GET    /api/v1/files/download/[id]         Download the content of a file

Uploads are multipart requests with the content in a "file" part and the
metadata as JSON in a "fileInfo" part, e.g.

    curl -X POST -F file=@user-lib.jar \\
         -F 'fileInfo={"name":"jar-1","version":1};type=application/json' \\
         http://localhost:8000/api/v1/files
"""

from typing import BinaryIO, Iterator
from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from pydantic import ValidationError

from api.files.errors import FileOperationResult, ResultKind
from api.files.models import FileInfo, FileInfoIn, FileInfoPublic
from core.deps import FileManagerDep

router = APIRouter(prefix="/files", tags=["File Endpoints"])

DOWNLOAD_CHUNK_SIZE = 64 * 1024

_ERROR_STATUS = {
    ResultKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ResultKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ResultKind.STORAGE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ResultKind.CATALOG_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _unwrap(result: FileOperationResult):
    """Return the value of a successful result or raise the matching HTTP error"""
    if result.is_ok:
        return result.value
    raise HTTPException(
        status_code=_ERROR_STATUS[result.kind],
        detail=result.message,
    )


def _parse_file_info(file_info: str) -> FileInfo:
    try:
        info_in = FileInfoIn.model_validate_json(file_info)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    return FileInfo(**info_in.model_dump())


def _iter_stream(stream: BinaryIO) -> Iterator[bytes]:
    try:
        for chunk in iter(lambda: stream.read(DOWNLOAD_CHUNK_SIZE), b""):
            yield chunk
    finally:
        stream.close()


@router.get(
    "",
    response_model=list[FileInfoPublic],
    status_code=status.HTTP_200_OK,
    tags=["File Endpoints"],
)
def list_files(request: Request, manager: FileManagerDep):
    """
    List files. Every query parameter is an equality filter on a file
    field, e.g. ?name=jar-1&version=2
    """
    filters = dict(request.query_params) or None
    records = _unwrap(manager.list_files(filters))
    return [FileInfoPublic.model_validate(record) for record in records]


@router.post(
    "",
    response_model=FileInfoPublic,
    status_code=status.HTTP_201_CREATED,
    tags=["File Endpoints"],
)
def add_file(
    manager: FileManagerDep,
    file: UploadFile = File(..., description="File content"),
    file_info: str = Form(..., alias="fileInfo", description="File metadata as JSON"),
):
    """
    Upload a file to the configured storage and add a catalog entry for it.
    """
    info = _parse_file_info(file_info)
    record = _unwrap(manager.add_file(file.file, info))
    return FileInfoPublic.model_validate(record)


@router.put(
    "",
    response_model=FileInfoPublic,
    status_code=status.HTTP_201_CREATED,
    tags=["File Endpoints"],
)
def update_file(
    manager: FileManagerDep,
    file: UploadFile = File(..., description="File content"),
    file_info: str = Form(..., alias="fileInfo", description="File metadata as JSON, id is required"),
):
    """
    Replace the content and metadata of an existing file.
    """
    info = _parse_file_info(file_info)
    record = _unwrap(manager.update_file(file.file, info))
    return FileInfoPublic.model_validate(record)


@router.get(
    "/download/{file_id}",
    response_class=StreamingResponse,
    tags=["File Endpoints"],
)
def download_file(file_id: int, manager: FileManagerDep) -> StreamingResponse:
    """
    Download the content of a file as a stream.
    """
    download = _unwrap(manager.download_file(file_id))
    # Stored names only contain [A-Za-z0-9._-], safe for the header
    filename = download.record.stored_file_name
    return StreamingResponse(
        _iter_stream(download.stream),
        media_type="application/octet-stream",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"'
        },
        # Also closes the stream when the body is never iterated
        background=BackgroundTask(download.stream.close),
    )


@router.get(
    "/{file_id}",
    response_model=FileInfoPublic,
    status_code=status.HTTP_200_OK,
    tags=["File Endpoints"],
)
def get_file(file_id: int, manager: FileManagerDep):
    """
    Retrieve a specific file by ID.
    """
    record = _unwrap(manager.get_file(file_id))
    return FileInfoPublic.model_validate(record)


@router.delete(
    "/{file_id}",
    response_model=FileInfoPublic,
    status_code=status.HTTP_200_OK,
    tags=["File Endpoints"],
)
def remove_file(file_id: int, manager: FileManagerDep):
    """
    Remove a file entry and delete its content from storage.
    """
    record = _unwrap(manager.remove_file(file_id))
    return FileInfoPublic.model_validate(record)
