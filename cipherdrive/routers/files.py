# Filename: cipherdrive/routers/files.py
from fastapi import APIRouter, Depends, UploadFile, File, status, Query, Response
from typing import List, Optional
import logging
import re
from urllib.parse import quote

from ..models import User
from ..schemas import StoredFileOut, RenameFileRequest, ShareFileRequest, AccessGrantOut, UsageOut
from ..auth import get_current_user
from ..db import get_storage
from ..storage_engine import StorageEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["files"])


def _content_disposition(filename: Optional[str]) -> str:
    """`attachment` header with an ASCII fallback name and an RFC 5987 UTF-8 name."""
    name = filename or "download"
    fallback = re.sub(r'[^\x20-\x7e]|["\\]', "_", name)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


@router.post("/files", response_model=StoredFileOut, status_code=status.HTTP_201_CREATED)
def upload_file(
    upload: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    storage: StorageEngine = Depends(get_storage),
):
    logger.debug('Uploading file: "%s" for user: %s', upload.filename, current_user.username)
    try:
        stored = storage.upload_file(upload.file, upload.filename, current_user)
    finally:
        upload.file.close()
    return StoredFileOut.model_validate(stored)


@router.get("/files", response_model=List[StoredFileOut])
def list_files(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    keyword: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    storage: StorageEngine = Depends(get_storage),
):
    results = storage.list_accessible(current_user, keyword=keyword, limit=limit, offset=offset)
    return [StoredFileOut.model_validate(f) for f in results]


@router.get("/files/shared", response_model=List[StoredFileOut])
def list_shared_files(
    read_only: bool = False,
    current_user: User = Depends(get_current_user),
    storage: StorageEngine = Depends(get_storage),
):
    return [StoredFileOut.model_validate(f) for f in storage.list_shared_with(current_user, read_only=read_only)]


@router.get("/files/{file_id}", response_model=StoredFileOut)
def get_file_metadata(file_id: str, current_user: User = Depends(get_current_user), storage: StorageEngine = Depends(get_storage)):
    return StoredFileOut.model_validate(storage.get_metadata(file_id, current_user))


@router.get("/files/{file_id}/download")
def download_file(file_id: str, current_user: User = Depends(get_current_user), storage: StorageEngine = Depends(get_storage)):
    logger.debug("Downloading file: %s by user: %s", file_id, current_user.username)
    downloaded = storage.download_file(file_id, current_user)
    headers = {"Content-Disposition": _content_disposition(downloaded.filename)}
    return Response(content=downloaded.content, media_type=downloaded.content_type, headers=headers)


@router.patch("/files/{file_id}/rename", response_model=StoredFileOut)
def rename_file(
    file_id: str,
    rename_request: RenameFileRequest,
    current_user: User = Depends(get_current_user),
    storage: StorageEngine = Depends(get_storage),
):
    logger.debug('Renaming file: %s to: "%s"', file_id, rename_request.new_file_name)
    return StoredFileOut.model_validate(storage.rename_file(file_id, rename_request.new_file_name, current_user))


@router.delete("/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_file(file_id: str, current_user: User = Depends(get_current_user), storage: StorageEngine = Depends(get_storage)):
    logger.debug("Deleting file: %s by user: %s", file_id, current_user.username)
    storage.delete_file(file_id, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/files/{file_id}/share", response_model=AccessGrantOut, status_code=status.HTTP_201_CREATED)
def share_file(
    file_id: str,
    share_request: ShareFileRequest,
    current_user: User = Depends(get_current_user),
    storage: StorageEngine = Depends(get_storage),
):
    access_grant = storage.share_file(file_id, share_request.username, share_request.read_only, current_user)
    return AccessGrantOut.model_validate(access_grant)


@router.delete("/files/{file_id}/share/{username}", status_code=status.HTTP_204_NO_CONTENT)
def revoke_share(
    file_id: str,
    username: str,
    current_user: User = Depends(get_current_user),
    storage: StorageEngine = Depends(get_storage),
):
    storage.revoke_access(file_id, username, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/usage", response_model=UsageOut)
def get_usage(current_user: User = Depends(get_current_user), storage: StorageEngine = Depends(get_storage)):
    usage = storage.usage(current_user)
    return UsageOut(used_bytes=usage.used, quota_bytes=usage.quota, available_bytes=usage.available)
