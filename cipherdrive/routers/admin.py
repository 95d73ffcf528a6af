# Filename: cipherdrive/routers/admin.py
from fastapi import APIRouter, Depends, Path
from typing import List

from ..auth import require_admin
from ..db import get_storage
from ..schemas import StoredFileOut, StorageTotalOut, CountOut
from ..storage_engine import StorageEngine

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/files", response_model=List[StoredFileOut])
def list_all_files(storage: StorageEngine = Depends(get_storage)):
    return [StoredFileOut.model_validate(f) for f in storage.list_all_files()]


@router.get("/files/count", response_model=CountOut)
def count_files(storage: StorageEngine = Depends(get_storage)):
    return CountOut(count=storage.count_files())


@router.get("/storage", response_model=StorageTotalOut)
def total_storage_used(storage: StorageEngine = Depends(get_storage)):
    return StorageTotalOut(total_bytes=storage.total_storage_used())


@router.get("/large-files/{size}", response_model=List[StoredFileOut])
def large_files(size: int = Path(..., ge=0), storage: StorageEngine = Depends(get_storage)):
    return [StoredFileOut.model_validate(f) for f in storage.files_larger_than(size)]
