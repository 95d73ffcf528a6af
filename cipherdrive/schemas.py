# Filename: cipherdrive/schemas.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from .models import AccessLevel, UserRole


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=32)
    email: Optional[str] = None
    password: str = Field(min_length=6)


class CookieLogin(BaseModel):
    username: str
    password: str
    remember: bool = False


class UserOut(BaseModel):
    id: int
    username: str
    email: Optional[str]
    role: UserRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StoredFileOut(BaseModel):
    id: str
    filename: str
    content_type: str
    size: int
    original_size: int
    uploaded_at: datetime
    owner_id: int

    model_config = ConfigDict(from_attributes=True)


class RenameFileRequest(BaseModel):
    new_file_name: str = Field(min_length=1, max_length=255)


class ShareFileRequest(BaseModel):
    username: str = Field(min_length=1)
    read_only: bool = True


class AccessGrantOut(BaseModel):
    id: str
    file_id: str
    user_id: int
    access_level: AccessLevel

    model_config = ConfigDict(from_attributes=True)


class UsageOut(BaseModel):
    used_bytes: int
    quota_bytes: int
    available_bytes: int


class StorageTotalOut(BaseModel):
    total_bytes: int


class CountOut(BaseModel):
    count: int
