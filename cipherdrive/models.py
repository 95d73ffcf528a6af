# Filename: cipherdrive/models.py
from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class AccessLevel(str, Enum):
    VIEW = "VIEW"
    OWNER = "OWNER"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: Optional[str] = Field(default=None, index=True)
    hashed_password: str
    role: UserRole = Field(default=UserRole.USER, nullable=False)
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class StoredFile(SQLModel, table=True):
    __tablename__ = "stored_file"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    filename: str
    content_type: str
    size: int = Field(default=0, ge=0)  # bytes on disk: IV + compressed ciphertext
    original_size: int = Field(default=0, ge=0)
    uploaded_at: datetime = Field(default_factory=_utcnow, index=True)
    storage_path: str = Field(unique=True)
    owner_id: int = Field(foreign_key="user.id", index=True)


class AccessGrant(SQLModel, table=True):
    __tablename__ = "access_grant"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    file_id: str = Field(foreign_key="stored_file.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    access_level: AccessLevel = Field(nullable=False)
