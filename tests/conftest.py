"""Pytest fixtures for CipherDrive tests."""
import os

os.environ.setdefault("CIPHERDRIVE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("CIPHERDRIVE_DATABASE_URL", "sqlite://")

import pytest
from sqlmodel import SQLModel, Session, create_engine

from cipherdrive.config import Settings
from cipherdrive.models import StoredFile, User, UserRole
from cipherdrive.storage_engine import StorageEngine


@pytest.fixture
def settings(tmp_path):
    """Settings pointing every path into a temporary directory."""
    return Settings(
        secret_key="test-secret-key",
        database_url=f"sqlite:///{tmp_path / 'metadata.db'}",
        storage_path=tmp_path / "files",
        key_file_path=tmp_path / "config" / "encryption.key",
        max_upload_size_bytes=64 * 1024,
        max_storage_per_user_bytes=1024 * 1024,
    )


@pytest.fixture
def db_engine(settings):
    engine = create_engine(settings.database_url, connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def storage(db_engine, settings):
    return StorageEngine.from_settings(db_engine, settings)


@pytest.fixture
def make_user(db_engine):
    """Factory that inserts a user row and returns it."""

    def _make(username, role=UserRole.USER):
        with Session(db_engine) as session:
            user = User(username=username, hashed_password="not-a-real-hash", role=role)
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    return _make


@pytest.fixture
def alice(make_user):
    return make_user("alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob")


@pytest.fixture
def carol(make_user):
    return make_user("carol")


@pytest.fixture
def add_stored_row(db_engine):
    """Insert a metadata row directly, without any bytes on disk."""

    def _add(owner, size, filename="existing.txt"):
        with Session(db_engine) as session:
            row = StoredFile(
                filename=filename,
                content_type="text/plain",
                size=size,
                original_size=size,
                owner_id=owner.id,
            )
            row.storage_path = f"{row.id}_{filename}"
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    return _add
