# Filename: cipherdrive/db.py
from fastapi import Request
from sqlmodel import SQLModel, create_engine, Session

from .config import settings, Settings
from .storage_engine import StorageEngine

DATABASE_URL = settings.database_url

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)


def init_db(db_engine=engine) -> None:
    """Create DB tables"""
    SQLModel.metadata.create_all(db_engine)


def create_storage(db_engine=engine, cfg: Settings = settings) -> StorageEngine:
    return StorageEngine.from_settings(db_engine, cfg)


def get_session():
    """Yield a DB session (dependency)."""
    with Session(engine) as session:
        yield session


def get_storage(request: Request) -> StorageEngine:
    """The StorageEngine built at startup (dependency)."""
    return request.app.state.storage
