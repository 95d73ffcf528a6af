# Filename: cipherdrive/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from pathlib import Path
from typing import Literal, Optional, Set


DEFAULT_ALLOWED_CONTENT_TYPES = {
    "application/pdf",
    "text/plain",
    "image/jpeg",
    "image/png",
    "application/json",
}


class Settings(BaseSettings):
    # Core
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    app_name: str = "CipherDrive"
    app_version: str = "0.1.0"

    secret_key: str = Field(..., description="JWT secret key - required")
    access_token_expire_minutes: int = 1440
    jwt_algorithm: str = "HS256"

    database_url: str = Field(..., description="Database connection string")

    # Encrypted backing store
    storage_path: Path = Path("./data/files")
    key_file_path: Path = Path("./config/encryption.key")
    max_upload_size_bytes: int = 10 * 1024 * 1024
    max_storage_per_user_bytes: int = 100 * 1024 * 1024
    allowed_content_types: Set[str] = Field(default_factory=lambda: set(DEFAULT_ALLOWED_CONTENT_TYPES))

    # Optional admin created on startup
    admin_username: Optional[str] = None
    admin_password: Optional[str] = None
    admin_email: Optional[str] = None

    cors_allow_origins: str = "*"
    cors_allow_credentials: bool = True
    cors_allow_methods: str = "*"
    cors_allow_headers: str = "*"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="CIPHERDRIVE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
