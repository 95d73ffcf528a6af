# Filename: cipherdrive/keys.py
from pathlib import Path
import base64
import binascii
import logging
import os

from .exceptions import KeyManagementError

logger = logging.getLogger(__name__)

KEY_SIZE_BYTES = 32  # AES-256


class KeyManager:
    """
    Owns the process-wide AES key.

    The key is read from `key_path` (base64) or, when the file does not exist,
    generated and written there with owner-only permissions. It is loaded once,
    on construction, and never rotated.
    """

    def __init__(self, key_path: Path):
        self.key_path = Path(key_path)
        self._key = self._load_or_create()

    @property
    def key(self) -> bytes:
        return self._key

    def _load_or_create(self) -> bytes:
        if self.key_path.exists():
            return self._load()
        key = os.urandom(KEY_SIZE_BYTES)
        self._save(key)
        return key

    def _load(self) -> bytes:
        try:
            raw = self.key_path.read_bytes()
            key = base64.b64decode(raw.strip(), validate=True)
        except (OSError, binascii.Error, ValueError) as exc:
            raise KeyManagementError(f"Failed to load encryption key from {self.key_path}") from exc
        if len(key) != KEY_SIZE_BYTES:
            raise KeyManagementError(
                f"Encryption key at {self.key_path} has {len(key)} bytes, expected {KEY_SIZE_BYTES}"
            )
        return key

    def _save(self, key: bytes) -> None:
        try:
            self.key_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as fh:
                fh.write(base64.b64encode(key))
            os.chmod(self.key_path, 0o600)
        except OSError as exc:
            raise KeyManagementError(f"Failed to save encryption key to {self.key_path}") from exc
        logger.info("New encryption key saved to: %s", self.key_path.resolve())
