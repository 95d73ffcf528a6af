# Filename: cipherdrive/storage.py
from dataclasses import dataclass
from pathlib import Path
import logging
import os
import re

from .crypto import IV_SIZE
from .exceptions import StorageCorruptedError, StorageIOError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(filename: str) -> str:
    if not filename:
        return "unknown"
    return _UNSAFE_CHARS.sub("_", filename.strip())


def make_storage_name(file_id: str, original_filename: str) -> str:
    return f"{file_id}_{sanitize_filename(original_filename)}"


@dataclass(frozen=True)
class StoredBlob:
    iv: bytes
    payload: bytes


class BlobStore:
    """
    Flat directory of encrypted blobs.

    Each blob is `IV || payload` with a fixed 16-byte IV prefix and no other
    framing. Names come from `make_storage_name` and must resolve inside `root`.
    """

    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def init(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError("Could not initialize storage") from exc

    def path_for(self, storage_name: str) -> Path:
        p = (self.root / storage_name).resolve()
        if p.parent != self.root:
            raise StorageIOError(f"Refusing storage name outside the storage root: {storage_name!r}")
        return p

    def write(self, storage_name: str, iv: bytes, payload: bytes) -> int:
        """Write a new blob and return its on-disk length."""
        if len(iv) != IV_SIZE:
            raise StorageIOError(f"IV must be {IV_SIZE} bytes")
        dest_path = self.path_for(storage_name)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            out_file = open(dest_path, "xb")
        except OSError as exc:
            raise StorageIOError("Failed to store encrypted file") from exc
        try:
            with out_file:
                out_file.write(iv)
                out_file.write(payload)
                out_file.flush()
                os.fsync(out_file.fileno())
            return dest_path.stat().st_size
        except OSError as exc:
            self.discard(storage_name)
            raise StorageIOError("Failed to store encrypted file") from exc

    def read(self, storage_name: str) -> StoredBlob:
        p = self.path_for(storage_name)
        try:
            with open(p, "rb") as fh:
                iv = fh.read(IV_SIZE)
                if len(iv) != IV_SIZE:
                    raise StorageCorruptedError(
                        "Could not read full IV from file. File might be corrupted or not properly encrypted."
                    )
                payload = fh.read()
        except FileNotFoundError as exc:
            raise StorageIOError("Stored file not found on disk") from exc
        except OSError as exc:
            raise StorageIOError("Failed to read encrypted file") from exc
        return StoredBlob(iv=iv, payload=payload)

    def exists(self, storage_name: str) -> bool:
        return self.path_for(storage_name).exists()

    def size(self, storage_name: str) -> int:
        try:
            return self.path_for(storage_name).stat().st_size
        except OSError as exc:
            raise StorageIOError("Failed to get file size") from exc

    def delete(self, storage_name: str) -> None:
        try:
            self.path_for(storage_name).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageIOError("Failed to delete file") from exc

    def discard(self, storage_name: str) -> None:
        """Best-effort removal after a failed upload; never raises."""
        try:
            self.delete(storage_name)
        except StorageIOError:
            logger.warning("Failed to clean up partially stored file %s", storage_name, exc_info=True)
