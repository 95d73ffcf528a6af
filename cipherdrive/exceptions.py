# Filename: cipherdrive/exceptions.py
"""
Errors raised by the storage core.

`client_error` marks failures the caller can correct (bad content, quota,
missing or forbidden file). Everything else is a server-side failure whose
message must not be shown to clients verbatim.
"""
from typing import Optional


def format_megabytes(num_bytes: int) -> str:
    megabytes = num_bytes / (1024.0 * 1024.0)
    if megabytes >= 100:
        return f"{megabytes:.0f} MB"
    if megabytes >= 10:
        return f"{megabytes:.1f} MB"
    return f"{megabytes:.2f} MB"


class StorageError(Exception):
    client_error = False


class InvalidContentError(StorageError):
    client_error = True

    def __init__(
        self,
        message: str,
        detected_type: Optional[str] = None,
        size: Optional[int] = None,
        limit: Optional[int] = None,
    ):
        super().__init__(message)
        self.detected_type = detected_type
        self.size = size
        self.limit = limit

    @property
    def too_large(self) -> bool:
        return self.size is not None and self.limit is not None and self.size > self.limit


class QuotaExceededError(StorageError):
    client_error = True

    def __init__(self, used: int, available: int, requested: int):
        super().__init__(
            "User storage limit exceeded. Used: %s, Available: %s, File size: %s"
            % (format_megabytes(used), format_megabytes(available), format_megabytes(requested))
        )
        self.used = used
        self.available = available
        self.requested = requested


class NotFoundError(StorageError):
    client_error = True


class UserNotFoundError(NotFoundError):
    pass


class AccessDeniedError(StorageError):
    client_error = True


class EncryptionError(StorageError):
    pass


class DecryptionError(EncryptionError):
    pass


class KeyManagementError(EncryptionError):
    pass


class CompressionError(StorageError):
    pass


class DecompressionError(CompressionError):
    pass


class StorageIOError(StorageError):
    pass


class StorageCorruptedError(StorageIOError):
    pass
