# Filename: cipherdrive/validation.py
from dataclasses import dataclass
from typing import BinaryIO, Iterable, Optional
import io
import os

import magic

from .exceptions import InvalidContentError

SNIFF_BYTES = 2048


@dataclass(frozen=True)
class ValidatedContent:
    content_type: str
    size: int


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024.0:.1f} KB"
    if num_bytes < 1024 * 1024 * 1024:
        return f"{num_bytes / (1024.0 * 1024.0):.1f} MB"
    return f"{num_bytes / (1024.0 * 1024.0 * 1024.0):.1f} GB"


def stream_size(stream: BinaryIO) -> int:
    """Size of a seekable stream; the position is reset to the start."""
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(0)
    return size


class FileValidator:
    """
    Rejects empty, unnamed, oversized, or disallowed uploads.

    The content type is sniffed from the leading bytes with libmagic; the
    client-declared filename and content-type are never trusted for this.
    """

    def __init__(self, max_size: int, allowed_types: Iterable[str]):
        self.max_size = max_size
        self.allowed_types = frozenset(allowed_types)

    def detect_type(self, head: bytes) -> str:
        return magic.from_buffer(head, mime=True)

    def validate(self, content: BinaryIO, filename: Optional[str]) -> ValidatedContent:
        if isinstance(content, (bytes, bytearray)):
            content = io.BytesIO(content)
        if filename is None or not filename.strip():
            raise InvalidContentError("File must have a valid filename")

        size = stream_size(content)
        if size == 0:
            raise InvalidContentError("Cannot store empty file", size=0)

        head = content.read(SNIFF_BYTES)
        content.seek(0)
        detected = self.detect_type(head)
        if detected not in self.allowed_types:
            raise InvalidContentError(f"File type not allowed: {detected}", detected_type=detected)

        if size > self.max_size:
            raise InvalidContentError(
                "File too large. Maximum allowed size: %s, actual size: %s"
                % (format_file_size(self.max_size), format_file_size(size)),
                detected_type=detected,
                size=size,
                limit=self.max_size,
            )
        return ValidatedContent(content_type=detected, size=size)
