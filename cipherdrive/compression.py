# Filename: cipherdrive/compression.py
import gzip
import io
import zlib

from .exceptions import CompressionError, DecompressionError

CHUNK_SIZE = 8192


class Compressor:
    """gzip codec applied to ciphertext before it is written to disk."""

    def __init__(self, level: int = 9):
        self.level = level

    def compress(self, data: bytes) -> bytes:
        buffer = io.BytesIO()
        try:
            with gzip.GzipFile(fileobj=buffer, mode="wb", compresslevel=self.level, mtime=0) as gz:
                view = memoryview(data)
                for start in range(0, len(view), CHUNK_SIZE):
                    gz.write(view[start:start + CHUNK_SIZE])
        except (OSError, ValueError) as exc:
            raise CompressionError("Failed to compress data") from exc
        return buffer.getvalue()

    def decompress(self, data: bytes) -> bytes:
        out = io.BytesIO()
        try:
            with gzip.GzipFile(fileobj=io.BytesIO(data), mode="rb") as gz:
                while True:
                    chunk = gz.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    out.write(chunk)
        except (OSError, EOFError, zlib.error) as exc:
            raise DecompressionError("Failed to decompress data") from exc
        return out.getvalue()
