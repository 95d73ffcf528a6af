# Filename: cipherdrive/crypto.py
from dataclasses import dataclass
from typing import BinaryIO
import io
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .exceptions import DecryptionError, EncryptionError
from .keys import KeyManager

IV_SIZE = 16
CHUNK_SIZE = 8192


@dataclass(frozen=True)
class EncryptionResult:
    ciphertext: bytes
    iv: bytes


class Encryptor:
    """AES-256-CBC with PKCS7 padding, keyed by a KeyManager."""

    def __init__(self, key_manager: KeyManager):
        self._key = key_manager.key

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(iv))

    def encrypt_stream(self, stream: BinaryIO) -> EncryptionResult:
        """
        Encrypt everything readable from `stream` under a fresh random IV.
        The plaintext is consumed in chunks; only the ciphertext is buffered.
        """
        iv = os.urandom(IV_SIZE)
        try:
            encryptor = self._cipher(iv).encryptor()
            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            parts = []
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                parts.append(encryptor.update(padder.update(chunk)))
            parts.append(encryptor.update(padder.finalize()))
            parts.append(encryptor.finalize())
        except (OSError, ValueError, TypeError) as exc:
            raise EncryptionError("Failed to encrypt stream") from exc
        return EncryptionResult(ciphertext=b"".join(parts), iv=iv)

    def encrypt(self, data: bytes) -> EncryptionResult:
        return self.encrypt_stream(io.BytesIO(data))

    def decrypt(self, ciphertext: bytes, iv: bytes) -> bytes:
        if len(iv) != IV_SIZE:
            raise DecryptionError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")
        try:
            decryptor = self._cipher(iv).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as exc:
            # wrong key, wrong IV, truncated or tampered ciphertext
            raise DecryptionError("Failed to decrypt data") from exc
