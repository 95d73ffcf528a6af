"""Tests for AES-CBC stream encryption."""
import io

import pytest

from cipherdrive.crypto import IV_SIZE, Encryptor
from cipherdrive.exceptions import DecryptionError
from cipherdrive.keys import KeyManager


@pytest.fixture
def encryptor(tmp_path):
    return Encryptor(KeyManager(tmp_path / "encryption.key"))


class TestEncryptor:
    """Test suite for Encryptor."""

    @pytest.mark.parametrize("size", [0, 1, 16, 17, 8192 * 3 + 5])
    def test_encrypt_decrypt_roundtrip(self, encryptor, size):
        data = bytes(i % 251 for i in range(size))

        result = encryptor.encrypt_stream(io.BytesIO(data))

        assert encryptor.decrypt(result.ciphertext, result.iv) == data

    def test_ciphertext_is_padded_to_block_size(self, encryptor):
        result = encryptor.encrypt(b"0123456789abcdef")

        # a full block of plaintext gains a full block of padding
        assert len(result.ciphertext) == 32
        assert len(result.iv) == IV_SIZE

    def test_fresh_iv_per_call(self, encryptor):
        first = encryptor.encrypt(b"same plaintext")
        second = encryptor.encrypt(b"same plaintext")

        assert first.iv != second.iv
        assert first.ciphertext != second.ciphertext

    def test_encrypt_changes_data(self, encryptor):
        data = b"0123456789abcdef" * 4

        result = encryptor.encrypt(data)

        assert data not in result.ciphertext

    def test_truncated_ciphertext_fails(self, encryptor):
        result = encryptor.encrypt(b"some secret content")

        with pytest.raises(DecryptionError):
            encryptor.decrypt(result.ciphertext[:-3], result.iv)

    def test_bad_iv_length_fails(self, encryptor):
        result = encryptor.encrypt(b"some secret content")

        with pytest.raises(DecryptionError):
            encryptor.decrypt(result.ciphertext, result.iv[:8])

    def test_same_key_file_decrypts(self, tmp_path):
        key_path = tmp_path / "encryption.key"
        result = Encryptor(KeyManager(key_path)).encrypt(b"persisted across restarts")

        restarted = Encryptor(KeyManager(key_path))

        assert restarted.decrypt(result.ciphertext, result.iv) == b"persisted across restarts"
