"""Tests for token encryption."""

import base64

import pytest
from cryptography.fernet import Fernet

from duet.core.crypto import TokenCipher
from duet.core.exceptions import DecryptionFailedError

KEY = base64.urlsafe_b64encode(b"0" * 32).decode()
OTHER_KEY = base64.urlsafe_b64encode(b"1" * 32).decode()


def test_encrypt_is_not_plaintext():
    cipher = TokenCipher(KEY)
    encrypted = cipher.encrypt("ya29.secret-token")
    assert isinstance(encrypted, bytes)
    assert b"ya29.secret-token" not in encrypted
    assert cipher.decrypt(encrypted) == "ya29.secret-token"


def test_missing_key_raises():
    with pytest.raises(ValueError, match="TOKEN_ENCRYPTION_KEY"):
        TokenCipher("")


def test_wrong_key_raises_decryption_failed():
    encrypted = TokenCipher(KEY).encrypt("token")
    with pytest.raises(DecryptionFailedError):
        TokenCipher(OTHER_KEY).decrypt(encrypted)


def test_tampered_ciphertext_raises_decryption_failed():
    cipher = TokenCipher(KEY)
    encrypted = bytearray(cipher.encrypt("token"))
    encrypted[-5] ^= 0x01
    with pytest.raises(DecryptionFailedError):
        cipher.decrypt(bytes(encrypted))


def test_rotation_decrypts_with_old_key():
    """A new key prepended to the list still reads tokens written with the old one."""
    old = TokenCipher(KEY).encrypt("token")
    rotated = TokenCipher(f"{OTHER_KEY},{KEY}")
    assert rotated.decrypt(old) == "token"
    # New writes use the first key
    assert Fernet(OTHER_KEY.encode()).decrypt(rotated.encrypt("new")) == b"new"
