"""Token encryption helpers using Fernet symmetric encryption."""

import logging

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from duet.core.exceptions import DecryptionFailedError

logger = logging.getLogger(__name__)


class TokenCipher:
    """Authenticated encryption for OAuth tokens.

    ``keys`` is one or more Fernet keys. The first key encrypts; every key is
    tried on decrypt so keys can be rotated by prepending a new one.
    """

    def __init__(self, keys: str | list[str]):
        if isinstance(keys, str):
            keys = [k.strip() for k in keys.split(",") if k.strip()]
        if not keys:
            raise ValueError(
                "TOKEN_ENCRYPTION_KEY env var is required for token encryption. "
                'Generate one with: python -c "from cryptography.fernet import Fernet; '
                'print(Fernet.generate_key().decode())"'
            )
        self._fernet = MultiFernet([Fernet(k.encode()) for k in keys])

    def encrypt(self, plaintext: str) -> bytes:
        """Encrypt a token for storage."""
        return self._fernet.encrypt(plaintext.encode())

    def decrypt(self, ciphertext: bytes) -> str:
        """Decrypt a stored token. Raises DecryptionFailedError on any mismatch."""
        try:
            return self._fernet.decrypt(ciphertext).decode()
        except (InvalidToken, TypeError, UnicodeDecodeError) as e:
            logger.error("Stored OAuth token could not be decrypted: %s", type(e).__name__)
            raise DecryptionFailedError(
                "Stored token could not be decrypted with the configured keys"
            ) from e
