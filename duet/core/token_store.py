"""Encrypted-at-rest OAuth token storage on ExternalAccount rows."""

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

from duet.core.config import settings
from duet.core.crypto import TokenCipher
from duet.core.models.external_account import ExternalAccount


@dataclass(frozen=True)
class StoredTokens:
    access_token: str
    refresh_token: str | None


class TokenStore:
    """Reads and writes the encrypted token columns of an ExternalAccount.

    The cipher is injected so tests can run with a fixed key. Persisting the
    row is the caller's job.
    """

    def __init__(self, cipher: TokenCipher):
        self._cipher = cipher

    def save_tokens(
        self,
        account: ExternalAccount,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
        scope: str | None = None,
    ) -> None:
        account.access_token_encrypted = self._cipher.encrypt(access_token)
        # Google omits the refresh token on repeat consent and on most refreshes
        if refresh_token:
            account.refresh_token_encrypted = self._cipher.encrypt(refresh_token)
        account.token_expires_at = expires_at
        if scope is not None:
            account.scope = scope

    def load_tokens(self, account: ExternalAccount) -> StoredTokens:
        refresh_token = None
        if account.refresh_token_encrypted:
            refresh_token = self._cipher.decrypt(account.refresh_token_encrypted)
        return StoredTokens(
            access_token=self._cipher.decrypt(account.access_token_encrypted),
            refresh_token=refresh_token,
        )


@lru_cache(maxsize=1)
def get_token_store() -> TokenStore:
    """FastAPI dependency: token store keyed from process configuration."""
    return TokenStore(TokenCipher(settings.token_encryption_key))
