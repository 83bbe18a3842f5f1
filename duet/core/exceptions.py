"""Exception hierarchy for Duet.

Every error carries a stable ``code`` and the HTTP ``status_code`` the API
layer answers with.
"""


class DuetError(Exception):
    """Base exception for all Duet errors."""

    code = "error"
    status_code = 500


class NotConnectedError(DuetError):
    """User has no linked Google Calendar account."""

    code = "not_connected"
    status_code = 404


class RevokedError(DuetError):
    """Provider access was revoked; only a full OAuth reconnect recovers."""

    code = "revoked"
    status_code = 403


class ReauthorizationRequiredError(RevokedError):
    """Refresh token was rejected (invalid_grant) or is missing."""


class OAuthFlowError(DuetError):
    """Authorization-code flow failed."""

    code = "oauth_error"
    status_code = 400


class StateMismatchError(OAuthFlowError):
    """Callback state does not match the state cookie."""

    code = "state_mismatch"


class UserCancelledError(OAuthFlowError):
    """User declined the consent screen."""

    code = "cancelled"


class TokenExchangeFailedError(OAuthFlowError):
    """Token endpoint rejected the authorization code."""

    code = "token_exchange_failed"


class DecryptionFailedError(DuetError):
    """Stored token could not be decrypted with the configured keys."""

    code = "decryption_failed"
    status_code = 500


class ProviderError(DuetError):
    """Transient provider failure: network, timeout, rate limit, 5xx."""

    code = "provider_error"
    status_code = 502

    def __init__(self, message: str, *, upstream_status: int | None = None) -> None:
        self.upstream_status = upstream_status
        super().__init__(message)


class CalendarNotFoundError(DuetError):
    code = "calendar_not_found"
    status_code = 404


class AvailabilityBlockNotFoundError(DuetError):
    code = "availability_block_not_found"
    status_code = 404


class NotASpaceMemberError(DuetError):
    code = "forbidden"
    status_code = 403


class ValidationError(DuetError):
    """Data validation failed."""

    code = "validation_error"
    status_code = 422
