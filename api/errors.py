"""Translate domain errors into HTTP responses."""

import logging
from typing import NoReturn

from fastapi import HTTPException

from duet.core.exceptions import DecryptionFailedError, DuetError

logger = logging.getLogger(__name__)


def raise_http(error: DuetError) -> NoReturn:
    if isinstance(error, DecryptionFailedError):
        logger.error("Token decryption failed; check TOKEN_ENCRYPTION_KEY rotation")
    raise HTTPException(
        status_code=error.status_code,
        detail={"code": error.code, "message": str(error)},
    ) from error
