from __future__ import annotations

from typing import Optional


class ServiceError(Exception):
    """Base class for errors the protocol adapter turns into FTP replies.

    Each exception class defines both an FTP ``reply_code`` and a stable
    ``error_code``:
    - not_logged_in (530)
    - unsupported_credentials (504)
    """

    reply_code: int = 550
    error_code: str = "action_not_taken"

    def __init__(
        self,
        message: str,
        *,
        reply_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if reply_code is not None:
            self.reply_code = reply_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class AuthenticationFailed(ServiceError):
    """Unknown user, wrong password, or no anonymous account (530)."""
    reply_code = 530
    error_code = "not_logged_in"


class UnsupportedCredentialKind(ServiceError):
    """Credential presentation the store cannot evaluate (504)."""
    reply_code = 504
    error_code = "unsupported_credentials"


__all__ = [
    "ServiceError",
    "AuthenticationFailed",
    "UnsupportedCredentialKind",
]
