from __future__ import annotations

from typing import Any, Dict, Optional


class StoreError(Exception):
    """Base class for credential store failures."""

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class InvalidAccount(StoreError):
    """Raised when an account record handed to the store is malformed."""


class AccountFileNotFound(StoreError):
    """Raised when the account file is missing or not a regular file."""


class InvalidAccountFile(StoreError):
    """Raised when the account file is not a JSON object of account records."""


__all__ = [
    "StoreError",
    "InvalidAccount",
    "AccountFileNotFound",
    "InvalidAccountFile",
]
