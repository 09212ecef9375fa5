"""Salted one-way password hashing for account records.

New hashes are argon2id strings, which embed their own salt and cost
parameters. Account files written by the older Java-based server hold
``<seed>:<HEX>`` values (1000 rounds of MD5 over seed + password); those
are still verified so such files keep working, but never produced.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from typing import Optional

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError, VerifyMismatchError

from ftphooks.logging import get_logger

logger = get_logger(__name__)

LEGACY_HASH_ROUNDS = 1000


def _legacy_digest(password: str, seed: str) -> str:
    digest = seed + password
    for _ in range(LEGACY_HASH_ROUNDS):
        digest = hashlib.md5(digest.encode("utf-8")).hexdigest().upper()
    return f"{seed}:{digest}"


# ASCII only: hmac.compare_digest rejects non-ASCII str
_LEGACY_HASH = re.compile(r"[0-9]+:[0-9A-Fa-f]{32}")


def is_legacy_hash(stored: str) -> bool:
    return _LEGACY_HASH.fullmatch(stored) is not None


class PasswordEncryptor:
    """Hashes and verifies account passwords."""

    def __init__(
        self,
        *,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
        allow_legacy: bool = True,
    ) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )
        self.allow_legacy = allow_legacy

    def encrypt(self, password: str) -> str:
        return self._hasher.hash(password)

    def matches(self, password: Optional[str], stored: Optional[str]) -> bool:
        if not stored or not isinstance(stored, str):
            return False
        password = password or ""
        if stored.startswith("$argon2"):
            try:
                return self._hasher.verify(stored, password)
            except (InvalidHash, VerifyMismatchError, VerificationError):
                return False
        if is_legacy_hash(stored):
            if not self.allow_legacy:
                logger.warning("legacy_password_hash_rejected")
                return False
            seed = stored.partition(":")[0]
            return hmac.compare_digest(_legacy_digest(password, seed), stored.upper())
        logger.warning("password_hash_unrecognized")
        return False

    def needs_rehash(self, stored: str) -> bool:
        """True for legacy hashes and argon2 hashes made with other parameters."""
        if is_legacy_hash(stored):
            return True
        try:
            return self._hasher.check_needs_rehash(stored)
        except InvalidHash:
            return True


def encrypt_password(password: str) -> str:
    """Hash ``password`` for storage in an account record."""
    return PasswordEncryptor().encrypt(password)
