from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ftphooks.storage.errors import InvalidAccount

# attribute name -> key used in the account file, in the order records are written
RECORD_KEYS: Dict[str, str] = {
    "name": "name",
    "password": "password",
    "home_directory": "homeDirectory",
    "enabled": "isEnabled",
    "can_write": "canWrite",
    "max_logins": "maxLogin",
    "max_logins_per_address": "maxLoginPerIp",
    "download_rate": "downloadRate",
    "upload_rate": "uploadRate",
    "max_idle_seconds": "maxIdleTime",
}

_LIMIT_FIELDS = (
    "max_logins",
    "max_logins_per_address",
    "download_rate",
    "upload_rate",
    "max_idle_seconds",
)


@dataclass(frozen=True)
class TransferLimits:
    download: int = 0
    upload: int = 0


@dataclass
class Account:
    """An FTP user identity. Zero limits mean unlimited."""

    name: str
    password: Optional[str] = None
    home_directory: Optional[str] = None
    enabled: bool = False
    can_write: bool = True
    max_logins: int = 0
    max_logins_per_address: int = 0
    download_rate: int = 0
    upload_rate: int = 0
    max_idle_seconds: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any], name: Optional[str] = None) -> "Account":
        """Build an account from a file record, applying defaults for absent keys.

        ``name`` is used when the record itself carries no name, which is
        the case for records keyed only by the enclosing mapping.
        """
        if not isinstance(record, Mapping):
            raise InvalidAccount(
                "account record must be an object", detail={"name": name}
            )
        account_name = record.get("name", name)
        if account_name is None or not isinstance(account_name, str):
            raise InvalidAccount(
                "account name is missing or not a string",
                detail={"name": account_name},
            )
        limits = {
            attr: _non_negative_int(record.get(RECORD_KEYS[attr]), attr, account_name)
            for attr in _LIMIT_FIELDS
        }
        known = set(RECORD_KEYS.values())
        return cls(
            name=account_name,
            password=record.get("password"),
            home_directory=record.get("homeDirectory"),
            enabled=record.get("isEnabled") is True,
            can_write=record.get("canWrite") is not False,
            extra={k: v for k, v in record.items() if k not in known},
            **limits,
        )

    def to_record(self) -> Dict[str, Any]:
        record = {key: getattr(self, attr) for attr, key in RECORD_KEYS.items()}
        for key, value in self.extra.items():
            record.setdefault(key, value)
        return record

    def authorize_write(self) -> bool:
        return self.can_write

    def authorize_login(self, logins: int, logins_from_address: int = 0) -> bool:
        """Return True if one more login fits the concurrent-login limits.

        ``logins`` and ``logins_from_address`` count the sessions this user
        already has open in total and from the connecting address.
        """
        if self.max_logins and logins >= self.max_logins:
            return False
        if self.max_logins_per_address and logins_from_address >= self.max_logins_per_address:
            return False
        return True

    def transfer_limits(self) -> TransferLimits:
        return TransferLimits(download=self.download_rate, upload=self.upload_rate)


def _non_negative_int(value: Any, attr: str, account_name: str) -> int:
    if value is None or value == "":
        return 0
    detail = {"name": account_name, "field": attr, "value": value}
    # bools are ints and JSON floats may be fractional or infinite
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidAccount(f"{attr} must be an integer", detail=detail)
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise InvalidAccount(f"{attr} must be an integer", detail=detail)
    if number < 0:
        raise InvalidAccount(f"{attr} must not be negative", detail=detail)
    return number


@dataclass(frozen=True)
class UsernamePassword:
    username: Optional[str]
    password: Optional[str] = field(default=None, repr=False)
    address: Optional[str] = None


@dataclass(frozen=True)
class Anonymous:
    address: Optional[str] = None


ANONYMOUS_ACCOUNT = "anonymous"
