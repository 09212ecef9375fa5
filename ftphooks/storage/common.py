"""Contract and helpers shared by the in-memory and file-backed stores."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Union

from ftphooks.storage.errors import InvalidAccount
from ftphooks.storage.models import Account, Anonymous, UsernamePassword

Presentation = Union[UsernamePassword, Anonymous]
ReloadCallback = Callable[[], Any]
AccountLike = Union[Account, Mapping[str, Any]]


class CredentialStore(Protocol):
    admin_name: str

    def authenticate(self, presentation: Presentation) -> Account: ...

    def exists(self, name: str) -> bool: ...

    def list_names(self) -> List[str]: ...

    def lookup(self, name: str) -> Optional[Account]: ...

    def save(self, account: AccountLike) -> None: ...

    def delete(self, name: str) -> None: ...

    def is_admin(self, name: str) -> bool: ...

    def subscribe(self, callback: ReloadCallback) -> object: ...

    def unsubscribe(self, handle: object) -> None: ...

    def snapshot(self) -> Dict[str, Dict[str, Any]]: ...


def _storable(record: Dict[str, Any], name: Any) -> Dict[str, Any]:
    # every record must survive being written to the account file
    try:
        json.dumps(record)
    except (TypeError, ValueError) as exc:
        raise InvalidAccount(
            "account record is not JSON serializable",
            detail={"name": name, "error": str(exc)},
        ) from exc
    return record


def to_record(account: AccountLike) -> Dict[str, Any]:
    """Validate ``account`` and return the record stored for it."""
    if isinstance(account, Account):
        if account.name is None or not isinstance(account.name, str):
            raise InvalidAccount(
                "account name is missing or not a string",
                detail={"name": account.name},
            )
        # round trip through from_record to validate the limits
        record = Account.from_record(account.to_record()).to_record()
        return _storable(record, account.name)
    if isinstance(account, Mapping):
        # validates name and limits; the record keeps its own keys
        validated = Account.from_record(account)
        return _storable(dict(account), validated.name)
    raise InvalidAccount(
        "account must be an Account or a mapping",
        detail={"type": type(account).__name__},
    )


def to_records(accounts: Any) -> Dict[str, Dict[str, Any]]:
    """Validate a whole name -> account mapping for a reload."""
    if not isinstance(accounts, Mapping):
        raise InvalidAccount(
            "reload expects a mapping of account records",
            detail={"type": type(accounts).__name__},
        )
    records: Dict[str, Dict[str, Any]] = {}
    for key, account in accounts.items():
        if not isinstance(key, str):
            raise InvalidAccount("account keys must be strings", detail={"name": key})
        if isinstance(account, Account):
            records[key] = to_record(account)
        elif isinstance(account, Mapping):
            Account.from_record(account, name=key)
            records[key] = _storable(dict(account), key)
        else:
            raise InvalidAccount(
                "account record must be an object", detail={"name": key}
            )
    return records
