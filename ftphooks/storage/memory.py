from __future__ import annotations

import copy
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ftphooks.logging import get_logger
from ftphooks.service.errors import AuthenticationFailed, UnsupportedCredentialKind
from ftphooks.service.passwords import PasswordEncryptor
from ftphooks.storage.common import (
    AccountLike,
    Presentation,
    ReloadCallback,
    to_record,
    to_records,
)
from ftphooks.storage.models import ANONYMOUS_ACCOUNT, Account, Anonymous, UsernamePassword


@dataclass(frozen=True, eq=False)
class ReloadSubscription:
    callback: ReloadCallback


class InMemoryCredentialStore:
    """Credential store operating on an in-process mapping of account records."""

    def __init__(
        self,
        records: Optional[Mapping[str, Any]] = None,
        *,
        admin_name: str = "admin",
        encryptor: Optional[PasswordEncryptor] = None,
    ) -> None:
        self.logger = get_logger(__name__)
        self.encryptor = encryptor or PasswordEncryptor()
        self.admin_name = admin_name
        # RLock so reload callbacks may read the store from the emitting thread
        self._data_lock = threading.RLock()
        self._records: Dict[str, Dict[str, Any]] = (
            to_records(records) if records is not None else {}
        )
        self._subscriptions: List[ReloadSubscription] = []

    def __repr__(self) -> str:
        return f"<InMemoryCredentialStore accounts={len(self._records)}>"

    # -- reads --

    def exists(self, name: str) -> bool:
        with self._data_lock:
            return name in self._records

    def list_names(self) -> List[str]:
        with self._data_lock:
            return list(self._records.keys())

    def lookup(self, name: str) -> Optional[Account]:
        with self._data_lock:
            record = self._records.get(name)
        if record is None:
            return None
        return Account.from_record(record, name=name)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._data_lock:
            return copy.deepcopy(self._records)

    def is_admin(self, name: str) -> bool:
        return name == self.admin_name

    def authenticate(self, presentation: Presentation) -> Account:
        if isinstance(presentation, UsernamePassword):
            username = presentation.username
            account = self.lookup(username) if isinstance(username, str) else None
            if account is None:
                self.logger.warning(
                    "authentication_failed", username=username, reason="unknown_user"
                )
                raise AuthenticationFailed(
                    "Authentication failed", detail={"username": username}
                )
            if not self.encryptor.matches(presentation.password or "", account.password):
                self.logger.warning(
                    "authentication_failed", username=username, reason="bad_password"
                )
                raise AuthenticationFailed(
                    "Authentication failed", detail={"username": username}
                )
            self.logger.info("authenticated", username=username)
            return account
        if isinstance(presentation, Anonymous):
            account = self.lookup(ANONYMOUS_ACCOUNT)
            if account is None:
                self.logger.warning(
                    "authentication_failed",
                    username=ANONYMOUS_ACCOUNT,
                    reason="anonymous_disabled",
                )
                raise AuthenticationFailed(
                    "Authentication failed", detail={"username": ANONYMOUS_ACCOUNT}
                )
            self.logger.info("authenticated", username=ANONYMOUS_ACCOUNT)
            return account
        raise UnsupportedCredentialKind(
            "Authentication not supported by this credential store",
            detail={"kind": type(presentation).__name__},
        )

    # -- writes --

    def save(self, account: AccountLike) -> None:
        record = to_record(account)
        with self._data_lock:
            self._records[record["name"]] = record
        self.logger.info("account_saved", name=record["name"])

    def delete(self, name: str) -> None:
        with self._data_lock:
            removed = self._records.pop(name, None)
        if removed is not None:
            self.logger.info("account_deleted", name=name)

    def reload(self, records: Mapping[str, Any]) -> None:
        """Replace every account at once and notify ``reloaded`` subscribers."""
        fresh = to_records(records)
        with self._data_lock:
            self._records = fresh
        self.logger.info("accounts_reloaded", count=len(fresh))
        self._emit_reloaded()

    def restore(self, records: Dict[str, Dict[str, Any]]) -> None:
        """Put back records taken with :meth:`snapshot`, without notifying."""
        with self._data_lock:
            self._records = records

    # -- reloaded notification --

    def subscribe(self, callback: ReloadCallback) -> ReloadSubscription:
        subscription = ReloadSubscription(callback)
        with self._data_lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, handle: Any) -> None:
        """Drop a subscription, given its handle or the subscribed callback."""
        with self._data_lock:
            self._subscriptions = [
                sub
                for sub in self._subscriptions
                if sub is not handle and sub.callback is not handle
            ]

    def _emit_reloaded(self) -> None:
        with self._data_lock:
            subscriptions = tuple(self._subscriptions)
        for subscription in subscriptions:
            subscription.callback()
