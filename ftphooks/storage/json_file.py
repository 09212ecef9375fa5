from __future__ import annotations

import json
import os
import stat
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from ftphooks.logging import get_logger
from ftphooks.service.passwords import PasswordEncryptor
from ftphooks.storage.common import AccountLike, Presentation, ReloadCallback, to_records
from ftphooks.storage.errors import (
    AccountFileNotFound,
    InvalidAccount,
    InvalidAccountFile,
    StoreError,
)
from ftphooks.storage.memory import InMemoryCredentialStore, ReloadSubscription
from ftphooks.storage.models import Account


class JsonFileCredentialStore:
    """Credential store whose source of truth is a JSON account file.

    Wraps an :class:`InMemoryCredentialStore`. Before every read or write
    the file's modification time is compared with the one seen at the last
    load or write; if it moved, the file was edited by someone else and is
    loaded again first. Writes replace the whole file.

    No lock is taken on the file itself: when another process writes it at
    the same time as this store, the last write wins.
    """

    def __init__(
        self,
        path: Union[str, os.PathLike],
        *,
        admin_name: str = "admin",
        encryptor: Optional[PasswordEncryptor] = None,
    ) -> None:
        self.logger = get_logger(__name__)
        self._path = Path(path)
        self._last_modified: Optional[int] = None
        # serializes staleness checks, reloads and write-backs
        self._file_lock = threading.RLock()
        self._accounts = InMemoryCredentialStore(
            admin_name=admin_name, encryptor=encryptor
        )
        self.reload()

    def __repr__(self) -> str:
        return f"<JsonFileCredentialStore path={str(self._path)!r}>"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def admin_name(self) -> str:
        return self._accounts.admin_name

    @admin_name.setter
    def admin_name(self, name: str) -> None:
        self._accounts.admin_name = name

    @property
    def encryptor(self) -> PasswordEncryptor:
        return self._accounts.encryptor

    # -- file handling --

    def _read_file(self, path: Path) -> Tuple[Dict[str, Dict[str, Any]], int]:
        try:
            file_stat = path.stat()
        except FileNotFoundError as exc:
            self.logger.error("account_file_missing", path=str(path))
            raise AccountFileNotFound(
                f'File does not exist or is not a file: "{path}"',
                detail={"path": str(path)},
            ) from exc
        if not stat.S_ISREG(file_stat.st_mode):
            self.logger.error("account_file_not_regular", path=str(path))
            raise AccountFileNotFound(
                f'File does not exist or is not a file: "{path}"',
                detail={"path": str(path)},
            )
        try:
            data = json.loads(path.read_bytes().decode("utf-8"))
        except FileNotFoundError as exc:
            raise AccountFileNotFound(
                f'File does not exist or is not a file: "{path}"',
                detail={"path": str(path)},
            ) from exc
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            self.logger.error("account_file_invalid", path=str(path), error=str(exc))
            raise InvalidAccountFile(
                f'Account file is not valid JSON: "{path}"',
                detail={"path": str(path), "error": str(exc)},
            ) from exc
        if not isinstance(data, dict):
            self.logger.error("account_file_invalid", path=str(path), error="not an object")
            raise InvalidAccountFile(
                f'Account file must contain a JSON object: "{path}"',
                detail={"path": str(path)},
            )
        try:
            records = to_records(data)
        except InvalidAccount as exc:
            self.logger.error("account_file_invalid", path=str(path), error=exc.message)
            raise InvalidAccountFile(
                f'Account file holds an invalid account: "{path}"',
                detail={"path": str(path), **exc.detail},
            ) from exc
        return records, file_stat.st_mtime_ns

    def _write_file(self, previous: Dict[str, Dict[str, Any]]) -> None:
        """Write every account back to disk.

        On failure the in-memory accounts go back to ``previous`` and
        :class:`StoreError` is raised.
        """
        records = self._accounts.snapshot()
        tmp_path: Optional[str] = None
        try:
            payload = json.dumps(records, indent=4, ensure_ascii=False) + "\n"
            try:
                mode = stat.S_IMODE(self._path.stat().st_mode)
            except FileNotFoundError:
                mode = 0o600
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._path.parent), prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                os.write(fd, payload.encode("utf-8"))
                os.fchmod(fd, mode)
            finally:
                os.close(fd)
            os.replace(tmp_path, self._path)
        except (OSError, TypeError, ValueError) as exc:
            if tmp_path is not None:
                self._remove_temp_file(tmp_path)
            self._accounts.restore(previous)
            # next read goes back to whatever is on disk
            self._last_modified = None
            self.logger.error(
                "account_file_write_failed", path=str(self._path), error=str(exc)
            )
            raise StoreError(
                f"failed to write account file: {exc}", detail={"path": str(self._path)}
            ) from exc
        try:
            self._last_modified = self._path.stat().st_mtime_ns
        except OSError:
            self._last_modified = None
        self.logger.debug("account_file_written", path=str(self._path), count=len(records))

    def _remove_temp_file(self, tmp_path: str) -> None:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            self.logger.warning("account_file_temp_left", path=tmp_path, error=str(exc))

    def _check_file(self) -> None:
        with self._file_lock:
            try:
                modified = self._path.stat().st_mtime_ns
            except FileNotFoundError as exc:
                self.logger.error("account_file_missing", path=str(self._path))
                raise AccountFileNotFound(
                    f'File does not exist or is not a file: "{self._path}"',
                    detail={"path": str(self._path)},
                ) from exc
            if modified != self._last_modified:
                self.logger.info("account_file_changed", path=str(self._path))
                self.reload()

    def reload(self, path: Union[str, os.PathLike, None] = None) -> None:
        """Load the accounts from disk, optionally switching to another file.

        The path only changes once the new file has loaded successfully.
        """
        target = Path(path) if path is not None else self._path
        with self._file_lock:
            records, modified = self._read_file(target)
            self._path = target
            self._last_modified = modified
            self._accounts.reload(records)

    # -- reads --

    def exists(self, name: str) -> bool:
        self._check_file()
        return self._accounts.exists(name)

    def list_names(self) -> List[str]:
        self._check_file()
        return self._accounts.list_names()

    def lookup(self, name: str) -> Optional[Account]:
        self._check_file()
        return self._accounts.lookup(name)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        self._check_file()
        return self._accounts.snapshot()

    def authenticate(self, presentation: Presentation) -> Account:
        self._check_file()
        return self._accounts.authenticate(presentation)

    def is_admin(self, name: str) -> bool:
        return self._accounts.is_admin(name)

    # -- writes --

    def save(self, account: AccountLike) -> None:
        with self._file_lock:
            self._check_file()
            previous = self._accounts.snapshot()
            self._accounts.save(account)
            self._write_file(previous)

    def delete(self, name: str) -> None:
        with self._file_lock:
            self._check_file()
            if not self._accounts.exists(name):
                return
            previous = self._accounts.snapshot()
            self._accounts.delete(name)
            self._write_file(previous)

    # -- reloaded notification --

    def subscribe(self, callback: ReloadCallback) -> ReloadSubscription:
        return self._accounts.subscribe(callback)

    def unsubscribe(self, handle: Any) -> None:
        self._accounts.unsubscribe(handle)
