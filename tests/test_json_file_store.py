"""Unit tests for the JSON-file-backed credential store.

Tests for:
- Loading and construction failures
- Read-through reload after external modification
- Write-back on save/delete, and rollback when it fails
- Switching files on reload
"""

import json
import os
import tempfile

import pytest

from ftphooks.service.errors import AuthenticationFailed
from ftphooks.storage.errors import (
    AccountFileNotFound,
    InvalidAccount,
    InvalidAccountFile,
    StoreError,
)
from ftphooks.storage.json_file import JsonFileCredentialStore
from ftphooks.storage.models import Account, Anonymous, UsernamePassword


@pytest.fixture
def account_file(tmp_path, encryptor):
    path = tmp_path / "users.json"
    path.write_text(
        json.dumps(
            {
                "alice": {
                    "name": "alice",
                    "password": encryptor.encrypt("secret"),
                    "homeDirectory": "/home/alice",
                }
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def store(account_file, encryptor):
    return JsonFileCredentialStore(account_file, encryptor=encryptor)


class TestConstruction:
    def test_loads_accounts_immediately(self, store):
        assert store.list_names() == ["alice"]
        assert store.lookup("alice").home_directory == "/home/alice"

    def test_missing_file(self, tmp_path, encryptor):
        with pytest.raises(AccountFileNotFound):
            JsonFileCredentialStore(tmp_path / "missing.json", encryptor=encryptor)

    def test_directory_is_not_a_file(self, tmp_path, encryptor):
        with pytest.raises(AccountFileNotFound):
            JsonFileCredentialStore(tmp_path, encryptor=encryptor)

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "{not json",
            "[]",
            '"users"',
            '{"alice": "not a record"}',
            '{"alice": {"name": "alice", "maxLogin": -3}}',
            '{"alice": {"name": "alice", "maxLogin": Infinity}}',
            '{"alice": {"name": "alice", "uploadRate": 2.7}}',
        ],
    )
    def test_invalid_content(self, tmp_path, encryptor, content):
        path = tmp_path / "users.json"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(InvalidAccountFile):
            JsonFileCredentialStore(path, encryptor=encryptor)

    def test_non_utf8_content(self, tmp_path, encryptor):
        path = tmp_path / "users.json"
        path.write_bytes(b'{"\xff": {}}')

        with pytest.raises(InvalidAccountFile):
            JsonFileCredentialStore(path, encryptor=encryptor)

    def test_empty_object_is_valid(self, tmp_path, encryptor):
        path = tmp_path / "users.json"
        path.write_text("{}", encoding="utf-8")

        assert JsonFileCredentialStore(path, encryptor=encryptor).list_names() == []


class TestAliceScenario:
    def test_end_to_end(self, store):
        account = store.authenticate(UsernamePassword("alice", "secret"))
        assert account.name == "alice"
        assert account.home_directory == "/home/alice"

        with pytest.raises(AuthenticationFailed):
            store.authenticate(UsernamePassword("alice", "wrong"))

        with pytest.raises(AuthenticationFailed):
            store.authenticate(Anonymous())

        store.save(Account(name="anonymous", home_directory="/pub"))

        assert store.authenticate(Anonymous()).name == "anonymous"


class TestExternalModification:
    def test_lookup_sees_external_edit(self, store, account_file, write_accounts):
        write_accounts(
            account_file,
            {"bob": {"name": "bob", "homeDirectory": "/home/bob"}},
        )

        assert store.lookup("bob").home_directory == "/home/bob"
        assert store.lookup("alice") is None

    def test_exists_and_list_see_external_edit(self, store, account_file, write_accounts):
        write_accounts(account_file, {"bob": {"name": "bob"}})

        assert store.exists("alice") is False
        assert store.list_names() == ["bob"]

    def test_authenticate_sees_new_password(
        self, store, account_file, encryptor, write_accounts
    ):
        write_accounts(
            account_file,
            {"alice": {"name": "alice", "password": encryptor.encrypt("rotated")}},
        )

        with pytest.raises(AuthenticationFailed):
            store.authenticate(UsernamePassword("alice", "secret"))
        assert store.authenticate(UsernamePassword("alice", "rotated")).name == "alice"

    def test_external_edit_emits_reloaded(self, store, account_file, write_accounts):
        events = []
        store.subscribe(lambda: events.append("reloaded"))

        write_accounts(account_file, {})
        store.exists("alice")
        store.exists("alice")

        assert events == ["reloaded"]

    def test_unchanged_file_is_not_reloaded(self, store):
        events = []
        store.subscribe(lambda: events.append("reloaded"))

        store.lookup("alice")
        store.list_names()

        assert events == []

    def test_save_merges_onto_external_edit(
        self, store, account_file, write_accounts
    ):
        """A save applies to the latest file content, not a stale view."""
        write_accounts(account_file, {"bob": {"name": "bob"}})

        store.save(Account(name="carol"))

        on_disk = json.loads(account_file.read_text(encoding="utf-8"))
        assert sorted(on_disk) == ["bob", "carol"]

    def test_broken_external_edit_propagates(self, store, account_file, write_accounts):
        write_accounts(account_file, {})
        previous = account_file.stat().st_mtime_ns
        account_file.write_text("{broken", encoding="utf-8")
        os.utime(account_file, ns=(previous + 1_000_000_000, previous + 1_000_000_000))

        with pytest.raises(InvalidAccountFile):
            store.lookup("alice")

    def test_deleted_file_propagates(self, store, account_file):
        account_file.unlink()

        with pytest.raises(AccountFileNotFound):
            store.exists("alice")


class TestWriteBack:
    def test_save_writes_formatted_file(self, store, account_file):
        store.save(Account(name="bob", home_directory="/home/bob", max_logins=3))

        text = account_file.read_text(encoding="utf-8")
        data = json.loads(text)
        assert data["bob"] == {
            "name": "bob",
            "password": None,
            "homeDirectory": "/home/bob",
            "isEnabled": False,
            "canWrite": True,
            "maxLogin": 3,
            "maxLoginPerIp": 0,
            "downloadRate": 0,
            "uploadRate": 0,
            "maxIdleTime": 0,
        }
        assert list(data["bob"]) == [
            "name",
            "password",
            "homeDirectory",
            "isEnabled",
            "canWrite",
            "maxLogin",
            "maxLoginPerIp",
            "downloadRate",
            "uploadRate",
            "maxIdleTime",
        ]
        assert '\n    "alice": {' in text

    def test_save_then_lookup_round_trip(self, store):
        account = Account(name="bob", home_directory="/home/bob", enabled=True)
        store.save(account)

        assert store.lookup("bob") == account

    def test_own_write_does_not_trigger_reload(self, store):
        events = []
        store.subscribe(lambda: events.append("reloaded"))

        store.save(Account(name="bob"))
        store.lookup("bob")

        assert events == []

    def test_saved_accounts_survive_new_store(self, store, account_file, encryptor):
        store.save(Account(name="bob"))

        fresh = JsonFileCredentialStore(account_file, encryptor=encryptor)
        assert sorted(fresh.list_names()) == ["alice", "bob"]

    def test_delete_writes_file(self, store, account_file):
        store.delete("alice")

        assert store.exists("alice") is False
        assert json.loads(account_file.read_text(encoding="utf-8")) == {}

    def test_delete_missing_leaves_file_alone(self, store, account_file):
        before = account_file.read_text(encoding="utf-8")

        store.delete("nobody")

        assert account_file.read_text(encoding="utf-8") == before

    def test_unknown_keys_survive_rewrite(self, tmp_path, encryptor):
        path = tmp_path / "users.json"
        path.write_text(
            json.dumps({"alice": {"name": "alice", "comment": "keep me"}}),
            encoding="utf-8",
        )
        store = JsonFileCredentialStore(path, encryptor=encryptor)

        store.save(Account(name="bob"))

        assert json.loads(path.read_text(encoding="utf-8"))["alice"]["comment"] == "keep me"


class TestWriteFailure:
    @pytest.fixture
    def full_disk(self, monkeypatch):
        def replace(src, dst):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(os, "replace", replace)
        return monkeypatch

    def test_failed_save_is_rolled_back(self, store, account_file, full_disk):
        before = account_file.read_bytes()

        with pytest.raises(StoreError):
            store.save(Account(name="bob"))

        assert store.lookup("bob") is None
        assert store.list_names() == ["alice"]
        assert account_file.read_bytes() == before
        assert [p.name for p in account_file.parent.iterdir()] == ["users.json"]

    def test_failed_delete_keeps_account(self, store, account_file, full_disk):
        with pytest.raises(StoreError):
            store.delete("alice")

        assert store.exists("alice") is True
        assert list(json.loads(account_file.read_text(encoding="utf-8"))) == ["alice"]

    def test_next_read_reloads_from_disk(self, store, full_disk):
        events = []
        store.subscribe(lambda: events.append("reloaded"))

        with pytest.raises(StoreError):
            store.save(Account(name="bob"))
        assert events == []

        assert store.list_names() == ["alice"]
        assert events == ["reloaded"]

    def test_save_works_once_disk_recovers(self, store, account_file, full_disk):
        with pytest.raises(StoreError):
            store.save(Account(name="bob"))
        full_disk.undo()

        store.save(Account(name="carol"))

        assert sorted(json.loads(account_file.read_text(encoding="utf-8"))) == [
            "alice",
            "carol",
        ]

    def test_temp_file_creation_failure(self, store, account_file, monkeypatch):
        def mkstemp(*args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(tempfile, "mkstemp", mkstemp)

        with pytest.raises(StoreError):
            store.save(Account(name="bob"))

        assert store.lookup("bob") is None

    def test_unserializable_record_rejected_before_write(self, store, account_file):
        with pytest.raises(InvalidAccount):
            store.save({"name": "mallory", "tags": {1, 2}})

        assert store.lookup("mallory") is None

        store.save(Account(name="bob"))
        assert sorted(json.loads(account_file.read_text(encoding="utf-8"))) == [
            "alice",
            "bob",
        ]

    def test_infinite_limit_rejected(self, store):
        with pytest.raises(InvalidAccount):
            store.save({"name": "bob", "maxLogin": float("inf")})

        assert store.exists("bob") is False


class TestReload:
    def test_reload_rereads_path(self, store, account_file):
        account_file.write_text(json.dumps({"bob": {"name": "bob"}}), encoding="utf-8")

        store.reload()

        assert store.snapshot() == {"bob": {"name": "bob"}}

    def test_reload_switches_path(self, store, tmp_path):
        other = tmp_path / "other.json"
        other.write_text(json.dumps({"dave": {"name": "dave"}}), encoding="utf-8")
        events = []
        store.subscribe(lambda: events.append("reloaded"))

        store.reload(other)

        assert store.path == other
        assert store.list_names() == ["dave"]
        assert events == ["reloaded"]

        store.save(Account(name="erin"))
        assert sorted(json.loads(other.read_text(encoding="utf-8"))) == ["dave", "erin"]

    def test_failed_switch_keeps_current_path(self, store, account_file, tmp_path):
        with pytest.raises(AccountFileNotFound):
            store.reload(tmp_path / "missing.json")

        assert store.path == account_file
        assert store.list_names() == ["alice"]


class TestAdminName:
    def test_admin_name_delegates(self, account_file, encryptor):
        store = JsonFileCredentialStore(account_file, admin_name="root", encryptor=encryptor)

        assert store.is_admin("root") is True
        store.admin_name = "alice"
        assert store.is_admin("alice") is True
        assert store.is_admin("root") is False
