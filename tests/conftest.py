import json
import os
import sys
from pathlib import Path

# Configure the environment before any ftphooks import reads it
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("PASSWORD_TIME_COST", "1")
os.environ.setdefault("PASSWORD_MEMORY_COST", "8")
os.environ.setdefault("PASSWORD_PARALLELISM", "1")
os.environ.pop("FTP_ACCOUNT_FILE", None)

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from ftphooks.service.passwords import PasswordEncryptor  # noqa: E402
from ftphooks.service.runtime import reset_runtime_for_tests  # noqa: E402


@pytest.fixture(autouse=True)
def reset_runtime_state():
    reset_runtime_for_tests()
    yield
    reset_runtime_for_tests()


@pytest.fixture
def encryptor():
    """Cheap argon2 parameters so hashing does not dominate the test run."""
    return PasswordEncryptor(time_cost=1, memory_cost=8, parallelism=1)


def write_accounts(path: Path, accounts: dict) -> None:
    """Write an account file the way an external editor would.

    The modification time is pushed one second past the previous one so
    the change is visible even on filesystems with coarse timestamps.
    """
    previous = path.stat().st_mtime_ns if path.exists() else None
    path.write_text(json.dumps(accounts, indent=2), encoding="utf-8")
    if previous is not None:
        bumped = previous + 1_000_000_000
        os.utime(path, ns=(bumped, bumped))


@pytest.fixture(name="write_accounts")
def write_accounts_fixture():
    return write_accounts
