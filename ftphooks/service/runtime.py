from __future__ import annotations

import threading

from ftphooks.config import Settings, get_settings, reset_settings_cache
from ftphooks.logging import get_logger
from ftphooks.service.events import EventDispatcher
from ftphooks.service.passwords import PasswordEncryptor
from ftphooks.storage.common import CredentialStore
from ftphooks.storage.json_file import JsonFileCredentialStore
from ftphooks.storage.memory import InMemoryCredentialStore

logger = get_logger(__name__)


def build_encryptor(settings: Settings) -> PasswordEncryptor:
    return PasswordEncryptor(
        time_cost=settings.password_time_cost,
        memory_cost=settings.password_memory_cost,
        parallelism=settings.password_parallelism,
        allow_legacy=settings.allow_legacy_password_hashes,
    )


def build_store(settings: Settings) -> CredentialStore:
    encryptor = build_encryptor(settings)
    if settings.account_file:
        return JsonFileCredentialStore(
            settings.account_file,
            admin_name=settings.admin_name,
            encryptor=encryptor,
        )
    return InMemoryCredentialStore(admin_name=settings.admin_name, encryptor=encryptor)


class Runtime:
    """Holds the store and event dispatcher handed to the FTP engine."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        store_type = "json_file" if self.settings.account_file else "memory"
        logger.info(
            "runtime_init_started",
            store_type=store_type,
            account_file=self.settings.account_file,
        )
        try:
            self.store = build_store(self.settings)
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type=store_type,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        self.events = EventDispatcher()
        self.events.init()
        logger.info("runtime_initialized", store_type=store_type)


runtime: Runtime | None = None
_runtime_lock = threading.Lock()


def get_runtime() -> Runtime:
    """Get or create the Runtime singleton in a thread-safe manner.

    Uses double-checked locking:
    - First check without lock (fast path for existing runtime)
    - Second check with lock to prevent race condition during creation
    """
    global runtime
    if runtime is not None:
        return runtime
    with _runtime_lock:
        if runtime is None:
            runtime = Runtime()
        return runtime


def reset_runtime_for_tests() -> Runtime:
    """Reinitialize the runtime singleton for isolated test runs."""
    global runtime

    with _runtime_lock:
        if runtime is not None:
            runtime.events.destroy()
        reset_settings_cache()
        settings = get_settings()
        if not settings.test_mode:
            raise RuntimeError("runtime reset is only allowed in TEST_MODE")
        runtime = Runtime(settings)
        return runtime
