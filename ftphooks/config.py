from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ftphooks.logging import get_logger

logger = get_logger(__name__)


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the credential store and event layer."""

    account_file: str | None = env_field(
        None,
        "FTP_ACCOUNT_FILE",
        description="JSON account file; unset keeps accounts in memory only",
    )
    admin_name: str = env_field("admin", "FTP_ADMIN_NAME")
    allow_legacy_password_hashes: bool = env_field(
        True,
        "ALLOW_LEGACY_PASSWORD_HASHES",
        description="Accept salted MD5 hashes written by older account files",
    )
    # argon2id cost parameters
    password_time_cost: int = env_field(3, "PASSWORD_TIME_COST")
    password_memory_cost: int = env_field(
        65536, "PASSWORD_MEMORY_COST", description="Memory cost in KiB"
    )
    password_parallelism: int = env_field(4, "PASSWORD_PARALLELISM")
    test_mode: bool = env_field(False, "TEST_MODE")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("account_file")
    @classmethod
    def _blank_account_file(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value

    @field_validator("admin_name")
    @classmethod
    def _validate_admin_name(cls, value: str) -> str:
        if not value:
            raise ValueError("admin_name must not be empty")
        return value

    @field_validator("password_time_cost", "password_memory_cost", "password_parallelism")
    @classmethod
    def _positive_cost(cls, value: int) -> int:
        if value < 1:
            raise ValueError("password hashing costs must be positive")
        return value


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
        logger.debug(
            "settings_loaded",
            account_file=_settings_cache.account_file,
            admin_name=_settings_cache.admin_name,
        )
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
