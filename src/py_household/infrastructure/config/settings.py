from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["test", "production"]

_MISSING_URL = "__MISSING_DB_URL__"


def _prefixed(name: str) -> AliasChoices:
    return AliasChoices(f"HOUSEHOLD__{name}", name)


class BaseAppSettings(BaseSettings):
    """
    Application settings shared by every profile.

    Loaded with pydantic-settings from the environment and ``.env``. Every
    variable may also be given with the ``HOUSEHOLD__`` prefix, which wins.

    Groups:
    - one database URL per store (accounts, journal, goals)
    - logging (level, JSON, rotation)
    - money and posting limits
    - adjustment worker / reconciler tuning
    - async engine pool and timeout options
    """

    model_config = SettingsConfigDict(env_file=(".env",), env_file_encoding="utf-8", extra="ignore")

    env: EnvName = Field(default="test")
    accounts_database_url: str = Field(alias="ACCOUNTS_DATABASE_URL", validation_alias=_prefixed("ACCOUNTS_DATABASE_URL"))
    journal_database_url: str = Field(alias="JOURNAL_DATABASE_URL", validation_alias=_prefixed("JOURNAL_DATABASE_URL"))
    goals_database_url: str = Field(alias="GOALS_DATABASE_URL", validation_alias=_prefixed("GOALS_DATABASE_URL"))

    log_level: str = Field(alias="LOG_LEVEL", default="INFO", validation_alias=_prefixed("LOG_LEVEL"))
    json_logs: bool = Field(alias="JSON_LOGS", default=False, validation_alias=_prefixed("JSON_LOGS"))
    logging_enabled: bool = Field(alias="LOGGING_ENABLED", default=True, validation_alias=_prefixed("LOGGING_ENABLED"))
    log_file: str | None = Field(alias="LOG_FILE", default=None, validation_alias=_prefixed("LOG_FILE"))
    log_rotation: Literal["time", "size"] = Field(alias="LOG_ROTATION", default="time", validation_alias=_prefixed("LOG_ROTATION"))
    log_max_bytes: int = Field(alias="LOG_MAX_BYTES", default=10_485_760, validation_alias=_prefixed("LOG_MAX_BYTES"))  # 10 MiB
    log_backup_count: int = Field(alias="LOG_BACKUP_COUNT", default=7, validation_alias=_prefixed("LOG_BACKUP_COUNT"))
    log_rotate_when: str = Field(alias="LOG_ROTATE_WHEN", default="midnight", validation_alias=_prefixed("LOG_ROTATE_WHEN"))
    log_rotate_utc: bool = Field(alias="LOG_ROTATE_UTC", default=True, validation_alias=_prefixed("LOG_ROTATE_UTC"))

    # Money and posting limits (minor units)
    money_scale: int = Field(alias="MONEY_SCALE", default=2, validation_alias=_prefixed("MONEY_SCALE"))
    default_currency: str = Field(alias="DEFAULT_CURRENCY", default="IDR", validation_alias=_prefixed("DEFAULT_CURRENCY"))
    max_transaction_amount: int = Field(
        alias="MAX_TRANSACTION_AMOUNT", default=99_999_999_999_999, validation_alias=_prefixed("MAX_TRANSACTION_AMOUNT")
    )
    low_balance_threshold: int = Field(alias="LOW_BALANCE_THRESHOLD", default=100_000, validation_alias=_prefixed("LOW_BALANCE_THRESHOLD"))
    page_size: int = Field(alias="PAGE_SIZE", default=50, validation_alias=_prefixed("PAGE_SIZE"))

    # Adjustment worker and reconciler
    adjustment_max_attempts: int = Field(alias="ADJUSTMENT_MAX_ATTEMPTS", default=5, validation_alias=_prefixed("ADJUSTMENT_MAX_ATTEMPTS"))
    adjustment_batch_size: int = Field(alias="ADJUSTMENT_BATCH_SIZE", default=100, validation_alias=_prefixed("ADJUSTMENT_BATCH_SIZE"))
    reconcile_interval_sec: int = Field(alias="RECONCILE_INTERVAL_SEC", default=300, validation_alias=_prefixed("RECONCILE_INTERVAL_SEC"))

    # Async engine pool/timeouts
    db_pool_size: int = Field(alias="DB_POOL_SIZE", default=5, validation_alias=_prefixed("DB_POOL_SIZE"))
    db_max_overflow: int = Field(alias="DB_MAX_OVERFLOW", default=10, validation_alias=_prefixed("DB_MAX_OVERFLOW"))
    db_pool_timeout: int = Field(alias="DB_POOL_TIMEOUT", default=30, validation_alias=_prefixed("DB_POOL_TIMEOUT"))  # seconds
    db_pool_recycle_sec: int = Field(alias="DB_POOL_RECYCLE_SEC", default=1800, validation_alias=_prefixed("DB_POOL_RECYCLE_SEC"))
    db_connect_timeout_sec: int = Field(alias="DB_CONNECT_TIMEOUT_SEC", default=10, validation_alias=_prefixed("DB_CONNECT_TIMEOUT_SEC"))
    db_statement_timeout_ms: int = Field(alias="DB_STATEMENT_TIMEOUT_MS", default=0, validation_alias=_prefixed("DB_STATEMENT_TIMEOUT_MS"))  # 0 -> disabled
    db_retry_attempts: int = Field(alias="DB_RETRY_ATTEMPTS", default=3, validation_alias=_prefixed("DB_RETRY_ATTEMPTS"))
    db_retry_backoff_ms: int = Field(alias="DB_RETRY_BACKOFF_MS", default=50, validation_alias=_prefixed("DB_RETRY_BACKOFF_MS"))
    db_retry_max_backoff_ms: int = Field(alias="DB_RETRY_MAX_BACKOFF_MS", default=1000, validation_alias=_prefixed("DB_RETRY_MAX_BACKOFF_MS"))

    @field_validator("default_currency")
    @classmethod
    def validate_default_currency(cls, v: str) -> str:
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("DEFAULT_CURRENCY must be a 3-letter code")
        return code

    @field_validator("max_transaction_amount", "low_balance_threshold", "page_size", "adjustment_max_attempts", "adjustment_batch_size")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v


class TestSettings(BaseAppSettings):
    """
    Test profile.

    - File-less SQLite databases by default (one per store)
    - DEBUG logging, console renderer
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    env: EnvName = Field(default="test")
    accounts_database_url: str = Field(
        alias="ACCOUNTS_DATABASE_URL", default="sqlite+aiosqlite:///:memory:", validation_alias=_prefixed("ACCOUNTS_DATABASE_URL")
    )
    journal_database_url: str = Field(
        alias="JOURNAL_DATABASE_URL", default="sqlite+aiosqlite:///:memory:", validation_alias=_prefixed("JOURNAL_DATABASE_URL")
    )
    goals_database_url: str = Field(
        alias="GOALS_DATABASE_URL", default="sqlite+aiosqlite:///:memory:", validation_alias=_prefixed("GOALS_DATABASE_URL")
    )
    log_level: str = Field(alias="LOG_LEVEL", default="DEBUG", validation_alias=_prefixed("LOG_LEVEL"))
    json_logs: bool = Field(alias="JSON_LOGS", default=False, validation_alias=_prefixed("JSON_LOGS"))


class ProdSettings(BaseAppSettings):
    """
    Production profile.

    All three database URLs must be provided explicitly.
    """

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    env: EnvName = Field(default="production")
    accounts_database_url: str = Field(alias="ACCOUNTS_DATABASE_URL", default=_MISSING_URL, validation_alias=_prefixed("ACCOUNTS_DATABASE_URL"))
    journal_database_url: str = Field(alias="JOURNAL_DATABASE_URL", default=_MISSING_URL, validation_alias=_prefixed("JOURNAL_DATABASE_URL"))
    goals_database_url: str = Field(alias="GOALS_DATABASE_URL", default=_MISSING_URL, validation_alias=_prefixed("GOALS_DATABASE_URL"))
    log_level: str = Field(alias="LOG_LEVEL", default="INFO", validation_alias=_prefixed("LOG_LEVEL"))
    json_logs: bool = Field(alias="JSON_LOGS", default=True, validation_alias=_prefixed("JSON_LOGS"))

    @field_validator("accounts_database_url", "journal_database_url", "goals_database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Ensure every store URL is provided for the production profile."""
        if v == _MISSING_URL:
            raise ValueError("database URL required")
        return v


class TestSettingsNoFile(TestSettings):
    model_config = SettingsConfigDict(env_file=(), extra="ignore")


class ProdSettingsNoFile(ProdSettings):
    model_config = SettingsConfigDict(env_file=(), extra="ignore")


@lru_cache(maxsize=8)
def get_settings(forced_env: EnvName | None = None, *, ignore_env_file: bool = False) -> BaseAppSettings:
    """
    Cached settings factory selecting the profile from ``ENV``.

    Parameters:
    - forced_env: explicit profile ("test" or "production"), overrides ENV.
    - ignore_env_file: skip reading ``.env`` (uses the *NoFile classes).
    """
    selector: EnvName = forced_env or os.getenv("ENV", "test")  # type: ignore[assignment]
    if selector == "production":
        cls = ProdSettingsNoFile if ignore_env_file else ProdSettings
    else:
        cls = TestSettingsNoFile if ignore_env_file else TestSettings

    instance = cls()
    instance.env = selector
    return instance
