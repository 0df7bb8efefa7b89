"""
Configuration for the FloWorx rules backend.

Settings are loaded from environment variables or a `.env` file and fall
back to values suitable for local development. The rule engine tunables
(cache TTLs, predicate timeout) live here so deployments can adjust them
without code changes.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Database connection string. SQLite keeps local runs dependency free.
    database_url: str = Field(default="sqlite+pysqlite:///./floworx.db", validation_alias="DATABASE_URL")
    auto_create_db: bool = Field(default=True, validation_alias="AUTO_CREATE_DB")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Rule engine tunables
    rules_cache_ttl_sec: float = Field(default=300.0, validation_alias="RULES_CACHE_TTL_SEC")
    config_cache_ttl_sec: float = Field(default=600.0, validation_alias="CONFIG_CACHE_TTL_SEC")
    predicate_timeout_sec: float = Field(default=3.0, validation_alias="PREDICATE_TIMEOUT_SEC")
    predicate_workers: int = Field(default=4, validation_alias="PREDICATE_WORKERS")
    default_timezone: str = Field(default="America/New_York", validation_alias="DEFAULT_TIMEZONE")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()


def get_app_env() -> str:
    raw = os.getenv("FLOWORX_ENV") or os.getenv("APP_ENV") or "dev"
    env = raw.strip().lower()
    if env not in {"dev", "prod"}:
        logging.getLogger("config").warning("Unknown FLOWORX_ENV=%s; defaulting to dev", raw)
        env = "dev"
    return env


def auth_disabled() -> bool:
    return os.getenv("FLOWORX_AUTH_DISABLED", "true").lower() in {"1", "true", "yes"}


def validate_runtime_settings() -> None:
    env = get_app_env()
    logger = logging.getLogger("config")
    token = (os.getenv("FLOWORX_AUTH_TOKEN") or "").strip()
    if env == "prod":
        if auth_disabled():
            raise RuntimeError("FLOWORX_AUTH_DISABLED must be false in prod.")
        if len(token) < 20:
            raise RuntimeError("FLOWORX_AUTH_TOKEN must be set to a strong value in prod.")
    elif not auth_disabled() and len(token) < 20:
        logger.warning("FLOWORX_AUTH_TOKEN is weak or missing; requests will be rejected.")
    if settings.predicate_timeout_sec <= 0:
        logger.warning("PREDICATE_TIMEOUT_SEC=%s is not positive; predicates will time out immediately", settings.predicate_timeout_sec)
