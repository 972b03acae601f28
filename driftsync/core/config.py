from __future__ import annotations

import enum
import json
from functools import lru_cache
from typing import Annotated

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from driftsync.core.errors import ConfigurationError


class Environment(str, enum.Enum):
    development = "development"
    test = "test"
    production = "production"


ENVIRONMENT_ALIASES = {
    "dev": Environment.development,
    "development": Environment.development,
    "test": Environment.test,
    "prod": Environment.production,
    "production": Environment.production,
}

# Which settings field (and therefore which env var) backs each environment.
DATABASE_URL_FIELDS = {
    Environment.development: "dev_database_url",
    Environment.test: "test_database_url",
    Environment.production: "database_url",
}

NAMING_POLICIES = ("exact", "snake_case")


def parse_environment(raw: str) -> Environment:
    env = ENVIRONMENT_ALIASES.get(raw.strip().lower())
    if env is None:
        allowed = ", ".join(e.value for e in Environment)
        raise ConfigurationError(f"unknown environment {raw!r} (expected one of: {allowed})")
    return env


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    dev_database_url: str | None = None
    test_database_url: str | None = None
    database_url: str | None = None

    # Catalog introspection
    schema_name: str = "public"
    excluded_tables: Annotated[list[str], NoDecode] = [
        "schema_migrations",
        "drizzle_migrations",
        "drizzle__migrations",
    ]
    naming_policy: str = "exact"

    migrations_dir: str = "migrations"

    # DB pooling
    # - "null"  one connection per capture, closed on return (CLI default)
    # - "queue" pooled, sized by db_pool_size/db_max_overflow
    db_pool: str = "null"
    db_pool_size: int = 1
    db_max_overflow: int = 0

    # Logging
    log_level: str = "INFO"
    json_logs: bool = False

    @field_validator("excluded_tables", mode="before")
    @classmethod
    def _parse_excluded_tables(cls, raw_value: list[str] | str) -> list[str]:
        if isinstance(raw_value, list):
            return [str(item).strip() for item in raw_value if str(item).strip()]

        value = raw_value.strip()
        if not value:
            return []

        if value.startswith("["):
            parsed = json.loads(value)
            if not isinstance(parsed, list):
                raise ValueError("excluded_tables must deserialize to a list")
            return [str(item).strip() for item in parsed if str(item).strip()]

        return [item.strip() for item in value.split(",") if item.strip()]

    @field_validator("naming_policy")
    @classmethod
    def _validate_naming_policy(cls, value: str) -> str:
        policy = value.strip().lower()
        if policy not in NAMING_POLICIES:
            raise ValueError(f"naming_policy must be one of {', '.join(NAMING_POLICIES)}")
        return policy

    def database_url_for(self, environment: Environment) -> str:
        field_name = DATABASE_URL_FIELDS[environment]
        url = (getattr(self, field_name) or "").strip()
        if not url:
            raise ConfigurationError(
                f"{field_name.upper()} is not set (required for {environment.value})",
                environment=environment.value,
            )
        return url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    try:
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}") from e
