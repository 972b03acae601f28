from __future__ import annotations

from typing import Any


class DriftSyncError(Exception):
    """Base class for failures that abort a drift or apply run."""

    event = "drift.failed"

    def __init__(
        self,
        message: str,
        *,
        environment: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.environment = environment
        self.meta = meta or {}


class ConfigurationError(DriftSyncError):
    """A required setting (usually a database URL) is missing or invalid."""

    event = "config.invalid"


class DatabaseConnectionError(DriftSyncError):
    """The database could not be reached or rejected the credentials."""

    event = "db.connection.failed"


class QueryError(DriftSyncError):
    """A catalog or migration query failed on an open connection."""

    event = "db.query.failed"


class FileWriteError(DriftSyncError):
    """The migrations directory or file could not be created."""

    event = "migration.file.write_failed"


class MigrationApplyError(DriftSyncError):
    """A migration file failed while being applied; its transaction was rolled back."""

    event = "migration.apply.failed"

    def __init__(self, message: str, *, migration_id: str, environment: str | None = None) -> None:
        super().__init__(message, environment=environment, meta={"migration_id": migration_id})
        self.migration_id = migration_id
