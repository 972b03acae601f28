from __future__ import annotations

import os
import tempfile
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from driftsync.core.errors import FileWriteError
from driftsync.core.logging import get_logger

logger = get_logger(__name__)

FILENAME_TEMPLATE = "schema-fix-{source}-to-{target}-{timestamp}.sql"
VERIFICATION_QUERY = (
    "SELECT table_name, column_name FROM information_schema.columns "
    "WHERE table_schema='public' ORDER BY table_name, ordinal_position;"
)


def iso_timestamp(now: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. ``2025-10-23T21:22:27.636Z``."""
    utc = now.astimezone(timezone.utc) if now.tzinfo else now.replace(tzinfo=timezone.utc)
    return f"{utc:%Y-%m-%dT%H:%M:%S}.{utc.microsecond // 1000:03d}Z"


def migration_filename(source_env: str, target_env: str, now: datetime) -> str:
    timestamp = iso_timestamp(now).replace(":", "-").replace(".", "-")
    return FILENAME_TEMPLATE.format(source=source_env, target=target_env, timestamp=timestamp)


def render_migration(statements: Sequence[str], source_env: str, target_env: str, now: datetime) -> str:
    lines = [
        f"-- Schema Synchronization: {source_env} → {target_env}",
        f"-- Generated: {iso_timestamp(now)}",
        f"-- Total statements: {len(statements)}",
        "",
        "BEGIN;",
        "",
        *statements,
        "",
        "COMMIT;",
        "",
        "-- Verification query:",
        f"-- {VERIFICATION_QUERY}",
    ]
    return "\n".join(lines) + "\n"


def _atomic_write(path: Path, content: str) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
        os.replace(tmp_name, path)
    except Exception:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_migration(
    statements: Sequence[str],
    source_env: str,
    target_env: str,
    *,
    migrations_dir: str | Path = "migrations",
    now: datetime | None = None,
) -> Path | None:
    """Persist ``statements`` as a reviewable migration; nothing is written for an empty list."""
    if not statements:
        logger.info("migration.file.skipped", extra={"source_env": source_env, "target_env": target_env})
        return None

    now = now or datetime.now(timezone.utc)
    directory = Path(migrations_dir)
    path = directory / migration_filename(source_env, target_env, now)

    try:
        directory.mkdir(parents=True, exist_ok=True)
        _atomic_write(path, render_migration(statements, source_env, target_env, now))
    except OSError as e:
        raise FileWriteError(f"could not write migration file {path}: {e}", meta={"path": str(path)}) from e

    logger.info(
        "migration.file.written",
        extra={
            "path": str(path),
            "source_env": source_env,
            "target_env": target_env,
            "statement_count": len(statements),
        },
    )
    return path
