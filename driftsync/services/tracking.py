from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path

import sqlparse
from sqlalchemy import inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from driftsync.core.errors import DatabaseConnectionError, MigrationApplyError, QueryError
from driftsync.core.logging import get_logger
from driftsync.db.base import session_factory
from driftsync.db.models import SchemaMigration

logger = get_logger(__name__)

TRANSACTION_CONTROL = {"BEGIN", "BEGIN TRANSACTION", "COMMIT", "END"}


@dataclass
class MigrationStatus:
    environment: str
    applied: list[SchemaMigration] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)
    # applied files whose content changed after they were recorded
    modified: list[str] = field(default_factory=list)


def checksum(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _is_transaction_control(statement: str) -> bool:
    return statement.rstrip(";").strip().upper() in TRANSACTION_CONTROL


def read_migration_statements(content: str) -> list[str]:
    """Split a migration file into statements, dropping comments and its outer BEGIN/COMMIT.

    Splitting goes through sqlparse so dollar-quoted bodies (``DO $$ ... $$``, plpgsql
    functions) stay in one piece.
    """
    statements = [
        sqlparse.format(raw, strip_comments=True).strip() for raw in sqlparse.split(content)
    ]
    statements = [s for s in statements if s]
    if statements and _is_transaction_control(statements[0]):
        statements = statements[1:]
    if statements and _is_transaction_control(statements[-1]):
        statements = statements[:-1]
    return statements


def _check_connection(engine: Engine, environment: str) -> None:
    try:
        with engine.connect():
            pass
    except DBAPIError as e:
        raise DatabaseConnectionError(
            f"could not connect to {environment} database: {e.orig or e}", environment=environment
        ) from e


def list_migration_files(migrations_dir: str | Path) -> list[Path]:
    directory = Path(migrations_dir)
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.glob("*.sql") if "backup" not in p.name)


def ensure_tracking_table(engine: Engine) -> None:
    SchemaMigration.__table__.create(bind=engine, checkfirst=True)


def _applied_records(engine: Engine, environment: str) -> list[SchemaMigration]:
    if not inspect(engine).has_table(SchemaMigration.__tablename__):
        return []
    with session_factory(engine)() as session:
        stmt = (
            select(SchemaMigration)
            .where(SchemaMigration.environment == environment)
            .order_by(SchemaMigration.applied_at, SchemaMigration.id)
        )
        return list(session.scalars(stmt))


def apply_migrations(engine: Engine, environment: str, migrations_dir: str | Path) -> list[SchemaMigration]:
    """Apply every pending migration file, one transaction per file, recording each in schema_migrations."""
    _check_connection(engine, environment)
    try:
        ensure_tracking_table(engine)
        already_applied = {r.migration_id for r in _applied_records(engine, environment)}
    except SQLAlchemyError as e:
        raise QueryError(f"could not read schema_migrations: {e}", environment=environment) from e

    files = list_migration_files(migrations_dir)
    if not files:
        logger.info(
            "migration.apply.no_files",
            extra={"environment": environment, "path": str(migrations_dir)},
        )
        return []

    SessionLocal = session_factory(engine)
    applied: list[SchemaMigration] = []
    for path in files:
        migration_id = path.stem
        if migration_id in already_applied:
            logger.debug(
                "migration.apply.skipped",
                extra={"environment": environment, "migration_id": migration_id},
            )
            continue

        content = path.read_text(encoding="utf-8")
        record = SchemaMigration(
            migration_id=migration_id,
            name=path.name,
            checksum=checksum(content),
            environment=environment,
        )
        try:
            with SessionLocal() as session, session.begin():
                connection = session.connection()
                for statement in read_migration_statements(content):
                    connection.exec_driver_sql(statement)
                session.add(record)
        except SQLAlchemyError as e:
            logger.error(
                "migration.apply.failed",
                extra={"environment": environment, "migration_id": migration_id, "error": str(e)},
            )
            raise MigrationApplyError(
                f"migration {migration_id} failed on {environment}: {getattr(e, 'orig', None) or e}",
                migration_id=migration_id,
                environment=environment,
            ) from e

        applied.append(record)
        logger.info(
            "migration.apply.completed",
            extra={"environment": environment, "migration_id": migration_id},
        )

    return applied


def migration_status(engine: Engine, environment: str, migrations_dir: str | Path) -> MigrationStatus:
    _check_connection(engine, environment)
    try:
        records = _applied_records(engine, environment)
    except SQLAlchemyError as e:
        raise QueryError(f"could not read schema_migrations: {e}", environment=environment) from e

    by_id = {r.migration_id: r for r in records}
    status = MigrationStatus(environment=environment, applied=records)
    for path in list_migration_files(migrations_dir):
        record = by_id.get(path.stem)
        if record is None:
            status.pending.append(path.name)
        elif record.checksum != checksum(path.read_text(encoding="utf-8")):
            status.modified.append(path.name)

    if status.modified:
        logger.warning(
            "migration.status.checksum_mismatch",
            extra={"environment": environment, "files": status.modified},
        )
    return status
