from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import ArgumentError, DBAPIError, SQLAlchemyError

from driftsync.core.config import Settings
from driftsync.core.errors import DatabaseConnectionError, QueryError
from driftsync.core.logging import get_logger
from driftsync.db.base import build_engine
from driftsync.services.snapshot import ColumnDescriptor, SchemaSnapshot, TableSchema

logger = get_logger(__name__)

COLUMNS_SQL = text(
    """
    SELECT
        table_name,
        column_name,
        data_type,
        is_nullable,
        column_default,
        ordinal_position,
        udt_name,
        character_maximum_length
    FROM information_schema.columns
    WHERE table_schema = :schema_name
      AND table_name NOT IN :excluded_tables
    ORDER BY table_name, ordinal_position
    """
).bindparams(bindparam("excluded_tables", expanding=True))

PRIMARY_KEYS_SQL = text(
    """
    SELECT kcu.table_name, kcu.column_name
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    WHERE tc.constraint_type = 'PRIMARY KEY'
      AND tc.table_schema = :schema_name
    ORDER BY kcu.table_name, kcu.ordinal_position
    """
)

FOREIGN_KEYS_SQL = text(
    """
    SELECT DISTINCT tc.table_name, ccu.table_name AS referenced_table
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
      AND tc.table_schema = :schema_name
    ORDER BY tc.table_name, referenced_table
    """
)


def _is_nullable(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().upper() in {"YES", "Y", "TRUE", "1"}


def build_snapshot(
    environment: str,
    column_rows: Iterable[Mapping[str, Any]],
    *,
    primary_key_rows: Iterable[Mapping[str, Any]] = (),
    foreign_key_rows: Iterable[Mapping[str, Any]] = (),
) -> SchemaSnapshot:
    """Group catalog rows into a snapshot, keeping each table's ordinal column order."""
    columns_by_table: dict[str, list[ColumnDescriptor]] = {}
    for row in column_rows:
        table = str(row["table_name"])
        max_length = row.get("character_maximum_length")
        columns_by_table.setdefault(table, []).append(
            ColumnDescriptor(
                table=table,
                column=str(row["column_name"]),
                data_type=str(row["data_type"]),
                is_nullable=_is_nullable(row.get("is_nullable")),
                default_expression=row.get("column_default"),
                ordinal_position=int(row.get("ordinal_position") or 0),
                udt_name=row.get("udt_name"),
                character_maximum_length=int(max_length) if max_length is not None else None,
            )
        )

    primary_keys: dict[str, list[str]] = {}
    for row in primary_key_rows:
        primary_keys.setdefault(str(row["table_name"]), []).append(str(row["column_name"]))

    references: dict[str, list[str]] = {}
    for row in foreign_key_rows:
        table = str(row["table_name"])
        referenced = str(row["referenced_table"])
        # self-references don't constrain creation order
        if referenced != table and referenced not in references.get(table, []):
            references.setdefault(table, []).append(referenced)

    tables = {
        name: TableSchema(
            name=name,
            columns=tuple(sorted(cols, key=lambda c: c.ordinal_position)),
            primary_key=tuple(primary_keys.get(name, ())),
            references=tuple(references.get(name, ())),
        )
        for name, cols in columns_by_table.items()
    }
    return SchemaSnapshot(environment=environment, tables=tables)


def _fetch(conn: Connection, statement, **params: Any) -> list[dict[str, Any]]:
    return [dict(row) for row in conn.execute(statement, params).mappings()]


def capture_schema(url: str | None, *, environment: str, settings: Settings) -> SchemaSnapshot:
    """Read one environment's public table/column structure from information_schema."""
    if not url or not url.strip():
        raise DatabaseConnectionError("database URL is empty", environment=environment)

    logger.info(
        "drift.capture.started",
        extra={"environment": environment, "schema_name": settings.schema_name},
    )

    try:
        engine = build_engine(url, settings)
    except DatabaseConnectionError as e:
        e.environment = environment
        raise
    except ArgumentError as e:
        raise DatabaseConnectionError(f"unsupported database URL: {e}", environment=environment) from e

    try:
        try:
            conn = engine.connect()
        except DBAPIError as e:
            raise DatabaseConnectionError(
                f"could not connect to {environment} database: {e.orig or e}", environment=environment
            ) from e

        with conn:
            params = {"schema_name": settings.schema_name}
            excluded = list(settings.excluded_tables) or ["__none__"]
            try:
                column_rows = _fetch(conn, COLUMNS_SQL, excluded_tables=excluded, **params)
                pk_rows = _fetch(conn, PRIMARY_KEYS_SQL, **params)
                fk_rows = _fetch(conn, FOREIGN_KEYS_SQL, **params)
            except SQLAlchemyError as e:
                message = getattr(e, "orig", None) or e
                raise QueryError(
                    f"catalog query failed on {environment}: {message}", environment=environment
                ) from e
    finally:
        engine.dispose()

    snapshot = build_snapshot(environment, column_rows, primary_key_rows=pk_rows, foreign_key_rows=fk_rows)
    logger.info(
        "drift.capture.completed",
        extra={
            "environment": environment,
            "table_count": len(snapshot.tables),
            "column_count": snapshot.column_count(),
        },
    )
    return snapshot
