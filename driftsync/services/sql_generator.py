"""Turn a DriftResult into PostgreSQL DDL that brings the target in line with the source.

Statements come out in apply order: sequences and tables to create (parents before
the tables that reference them), column additions, column drops, then tables to drop
(dependents first). Every statement is guarded with IF [NOT] EXISTS so a partially
synced target can take the same file.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence

from driftsync.core.logging import get_logger
from driftsync.services.differ import DriftResult
from driftsync.services.snapshot import ColumnDescriptor, SchemaSnapshot, TableSchema

logger = get_logger(__name__)

NEXTVAL_PATTERN = re.compile(r"nextval\('(?P<sequence>[^']+)'(?:::regclass)?\)", flags=re.IGNORECASE)
PLAIN_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_$]*$")
LENGTH_TYPES = {"character varying", "character", "varchar", "char", "bit", "bit varying"}

# PostgreSQL reserved key words; anything else lower-case can stay unquoted.
RESERVED_WORDS = frozenset(
    """
    all analyse analyze and any array as asc asymmetric both case cast check collate column
    constraint create current_catalog current_date current_role current_time current_timestamp
    current_user default deferrable desc distinct do else end except false fetch for foreign from
    grant group having in initially intersect into lateral leading limit localtime localtimestamp
    not null offset on only or order placing primary references returning select session_user
    some symmetric table then to trailing true union unique user using variadic when where window
    with
    """.split()
)


def quote_ident(name: str) -> str:
    if PLAIN_IDENTIFIER.match(name) and name not in RESERVED_WORDS:
        return name
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def sequence_name(default_expression: str | None) -> str | None:
    if not default_expression:
        return None
    match = NEXTVAL_PATTERN.search(default_expression)
    return match.group("sequence") if match else None


def render_default(default_expression: str) -> str:
    # nextval('x'::regclass) -> nextval('x')
    return NEXTVAL_PATTERN.sub(lambda m: f"nextval('{m.group('sequence')}')", default_expression)


def render_type(column: ColumnDescriptor) -> str:
    data_type = column.data_type.strip()
    lowered = data_type.lower()

    if lowered == "user-defined" and column.udt_name:
        return quote_ident(column.udt_name)
    if lowered == "array" and column.udt_name:
        return f"{column.udt_name.lstrip('_').upper()}[]"
    if lowered in LENGTH_TYPES and column.character_maximum_length:
        return f"{data_type.upper()}({column.character_maximum_length})"
    return data_type.upper()


def render_column(column: ColumnDescriptor) -> str:
    parts = [quote_ident(column.ddl_column), render_type(column)]
    if not column.is_nullable:
        parts.append("NOT NULL")
    if column.default_expression:
        parts.append(f"DEFAULT {render_default(column.default_expression)}")
    return " ".join(parts)


def create_table_statements(table: TableSchema) -> list[str]:
    statements: list[str] = []
    seen_sequences: set[str] = set()
    for column in table.columns:
        seq = sequence_name(column.default_expression)
        if seq and seq not in seen_sequences:
            seen_sequences.add(seq)
            statements.append(f"CREATE SEQUENCE IF NOT EXISTS {seq};")

    definitions = [render_column(c) for c in table.columns]
    catalog_names = {c.column: c.ddl_column for c in table.columns}
    primary_key = [catalog_names[c] for c in table.primary_key if c in catalog_names]
    if primary_key:
        definitions.append(f"PRIMARY KEY ({', '.join(quote_ident(c) for c in primary_key)})")

    statements.append(f"CREATE TABLE IF NOT EXISTS {quote_ident(table.ddl_name)} ({', '.join(definitions)});")
    return statements


def add_column_statement(column: ColumnDescriptor, table_name: str | None = None) -> str:
    table = quote_ident(table_name or column.ddl_table)
    return f"ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {render_column(column)};"


def drop_column_statement(column: ColumnDescriptor) -> str:
    table = quote_ident(column.ddl_table)
    return f"ALTER TABLE {table} DROP COLUMN IF EXISTS {quote_ident(column.ddl_column)};"


def drop_table_statement(table_name: str) -> str:
    return f"DROP TABLE IF EXISTS {quote_ident(table_name)};"


def dependency_order(names: Sequence[str], tables: Mapping[str, TableSchema]) -> list[str]:
    """Order ``names`` so every table comes after the tables it references.

    Only references inside ``names`` count. Ties keep the incoming order; tables caught in a
    reference cycle are appended in their incoming order.
    """
    pending = list(dict.fromkeys(names))
    members = set(pending)
    deps = {
        name: {r for r in (tables[name].references if name in tables else ()) if r in members and r != name}
        for name in pending
    }

    ordered: list[str] = []
    placed: set[str] = set()
    while pending:
        ready = next((n for n in pending if deps[n] <= placed), None)
        if ready is None:
            logger.warning("sql.dependency_cycle", extra={"tables": list(pending)})
            ordered.extend(pending)
            break
        ordered.append(ready)
        placed.add(ready)
        pending.remove(ready)
    return ordered


def _shared_table_columns(
    columns: Iterable[ColumnDescriptor], whole_tables: set[str]
) -> list[ColumnDescriptor]:
    return [c for c in columns if c.table not in whole_tables]


def generate(source: SchemaSnapshot, target: SchemaSnapshot, drift: DriftResult) -> list[str]:
    statements: list[str] = []

    for table_name in dependency_order(drift.missing_tables, source.tables):
        statements.extend(create_table_statements(source.tables[table_name]))

    missing_tables = set(drift.missing_tables)
    extra_tables = set(drift.extra_tables)

    for column in _shared_table_columns(drift.missing_in_target, missing_tables):
        # the column lands in the table as the target names it
        statements.append(add_column_statement(column, target.tables[column.table].ddl_name))
    for column in _shared_table_columns(drift.extra_in_target, extra_tables):
        statements.append(drop_column_statement(column))

    for table_name in reversed(dependency_order(drift.extra_tables, target.tables)):
        statements.append(drop_table_statement(target.tables[table_name].ddl_name))

    logger.info(
        "sql.generate.completed",
        extra={
            "source_env": source.environment,
            "target_env": target.environment,
            "statement_count": len(statements),
        },
    )
    return statements
