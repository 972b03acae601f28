from __future__ import annotations

from dataclasses import dataclass

from driftsync.core.logging import get_logger
from driftsync.services.snapshot import ColumnDescriptor, SchemaSnapshot

logger = get_logger(__name__)


@dataclass(frozen=True)
class DriftResult:
    missing_in_target: tuple[ColumnDescriptor, ...] = ()
    extra_in_target: tuple[ColumnDescriptor, ...] = ()
    missing_tables: tuple[str, ...] = ()
    extra_tables: tuple[str, ...] = ()

    @property
    def has_drift(self) -> bool:
        return bool(
            self.missing_in_target or self.extra_in_target or self.missing_tables or self.extra_tables
        )

    def missing_by_table(self) -> dict[str, list[ColumnDescriptor]]:
        return _group_by_table(self.missing_in_target)

    def extra_by_table(self) -> dict[str, list[ColumnDescriptor]]:
        return _group_by_table(self.extra_in_target)


def _group_by_table(columns: tuple[ColumnDescriptor, ...]) -> dict[str, list[ColumnDescriptor]]:
    grouped: dict[str, list[ColumnDescriptor]] = {}
    for col in columns:
        grouped.setdefault(col.table, []).append(col)
    return grouped


def _one_way(
    left: SchemaSnapshot, right: SchemaSnapshot
) -> tuple[list[ColumnDescriptor], list[str]]:
    """Columns and whole tables present in ``left`` but not in ``right``, by exact name."""
    columns: list[ColumnDescriptor] = []
    tables: list[str] = []

    for table_name, table in left.tables.items():
        other = right.tables.get(table_name)
        if other is None:
            tables.append(table_name)
            columns.extend(table.columns)
            continue

        other_names = other.column_names()
        columns.extend(c for c in table.columns if c.column not in other_names)

    return columns, tables


def diff(source: SchemaSnapshot, target: SchemaSnapshot) -> DriftResult:
    missing_columns, missing_tables = _one_way(source, target)
    extra_columns, extra_tables = _one_way(target, source)

    result = DriftResult(
        missing_in_target=tuple(missing_columns),
        extra_in_target=tuple(extra_columns),
        missing_tables=tuple(missing_tables),
        extra_tables=tuple(extra_tables),
    )
    logger.info(
        "drift.diff.completed",
        extra={
            "source_env": source.environment,
            "target_env": target.environment,
            "missing_columns": len(result.missing_in_target),
            "extra_columns": len(result.extra_in_target),
            "missing_tables": len(result.missing_tables),
            "extra_tables": len(result.extra_tables),
            "has_drift": result.has_drift,
        },
    )
    return result
