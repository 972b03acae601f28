from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType


@dataclass(frozen=True)
class ColumnDescriptor:
    table: str
    column: str
    data_type: str
    is_nullable: bool = True
    default_expression: str | None = None
    ordinal_position: int = 0
    udt_name: str | None = None
    character_maximum_length: int | None = None
    # Names as stored in the catalog when ``table``/``column`` were normalized for comparison.
    catalog_table: str | None = None
    catalog_column: str | None = None

    @property
    def ddl_table(self) -> str:
        return self.catalog_table or self.table

    @property
    def ddl_column(self) -> str:
        return self.catalog_column or self.column


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: tuple[ColumnDescriptor, ...] = ()
    primary_key: tuple[str, ...] = ()
    # Tables this one references through foreign keys.
    references: tuple[str, ...] = ()
    catalog_name: str | None = None

    @property
    def ddl_name(self) -> str:
        return self.catalog_name or self.name

    def column_names(self) -> set[str]:
        return {c.column for c in self.columns}


@dataclass(frozen=True)
class SchemaSnapshot:
    """Point-in-time table/column structure of one environment."""

    environment: str
    tables: Mapping[str, TableSchema] = field(default_factory=dict)
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "tables", MappingProxyType(dict(self.tables)))

    def table_names(self) -> list[str]:
        return list(self.tables)

    def column_count(self) -> int:
        return sum(len(t.columns) for t in self.tables.values())


def snapshot_from_tables(environment: str, tables: Iterable[TableSchema]) -> SchemaSnapshot:
    return SchemaSnapshot(environment=environment, tables={t.name: t for t in tables})
