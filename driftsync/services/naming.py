from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import replace

from driftsync.core.errors import ConfigurationError
from driftsync.services.snapshot import SchemaSnapshot, TableSchema

_BOUNDARY_ACRONYM = re.compile(r"([A-Z]+)([A-Z][a-z])")
_BOUNDARY_LOWER_UPPER = re.compile(r"([a-z0-9])([A-Z])")


def to_snake_case(name: str) -> str:
    """``merchantId`` -> ``merchant_id``, ``HTTPStatus`` -> ``http_status``; snake_case passes through."""
    value = _BOUNDARY_ACRONYM.sub(r"\1_\2", name)
    value = _BOUNDARY_LOWER_UPPER.sub(r"\1_\2", value)
    return value.lower()


def _check_unique(labelled: Iterable[tuple[str, str]], *, policy: str, environment: str) -> None:
    """``labelled`` yields ``(display name, normalized name)`` pairs."""
    seen: dict[str, str] = {}
    for label, converted in labelled:
        if converted in seen:
            raise ConfigurationError(
                f"{policy} naming maps {seen[converted]!r} and {label!r} to {converted!r} "
                f"in {environment}; compare with --naming exact",
                environment=environment,
            )
        seen[converted] = label


def _rename_table(table: TableSchema, convert: Callable[[str], str]) -> TableSchema:
    name = convert(table.name)
    return replace(
        table,
        name=name,
        catalog_name=table.ddl_name,
        columns=tuple(
            replace(
                c,
                table=name,
                column=convert(c.column),
                catalog_table=c.ddl_table,
                catalog_column=c.ddl_column,
            )
            for c in table.columns
        ),
        primary_key=tuple(convert(c) for c in table.primary_key),
        references=tuple(convert(r) for r in table.references),
    )


def normalize_snapshot(snapshot: SchemaSnapshot, policy: str = "exact") -> SchemaSnapshot:
    """Rename tables and columns for comparison; catalog names are kept for DDL.

    Raises ConfigurationError when two identifiers collapse onto the same normalized name.
    """
    if policy == "exact":
        return snapshot
    if policy != "snake_case":
        raise ValueError(f"unknown naming policy: {policy!r}")

    _check_unique(
        ((name, to_snake_case(name)) for name in snapshot.tables),
        policy=policy,
        environment=snapshot.environment,
    )
    for table in snapshot.tables.values():
        _check_unique(
            ((f"{table.name}.{c.column}", to_snake_case(c.column)) for c in table.columns),
            policy=policy,
            environment=snapshot.environment,
        )

    tables = [_rename_table(t, to_snake_case) for t in snapshot.tables.values()]
    return replace(snapshot, tables={t.name: t for t in tables})
