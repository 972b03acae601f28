from __future__ import annotations

import sys
from typing import TextIO

from driftsync.services.differ import DriftResult
from driftsync.services.snapshot import ColumnDescriptor, SchemaSnapshot

RULE = "=" * 80
SUBRULE = "-" * 80


def _describe_missing(col: ColumnDescriptor) -> str:
    nullable = "NULL" if col.is_nullable else "NOT NULL"
    default = f" DEFAULT {col.default_expression}" if col.default_expression else ""
    return f"    - {col.column} ({col.data_type} {nullable}{default})"


def next_steps(result: DriftResult, source_env: str, target_env: str) -> list[str]:
    if not result.has_drift:
        return [
            f"1. Sync lookup data from {source_env} to {target_env} if reference tables changed",
            f"2. Re-run validation: schema-drift {source_env} {target_env}",
            "3. When ready, promote to production",
        ]
    return [
        f"1. Review the generated SQL file: migrations/schema-fix-{source_env}-to-{target_env}-*.sql",
        f"2. Apply to {target_env}: schema-migrations apply {target_env}",
        f"3. Check applied migrations: schema-migrations status {target_env}",
        f"4. Verify: schema-drift {source_env} {target_env}",
    ]


def present(
    result: DriftResult,
    *,
    source_env: str,
    target_env: str,
    source: SchemaSnapshot | None = None,
    stream: TextIO | None = None,
) -> int:
    """Print the drift report; the return value is the process exit code (0 clean, 1 drift)."""
    out = stream or sys.stdout

    def emit(line: str = "") -> None:
        print(line, file=out)

    emit(RULE)
    emit(f"SCHEMA DRIFT DETECTION: {source_env} -> {target_env}")
    emit(RULE)
    emit()

    if source is not None:
        emit(f"Total tables in {source_env}: {len(source.tables)}")
        emit(f"Total columns in {source_env}: {source.column_count()}")
        emit()

    if not result.has_drift:
        emit("NO DRIFT DETECTED")
        emit(f"{source_env} and {target_env} schemas are synchronized.")
        emit()
        emit("NEXT STEPS:")
        emit(SUBRULE)
        for step in next_steps(result, source_env, target_env):
            emit(step)
        emit()
        return 0

    emit("DRIFT DETECTED")
    emit(f"  * {len(result.missing_in_target)} columns in {source_env} NOT in {target_env}")
    emit(f"  * {len(result.extra_in_target)} columns in {target_env} NOT in {source_env}")
    if result.missing_tables:
        tables = ", ".join(result.missing_tables)
        emit(f"  * {len(result.missing_tables)} tables missing in {target_env}: {tables}")
    if result.extra_tables:
        tables = ", ".join(result.extra_tables)
        emit(f"  * {len(result.extra_tables)} extra tables in {target_env}: {tables}")
    emit()

    missing = result.missing_by_table()
    if missing:
        emit(f"MISSING IN {target_env.upper()} (need to add):")
        emit(SUBRULE)
        for table, cols in missing.items():
            suffix = " [new table]" if table in result.missing_tables else ""
            emit(f"  {table} ({len(cols)} columns){suffix}:")
            for col in cols:
                emit(_describe_missing(col))
        emit()

    extra = result.extra_by_table()
    if extra:
        emit(f"EXTRA IN {target_env.upper()} (need to remove):")
        emit(SUBRULE)
        for table, cols in extra.items():
            suffix = " [table dropped]" if table in result.extra_tables else ""
            emit(f"  {table} ({len(cols)} columns){suffix}:")
            for col in cols:
                emit(f"    - {col.column} ({col.data_type})")
        emit()

    emit("RECOMMENDED ACTIONS:")
    emit(SUBRULE)
    for step in next_steps(result, source_env, target_env):
        emit(step)
    emit(RULE)
    return 1
