from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from driftsync.core.config import NAMING_POLICIES, Settings, get_settings, parse_environment
from driftsync.core.errors import DriftSyncError
from driftsync.core.logging import configure_logging, get_logger
from driftsync.core.run_context import new_run_id, reset_run_id, set_run_id
from driftsync.db.base import build_engine
from driftsync.services.differ import diff
from driftsync.services.introspection import capture_schema
from driftsync.services.migration_writer import write_migration
from driftsync.services.naming import normalize_snapshot
from driftsync.services.report import present
from driftsync.services.sql_generator import generate
from driftsync.services.tracking import apply_migrations, migration_status

logger = get_logger(__name__)


class _ArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with 1 like every other failed run."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _fail(error: DriftSyncError) -> int:
    logger.error(error.event, extra={"environment": error.environment, "error": str(error), **error.meta})
    print(f"error: {error}", file=sys.stderr)
    return 1


def build_drift_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="schema-drift",
        description="Compare two database environments and write a SQL file that syncs the target.",
    )
    parser.add_argument("source", help="environment to copy structure from (development, test, production)")
    parser.add_argument("target", help="environment to bring in line (development, test, production)")
    parser.add_argument(
        "--report-only",
        action="store_true",
        help="print the drift report without writing a migration file",
    )
    parser.add_argument("--naming", choices=NAMING_POLICIES, help="column/table name comparison policy")
    parser.add_argument("--migrations-dir", help="directory for generated migration files")
    return parser


def run_drift(
    source_name: str,
    target_name: str,
    settings: Settings,
    *,
    report_only: bool = False,
    naming_policy: str | None = None,
    migrations_dir: str | None = None,
) -> int:
    source_env = parse_environment(source_name)
    target_env = parse_environment(target_name)

    # Resolve both URLs before touching either database.
    source_url = settings.database_url_for(source_env)
    target_url = settings.database_url_for(target_env)

    policy = naming_policy or settings.naming_policy
    source = normalize_snapshot(
        capture_schema(source_url, environment=source_env.value, settings=settings), policy
    )
    target = normalize_snapshot(
        capture_schema(target_url, environment=target_env.value, settings=settings), policy
    )

    result = diff(source, target)
    exit_code = present(result, source_env=source_env.value, target_env=target_env.value, source=source)
    if not result.has_drift or report_only:
        return exit_code

    statements = generate(source, target, result)
    path = write_migration(
        statements,
        source_env.value,
        target_env.value,
        migrations_dir=migrations_dir or settings.migrations_dir,
    )
    if path is not None:
        print(f"Generated {len(statements)} SQL statements: {path}")
        print(f"Apply after review: schema-migrations apply {target_env.value}")
    return exit_code


def main(argv: Sequence[str] | None = None) -> int:
    args = build_drift_parser().parse_args(argv)

    token = set_run_id(new_run_id())
    try:
        settings = get_settings()
        configure_logging(level=settings.log_level, json_logs=settings.json_logs)
        return run_drift(
            args.source,
            args.target,
            settings,
            report_only=args.report_only,
            naming_policy=args.naming,
            migrations_dir=args.migrations_dir,
        )
    except DriftSyncError as e:
        return _fail(e)
    finally:
        reset_run_id(token)


def build_migrations_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="schema-migrations",
        description="Apply reviewed migration files and inspect the schema_migrations audit trail.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("apply", "apply pending migration files to an environment"),
        ("status", "list applied and pending migrations for an environment"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("environment", help="development, test or production")
        cmd.add_argument("--migrations-dir", help="directory holding migration files")
    return parser


def run_migrations_command(
    command: str,
    environment_name: str,
    settings: Settings,
    *,
    migrations_dir: str | None = None,
) -> int:
    environment = parse_environment(environment_name)
    directory = migrations_dir or settings.migrations_dir
    engine = build_engine(settings.database_url_for(environment), settings)
    try:
        if command == "apply":
            applied = apply_migrations(engine, environment.value, directory)
            for record in applied:
                print(f"applied {record.migration_id}")
            print(f"{len(applied)} migration(s) applied to {environment.value}")
            return 0

        status = migration_status(engine, environment.value, directory)
        print(f"Migrations for {environment.value}:")
        if not status.applied:
            print("  no migrations applied")
        for record in status.applied:
            print(f"  applied  {record.migration_id}  {record.applied_at:%Y-%m-%d %H:%M:%S}")
        for name in status.pending:
            print(f"  pending  {name}")
        for name in status.modified:
            print(f"  modified {name} (checksum differs from applied version)")
        return 1 if status.modified else 0
    finally:
        engine.dispose()


def migrations_main(argv: Sequence[str] | None = None) -> int:
    args = build_migrations_parser().parse_args(argv)

    token = set_run_id(new_run_id())
    try:
        settings = get_settings()
        configure_logging(level=settings.log_level, json_logs=settings.json_logs)
        return run_migrations_command(
            args.command,
            args.environment,
            settings,
            migrations_dir=args.migrations_dir,
        )
    except DriftSyncError as e:
        return _fail(e)
    finally:
        reset_run_id(token)


if __name__ == "__main__":
    raise SystemExit(main())
