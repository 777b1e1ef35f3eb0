"""Command-line interface for cqlmodel."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from cqlmodel.config import Config
from cqlmodel.driver.utils import build_config_and_validate, make_client
from cqlmodel.exceptions import ConfigError, SchemaLoadError, SchemaMismatchError
from cqlmodel.migrations.engine import (
    MigrationEngine,
    make_confirmer,
    resolve_migration_mode,
)
from cqlmodel.schema.ddl import DdlGenerator
from cqlmodel.schema.diff import SchemaDiffer
from cqlmodel.schema.introspect import SchemaIntrospector
from cqlmodel.schema.loader import load_schema
from cqlmodel.schema.models import TableSchema
from cqlmodel.schema.normalize import normalize_schema


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(
        prog="cqlmodel",
        description="Cassandra schema mapping and migration tool",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Validate schema files")
    validate_parser.add_argument("--schema-path", type=Path, default=None)

    ddl_parser = subparsers.add_parser("ddl", help="Print CREATE statements")
    ddl_parser.add_argument("--schema-path", type=Path, default=None)
    ddl_parser.add_argument("--table", help="Only print statements for this table")

    diff_parser = subparsers.add_parser(
        "diff", help="Compare schema files against the live keyspace"
    )
    diff_parser.add_argument("--schema-path", type=Path, default=None)
    diff_parser.add_argument("--keyspace")
    diff_parser.add_argument("--hosts", help="Comma-separated contact points")

    sync_parser = subparsers.add_parser(
        "sync", help="Create or migrate tables to match schema files"
    )
    sync_parser.add_argument("--schema-path", type=Path, default=None)
    sync_parser.add_argument("--keyspace")
    sync_parser.add_argument("--hosts", help="Comma-separated contact points")
    sync_parser.add_argument(
        "--migration",
        choices=["safe", "alter", "drop"],
        help="Migration mode (default: safe, forced to safe in production)",
    )
    sync_parser.add_argument("--env", help="Execution environment, e.g. production")
    sync_parser.add_argument(
        "--yes",
        action="store_true",
        help="Confirm every migration step without prompting",
    )
    sync_parser.add_argument("--table", help="Only sync this table")

    args = parser.parse_args(argv)

    if args.command == "validate":
        return cmd_validate(args)
    elif args.command == "ddl":
        return cmd_ddl(args)
    elif args.command == "diff":
        return cmd_diff(args)
    elif args.command == "sync":
        return cmd_sync(args)
    else:
        print(f"Command '{args.command}' not yet implemented", file=sys.stderr)
        return 1


def _schema_path(args: argparse.Namespace, config: Optional[Config] = None) -> Path:
    if args.schema_path is not None:
        return args.schema_path
    config = config or Config.from_env()
    return Path(config.schema_dir)


def _select_tables(
    tables: dict[str, TableSchema], only: Optional[str]
) -> list[TableSchema]:
    if only is None:
        return [tables[name] for name in sorted(tables)]
    if only not in tables:
        raise SchemaLoadError(f"Table '{only}' is not declared in the schema files")
    return [tables[only]]


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate schema files."""
    try:
        tables = load_schema(_schema_path(args))
        print(f"Validated {len(tables)} tables:")
        for name in sorted(tables):
            table = tables[name]
            print(f"  - {name} ({len(table.column_names())} columns)")
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Validation error: {e}", file=sys.stderr)
        return 1


def cmd_ddl(args: argparse.Namespace) -> int:
    """Print the statements that create each declared table."""
    try:
        tables = load_schema(_schema_path(args))
        generator = DdlGenerator()
        for table in _select_tables(tables, args.table):
            print(generator.create_table(table))
            for target in table.indexes:
                print(generator.create_index(table.table_name, target))
            for custom in table.custom_indexes:
                print(generator.create_custom_index(table.table_name, custom))
            for view_name, view in table.materialized_views.items():
                print(
                    generator.create_materialized_view(table.table_name, view_name, view)
                )
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"DDL error: {e}", file=sys.stderr)
        return 1


def cmd_diff(args: argparse.Namespace) -> int:
    """Show differences between declared tables and the live keyspace."""
    try:
        config = build_config_and_validate(keyspace=args.keyspace, contact_points=args.hosts)
        tables = load_schema(_schema_path(args, config))
        differ = SchemaDiffer()

        changed = 0
        with make_client(config) as client:
            introspector = SchemaIntrospector(client, config.keyspace)
            for table in _select_tables(tables, None):
                live = introspector.introspect_table(table.table_name)
                if live is None:
                    print(f"  missing: {table.table_name}")
                    changed += 1
                    continue

                diff = differ.diff(normalize_schema(live), normalize_schema(table))
                if diff.is_empty:
                    continue
                changed += 1
                print(f"  changed: {table.table_name}")
                if diff.key_changed:
                    print("    primary key or clustering order changed")
                for field_diff in diff.fields:
                    print(f"    {field_diff.kind.value}: {'.'.join(field_diff.path)}")
                for target in diff.added_indexes:
                    print(f"    index added: {target}")
                for target in diff.removed_indexes:
                    print(f"    index removed: {target}")
                for custom in diff.added_custom_indexes:
                    print(f"    custom index added: {custom['on']}")
                for custom in diff.removed_custom_indexes:
                    print(f"    custom index removed: {custom['on']}")
                for view_name in diff.added_materialized_views:
                    print(f"    materialized view added: {view_name}")
                for view_name in diff.removed_materialized_views:
                    print(f"    materialized view removed: {view_name}")

        if not changed:
            print("No changes detected")
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Diff error: {e}", file=sys.stderr)
        return 1


def cmd_sync(args: argparse.Namespace) -> int:
    """Create or migrate each declared table."""
    try:
        config = build_config_and_validate(
            keyspace=args.keyspace,
            contact_points=args.hosts,
            migration=args.migration,
            environment=args.env,
        )
        if args.yes:
            config.disable_tty_confirmation = True
        tables = load_schema(_schema_path(args, config))
        selected = _select_tables(tables, args.table)

        with make_client(config) as client:
            engine = MigrationEngine(
                client,
                config.keyspace,
                confirmer=make_confirmer(config),
                mode=resolve_migration_mode(config),
            )
            for table in selected:
                result = engine.sync(table)
                print(
                    f"  {result.table_name}: {result.outcome.value} "
                    f"({len(result.statements)} statements)"
                )
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except SchemaMismatchError as e:
        print(f"Migration stopped: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Sync error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
