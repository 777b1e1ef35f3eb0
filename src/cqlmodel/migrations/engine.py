"""Reconcile a declared table schema against the live database."""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Optional

from cqlmodel.config import Config
from cqlmodel.exceptions import DefinitionError, SchemaMismatchError
from cqlmodel.migrations.confirm import (
    AlwaysAllow,
    ConfirmationRequest,
    Confirmer,
    MigrationAction,
    TtyConfirmer,
)
from cqlmodel.schema.ddl import DdlGenerator
from cqlmodel.schema.diff import FieldDiff, SchemaDiffer
from cqlmodel.schema.fieldtypes import format_type
from cqlmodel.schema.introspect import SchemaIntrospector, StatementExecutor
from cqlmodel.schema.models import CqlTypeRules, CustomIndex, LiveSchema, TableSchema
from cqlmodel.schema.normalize import (
    NormalizedSchema,
    index_column,
    normalize_schema,
    structural_hash,
)
from cqlmodel.types import (
    DefinitionPhase,
    DiffKind,
    MigrationMode,
    MigrationOutcome,
    TableName,
)

__all__ = ["MigrationResult", "MigrationEngine", "resolve_migration_mode", "make_confirmer"]

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    table_name: TableName
    outcome: MigrationOutcome
    statements: list[str] = field(default_factory=list)


@dataclass
class _MigrationRun:
    """State of one sync; the live snapshot is a private working copy."""

    schema: TableSchema
    declared: NormalizedSchema
    live: Optional[LiveSchema] = None
    live_normalized: Optional[NormalizedSchema] = None
    statements: list[str] = field(default_factory=list)

    @property
    def table_name(self) -> str:
        return self.schema.table_name


def resolve_migration_mode(config: Config) -> MigrationMode:
    """Configured migration mode, forced to SAFE in production."""
    if config.is_production:
        return MigrationMode.SAFE
    return MigrationMode(config.migration)


def make_confirmer(config: Config) -> Confirmer:
    if config.disable_tty_confirmation:
        return AlwaysAllow()
    return TtyConfirmer()


class MigrationEngine:
    """Create, alter or recreate one table so it matches its declaration.

    Steps run strictly in order; a failed or declined step stops the run.
    """

    def __init__(
        self,
        client: StatementExecutor,
        keyspace: str,
        confirmer: Optional[Confirmer] = None,
        mode: MigrationMode = MigrationMode.SAFE,
        production: bool = False,
    ) -> None:
        self._client = client
        self._keyspace = keyspace
        self._confirmer = confirmer or TtyConfirmer()
        self._mode = MigrationMode.SAFE if production else mode
        self._introspector = SchemaIntrospector(client, keyspace)
        self._generator = DdlGenerator()
        self._differ = SchemaDiffer()

    @property
    def mode(self) -> MigrationMode:
        return self._mode

    def sync(self, schema: TableSchema) -> MigrationResult:
        """Bring the live table in line with ``schema``."""
        run = _MigrationRun(schema=schema, declared=normalize_schema(schema))
        run.live = self._introspector.introspect_table(schema.table_name)

        if run.live is None:
            logger.info(f"Creating table '{run.table_name}'")
            self._create(run)
            return MigrationResult(run.table_name, MigrationOutcome.CREATED, run.statements)

        run.live_normalized = normalize_schema(run.live)
        if run.live_normalized == run.declared:
            logger.info(f"Table '{run.table_name}' is up to date")
            return MigrationResult(run.table_name, MigrationOutcome.UNCHANGED, [])

        logger.info(
            f"Table '{run.table_name}' differs from its schema (migration: {self._mode.value})"
        )
        if self._mode is MigrationMode.DROP:
            self._confirm_and_recreate(run)
            return MigrationResult(run.table_name, MigrationOutcome.RECREATED, run.statements)

        if self._mode is MigrationMode.ALTER:
            if self._differ.key_changed(run.live_normalized, run.declared):
                self._confirm_and_recreate(run)
                return MigrationResult(
                    run.table_name, MigrationOutcome.RECREATED, run.statements
                )
            if self._alter_fields(run):
                return MigrationResult(
                    run.table_name, MigrationOutcome.RECREATED, run.statements
                )
            self._reconcile_dependents(run)
            return MigrationResult(run.table_name, MigrationOutcome.ALTERED, run.statements)

        raise SchemaMismatchError(run.table_name)

    def _confirm(
        self,
        run: _MigrationRun,
        action: MigrationAction,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        request = ConfirmationRequest(
            action=action,
            table_name=run.table_name,
            message=message,
            field_name=field_name,
        )
        if not self._confirmer.confirm(request):
            logger.info(f"Migration of table '{run.table_name}' declined: {action.value}")
            raise SchemaMismatchError(run.table_name)

    def _execute(self, run: _MigrationRun, phase: DefinitionPhase, statement: str) -> None:
        logger.debug(f"Executing definition statement: {statement}")
        try:
            self._client.execute(statement, [], prepare=False)
        except Exception as e:
            raise DefinitionError(phase, str(e)) from e
        run.statements.append(statement)

    def _create(self, run: _MigrationRun) -> None:
        """CREATE TABLE followed by every declared index and view."""
        schema = run.schema
        self._execute(run, DefinitionPhase.TABLE_CREATE, self._generator.create_table(schema))
        for target in schema.indexes:
            self._execute(
                run,
                DefinitionPhase.INDEX_CREATE,
                self._generator.create_index(run.table_name, target),
            )
        for custom in schema.custom_indexes:
            self._execute(
                run,
                DefinitionPhase.INDEX_CREATE,
                self._generator.create_custom_index(run.table_name, custom),
            )
        for view_name, view in schema.materialized_views.items():
            self._execute(
                run,
                DefinitionPhase.MATVIEW_CREATE,
                self._generator.create_materialized_view(run.table_name, view_name, view),
            )

    def _confirm_and_recreate(self, run: _MigrationRun) -> None:
        self._confirm(
            run,
            MigrationAction.RECREATE_TABLE,
            f'Migration: model schema changed for table "{run.table_name}", '
            "drop table & recreate? (data will be lost!) (y/n): ",
        )
        self._recreate(run)

    def _recreate(self, run: _MigrationRun) -> None:
        """Drop dependent views and the table, then create everything anew."""
        logger.info(f"Recreating table '{run.table_name}'")
        for view_name in list(run.live_normalized.materialized_views):
            self._execute(
                run,
                DefinitionPhase.MATVIEW_DROP,
                self._generator.drop_materialized_view(view_name),
            )
        run.live_normalized.materialized_views.clear()
        self._execute(
            run, DefinitionPhase.TABLE_DROP, self._generator.drop_table(run.table_name)
        )
        self._create(run)

    def _alter_fields(self, run: _MigrationRun) -> bool:
        """Apply field differences one by one.

        Returns True if a key column change forced a full table recreate.
        """
        live = run.live_normalized = copy.deepcopy(run.live_normalized)

        for diff in self._differ.diff_fields(live, run.declared):
            name = diff.field_name
            if diff.kind is DiffKind.EDITED and self._is_reconciled(live, diff):
                continue

            if diff.kind is DiffKind.ADDED:
                self._confirm(
                    run,
                    MigrationAction.ADD_FIELD,
                    f'Migration: model schema for table "{run.table_name}" has added '
                    f'field "{name}", alter table to add column? (y/n): ',
                    name,
                )
                self._add_field(run, diff)
            elif diff.kind is DiffKind.DELETED:
                self._confirm(
                    run,
                    MigrationAction.DROP_FIELD,
                    f'Migration: model schema for table "{run.table_name}" has removed '
                    f'field "{name}", alter table to drop column? (column data will be '
                    "lost & dependent indexes/views will be recreated!) (y/n): ",
                    name,
                )
                self._remove_field(run, name)
            elif self._edit_field(run, diff):
                return True

        return False

    @staticmethod
    def _is_reconciled(live: NormalizedSchema, diff: FieldDiff) -> bool:
        """True if an earlier step for the field already applied this attribute."""
        current = live.fields.get(diff.field_name)
        return current is not None and getattr(current, diff.attribute) == diff.rhs

    def _edit_field(self, run: _MigrationRun, diff: FieldDiff) -> bool:
        """Handle an edited field. Returns True if the table was recreated."""
        name = diff.field_name
        live = run.live_normalized
        in_partition = name in live.partition_key
        in_clustering = name in live.clustering_key

        if diff.attribute == "type" and not in_partition:
            if CqlTypeRules.is_alterable(diff.lhs, diff.rhs):
                self._confirm(
                    run,
                    MigrationAction.ALTER_FIELD_TYPE,
                    f'Migration: model schema for table "{run.table_name}" has new type '
                    f'for field "{name}", alter table to update column type? (y/n): ',
                    name,
                )
                cql_type = format_type(diff.rhs, run.declared.fields[name].type_def)
                self._execute(
                    run,
                    DefinitionPhase.ALTER,
                    self._generator.alter_type(run.table_name, name, cql_type),
                )
                live.fields[name].type = diff.rhs
                return False

        if in_partition or in_clustering:
            self._confirm(
                run,
                MigrationAction.RECREATE_TABLE,
                f'Migration: model schema for table "{run.table_name}" has new '
                f'incompatible type for primary key field "{name}", proceed to '
                "recreate table? (y/n): ",
                name,
            )
            self._recreate(run)
            return True

        self._confirm(
            run,
            MigrationAction.RECREATE_FIELD,
            f'Migration: model schema for table "{run.table_name}" has new incompatible '
            f'type for field "{name}", drop column and recreate? (column data will be '
            "lost & dependent indexes/views will be recreated!) (y/n): ",
            name,
        )
        self._remove_field(run, name)
        self._add_field(run, diff)
        return False

    def _add_field(self, run: _MigrationRun, diff: FieldDiff) -> None:
        name = diff.field_name
        declared = run.declared.fields[name]
        cql_type = self._generator.added_column_type(diff, run.declared)
        self._execute(
            run,
            DefinitionPhase.ALTER,
            self._generator.alter_add(run.table_name, name, cql_type, static=declared.static),
        )
        run.live_normalized.fields[name] = copy.deepcopy(declared)

    def _remove_field(self, run: _MigrationRun, name: str) -> None:
        """Drop the views and indexes that use a column, then the column."""
        live = run.live_normalized
        index_names: list[str] = []

        dependent_indexes = [i for i in live.indexes if index_column(i) == name]
        for target in dependent_indexes:
            index_names.append(run.live.index_names.get(target))
            live.indexes.remove(target)

        dependent_custom = [ci for ci in live.custom_indexes if ci["on"] == name]
        for custom in dependent_custom:
            index_names.append(run.live.index_names.get(structural_hash(custom)))
            live.custom_indexes.remove(custom)

        dependent_views = [
            view_name
            for view_name, view in live.materialized_views.items()
            if view.references(name)
        ]
        for view_name in dependent_views:
            del live.materialized_views[view_name]
            self._execute(
                run,
                DefinitionPhase.MATVIEW_DROP,
                self._generator.drop_materialized_view(view_name),
            )

        for index_name in index_names:
            if index_name is None:
                logger.warning(f"No live index name found for a dependent of '{name}'")
                continue
            self._execute(
                run, DefinitionPhase.INDEX_DROP, self._generator.drop_index(index_name)
            )

        self._execute(
            run, DefinitionPhase.ALTER, self._generator.alter_drop(run.table_name, name)
        )
        live.fields.pop(name, None)

    def _reconcile_dependents(self, run: _MigrationRun) -> None:
        """Drop indexes and views no longer declared, then create new ones."""
        diff = self._differ.diff(run.live_normalized, run.declared)

        removed_index_names = [
            run.live.index_names.get(target) for target in diff.removed_indexes
        ]
        removed_index_names.extend(
            run.live.index_names.get(structural_hash(custom))
            for custom in diff.removed_custom_indexes
        )
        removed_index_names = [name for name in removed_index_names if name]

        if diff.removed_materialized_views:
            self._confirm(
                run,
                MigrationAction.DROP_MATERIALIZED_VIEWS,
                f'Migration: model schema for table "{run.table_name}" has removed '
                f"materialized_views: {diff.removed_materialized_views}, "
                "drop them? (y/n): ",
            )
        if removed_index_names:
            self._confirm(
                run,
                MigrationAction.DROP_INDEXES,
                f'Migration: model schema for table "{run.table_name}" has removed '
                f"indexes: {removed_index_names}, drop them? (y/n): ",
            )

        for view_name in diff.removed_materialized_views:
            self._execute(
                run,
                DefinitionPhase.MATVIEW_DROP,
                self._generator.drop_materialized_view(view_name),
            )
        for index_name in removed_index_names:
            self._execute(
                run, DefinitionPhase.INDEX_DROP, self._generator.drop_index(index_name)
            )
        for target in diff.added_indexes:
            self._execute(
                run,
                DefinitionPhase.INDEX_CREATE,
                self._generator.create_index(run.table_name, target),
            )
        for custom in diff.added_custom_indexes:
            self._execute(
                run,
                DefinitionPhase.INDEX_CREATE,
                self._generator.create_custom_index(run.table_name, CustomIndex(**custom)),
            )
        for view_name in diff.added_materialized_views:
            self._execute(
                run,
                DefinitionPhase.MATVIEW_CREATE,
                self._generator.create_materialized_view(
                    run.table_name, view_name, run.schema.materialized_views[view_name]
                ),
            )
