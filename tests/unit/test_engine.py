"""Tests for MigrationEngine."""

import pytest

from cqlmodel.exceptions import DefinitionError, SchemaMismatchError
from cqlmodel.migrations.confirm import (
    AllowList,
    AlwaysAllow,
    AlwaysDeny,
    MigrationAction,
    TtyConfirmer,
)
from cqlmodel.migrations.engine import (
    MigrationEngine,
    make_confirmer,
    resolve_migration_mode,
)
from cqlmodel.schema.models import CustomIndex, Field, MaterializedView
from cqlmodel.types import DefinitionPhase, MigrationMode, MigrationOutcome
from tests.helpers import KEYSPACE, FakeCatalog, make_test_config, make_users_schema

USERS_DDL = (
    'CREATE TABLE IF NOT EXISTS "users" ("id" uuid , "name" text , "age" int , '
    '"tags" set<text> , PRIMARY KEY(("id")));'
)
NAME_INDEX_DDL = 'CREATE INDEX IF NOT EXISTS ON "users" ("name");'


def _fields(**changes):
    fields = dict(make_users_schema().fields)
    for name, value in changes.items():
        if value is None:
            fields.pop(name)
        else:
            fields[name] = value
    return fields


def _engine(catalog, mode=MigrationMode.ALTER, confirmer=None, **kwargs):
    return MigrationEngine(
        catalog, KEYSPACE, confirmer=confirmer or AlwaysAllow(), mode=mode, **kwargs
    )


class TestCreateAndUnchanged:
    """Test sync() against missing and matching tables."""

    def test_creates_missing_table(self):
        catalog = FakeCatalog()

        result = _engine(catalog, MigrationMode.SAFE).sync(make_users_schema())

        assert result.outcome is MigrationOutcome.CREATED
        assert result.table_name == "users"
        assert catalog.executed == [USERS_DDL, NAME_INDEX_DDL]
        assert result.statements == catalog.executed

    def test_creates_custom_indexes_and_views(self):
        catalog = FakeCatalog()
        schema = make_users_schema(
            custom_indexes=[CustomIndex(on="name", using="SASI")],
            materialized_views={
                "by_name": MaterializedView(select=["name"], key=[["name"], "id"])
            },
        )

        _engine(catalog).sync(schema)

        assert catalog.executed[2] == (
            'CREATE CUSTOM INDEX IF NOT EXISTS ON "users" ("name") USING \'SASI\';'
        )
        assert catalog.executed[3].startswith(
            'CREATE MATERIALIZED VIEW IF NOT EXISTS "by_name"'
        )

    def test_matching_table_is_unchanged(self):
        schema = make_users_schema(
            materialized_views={
                "by_name": MaterializedView(select=["name", "age"], key=[["name"], "id"])
            }
        )
        catalog = FakeCatalog().add_table(schema)

        result = _engine(catalog, MigrationMode.SAFE).sync(schema)

        assert result.outcome is MigrationOutcome.UNCHANGED
        assert result.statements == []
        assert catalog.executed == []

    def test_varchar_matches_text(self):
        catalog = FakeCatalog().add_table(
            make_users_schema(fields=_fields(name=Field(type="varchar")))
        )

        result = _engine(catalog, MigrationMode.SAFE).sync(make_users_schema())

        assert result.outcome is MigrationOutcome.UNCHANGED


class TestSafeMode:
    """Test that safe mode never changes an existing table."""

    def test_mismatch_raises(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(age=Field(type="varint")))

        with pytest.raises(SchemaMismatchError) as exc_info:
            _engine(catalog, MigrationMode.SAFE).sync(declared)

        assert exc_info.value.table_name == "users"
        assert catalog.executed == []

    def test_production_forces_safe(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        engine = _engine(catalog, MigrationMode.DROP, production=True)

        assert engine.mode is MigrationMode.SAFE
        with pytest.raises(SchemaMismatchError):
            engine.sync(make_users_schema(fields=_fields(age=None)))
        assert catalog.executed == []


class TestAlterFields:
    """Test field-level migration in alter mode."""

    def test_compatible_type_change_alters_in_place(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(age=Field(type="varint")))

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == ['ALTER TABLE "users" ALTER "age" TYPE varint;']

    def test_incompatible_type_change_recreates_column(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(age=Field(type="text")))

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == [
            'ALTER TABLE "users" DROP "age";',
            'ALTER TABLE "users" ADD "age" text;',
        ]

    def test_incompatible_type_change_needs_recreate_field_confirmation(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(age=Field(type="text")))
        confirmer = AllowList([MigrationAction.ALTER_FIELD_TYPE])

        with pytest.raises(SchemaMismatchError):
            _engine(catalog, confirmer=confirmer).sync(declared)
        assert catalog.executed == []

    def test_partition_key_type_change_needs_table_recreate(self):
        live = make_users_schema(fields=_fields(id=Field(type="int")))
        declared = make_users_schema(fields=_fields(id=Field(type="varint")))
        catalog = FakeCatalog().add_table(live)
        confirmer = AllowList([MigrationAction.ALTER_FIELD_TYPE])

        with pytest.raises(SchemaMismatchError):
            _engine(catalog, confirmer=confirmer).sync(declared)
        assert catalog.executed == []

    def test_partition_key_type_change_recreates_table(self):
        live = make_users_schema(fields=_fields(id=Field(type="int")))
        declared = make_users_schema(fields=_fields(id=Field(type="varint")))
        catalog = FakeCatalog().add_table(live)

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.RECREATED
        assert catalog.executed == [
            'DROP TABLE IF EXISTS "users";',
            USERS_DDL.replace('"id" uuid', '"id" varint'),
            NAME_INDEX_DDL,
        ]

    def test_clustering_key_type_change_recreates_table(self):
        live = make_users_schema(key=[["id"], "name"])
        declared = make_users_schema(
            fields=_fields(name=Field(type="int")), key=[["id"], "name"]
        )
        catalog = FakeCatalog().add_table(live)
        confirmer = AllowList(
            [MigrationAction.ALTER_FIELD_TYPE, MigrationAction.RECREATE_FIELD]
        )

        with pytest.raises(SchemaMismatchError):
            _engine(catalog, confirmer=confirmer).sync(declared)
        assert catalog.executed == []

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.RECREATED
        assert catalog.executed[0] == 'DROP TABLE IF EXISTS "users";'
        assert '"name" int' in catalog.executed[1]
        assert 'PRIMARY KEY(("id"),"name")' in catalog.executed[1]

    def test_static_toggle_drops_and_re_adds_column(self):
        live = make_users_schema(key=[["id"], "name"])
        declared = make_users_schema(
            fields=_fields(age=Field(type="int", static=True)), key=[["id"], "name"]
        )
        catalog = FakeCatalog().add_table(live)

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == [
            'ALTER TABLE "users" DROP "age";',
            'ALTER TABLE "users" ADD "age" int STATIC;',
        ]

    def test_widened_type_and_static_toggle_both_apply(self):
        live = make_users_schema(key=[["id"], "name"])
        declared = make_users_schema(
            fields=_fields(age=Field(type="varint", static=True)), key=[["id"], "name"]
        )
        catalog = FakeCatalog().add_table(live)

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == [
            'ALTER TABLE "users" ALTER "age" TYPE varint;',
            'ALTER TABLE "users" DROP "age";',
            'ALTER TABLE "users" ADD "age" varint STATIC;',
        ]

        migrated = FakeCatalog().add_table(declared)
        again = _engine(migrated).sync(declared)

        assert again.outcome is MigrationOutcome.UNCHANGED
        assert migrated.executed == []

    def test_added_field(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(email=Field(type="text")))

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == ['ALTER TABLE "users" ADD "email" text;']

    def test_added_field_declined(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(email=Field(type="text")))

        with pytest.raises(SchemaMismatchError):
            _engine(catalog, confirmer=AlwaysDeny()).sync(declared)
        assert catalog.executed == []

    def test_removed_field_drops_dependents_first(self):
        live = make_users_schema(
            fields=_fields(email=Field(type="text")),
            indexes=["name", "email"],
            materialized_views={
                "by_email": MaterializedView(select=["email"], key=[["email"], "id"])
            },
        )
        catalog = FakeCatalog().add_table(live)

        result = _engine(catalog).sync(make_users_schema())

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == [
            'DROP MATERIALIZED VIEW IF EXISTS "by_email";',
            'DROP INDEX IF EXISTS "users_email_idx";',
            'ALTER TABLE "users" DROP "email";',
        ]

    def test_key_change_recreates_table(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(key=[["id"], "name"])

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.RECREATED
        assert catalog.executed[0] == 'DROP TABLE IF EXISTS "users";'
        assert 'PRIMARY KEY(("id"),"name")' in catalog.executed[1]


class TestReconcileDependents:
    """Test index and view reconciliation in alter mode."""

    def test_index_swap(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(indexes=["age"])

        result = _engine(catalog).sync(declared)

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == [
            'DROP INDEX IF EXISTS "users_name_idx";',
            'CREATE INDEX IF NOT EXISTS ON "users" ("age");',
        ]

    def test_index_drop_declined(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        confirmer = AllowList([MigrationAction.ADD_FIELD])

        with pytest.raises(SchemaMismatchError):
            _engine(catalog, confirmer=confirmer).sync(make_users_schema(indexes=["age"]))
        assert catalog.executed == []

    def test_custom_index_added(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        custom = CustomIndex(on="name", using="SASI", options={"mode": "CONTAINS"})

        _engine(catalog).sync(make_users_schema(custom_indexes=[custom]))

        assert catalog.executed == [
            'CREATE CUSTOM INDEX IF NOT EXISTS ON "users" ("name") '
            "USING 'SASI' WITH OPTIONS = {'mode': 'CONTAINS'};"
        ]

    def test_custom_index_removed(self):
        custom = CustomIndex(on="name", using="SASI")
        catalog = FakeCatalog().add_table(make_users_schema(custom_indexes=[custom]))

        _engine(catalog).sync(make_users_schema())

        assert catalog.executed == ['DROP INDEX IF EXISTS "users_name_custom_idx";']

    def test_view_removed(self):
        view = MaterializedView(select=["name"], key=[["name"], "id"])
        catalog = FakeCatalog().add_table(
            make_users_schema(materialized_views={"by_name": view})
        )

        result = _engine(catalog).sync(make_users_schema())

        assert result.outcome is MigrationOutcome.ALTERED
        assert catalog.executed == ['DROP MATERIALIZED VIEW IF EXISTS "by_name";']

    def test_view_added(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        view = MaterializedView(select=["name"], key=[["name"], "id"])

        _engine(catalog).sync(make_users_schema(materialized_views={"by_name": view}))

        assert len(catalog.executed) == 1
        assert catalog.executed[0].startswith(
            'CREATE MATERIALIZED VIEW IF NOT EXISTS "by_name" AS SELECT "name" FROM "users"'
        )


class TestDropMode:
    """Test drop mode."""

    def test_any_change_recreates(self):
        view = MaterializedView(select=["name"], key=[["name"], "id"])
        catalog = FakeCatalog().add_table(
            make_users_schema(materialized_views={"by_name": view})
        )
        declared = make_users_schema(fields=_fields(age=Field(type="varint")))

        result = _engine(catalog, MigrationMode.DROP).sync(declared)

        assert result.outcome is MigrationOutcome.RECREATED
        assert catalog.executed == [
            'DROP MATERIALIZED VIEW IF EXISTS "by_name";',
            'DROP TABLE IF EXISTS "users";',
            USERS_DDL.replace('"age" int', '"age" varint'),
            NAME_INDEX_DDL,
        ]

    def test_recreate_declined(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(age=Field(type="varint")))

        with pytest.raises(SchemaMismatchError):
            _engine(catalog, MigrationMode.DROP, confirmer=AlwaysDeny()).sync(declared)
        assert catalog.executed == []


class TestDefinitionErrors:
    """Test that failed statements stop the run with their phase."""

    def test_alter_failure(self):
        catalog = FakeCatalog(fail_on=["ALTER"]).add_table(make_users_schema())
        declared = make_users_schema(fields=_fields(age=Field(type="varint")))

        with pytest.raises(DefinitionError) as exc_info:
            _engine(catalog).sync(declared)

        assert exc_info.value.phase is DefinitionPhase.ALTER

    def test_index_create_failure_stops_run(self):
        catalog = FakeCatalog(fail_on=["CREATE INDEX"])

        with pytest.raises(DefinitionError) as exc_info:
            _engine(catalog).sync(make_users_schema())

        assert exc_info.value.phase is DefinitionPhase.INDEX_CREATE
        assert catalog.executed == [USERS_DDL]


class TestModeHelpers:
    """Test resolve_migration_mode() and make_confirmer()."""

    def test_configured_mode(self):
        assert resolve_migration_mode(make_test_config(migration="drop")) is MigrationMode.DROP

    def test_production_is_safe(self):
        config = make_test_config(migration="alter", environment="production")
        assert resolve_migration_mode(config) is MigrationMode.SAFE

    def test_confirmer_selection(self):
        assert isinstance(make_confirmer(make_test_config()), AlwaysAllow)
        config = make_test_config(disable_tty_confirmation=False)
        assert isinstance(make_confirmer(config), TtyConfirmer)
