"""Tests for Model and Record."""

import uuid
from unittest.mock import MagicMock

import pytest

from cqlmodel.exceptions import (
    HookError,
    InvalidSchemaError,
    QueryError,
    UndefinedTableError,
)
from cqlmodel.model import Model, Record
from cqlmodel.schema.models import Field, MaterializedView, VirtualField
from cqlmodel.types import MigrationOutcome
from tests.helpers import FakeCatalog, make_mock_client, make_test_config, make_users_schema

USER_ID = uuid.UUID("12345678-1234-5678-1234-567812345678")


class CatalogWithoutUsers(FakeCatalog):
    """Reports the users table as unconfigured until it has been created.

    With ``always_missing`` the table never appears.
    """

    def __init__(self, always_missing=False):
        super().__init__()
        self.always_missing = always_missing
        self.created = False

    def execute(self, statement, params=None, **options):
        if statement.startswith("CREATE TABLE"):
            self.created = True
        elif 'FROM "users"' in statement and (self.always_missing or not self.created):
            raise UndefinedTableError("unconfigured table users")
        return super().execute(statement, params, **options)


def _schema_with_label(**overrides):
    fields = dict(make_users_schema().fields)
    fields["label"] = Field(
        type="text",
        virtual=VirtualField(
            get=lambda values: f"{values.get('name')} ({values.get('age')})",
            set=lambda values, text: values.__setitem__("name", text.split(" ")[0]),
        ),
    )
    return make_users_schema(fields=fields, **overrides)


class TestRecord:
    """Test Record value tracking."""

    def test_initial_values_are_not_modified(self):
        record = Record(make_users_schema(), {"id": USER_ID, "name": "bob"})
        assert record["name"] == "bob"
        assert not record.is_modified()

    def test_assignment_marks_modified(self):
        record = Record(make_users_schema(), {"id": USER_ID})
        record["age"] = 30
        assert record.is_modified("age")
        assert not record.is_modified("name")
        assert record.modified == {"age"}

    def test_unknown_field(self):
        record = Record(make_users_schema())
        with pytest.raises(InvalidSchemaError):
            record["nickname"] = "b"

    def test_get_default(self):
        record = Record(make_users_schema())
        assert record.get("name", "anon") == "anon"
        assert "name" not in record

    def test_virtual_field(self):
        record = Record(_schema_with_label(), {"name": "bob", "age": 30})
        assert record["label"] == "bob (30)"

        record["label"] = "alice (1)"

        assert record["name"] == "alice"
        assert record.values() == {"name": "alice", "age": 30}
        assert record.to_dict()["label"] == "alice (30)"

    def test_read_only_virtual_field(self):
        fields = dict(make_users_schema().fields)
        fields["label"] = Field(type="text", virtual=VirtualField(get=lambda v: "x"))
        record = Record(make_users_schema(fields=fields))
        with pytest.raises(InvalidSchemaError, match="read-only"):
            record["label"] = "y"

    def test_validate(self):
        record = Record(make_users_schema(), {"age": 30})
        assert record.validate("age") is True
        assert record.validate("age", "old") == (
            'Invalid Value: "old" for Field: age (Type: int)'
        )


class TestModelQueries:
    """Test statement execution through Model."""

    def test_find_returns_records(self):
        client = make_mock_client([{"id": USER_ID, "name": "bob", "ttl_name": 5}])
        model = Model(make_users_schema(), client, make_test_config())

        records = model.find({"id": USER_ID})

        client.execute.assert_called_once_with(
            'SELECT * FROM "users" WHERE "id" = ?;', [USER_ID]
        )
        assert isinstance(records[0], Record)
        assert records[0].values() == {"id": USER_ID, "name": "bob"}
        assert not records[0].is_modified()

    def test_find_raw_and_projection_return_dicts(self):
        client = make_mock_client([{"name": "bob"}])
        model = Model(make_users_schema(), client, make_test_config())

        assert model.find({}, raw=True) == [{"name": "bob"}]
        assert model.find({}, select=["name"]) == [{"name": "bob"}]

    def test_find_one(self):
        client = make_mock_client([{"id": USER_ID}])
        model = Model(make_users_schema(), client, make_test_config())

        record = model.find_one({"id": USER_ID})

        assert record["id"] == USER_ID
        assert client.execute.call_args[0][0].endswith("LIMIT 1;")

    def test_find_one_without_rows(self):
        model = Model(make_users_schema(), make_mock_client(), make_test_config())
        assert model.find_one({"id": USER_ID}) is None

    def test_save_clears_modified(self):
        client = make_mock_client()
        model = Model(make_users_schema(), client, make_test_config())
        record = model.new(id=USER_ID, name="bob")
        assert record.is_modified()

        model.save(record, ttl=60)

        client.execute.assert_called_once_with(
            'INSERT INTO "users" ( "id" , "name" ) VALUES ( ? , ? ) USING TTL 60;',
            [USER_ID, "bob"],
        )
        assert not record.is_modified()

    def test_save_if_not_exists_keeps_modified_when_not_applied(self):
        client = make_mock_client([{"[applied]": False}])
        model = Model(make_users_schema(), client, make_test_config())
        record = model.new(id=USER_ID, name="bob")

        model.save(record, if_not_exists=True)

        assert record.is_modified("name")

    def test_update_and_delete(self):
        client = make_mock_client()
        model = Model(make_users_schema(), client, make_test_config())

        model.update({"id": USER_ID}, {"tags": {"$add": ["x"]}})
        client.execute.assert_called_with(
            'UPDATE "users" SET "tags" = "tags" + ? WHERE "id" = ?;', [["x"], USER_ID]
        )

        model.delete_record(Record(make_users_schema(), {"id": USER_ID}))
        client.execute.assert_called_with('DELETE FROM "users" WHERE "id" = ?;', [USER_ID])

    def test_truncate_and_drop(self):
        view = MaterializedView(select=["name"], key=[["name"], "id"])
        client = make_mock_client()
        model = Model(
            make_users_schema(materialized_views={"by_name": view}), client, make_test_config()
        )

        model.truncate()
        model.drop()

        assert [c.args[0] for c in client.execute.call_args_list] == [
            'TRUNCATE TABLE "users";',
            'DROP MATERIALIZED VIEW IF EXISTS "by_name";',
            'DROP TABLE IF EXISTS "users";',
        ]
        assert not model.is_ready

    def test_driver_errors_are_wrapped(self):
        client = MagicMock()
        client.execute.side_effect = RuntimeError("connection reset")
        model = Model(make_users_schema(), client, make_test_config())

        with pytest.raises(QueryError, match="connection reset"):
            model.find({"id": USER_ID})


class TestModelStreaming:
    """Test row-by-row reads through the client's paged stream."""

    def test_stream_yields_records(self):
        client = make_mock_client([{"id": USER_ID, "name": "bob"}, {"id": USER_ID}])
        model = Model(make_users_schema(), client, make_test_config())

        rows = model.stream({"id": USER_ID}, fetch_size=100)
        client.stream.assert_not_called()
        records = list(rows)

        client.stream.assert_called_once_with(
            'SELECT * FROM "users" WHERE "id" = ?;', [USER_ID], fetch_size=100
        )
        assert [r.values() for r in records] == [
            {"id": USER_ID, "name": "bob"},
            {"id": USER_ID},
        ]
        assert all(isinstance(r, Record) for r in records)

    def test_stream_projection_yields_dicts(self):
        client = make_mock_client([{"name": "bob"}])
        model = Model(make_users_schema(), client, make_test_config())

        assert list(model.stream({}, select=["name"])) == [{"name": "bob"}]
        assert "fetch_size" not in client.stream.call_args.kwargs

    def test_each_row(self):
        client = make_mock_client([{"name": "bob"}, {"name": "ann"}])
        model = Model(make_users_schema(), client, make_test_config())
        seen = []

        count = model.each_row({}, lambda index, row: seen.append((index, row)), raw=True)

        assert count == 2
        assert seen == [(0, {"name": "bob"}), (1, {"name": "ann"})]

    def test_each_row_without_rows(self):
        model = Model(make_users_schema(), make_mock_client(), make_test_config())
        assert model.each_row({"id": USER_ID}, lambda index, row: None) == 0

    def test_stream_creates_missing_table(self):
        catalog = CatalogWithoutUsers()
        model = Model(make_users_schema(), catalog, make_test_config())

        assert list(model.stream({"id": USER_ID})) == []

        assert model.is_ready
        assert catalog.executed[0].startswith('CREATE TABLE IF NOT EXISTS "users"')
        assert catalog.executed[-1] == 'SELECT * FROM "users" WHERE "id" = ?;'

    def test_stream_errors_are_wrapped(self):
        client = MagicMock()
        client.stream.side_effect = RuntimeError("connection reset")
        model = Model(make_users_schema(), client, make_test_config())

        with pytest.raises(QueryError, match="connection reset"):
            list(model.stream({"id": USER_ID}))


class TestLazyDefinition:
    """Test the sync-then-retry path for missing tables."""

    def test_missing_table_is_created_then_query_retried(self):
        catalog = CatalogWithoutUsers()
        model = Model(make_users_schema(), catalog, make_test_config())

        assert model.find({"id": USER_ID}) == []

        assert model.is_ready
        assert catalog.executed[0].startswith('CREATE TABLE IF NOT EXISTS "users"')
        assert catalog.executed[-1] == 'SELECT * FROM "users" WHERE "id" = ?;'

    def test_retry_happens_once(self):
        catalog = CatalogWithoutUsers(always_missing=True)
        model = Model(make_users_schema(), catalog, make_test_config())

        with pytest.raises(UndefinedTableError):
            model.find({"id": USER_ID})

        creates = [s for s in catalog.executed if s.startswith("CREATE TABLE")]
        assert len(creates) == 1

    def test_sync_definition(self):
        catalog = FakeCatalog().add_table(make_users_schema())
        model = Model(make_users_schema(), catalog, make_test_config())

        result = model.sync_definition()

        assert result.outcome is MigrationOutcome.UNCHANGED
        assert model.is_ready


class TestHooks:
    """Test lifecycle hooks."""

    def test_hooks_run_around_save(self):
        calls = []
        schema = make_users_schema(
            hooks={
                "before_save": lambda record: calls.append(("before", record["name"])),
                "after_save": lambda record: calls.append(("after", record.is_modified())),
            }
        )
        model = Model(schema, make_mock_client(), make_test_config())

        model.save(model.new(id=USER_ID, name="bob"))

        assert calls == [("before", "bob"), ("after", False)]

    def test_failing_hook_stops_write(self):
        def reject(query, values):
            raise ValueError("updates are frozen")

        client = make_mock_client()
        model = Model(
            make_users_schema(hooks={"before_update": reject}), client, make_test_config()
        )

        with pytest.raises(HookError, match="updates are frozen"):
            model.update({"id": USER_ID}, {"name": "x"})
        client.execute.assert_not_called()

    def test_unknown_hook(self):
        schema = make_users_schema(hooks={"before_find": lambda *a: None})
        with pytest.raises(InvalidSchemaError, match="before_find"):
            Model(schema, make_mock_client(), make_test_config())
