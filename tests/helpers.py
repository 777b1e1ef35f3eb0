"""Shared test helpers for cqlmodel tests."""

from typing import Any, Optional
from unittest.mock import MagicMock

from cqlmodel.config import Config
from cqlmodel.schema.models import Field, TableSchema
from cqlmodel.schema.normalize import normalize_schema

KEYSPACE = "test_ks"


class FakeRow:
    """Mock row from CassandraClient.execute().

    Supports dict-like access via __getitem__ and .get().
    """

    def __init__(self, data: dict):
        self._data = data

    def __getitem__(self, key):
        return self._data[key]

    def get(self, key, default=None):
        return self._data.get(key, default)


def make_test_config(
    keyspace: str = KEYSPACE,
    migration: str = "safe",
    environment: Optional[str] = None,
    disable_tty_confirmation: bool = True,
) -> Config:
    """Create a Config for tests with sensible defaults."""
    return Config(
        keyspace=keyspace,
        migration=migration,
        environment=environment,
        disable_tty_confirmation=disable_tty_confirmation,
    )


def make_users_schema(**overrides: Any) -> TableSchema:
    """A small users table; keyword arguments replace TableSchema attributes."""
    attrs: dict[str, Any] = {
        "table_name": "users",
        "fields": {
            "id": Field(type="uuid"),
            "name": Field(type="text"),
            "age": Field(type="int"),
            "tags": Field(type="set<text>"),
        },
        "key": [["id"]],
        "indexes": ["name"],
    }
    attrs.update(overrides)
    return TableSchema(**attrs)


def _column_rows(
    table_name: str, fields: dict[str, Field], key: list, clustering_order: dict
) -> list[dict]:
    partition = key[0] if isinstance(key[0], list) else [key[0]]
    clustering = list(key[1:])
    rows = []
    for name, field in fields.items():
        if field.is_virtual:
            continue
        if name in partition:
            kind, position = "partition_key", partition.index(name)
        elif name in clustering:
            kind, position = "clustering", clustering.index(name)
        elif field.static:
            kind, position = "static", -1
        else:
            kind, position = "regular", -1
        order = "none"
        if kind == "clustering":
            order = str(clustering_order.get(name) or "ASC").lower()
        rows.append(
            {
                "keyspace_name": KEYSPACE,
                "table_name": table_name,
                "column_name": name,
                "kind": kind,
                "position": position,
                "clustering_order": order,
                "type": field.cql_type,
            }
        )
    return rows


class FakeCatalog:
    """In-memory statement executor that answers system_schema reads.

    Every other statement is recorded in ``executed``. Statements containing
    any string in ``fail_on`` raise RuntimeError.
    """

    def __init__(self, fail_on: Optional[list[str]] = None) -> None:
        self.columns: dict[str, list[dict]] = {}
        self.indexes: dict[str, list[dict]] = {}
        self.views: list[dict] = []
        self.executed: list[str] = []
        self.fail_on = fail_on or []

    def add_table(self, schema: TableSchema) -> "FakeCatalog":
        """Store catalog rows as Cassandra would after creating ``schema``."""
        table = schema.table_name
        self.columns[table] = _column_rows(
            table, schema.fields, schema.key, schema.clustering_order
        )

        rows = []
        for target in schema.indexes:
            column = target.split("(")[-1].rstrip(")").strip('"')
            rows.append(
                {
                    "index_name": f"{table}_{column}_idx",
                    "kind": "COMPOSITES",
                    "options": {"target": target},
                }
            )
        for custom in schema.custom_indexes:
            rows.append(
                {
                    "index_name": f"{table}_{custom.on}_custom_idx",
                    "kind": "CUSTOM",
                    "options": {
                        "target": custom.on,
                        "class_name": custom.using,
                        **custom.options,
                    },
                }
            )
        self.indexes[table] = rows

        normalized = normalize_schema(schema)
        for view_name, view in normalized.materialized_views.items():
            self.views.append({"view_name": view_name, "base_table_name": table})
            view_fields = {
                name: Field(type=normalized.fields[name].type + normalized.fields[name].type_def)
                for name in view.select
            }
            self.columns[view_name] = _column_rows(
                view_name, view_fields, view.key, view.clustering_order
            )
        return self

    def execute(self, statement: str, params: Optional[list] = None, **options: Any):
        sql = statement.lower()
        if "system_schema.columns" in sql and "table_name in" in sql:
            names = params[1]
            return [
                FakeRow(row) for name in names for row in self.columns.get(name, [])
            ]
        if "system_schema.columns" in sql:
            return [FakeRow(row) for row in self.columns.get(params[0], [])]
        if "system_schema.indexes" in sql:
            return [FakeRow(row) for row in self.indexes.get(params[0], [])]
        if "system_schema.views" in sql:
            return [FakeRow(row) for row in self.views]

        for marker in self.fail_on:
            if marker in statement:
                raise RuntimeError(f"Statement failed: {statement}")
        self.executed.append(statement)
        return []

    def stream(self, statement: str, params: Optional[list] = None, **options: Any):
        yield from self.execute(statement, params, **options)


def make_mock_client(rows: Optional[list[dict]] = None) -> MagicMock:
    """Create a mock CassandraClient returning ``rows`` for every statement.

    ``stream`` yields the same rows and can be iterated once per call.
    """
    client = MagicMock()
    client.execute.return_value = [dict(r) for r in (rows or [])]
    client.stream.side_effect = lambda *args, **kwargs: iter(
        [dict(r) for r in (rows or [])]
    )
    return client
