"""Schema introspection from the Cassandra system_schema catalog."""

import logging
from typing import Any, Optional, Protocol, Sequence

from cqlmodel.exceptions import DefinitionError
from cqlmodel.schema.models import CustomIndex, Field, LiveSchema, MaterializedView
from cqlmodel.schema.normalize import (
    normalize_custom_index,
    normalize_index_target,
    structural_hash,
)
from cqlmodel.types import DefinitionPhase, IndexName, IndexTarget, KeyspaceName

logger = logging.getLogger(__name__)

COLUMNS_QUERY = (
    "SELECT * FROM system_schema.columns WHERE table_name = ? AND keyspace_name = ?;"
)
INDEXES_QUERY = (
    "SELECT * FROM system_schema.indexes WHERE table_name = ? AND keyspace_name = ?;"
)
VIEWS_QUERY = (
    "SELECT view_name, base_table_name FROM system_schema.views "
    "WHERE keyspace_name = ?;"
)
VIEW_COLUMNS_QUERY = (
    "SELECT * FROM system_schema.columns WHERE keyspace_name = ? AND table_name IN ?;"
)


class StatementExecutor(Protocol):
    """Protocol for the client used to run statements and catalog reads."""

    def execute(
        self, statement: str, params: Optional[Sequence[Any]] = None, **options: Any
    ) -> list: ...


class SchemaIntrospector:
    """Rebuild a table's live schema from system_schema tables."""

    def __init__(self, client: StatementExecutor, keyspace: KeyspaceName) -> None:
        self._client = client
        self._keyspace = keyspace

    def _row_get(self, row: Any, key: str, default: Any = None) -> Any:
        """Safely get a value from a row, supporting dicts and named tuples."""
        if hasattr(row, "get"):
            return row.get(key, default)
        if hasattr(row, "_asdict"):
            return row._asdict().get(key, default)
        return getattr(row, key, default)

    def _fetch(self, sql: str, params: list[Any]) -> list:
        try:
            return list(self._client.execute(sql, params) or [])
        except Exception as e:
            raise DefinitionError(DefinitionPhase.SCHEMA_QUERY, str(e)) from e

    def introspect_table(self, table_name: str) -> Optional[LiveSchema]:
        """Introspect a single table. Returns None if it does not exist."""
        rows = self._fetch(COLUMNS_QUERY, [table_name, self._keyspace])
        if not rows:
            logger.debug(f"Table {self._keyspace}.{table_name} not found in catalog")
            return None

        fields, key, clustering_order = self._parse_columns(rows)
        indexes, custom_indexes, index_names = self._fetch_indexes(table_name)
        views = self._fetch_materialized_views(table_name)

        return LiveSchema(
            table_name=table_name,
            fields=fields,
            key=key,
            clustering_order=clustering_order,
            indexes=indexes,
            custom_indexes=custom_indexes,
            materialized_views=views,
            index_names=index_names,
        )

    def _parse_columns(
        self, rows: list
    ) -> tuple[dict[str, Field], list, dict[str, str]]:
        """Build fields, primary key and clustering order from column rows."""
        fields: dict[str, Field] = {}
        partition: dict[int, str] = {}
        clustering: dict[int, str] = {}
        clustering_order: dict[str, str] = {}

        for row in rows:
            name = self._row_get(row, "column_name")
            kind = self._row_get(row, "kind")
            position = self._row_get(row, "position", 0) or 0
            fields[name] = Field(
                type=self._row_get(row, "type"),
                static=kind == "static",
            )
            if kind == "partition_key":
                partition[position] = name
            elif kind == "clustering":
                clustering[position] = name
                order = (self._row_get(row, "clustering_order") or "").lower()
                clustering_order[name] = "DESC" if order == "desc" else "ASC"

        key: list = [[partition[p] for p in sorted(partition)]]
        key.extend(clustering[p] for p in sorted(clustering))
        return fields, key, clustering_order

    def _fetch_indexes(
        self, table_name: str
    ) -> tuple[list[str], list[CustomIndex], dict[str, str]]:
        rows = self._fetch(INDEXES_QUERY, [table_name, self._keyspace])
        indexes: list[str] = []
        custom_indexes: list[CustomIndex] = []
        index_names: dict[IndexTarget, IndexName] = {}

        for row in rows:
            index_name = self._row_get(row, "index_name")
            if not index_name:
                continue
            options = dict(self._row_get(row, "options") or {})
            target = options.pop("target", "").replace('"', "").replace(" ", "")

            if self._row_get(row, "kind") == "CUSTOM":
                using = options.pop("class_name", "")
                custom = CustomIndex(on=target, using=using, options=options)
                custom_indexes.append(custom)
                index_names[structural_hash(normalize_custom_index(custom))] = index_name
            else:
                indexes.append(target)
                index_names[normalize_index_target(target)] = index_name

        return indexes, custom_indexes, index_names

    def _fetch_materialized_views(self, table_name: str) -> dict[str, MaterializedView]:
        rows = self._fetch(VIEWS_QUERY, [self._keyspace])
        view_names = [
            self._row_get(row, "view_name")
            for row in rows
            if self._row_get(row, "base_table_name") == table_name
        ]
        if not view_names:
            return {}

        rows = self._fetch(VIEW_COLUMNS_QUERY, [self._keyspace, view_names])
        by_view: dict[str, list] = {name: [] for name in view_names}
        for row in rows:
            by_view.setdefault(self._row_get(row, "table_name"), []).append(row)

        views: dict[str, MaterializedView] = {}
        for view_name, view_rows in by_view.items():
            if not view_rows:
                continue
            _, key, clustering_order = self._parse_columns(view_rows)
            views[view_name] = MaterializedView(
                select=[self._row_get(r, "column_name") for r in view_rows],
                key=key,
                clustering_order=clustering_order,
            )
        return views
