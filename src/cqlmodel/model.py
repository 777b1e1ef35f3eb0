"""Table-bound models and the records they read and write."""

import logging
from typing import Any, Callable, Iterator, Optional, Protocol, Sequence

from cqlmodel.config import Config
from cqlmodel.exceptions import (
    CqlModelError,
    HookError,
    InvalidSchemaError,
    QueryError,
    UndefinedTableError,
)
from cqlmodel.migrations.confirm import Confirmer
from cqlmodel.migrations.engine import (
    MigrationEngine,
    MigrationResult,
    make_confirmer,
    resolve_migration_mode,
)
from cqlmodel.query.statements import (
    MISSING,
    build_delete,
    build_find,
    build_insert,
    build_update,
)
from cqlmodel.schema.ddl import DdlGenerator
from cqlmodel.schema.introspect import StatementExecutor
from cqlmodel.schema.models import TableSchema
from cqlmodel.schema.validator import get_validators, validate

__all__ = ["Record", "Model", "ModelClient", "HOOKS"]

logger = logging.getLogger(__name__)

HOOKS = (
    "before_save",
    "after_save",
    "before_update",
    "after_update",
    "before_delete",
    "after_delete",
)


class ModelClient(StatementExecutor, Protocol):
    """Statement executor that can also stream rows page by page."""

    def stream(
        self, statement: str, params: Optional[Sequence[Any]] = None, **options: Any
    ) -> Iterator[dict[str, Any]]: ...


class Record:
    """Values of one row, with the set of fields changed since load or save.

    Virtual fields are computed through their declared accessors and are
    never persisted.
    """

    def __init__(self, schema: TableSchema, values: Optional[dict[str, Any]] = None):
        self._schema = schema
        self._values: dict[str, Any] = {}
        self.modified: set[str] = set()
        for name, value in (values or {}).items():
            self[name] = value
        self.modified.clear()

    @property
    def schema(self) -> TableSchema:
        return self._schema

    def _field(self, name: str):
        declared = self._schema.get_field(name)
        if declared is None:
            raise InvalidSchemaError(
                f"Field '{name}' is not declared in table '{self._schema.table_name}'"
            )
        return declared

    def __getitem__(self, name: str) -> Any:
        declared = self._field(name)
        if declared.is_virtual:
            getter = declared.virtual.get
            return getter(self._values) if getter else None
        return self._values.get(name)

    def __setitem__(self, name: str, value: Any) -> None:
        declared = self._field(name)
        if declared.is_virtual:
            setter = declared.virtual.set
            if setter is None:
                raise InvalidSchemaError(f"Virtual field '{name}' is read-only")
            setter(self._values, value)
            return
        self._values[name] = value
        self.modified.add(name)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def get(self, name: str, default: Any = None) -> Any:
        value = self[name]
        return default if value is None else value

    def is_modified(self, name: Optional[str] = None) -> bool:
        if name is None:
            return bool(self.modified)
        return name in self.modified

    def validate(self, name: str, value: Any = MISSING) -> Any:
        """True if the value (or the current one) passes the field's validators.

        Otherwise returns the formatted failure message.
        """
        if value is MISSING:
            value = self._values.get(name)
        result = validate(get_validators(self._schema, name), value)
        if result is True:
            return True
        return result(value, name, self._field(name).type)

    def values(self) -> dict[str, Any]:
        """Persisted values only."""
        return dict(self._values)

    def to_dict(self) -> dict[str, Any]:
        """Persisted values plus every virtual field."""
        data = dict(self._values)
        for name, declared in self._schema.fields.items():
            if declared.is_virtual:
                data[name] = self[name]
        return data

    def __repr__(self) -> str:
        return f"Record({self._schema.table_name}, {self._values!r})"


class Model:
    """A table bound to a statement executor.

    Statements are executed against ``client``; the table definition is
    created or migrated on demand through the migration engine.
    """

    def __init__(
        self,
        schema: TableSchema,
        client: "ModelClient",
        config: Config,
        confirmer: Optional[Confirmer] = None,
    ) -> None:
        self.schema = schema
        self._client = client
        self._config = config
        self._confirmer = confirmer or make_confirmer(config)
        self._generator = DdlGenerator()
        self._ready = False
        unknown = set(schema.hooks) - set(HOOKS)
        if unknown:
            raise InvalidSchemaError(f"Unknown lifecycle hooks: {sorted(unknown)}")

    @property
    def table_name(self) -> str:
        return self.schema.table_name

    @property
    def is_ready(self) -> bool:
        return self._ready

    def new(self, **values: Any) -> Record:
        record = Record(self.schema)
        for name, value in values.items():
            record[name] = value
        return record

    def sync_definition(self) -> MigrationResult:
        """Create or migrate the table to match the declared schema."""
        engine = MigrationEngine(
            self._client,
            self._config.keyspace,
            confirmer=self._confirmer,
            mode=resolve_migration_mode(self._config),
        )
        result = engine.sync(self.schema)
        self._ready = True
        logger.info(f"Table '{self.table_name}' {result.outcome.value}")
        return result

    def execute_query(
        self, statement: str, params: Optional[list[Any]] = None, **options: Any
    ) -> list:
        """Execute a statement, creating the table once if it does not exist yet."""
        try:
            return self._execute(statement, params, **options)
        except UndefinedTableError:
            if self._ready:
                raise
            logger.info(f"Table '{self.table_name}' not found, syncing definition")
            self.sync_definition()
            return self._execute(statement, params, **options)

    def _execute(
        self, statement: str, params: Optional[list[Any]], **options: Any
    ) -> list:
        try:
            return self._client.execute(statement, params or [], **options)
        except CqlModelError:
            raise
        except Exception as e:
            raise QueryError(f"Query failed: {statement}: {e}") from e

    def stream_query(
        self, statement: str, params: Optional[list[Any]] = None, **options: Any
    ) -> Iterator[dict[str, Any]]:
        """Yield the rows of a statement page by page.

        Like execute_query, a missing table is created once before the
        statement is retried, provided no row has been yielded yet.
        """
        started = False
        try:
            for row in self._stream(statement, params, **options):
                started = True
                yield row
        except UndefinedTableError:
            if self._ready or started:
                raise
            logger.info(f"Table '{self.table_name}' not found, syncing definition")
            self.sync_definition()
            yield from self._stream(statement, params, **options)

    def _stream(
        self, statement: str, params: Optional[list[Any]], **options: Any
    ) -> Iterator[dict[str, Any]]:
        try:
            yield from self._client.stream(statement, params or [], **options)
        except CqlModelError:
            raise
        except Exception as e:
            raise QueryError(f"Query failed: {statement}: {e}") from e

    def _run_hook(self, name: str, *args: Any) -> None:
        hook = self.schema.hooks.get(name)
        if hook is None:
            return
        try:
            hook(*args)
        except Exception as e:
            raise HookError(name, str(e)) from e

    def find(
        self,
        query: dict[str, Any],
        select: Optional[list[str]] = None,
        distinct: bool = False,
        materialized_view: Optional[str] = None,
        allow_filtering: bool = False,
        raw: bool = False,
        **options: Any,
    ) -> list:
        """Rows matching ``query``, as Records unless ``raw`` or projected."""
        statement = build_find(
            self.schema,
            query,
            select=select,
            distinct=distinct,
            materialized_view=materialized_view,
            allow_filtering=allow_filtering,
        )
        rows = self.execute_query(statement.query, statement.params, **options)
        to_result = self._row_converter(bool(raw or select or materialized_view))
        return [to_result(row) for row in rows]

    def stream(
        self,
        query: dict[str, Any],
        select: Optional[list[str]] = None,
        distinct: bool = False,
        materialized_view: Optional[str] = None,
        allow_filtering: bool = False,
        raw: bool = False,
        fetch_size: Optional[int] = None,
        **options: Any,
    ) -> Iterator[Any]:
        """Like find, but yields rows as pages arrive instead of loading them all."""
        statement = build_find(
            self.schema,
            query,
            select=select,
            distinct=distinct,
            materialized_view=materialized_view,
            allow_filtering=allow_filtering,
        )
        if fetch_size is not None:
            options["fetch_size"] = fetch_size
        to_result = self._row_converter(bool(raw or select or materialized_view))
        for row in self.stream_query(statement.query, statement.params, **options):
            yield to_result(row)

    def each_row(
        self,
        query: dict[str, Any],
        on_row: Callable[[int, Any], Any],
        **kwargs: Any,
    ) -> int:
        """Call ``on_row(index, row)`` for every streamed row; returns the row count."""
        count = 0
        for count, row in enumerate(self.stream(query, **kwargs), start=1):
            on_row(count - 1, row)
        return count

    def _row_converter(self, raw: bool) -> Callable[[Any], Any]:
        if raw:
            return dict
        columns = set(self.schema.column_names())
        return lambda row: Record(
            self.schema, {k: v for k, v in dict(row).items() if k in columns}
        )

    def find_one(self, query: dict[str, Any], **kwargs: Any) -> Optional[Any]:
        query = dict(query)
        query["$limit"] = 1
        rows = self.find(query, **kwargs)
        return rows[0] if rows else None

    def update(
        self,
        query: dict[str, Any],
        values: dict[str, Any],
        ttl: Optional[int] = None,
        conditions: Optional[dict[str, Any]] = None,
        if_exists: bool = False,
        **options: Any,
    ) -> list:
        self._run_hook("before_update", query, values)
        statement = build_update(
            self.schema,
            query,
            values,
            ttl=ttl,
            conditions=conditions,
            if_exists=if_exists,
        )
        result = self.execute_query(statement.query, statement.params, **options)
        self._run_hook("after_update", query, values)
        return result

    def delete(self, query: dict[str, Any], **options: Any) -> list:
        self._run_hook("before_delete", query)
        statement = build_delete(self.schema, query)
        result = self.execute_query(statement.query, statement.params, **options)
        self._run_hook("after_delete", query)
        return result

    def delete_record(self, record: Record, **options: Any) -> list:
        """Delete the row identified by the record's primary key."""
        query = {name: record[name] for name in self.schema.key_columns}
        return self.delete(query, **options)

    def save(
        self,
        record: Record,
        if_not_exists: bool = False,
        ttl: Optional[int] = None,
        **options: Any,
    ) -> list:
        """Insert the record; its modified set is cleared once the write applies."""
        self._run_hook("before_save", record)
        statement = build_insert(
            self.schema, record.values(), if_not_exists=if_not_exists, ttl=ttl
        )
        result = self.execute_query(statement.query, statement.params, **options)
        if not if_not_exists or (result and result[0].get("[applied]")):
            record.modified.clear()
        self._run_hook("after_save", record)
        return result

    def truncate(self) -> None:
        self.execute_query(self._generator.truncate(self.table_name))

    def drop(self) -> None:
        """Drop the table and its materialized views."""
        for view_name in self.schema.materialized_views:
            self._execute(self._generator.drop_materialized_view(view_name), None)
        self._execute(self._generator.drop_table(self.table_name), None)
        self._ready = False
