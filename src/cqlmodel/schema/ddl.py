"""Generate CQL definition statements from schema descriptions."""

from typing import Union

from cqlmodel.schema.diff import FieldDiff
from cqlmodel.schema.fieldtypes import format_type, resolve
from cqlmodel.schema.models import CustomIndex, MaterializedView, TableSchema
from cqlmodel.schema.normalize import NormalizedField, NormalizedSchema, index_column

KeySpec = list[Union[str, list[str]]]


def _quote(name: str) -> str:
    return f'"{name}"'


def _escape_cql_string(value: str) -> str:
    """Escape single quotes for CQL string literals."""
    return value.replace("'", "''")


class DdlGenerator:
    """Build complete, directly executable CQL definition statements.

    Object names are interpolated as given; callers pass validated identifiers.
    """

    def create_table(self, schema: TableSchema) -> str:
        """Generate CREATE TABLE statement."""
        rows = []
        for name, field in schema.fields.items():
            if field.is_virtual:
                continue
            base_type, type_def = resolve(schema, name)
            segment = f"{_quote(name)} {format_type(base_type, type_def)}"
            if field.static:
                segment += " STATIC"
            rows.append(segment)

        primary_key = self._primary_key(schema.key)
        clustering = self._clustering_order(schema.key, schema.clustering_order)
        return (
            f"CREATE TABLE IF NOT EXISTS {_quote(schema.table_name)} "
            f"({' , '.join(rows)} , {primary_key}){clustering};"
        )

    def create_materialized_view(
        self, table_name: str, view_name: str, view: MaterializedView
    ) -> str:
        """Generate CREATE MATERIALIZED VIEW statement."""
        select = " , ".join(
            column if column == "*" else _quote(column) for column in view.select
        )
        key_columns = list(view.partition_key) + list(view.clustering_key)
        where = " AND ".join(f"{_quote(c)} IS NOT NULL" for c in key_columns)
        primary_key = self._primary_key(view.key)
        clustering = self._clustering_order(view.key, view.clustering_order)
        return (
            f"CREATE MATERIALIZED VIEW IF NOT EXISTS {_quote(view_name)} AS "
            f"SELECT {select} FROM {_quote(table_name)} WHERE {where} "
            f"{primary_key}{clustering};"
        )

    def create_index(self, table_name: str, target: str) -> str:
        """Generate CREATE INDEX, supporting ``function(column)`` targets."""
        column = index_column(target)
        stripped = target.replace('"', "").replace(" ", "")
        if "(" in stripped:
            function = stripped.split("(", 1)[0].lower()
            expression = f"{function}({_quote(column)})"
        else:
            expression = _quote(column)
        return f"CREATE INDEX IF NOT EXISTS ON {_quote(table_name)} ({expression});"

    def create_custom_index(self, table_name: str, index: CustomIndex) -> str:
        """Generate CREATE CUSTOM INDEX with optional WITH OPTIONS map."""
        sql = (
            f"CREATE CUSTOM INDEX IF NOT EXISTS ON {_quote(table_name)} "
            f"({_quote(index.on)}) USING '{_escape_cql_string(index.using)}'"
        )
        if index.options:
            options = ", ".join(
                f"'{_escape_cql_string(str(k))}': '{_escape_cql_string(str(v))}'"
                for k, v in index.options.items()
            )
            sql += f" WITH OPTIONS = {{{options}}}"
        return sql + ";"

    def alter_add(
        self, table_name: str, field_name: str, cql_type: str, static: bool = False
    ) -> str:
        modifier = " STATIC" if static else ""
        return (
            f"ALTER TABLE {_quote(table_name)} ADD {_quote(field_name)} "
            f"{cql_type}{modifier};"
        )

    def alter_type(self, table_name: str, field_name: str, cql_type: str) -> str:
        return (
            f"ALTER TABLE {_quote(table_name)} ALTER {_quote(field_name)} "
            f"TYPE {cql_type};"
        )

    def alter_drop(self, table_name: str, field_name: str) -> str:
        return f"ALTER TABLE {_quote(table_name)} DROP {_quote(field_name)};"

    def drop_table(self, table_name: str) -> str:
        return f"DROP TABLE IF EXISTS {_quote(table_name)};"

    def drop_index(self, index_name: str) -> str:
        return f"DROP INDEX IF EXISTS {_quote(index_name)};"

    def drop_materialized_view(self, view_name: str) -> str:
        return f"DROP MATERIALIZED VIEW IF EXISTS {_quote(view_name)};"

    def truncate(self, table_name: str) -> str:
        return f"TRUNCATE TABLE {_quote(table_name)};"

    def added_column_type(self, diff: FieldDiff, declared: NormalizedSchema) -> str:
        """Column type to ADD for a field diff.

        A whole-field diff carries the new field; an attribute diff on
        ``type`` or ``type_def`` is combined with the declared counterpart.
        """
        field_name = diff.field_name
        if diff.attribute is None:
            new_field: NormalizedField = diff.rhs
            return format_type(new_field.type, new_field.type_def)
        declared_field = declared.fields[field_name]
        if diff.attribute == "type":
            return format_type(diff.rhs, declared_field.type_def)
        if diff.attribute == "type_def":
            return format_type(declared_field.type, diff.rhs)
        return format_type(declared_field.type, declared_field.type_def)

    def _primary_key(self, key: KeySpec) -> str:
        first = key[0]
        partition = first if isinstance(first, list) else [first]
        partition_sql = ",".join(_quote(p) for p in partition)
        clustering_sql = "".join(f",{_quote(c)}" for c in key[1:])
        return f"PRIMARY KEY(({partition_sql}){clustering_sql})"

    def _clustering_order(self, key: KeySpec, clustering_order: dict[str, str]) -> str:
        """WITH CLUSTERING ORDER BY, emitted only when a direction is DESC."""
        clustering = key[1:]
        directions = [
            (name, str(clustering_order.get(name) or "ASC").upper())
            for name in clustering
        ]
        if not any(direction == "DESC" for _, direction in directions):
            return ""
        order = ", ".join(f"{_quote(name)} {direction}" for name, direction in directions)
        return f" WITH CLUSTERING ORDER BY ({order})"
