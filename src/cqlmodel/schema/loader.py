"""Load schema definitions from YAML files."""

from pathlib import Path
from typing import Any

import yaml

from cqlmodel.exceptions import InvalidSchemaError, SchemaLoadError
from cqlmodel.schema.models import CustomIndex, Field, MaterializedView, TableSchema

VALID_TABLE_FIELDS = {
    "table",
    "description",
    "fields",
    "key",
    "clustering_order",
    "indexes",
    "custom_index",
    "custom_indexes",
    "materialized_views",
}

VALID_FIELD_FIELDS = {
    "type",
    "typeDef",
    "type_def",
    "static",
    "default",
    "rule",
}

VALID_VIEW_FIELDS = {"select", "key", "clustering_order"}

VALID_CUSTOM_INDEX_FIELDS = {"on", "using", "options"}


def load_schema(schema_path: Path) -> dict[str, TableSchema]:
    """Load table schemas from a directory of YAML files or a single file."""
    if schema_path.is_file():
        return _load_single_file(schema_path)
    elif schema_path.is_dir():
        return _load_directory(schema_path)
    else:
        raise SchemaLoadError(f"Schema path does not exist: {schema_path}")


def _load_directory(directory: Path) -> dict[str, TableSchema]:
    """Load schemas from a directory of YAML files."""
    tables: dict[str, TableSchema] = {}
    for yaml_file in sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")]):
        for table in _load_single_file(yaml_file).values():
            if table.table_name in tables:
                raise SchemaLoadError(
                    f"Duplicate table name '{table.table_name}' found in directory"
                )
            tables[table.table_name] = table
    return tables


def _load_single_file(file_path: Path) -> dict[str, TableSchema]:
    """Load one table, or a ``tables:`` list, from a single YAML file."""
    try:
        with open(file_path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SchemaLoadError(f"Invalid YAML in {file_path}: {e}") from e

    if data is None:
        raise SchemaLoadError(f"Empty YAML file: {file_path}")

    if "tables" in data:
        tables: dict[str, TableSchema] = {}
        for table_data in data.get("tables", []):
            table = parse_table_dict(table_data)
            if table.table_name in tables:
                raise SchemaLoadError(
                    f"Duplicate table name '{table.table_name}' in file"
                )
            tables[table.table_name] = table
        return tables
    table = parse_table_dict(data)
    return {table.table_name: table}


def parse_table_dict(data: dict) -> TableSchema:
    """Parse a table definition from a dictionary."""
    if not isinstance(data, dict):
        raise SchemaLoadError("Table definition must be a mapping")

    unknown_fields = set(data.keys()) - VALID_TABLE_FIELDS
    if unknown_fields:
        raise SchemaLoadError(
            f"Unknown field(s) in table definition: {_format_keys(unknown_fields)}"
        )

    name = data.get("table")
    if not name:
        raise SchemaLoadError("Table definition missing 'table' field")

    raw_fields = data.get("fields") or {}
    if not isinstance(raw_fields, dict) or not raw_fields:
        raise SchemaLoadError(f"Table '{name}' must declare at least one field")

    fields = {
        field_name: _parse_field(name, field_name, spec)
        for field_name, spec in raw_fields.items()
    }

    custom_indexes = [_parse_custom_index(ci) for ci in data.get("custom_indexes", [])]
    if data.get("custom_index"):
        custom_indexes.append(_parse_custom_index(data["custom_index"]))

    views = {
        view_name: _parse_view(view_name, view)
        for view_name, view in (data.get("materialized_views") or {}).items()
    }

    try:
        return TableSchema(
            table_name=name,
            fields=fields,
            key=_parse_key(data.get("key")),
            clustering_order=data.get("clustering_order") or {},
            indexes=list(data.get("indexes") or []),
            custom_indexes=custom_indexes,
            materialized_views=views,
        )
    except InvalidSchemaError as e:
        raise SchemaLoadError(str(e)) from e


def _parse_key(key: Any) -> list:
    if isinstance(key, str):
        return [key]
    if not isinstance(key, list) or not key:
        raise SchemaLoadError("Table definition missing 'key' field")
    return key


def _parse_field(table_name: str, field_name: str, spec: Any) -> Field:
    """Parse a field from either a bare type string or a mapping."""
    if isinstance(spec, str):
        return Field(type=spec)
    if not isinstance(spec, dict):
        raise SchemaLoadError(
            f"Field '{field_name}' in table '{table_name}' must be a type or a mapping"
        )

    unknown_fields = set(spec.keys()) - VALID_FIELD_FIELDS
    if unknown_fields:
        raise SchemaLoadError(
            f"Unknown field(s) in field definition: {_format_keys(unknown_fields)}"
        )

    field_type = spec.get("type")
    if not field_type:
        raise SchemaLoadError(f"Field '{field_name}' missing 'type' field")

    rule = spec.get("rule")
    if rule is not None and not isinstance(rule, dict):
        raise SchemaLoadError(f"Field '{field_name}' rule must be a mapping")

    try:
        return Field(
            type=field_type,
            type_def=spec.get("typeDef", spec.get("type_def")),
            static=bool(spec.get("static", False)),
            default=spec.get("default"),
            rule=rule,
        )
    except InvalidSchemaError as e:
        raise SchemaLoadError(str(e)) from e


def _format_keys(keys: set) -> str:
    return ", ".join(sorted(str(k) for k in keys))


def _parse_custom_index(data: dict) -> CustomIndex:
    # YAML 1.1 reads a bare ``on:`` key as the boolean True
    if True in data:
        data = dict(data)
        data.setdefault("on", data.pop(True))
    unknown_fields = set(data.keys()) - VALID_CUSTOM_INDEX_FIELDS
    if unknown_fields:
        raise SchemaLoadError(
            f"Unknown field(s) in custom index: {_format_keys(unknown_fields)}"
        )
    if not data.get("on") or not data.get("using"):
        raise SchemaLoadError("Custom index requires 'on' and 'using'")
    return CustomIndex(
        on=data["on"],
        using=data["using"],
        options={str(k): str(v) for k, v in (data.get("options") or {}).items()},
    )


def _parse_view(view_name: str, data: dict) -> MaterializedView:
    unknown_fields = set(data.keys()) - VALID_VIEW_FIELDS
    if unknown_fields:
        raise SchemaLoadError(
            f"Unknown field(s) in materialized view '{view_name}': "
            f"{_format_keys(unknown_fields)}"
        )
    select = data.get("select") or ["*"]
    if isinstance(select, str):
        select = [select]
    return MaterializedView(
        select=list(select),
        key=_parse_key(data.get("key")),
        clustering_order=data.get("clustering_order") or {},
    )
