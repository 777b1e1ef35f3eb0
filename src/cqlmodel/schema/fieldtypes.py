"""Resolve declared fields to CQL column types."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from cqlmodel.exceptions import InvalidSchemaError

if TYPE_CHECKING:
    from cqlmodel.schema.models import TableSchema

__all__ = [
    "CQL_TYPES",
    "resolve",
    "get_field_type",
    "extract_type",
    "extract_type_def",
    "split_type",
    "format_type",
]

CQL_TYPES = frozenset(
    {
        "ascii",
        "bigint",
        "blob",
        "boolean",
        "counter",
        "date",
        "decimal",
        "double",
        "duration",
        "float",
        "inet",
        "int",
        "smallint",
        "text",
        "time",
        "timestamp",
        "timeuuid",
        "tinyint",
        "uuid",
        "varchar",
        "varint",
        "list",
        "map",
        "set",
        "tuple",
        "frozen",
    }
)

_WHITESPACE = re.compile(r"\s+")


def extract_type(cql_type: str) -> str:
    """Return the base type of a CQL type string: ``map<text, int>`` -> ``map``."""
    base = cql_type.split("<", 1)[0].strip()
    return base.lower() if base.lower() in CQL_TYPES else base


def extract_type_def(cql_type: str) -> str:
    """Return the parameter suffix of a CQL type string, whitespace removed."""
    idx = cql_type.find("<")
    if idx < 0:
        return ""
    return _WHITESPACE.sub("", cql_type[idx:])


def split_type(cql_type: str) -> tuple[str, str]:
    return extract_type(cql_type), extract_type_def(cql_type)


def format_type(base_type: str, type_def: str | None) -> str:
    return f"{base_type}{type_def or ''}"


def resolve(schema: TableSchema, field_name: str) -> tuple[str, str]:
    """Resolve a declared field to ``(base_type, type_def_suffix)``.

    Raises:
        InvalidSchemaError: If the field is not declared or has no type.
    """
    field = schema.fields.get(field_name)
    if field is None:
        raise InvalidSchemaError(
            f"Field '{field_name}' is not declared in table '{schema.table_name}'"
        )
    if not field.type:
        raise InvalidSchemaError(f"Field type not defined for field '{field_name}'")
    return field.type, field.type_def or ""


def get_field_type(schema: TableSchema, field_name: str) -> str:
    return resolve(schema, field_name)[0]
