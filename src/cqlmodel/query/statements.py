"""Build SELECT, INSERT, UPDATE and DELETE statements for a table."""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from cassandra.query import UNSET_VALUE

from cqlmodel.exceptions import InvalidLimitError, InvalidOrderError, InvalidValueError
from cqlmodel.query.parser import create_if_clause, create_where_clause
from cqlmodel.query.values import (
    Expression,
    apply_collection_operation,
    build,
    split_collection_operation,
)
from cqlmodel.schema.fieldtypes import get_field_type
from cqlmodel.schema.models import TableSchema
from cqlmodel.schema.validator import get_validators, is_db_function, rule_flag, validate
from cqlmodel.types import BoundParams

__all__ = [
    "Statement",
    "MISSING",
    "default_value",
    "build_find",
    "build_insert",
    "build_update",
    "build_delete",
]

logger = logging.getLogger(__name__)

ORDER_DIRECTIONS = {"$asc": "ASC", "$desc": "DESC"}

_PROJECTION_SPLIT = re.compile(r"[( )]")


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass
class Statement:
    query: str
    params: BoundParams = field(default_factory=list)


def default_value(schema: TableSchema, field_name: str) -> Any:
    """Declared default for a field, calling it if it is callable."""
    declared = schema.fields[field_name].default
    if declared is None:
        return MISSING
    if callable(declared):
        return declared()
    return declared


def _parse_order(value: Any) -> list[str]:
    if not isinstance(value, dict):
        raise InvalidOrderError("$orderby must be an object of $asc/$desc entries")
    order_keys = []
    for direction_key, columns in value.items():
        direction = ORDER_DIRECTIONS.get(str(direction_key).lower())
        if direction is None:
            raise InvalidOrderError(f"Invalid order direction: {direction_key}")
        if not isinstance(columns, list):
            columns = [columns]
        order_keys.extend(f'"{column}" {direction}' for column in columns)
    return order_keys


def _parse_projection(select: list[str]) -> str:
    """Quote projection entries: ``col``, ``fn(col)``, ``fn(col) AS a``, ``col AS a``."""
    columns = []
    for entry in select:
        parts = [p for p in _PROJECTION_SPLIT.split(entry) if p]
        if len(parts) == 1:
            columns.append(f'"{parts[0]}"')
        elif len(parts) in (2, 4):
            clause = f'{parts[0]}("{parts[1]}")'
            if len(parts) == 4:
                clause += f" {parts[2]} {parts[3]}"
            columns.append(clause)
        elif len(parts) == 3:
            columns.append(f'"{parts[0]}" {parts[1]} {parts[2]}')
        else:
            columns.append("*")
    return ",".join(columns)


def build_find(
    schema: TableSchema,
    query: dict[str, Any],
    select: Optional[list[str]] = None,
    distinct: bool = False,
    materialized_view: Optional[str] = None,
    allow_filtering: bool = False,
) -> Statement:
    """Build a SELECT statement from a query object.

    ``$orderby`` and ``$limit`` entries of the query object become the
    ORDER BY and LIMIT clauses.
    """
    order_keys: list[str] = []
    limit: Optional[int] = None
    for key, value in query.items():
        lowered = key.lower()
        if lowered == "$orderby":
            order_keys = _parse_order(value)
        elif lowered == "$limit":
            if not isinstance(value, int) or isinstance(value, bool):
                raise InvalidLimitError("$limit must be an integer")
            limit = value

    where = create_where_clause(schema, query)

    parts = ["SELECT"]
    if distinct:
        parts.append("DISTINCT")
    parts.append(_parse_projection(select) if select else "*")
    parts.append(f'FROM "{materialized_view or schema.table_name}"')
    if where.query:
        parts.append(where.query)
    if order_keys:
        parts.append(f"ORDER BY {', '.join(order_keys)}")
    if limit is not None:
        parts.append(f"LIMIT {limit}")
    if allow_filtering:
        parts.append("ALLOW FILTERING")

    return Statement(" ".join(parts) + ";", where.params)


def _check_unset(schema: TableSchema, field_name: str, value: Any) -> None:
    if value is not None and value is not UNSET_VALUE:
        return
    if schema.is_key_field(field_name):
        raise InvalidValueError(f"Primary key field '{field_name}' cannot be unset")
    if rule_flag(schema, field_name, "required"):
        raise InvalidValueError(f"Required field '{field_name}' cannot be unset")


def _resolve_with_default(schema: TableSchema, field_name: str, value: Any) -> Any:
    """Fill a missing value from the field default and validate it."""
    if value is not MISSING:
        return value

    value = default_value(schema, field_name)
    if value is MISSING:
        if schema.is_key_field(field_name):
            raise InvalidValueError(f"Primary key field '{field_name}' must be set")
        if rule_flag(schema, field_name, "required"):
            raise InvalidValueError(f"Required field '{field_name}' must be set")
        return MISSING

    if not rule_flag(schema, field_name, "ignore_default") and not is_db_function(value):
        if validate(get_validators(schema, field_name), value) is not True:
            field_type = get_field_type(schema, field_name)
            raise InvalidValueError(
                f'Invalid default value: "{value}" for Field: {field_name} '
                f"(Type: {field_type})"
            )
    return value


def build_insert(
    schema: TableSchema,
    values: dict[str, Any],
    if_not_exists: bool = False,
    ttl: Optional[int] = None,
) -> Statement:
    """Build an INSERT for every persisted field, applying declared defaults."""
    identifiers: list[str] = []
    segments: list[str] = []
    params: list[Any] = []

    for name in schema.column_names():
        value = _resolve_with_default(schema, name, values.get(name, MISSING))
        if value is MISSING:
            continue
        _check_unset(schema, name, value)

        identifiers.append(f'"{name}"')
        expression = build(schema, name, value)
        if isinstance(expression, Expression):
            segments.append(expression.segment)
            params.append(expression.parameter)
        else:
            segments.append(expression)

    query = (
        f'INSERT INTO "{schema.table_name}" ( {" , ".join(identifiers)} ) '
        f'VALUES ( {" , ".join(segments)} )'
    )
    if if_not_exists:
        query += " IF NOT EXISTS"
    if ttl:
        query += f" USING TTL {ttl}"
    return Statement(query + ";", params)


def build_update(
    schema: TableSchema,
    query: dict[str, Any],
    values: dict[str, Any],
    ttl: Optional[int] = None,
    conditions: Optional[dict[str, Any]] = None,
    if_exists: bool = False,
) -> Statement:
    """Build an UPDATE; collection envelopes like ``{"$add": [...]}`` mutate in place."""
    assignments: list[str] = []
    params: list[Any] = []

    for name, raw_value in values.items():
        declared = schema.get_field(name)
        if declared is None or declared.is_virtual:
            logger.debug(f"Skipping non-column field '{name}' in update")
            continue

        value = _resolve_with_default(schema, name, raw_value)
        if value is MISSING:
            continue
        _check_unset(schema, name, value)

        operation, operand = split_collection_operation(value)
        expression = build(schema, name, operand)
        if operation is not None:
            assignment, bound = apply_collection_operation(
                name, get_field_type(schema, name), operation, expression
            )
            assignments.append(assignment)
            params.extend(bound)
        elif isinstance(expression, Expression):
            assignments.append(f'"{name}" = {expression.segment}')
            params.append(expression.parameter)
        else:
            assignments.append(f'"{name}" = {expression}')

    where = create_where_clause(schema, query)
    params.extend(where.params)

    statement = f'UPDATE "{schema.table_name}"'
    if ttl:
        statement += f" USING TTL {ttl}"
    statement += f" SET {', '.join(assignments)}"
    if where.query:
        statement += f" {where.query}"

    if conditions:
        condition = create_if_clause(schema, conditions)
        if condition.query:
            statement += f" {condition.query}"
            params.extend(condition.params)
    elif if_exists:
        statement += " IF EXISTS"

    return Statement(statement + ";", params)


def build_delete(schema: TableSchema, query: dict[str, Any]) -> Statement:
    where = create_where_clause(schema, query)
    statement = f'DELETE FROM "{schema.table_name}"'
    if where.query:
        statement += f" {where.query}"
    return Statement(statement + ";", where.params)

