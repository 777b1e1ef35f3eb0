"""Translate document-style query objects into CQL relations."""

import logging
from dataclasses import dataclass, field
from typing import Any

from cqlmodel.exceptions import (
    InvalidContainsError,
    InvalidContainsKeyError,
    InvalidExpressionError,
    InvalidInOperatorError,
    InvalidOperatorError,
    InvalidSolrQueryError,
    InvalidTokenError,
    InvalidTokenOperatorError,
)
from cqlmodel.query.values import Expression, build
from cqlmodel.schema.fieldtypes import get_field_type
from cqlmodel.schema.models import TableSchema
from cqlmodel.types import COLLECTION_TYPES

__all__ = [
    "CQL_OPERATORS",
    "ParsedQuery",
    "Clause",
    "parse_query_object",
    "create_where_clause",
    "create_if_clause",
]

logger = logging.getLogger(__name__)

CQL_OPERATORS = {
    "$eq": "=",
    "$ne": "!=",
    "$gt": ">",
    "$lt": "<",
    "$gte": ">=",
    "$lte": "<=",
    "$in": "IN",
    "$like": "LIKE",
    "$token": "token",
    "$contains": "CONTAINS",
    "$contains_key": "CONTAINS KEY",
}

TOKEN_OPERATORS = ("$eq", "$gt", "$lt", "$gte", "$lte")

# Read by the find builder, not turned into relations.
FIND_DIRECTIVES = ("$orderby", "$limit")


@dataclass
class ParsedQuery:
    relations: list[str] = field(default_factory=list)
    params: list[Any] = field(default_factory=list)

    def add(self, template: str, expression: Any) -> None:
        """Record a relation; raw clauses bind no parameter."""
        if isinstance(expression, Expression):
            self.relations.append(template.format(expression.segment))
            self.params.append(expression.parameter)
        else:
            self.relations.append(template.format(expression))


@dataclass
class Clause:
    query: str
    params: list[Any]


def _escape(value: str) -> str:
    return value.replace("'", "''")


def _is_operator_clause(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and bool(value)
        and all(isinstance(k, str) and k.startswith("$") for k in value)
    )


def _field_relations(value: Any) -> list[dict[str, Any]]:
    """Normalize a field's filter into a list of operator clauses."""
    if isinstance(value, list) and value and all(_is_operator_clause(v) for v in value):
        return value
    if _is_operator_clause(value):
        return [value]
    return [{"$eq": value}]


def _parse_meta(key: str, value: Any, parsed: ParsedQuery) -> None:
    lowered = key.lower()
    if lowered == "$expr":
        if (
            not isinstance(value, dict)
            or not isinstance(value.get("index"), str)
            or not isinstance(value.get("query"), str)
        ):
            raise InvalidExpressionError(
                "$expr requires a string 'index' and a string 'query'"
            )
        parsed.relations.append(f"expr({value['index']},'{_escape(value['query'])}')")
    elif lowered == "$solr_query":
        if not isinstance(value, str):
            raise InvalidSolrQueryError("$solr_query must be a string")
        parsed.relations.append(f"solr_query='{_escape(value)}'")
    elif lowered not in FIND_DIRECTIVES:
        raise InvalidOperatorError(f"Invalid query operator: {key}")


def _parse_token(
    schema: TableSchema, key: str, operand: Any, parsed: ParsedQuery
) -> None:
    if not isinstance(operand, dict) or not operand:
        raise InvalidTokenError(f"$token on '{key}' requires an operator object")

    columns = [c.strip() for c in key.split(",")]
    token_columns = '","'.join(columns)

    for token_key, token_value in operand.items():
        op_key = str(token_key).lower()
        if op_key not in TOKEN_OPERATORS:
            raise InvalidTokenOperatorError(f"Invalid $token operator: {token_key}")
        op = CQL_OPERATORS[op_key]

        if isinstance(token_value, list):
            if len(token_value) != len(columns):
                raise InvalidTokenError(
                    f"$token on '{key}' expects {len(columns)} values, "
                    f"got {len(token_value)}"
                )
            segments = []
            for column, item in zip(columns, token_value):
                expression = build(schema, column, item)
                if isinstance(expression, Expression):
                    segments.append(expression.segment)
                    parsed.params.append(expression.parameter)
                else:
                    segments.append(expression)
            parsed.relations.append(
                f'token("{token_columns}") {op} token({",".join(segments)})'
            )
        else:
            parsed.add(
                f'token("{token_columns}") {op} token({{}})',
                build(schema, columns[0], token_value),
            )


def _parse_relation(
    schema: TableSchema, key: str, op_key: str, operand: Any, parsed: ParsedQuery
) -> None:
    op = CQL_OPERATORS[op_key]

    if op_key == "$in" and not isinstance(operand, (list, tuple)):
        raise InvalidInOperatorError(f"$in on '{key}' requires a list")

    if op_key == "$token":
        _parse_token(schema, key, operand, parsed)
        return

    if op_key == "$contains":
        field_type = get_field_type(schema, key)
        if field_type not in COLLECTION_TYPES:
            raise InvalidContainsError(
                f"$contains is only supported on collection fields, not '{key}'"
            )
        if field_type == "map" and isinstance(operand, dict) and len(operand) == 1:
            (map_key, map_value), = operand.items()
            parsed.relations.append(f'"{key}"[?] = ?')
            parsed.params.extend([map_key, map_value])
        else:
            parsed.relations.append(f'"{key}" {op} ?')
            parsed.params.append(operand)
        return

    if op_key == "$contains_key":
        if get_field_type(schema, key) != "map":
            raise InvalidContainsKeyError(
                f"$contains_key is only supported on map fields, not '{key}'"
            )
        parsed.relations.append(f'"{key}" {op} ?')
        parsed.params.append(operand)
        return

    parsed.add(f'"{key}" {op} {{}}', build(schema, key, operand))


def parse_query_object(schema: TableSchema, query: dict[str, Any]) -> ParsedQuery:
    """Parse a query object into ordered relations and bound parameters.

    Keys are processed in order; that order is the AND chain and the
    parameter order.

    Raises:
        InvalidOperatorError: Or one of its subclasses for malformed input.
        InvalidValueError: If an operand fails field validation.
    """
    parsed = ParsedQuery()
    for key, value in query.items():
        if key.startswith("$"):
            _parse_meta(key, value, parsed)
            continue

        for relation in _field_relations(value):
            for op_key, operand in relation.items():
                lowered = op_key.lower()
                if lowered not in CQL_OPERATORS:
                    raise InvalidOperatorError(f"Invalid query operator: {op_key}")
                _parse_relation(schema, key, lowered, operand, parsed)

    logger.debug(f"Parsed query relations: {parsed.relations}")
    return parsed


def create_where_clause(schema: TableSchema, query: dict[str, Any]) -> Clause:
    parsed = parse_query_object(schema, query)
    text = f"WHERE {' AND '.join(parsed.relations)}" if parsed.relations else ""
    return Clause(text, parsed.params)


def create_if_clause(schema: TableSchema, query: dict[str, Any]) -> Clause:
    parsed = parse_query_object(schema, query)
    text = f"IF {' AND '.join(parsed.relations)}" if parsed.relations else ""
    return Clause(text, parsed.params)
