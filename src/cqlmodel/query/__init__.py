"""Query object translation and statement builders."""

from cqlmodel.query.parser import create_if_clause, create_where_clause, parse_query_object
from cqlmodel.query.statements import (
    Statement,
    build_delete,
    build_find,
    build_insert,
    build_update,
)
from cqlmodel.query.values import Expression, apply_collection_operation, build

__all__ = [
    "Expression",
    "Statement",
    "apply_collection_operation",
    "build",
    "build_delete",
    "build_find",
    "build_insert",
    "build_update",
    "create_if_clause",
    "create_where_clause",
    "parse_query_object",
]
