"""Turn field values into statement fragments and bound parameters."""

from dataclasses import dataclass
from typing import Any, Union

from cassandra.query import UNSET_VALUE

from cqlmodel.exceptions import InvalidValueError, UnsupportedOperationError
from cqlmodel.schema.fieldtypes import get_field_type
from cqlmodel.schema.models import TableSchema
from cqlmodel.schema.validator import (
    db_function_expression,
    get_validators,
    is_db_function,
    validate,
)

__all__ = [
    "Expression",
    "COLLECTION_OPERATIONS",
    "build",
    "split_collection_operation",
    "apply_collection_operation",
]

COLLECTION_OPERATIONS = ("$add", "$append", "$prepend", "$replace", "$remove")

_MUTABLE_COLLECTIONS = ("map", "list", "set")
_SEQUENCE_TYPES = ("list", "set", "frozen")


@dataclass(frozen=True)
class Expression:
    """A statement fragment with exactly one bound parameter."""

    segment: str
    parameter: Any


def _is_value_list(value: Any, field_type: str) -> bool:
    """True if ``value`` holds several values of the field, as for ``$in``."""
    if field_type in _SEQUENCE_TYPES:
        return False
    if isinstance(value, tuple):
        return field_type != "tuple"
    return isinstance(value, list)


def build(schema: TableSchema, field_name: str, value: Any) -> Union[Expression, str]:
    """Resolve ``value`` for ``field_name``.

    Returns an Expression, or a raw clause string for database functions.

    Raises:
        InvalidValueError: If a validator for the field rejects the value.
    """
    if value is None or value is UNSET_VALUE:
        return Expression("?", value)

    if is_db_function(value):
        return db_function_expression(value)

    field_type = get_field_type(schema, field_name)

    if _is_value_list(value, field_type):
        resolved = []
        for item in value:
            expression = build(schema, field_name, item)
            resolved.append(
                expression.parameter if isinstance(expression, Expression) else expression
            )
        return Expression("?", resolved)

    message = validate(get_validators(schema, field_name), value)
    if message is not True:
        raise InvalidValueError(message(value, field_name, field_type))

    if field_type == "counter":
        sign = "+" if value >= 0 else "-"
        return Expression(f'"{field_name}" {sign} ?', abs(value))

    return Expression("?", value)


def split_collection_operation(value: Any) -> tuple[Union[str, None], Any]:
    """Unwrap a ``{"$add": ...}`` style envelope into (operation, operand)."""
    if isinstance(value, dict) and len(value) == 1:
        (key, operand), = value.items()
        if isinstance(key, str) and key.lower() in COLLECTION_OPERATIONS:
            return key.lower(), operand
    return None, value


def apply_collection_operation(
    field_name: str,
    field_type: str,
    operation: str,
    expression: Union[Expression, str],
) -> tuple[str, list[Any]]:
    """Build a SET assignment applying a collection mutation.

    Returns the assignment and the parameters it binds, in order.

    Raises:
        UnsupportedOperationError: If the field's type cannot take the mutation.
    """
    column = f'"{field_name}"'

    if isinstance(expression, str):
        return f"{column} = {expression}", []

    if field_type not in _MUTABLE_COLLECTIONS:
        raise UnsupportedOperationError(
            f"{field_type} datatypes does not support {operation}"
        )

    segment, parameter = expression.segment, expression.parameter

    if operation in ("$add", "$append"):
        return f"{column} = {column} + {segment}", [parameter]

    if operation == "$prepend":
        if field_type != "list":
            raise UnsupportedOperationError(
                f"{field_type} datatypes does not support $prepend, use $add instead"
            )
        return f"{column} = {segment} + {column}", [parameter]

    if operation == "$remove":
        if field_type == "map" and isinstance(parameter, dict):
            parameter = list(parameter)
        return f"{column} = {column} - {segment}", [parameter]

    if operation == "$replace":
        if field_type == "map":
            if not isinstance(parameter, dict) or len(parameter) != 1:
                raise UnsupportedOperationError(
                    "$replace in map does not support more than one item"
                )
            (key, item), = parameter.items()
            return f"{column}[?] = {segment}", [key, item]
        if field_type == "list":
            if not isinstance(parameter, (list, tuple)) or len(parameter) != 2:
                raise UnsupportedOperationError(
                    "$replace in list should have exactly 2 items, first one as "
                    "the index and the second one as the value"
                )
            return f"{column}[?] = {segment}", [parameter[0], parameter[1]]
        raise UnsupportedOperationError(f"{field_type} datatypes does not support $replace")

    raise UnsupportedOperationError(f"Unknown collection operation: {operation}")
