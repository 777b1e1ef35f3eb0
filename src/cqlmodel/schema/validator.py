"""Field value validation: generic CQL type checks plus declared rules."""

import datetime
import decimal
import ipaddress
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from cassandra.query import UNSET_VALUE
from cassandra.util import Date, Duration, Time

from cqlmodel.exceptions import InvalidSchemaError, InvalidValidatorRuleError
from cqlmodel.schema.fieldtypes import resolve
from cqlmodel.schema.models import TableSchema

__all__ = [
    "ValidatorRule",
    "DbFunction",
    "db_function_expression",
    "rule_flag",
    "generic_type_validator",
    "generic_message",
    "format_validator_rule",
    "get_validators",
    "validate",
    "is_db_function",
]

Message = Callable[[Any, str, str], str]


@dataclass
class ValidatorRule:
    """A single validation check and the message reported when it fails."""

    validator: Callable[[Any], bool]
    message: Message


@dataclass(frozen=True)
class DbFunction:
    """Raw CQL expression inserted verbatim, e.g. ``DbFunction("now()")``."""

    expression: str

    def __str__(self) -> str:
        return self.expression


def is_db_function(value: Any) -> bool:
    return isinstance(value, DbFunction) or (
        isinstance(value, dict) and "$db_function" in value
    )


def db_function_expression(value: Any) -> str:
    if isinstance(value, DbFunction):
        return value.expression
    return str(value["$db_function"])


def generic_message(value: Any, field_name: str, field_type: str) -> str:
    return f'Invalid Value: "{value}" for Field: {field_name} (Type: {field_type})'


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _int_range(bits: int) -> Callable[[Any], bool]:
    low, high = -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
    return lambda v: _is_int(v) and low <= v <= high


def _is_number(value: Any) -> bool:
    return _is_int(value) or isinstance(value, (float, decimal.Decimal))


def _is_inet(value: Any) -> bool:
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return True
    if not isinstance(value, str):
        return False
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _is_timeuuid(value: Any) -> bool:
    return isinstance(value, uuid.UUID) and value.version == 1


_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "ascii": lambda v: isinstance(v, str) and v.isascii(),
    "text": lambda v: isinstance(v, str),
    "varchar": lambda v: isinstance(v, str),
    "int": _int_range(32),
    "bigint": _int_range(64),
    "counter": _int_range(64),
    "smallint": _int_range(16),
    "tinyint": _int_range(8),
    "varint": _is_int,
    "float": _is_number,
    "double": _is_number,
    "decimal": _is_number,
    "boolean": lambda v: isinstance(v, bool),
    "blob": lambda v: isinstance(v, (bytes, bytearray, memoryview)),
    "uuid": lambda v: isinstance(v, uuid.UUID),
    "timeuuid": _is_timeuuid,
    "timestamp": lambda v: isinstance(v, datetime.datetime) or _is_int(v),
    "date": lambda v: isinstance(v, (datetime.date, Date)) or _is_int(v),
    "time": lambda v: isinstance(v, (datetime.time, Time)) or _is_int(v),
    "duration": lambda v: isinstance(v, Duration),
    "inet": _is_inet,
    "list": lambda v: isinstance(v, (list, tuple)),
    "set": lambda v: isinstance(v, (set, frozenset, list, tuple)),
    "map": lambda v: isinstance(v, dict),
    "tuple": lambda v: isinstance(v, tuple),
}


def generic_type_validator(field_type: str) -> Optional[ValidatorRule]:
    """Return the built-in validator for a CQL base type, if there is one.

    ``frozen`` and user-defined types are left to the driver.
    """
    check = _TYPE_CHECKS.get(field_type)
    if check is None:
        return None
    return ValidatorRule(validator=check, message=generic_message)


def format_validator_rule(rule: Any) -> ValidatorRule:
    """Turn a ``{validator, message}`` mapping into a ValidatorRule."""
    if isinstance(rule, ValidatorRule):
        return rule
    if not isinstance(rule, dict) or not callable(rule.get("validator")):
        raise InvalidValidatorRuleError("Rule validator must be a valid function")
    message = rule.get("message")
    if message is None:
        message = generic_message
    elif isinstance(message, str):
        message = _static_message(message)
    elif not callable(message):
        raise InvalidValidatorRuleError(
            "Invalid validator message, must be string or a function"
        )
    return ValidatorRule(validator=rule["validator"], message=message)


def _static_message(text: str) -> Message:
    return lambda value, field_name, field_type: text


def get_validators(schema: TableSchema, field_name: str) -> list[ValidatorRule]:
    """Collect the generic type validator plus any declared rule for a field."""
    try:
        field_type, _ = resolve(schema, field_name)
    except InvalidSchemaError as e:
        raise InvalidSchemaError(f"Invalid schema: {e}") from e

    validators: list[ValidatorRule] = []
    type_validator = generic_type_validator(field_type)
    if type_validator:
        validators.append(type_validator)

    rule = schema.fields[field_name].rule
    if rule is None:
        return validators
    if callable(rule):
        validators.append(ValidatorRule(validator=rule, message=generic_message))
    elif isinstance(rule, dict):
        if rule.get("validator") is not None:
            validators.append(format_validator_rule(rule))
        elif isinstance(rule.get("validators"), list):
            validators.extend(format_validator_rule(r) for r in rule["validators"])
    else:
        raise InvalidValidatorRuleError(
            "Validation rule must be a function or an object"
        )
    return validators


def validate(validators: list[ValidatorRule], value: Any) -> Union[bool, Message]:
    """Return True if the value passes, otherwise the failing rule's message."""
    if value is None or value is UNSET_VALUE or is_db_function(value):
        return True
    for rule in validators:
        if not rule.validator(value):
            return rule.message
    return True


def rule_flag(schema: TableSchema, field_name: str, flag: str) -> bool:
    rule = schema.fields[field_name].rule
    return isinstance(rule, dict) and bool(rule.get(flag))
