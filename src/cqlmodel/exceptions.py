"""Exception classes for cqlmodel."""

from typing import Optional

from cqlmodel.types import DefinitionPhase

__all__ = [
    "CqlModelError",
    "ConfigError",
    "SchemaLoadError",
    "InvalidSchemaError",
    "InvalidValidatorRuleError",
    "InvalidValueError",
    "InvalidOperatorError",
    "InvalidInOperatorError",
    "InvalidTokenError",
    "InvalidTokenOperatorError",
    "InvalidContainsError",
    "InvalidContainsKeyError",
    "InvalidExpressionError",
    "InvalidSolrQueryError",
    "InvalidOrderError",
    "InvalidLimitError",
    "UnsupportedOperationError",
    "SchemaMismatchError",
    "DefinitionError",
    "UndefinedTableError",
    "QueryError",
    "HookError",
]


class CqlModelError(Exception):
    """Base exception for cqlmodel."""


class ConfigError(CqlModelError):
    """Error in configuration."""


class SchemaLoadError(CqlModelError):
    """Error loading schema definition files."""


class InvalidSchemaError(CqlModelError):
    """A schema description is malformed or references an undeclared field."""


class InvalidValidatorRuleError(CqlModelError):
    """A field validation rule is not a function or a well-formed rule object."""


class InvalidValueError(CqlModelError):
    """A value failed the validators registered for its field."""


class InvalidOperatorError(CqlModelError):
    """A query object uses an unknown operator or a malformed operand."""


class InvalidInOperatorError(InvalidOperatorError):
    """$in operand is not a list."""


class InvalidTokenError(InvalidOperatorError):
    """$token operand is not an operator object."""


class InvalidTokenOperatorError(InvalidOperatorError):
    """$token operand uses an operator that cannot compare tokens."""


class InvalidContainsError(InvalidOperatorError):
    """$contains used against a non-collection field."""


class InvalidContainsKeyError(InvalidOperatorError):
    """$contains_key used against a non-map field."""


class InvalidExpressionError(InvalidOperatorError):
    """$expr is missing its index or query string."""


class InvalidSolrQueryError(InvalidOperatorError):
    """$solr_query operand is not a string."""


class InvalidOrderError(InvalidOperatorError):
    """$orderby is malformed or uses an unknown direction."""


class InvalidLimitError(InvalidOperatorError):
    """$limit is not an integer."""


class UnsupportedOperationError(CqlModelError):
    """Collection mutation not supported by the field's collection type."""


class SchemaMismatchError(CqlModelError):
    """Declared schema differs from the live table and migration was refused."""

    def __init__(self, table_name: str, message: Optional[str] = None):
        self.table_name = table_name
        super().__init__(
            message
            or (
                f"Given schema does not match existing table '{table_name}'. "
                "Set migration to 'alter' or 'drop' to apply the change."
            )
        )


class DefinitionError(CqlModelError):
    """Executing a schema definition statement failed."""

    def __init__(self, phase: DefinitionPhase, message: str):
        self.phase = phase
        super().__init__(f"[{phase.value}] {message}")


class UndefinedTableError(CqlModelError):
    """The database reported that the target table or column does not exist."""


class QueryError(CqlModelError):
    """Executing a data statement failed."""


class HookError(CqlModelError):
    """A before/after lifecycle hook rejected the operation."""

    def __init__(self, hook: str, message: str):
        self.hook = hook
        super().__init__(f"{hook} hook failed: {message}")
