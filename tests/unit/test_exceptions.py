"""Tests for cqlmodel.exceptions module."""

import pytest

from cqlmodel.exceptions import (
    ConfigError,
    CqlModelError,
    DefinitionError,
    HookError,
    InvalidContainsError,
    InvalidInOperatorError,
    InvalidLimitError,
    InvalidOperatorError,
    InvalidOrderError,
    InvalidSchemaError,
    InvalidTokenError,
    InvalidValueError,
    QueryError,
    SchemaLoadError,
    SchemaMismatchError,
    UndefinedTableError,
    UnsupportedOperationError,
)
from cqlmodel.types import DefinitionPhase


class TestExceptionHierarchy:
    """Tests for exception hierarchy."""

    def test_exception_hierarchy(self):
        """All exceptions inherit from CqlModelError."""
        for error in (
            ConfigError,
            SchemaLoadError,
            InvalidSchemaError,
            InvalidValueError,
            InvalidOperatorError,
            UnsupportedOperationError,
            SchemaMismatchError,
            DefinitionError,
            UndefinedTableError,
            QueryError,
            HookError,
        ):
            assert issubclass(error, CqlModelError)

    def test_operator_errors(self):
        """Query object errors can be caught as InvalidOperatorError."""
        for error in (
            InvalidInOperatorError,
            InvalidTokenError,
            InvalidContainsError,
            InvalidOrderError,
            InvalidLimitError,
        ):
            assert issubclass(error, InvalidOperatorError)

    def test_base_is_exception(self):
        assert issubclass(CqlModelError, Exception)


class TestExceptionMessages:
    """Tests for exceptions carrying context."""

    def test_schema_mismatch(self):
        error = SchemaMismatchError("users")
        assert error.table_name == "users"
        assert "users" in str(error)
        assert "'alter' or 'drop'" in str(error)

    def test_schema_mismatch_custom_message(self):
        assert str(SchemaMismatchError("users", "declined")) == "declined"

    def test_definition_error_includes_phase(self):
        error = DefinitionError(DefinitionPhase.INDEX_DROP, "no such index")
        assert error.phase is DefinitionPhase.INDEX_DROP
        assert str(error) == "[db-index-drop] no such index"

    def test_hook_error(self):
        error = HookError("before_save", "name is required")
        assert error.hook == "before_save"
        with pytest.raises(CqlModelError, match="before_save hook failed"):
            raise error
