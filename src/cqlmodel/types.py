"""Core type definitions for cqlmodel."""

from enum import Enum
from typing import Any, TypeAlias

TableName: TypeAlias = str
FieldName: TypeAlias = str
KeyspaceName: TypeAlias = str
IndexName: TypeAlias = str
IndexTarget: TypeAlias = str
BoundParams: TypeAlias = list[Any]

__all__ = [
    "TableName",
    "FieldName",
    "KeyspaceName",
    "IndexName",
    "IndexTarget",
    "BoundParams",
    "MigrationMode",
    "MigrationOutcome",
    "DiffKind",
    "DefinitionPhase",
    "COLLECTION_TYPES",
]

COLLECTION_TYPES = frozenset({"map", "list", "set", "frozen"})


class MigrationMode(Enum):
    """How far the migration engine may go to reconcile a table."""

    SAFE = "safe"
    ALTER = "alter"
    DROP = "drop"


class MigrationOutcome(Enum):
    """What a migration run did to the table."""

    CREATED = "created"
    UNCHANGED = "unchanged"
    ALTERED = "altered"
    RECREATED = "recreated"


class DiffKind(Enum):
    """Kinds of field-level differences between live and declared schemas."""

    ADDED = "added"
    DELETED = "deleted"
    EDITED = "edited"


class DefinitionPhase(Enum):
    """Phase of a schema definition step, used to scope execution errors."""

    TABLE_CREATE = "table-create"
    TABLE_DROP = "table-drop"
    ALTER = "db-alter"
    INDEX_CREATE = "db-index-create"
    INDEX_DROP = "db-index-drop"
    MATVIEW_CREATE = "matview-create"
    MATVIEW_DROP = "matview-drop"
    SCHEMA_QUERY = "db-schema-query"
