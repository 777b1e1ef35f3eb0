"""Schema representation classes."""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from cqlmodel.exceptions import InvalidSchemaError
from cqlmodel.schema.fieldtypes import split_type
from cqlmodel.types import IndexName, IndexTarget

TABLE_NAME_PATTERN = re.compile(r"^[a-zA-Z]+[a-zA-Z0-9_]*$")

PartitionKey = Union[str, list[str]]


class CqlTypeRules:
    """Column type changes Cassandra can apply in place without losing data."""

    TO_BLOB = frozenset(
        {
            "text",
            "ascii",
            "bigint",
            "boolean",
            "decimal",
            "double",
            "float",
            "inet",
            "int",
            "timestamp",
            "timeuuid",
            "uuid",
            "varchar",
            "varint",
        }
    )

    WIDENING_PATHS: dict[str, list[str]] = {
        "int": ["varint"],
        "timeuuid": ["uuid"],
    }

    @classmethod
    def is_alterable(cls, from_type: str, to_type: str) -> bool:
        """Check if from_type -> to_type is allowed by ALTER ... TYPE."""
        from_lower = from_type.lower()
        to_lower = to_type.lower()
        if from_lower == to_lower:
            return False
        if to_lower == "blob" and from_lower in cls.TO_BLOB:
            return True
        return to_lower in cls.WIDENING_PATHS.get(from_lower, [])


@dataclass
class VirtualField:
    """Computed accessor pair. Virtual fields never become columns."""

    get: Optional[Callable[[dict[str, Any]], Any]] = None
    set: Optional[Callable[[dict[str, Any], Any], None]] = None


@dataclass
class Field:
    """Column declaration.

    ``type`` may use the shorthand ``set<text>``; it is split into the base
    type and ``type_def``.
    """

    type: str
    type_def: Optional[str] = None
    static: bool = False
    virtual: Optional[VirtualField] = None
    default: Any = None
    rule: Any = None

    def __post_init__(self) -> None:
        self.type = (self.type or "").strip()
        if "<" in self.type:
            base, suffix = split_type(self.type)
            if self.type_def and self.type_def != suffix:
                raise InvalidSchemaError(
                    f"Conflicting type definitions '{self.type}' and '{self.type_def}'"
                )
            self.type, self.type_def = base, suffix

    @property
    def is_virtual(self) -> bool:
        return self.virtual is not None

    @property
    def cql_type(self) -> str:
        return f"{self.type}{self.type_def or ''}"


@dataclass
class CustomIndex:
    """Custom (e.g. SASI or search) index on a single column."""

    on: str
    using: str
    options: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {"on": self.on, "using": self.using, "options": dict(self.options)}


@dataclass
class MaterializedView:
    """Materialized view over the base table."""

    select: list[str]
    key: list[PartitionKey]
    clustering_order: dict[str, str] = field(default_factory=dict)

    @property
    def partition_key(self) -> list[str]:
        return _partition_key(self.key)

    @property
    def clustering_key(self) -> list[str]:
        return list(self.key[1:])

    def as_dict(self) -> dict[str, Any]:
        return {
            "select": list(self.select),
            "key": [list(k) if isinstance(k, list) else k for k in self.key],
            "clustering_order": dict(self.clustering_order),
        }


Hook = Callable[..., None]


@dataclass
class TableSchema:
    """Declared description of a single table."""

    table_name: str
    fields: dict[str, Field]
    key: list[PartitionKey]
    clustering_order: dict[str, str] = field(default_factory=dict)
    indexes: list[str] = field(default_factory=list)
    custom_indexes: list[CustomIndex] = field(default_factory=list)
    materialized_views: dict[str, MaterializedView] = field(default_factory=dict)
    hooks: dict[str, Hook] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not TABLE_NAME_PATTERN.match(self.table_name or ""):
            raise InvalidSchemaError(f"Invalid table name: '{self.table_name}'")
        if not self.key:
            raise InvalidSchemaError(
                f"Table '{self.table_name}' must declare a primary key"
            )
        if isinstance(self.key[0], list) and not self.key[0]:
            raise InvalidSchemaError(
                f"Table '{self.table_name}' has an empty partition key"
            )
        for name in self.key_columns:
            declared = self.fields.get(name)
            if declared is None:
                raise InvalidSchemaError(
                    f"Key field '{name}' is not declared in table '{self.table_name}'"
                )
            if declared.is_virtual:
                raise InvalidSchemaError(f"Key field '{name}' cannot be virtual")
        clustering = set(self.clustering_key)
        for name, direction in self.clustering_order.items():
            if name not in clustering:
                raise InvalidSchemaError(
                    f"Clustering order field '{name}' is not a clustering key"
                )
            if str(direction).upper() not in ("ASC", "DESC"):
                raise InvalidSchemaError(
                    f"Invalid clustering order '{direction}' for field '{name}'"
                )
        for view_name, view in self.materialized_views.items():
            for name in _flatten_key(view.key):
                if name not in self.fields:
                    raise InvalidSchemaError(
                        f"Materialized view '{view_name}' key field '{name}' "
                        "is not declared"
                    )

    @property
    def partition_key(self) -> list[str]:
        return _partition_key(self.key)

    @property
    def clustering_key(self) -> list[str]:
        return list(self.key[1:])

    @property
    def key_columns(self) -> list[str]:
        return _flatten_key(self.key)

    def is_key_field(self, name: str) -> bool:
        return name in self.key_columns

    def column_names(self) -> list[str]:
        """Names of all persisted (non-virtual) fields."""
        return [name for name, f in self.fields.items() if not f.is_virtual]

    def get_field(self, name: str) -> Optional[Field]:
        return self.fields.get(name)


@dataclass
class LiveSchema(TableSchema):
    """Table schema reconstructed from the system catalog.

    ``index_names`` maps an index's structural identity (normalized target
    or custom-index hash) to its catalog name, which DROP INDEX requires.
    """

    index_names: dict[IndexTarget, IndexName] = field(default_factory=dict)


def _partition_key(key: list[PartitionKey]) -> list[str]:
    first = key[0]
    return list(first) if isinstance(first, list) else [first]


def _flatten_key(key: list[PartitionKey]) -> list[str]:
    if not key:
        return []
    return _partition_key(key) + [k for k in key[1:]]
