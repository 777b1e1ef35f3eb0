"""Normalize declared and live schemas into a comparable form."""

import hashlib
import json
import re
from dataclasses import dataclass, field
from typing import Any, Union

from cqlmodel.schema.models import CustomIndex, MaterializedView, TableSchema

__all__ = [
    "NormalizedField",
    "NormalizedView",
    "NormalizedSchema",
    "normalize_schema",
    "normalize_index_target",
    "index_column",
    "normalize_custom_index",
    "structural_hash",
]

_INDEX_STRIP = re.compile(r"[\"\s]")
_INDEX_SPLIT = re.compile(r"[()]")
_VARCHAR = re.compile(r"\bvarchar\b")


@dataclass
class NormalizedField:
    type: str
    type_def: str = ""
    static: bool = False

    def attributes(self) -> dict[str, Any]:
        return {"type": self.type, "type_def": self.type_def, "static": self.static}


@dataclass
class NormalizedView:
    select: list[str]
    key: list[Union[str, list[str]]]
    clustering_order: dict[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "select": list(self.select),
            "key": [list(k) if isinstance(k, list) else k for k in self.key],
            "clustering_order": dict(self.clustering_order),
        }

    def references(self, field_name: str) -> bool:
        """True if dropping ``field_name`` would invalidate this view."""
        if field_name in self.select or (self.select and self.select[0] == "*"):
            return True
        if field_name in self.key:
            return True
        return isinstance(self.key[0], list) and field_name in self.key[0]


@dataclass
class NormalizedSchema:
    fields: dict[str, NormalizedField]
    key: list[Union[str, list[str]]]
    clustering_order: dict[str, str] = field(default_factory=dict)
    indexes: list[str] = field(default_factory=list)
    custom_indexes: list[dict[str, Any]] = field(default_factory=list)
    materialized_views: dict[str, NormalizedView] = field(default_factory=dict)

    @property
    def partition_key(self) -> list[str]:
        return list(self.key[0])

    @property
    def clustering_key(self) -> list[str]:
        return list(self.key[1:])


def structural_hash(obj: Any) -> str:
    """Deterministic content hash for anonymous index/view definitions."""
    if isinstance(obj, (CustomIndex, MaterializedView, NormalizedView)):
        obj = obj.as_dict()
    canonical = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(canonical.encode()).hexdigest()


def normalize_index_target(target: str) -> str:
    """Canonical index target: ``keys("Tags ")`` -> ``keys(Tags)``, ``values(x)`` -> ``x``."""
    parts = _INDEX_SPLIT.split(_INDEX_STRIP.sub("", target))
    if len(parts) > 1:
        function = parts[0].lower()
        if function == "values":
            return parts[1]
        return f"{function}({parts[1]})"
    return parts[0]


def index_column(target: str) -> str:
    """Column an index target refers to."""
    parts = _INDEX_SPLIT.split(_INDEX_STRIP.sub("", target))
    return parts[1] if len(parts) > 1 else parts[0]


def _normalize_type(value: str) -> str:
    return _VARCHAR.sub("text", value.lower()) if value else value


def _normalize_key(key: list) -> list[Union[str, list[str]]]:
    first = key[0]
    partition = list(first) if isinstance(first, (list, tuple)) else [first]
    return [partition] + list(key[1:])


def _normalize_clustering(
    key: list[Union[str, list[str]]], clustering_order: dict[str, str]
) -> dict[str, str]:
    order = {}
    for name in key[1:]:
        order[name] = str(clustering_order.get(name) or "ASC").upper()
    return order


def normalize_custom_index(index: CustomIndex) -> dict[str, Any]:
    options = {str(k): str(v) for k, v in (index.options or {}).items()}
    options.pop("target", None)
    options.pop("class_name", None)
    return {
        "on": _INDEX_STRIP.sub("", index.on),
        "using": index.using,
        "options": options,
    }


def _normalize_view(view: MaterializedView, column_names: list[str]) -> NormalizedView:
    key = _normalize_key(view.key)
    key_columns = list(key[0]) + list(key[1:])
    if view.select and view.select[0] == "*":
        select = list(column_names)
    else:
        select = list(view.select)
    select = sorted(set(select) | set(key_columns))
    return NormalizedView(
        select=select,
        key=key,
        clustering_order=_normalize_clustering(key, view.clustering_order),
    )


def normalize_schema(schema: TableSchema) -> NormalizedSchema:
    """Reduce a declared or live schema to the attributes the database stores."""
    fields: dict[str, NormalizedField] = {}
    for name, declared in schema.fields.items():
        if declared.is_virtual:
            continue
        fields[name] = NormalizedField(
            type=_normalize_type(declared.type),
            type_def=_normalize_type(re.sub(r"\s+", "", declared.type_def or "")),
            static=bool(declared.static),
        )

    key = _normalize_key(schema.key)
    column_names = sorted(fields)

    custom_indexes = sorted(
        (normalize_custom_index(idx) for idx in schema.custom_indexes),
        key=structural_hash,
    )

    return NormalizedSchema(
        fields=fields,
        key=key,
        clustering_order=_normalize_clustering(key, schema.clustering_order),
        indexes=sorted(normalize_index_target(i) for i in schema.indexes),
        custom_indexes=custom_indexes,
        materialized_views={
            name: _normalize_view(view, column_names)
            for name, view in schema.materialized_views.items()
        },
    )
