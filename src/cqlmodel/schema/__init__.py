"""Schema definition, normalization, diff and DDL modules."""

from cqlmodel.schema.ddl import DdlGenerator
from cqlmodel.schema.diff import FieldDiff, SchemaDiff, SchemaDiffer
from cqlmodel.schema.loader import load_schema, parse_table_dict
from cqlmodel.schema.models import (
    CqlTypeRules,
    CustomIndex,
    Field,
    LiveSchema,
    MaterializedView,
    TableSchema,
    VirtualField,
)
from cqlmodel.schema.normalize import NormalizedSchema, normalize_schema, structural_hash

__all__ = [
    "CqlTypeRules",
    "CustomIndex",
    "DdlGenerator",
    "Field",
    "FieldDiff",
    "LiveSchema",
    "MaterializedView",
    "NormalizedSchema",
    "SchemaDiff",
    "SchemaDiffer",
    "TableSchema",
    "VirtualField",
    "load_schema",
    "normalize_schema",
    "parse_table_dict",
    "structural_hash",
]
