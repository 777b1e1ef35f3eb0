"""Compare normalized live and declared schemas."""

from dataclasses import dataclass, field
from typing import Any, Optional

from cqlmodel.schema.normalize import NormalizedSchema, structural_hash
from cqlmodel.types import DiffKind, FieldName

FIELD_ATTRIBUTES = ("type", "type_def", "static")


@dataclass(frozen=True)
class FieldDiff:
    """A single field-level difference.

    ``path`` is ``(field,)`` for a whole field added or deleted and
    ``(field, attribute)`` for an edited attribute.
    """

    kind: DiffKind
    path: tuple[str, ...]
    lhs: Any = None
    rhs: Any = None

    @property
    def field_name(self) -> FieldName:
        return self.path[0]

    @property
    def attribute(self) -> Optional[str]:
        return self.path[1] if len(self.path) > 1 else None


@dataclass
class SchemaDiff:
    """Everything that separates a live table from its declaration."""

    fields: list[FieldDiff] = field(default_factory=list)
    added_indexes: list[str] = field(default_factory=list)
    removed_indexes: list[str] = field(default_factory=list)
    added_custom_indexes: list[dict[str, Any]] = field(default_factory=list)
    removed_custom_indexes: list[dict[str, Any]] = field(default_factory=list)
    added_materialized_views: list[str] = field(default_factory=list)
    removed_materialized_views: list[str] = field(default_factory=list)
    key_changed: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.fields
            or self.added_indexes
            or self.removed_indexes
            or self.added_custom_indexes
            or self.removed_custom_indexes
            or self.added_materialized_views
            or self.removed_materialized_views
            or self.key_changed
        )


class SchemaDiffer:
    """Compare a live schema (source) to a declared schema (target)."""

    def diff(self, source: NormalizedSchema, target: NormalizedSchema) -> SchemaDiff:
        result = SchemaDiff(
            fields=self.diff_fields(source, target),
            key_changed=self.key_changed(source, target),
        )
        self._diff_indexes(source, target, result)
        self._diff_custom_indexes(source, target, result)
        self._diff_materialized_views(source, target, result)
        return result

    def key_changed(self, source: NormalizedSchema, target: NormalizedSchema) -> bool:
        """True if partition/clustering key shape or clustering order differ."""
        return (
            source.key != target.key
            or source.clustering_order != target.clustering_order
        )

    def diff_fields(
        self, source: NormalizedSchema, target: NormalizedSchema
    ) -> list[FieldDiff]:
        """Field differences in catalog order: live fields first, then additions."""
        diffs: list[FieldDiff] = []

        for name, live in source.fields.items():
            declared = target.fields.get(name)
            if declared is None:
                diffs.append(FieldDiff(DiffKind.DELETED, (name,), lhs=live))
                continue
            for attribute in FIELD_ATTRIBUTES:
                before = getattr(live, attribute)
                after = getattr(declared, attribute)
                if before != after:
                    diffs.append(
                        FieldDiff(DiffKind.EDITED, (name, attribute), before, after)
                    )

        for name, declared in target.fields.items():
            if name not in source.fields:
                diffs.append(FieldDiff(DiffKind.ADDED, (name,), rhs=declared))

        return diffs

    def _diff_indexes(
        self, source: NormalizedSchema, target: NormalizedSchema, result: SchemaDiff
    ) -> None:
        result.added_indexes = [i for i in target.indexes if i not in source.indexes]
        result.removed_indexes = [i for i in source.indexes if i not in target.indexes]

    def _diff_custom_indexes(
        self, source: NormalizedSchema, target: NormalizedSchema, result: SchemaDiff
    ) -> None:
        source_hashes = {structural_hash(i) for i in source.custom_indexes}
        target_hashes = {structural_hash(i) for i in target.custom_indexes}
        result.added_custom_indexes = [
            i for i in target.custom_indexes if structural_hash(i) not in source_hashes
        ]
        result.removed_custom_indexes = [
            i for i in source.custom_indexes if structural_hash(i) not in target_hashes
        ]

    def _diff_materialized_views(
        self, source: NormalizedSchema, target: NormalizedSchema, result: SchemaDiff
    ) -> None:
        source_defs = {structural_hash(v) for v in source.materialized_views.values()}
        target_defs = {structural_hash(v) for v in target.materialized_views.values()}
        result.added_materialized_views = [
            name
            for name, view in target.materialized_views.items()
            if structural_hash(view) not in source_defs
        ]
        result.removed_materialized_views = [
            name
            for name, view in source.materialized_views.items()
            if structural_hash(view) not in target_defs
        ]
