"""Request-scoped search filters.

A filter holds optional scalar predicates and up to ``max_tag_filters``
lists of tag names. Presence is explicit: ``None`` means unconstrained,
while ``""`` is a real value (it matches every row for substring fields).
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from ..catalog import normalize_tags
from ..errors import ValidationError
from ..tagsets import SEARCHABLE_TAG_SETS, EntityKind, TagSet


class ScalarOp(str, Enum):
    EQ = "eq"
    CONTAINS = "contains"


# Filterable scalar fields and how each one matches.
SCALAR_FIELDS: dict[EntityKind, dict[str, ScalarOp]] = {
    EntityKind.PROJECT: {
        "title": ScalarOp.CONTAINS,
        "status": ScalarOp.EQ,
        "duration": ScalarOp.EQ,
        "size": ScalarOp.EQ,
    },
    EntityKind.STUDENT: {
        "name": ScalarOp.CONTAINS,
        "degree": ScalarOp.EQ,
        "major": ScalarOp.CONTAINS,
    },
}


@dataclass(frozen=True)
class SearchFilter:
    """Validated filter for one search call. Build it with ``SearchFilter.build``."""
    kind: EntityKind
    scalars: Mapping[str, str] = field(default_factory=dict)
    tag_sets: Mapping[TagSet, tuple[str, ...]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        kind: EntityKind,
        scalars: Mapping[str, str | None] | None = None,
        tag_sets: Mapping[TagSet, Iterable[str] | None] | None = None,
        *,
        max_tag_filters: int = 3,
    ) -> SearchFilter:
        """Validate raw filter input.

        Absent scalars (``None``) and empty tag lists are dropped.

        Raises:
            ValidationError: Unknown scalar field, non-string scalar value,
                non-searchable tag set, malformed tag list, or more than
                ``max_tag_filters`` non-empty tag lists.
        """
        kind = EntityKind(kind)
        allowed = SCALAR_FIELDS[kind]

        clean_scalars: dict[str, str] = {}
        for name, value in (scalars or {}).items():
            if name not in allowed:
                raise ValidationError(f"Unknown {kind.value} filter: {name}")
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(f"Filter {name} must be a string")
            clean_scalars[name] = value

        clean_tags: dict[TagSet, tuple[str, ...]] = {}
        for raw_tag_set, names in (tag_sets or {}).items():
            try:
                tag_set = TagSet(raw_tag_set)
            except ValueError as e:
                raise ValidationError(f"Unknown tag set: {raw_tag_set}") from e
            if tag_set not in SEARCHABLE_TAG_SETS:
                raise ValidationError(f"Tag set {tag_set.plural} is not searchable")
            normalized = normalize_tags(names)
            if normalized:
                clean_tags[tag_set] = normalized

        if len(clean_tags) > max_tag_filters:
            raise ValidationError(f"At most {max_tag_filters} tag-set filters are allowed")

        # Fixed order keeps bound parameters and subquery joins stable
        ordered = {tag_set: clean_tags[tag_set] for tag_set in SEARCHABLE_TAG_SETS if tag_set in clean_tags}
        return cls(kind=kind, scalars=clean_scalars, tag_sets=ordered)

    @property
    def ranked(self) -> bool:
        return bool(self.tag_sets)

    def op_for(self, name: str) -> ScalarOp:
        return SCALAR_FIELDS[self.kind][name]
