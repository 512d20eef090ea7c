"""Registry of tag sets and the tables that back them.

Every (entity kind, tag set) pair maps to one junction table and one shared
catalog table. The reconciler, the search renderer and the hydration query
all resolve tables through ``junction_for`` so table names never come from
request data.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy import Column, Table

from . import models


class EntityKind(str, Enum):
    PROJECT = "project"
    STUDENT = "student"


class TagSet(str, Enum):
    SKILL = "skill"
    ROLE = "role"
    INTEREST = "interest"
    FIELD = "field"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


# Tag sets a search filter may constrain, in the order their parameters bind.
SEARCHABLE_TAG_SETS: tuple[TagSet, ...] = (TagSet.INTEREST, TagSet.SKILL, TagSet.ROLE)


@dataclass(frozen=True)
class Junction:
    """Tables and columns for one entity's membership in one tag set."""
    kind: EntityKind
    tag_set: TagSet
    table: Table
    entity_column: Column
    catalog_column: Column
    catalog: Table

    @property
    def catalog_id(self) -> Column:
        return self.catalog.c.id

    @property
    def catalog_name(self) -> Column:
        return self.catalog.c.name


_CATALOGS: dict[TagSet, Table] = {
    TagSet.SKILL: models.Skill.__table__,
    TagSet.ROLE: models.Role.__table__,
    TagSet.INTEREST: models.Interest.__table__,
    TagSet.FIELD: models.FieldOfWork.__table__,
}

_JUNCTIONS: dict[tuple[EntityKind, TagSet], Table] = {
    (EntityKind.PROJECT, TagSet.SKILL): models.project_skills,
    (EntityKind.PROJECT, TagSet.ROLE): models.project_roles,
    (EntityKind.PROJECT, TagSet.INTEREST): models.project_interests,
    (EntityKind.PROJECT, TagSet.FIELD): models.project_fields,
    (EntityKind.STUDENT, TagSet.SKILL): models.student_skills,
    (EntityKind.STUDENT, TagSet.ROLE): models.student_roles,
    (EntityKind.STUDENT, TagSet.INTEREST): models.student_interests,
    (EntityKind.STUDENT, TagSet.FIELD): models.student_fields,
}


def catalog_for(tag_set: TagSet) -> Table:
    return _CATALOGS[TagSet(tag_set)]


def junction_for(kind: EntityKind, tag_set: TagSet) -> Junction:
    kind, tag_set = EntityKind(kind), TagSet(tag_set)
    table = _JUNCTIONS[(kind, tag_set)]
    return Junction(
        kind=kind,
        tag_set=tag_set,
        table=table,
        entity_column=table.c[f"{kind.value}_id"],
        catalog_column=table.c[f"{tag_set.value}_id"],
        catalog=_CATALOGS[tag_set],
    )


def entity_table(kind: EntityKind) -> Table:
    if EntityKind(kind) is EntityKind.PROJECT:
        return models.Project.__table__
    return models.Student.__table__
