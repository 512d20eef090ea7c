"""Catalog reconciliation for many-to-many tag sets.

Editing a profile replaces the entity's membership in a tag set with the
caller's list. Rather than clearing and re-inserting every junction row,
the reconciler emits the minimal delta:

1. register unseen names in the shared catalog (duplicates are a no-op),
2. delete the entity's junction rows whose name is not in the target,
3. insert junction rows for target names the entity does not hold yet.

Rows for names kept across the update are never touched. An empty target
collapses to a single "delete all memberships" statement.

Statements are executed on the caller's session and never committed here;
the caller runs them inside its own transaction and rolls back on error.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from sqlalchemy import Integer, delete, insert, literal, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.expression import Executable
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .errors import StoreError, ValidationError
from .tagsets import EntityKind, Junction, TagSet, junction_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one tag-set reconciliation."""
    entity_id: int
    tag_set: TagSet
    target: tuple[str, ...]
    removed: int
    added: int


def normalize_tags(tags: Iterable[str] | None) -> tuple[str, ...]:
    """Strip, drop blanks and de-duplicate, keeping first-seen order.

    Raises:
        ValidationError: If ``tags`` is a bare string or holds non-strings.
    """
    if tags is None:
        return ()
    if isinstance(tags, (str, bytes)):
        raise ValidationError("Tag list must be a list of strings, not a single string")

    seen: dict[str, None] = {}
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError(f"Tag names must be strings, got {type(tag).__name__}")
        name = tag.strip()
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


def catalog_insert_ignore(junction: Junction, names: tuple[str, ...], dialect: str) -> Executable:
    """INSERT every name into the catalog, skipping names already present."""
    rows = [{"name": name} for name in names]
    if dialect == "postgresql":
        return postgresql.insert(junction.catalog).values(rows).on_conflict_do_nothing(index_elements=["name"])
    if dialect == "sqlite":
        return sqlite.insert(junction.catalog).values(rows).on_conflict_do_nothing(index_elements=["name"])
    if dialect in ("mysql", "mariadb"):
        return insert(junction.catalog).values(rows).prefix_with("IGNORE")
    raise ValueError(f"Unsupported dialect for catalog upsert: {dialect}")


def delete_all_memberships(junction: Junction, entity_id: int) -> Executable:
    return delete(junction.table).where(junction.entity_column == entity_id)


def delete_stale_memberships(junction: Junction, entity_id: int, names: tuple[str, ...]) -> Executable:
    stale_ids = select(junction.catalog_id).where(junction.catalog_name.not_in(names))
    return delete(junction.table).where(
        junction.entity_column == entity_id,
        junction.catalog_column.in_(stale_ids),
    )


def insert_new_memberships(junction: Junction, entity_id: int, names: tuple[str, ...]) -> Executable:
    already_member = (
        select(junction.table.c[junction.entity_column.name])
        .where(
            junction.entity_column == entity_id,
            junction.catalog_column == junction.catalog_id,
        )
        .exists()
    )
    source = select(
        literal(entity_id, type_=Integer).label(junction.entity_column.name),
        junction.catalog_id.label(junction.catalog_column.name),
    ).where(
        junction.catalog_name.in_(names),
        ~already_member,
    )
    return insert(junction.table).from_select(
        [junction.entity_column.name, junction.catalog_column.name],
        source,
    )


def plan_reconciliation(
    kind: EntityKind,
    entity_id: int,
    tag_set: TagSet,
    target_tags: Iterable[str] | None,
    dialect: str = "postgresql",
) -> list[Executable]:
    """Return the ordered statements that make the membership equal ``target_tags``.

    Args:
        kind: Entity kind owning the junction rows
        entity_id: Existing entity id (checked by the store's foreign keys)
        tag_set: Which tag set to reconcile
        target_tags: Desired names; normalized with ``normalize_tags``
        dialect: SQLAlchemy dialect name, selects the catalog upsert form

    Returns:
        One statement for an empty target, otherwise catalog upsert,
        stale delete and new-membership insert, in that order.
    """
    junction = junction_for(kind, tag_set)
    names = normalize_tags(target_tags)

    if not names:
        return [delete_all_memberships(junction, entity_id)]

    return [
        catalog_insert_ignore(junction, names, dialect),
        delete_stale_memberships(junction, entity_id, names),
        insert_new_memberships(junction, entity_id, names),
    ]


async def reconcile(
    session: AsyncSession,
    kind: EntityKind,
    entity_id: int,
    tag_set: TagSet,
    target_tags: Iterable[str] | None,
) -> ReconcileResult:
    """Apply ``plan_reconciliation`` on ``session`` without committing.

    Raises:
        ValidationError: If ``target_tags`` is malformed
        StoreError: If any statement fails; the caller must roll back
    """
    names = normalize_tags(target_tags)
    statements = plan_reconciliation(kind, entity_id, tag_set, names, session.get_bind().dialect.name)

    try:
        results = [await session.execute(statement) for statement in statements]
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to reconcile {TagSet(tag_set).plural} for {EntityKind(kind).value} {entity_id}: {e}") from e

    if names:
        removed, added = results[1].rowcount, results[2].rowcount
    else:
        removed, added = results[0].rowcount, 0

    logger.debug(
        f"Reconciled {TagSet(tag_set).plural} for {EntityKind(kind).value} {entity_id}: "
        f"{len(names)} target, -{removed} +{added}"
    )
    return ReconcileResult(
        entity_id=entity_id,
        tag_set=TagSet(tag_set),
        target=names,
        removed=removed,
        added=added,
    )


async def reconcile_all(
    session: AsyncSession,
    kind: EntityKind,
    entity_id: int,
    tag_lists: Mapping[TagSet, Iterable[str] | None],
) -> list[ReconcileResult]:
    """Reconcile several tag sets of one entity, in a fixed tag-set order."""
    results = []
    for tag_set in TagSet:
        if tag_set in tag_lists:
            results.append(await reconcile(session, kind, entity_id, tag_set, tag_lists[tag_set]))
    return results


async def clear_all(session: AsyncSession, kind: EntityKind, entity_id: int) -> None:
    """Remove every tag membership of an entity, used before deleting it."""
    await reconcile_all(session, kind, entity_id, {tag_set: () for tag_set in TagSet})


async def set_role_exercises(
    session: AsyncSession,
    project_id: int,
    exercises: Mapping[str, str],
) -> None:
    """Replace the exercise texts attached to a project's roles.

    Every role membership is reset first; names the project does not hold
    are ignored.
    """
    table = models.project_roles
    role_ids = models.Role.__table__

    try:
        await session.execute(
            update(table).where(table.c.project_id == project_id).values(exercise=None)
        )
        for role_name, text in exercises.items():
            role_id = select(role_ids.c.id).where(role_ids.c.name == role_name).scalar_subquery()
            await session.execute(
                update(table)
                .where(table.c.project_id == project_id, table.c.role_id == role_id)
                .values(exercise=text)
            )
    except SQLAlchemyError as e:
        raise StoreError(f"Failed to update exercises for project {project_id}: {e}") from e
