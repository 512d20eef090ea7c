"""Project CRUD.

Tag sets go through the catalog reconciler; a tag list that is not supplied
(``None``) leaves that tag set untouched, an empty list clears it.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import catalog, models
from ..db import transaction
from ..errors import NotFoundError, ValidationError
from ..search.render import hydrate_tags, view_for
from ..tagsets import EntityKind, TagSet
from .accounts import get_user
from .contracts import contract_rows
from .lookup import apply_details, resolve_lookup

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_STATUS = "Active"

PLAIN_FIELDS = ("title", "description", "postal")
LOOKUP_FIELDS = {
    "status": ("status_id", models.Status),
    "duration": ("duration_id", models.Duration),
    "size": ("size_id", models.TeamSize),
}

TagLists = Mapping[TagSet, Iterable[str] | None]


def _supplied(tag_lists: TagLists | None) -> dict[TagSet, Iterable[str]]:
    return {TagSet(tag_set): names for tag_set, names in (tag_lists or {}).items() if names is not None}


async def _require_project(session: AsyncSession, project_id: int) -> models.Project:
    project = await session.get(models.Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    return project


async def _apply_tags(
    session: AsyncSession,
    project_id: int,
    tag_lists: TagLists | None,
    exercises: Mapping[str, str] | None,
) -> None:
    await catalog.reconcile_all(session, EntityKind.PROJECT, project_id, _supplied(tag_lists))
    if exercises is not None:
        await catalog.set_role_exercises(session, project_id, exercises)


async def create_project(
    session: AsyncSession,
    username: str,
    details: Mapping[str, Any],
    *,
    tag_lists: TagLists | None = None,
    exercises: Mapping[str, str] | None = None,
) -> int:
    """Create a project owned by ``username``; returns the new id.

    Raises:
        NotFoundError: Unknown owner
        ValidationError: Missing title or unknown lookup names
    """
    if not (details.get("title") or "").strip():
        raise ValidationError("Project title is required")

    async with transaction(session):
        owner = await get_user(session, username)
        project = models.Project(
            owner_id=owner.id,
            status_id=await resolve_lookup(session, models.Status, DEFAULT_PROJECT_STATUS),
        )
        await apply_details(
            session, project, details,
            plain=PLAIN_FIELDS, lookups=LOOKUP_FIELDS, required=("title", "status"),
        )
        session.add(project)
        await session.flush()
        await _apply_tags(session, project.id, tag_lists, exercises)
        project_id = project.id

    logger.info(f"Created project {project_id} for {username}")
    return project_id


async def _exercises(session: AsyncSession, project_id: int) -> dict[str, str]:
    roles = models.Role.__table__
    table = models.project_roles
    result = await session.execute(
        select(roles.c.name, table.c.exercise)
        .select_from(table)
        .join(roles, roles.c.id == table.c.role_id)
        .where(table.c.project_id == project_id, table.c.exercise.is_not(None))
        .order_by(roles.c.name)
    )
    return dict(result.all())


async def _project_rows(session: AsyncSession, *conditions) -> list[dict[str, Any]]:
    view = view_for(EntityKind.PROJECT)
    project = models.Project.__table__
    owner = models.User.__table__.alias("owner")
    statement = (
        select(
            *view.columns,
            project.c.description.label("description"),
            owner.c.username.label("owner"),
            project.c.created_at.label("created_at"),
            project.c.updated_at.label("updated_at"),
        )
        .select_from(view.from_clause.join(owner, owner.c.id == project.c.owner_id))
        .where(*conditions)
        .order_by(project.c.id)
    )
    rows = (await session.execute(statement)).mappings().all()
    tags = await hydrate_tags(session, EntityKind.PROJECT, [row["entity_id"] for row in rows])

    projects = []
    for row in rows:
        data = dict(row)
        data["id"] = data.pop("entity_id")
        data.update(tags[data["id"]])
        projects.append(data)
    return projects


async def get_project(session: AsyncSession, project_id: int) -> dict[str, Any]:
    """Project details with owner, lookup names, tag lists and role exercises."""
    rows = await _project_rows(session, models.Project.id == project_id)
    if not rows:
        raise NotFoundError(f"Project {project_id} not found")
    project = rows[0]
    project["exercises"] = await _exercises(session, project_id)
    return project


async def list_owned_projects(session: AsyncSession, username: str) -> list[dict[str, Any]]:
    owner = await get_user(session, username)
    return await _project_rows(session, models.Project.owner_id == owner.id)


async def update_project(
    session: AsyncSession,
    project_id: int,
    details: Mapping[str, Any],
    *,
    tag_lists: TagLists | None = None,
    exercises: Mapping[str, str] | None = None,
) -> None:
    """Apply a partial update; only fields present in ``details`` change.

    Raises:
        NotFoundError: Unknown project
        ValidationError: Empty title or unknown lookup names
    """
    if "title" in details and not (details["title"] or "").strip():
        raise ValidationError("Project title must not be empty")

    async with transaction(session):
        project = await _require_project(session, project_id)
        applied = await apply_details(
            session, project, details,
            plain=PLAIN_FIELDS, lookups=LOOKUP_FIELDS, required=("title", "status"),
        )
        await session.flush()
        await _apply_tags(session, project_id, tag_lists, exercises)

    logger.info(f"Updated project {project_id}: fields={applied} tag_sets={[t.plural for t in _supplied(tag_lists)]}")


async def delete_project(session: AsyncSession, project_id: int) -> None:
    """Delete a project with its contracts, saved entries and tag memberships."""
    async with transaction(session):
        project = await _require_project(session, project_id)
        await session.execute(delete(models.Contract).where(models.Contract.project_id == project_id))
        await session.execute(delete(models.SavedProject).where(models.SavedProject.project_id == project_id))
        await catalog.clear_all(session, EntityKind.PROJECT, project_id)
        await session.delete(project)

    logger.info(f"Deleted project {project_id}")


async def list_project_contracts(session: AsyncSession, project_id: int) -> list[dict[str, Any]]:
    await _require_project(session, project_id)
    return await contract_rows(session, models.Contract.project_id == project_id)
