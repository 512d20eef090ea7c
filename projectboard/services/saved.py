"""Saved (favorite) projects and students. Saving twice is a no-op."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..db import transaction
from ..errors import NotFoundError, ValidationError
from .students import get_student_id

logger = logging.getLogger(__name__)


async def get_saved(session: AsyncSession, username: str) -> dict[str, list[dict[str, Any]]]:
    student_id = await get_student_id(session, username)

    project = models.Project.__table__
    status = models.Status.__table__
    saved_projects = await session.execute(
        select(project.c.id, project.c.title, status.c.name.label("status"))
        .select_from(project)
        .join(status, status.c.id == project.c.status_id)
        .join(models.SavedProject.__table__, models.SavedProject.project_id == project.c.id)
        .where(models.SavedProject.student_id == student_id)
        .order_by(project.c.id)
    )

    target = models.Student.__table__
    user = models.User.__table__
    saved_students = await session.execute(
        select(user.c.username, target.c.first_name, target.c.last_name)
        .select_from(target)
        .join(user, user.c.id == target.c.user_id)
        .join(models.SavedStudent.__table__, models.SavedStudent.target_student_id == target.c.id)
        .where(models.SavedStudent.student_id == student_id)
        .order_by(target.c.id)
    )

    return {
        "projects": [dict(row) for row in saved_projects.mappings().all()],
        "students": [dict(row) for row in saved_students.mappings().all()],
    }


async def save_project(session: AsyncSession, username: str, project_id: int) -> None:
    async with transaction(session):
        student_id = await get_student_id(session, username)
        if await session.get(models.Project, project_id) is None:
            raise NotFoundError(f"Project {project_id} not found")
        if await session.get(models.SavedProject, (student_id, project_id)) is None:
            session.add(models.SavedProject(student_id=student_id, project_id=project_id))
            logger.info(f"{username} saved project {project_id}")


async def unsave_project(session: AsyncSession, username: str, project_id: int) -> None:
    async with transaction(session):
        student_id = await get_student_id(session, username)
        await session.execute(
            delete(models.SavedProject).where(
                models.SavedProject.student_id == student_id,
                models.SavedProject.project_id == project_id,
            )
        )


async def save_student(session: AsyncSession, username: str, target_username: str) -> None:
    """Raises ``ValidationError`` when a student tries to save themselves."""
    async with transaction(session):
        student_id = await get_student_id(session, username)
        target_id = await get_student_id(session, target_username)
        if target_id == student_id:
            raise ValidationError("Students cannot save their own profile")
        if await session.get(models.SavedStudent, (student_id, target_id)) is None:
            session.add(models.SavedStudent(student_id=student_id, target_student_id=target_id))
            logger.info(f"{username} saved student {target_username}")


async def unsave_student(session: AsyncSession, username: str, target_username: str) -> None:
    async with transaction(session):
        student_id = await get_student_id(session, username)
        target_id = await get_student_id(session, target_username)
        await session.execute(
            delete(models.SavedStudent).where(
                models.SavedStudent.student_id == student_id,
                models.SavedStudent.target_student_id == target_id,
            )
        )
