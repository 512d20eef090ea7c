"""Student profiles, one per account."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import catalog, models
from ..db import transaction
from ..errors import NotFoundError, ValidationError
from ..search.render import hydrate_tags, view_for
from ..tagsets import EntityKind, TagSet
from .accounts import get_user
from .lookup import apply_details

logger = logging.getLogger(__name__)

PLAIN_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "dob",
    "resume",
    "linkedin",
    "website",
    "postal",
    "photo_url",
)
LOOKUP_FIELDS = {
    "school": ("school_id", models.School),
    "degree": ("degree_id", models.Degree),
    "major1": ("major1_id", models.Major),
    "major2": ("major2_id", models.Major),
}
REQUIRED_FIELDS = ("first_name", "last_name")


def _check_names(profile: Mapping[str, Any], *, creating: bool) -> None:
    for name in REQUIRED_FIELDS:
        if name not in profile and not creating:
            continue
        if not (profile.get(name) or "").strip():
            raise ValidationError(f"{name} is required")


def _supplied(tag_lists: Mapping[TagSet, Iterable[str] | None] | None) -> dict[TagSet, Iterable[str]]:
    return {TagSet(tag_set): names for tag_set, names in (tag_lists or {}).items() if names is not None}


async def get_student_id(session: AsyncSession, username: str) -> int:
    """Student id for ``username``.

    Raises:
        NotFoundError: No such user, or the user has no student profile
    """
    result = await session.execute(
        select(models.Student.id)
        .join(models.User, models.User.id == models.Student.user_id)
        .where(models.User.username == username)
    )
    student_id = result.scalar_one_or_none()
    if student_id is None:
        raise NotFoundError(f"No student profile for {username}")
    return student_id


async def create_student(
    session: AsyncSession,
    username: str,
    profile: Mapping[str, Any],
    *,
    tag_lists: Mapping[TagSet, Iterable[str] | None] | None = None,
) -> int:
    """Create the profile for ``username``; returns the new student id.

    Raises:
        NotFoundError: Unknown user
        ValidationError: Profile already exists, missing names, unknown lookup names
    """
    _check_names(profile, creating=True)

    async with transaction(session):
        user = await get_user(session, username)
        existing = await session.execute(select(models.Student.id).where(models.Student.user_id == user.id))
        if existing.scalar_one_or_none() is not None:
            raise ValidationError(f"{username} already has a student profile")

        student = models.Student(user_id=user.id)
        await apply_details(
            session, student, profile,
            plain=PLAIN_FIELDS, lookups=LOOKUP_FIELDS, required=REQUIRED_FIELDS,
        )
        session.add(student)
        await session.flush()
        await catalog.reconcile_all(session, EntityKind.STUDENT, student.id, _supplied(tag_lists))
        student_id = student.id

    logger.info(f"Created student profile {student_id} for {username}")
    return student_id


async def get_student(session: AsyncSession, username: str) -> dict[str, Any]:
    """Profile with lookup names and tag lists."""
    view = view_for(EntityKind.STUDENT)
    student = models.Student.__table__
    school = models.School.__table__.alias("sch")
    statement = (
        select(
            *view.columns,
            student.c.email.label("email"),
            student.c.dob.label("dob"),
            school.c.name.label("school"),
            student.c.resume.label("resume"),
            student.c.linkedin.label("linkedin"),
            student.c.website.label("website"),
            student.c.photo_url.label("photo_url"),
            student.c.joined_at.label("joined_at"),
        )
        .select_from(view.from_clause.outerjoin(school, school.c.id == student.c.school_id))
        .where(view.id_column == await get_student_id(session, username))
    )
    row = (await session.execute(statement)).mappings().one()

    data = dict(row)
    data["id"] = data.pop("entity_id")
    data.update((await hydrate_tags(session, EntityKind.STUDENT, [data["id"]]))[data["id"]])
    return data


async def update_student(
    session: AsyncSession,
    username: str,
    profile: Mapping[str, Any],
    *,
    tag_lists: Mapping[TagSet, Iterable[str] | None] | None = None,
) -> int:
    """Apply a partial profile update and reconcile the supplied tag sets."""
    _check_names(profile, creating=False)

    async with transaction(session):
        student_id = await get_student_id(session, username)
        student = await session.get(models.Student, student_id)
        applied = await apply_details(
            session, student, profile,
            plain=PLAIN_FIELDS, lookups=LOOKUP_FIELDS, required=REQUIRED_FIELDS,
        )
        await session.flush()
        results = await catalog.reconcile_all(session, EntityKind.STUDENT, student_id, _supplied(tag_lists))

    logger.info(
        f"Updated student {student_id}: fields={applied} "
        f"tags={[(r.tag_set.plural, -r.removed, r.added) for r in results]}"
    )
    return student_id


async def delete_student(session: AsyncSession, username: str) -> None:
    """Delete the profile with its contracts, saved entries (both directions) and tags."""
    async with transaction(session):
        student_id = await get_student_id(session, username)
        await session.execute(delete(models.Contract).where(models.Contract.student_id == student_id))
        await session.execute(delete(models.SavedProject).where(models.SavedProject.student_id == student_id))
        await session.execute(
            delete(models.SavedStudent).where(
                or_(
                    models.SavedStudent.student_id == student_id,
                    models.SavedStudent.target_student_id == student_id,
                )
            )
        )
        await catalog.clear_all(session, EntityKind.STUDENT, student_id)
        await session.delete(await session.get(models.Student, student_id))

    logger.info(f"Deleted student profile {student_id} ({username})")
