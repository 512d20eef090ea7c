"""Lookup-table resolution and option lists for profile forms."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..errors import ValidationError
from ..tagsets import TagSet, catalog_for


async def resolve_lookup(session: AsyncSession, model: type[models.Base], name: str) -> int:
    """Return the id of ``name`` in a seeded lookup table.

    Raises:
        ValidationError: If the name is not a known option
    """
    result = await session.execute(select(model.id).where(model.name == name))
    lookup_id = result.scalar_one_or_none()
    if lookup_id is None:
        raise ValidationError(f"Unknown {model.__tablename__} option: {name}")
    return lookup_id


async def _names(session: AsyncSession, table) -> list[str]:
    result = await session.execute(select(table.c.name).order_by(table.c.name))
    return list(result.scalars().all())


async def get_tag_options(session: AsyncSession) -> dict[str, list[str]]:
    """Every known catalog name, per tag set."""
    return {tag_set.plural: await _names(session, catalog_for(tag_set)) for tag_set in TagSet}


async def get_project_options(session: AsyncSession) -> dict[str, list[str]]:
    return {
        "durations": await _names(session, models.Duration.__table__),
        "sizes": await _names(session, models.TeamSize.__table__),
        "statuses": await _names(session, models.Status.__table__),
        **await get_tag_options(session),
    }


async def get_student_options(session: AsyncSession) -> dict[str, list[str]]:
    return {
        "degrees": await _names(session, models.Degree.__table__),
        "schools": await _names(session, models.School.__table__),
        "majors": await _names(session, models.Major.__table__),
        **await get_tag_options(session),
    }


async def apply_details(
    session: AsyncSession,
    row: models.Base,
    details: Mapping[str, Any],
    *,
    plain: Iterable[str],
    lookups: Mapping[str, tuple[str, type[models.Base]]],
    required: Iterable[str] = (),
) -> list[str]:
    """Copy the fields present in ``details`` onto ``row``.

    ``lookups`` maps an input name (``"degree"``) to the id column it sets and
    the lookup model its value is resolved against. Fields missing from
    ``details`` are left untouched; returns the names that were applied.

    Raises:
        ValidationError: Unknown field, unknown lookup name, or a required
            field set to null
    """
    plain = set(plain)
    required = set(required)
    applied = []
    for name, value in details.items():
        if value is None and name in required:
            raise ValidationError(f"{name} must not be null")
        if name in plain:
            setattr(row, name, value)
        elif name in lookups:
            column, model = lookups[name]
            setattr(row, column, None if value is None else await resolve_lookup(session, model, value))
        else:
            raise ValidationError(f"Unknown field: {name}")
        applied.append(name)
    return applied
