from __future__ import annotations

import os

# Settings are read at import time; point them at SQLite before projectboard loads.
os.environ["DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SEARCH_BACKEND"] = "sql"
os.environ["INDEX_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"

from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from init_db import seed_lookups
from projectboard import catalog, models
from projectboard.db import create_engine
from projectboard.tagsets import EntityKind, TagSet, junction_for

TAG_SETS_BY_PLURAL = {tag_set.plural: tag_set for tag_set in TagSet}


def database_url(tmp_path: Path, name: str = "projectboard.sqlite3") -> str:
    return f"sqlite+aiosqlite:///{tmp_path / name}"


async def prepare_database(url: str) -> None:
    """Create the schema and seed lookup tables with a throwaway engine."""
    engine = create_engine(url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)
        await seed_lookups(conn)
    await engine.dispose()


@pytest.fixture
async def engine(tmp_path: Path):
    url = database_url(tmp_path)
    await prepare_database(url)
    engine = create_engine(url, poolclass=NullPool)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    maker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)
    async with maker() as session:
        yield session


async def add_user(session: AsyncSession, username: str) -> models.User:
    user = models.User(username=username, email=f"{username}@example.com")
    session.add(user)
    await session.flush()
    return user


async def add_project(session: AsyncSession, owner: models.User, title: str, **tags: list[str]) -> int:
    """Insert a project row and reconcile ``tags`` (keyed by tag-set plural)."""
    active = (await session.execute(select(models.Status.id).where(models.Status.name == "Active"))).scalar_one()
    project = models.Project(owner_id=owner.id, title=title, status_id=active)
    session.add(project)
    await session.flush()
    for plural, names in tags.items():
        await catalog.reconcile(session, EntityKind.PROJECT, project.id, TAG_SETS_BY_PLURAL[plural], names)
    await session.commit()
    return project.id


async def member_names(session: AsyncSession, kind: EntityKind, entity_id: int, tag_set: TagSet) -> set[str]:
    junction = junction_for(kind, tag_set)
    result = await session.execute(
        select(junction.catalog_name)
        .join(junction.table, junction.catalog_column == junction.catalog_id)
        .where(junction.entity_column == entity_id)
    )
    return set(result.scalars().all())


async def count_rows(session: AsyncSession, table) -> int:
    return (await session.execute(select(func.count()).select_from(table))).scalar_one()
