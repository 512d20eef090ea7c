"""Ownership checks run before any mutating project or contract call.

Routes attach ``require_project_owner``, ``require_contract_owner`` or
``require_offer_project_owner`` as dependencies, so the check happens once,
before the service is dispatched.
"""
from __future__ import annotations

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models, schemas
from .db import get_session
from .errors import NotFoundError, UnauthorizedError
from .services.contracts import get_contract_project_id


async def get_project_owner(session: AsyncSession, project_id: int) -> str:
    """Username owning ``project_id``."""
    result = await session.execute(
        select(models.User.username)
        .join(models.Project, models.Project.owner_id == models.User.id)
        .where(models.Project.id == project_id)
    )
    username = result.scalar_one_or_none()
    if username is None:
        raise NotFoundError(f"Project {project_id} not found")
    return username


async def ensure_project_owner(session: AsyncSession, project_id: int, username: str) -> None:
    """Raise unless ``username`` owns the project.

    Raises:
        NotFoundError: Project does not exist
        UnauthorizedError: Project belongs to someone else
    """
    if await get_project_owner(session, project_id) != username:
        raise UnauthorizedError(f"User {username} does not own project {project_id}")


async def ensure_contract_owner(session: AsyncSession, contract_id: int, username: str) -> int:
    """Raise unless ``username`` owns the contract's project; returns the project id."""
    project_id = await get_contract_project_id(session, contract_id)
    await ensure_project_owner(session, project_id, username)
    return project_id


# --- FastAPI dependencies ----------------------------------------------------

async def get_acting_username(x_username: str | None = Header(default=None)) -> str:
    """Identity resolved upstream by the authentication layer."""
    if not x_username or not x_username.strip():
        raise UnauthorizedError("Missing acting user")
    return x_username.strip()


async def require_project_owner(
    project_id: int,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
) -> int:
    await ensure_project_owner(session, project_id, username)
    return project_id


async def require_contract_owner(
    contract_id: int,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
) -> int:
    await ensure_contract_owner(session, contract_id, username)
    return contract_id


async def require_offer_project_owner(
    offer: schemas.ContractCreate,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
) -> schemas.ContractCreate:
    """Body-sourced variant for contract offers: the project id arrives in the request body."""
    await ensure_project_owner(session, offer.project_id, username)
    return offer
