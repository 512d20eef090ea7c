"""Account rows mirrored from the external credential store.

Passwords and sessions stay in the credential store; this table only
records usernames so projects and profiles have an owner to point at.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..db import transaction
from ..errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, username: str) -> models.User:
    result = await session.execute(select(models.User).where(models.User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User {username} not found")
    return user


async def register_account(session: AsyncSession, username: str, email: str | None = None) -> int:
    """Create the account row for ``username``; returns the existing id if present."""
    username = username.strip()
    if not username:
        raise ValidationError("Username must not be empty")

    async with transaction(session):
        result = await session.execute(select(models.User.id).where(models.User.username == username))
        user_id = result.scalar_one_or_none()
        if user_id is None:
            user = models.User(username=username, email=email)
            session.add(user)
            await session.flush()
            user_id = user.id
            logger.info(f"Registered account {username} ({user_id})")

    return user_id
