"""Contracts: a student's engagement on a project."""
from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..db import transaction
from ..errors import NotFoundError, ValidationError
from .lookup import resolve_lookup
from .students import get_student_id

logger = logging.getLogger(__name__)


class ContractStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


async def contract_rows(session: AsyncSession, *conditions) -> list[dict[str, Any]]:
    """Contracts matching ``conditions`` with project, student and status names."""
    contract = models.Contract.__table__
    project = models.Project.__table__
    student = models.Student.__table__
    user = models.User.__table__
    status = models.Status.__table__

    statement = (
        select(
            contract.c.id,
            contract.c.project_id,
            project.c.title.label("project_title"),
            user.c.username.label("student"),
            student.c.first_name,
            student.c.last_name,
            status.c.name.label("status"),
            contract.c.start_date,
            contract.c.end_date,
            contract.c.created_at,
            contract.c.updated_at,
        )
        .select_from(
            contract.join(project, project.c.id == contract.c.project_id)
            .join(student, student.c.id == contract.c.student_id)
            .join(user, user.c.id == student.c.user_id)
            .join(status, status.c.id == contract.c.status_id)
        )
        .where(*conditions)
        .order_by(contract.c.id)
    )
    return [dict(row) for row in (await session.execute(statement)).mappings().all()]


async def create_contract(
    session: AsyncSession,
    project_id: int,
    student_username: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> int:
    """Open a ``Pending`` contract between a project and a student.

    Raises:
        NotFoundError: Unknown project or student
        ValidationError: ``end_date`` before ``start_date``
    """
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

    async with transaction(session):
        if await session.get(models.Project, project_id) is None:
            raise NotFoundError(f"Project {project_id} not found")
        contract = models.Contract(
            project_id=project_id,
            student_id=await get_student_id(session, student_username),
            status_id=await resolve_lookup(session, models.Status, ContractStatus.PENDING.value),
            start_date=start_date,
            end_date=end_date,
        )
        session.add(contract)
        await session.flush()
        contract_id = contract.id

    logger.info(f"Created contract {contract_id}: project {project_id} <- {student_username}")
    return contract_id


async def list_student_contracts(session: AsyncSession, username: str) -> list[dict[str, Any]]:
    student_id = await get_student_id(session, username)
    return await contract_rows(session, models.Contract.student_id == student_id)


async def get_contract_project_id(session: AsyncSession, contract_id: int) -> int:
    result = await session.execute(select(models.Contract.project_id).where(models.Contract.id == contract_id))
    project_id = result.scalar_one_or_none()
    if project_id is None:
        raise NotFoundError(f"Contract {contract_id} not found")
    return project_id


async def update_contract_status(session: AsyncSession, contract_id: int, status: str) -> None:
    """Move a contract to ``status``.

    Raises:
        NotFoundError: Unknown contract
        ValidationError: ``status`` is not a ``ContractStatus``
    """
    try:
        new_status = ContractStatus(status)
    except ValueError as e:
        raise ValidationError(f"Unknown contract status: {status}") from e

    async with transaction(session):
        contract = await session.get(models.Contract, contract_id)
        if contract is None:
            raise NotFoundError(f"Contract {contract_id} not found")
        contract.status_id = await resolve_lookup(session, models.Status, new_status.value)

    logger.info(f"Contract {contract_id} -> {new_status.value}")
