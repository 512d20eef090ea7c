"""Render a ``QueryPlan`` into a SQLAlchemy ``Select``.

All filter values reach the database as bound parameters; table and column
names come only from the tag-set registry and the entity views below.
"""
from __future__ import annotations

import functools
import logging
import operator
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import ColumnElement, FromClause, Select, and_, func, literal, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..tagsets import EntityKind, TagSet, junction_for
from .filters import ScalarOp
from .plan import QueryPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityView:
    """Base relation searched for one entity kind."""
    kind: EntityKind
    id_column: ColumnElement
    from_clause: FromClause
    columns: tuple[ColumnElement, ...]
    scalar_fields: dict[str, ColumnElement]


def _project_view() -> EntityView:
    project = models.Project.__table__
    status = models.Status.__table__.alias("st")
    duration = models.Duration.__table__.alias("d")
    size = models.TeamSize.__table__.alias("sz")

    from_clause = (
        project.join(status, status.c.id == project.c.status_id)
        .outerjoin(duration, duration.c.id == project.c.duration_id)
        .outerjoin(size, size.c.id == project.c.size_id)
    )
    return EntityView(
        kind=EntityKind.PROJECT,
        id_column=project.c.id,
        from_clause=from_clause,
        columns=(
            project.c.id.label("entity_id"),
            project.c.title.label("title"),
            status.c.name.label("status"),
            duration.c.name.label("duration"),
            size.c.name.label("size"),
            project.c.postal.label("postal"),
        ),
        scalar_fields={
            "title": project.c.title,
            "status": status.c.name,
            "duration": duration.c.name,
            "size": size.c.name,
        },
    )


def _student_view() -> EntityView:
    student = models.Student.__table__
    user = models.User.__table__.alias("u")
    degree = models.Degree.__table__.alias("dg")
    major1 = models.Major.__table__.alias("m1")
    major2 = models.Major.__table__.alias("m2")

    from_clause = (
        student.join(user, user.c.id == student.c.user_id)
        .outerjoin(degree, degree.c.id == student.c.degree_id)
        .outerjoin(major1, major1.c.id == student.c.major1_id)
        .outerjoin(major2, major2.c.id == student.c.major2_id)
    )
    full_name = student.c.first_name + " " + student.c.last_name
    majors = func.coalesce(major1.c.name, "") + " " + func.coalesce(major2.c.name, "")
    return EntityView(
        kind=EntityKind.STUDENT,
        id_column=student.c.id,
        from_clause=from_clause,
        columns=(
            student.c.id.label("entity_id"),
            user.c.username.label("username"),
            student.c.first_name.label("first_name"),
            student.c.last_name.label("last_name"),
            degree.c.name.label("degree"),
            major1.c.name.label("major1"),
            major2.c.name.label("major2"),
            student.c.postal.label("postal"),
        ),
        scalar_fields={
            "name": full_name,
            "degree": degree.c.name,
            "major": majors,
        },
    )


@functools.lru_cache(maxsize=None)
def view_for(kind: EntityKind) -> EntityView:
    if EntityKind(kind) is EntityKind.PROJECT:
        return _project_view()
    return _student_view()


def _match_counts(plan: QueryPlan):
    for match in plan.tag_matches:
        junction = junction_for(plan.kind, match.tag_set)
        yield (
            select(
                junction.entity_column.label("entity_id"),
                func.count().label("match_count"),
            )
            .select_from(junction.table.join(junction.catalog, junction.catalog_id == junction.catalog_column))
            .where(junction.catalog_name.in_(match.names))
            .group_by(junction.entity_column)
            .subquery(f"{match.tag_set.plural}_matches")
        )


def _scalar_condition(column: ColumnElement, op: ScalarOp, value: str) -> ColumnElement:
    if op is ScalarOp.CONTAINS:
        return column.icontains(value, autoescape=True)
    return column == value


def render_plan(plan: QueryPlan) -> Select:
    """Compile the plan into one ranking statement."""
    view = view_for(plan.kind)
    from_clause = view.from_clause

    factors = []
    for counts in _match_counts(plan):
        from_clause = from_clause.join(counts, counts.c.entity_id == view.id_column)
        factors.append(counts.c.match_count + 1)

    if factors:
        score = functools.reduce(operator.mul, factors)
    else:
        score = literal(0)
    score_label = score.label("score")

    conditions = [
        _scalar_condition(view.scalar_fields[predicate.field], predicate.op, predicate.value)
        for predicate in plan.scalar_predicates
    ]

    if plan.keyset is not None:
        if plan.keyset.last_score is not None:
            conditions.append(
                or_(
                    score < plan.keyset.last_score,
                    and_(score == plan.keyset.last_score, view.id_column > plan.keyset.last_id),
                )
            )
        else:
            conditions.append(view.id_column > plan.keyset.last_id)

    order_by = [score_label.desc(), view.id_column.asc()] if plan.ranked else [view.id_column.asc()]

    statement = (
        select(*view.columns, score_label)
        .select_from(from_clause)
        .where(*conditions)
        .order_by(*order_by)
        .limit(plan.limit)
    )
    logger.debug(f"Rendered {plan.kind.value} search: {len(plan.tag_matches)} tag sets, {len(conditions)} conditions")
    return statement


async def hydrate_tags(
    session: AsyncSession,
    kind: EntityKind,
    entity_ids: Sequence[int],
) -> dict[int, dict[str, list[str]]]:
    """Load full tag membership for a page of entities, keyed by id then tag-set plural.

    Runs after ranking and never affects it.
    """
    hydrated: dict[int, dict[str, list[str]]] = {
        entity_id: {tag_set.plural: [] for tag_set in TagSet} for entity_id in entity_ids
    }
    if not entity_ids:
        return hydrated

    for tag_set in TagSet:
        junction = junction_for(kind, tag_set)
        statement = (
            select(junction.entity_column, junction.catalog_name)
            .select_from(junction.table.join(junction.catalog, junction.catalog_id == junction.catalog_column))
            .where(junction.entity_column.in_(list(entity_ids)))
            .order_by(junction.entity_column, junction.catalog_name)
        )
        for entity_id, name in (await session.execute(statement)).all():
            hydrated[entity_id][tag_set.plural].append(name)

    return hydrated
