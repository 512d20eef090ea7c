from __future__ import annotations

import pytest
from sqlalchemy.dialects import postgresql

from projectboard.errors import ValidationError
from projectboard.search import Cursor, SearchFilter, build_plan, render_plan
from projectboard.search.filters import ScalarOp
from projectboard.search.plan import KeysetPredicate
from projectboard.tagsets import EntityKind, TagSet

pytestmark = pytest.mark.unit


def _sql(plan) -> str:
    return str(render_plan(plan).compile(dialect=postgresql.dialect()))


def test_filter_drops_absent_values_and_keeps_empty_strings() -> None:
    search_filter = SearchFilter.build(
        EntityKind.PROJECT,
        {"title": "", "status": None},
        {TagSet.SKILL: [], TagSet.ROLE: None},
    )

    assert dict(search_filter.scalars) == {"title": ""}
    assert dict(search_filter.tag_sets) == {}
    assert not search_filter.ranked


def test_filter_orders_tag_sets_independently_of_input() -> None:
    search_filter = SearchFilter.build(
        EntityKind.STUDENT,
        tag_sets={"role": ["Mentor"], "skill": ["Go"], "interest": ["Arts"]},
    )

    assert list(search_filter.tag_sets) == [TagSet.INTEREST, TagSet.SKILL, TagSet.ROLE]


@pytest.mark.parametrize(
    ("scalars", "tag_sets"),
    [
        ({"salary": "high"}, None),
        ({"title": 3}, None),
        (None, {"field": ["Education"]}),
        (None, {"colour": ["Blue"]}),
        (None, {"skill": "Go"}),
    ],
)
def test_filter_rejects_malformed_input(scalars, tag_sets) -> None:
    with pytest.raises(ValidationError):
        SearchFilter.build(EntityKind.PROJECT, scalars, tag_sets)


def test_filter_limits_tag_set_count() -> None:
    with pytest.raises(ValidationError):
        SearchFilter.build(
            EntityKind.PROJECT,
            tag_sets={"skill": ["Go"], "role": ["Mentor"], "interest": ["Arts"]},
            max_tag_filters=2,
        )


def test_score_multiplies_match_counts() -> None:
    search_filter = SearchFilter.build(
        EntityKind.PROJECT,
        tag_sets={"skill": ["Go", "Rust", "SQL"], "role": ["Mentor"]},
    )
    plan = build_plan(search_filter, None, 20)

    assert plan.score({TagSet.SKILL: 2, TagSet.ROLE: 1}) == 6
    assert plan.score({TagSet.SKILL: 1, TagSet.ROLE: 1}) == 4
    assert plan.order == (("score", "desc"), ("id", "asc"))


def test_unranked_plan_scores_zero_and_orders_by_id() -> None:
    plan = build_plan(SearchFilter.build(EntityKind.PROJECT, {"status": "Active"}), None, 20)

    assert not plan.ranked
    assert plan.score({}) == 0
    assert plan.order == (("id", "asc"),)
    assert plan.keyset is None
    assert [(p.field, p.op) for p in plan.scalar_predicates] == [("status", ScalarOp.EQ)]


def test_ranked_cursor_becomes_score_keyset() -> None:
    search_filter = SearchFilter.build(EntityKind.PROJECT, tag_sets={"skill": ["Go"]})
    plan = build_plan(search_filter, Cursor(last_score=2, last_id=5), 2)

    assert plan.keyset == KeysetPredicate(last_id=5, last_score=2)
    assert plan.limit == 2


def test_unranked_cursor_degrades_to_id_keyset() -> None:
    plan = build_plan(SearchFilter.build(EntityKind.STUDENT), Cursor(last_score=0, last_id=9), 20)

    assert plan.keyset == KeysetPredicate(last_id=9)


def test_plan_rejects_non_positive_page_size() -> None:
    with pytest.raises(ValueError):
        build_plan(SearchFilter.build(EntityKind.PROJECT), None, 0)


def test_rendered_ranked_query_joins_counts_and_orders_by_score() -> None:
    search_filter = SearchFilter.build(
        EntityKind.PROJECT,
        {"title": "garden"},
        {"skill": ["Go"], "interest": ["Arts"]},
    )
    sql = _sql(build_plan(search_filter, Cursor(last_score=4, last_id=10), 20))

    assert "interests_matches" in sql
    assert "skills_matches" in sql
    assert "ORDER BY score DESC, projects.id ASC" in sql
    assert "LIMIT" in sql
    assert "garden" not in sql


def test_rendered_unranked_query_has_constant_score() -> None:
    sql = _sql(build_plan(SearchFilter.build(EntityKind.STUDENT, {"degree": "Master"}), None, 20))

    assert "_matches" not in sql
    assert "ORDER BY students.id ASC" in sql
