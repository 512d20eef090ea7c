"""Query plan for relevance search.

The plan is a small, database-free description of the ranking query:

- one ``TagMatch`` per requested tag set; each becomes a grouped count of
  matching names per entity, inner-joined on entity id, so an entity must
  match at least one name in *every* requested tag set,
- ``score`` is the product of ``(match_count + 1)`` over those tag sets, or
  a constant 0 when none is requested,
- scalar predicates, ANDed,
- an optional keyset predicate resuming after the previous page,
- ``score DESC, id ASC`` ordering (``id ASC`` alone when unranked) and a limit.

``render.render_plan`` translates the plan 1:1 into a SQLAlchemy statement.
"""
from __future__ import annotations

from dataclasses import dataclass

from ..tagsets import EntityKind, TagSet
from .cursor import Cursor
from .filters import ScalarOp, SearchFilter


@dataclass(frozen=True)
class TagMatch:
    tag_set: TagSet
    names: tuple[str, ...]


@dataclass(frozen=True)
class ScalarPredicate:
    field: str
    op: ScalarOp
    value: str


@dataclass(frozen=True)
class KeysetPredicate:
    """``score < last_score OR (score = last_score AND id > last_id)``.

    With ``last_score`` unset the predicate degrades to ``id > last_id``.
    """
    last_id: int
    last_score: int | None = None


@dataclass(frozen=True)
class QueryPlan:
    kind: EntityKind
    tag_matches: tuple[TagMatch, ...]
    scalar_predicates: tuple[ScalarPredicate, ...]
    keyset: KeysetPredicate | None
    limit: int

    @property
    def ranked(self) -> bool:
        return bool(self.tag_matches)

    @property
    def order(self) -> tuple[tuple[str, str], ...]:
        if self.ranked:
            return (("score", "desc"), ("id", "asc"))
        return (("id", "asc"),)

    def score(self, match_counts: dict[TagSet, int]) -> int:
        """Score for an entity given its per-tag-set match counts."""
        if not self.ranked:
            return 0
        score = 1
        for match in self.tag_matches:
            score *= match_counts.get(match.tag_set, 0) + 1
        return score


def build_plan(search_filter: SearchFilter, cursor: Cursor | None, page_size: int) -> QueryPlan:
    """Build the plan for one page of ``search_filter`` results."""
    if page_size < 1:
        raise ValueError("page_size must be positive")

    cursor = cursor or Cursor()
    tag_matches = tuple(
        TagMatch(tag_set=tag_set, names=names)
        for tag_set, names in search_filter.tag_sets.items()
    )
    scalar_predicates = tuple(
        ScalarPredicate(field=name, op=search_filter.op_for(name), value=value)
        for name, value in search_filter.scalars.items()
    )

    keyset = None
    if cursor.uses_score(bool(tag_matches)):
        keyset = KeysetPredicate(last_id=cursor.last_id, last_score=cursor.last_score)
    elif cursor.last_id is not None:
        keyset = KeysetPredicate(last_id=cursor.last_id)

    return QueryPlan(
        kind=search_filter.kind,
        tag_matches=tag_matches,
        scalar_predicates=scalar_predicates,
        keyset=keyset,
        limit=page_size,
    )
