"""Pluggable ranking backends.

Both backends return the same ``SearchPage`` shape and apply the same
scoring, keyset and ordering rules, so switching ``SEARCH_BACKEND`` changes
where the work happens, not the result order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import RankingBackendName, settings
from ..errors import StoreError
from ..tagsets import EntityKind, TagSet
from .cursor import Cursor
from .filters import ScalarOp, SearchFilter
from .index import SearchIndex, SearchIndexClient, build_filter_expression, get_index_client
from .plan import QueryPlan, build_plan
from .render import hydrate_tags, render_plan

logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    """One ranked entity with its display attributes and full tag lists."""
    entity_id: int
    score: int
    attributes: dict[str, Any] = field(default_factory=dict)
    tags: dict[str, list[str]] = field(default_factory=dict)


@dataclass
class SearchPage:
    items: list[SearchHit]
    next_cursor: Cursor | None
    has_more: bool


class RankingBackend(Protocol):
    """Ranks entities for a filter. Pick one implementation per deployment."""

    async def rank(
        self,
        session: AsyncSession,
        search_filter: SearchFilter,
        cursor: Cursor | None,
        page_size: int,
    ) -> SearchPage:
        ...


def _page(items: list[SearchHit], page_size: int) -> SearchPage:
    return SearchPage(
        items=items,
        next_cursor=Cursor.from_page(items),
        has_more=len(items) == page_size,
    )


class SqlRankingBackend:
    """Scores, filters, orders and pages inside the relational store."""

    async def rank(
        self,
        session: AsyncSession,
        search_filter: SearchFilter,
        cursor: Cursor | None,
        page_size: int,
    ) -> SearchPage:
        plan = build_plan(search_filter, cursor, page_size)
        try:
            rows = (await session.execute(render_plan(plan))).mappings().all()
            tags = await hydrate_tags(session, plan.kind, [row["entity_id"] for row in rows])
        except SQLAlchemyError as e:
            raise StoreError(f"Search query failed: {e}") from e

        items = []
        for row in rows:
            attributes = {key: value for key, value in row.items() if key not in ("entity_id", "score")}
            items.append(
                SearchHit(
                    entity_id=row["entity_id"],
                    score=int(row["score"]),
                    attributes=attributes,
                    tags=tags[row["entity_id"]],
                )
            )

        logger.info(f"{plan.kind.value} search returned {len(items)} rows (ranked={plan.ranked})")
        return _page(items, page_size)


class IndexRankingBackend:
    """Fetches candidates from the external index, ranks them locally.

    The index narrows candidates with an OR-per-tag-set filter expression;
    match counts, substring predicates, the keyset predicate and ordering are
    then computed here exactly as the SQL backend computes them.
    """

    def __init__(self, client: SearchIndexClient, hits_per_page: int | None = None) -> None:
        self.client = client
        self.hits_per_page = hits_per_page or client.config.hits_per_page

    def _index(self, kind: EntityKind) -> SearchIndex:
        if kind is EntityKind.PROJECT:
            return self.client.index(self.client.config.projects_index)
        return self.client.index(self.client.config.students_index)

    @staticmethod
    def _scalar_matches(document: dict[str, Any], search_filter: SearchFilter) -> bool:
        for name, value in search_filter.scalars.items():
            actual = document.get(name)
            if search_filter.op_for(name) is ScalarOp.CONTAINS:
                if value.lower() not in (actual or "").lower():
                    return False
            elif actual != value:
                return False
        return True

    async def rank(
        self,
        session: AsyncSession,
        search_filter: SearchFilter,
        cursor: Cursor | None,
        page_size: int,
    ) -> SearchPage:
        plan: QueryPlan = build_plan(search_filter, cursor, page_size)
        cursor = cursor or Cursor()

        documents = await self._index(plan.kind).query_by_filter(
            build_filter_expression(search_filter),
            hits_per_page=self.hits_per_page,
        )

        candidates = []
        for document in documents:
            counts = {}
            for match in plan.tag_matches:
                held = set(document.get(match.tag_set.plural) or [])
                counts[match.tag_set] = len(held.intersection(match.names))
            if any(count == 0 for count in counts.values()):
                continue
            if not self._scalar_matches(document, search_filter):
                continue

            entity_id = int(document["objectID"])
            score = plan.score(counts)
            if not cursor.admits(score, entity_id, plan.ranked):
                continue

            attributes = {
                key: value for key, value in document.items()
                if key != "objectID" and key not in {tag_set.plural for tag_set in TagSet}
            }
            tags = {tag_set.plural: sorted(document.get(tag_set.plural) or []) for tag_set in TagSet}
            candidates.append(SearchHit(entity_id=entity_id, score=score, attributes=attributes, tags=tags))

        candidates.sort(key=lambda hit: (-hit.score, hit.entity_id))
        items = candidates[:page_size]
        logger.info(f"{plan.kind.value} index search returned {len(items)} of {len(documents)} hits")
        return _page(items, page_size)


def get_ranking_backend(client: SearchIndexClient | None = None) -> RankingBackend:
    """Backend selected by ``SEARCH_BACKEND``."""
    if settings.search.backend is RankingBackendName.INDEX:
        return IndexRankingBackend(client or get_index_client())
    return SqlRankingBackend()
