"""Relevance search over projects and students.

``build_plan`` turns a validated ``SearchFilter`` and ``Cursor`` into a
``QueryPlan``; ``render_plan`` turns the plan into one SQLAlchemy statement.
Ranking backends wrap the two and return a ``SearchPage``.
"""
from .backends import IndexRankingBackend, RankingBackend, SearchHit, SearchPage, SqlRankingBackend, get_ranking_backend
from .cursor import Cursor
from .filters import SearchFilter
from .plan import QueryPlan, build_plan
from .render import hydrate_tags, render_plan

__all__ = [
    "Cursor",
    "IndexRankingBackend",
    "QueryPlan",
    "RankingBackend",
    "SearchFilter",
    "SearchHit",
    "SearchPage",
    "SqlRankingBackend",
    "build_plan",
    "get_ranking_backend",
    "hydrate_tags",
    "render_plan",
]
