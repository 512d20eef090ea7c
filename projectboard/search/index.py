"""Client for the external hosted search index (Algolia-style REST API).

Only three calls are used: save a document, delete a document, and fetch
documents matching a filter expression.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any
from urllib.parse import quote

import httpx

from ..config import IndexSettings, settings
from ..errors import SearchIndexError
from .filters import ScalarOp, SearchFilter

logger = logging.getLogger(__name__)


def _quote_value(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_filter_expression(search_filter: SearchFilter) -> str:
    """Render the index-side part of a filter.

    Each tag set becomes an OR group and groups are ANDed, matching the
    intersection semantics of the SQL ranking query. Exact-match scalars are
    added as facet filters; substring scalars are checked after retrieval.

    >>> build_filter_expression(SearchFilter.build("project", {"status": "Active"}, {"skill": ["Go", "Rust"]}))
    '(skills:"Go" OR skills:"Rust") AND status:"Active"'
    """
    clauses = []
    for tag_set, names in search_filter.tag_sets.items():
        group = " OR ".join(f"{tag_set.plural}:{_quote_value(name)}" for name in names)
        clauses.append(f"({group})")
    for name, value in search_filter.scalars.items():
        if search_filter.op_for(name) is ScalarOp.EQ:
            clauses.append(f"{name}:{_quote_value(value)}")
    return " AND ".join(clauses)


class SearchIndex:
    """One named index."""

    def __init__(self, client: SearchIndexClient, name: str) -> None:
        self.client = client
        self.name = name

    def _path(self, *parts: str) -> str:
        return "/".join(["/1/indexes", quote(self.name, safe=""), *(quote(p, safe="") for p in parts)])

    async def upsert(self, object_id: int | str, fields: dict[str, Any]) -> None:
        await self.client.request("PUT", self._path(str(object_id)), json={**fields, "objectID": str(object_id)})
        logger.info(f"Indexed {self.name}/{object_id}")

    async def delete(self, object_id: int | str) -> None:
        await self.client.request("DELETE", self._path(str(object_id)))
        logger.info(f"Removed {self.name}/{object_id} from index")

    async def query_by_filter(
        self,
        filter_expression: str,
        *,
        query: str = "",
        hits_per_page: int = 1000,
    ) -> list[dict[str, Any]]:
        """Every hit matching the filter, requesting pages until ``nbPages`` is reached.

        Without ``nbPages`` in the response, a short or empty page ends the scan.
        """
        hits: list[dict[str, Any]] = []
        page = 0
        while True:
            payload = {"query": query, "filters": filter_expression, "hitsPerPage": hits_per_page, "page": page}
            body = await self.client.request("POST", self._path("query"), json=payload)
            batch = list(body.get("hits", []))
            hits.extend(batch)
            page += 1

            nb_pages = body.get("nbPages")
            if not batch:
                break
            if nb_pages is None and len(batch) < hits_per_page:
                break
            if nb_pages is not None and page >= nb_pages:
                break

        logger.debug(f"Fetched {len(hits)} hits from {self.name} in {page} page(s)")
        return hits


class SearchIndexClient:
    """Async HTTP wrapper around one pooled ``httpx.AsyncClient``.

    Every failure surfaces as ``SearchIndexError``. ``aclose()`` releases the
    connections; the next request opens a fresh client.
    """

    def __init__(self, config: IndexSettings, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    def index(self, name: str) -> SearchIndex:
        return SearchIndex(self, name)

    def _headers(self) -> dict[str, str]:
        return {
            "X-Algolia-Application-Id": self.config.app_id,
            "X-Algolia-API-Key": self.config.api_key,
        }

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers=self._headers(),
                timeout=self.config.timeout,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = await self.http.request(method, path, json=json)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SearchIndexError(
                f"Search index returned {e.response.status_code} for {method} {path}"
            ) from e
        except httpx.HTTPError as e:
            raise SearchIndexError(f"Search index request failed: {e}") from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise SearchIndexError("Search index returned a non-JSON body") from e


@lru_cache(maxsize=1)
def get_index_client() -> SearchIndexClient:
    """Shared client so index connections are pooled across requests."""
    return SearchIndexClient(settings.index)
