from __future__ import annotations

import json

import httpx
import pytest

from conftest import add_project, add_user
from projectboard.config import IndexSettings
from projectboard.errors import SearchIndexError
from projectboard.search import IndexRankingBackend, SearchFilter, SqlRankingBackend
from projectboard.search.index import SearchIndexClient, build_filter_expression
from projectboard.services.indexing import IndexSync, build_document
from projectboard.tagsets import EntityKind

pytestmark = pytest.mark.integration


def index_settings(**overrides) -> IndexSettings:
    values = {"enabled": True, "base_url": "https://index.test", "app_id": "app", "api_key": "secret"}
    values.update(overrides)
    return IndexSettings(**values)


class FakeIndex:
    """Records requests and answers queries from an in-memory document list.

    Queries are paged by ``hitsPerPage``/``page`` the way the hosted index
    pages them, and report ``nbPages``.
    """

    def __init__(self, documents=None, status_code: int = 200) -> None:
        self.documents = list(documents or [])
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"message": "boom"})
        if request.url.path.endswith("/query"):
            body = json.loads(request.content)
            per_page, page = body["hitsPerPage"], body.get("page", 0)
            hits = self.documents[page * per_page:(page + 1) * per_page]
            nb_pages = -(-len(self.documents) // per_page)
            return httpx.Response(200, json={"hits": hits, "page": page, "nbPages": nb_pages})
        return httpx.Response(200, json={"objectID": request.url.path.rsplit("/", 1)[-1]})

    @property
    def queries(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith("/query")]

    def client(self, config: IndexSettings | None = None) -> SearchIndexClient:
        return SearchIndexClient(config or index_settings(), transport=httpx.MockTransport(self))


def test_filter_expression_groups_tag_sets() -> None:
    search_filter = SearchFilter.build(
        EntityKind.PROJECT,
        {"title": "garden", "status": "Active"},
        {"skill": ["Go", 'Say "hi"'], "interest": ["Health"]},
    )

    assert build_filter_expression(search_filter) == (
        '(interests:"Health") AND (skills:"Go" OR skills:"Say \\"hi\\"") AND status:"Active"'
    )


@pytest.mark.asyncio
async def test_client_sends_credentials_and_documents() -> None:
    fake = FakeIndex()
    index = fake.client().index("projects")

    await index.upsert(7, {"title": "Garden"})
    await index.delete(7)

    put, delete = fake.requests
    assert put.method == "PUT"
    assert put.url.path == "/1/indexes/projects/7"
    assert put.headers["X-Algolia-Application-Id"] == "app"
    assert put.headers["X-Algolia-API-Key"] == "secret"
    assert json.loads(put.content) == {"title": "Garden", "objectID": "7"}
    assert delete.method == "DELETE"


@pytest.mark.asyncio
async def test_query_by_filter_returns_hits() -> None:
    fake = FakeIndex(documents=[{"objectID": "1", "title": "A"}])

    hits = await fake.client().index("projects").query_by_filter('skills:"Go"', hits_per_page=50)

    assert hits == [{"objectID": "1", "title": "A"}]
    assert fake.queries == [{"query": "", "filters": 'skills:"Go"', "hitsPerPage": 50, "page": 0}]


@pytest.mark.asyncio
async def test_query_by_filter_reads_every_page() -> None:
    fake = FakeIndex(documents=[{"objectID": str(n)} for n in range(7)])

    hits = await fake.client().index("projects").query_by_filter("", hits_per_page=3)

    assert [hit["objectID"] for hit in hits] == [str(n) for n in range(7)]
    assert [query["page"] for query in fake.queries] == [0, 1, 2]


@pytest.mark.asyncio
async def test_query_by_filter_without_page_count_stops_on_short_page() -> None:
    pages = [[{"objectID": "1"}, {"objectID": "2"}], [{"objectID": "3"}]]

    def unpaged(request: httpx.Request) -> httpx.Response:
        page = json.loads(request.content)["page"]
        return httpx.Response(200, json={"hits": pages[page] if page < len(pages) else []})

    client = SearchIndexClient(index_settings(), transport=httpx.MockTransport(unpaged))
    hits = await client.index("projects").query_by_filter("", hits_per_page=2)

    assert [hit["objectID"] for hit in hits] == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_client_keeps_one_http_client_until_closed() -> None:
    client = FakeIndex().client()

    await client.index("projects").delete(1)
    first = client.http
    await client.index("projects").delete(2)
    assert client.http is first

    await client.aclose()
    assert first.is_closed
    await client.index("projects").delete(3)
    assert client.http is not first
    await client.aclose()


@pytest.mark.asyncio
async def test_http_errors_become_search_index_errors() -> None:
    with pytest.raises(SearchIndexError):
        await FakeIndex(status_code=503).client().index("projects").delete(1)

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = SearchIndexClient(index_settings(), transport=httpx.MockTransport(refuse))
    with pytest.raises(SearchIndexError):
        await client.index("projects").query_by_filter("")


@pytest.mark.asyncio
async def test_index_backend_orders_like_sql_backend(session) -> None:
    owner = await add_user(session, "owner")
    skill_sets = [["Go"], ["Go", "Rust"], ["Rust"], ["Go", "Rust", "SQL"], [], ["Go"], ["Rust", "SQL"]]
    ids = [await add_project(session, owner, f"Project {n}", skills=skills) for n, skills in enumerate(skill_sets)]

    documents = []
    for project_id in ids:
        document = await build_document(session, EntityKind.PROJECT, project_id)
        documents.append({**document, "objectID": str(project_id)})
    index_backend = IndexRankingBackend(FakeIndex(documents=documents).client())
    sql_backend = SqlRankingBackend()

    for search_filter in (
        SearchFilter.build(EntityKind.PROJECT, tag_sets={"skill": ["Go", "Rust", "SQL"]}),
        SearchFilter.build(EntityKind.PROJECT, {"title": "project 1"}, {"skill": ["Go"]}),
        SearchFilter.build(EntityKind.PROJECT, {"status": "Active"}),
    ):
        cursor_sql = cursor_index = None
        while True:
            sql_page = await sql_backend.rank(session, search_filter, cursor_sql, 2)
            index_page = await index_backend.rank(session, search_filter, cursor_index, 2)

            assert [(h.entity_id, h.score) for h in index_page.items] == [(h.entity_id, h.score) for h in sql_page.items]
            assert [h.tags for h in index_page.items] == [h.tags for h in sql_page.items]
            assert index_page.next_cursor == sql_page.next_cursor
            if not sql_page.items:
                break
            cursor_sql, cursor_index = sql_page.next_cursor, index_page.next_cursor


@pytest.mark.asyncio
async def test_index_backend_pages_reach_entities_beyond_one_index_page(session) -> None:
    owner = await add_user(session, "owner")
    ids = [await add_project(session, owner, f"Go {n}", skills=["Go"]) for n in range(8)]

    documents = []
    for project_id in reversed(ids):
        document = await build_document(session, EntityKind.PROJECT, project_id)
        documents.append({**document, "objectID": str(project_id)})
    fake = FakeIndex(documents=documents)
    backend = IndexRankingBackend(fake.client(index_settings(hits_per_page=5)))
    search_filter = SearchFilter.build(EntityKind.PROJECT, tag_sets={"skill": ["Go"]})

    seen, cursor = [], None
    while True:
        page = await backend.rank(session, search_filter, cursor, 3)
        if not page.items:
            break
        seen.extend(hit.entity_id for hit in page.items)
        cursor = page.next_cursor

    assert seen == ids
    assert all(query["hitsPerPage"] == 5 for query in fake.queries)
    assert {query["page"] for query in fake.queries} == {0, 1}


@pytest.mark.asyncio
async def test_index_sync_pushes_documents(session) -> None:
    owner = await add_user(session, "owner")
    project_id = await add_project(session, owner, "Synced", skills=["Go"])
    fake = FakeIndex()

    sync = IndexSync(index_settings(), client=fake.client())
    assert await sync.push(session, EntityKind.PROJECT, project_id)

    body = json.loads(fake.requests[0].content)
    assert fake.requests[0].url.path == f"/1/indexes/projects/{project_id}"
    assert body["title"] == "Synced"
    assert body["skills"] == ["Go"]
    assert body["status"] == "Active"


@pytest.mark.asyncio
async def test_index_sync_failure_is_logged_not_raised(session, caplog) -> None:
    owner = await add_user(session, "owner")
    project_id = await add_project(session, owner, "Unsynced")

    sync = IndexSync(index_settings(), client=FakeIndex(status_code=500).client())

    assert not await sync.push(session, EntityKind.PROJECT, project_id)
    assert not await sync.remove(EntityKind.PROJECT, project_id)
    assert "Index sync failed" in caplog.text


@pytest.mark.asyncio
async def test_disabled_index_sync_sends_nothing(session) -> None:
    fake = FakeIndex()
    sync = IndexSync(index_settings(enabled=False), client=fake.client())

    assert not await sync.push(session, EntityKind.PROJECT, 1)
    assert fake.requests == []
