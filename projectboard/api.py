"""FastAPI app: search, project/student profiles, contracts, saved lists, options.

The acting identity arrives as the ``X-Username`` header, set by the
authentication layer in front of this service.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from . import schemas
from .config import settings
from .db import get_session
from .errors import (
    NotFoundError,
    ProjectBoardError,
    SearchIndexError,
    StoreError,
    UnauthorizedError,
    ValidationError,
)
from .guards import (
    get_acting_username,
    require_contract_owner,
    require_offer_project_owner,
    require_project_owner,
)
from .logging_config import setup_logging
from .search import Cursor, RankingBackend, SearchFilter, SearchPage, get_ranking_backend
from .search.index import get_index_client
from .services import accounts, contracts, lookup, projects, saved, students
from .services.indexing import IndexSync, get_index_sync
from .tagsets import EntityKind

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    setup_logging()
    logger.info(f"{settings.app_name} {settings.version} starting ({settings.environment.value})")

    yield

    await get_index_client().aclose()
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Marketplace backend connecting students with short-term projects",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
ERROR_STATUS: dict[type[ProjectBoardError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    ValidationError: 422,
    StoreError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    SearchIndexError: status.HTTP_502_BAD_GATEWAY,
    ProjectBoardError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(exc: ProjectBoardError, status_code: int) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=schemas.ErrorResponse(error=exc.code, detail=str(exc)).model_dump(),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    logger.info(f"Not found on {request.url.path}: {exc}")
    return _error_response(exc, ERROR_STATUS[NotFoundError])


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    logger.warning(f"Unauthorized {request.method} {request.url.path}: {exc}")
    return _error_response(exc, ERROR_STATUS[UnauthorizedError])


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info(f"Rejected {request.method} {request.url.path}: {exc}")
    return _error_response(exc, ERROR_STATUS[ValidationError])


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store error on {request.method} {request.url.path}: {exc}")
    return _error_response(exc, ERROR_STATUS[StoreError])


@app.exception_handler(SearchIndexError)
async def search_index_error_handler(request: Request, exc: SearchIndexError):
    logger.error(f"Search index error on {request.url.path}: {exc}")
    return _error_response(exc, ERROR_STATUS[SearchIndexError])


@app.exception_handler(ProjectBoardError)
async def project_board_error_handler(request: Request, exc: ProjectBoardError):
    logger.error(f"Unhandled application error on {request.url.path}: {exc}", exc_info=exc)
    return _error_response(exc, ERROR_STATUS[ProjectBoardError])


def ranking_backend() -> RankingBackend:
    return get_ranking_backend()


def index_sync() -> IndexSync:
    return get_index_sync()


@app.get("/health", response_model=schemas.HealthResponse)
async def health() -> schemas.HealthResponse:
    """Health check endpoint."""
    return schemas.HealthResponse(status="ok", version=settings.version)


@app.post("/accounts", response_model=schemas.CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_account(
    request: schemas.AccountCreate,
    session: AsyncSession = Depends(get_session),
) -> schemas.CreatedResponse:
    """Mirror an account created in the credential store."""
    return schemas.CreatedResponse(id=await accounts.register_account(session, request.username, request.email))


# --- search ------------------------------------------------------------------

def _search_response(page: SearchPage) -> schemas.SearchResponse:
    return schemas.SearchResponse(
        items=[
            schemas.SearchHitOut(id=hit.entity_id, score=hit.score, attributes=hit.attributes, tags=hit.tags)
            for hit in page.items
        ],
        next_cursor=page.next_cursor.encode() if page.next_cursor else None,
        has_more=page.has_more,
    )


async def _search(
    kind: EntityKind,
    request: schemas.ProjectSearchRequest | schemas.StudentSearchRequest,
    session: AsyncSession,
    backend: RankingBackend,
) -> schemas.SearchResponse:
    search_filter = SearchFilter.build(
        kind,
        request.scalars(),
        request.tag_sets(),
        max_tag_filters=settings.search.max_tag_filters,
    )
    page = await backend.rank(
        session,
        search_filter,
        Cursor.decode(request.cursor),
        request.page_size or settings.search.page_size,
    )
    return _search_response(page)


@app.post("/search/projects", response_model=schemas.SearchResponse)
async def search_projects(
    request: schemas.ProjectSearchRequest,
    session: AsyncSession = Depends(get_session),
    backend: RankingBackend = Depends(ranking_backend),
) -> schemas.SearchResponse:
    """Rank projects by tag overlap, then id; unranked queries list by id.

    Pass ``next_cursor`` back as ``cursor`` to fetch the following page.
    """
    return await _search(EntityKind.PROJECT, request, session, backend)


@app.post("/search/students", response_model=schemas.SearchResponse)
async def search_students(
    request: schemas.StudentSearchRequest,
    session: AsyncSession = Depends(get_session),
    backend: RankingBackend = Depends(ranking_backend),
) -> schemas.SearchResponse:
    return await _search(EntityKind.STUDENT, request, session, backend)


# --- projects ----------------------------------------------------------------

@app.get("/projects", response_model=list[schemas.ProjectOut])
async def list_my_projects(
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
):
    return await projects.list_owned_projects(session, username)


@app.post("/projects", response_model=schemas.CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    request: schemas.ProjectCreate,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
    sync: IndexSync = Depends(index_sync),
) -> schemas.CreatedResponse:
    project_id = await projects.create_project(
        session,
        username,
        request.details(),
        tag_lists=request.tag_lists(),
        exercises=request.exercises,
    )
    await sync.push(session, EntityKind.PROJECT, project_id)
    return schemas.CreatedResponse(id=project_id)


@app.get("/projects/{project_id}", response_model=schemas.ProjectOut)
async def get_project(project_id: int, session: AsyncSession = Depends(get_session)):
    return await projects.get_project(session, project_id)


@app.patch("/projects/{project_id}", response_model=schemas.ProjectOut)
async def update_project(
    request: schemas.ProjectUpdate,
    project_id: int = Depends(require_project_owner),
    session: AsyncSession = Depends(get_session),
    sync: IndexSync = Depends(index_sync),
):
    """Partial update; tag lists that are omitted or null stay unchanged, ``[]`` clears."""
    await projects.update_project(
        session,
        project_id,
        request.details(),
        tag_lists=request.tag_lists(),
        exercises=request.exercises,
    )
    await sync.push(session, EntityKind.PROJECT, project_id)
    return await projects.get_project(session, project_id)


@app.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int = Depends(require_project_owner),
    session: AsyncSession = Depends(get_session),
    sync: IndexSync = Depends(index_sync),
) -> Response:
    await projects.delete_project(session, project_id)
    await sync.remove(EntityKind.PROJECT, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/projects/{project_id}/contracts", response_model=list[schemas.ContractOut])
async def list_project_contracts(
    project_id: int = Depends(require_project_owner),
    session: AsyncSession = Depends(get_session),
):
    return await projects.list_project_contracts(session, project_id)


# --- students ----------------------------------------------------------------

@app.get("/students/me", response_model=schemas.StudentOut)
async def get_my_profile(
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
):
    return await students.get_student(session, username)


@app.post("/students/me", response_model=schemas.StudentOut, status_code=status.HTTP_201_CREATED)
async def create_my_profile(
    request: schemas.StudentCreate,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
    sync: IndexSync = Depends(index_sync),
):
    student_id = await students.create_student(session, username, request.profile(), tag_lists=request.tag_lists())
    await sync.push(session, EntityKind.STUDENT, student_id)
    return await students.get_student(session, username)


@app.patch("/students/me", response_model=schemas.StudentOut)
async def update_my_profile(
    request: schemas.StudentUpdate,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
    sync: IndexSync = Depends(index_sync),
):
    student_id = await students.update_student(session, username, request.profile(), tag_lists=request.tag_lists())
    await sync.push(session, EntityKind.STUDENT, student_id)
    return await students.get_student(session, username)


@app.delete("/students/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_profile(
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
    sync: IndexSync = Depends(index_sync),
) -> Response:
    student_id = await students.get_student_id(session, username)
    await students.delete_student(session, username)
    await sync.remove(EntityKind.STUDENT, student_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/students/{username}", response_model=schemas.StudentOut)
async def get_student(username: str, session: AsyncSession = Depends(get_session)):
    return await students.get_student(session, username)


# --- contracts ---------------------------------------------------------------

@app.post("/contracts", response_model=schemas.CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_contract(
    request: schemas.ContractCreate = Depends(require_offer_project_owner),
    session: AsyncSession = Depends(get_session),
) -> schemas.CreatedResponse:
    """Project owner offers a contract to a student; it starts as Pending."""
    contract_id = await contracts.create_contract(
        session,
        request.project_id,
        request.student,
        start_date=request.start_date,
        end_date=request.end_date,
    )
    return schemas.CreatedResponse(id=contract_id)


@app.get("/contracts", response_model=list[schemas.ContractOut])
async def list_my_contracts(
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
):
    return await contracts.list_student_contracts(session, username)


@app.patch("/contracts/{contract_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_contract(
    request: schemas.ContractStatusUpdate,
    contract_id: int = Depends(require_contract_owner),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await contracts.update_contract_status(session, contract_id, request.status)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- saved lists -------------------------------------------------------------

@app.get("/saved", response_model=schemas.SavedOut)
async def get_saved(
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
):
    return await saved.get_saved(session, username)


@app.put("/saved/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def save_project(
    project_id: int,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await saved.save_project(session, username, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/saved/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unsave_project(
    project_id: int,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await saved.unsave_project(session, username, project_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.put("/saved/students/{target_username}", status_code=status.HTTP_204_NO_CONTENT)
async def save_student(
    target_username: str,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await saved.save_student(session, username, target_username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.delete("/saved/students/{target_username}", status_code=status.HTTP_204_NO_CONTENT)
async def unsave_student(
    target_username: str,
    username: str = Depends(get_acting_username),
    session: AsyncSession = Depends(get_session),
) -> Response:
    await saved.unsave_student(session, username, target_username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- options -----------------------------------------------------------------

@app.get("/options", response_model=schemas.OptionsResponse)
async def tag_options(session: AsyncSession = Depends(get_session)) -> schemas.OptionsResponse:
    return schemas.OptionsResponse(options=await lookup.get_tag_options(session))


@app.get("/options/projects", response_model=schemas.OptionsResponse)
async def project_options(session: AsyncSession = Depends(get_session)) -> schemas.OptionsResponse:
    return schemas.OptionsResponse(options=await lookup.get_project_options(session))


@app.get("/options/students", response_model=schemas.OptionsResponse)
async def student_options(session: AsyncSession = Depends(get_session)) -> schemas.OptionsResponse:
    return schemas.OptionsResponse(options=await lookup.get_student_options(session))
