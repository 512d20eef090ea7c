"""Keep the external search index in step with committed profile writes.

Pushes happen after the write commits. A failed push is logged and the
write stands; the next successful write of the same entity repairs it.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import IndexSettings, settings
from ..errors import SearchIndexError
from ..search.index import SearchIndex, SearchIndexClient, get_index_client
from ..search.render import hydrate_tags, view_for
from ..tagsets import EntityKind

logger = logging.getLogger(__name__)


async def build_document(session: AsyncSession, kind: EntityKind, entity_id: int) -> dict[str, Any] | None:
    """Index document for one entity, or ``None`` if it no longer exists.

    Carries the same display columns the SQL search returns plus every tag
    list; student documents also get the ``name`` and ``major`` strings the
    substring filters match against.
    """
    view = view_for(kind)
    row = (
        await session.execute(
            select(*view.columns).select_from(view.from_clause).where(view.id_column == entity_id)
        )
    ).mappings().one_or_none()
    if row is None:
        return None

    document = {key: value for key, value in row.items() if key != "entity_id"}
    if kind is EntityKind.STUDENT:
        document["name"] = f"{row['first_name']} {row['last_name']}"
        document["major"] = f"{row['major1'] or ''} {row['major2'] or ''}"
    document.update((await hydrate_tags(session, kind, [entity_id]))[entity_id])
    return document


class IndexSync:
    """Push or remove entity documents; a no-op when the index is disabled."""

    def __init__(self, config: IndexSettings, client: SearchIndexClient | None = None) -> None:
        self.config = config
        self.client = client or (SearchIndexClient(config) if config.enabled else None)

    @property
    def enabled(self) -> bool:
        return self.config.enabled and self.client is not None

    def _index(self, kind: EntityKind) -> SearchIndex:
        name = self.config.projects_index if kind is EntityKind.PROJECT else self.config.students_index
        return self.client.index(name)

    async def push(self, session: AsyncSession, kind: EntityKind, entity_id: int) -> bool:
        if not self.enabled:
            return False
        document = await build_document(session, kind, entity_id)
        try:
            if document is None:
                await self._index(kind).delete(entity_id)
            else:
                await self._index(kind).upsert(entity_id, document)
        except SearchIndexError as e:
            logger.error(f"Index sync failed for {kind.value} {entity_id}: {e}", exc_info=True)
            return False
        return True

    async def remove(self, kind: EntityKind, entity_id: int) -> bool:
        if not self.enabled:
            return False
        try:
            await self._index(kind).delete(entity_id)
        except SearchIndexError as e:
            logger.error(f"Index removal failed for {kind.value} {entity_id}: {e}", exc_info=True)
            return False
        return True


def get_index_sync() -> IndexSync:
    return IndexSync(settings.index, client=get_index_client() if settings.index.enabled else None)
