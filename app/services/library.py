"""Local media store lookups backed by the database."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import MediaItem
from ..models import MediaHandle
from ..utils import normalize_media_kind

logger = logging.getLogger(__name__)


class MediaLibrary:
    """Finds and registers media items by their external id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def find_by_external_id(
        self, external_id: str, media_kind: str | None = None
    ) -> MediaHandle | None:
        """Return the first media item carrying ``external_id``."""

        if not external_id:
            return None
        stmt = select(MediaItem).where(
            func.lower(MediaItem.imdb_id) == external_id.strip().lower()
        )
        if media_kind is not None:
            stmt = stmt.where(MediaItem.kind == normalize_media_kind(media_kind))
        async with self._session_factory() as session:
            result = await session.execute(stmt.limit(1))
            item = result.scalar_one_or_none()
        if item is None:
            return None
        return self._to_handle(item)

    async def add_item(
        self,
        *,
        name: str,
        media_kind: str,
        imdb_id: str | None,
        year: int | None = None,
    ) -> MediaHandle:
        """Register a new media item and return its handle."""

        item = MediaItem(
            id=uuid.uuid4().hex,
            name=name,
            kind=normalize_media_kind(media_kind),
            imdb_id=imdb_id,
            year=year,
        )
        async with self._session_factory() as session:
            session.add(item)
            await session.commit()
        logger.debug("Registered media item %s (%s)", item.name, item.imdb_id)
        return self._to_handle(item)

    @staticmethod
    def _to_handle(item: MediaItem) -> MediaHandle:
        return MediaHandle(
            id=item.id, name=item.name, kind=item.kind, imdb_id=item.imdb_id
        )
