"""Persistence adapter for catalog-backed collections."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Collection, CollectionMember, MediaItem
from ..errors import CollectionUnavailable
from ..models import CollectionState
from ..utils import CATALOG_TOTAL_KEY, PROVIDER_KEY

logger = logging.getLogger(__name__)



def _provider_tag_column():
    return Collection.provider_ids[PROVIDER_KEY].as_string()


class CollectionStore:
    """Looks up, creates and extends collections keyed by provider tag."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_collection(self, collection_id: str) -> CollectionState | None:
        async with self._session_factory() as session:
            collection = await session.get(Collection, collection_id)
            if collection is None:
                return None
            counts = await self._member_counts(session, [collection.id])
            return self._to_state(collection, counts.get(collection.id, 0))

    async def find_by_provider_tag(self, tag: str) -> CollectionState | None:
        """Return the collection carrying ``tag`` under the provider key."""

        async with self._session_factory() as session:
            collection = await self._find_tagged(session, tag)
            if collection is None:
                return None
            counts = await self._member_counts(session, [collection.id])
            return self._to_state(collection, counts.get(collection.id, 0))

    async def list_tracked(self) -> list[CollectionState]:
        """Return every collection that carries a provider tag."""

        tag = _provider_tag_column()
        async with self._session_factory() as session:
            result = await session.execute(
                select(Collection)
                .where(tag.is_not(None), tag != "")
                .order_by(Collection.created_at, Collection.name)
            )
            tracked = list(result.scalars().all())
            counts = await self._member_counts(
                session, [collection.id for collection in tracked]
            )
            return [
                self._to_state(collection, counts.get(collection.id, 0))
                for collection in tracked
            ]

    async def create_collection(self, name: str, provider_tag: str) -> CollectionState:
        """Create a tagged collection, replacing untagged namesakes.

        Collections created by hand, or by an older sync that did not tag
        them, would otherwise linger as duplicates of the tagged one.
        """

        async with self._session_factory() as session:
            result = await session.execute(
                select(Collection).where(func.lower(Collection.name) == name.lower())
            )
            for duplicate in result.scalars().all():
                if (duplicate.provider_ids or {}).get(PROVIDER_KEY):
                    continue
                logger.info(
                    "Removing untagged duplicate collection '%s' (%s)",
                    duplicate.name,
                    duplicate.id,
                )
                await session.execute(
                    delete(CollectionMember).where(
                        CollectionMember.collection_id == duplicate.id
                    )
                )
                await session.execute(
                    delete(Collection).where(Collection.id == duplicate.id)
                )

            collection = Collection(
                id=uuid.uuid4().hex,
                name=name,
                provider_ids={PROVIDER_KEY: provider_tag},
            )
            session.add(collection)
            await session.commit()
            logger.info("Collection created: %s (%s)", collection.name, collection.id)
            return self._to_state(collection, 0)

    async def ensure_collection(
        self, name: str, provider_tag: str, *, legacy_tag: str | None = None
    ) -> CollectionState:
        """Return the collection tagged ``provider_tag``, creating it if absent.

        A collection still carrying ``legacy_tag`` is adopted and retagged
        instead of being duplicated.
        """

        existing = await self.find_by_provider_tag(provider_tag)
        if existing is None and legacy_tag and legacy_tag != provider_tag:
            existing = await self.retag_collection(legacy_tag, provider_tag)
        if existing is not None:
            logger.info(
                "Using existing collection %s. Syncing items (additive)...", existing.id
            )
            return existing
        try:
            return await self.create_collection(name, provider_tag)
        except Exception as exc:
            raise CollectionUnavailable(
                f"Could not create collection '{name}' for {provider_tag}"
            ) from exc

    async def retag_collection(
        self, old_tag: str, new_tag: str
    ) -> CollectionState | None:
        """Move the collection tagged ``old_tag`` over to ``new_tag``."""

        async with self._session_factory() as session:
            collection = await self._find_tagged(session, old_tag)
            if collection is None:
                return None
            provider_ids = dict(collection.provider_ids or {})
            provider_ids[PROVIDER_KEY] = new_tag
            collection.provider_ids = provider_ids
            await session.commit()
            logger.info(
                "Updating provider tag of '%s' from %s to %s",
                collection.name,
                old_tag,
                new_tag,
            )
            counts = await self._member_counts(session, [collection.id])
            return self._to_state(collection, counts.get(collection.id, 0))

    async def get_member_external_ids(self, collection_id: str) -> set[str]:
        """Return the external ids of the collection's members.

        Members whose media item has no external id are left out.
        """

        stmt = (
            select(MediaItem.imdb_id)
            .join(CollectionMember, CollectionMember.media_item_id == MediaItem.id)
            .where(
                CollectionMember.collection_id == collection_id,
                MediaItem.imdb_id.is_not(None),
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return {row[0] for row in result.all() if row[0]}

    async def add_members(
        self, collection_id: str, media_item_ids: Sequence[str]
    ) -> list[str]:
        """Link media items to the collection and return the newly linked ids."""

        async with self._session_factory() as session:
            collection = await session.get(Collection, collection_id)
            if collection is None:
                raise CollectionUnavailable(f"Collection {collection_id} not found")

            result = await session.execute(
                select(CollectionMember.media_item_id, CollectionMember.position).where(
                    CollectionMember.collection_id == collection_id
                )
            )
            rows = result.all()
            linked = {row[0] for row in rows}
            position = max((row[1] for row in rows), default=-1) + 1

            added: list[str] = []
            for media_item_id in media_item_ids:
                if media_item_id in linked:
                    continue
                session.add(
                    CollectionMember(
                        collection_id=collection_id,
                        media_item_id=media_item_id,
                        position=position,
                    )
                )
                linked.add(media_item_id)
                added.append(media_item_id)
                position += 1
            collection.updated_at = datetime.utcnow()
            await session.commit()
            return added

    async def member_count(self, collection_id: str) -> int:
        async with self._session_factory() as session:
            counts = await self._member_counts(session, [collection_id])
        return counts.get(collection_id, 0)

    async def set_catalog_total(self, collection_id: str, total: int) -> None:
        """Record the fetched catalog size alongside the provider tag."""

        async with self._session_factory() as session:
            collection = await session.get(Collection, collection_id)
            if collection is None:
                return
            provider_ids = dict(collection.provider_ids or {})
            if provider_ids.get(CATALOG_TOTAL_KEY) == str(total):
                return
            provider_ids[CATALOG_TOTAL_KEY] = str(total)
            collection.provider_ids = provider_ids
            await session.commit()
            logger.info("Stored catalog total for %s: %s", collection.name, total)

    async def _find_tagged(
        self, session: AsyncSession, tag: str
    ) -> Collection | None:
        result = await session.execute(
            select(Collection)
            .where(_provider_tag_column() == tag)
            .order_by(Collection.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _member_counts(
        session: AsyncSession, collection_ids: Iterable[str]
    ) -> dict[str, int]:
        ids = list(collection_ids)
        if not ids:
            return {}
        result = await session.execute(
            select(CollectionMember.collection_id, func.count(CollectionMember.id))
            .where(CollectionMember.collection_id.in_(ids))
            .group_by(CollectionMember.collection_id)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    @staticmethod
    def _to_state(collection: Collection, member_count: int) -> CollectionState:
        return CollectionState(
            id=collection.id,
            name=collection.name,
            provider_ids=dict(collection.provider_ids or {}),
            member_count=member_count,
        )
