"""Import-or-reuse-and-attach workflow for missing catalog items."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, Literal, Protocol, Sequence

from ..models import (
    CatalogItem,
    CollectionState,
    ImportOutcome,
    ImportSummary,
    MediaHandle,
)
from ..utils import importer_media_kind, normalize_media_kind

logger = logging.getLogger(__name__)


class MediaImporter(Protocol):
    """Capability that brings a title into the local media store."""

    async def import_by_external_id(
        self, external_id: str, media_kind: Literal["movie", "tv"]
    ) -> Any:
        """Return a handle for the imported item, or ``None`` on failure."""


class MediaStore(Protocol):
    async def find_by_external_id(
        self, external_id: str, media_kind: str | None = None
    ) -> MediaHandle | None: ...


class MemberStore(Protocol):
    async def add_members(
        self, collection_id: str, media_item_ids: Sequence[str]
    ) -> list[str]: ...


class ImportOrchestrator:
    """Processes missing items one at a time with a cooldown between them.

    The importer writes files that the media store only observes after a
    short settle period, so items are never processed concurrently and each
    attempted item is followed by ``item_delay`` seconds of idle time.
    """

    def __init__(
        self,
        library: MediaStore,
        collections: MemberStore,
        importer: MediaImporter | None,
        *,
        item_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._library = library
        self._collections = collections
        self._importer = importer
        self._item_delay = item_delay
        self._sleep = sleep

    async def import_missing(
        self,
        collection: CollectionState,
        items: Sequence[CatalogItem],
        media_kind: str,
        *,
        known_ids: Iterable[str] = (),
        cancel_event: asyncio.Event | None = None,
        on_progress: Callable[[ImportOutcome], None] | None = None,
    ) -> ImportSummary:
        """Import and attach ``items`` to ``collection`` in catalog order."""

        kind = normalize_media_kind(media_kind)
        known = {value.lower() for value in known_ids if value}
        summary = ImportSummary()

        for item in items:
            if cancel_event is not None and cancel_event.is_set():
                logger.info(
                    "Import into '%s' cancelled after %s items",
                    collection.name,
                    len(summary.outcomes),
                )
                summary.cancelled = True
                break

            try:
                outcome = await self._process_item(collection, item, kind, known)
            except Exception as exc:
                logger.exception(
                    "Failed to process item %s: %s", item.external_id or item.raw_id, exc
                )
                outcome = ImportOutcome.failed(item.external_id, "unexpected-error")

            summary.outcomes.append(outcome)
            if on_progress is not None:
                on_progress(outcome)

            if outcome.status != "skipped" and self._item_delay > 0:
                await self._sleep(self._item_delay)

        logger.info(
            "Import complete for '%s'. Success: %s, Failed: %s, Skipped: %s",
            collection.name,
            summary.success_count,
            summary.failed_count,
            summary.skipped_count,
        )
        return summary

    async def _process_item(
        self,
        collection: CollectionState,
        item: CatalogItem,
        kind: str,
        known: set[str],
    ) -> ImportOutcome:
        external_id = (item.external_id or "").strip()
        if not external_id:
            logger.debug(
                "Item '%s' (id=%s) has no IMDB id, skipping", item.name, item.raw_id
            )
            return ImportOutcome.skipped(None, "no-id")

        key = external_id.lower()
        if key in known:
            return ImportOutcome.skipped(external_id, "duplicate")

        handle = await self._library.find_by_external_id(external_id, kind)
        if handle is None:
            if not await self._run_importer(external_id, item, kind):
                return ImportOutcome.failed(external_id, "import-error")
            handle = await self._library.find_by_external_id(external_id)
            if handle is None:
                logger.warning(
                    "Could not find item by IMDB %s even after import", external_id
                )
                return ImportOutcome.failed(external_id, "post-import-lookup-miss")

        try:
            await self._collections.add_members(collection.id, [handle.id])
        except Exception as exc:
            logger.warning(
                "Failed to add %s to collection '%s': %s",
                external_id,
                collection.name,
                exc,
            )
            return ImportOutcome.failed(external_id, "attach-error")

        known.add(key)
        logger.info("Added '%s' to collection '%s'", handle.name, collection.name)
        return ImportOutcome.attached(external_id, handle.id)

    async def _run_importer(
        self, external_id: str, item: CatalogItem, kind: str
    ) -> bool:
        if self._importer is None:
            logger.warning("No media importer configured; cannot import %s", external_id)
            return False

        logger.debug("Item '%s' (%s) not in library, importing", item.name, external_id)
        try:
            imported = await self._importer.import_by_external_id(
                external_id, importer_media_kind(kind)
            )
        except Exception as exc:
            logger.warning("Import failed for %s: %s", external_id, exc)
            return False
        if not imported:
            logger.warning("Import failed for %s", external_id)
            return False
        return True
