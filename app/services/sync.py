"""On-demand and periodic catalog synchronisation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Sequence

from ..config import Settings
from ..errors import CollectionNotFound, ConfigurationMissing
from ..models import (
    CatalogItem,
    CatalogSource,
    CatalogSummary,
    CollectionState,
    ImportOutcome,
    ImportSummary,
    MembershipDiff,
    SyncRequest,
)
from ..utils import build_provider_tag, guess_media_kind, parse_provider_tag
from .catalog_client import CatalogClient
from .collections import CollectionStore
from .differ import diff_membership
from .importer import ImportOrchestrator, MediaImporter
from .library import MediaLibrary

logger = logging.getLogger(__name__)


@dataclass
class SyncJob:
    """Progress of one on-demand sync submitted through the API."""

    run_id: str
    catalog_id: str
    media_kind: str
    collection_name: str
    catalog_size: int = 0
    status: str = "queued"
    total: int = 0
    processed: int = 0
    success_count: int = 0
    failed_count: int = 0
    collection_id: str | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: datetime | None = None

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100 if self.status == "complete" else 0
        return min(100, (self.processed * 100) // self.total)

    @property
    def is_complete(self) -> bool:
        return self.status in {"complete", "cancelled", "error"}

    def record(self, outcome: ImportOutcome) -> None:
        self.processed += 1
        if outcome.status == "attached":
            self.success_count += 1
        elif outcome.status == "failed":
            self.failed_count += 1

    def to_payload(self) -> dict[str, Any]:
        return {
            "runId": self.run_id,
            "catalogId": self.catalog_id,
            "catalogName": self.collection_name,
            "mediaKind": self.media_kind,
            "status": self.status,
            "catalogSize": self.catalog_size,
            "total": self.total,
            "processed": self.processed,
            "percent": self.percent,
            "isComplete": self.is_complete,
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "collectionId": self.collection_id,
            "error": self.error,
        }


@dataclass
class SyncResult:
    """Outcome of syncing one collection against its catalog."""

    collection: CollectionState
    source: CatalogSource
    diff: MembershipDiff
    summary: ImportSummary


@dataclass
class SweepReport:
    """Aggregate counters of one periodic pass over tracked collections."""

    collections: int = 0
    synced: int = 0
    success_count: int = 0
    failed_count: int = 0
    failed_collections: list[str] = field(default_factory=list)
    cancelled: bool = False


class SyncService:
    """Fetches catalogs, diffs them against collections and imports the gap."""

    def __init__(
        self,
        settings: Settings,
        catalog_client: CatalogClient,
        collections: CollectionStore,
        library: MediaLibrary,
        importer: MediaImporter | None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings
        self._catalogs = catalog_client
        self._collections = collections
        self._library = library
        self._importer = importer
        self._sleep = sleep
        self._import_queue = asyncio.Lock()
        self._jobs: dict[str, SyncJob] = {}
        self._latest_job_by_catalog: dict[str, str] = {}
        self._job_tasks: dict[str, asyncio.Task[None]] = {}
        self._cleanup_handles: dict[str, asyncio.TimerHandle] = {}
        self._sweep_task: asyncio.Task[None] | None = None
        self._cancel_event = asyncio.Event()
        self._wake_event = asyncio.Event()

    async def start(self) -> None:
        """Launch the periodic sweep loop when enabled."""

        if not self._settings.sync_enabled:
            logger.info("Periodic catalog sync disabled")
            return
        self._cancel_event.clear()
        self._wake_event.clear()
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        """Stop the sweep loop and any on-demand jobs still running.

        Running work is signalled through the cancel event and finishes the
        item in flight. Tasks still running after the shutdown timeout are
        cancelled outright.
        """

        self._cancel_event.set()
        self._wake_event.set()
        for handle in self._cleanup_handles.values():
            handle.cancel()
        self._cleanup_handles.clear()

        tasks = [task for task in self._job_tasks.values() if not task.done()]
        if self._sweep_task is not None and not self._sweep_task.done():
            tasks.append(self._sweep_task)
        if tasks:
            _, pending = await asyncio.wait(
                tasks, timeout=self._settings.shutdown_timeout_seconds
            )
            for task in pending:
                logger.warning("Cancelling sync task that did not stop in time")
                task.cancel()
            for task in pending:
                with suppress(asyncio.CancelledError):
                    await task
        self._sweep_task = None
        self._job_tasks.clear()

    def trigger_sweep(self) -> bool:
        """Run the periodic sweep now instead of waiting for the interval."""

        if self._sweep_task is None or self._sweep_task.done():
            return False
        self._wake_event.set()
        return True

    def _source(self, catalog_id: str, media_kind: str) -> CatalogSource:
        source = self._catalogs.source(catalog_id, media_kind)
        if source is None:
            raise ConfigurationMissing(
                "Catalog add-on URL not configured. Set CATALOG_ADDON_URL."
            )
        return source

    async def list_catalogs(self) -> list[CatalogSummary]:
        """Return syncable catalogs annotated with their existing collections."""

        if not self._catalogs.default_base_url:
            raise ConfigurationMissing(
                "Catalog add-on URL not configured. Set CATALOG_ADDON_URL."
            )
        summaries = await self._catalogs.list_catalogs()
        tracked = {
            collection.provider_tag: collection
            for collection in await self._collections.list_tracked()
        }
        for summary in summaries:
            existing = tracked.get(build_provider_tag(summary.id, summary.type))
            if existing is None:
                continue
            summary.existing_collection_id = existing.id
            summary.collection_name = existing.name
            summary.existing_item_count = existing.member_count
            if existing.catalog_total is not None:
                summary.item_count = existing.catalog_total
        logger.info("Found %s catalogs", len(summaries))
        return summaries

    async def catalog_count(self, catalog_id: str, media_kind: str) -> int:
        return await self._catalogs.count_first_page(self._source(catalog_id, media_kind))

    async def start_sync(self, request: SyncRequest) -> dict[str, Any]:
        """Fetch the catalog now and import it in a background job.

        The response only acknowledges the submission; import results are
        observable through the job status or the collection itself.
        """

        source = self._source(request.catalog_id, request.media_kind)
        max_items = request.max_items or self._settings.catalog_max_items
        collection_name = request.collection_name or request.catalog_id
        items = await self._catalogs.fetch_catalog(source, max_items)
        if not items:
            logger.warning(
                "No items found in catalog %s with type %s (URL base: %s)",
                source.catalog_id,
                source.media_kind,
                source.base_url,
            )

        job = SyncJob(
            run_id=uuid.uuid4().hex,
            catalog_id=source.catalog_id,
            media_kind=source.media_kind,
            collection_name=collection_name,
            catalog_size=len(items),
            total=len(items),
        )
        self._jobs[job.run_id] = job
        self._latest_job_by_catalog[source.catalog_id] = job.run_id
        self._job_tasks[job.run_id] = asyncio.create_task(
            self._run_job(job, source, items)
        )
        logger.info(
            "Catalog '%s' queued for import (%s items, run %s)",
            collection_name,
            len(items),
            job.run_id,
        )
        return {
            "started": True,
            "runId": job.run_id,
            "catalogSizeAtRequestTime": len(items),
            "collectionName": collection_name,
            "message": (
                f"Collection '{collection_name}' is being populated with "
                f"{len(items)} items in background."
            ),
        }

    async def _run_job(
        self, job: SyncJob, source: CatalogSource, items: Sequence[CatalogItem]
    ) -> None:
        try:
            # One on-demand import at a time.
            async with self._import_queue:
                job.status = "running"
                logger.info("Starting import for catalog '%s'", job.collection_name)
                result = await self.sync_collection(
                    source,
                    items,
                    collection_name=job.collection_name,
                    item_delay=self._settings.interactive_item_delay,
                    cancel_event=self._cancel_event,
                    on_diff=lambda diff: setattr(job, "total", len(diff.missing_items)),
                    on_progress=job.record,
                )
                job.collection_id = result.collection.id
                job.status = "cancelled" if result.summary.cancelled else "complete"
        except Exception as exc:
            logger.exception("Background import for '%s' failed: %s", job.collection_name, exc)
            job.status = "error"
            job.error = str(exc)
        finally:
            job.finished_at = datetime.utcnow()
            self._job_tasks.pop(job.run_id, None)
            self._schedule_job_cleanup(job)

    def _schedule_job_cleanup(self, job: SyncJob) -> None:
        def _forget() -> None:
            self._cleanup_handles.pop(job.run_id, None)
            self._jobs.pop(job.run_id, None)
            if self._latest_job_by_catalog.get(job.catalog_id) == job.run_id:
                self._latest_job_by_catalog.pop(job.catalog_id, None)

        retention = self._settings.job_retention_seconds
        if retention <= 0 or self._cancel_event.is_set():
            _forget()
            return
        self._cleanup_handles[job.run_id] = asyncio.get_running_loop().call_later(
            retention, _forget
        )

    def get_job(self, run_id: str) -> SyncJob | None:
        return self._jobs.get(run_id)

    def get_catalog_progress(self, catalog_id: str) -> dict[str, Any]:
        run_id = self._latest_job_by_catalog.get(catalog_id)
        job = self._jobs.get(run_id) if run_id else None
        if job is None:
            return {
                "catalogId": catalog_id,
                "status": "idle",
                "total": 0,
                "processed": 0,
                "percent": 0,
                "isComplete": False,
            }
        return job.to_payload()

    async def wait_for_jobs(self) -> None:
        """Wait until every submitted on-demand job has finished."""

        tasks = list(self._job_tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def preview(self, request: SyncRequest) -> dict[str, Any]:
        """Report how the collection differs from its catalog without changes."""

        source = self._source(request.catalog_id, request.media_kind)
        collection = await self._collections.find_by_provider_tag(source.provider_tag)
        if collection is None:
            collection = await self._collections.find_by_provider_tag(
                source.legacy_provider_tag
            )
        if collection is None:
            raise CollectionNotFound("Collection not found. Please create it first.")
        max_items = request.max_items or self._settings.catalog_max_items
        items = await self._catalogs.fetch_catalog(source, max_items)
        member_ids = await self._collections.get_member_external_ids(collection.id)
        diff = diff_membership(items, member_ids)
        return diff.to_preview(collection.name)

    async def sync_collection(
        self,
        source: CatalogSource,
        items: Sequence[CatalogItem],
        *,
        collection_name: str | None = None,
        collection: CollectionState | None = None,
        item_delay: float = 0.0,
        cancel_event: asyncio.Event | None = None,
        on_diff: Callable[[MembershipDiff], None] | None = None,
        on_progress: Callable[[ImportOutcome], None] | None = None,
    ) -> SyncResult:
        """Bring one collection up to date with already fetched catalog items."""

        if collection is None:
            collection = await self._collections.ensure_collection(
                collection_name or source.catalog_id,
                source.provider_tag,
                legacy_tag=source.legacy_provider_tag,
            )
        await self._collections.set_catalog_total(collection.id, len(items))

        member_ids = await self._collections.get_member_external_ids(collection.id)
        diff = diff_membership(items, member_ids)
        if on_diff is not None:
            on_diff(diff)
        logger.info(
            "Collection '%s' has %s items, catalog has %s, %s missing.",
            collection.name,
            len(member_ids),
            diff.total_catalog_items,
            len(diff.missing_ids),
        )

        if not diff.missing_items:
            logger.info("Collection '%s' is already up to date.", collection.name)
            return SyncResult(collection, source, diff, ImportSummary())

        orchestrator = ImportOrchestrator(
            self._library,
            self._collections,
            self._importer,
            item_delay=item_delay,
            sleep=self._sleep,
        )
        summary = await orchestrator.import_missing(
            collection,
            diff.missing_items,
            source.media_kind,
            known_ids=member_ids,
            cancel_event=cancel_event,
            on_progress=on_progress,
        )
        return SyncResult(collection, source, diff, summary)

    async def _sweep_loop(self) -> None:
        while not self._cancel_event.is_set():
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._wake_event.wait(), self._settings.sync_interval_seconds
                )
            self._wake_event.clear()
            if self._cancel_event.is_set():
                break
            try:
                await self.run_sweep(self._cancel_event)
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Scheduled catalog sync failed: %s", exc)

    async def run_sweep(self, cancel_event: asyncio.Event | None = None) -> SweepReport:
        """Sync every tracked collection, one after another."""

        report = SweepReport()
        base_url = self._catalogs.default_base_url
        if not base_url:
            logger.warning("Cannot sync - catalog add-on URL not configured.")
            return report

        collections = await self._collections.list_tracked()
        report.collections = len(collections)
        if not collections:
            logger.info("No catalog collections found to sync.")
            return report
        logger.info("Found %s catalog collections to sync.", len(collections))

        for collection in collections:
            if cancel_event is not None and cancel_event.is_set():
                report.cancelled = True
                break
            try:
                result = await self._sync_tracked(collection, base_url, cancel_event)
            except Exception as exc:
                logger.exception(
                    "Failed to sync collection '%s': %s", collection.name, exc
                )
                report.failed_collections.append(collection.name)
                continue
            if result is None:
                continue
            report.synced += 1
            report.success_count += result.summary.success_count
            report.failed_count += result.summary.failed_count
            if result.summary.cancelled:
                report.cancelled = True
                break

        logger.info(
            "Catalog sync completed. Synced: %s/%s, Success: %s, Failed: %s",
            report.synced,
            report.collections,
            report.success_count,
            report.failed_count,
        )
        return report

    async def _sync_tracked(
        self,
        collection: CollectionState,
        base_url: str,
        cancel_event: asyncio.Event | None,
    ) -> SyncResult | None:
        catalog_id, tagged_kind = parse_provider_tag(collection.provider_tag or "")
        if tagged_kind is not None:
            kinds = [tagged_kind]
        else:
            first = guess_media_kind(catalog_id)
            kinds = [first, "series" if first == "movie" else "movie"]
        logger.info(
            "Syncing collection '%s' (CatalogId: %s, SpecificType: %s)",
            collection.name,
            catalog_id,
            tagged_kind,
        )

        for kind in kinds:
            source = CatalogSource(base_url=base_url, catalog_id=catalog_id, media_kind=kind)
            items = await self._catalogs.fetch_catalog(
                source, self._settings.catalog_max_items
            )
            if not items:
                continue
            logger.info(
                "Found %s items with type '%s' for catalog %s", len(items), kind, catalog_id
            )
            return await self.sync_collection(
                source,
                items,
                collection=collection,
                item_delay=self._settings.sweep_item_delay,
                cancel_event=cancel_event,
            )

        logger.warning("No items found in catalog %s with either type", catalog_id)
        return None
