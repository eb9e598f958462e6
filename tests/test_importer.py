"""Tests for the import-and-attach orchestrator."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from app.models import CatalogItem, CollectionState, MediaHandle
from app.services.importer import ImportOrchestrator


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class FakeLibrary:
    def __init__(self, items: dict[str, MediaHandle] | None = None) -> None:
        self.items = dict(items or {})
        self.lookups: list[tuple[str, str | None]] = []

    async def find_by_external_id(
        self, external_id: str, media_kind: str | None = None
    ) -> MediaHandle | None:
        self.lookups.append((external_id, media_kind))
        handle = self.items.get(external_id.lower())
        if handle is None:
            return None
        if media_kind is not None and handle.kind != media_kind:
            return None
        return handle


class FakeCollections:
    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.members: list[str] = []

    async def add_members(self, collection_id: str, media_item_ids: list[str]) -> list[str]:
        for media_item_id in media_item_ids:
            if media_item_id in self.fail_for:
                raise RuntimeError("store rejected member")
        self.members.extend(media_item_ids)
        return list(media_item_ids)


class FakeImporter:
    """Registers the title in the fake library unless told to fail."""

    def __init__(
        self,
        library: FakeLibrary,
        *,
        returns_none: set[str] | None = None,
        raises: set[str] | None = None,
        skip_register: set[str] | None = None,
    ) -> None:
        self.library = library
        self.returns_none = returns_none or set()
        self.raises = raises or set()
        self.skip_register = skip_register or set()
        self.calls: list[tuple[str, str]] = []

    async def import_by_external_id(self, external_id: str, media_kind: str) -> Any:
        self.calls.append((external_id, media_kind))
        if external_id in self.raises:
            raise RuntimeError("import exploded")
        if external_id in self.returns_none:
            return None
        kind = "series" if media_kind == "tv" else "movie"
        handle = MediaHandle(id=f"item-{external_id}", name=external_id, kind=kind, imdb_id=external_id)
        if external_id not in self.skip_register:
            self.library.items[external_id.lower()] = handle
        return handle


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


COLLECTION = CollectionState(id="c1", name="Top Movies")


def _items(*ids: str | None) -> list[CatalogItem]:
    return [CatalogItem(raw_id=value or "x", external_id=value) for value in ids]


@pytest.mark.anyio("asyncio")
async def test_partial_failure_does_not_abort_run() -> None:
    """An attach failure on one item is recorded and the rest continue."""

    library = FakeLibrary()
    collections = FakeCollections(fail_for={"item-tt3"})
    importer = FakeImporter(library)
    sleep = RecordingSleep()
    orchestrator = ImportOrchestrator(library, collections, importer, item_delay=0.5, sleep=sleep)

    summary = await orchestrator.import_missing(
        COLLECTION, _items("tt1", "tt2", "tt3", "tt4", "tt5"), "movie"
    )

    assert summary.success_count == 4
    assert summary.failed_count == 1
    assert summary.outcomes[2].reason == "attach-error"
    assert collections.members == ["item-tt1", "item-tt2", "item-tt4", "item-tt5"]
    assert sleep.delays == [0.5] * 5


@pytest.mark.anyio("asyncio")
async def test_existing_library_item_is_reused_without_import() -> None:
    existing = MediaHandle(id="lib-1", name="Known", kind="movie", imdb_id="tt1")
    library = FakeLibrary({"tt1": existing})
    collections = FakeCollections()
    importer = FakeImporter(library)
    orchestrator = ImportOrchestrator(library, collections, importer, item_delay=0)

    summary = await orchestrator.import_missing(COLLECTION, _items("TT1"), "movie")

    assert importer.calls == []
    assert collections.members == ["lib-1"]
    assert summary.outcomes[0].member_id == "lib-1"


@pytest.mark.anyio("asyncio")
async def test_series_are_imported_as_tv() -> None:
    library = FakeLibrary()
    importer = FakeImporter(library)
    orchestrator = ImportOrchestrator(library, FakeCollections(), importer, item_delay=0)

    await orchestrator.import_missing(COLLECTION, _items("tt9"), "tvshows")

    assert importer.calls == [("tt9", "tv")]
    assert library.lookups[0] == ("tt9", "series")


@pytest.mark.anyio("asyncio")
async def test_import_failures_are_counted() -> None:
    library = FakeLibrary()
    collections = FakeCollections()
    importer = FakeImporter(
        library, returns_none={"tt1"}, raises={"tt2"}, skip_register={"tt3"}
    )
    orchestrator = ImportOrchestrator(library, collections, importer, item_delay=0)

    summary = await orchestrator.import_missing(
        COLLECTION, _items("tt1", "tt2", "tt3", "tt4"), "movie"
    )

    assert [outcome.reason for outcome in summary.outcomes[:3]] == [
        "import-error",
        "import-error",
        "post-import-lookup-miss",
    ]
    assert summary.failed_count == 3
    assert summary.success_count == 1
    assert collections.members == ["item-tt4"]


@pytest.mark.anyio("asyncio")
async def test_missing_importer_fails_unknown_items() -> None:
    library = FakeLibrary()
    orchestrator = ImportOrchestrator(library, FakeCollections(), None, item_delay=0)

    summary = await orchestrator.import_missing(COLLECTION, _items("tt1"), "movie")

    assert summary.failed_count == 1


@pytest.mark.anyio("asyncio")
async def test_unidentified_and_duplicate_items_are_skipped_without_cooldown() -> None:
    library = FakeLibrary()
    collections = FakeCollections()
    importer = FakeImporter(library)
    sleep = RecordingSleep()
    orchestrator = ImportOrchestrator(library, collections, importer, item_delay=2.0, sleep=sleep)

    summary = await orchestrator.import_missing(
        COLLECTION,
        _items(None, "tt1", "tt1", "tt2"),
        "movie",
        known_ids={"TT2"},
    )

    assert [outcome.status for outcome in summary.outcomes] == [
        "skipped",
        "attached",
        "skipped",
        "skipped",
    ]
    assert importer.calls == [("tt1", "movie")]
    assert sleep.delays == [2.0]


@pytest.mark.anyio("asyncio")
async def test_cancellation_stops_between_items() -> None:
    library = FakeLibrary()
    collections = FakeCollections()
    importer = FakeImporter(library)
    cancel = asyncio.Event()
    progress: list[str | None] = []

    def on_progress(outcome) -> None:
        progress.append(outcome.external_id)
        if len(progress) == 2:
            cancel.set()

    orchestrator = ImportOrchestrator(library, collections, importer, item_delay=0)
    summary = await orchestrator.import_missing(
        COLLECTION,
        _items("tt1", "tt2", "tt3"),
        "movie",
        cancel_event=cancel,
        on_progress=on_progress,
    )

    assert summary.cancelled is True
    assert progress == ["tt1", "tt2"]
    assert collections.members == ["item-tt1", "item-tt2"]
