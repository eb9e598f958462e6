from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.errors import CollectionNotFound, ConfigurationMissing
from app.main import register_routes
from app.models import CatalogSummary, SyncRequest
from app.services.sync import SyncJob, SyncService


class DummySyncService(SyncService):
    """Minimal SyncService stub for route testing."""

    def __init__(self, *, configured: bool = True) -> None:  # pragma: no cover - nothing to initialise
        # Deliberately skip super().__init__ to avoid touching external systems.
        self.configured = configured
        self.requests: list[SyncRequest] = []
        self.jobs = {
            "run-1": SyncJob(
                run_id="run-1",
                catalog_id="top",
                media_kind="movie",
                collection_name="Top",
                total=4,
                processed=1,
            )
        }

    def _check(self) -> None:
        if not self.configured:
            raise ConfigurationMissing("Catalog add-on URL not configured.")

    async def list_catalogs(self) -> list[CatalogSummary]:  # type: ignore[override]
        self._check()
        return [CatalogSummary(id="top", name="Top", type="movie", addon_name="Lists")]

    async def catalog_count(self, catalog_id: str, media_kind: str) -> int:  # type: ignore[override]
        self._check()
        return 37

    async def start_sync(self, request: SyncRequest) -> dict[str, Any]:  # type: ignore[override]
        self._check()
        self.requests.append(request)
        return {"started": True, "runId": "run-2", "catalogSizeAtRequestTime": 12}

    async def preview(self, request: SyncRequest) -> dict[str, Any]:  # type: ignore[override]
        self._check()
        if request.catalog_id == "unknown":
            raise CollectionNotFound("Collection not found. Please create it first.")
        return {"totalCatalogItems": 3, "existingItems": 1, "newItems": 2, "removedItems": 0}

    def trigger_sweep(self) -> bool:  # type: ignore[override]
        return self.configured

    def get_job(self, run_id: str) -> SyncJob | None:  # type: ignore[override]
        return self.jobs.get(run_id)

    def get_catalog_progress(self, catalog_id: str) -> dict[str, Any]:  # type: ignore[override]
        job = self.jobs.get("run-1")
        if job is None or job.catalog_id != catalog_id:
            return {"catalogId": catalog_id, "status": "idle"}
        return job.to_payload()


def _client(service: DummySyncService) -> TestClient:
    app = FastAPI()
    register_routes(app)
    app.state.sync_service = service
    return TestClient(app)


def test_start_sync_accepts_camel_case_body() -> None:
    service = DummySyncService()

    with _client(service) as client:
        response = client.post(
            "/api/sync",
            json={"catalogId": "top", "mediaKind": "tvshows", "maxItems": 50},
        )

    assert response.status_code == 200
    assert response.json() == {
        "started": True,
        "runId": "run-2",
        "catalogSizeAtRequestTime": 12,
    }
    assert service.requests[0].media_kind == "series"
    assert service.requests[0].max_items == 50


def test_start_sync_rejects_invalid_body() -> None:
    with _client(DummySyncService()) as client:
        missing_id = client.post("/api/sync", json={"mediaKind": "movie"})
        too_many = client.post("/api/sync", json={"catalogId": "top", "maxItems": 0})
        not_json = client.post("/api/sync", content=b"nope")

    assert missing_id.status_code == 400
    assert too_many.status_code == 400
    assert not_json.status_code == 400


def test_unconfigured_addon_maps_to_bad_request() -> None:
    with _client(DummySyncService(configured=False)) as client:
        sync = client.post("/api/sync", json={"catalogId": "top"})
        catalogs = client.get("/api/catalogs")

    assert sync.status_code == 400
    assert "not configured" in sync.json()["detail"]
    assert catalogs.status_code == 400


def test_preview_returns_counts_or_not_found() -> None:
    with _client(DummySyncService()) as client:
        found = client.post("/api/sync/preview", json={"catalogId": "top"})
        missing = client.post("/api/sync/preview", json={"catalogId": "unknown"})

    assert found.status_code == 200
    assert found.json()["newItems"] == 2
    assert missing.status_code == 404


def test_catalog_listing_and_count() -> None:
    with _client(DummySyncService()) as client:
        catalogs = client.get("/api/catalogs")
        count = client.get("/api/catalogs/movie/top/count")
        bad_type = client.get("/api/catalogs/anime/top/count")

    assert catalogs.json()[0]["id"] == "top"
    assert catalogs.json()[0]["itemCount"] == -1
    assert count.json() == {"catalogId": "top", "type": "movie", "count": 37}
    assert bad_type.status_code == 400


def test_job_and_progress_endpoints() -> None:
    with _client(DummySyncService()) as client:
        job = client.get("/api/jobs/run-1")
        unknown = client.get("/api/jobs/nope")
        progress = client.get("/api/catalogs/top/progress")
        idle = client.get("/api/catalogs/other/progress")

    assert job.status_code == 200
    assert job.json()["percent"] == 25
    assert job.json()["status"] == "queued"
    assert unknown.status_code == 404
    assert progress.json()["processed"] == 1
    assert idle.json()["status"] == "idle"


def test_manual_sweep_requires_running_loop() -> None:
    with _client(DummySyncService()) as client:
        started = client.post("/api/sweep")
    with _client(DummySyncService(configured=False)) as client:
        idle = client.post("/api/sweep")

    assert started.json() == {"started": True}
    assert idle.status_code == 409
