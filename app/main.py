"""Entry point for the FastAPI-powered catalog sync service."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .cache import TTLCache
from .config import settings
from .database import Database
from .errors import CollectionNotFound, ConfigurationMissing
from .models import SyncRequest
from .services.catalog_client import CatalogClient
from .services.collections import CollectionStore
from .services.library import MediaLibrary
from .services.meta_importer import MetaAddonImporter
from .services.sync import SyncService
from .utils import parse_auth_header

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    addon_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            timeout=httpx.Timeout(settings.catalog_timeout_seconds, connect=10.0),
            follow_redirects=True,
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    headers = parse_auth_header(settings.catalog_auth_header)
    library = MediaLibrary(database.session_factory)
    collections = CollectionStore(database.session_factory)
    importer = MetaAddonImporter(
        addon_client,
        library,
        settings.catalog_addon_url,
        cache=TTLCache(settings.meta_cache_seconds),
        headers=headers,
    )
    catalog_client = CatalogClient(
        addon_client, settings.catalog_addon_url, headers=headers
    )
    sync_service = SyncService(
        settings, catalog_client, collections, library, importer
    )

    app.state.sync_service = sync_service
    app.state.database = database
    if not settings.catalog_addon_url:
        logger.warning("CATALOG_ADDON_URL is not set; syncs will be rejected")
    await sync_service.start()

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await sync_service.stop()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Keeps collections in step with Stremio add-on catalogs",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_sync_service(app: FastAPI) -> SyncService:
    service = getattr(app.state, "sync_service", None)
    if service is None:
        raise RuntimeError("Sync service not initialised")
    return service


async def _parse_sync_request(request: Request) -> SyncRequest:
    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be an object")
    try:
        return SyncRequest.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400, detail=exc.errors(include_url=False, include_context=False)
        ) from exc


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/catalogs")
    async def list_catalogs() -> list[dict[str, Any]]:
        service = get_sync_service(fastapi_app)
        try:
            catalogs = await service.list_catalogs()
        except ConfigurationMissing as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except httpx.HTTPError as exc:
            logger.warning("Failed to fetch catalogs: %s", exc)
            raise HTTPException(
                status_code=502, detail=f"Failed to fetch catalogs: {exc}"
            ) from exc
        return [catalog.to_payload() for catalog in catalogs]

    @fastapi_app.get("/api/catalogs/{content_type}/{catalog_id}/count")
    async def catalog_count(content_type: str, catalog_id: str) -> dict[str, Any]:
        if content_type not in {"movie", "series"}:
            raise HTTPException(status_code=400, detail="Unsupported content type")
        service = get_sync_service(fastapi_app)
        try:
            count = await service.catalog_count(catalog_id, content_type)
        except ConfigurationMissing as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"catalogId": catalog_id, "type": content_type, "count": count}

    @fastapi_app.get("/api/catalogs/{catalog_id}/progress")
    async def catalog_progress(catalog_id: str) -> dict[str, Any]:
        service = get_sync_service(fastapi_app)
        return service.get_catalog_progress(catalog_id)

    @fastapi_app.post("/api/sync")
    async def start_sync(request: Request) -> dict[str, Any]:
        sync_request = await _parse_sync_request(request)
        service = get_sync_service(fastapi_app)
        try:
            return await service.start_sync(sync_request)
        except ConfigurationMissing as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    @fastapi_app.post("/api/sync/preview")
    async def preview_sync(request: Request) -> dict[str, Any]:
        sync_request = await _parse_sync_request(request)
        service = get_sync_service(fastapi_app)
        try:
            return await service.preview(sync_request)
        except ConfigurationMissing as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except CollectionNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @fastapi_app.post("/api/sweep")
    async def trigger_sweep() -> dict[str, Any]:
        service = get_sync_service(fastapi_app)
        if not service.trigger_sweep():
            raise HTTPException(status_code=409, detail="Periodic sync is not running")
        return {"started": True}

    @fastapi_app.get("/api/jobs/{run_id}")
    async def job_status(run_id: str) -> dict[str, Any]:
        service = get_sync_service(fastapi_app)
        job = service.get_job(run_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Unknown run id")
        return job.to_payload()


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
