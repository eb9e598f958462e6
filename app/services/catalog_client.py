"""Client for paginated Stremio-style catalog add-ons."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import FetchError
from ..models import CatalogItem, CatalogSource, CatalogSummary
from ..utils import (
    construct_source_url,
    extract_addon_name,
    normalize_base_url,
    normalize_media_kind,
)

logger = logging.getLogger(__name__)


class CatalogClient:
    """Wrapper around the catalog and manifest endpoints of an add-on."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        default_base_url: str | None = None,
        *,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = http_client
        self._default_base_url = normalize_base_url(default_base_url)
        self._headers = dict(headers or {})

    @property
    def default_base_url(self) -> str | None:
        """Return the configured add-on base URL, if any."""

        return self._default_base_url

    def source(
        self, catalog_id: str, media_kind: str, *, base_url: str | None = None
    ) -> CatalogSource | None:
        """Build a catalog source against the given or default add-on."""

        effective_base = normalize_base_url(base_url) or self._default_base_url
        if not effective_base:
            return None
        return CatalogSource(
            base_url=effective_base,
            catalog_id=catalog_id,
            media_kind=normalize_media_kind(media_kind),
        )

    async def fetch_catalog(
        self, source: CatalogSource, max_items: int
    ) -> list[CatalogItem]:
        """Collect catalog items page by page until exhausted or ``max_items``.

        The ``skip`` cursor is the number of items received so far, so add-ons
        that return short or irregular pages are still walked correctly. A
        failed page ends pagination and the items gathered so far are returned.
        """

        items: list[CatalogItem] = []
        if max_items <= 0:
            return items

        skip = 0
        while len(items) < max_items:
            try:
                metas = await self._fetch_page(source, skip)
            except FetchError as exc:
                logger.warning(
                    "Catalog %s (%s) stopped at skip=%s: %s",
                    source.catalog_id,
                    source.media_kind,
                    skip,
                    exc.reason,
                )
                break
            if not metas:
                break
            items.extend(CatalogItem.from_meta(meta) for meta in metas)
            skip += len(metas)

        if len(items) > max_items:
            items = items[:max_items]
        logger.info(
            "Fetched %s items from catalog %s (%s)",
            len(items),
            source.catalog_id,
            source.media_kind,
        )
        return items

    async def count_first_page(self, source: CatalogSource) -> int:
        """Return the size of the first catalog page, or -1 on HTTP failure."""

        try:
            response = await self._client.get(
                source.page_url(0), headers=self._headers
            )
        except httpx.HTTPError as exc:
            logger.warning(
                "Catalog count failed for %s: %s", source.catalog_id, exc
            )
            return -1
        if response.is_error:
            return -1
        return len(self._extract_metas(response))

    async def list_catalogs(
        self, *, base_url: str | None = None
    ) -> list[CatalogSummary]:
        """Return the non search-only catalogs advertised by the manifest."""

        effective_base = normalize_base_url(base_url) or self._default_base_url
        if not effective_base:
            return []

        response = await self._client.get(
            f"{effective_base}/manifest.json", headers=self._headers
        )
        response.raise_for_status()
        manifest = response.json()
        if not isinstance(manifest, dict):
            return []

        manifest_name = manifest.get("name")
        catalogs = manifest.get("catalogs") or []
        summaries: list[CatalogSummary] = []
        for entry in catalogs:
            if not isinstance(entry, dict) or not entry.get("id"):
                continue
            if self._is_search_only(entry):
                continue
            catalog_id = str(entry["id"])
            summaries.append(
                CatalogSummary(
                    id=catalog_id,
                    name=str(entry.get("name") or catalog_id),
                    type=str(entry.get("type") or "movie"),
                    addon_name=extract_addon_name(
                        catalog_id,
                        str(manifest_name) if manifest_name else None,
                    ),
                    is_search_capable=self._search_extra(entry) is not None,
                    source_url=construct_source_url(catalog_id),
                )
            )
        return summaries

    async def _fetch_page(
        self, source: CatalogSource, skip: int
    ) -> list[dict[str, Any]]:
        url = source.page_url(skip)
        logger.debug("Fetching catalog URL: %s", url)
        try:
            response = await self._client.get(url, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise FetchError(url, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(url, str(exc) or type(exc).__name__) from exc
        return self._extract_metas(response)

    @staticmethod
    def _extract_metas(response: httpx.Response) -> list[dict[str, Any]]:
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON catalog response from %s", response.url)
            return []
        if not isinstance(payload, dict):
            return []
        metas = payload.get("metas") or []
        if not isinstance(metas, list):
            return []
        return [meta for meta in metas if isinstance(meta, dict)]

    @staticmethod
    def _search_extra(entry: dict[str, Any]) -> dict[str, Any] | None:
        for extra in entry.get("extra") or []:
            if isinstance(extra, dict) and str(extra.get("name", "")).lower() == "search":
                return extra
        return None

    @classmethod
    def _is_search_only(cls, entry: dict[str, Any]) -> bool:
        extra = cls._search_extra(entry)
        return bool(extra and extra.get("isRequired"))
