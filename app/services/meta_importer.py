"""Media importer that registers titles from add-on meta lookups."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Literal
from urllib.parse import quote

import httpx

from ..cache import TTLCache
from ..models import MediaHandle
from ..utils import normalize_base_url
from .library import MediaLibrary

logger = logging.getLogger(__name__)


class MetaAddonImporter:
    """Imports a title by fetching its meta and inserting it into the library.

    Meta payloads are cached so repeated imports of the same id within the
    TTL do not hit the add-on again.
    """

    _META_PATH = "/meta/{type}/{id}.json"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        library: MediaLibrary,
        base_url: str | None,
        *,
        cache: TTLCache[dict[str, Any]] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = http_client
        self._library = library
        self._base_url = normalize_base_url(base_url)
        self._cache: TTLCache[dict[str, Any]] = cache or TTLCache(3_600)
        self._headers = dict(headers or {})
        self._lock = asyncio.Lock()

    async def import_by_external_id(
        self, external_id: str, media_kind: Literal["movie", "tv"]
    ) -> MediaHandle | None:
        stremio_type = "series" if media_kind == "tv" else "movie"
        meta = await self.fetch_meta(external_id, stremio_type)
        if meta is None:
            logger.warning("Meta not found for %s", external_id)
            return None

        # The library is a shared writer; serialise inserts.
        async with self._lock:
            existing = await self._library.find_by_external_id(external_id)
            if existing is not None:
                return existing
            return await self._library.add_item(
                name=str(meta.get("name") or external_id),
                media_kind=stremio_type,
                imdb_id=external_id,
                year=self._parse_year(meta.get("releaseInfo") or meta.get("year")),
            )

    async def fetch_meta(
        self, external_id: str, stremio_type: str
    ) -> dict[str, Any] | None:
        """Return the add-on meta payload for the title, using the cache."""

        if not self._base_url:
            return None
        cache_key = (stremio_type, external_id.lower())
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        url = self._base_url + self._META_PATH.format(
            type=stremio_type, id=quote(external_id, safe="")
        )
        try:
            response = await self._client.get(url, headers=self._headers)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Meta lookup failed for %s via %s: %s", external_id, url, exc)
            return None

        meta = payload.get("meta") if isinstance(payload, dict) else None
        if not isinstance(meta, dict) or not meta:
            return None
        self._cache.set(cache_key, meta)
        return meta

    @staticmethod
    def _parse_year(value: Any) -> int | None:
        if isinstance(value, int):
            return value
        if not value:
            return None
        match = re.search(r"(19|20|21)\d{2}", str(value))
        if not match:
            return None
        return int(match.group(0))
