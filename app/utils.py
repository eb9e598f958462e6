"""Utility helpers for the catalog sync service."""

from __future__ import annotations

import re
from typing import Any, Literal

MediaKind = Literal["movie", "series"]

IMDB_ID_RE = re.compile(r"^tt\d+$", re.IGNORECASE)
PROVIDER_KEY = "Stremio"
PROVIDER_TAG_PREFIX = "Stremio."
CATALOG_TOTAL_KEY = "Stremio.CatalogTotal"

_SERIES_ALIASES = {"series", "tvshows", "tv", "show", "shows"}
_SOURCE_URLS = {
    "tmdb": "https://www.themoviedb.org/",
    "tvdb": "https://thetvdb.com/",
    "imdb": "https://www.imdb.com/",
    "mediafusion": "https://mediafusion.com/",
}


def normalize_base_url(value: str | None) -> str | None:
    """Return the addon base URL for a manifest or base URL."""

    if not value:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    normalized = normalized.split("?", 1)[0].rstrip("/")
    lowered = normalized.lower()
    for suffix in ("/manifest.json", "/manifest"):
        if lowered.endswith(suffix):
            normalized = normalized[: -len(suffix)].rstrip("/")
            break
    return normalized or None


def normalize_media_kind(value: str | None) -> MediaKind:
    """Map loose type names onto the two catalog media kinds."""

    if value and value.strip().lower() in _SERIES_ALIASES:
        return "series"
    return "movie"


def importer_media_kind(kind: str) -> Literal["movie", "tv"]:
    """Return the media kind vocabulary understood by importers."""

    return "tv" if normalize_media_kind(kind) == "series" else "movie"


def extract_imdb_id(meta: dict[str, Any]) -> str | None:
    """Return the IMDB identifier advertised by a catalog meta entry.

    A dedicated ``imdb_id`` field wins over the raw ``id``. Raw ids such as
    ``tt0111161:1:2`` are trimmed to their leading IMDB portion and only
    accepted when they look like ``tt`` followed by digits.
    """

    for key in ("imdb_id", "imdbId"):
        candidate = meta.get(key)
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()

    raw_id = meta.get("id")
    if not isinstance(raw_id, str):
        return None
    head = raw_id.strip().split(":", 1)[0]
    if IMDB_ID_RE.match(head):
        return head
    return None


def parse_auth_header(header: str | None) -> dict[str, str]:
    """Turn ``Name: value`` or a bare token into request headers."""

    if not header:
        return {}
    name, separator, value = header.partition(":")
    if separator and name.strip():
        return {name.strip(): value.strip()}
    return {"Authorization": header.strip()}


def build_provider_tag(catalog_id: str, media_kind: str | None = None) -> str:
    """Return the provider tag identifying the collection of a catalog."""

    if media_kind:
        return f"{PROVIDER_TAG_PREFIX}{catalog_id}.{normalize_media_kind(media_kind)}"
    return f"{PROVIDER_TAG_PREFIX}{catalog_id}"


def parse_provider_tag(tag: str) -> tuple[str, MediaKind | None]:
    """Split a provider tag into the catalog id and optional media kind."""

    id_part = tag[len(PROVIDER_TAG_PREFIX):] if tag.startswith(PROVIDER_TAG_PREFIX) else tag
    head, dot, tail = id_part.rpartition(".")
    if dot and head and tail in {"movie", "series"}:
        return head, tail  # type: ignore[return-value]
    return id_part, None


def guess_media_kind(catalog_id: str) -> MediaKind:
    return "series" if "series" in catalog_id.lower() else "movie"


def construct_source_url(catalog_id: str | None) -> str | None:
    """Guess a human-facing URL for catalogs such as ``abc.mdblist.123``."""

    if not catalog_id:
        return None
    parts = catalog_id.split(".")
    if len(parts) < 2:
        return None
    source = parts[1].lower()
    list_id = parts[2] if len(parts) >= 3 else None
    if source == "mdblist" and list_id:
        return f"https://mdblist.com/lists/{list_id}"
    if source == "trakt" and list_id:
        return f"https://trakt.tv/lists/{list_id}"
    return _SOURCE_URLS.get(source)


def extract_addon_name(catalog_id: str, manifest_name: str | None) -> str:
    if manifest_name:
        return manifest_name
    lowered = catalog_id.lower()
    if "tmdb" in lowered:
        return "The Movie Database"
    if "mediafusion" in lowered:
        return "MediaFusion"
    if "comet" in lowered:
        return "Comet"
    return "Unknown"
