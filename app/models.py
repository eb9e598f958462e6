"""Models describing catalogs, collections and sync results."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .utils import (
    CATALOG_TOTAL_KEY,
    PROVIDER_KEY,
    MediaKind,
    build_provider_tag,
    extract_imdb_id,
    normalize_media_kind,
)


class CatalogItem(BaseModel):
    """A single meta entry returned by a catalog page."""

    model_config = ConfigDict(populate_by_name=True)

    raw_id: str = Field(default="", validation_alias=AliasChoices("id", "raw_id"))
    name: str | None = None
    type: str | None = None
    external_id: str | None = None

    @classmethod
    def from_meta(cls, meta: dict[str, Any]) -> "CatalogItem":
        raw_id = meta.get("id")
        name = meta.get("name")
        kind = meta.get("type")
        return cls(
            raw_id=str(raw_id) if raw_id is not None else "",
            name=str(name) if name is not None else None,
            type=str(kind) if kind is not None else None,
            external_id=extract_imdb_id(meta),
        )

    def display_name(self) -> str:
        return (self.name or "").strip() or self.external_id or self.raw_id or "Untitled"


@dataclass(frozen=True, slots=True)
class CatalogSource:
    """Location of one catalog on an addon."""

    base_url: str
    catalog_id: str
    media_kind: MediaKind

    @property
    def provider_tag(self) -> str:
        return build_provider_tag(self.catalog_id, self.media_kind)

    @property
    def legacy_provider_tag(self) -> str:
        """Tag written before collections recorded their media kind."""

        return build_provider_tag(self.catalog_id)

    def page_url(self, skip: int = 0) -> str:
        """Return the URL of the catalog page starting after ``skip`` items."""

        encoded = quote(self.catalog_id, safe="")
        prefix = f"{self.base_url}/catalog/{self.media_kind}/{encoded}"
        if skip > 0:
            return f"{prefix}/skip={skip}.json"
        return f"{prefix}.json"


@dataclass(slots=True)
class CollectionState:
    """Detached view of a persisted collection."""

    id: str
    name: str
    provider_ids: dict[str, str] = field(default_factory=dict)
    member_count: int = 0

    @property
    def provider_tag(self) -> str | None:
        return self.provider_ids.get(PROVIDER_KEY)

    @property
    def catalog_total(self) -> int | None:
        raw = self.provider_ids.get(CATALOG_TOTAL_KEY)
        try:
            return int(raw) if raw is not None else None
        except ValueError:
            return None


@dataclass(slots=True)
class MembershipDiff:
    """Comparison between a fetched catalog and a collection's members."""

    existing_ids: set[str] = field(default_factory=set)
    missing_ids: list[str] = field(default_factory=list)
    removed_ids: set[str] = field(default_factory=set)
    missing_items: list[CatalogItem] = field(default_factory=list)
    total_catalog_items: int = 0
    unidentified_items: int = 0

    def to_preview(self, collection_name: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "totalCatalogItems": self.total_catalog_items,
            "existingItems": len(self.existing_ids),
            "newItems": len(self.missing_ids),
            "removedItems": len(self.removed_ids),
        }
        if collection_name is not None:
            payload["collectionName"] = collection_name
        return payload


OutcomeStatus = Literal["skipped", "attached", "failed"]


@dataclass(slots=True)
class ImportOutcome:
    """Result of processing one missing catalog item."""

    status: OutcomeStatus
    external_id: str | None
    reason: str | None = None
    member_id: str | None = None

    @classmethod
    def skipped(cls, external_id: str | None, reason: str) -> "ImportOutcome":
        return cls("skipped", external_id, reason=reason)

    @classmethod
    def attached(cls, external_id: str, member_id: str) -> "ImportOutcome":
        return cls("attached", external_id, member_id=member_id)

    @classmethod
    def failed(cls, external_id: str | None, reason: str) -> "ImportOutcome":
        return cls("failed", external_id, reason=reason)


@dataclass(slots=True)
class ImportSummary:
    """Aggregated outcomes of one import run."""

    outcomes: list[ImportOutcome] = field(default_factory=list)
    cancelled: bool = False

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "attached")

    @property
    def failed_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "failed")

    @property
    def skipped_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == "skipped")


class SyncRequest(BaseModel):
    """Body accepted by the on-demand sync and preview endpoints."""

    catalog_id: str = Field(
        min_length=1, validation_alias=AliasChoices("catalogId", "catalog_id")
    )
    media_kind: MediaKind = Field(
        default="movie",
        validation_alias=AliasChoices("mediaKind", "media_kind", "type"),
    )
    max_items: int | None = Field(
        default=None,
        ge=1,
        le=10_000,
        validation_alias=AliasChoices("maxItems", "max_items"),
    )
    collection_name: str | None = Field(
        default=None,
        max_length=255,
        validation_alias=AliasChoices("collectionName", "libraryName"),
    )

    @field_validator("media_kind", mode="before")
    @classmethod
    def _normalise_kind(cls, value: object) -> str:
        return normalize_media_kind(value if isinstance(value, str) else None)

    @field_validator("collection_name", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            return stripped or None
        return value


@dataclass(slots=True)
class CatalogSummary:
    """A syncable catalog advertised by the addon manifest."""

    id: str
    name: str
    type: str
    addon_name: str
    is_search_capable: bool = False
    source_url: str | None = None
    item_count: int = -1
    existing_collection_id: str | None = None
    existing_item_count: int = 0
    collection_name: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "itemCount": self.item_count,
            "addonName": self.addon_name,
            "isSearchCapable": self.is_search_capable,
            "sourceUrl": self.source_url,
            "existingCollectionId": self.existing_collection_id,
            "existingItemCount": self.existing_item_count,
            "collectionName": self.collection_name,
        }


@dataclass(frozen=True, slots=True)
class MediaHandle:
    """Reference to an item held by the local media store."""

    id: str
    name: str
    kind: str
    imdb_id: str | None = None
