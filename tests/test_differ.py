"""Membership diff behaviour."""

from __future__ import annotations

from app.models import CatalogItem
from app.services.differ import diff_membership


def _item(external_id: str | None, raw_id: str | None = None) -> CatalogItem:
    return CatalogItem(raw_id=raw_id or external_id or "", external_id=external_id)


def test_diff_reports_missing_in_catalog_order() -> None:
    items = [_item("tt001"), _item("tt002"), _item("tt003")]

    diff = diff_membership(items, {"tt002"})

    assert diff.missing_ids == ["tt001", "tt003"]
    assert [item.external_id for item in diff.missing_items] == ["tt001", "tt003"]
    assert diff.existing_ids == {"tt002"}
    assert diff.to_preview("Top") == {
        "totalCatalogItems": 3,
        "existingItems": 1,
        "newItems": 2,
        "removedItems": 0,
        "collectionName": "Top",
    }


def test_items_without_external_id_only_count_towards_total() -> None:
    items = [_item(None, "kitsu:1"), _item("tt001")]

    diff = diff_membership(items, set())

    assert diff.total_catalog_items == 2
    assert diff.unidentified_items == 1
    assert diff.missing_ids == ["tt001"]
    assert diff.existing_ids == set()


def test_duplicate_catalog_ids_reported_once() -> None:
    items = [_item("tt001"), _item("tt002"), _item("TT001")]

    diff = diff_membership(items, set())

    assert diff.missing_ids == ["tt001", "tt002"]


def test_comparison_ignores_case() -> None:
    diff = diff_membership([_item("TT0111161")], {"tt0111161"})

    assert diff.missing_ids == []
    assert diff.existing_ids == {"tt0111161"}


def test_members_absent_from_catalog_are_reported_removed() -> None:
    diff = diff_membership([_item("tt001")], {"tt001", "tt009", "tt010"})

    assert diff.removed_ids == {"tt009", "tt010"}
    assert diff.to_preview()["removedItems"] == 2
    assert "collectionName" not in diff.to_preview()


def test_empty_catalog() -> None:
    diff = diff_membership([], {"tt001"})

    assert diff.total_catalog_items == 0
    assert diff.missing_items == []
    assert diff.removed_ids == {"tt001"}
