"""Membership comparison between a catalog and a collection."""

from __future__ import annotations

from typing import Iterable, Sequence

from ..models import CatalogItem, MembershipDiff


def diff_membership(
    catalog_items: Sequence[CatalogItem],
    current_member_ids: Iterable[str],
) -> MembershipDiff:
    """Split catalog items into already-present and missing external ids.

    Ids are compared case-insensitively. Items without an external id are
    counted towards the catalog total but never reported as existing or
    missing. A repeated id is only reported missing once, at its first
    position in the catalog.
    """

    members = {member_id.lower(): member_id for member_id in current_member_ids if member_id}
    result = MembershipDiff(total_catalog_items=len(catalog_items))
    catalog_keys: set[str] = set()

    for item in catalog_items:
        external_id = (item.external_id or "").strip()
        if not external_id:
            result.unidentified_items += 1
            continue
        key = external_id.lower()
        if key in catalog_keys:
            continue
        catalog_keys.add(key)
        if key in members:
            result.existing_ids.add(members[key])
        else:
            result.missing_ids.append(external_id)
            result.missing_items.append(item)

    result.removed_ids = {
        original for key, original in members.items() if key not in catalog_keys
    }
    return result
