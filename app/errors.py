"""Exceptions raised by the catalog sync engine."""

from __future__ import annotations


class CatalogSyncError(Exception):
    """Base class for sync failures that abort a single collection."""


class ConfigurationMissing(CatalogSyncError, ValueError):
    """No catalog add-on is configured, so nothing can be synced."""


class CollectionNotFound(CatalogSyncError, KeyError):
    """The requested collection does not exist."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Collection not found"


class CollectionUnavailable(CatalogSyncError, RuntimeError):
    """The target collection could not be located or created."""


class FetchError(CatalogSyncError):
    """A catalog page could not be retrieved; pagination stops softly."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason
