"""Catalog sync FastAPI application package.

``app`` and ``create_app`` are resolved lazily so that importing a service
module does not build the ASGI application or read settings twice.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = ["app", "create_app"]


def __getattr__(name: str) -> Any:
    if name not in __all__:
        raise AttributeError(f"module 'app' has no attribute {name}")
    return getattr(import_module("app.main"), name)
