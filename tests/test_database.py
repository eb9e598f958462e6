from __future__ import annotations

import asyncio

from sqlalchemy import create_engine, inspect

from app.database import Database


def test_create_all_builds_collection_schema(tmp_path) -> None:
    """Creating the schema should yield the media and collection tables."""

    database_path = tmp_path / "fresh.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    # Running twice must be harmless.
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        tables = set(inspector.get_table_names())
        member_columns = {
            column["name"] for column in inspector.get_columns("collection_members")
        }
    finally:
        inspector_engine.dispose()

    assert {"media_items", "collections", "collection_members"} <= tables
    assert {"collection_id", "media_item_id", "position"} <= member_columns
