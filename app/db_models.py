"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class MediaItem(Base):
    """A movie or series known to the local media store."""

    __tablename__ = "media_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    kind: Mapped[str] = mapped_column(String(16))
    imdb_id: Mapped[str | None] = mapped_column(
        String(32), nullable=True, index=True
    )
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )


class Collection(Base):
    """A named aggregation of media items, optionally tagged with a catalog."""

    __tablename__ = "collections"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    provider_ids: Mapped[dict[str, str]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    members: Mapped[list["CollectionMember"]] = relationship(
        back_populates="collection",
        cascade="all, delete-orphan",
        order_by="CollectionMember.position",
    )


class CollectionMember(Base):
    """Link between a collection and one of its media items."""

    __tablename__ = "collection_members"
    __table_args__ = (
        UniqueConstraint("collection_id", "media_item_id", name="uq_collection_member"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("collections.id", ondelete="CASCADE")
    )
    media_item_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("media_items.id", ondelete="CASCADE")
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    added_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    collection: Mapped[Collection] = relationship(back_populates="members")
    media_item: Mapped[MediaItem] = relationship()
