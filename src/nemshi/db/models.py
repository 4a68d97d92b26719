"""ORM model backing the document store.

Every document of the persisted layout (``users/{uid}``,
``friend_profiles/{uid}/walk_summaries/{walkId}``, ...) is one row keyed by
its full path. ``collection`` and ``collection_id`` support subcollection
listing and collection-group queries; ``updated_at`` is the server write
time used for newest-first ordering.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from nemshi.db.base import Base

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    """Maps to the 'documents' table."""

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_collection_updated", "collection", "updated_at"),
        Index("idx_documents_collection_id", "collection_id"),
    )

    path: Mapped[str] = mapped_column(String(1024), primary_key=True)
    collection: Mapped[str] = mapped_column(String(1024), nullable=False)
    collection_id: Mapped[str] = mapped_column(String(255), nullable=False)
    doc_id: Mapped[str] = mapped_column(String(512), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONDocument, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
