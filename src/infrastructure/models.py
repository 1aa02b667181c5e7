"""
SQLAlchemy ORM model backing the document store.

Tables
------
* ``documents`` -- one row per (collection, document id); the body is JSON
  (JSONB on PostgreSQL).

Indexes
-------
* **B-Tree** on ``(collection, created_at)`` for the ordered list queries
  (ride history, payment methods).
"""

from sqlalchemy import JSON, Column, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB

from .database import Base

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class DocumentModel(Base):
    __tablename__ = "documents"

    collection = Column(String(64), primary_key=True)
    doc_id = Column(String(64), primary_key=True)
    data = Column(JSONDocument, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_documents_collection_created", "collection", "created_at"),
    )
