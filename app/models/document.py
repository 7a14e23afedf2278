"""
Storage model for registry records.

Every entity collection (contingent, examination, employee, lpu) lives in
the same `documents` table, partitioned by `collection`. Entity payload is
kept as a JSON document; lifecycle and provenance fields are real columns so
the state filters and the uniqueness rule can be expressed in SQL.
"""

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.models.database import Base

PRIMARY_KEY_NAME = "pk_documents"
NATURAL_KEY_INDEX_NAME = "uq_documents_alive_natural_key"

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Document(Base):
    __tablename__ = "documents"

    collection = Column(String(32), nullable=False)
    id = Column(String(64), nullable=False)
    natural_key = Column(
        String(512), nullable=False, comment="Canonical JSON encoding of key fields"
    )
    content = Column(JSONDocument, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1, comment="Bumped on every write")

    created_at = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(JSONDocument, nullable=True)
    modified_at = Column(DateTime(timezone=True), nullable=True)
    modified_by = Column(JSONDocument, nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    inactive_at = Column(
        DateTime(timezone=True), nullable=True, comment="Hidden from selection lists"
    )

    __table_args__ = (
        PrimaryKeyConstraint("collection", "id", name=PRIMARY_KEY_NAME),
        # At most one alive record per natural key; deleted history is unbounded.
        Index(
            NATURAL_KEY_INDEX_NAME,
            "collection",
            "natural_key",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("ix_documents_deleted", "collection", "natural_key", "deleted_at"),
    )
