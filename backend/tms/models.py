"""SQLAlchemy models backing the document store."""
from sqlalchemy import JSON, Column, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func

from .database import Base


class Document(Base):
    """One document of a named collection.

    ``version`` starts at 1 and grows by one on every write; transactions
    and array-union updates use it as a compare-and-swap guard.
    """
    __tablename__ = "documents"

    collection = Column(String(100), primary_key=True)
    id = Column(String(255), primary_key=True)
    data = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("idx_documents_collection_updated", "collection", "updated_at"),
    )
