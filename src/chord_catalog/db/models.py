"""Key-value table backing the local cache."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from chord_catalog.db.base import Base, utc_now


class CacheEntry(Base):
    """One durable string value stored under a well-known key.

    The catalog snapshot is a single row whose value is the JSON-serialized
    list of records.
    """

    __tablename__ = "cache_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )
