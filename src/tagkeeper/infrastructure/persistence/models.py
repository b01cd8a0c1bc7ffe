"""SQLAlchemy ORM models for the local store."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Hey future me - the whole local store is ONE key/value table on purpose. The dataset, the
# migration state and the checkpoint are each a single JSON document written as a whole;
# there is nothing to query inside them. updated_at is only there for debugging
# ("when did the checkpoint last move?").
class KeyValueEntryModel(Base):
    """One JSON document in the local store."""

    __tablename__ = "kv_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )
