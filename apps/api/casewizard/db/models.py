"""SQLAlchemy models for the local durable cache."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, String, func
from sqlalchemy.orm import Mapped, mapped_column

from casewizard.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LocalStoreEntry(Base):
    """One JSON-encoded value per storage key.

    Mirrors the browser key/value layout: array-valued keys hold saved
    sessions and assignment records, object-valued keys hold small summaries.
    """

    __tablename__ = "local_store_entries"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow,
        onupdate=_utcnow,
        server_default=func.now(),
    )
