"""Watched directory model."""
from sqlalchemy import Boolean, Column, DateTime, Integer, String

from filetagger.core.database import Base, utc_now


class Directory(Base):
    """A watched directory; soft-deleted through ``is_active``, never removed."""

    __tablename__ = "directories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    path = Column(String(collation="NOCASE"), unique=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    last_sync_at = Column(DateTime, default=utc_now, nullable=False)
