"""Tag model."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from filetagger.core.database import Base, utc_now

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


class Tag(Base):
    """Tag owned by exactly one directory."""

    __tablename__ = "tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    directory_id = Column(
        Integer,
        ForeignKey("directories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(String(NAME_MAX_LENGTH, collation="NOCASE"), nullable=False)
    description = Column(String(DESCRIPTION_MAX_LENGTH), default="", nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)
    last_used_at = Column(DateTime, default=utc_now, nullable=False)

    # NOCASE only folds ASCII; full case-insensitive matching happens in memory
    __table_args__ = (UniqueConstraint("directory_id", "name", name="uq_tags_directory_name"),)
