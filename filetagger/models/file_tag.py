"""FileTag association model."""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint

from filetagger.core.database import Base, utc_now


class FileTag(Base):
    """Many-to-many association between file records and tags."""

    __tablename__ = "file_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    file_record_id = Column(
        Integer,
        ForeignKey("file_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    tag_id = Column(
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (UniqueConstraint("file_record_id", "tag_id", name="uq_file_tags_file_tag"),)
