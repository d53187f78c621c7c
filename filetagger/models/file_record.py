"""File record model."""
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint

from filetagger.core.database import Base, utc_now


class FileRecord(Base):
    """A tagged file, identified by its path relative to the owning directory."""

    __tablename__ = "file_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    directory_id = Column(
        Integer,
        ForeignKey("directories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name = Column(String(500), nullable=False)
    relative_path = Column(String(collation="NOCASE"), nullable=False)  # "/" separated
    last_modified = Column(DateTime, default=utc_now, nullable=False)
    file_size = Column(BigInteger, default=0, nullable=False)
    created_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("directory_id", "relative_path", name="uq_file_records_directory_path"),
    )
