"""File record repository."""
import posixpath
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from filetagger.models.file_record import FileRecord
from filetagger.models.file_tag import FileTag
from filetagger.repositories.base_repository import BaseRepository
from filetagger.services.identity_matcher import file_key


class FileRepository(BaseRepository[FileRecord]):
    """Repository for FileRecord model."""

    def __init__(self, session: Session):
        super().__init__(FileRecord, session)

    def list_by_directory(self, directory_id: Optional[int] = None) -> List[FileRecord]:
        """List file records of one directory, or of every directory."""
        query = select(FileRecord).order_by(FileRecord.id)
        if directory_id is not None:
            query = query.filter(FileRecord.directory_id == directory_id)
        result = self.session.execute(query)
        return list(result.scalars().all())

    def get_by_relative_path(self, relative_path: str, directory_id: int) -> Optional[FileRecord]:
        """Get a directory's file record by relative path (case-insensitive, in memory).

        Args:
            relative_path: Path relative to the directory root
            directory_id: Owning directory

        Returns:
            FileRecord instance or None if not found
        """
        key = file_key(relative_path)
        for record in self.list_by_directory(directory_id):
            if file_key(record.relative_path) == key:
                return record
        return None

    def upsert(
        self,
        directory_id: int,
        relative_path: str,
        file_name: Optional[str],
        size: int,
        modified_at: datetime,
    ) -> FileRecord:
        """Insert a file record or refresh size and modification time of the existing one.

        Args:
            directory_id: Owning directory
            relative_path: Path relative to the directory root
            file_name: Display name, defaults to the last path component
            size: Size in bytes
            modified_at: Last modification time (naive UTC)

        Returns:
            FileRecord instance
        """
        relative_path = relative_path.replace("\\", "/")
        file_name = file_name or posixpath.basename(relative_path)
        record = self.get_by_relative_path(relative_path, directory_id)

        if record is None:
            record = FileRecord(
                directory_id=directory_id,
                relative_path=relative_path,
                file_name=file_name,
                file_size=size,
                last_modified=modified_at,
            )
            self.create(record)
        else:
            record.file_name = file_name
            record.file_size = size
            record.last_modified = modified_at
            self.flush()

        return record

    def delete_with_associations(self, record: FileRecord) -> int:
        """Delete a file record after removing its tag associations.

        Returns:
            Number of associations removed
        """
        result = self.session.execute(delete(FileTag).where(FileTag.file_record_id == record.id))
        self.delete(record)
        return result.rowcount or 0
