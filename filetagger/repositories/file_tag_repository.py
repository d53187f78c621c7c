"""File/tag association repository."""
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from filetagger.core.errors import RecordConflict
from filetagger.models.file_record import FileRecord
from filetagger.models.file_tag import FileTag
from filetagger.models.tag import Tag
from filetagger.repositories.base_repository import BaseRepository


class FileTagRepository(BaseRepository[FileTag]):
    """Repository for FileTag associations.

    Replaces navigation properties with flat queries over the association
    table: ``tag_ids_for_file``, ``file_ids_for_tag`` and ``usage_counts``.
    """

    def __init__(self, session: Session):
        super().__init__(FileTag, session)

    def list_by_directory(self, directory_id: Optional[int] = None) -> List[FileTag]:
        """List associations whose file record belongs to ``directory_id`` (all when None)."""
        query = select(FileTag).order_by(FileTag.id)
        if directory_id is not None:
            query = query.join(FileRecord, FileRecord.id == FileTag.file_record_id).filter(
                FileRecord.directory_id == directory_id
            )
        result = self.session.execute(query)
        return list(result.scalars().all())

    def get(self, file_id: int, tag_id: int) -> Optional[FileTag]:
        result = self.session.execute(
            select(FileTag).filter(FileTag.file_record_id == file_id, FileTag.tag_id == tag_id)
        )
        return result.scalar_one_or_none()

    def link(self, file_id: int, tag_id: int) -> Tuple[FileTag, bool]:
        """Associate a file with a tag; no-op when the pair already exists.

        Args:
            file_id: FileRecord ID
            tag_id: Tag ID

        Returns:
            (association, created) tuple

        Raises:
            RecordConflict: Either side is missing or they belong to different directories
        """
        existing = self.get(file_id, tag_id)
        if existing is not None:
            return existing, False

        record = self.session.get(FileRecord, file_id)
        tag = self.session.get(Tag, tag_id)
        if record is None or tag is None:
            raise RecordConflict(f"Cannot link file {file_id} to tag {tag_id}: record missing")
        if record.directory_id != tag.directory_id:
            raise RecordConflict(
                f"Cannot link file {file_id} to tag {tag_id}: they belong to different directories"
            )

        return self.create(FileTag(file_record_id=file_id, tag_id=tag_id)), True

    def unlink(self, file_id: int, tag_id: int) -> bool:
        """Remove an association.

        Returns:
            True if an association was removed
        """
        existing = self.get(file_id, tag_id)
        if existing is None:
            return False
        self.delete(existing)
        return True

    def delete_by_ids(self, association_ids: List[int]) -> int:
        if not association_ids:
            return 0
        result = self.session.execute(delete(FileTag).where(FileTag.id.in_(association_ids)))
        self.flush()
        return result.rowcount or 0

    def tag_ids_for_file(self, file_id: int) -> List[int]:
        result = self.session.execute(
            select(FileTag.tag_id).filter(FileTag.file_record_id == file_id).order_by(FileTag.id)
        )
        return list(result.scalars().all())

    def file_ids_for_tag(self, tag_id: int) -> List[int]:
        result = self.session.execute(
            select(FileTag.file_record_id).filter(FileTag.tag_id == tag_id).order_by(FileTag.id)
        )
        return list(result.scalars().all())

    def usage_counts(self, directory_id: Optional[int] = None) -> Dict[int, int]:
        """Number of associations per tag ID.

        Args:
            directory_id: Restrict to tags of one directory, None for all

        Returns:
            Dict mapping tag_id -> association count (tags without associations are absent)
        """
        query = select(FileTag.tag_id, func.count(FileTag.id)).group_by(FileTag.tag_id)
        if directory_id is not None:
            query = query.join(Tag, Tag.id == FileTag.tag_id).filter(Tag.directory_id == directory_id)
        result = self.session.execute(query)
        return {tag_id: count for tag_id, count in result.all()}
