"""Tag repository with case-insensitive lookup and merging."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from filetagger.core.database import utc_now
from filetagger.models.file_tag import FileTag
from filetagger.models.tag import DESCRIPTION_MAX_LENGTH, NAME_MAX_LENGTH, Tag
from filetagger.repositories.base_repository import BaseRepository
from filetagger.services.identity_matcher import identity_key


class TagRepository(BaseRepository[Tag]):
    """Repository for Tag model."""

    def __init__(self, session: Session):
        """Initialize tag repository.

        Args:
            session: Database session
        """
        super().__init__(Tag, session)

    def list_by_directory(self, directory_id: Optional[int] = None) -> List[Tag]:
        """List tags of one directory, or of every directory.

        Args:
            directory_id: Owning directory, None for all

        Returns:
            List of Tag instances
        """
        query = select(Tag).order_by(Tag.id)
        if directory_id is not None:
            query = query.filter(Tag.directory_id == directory_id)
        result = self.session.execute(query)
        return list(result.scalars().all())

    def get_by_name(self, name: str, directory_id: int) -> Optional[Tag]:
        """Get a directory's tag by name.

        Candidates are loaded first and compared with ``casefold`` in memory.

        Args:
            name: Tag name, any case
            directory_id: Owning directory

        Returns:
            Tag instance or None if not found
        """
        key = identity_key(name)
        for tag in self.list_by_directory(directory_id):
            if identity_key(tag.name) == key:
                return tag
        return None

    def find_by_name(self, name: str) -> List[Tag]:
        """Every tag with this name, across all directories."""
        key = identity_key(name)
        return [tag for tag in self.list_by_directory() if identity_key(tag.name) == key]

    def get_or_create(
        self,
        name: str,
        directory_id: int,
        description: Optional[str] = None,
        last_used_at: Optional[datetime] = None,
    ) -> Tag:
        """Get existing tag or create new one.

        An existing tag gets its ``last_used_at`` refreshed, and its
        description replaced when one is given.

        Args:
            name: Tag name
            directory_id: Owning directory
            description: New description, None keeps the current one
            last_used_at: Usage timestamp, defaults to now

        Returns:
            Tag instance (existing or newly created)
        """
        name = validate_tag_name(name)
        last_used_at = last_used_at or utc_now()
        tag = self.get_by_name(name, directory_id)

        if tag is None:
            tag = Tag(
                name=name,
                directory_id=directory_id,
                description=_clip_description(description),
                last_used_at=last_used_at,
            )
            self.create(tag)
        else:
            if description is not None:
                tag.description = _clip_description(description)
            tag.last_used_at = max(tag.last_used_at, last_used_at)
            self.flush()

        return tag

    def rename(self, tag: Tag, new_name: str) -> Tag:
        """Rename a tag in place.

        If the directory already has a different tag with the new name, the
        two are merged: associations move to the surviving tag and ``tag`` is
        deleted.

        Returns:
            The tag now carrying ``new_name``
        """
        new_name = validate_tag_name(new_name)
        target = self.get_by_name(new_name, tag.directory_id)

        if target is None or target.id == tag.id:
            tag.name = new_name
            self.flush()
            return tag

        self._merge_into(target, tag)
        return target

    def delete_with_associations(self, tag: Tag) -> int:
        """Delete a tag and its file associations.

        Returns:
            Number of associations removed
        """
        result = self.session.execute(delete(FileTag).where(FileTag.tag_id == tag.id))
        self.delete(tag)
        return result.rowcount or 0

    def _merge_into(self, parent_tag: Tag, child_tag: Tag) -> None:
        """Move the child's associations onto the parent, then delete the child."""
        file_tags = self.session.execute(
            select(FileTag).filter(FileTag.tag_id == child_tag.id)
        ).scalars().all()
        parent_file_ids = set(
            self.session.execute(
                select(FileTag.file_record_id).filter(FileTag.tag_id == parent_tag.id)
            ).scalars().all()
        )

        for file_tag in file_tags:
            if file_tag.file_record_id in parent_file_ids:
                # Parent already tags this file
                self.session.delete(file_tag)
            else:
                file_tag.tag_id = parent_tag.id
                parent_file_ids.add(file_tag.file_record_id)

        parent_tag.last_used_at = max(parent_tag.last_used_at, child_tag.last_used_at)
        if not parent_tag.description:
            parent_tag.description = child_tag.description
        self.flush()
        self.delete(child_tag)


def validate_tag_name(name: str) -> str:
    """Strip a tag name and check its length."""
    name = (name or "").strip()
    if not name:
        raise ValueError("Tag name must not be empty")
    if len(name) > NAME_MAX_LENGTH:
        raise ValueError(f"Tag name longer than {NAME_MAX_LENGTH} characters: {name[:20]}...")
    return name


def _clip_description(description: Optional[str]) -> str:
    return (description or "")[:DESCRIPTION_MAX_LENGTH]

