"""Directory repository."""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from filetagger.core.database import utc_now
from filetagger.core.paths import normalize_directory_path, path_key
from filetagger.models.directory import Directory
from filetagger.repositories.base_repository import BaseRepository


class DirectoryRepository(BaseRepository[Directory]):
    """Repository for watched directories."""

    def __init__(self, session: Session):
        super().__init__(Directory, session)

    def get_by_path(self, path: str) -> Optional[Directory]:
        """Get a directory by path, compared case-insensitively in memory.

        Args:
            path: Directory path

        Returns:
            Directory instance or None if not found
        """
        key = path_key(path)
        for directory in self.list_all():
            if path_key(directory.path) == key:
                return directory
        return None

    def list_active(self) -> List[Directory]:
        """List directories whose ``is_active`` flag is set."""
        result = self.session.execute(
            select(Directory).filter(Directory.is_active.is_(True)).order_by(Directory.id)
        )
        return list(result.scalars().all())

    def upsert(self, path: str) -> Directory:
        """Insert a directory or reactivate the existing one.

        Args:
            path: Directory path

        Returns:
            Active Directory instance with a refreshed ``last_sync_at``
        """
        directory = self.get_by_path(path)
        if directory is None:
            directory = self.create(Directory(path=normalize_directory_path(path), is_active=True))
        else:
            directory.is_active = True
            directory.last_sync_at = utc_now()
            self.flush()
        return directory

    def local(self, path: str) -> Directory:
        """The single directory row of a satellite store.

        A satellite copied or moved along with its folder still carries the
        old path; the row is re-pointed at ``path`` instead of adding a second
        one.
        """
        directories = self.list_all()
        if not directories:
            return self.create(Directory(path=normalize_directory_path(path), is_active=True))

        directory = self.get_by_path(path) or directories[0]
        if path_key(directory.path) != path_key(path):
            directory.path = normalize_directory_path(path)
            self.flush()
        return directory

    def touch(self, directory: Directory) -> None:
        """Refresh ``last_sync_at``."""
        directory.last_sync_at = utc_now()
        self.flush()
