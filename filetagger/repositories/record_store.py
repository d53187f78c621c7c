"""Record store: CRUD over directories, tags, files and associations of one store instance.

The same schema backs the central store and every satellite store. Reads
return pydantic snapshots detached from the session, so a satellite can be
read completely and closed before anything touches its folder.
"""
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from filetagger import models  # noqa: F401  registers every table on Base.metadata
from filetagger.core.config import Settings
from filetagger.core.database import (
    Base,
    create_sqlite_engine,
    dispose_engine,
    session_factory,
    utc_now,
)
from filetagger.core.errors import RecordConflict, StorageUnavailable
from filetagger.models.file_record import FileRecord
from filetagger.models.tag import DESCRIPTION_MAX_LENGTH, Tag
from filetagger.repositories.directory_repository import DirectoryRepository
from filetagger.repositories.file_repository import FileRepository
from filetagger.repositories.file_tag_repository import FileTagRepository
from filetagger.repositories.tag_repository import TagRepository, validate_tag_name
from filetagger.schemas import DirectoryData, FileData, FileTagData, StoreSnapshot, TagData

logger = logging.getLogger(__name__)


class RecordStore:
    """One open central or satellite store."""

    def __init__(self, db_path: Path, engine: Engine, read_only: bool = False):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self._engine = engine
        self._closed = False
        self.session = session_factory(engine)()

        self.directories = DirectoryRepository(self.session)
        self.tags = TagRepository(self.session)
        self.files = FileRepository(self.session)
        self.file_tags = FileTagRepository(self.session)

    # Lifecycle

    @classmethod
    def open(
        cls,
        db_path: Path,
        read_only: bool = False,
        pooled: bool = True,
        timeout: float = 5.0,
        echo: bool = False,
    ) -> "RecordStore":
        """Open a store, creating its file and tables unless ``read_only``.

        Args:
            db_path: Database file location
            read_only: Open an existing file with ``mode=ro``; never create anything
            pooled: Pool connections (central store) or close them with the session (satellites)
            timeout: Seconds to wait on a lock held by another process
            echo: Log SQL statements

        Returns:
            Open RecordStore

        Raises:
            StorageUnavailable: The location is missing, locked, unwritable or not a store
        """
        path = Path(db_path)
        if read_only and not path.is_file():
            raise StorageUnavailable(path, "database file does not exist")

        engine = None
        try:
            if not read_only:
                path.parent.mkdir(parents=True, exist_ok=True)
            engine = create_sqlite_engine(
                path, read_only=read_only, pooled=pooled, timeout=timeout, echo=echo
            )
            if read_only:
                with engine.connect() as conn:
                    present = set(inspect(conn).get_table_names())
                missing = sorted(set(Base.metadata.tables) - present)
                if missing:
                    raise StorageUnavailable(path, f"missing tables: {', '.join(missing)}")
            else:
                Base.metadata.create_all(engine)
        except StorageUnavailable:
            if engine is not None:
                dispose_engine(engine)
            raise
        except (SQLAlchemyError, OSError) as e:
            if engine is not None:
                dispose_engine(engine)
            raise StorageUnavailable(path, str(e)) from e

        logger.debug(f"Opened store {path} (read_only={read_only})")
        return cls(path, engine, read_only=read_only)

    @classmethod
    def open_central(cls, settings: Settings) -> "RecordStore":
        """Open (creating if needed) the central store."""
        return cls.open(
            settings.CENTRAL_DB_PATH,
            timeout=settings.SQLITE_TIMEOUT_SECONDS,
            echo=settings.SQL_ECHO,
        )

    @classmethod
    def open_satellite(cls, location: Path, settings: Settings, read_only: bool = False) -> "RecordStore":
        """Open the satellite store kept in ``location`` (a hidden folder of a watched directory)."""
        return cls.open(
            settings.satellite_db_path(location),
            read_only=read_only,
            pooled=False,
            timeout=settings.SQLITE_TIMEOUT_SECONDS,
            echo=settings.SQL_ECHO,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def commit(self) -> None:
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            raise RecordConflict(str(e.orig)) from e

    def rollback(self) -> None:
        self.session.rollback()

    def close(self) -> None:
        """Release the session and every pooled connection. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        try:
            self.session.close()
        finally:
            dispose_engine(self._engine)
        logger.debug(f"Closed store {self.db_path}")

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None and not self._closed:
            self.session.rollback()
        self.close()

    # Directories

    def upsert_directory(self, path: str) -> DirectoryData:
        return DirectoryData.model_validate(self.directories.upsert(path))

    def local_directory(self, path: str) -> DirectoryData:
        """The satellite's own directory row, pointed at ``path``."""
        return DirectoryData.model_validate(self.directories.local(path))

    def find_directory(self, path: str) -> Optional[DirectoryData]:
        directory = self.directories.get_by_path(path)
        return DirectoryData.model_validate(directory) if directory else None

    def all_directories(self, active_only: bool = False) -> List[DirectoryData]:
        directories = self.directories.list_active() if active_only else self.directories.list_all()
        return [DirectoryData.model_validate(d) for d in directories]

    def set_directory_active(self, directory_id: int, active: bool) -> None:
        directory = self.directories.get_by_id(directory_id)
        if directory is not None:
            directory.is_active = active
            self.directories.flush()

    def touch_directory(self, directory_id: int) -> None:
        directory = self.directories.get_by_id(directory_id)
        if directory is not None:
            self.directories.touch(directory)

    # Tags

    def upsert_tag(self, directory_id: int, name: str, description: Optional[str] = None) -> TagData:
        """Insert a tag or refresh the existing one (case-insensitive name match).

        Args:
            directory_id: Owning directory
            name: Tag name
            description: New description, None keeps the current one

        Returns:
            Tag snapshot
        """
        return TagData.model_validate(self.tags.get_or_create(name, directory_id, description))

    def insert_tag(self, directory_id: int, data: TagData) -> TagData:
        """Insert a tag copied from another store, keeping its timestamps."""
        tag = Tag(
            directory_id=directory_id,
            name=validate_tag_name(data.name),
            description=data.description or "",
            created_at=data.created_at,
            last_used_at=data.last_used_at,
        )
        return TagData.model_validate(self.tags.create(tag))

    def update_tag(self, data: TagData) -> TagData:
        """Write the mutable fields of a merged tag back to its row."""
        tag = self.tags.get_by_id(data.id)
        if tag is None:
            raise RecordConflict(f"Tag {data.id} no longer exists")
        tag.name = validate_tag_name(data.name)
        tag.description = data.description
        tag.created_at = data.created_at
        tag.last_used_at = data.last_used_at
        self.tags.flush()
        return TagData.model_validate(tag)

    def find_tag(self, name: str, directory_id: int) -> Optional[TagData]:
        tag = self.tags.get_by_name(name, directory_id)
        return TagData.model_validate(tag) if tag else None

    def delete_tag(self, name: str, directory_id: Optional[int] = None) -> int:
        """Delete tags by name, together with their associations.

        Args:
            name: Tag name, any case
            directory_id: Restrict to one directory, None for every directory

        Returns:
            Number of tags deleted
        """
        if directory_id is None:
            tags = self.tags.find_by_name(name)
        else:
            tag = self.tags.get_by_name(name, directory_id)
            tags = [tag] if tag else []
        for tag in tags:
            self.tags.delete_with_associations(tag)
        return len(tags)

    def delete_tag_by_id(self, tag_id: int) -> bool:
        tag = self.tags.get_by_id(tag_id)
        if tag is None:
            return False
        self.tags.delete_with_associations(tag)
        return True

    def rename_tag(self, name: str, new_name: str, directory_id: Optional[int] = None) -> int:
        """Rename tags in place; merges into an existing tag of the new name.

        Returns:
            Number of tags renamed
        """
        if directory_id is None:
            tags = self.tags.find_by_name(name)
        else:
            tag = self.tags.get_by_name(name, directory_id)
            tags = [tag] if tag else []
        for tag in tags:
            self.tags.rename(tag, new_name)
        return len(tags)

    def set_tag_description(self, name: str, description: str) -> int:
        now = utc_now()
        tags = self.tags.find_by_name(name)
        for tag in tags:
            tag.description = (description or "")[:DESCRIPTION_MAX_LENGTH]
            tag.last_used_at = max(tag.last_used_at, now)
        self.tags.flush()
        return len(tags)

    # Files

    def upsert_file(
        self,
        directory_id: int,
        relative_path: str,
        file_name: Optional[str],
        size: int,
        modified_at: datetime,
    ) -> FileData:
        """Insert a file record or refresh the existing one (case-insensitive path match)."""
        record = self.files.upsert(directory_id, relative_path, file_name, size, modified_at)
        return FileData.model_validate(record)

    def insert_file(self, directory_id: int, data: FileData) -> FileData:
        """Insert a file record copied from another store, keeping its timestamps."""
        record = FileRecord(
            directory_id=directory_id,
            file_name=data.file_name,
            relative_path=data.relative_path.replace("\\", "/"),
            file_size=data.file_size,
            last_modified=data.last_modified,
            created_at=data.created_at,
        )
        return FileData.model_validate(self.files.create(record))

    def update_file(self, data: FileData) -> FileData:
        """Write the mutable fields of a merged file record back to its row."""
        record = self.files.get_by_id(data.id)
        if record is None:
            raise RecordConflict(f"File record {data.id} no longer exists")
        record.file_name = data.file_name
        record.file_size = data.file_size
        record.last_modified = data.last_modified
        record.created_at = data.created_at
        self.files.flush()
        return FileData.model_validate(record)

    def find_file(self, relative_path: str, directory_id: int) -> Optional[FileData]:
        record = self.files.get_by_relative_path(relative_path, directory_id)
        return FileData.model_validate(record) if record else None

    def remove_file(self, file_id: int) -> bool:
        """Remove a file record and its associations."""
        record = self.files.get_by_id(file_id)
        if record is None:
            return False
        self.files.delete_with_associations(record)
        return True

    # Associations

    def link_file_tag(self, file_id: int, tag_id: int) -> bool:
        """Associate a file with a tag.

        Returns:
            True if a new association was created, False if it already existed
        """
        _, created = self.file_tags.link(file_id, tag_id)
        return created

    def unlink_file_tag(self, file_id: int, tag_id: int) -> bool:
        return self.file_tags.unlink(file_id, tag_id)

    def unlink_by_name(self, relative_path: str, tag_name: str, directory_id: int) -> bool:
        """Detach a tag from a file, both looked up by their natural keys.

        Returns:
            True if an association was removed
        """
        record = self.files.get_by_relative_path(relative_path, directory_id)
        tag = self.tags.get_by_name(tag_name, directory_id)
        if record is None or tag is None:
            return False
        return self.file_tags.unlink(record.id, tag.id)

    def delete_associations(self, association_ids: List[int]) -> int:
        return self.file_tags.delete_by_ids(association_ids)

    def tags_for(self, file_id: int) -> List[TagData]:
        """Tags attached to a file."""
        tag_ids = self.file_tags.tag_ids_for_file(file_id)
        return [TagData.model_validate(self.tags.get_by_id(tag_id)) for tag_id in tag_ids]

    def files_for(self, tag_id: int) -> List[FileData]:
        """Files carrying a tag."""
        file_ids = self.file_tags.file_ids_for_tag(tag_id)
        return [FileData.model_validate(self.files.get_by_id(file_id)) for file_id in file_ids]

    def usage_counts(self, directory_id: Optional[int] = None) -> Dict[int, int]:
        return self.file_tags.usage_counts(directory_id)

    # Snapshots

    def all_tags(self, directory_id: Optional[int] = None) -> List[TagData]:
        return [TagData.model_validate(t) for t in self.tags.list_by_directory(directory_id)]

    def all_files(self, directory_id: Optional[int] = None) -> List[FileData]:
        return [FileData.model_validate(f) for f in self.files.list_by_directory(directory_id)]

    def all_associations(self, directory_id: Optional[int] = None) -> List[FileTagData]:
        return [FileTagData.model_validate(a) for a in self.file_tags.list_by_directory(directory_id)]

    def snapshot(self, directory_id: Optional[int] = None) -> StoreSnapshot:
        """Load every record (of one directory, or of the whole store) into memory."""
        directories = self.all_directories()
        if directory_id is not None:
            directories = [d for d in directories if d.id == directory_id]
        return StoreSnapshot(
            directories=directories,
            tags=self.all_tags(directory_id),
            files=self.all_files(directory_id),
            associations=self.all_associations(directory_id),
        )

