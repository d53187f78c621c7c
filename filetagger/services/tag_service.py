"""Tag and file operations against the central store."""
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

from filetagger.core.config import Settings
from filetagger.core.errors import MissingFile, NotWatched
from filetagger.core.paths import PathLike, is_inside, path_key, to_absolute_path, to_relative_path
from filetagger.repositories.record_store import RecordStore
from filetagger.schemas import DirectoryData, FileWithTags, TagData, TagInfo
from filetagger.services.identity_matcher import identity_key
from filetagger.services.satellites import is_satellite_folder

logger = logging.getLogger(__name__)


def file_stat(file_path: PathLike) -> Tuple[int, datetime]:
    """Size in bytes and modification time (naive UTC) of a file."""
    stat = os.stat(file_path)
    modified = datetime.fromtimestamp(stat.st_mtime, timezone.utc).replace(tzinfo=None)
    return stat.st_size, modified


class TagService:
    """Service for tagging files and querying tags of the watched directories."""

    def __init__(self, central: RecordStore, config: Settings):
        """Initialize tag service.

        Args:
            central: Open central store; the caller commits
            config: Settings providing the satellite folder name
        """
        self.central = central
        self.config = config

    # Directories

    def find_watched_directory(self, path: PathLike) -> Optional[DirectoryData]:
        """The innermost active watched directory containing ``path``."""
        candidates = [
            d for d in self.central.all_directories(active_only=True) if is_inside(path, d.path)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda d: len(path_key(d.path)))

    def directories_with_tag(self, name: str) -> List[str]:
        """Paths of the active directories holding a tag of this name."""
        directories = {d.id: d.path for d in self.central.all_directories(active_only=True)}
        key = identity_key(name)
        paths = []
        for tag in self.central.all_tags():
            path = directories.get(tag.directory_id)
            if path and identity_key(tag.name) == key and path not in paths:
                paths.append(path)
        return paths

    # Tagging

    def add_tag_to_file(self, file_path: PathLike, tag_name: str, description: str = "") -> DirectoryData:
        """Attach a tag to a file, creating the file record and the tag as needed.

        Args:
            file_path: Existing file inside a watched directory
            tag_name: Tag name, matched case-insensitively
            description: Description for a new tag; an empty string keeps the current one

        Returns:
            The watched directory owning the file

        Raises:
            MissingFile: ``file_path`` does not exist
            NotWatched: ``file_path`` is outside every active watched directory
            ValueError: Empty or overlong tag name
        """
        file_path = os.path.abspath(os.fspath(file_path))
        if not os.path.isfile(file_path):
            raise MissingFile(file_path)

        directory = self.find_watched_directory(file_path)
        if directory is None:
            raise NotWatched(file_path)

        size, modified = file_stat(file_path)
        record = self.central.upsert_file(
            directory.id,
            to_relative_path(directory.path, file_path),
            os.path.basename(file_path),
            size,
            modified,
        )
        tag = self.central.upsert_tag(directory.id, tag_name, description or None)
        if self.central.link_file_tag(record.id, tag.id):
            logger.info(f"Tagged {file_path} with '{tag.name}'")
        return directory

    def remove_tag_from_file(self, file_path: PathLike, tag_name: str) -> Optional[DirectoryData]:
        """Detach a tag from a file.

        Returns:
            The owning directory if an association was removed, otherwise None
        """
        found = self._find_record(file_path)
        if found is None:
            return None
        directory, record = found

        tag = self.central.find_tag(tag_name, directory.id)
        if tag is None or not self.central.unlink_file_tag(record.id, tag.id):
            return None
        logger.info(f"Removed tag '{tag.name}' from {file_path}")
        return directory

    def get_tags_for_file(self, file_path: PathLike) -> List[str]:
        found = self._find_record(file_path)
        if found is None:
            return []
        return [tag.name for tag in self.central.tags_for(found[1].id)]

    def _find_record(self, file_path: PathLike):
        file_path = os.path.abspath(os.fspath(file_path))
        directory = self.find_watched_directory(file_path)
        if directory is None:
            return None
        record = self.central.find_file(to_relative_path(directory.path, file_path), directory.id)
        if record is None:
            return None
        return directory, record

    # Tags

    def create_tag(self, directory_path: PathLike, name: str, description: str = "") -> TagData:
        """Create a standalone tag in a watched directory.

        Raises:
            NotWatched: ``directory_path`` is not an active watched directory
            ValueError: Empty or overlong tag name
        """
        directory = self.central.find_directory(os.fspath(directory_path))
        if directory is None or not directory.is_active:
            raise NotWatched(directory_path)
        return self.central.upsert_tag(directory.id, name, description or None)

    def delete_tag(self, name: str) -> int:
        """Delete a tag from every directory, with its associations."""
        count = self.central.delete_tag(name)
        logger.info(f"Deleted {count} tag(s) named '{name}'")
        return count

    def rename_tag(self, old_name: str, new_name: str) -> int:
        count = self.central.rename_tag(old_name, new_name)
        logger.info(f"Renamed {count} tag(s) '{old_name}' -> '{new_name}'")
        return count

    def update_tag_description(self, name: str, description: str) -> int:
        return self.central.set_tag_description(name, description)

    def get_all_available_tags(self) -> List[TagInfo]:
        """Tags of the active directories grouped by name, with their usage counts.

        Tags used by no file are left out.

        Returns:
            List of TagInfo sorted by name
        """
        directories = {d.id: d.path for d in self.central.all_directories(active_only=True)}
        usage = self.central.usage_counts()
        grouped: Dict[str, TagInfo] = {}

        for tag in self.central.all_tags():
            path = directories.get(tag.directory_id)
            if path is None:
                continue
            info = grouped.setdefault(identity_key(tag.name), TagInfo(name=tag.name))
            if not info.description:
                info.description = tag.description
            info.total_usage_count += usage.get(tag.id, 0)
            if path not in info.source_directories:
                info.source_directories.append(path)

        tags = [info for info in grouped.values() if info.total_usage_count > 0]
        return sorted(tags, key=lambda info: identity_key(info.name))

    def get_all_tag_names(self) -> List[str]:
        """Every tag name of the active directories, used or not."""
        active = {d.id for d in self.central.all_directories(active_only=True)}
        names: Dict[str, str] = {}
        for tag in self.central.all_tags():
            if tag.directory_id in active:
                names.setdefault(identity_key(tag.name), tag.name)
        return sorted(names.values(), key=identity_key)

    # Files

    def walk_directory(self, directory_path: str) -> Iterator[str]:
        """Every file below a watched directory, skipping satellite folders."""
        for root, dirnames, filenames in os.walk(directory_path):
            dirnames[:] = [name for name in dirnames if not is_satellite_folder(name, self.config)]
            for filename in filenames:
                yield os.path.join(root, filename)

    def list_files(self) -> List[FileWithTags]:
        """Every file present in the active watched directories, with its tags.

        Files discovered on disk are matched to central file records by
        absolute path, case-insensitively. Records whose file is gone are
        left out.

        Returns:
            List of FileWithTags sorted by file name
        """
        files: Dict[str, FileWithTags] = {}

        # Innermost directories first, so nested watched folders own their files
        directories = sorted(
            self.central.all_directories(active_only=True), key=lambda d: -len(path_key(d.path))
        )
        for directory in directories:
            if not os.path.isdir(directory.path):
                logger.warning(f"Watched directory not available: {directory.path}")
                continue

            tag_names = {t.id: t.name for t in self.central.all_tags(directory.id)}
            tags_by_file: Dict[int, List[str]] = {}
            for association in self.central.all_associations(directory.id):
                name = tag_names.get(association.tag_id)
                if name is not None:
                    tags_by_file.setdefault(association.file_record_id, []).append(name)
            records = {
                path_key(to_absolute_path(directory.path, r.relative_path)): r
                for r in self.central.all_files(directory.id)
            }

            for full_path in self.walk_directory(directory.path):
                key = path_key(full_path)
                if key in files:
                    continue
                try:
                    size, modified = file_stat(full_path)
                except OSError as e:
                    logger.debug(f"Skipping unreadable file {full_path}: {e}")
                    continue
                record = records.get(key)
                files[key] = FileWithTags(
                    file_name=os.path.basename(full_path),
                    full_path=full_path,
                    directory_path=directory.path,
                    last_modified=modified,
                    file_size=size,
                    tags=tags_by_file.get(record.id, []) if record else [],
                )

        return sorted(files.values(), key=lambda f: (identity_key(f.file_name), path_key(f.full_path)))

    def get_all_files_with_tags(self) -> List[FileWithTags]:
        return [f for f in self.list_files() if f.is_tagged]

    def get_untagged_files(self) -> List[FileWithTags]:
        return [f for f in self.list_files() if not f.is_tagged]
