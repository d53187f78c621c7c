"""Public operations of the tag engine.

``DatabaseManager`` is constructed explicitly with its settings and
collaborators. Every public operation opens the central store, runs under
one advisory lock, and closes the store again before returning.
"""
import logging
import os
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from filetagger.core.config import Settings, settings as default_settings
from filetagger.core.errors import InvalidDirectory, MissingFile, StorageUnavailable
from filetagger.core.paths import PathLike, is_inside, normalize_directory_path, to_relative_path
from filetagger.integrations import ShellIntegration, TempResultsResolver
from filetagger.repositories.record_store import RecordStore
from filetagger.schemas import (
    CleanupResult,
    FileWithTags,
    MergeResult,
    PullResult,
    PushResult,
    TagData,
    TagInfo,
    VerificationResult,
)
from filetagger.services.sync_engine import SatelliteEdit, SyncEngine
from filetagger.services.tag_service import TagService
from filetagger.services.verifier import verify_and_cleanup_tagged_files

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Facade over the central store, the satellites and the reconciliation engine."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        temp_results: Optional[TempResultsResolver] = None,
        shell: Optional[ShellIntegration] = None,
    ):
        """Initialize database manager.

        Args:
            config: Settings, defaults to the environment-derived settings
            temp_results: Resolver mapping temporary result copies back to originals
            shell: Shell integration, defaults to the manager itself
        """
        self.config = config or default_settings
        self.temp_results = temp_results
        self.shell: ShellIntegration = shell or self
        self._lock = threading.RLock()

    @contextmanager
    def _central(self) -> Iterator[RecordStore]:
        """Open the central store under the advisory lock.

        Raises:
            StorageUnavailable: The central store cannot be opened
        """
        with self._lock, RecordStore.open_central(self.config) as central:
            yield central

    def _sync_directories(
        self, central: RecordStore, paths: Iterable[str], edit: Optional[SatelliteEdit] = None
    ) -> None:
        """Best-effort push after a tag mutation; failures are logged only.

        Removals are replayed on each satellite through ``edit``, so only the
        rows the mutation removed disappear from it.
        """
        if not self.config.SYNC_SATELLITE_ON_CHANGE:
            return
        engine = SyncEngine(central, self.config)
        for path in paths:
            try:
                result = engine.push(path, edit=edit)
            except StorageUnavailable as e:
                logger.warning(f"Could not update satellite of {path}: {e}")
                continue
            for error in result.errors:
                logger.warning(error)

    # Directories

    def initialize(self) -> List[PullResult]:
        """Create the central store if needed and pull every active directory."""
        with self._central() as central:
            return SyncEngine(central, self.config).pull_all()

    def add_directory(self, path: PathLike) -> PullResult:
        """Watch a directory (or reactivate it) and pull its satellites.

        Args:
            path: Existing directory

        Returns:
            PullResult of the implicit pull

        Raises:
            InvalidDirectory: ``path`` is not an existing directory
        """
        if not os.path.isdir(path):
            raise InvalidDirectory(path)
        directory_path = normalize_directory_path(path)

        with self._central() as central:
            central.upsert_directory(directory_path)
            central.commit()
            logger.info(f"Watching directory {directory_path}")
            return SyncEngine(central, self.config).pull(directory_path)

    def remove_directory(self, path: PathLike) -> bool:
        """Stop watching a directory; its tags and files are kept.

        Returns:
            True if the directory was active
        """
        with self._central() as central:
            directory = central.find_directory(os.fspath(path))
            if directory is None or not directory.is_active:
                return False
            central.set_directory_active(directory.id, False)
            central.commit()
            logger.info(f"Stopped watching directory {directory.path}")
            return True

    def get_all_active_directories(self) -> List[str]:
        with self._central() as central:
            return [d.path for d in central.all_directories(active_only=True)]

    def is_path_inside_any_watched_directory(self, path: PathLike) -> bool:
        """Whether ``path`` is an active watched directory or lies below one."""
        return any(is_inside(path, directory) for directory in self.get_all_active_directories())

    # Reconciliation

    def pull_from_folder(self, path: PathLike) -> PullResult:
        with self._central() as central:
            return SyncEngine(central, self.config).pull(path)

    def pull_all_folders(self) -> List[PullResult]:
        with self._central() as central:
            return SyncEngine(central, self.config).pull_all()

    def push_to_folder(self, path: PathLike) -> PushResult:
        """Mirror central records into the directory's canonical satellite.

        Raises:
            StorageUnavailable: The satellite could not be opened
        """
        with self._central() as central:
            return SyncEngine(central, self.config).push(path)

    def push_all_folders(self) -> List[PushResult]:
        with self._central() as central:
            return SyncEngine(central, self.config).push_all()

    def cleanup_folder(self, path: PathLike) -> CleanupResult:
        """Pull, delete every satellite of the directory, push one fresh satellite."""
        with self._central() as central:
            return SyncEngine(central, self.config).cleanup(path)

    def merge_all_duplicate_databases(self) -> MergeResult:
        with self._central() as central:
            return SyncEngine(central, self.config).merge_duplicates()

    def verify_and_cleanup_tagged_files(self) -> VerificationResult:
        with self._central() as central:
            return verify_and_cleanup_tagged_files(central)

    # Tags

    def resolve_path(self, path: PathLike) -> str:
        """Map a temporary result copy back to its original file.

        Raises:
            MissingFile: ``path`` is a temporary copy without a known original
        """
        path = os.fspath(path)
        if self.temp_results is not None and self.temp_results.is_temp_path(path):
            original = self.temp_results.resolve_original_path(path)
            if original is None:
                raise MissingFile(path)
            return original
        return path

    def add_tag_to_file(self, file_path: PathLike, tag_name: str, description: str = "") -> None:
        """Tag a file, then update the satellite of its directory.

        Raises:
            MissingFile: The file (or the original of a temporary copy) does not exist
            NotWatched: The file is outside every active watched directory
            ValueError: Empty or overlong tag name
        """
        file_path = self.resolve_path(file_path)
        with self._central() as central:
            directory = TagService(central, self.config).add_tag_to_file(file_path, tag_name, description)
            central.commit()
            self._sync_directories(central, [directory.path])

    def remove_tag_from_file(self, file_path: PathLike, tag_name: str) -> bool:
        file_path = self.resolve_path(file_path)
        with self._central() as central:
            directory = TagService(central, self.config).remove_tag_from_file(file_path, tag_name)
            if directory is None:
                return False
            central.commit()
            relative_path = to_relative_path(directory.path, os.path.abspath(file_path))
            self._sync_directories(
                central,
                [directory.path],
                edit=lambda satellite, directory_id: satellite.unlink_by_name(
                    relative_path, tag_name, directory_id
                ),
            )
            return True

    def get_tags_for_file(self, file_path: PathLike) -> List[str]:
        file_path = self.resolve_path(file_path)
        with self._central() as central:
            return TagService(central, self.config).get_tags_for_file(file_path)

    def create_tag(self, directory_path: PathLike, name: str, description: str = "") -> TagData:
        """Create a standalone tag in a watched directory."""
        with self._central() as central:
            tag = TagService(central, self.config).create_tag(directory_path, name, description)
            central.commit()
            self._sync_directories(central, [normalize_directory_path(directory_path)])
            return tag

    def delete_tag(self, name: str) -> int:
        """Delete a tag from every directory.

        Returns:
            Number of tag rows removed
        """
        with self._central() as central:
            service = TagService(central, self.config)
            affected = service.directories_with_tag(name)
            count = service.delete_tag(name)
            central.commit()
            self._sync_directories(
                central,
                affected,
                edit=lambda satellite, directory_id: satellite.delete_tag(name, directory_id),
            )
            return count

    def rename_tag(self, old_name: str, new_name: str) -> int:
        """Rename a tag everywhere, merging into an existing tag of the new name.

        Returns:
            Number of tag rows renamed
        """
        with self._central() as central:
            service = TagService(central, self.config)
            affected = service.directories_with_tag(old_name)
            count = service.rename_tag(old_name, new_name)
            central.commit()
            self._sync_directories(
                central,
                affected,
                edit=lambda satellite, directory_id: satellite.rename_tag(old_name, new_name, directory_id),
            )
            return count

    def update_tag_description(self, name: str, description: str) -> int:
        with self._central() as central:
            service = TagService(central, self.config)
            count = service.update_tag_description(name, description)
            central.commit()
            self._sync_directories(central, service.directories_with_tag(name))
            return count

    def get_all_available_tags(self) -> List[TagInfo]:
        with self._central() as central:
            return TagService(central, self.config).get_all_available_tags()

    def get_all_tag_names(self) -> List[str]:
        with self._central() as central:
            return TagService(central, self.config).get_all_tag_names()

    # Files

    def get_all_files_with_tags(self) -> List[FileWithTags]:
        with self._central() as central:
            return TagService(central, self.config).get_all_files_with_tags()

    def get_untagged_files(self) -> List[FileWithTags]:
        with self._central() as central:
            return TagService(central, self.config).get_untagged_files()

    def get_all_files_in_watched_directories(self) -> List[FileWithTags]:
        with self._central() as central:
            return TagService(central, self.config).list_files()
