"""Reconciliation engine: Pull, Push, Cleanup and duplicate Merge.

Pull copies satellite data into the central store, Push copies central data
into a directory's canonical satellite. Both run the same pass: tags and
files are matched on their natural keys (see ``identity_matcher``), inserted
when missing and merged when present, then associations are re-linked
through the resulting id maps.

Satellites are always read completely and closed before anything else
happens, and every store connection is released before a satellite folder is
deleted.
"""
import logging
from collections import Counter
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from filetagger.core.config import Settings
from filetagger.core.database import release_all_connections
from filetagger.core.errors import FileTaggerError, StorageUnavailable, describe_failure
from filetagger.core.paths import PathLike
from filetagger.repositories.record_store import RecordStore
from filetagger.repositories.tag_repository import validate_tag_name
from filetagger.schemas import (
    CleanupResult,
    DirectoryData,
    MergeResult,
    PullResult,
    PushResult,
    StoreSnapshot,
)
from filetagger.services.identity_matcher import (
    file_changed,
    file_key,
    identity_key,
    index_files,
    index_tags,
    merge_file,
    merge_tag,
    tag_changed,
)
from filetagger.services.lock_safe_delete import safe_delete
from filetagger.services.satellites import (
    canonical_location,
    duplicate_locations,
    has_store,
    satellite_locations,
)

logger = logging.getLogger(__name__)

# Failures isolated to one satellite or one directory
RECOVERABLE_ERRORS = (FileTaggerError, SQLAlchemyError, OSError, ValueError)

# Applied to an open satellite and its own directory id before a push
SatelliteEdit = Callable[[RecordStore, int], object]


def apply_snapshot(
    source: StoreSnapshot,
    target: RecordStore,
    directory_id: int,
    adopt_names: bool = False,
    errors: Optional[List[str]] = None,
) -> Counter:
    """Insert or merge every record of ``source`` into one directory of ``target``.

    Never deletes anything and never commits. Source tag names are stripped
    before matching; a tag whose name is still invalid is skipped together
    with its associations.

    Args:
        source: Snapshot of the store being read
        target: Store being written
        directory_id: Directory of ``target`` that receives the records
        adopt_names: Give matched target tags the source spelling of their name
        errors: Receives one message per skipped tag

    Returns:
        Counter with keys tags_added, tags_updated, files_added,
        files_updated and associations_added
    """
    counts: Counter = Counter()

    # Tags
    target_tags = index_tags(target.all_tags(directory_id))
    tag_ids: Dict[int, int] = {}
    for tag in source.tags:
        try:
            name = validate_tag_name(tag.name)
        except ValueError as e:
            message = f"Skipped tag '{tag.name}': {e}"
            logger.warning(message)
            if errors is not None:
                errors.append(message)
            continue
        if name != tag.name:
            tag = tag.model_copy(update={"name": name})
        key = identity_key(name)
        existing = target_tags.get(key)
        if existing is None:
            target_tags[key] = target.insert_tag(directory_id, tag)
            counts["tags_added"] += 1
            logger.debug(f"Added tag '{tag.name}'")
        else:
            merged = merge_tag(existing, tag, adopt_name=adopt_names)
            if tag_changed(existing, merged):
                target_tags[key] = target.update_tag(merged)
                counts["tags_updated"] += 1
                logger.debug(f"Updated tag '{existing.name}'")
        tag_ids[tag.id] = target_tags[key].id

    # Files
    target_files = index_files(target.all_files(directory_id))
    file_ids: Dict[int, int] = {}
    for record in source.files:
        key = file_key(record.relative_path)
        existing = target_files.get(key)
        if existing is None:
            target_files[key] = target.insert_file(directory_id, record)
            counts["files_added"] += 1
            logger.debug(f"Added file '{record.relative_path}'")
        else:
            merged = merge_file(existing, record)
            if file_changed(existing, merged):
                target_files[key] = target.update_file(merged)
                counts["files_updated"] += 1
                logger.debug(f"Updated file '{existing.relative_path}'")
        file_ids[record.id] = target_files[key].id

    # Associations
    linked: Set[Tuple[int, int]] = {
        (a.file_record_id, a.tag_id) for a in target.all_associations(directory_id)
    }
    for association in source.associations:
        file_id = file_ids.get(association.file_record_id)
        tag_id = tag_ids.get(association.tag_id)
        if file_id is None or tag_id is None:
            logger.debug(f"Skipping dangling association {association.id}")
            continue
        if (file_id, tag_id) in linked:
            continue
        target.link_file_tag(file_id, tag_id)
        linked.add((file_id, tag_id))
        counts["associations_added"] += 1

    return counts


def prune_store(source: StoreSnapshot, target: RecordStore, directory_id: int) -> Counter:
    """Remove target records of one directory that have no counterpart in ``source``.

    Returns:
        Counter with keys associations_pruned, tags_pruned and files_pruned
    """
    counts: Counter = Counter()

    source_tags = {t.id: identity_key(t.name.strip()) for t in source.tags}
    source_files = {f.id: file_key(f.relative_path) for f in source.files}
    source_pairs = {
        (source_files.get(a.file_record_id), source_tags.get(a.tag_id)) for a in source.associations
    }

    target_tags = {t.id: identity_key(t.name) for t in target.all_tags(directory_id)}
    target_files = {f.id: file_key(f.relative_path) for f in target.all_files(directory_id)}

    stale_links = [
        a.id
        for a in target.all_associations(directory_id)
        if (target_files.get(a.file_record_id), target_tags.get(a.tag_id)) not in source_pairs
    ]
    counts["associations_pruned"] = target.delete_associations(stale_links)

    kept_tags = set(source_tags.values())
    for tag_id, key in target_tags.items():
        if key not in kept_tags and target.delete_tag_by_id(tag_id):
            counts["tags_pruned"] += 1

    kept_files = set(source_files.values())
    for file_id, key in target_files.items():
        if key not in kept_files and target.remove_file(file_id):
            counts["files_pruned"] += 1

    return counts


class SyncEngine:
    """Pull/Push/Cleanup/Merge over one open central store."""

    def __init__(self, central: RecordStore, config: Settings):
        """Initialize sync engine.

        Args:
            central: Open central store; committed by the engine, closed by the caller
            config: Settings with satellite layout and release timing
        """
        self.central = central
        self.config = config

    def _release(self) -> None:
        release_all_connections(self.config.RELEASE_DELAY_SECONDS)

    def _watched(self, directory_path: PathLike) -> Optional[DirectoryData]:
        directory = self.central.find_directory(str(directory_path))
        if directory is None or not directory.is_active:
            return None
        return directory

    def read_satellite(self, location: Path) -> StoreSnapshot:
        """Load a satellite completely, read-only, and close it again."""
        with RecordStore.open_satellite(location, self.config, read_only=True) as satellite:
            return satellite.snapshot()

    # Pull

    def pull(self, directory_path: PathLike) -> PullResult:
        """Import every satellite of a watched directory into the central store.

        Args:
            directory_path: Watched directory

        Returns:
            PullResult; unreadable satellites are listed in ``errors``
        """
        result = PullResult(directory_path=str(directory_path))
        directory = self._watched(directory_path)
        if directory is None:
            result.errors.append(f"Not a watched directory: {directory_path}")
            return result

        result.directory_path = directory.path
        locations = satellite_locations(directory.path, self.config)
        result.found = len(locations)
        for location in locations:
            self.pull_location(directory, location, result)

        self.central.touch_directory(directory.id)
        self.central.commit()
        self._release()

        logger.info(
            f"Pulled {result.pulled}/{result.found} satellite(s) of {directory.path}: "
            f"{result.tags_imported} tag(s), {result.files_imported} file(s), "
            f"{result.associations_imported} association(s) imported"
        )
        return result

    def pull_location(self, directory: DirectoryData, location: Path, result: PullResult) -> bool:
        """Import one satellite into the central store and commit.

        Returns:
            True if the satellite was read and applied
        """
        try:
            snapshot = self.read_satellite(location)
        except RECOVERABLE_ERRORS as e:
            self._record(result, location, e, "Pull")
            return False

        try:
            counts = apply_snapshot(snapshot, self.central, directory.id, errors=result.errors)
            self.central.commit()
        except RECOVERABLE_ERRORS as e:
            self.central.rollback()
            self._record(result, location, e, "Pull")
            return False

        result.pulled += 1
        result.tags_imported += counts["tags_added"]
        result.tags_updated += counts["tags_updated"]
        result.files_imported += counts["files_added"]
        result.files_updated += counts["files_updated"]
        result.associations_imported += counts["associations_added"]
        return True

    def pull_all(self) -> List[PullResult]:
        """Pull every active directory."""
        return [self.pull(d.path) for d in self.central.all_directories(active_only=True)]

    # Push

    def push(
        self,
        directory_path: PathLike,
        prune: Optional[bool] = None,
        edit: Optional[SatelliteEdit] = None,
    ) -> PushResult:
        """Mirror the central records of a directory into its canonical satellite.

        The satellite is created if absent. Satellite-only records are kept
        unless pruning is requested. Central tag names overwrite the
        satellite spelling, so case-only renames reach the satellite.

        Args:
            directory_path: Watched directory
            prune: Remove satellite-only records; defaults to PUSH_PRUNES_SATELLITE
            edit: Change replayed on the satellite, in the same transaction,
                before the mirror pass (for example removing one association)

        Returns:
            PushResult; write failures are listed in ``errors``

        Raises:
            StorageUnavailable: The satellite could not be opened or created
        """
        result = PushResult(directory_path=str(directory_path))
        directory = self._watched(directory_path)
        if directory is None:
            result.errors.append(f"Not a watched directory: {directory_path}")
            return result

        if prune is None:
            prune = self.config.PUSH_PRUNES_SATELLITE

        result.directory_path = directory.path
        source = self.central.snapshot(directory.id)
        location = canonical_location(directory.path, self.config)

        satellite = RecordStore.open_satellite(location, self.config)
        try:
            local = satellite.local_directory(directory.path)
            if edit is not None:
                edit(satellite, local.id)
            counts = apply_snapshot(source, satellite, local.id, adopt_names=True, errors=result.errors)
            if prune:
                counts.update(prune_store(source, satellite, local.id))
            satellite.touch_directory(local.id)
            satellite.commit()
        except RECOVERABLE_ERRORS as e:
            satellite.rollback()
            self._record(result, location, e, "Push")
            counts = Counter()
        finally:
            satellite.close()
            self._release()

        result.tags_exported = counts["tags_added"]
        result.tags_updated = counts["tags_updated"]
        result.files_exported = counts["files_added"]
        result.files_updated = counts["files_updated"]
        result.associations_exported = counts["associations_added"]
        result.tags_pruned = counts["tags_pruned"]
        result.files_pruned = counts["files_pruned"]
        result.associations_pruned = counts["associations_pruned"]

        logger.info(
            f"Pushed {directory.path}: {result.tags_exported} tag(s), "
            f"{result.files_exported} file(s), {result.associations_exported} association(s) exported"
        )
        return result

    def push_all(self) -> List[PushResult]:
        """Push every active directory; a satellite that cannot be opened is reported, not raised."""
        results = []
        for directory in self.central.all_directories(active_only=True):
            try:
                results.append(self.push(directory.path))
            except StorageUnavailable as e:
                result = PushResult(directory_path=directory.path)
                self._record(result, canonical_location(directory.path, self.config), e, "Push")
                results.append(result)
        return results

    # Cleanup

    def cleanup(self, directory_path: PathLike) -> CleanupResult:
        """Pull, delete every satellite of the directory, then push one fresh satellite."""
        result = CleanupResult(directory_path=str(directory_path))
        directory = self._watched(directory_path)
        if directory is None:
            result.errors.append(f"Not a watched directory: {directory_path}")
            return result
        result.directory_path = directory.path

        pull_result = self.pull(directory.path)
        result.pull_result = pull_result
        result.errors.extend(pull_result.errors)

        self._release()
        for location in satellite_locations(directory.path, self.config):
            if safe_delete(
                location,
                result.errors,
                attempts=self.config.DELETE_RETRY_ATTEMPTS,
                delay=self.config.RELEASE_DELAY_SECONDS,
            ):
                result.directories_deleted += 1

        try:
            push_result = self.push(directory.path)
            result.push_result = push_result
            result.errors.extend(push_result.errors)
        except StorageUnavailable as e:
            self._record(result, canonical_location(directory.path, self.config), e, "Push")

        logger.info(
            f"Cleaned up {directory.path}: {result.directories_deleted} satellite folder(s) "
            f"deleted, {len(result.errors)} error(s)"
        )
        return result

    # Merge

    def merge_duplicates(self) -> MergeResult:
        """Fold every duplicate satellite of every active directory into the central store.

        Only duplicates that were read successfully are deleted; the
        canonical satellite always stays. A directory left without a
        canonical satellite gets a fresh one pushed.

        Returns:
            MergeResult aggregated over all directories
        """
        result = MergeResult()
        for directory in self.central.all_directories(active_only=True):
            try:
                self._merge_directory(directory, result)
            except RECOVERABLE_ERRORS as e:
                self.central.rollback()
                self._record(result, directory.path, e, "Merge")

        logger.info(
            f"Merged {result.duplicate_databases_found} duplicate satellite(s) in "
            f"{result.directories_with_duplicates} directories, "
            f"{result.duplicate_databases_deleted} deleted"
        )
        return result

    def _merge_directory(self, directory: DirectoryData, result: MergeResult) -> None:
        duplicates = duplicate_locations(directory.path, self.config)
        if not duplicates:
            return

        result.directories_with_duplicates += 1
        result.duplicate_databases_found += len(duplicates)

        canonical = canonical_location(directory.path, self.config)
        had_canonical = has_store(canonical, self.config)

        pull_result = PullResult(directory_path=directory.path)
        if had_canonical:
            self.pull_location(directory, canonical, pull_result)
        merged = [location for location in duplicates if self.pull_location(directory, location, pull_result)]
        self.central.touch_directory(directory.id)
        self.central.commit()

        result.tags_merged += pull_result.tags_imported + pull_result.tags_updated
        result.files_merged += pull_result.files_imported + pull_result.files_updated
        result.associations_merged += pull_result.associations_imported
        result.errors.extend(pull_result.errors)

        self._release()
        for location in merged:
            if safe_delete(
                location,
                result.errors,
                attempts=self.config.DELETE_RETRY_ATTEMPTS,
                delay=self.config.RELEASE_DELAY_SECONDS,
            ):
                result.duplicate_databases_deleted += 1

        if not had_canonical:
            push_result = self.push(directory.path)
            result.errors.extend(push_result.errors)

    @staticmethod
    def _record(result, path, exc: BaseException, action: str) -> None:
        message = describe_failure(path, exc, action=action)
        logger.warning(message)
        result.errors.append(message)
