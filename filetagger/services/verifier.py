"""File-existence verification for the central store."""
import logging
import os
from typing import Dict, Set

from filetagger.core.paths import to_absolute_path
from filetagger.repositories.record_store import RecordStore
from filetagger.schemas import VerificationResult
from filetagger.services.identity_matcher import identity_key

logger = logging.getLogger(__name__)


def verify_and_cleanup_tagged_files(central: RecordStore) -> VerificationResult:
    """Remove central file records whose file no longer exists.

    Associations of a missing file are deleted before the record itself. Records
    of a directory whose root folder is unavailable (for example an unplugged
    drive) are left alone and the directory is reported in ``errors``.
    Satellites and user files are never touched.

    Args:
        central: Open central store; committed on success

    Returns:
        VerificationResult with the missing paths and the names of the tags
        that lost an association
    """
    result = VerificationResult()
    directories = {d.id: d for d in central.all_directories()}
    unavailable: Set[str] = set()
    affected: Dict[str, str] = {}

    for record in central.all_files():
        directory = directories.get(record.directory_id)
        if directory is None:
            continue
        if not os.path.isdir(directory.path):
            unavailable.add(directory.path)
            continue

        result.total_checked += 1
        full_path = to_absolute_path(directory.path, record.relative_path)
        if os.path.isfile(full_path):
            result.existing += 1
            continue

        for tag in central.tags_for(record.id):
            affected.setdefault(identity_key(tag.name), tag.name)
        central.remove_file(record.id)
        result.missing_files.append(full_path)
        logger.debug(f"Removed record of missing file {full_path}")

    central.commit()

    result.missing_count = len(result.missing_files)
    result.affected_tags = sorted(affected.values(), key=identity_key)
    for path in sorted(unavailable):
        message = f"Directory unavailable, its files were not verified: {path}"
        logger.warning(message)
        result.errors.append(message)

    logger.info(
        f"Verified {result.total_checked} file(s): {result.existing} present, "
        f"{result.missing_count} missing"
    )
    return result
