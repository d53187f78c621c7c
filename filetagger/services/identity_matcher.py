"""Identity matching and field merging for records coming from different stores.

Identifiers are generated independently by every store, so records are matched
on their natural keys instead: tag names and file relative paths, compared
case-insensitively. The comparison always happens here, in memory, on
``str.casefold`` keys; it is never pushed down into a SQL predicate.

Nothing in this module performs I/O.
"""
from typing import Dict, Iterable, Optional, TypeVar

from filetagger.schemas import FileData, TagData

T = TypeVar("T")


def identity_key(text: str) -> str:
    """Case-insensitive identity key for names and relative paths."""
    return text.casefold()


def file_key(relative_path: str) -> str:
    """Identity key of a relative path; separators are normalised to ``/``."""
    return identity_key(relative_path.replace("\\", "/"))


def match_tag(source: TagData, candidates: Iterable[TagData]) -> Optional[TagData]:
    """Find the candidate denoting the same tag as ``source``.

    Args:
        source: Tag from the store being read
        candidates: Tags of the same directory in the store being written

    Returns:
        Matching candidate or None
    """
    key = identity_key(source.name)
    for candidate in candidates:
        if identity_key(candidate.name) == key:
            return candidate
    return None


def match_file(source: FileData, candidates: Iterable[FileData]) -> Optional[FileData]:
    """Find the candidate denoting the same file as ``source`` (by relative path)."""
    key = file_key(source.relative_path)
    for candidate in candidates:
        if file_key(candidate.relative_path) == key:
            return candidate
    return None


def index_tags(tags: Iterable[TagData]) -> Dict[str, TagData]:
    """Map identity key -> tag, for matching many records at once."""
    return {identity_key(tag.name): tag for tag in tags}


def index_files(files: Iterable[FileData]) -> Dict[str, FileData]:
    """Map identity key -> file record."""
    return {file_key(record.relative_path): record for record in files}


def merge_tag(existing: TagData, incoming: TagData, adopt_name: bool = False) -> TagData:
    """Merge an incoming tag into an existing one.

    ``last_used_at`` becomes the later of the two, ``created_at`` the earlier.
    The description comes from whichever side was used more recently; on a
    tie the existing description wins unless it is empty. The existing
    spelling of the name is kept unless ``adopt_name`` is set, in which case
    the incoming spelling (same identity key, other case) replaces it.
    """
    if incoming.last_used_at > existing.last_used_at:
        description = incoming.description
    elif incoming.last_used_at == existing.last_used_at and not existing.description:
        description = incoming.description
    else:
        description = existing.description

    return existing.model_copy(
        update={
            "name": incoming.name if adopt_name else existing.name,
            "description": description or "",
            "last_used_at": max(existing.last_used_at, incoming.last_used_at),
            "created_at": min(existing.created_at, incoming.created_at),
        }
    )


def merge_file(existing: FileData, incoming: FileData) -> FileData:
    """Merge an incoming file record into an existing one.

    ``last_modified`` becomes the later of the two; size and file name follow
    the side with the newer modification time.
    """
    newer = incoming if incoming.last_modified > existing.last_modified else existing
    return existing.model_copy(
        update={
            "file_name": newer.file_name,
            "file_size": newer.file_size,
            "last_modified": newer.last_modified,
            "created_at": min(existing.created_at, incoming.created_at),
        }
    )


def tag_changed(before: TagData, after: TagData) -> bool:
    """Whether applying a merged tag requires a write."""
    return (
        before.name != after.name
        or before.description != after.description
        or before.last_used_at != after.last_used_at
        or before.created_at != after.created_at
    )


def file_changed(before: FileData, after: FileData) -> bool:
    """Whether applying a merged file record requires a write."""
    return (
        before.file_name != after.file_name
        or before.file_size != after.file_size
        or before.last_modified != after.last_modified
        or before.created_at != after.created_at
    )
