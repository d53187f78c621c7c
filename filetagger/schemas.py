"""Plain record snapshots and operation result payloads."""
import os
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from filetagger.core.errors import LOCKED_RESOURCE_HINT


# Record snapshots, detached from any session
class DirectoryData(BaseModel):
    """Snapshot of a directory row."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    path: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_sync_at: Optional[datetime] = None


class TagData(BaseModel):
    """Snapshot of a tag row."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    directory_id: Optional[int] = None
    name: str
    description: str = ""
    created_at: datetime
    last_used_at: datetime


class FileData(BaseModel):
    """Snapshot of a file record row."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    directory_id: Optional[int] = None
    file_name: str
    relative_path: str
    last_modified: datetime
    file_size: int = 0
    created_at: datetime


class FileTagData(BaseModel):
    """Snapshot of a file/tag association row."""
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    file_record_id: int
    tag_id: int
    created_at: Optional[datetime] = None


class StoreSnapshot(BaseModel):
    """Full in-memory copy of one store (or one directory of it)."""

    directories: List[DirectoryData] = Field(default_factory=list)
    tags: List[TagData] = Field(default_factory=list)
    files: List[FileData] = Field(default_factory=list)
    associations: List[FileTagData] = Field(default_factory=list)


# Query results
class TagInfo(BaseModel):
    """A tag aggregated across all active directories."""

    name: str
    description: str = ""
    total_usage_count: int = 0
    source_directories: List[str] = Field(default_factory=list)

    @property
    def source_directories_string(self) -> str:
        return "; ".join(os.path.basename(path) or path for path in self.source_directories)


class FileWithTags(BaseModel):
    """A file discovered in a watched directory with its tags."""

    file_name: str
    full_path: str
    directory_path: str
    last_modified: Optional[datetime] = None
    file_size: int = 0
    tags: List[str] = Field(default_factory=list)

    @property
    def is_tagged(self) -> bool:
        return bool(self.tags)

    @property
    def tags_string(self) -> str:
        return ", ".join(self.tags)

    @property
    def file_size_formatted(self) -> str:
        size = self.file_size
        if size < 1024:
            return f"{size} B"
        if size < 1024 * 1024:
            return f"{size / 1024:.1f} KB"
        if size < 1024 * 1024 * 1024:
            return f"{size / (1024 * 1024):.1f} MB"
        return f"{size / (1024 * 1024 * 1024):.1f} GB"


# Operation results
class OperationResult(BaseModel):
    """Counters plus the errors collected by a best-effort operation."""

    errors: List[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def locked_resource_detected(self) -> bool:
        """True when any error calls for closing other applications."""
        return any(LOCKED_RESOURCE_HINT in error for error in self.errors)

    def error_preview(self, limit: int = 5) -> str:
        """First ``limit`` errors, one per line, plus a count of the rest."""
        lines = self.errors[:limit]
        remaining = len(self.errors) - len(lines)
        if remaining > 0:
            lines = lines + [f"... and {remaining} more error(s)"]
        return "\n".join(lines)


class PullResult(OperationResult):
    """Satellite -> central import counters."""

    directory_path: str = ""
    found: int = 0
    pulled: int = 0
    tags_imported: int = 0
    tags_updated: int = 0
    files_imported: int = 0
    files_updated: int = 0
    associations_imported: int = 0


class PushResult(OperationResult):
    """Central -> satellite export counters."""

    directory_path: str = ""
    tags_exported: int = 0
    tags_updated: int = 0
    files_exported: int = 0
    files_updated: int = 0
    associations_exported: int = 0
    tags_pruned: int = 0
    files_pruned: int = 0
    associations_pruned: int = 0


class CleanupResult(OperationResult):
    """Pull, delete every satellite, push one fresh satellite.

    ``errors`` aggregates the errors of every phase.
    """

    directory_path: str = ""
    directories_deleted: int = 0
    pull_result: Optional[PullResult] = None
    push_result: Optional[PushResult] = None


class MergeResult(OperationResult):
    """Duplicate satellite consolidation counters across all directories."""

    directories_with_duplicates: int = 0
    duplicate_databases_found: int = 0
    duplicate_databases_deleted: int = 0
    tags_merged: int = 0
    files_merged: int = 0
    associations_merged: int = 0


class VerificationResult(OperationResult):
    """Outcome of checking every tracked file against the filesystem."""

    total_checked: int = 0
    existing: int = 0
    missing_count: int = 0
    missing_files: List[str] = Field(default_factory=list)
    affected_tags: List[str] = Field(default_factory=list)
