"""Database models."""
from filetagger.models.directory import Directory
from filetagger.models.file_record import FileRecord
from filetagger.models.file_tag import FileTag
from filetagger.models.tag import Tag

__all__ = [
    "Directory",
    "Tag",
    "FileRecord",
    "FileTag",
]
