"""Repository exports."""
from filetagger.repositories.directory_repository import DirectoryRepository
from filetagger.repositories.file_repository import FileRepository
from filetagger.repositories.file_tag_repository import FileTagRepository
from filetagger.repositories.record_store import RecordStore
from filetagger.repositories.tag_repository import TagRepository

__all__ = [
    "DirectoryRepository",
    "TagRepository",
    "FileRepository",
    "FileTagRepository",
    "RecordStore",
]
