"""Error taxonomy for the tag store and reconciliation engine."""
import errno
import sqlite3
from typing import Optional

from sqlalchemy.exc import OperationalError

LOCKED_RESOURCE_HINT = "Close other applications accessing this database and try again."

# Windows ERROR_SHARING_VIOLATION / ERROR_LOCK_VIOLATION
_WINDOWS_LOCK_ERRORS = {32, 33}


class FileTaggerError(Exception):
    """Base class for all File Tagger errors."""


class StorageUnavailable(FileTaggerError):
    """A record store could not be opened (locked, permission denied, disk full, corrupt)."""

    def __init__(self, path, reason: str = ""):
        self.path = str(path)
        self.reason = reason
        message = f"Storage unavailable: {self.path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RecordConflict(FileTaggerError):
    """A write would violate a uniqueness or ownership constraint."""


class LockedResource(FileTaggerError):
    """Another process holds a satellite database or its folder."""

    def __init__(self, path, reason: str = ""):
        self.path = str(path)
        self.reason = reason
        message = f"'{self.path}' is locked"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(f"{message}. {LOCKED_RESOURCE_HINT}")


class MissingFile(FileTaggerError):
    """A file path does not exist on disk."""

    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"File not found: {self.path}")


class InvalidDirectory(FileTaggerError):
    """A path given as a watched directory is not an existing directory."""

    def __init__(self, path):
        self.path = str(path)
        super().__init__(f"Not an existing directory: {self.path}")


class NotWatched(FileTaggerError):
    """A file lies outside every active watched directory."""

    def __init__(self, path):
        self.path = str(path)
        super().__init__(
            f"This file is not in a watched directory: {self.path}. "
            "Add the directory to File Tagger first."
        )


def is_lock_error(exc: BaseException) -> bool:
    """Return True when ``exc`` looks like a lock held by another process."""
    if isinstance(exc, LockedResource):
        return True
    if isinstance(exc, PermissionError):
        return True
    if isinstance(exc, OSError):
        if getattr(exc, "winerror", None) in _WINDOWS_LOCK_ERRORS:
            return True
        if exc.errno in (errno.EBUSY, errno.EACCES):
            return True
    if isinstance(exc, OperationalError):
        exc = exc.orig
    if isinstance(exc, sqlite3.OperationalError):
        message = str(exc).lower()
        return "locked" in message or "busy" in message
    if isinstance(exc, StorageUnavailable):
        return "locked" in exc.reason.lower()
    return False


def describe_failure(path, exc: BaseException, action: Optional[str] = None) -> str:
    """Render a per-path failure as an ``errors`` list entry."""
    if is_lock_error(exc):
        reason = f"{action} failed: {exc}" if action else str(exc)
        return str(LockedResource(path, reason))
    prefix = f"{action} failed for" if action else "Error in"
    return f"{prefix} '{path}': {exc}"
