"""Deletion of satellite folders that may still be held open."""
import logging
import os
import shutil
import time
from typing import List

from filetagger.core.database import release_all_connections
from filetagger.core.errors import LockedResource

logger = logging.getLogger(__name__)


def safe_delete(path: os.PathLike, errors: List[str], attempts: int = 3, delay: float = 0.15) -> bool:
    """Delete a satellite folder, retrying while it is locked.

    Every store connection of this process is released before each attempt.
    When all attempts fail, a message naming the path is appended to
    ``errors`` together with the close-other-applications hint.

    Args:
        path: Folder to delete
        errors: List collecting failure messages
        attempts: Number of delete attempts
        delay: Seconds to wait after releasing connections

    Returns:
        True if the folder is gone (a path that no longer exists counts as deleted)
    """
    last_error = None

    for attempt in range(1, max(attempts, 1) + 1):
        release_all_connections(delay)
        if not os.path.exists(path):
            return True
        try:
            shutil.rmtree(path)
            logger.info(f"Deleted satellite folder {path}")
            return True
        except FileNotFoundError:
            return True
        except OSError as e:
            last_error = e
            logger.debug(f"Delete attempt {attempt}/{attempts} failed for {path}: {e}")
            if delay > 0:
                time.sleep(delay)

    message = str(LockedResource(path, f"could not delete folder: {last_error}"))
    logger.warning(message)
    errors.append(message)
    return False
