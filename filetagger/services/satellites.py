"""Satellite location discovery.

A watched directory keeps its satellite store in a hidden folder
(``.filetagger/tags.db`` by default). File-sync tools that hit a conflict
leave numbered copies of that folder next to it, such as ``.filetagger (1)``
or ``.filetagger_2``. Those are duplicate satellites.
"""
import logging
import os
import re
from pathlib import Path
from typing import List

from filetagger.core.config import Settings
from filetagger.core.paths import PathLike, path_key

logger = logging.getLogger(__name__)


def canonical_location(directory_path: PathLike, config: Settings) -> Path:
    """Folder of the directory's canonical satellite (whether or not it exists)."""
    return Path(os.fspath(directory_path)) / config.SATELLITE_DIR_NAME


def is_satellite_folder(name: str, config: Settings) -> bool:
    """Whether a folder name is the canonical satellite name or a numbered duplicate of it."""
    base = config.SATELLITE_DIR_NAME
    if name == base:
        return True
    for pattern in config.DUPLICATE_NAME_PATTERNS:
        regex = re.escape(pattern).replace(re.escape("{base}"), re.escape(base))
        regex = regex.replace(re.escape("{index}"), "[0-9]+")
        if re.fullmatch(regex, name):
            return True
    return False


def has_store(location: Path, config: Settings) -> bool:
    """A location counts only when its database file exists."""
    return config.satellite_db_path(location).is_file()


def duplicate_locations(directory_path: PathLike, config: Settings) -> List[Path]:
    """Existing duplicate satellite folders, by ascending index then pattern order.

    Args:
        directory_path: Watched directory
        config: Settings with the folder name, name patterns and scan bound

    Returns:
        Duplicate locations that hold a database file
    """
    root = Path(os.fspath(directory_path))
    base = config.SATELLITE_DIR_NAME
    seen = set()
    found = []

    for index in range(1, config.DUPLICATE_SCAN_LIMIT + 1):
        for pattern in config.DUPLICATE_NAME_PATTERNS:
            location = root / pattern.format(base=base, index=index)
            key = path_key(location)
            if key in seen:
                continue
            seen.add(key)
            if has_store(location, config):
                found.append(location)

    return found


def satellite_locations(directory_path: PathLike, config: Settings) -> List[Path]:
    """Every existing satellite of a directory: canonical first, then duplicates."""
    locations = []
    canonical = canonical_location(directory_path, config)
    if has_store(canonical, config):
        locations.append(canonical)
    locations.extend(duplicate_locations(directory_path, config))

    logger.debug(f"Found {len(locations)} satellite location(s) in {directory_path}")
    return locations
