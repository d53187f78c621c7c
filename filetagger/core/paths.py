"""Path helpers shared by the store and the services."""
import os
from pathlib import Path
from typing import Union

PathLike = Union[str, os.PathLike]


def normalize_directory_path(path: PathLike) -> str:
    """Absolute directory path without a trailing separator."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def path_key(path: PathLike) -> str:
    """Case-insensitive comparison key for an absolute path."""
    return normalize_directory_path(path).replace("\\", "/").casefold()


def to_relative_path(directory: PathLike, file_path: PathLike) -> str:
    """Path of ``file_path`` relative to ``directory``, ``/`` separated."""
    relative = os.path.relpath(os.path.abspath(os.fspath(file_path)), normalize_directory_path(directory))
    return Path(relative).as_posix()


def to_absolute_path(directory: PathLike, relative_path: str) -> str:
    """Join a stored ``/`` separated relative path onto ``directory``."""
    parts = [part for part in relative_path.replace("\\", "/").split("/") if part]
    return os.path.join(normalize_directory_path(directory), *parts)


def is_inside(path: PathLike, directory: PathLike) -> bool:
    """True when ``path`` is ``directory`` itself or lies below it (case-insensitive)."""
    path_parts = path_key(path).rstrip("/").split("/")
    directory_parts = path_key(directory).rstrip("/").split("/")
    return path_parts[: len(directory_parts)] == directory_parts
