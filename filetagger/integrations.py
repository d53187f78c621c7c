"""Interfaces of the collaborators around the tag engine.

The desktop shell extension and the search-results staging area live outside
this package; these protocols describe what the engine needs from them.
"""
from typing import Optional, Protocol


class ShellIntegration(Protocol):
    """Context-menu integration; decides whether to offer "Manage tags" for a path."""

    def is_path_inside_any_watched_directory(self, path: str) -> bool:
        ...


class TempResultsResolver(Protocol):
    """Maps files copied into a temporary results folder back to their originals."""

    def is_temp_path(self, path: str) -> bool:
        ...

    def resolve_original_path(self, temp_path: str) -> Optional[str]:
        ...
