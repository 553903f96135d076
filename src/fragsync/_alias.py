"""Starting-directory alias substitution for recorded source paths."""

from __future__ import annotations

import os


def normalize_alias(alias: str | None) -> str:
    """Return *alias* ending with a path separator, or ``""`` if unset."""
    if not alias:
        return ""
    if not alias.endswith(("/", "\\")):
        alias += os.sep
    return alias


def full_start_directory(start_directory: str) -> str:
    """Absolute form of *start_directory*, always ending with a separator."""
    full = os.path.abspath(start_directory)
    if not full.endswith(os.sep):
        full += os.sep
    return full


class AliasTranslator:
    """Swap the starting-directory prefix of a path for its alias and back.

    A translator with no alias returns paths unchanged.
    """

    def __init__(self, start_directory: str, alias: str | None = None) -> None:
        self.start = full_start_directory(start_directory)
        self.alias = normalize_alias(alias)

    def __bool__(self) -> bool:
        return bool(self.alias)

    def to_alias(self, path: str) -> str:
        """Return the source path to record for on-disk *path*."""
        if self.alias and path.startswith(self.start):
            return self.alias + path[len(self.start):]
        return path

    def from_alias(self, source: str) -> str:
        """Return the on-disk path for a recorded *source* path."""
        if self.alias and source.startswith(self.alias):
            return self.start + source[len(self.alias):]
        return source
