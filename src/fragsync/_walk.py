"""Directory enumeration for manifest generation.

Both iterators are lazy and hold no state between calls, so a walk can be
restarted at any directory.  Entries come back in ordinal name order so
that repeated runs over an unchanged tree produce the same document.
"""

from __future__ import annotations

import os
import stat
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from ._exclude import ExcludeFilter

#: Manifest-injection files live beside payload files but are never payload.
MOLD_EXTENSION = ".paraffinmold"


def is_hidden(entry: os.DirEntry) -> bool:
    """Return True for hidden files.

    Windows reports a hidden attribute; elsewhere a leading dot is the
    convention.
    """
    attrs = getattr(entry.stat(), "st_file_attributes", None)
    if attrs is not None:
        return bool(attrs & stat.FILE_ATTRIBUTE_HIDDEN)
    return entry.name.startswith(".")


def is_mold_file(name: str) -> bool:
    return name.lower().endswith(MOLD_EXTENSION)


def _sorted_entries(directory: str) -> list[os.DirEntry]:
    with os.scandir(directory) as it:
        return sorted(it, key=lambda e: e.name)


def iter_files(directory: str, exclude: ExcludeFilter | None = None) -> Iterator[str]:
    """Yield full paths of the payload files directly inside *directory*."""
    for entry in _sorted_entries(directory):
        if not entry.is_file():
            continue
        if is_mold_file(entry.name):
            continue
        if exclude is not None and exclude.is_file_excluded(
            entry.path, hidden=is_hidden(entry),
        ):
            continue
        yield entry.path


def iter_subdirectories(
    directory: str, exclude: ExcludeFilter | None = None,
) -> Iterator[str]:
    """Yield full paths of the non-excluded subdirectories of *directory*."""
    for entry in _sorted_entries(directory):
        if not entry.is_dir():
            continue
        if exclude is not None and exclude.is_directory_excluded(entry.path):
            continue
        yield entry.path
