"""Exclude-filter support for the directory walk.

Combines ``--ext`` extension excludes, ``--dir-exclude`` substrings and
``--regex-exclude`` patterns into the two predicates used by
``_walk.iter_files`` and the reconciliation engine.

Rules are applied in a fixed order: hidden files and extensions first (files
only), then directory substrings (directories only), then the regular
expressions.  For files the expressions are matched against the bare file
name; for directories against the full path.
"""

from __future__ import annotations

import os
import re
from typing import Iterable, Sequence

from .exceptions import OptionsError


def normalize_extension(ext: str) -> str:
    """Return *ext* upper-cased with a single leading dot (``txt`` → ``.TXT``)."""
    ext = ext.strip()
    if not ext.startswith("."):
        ext = "." + ext
    return ext.upper()


def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a case-insensitive exclude expression, raising ``OptionsError``."""
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise OptionsError(f"Invalid exclude expression {pattern!r}: {exc}") from None


class ExcludeFilter:
    """Combines extension, directory-substring and pattern excludes."""

    def __init__(
        self,
        *,
        extensions: Iterable[str] | None = None,
        directories: Sequence[str] | None = None,
        patterns: Sequence[str] | None = None,
    ) -> None:
        self._extensions: frozenset[str] = frozenset(
            normalize_extension(e) for e in extensions or ()
        )
        self._directories: tuple[str, ...] = tuple(d for d in directories or () if d)
        self._patterns: tuple[re.Pattern[str], ...] = tuple(
            compile_pattern(p) for p in patterns or ()
        )

    # ------------------------------------------------------------------
    def is_file_excluded(self, path: str, *, hidden: bool = False) -> bool:
        """Return True if the file at *path* must not appear in the manifest.

        *hidden* is the caller's view of the platform hidden attribute;
        ``_walk.is_hidden`` computes it.
        """
        if hidden:
            return True
        name = os.path.basename(path)
        _root, ext = os.path.splitext(name)
        if ext and ext.upper() in self._extensions:
            return True
        for rx in self._patterns:
            if rx.search(name):
                return True
        return False

    # ------------------------------------------------------------------
    def is_directory_excluded(self, path: str) -> bool:
        """Return True if the walk must not descend into directory *path*."""
        for sub in self._directories:
            if sub in path:
                # Substring hits short-circuit the expression checks
                return True
        for rx in self._patterns:
            if rx.search(path):
                return True
        return False
