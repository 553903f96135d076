"""Textual comparison of an input manifest against its reconciled output.

The check is purely ordinal: two documents that mean the same thing to the
installer toolset but differ in a single byte are reported as different.
"""

from __future__ import annotations

import os


def texts_differ(original: str, updated: str) -> bool:
    """Return True unless *original* and *updated* are the same text."""
    return original != updated


def read_text(path: str | os.PathLike[str]) -> str:
    with open(path, encoding="utf-8-sig", newline="") as f:
        return f.read()


def files_differ(input_path: str | os.PathLike[str], output_path: str | os.PathLike[str]) -> bool:
    """Compare the manifest at *input_path* with the one at *output_path*."""
    return texts_differ(read_text(input_path), read_text(output_path))
