"""Shared fixtures for fragsync tests."""

import itertools

import pytest
from click.testing import CliRunner

from fragsync.options import ManifestOptions


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def tokens():
    """Deterministic replacement for the random id token source."""
    counter = itertools.count(1)
    return lambda: f"{next(counter):032x}"


@pytest.fixture
def payload(tmp_path):
    """A small payload tree.

    Tree:
        payload/readme.txt, payload/app.exe,
        payload/lib/core.dll, payload/lib/data/table.csv
    """
    root = tmp_path / "payload"
    root.mkdir()
    (root / "readme.txt").write_text("readme")
    (root / "app.exe").write_bytes(b"MZ\x90\x00")
    lib = root / "lib"
    lib.mkdir()
    (lib / "core.dll").write_bytes(b"MZ\x00\x01")
    data = lib / "data"
    data.mkdir()
    (data / "table.csv").write_text("a,b\n1,2\n")
    return root


@pytest.fixture
def make_options(payload):
    """Build ManifestOptions for the payload tree with overrides."""
    def _make(**kwargs):
        kwargs.setdefault("group_name", "G")
        kwargs.setdefault("start_directory", str(payload))
        return ManifestOptions(**kwargs)
    return _make
