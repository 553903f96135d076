"""Tests for the fragsync CLI."""

import logging

import pytest

from fragsync.cli import main
from fragsync.model import load_manifest


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logging.getLogger("fragsync").handlers.clear()


@pytest.fixture
def created(tmp_path, runner, payload):
    """A manifest generated from the payload tree; returns its path."""
    out = str(tmp_path / "Files.wxs")
    r = runner.invoke(main, ["create", out, "-d", str(payload), "-g", "AppFiles"])
    assert r.exit_code == 0, r.output
    return out


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------

class TestCreate:
    def test_creates_manifest(self, created):
        manifest = load_manifest(created)
        assert manifest.options.group_name == "AppFiles"
        assert len(list(manifest.iter_components())) == 4

    def test_options_recorded(self, tmp_path, runner, payload):
        out = str(tmp_path / "Files.wxs")
        r = runner.invoke(main, [
            "create", out, "-d", str(payload), "-g", "G",
            "--alias", "$(var.Out)", "--dirref", "APPDIR",
            "--ext", "pdb", "--dir-exclude", "obj", "--regex-exclude", "^x",
            "--include-file", "vars.wxi", "--norecurse", "--no-root-directory",
            "--disk-id", "2", "--win64", "yes", "--permanent", "--wix4", "--per-user",
        ])
        assert r.exit_code == 0, r.output
        opts = load_manifest(out).options
        assert opts.alias == "$(var.Out)"
        assert opts.directory_ref == "APPDIR"
        assert opts.extension_excludes == [".PDB"]
        assert opts.directory_excludes == ["obj"]
        assert opts.regex_excludes == ["^x"]
        assert opts.include_files == ["vars.wxi"]
        assert opts.no_recursion is True
        assert opts.no_root_directory is True
        assert opts.disk_id == 2
        assert opts.win64 == "yes"
        assert opts.permanent is True
        assert opts.wix4 is True
        assert opts.per_user is True

    def test_missing_group_is_usage_error(self, tmp_path, runner, payload):
        r = runner.invoke(main, ["create", str(tmp_path / "F.wxs"), "-d", str(payload)])
        assert r.exit_code == 1

    def test_missing_directory_is_usage_error(self, tmp_path, runner):
        r = runner.invoke(main, [
            "create", str(tmp_path / "F.wxs"), "-d", str(tmp_path / "nope"), "-g", "G",
        ])
        assert r.exit_code == 1

    def test_long_group_name_rejected(self, tmp_path, runner, payload):
        r = runner.invoke(main, [
            "create", str(tmp_path / "F.wxs"), "-d", str(payload), "-g", "x" * 65,
        ])
        assert r.exit_code == 1
        assert "group name" in r.output

    def test_bad_regex_rejected(self, tmp_path, runner, payload):
        r = runner.invoke(main, [
            "create", str(tmp_path / "F.wxs"), "-d", str(payload), "-g", "G",
            "--regex-exclude", "(",
        ])
        assert r.exit_code == 1

    def test_verbose_progress(self, tmp_path, runner, payload):
        out = str(tmp_path / "Files.wxs")
        r = runner.invoke(main, ["-v", "create", out, "-d", str(payload), "-g", "G"])
        assert r.exit_code == 0, r.output
        assert "Creating component for" in r.output
        assert "Wrote" in r.output


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------

class TestUpdate:
    def test_writes_paraffin_file(self, created, tmp_path, runner):
        r = runner.invoke(main, ["update", created])
        assert r.exit_code == 0, r.output
        assert (tmp_path / "Files.PARAFFIN").exists()

    def test_unchanged_not_reported(self, created, runner):
        r = runner.invoke(main, ["update", created, "--report-if-different"])
        assert r.exit_code == 0, r.output

    def test_different_reported(self, created, runner, payload):
        (payload / "new.txt").write_text("n")
        r = runner.invoke(main, ["update", created, "--report-if-different"])
        assert r.exit_code == 4
        assert "differs" in r.output

    def test_different_without_flag_succeeds(self, created, runner, payload):
        (payload / "new.txt").write_text("n")
        r = runner.invoke(main, ["update", created])
        assert r.exit_code == 0, r.output

    def test_extra_excludes(self, created, tmp_path, runner):
        r = runner.invoke(main, ["update", created, "--ext", "csv"])
        assert r.exit_code == 0, r.output
        manifest = load_manifest(str(tmp_path / "Files.PARAFFIN"))
        assert manifest.options.extension_excludes == [".CSV"]
        assert len(list(manifest.iter_components())) == 3

    def test_patch_update_creates_placeholders(self, created, runner, payload):
        (payload / "readme.txt").unlink()
        r = runner.invoke(main, ["update", created, "--patch-update", "--patch-create-files"])
        assert r.exit_code == 0, r.output
        assert (payload / "readme.txt").stat().st_size == 0

    def test_patch_create_files_requires_patch_update(self, created, runner):
        r = runner.invoke(main, ["update", created, "--patch-create-files"])
        assert r.exit_code == 1
        assert "--patch-update" in r.output

    def test_patch_conflict(self, created, runner, payload):
        (payload / "readme.txt").unlink()
        r = runner.invoke(main, ["update", created, "--patch-update", "--patch-create-files"])
        assert r.exit_code == 0, r.output
        paraffin = created.replace(".wxs", ".PARAFFIN")
        (payload / "readme.txt").write_text("back again")
        r = runner.invoke(main, ["update", paraffin, "--patch-update"])
        assert r.exit_code == 1
        assert "Transitive" in r.output

    def test_key_path_warning_shown(self, created, runner):
        with open(created, encoding="utf-8") as f:
            text = f.read()
        text = text.replace(' KeyPath="yes"', "", 1)
        with open(created, "w", encoding="utf-8") as f:
            f.write(text)
        r = runner.invoke(main, ["update", created])
        assert r.exit_code == 0, r.output
        assert "WARNING - Adding KeyPath to File" in r.output

    def test_not_a_manifest(self, tmp_path, runner):
        path = tmp_path / "other.wxs"
        path.write_text('<Wix xmlns="http://schemas.microsoft.com/wix/2006/wi"><Fragment/></Wix>')
        r = runner.invoke(main, ["update", str(path)])
        assert r.exit_code == 2
        assert "recognized manifest" in r.output

    def test_not_xml(self, tmp_path, runner):
        path = tmp_path / "junk.wxs"
        path.write_text("this is not xml")
        r = runner.invoke(main, ["update", str(path)])
        assert r.exit_code == 2

    def test_multiple_files_per_component(self, created, runner):
        with open(created, encoding="utf-8") as f:
            text = f.read()
        text = text.replace("</Component>", '<File Id="extra" Source="x" /></Component>', 1)
        with open(created, "w", encoding="utf-8") as f:
            f.write(text)
        r = runner.invoke(main, ["update", created])
        assert r.exit_code == 3

    def test_newer_version(self, created, runner):
        with open(created, encoding="utf-8") as f:
            text = f.read()
        text = text.replace("<ParaffinFileVersion>2<", "<ParaffinFileVersion>9<")
        with open(created, "w", encoding="utf-8") as f:
            f.write(text)
        r = runner.invoke(main, ["update", created])
        assert r.exit_code == 1
        assert "newer" in r.output


# ---------------------------------------------------------------------------
# placeholders
# ---------------------------------------------------------------------------

class TestPlaceholders:
    def test_creates_missing_files(self, created, runner, payload):
        (payload / "readme.txt").unlink()
        r = runner.invoke(main, ["update", created, "--patch-update"])
        assert r.exit_code == 0, r.output
        assert not (payload / "readme.txt").exists()

        paraffin = created.replace(".wxs", ".PARAFFIN")
        r = runner.invoke(main, ["-v", "placeholders", paraffin])
        assert r.exit_code == 0, r.output
        assert (payload / "readme.txt").stat().st_size == 0
        assert "1 placeholder file(s) created" in r.output

        r = runner.invoke(main, ["-v", "placeholders", paraffin])
        assert r.exit_code == 0, r.output
        assert "0 placeholder file(s) created" in r.output

    def test_not_a_manifest(self, tmp_path, runner):
        path = tmp_path / "other.wxs"
        path.write_text("<Wix><!-- hello --></Wix>")
        r = runner.invoke(main, ["placeholders", str(path)])
        assert r.exit_code == 2
