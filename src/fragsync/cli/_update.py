"""The update and placeholders commands."""

from __future__ import annotations

import click

from .._alias import AliasTranslator
from ..model import load_manifest
from ..patch import create_placeholder_files
from ..reconcile import update_file
from ._helpers import (
    main,
    EXIT_DIFFERENT,
    _exclude_options,
    _status,
    _translate_errors,
)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@_exclude_options
@click.option("--patch-update", is_flag=True, default=False,
              help="Keep removed files as Transitive components for patching.")
@click.option("--patch-create-files", is_flag=True, default=False,
              help="With --patch-update, create zero-byte files for removed entries.")
@click.option("--report-if-different", is_flag=True, default=False,
              help="Exit with status 4 if the output differs from FILE.")
@click.pass_context
def update(ctx, file, extensions, dir_excludes, regex_excludes,
           patch_update, patch_create_files, report_if_different):
    """Reconcile FILE with the disk and write FILE's .PARAFFIN sibling.

    Settings come from the options header recorded in FILE; exclusions
    given here are added to them.  Ids of files still on disk are kept.

    \b
    Examples:
        fragsync update Files.wxs
        fragsync update Files.wxs --ext pdb --report-if-different
        fragsync update Files.wxs --patch-update --patch-create-files
    """
    if patch_create_files and not patch_update:
        raise click.UsageError("--patch-create-files requires --patch-update", ctx=ctx)

    with _translate_errors(ctx):
        result = update_file(
            file,
            extensions=extensions,
            directories=dir_excludes,
            patterns=regex_excludes,
            patch_update=patch_update,
            patch_create_files=patch_create_files,
        )
    report = result.report
    _status(ctx, f"Wrote {result.output_path} ({len(report.added)} added, "
                 f"{len(report.preserved)} kept, {len(report.removed)} removed)")
    for path in report.placeholders:
        _status(ctx, f"Created placeholder {path}")

    if report_if_different and result.differs:
        click.echo(f"{result.output_path} differs from {file}", err=True)
        ctx.exit(EXIT_DIFFERENT)


@main.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def placeholders(ctx, file):
    """Create zero-byte files for every removed entry recorded in FILE.

    Existing files are left alone, so this is safe to run repeatedly.
    """
    with _translate_errors(ctx):
        manifest = load_manifest(file)
        options = manifest.options
        created = create_placeholder_files(
            manifest, AliasTranslator(options.start_directory, options.alias),
        )
    for path in created:
        _status(ctx, f"Created placeholder {path}")
    _status(ctx, f"{len(created)} placeholder file(s) created")
