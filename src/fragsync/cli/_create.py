"""The create command."""

from __future__ import annotations

import os

import click

from ..model import write_manifest
from ..options import DEFAULT_DIRECTORY_REF, ManifestOptions
from ..reconcile import create_manifest
from ._helpers import main, _exclude_options, _status, _translate_errors


@main.command()
@click.argument("output", type=click.Path(dir_okay=False))
@click.option("-d", "--dir", "start_directory", required=True,
              type=click.Path(exists=True, file_okay=False),
              help="Directory whose files the fragment lists.")
@click.option("-g", "--group", "group_name", required=True,
              help="ComponentGroup name (at most 64 characters).")
@click.option("--alias", default="",
              help="Replace the starting directory with this text in Source paths.")
@click.option("--dirref", "directory_ref", default=DEFAULT_DIRECTORY_REF, show_default=True,
              help="Id of the DirectoryRef the tree hangs from.")
@_exclude_options
@click.option("--include-file", "include_files", multiple=True, metavar="PATH",
              help="Emit an <?include PATH?> directive (repeatable).")
@click.option("--norecurse", "no_recursion", is_flag=True, default=False,
              help="Only list files directly in the starting directory.")
@click.option("--no-root-directory", is_flag=True, default=False,
              help="Put the starting directory's files directly under the DirectoryRef.")
@click.option("--disk-id", type=int, default=1, show_default=True,
              help="DiskId for every component (written only when above 1).")
@click.option("--win64", default="",
              help="Value for the components' Win64 attribute, e.g. 'yes' or '$(var.Win64)'.")
@click.option("--permanent", is_flag=True, default=False,
              help="Mark every component Permanent.")
@click.option("--wix4", is_flag=True, default=False,
              help="Write a WiX 4 fragment instead of WiX 3.")
@click.option("--per-user", is_flag=True, default=False,
              help="Key components on a per-user registry value.")
@click.pass_context
def create(ctx, output, start_directory, group_name, alias, directory_ref,
           extensions, dir_excludes, regex_excludes, include_files, no_recursion,
           no_root_directory, disk_id, win64, permanent, wix4, per_user):
    """Generate a new fragment OUTPUT listing the files under --dir.

    \b
    Examples:
        fragsync create Files.wxs -d build/out -g AppFiles
        fragsync create Files.wxs -d build/out -g AppFiles --alias '$(var.Out)' --ext pdb
    """
    with _translate_errors(ctx):
        options = ManifestOptions(
            group_name=group_name,
            start_directory=os.path.abspath(start_directory),
            alias=alias,
            directory_ref=directory_ref,
            no_recursion=no_recursion,
            no_root_directory=no_root_directory,
            disk_id=disk_id,
            permanent=permanent,
            win64=win64,
            wix4=wix4,
            per_user=per_user,
            extension_excludes=list(extensions),
            directory_excludes=list(dir_excludes),
            include_files=list(include_files),
            regex_excludes=list(regex_excludes),
        )
        manifest, report = create_manifest(options)
        write_manifest(manifest, output)
    _status(ctx, f"Wrote {output} ({len(report.added)} file(s))")
