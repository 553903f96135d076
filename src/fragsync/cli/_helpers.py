"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from contextlib import contextmanager

import click

from ..exceptions import (
    FragsyncError,
    MalformedManifestError,
    MultipleFilesPerComponentError,
    OptionsError,
)

# Process exit codes.
EXIT_OK = 0
EXIT_USAGE = 1
EXIT_MALFORMED = 2
EXIT_MULTIPLE_FILES = 3
EXIT_DIFFERENT = 4


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

class ClickEchoHandler(logging.Handler):
    """Send log records to stderr through :func:`click.echo`.

    Warnings are shown in yellow and errors in red.
    """

    _COLORS = {
        logging.WARNING: "yellow",
        logging.ERROR: "red",
        logging.CRITICAL: "red",
    }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            color = self._COLORS.get(record.levelno)
            if color:
                msg = click.style(msg, fg=color)
            click.echo(msg, err=True)
        except Exception:
            self.handleError(record)


def setup_logging(verbose: int) -> None:
    """Attach the console handler to the ``fragsync`` logger.

    ``-v`` shows progress (INFO), ``-vv`` adds DEBUG; otherwise only
    warnings and errors are printed.
    """
    level = logging.WARNING
    if verbose > 1:
        level = logging.DEBUG
    elif verbose > 0:
        level = logging.INFO

    log = logging.getLogger("fragsync")
    log.setLevel(level)
    if log.hasHandlers():
        log.handlers.clear()
    handler = ClickEchoHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(levelname)s - %(message)s"))
    log.addHandler(handler)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _error(msg: str) -> None:
    click.secho(f"Error: {msg}", fg="red", err=True)


@contextmanager
def _translate_errors(ctx):
    """Map library exceptions onto exit codes and click errors."""
    try:
        yield
    except MultipleFilesPerComponentError as exc:
        _error(str(exc))
        ctx.exit(EXIT_MULTIPLE_FILES)
    except MalformedManifestError as exc:
        _error(str(exc))
        ctx.exit(EXIT_MALFORMED)
    except ET.ParseError as exc:
        _error(f"Not a well-formed XML document: {exc}")
        ctx.exit(EXIT_MALFORMED)
    except OptionsError as exc:
        raise click.UsageError(str(exc), ctx=ctx)
    except (FragsyncError, OSError) as exc:
        raise click.ClickException(str(exc))


def _exclude_options(f):
    """Shared exclusion options for create and update."""
    f = click.option(
        "--regex-exclude", "regex_excludes", multiple=True, metavar="REGEX",
        help="Exclude files (by name) and directories (by full path) matching "
             "a case-insensitive regular expression (repeatable).",
    )(f)
    f = click.option(
        "--dir-exclude", "dir_excludes", multiple=True, metavar="TEXT",
        help="Exclude directories whose path contains TEXT (repeatable).",
    )(f)
    f = click.option(
        "--ext", "extensions", multiple=True, metavar="EXT",
        help="Exclude files with this extension, e.g. 'pdb' (repeatable).",
    )(f)
    return f


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

class _UsageExitMixin:
    """Report command-line errors with status 1; status 2 means bad input."""

    def make_context(self, info_name, args, parent=None, **extra):
        try:
            return super().make_context(info_name, args, parent=parent, **extra)
        except click.UsageError as exc:
            exc.exit_code = EXIT_USAGE
            raise

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except click.UsageError as exc:
            exc.exit_code = EXIT_USAGE
            raise


class FragsyncCommand(_UsageExitMixin, click.Command):
    pass


class FragsyncGroup(_UsageExitMixin, click.Group):
    command_class = FragsyncCommand


@click.group(cls=FragsyncGroup)
@click.option("-v", "--verbose", count=True,
              help="Verbose output on stderr (-vv for debug detail).")
@click.pass_context
def main(ctx, verbose):
    """fragsync: keep WiX installer fragments in sync with a directory.

    Generates a fragment listing every file under a directory, and updates
    an existing fragment without disturbing the ids already shipped.

    \b
    Quick start:
      fragsync create Files.wxs -d build/out -g AppFiles
      fragsync update Files.wxs
      fragsync update Files.wxs --patch-update --patch-create-files

    Updates are written beside the input with a .PARAFFIN extension; the
    input file is never changed.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    setup_logging(verbose)
