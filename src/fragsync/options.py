"""Manifest configuration and its persisted options header.

Every generated manifest starts with an XML comment holding a small
``<CommandLineOptions>`` document.  It records everything needed to
regenerate the manifest, and it is the only place an update run gets its
settings from.  The element names are shared with manifests produced by
earlier tools and must not change.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field, replace
from typing import Iterable

from ._exclude import compile_pattern, normalize_extension
from ._ids import CURRENT_FILE_VERSION, LEGACY_FILE_VERSION, IdCounters
from .exceptions import (
    MalformedManifestError,
    MultipleFilesPerComponentError,
    OptionsError,
    VersionSkewError,
)

DEFAULT_DIRECTORY_REF = "INSTALLDIR"
MAX_GROUP_NAME_LEN = 64

PRODUCER = "fragsync"
HEADER_WARNING = "Manual changes to this file may cause incorrect behavior."

# Header element names.
_OPTIONS = "CommandLineOptions"
_PRODUCER = "Producer"
_WARNING = "WARNING"
_VERSION = "ParaffinFileVersion"
_GROUP_NAME = "GroupName"
_CUSTOM = "Custom"
_INCREMENT = "Increment"
_NEXT_DIRECTORY = "NextDirectoryNumber"
_NEXT_COMPONENT = "NextComponentNumber"
_MULTIPLE = "Multiple"
_DIRECTORY = "Directory"
_ALIAS = "DirAlias"
_WIN64 = "Win64"
_NORECURSE = "Norecurse"
_NO_ROOT_DIRECTORY = "NoRootDirectory"
_DISK_ID = "DiskId"
_PERMANENT = "Permanent"
_WIX4 = "WiX4"
_PER_USER = "PerUser"
_EXT_EXCLUDES = ("ExtensionExcludes", "Ext")
_DIR_EXCLUDES = ("DirExcludes", "Dir")
_INCLUDE_FILES = ("IncludeFiles", "File")
_REGEX_EXCLUDES = ("RegExExcludes", "RegEx")

_HYPHEN_RUN = re.compile(r"-{2,}")


def _unique(values: Iterable[str]) -> list[str]:
    """Drop duplicates from *values*, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for v in values:
        if v not in seen:
            seen.add(v)
            result.append(v)
    return result


@dataclass
class ManifestOptions:
    """The configuration a manifest is generated with.

    Attributes:
        group_name: Component group name (required, < 65 characters).
        start_directory: Directory whose contents the manifest mirrors.
        version: Manifest format version; 1 selects legacy ids.
        alias: Replacement for the starting directory in source paths.
        directory_ref: Id of the ``DirectoryRef`` the tree hangs from.
        no_recursion: Only list the starting directory's own files.
        no_root_directory: Put the starting directory's files directly
            under the ``DirectoryRef`` instead of a ``Directory`` node.
        disk_id: ``DiskId`` for components; only written when > 1.
        permanent: Mark components ``Permanent="yes"``.
        win64: Value for the components' ``Win64`` attribute (empty: none).
        wix4: Use the WiX 4 namespace instead of WiX 3.
        per_user: Key components on a per-user registry value.
        extension_excludes: Normalized (``.EXT``) extensions to skip.
        directory_excludes: Substrings that exclude a directory path.
        include_files: Files emitted as ``<?include?>`` directives.
        regex_excludes: Case-insensitive exclude expressions.
        increment: Legacy-only counter step between directories.
    """
    group_name: str
    start_directory: str
    version: int = CURRENT_FILE_VERSION
    alias: str = ""
    directory_ref: str = DEFAULT_DIRECTORY_REF
    no_recursion: bool = False
    no_root_directory: bool = False
    disk_id: int = 1
    permanent: bool = False
    win64: str = ""
    wix4: bool = False
    per_user: bool = False
    extension_excludes: list[str] = field(default_factory=list)
    directory_excludes: list[str] = field(default_factory=list)
    include_files: list[str] = field(default_factory=list)
    regex_excludes: list[str] = field(default_factory=list)
    increment: int = 1

    def __post_init__(self) -> None:
        self.extension_excludes = _unique(
            normalize_extension(e) for e in self.extension_excludes
        )
        self.directory_excludes = _unique(self.directory_excludes)
        self.regex_excludes = _unique(self.regex_excludes)

    @property
    def legacy(self) -> bool:
        return self.version <= LEGACY_FILE_VERSION

    def validate(self) -> None:
        """Raise :class:`OptionsError` for values no manifest can be built from."""
        if not self.group_name:
            raise OptionsError("The group name cannot be empty")
        if len(self.group_name) > MAX_GROUP_NAME_LEN:
            raise OptionsError(
                f"The group name must be shorter than {MAX_GROUP_NAME_LEN + 1} characters"
            )
        if not self.start_directory:
            raise OptionsError("The starting directory cannot be empty")
        if not self.directory_ref:
            raise OptionsError("The directory reference id cannot be empty")
        if self.increment < 1:
            raise OptionsError("The increment must be a positive integer")
        for pattern in self.regex_excludes:
            compile_pattern(pattern)


def merge_overrides(
    options: ManifestOptions,
    *,
    extensions: Iterable[str] = (),
    directories: Iterable[str] = (),
    patterns: Iterable[str] = (),
) -> ManifestOptions:
    """Return a copy of *options* with extra excludes from the command line.

    Values already recorded in the header are kept first and never
    duplicated.
    """
    return replace(
        options,
        extension_excludes=list(options.extension_excludes) + list(extensions),
        directory_excludes=list(options.directory_excludes) + list(directories),
        regex_excludes=list(options.regex_excludes) + list(patterns),
    )


# ---------------------------------------------------------------------------
# Header writing
# ---------------------------------------------------------------------------

def _bool_text(value: bool) -> str:
    return "True" if value else "False"


def _sub(parent: ET.Element, tag: str, text: object = None) -> ET.Element:
    elem = ET.SubElement(parent, tag)
    if text is not None and text != "":
        elem.text = str(text)
    return elem


def _sub_list(parent: ET.Element, names: tuple[str, str], values: Iterable[str]) -> None:
    container = ET.SubElement(parent, names[0])
    for value in values:
        _sub(container, names[1], value)


def _comment_safe(text: str) -> str:
    """Write hyphen runs as character references.

    The header lives inside an XML comment, which cannot contain ``--``.
    The references are resolved again when the header document is parsed.
    """
    return _HYPHEN_RUN.sub(lambda m: "&#45;" * len(m.group()), text)


def build_options_header(options: ManifestOptions, counters: IdCounters | None = None) -> str:
    """Return the comment text recording *options* (and legacy *counters*)."""
    root = ET.Element(_OPTIONS)
    _sub(root, _PRODUCER, PRODUCER)
    _sub(root, _WARNING, HEADER_WARNING)
    if options.legacy:
        counters = counters or IdCounters(increment=options.increment)
        _sub(root, _CUSTOM, options.group_name)
        _sub(root, _INCREMENT, options.increment)
        _sub(root, _NEXT_DIRECTORY, counters.next_directory)
        _sub(root, _NEXT_COMPONENT, counters.next_component)
    else:
        _sub(root, _VERSION, options.version)
        _sub(root, _GROUP_NAME, options.group_name)
    _sub(root, _DIRECTORY, options.start_directory)
    _sub(root, _ALIAS, options.alias)
    _sub(root, _WIN64, options.win64)
    _sub(root, _NORECURSE, _bool_text(options.no_recursion))
    _sub(root, _NO_ROOT_DIRECTORY, _bool_text(options.no_root_directory))
    _sub(root, _DISK_ID, options.disk_id)
    _sub(root, _PERMANENT, _bool_text(options.permanent))
    _sub(root, _WIX4, _bool_text(options.wix4))
    _sub(root, _PER_USER, _bool_text(options.per_user))
    _sub_list(root, _EXT_EXCLUDES, options.extension_excludes)
    _sub_list(root, _DIR_EXCLUDES, options.directory_excludes)
    _sub_list(root, _INCLUDE_FILES, options.include_files)
    _sub_list(root, _REGEX_EXCLUDES, options.regex_excludes)
    ET.indent(root, space="  ")
    return _comment_safe(ET.tostring(root, encoding="unicode"))


# ---------------------------------------------------------------------------
# Header reading
# ---------------------------------------------------------------------------

def _text(elem: ET.Element | None) -> str:
    if elem is None or elem.text is None:
        return ""
    return elem.text.strip()


def _required(root: ET.Element, tag: str) -> str:
    elem = root.find(f".//{tag}")
    if elem is None:
        raise MalformedManifestError(f"Options header is missing <{tag}>")
    return _text(elem)


def _optional(root: ET.Element, tag: str) -> str | None:
    elem = root.find(f".//{tag}")
    return None if elem is None else _text(elem)


def _parse_bool(value: str, tag: str) -> bool:
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    raise MalformedManifestError(f"Options header <{tag}> is not a boolean: {value!r}")


def _parse_int(value: str, tag: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise MalformedManifestError(
            f"Options header <{tag}> is not an integer: {value!r}"
        ) from None


def _list_values(root: ET.Element, names: tuple[str, str]) -> list[str]:
    container = root.find(f".//{names[0]}")
    if container is None:
        return []
    return [_text(item) for item in container.iter(names[1]) if _text(item)]


def parse_options_header(text: str) -> tuple[ManifestOptions, IdCounters]:
    """Rebuild the configuration recorded in an options header comment.

    Raises:
        MalformedManifestError: The comment is not an options header.
        MultipleFilesPerComponentError: The manifest uses the retired
            multiple-files-per-component layout.
        VersionSkewError: The manifest was written by a newer format.
    """
    try:
        root = ET.fromstring(text.strip())
    except ET.ParseError as exc:
        raise MalformedManifestError(f"Unreadable options header: {exc}") from None
    if root.tag != _OPTIONS:
        raise MalformedManifestError(
            f"First comment is not an options header (found <{root.tag}>)"
        )

    counters = IdCounters()
    version_text = _optional(root, _VERSION)
    if version_text is not None:
        version = _parse_int(version_text, _VERSION)
        if version > CURRENT_FILE_VERSION:
            raise VersionSkewError(
                f"Manifest format version {version} is newer than the supported "
                f"version {CURRENT_FILE_VERSION}; update fragsync"
            )
        group_name = _required(root, _GROUP_NAME)
    else:
        version = LEGACY_FILE_VERSION
        counters.increment = _parse_int(_required(root, _INCREMENT), _INCREMENT)
        counters.next_directory = _parse_int(
            _required(root, _NEXT_DIRECTORY), _NEXT_DIRECTORY,
        )
        counters.next_component = _parse_int(
            _required(root, _NEXT_COMPONENT), _NEXT_COMPONENT,
        )
        group_name = _required(root, _CUSTOM)

    multiple = _optional(root, _MULTIPLE)
    if multiple and _parse_bool(multiple, _MULTIPLE):
        raise MultipleFilesPerComponentError(
            "Manifests with multiple files per component are no longer supported"
        )

    win64 = _optional(root, _WIN64) or ""
    if win64.lower() == "false":
        # Old headers stored the retired on/off switch here
        win64 = ""

    options = ManifestOptions(
        group_name=group_name,
        start_directory=_required(root, _DIRECTORY),
        version=version,
        alias=_required(root, _ALIAS),
        no_recursion=_parse_bool(_required(root, _NORECURSE), _NORECURSE),
        win64=win64,
        extension_excludes=_list_values(root, _EXT_EXCLUDES),
        directory_excludes=_list_values(root, _DIR_EXCLUDES),
        include_files=_list_values(root, _INCLUDE_FILES),
        regex_excludes=_list_values(root, _REGEX_EXCLUDES),
        increment=counters.increment,
    )
    for tag, attr in ((_NO_ROOT_DIRECTORY, "no_root_directory"),
                      (_PERMANENT, "permanent"),
                      (_WIX4, "wix4"),
                      (_PER_USER, "per_user")):
        value = _optional(root, tag)
        if value:
            setattr(options, attr, _parse_bool(value, tag))
    disk_id = _optional(root, _DISK_ID)
    if disk_id:
        options.disk_id = _parse_int(disk_id, _DISK_ID)
    return options, counters
