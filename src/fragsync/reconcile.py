"""Reconcile a manifest against the files on disk.

Creating a manifest and updating one are the same walk.  Creation simply
has no prior document, so every directory is new.  For an update the walk
pairs each disk directory with the prior ``Directory`` of the same name,
keeps the ids of every file it finds again (matched on the recorded
source path), adds components for new files, and hands everything the
disk no longer has to the :class:`~fragsync.patch.PatchTracker`.

The prior document is only ever read.  Every node in the result is either
new or a deep copy.
"""

from __future__ import annotations

import copy
import dataclasses
import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from ._alias import AliasTranslator
from ._exclude import ExcludeFilter
from ._ids import IdCounters, IdGenerator, natural_key
from ._mold import injected_component_keys, load_directory_molds
from ._walk import iter_files, iter_subdirectories
from .diff import read_text, texts_differ
from .exceptions import StructuralConflictError
from .model import (
    Component,
    ComponentGroup,
    ComponentRef,
    Directory,
    DirectoryRef,
    File,
    Fragment,
    Manifest,
    OptionsHeader,
    RawNode,
    RegistryValue,
    load_manifest,
    write_manifest,
)
from .options import ManifestOptions, merge_overrides
from .patch import PatchTracker

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning

#: Extensions of portable-executable files, which get ``Checksum="yes"``.
BINARY_EXTENSIONS = (".DLL", ".EXE", ".OCX")

#: Suffix replacing the input's extension for update output.
UPDATE_SUFFIX = ".PARAFFIN"


def is_binary(path: str) -> bool:
    return os.path.splitext(path)[1].upper() in BINARY_EXTENSIONS


def update_output_path(path: str) -> str:
    """Return where the update of the manifest at *path* is written.

    Never *path* itself: updating an update output appends a second suffix.
    """
    root, ext = os.path.splitext(path)
    if ext.upper() == UPDATE_SUFFIX:
        return path + UPDATE_SUFFIX
    return root + UPDATE_SUFFIX


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation run.

    Attributes:
        added: Source paths of files given new components.
        preserved: Source paths whose prior components were kept.
        removed: Source paths in the prior manifest that are no longer live
            on disk (dropped, or kept as removal records).
        placeholders: Disk paths of zero-byte files created.
        warnings: Non-fatal messages, such as key path migrations.
    """
    added: list[str] = field(default_factory=list)
    preserved: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    placeholders: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.added) + len(self.preserved)

    def warn(self, message: str) -> None:
        _log_warn(message)
        self.warnings.append(message)


@dataclass
class UpdateResult:
    """What :func:`update_file` wrote.

    Attributes:
        manifest: The reconciled document.
        output_path: Where it was written.
        report: Per-file outcome.
        differs: True if the output text is not identical to the input.
    """
    manifest: Manifest
    output_path: str
    report: ReconcileReport
    differs: bool


# A pending directory: (prior parent or None, disk path, output parent,
# path parts below the starting directory).
_WorkItem = tuple[Optional[Directory], str, Directory, tuple[str, ...]]


class Reconciler:
    """One reconciliation run over ``options.start_directory``.

    Args:
        options: Configuration of the manifest being produced.
        counters: Legacy sequence numbers to continue from; updated in
            place as ids are handed out.
        patch_update: Keep removal records for files no longer on disk.
        patch_create_files: Create zero-byte placeholders for them.
        token_factory: Source of random hex tokens for modern ids.
    """

    def __init__(
        self,
        options: ManifestOptions,
        *,
        counters: IdCounters | None = None,
        patch_update: bool = False,
        patch_create_files: bool = False,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        options.validate()
        self.options = options
        self.root = os.path.abspath(options.start_directory)
        self.exclude = ExcludeFilter(
            extensions=options.extension_excludes,
            directories=options.directory_excludes,
            patterns=options.regex_excludes,
        )
        self.alias = AliasTranslator(options.start_directory, options.alias)
        if counters is None:
            counters = IdCounters(increment=options.increment)
        counters.increment = options.increment
        self.ids = IdGenerator(
            options.version,
            options.group_name,
            base_directory_name=os.path.basename(self.root),
            counters=counters,
            token_factory=token_factory,
        )
        self.patch = PatchTracker(
            self.alias,
            enabled=patch_update,
            create_placeholders=patch_create_files,
        )
        self.report = ReconcileReport()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, prior: DirectoryRef | None = None) -> Manifest:
        """Walk the starting directory and return the reconciled manifest.

        *prior* is the previous manifest's ``DirectoryRef``, or ``None``
        when creating from scratch.
        """
        if not os.path.isdir(self.root):
            raise FileNotFoundError(f"Starting directory does not exist: {self.root}")

        output = DirectoryRef(id=self.options.directory_ref)
        stack: list[_WorkItem] = []
        if self.options.no_root_directory:
            self._fill_directory(prior, self.root, output, (), stack)
        else:
            stack.append((prior, self.root, output, ()))

        while stack:
            prior_parent, path, out_parent, parts = stack.pop()
            prior_node, node = self._enter_directory(prior_parent, path, out_parent, parts)
            self._fill_directory(prior_node, path, node, parts, stack)

        self.report.placeholders.extend(self.patch.placeholders)
        manifest = Manifest(
            header=OptionsHeader(options=self.options, counters=self.ids.counters),
            fragment=Fragment(directory_ref=output, group=self._build_group(output)),
        )
        _log_info(
            "Reconciled %d file(s): %d added, %d preserved, %d removed",
            self.report.total, len(self.report.added),
            len(self.report.preserved), len(self.report.removed),
        )
        return manifest

    # ------------------------------------------------------------------
    # Directories
    # ------------------------------------------------------------------

    @staticmethod
    def _match_directory(prior_parent: Directory | None, name: str) -> Directory | None:
        if prior_parent is None:
            return None
        key = name.casefold()
        matches = [d for d in prior_parent.subdirectories() if d.name.casefold() == key]
        if len(matches) > 1:
            raise StructuralConflictError(
                f"Invalid name count: {len(matches)} directories named {name!r} "
                f"under {prior_parent.id!r}; the manifest is corrupt"
            )
        return matches[0] if matches else None

    def _enter_directory(
        self,
        prior_parent: Directory | None,
        path: str,
        out_parent: Directory,
        parts: tuple[str, ...],
    ) -> tuple[Directory | None, Directory]:
        """Create the output node for disk directory *path* under *out_parent*."""
        name = os.path.basename(path)
        prior_node = self._match_directory(prior_parent, name)
        if prior_node is None:
            _log_info("Processing new directory %s", path)
            node = Directory(id=self.ids.directory_id(parts), name=name)
        else:
            _log_info("Processing existing directory %s", path)
            node = Directory(id=prior_node.id, name=prior_node.name, extra=dict(prior_node.extra))
        out_parent.children.append(node)
        return prior_node, node

    def _fill_directory(
        self,
        prior_node: Directory | None,
        path: str,
        node: Directory,
        parts: tuple[str, ...],
        stack: list[_WorkItem],
    ) -> None:
        """Add files, removal records and mold content, then queue subdirectories."""
        molds = load_directory_molds(path)
        if prior_node is None:
            self._add_new_files(path, node)
        else:
            self._update_files(prior_node, path, node, molds)
        node.children.extend(molds)

        if self.options.no_recursion:
            return
        subdirs = list(iter_subdirectories(path, self.exclude))
        for sub in reversed(subdirs):
            stack.append((prior_node, sub, node, parts + (os.path.basename(sub),)))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def _new_component(self, path: str) -> Component:
        opts = self.options
        component_id = self.ids.component_id()
        guid = self.ids.install_guid()
        source = self.alias.to_alias(path)
        new_file = File(
            id=self.ids.file_id(),
            source=source,
            checksum=is_binary(path),
            key_path=not opts.per_user,
        )
        registry_value = None
        if opts.per_user:
            registry_value = RegistryValue(name=self.ids.file_id())
        _log_info("Creating component for %s", source)
        self.report.added.append(source)
        return Component(
            id=component_id,
            guid=guid,
            file=new_file,
            disk_id=str(opts.disk_id) if opts.disk_id > 1 else None,
            permanent=opts.permanent,
            win64=opts.win64,
            registry_value=registry_value,
        )

    def _add_new_files(self, path: str, node: Directory) -> None:
        created = 0
        for file_path in iter_files(path, self.exclude):
            node.children.append(self._new_component(file_path))
            created += 1
        if created:
            self.ids.finish_new_directory()

    def _update_files(
        self,
        prior_node: Directory,
        path: str,
        node: Directory,
        molds: list[RawNode],
    ) -> None:
        # Mold content from the last run is re-injected, never reconciled
        mold_ids, mold_sources = injected_component_keys(molds)
        prior_components = [
            c for c in prior_node.components()
            if c.id not in mold_ids and c.file.match_key not in mold_sources
        ]
        by_source: dict[str, list[Component]] = {}
        for component in prior_components:
            by_source.setdefault(component.file.match_key, []).append(component)

        matched: list[Component] = []
        for file_path in iter_files(path, self.exclude):
            source = self.alias.to_alias(file_path)
            hits = by_source.get(source.casefold(), [])
            if len(hits) > 1:
                raise StructuralConflictError(
                    f"The source {source} is listed {len(hits)} times in directory "
                    f"{prior_node.id!r}; the manifest is corrupt"
                )
            if not hits:
                node.children.append(self._new_component(file_path))
                continue
            prior_component = hits[0]
            if self.patch.should_skip(prior_component, file_path):
                continue
            matched.append(prior_component)
            component = copy.deepcopy(prior_component)
            self._migrate_key_path(component)
            node.children.append(component)
            self.report.preserved.append(component.file.source)

        live = {id(c) for c in matched}
        self.report.removed.extend(
            c.file.source for c in prior_components if id(c) not in live
        )
        node.children.extend(self.patch.removed_components(prior_components, matched))

    def _migrate_key_path(self, component: Component) -> None:
        """Move ``KeyPath`` from the Component to its File (pre-format-2 layout)."""
        if not component.file.key_path and not self.options.per_user:
            component.file.key_path = True
            self.report.warn(
                f"Adding KeyPath to File {component.file.id} ({component.file.source})"
            )
        if component.key_path:
            component.key_path = False
            self.report.warn(f"Removing KeyPath from Component {component.id}")

    # ------------------------------------------------------------------
    # Group
    # ------------------------------------------------------------------

    def _build_group(self, output: DirectoryRef) -> ComponentGroup | None:
        component_ids = list(output.iter_component_ids())
        if not component_ids:
            return None
        if self.ids.legacy:
            component_ids.sort(key=natural_key)
        return ComponentGroup(
            id=self.ids.group_id(),
            refs=[ComponentRef(i) for i in component_ids],
        )


# ---------------------------------------------------------------------------
# Convenience functions
# ---------------------------------------------------------------------------

def create_manifest(
    options: ManifestOptions,
    *,
    counters: IdCounters | None = None,
    token_factory: Callable[[], str] | None = None,
) -> tuple[Manifest, ReconcileReport]:
    """Build a new manifest for ``options.start_directory``."""
    reconciler = Reconciler(options, counters=counters, token_factory=token_factory)
    return reconciler.run(None), reconciler.report


def update_manifest(
    prior: Manifest,
    *,
    options: ManifestOptions | None = None,
    patch_update: bool = False,
    patch_create_files: bool = False,
    token_factory: Callable[[], str] | None = None,
) -> tuple[Manifest, ReconcileReport]:
    """Reconcile *prior* against the disk.

    *options* defaults to the configuration recorded in *prior*.  Legacy
    counters continue from the prior header; *prior* itself is not changed.
    """
    if options is None:
        options = prior.options
    counters = dataclasses.replace(prior.header.counters)
    reconciler = Reconciler(
        options,
        counters=counters,
        patch_update=patch_update,
        patch_create_files=patch_create_files,
        token_factory=token_factory,
    )
    return reconciler.run(prior.directory_ref), reconciler.report


def update_file(
    path: str,
    *,
    extensions: Iterable[str] = (),
    directories: Iterable[str] = (),
    patterns: Iterable[str] = (),
    patch_update: bool = False,
    patch_create_files: bool = False,
    token_factory: Callable[[], str] | None = None,
) -> UpdateResult:
    """Update the manifest file at *path*, writing the result beside it.

    Extra excludes are merged into the recorded configuration.  The input
    file is never modified; output goes to :func:`update_output_path`.
    """
    prior = load_manifest(path)
    options = merge_overrides(
        prior.options,
        extensions=extensions,
        directories=directories,
        patterns=patterns,
    )
    manifest, report = update_manifest(
        prior,
        options=options,
        patch_update=patch_update,
        patch_create_files=patch_create_files,
        token_factory=token_factory,
    )
    output_path = update_output_path(path)
    text = write_manifest(manifest, output_path)
    _log_debug("Wrote %s", output_path)
    return UpdateResult(
        manifest=manifest,
        output_path=output_path,
        report=report,
        differs=texts_differ(read_text(path), text),
    )
