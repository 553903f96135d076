"""Removal history for patch-friendly manifests.

When patch tracking is on, a file that disappears from disk is not dropped
from the manifest.  Its component is kept, marked ``Transitive="yes"`` with
an always-false ``Condition``, and moved to the end of its directory so
that an installer patch can still uninstall it.  Packaging tools need the
source file to exist, so a zero-byte placeholder can be created in its
place.

A zero-byte file at a removed component's path is therefore read as "not
restored yet".  A file that really is meant to be empty cannot be told
apart from a placeholder.
"""

from __future__ import annotations

import copy
import logging
import os
from typing import TYPE_CHECKING, Iterable

from .exceptions import PatchConflictError

if TYPE_CHECKING:
    from ._alias import AliasTranslator
    from .model import Component, Manifest

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info


def create_placeholder(path: str) -> bool:
    """Create an empty file at *path* unless something already exists there.

    Missing parent directories are created.  Returns True if a file was
    created.  An existing file is never truncated.
    """
    if os.path.lexists(path):
        return False
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    try:
        with open(path, "xb"):
            pass
    except FileExistsError:
        return False
    _log_info("Created zero byte placeholder file %s", path)
    return True


class PatchTracker:
    """Skip decisions and removal records for one reconciliation run.

    Args:
        alias: Translator used to turn recorded sources back into disk paths.
        enabled: Patch tracking on; when off nothing is ever skipped and
            removed files are simply dropped.
        create_placeholders: Create zero-byte files for removed entries.
    """

    def __init__(
        self,
        alias: AliasTranslator,
        *,
        enabled: bool = False,
        create_placeholders: bool = False,
    ) -> None:
        self.alias = alias
        self.enabled = enabled
        self.create_placeholders = create_placeholders
        self.placeholders: list[str] = []

    def should_skip(self, component: Component, path: str) -> bool:
        """Decide whether the matched prior *component* is left out this round.

        A skipped component is re-emitted later by :meth:`removed_components`
        at the end of its directory.

        Raises:
            PatchConflictError: The component was recorded as removed but the
                file at *path* came back with content.
        """
        if not self.enabled or not component.transitive:
            return False
        if os.path.getsize(path) == 0:
            _log_debug("Keeping removal record for zero byte file %s", path)
            return True
        raise PatchConflictError(
            f"The file {path} was previously removed from the manifest "
            f"(component {component.id} is marked Transitive) but is back on "
            "disk with content. Remove the Transitive attribute and Condition "
            "from that component by hand if the file is being restored."
        )

    def removed_components(
        self,
        prior: Iterable[Component],
        matched: Iterable[Component],
    ) -> list[Component]:
        """Return output copies of the prior components that were not matched.

        Each copy is marked removed.  The *prior* nodes themselves are never
        modified.
        """
        if not self.enabled:
            return []
        seen = {id(c) for c in matched}
        result: list[Component] = []
        for component in prior:
            if id(component) in seen:
                continue
            removed = copy.deepcopy(component)
            if not removed.transitive:
                _log_info("Recording %s as removed", removed.file.source)
            removed.mark_removed()
            result.append(removed)
            if self.create_placeholders:
                self.ensure_placeholder(removed)
        return result

    def ensure_placeholder(self, component: Component) -> None:
        path = self.alias.from_alias(component.file.source)
        if create_placeholder(path):
            self.placeholders.append(path)


def create_placeholder_files(manifest: Manifest, alias: AliasTranslator) -> list[str]:
    """Create zero-byte files for every removed component in *manifest*.

    Returns the paths that were created; running it again creates nothing.
    """
    created: list[str] = []
    for component in manifest.iter_components():
        if not component.transitive:
            continue
        path = alias.from_alias(component.file.source)
        if create_placeholder(path):
            created.append(path)
    return created
