"""Mold files: hand-written WiX content spliced into a directory node.

A mold file is an ordinary WiX source whose ``DirectoryRef`` holds the
extra elements to insert.  Dropping ``Foo/custom.ParaffinMold`` into the
payload tree places those elements under the ``Directory`` generated for
``Foo``, after its components.
"""

from __future__ import annotations

import logging
import os
import xml.etree.ElementTree as ET

from ._walk import _sorted_entries, is_mold_file
from .exceptions import StructuralConflictError
from .model import RawNode, strip_namespace

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info


def mold_files(directory: str) -> list[str]:
    """Return the mold files directly inside *directory*, in name order."""
    return [
        entry.path for entry in _sorted_entries(directory)
        if entry.is_file() and is_mold_file(entry.name)
    ]


def load_mold_nodes(path: str) -> list[RawNode]:
    """Parse the mold file at *path* and return its injectable elements.

    The returned elements carry no WiX namespace and belong to the caller.

    Raises:
        StructuralConflictError: The file has no ``DirectoryRef`` or the
            ``DirectoryRef`` is empty.
        ET.ParseError: The file is not well-formed XML.
    """
    root = ET.parse(path).getroot()
    ns = root.tag[1:].split("}", 1)[0] if root.tag.startswith("{") else ""
    dir_ref_tag = f"{{{ns}}}DirectoryRef" if ns else "DirectoryRef"
    dir_ref = next(root.iter(dir_ref_tag), None)
    if dir_ref is None:
        raise StructuralConflictError(f"Mold file {path} has no DirectoryRef element")
    elements = [child for child in dir_ref if isinstance(child.tag, str)]
    if not elements:
        raise StructuralConflictError(
            f"Mold file {path} has nothing under its DirectoryRef element"
        )
    _log_info("Injecting %d element(s) from mold file %s", len(elements), path)
    return [RawNode(strip_namespace(elem, ns)) for elem in elements]


def load_directory_molds(directory: str) -> list[RawNode]:
    """Load every mold file in *directory*, concatenated in name order."""
    nodes: list[RawNode] = []
    for path in mold_files(directory):
        _log_debug("Reading mold file %s", path)
        nodes.extend(load_mold_nodes(path))
    return nodes


def injected_component_keys(nodes: list[RawNode]) -> tuple[set[str], set[str]]:
    """Return the component ids and casefolded file sources in *nodes*.

    A prior manifest holds the mold content written by the last run.  These
    keys let the reconciler recognize it instead of treating it as payload.
    """
    ids: set[str] = set()
    sources: set[str] = set()
    for node in nodes:
        for elem in node.element.iter("Component"):
            component_id = elem.get("Id")
            if component_id:
                ids.add(component_id)
            for file_elem in elem.iter("File"):
                source = file_elem.get("Source")
                if source:
                    sources.add(source.casefold())
    return ids, sources
