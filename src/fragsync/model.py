"""In-memory manifest document: typed nodes plus XML parse/serialize.

Document shape::

    Wix
      <!-- options header -->
      <?include ...?>                     (one per include file)
      Fragment
        ComponentGroup                    (omitted when there are no components)
          ComponentRef ...
        DirectoryRef Id=INSTALLDIR
          Directory / Component / injected content ...

Nodes are plain dataclasses.  Content that fragsync does not model itself
(everything spliced in from mold files, unknown Component children) is
carried as :class:`RawNode` wrapping an ``ElementTree`` element whose WiX
namespace has been stripped.

The prior and the reconciled documents are always separate trees; the
engine copies nodes across with :func:`copy.deepcopy` rather than moving
them.
"""

from __future__ import annotations

import copy
import os
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Iterator, Union

from ._ids import IdCounters
from .exceptions import MalformedManifestError, MultipleFilesPerComponentError
from .options import ManifestOptions, build_options_header, parse_options_header

WIX3_NAMESPACE = "http://schemas.microsoft.com/wix/2006/wi"
WIX4_NAMESPACE = "http://wixtoolset.org/schemas/v4/wxs"

#: Registry key under which per-user installs record one value per file.
PER_USER_REGISTRY_KEY = r"Software\[Manufacturer]\[ProductName]\InstalledFiles"

#: Condition text that is never true; attached to removed components.
NEVER_CONDITION = "1 = 0"

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'


def namespace_for(options: ManifestOptions) -> str:
    return WIX4_NAMESPACE if options.wix4 else WIX3_NAMESPACE


def _yes(value: str | None) -> bool:
    return value is not None and value.lower() == "yes"


# ---------------------------------------------------------------------------
# Node types
# ---------------------------------------------------------------------------

@dataclass
class RawNode:
    """Content copied verbatim, such as the body of a mold file."""
    element: ET.Element


@dataclass
class File:
    """A ``File`` node.

    Attributes:
        id: Unique id.
        source: Recorded source path (aliased when an alias is set).  This,
            compared case-insensitively, identifies the file across runs.
        checksum: ``Checksum="yes"`` for PE binaries.
        key_path: ``KeyPath="yes"``; lives on the File from format 2 on.
        extra: Attributes fragsync does not model, in document order.
    """
    id: str
    source: str
    checksum: bool = False
    key_path: bool = False
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def match_key(self) -> str:
        return self.source.casefold()


@dataclass
class RegistryValue:
    """Per-user key path companion of a File."""
    name: str
    root: str = "HKCU"
    key: str = PER_USER_REGISTRY_KEY
    value: str = ""
    type: str = "string"
    key_path: bool = True
    extra: dict[str, str] = field(default_factory=dict)


@dataclass
class Component:
    """A ``Component`` node holding exactly one :class:`File`."""
    id: str
    guid: str
    file: File
    disk_id: str | None = None
    permanent: bool = False
    win64: str = ""
    key_path: bool = False
    transitive: bool = False
    condition: str | None = None
    registry_value: RegistryValue | None = None
    extra: dict[str, str] = field(default_factory=dict)
    extra_children: list[ET.Element] = field(default_factory=list)

    def mark_removed(self) -> None:
        """Flag the component as possibly absent at patch time.

        A component removed for the first time always gets the never-true
        condition.  One already flagged keeps whatever condition it has.
        """
        if not self.transitive or self.condition is None:
            self.condition = NEVER_CONDITION
        self.transitive = True


@dataclass
class Directory:
    """A ``Directory`` node; *name* is matched case-insensitively across runs."""
    id: str
    name: str
    children: list[Node] = field(default_factory=list)
    extra: dict[str, str] = field(default_factory=dict)

    def subdirectories(self) -> list[Directory]:
        return [c for c in self.children if isinstance(c, Directory)]

    def components(self) -> list[Component]:
        return [c for c in self.children if isinstance(c, Component)]

    def iter_component_ids(self) -> Iterator[str]:
        """Yield every component id below this node in document order."""
        for child in self.children:
            if isinstance(child, Component):
                yield child.id
            elif isinstance(child, Directory):
                yield from child.iter_component_ids()
            elif isinstance(child, RawNode):
                for elem in child.element.iter("Component"):
                    if "Id" in elem.attrib:
                        yield elem.attrib["Id"]

    def iter_components(self) -> Iterator[Component]:
        """Yield every modelled component below this node in document order."""
        for child in self.children:
            if isinstance(child, Component):
                yield child
            elif isinstance(child, Directory):
                yield from child.iter_components()


@dataclass
class DirectoryRef(Directory):
    """The single ``DirectoryRef`` node the directory tree hangs from."""
    name: str = ""


Node = Union[Directory, Component, RawNode]


@dataclass
class ComponentRef:
    id: str


@dataclass
class ComponentGroup:
    id: str
    refs: list[ComponentRef] = field(default_factory=list)


@dataclass
class Fragment:
    directory_ref: DirectoryRef
    group: ComponentGroup | None = None


@dataclass
class OptionsHeader:
    """The persisted configuration comment, always the root's first child."""
    options: ManifestOptions
    counters: IdCounters = field(default_factory=IdCounters)

    def text(self) -> str:
        return build_options_header(self.options, self.counters)


@dataclass
class Manifest:
    """The document root."""
    header: OptionsHeader
    fragment: Fragment

    @property
    def options(self) -> ManifestOptions:
        return self.header.options

    @property
    def directory_ref(self) -> DirectoryRef:
        return self.fragment.directory_ref

    def iter_components(self) -> Iterator[Component]:
        return self.directory_ref.iter_components()


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _local_name(tag: object, ns: str) -> str | None:
    """Return the local name of a WiX-namespace *tag*, else ``None``."""
    if not isinstance(tag, str):
        return None
    prefix = "{" + ns + "}"
    if tag.startswith(prefix):
        return tag[len(prefix):]
    if ns == "" and not tag.startswith("{"):
        return tag
    return None


def strip_namespace(elem: ET.Element, ns: str) -> ET.Element:
    """Remove the WiX namespace *ns* from *elem* and its descendants in place."""
    prefix = "{" + ns + "}"
    for e in elem.iter():
        if isinstance(e.tag, str) and e.tag.startswith(prefix):
            e.tag = e.tag[len(prefix):]
    return elem


def _split_attrs(elem: ET.Element, known: tuple[str, ...]) -> dict[str, str]:
    return {k: v for k, v in elem.attrib.items() if k not in known}


_FILE_ATTRS = ("Id", "Source", "Checksum", "KeyPath")
_REGISTRY_ATTRS = ("Name", "Root", "Key", "Value", "Type", "KeyPath")
_COMPONENT_ATTRS = ("Id", "Guid", "DiskId", "Permanent", "Win64", "KeyPath", "Transitive")
_DIRECTORY_ATTRS = ("Id", "Name")


def _parse_file(elem: ET.Element) -> File:
    try:
        return File(
            id=elem.attrib["Id"],
            source=elem.attrib["Source"],
            checksum=_yes(elem.get("Checksum")),
            key_path=_yes(elem.get("KeyPath")),
            extra=_split_attrs(elem, _FILE_ATTRS),
        )
    except KeyError as exc:
        raise MalformedManifestError(f"File element without {exc.args[0]} attribute") from None


def _parse_registry_value(elem: ET.Element) -> RegistryValue:
    return RegistryValue(
        name=elem.get("Name", ""),
        root=elem.get("Root", "HKCU"),
        key=elem.get("Key", PER_USER_REGISTRY_KEY),
        value=elem.get("Value", ""),
        type=elem.get("Type", "string"),
        key_path=_yes(elem.get("KeyPath")),
        extra=_split_attrs(elem, _REGISTRY_ATTRS),
    )


def _parse_component(elem: ET.Element, ns: str) -> Component | RawNode:
    files = [c for c in elem if _local_name(c.tag, ns) == "File"]
    if not files:
        # Not generated by fragsync (mold content); carried verbatim
        return RawNode(strip_namespace(copy.deepcopy(elem), ns))
    if len(files) > 1:
        raise MultipleFilesPerComponentError(
            f"Component {elem.get('Id')!r} holds {len(files)} files; "
            "multiple files per component are no longer supported"
        )
    comp = Component(
        id=elem.get("Id", ""),
        guid=elem.get("Guid", ""),
        file=_parse_file(files[0]),
        disk_id=elem.get("DiskId"),
        permanent=_yes(elem.get("Permanent")),
        win64=elem.get("Win64", ""),
        key_path=_yes(elem.get("KeyPath")),
        transitive=_yes(elem.get("Transitive")),
        extra=_split_attrs(elem, _COMPONENT_ATTRS),
    )
    for child in elem:
        name = _local_name(child.tag, ns)
        if name == "File":
            continue
        if name == "RegistryValue" and comp.registry_value is None:
            comp.registry_value = _parse_registry_value(child)
        elif name == "Condition" and comp.condition is None:
            comp.condition = (child.text or "").strip()
        elif isinstance(child.tag, str):
            comp.extra_children.append(strip_namespace(copy.deepcopy(child), ns))
    return comp


def _parse_children(parent: ET.Element, node: Directory, ns: str) -> None:
    # Explicit stack instead of recursion; deep trees must not hit the
    # interpreter's recursion limit.
    stack: list[tuple[ET.Element, Directory]] = [(parent, node)]
    while stack:
        elem, target = stack.pop()
        for child in elem:
            name = _local_name(child.tag, ns)
            if name == "Directory":
                sub = Directory(
                    id=child.get("Id", ""),
                    name=child.get("Name", ""),
                    extra=_split_attrs(child, _DIRECTORY_ATTRS),
                )
                target.children.append(sub)
                stack.append((child, sub))
            elif name == "Component":
                target.children.append(_parse_component(child, ns))
            elif isinstance(child.tag, str):
                target.children.append(RawNode(strip_namespace(copy.deepcopy(child), ns)))


def _xml_parser() -> ET.XMLParser:
    return ET.XMLParser(target=ET.TreeBuilder(insert_comments=True, insert_pis=True))


def parse_manifest(text: str) -> Manifest:
    """Parse manifest *text* into a :class:`Manifest`.

    Raises:
        MalformedManifestError: The root's first child is not the options
            header, or the document has no ``DirectoryRef``.
        VersionSkewError: The header declares a newer format version.
        ET.ParseError: The text is not well-formed XML.
    """
    parser = _xml_parser()
    parser.feed(text.encode("utf-8"))
    root = parser.close()

    if len(root) == 0 or root[0].tag is not ET.Comment:
        raise MalformedManifestError(
            "Not a recognized manifest: the options header comment must be "
            "the first child of the root element"
        )
    options, counters = parse_options_header(root[0].text or "")

    ns = ""
    if isinstance(root.tag, str) and root.tag.startswith("{"):
        ns = root.tag[1:].split("}", 1)[0]

    fragment_elem = next((c for c in root if _local_name(c.tag, ns) == "Fragment"), None)
    dir_ref_elem = None
    if fragment_elem is not None:
        dir_ref_elem = next(
            (c for c in fragment_elem.iter() if _local_name(c.tag, ns) == "DirectoryRef"),
            None,
        )
    if dir_ref_elem is None:
        raise MalformedManifestError("Manifest has no DirectoryRef element")

    options.directory_ref = dir_ref_elem.get("Id", options.directory_ref)
    dir_ref = DirectoryRef(id=options.directory_ref)
    _parse_children(dir_ref_elem, dir_ref, ns)

    group = None
    group_elem = next(
        (c for c in fragment_elem if _local_name(c.tag, ns) == "ComponentGroup"), None,
    )
    if group_elem is not None:
        group = ComponentGroup(
            id=group_elem.get("Id", ""),
            refs=[ComponentRef(c.get("Id", "")) for c in group_elem
                  if _local_name(c.tag, ns) == "ComponentRef"],
        )

    return Manifest(
        header=OptionsHeader(options=options, counters=counters),
        fragment=Fragment(directory_ref=dir_ref, group=group),
    )


def load_manifest(path: str | os.PathLike[str]) -> Manifest:
    """Read and parse the manifest at *path*."""
    with open(path, encoding="utf-8-sig") as f:
        return parse_manifest(f.read())


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _set_extra(elem: ET.Element, extra: dict[str, str]) -> None:
    for k, v in extra.items():
        elem.set(k, v)


def _file_element(f: File) -> ET.Element:
    elem = ET.Element("File", {"Id": f.id})
    if f.checksum:
        elem.set("Checksum", "yes")
    if f.key_path:
        elem.set("KeyPath", "yes")
    elem.set("Source", f.source)
    _set_extra(elem, f.extra)
    return elem


def _registry_element(rv: RegistryValue) -> ET.Element:
    elem = ET.Element("RegistryValue", {
        "Root": rv.root,
        "Key": rv.key,
        "Name": rv.name,
        "Value": rv.value,
        "Type": rv.type,
    })
    if rv.key_path:
        elem.set("KeyPath", "yes")
    _set_extra(elem, rv.extra)
    return elem


def _component_element(comp: Component) -> ET.Element:
    elem = ET.Element("Component", {"Id": comp.id, "Guid": comp.guid})
    if comp.disk_id is not None:
        elem.set("DiskId", comp.disk_id)
    if comp.permanent:
        elem.set("Permanent", "yes")
    if comp.win64:
        elem.set("Win64", comp.win64)
    if comp.key_path:
        elem.set("KeyPath", "yes")
    if comp.transitive:
        elem.set("Transitive", "yes")
    _set_extra(elem, comp.extra)
    elem.append(_file_element(comp.file))
    if comp.registry_value is not None:
        elem.append(_registry_element(comp.registry_value))
    for child in comp.extra_children:
        elem.append(copy.deepcopy(child))
    if comp.condition is not None:
        ET.SubElement(elem, "Condition").text = comp.condition
    return elem


def _fill_directory(elem: ET.Element, node: Directory) -> None:
    stack: list[tuple[ET.Element, Directory]] = [(elem, node)]
    while stack:
        target, directory = stack.pop()
        for child in directory.children:
            if isinstance(child, Directory):
                sub = ET.SubElement(target, "Directory", {"Id": child.id, "Name": child.name})
                _set_extra(sub, child.extra)
                stack.append((sub, child))
            elif isinstance(child, Component):
                target.append(_component_element(child))
            else:
                target.append(copy.deepcopy(child.element))


def to_element(manifest: Manifest) -> ET.Element:
    """Build the ``ElementTree`` form of *manifest* (WiX namespace as default)."""
    options = manifest.options
    root = ET.Element("Wix", {"xmlns": namespace_for(options)})
    root.append(ET.Comment(manifest.header.text()))
    for include in options.include_files:
        root.append(ET.ProcessingInstruction("include", include))
    fragment = ET.SubElement(root, "Fragment")
    group = manifest.fragment.group
    if group is not None and group.refs:
        group_elem = ET.SubElement(fragment, "ComponentGroup", {"Id": group.id})
        for ref in group.refs:
            ET.SubElement(group_elem, "ComponentRef", {"Id": ref.id})
    dir_ref = ET.SubElement(fragment, "DirectoryRef", {"Id": manifest.directory_ref.id})
    _fill_directory(dir_ref, manifest.directory_ref)
    return root


def serialize_manifest(manifest: Manifest) -> str:
    """Return the full document text, indented two spaces, newline-terminated."""
    root = to_element(manifest)
    ET.indent(root, space="  ")
    return XML_DECLARATION + "\n" + ET.tostring(root, encoding="unicode") + "\n"


def write_manifest(manifest: Manifest, path: str | os.PathLike[str]) -> str:
    """Serialize *manifest* to *path*; returns the text written."""
    text = serialize_manifest(manifest)
    with open(path, "w", encoding="utf-8", newline="\n") as f:
        f.write(text)
    return text
