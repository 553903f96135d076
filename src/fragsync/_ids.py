"""Identifier generation for Directory, Component and File nodes.

Two schemes exist, picked by the manifest's format version:

* **legacy** (version 1): readable, sequence-numbered ids such as
  ``comp_MyGroup_12``, truncated to 70 characters.
* **modern** (version 2 and later): ``<kind>_`` plus 32 upper-case hex
  digits taken from a random token.

Ids of preserved nodes are copied by the reconciliation engine and never
regenerated here.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from typing import Callable

LEGACY_FILE_VERSION = 1
CURRENT_FILE_VERSION = 2

_MAX_ID_LEN = 70
_INVALID_ID_CHARS = re.compile(r"[^0-9a-zA-Z_]")
_DIGITS = re.compile(r"(\d+)")


def sanitize_id(value: str) -> str:
    """Replace every character outside ``[0-9a-zA-Z_]`` with ``_``."""
    return _INVALID_ID_CHARS.sub("_", value)


def seventy_char_id(start: str, main: str, unique: int) -> str:
    """Build ``{start}_{main}_{unique}`` within the id length budget.

    Only the *main* segment is shortened; the prefix and the sequence
    number are always kept whole.
    """
    unique_str = str(unique)
    result = f"{start}_{main}_{unique_str}"
    if len(result) > _MAX_ID_LEN:
        keep = min(len(main), _MAX_ID_LEN - (len(unique_str) + len(start)))
        result = f"{start}_{main[:max(keep, 0)]}_{unique_str}"
    return sanitize_id(result)


def natural_key(value: str) -> tuple:
    """Sort key ordering embedded numbers by value (``comp_2`` < ``comp_10``).

    Text runs compare case-insensitively, the same way Explorer sorts
    file names.
    """
    key: list[tuple[int, int | str]] = []
    for i, part in enumerate(_DIGITS.split(value)):
        if i % 2:
            key.append((0, int(part)))
        elif part:
            key.append((1, part.casefold()))
    return tuple(key)


def _random_token() -> str:
    return uuid.uuid4().hex


@dataclass
class IdCounters:
    """Sequence state for legacy ids.

    Threaded through one reconciliation run and written back to the
    options header as the next free numbers.
    """
    next_directory: int = 0
    next_component: int = 0
    increment: int = 1


class IdGenerator:
    """Produce fresh ids for new nodes.

    *token_factory* returns a hex string; tests replace it with a
    deterministic sequence.
    """

    def __init__(
        self,
        version: int,
        group_name: str,
        *,
        base_directory_name: str = "",
        counters: IdCounters | None = None,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        self.version = version
        self.group_name = group_name
        self.base_directory_name = base_directory_name
        self.counters = counters if counters is not None else IdCounters()
        self._token = token_factory or _random_token

    @property
    def legacy(self) -> bool:
        return self.version <= LEGACY_FILE_VERSION

    def _hex(self) -> str:
        return self._token().replace("-", "").upper()

    # ------------------------------------------------------------------
    def directory_id(self, relative_parts: tuple[str, ...] = ()) -> str:
        """Return an id for a new Directory node.

        *relative_parts* are the path components below the starting
        directory; the legacy scheme folds them into the id.
        """
        if not self.legacy:
            return f"dir_{self._hex()}"
        derived = ".".join((self.base_directory_name,) + tuple(relative_parts))
        result = seventy_char_id("dir", derived, self.counters.next_directory)
        self.counters.next_directory += self.counters.increment
        return result

    def component_id(self) -> str:
        """Return an id for a new Component and advance the legacy counter."""
        if not self.legacy:
            return f"comp_{self._hex()}"
        result = seventy_char_id("comp", self.group_name, self.counters.next_component)
        self.counters.next_component += 1
        return result

    def file_id(self) -> str:
        """Return an id for a new File.

        In legacy mode the file shares the number of the component created
        just before it.
        """
        if not self.legacy:
            return f"file_{self._hex()}"
        return seventy_char_id("file", self.group_name, self.counters.next_component - 1)

    def finish_new_directory(self) -> None:
        """Leave a gap of ``increment - 1`` numbers after a fresh directory."""
        if self.legacy:
            self.counters.next_component += self.counters.increment - 1

    def group_id(self) -> str:
        if self.legacy:
            return sanitize_id(f"group_{self.group_name}")
        return sanitize_id(self.group_name)

    def install_guid(self) -> str:
        """Return a new component installation GUID (dashed, upper case)."""
        return str(uuid.UUID(hex=self._token().replace("-", ""))).upper()
