"""Directory listing parser for ftptree.

Turns UNIX ``ls -l`` style listing lines into DirectoryEntry records
and builds the ``type#path`` keys used by recursive scans.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Union

# permissions, links, owner, group, size, month, day, time, name
LISTING_FIELDS = 9
LINK_SEPARATOR = " -> "

_WHITESPACE = re.compile(r"\s+")


class EntryType(Enum):
    """Kind of a directory entry, derived from its permissions string."""
    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"
    UNKNOWN = "unknown"


_TYPE_BY_MARKER = {
    "-": EntryType.FILE,
    "d": EntryType.DIRECTORY,
    "l": EntryType.LINK,
}


def classify(permissions: str) -> EntryType:
    """
    Resolve the entry type from the first character of a permissions string.

    Args:
        permissions: Permissions string such as 'drwxr-xr-x'

    Returns:
        EntryType (UNKNOWN for empty or unrecognized strings)
    """
    if not permissions:
        return EntryType.UNKNOWN
    return _TYPE_BY_MARKER.get(permissions[0], EntryType.UNKNOWN)


@dataclass(frozen=True)
class DirectoryEntry:
    """One parsed listing record."""
    permissions: str
    links: int
    owner: str
    group: str
    size: int
    month: str
    day: str
    time: str
    name: str
    type: EntryType
    target: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.type == EntryType.FILE

    @property
    def is_directory(self) -> bool:
        return self.type == EntryType.DIRECTORY

    @property
    def is_link(self) -> bool:
        return self.type == EntryType.LINK


def _to_int(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0


def parse_line(raw_line: str) -> Optional[DirectoryEntry]:
    """
    Parse one listing line.

    The line is split on runs of whitespace into at most nine fields,
    the ninth keeping any spaces of the file name.

    Args:
        raw_line: Line such as '-rw-r--r-- 1 1000 staff 1234 Dec 12 10:15 index.php'

    Returns:
        DirectoryEntry, or None for short lines and '.'/'..' entries
    """
    chunks = _WHITESPACE.split(raw_line.strip(), maxsplit=LISTING_FIELDS - 1)
    if len(chunks) < LISTING_FIELDS:
        return None

    permissions, links, owner, group, size, month, day, time, name = chunks
    entry_type = classify(permissions)
    target = None

    if entry_type == EntryType.LINK and LINK_SEPARATOR in name:
        name, target = name.split(LINK_SEPARATOR, 1)
        name = name.rstrip()
        target = target.strip()

    if name in (".", ".."):
        return None

    return DirectoryEntry(
        permissions=permissions,
        links=_to_int(links),
        owner=owner,
        group=group,
        size=_to_int(size),
        month=month,
        day=day,
        time=time,
        name=name,
        type=entry_type,
        target=target,
    )


def parse_directory_header(raw_line: str) -> Optional[str]:
    """
    Recognize a 'path:' marker of recursive listing output.

    Returns:
        The path without the colon, or None if the line is not a marker
    """
    line = raw_line.strip()
    if not line or _WHITESPACE.search(line) or not line.endswith(":"):
        return None
    return line[:-1]


def join_remote(base: str, name: str) -> str:
    """
    Join a remote directory and a name.

    '.' and empty bases yield the bare name.
    """
    if base in ("", "."):
        return name
    if base == "/":
        return "/" + name.lstrip("/")
    return base.rstrip("/") + "/" + name.lstrip("/")


def listing_key(entry: DirectoryEntry, base_path: str = "") -> str:
    """
    Build the 'type#path' key of an entry.

    Symlinks are keyed by the link side only.
    """
    path = join_remote(base_path, entry.name)
    if path.startswith("./"):
        path = path[2:]
    return f"{entry.type.value}#{path}".rstrip()


def parse_raw_list(
    raw: Union[Iterable[str], Mapping[str, str]]
) -> Dict[str, DirectoryEntry]:
    """
    Parse listing output into a mapping of 'type#path' keys to entries.

    Args:
        raw: Either raw lines (possibly recursive output with 'path:'
            headers, a blank line closing a section) or a mapping of
            precomputed keys to raw lines

    Returns:
        Dictionary of keys to DirectoryEntry; a later entry with the
        same key replaces the earlier one
    """
    items: Dict[str, DirectoryEntry] = {}

    if isinstance(raw, Mapping):
        for key, line in raw.items():
            entry = parse_line(line)
            if entry is not None:
                items[key] = entry
        return items

    current_path = ""
    for line in raw:
        if not line.strip():
            current_path = ""
            continue

        header = parse_directory_header(line)
        if header is not None:
            current_path = header
            continue

        entry = parse_line(line)
        if entry is None:
            continue
        items[listing_key(entry, current_path)] = entry

    return items
