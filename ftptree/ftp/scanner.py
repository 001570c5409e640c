"""Remote directory scanner for ftptree.

Probes, lists and measures remote directory trees on top of an
FTPConnectionManager.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from ftptree.ftp.connection import FTPConnectionManager
from ftptree.ftp.exceptions import FTPNotConnectedError, FTPOperationError, FTPPathError
from ftptree.ftp.listing import (
    DirectoryEntry,
    EntryType,
    join_remote,
    listing_key,
    parse_line,
    parse_raw_list,
)

logger = logging.getLogger("ftptree.scanner")


class ListingOrder(Enum):
    """Ordering applied to name listings after collection."""
    ASCENDING = "ascending"
    DESCENDING = "descending"
    NONE = "none"

    def apply(self, names: Iterable[str]) -> List[str]:
        """Return the names de-duplicated and ordered."""
        unique = list(dict.fromkeys(names))
        if self == ListingOrder.ASCENDING:
            return sorted(unique)
        if self == ListingOrder.DESCENDING:
            return sorted(unique, reverse=True)
        return unique


def _base_name(name: str) -> str:
    """Reduce an NLST result ('dir/name' on some servers) to its last component."""
    stripped = name.rstrip("/")
    return stripped.rsplit("/", 1)[-1] if stripped else name


class DirectoryScanner:
    """Lists and measures remote directory trees."""

    def __init__(self, connection: FTPConnectionManager):
        """
        Initialize the scanner.

        Args:
            connection: Active FTP connection manager
        """
        self._connection = connection

    def _require_connection(self, operation: str) -> FTPConnectionManager:
        if not self._connection.is_connected:
            raise FTPNotConnectedError(operation)
        return self._connection

    def is_dir(self, path: str) -> bool:
        """
        Check whether a remote path is a directory.

        Changes into the path and back again. The working directory is
        the same afterwards whatever the outcome.

        Args:
            path: Remote path to probe

        Returns:
            True if the server lets us change into the path
        """
        connection = self._require_connection("Directory probe")
        original = connection.pwd()

        try:
            connection.chdir(path)
        except FTPOperationError:
            return False
        finally:
            if connection.is_connected:
                connection.chdir(original)

        return True

    def real_path(self, path: str) -> Optional[str]:
        """
        Resolve a remote directory to the absolute path the server reports.

        Links to directories resolve to their target on most servers.
        The working directory is restored as in is_dir().

        Returns:
            PWD inside the directory, or None if path is not a directory
        """
        connection = self._require_connection("Directory probe")
        original = connection.pwd()

        try:
            connection.chdir(path)
            return connection.pwd()
        except FTPOperationError:
            return None
        finally:
            if connection.is_connected:
                connection.chdir(original)

    def _list_names(self, directory: str) -> List[str]:
        names = [_base_name(name) for name in self._connection.nlist(directory)]
        return [name for name in names if name not in ("", ".", "..")]

    def nlist(
        self,
        directory: str = ".",
        recursive: bool = False,
        order: ListingOrder = ListingOrder.ASCENDING
    ) -> List[str]:
        """
        List the names in a directory.

        Args:
            directory: Remote directory (current directory by default)
            recursive: Also list sub-directories
            order: Ordering applied to the result

        Returns:
            Names (non-recursive) or paths relative to directory
            (recursive), without '.' and '..', each listed once

        Raises:
            FTPPathError: If directory is not a directory
        """
        if not self.is_dir(directory):
            raise FTPPathError(directory, "list")

        if not recursive:
            return order.apply(self._list_names(directory))

        results: List[str] = []
        pending = [""]
        while pending:
            relative = pending.pop()
            current = join_remote(directory, relative) if relative else directory
            for name in self._list_names(current):
                child = join_remote(relative, name)
                results.append(child)
                if self.is_dir(join_remote(directory, child)):
                    pending.append(child)

        return order.apply(results)

    def _list_lines(self, directory: str) -> List[str]:
        connection = self._connection
        if " " not in directory:
            return connection.rawlist(directory)

        # Many servers cannot LIST a path containing spaces
        original = connection.pwd()
        connection.chdir(directory)
        try:
            return connection.rawlist()
        finally:
            connection.chdir(original)

    def rawlist(self, directory: str = ".", recursive: bool = False) -> Dict[str, str]:
        """
        List a directory in long format.

        Args:
            directory: Remote directory
            recursive: Descend into sub-directories

        Returns:
            Dictionary of 'type#path' keys to raw listing lines

        Raises:
            FTPPathError: If directory is not a directory
        """
        if not self.is_dir(directory):
            raise FTPPathError(directory, "list")

        items: Dict[str, str] = {}
        pending = [directory]
        while pending:
            current = pending.pop()
            for line in self._list_lines(current):
                entry = parse_line(line)
                if entry is None:
                    continue
                key = listing_key(entry, current)
                items[key] = line
                if recursive and entry.is_directory:
                    pending.append(key.split("#", 1)[1])

        return items

    def scan_dir(self, directory: str = ".", recursive: bool = False) -> Dict[str, DirectoryEntry]:
        """
        Scan a directory and return the details of each item.

        Returns:
            Dictionary of 'type#path' keys to DirectoryEntry
        """
        return parse_raw_list(self.rawlist(directory, recursive))

    def dir_size(self, directory: str = ".", recursive: bool = True) -> int:
        """
        Total size in bytes of the entries below a directory.

        Sizes are summed as reported by the server, directories and
        links included.
        """
        items = self.scan_dir(directory, recursive)
        return sum(entry.size for entry in items.values())

    def count_items(
        self,
        directory: str = ".",
        type: Optional[Union[EntryType, str]] = None,
        recursive: bool = True
    ) -> int:
        """
        Count the items of a directory.

        Args:
            directory: Remote directory
            type: Only count this entry type (file, directory, link, unknown)
            recursive: Count sub-directories' items too

        Returns:
            Number of items
        """
        if type is None:
            return len(self.nlist(directory, recursive))

        wanted = EntryType(type)
        items = self.scan_dir(directory, recursive)
        return sum(1 for entry in items.values() if entry.type == wanted)

    def is_empty(self, directory: str) -> bool:
        """True if the directory has no entries."""
        return self.count_items(directory, None, False) == 0
