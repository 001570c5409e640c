"""Remote tree modification for ftptree.

Creates and removes remote directory trees. Removal is best effort:
each child is attempted even when a sibling fails, and callers only
see the aggregate outcome.
"""

import logging
import re

from ftptree.ftp.connection import FTPConnectionManager
from ftptree.ftp.exceptions import FTPOperationError
from ftptree.ftp.listing import join_remote
from ftptree.ftp.scanner import DirectoryScanner, ListingOrder

logger = logging.getLogger("ftptree.tree")

# Characters kept when renaming a path the server refuses to delete
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9/]")


def sanitize_path(path: str) -> str:
    """Strip every character except ASCII letters, digits and '/'."""
    return _UNSAFE_CHARS.sub("", path)


class RemoteTree:
    """Recursive mkdir and delete on a remote server."""

    def __init__(self, connection: FTPConnectionManager, scanner: DirectoryScanner):
        """
        Initialize the tree helper.

        Args:
            connection: Active FTP connection manager
            scanner: Scanner sharing the same connection
        """
        self._connection = connection
        self._scanner = scanner

    def mkdir(self, directory: str, recursive: bool = False) -> str:
        """
        Create a directory.

        Args:
            directory: Remote directory path
            recursive: Create missing parent directories as well

        Returns:
            Path of the created directory

        Raises:
            FTPPathError: If a directory cannot be created
        """
        connection = self._connection
        if not recursive or self._scanner.is_dir(directory):
            return connection.mkdir(directory)

        original = connection.pwd()
        try:
            if directory.startswith("/"):
                connection.chdir("/")
            for part in directory.split("/"):
                if not part:
                    continue
                try:
                    connection.chdir(part)
                except FTPOperationError:
                    connection.mkdir(part)
                    connection.chdir(part)
                    logger.debug(f"Created missing directory {part}")
        finally:
            connection.chdir(original)

        return directory

    def remove(self, path: str, recursive: bool = False) -> bool:
        """
        Remove a file or a directory.

        When the server refuses the path, it is renamed to a sanitized
        name and the removal is tried once more.

        Args:
            path: Remote path to remove
            recursive: Remove directory contents too (directories only)

        Returns:
            True if the path was removed
        """
        if path in (".", ".."):
            return False

        try:
            if self._delete(path, recursive):
                return True

            sanitized = sanitize_path(path)
            if not sanitized or sanitized == path:
                return False

            logger.info(f"Retrying removal of {path} as {sanitized}")
            self._connection.rename(path, sanitized)
            return self._delete(sanitized, recursive)

        except FTPOperationError as e:
            logger.warning(f"Could not remove {path}: {e}")
            return False

    def _delete(self, path: str, recursive: bool) -> bool:
        try:
            self._connection.delete(path)
            return True
        except FTPOperationError as e:
            logger.debug(f"DELE refused for {path}: {e}")

        return self._scanner.is_dir(path) and self.rmdir(path, recursive)

    def rmdir(self, directory: str, recursive: bool = True) -> bool:
        """
        Remove a directory.

        Args:
            directory: Remote directory path
            recursive: Remove its contents first

        Returns:
            True if every child and the directory itself were removed

        Raises:
            FTPPathError: If recursive and directory is not a directory
        """
        success = True

        if recursive:
            children = self._scanner.nlist(directory, order=ListingOrder.DESCENDING)
            for name in children:
                if not self.remove(join_remote(directory, name), True):
                    success = False

        try:
            self._connection.rmdir(directory)
        except FTPOperationError as e:
            logger.warning(f"Could not remove directory {directory}: {e}")
            return False

        return success

    def clean_dir(self, directory: str) -> bool:
        """
        Empty a directory without removing it.

        Returns:
            True if the directory is empty afterwards
        """
        for name in self._scanner.nlist(directory):
            self.remove(join_remote(directory, name), True)

        return self._scanner.is_empty(directory)
