"""High level FTP client for ftptree.

FtpClient bundles one FTPConnectionManager with the scanner, tree and
transfer helpers that share it. Use it as a context manager so the
control connection is closed on every exit path:

    with FtpClient.open("ftp.example.com", "user", "secret") as client:
        client.put_all("build", "/www")
"""

import logging
import ssl
from datetime import datetime
from typing import BinaryIO, Dict, List, Optional, Tuple, Union

from ftptree.ftp.connection import BlockCallback, FTPConnectionConfig, FTPConnectionManager
from ftptree.ftp.listing import DirectoryEntry, EntryType
from ftptree.ftp.scanner import DirectoryScanner, ListingOrder
from ftptree.ftp.transfer import PathLike, ProgressCallback, TransferResult, TreeTransfer
from ftptree.ftp.transport import DEFAULT_PORT, TransferMode
from ftptree.ftp.tree import RemoteTree

logger = logging.getLogger("ftptree.client")


class FtpClient:
    """FTP client exposing single commands and recursive tree operations."""

    def __init__(self, connection: Optional[FTPConnectionManager] = None):
        """
        Initialize the client.

        Args:
            connection: Connection manager to use (a new one by default)
        """
        self._connection = connection or FTPConnectionManager()
        self._scanner = DirectoryScanner(self._connection)
        self._tree = RemoteTree(self._connection, self._scanner)
        self._transfer = TreeTransfer(self._connection, self._scanner)

    @classmethod
    def open(
        cls,
        host: str,
        username: str = "anonymous",
        password: str = "",
        *,
        account: str = "",
        port: int = DEFAULT_PORT,
        use_tls: bool = False,
        implicit_tls: bool = False,
        passive_mode: bool = True,
        timeout: int = 120,
        encoding: str = "utf-8",
        ssl_context: Optional[ssl.SSLContext] = None
    ) -> "FtpClient":
        """
        Connect and log in, returning a ready client.

        Raises:
            ValueError: If the connection settings are invalid
            FTPConnectionError: If the server cannot be reached
            FTPAuthenticationError: If login fails
        """
        config = FTPConnectionConfig(
            host=host,
            port=port,
            username=username,
            account=account,
            use_tls=use_tls,
            implicit_tls=implicit_tls,
            passive_mode=passive_mode,
            timeout=timeout,
            encoding=encoding,
            ssl_context=ssl_context,
        )
        client = cls()
        client.connect(config, password)
        return client

    @property
    def connection(self) -> FTPConnectionManager:
        """The underlying connection manager."""
        return self._connection

    @property
    def transfers(self) -> TreeTransfer:
        """Transfer helper, e.g. to cancel a running tree transfer."""
        return self._transfer

    @property
    def is_connected(self) -> bool:
        """True if currently connected."""
        return self._connection.is_connected

    # Session

    def connect(self, config: FTPConnectionConfig, password: str = "") -> "FtpClient":
        """Open the connection and log in."""
        self._connection.connect(config, password)
        return self

    def login(self, username: str = "anonymous", password: str = "", account: str = "") -> str:
        """Log in again on the open connection."""
        return self._connection.login(username, password, account)

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        self._connection.disconnect()

    def __enter__(self) -> "FtpClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __len__(self) -> int:
        return self.count_items()

    # Navigation

    def pwd(self) -> str:
        """Current remote directory."""
        return self._connection.pwd()

    def chdir(self, directory: str) -> None:
        """Change the remote directory."""
        self._connection.chdir(directory)

    def cdup(self) -> None:
        """Change to the parent directory."""
        self._connection.cdup()

    up = cdup

    # Listings

    def nlist(
        self,
        directory: str = ".",
        recursive: bool = False,
        order: ListingOrder = ListingOrder.ASCENDING
    ) -> List[str]:
        """List names in a directory, optionally recursively."""
        return self._scanner.nlist(directory, recursive, order)

    def rawlist(self, directory: str = ".", recursive: bool = False) -> Dict[str, str]:
        """List a directory as 'type#path' keys to raw LIST lines."""
        return self._scanner.rawlist(directory, recursive)

    def scan_dir(self, directory: str = ".", recursive: bool = False) -> Dict[str, DirectoryEntry]:
        """List a directory as 'type#path' keys to parsed entries."""
        return self._scanner.scan_dir(directory, recursive)

    def mlsd(self, directory: str = "") -> List[Tuple[str, Dict[str, str]]]:
        """Machine-readable listing (MLSD)."""
        return self._connection.mlsd(directory)

    def dir_size(self, directory: str = ".", recursive: bool = True) -> int:
        """Total size in bytes of a directory's entries."""
        return self._scanner.dir_size(directory, recursive)

    def count_items(
        self,
        directory: str = ".",
        type: Optional[Union[EntryType, str]] = None,
        recursive: bool = True
    ) -> int:
        """Count a directory's items, optionally of one type only."""
        return self._scanner.count_items(directory, type, recursive)

    def is_dir(self, path: str) -> bool:
        """True if path is a remote directory."""
        return self._scanner.is_dir(path)

    def is_empty(self, directory: str) -> bool:
        """True if a remote directory has no entries."""
        return self._scanner.is_empty(directory)

    # Tree modification

    def mkdir(self, directory: str, recursive: bool = False) -> str:
        """Create a directory, with its parents if recursive."""
        return self._tree.mkdir(directory, recursive)

    def rmdir(self, directory: str, recursive: bool = True) -> bool:
        """Remove a directory, with its contents if recursive."""
        return self._tree.rmdir(directory, recursive)

    def clean_dir(self, directory: str) -> bool:
        """Remove everything inside a directory."""
        return self._tree.clean_dir(directory)

    def remove(self, path: str, recursive: bool = False) -> bool:
        """Remove a file or directory (best effort)."""
        return self._tree.remove(path, recursive)

    def delete(self, path: str) -> None:
        """Delete a single file (DELE)."""
        self._connection.delete(path)

    def rename(self, old_path: str, new_path: str) -> None:
        """Rename a remote file or directory."""
        self._connection.rename(old_path, new_path)

    def chmod(self, mode: int, path: str) -> None:
        """Set permissions, e.g. chmod(0o644, "index.html")."""
        self._connection.chmod(mode, path)

    def chown(self, owner: str, path: str) -> None:
        """Change owner (server extension)."""
        self._connection.chown(owner, path)

    def chgrp(self, group: str, path: str) -> None:
        """Change group (server extension)."""
        self._connection.chgrp(group, path)

    # File information

    def size(self, path: str) -> int:
        """Size of a remote file in bytes."""
        return self._connection.size(path)

    def modified_time(self, path: str) -> datetime:
        """Last modification time of a remote file (UTC)."""
        return self._connection.modified_time(path)

    # Transfers

    def put(
        self,
        stream: BinaryIO,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY,
        start_pos: int = 0,
        callback: Optional[BlockCallback] = None
    ) -> int:
        """Upload a binary stream."""
        return self._connection.put(stream, remote_path, mode, start_pos, callback)

    def get(
        self,
        stream: BinaryIO,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY,
        resume_pos: int = 0,
        callback: Optional[BlockCallback] = None
    ) -> int:
        """Download a remote file into a binary stream."""
        return self._connection.get(stream, remote_path, mode, resume_pos, callback)

    def append(
        self,
        stream: BinaryIO,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY
    ) -> int:
        """Append a binary stream to a remote file."""
        return self._connection.append(stream, remote_path, mode)

    def put_file(
        self,
        local_path: PathLike,
        remote_path: Optional[str] = None,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """Upload a local file."""
        return self._transfer.put_file(local_path, remote_path, mode, on_progress)

    def get_file(
        self,
        remote_path: str,
        local_path: PathLike,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None
    ) -> int:
        """Download a remote file to disk."""
        return self._transfer.get_file(remote_path, local_path, mode, on_progress)

    def put_bytes(
        self,
        remote_path: str,
        content: Union[bytes, str],
        mode: TransferMode = TransferMode.BINARY
    ) -> int:
        """Upload in-memory content."""
        return self._transfer.put_bytes(remote_path, content, mode)

    put_from_string = put_bytes

    def get_bytes(
        self,
        remote_path: str,
        mode: TransferMode = TransferMode.BINARY,
        resume_pos: int = 0
    ) -> bytes:
        """Download a remote file into memory."""
        return self._transfer.get_bytes(remote_path, mode, resume_pos)

    get_content = get_bytes

    def put_all(
        self,
        source_dir: PathLike,
        target_dir: str,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None
    ) -> List[TransferResult]:
        """Upload a local directory tree."""
        return self._transfer.put_all(source_dir, target_dir, mode, on_progress)

    def get_all(
        self,
        source_dir: str,
        target_dir: PathLike,
        mode: TransferMode = TransferMode.BINARY,
        on_progress: Optional[ProgressCallback] = None
    ) -> List[TransferResult]:
        """Download a remote directory tree."""
        return self._transfer.get_all(source_dir, target_dir, mode, on_progress)

    # Server commands

    def noop(self) -> None:
        """Keep the connection alive."""
        self._connection.noop()

    def set_passive(self, passive: bool = True) -> None:
        """Turn passive mode on or off."""
        self._connection.set_passive(passive)

    def systype(self) -> str:
        """Server system type."""
        return self._connection.systype()

    def help(self) -> List[str]:
        """Server HELP reply lines."""
        return self._connection.help()

    def site(self, command: str) -> str:
        """Send a SITE command."""
        return self._connection.site(command)

    def exec(self, command: str) -> str:
        """Execute a command on the server (SITE EXEC)."""
        return self._connection.exec_command(command)

    def alloc(self, size: int) -> str:
        """Allocate space for an upload (ALLO)."""
        return self._connection.alloc(size)

    def raw(self, command: str) -> List[str]:
        """Send an arbitrary command, returning the reply lines."""
        return self._connection.raw(command)
