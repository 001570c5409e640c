"""Pytest configuration and shared fixtures for ftptree tests."""

import posixpath
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest

from ftptree.ftp.connection import FTPConnectionConfig
from ftptree.ftp.exceptions import FTPPathError
from ftptree.ftp.scanner import DirectoryScanner
from ftptree.ftp.transport import TransferMode


# Test constants
TEST_FTP_HOST = "127.0.0.1"
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"


class FakeFTPConnection:
    """
    In-memory stand-in for FTPConnectionManager.

    Keeps a tiny remote filesystem (a set of directories and a dict of
    file contents) and answers the commands the tree helpers use, raising
    FTPPathError the way a real server reply would.
    """

    def __init__(self):
        self.is_connected = True
        self.config = FTPConnectionConfig(host=TEST_FTP_HOST)
        self.cwd = "/"
        self.dirs: Set[str] = {"/"}
        self.files: Dict[str, bytes] = {}
        self.links: Dict[str, str] = {}
        self.refuse_delete: Set[str] = set()
        self.refuse_mkdir: Set[str] = set()
        self.commands: List[str] = []

    # Filesystem helpers

    def _abs(self, path: Optional[str]) -> str:
        if not path or path == ".":
            return self.cwd
        return self._resolve(posixpath.normpath(posixpath.join(self.cwd, path)))

    def _resolve(self, path: str) -> str:
        """Follow the first linked directory on the path."""
        parts = path.split("/")
        for i in range(len(parts), 1, -1):
            prefix = "/".join(parts[:i])
            if prefix in self.links:
                return posixpath.join(self.links[prefix], *parts[i:]).rstrip("/") or "/"
        return path

    def _children(self, directory: str) -> List[str]:
        return sorted(
            p for p in self.dirs | set(self.files) | set(self.links)
            if p != "/" and posixpath.dirname(p) == directory
        )

    def add_dir(self, path: str) -> None:
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def add_file(self, path: str, content: bytes = b"") -> None:
        self.add_dir(posixpath.dirname(path))
        self.files[path] = content

    def add_link(self, path: str, target: str) -> None:
        self.add_dir(posixpath.dirname(path))
        self.links[path] = target

    # Commands

    def pwd(self) -> str:
        self.commands.append("PWD")
        return self.cwd

    def chdir(self, path: str) -> None:
        self.commands.append(f"CWD {path}")
        target = self._abs(path)
        if target not in self.dirs:
            raise FTPPathError(path, "change directory to")
        self.cwd = target

    def cdup(self) -> None:
        self.chdir("..")

    def nlist(self, path: str = "") -> List[str]:
        self.commands.append(f"NLST {path}".strip())
        directory = self._abs(path)
        if directory not in self.dirs:
            raise FTPPathError(path, "list")
        return [posixpath.basename(p) for p in self._children(directory)]

    def rawlist(self, path: str = "") -> List[str]:
        self.commands.append(f"LIST {path}".strip())
        directory = self._abs(path)
        if directory not in self.dirs:
            raise FTPPathError(path, "list")
        lines = []
        for child in self._children(directory):
            name = posixpath.basename(child)
            if child in self.links:
                lines.append(f"lrwxrwxrwx 1 owner group 4 Jan 01 12:00 {name} -> {self.links[child]}")
            elif child in self.dirs:
                lines.append(f"drwxr-xr-x 2 owner group 4096 Jan 01 12:00 {name}")
            else:
                size = len(self.files[child])
                lines.append(f"-rw-r--r-- 1 owner group {size} Jan 01 12:00 {name}")
        return lines

    def mkdir(self, path: str) -> str:
        self.commands.append(f"MKD {path}")
        target = self._abs(path)
        if (
            target in self.dirs
            or target in self.files
            or posixpath.dirname(target) not in self.dirs
            or target in self.refuse_mkdir
        ):
            raise FTPPathError(path, "create")
        self.dirs.add(target)
        return target

    def rmdir(self, path: str) -> None:
        self.commands.append(f"RMD {path}")
        target = self._abs(path)
        if target not in self.dirs or target == "/" or self._children(target):
            raise FTPPathError(path, "remove directory")
        self.dirs.discard(target)

    def delete(self, path: str) -> None:
        self.commands.append(f"DELE {path}")
        target = self._abs(path)
        if target not in self.files or target in self.refuse_delete:
            raise FTPPathError(path, "delete")
        del self.files[target]

    def rename(self, old_path: str, new_path: str) -> None:
        self.commands.append(f"RNFR {old_path}")
        source = self._abs(old_path)
        target = self._abs(new_path)
        if source in self.files:
            self.files[target] = self.files.pop(source)
        elif source in self.dirs:
            prefix = source + "/"
            self.dirs = {
                target + d[len(source):] if d == source or d.startswith(prefix) else d
                for d in self.dirs
            }
            self.files = {
                (target + p[len(source):] if p.startswith(prefix) else p): data
                for p, data in self.files.items()
            }
        else:
            raise FTPPathError(old_path, "rename")

    def size(self, path: str) -> int:
        target = self._abs(path)
        if target not in self.files:
            raise FTPPathError(path, "get size of")
        return len(self.files[target])

    def put(self, stream, remote_path, mode=TransferMode.BINARY, start_pos=0, callback=None) -> int:
        self.commands.append(f"STOR {remote_path}")
        target = self._abs(remote_path)
        if posixpath.dirname(target) not in self.dirs:
            raise FTPPathError(remote_path, "upload")
        data = stream.read()
        self.files[target] = data
        if callback and data:
            callback(data)
        return len(data)

    def get(self, stream, remote_path, mode=TransferMode.BINARY, resume_pos=0, callback=None) -> int:
        self.commands.append(f"RETR {remote_path}")
        target = self._abs(remote_path)
        if target not in self.files:
            raise FTPPathError(remote_path, "download")
        data = self.files[target][resume_pos:]
        stream.write(data)
        if callback and data:
            callback(data)
        return len(data)


@pytest.fixture
def fake_connection() -> FakeFTPConnection:
    """Provide an in-memory connection with a small tree.

    /data/a.txt ("alpha")
    /data/sub/b.txt ("bravo!")
    /data/sub/deep/c.bin (3 bytes)
    /data/empty/
    """
    connection = FakeFTPConnection()
    connection.add_file("/data/a.txt", b"alpha")
    connection.add_file("/data/sub/b.txt", b"bravo!")
    connection.add_file("/data/sub/deep/c.bin", b"\x00\x01\x02")
    connection.add_dir("/data/empty")
    return connection


@pytest.fixture
def scanner(fake_connection: FakeFTPConnection) -> DirectoryScanner:
    """Provide a scanner over the in-memory connection."""
    return DirectoryScanner(fake_connection)


@pytest.fixture
def local_tree(tmp_path: Path) -> Path:
    """Create a small local directory tree for upload tests."""
    root = tmp_path / "site"
    (root / "css").mkdir(parents=True)
    (root / "img" / "icons").mkdir(parents=True)
    (root / "index.html").write_text("<html></html>\n")
    (root / "css" / "style.css").write_text("body {}\n")
    (root / "img" / "icons" / "logo.png").write_bytes(b"\x89PNG" + b"\x00" * 60)
    return root
