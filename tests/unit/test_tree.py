"""Unit tests for RemoteTree.

Tests recursive mkdir, best-effort removal with the sanitized rename
fallback, and directory cleaning over an in-memory connection.
"""

import pytest

from ftptree.ftp.exceptions import FTPConnectionError, FTPPathError
from ftptree.ftp.tree import RemoteTree, sanitize_path


@pytest.fixture
def tree(fake_connection, scanner) -> RemoteTree:
    """Provide a RemoteTree over the in-memory connection."""
    return RemoteTree(fake_connection, scanner)


class TestSanitizePath:
    """Tests for sanitize_path()."""

    def test_strips_everything_but_alphanumerics_and_slashes(self):
        """Test the rename target used when deletion fails."""
        assert sanitize_path("/data/bad name (1).txt") == "/data/badname1txt"


class TestMkdir:
    """Tests for mkdir()."""

    def test_single(self, tree, fake_connection):
        """Test a plain MKD."""
        assert tree.mkdir("/data/new") == "/data/new"
        assert "/data/new" in fake_connection.dirs

    def test_missing_parent_without_recursive_fails(self, tree):
        """Test that parents are not created by default."""
        with pytest.raises(FTPPathError):
            tree.mkdir("/data/x/y/z")

    def test_recursive_absolute(self, tree, fake_connection):
        """Test creating every missing component from the root."""
        fake_connection.chdir("/data/sub")

        tree.mkdir("/data/x/y/z", recursive=True)

        assert {"/data/x", "/data/x/y", "/data/x/y/z"} <= fake_connection.dirs
        assert fake_connection.cwd == "/data/sub"

    def test_recursive_relative(self, tree, fake_connection):
        """Test relative paths are created below the working directory."""
        fake_connection.chdir("/data")

        tree.mkdir("sub/p/q", recursive=True)

        assert {"/data/sub/p", "/data/sub/p/q"} <= fake_connection.dirs
        assert fake_connection.cwd == "/data"

    def test_recursive_restores_directory_on_failure(self, tree, fake_connection):
        """Test that a refused component still restores the working directory."""
        fake_connection.refuse_mkdir.add("/data/x/y")
        fake_connection.chdir("/data")

        with pytest.raises(FTPPathError):
            tree.mkdir("/data/x/y/z", recursive=True)

        assert fake_connection.cwd == "/data"

    def test_recursive_existing_path_issues_single_mkd(self, tree, fake_connection):
        """Test that an existing path gets one MKD, which the server refuses."""
        with pytest.raises(FTPPathError):
            tree.mkdir("/data/sub", recursive=True)

        assert [c for c in fake_connection.commands if c.startswith("MKD")] == ["MKD /data/sub"]


class TestRemove:
    """Tests for remove()."""

    def test_file(self, tree, fake_connection):
        """Test removing a file."""
        assert tree.remove("/data/a.txt") is True
        assert "/data/a.txt" not in fake_connection.files

    def test_empty_directory(self, tree, fake_connection):
        """Test removing an empty directory without recursion."""
        assert tree.remove("/data/empty") is True
        assert "/data/empty" not in fake_connection.dirs

    def test_non_empty_directory_needs_recursive(self, tree, fake_connection):
        """Test that a populated directory stays without recursion."""
        assert tree.remove("/data/sub") is False
        assert "/data/sub" in fake_connection.dirs

    def test_recursive_directory(self, tree, fake_connection):
        """Test removing a whole subtree."""
        assert tree.remove("/data/sub", recursive=True) is True
        assert not any(p.startswith("/data/sub") for p in fake_connection.dirs)
        assert not any(p.startswith("/data/sub") for p in fake_connection.files)

    def test_dot_entries_are_refused(self, tree, fake_connection):
        """Test that '.' and '..' are never removed."""
        assert tree.remove(".") is False
        assert tree.remove("..") is False
        assert fake_connection.commands == []

    def test_missing_path(self, tree):
        """Test that a missing path is reported as failure."""
        assert tree.remove("/data/ghost") is False

    def test_sanitized_rename_fallback(self, tree, fake_connection):
        """Test the rename-then-delete retry for refused names."""
        fake_connection.add_file("/data/bad name.txt", b"x")
        fake_connection.refuse_delete.add("/data/bad name.txt")

        assert tree.remove("/data/bad name.txt") is True

        assert "RNFR /data/bad name.txt" in fake_connection.commands
        assert "DELE /data/badnametxt" in fake_connection.commands
        assert "/data/bad name.txt" not in fake_connection.files
        assert "/data/badnametxt" not in fake_connection.files

    def test_connection_errors_propagate(self, tree, fake_connection):
        """Test that only server refusals are reported as False."""
        def broken(path):
            raise FTPConnectionError("127.0.0.1", 21)

        fake_connection.delete = broken

        with pytest.raises(FTPConnectionError):
            tree.remove("/data/a.txt")


class TestRmdir:
    """Tests for rmdir() and clean_dir()."""

    def test_recursive(self, tree, fake_connection):
        """Test that children are removed before the directory."""
        assert tree.rmdir("/data") is True
        assert fake_connection.dirs == {"/"}
        assert fake_connection.files == {}

    def test_children_removed_in_descending_order(self, tree, fake_connection):
        """Test the order of child removal."""
        tree.rmdir("/data/sub")

        deletes = [c for c in fake_connection.commands if c.startswith(("DELE", "RMD"))]
        assert deletes.index("RMD /data/sub/deep") < deletes.index("DELE /data/sub/b.txt")
        assert deletes[-1] == "RMD /data/sub"

    def test_partial_failure_continues(self, tree, fake_connection):
        """Test that one stubborn child does not stop the others."""
        fake_connection.add_file("/data/sub/locked", b"x")
        fake_connection.refuse_delete.add("/data/sub/locked")

        assert tree.rmdir("/data/sub") is False

        assert "/data/sub/b.txt" not in fake_connection.files
        assert "/data/sub/deep" not in fake_connection.dirs
        assert "/data/sub/locked" in fake_connection.files
        assert "/data/sub" in fake_connection.dirs

    def test_non_recursive_on_populated_directory(self, tree, fake_connection):
        """Test that RMD alone fails for populated directories."""
        assert tree.rmdir("/data/sub", recursive=False) is False
        assert "/data/sub/b.txt" in fake_connection.files

    def test_clean_dir(self, tree, fake_connection):
        """Test emptying a directory while keeping it."""
        assert tree.clean_dir("/data") is True
        assert fake_connection.dirs == {"/", "/data"}
        assert fake_connection.files == {}

    def test_clean_dir_with_stubborn_child(self, tree, fake_connection):
        """Test that clean_dir reports a directory left non-empty."""
        fake_connection.add_file("/data/locked", b"x")
        fake_connection.refuse_delete.add("/data/locked")

        assert tree.clean_dir("/data") is False
        assert list(fake_connection.files) == ["/data/locked"]
