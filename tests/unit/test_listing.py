"""Unit tests for the listing parser.

Tests line parsing, entry classification, keys and raw list parsing.
"""

import pytest

from ftptree.ftp.listing import (
    DirectoryEntry,
    EntryType,
    classify,
    join_remote,
    listing_key,
    parse_directory_header,
    parse_line,
    parse_raw_list,
)


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize("permissions,expected", [
        ("-rw-r--r--", EntryType.FILE),
        ("drwxr-xr-x", EntryType.DIRECTORY),
        ("lrwxrwxrwx", EntryType.LINK),
        ("crw-rw-rw-", EntryType.UNKNOWN),
        ("", EntryType.UNKNOWN),
    ])
    def test_first_character_decides(self, permissions, expected):
        """Test that only the first character selects the type."""
        assert classify(permissions) == expected


class TestParseLine:
    """Tests for parse_line()."""

    def test_regular_file(self):
        """Test parsing a plain file line."""
        entry = parse_line("-rw-r--r-- 1 1000 staff 1234 Dec 12 10:15 index.php")

        assert entry == DirectoryEntry(
            permissions="-rw-r--r--",
            links=1,
            owner="1000",
            group="staff",
            size=1234,
            month="Dec",
            day="12",
            time="10:15",
            name="index.php",
            type=EntryType.FILE,
        )
        assert entry.is_file is True
        assert entry.target is None

    def test_name_keeps_embedded_spaces(self):
        """Test that the ninth field keeps spaces of the file name."""
        entry = parse_line("-rw-r--r--  1 ftp  ftp   42 Jan  3  2023 my  holiday photo.jpg")

        assert entry.name == "my  holiday photo.jpg"
        assert entry.size == 42
        assert entry.time == "2023"

    def test_directory(self):
        """Test parsing a directory line."""
        entry = parse_line("drwxr-xr-x 2 root root 4096 Mar 1 09:00 www")

        assert entry.type == EntryType.DIRECTORY
        assert entry.is_directory is True

    def test_symlink_splits_name_and_target(self):
        """Test that symlinks are split on the arrow."""
        entry = parse_line("lrwxrwxrwx 1 root root 11 Mar 1 09:00 current -> releases/42")

        assert entry.type == EntryType.LINK
        assert entry.name == "current"
        assert entry.target == "releases/42"

    def test_short_line_is_skipped(self):
        """Test that lines with fewer than nine fields are ignored."""
        assert parse_line("total 12") is None
        assert parse_line("") is None

    def test_dot_entries_are_skipped(self):
        """Test that '.' and '..' are ignored."""
        assert parse_line("drwxr-xr-x 2 root root 4096 Mar 1 09:00 .") is None
        assert parse_line("drwxr-xr-x 2 root root 4096 Mar 1 09:00 ..") is None

    def test_non_numeric_counts_parse_as_zero(self):
        """Test that odd link counts and sizes do not fail the line."""
        entry = parse_line("-rw-r--r-- x owner group ? Dec 12 10:15 odd.txt")

        assert entry.links == 0
        assert entry.size == 0


class TestDirectoryHeader:
    """Tests for parse_directory_header()."""

    def test_header(self):
        """Test that 'path:' lines are recognized."""
        assert parse_directory_header("./sub/deep:") == "./sub/deep"

    def test_not_a_header(self):
        """Test that other lines are not headers."""
        assert parse_directory_header("total 8") is None
        assert parse_directory_header("") is None
        assert parse_directory_header("-rw-r--r-- 1 a b 1 Dec 12 10:15 x:") is None


class TestKeys:
    """Tests for join_remote() and listing_key()."""

    @pytest.mark.parametrize("base,name,expected", [
        (".", "a.txt", "a.txt"),
        ("", "a.txt", "a.txt"),
        ("/", "a.txt", "/a.txt"),
        ("/data", "a.txt", "/data/a.txt"),
        ("/data/", "a.txt", "/data/a.txt"),
        ("sub", "deep", "sub/deep"),
    ])
    def test_join_remote(self, base, name, expected):
        """Test joining without doubled slashes."""
        assert join_remote(base, name) == expected

    def test_key_uses_type_and_path(self):
        """Test key format for a file inside a directory."""
        entry = parse_line("-rw-r--r-- 1 a b 5 Dec 12 10:15 a.txt")
        assert listing_key(entry, "/data") == "file#/data/a.txt"

    def test_key_strips_leading_dot_slash(self):
        """Test that './' prefixes do not leak into keys."""
        entry = parse_line("drwxr-xr-x 2 a b 4096 Dec 12 10:15 sub")
        assert listing_key(entry, "./") == "directory#sub"

    def test_link_key_uses_link_side(self):
        """Test that links are keyed by their own name."""
        entry = parse_line("lrwxrwxrwx 1 a b 11 Mar 1 09:00 current -> releases/42")
        assert listing_key(entry) == "link#current"


class TestParseRawList:
    """Tests for parse_raw_list()."""

    def test_recursive_output_with_headers(self):
        """Test that section headers prefix the following entries."""
        lines = [
            "-rw-r--r-- 1 a b 5 Dec 12 10:15 top.txt",
            "drwxr-xr-x 2 a b 4096 Dec 12 10:15 sub",
            "",
            "./sub:",
            "-rw-r--r-- 1 a b 7 Dec 12 10:15 inner.txt",
        ]

        items = parse_raw_list(lines)

        assert set(items) == {"file#top.txt", "directory#sub", "file#sub/inner.txt"}
        assert items["file#sub/inner.txt"].size == 7

    def test_blank_line_resets_header(self):
        """Test that entries after a blank line are at the top level again."""
        lines = [
            "sub:",
            "-rw-r--r-- 1 a b 1 Dec 12 10:15 one",
            "",
            "-rw-r--r-- 1 a b 2 Dec 12 10:15 two",
        ]

        items = parse_raw_list(lines)

        assert set(items) == {"file#sub/one", "file#two"}

    def test_mapping_keeps_keys(self):
        """Test that precomputed keys are kept as they are."""
        raw = {
            "file#/data/a.txt": "-rw-r--r-- 1 a b 5 Dec 12 10:15 a.txt",
            "file#/data/junk": "total 4",
        }

        items = parse_raw_list(raw)

        assert list(items) == ["file#/data/a.txt"]
        assert items["file#/data/a.txt"].name == "a.txt"

    def test_later_entry_wins_on_collision(self):
        """Test that a repeated key keeps the later entry."""
        lines = [
            "-rw-r--r-- 1 a b 1 Dec 12 10:15 same",
            "-rw-r--r-- 1 a b 9 Dec 12 10:15 same",
        ]

        assert parse_raw_list(lines)["file#same"].size == 9
