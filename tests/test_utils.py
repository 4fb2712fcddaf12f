"""Unit tests for utility functions."""

from pybdfs.utils import (
    format_size,
    format_timestamp,
    is_absolute_remote_path,
    looks_like_directory,
    remote_basename,
    split_remote_path,
)


class TestFormatSize:
    """Tests for format_size."""

    def test_bytes(self):
        """Test sizes below one kilobyte."""
        assert format_size(0) == "0 B"
        assert format_size(512) == "512 B"

    def test_kilobytes(self):
        """Test kilobyte formatting."""
        assert format_size(1536) == "1.5 KB"

    def test_megabytes(self):
        """Test megabyte formatting."""
        assert format_size(4 * 1024 * 1024) == "4.0 MB"

    def test_gigabytes(self):
        """Test gigabyte formatting."""
        assert format_size(2 * 1024**3) == "2.0 GB"

    def test_terabytes(self):
        """Test terabyte formatting."""
        assert format_size(2 * 1024**4) == "2.0 TB"


class TestFormatTimestamp:
    """Tests for format_timestamp."""

    def test_zero_is_not_available(self):
        """Test that a missing timestamp renders as N/A."""
        assert format_timestamp(0) == "N/A"
        assert format_timestamp(None) == "N/A"

    def test_format(self):
        """Test the timestamp layout."""
        result = format_timestamp(1700000000)
        assert len(result) == 19
        assert result[4] == "-" and result[13] == ":"


class TestRemotePaths:
    """Tests for remote path helpers."""

    def test_absolute_path(self):
        """Test absolute path detection."""
        assert is_absolute_remote_path("/a/b.txt")
        assert not is_absolute_remote_path("a/b.txt")
        assert not is_absolute_remote_path("")

    def test_split_nested(self):
        """Test splitting a nested path."""
        assert split_remote_path("/docs/2024/report.pdf") == ("/docs/2024", "report.pdf")

    def test_split_top_level(self):
        """Test that the parent of a top-level entry is the root."""
        assert split_remote_path("/report.pdf") == ("/", "report.pdf")

    def test_split_trailing_slash(self):
        """Test that trailing slashes are ignored."""
        assert split_remote_path("/docs/2024/") == ("/docs", "2024")

    def test_basename(self):
        """Test extracting the last path component."""
        assert remote_basename("/a/b/c.txt") == "c.txt"
        assert remote_basename("/a/b/") == "b"

    def test_looks_like_directory(self):
        """Test the directory heuristic used by copy."""
        assert looks_like_directory("/backup/")
        assert looks_like_directory("/backup")
        assert not looks_like_directory("/backup/a.txt")
