"""Unit tests for the directory walker."""

import threading
from unittest.mock import Mock

from pybdfs.exceptions import BdfsProtocolError
from pybdfs.models import FileEntry
from pybdfs.walker import DirectoryWalker


def _file(path):
    return FileEntry(path=path, is_dir=False)


def _dir(path):
    return FileEntry(path=path, is_dir=True)


def _client(tree, failing=()):
    """Build a client whose list_files serves ``tree``."""

    def list_files(path):
        if path in failing:
            raise BdfsProtocolError("list", -9)
        return list(tree.get(path, []))

    client = Mock()
    client.list_files.side_effect = list_files
    return client


class TestDirectoryWalker:
    """Tests for DirectoryWalker."""

    def test_pre_order(self):
        """Test depth-first pre-order emission."""
        tree = {
            "/": [_file("/a"), _dir("/b")],
            "/b": [_file("/b/c")],
        }
        with DirectoryWalker(_client(tree)).walk("/") as walk:
            paths = [entry.path for entry in walk]
            errors = walk.error_list()

        assert paths == ["/a", "/b", "/b/c"]
        assert errors == []

    def test_children_before_next_sibling(self):
        """Test that a directory is fully expanded before its next sibling."""
        tree = {
            "/": [_dir("/x"), _file("/y")],
            "/x": [_dir("/x/1"), _file("/x/2")],
            "/x/1": [_file("/x/1/deep")],
        }
        walk = DirectoryWalker(_client(tree)).walk("/")
        paths = [entry.path for entry in walk]
        assert paths == ["/x", "/x/1", "/x/1/deep", "/x/2", "/y"]

    def test_branch_error(self):
        """Test that a listing error stops only its own branch."""
        tree = {
            "/": [_file("/a"), _dir("/b"), _dir("/d")],
            "/d": [_file("/d/e")],
        }
        walk = DirectoryWalker(_client(tree, failing={"/b"})).walk("/")
        paths = [entry.path for entry in walk]
        errors = walk.error_list()

        assert paths == ["/a", "/b", "/d", "/d/e"]
        assert len(errors) == 1
        assert errors[0].path == "/b"
        assert errors[0].error.errno == -9

    def test_malformed_listing_is_reported(self):
        """Test that an unexpected listing exception becomes a walk error."""
        client = Mock()

        def list_files(path):
            if path == "/b":
                raise ValueError("invalid literal for int() with base 10: 'x'")
            return [_file("/a"), _dir("/b"), _file("/c")]

        client.list_files.side_effect = list_files
        walk = DirectoryWalker(client).walk("/")
        paths = [entry.path for entry in walk]
        errors = walk.error_list()

        assert paths == ["/a", "/b", "/c"]
        assert [error.path for error in errors] == ["/b"]
        assert isinstance(errors[0].error, ValueError)

    def test_root_error(self):
        """Test that failing to list the root ends the walk with one error."""
        walk = DirectoryWalker(_client({}, failing={"/"})).walk("/")
        assert list(walk) == []
        assert [error.path for error in walk.error_list()] == ["/"]

    def test_empty_directory(self):
        """Test walking an empty directory."""
        walk = DirectoryWalker(_client({"/empty": []})).walk("/empty")
        assert list(walk) == []

    def test_backpressure(self):
        """Test that the producer does not list ahead of a stalled consumer."""
        tree = {
            "/": [_dir("/a"), _dir("/b")],
            "/a": [_file("/a/1")],
            "/b": [_file("/b/1")],
        }
        client = _client(tree)
        listed = threading.Event()
        original = client.list_files.side_effect

        def list_files(path):
            if path == "/b":
                listed.set()
            return original(path)

        client.list_files.side_effect = list_files
        walk = DirectoryWalker(client).walk("/")

        first = next(walk)
        assert first.path == "/a"
        # Only one entry can be buffered, so /b cannot have been listed yet
        assert not listed.wait(0.2)

        assert [entry.path for entry in walk] == ["/a/1", "/b", "/b/1"]
        assert listed.is_set()

    def test_close_stops_producer(self):
        """Test that closing the walk early stops the producer thread."""
        tree = {"/": [_file(f"/{i}") for i in range(50)]}
        walk = DirectoryWalker(_client(tree)).walk("/")

        assert next(walk).path == "/0"
        walk.close()

        assert not walk._thread.is_alive()
        assert list(walk) == []
