"""Unit tests for the bdfs CLI commands."""

import json
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
from click.testing import CliRunner

from pybdfs.cli import main
from pybdfs.config import Config
from pybdfs.exceptions import (
    BdfsBatchError,
    BdfsConfigError,
    BdfsProtocolError,
    DeviceCodeExpired,
)
from pybdfs.models import BatchItemFailure, DiskInfo, FileEntry, TokenRecord
from pybdfs.walker import DirectoryWalker


@pytest.fixture
def runner():
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def mock_client():
    """Patch config loading and client construction."""
    config = Config(client_id="id", client_secret="secret", token_path="/tmp/t.json")
    client = Mock()
    with patch("pybdfs.cli.load_config", return_value=config), patch(
        "pybdfs.cli.PanClient"
    ) as mock_client_class:
        mock_client_class.from_config.return_value = client
        yield client


class TestMainGroup:
    """Tests for the main CLI group."""

    def test_main_help(self, runner):
        """Test main help shows all commands."""
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        for command in (
            "ls",
            "upload",
            "download",
            "rm",
            "mv",
            "rename",
            "mkdir",
            "cp",
            "info",
            "disk-info",
            "refresh",
        ):
            assert command in result.output
        assert "--client-id" in result.output

    def test_config_error(self, runner):
        """Test that missing configuration exits with an error."""
        with patch(
            "pybdfs.cli.load_config", side_effect=BdfsConfigError("Missing config")
        ):
            result = runner.invoke(main, ["ls"])
        assert result.exit_code == 1
        assert "Missing config" in result.output

    def test_overrides_passed_to_config(self, runner, mock_client):
        """Test that global options reach load_config."""
        mock_client.list_files.return_value = []
        with patch("pybdfs.cli.load_config") as mock_load:
            mock_load.return_value = Config("a", "b", "c")
            result = runner.invoke(main, ["--client-id", "cli-id", "ls"])
        assert result.exit_code == 0
        assert mock_load.call_args.kwargs["client_id"] == "cli-id"

    def test_authorization_failure(self, runner, mock_client):
        """Test that auth errors exit non-zero before the command runs."""
        mock_client.ensure_authorized.side_effect = DeviceCodeExpired("expired")
        result = runner.invoke(main, ["ls"])
        assert result.exit_code == 1
        assert "expired" in result.output
        mock_client.list_files.assert_not_called()


class TestLsCommand:
    """Tests for the ls command."""

    def test_ls_table(self, runner, mock_client):
        """Test listing a directory as a table."""
        mock_client.list_files.return_value = [
            FileEntry(path="/docs", is_dir=True),
            FileEntry(path="/a.txt", is_dir=False, size=2048),
        ]
        result = runner.invoke(main, ["ls", "-p", "/"])

        assert result.exit_code == 0
        assert "docs/" in result.output
        assert "a.txt" in result.output
        assert "2.0 KB" in result.output
        mock_client.ensure_authorized.assert_called_once()
        mock_client.list_files.assert_called_once_with("/")

    def test_ls_json(self, runner, mock_client):
        """Test JSON output."""
        mock_client.list_files.return_value = [
            FileEntry(path="/a.txt", is_dir=False, size=1)
        ]
        result = runner.invoke(main, ["--json", "ls"])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data[0]["path"] == "/a.txt"

    def test_ls_recursive(self, runner, mock_client):
        """Test recursive listing through the walker."""
        lister = Mock()
        tree = {
            "/": [FileEntry("/a", False), FileEntry("/b", True)],
            "/b": [FileEntry("/b/c", False)],
        }
        lister.list_files.side_effect = lambda path: tree[path]
        mock_client.walk.side_effect = lambda path: DirectoryWalker(lister).walk(path)

        result = runner.invoke(main, ["ls", "-r"])

        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if line]
        assert lines == ["/a", "/b/", "/b/c"]

    def test_ls_recursive_with_error(self, runner, mock_client):
        """Test that listing errors are reported and exit non-zero."""
        lister = Mock()

        def list_files(path):
            if path == "/b":
                raise BdfsProtocolError("list", 3)
            return [FileEntry("/a", False), FileEntry("/b", True)]

        lister.list_files.side_effect = list_files
        mock_client.walk.side_effect = lambda path: DirectoryWalker(lister).walk(path)

        result = runner.invoke(main, ["ls", "-r"])

        assert result.exit_code == 1
        assert "/a" in result.output
        assert "Failed to list" in result.output

    def test_ls_error(self, runner, mock_client):
        """Test that API errors exit with code 1."""
        mock_client.list_files.side_effect = BdfsProtocolError("list", -9)
        result = runner.invoke(main, ["ls", "-p", "/missing"])
        assert result.exit_code == 1
        assert "error code -9" in result.output


class TestUploadCommand:
    """Tests for the upload command."""

    def test_upload(self, runner, mock_client, tmp_path):
        """Test uploading a file."""
        source = tmp_path / "a.txt"
        source.write_text("hello")
        mock_client.upload_file.return_value = FileEntry(
            path="/r/a.txt", is_dir=False, size=5, md5="m"
        )

        result = runner.invoke(
            main, ["upload", "-s", str(source), "-d", "/r/a.txt", "--no-progress"]
        )

        assert result.exit_code == 0
        assert "Uploaded" in result.output
        args = mock_client.upload_file.call_args
        assert args.args[1] == "/r/a.txt"
        assert args.kwargs["slice_retries"] == 2

    def test_upload_to_directory(self, runner, mock_client, tmp_path):
        """Test that a trailing slash keeps the local file name."""
        source = tmp_path / "a.txt"
        source.write_text("hello")
        mock_client.upload_file.return_value = None

        result = runner.invoke(main, ["upload", "-s", str(source), "-d", "/r/"])

        assert result.exit_code == 0
        assert mock_client.upload_file.call_args.args[1] == "/r/a.txt"
        assert "already up to date" in result.output

    def test_upload_missing_file(self, runner, mock_client, tmp_path):
        """Test that a missing local file fails before authorization."""
        result = runner.invoke(
            main, ["upload", "-s", str(tmp_path / "nope"), "-d", "/r/x"]
        )
        assert result.exit_code == 1
        assert "does not exist" in result.output
        mock_client.ensure_authorized.assert_not_called()

    def test_upload_json(self, runner, mock_client, tmp_path):
        """Test JSON output for a skipped upload."""
        source = tmp_path / "a.txt"
        source.write_text("hello")
        mock_client.upload_file.return_value = None

        result = runner.invoke(
            main, ["--json", "upload", "-s", str(source), "-d", "/r/a.txt"]
        )

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "path": "/r/a.txt",
            "transferred": False,
            "file": None,
        }


class TestDownloadCommand:
    """Tests for the download command."""

    def test_download_into_directory(self, runner, mock_client, tmp_path):
        """Test that downloading into a directory keeps the remote name."""
        mock_client.download_file.return_value = tmp_path / "a.txt"

        result = runner.invoke(
            main, ["download", "-s", "/r/a.txt", "-d", str(tmp_path), "--no-progress"]
        )

        assert result.exit_code == 0
        assert mock_client.download_file.call_args.args[1] == tmp_path / "a.txt"


class TestFileManagerCommands:
    """Tests for rm, mv, rename, cp and mkdir."""

    def test_rm_with_yes(self, runner, mock_client):
        """Test deleting without a prompt."""
        result = runner.invoke(main, ["rm", "-s", "/a", "-s", "/b", "-y"])
        assert result.exit_code == 0
        mock_client.delete.assert_called_once_with(["/a", "/b"])

    def test_rm_cancelled(self, runner, mock_client):
        """Test that answering no cancels the deletion."""
        result = runner.invoke(main, ["rm", "-s", "/a"], input="n\n")
        assert result.exit_code == 0
        assert "cancelled" in result.output
        mock_client.delete.assert_not_called()

    def test_rm_partial_failure(self, runner, mock_client):
        """Test that failed batch items are listed."""
        mock_client.delete.side_effect = BdfsBatchError(
            "delete", [BatchItemFailure("/b", -9)]
        )
        result = runner.invoke(main, ["rm", "-s", "/a", "-s", "/b", "--force"])
        assert result.exit_code == 1
        assert "/b (error code: -9)" in result.output

    def test_mv(self, runner, mock_client):
        """Test moving a file."""
        result = runner.invoke(main, ["mv", "-s", "/a.txt", "-d", "/dir", "-y"])
        assert result.exit_code == 0
        mock_client.move_file.assert_called_once_with("/a.txt", "/dir")

    def test_rename(self, runner, mock_client):
        """Test renaming a file."""
        result = runner.invoke(main, ["rename", "-s", "/a.txt", "-n", "b.txt", "-y"])
        assert result.exit_code == 0
        mock_client.rename_file.assert_called_once_with("/a.txt", "b.txt")

    def test_rename_rejects_path(self, runner, mock_client):
        """Test that the new name cannot contain a slash."""
        result = runner.invoke(main, ["rename", "-s", "/a.txt", "-n", "x/b.txt", "-y"])
        assert result.exit_code == 1
        mock_client.rename_file.assert_not_called()

    def test_cp(self, runner, mock_client):
        """Test copying a file."""
        result = runner.invoke(main, ["cp", "-s", "/a.txt", "-d", "/backup/"])
        assert result.exit_code == 0
        mock_client.copy_file.assert_called_once_with("/a.txt", "/backup/")

    def test_mkdir(self, runner, mock_client):
        """Test creating a directory."""
        mock_client.create_directory.return_value = FileEntry("/new", True)
        result = runner.invoke(main, ["mkdir", "-p", "/new"])
        assert result.exit_code == 0
        assert "Directory created" in result.output

    def test_mkdir_relative(self, runner, mock_client):
        """Test that invalid paths exit with an error."""
        mock_client.create_directory.side_effect = ValueError(
            "remote directory path must be an absolute path starting with '/'"
        )
        result = runner.invoke(main, ["mkdir", "-p", "new"])
        assert result.exit_code == 1
        assert "absolute" in result.output


class TestInfoCommands:
    """Tests for info, disk-info and refresh."""

    def test_info(self, runner, mock_client):
        """Test showing entry details."""
        mock_client.get_entry_info.return_value = FileEntry(
            "/a.txt", False, size=3, fs_id=9
        )
        result = runner.invoke(main, ["info", "-p", "/a.txt"])
        assert result.exit_code == 0
        assert "File ID: 9" in result.output

    def test_disk_info(self, runner, mock_client):
        """Test showing quota."""
        mock_client.get_disk_info.return_value = DiskInfo(
            total=1024**3, used=512 * 1024**2, free=512 * 1024**2
        )
        result = runner.invoke(main, ["disk-info"])
        assert result.exit_code == 0
        assert "1.0 GB" in result.output

    def test_refresh(self, runner, mock_client):
        """Test refreshing the token."""
        mock_client.authority.store.exists.return_value = True
        mock_client.authority.record = TokenRecord(
            "a",
            "r",
            expires_in=3600,
            created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        result = runner.invoke(main, ["refresh"])

        assert result.exit_code == 0
        assert "refreshed" in result.output
        mock_client.refresh_token.assert_called_once()
        mock_client.ensure_authorized.assert_not_called()

    def test_refresh_without_token_file(self, runner, mock_client):
        """Test that refresh requires an existing token file."""
        mock_client.authority.store.exists.return_value = False
        result = runner.invoke(main, ["refresh"])
        assert result.exit_code == 1
        mock_client.refresh_token.assert_not_called()
