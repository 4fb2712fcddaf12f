"""CLI interface for Baidu Pan."""

import logging
from pathlib import Path
from typing import Any, Optional

import click

from .api import PanClient
from .cli_progress import TransferProgressDisplay
from .config import load_config
from .exceptions import BdfsBatchError, BdfsError
from .models import DeviceAuthSession
from .output import OutputFormatter
from .utils import format_size, format_timestamp, remote_basename
from .walker import WalkError

logger = logging.getLogger(__name__)


@click.group()
@click.option("--client-id", help="Baidu Pan app key (overrides config)")
@click.option("--client-secret", help="Baidu Pan secret key (overrides config)")
@click.option("--token-path", help="Token file location (overrides config)")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: $BDFS_CONFIG_FILE_PATH or "
    "~/.local/app/bdfs/config.toml)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pybdfs")
@click.pass_context
def main(
    ctx: Any,
    client_id: Optional[str],
    client_secret: Optional[str],
    token_path: Optional[str],
    config_file: Optional[Path],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """bdfs - Manage files on Baidu Pan from the command line."""
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["config_file"] = config_file
    ctx.obj["overrides"] = {
        "client_id": client_id,
        "client_secret": client_secret,
        "token_path": token_path,
    }

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pybdfs").setLevel(logging.DEBUG)
        # httpx logs full request URLs, which include the access token
        logging.getLogger("httpx").setLevel(logging.WARNING)
    else:
        logging.basicConfig(level=logging.WARNING)


def _build_client(ctx: Any) -> PanClient:
    """Create a client from the resolved configuration."""
    out: OutputFormatter = ctx.obj["out"]
    config = load_config(ctx.obj.get("config_file"), **ctx.obj["overrides"])

    def show_device_code(session: DeviceAuthSession) -> None:
        out.notice(
            f"Please visit {session.verification_url} and enter code "
            f"[bold]{session.user_code}[/bold] to authorize this device."
        )
        out.notice("Waiting for authorization...")

    client = PanClient.from_config(
        config,
        on_device_code=show_device_code,
        message_callback=out.progress_message,
    )
    ctx.obj["config"] = config
    ctx.call_on_close(client.close)
    return client


def _connect(ctx: Any) -> PanClient:
    """Create a client and make sure it holds a valid access token."""
    client = _build_client(ctx)
    client.ensure_authorized(timeout=ctx.obj["config"].auth_timeout)
    return client


def _confirm(out: OutputFormatter, yes: bool, question: str) -> bool:
    """Ask for confirmation unless --yes was given or output is non-interactive."""
    if yes or out.quiet or out.json_output:
        return True
    return click.confirm(question)


def _fail(ctx: Any, out: OutputFormatter, error: Exception) -> None:
    out.error(str(error))
    if isinstance(error, BdfsBatchError) and not out.json_output:
        for failure in error.failures:
            out.print(f"  {failure}")
    ctx.exit(1)


@main.command()
@click.option("--path", "-p", default="/", show_default=True, help="Remote directory")
@click.option(
    "--recursive", "-r", is_flag=True, help="List all descendants of the directory"
)
@click.pass_context
def ls(ctx: Any, path: str, recursive: bool) -> None:
    """List files and folders in a remote directory.

    Examples:
        bdfs ls                     # List the root directory
        bdfs ls -p /apps/bdfs       # List a specific directory
        bdfs ls -p /photos -r       # List everything below /photos
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _connect(ctx)

        if recursive:
            _list_recursive(ctx, client, path)
            return

        entries = client.list_files(path)

        if out.json_output:
            out.output_json([entry.to_dict() for entry in entries])
            return

        if not entries:
            # For empty directory, output nothing (like Unix ls)
            return

        table_data = [
            {
                "name": f"{entry.name}/" if entry.is_dir else entry.name,
                "size": "-" if entry.is_dir else format_size(entry.size),
                "modified": format_timestamp(entry.server_mtime),
            }
            for entry in entries
        ]
        out.output_table(
            table_data,
            ["name", "size", "modified"],
            {"name": "Name", "size": "Size", "modified": "Modified"},
        )

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


def _list_recursive(ctx: Any, client: PanClient, path: str) -> None:
    out: OutputFormatter = ctx.obj["out"]
    collected = []
    errors: list[WalkError] = []

    with client.walk(path) as walk:
        for entry in walk:
            if out.json_output:
                collected.append(entry.to_dict())
            else:
                out.print(f"{entry.path}/" if entry.is_dir else entry.path)
        errors = walk.error_list()

    if out.json_output:
        out.output_json(
            {"files": collected, "errors": [str(error) for error in errors]}
        )
    for error in errors:
        out.warning(f"Failed to list {error}")
    if errors:
        ctx.exit(1)


@main.command()
@click.option(
    "--source",
    "-s",
    required=True,
    type=click.Path(path_type=Path),
    help="Local file to upload",
)
@click.option(
    "--dest",
    "-d",
    required=True,
    help="Remote destination path (ending with '/' keeps the local file name)",
)
@click.option(
    "--no-progress", is_flag=True, help="Disable progress bar"
)
@click.pass_context
def upload(ctx: Any, source: Path, dest: str, no_progress: bool) -> None:
    """Upload a local file.

    Files are sent in 4 MB slices. Uploading content that already exists
    at the destination finishes without transferring any data.

    Examples:
        bdfs upload -s report.pdf -d /docs/report.pdf
        bdfs upload -s report.pdf -d /docs/
    """
    out: OutputFormatter = ctx.obj["out"]

    remote_path = f"{dest}{source.name}" if dest.endswith("/") else dest

    try:
        if not source.exists():
            out.error(f"Local file does not exist: {source}")
            ctx.exit(1)
        if source.is_dir():
            out.error(f"Cannot upload a directory: {source}")
            ctx.exit(1)

        client = _connect(ctx)
        config = ctx.obj["config"]
        show_progress = not (no_progress or out.quiet or out.json_output)

        with TransferProgressDisplay(
            f"Uploading {source.name}", enabled=show_progress
        ) as display:
            entry = client.upload_file(
                source,
                remote_path,
                slice_size=config.slice_size,
                slice_retries=config.slice_retries,
                progress_callback=display.update,
                message_callback=out.progress_message,
            )

        if out.json_output:
            out.output_json(
                {
                    "path": remote_path,
                    "transferred": entry is not None,
                    "file": entry.to_dict() if entry else None,
                }
            )
        elif entry is None:
            out.success(f"✓ {remote_path} already up to date, nothing transferred")
        else:
            out.success(f"✓ Uploaded {source} to {entry.path or remote_path}")
            out.info(f"  Size: {format_size(entry.size)}  MD5: {entry.md5 or '-'}")

    except KeyboardInterrupt:
        out.warning("\nUpload cancelled by user")
        ctx.exit(1)
    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.option("--source", "-s", required=True, help="Remote file to download")
@click.option(
    "--dest",
    "-d",
    type=click.Path(path_type=Path),
    default=None,
    help="Local destination (file or existing directory; default: current dir)",
)
@click.option(
    "--no-progress", is_flag=True, help="Disable progress bar"
)
@click.pass_context
def download(
    ctx: Any, source: str, dest: Optional[Path], no_progress: bool
) -> None:
    """Download a remote file.

    Examples:
        bdfs download -s /docs/report.pdf
        bdfs download -s /docs/report.pdf -d ./backup/
    """
    out: OutputFormatter = ctx.obj["out"]

    local_path = dest or Path.cwd()
    if local_path.is_dir():
        local_path = local_path / remote_basename(source)

    try:
        client = _connect(ctx)
        show_progress = not (no_progress or out.quiet or out.json_output)

        with TransferProgressDisplay(
            f"Downloading {remote_basename(source)}", enabled=show_progress
        ) as display:
            saved = client.download_file(
                source, local_path, progress_callback=display.update
            )

        if out.json_output:
            out.output_json({"path": source, "local_path": str(saved)})
        else:
            out.success(f"✓ Downloaded {source} to {saved}")

    except KeyboardInterrupt:
        out.warning("\nDownload cancelled by user")
        ctx.exit(1)
    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.option(
    "--source", "-s", "sources", required=True, multiple=True, help="Remote path"
)
@click.option("--yes", "-y", "--force", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def rm(ctx: Any, sources: tuple[str, ...], yes: bool) -> None:
    """Delete one or more remote files or folders.

    Examples:
        bdfs rm -s /docs/old.pdf
        bdfs rm -s /a.txt -s /b.txt -y
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _connect(ctx)

        if not _confirm(
            out, yes, f"Are you sure you want to delete {len(sources)} item(s)?"
        ):
            out.warning("Deletion cancelled.")
            return

        client.delete(list(sources))

        if out.json_output:
            out.output_json({"deleted": list(sources)})
        else:
            out.success(f"✓ Deleted {len(sources)} item(s)")

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.option("--source", "-s", required=True, help="Remote path to move")
@click.option("--dest", "-d", required=True, help="Remote destination directory")
@click.option("--yes", "-y", "--force", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def mv(ctx: Any, source: str, dest: str, yes: bool) -> None:
    """Move a remote file or folder into another directory.

    Examples:
        bdfs mv -s /docs/report.pdf -d /archive
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _connect(ctx)

        if not _confirm(out, yes, f"Move {source} to {dest}?"):
            out.warning("Move cancelled.")
            return

        client.move_file(source, dest)

        if out.json_output:
            out.output_json({"path": source, "dest": dest})
        else:
            out.success(f"✓ Moved {source} to {dest}")

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.option("--source", "-s", required=True, help="Remote path to rename")
@click.option("--name", "-n", "new_name", required=True, help="New name")
@click.option("--yes", "-y", "--force", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def rename(ctx: Any, source: str, new_name: str, yes: bool) -> None:
    """Rename a remote file or folder.

    Examples:
        bdfs rename -s /docs/report.pdf -n report-2024.pdf
    """
    out: OutputFormatter = ctx.obj["out"]

    if "/" in new_name:
        out.error("New name must not contain '/'")
        ctx.exit(1)

    try:
        client = _connect(ctx)

        if not _confirm(out, yes, f"Rename {source} to {new_name}?"):
            out.warning("Rename cancelled.")
            return

        client.rename_file(source, new_name)

        if out.json_output:
            out.output_json({"path": source, "newname": new_name})
        else:
            out.success(f"✓ Entry renamed to: {new_name}")

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.option("--path", "-p", required=True, help="Absolute remote directory path")
@click.pass_context
def mkdir(ctx: Any, path: str) -> None:
    """Create a remote directory.

    Examples:
        bdfs mkdir -p /apps/bdfs/backup
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _connect(ctx)
        entry = client.create_directory(path)

        if out.json_output:
            out.output_json(entry.to_dict())
        else:
            out.success(f"✓ Directory created: {entry.path or path}")

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.option("--source", "-s", required=True, help="Remote path to copy")
@click.option(
    "--dest",
    "-d",
    required=True,
    help="Destination directory, or full destination path with a new name",
)
@click.pass_context
def cp(ctx: Any, source: str, dest: str) -> None:
    """Copy a remote file or folder.

    A destination ending with '/' or without a file extension is treated as
    a directory.

    Examples:
        bdfs cp -s /docs/report.pdf -d /backup/
        bdfs cp -s /docs/report.pdf -d /backup/report-copy.pdf
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _connect(ctx)
        client.copy_file(source, dest)

        if out.json_output:
            out.output_json({"path": source, "dest": dest})
        else:
            out.success(f"✓ Copied {source} to {dest}")

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.option("--path", "-p", required=True, help="Remote file or folder path")
@click.pass_context
def info(ctx: Any, path: str) -> None:
    """Show details about a remote file or folder.

    Examples:
        bdfs info -p /docs/report.pdf
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _connect(ctx)
        entry = client.get_entry_info(path)

        if out.json_output:
            out.output_json(entry.to_dict())
        else:
            out.print(entry.to_text_summary())

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command("disk-info")
@click.pass_context
def disk_info(ctx: Any) -> None:
    """Display storage space usage information."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _connect(ctx)
        disk = client.get_disk_info()

        if out.json_output:
            out.output_json(disk.to_dict())
        else:
            out.print(disk.to_text_summary())

    except (BdfsError, ValueError) as e:
        _fail(ctx, out, e)


@main.command()
@click.pass_context
def refresh(ctx: Any) -> None:
    """Refresh the access token using the stored refresh token.

    Requires an existing token file; run any other command first to
    authorize this device.
    """
    out: OutputFormatter = ctx.obj["out"]

    try:
        client = _build_client(ctx)
        if not client.authority.store.exists():
            out.error("No token file found. Run any command to authorize first.")
            ctx.exit(1)

        client.refresh_token()
        record = client.authority.record

        if out.json_output:
            out.output_json(
                {
                    "refreshed": True,
                    "expires_at": (
                        record.expires_at.isoformat()
                        if record and record.expires_at
                        else None
                    ),
                }
            )
        else:
            out.success("✓ Token refreshed successfully")
            if record and record.expires_at:
                out.info(f"  Expires at: {record.expires_at:%Y-%m-%d %H:%M:%S} UTC")

    except BdfsError as e:
        _fail(ctx, out, e)


if __name__ == "__main__":
    main()
