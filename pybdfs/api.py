"""API client for Baidu Pan."""

from __future__ import annotations

import json
import logging
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

import httpx

from .auth import TokenAuthority
from .config import Config
from .credentials import CredentialStore
from .exceptions import (
    INTEGRITY_ERRNOS,
    BdfsAPIError,
    BdfsBatchError,
    BdfsDownloadError,
    BdfsHTTPError,
    BdfsIntegrityError,
    BdfsInvalidResponseError,
    BdfsNetworkError,
    BdfsProtocolError,
)
from .models import BatchItemFailure, DiskInfo, FileEntry, PrecreateResult
from .utils import (
    DEFAULT_API_TIMEOUT,
    DEFAULT_LIST_LIMIT,
    DEFAULT_TRANSFER_TIMEOUT,
    is_absolute_remote_path,
    looks_like_directory,
    remote_basename,
    split_remote_path,
)

if TYPE_CHECKING:
    from .models import DeviceAuthSession
    from .walker import DirectoryWalk

logger = logging.getLogger(__name__)

FILE_URL = "https://pan.baidu.com/rest/2.0/xpan/file"
MULTIMEDIA_URL = "https://pan.baidu.com/rest/2.0/xpan/multimedia"
QUOTA_URL = "https://pan.baidu.com/api/quota"
UPLOAD_SLICE_URL = "https://d.pcs.baidu.com/rest/2.0/pcs/superfile2"

# Baidu Pan rejects download and quota requests without this user agent
USER_AGENT = "pan.baidu.com"


class OverwritePolicy(IntEnum):
    """``rtype`` values for create/precreate when the target path exists."""

    FAIL = 0
    RENAME = 1
    RENAME_IF_DIFFERENT = 2
    OVERWRITE = 3


class PanClient:
    """Client for interacting with the Baidu Pan API."""

    def __init__(
        self,
        authority: TokenAuthority,
        api_timeout: float = DEFAULT_API_TIMEOUT,
        transfer_timeout: float = DEFAULT_TRANSFER_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize Baidu Pan API client.

        Args:
            authority: Token authority providing the access token
            api_timeout: Timeout for metadata calls in seconds (default: 30.0)
            transfer_timeout: Timeout for slice uploads and downloads in
                seconds (default: 300.0)
            transport: Optional httpx transport (used by tests)
        """
        self.authority = authority
        self.api_timeout = api_timeout
        self.transfer_timeout = transfer_timeout
        self._transport = transport
        self._client: httpx.Client | None = None
        self._transfer_client: httpx.Client | None = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        on_device_code: Callable[[DeviceAuthSession], None] | None = None,
        message_callback: Callable[[str], None] | None = None,
    ) -> PanClient:
        """Build a client, its token authority and credential store from config.

        The token directory is created here so that saving tokens later is
        unlikely to fail.
        """
        store = CredentialStore(config.token_file)
        authority = TokenAuthority(
            client_id=config.client_id,
            client_secret=config.client_secret,
            store=store,
            timeout=config.api_timeout,
            on_device_code=on_device_code,
            message_callback=message_callback,
        )
        return cls(
            authority,
            api_timeout=config.api_timeout,
            transfer_timeout=config.transfer_timeout,
        )

    def _get_client(self, transfer: bool = False) -> httpx.Client:
        """Get or create the httpx client for metadata or transfer calls."""
        if transfer:
            if self._transfer_client is None or self._transfer_client.is_closed:
                self._transfer_client = self._build_client(self.transfer_timeout)
            return self._transfer_client

        if self._client is None or self._client.is_closed:
            self._client = self._build_client(self.api_timeout)
        return self._client

    def _build_client(self, timeout: float) -> httpx.Client:
        kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(timeout),
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.Client(**kwargs)

    def close(self) -> None:
        """Close the client and release connections."""
        for client in (self._client, self._transfer_client):
            if client is not None and not client.is_closed:
                client.close()
        self._client = None
        self._transfer_client = None
        self.authority.close()

    # =========================
    # Authorization
    # =========================

    def ensure_authorized(self, timeout: float | None = None) -> None:
        """Make sure the token authority holds a valid access token.

        Args:
            timeout: Seconds to wait for device authorization
        """
        self.authority.authorize(timeout=timeout)

    def refresh_token(self) -> None:
        """Refresh the access token with the stored refresh token.

        Raises:
            TokenRefreshError: If no refresh token is available or refresh fails
        """
        self.authority.load()
        self.authority.refresh()

    # =========================
    # Request handling
    # =========================

    def _request(
        self,
        method: str,
        url: str,
        operation: str,
        params: dict[str, Any] | None = None,
        transfer: bool = False,
        check_errno: bool = True,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Make an authenticated API request.

        Transport errors are not retried here; callers that want retries
        (slice transfer) apply their own policy.

        Args:
            method: HTTP method
            url: Endpoint URL
            operation: Short operation name used in error messages
            params: Query parameters (access_token is added)
            transfer: Use the long-timeout transfer client
            check_errno: Raise BdfsProtocolError on a non-zero errno
            **kwargs: Additional arguments passed to httpx

        Returns:
            Parsed JSON response

        Raises:
            BdfsNetworkError: On connection failure or timeout
            BdfsHTTPError: On a non-2xx status
            BdfsInvalidResponseError: If the body is not a JSON object
            BdfsProtocolError: If the response carries a non-zero errno
        """
        query = dict(params or {})
        query["access_token"] = self.authority.access_token
        client = self._get_client(transfer)

        logger.debug(f"{operation}: {method} {url}")
        try:
            response = client.request(method, url, params=query, **kwargs)
        except httpx.TimeoutException as e:
            raise BdfsNetworkError(f"{operation} request timed out: {e}") from e
        except httpx.RequestError as e:
            raise BdfsNetworkError(f"{operation} request failed: {e}") from e

        try:
            payload = response.json() if response.content else {}
        except ValueError:
            payload = None

        if not 200 <= response.status_code < 300:
            raise self._http_error(operation, response, payload)

        if not isinstance(payload, dict):
            raise BdfsInvalidResponseError(
                f"Invalid JSON response from {operation} API: {response.text[:200]}"
            )

        errno = int(payload.get("errno") or 0)
        if check_errno and errno != 0:
            logger.debug(f"{operation} returned errno {errno}")
            raise BdfsProtocolError(operation, errno)

        return payload

    def _http_error(
        self, operation: str, response: httpx.Response, payload: Any
    ) -> BdfsAPIError:
        """Build the exception for a non-2xx response."""
        if isinstance(payload, dict):
            errno = payload.get("errno")
            if errno:
                return BdfsProtocolError(operation, int(errno))
            detail = payload.get("error_msg") or payload.get("error_description")
            if detail:
                return BdfsHTTPError(
                    f"{operation} request failed with status "
                    f"{response.status_code}: {detail}",
                    status_code=response.status_code,
                )
        return BdfsHTTPError(
            f"{operation} request failed with status {response.status_code}: "
            f"{response.text[:200]}",
            status_code=response.status_code,
        )

    # =========================
    # Listing and metadata
    # =========================

    def list_files(
        self,
        dir_path: str = "/",
        folders_only: bool = False,
        filename: str | None = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> list[FileEntry]:
        """List the entries of a directory, following pagination.

        Args:
            dir_path: Remote directory (default: "/")
            folders_only: Only return directories
            filename: Optional name filter passed to the list API
            limit: Page size (default: 1000)

        Returns:
            List of FileEntry objects
        """
        entries: list[FileEntry] = []
        start = 0

        while True:
            params: dict[str, Any] = {
                "method": "list",
                "dir": dir_path,
                "folder": 1 if folders_only else 0,
                "start": start,
                "limit": limit,
                "order": "name",
            }
            if filename:
                params["filename"] = filename

            payload = self._request("GET", FILE_URL, "list", params=params)
            page = payload.get("list") or []
            entries.extend(FileEntry.from_api_response(item) for item in page)

            if len(page) < limit:
                break
            start += len(page)

        logger.debug(f"Listed {len(entries)} entries in {dir_path}")
        return entries

    def get_file_meta(self, path: str) -> FileEntry:
        """Get information about a single entry with the meta API.

        Raises:
            BdfsAPIError: If the request fails or the entry is missing
        """
        payload = self._request(
            "GET", FILE_URL, "meta", params={"method": "meta", "path": path}
        )
        items = payload.get("list") or []
        if not items:
            raise BdfsAPIError(f"File not found: {path}")
        return FileEntry.from_api_response(items[0])

    def get_file_info(self, path: str) -> FileEntry:
        """Get information about an entry by listing its parent directory.

        Raises:
            BdfsAPIError: If the entry is not found
        """
        parent, name = split_remote_path(path)
        for entry in self.list_files(parent, filename=name):
            if entry.path == path:
                return entry
        raise BdfsAPIError(f"File not found: {path}")

    def get_entry_info(self, path: str) -> FileEntry:
        """Get information about an entry, preferring the meta API.

        Falls back to listing the parent directory when the meta call fails.
        """
        try:
            return self.get_file_meta(path)
        except BdfsAPIError as e:
            logger.debug(f"Meta lookup failed for {path} ({e}), falling back to list")
            return self.get_file_info(path)

    def walk(self, root_path: str = "/") -> DirectoryWalk:
        """Recursively walk a remote directory.

        Returns:
            A DirectoryWalk yielding every descendant entry in pre-order
        """
        from .walker import DirectoryWalker

        return DirectoryWalker(self).walk(root_path)

    # =========================
    # Directory operations
    # =========================

    def create_directory(self, path: str) -> FileEntry:
        """Create a directory.

        Args:
            path: Absolute remote directory path

        Raises:
            ValueError: If the path is not absolute
        """
        if not is_absolute_remote_path(path):
            raise ValueError(
                "remote directory path must be an absolute path starting with '/'"
            )

        payload = self._request(
            "POST",
            FILE_URL,
            "create directory",
            params={"method": "create"},
            data={"path": path, "isdir": "1", "block_list": "[]"},
        )
        return FileEntry.from_api_response(payload)

    # =========================
    # Batch file manager operations
    # =========================

    def _filemanager(
        self,
        opera: str,
        filelist: list[Any],
        ondup: str | None = None,
    ) -> dict[str, Any]:
        """Run a batch file-manager operation.

        A non-zero top-level errno aborts the whole batch. Otherwise the
        failed items are collected and raised together.

        Raises:
            BdfsProtocolError: If the batch as a whole failed
            BdfsBatchError: If some items failed
        """
        if not filelist:
            raise ValueError(f"No files specified for {opera} operation")

        data = {"async": "0", "filelist": json.dumps(filelist, ensure_ascii=False)}
        if ondup:
            data["ondup"] = ondup

        payload = self._request(
            "POST",
            FILE_URL,
            opera,
            params={"method": "filemanager", "opera": opera},
            data=data,
        )

        results = payload.get("info") or payload.get("list") or []
        failures = []
        for i, item in enumerate(results):
            errno = int(item.get("errno") or 0)
            if errno == 0:
                continue
            request = filelist[i] if i < len(filelist) else {}
            if isinstance(request, str):
                request = {"path": request}
            failures.append(
                BatchItemFailure(
                    path=item.get("path") or request.get("path", ""),
                    errno=errno,
                    target=_describe_target(opera, request),
                )
            )

        if failures:
            raise BdfsBatchError(opera, failures)
        return payload

    def delete(self, paths: list[str]) -> dict[str, Any]:
        """Delete files or directories."""
        return self._filemanager("delete", list(paths))

    def move(self, items: list[dict[str, str]]) -> dict[str, Any]:
        """Move entries; each item has ``path``, ``dest`` and ``newname``."""
        return self._filemanager("move", items, ondup="fail")

    def copy(self, items: list[dict[str, str]]) -> dict[str, Any]:
        """Copy entries; each item has ``path``, ``dest`` and ``newname``."""
        return self._filemanager("copy", items, ondup="newcopy")

    def rename(self, items: list[dict[str, str]]) -> dict[str, Any]:
        """Rename entries; each item has ``path`` and ``newname``."""
        return self._filemanager("rename", items, ondup="newcopy")

    def remove_file(self, path: str) -> dict[str, Any]:
        """Delete a single file or directory."""
        return self.delete([path])

    def move_file(self, source_path: str, dest_dir: str) -> dict[str, Any]:
        """Move a file or directory into another directory, keeping its name."""
        source_path = source_path.rstrip("/")
        dest_dir = dest_dir.rstrip("/") or "/"
        return self.move(
            [
                {
                    "path": source_path,
                    "dest": dest_dir,
                    "newname": remote_basename(source_path),
                }
            ]
        )

    def copy_file(self, source_path: str, dest_path: str) -> dict[str, Any]:
        """Copy a file or directory.

        When ``dest_path`` looks like a directory (trailing slash or no
        extension) the copy keeps the source name inside it; otherwise the
        last component of ``dest_path`` is the new name.
        """
        source_path = source_path.rstrip("/")
        if looks_like_directory(dest_path):
            dest_dir = dest_path.rstrip("/") or "/"
            new_name = remote_basename(source_path)
        else:
            dest_dir, new_name = split_remote_path(dest_path)
        return self.copy([{"path": source_path, "dest": dest_dir, "newname": new_name}])

    def rename_file(self, source_path: str, new_name: str) -> dict[str, Any]:
        """Rename a file or directory in place."""
        return self.rename([{"path": source_path, "newname": new_name}])

    # =========================
    # Account operations
    # =========================

    def get_disk_info(self) -> DiskInfo:
        """Get storage usage of the account."""
        payload = self._request(
            "GET",
            QUOTA_URL,
            "quota",
            params={"checkfree": 1, "checkexpire": 1},
            headers={"User-Agent": USER_AGENT},
        )
        return DiskInfo.from_api_response(payload)

    # =========================
    # Upload protocol
    # =========================

    def precreate(
        self,
        remote_path: str,
        size: int,
        block_list: list[str],
        rtype: OverwritePolicy = OverwritePolicy.OVERWRITE,
    ) -> PrecreateResult:
        """Register an upload and learn whether slices must be sent.

        Raises:
            BdfsInvalidResponseError: If an upload is required but no
                upload id was returned
        """
        payload = self._request(
            "POST",
            FILE_URL,
            "precreate",
            params={"method": "precreate"},
            data={
                "path": remote_path,
                "size": str(size),
                "isdir": "0",
                "autoinit": "1",
                "rtype": str(int(rtype)),
                "block_list": json.dumps(block_list),
            },
        )
        result = PrecreateResult.from_api_response(payload)
        if result.needs_upload and not result.upload_id:
            raise BdfsInvalidResponseError("precreate API did not return uploadid")
        return result

    def upload_slice(
        self,
        remote_path: str,
        upload_id: str,
        partseq: int,
        data: bytes,
    ) -> dict[str, Any]:
        """Transfer one slice of an upload session.

        Uses the transfer client with the long timeout.
        """
        return self._request(
            "POST",
            UPLOAD_SLICE_URL,
            f"slice upload (part {partseq})",
            params={
                "method": "upload",
                "type": "tmpfile",
                "path": remote_path,
                "uploadid": upload_id,
                "partseq": partseq,
            },
            transfer=True,
            files={"file": ("file", data, "application/octet-stream")},
        )

    def create_file(
        self,
        remote_path: str,
        size: int,
        upload_id: str,
        block_list: list[str],
        rtype: OverwritePolicy = OverwritePolicy.OVERWRITE,
    ) -> FileEntry:
        """Materialize an uploaded file from its slices.

        Raises:
            BdfsIntegrityError: If the server reports missing or mismatched
                slices
        """
        try:
            payload = self._request(
                "POST",
                FILE_URL,
                "create file",
                params={"method": "create"},
                data={
                    "path": remote_path,
                    "size": str(size),
                    "isdir": "0",
                    "uploadid": upload_id,
                    "block_list": json.dumps(block_list),
                    "rtype": str(int(rtype)),
                },
            )
        except BdfsProtocolError as e:
            if e.errno in INTEGRITY_ERRNOS:
                raise BdfsIntegrityError(str(e), errno=e.errno) from e
            raise
        return FileEntry.from_api_response(payload)

    def upload_file(
        self,
        local_path: Path,
        remote_path: str,
        slice_size: int | None = None,
        slice_retries: int | None = None,
        progress_callback: Callable[[int, int], None] | None = None,
        message_callback: Callable[[str], None] | None = None,
        rtype: OverwritePolicy = OverwritePolicy.OVERWRITE,
    ) -> FileEntry | None:
        """Upload a local file.

        Returns:
            The created FileEntry, or None if the remote already held
            identical content
        """
        from .upload import SliceRetryPolicy, UploadOrchestrator

        kwargs: dict[str, Any] = {}
        if slice_size is not None:
            kwargs["slice_size"] = slice_size
        if slice_retries is not None:
            kwargs["retry_policy"] = SliceRetryPolicy(max_retries=slice_retries)
        orchestrator = UploadOrchestrator(self, rtype=rtype, **kwargs)
        return orchestrator.upload(
            Path(local_path),
            remote_path,
            progress_callback=progress_callback,
            message_callback=message_callback,
        )

    # =========================
    # Download
    # =========================

    def get_download_link(self, fs_id: int) -> str:
        """Get the download link of a file.

        Raises:
            BdfsDownloadError: If no link is returned
        """
        payload = self._request(
            "GET",
            MULTIMEDIA_URL,
            "filemetas",
            params={"method": "filemetas", "fsids": json.dumps([fs_id]), "dlink": 1},
        )
        items = payload.get("list") or []
        if not items or not items[0].get("dlink"):
            raise BdfsDownloadError(f"No download link returned for file {fs_id}")
        return str(items[0]["dlink"])

    def download_file(
        self,
        remote_path: str,
        local_path: Path,
        progress_callback: Callable[[int, int], None] | None = None,
    ) -> Path:
        """Download a file to a local path.

        The local parent directory is created first. A partially written
        file is removed when the download fails.

        Args:
            remote_path: Remote file path
            local_path: Local destination file
            progress_callback: Optional callback function(bytes_downloaded,
                total_bytes)

        Returns:
            Path where the file was saved

        Raises:
            BdfsDownloadError: If the download fails
            BdfsNetworkError: On transport failure
        """
        local_path = Path(local_path)
        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BdfsDownloadError(
                f"Failed to create directory for local path: {e}"
            ) from e

        entry = self.get_entry_info(remote_path)
        if entry.is_dir:
            raise BdfsDownloadError(f"Cannot download a directory: {remote_path}")
        dlink = self.get_download_link(entry.fs_id)

        client = self._get_client(transfer=True)
        bytes_downloaded = 0
        # Only a file this call opened for writing is removed on failure
        created = False
        try:
            with client.stream(
                "GET",
                dlink,
                params={"access_token": self.authority.access_token},
                headers={"User-Agent": USER_AGENT},
            ) as response:
                if response.status_code != 200:
                    response.read()
                    raise BdfsDownloadError(
                        f"Download request failed with status "
                        f"{response.status_code}: {response.text[:200]}"
                    )
                total_size = entry.size or int(response.headers.get("Content-Length", 0))
                with open(local_path, "wb") as f:
                    created = True
                    for chunk in response.iter_bytes(chunk_size=32 * 1024):
                        if chunk:
                            f.write(chunk)
                            bytes_downloaded += len(chunk)
                            if progress_callback:
                                progress_callback(bytes_downloaded, total_size)
        except httpx.RequestError as e:
            if created:
                _remove_partial(local_path)
            raise BdfsNetworkError(f"Network error during download: {e}") from e
        except OSError as e:
            if created:
                _remove_partial(local_path)
            raise BdfsDownloadError(f"Failed to write file content: {e}") from e
        except BdfsDownloadError:
            if created:
                _remove_partial(local_path)
            raise

        logger.debug(f"Downloaded {bytes_downloaded} bytes to {local_path}")
        return local_path


def _describe_target(opera: str, request: dict[str, Any]) -> str | None:
    """Describe the destination of a batch item for error messages."""
    if opera == "rename":
        return request.get("newname")
    if opera in ("move", "copy"):
        dest = request.get("dest", "").rstrip("/")
        return f"{dest}/{request.get('newname', '')}"
    return None


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial download {path}: {e}")
