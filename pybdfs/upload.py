"""Three-phase upload: precreate, slice transfer, create."""

from __future__ import annotations

import logging
import random
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Optional

from .exceptions import (
    BdfsError,
    BdfsFileNotFoundError,
    BdfsHTTPError,
    BdfsNetworkError,
    BdfsUploadError,
)
from .models import FileEntry, UploadSession
from .slicer import read_slice, slice_hashes
from .utils import (
    DEFAULT_RETRY_DELAY,
    DEFAULT_SLICE_RETRIES,
    DEFAULT_SLICE_SIZE,
    format_size,
    is_absolute_remote_path,
)

if TYPE_CHECKING:
    from .api import OverwritePolicy, PanClient

logger = logging.getLogger(__name__)


class SliceRetryPolicy:
    """Retry policy for a single slice transfer.

    Only transport failures and server errors (5xx) are retried. Protocol
    errors returned by the service are final.
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_SLICE_RETRIES,
        base_delay: float = DEFAULT_RETRY_DELAY,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.base_delay = base_delay

    def should_retry(self, exception: Exception, attempt: int) -> bool:
        """Determine if a slice transfer should be retried.

        Args:
            exception: The exception that occurred
            attempt: Current attempt number (0-based)
        """
        if attempt >= self.max_retries:
            return False
        if isinstance(exception, BdfsNetworkError):
            return True
        if isinstance(exception, BdfsHTTPError):
            return exception.status_code >= 500
        return False

    def delay(self, attempt: int) -> float:
        """Exponential backoff with +/- 25% jitter."""
        base_delay = self.base_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter


class UploadOrchestrator:
    """Drives one file upload through precreate, slice transfer and create.

    Slices are sent one at a time in index order so progress is reported
    deterministically.
    """

    def __init__(
        self,
        client: PanClient,
        slice_size: int = DEFAULT_SLICE_SIZE,
        retry_policy: Optional[SliceRetryPolicy] = None,
        rtype: Optional[OverwritePolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        from .api import OverwritePolicy

        if slice_size <= 0:
            raise ValueError("slice_size must be positive")
        self.client = client
        self.slice_size = slice_size
        self.retry_policy = retry_policy or SliceRetryPolicy()
        self.rtype = OverwritePolicy.OVERWRITE if rtype is None else rtype
        self._sleep = sleep

    def upload(
        self,
        local_path: Path,
        remote_path: str,
        progress_callback: Optional[Callable[[int, int], None]] = None,
        message_callback: Optional[Callable[[str], None]] = None,
    ) -> Optional[FileEntry]:
        """Upload a local file to an absolute remote path.

        Args:
            local_path: Local file to upload
            remote_path: Absolute remote destination path
            progress_callback: Optional callback function(bytes_uploaded,
                total_bytes), called after every slice
            message_callback: Optional callback for status messages

        Returns:
            The created FileEntry, or None when the service already holds
            identical content and nothing was transferred

        Raises:
            BdfsFileNotFoundError: If the local file is missing
            ValueError: If the local path is a directory or the remote path
                is not absolute
            BdfsUploadError: If a slice transfer fails
            BdfsIntegrityError: If the service rejects the assembled slices
        """
        local_path = Path(local_path)
        if not local_path.exists():
            raise BdfsFileNotFoundError(str(local_path))
        if local_path.is_dir():
            raise ValueError(f"Cannot upload a directory: {local_path}")
        if not is_absolute_remote_path(remote_path):
            raise ValueError(
                "remote file path must be an absolute path starting with '/'"
            )

        total_size = local_path.stat().st_size
        slices = list(slice_hashes(local_path, self.slice_size))
        block_list = [s.content_hash for s in slices]
        logger.debug(
            f"Uploading {local_path} ({format_size(total_size)}, "
            f"{len(slices)} slices) to {remote_path}"
        )

        result = self.client.precreate(
            remote_path, total_size, block_list, rtype=self.rtype
        )
        if not result.needs_upload:
            logger.info(f"{remote_path} already present, skipping transfer")
            if message_callback:
                message_callback(f"File already exists on server: {remote_path}")
            if progress_callback:
                progress_callback(total_size, total_size)
            return None

        session = UploadSession(
            remote_path=remote_path,
            local_path=str(local_path),
            total_size=total_size,
            upload_id=result.upload_id,
            slices=slices,
        )
        self._transfer_slices(session, progress_callback)

        entry = self.client.create_file(
            remote_path,
            total_size,
            session.upload_id,
            session.block_list,
            rtype=self.rtype,
        )
        logger.info(f"Uploaded {local_path} to {entry.path or remote_path}")
        return entry

    def _transfer_slices(
        self,
        session: UploadSession,
        progress_callback: Optional[Callable[[int, int], None]],
    ) -> None:
        for descriptor in session.slices:
            data = read_slice(session.local_path, descriptor)
            attempt = 0
            while True:
                try:
                    self.client.upload_slice(
                        session.remote_path,
                        session.upload_id,
                        descriptor.index,
                        data,
                    )
                    break
                except BdfsError as e:
                    if self.retry_policy.should_retry(e, attempt):
                        delay = self.retry_policy.delay(attempt)
                        logger.warning(
                            f"Slice {descriptor.index} failed ({e}), "
                            f"retrying in {delay:.1f}s"
                        )
                        self._sleep(delay)
                        attempt += 1
                        continue
                    raise BdfsUploadError(
                        f"Failed to upload slice {descriptor.index}: {e}",
                        slice_index=descriptor.index,
                    ) from e

            session.uploaded_slice_count += 1
            logger.debug(
                f"Slice {descriptor.index + 1}/{len(session.slices)} uploaded"
            )
            if progress_callback:
                progress_callback(session.bytes_uploaded, session.total_size)
