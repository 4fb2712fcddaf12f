"""Exceptions raised by pybdfs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BatchItemFailure

# =============================================================================
# errno lookup table
# =============================================================================

ERRNO_MESSAGES: dict[int, str] = {
    0: "Success",
    2: "Parameters error",
    3: "User permission error",
    4: "Request source error",
    12: "Operation not allowed or path error",
    -7: "Invalid file name",
    -8: "File already exists",
    -9: "File does not exist",
    -10: "Cloud storage space is full",
    10: "Failed to create superfile",
    111: "Another asynchronous task is currently executing",
    108: "Path error, path does not exist",
    110: "Target path already exists",
    112: "Same file already exists in the same directory",
    113: "File or directory name contains forbidden words",
    114: "Path too long",
    115: "Target directory does not exist",
    116: "Insufficient disk space",
    117: "File too large",
    31001: "User has been banned",
    31026: "File contains illegal content",
    31081: "Superfile create failed",
    31190: "File slice not found",
    31363: "Slice missing when creating file",
}

ERRNO_CATEGORIES: dict[str, frozenset[int]] = {
    "permission": frozenset({3, 4, 12}),
    "not_found": frozenset({-9, 108, 115, 31190}),
    "conflict": frozenset({-8, 110, 112}),
    "quota": frozenset({-10, 116, 117}),
    "banned": frozenset({113, 31001, 31026}),
    "invalid": frozenset({2, -7, 114}),
}

# errno values returned by the create API when the slices do not add up
INTEGRITY_ERRNOS: frozenset[int] = frozenset({10, 31081, 31190, 31363})


def errno_message(errno: int) -> str:
    """Return a human-readable message for an API errno.

    Examples:
        >>> errno_message(108)
        'Path error, path does not exist'
        >>> errno_message(99999)
        'Unknown error code: 99999'
    """
    return ERRNO_MESSAGES.get(errno, f"Unknown error code: {errno}")


def errno_category(errno: int) -> str:
    """Map an API errno to its error category ("unknown" when unmapped)."""
    for category, codes in ERRNO_CATEGORIES.items():
        if errno in codes:
            return category
    return "unknown"


# =============================================================================
# Exception hierarchy
# =============================================================================


class BdfsError(Exception):
    """Base exception for all pybdfs errors."""


class BdfsConfigError(BdfsError):
    """Configuration is missing or invalid."""


class BdfsFileNotFoundError(BdfsError):
    """A local file does not exist or cannot be used as upload source."""

    def __init__(self, file_path: str, message: str | None = None):
        self.file_path = file_path
        super().__init__(message or f"Local file not found: {file_path}")


class BdfsAPIError(BdfsError):
    """Base exception for failures talking to the remote service."""

    def __init__(self, message: str, errno: int | None = None):
        super().__init__(message)
        self.errno = errno


class BdfsNetworkError(BdfsAPIError):
    """Connection failure, timeout or broken transfer."""


class BdfsHTTPError(BdfsAPIError):
    """Non-2xx HTTP status without a recognised API error code."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class BdfsInvalidResponseError(BdfsAPIError):
    """Response body could not be parsed or is missing fields."""


class BdfsProtocolError(BdfsAPIError):
    """The API answered with a non-zero errno."""

    def __init__(self, operation: str, errno: int):
        self.operation = operation
        self.category = errno_category(errno)
        super().__init__(
            f"{operation} API returned error code {errno}: {errno_message(errno)}",
            errno=errno,
        )


class BdfsBatchError(BdfsAPIError):
    """Some items of a batch file-manager operation failed."""

    def __init__(self, operation: str, failures: list[BatchItemFailure]):
        self.operation = operation
        self.failures = failures
        details = "; ".join(str(failure) for failure in failures)
        super().__init__(f"Failed to {operation} some files: {details}")


class BdfsUploadError(BdfsAPIError):
    """A slice transfer failed."""

    def __init__(self, message: str, slice_index: int | None = None):
        super().__init__(message)
        self.slice_index = slice_index


class BdfsIntegrityError(BdfsAPIError):
    """Uploaded slices do not match what the server expects.

    The upload has to be restarted from precreate.
    """


class BdfsDownloadError(BdfsAPIError):
    """Download failed."""


class BdfsAuthError(BdfsError):
    """Base exception for credential lifecycle failures."""


class AuthFailed(BdfsAuthError):
    """Device-code authorization failed terminally."""


class DeviceCodeExpired(AuthFailed):
    """The user did not complete authorization before the device code expired."""


class AuthCancelled(BdfsAuthError):
    """The caller-supplied authorization deadline elapsed while polling."""


class TokenRefreshError(BdfsAuthError):
    """Refreshing the access token failed."""


class CredentialStoreError(BdfsAuthError):
    """The token file could not be read or written."""
