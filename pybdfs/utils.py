"""Utility functions for Baidu Pan."""

from datetime import datetime
from pathlib import PurePosixPath
from typing import Optional

# =============================================================================
# Constants for file operations
# =============================================================================

# Slice size for uploads (4 MB, the size Baidu Pan expects for regular users)
DEFAULT_SLICE_SIZE: int = 4 * 1024 * 1024

# Retry configuration for slice transfers
DEFAULT_SLICE_RETRIES: int = 2
DEFAULT_RETRY_DELAY: float = 2.0  # seconds

# Timeouts (seconds)
DEFAULT_API_TIMEOUT: float = 30.0
DEFAULT_TRANSFER_TIMEOUT: float = 300.0
DEFAULT_AUTH_TIMEOUT: float = 300.0

# Page size for the list API
DEFAULT_LIST_LIMIT: int = 1000

# Tokens expiring within this window are refreshed (48 hours)
TOKEN_REFRESH_WINDOW: float = 48 * 60 * 60

# Default device-code poll interval when the server does not provide one
DEFAULT_POLL_INTERVAL: int = 5


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    elif size_bytes < 1024 * 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024 / 1024:.1f} TB"


# =============================================================================
# Timestamp utilities
# =============================================================================


def format_timestamp(unix_time: Optional[int]) -> str:
    """Format a Unix timestamp from the API as local time.

    Args:
        unix_time: Seconds since the epoch (0 or None when unknown)

    Returns:
        Formatted time string (e.g., "2025-01-15 10:30:00") or "N/A"
    """
    if not unix_time:
        return "N/A"
    return datetime.fromtimestamp(unix_time).strftime("%Y-%m-%d %H:%M:%S")


# =============================================================================
# Remote path utilities
# =============================================================================


def is_absolute_remote_path(path: str) -> bool:
    """Check if a remote path is absolute.

    Examples:
        >>> is_absolute_remote_path("/apps/bdfs/a.txt")
        True
        >>> is_absolute_remote_path("a.txt")
        False
    """
    return path.startswith("/")


def split_remote_path(path: str) -> tuple[str, str]:
    """Split a remote path into its parent directory and name.

    Args:
        path: Remote path (e.g., "/docs/report.pdf")

    Returns:
        Tuple of (parent_dir, name); the parent of a top-level entry is "/"

    Examples:
        >>> split_remote_path("/docs/report.pdf")
        ('/docs', 'report.pdf')
        >>> split_remote_path("/report.pdf")
        ('/', 'report.pdf')
    """
    trimmed = path.rstrip("/") or "/"
    pure = PurePosixPath(trimmed)
    parent = str(pure.parent)
    if parent == ".":
        parent = "/"
    return parent, pure.name


def remote_basename(path: str) -> str:
    """Return the last component of a remote path.

    Examples:
        >>> remote_basename("/a/b/c.txt")
        'c.txt'
        >>> remote_basename("/a/b/")
        'b'
    """
    parts = path.strip("/").split("/")
    return parts[-1] if parts else ""


def looks_like_directory(path: str) -> bool:
    """Guess whether a remote destination path names a directory.

    A path ending with "/" or without a file extension is treated as a
    directory.

    Examples:
        >>> looks_like_directory("/backup/")
        True
        >>> looks_like_directory("/backup")
        True
        >>> looks_like_directory("/backup/a.txt")
        False
    """
    if path.endswith("/"):
        return True
    return PurePosixPath(path).suffix == ""
