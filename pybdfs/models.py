"""Data models for Baidu Pan API responses and client-side state."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from .exceptions import BdfsInvalidResponseError
from .utils import format_size, format_timestamp, remote_basename

# Fractional seconds longer than microseconds (Go writes nanoseconds)
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_created_at(value: Any) -> Optional[datetime]:
    """Parse the ``created_at`` field of a token file.

    Accepts RFC 3339 strings (with up to nanosecond precision) and Unix
    timestamps. The zero time ("0001-01-01T00:00:00Z") and unparseable
    values yield None, which makes the token count as expired.

    Examples:
        >>> parse_created_at("0001-01-01T00:00:00Z") is None
        True
        >>> parse_created_at("2025-01-15T10:30:00Z").year
        2025
    """
    if value in (None, "", 0):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(r"\1", text)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.year <= 1:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class TokenRecord:
    """Persisted OAuth token.

    ``created_at + expires_in`` is the absolute expiry instant. A record
    without ``created_at`` or with ``expires_in == 0`` is always expired.
    """

    access_token: str
    refresh_token: str = ""
    expires_in: int = 0
    account_id: str = ""
    created_at: Optional[datetime] = None

    @property
    def expires_at(self) -> Optional[datetime]:
        """Absolute expiry instant, or None when it cannot be computed."""
        if self.created_at is None or not self.expires_in:
            return None
        return datetime.fromtimestamp(
            self.created_at.timestamp() + self.expires_in, tz=timezone.utc
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk JSON layout."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "uid": self.account_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenRecord:
        """Create a TokenRecord from the on-disk JSON layout."""
        try:
            expires_in = int(data.get("expires_in") or 0)
        except (TypeError, ValueError):
            expires_in = 0
        return cls(
            access_token=str(data.get("access_token") or ""),
            refresh_token=str(data.get("refresh_token") or ""),
            expires_in=expires_in,
            account_id=str(data.get("uid") or data.get("account_id") or ""),
            created_at=parse_created_at(data.get("created_at")),
        )

    @classmethod
    def from_token_response(
        cls, data: dict[str, Any], created_at: datetime
    ) -> TokenRecord:
        """Create a TokenRecord from a token endpoint response.

        Raises:
            BdfsInvalidResponseError: If the response has no access token
        """
        access_token = data.get("access_token")
        if not access_token:
            raise BdfsInvalidResponseError("Token response missing access_token")
        return cls(
            access_token=str(access_token),
            refresh_token=str(data.get("refresh_token") or ""),
            expires_in=int(data.get("expires_in") or 0),
            account_id=str(data.get("uid") or ""),
            created_at=created_at,
        )


@dataclass
class DeviceAuthSession:
    """One device-code authorization attempt."""

    device_code: str
    user_code: str
    verification_url: str
    expires_in: int
    interval: int

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], default_interval: int
    ) -> DeviceAuthSession:
        """Create a DeviceAuthSession from the device code response."""
        device_code = data.get("device_code")
        if not device_code:
            raise BdfsInvalidResponseError("Device code response missing device_code")
        return cls(
            device_code=str(device_code),
            user_code=str(data.get("user_code", "")),
            verification_url=str(data.get("verification_url", "")),
            expires_in=int(data.get("expires_in") or 0),
            interval=int(data.get("interval") or 0) or default_interval,
        )


@dataclass(frozen=True)
class SliceDescriptor:
    """Hash of one fixed-size slice of a local file.

    Slice ``index`` covers bytes ``[offset, offset + byte_length)``.
    """

    index: int
    content_hash: str
    offset: int
    byte_length: int


@dataclass
class UploadSession:
    """State of one negotiated upload."""

    remote_path: str
    local_path: str
    total_size: int
    upload_id: str
    slices: list[SliceDescriptor] = field(default_factory=list)
    uploaded_slice_count: int = 0

    @property
    def block_list(self) -> list[str]:
        """Slice hashes in file order."""
        return [s.content_hash for s in self.slices]

    @property
    def bytes_uploaded(self) -> int:
        """Bytes covered by the slices transferred so far."""
        return sum(s.byte_length for s in self.slices[: self.uploaded_slice_count])


@dataclass
class PrecreateResult:
    """Parsed precreate response."""

    upload_id: str
    return_type: int
    block_list: list[int] = field(default_factory=list)

    # return_type values from the precreate API
    NEED_UPLOAD = 1
    ALREADY_PRESENT = 2

    @property
    def needs_upload(self) -> bool:
        """Whether slices have to be transferred."""
        return self.return_type != self.ALREADY_PRESENT

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> PrecreateResult:
        """Create a PrecreateResult from the precreate response."""
        return cls(
            upload_id=str(data.get("uploadid") or ""),
            return_type=int(data.get("return_type") or cls.NEED_UPLOAD),
            block_list=list(data.get("block_list") or []),
        )


@dataclass
class FileEntry:
    """A file or directory on Baidu Pan."""

    path: str
    is_dir: bool
    size: int = 0
    md5: Optional[str] = None
    fs_id: int = 0
    server_filename: str = ""
    server_ctime: int = 0
    server_mtime: int = 0
    category: int = 0
    real_category: str = ""

    @property
    def name(self) -> str:
        """Entry name (server filename, or the last path component)."""
        return self.server_filename or remote_basename(self.path)

    @property
    def type_label(self) -> str:
        """Human-readable entry type."""
        return "Directory" if self.is_dir else "File"

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> FileEntry:
        """Create a FileEntry from a list/meta/create response item."""
        return cls(
            path=str(data.get("path", "")),
            is_dir=bool(int(data.get("isdir") or 0)),
            size=int(data.get("size") or 0),
            md5=data.get("md5") or None,
            fs_id=int(data.get("fs_id") or 0),
            server_filename=str(data.get("server_filename") or ""),
            server_ctime=int(data.get("server_ctime") or data.get("ctime") or 0),
            server_mtime=int(data.get("server_mtime") or data.get("mtime") or 0),
            category=int(data.get("category") or 0),
            real_category=str(data.get("real_category") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "path": self.path,
            "name": self.name,
            "isdir": self.is_dir,
            "size": self.size,
            "md5": self.md5,
            "fs_id": self.fs_id,
            "server_ctime": self.server_ctime,
            "server_mtime": self.server_mtime,
        }

    def to_text_summary(self) -> str:
        """Multi-line description used by the ``info`` command."""
        lines = [
            "File Information:",
            f"  Name: {self.name}",
            f"  Path: {self.path}",
            f"  Size: {self.size} bytes",
            f"  Type: {self.type_label}",
            f"  MD5: {self.md5 or ''}",
            f"  File ID: {self.fs_id}",
            f"  Created: {format_timestamp(self.server_ctime)}",
            f"  Modified: {format_timestamp(self.server_mtime)}",
            f"  Category: {self.category}",
            f"  Real Category: {self.real_category}",
        ]
        return "\n".join(lines)


@dataclass
class DiskInfo:
    """Storage quota of the account."""

    total: int
    used: int
    free: int
    expire: bool = False

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> DiskInfo:
        """Create a DiskInfo from the quota response."""
        total = int(data.get("total") or 0)
        used = int(data.get("used") or 0)
        free = data.get("free")
        return cls(
            total=total,
            used=used,
            free=int(free) if free is not None else max(total - used, 0),
            expire=bool(data.get("expire", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "total": self.total,
            "used": self.used,
            "free": self.free,
            "expire": self.expire,
        }

    def to_text_summary(self) -> str:
        """Multi-line description used by the ``disk-info`` command."""
        return "\n".join(
            [
                "Disk Information:",
                f"  Total: {format_size(self.total)}",
                f"  Used:  {format_size(self.used)}",
                f"  Free:  {format_size(self.free)}",
                f"  Expire: {str(self.expire).lower()}",
            ]
        )


@dataclass
class BatchItemFailure:
    """One failed item of a batch file-manager operation."""

    path: str
    errno: int
    target: Optional[str] = None

    def __str__(self) -> str:
        if self.target:
            return f"{self.path} -> {self.target} (error code: {self.errno})"
        return f"{self.path} (error code: {self.errno})"
