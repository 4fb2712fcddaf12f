"""Baidu Pan file manager - CLI tool for managing files on Baidu Pan."""

from .api import OverwritePolicy, PanClient
from .auth import TokenAuthority, TokenState
from .credentials import CredentialStore
from .exceptions import (
    AuthCancelled,
    AuthFailed,
    BdfsAPIError,
    BdfsAuthError,
    BdfsBatchError,
    BdfsConfigError,
    BdfsDownloadError,
    BdfsError,
    BdfsFileNotFoundError,
    BdfsHTTPError,
    BdfsIntegrityError,
    BdfsInvalidResponseError,
    BdfsNetworkError,
    BdfsProtocolError,
    BdfsUploadError,
    CredentialStoreError,
    DeviceCodeExpired,
    TokenRefreshError,
)
from .slicer import slice_hashes, whole_file_hash
from .upload import SliceRetryPolicy, UploadOrchestrator
from .walker import DirectoryWalker

__all__ = [
    "PanClient",
    "OverwritePolicy",
    "TokenAuthority",
    "TokenState",
    "CredentialStore",
    "UploadOrchestrator",
    "SliceRetryPolicy",
    "DirectoryWalker",
    "slice_hashes",
    "whole_file_hash",
    "AuthCancelled",
    "AuthFailed",
    "BdfsAPIError",
    "BdfsAuthError",
    "BdfsBatchError",
    "BdfsConfigError",
    "BdfsDownloadError",
    "BdfsError",
    "BdfsFileNotFoundError",
    "BdfsHTTPError",
    "BdfsIntegrityError",
    "BdfsInvalidResponseError",
    "BdfsNetworkError",
    "BdfsProtocolError",
    "BdfsUploadError",
    "CredentialStoreError",
    "DeviceCodeExpired",
    "TokenRefreshError",
]
