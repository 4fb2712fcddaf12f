"""Slice hashing for the upload protocol.

Baidu Pan identifies upload content by the MD5 of every fixed-size slice
("block list"). Hashes are computed over raw bytes only, so the result is
the same on every platform.
"""

import hashlib
from collections.abc import Iterator
from pathlib import Path
from typing import Union

from .exceptions import BdfsFileNotFoundError
from .models import SliceDescriptor
from .utils import DEFAULT_SLICE_SIZE

PathLike = Union[str, Path]

# Read size for whole-file hashing
_READ_CHUNK = 1024 * 1024


def slice_hashes(
    path: PathLike, slice_size: int = DEFAULT_SLICE_SIZE
) -> Iterator[SliceDescriptor]:
    """Lazily hash a file slice by slice.

    The file is read once, sequentially. An empty file yields no slices.
    Only the last slice may be shorter than ``slice_size``.

    Args:
        path: Local file path
        slice_size: Slice size in bytes

    Yields:
        SliceDescriptor for each slice, in file order

    Raises:
        ValueError: If slice_size is not positive
        BdfsFileNotFoundError: If the file cannot be opened
    """
    if slice_size <= 0:
        raise ValueError("slice_size must be positive")

    try:
        f = open(path, "rb")
    except OSError as e:
        raise BdfsFileNotFoundError(str(path), f"Failed to open file {path}: {e}") from e

    with f:
        index = 0
        offset = 0
        while True:
            data = f.read(slice_size)
            if not data:
                break
            yield SliceDescriptor(
                index=index,
                content_hash=hashlib.md5(data).hexdigest(),
                offset=offset,
                byte_length=len(data),
            )
            index += 1
            offset += len(data)


def whole_file_hash(path: PathLike) -> str:
    """Calculate the MD5 of a whole file.

    Raises:
        BdfsFileNotFoundError: If the file cannot be read
    """
    digest = hashlib.md5()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
                digest.update(chunk)
    except OSError as e:
        raise BdfsFileNotFoundError(
            str(path), f"Failed to calculate MD5 for file {path}: {e}"
        ) from e
    return digest.hexdigest()


def read_slice(path: PathLike, descriptor: SliceDescriptor) -> bytes:
    """Read the bytes covered by a slice.

    Raises:
        BdfsFileNotFoundError: If the file cannot be read
    """
    try:
        with open(path, "rb") as f:
            f.seek(descriptor.offset)
            return f.read(descriptor.byte_length)
    except OSError as e:
        raise BdfsFileNotFoundError(
            str(path), f"Failed to read slice {descriptor.index} of {path}: {e}"
        ) from e
