"""Token file storage."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from .exceptions import CredentialStoreError
from .models import TokenRecord

logger = logging.getLogger(__name__)


class CredentialStore:
    """Reads and writes the token file.

    The file is a JSON object written with owner-only permissions (0600).
    Writes go through a temporary file in the same directory followed by
    ``os.replace`` so a crash never leaves a half-written token file.
    """

    def __init__(self, token_path: Path):
        """Initialize the store and create the token directory.

        Args:
            token_path: Location of the token file

        Raises:
            CredentialStoreError: If the parent directory cannot be created
        """
        self.token_path = Path(token_path).expanduser()
        try:
            self.token_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CredentialStoreError(
                f"Cannot create token directory {self.token_path.parent}: {e}"
            ) from e

    def exists(self) -> bool:
        """Check whether a token file is present."""
        return self.token_path.is_file()

    def load(self) -> TokenRecord | None:
        """Load the token record.

        Returns:
            The stored TokenRecord, or None if no token file exists

        Raises:
            CredentialStoreError: If the file exists but cannot be read or parsed
        """
        if not self.exists():
            logger.debug(f"No token file at {self.token_path}")
            return None

        try:
            data = json.loads(self.token_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CredentialStoreError(
                f"Unable to read token file {self.token_path}: {e}"
            ) from e

        if not isinstance(data, dict):
            raise CredentialStoreError(
                f"Token file {self.token_path} does not contain a JSON object"
            )

        record = TokenRecord.from_dict(data)
        logger.debug(f"Loaded token record from {self.token_path}")
        return record

    def save(self, record: TokenRecord) -> None:
        """Persist the token record, replacing any previous one.

        Raises:
            CredentialStoreError: If the record has no access token or the
                file cannot be written
        """
        if not record.access_token:
            raise CredentialStoreError("No access token to save")

        payload = json.dumps(record.to_dict(), ensure_ascii=True, indent=2)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.token_path.name}.", dir=self.token_path.parent
        )
        # mkstemp creates the file with mode 0600
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.token_path)
            os.chmod(self.token_path, 0o600)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise CredentialStoreError(
                f"Failed to save tokens to {self.token_path}: {e}"
            ) from e

        logger.debug(f"Saved token record to {self.token_path}")

    def delete(self) -> None:
        """Remove the token file if present.

        Raises:
            CredentialStoreError: If the file exists but cannot be removed
        """
        try:
            self.token_path.unlink()
            logger.debug(f"Removed token file {self.token_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CredentialStoreError(
                f"Failed to remove token file {self.token_path}: {e}"
            ) from e
