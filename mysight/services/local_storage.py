"""Local Key/Value Storage

Directory-backed string storage with a size quota, used as the
persistence medium for the photo collection. Each key is one file,
replaced atomically on every write.
"""

import errno
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from ..errors import QuotaExceededError

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


class LocalStorage:
    """String key/value store on disk with a total quota."""

    KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")
    TEMP_PREFIX = ".tmp-"

    def __init__(self, directory: Path, quota_bytes: int = 5 * MIB):
        """Initialize the storage.

        Args:
            directory: Folder holding one file per key.
            quota_bytes: Maximum total size of all stored values.
        """
        self.directory = Path(directory)
        self.quota_bytes = quota_bytes
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not self.KEY_PATTERN.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.directory / key

    def keys(self) -> list[str]:
        """List stored keys."""
        return sorted(
            p.name
            for p in self.directory.iterdir()
            if p.is_file() and not p.name.startswith(self.TEMP_PREFIX)
        )

    def usage(self, exclude: Optional[str] = None) -> int:
        """Total bytes used by stored values, optionally ignoring one key."""
        return sum(
            (self.directory / key).stat().st_size
            for key in self.keys()
            if key != exclude
        )

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one.

        Raises:
            QuotaExceededError: If the write would exceed the quota or the
                disk refuses it for lack of space.
        """
        path = self._path(key)
        encoded = value.encode("utf-8")

        used = self.usage(exclude=key)
        if used + len(encoded) > self.quota_bytes:
            raise QuotaExceededError(
                f"Storage quota exceeded: {used + len(encoded)} > {self.quota_bytes} bytes"
            )

        fd, tmp_name = tempfile.mkstemp(prefix=self.TEMP_PREFIX, dir=self.directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(encoded)
            os.replace(tmp_name, path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            if e.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
                raise QuotaExceededError(f"Storage is full: {e}") from e
            raise

        logger.debug(f"Stored {len(encoded)} bytes under {key!r}")

    def remove_item(self, key: str) -> None:
        """Delete a key if present."""
        self._path(key).unlink(missing_ok=True)
