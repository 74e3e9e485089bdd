"""Photo Store

Persists the photo collection as a single JSON entry in local storage,
refusing any write whose serialized size exceeds a fixed ceiling.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Sequence

from ..errors import CapacityExceededError, QuotaExceededError
from .image_processor import EncodedImage
from .local_storage import LocalStorage

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PhotoRecord:
    """One uploaded photo with its keywords."""

    id: str
    data_url: str
    filename: str
    keywords: tuple[str, ...] = ()
    added_at: datetime = field(default_factory=_utcnow)
    auto_tagged: bool = False
    original_size: int = 0
    encoded_size: int = 0

    @classmethod
    def create(
        cls,
        image: EncodedImage,
        filename: str,
        keywords: Iterable[str] = (),
        auto_tagged: bool = False,
        original_size: int = 0,
    ) -> "PhotoRecord":
        """Create a record with a fresh id and timestamp."""
        return cls(
            id=uuid.uuid4().hex,
            data_url=image.data_url,
            filename=filename,
            keywords=tuple(keywords),
            auto_tagged=auto_tagged,
            original_size=original_size,
            encoded_size=int(image.estimated_size),
        )

    def with_keywords(self, keywords: Iterable[str]) -> "PhotoRecord":
        """Return a copy with the keyword list replaced."""
        return replace(self, keywords=tuple(keywords))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "dataUrl": self.data_url,
            "filename": self.filename,
            "keywords": list(self.keywords),
            "addedAt": self.added_at.isoformat(),
            "autoKeywords": self.auto_tagged,
            "originalSize": self.original_size,
            "compressedSize": self.encoded_size,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PhotoRecord":
        """Create from dictionary.

        Raises:
            KeyError, TypeError, ValueError: If the entry is malformed.
        """
        keywords = data.get("keywords") or []
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            raise TypeError("keywords must be a list of strings")

        return cls(
            id=str(data["id"]),
            data_url=str(data["dataUrl"]),
            filename=str(data.get("filename", "")),
            keywords=tuple(keywords),
            added_at=datetime.fromisoformat(data["addedAt"]),
            auto_tagged=bool(data.get("autoKeywords", False)),
            original_size=int(data.get("originalSize", 0)),
            encoded_size=int(data.get("compressedSize", 0)),
        )


class PhotoStore:
    """Size-capped persistence of the photo collection."""

    def __init__(
        self,
        storage: LocalStorage,
        key: str = "mysight_photos",
        max_bytes: int = 4 * MIB,
    ):
        """Initialize the store.

        Args:
            storage: Underlying key/value medium.
            key: Storage entry holding the serialized collection.
            max_bytes: Ceiling for the serialized collection in bytes.
        """
        self.storage = storage
        self.key = key
        self.max_bytes = max_bytes

    @staticmethod
    def serialize(photos: Sequence[PhotoRecord]) -> str:
        return json.dumps([p.to_dict() for p in photos], ensure_ascii=False)

    def load(self) -> list[PhotoRecord]:
        """Load the collection.

        Returns:
            Stored photos, or an empty list if nothing is stored or the
            stored payload cannot be parsed.
        """
        try:
            raw = self.storage.get_item(self.key)
            if raw is None:
                return []
            data = json.loads(raw)
            if not isinstance(data, list):
                raise TypeError(f"expected a list, got {type(data).__name__}")
            photos = [PhotoRecord.from_dict(item) for item in data]
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning(f"Stored collection {self.key!r} is unreadable, starting empty: {e}")
            return []

        logger.debug(f"Loaded {len(photos)} photos")
        return photos

    def save(self, photos: Sequence[PhotoRecord]) -> None:
        """Persist the whole collection.

        Raises:
            CapacityExceededError: If the serialized collection is over the
                ceiling or the storage medium refuses the write. Nothing is
                written in that case.
        """
        payload = self.serialize(photos)
        size = len(payload.encode("utf-8"))

        if size > self.max_bytes:
            raise CapacityExceededError(
                f"Data is too large ({size / MIB:.2f}MB). "
                "Delete some photos or upload fewer files.",
                size=size,
                limit=self.max_bytes,
            )

        try:
            self.storage.set_item(self.key, payload)
        except QuotaExceededError as e:
            raise CapacityExceededError(
                "Local storage is full. Delete old photos or upload fewer files.",
                size=size,
                limit=self.max_bytes,
            ) from e

        logger.debug(f"Saved {len(photos)} photos ({size} bytes)")
