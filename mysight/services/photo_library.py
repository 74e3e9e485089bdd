"""Photo Library

Owns the in-memory photo collection and mirrors it to the photo store
on every change. A change is applied in memory only after the store has
accepted it, so a refused write leaves both sides as they were.
"""

import logging
from typing import Iterable, Iterator, Optional

from ..errors import PhotoNotFoundError
from .photo_store import PhotoRecord, PhotoStore
from .search import SearchResult, search_photos

logger = logging.getLogger(__name__)


def parse_keywords(text: str) -> list[str]:
    """Split a comma-separated keyword entry, dropping blanks."""
    return [k.strip() for k in text.split(",") if k.strip()]


class PhotoLibrary:
    """The photo collection and its persistence."""

    def __init__(self, store: PhotoStore):
        self.store = store
        self._photos: list[PhotoRecord] = []

    def load(self) -> int:
        """Replace the in-memory collection with the stored one.

        Returns:
            Number of photos loaded.
        """
        self._photos = self.store.load()
        return len(self._photos)

    @property
    def photos(self) -> tuple[PhotoRecord, ...]:
        return tuple(self._photos)

    def __len__(self) -> int:
        return len(self._photos)

    def __iter__(self) -> Iterator[PhotoRecord]:
        return iter(tuple(self._photos))

    def get(self, photo_id: str) -> Optional[PhotoRecord]:
        for photo in self._photos:
            if photo.id == photo_id:
                return photo
        return None

    def _index_of(self, photo_id: str) -> int:
        for i, photo in enumerate(self._photos):
            if photo.id == photo_id:
                return i
        raise PhotoNotFoundError(f"No photo with id {photo_id}")

    def _commit(self, photos: list[PhotoRecord]) -> None:
        self.store.save(photos)
        self._photos = photos

    def add(self, photo: PhotoRecord) -> PhotoRecord:
        """Append a photo and persist the collection.

        Raises:
            CapacityExceededError: If the collection would not fit; the
                photo is not added.
        """
        self._commit(self._photos + [photo])
        logger.info(f"Added {photo.filename} ({len(photo.keywords)} keywords)")
        return photo

    def update_keywords(self, photo_id: str, keywords: Iterable[str]) -> PhotoRecord:
        """Replace a photo's keywords and persist the collection.

        Raises:
            PhotoNotFoundError: If the id is unknown.
            CapacityExceededError: If the updated collection would not fit.
        """
        index = self._index_of(photo_id)
        updated = self._photos[index].with_keywords(keywords)

        photos = list(self._photos)
        photos[index] = updated
        self._commit(photos)
        logger.info(f"Updated keywords of {updated.filename}: {', '.join(updated.keywords)}")
        return updated

    def delete(self, photo_id: str) -> PhotoRecord:
        """Remove a photo and persist the collection.

        Raises:
            PhotoNotFoundError: If the id is unknown.
        """
        index = self._index_of(photo_id)
        photos = list(self._photos)
        removed = photos.pop(index)
        self._commit(photos)
        logger.info(f"Deleted {removed.filename}")
        return removed

    def search(self, query: str) -> SearchResult:
        return search_photos(self._photos, query)
