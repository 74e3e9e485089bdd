"""Keyword Search

Linear substring search over the photo collection.
"""

from dataclasses import dataclass
from typing import Iterable

from .photo_store import PhotoRecord


@dataclass(frozen=True)
class SearchResult:
    """Outcome of a keyword search."""

    terms: tuple[str, ...]
    matches: tuple[PhotoRecord, ...]

    @property
    def has_query(self) -> bool:
        """False for the blank-query result, which is not a zero-match result."""
        return bool(self.terms)

    def matched_keywords(self, photo: PhotoRecord) -> list[str]:
        """Keywords of ``photo`` that contain one of the query terms."""
        return [
            keyword
            for keyword in photo.keywords
            if any(term in keyword.lower() for term in self.terms)
        ]


NO_QUERY = SearchResult(terms=(), matches=())


def parse_query(query: str) -> tuple[str, ...]:
    return tuple(query.strip().lower().split())


def search_photos(photos: Iterable[PhotoRecord], query: str) -> SearchResult:
    """Find photos whose keywords contain any query term.

    A photo matches if any whitespace-separated, lowercased term is a
    substring of its space-joined, lowercased keywords. Matches keep
    collection order.

    Returns:
        ``NO_QUERY`` for a blank query, otherwise a SearchResult.
    """
    terms = parse_query(query)
    if not terms:
        return NO_QUERY

    matches = []
    for photo in photos:
        haystack = " ".join(photo.keywords).lower()
        if any(term in haystack for term in terms):
            matches.append(photo)

    return SearchResult(terms=terms, matches=tuple(matches))
