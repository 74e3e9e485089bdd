"""Keyword Source Base

Common contract for everything that turns an image into keywords.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .image_processor import EncodedImage

logger = logging.getLogger(__name__)


class KeywordSource(ABC):
    """Produces zero or more keywords for an image.

    ``keywords()`` never raises: any failure inside ``extract()`` is
    logged and turned into an empty result.
    """

    name = "keywords"

    @abstractmethod
    async def extract(self, image: EncodedImage, raw: Optional[bytes] = None) -> list[str]:
        """Extract keywords.

        Args:
            image: Normalized, encoded image.
            raw: Original upload bytes (carries metadata lost on re-encoding).

        Returns:
            List of keywords.
        """

    async def keywords(self, image: EncodedImage, raw: Optional[bytes] = None) -> list[str]:
        try:
            return await self.extract(image, raw)
        except Exception as e:
            logger.warning(f"{self.name} keyword extraction failed: {e}")
            return []
