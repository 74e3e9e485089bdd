"""Keyword Detector

Runs the enabled keyword sources one after another and merges their
keywords into a single ordered, deduplicated list.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .exif_keywords import ExifKeywordSource
from .image_processor import EncodedImage
from .keyword_source import KeywordSource
from .vision_service import VisionService

logger = logging.getLogger(__name__)

API_TYPES = ("exif", "google", "huggingface", "combined")


@dataclass(frozen=True)
class DetectionOptions:
    """Which keyword sources to run for an upload."""

    use_exif: bool = True
    use_vision: bool = False
    use_inference: bool = True
    vision_api_key: Optional[str] = None

    @classmethod
    def for_api_type(cls, api_type: str, vision_api_key: Optional[str] = None) -> "DetectionOptions":
        """Options for a source selection: exif, google, huggingface or combined."""
        if api_type not in API_TYPES:
            raise ValueError(f"Unknown keyword source {api_type!r}, expected one of {API_TYPES}")
        return cls(
            use_exif=api_type in ("exif", "combined"),
            use_vision=api_type in ("google", "combined"),
            use_inference=api_type in ("huggingface", "combined"),
            vision_api_key=vision_api_key,
        )

    @property
    def runs_vision(self) -> bool:
        return self.use_vision and bool(self.vision_api_key)

    @property
    def runs_inference(self) -> bool:
        # Vision and inference are alternatives: inference only stands in
        # when vision is off or has no key
        return self.use_inference and not self.runs_vision


class KeywordDetector:
    """Aggregates keywords from EXIF, Google Vision and Hugging Face."""

    def __init__(
        self,
        inference: KeywordSource,
        exif: Optional[KeywordSource] = None,
        vision_factory: Optional[Callable[[str], KeywordSource]] = None,
        max_keywords: int = 15,
    ):
        """Initialize the detector.

        Args:
            inference: Hugging Face (or compatible) keyword source.
            exif: Metadata keyword source.
            vision_factory: Builds a vision keyword source for an API key.
            max_keywords: Maximum number of merged keywords.
        """
        self.inference = inference
        self.exif = exif or ExifKeywordSource()
        self.vision_factory = vision_factory or (lambda api_key: VisionService(api_key=api_key))
        self.max_keywords = max_keywords

    async def _run(self, source: KeywordSource, image: EncodedImage, raw: Optional[bytes]) -> list[str]:
        try:
            keywords = await source.keywords(image, raw)
        except Exception as e:
            logger.warning(f"{source.name} error: {e}")
            return []
        logger.info(f"{source.name} keywords: {keywords}")
        return keywords

    async def detect(
        self,
        image: EncodedImage,
        raw: Optional[bytes] = None,
        options: Optional[DetectionOptions] = None,
    ) -> list[str]:
        """Detect keywords for an image.

        Args:
            image: Normalized, encoded image.
            raw: Original upload bytes (for metadata).
            options: Source selection.

        Returns:
            Keywords in first-seen order, without duplicates or empty
            strings, at most ``max_keywords``. Never raises.
        """
        options = options or DetectionOptions()
        sources = []

        if options.use_exif:
            sources.append(self.exif)
        if options.runs_vision:
            sources.append(self.vision_factory(options.vision_api_key))
        if options.runs_inference:
            sources.append(self.inference)

        all_keywords = []
        for source in sources:
            all_keywords.extend(await self._run(source, image, raw))

        keywords = [k for k in dict.fromkeys(all_keywords) if k][: self.max_keywords]
        logger.info(f"Final keywords: {keywords}")
        return keywords
