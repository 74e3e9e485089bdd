"""Google Cloud Vision Keyword Source

Annotates images with Google Cloud Vision (labels, landmarks, text and
objects in a single request) and turns the annotations into keywords.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from google.cloud import vision

from .image_processor import EncodedImage
from .keyword_source import KeywordSource

logger = logging.getLogger(__name__)


@dataclass
class DetectedLabel:
    """Represents a detected label from Vision API."""

    description: str
    score: float


@dataclass
class VisionAnalysisResult:
    """Annotations relevant to keyword extraction."""

    labels: list[DetectedLabel] = field(default_factory=list)
    landmarks: list[str] = field(default_factory=list)
    objects: list[str] = field(default_factory=list)
    text: str = ""
    error: Optional[str] = None

    def get_all_keywords(
        self,
        min_confidence: float = 0.7,
        max_text_words: int = 5,
        min_word_length: int = 4,
    ) -> list[str]:
        """Collect keywords from all annotation kinds.

        Args:
            min_confidence: Labels must score strictly above this.
            max_text_words: Number of distinct words kept from detected text.
            min_word_length: Shortest text word kept.

        Returns:
            Lowercased keywords without duplicates, in annotation order.
        """
        keywords = [l.description for l in self.labels if l.score > min_confidence]
        keywords.extend(self.landmarks)
        keywords.extend(self.objects)

        words = [w for w in self.text.split() if len(w) >= min_word_length]
        keywords.extend(list(dict.fromkeys(w.lower() for w in words))[:max_text_words])

        return list(dict.fromkeys(k.lower() for k in keywords if k))


class VisionService(KeywordSource):
    """Keyword source backed by the Google Cloud Vision API."""

    name = "Google Vision"

    def __init__(
        self,
        api_key: Optional[str] = None,
        min_confidence: float = 0.7,
        max_labels: int = 10,
        max_landmarks: int = 5,
        max_objects: int = 10,
        client: Optional[vision.ImageAnnotatorClient] = None,
    ):
        """Initialize the Vision service.

        Args:
            api_key: Google Cloud API key. Without one no request is made.
            min_confidence: Minimum label confidence (exclusive).
            max_labels: Maximum number of labels requested.
            max_landmarks: Maximum number of landmarks requested.
            max_objects: Maximum number of localized objects requested.
            client: Pre-built annotator client.
        """
        self.api_key = api_key
        self.min_confidence = min_confidence
        self.max_labels = max_labels
        self.max_landmarks = max_landmarks
        self.max_objects = max_objects
        self._client = client

    @property
    def client(self) -> vision.ImageAnnotatorClient:
        """Get or create the Vision API client.

        Returns:
            Vision API client instance.
        """
        if self._client is None:
            self._client = vision.ImageAnnotatorClient(
                client_options={"api_key": self.api_key}
            )
        return self._client

    def _build_features(self) -> list[vision.Feature]:
        """Build the list of features to request.

        Returns:
            List of Vision API features.
        """
        return [
            vision.Feature(
                type_=vision.Feature.Type.LABEL_DETECTION,
                max_results=self.max_labels,
            ),
            vision.Feature(
                type_=vision.Feature.Type.LANDMARK_DETECTION,
                max_results=self.max_landmarks,
            ),
            vision.Feature(type_=vision.Feature.Type.TEXT_DETECTION),
            vision.Feature(
                type_=vision.Feature.Type.OBJECT_LOCALIZATION,
                max_results=self.max_objects,
            ),
        ]

    def analyze_image(self, image: EncodedImage) -> VisionAnalysisResult:
        """Analyze an image using Vision API.

        Args:
            image: Encoded image to annotate.

        Returns:
            VisionAnalysisResult containing detected elements.
        """
        result = VisionAnalysisResult()

        response = self.client.annotate_image(
            {"image": vision.Image(content=image.data), "features": self._build_features()}
        )

        if response.error.message:
            result.error = response.error.message
            logger.error(f"Vision API error: {response.error.message}")
            return result

        for label in response.label_annotations:
            result.labels.append(DetectedLabel(description=label.description, score=label.score))

        result.landmarks = [l.description for l in response.landmark_annotations]
        result.objects = [o.name for o in response.localized_object_annotations]

        if response.text_annotations:
            result.text = response.text_annotations[0].description

        logger.info(
            f"Vision API: {len(result.labels)} labels, "
            f"{len(result.landmarks)} landmarks, "
            f"{len(result.objects)} objects"
        )
        return result

    async def extract(self, image: EncodedImage, raw: Optional[bytes] = None) -> list[str]:
        if not self.api_key:
            logger.warning("Google Vision API key not provided")
            return []

        result = await asyncio.to_thread(self.analyze_image, image)
        if result.error:
            return []
        return result.get_all_keywords(min_confidence=self.min_confidence)
