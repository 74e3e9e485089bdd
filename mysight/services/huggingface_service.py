"""Hugging Face Keyword Source

Classifies images with Hugging Face image-classification models through
the inference proxy, trying a list of models in order and falling back
to local image heuristics when none of them answers.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from ..errors import UpstreamError
from ..utils.config import DEFAULT_MODELS
from .image_heuristics import ImageHeuristics
from .image_processor import EncodedImage
from .keyword_source import KeywordSource
from .translation_service import TranslationService

logger = logging.getLogger(__name__)

CROSS_ORIGIN_MARKERS = ("CORS", "Failed to fetch", "ERR_FAILED")

# ImageNet class ids such as "n02119789_"
IMAGENET_ID_PREFIX = re.compile(r"^n\d+_")


@dataclass(frozen=True)
class Classification:
    """One label of a classification response."""

    label: str
    score: Optional[float] = None


def classify_response(data: Any) -> list[Classification]:
    """Normalize the response shapes of image-classification endpoints.

    Accepted shapes: a list of ``{label, score}`` objects, the same list
    nested in another list, a list of plain label strings, or a single
    ``{label, score}`` object. Anything else yields an empty list.
    """
    if isinstance(data, dict):
        items = [data] if "label" in data else []
    elif isinstance(data, list):
        items = data[0] if data and isinstance(data[0], list) else data
    else:
        items = []

    classifications = []
    for item in items:
        if isinstance(item, dict) and item.get("label"):
            score = item.get("score")
            classifications.append(
                Classification(
                    label=str(item["label"]),
                    score=float(score) if isinstance(score, (int, float)) else None,
                )
            )
        elif isinstance(item, str) and item:
            classifications.append(Classification(label=item))
    return classifications


def normalize_label(label: str) -> str:
    """Lowercase a classifier label and strip its ImageNet id prefix."""
    label = IMAGENET_ID_PREFIX.sub("", label.lower())
    return label.replace("_", " ").strip()


def is_restricted_origin(origin: Optional[str]) -> bool:
    """True for pages opened from disk or served from localhost."""
    if not origin:
        return False
    parsed = urlparse(origin)
    return parsed.scheme == "file" or "localhost" in (parsed.hostname or "")


def is_cross_origin_block(error: Exception) -> bool:
    message = str(error)
    return any(marker in message for marker in CROSS_ORIGIN_MARKERS)


class HuggingFaceService(KeywordSource):
    """Keyword source backed by Hugging Face image-classification models."""

    name = "Hugging Face"

    def __init__(
        self,
        proxy_url: str,
        models: Optional[list[str]] = None,
        translator: Optional[TranslationService] = None,
        fallback: Optional[KeywordSource] = None,
        origin: Optional[str] = None,
        warmup_backoff: float = 5.0,
        timeout: float = 60.0,
        max_labels: int = 10,
        max_keywords: int = 8,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the service.

        Args:
            proxy_url: Inference proxy accepting ``{model, imageBase64}``.
            models: Model ids, tried in order.
            translator: Label translator.
            fallback: Source used when no model answers.
            origin: Origin the requests are issued from.
            warmup_backoff: Seconds to wait after a model answers 503.
            timeout: Request timeout in seconds.
            max_labels: Top-scored labels considered.
            max_keywords: Maximum keywords returned.
            transport: Custom httpx transport.
        """
        self.proxy_url = proxy_url
        self.models = list(models or DEFAULT_MODELS)
        self.translator = translator or TranslationService()
        self.fallback = fallback or ImageHeuristics()
        self.origin = origin
        self.warmup_backoff = warmup_backoff
        self.timeout = timeout
        self.max_labels = max_labels
        self.max_keywords = max_keywords
        self.transport = transport

    def to_keywords(self, classifications: list[Classification]) -> list[str]:
        """Turn classifications into display keywords.

        Sorts by descending score when scores are present, keeps the top
        labels, strips ImageNet prefixes and translates known labels.
        """
        if any(c.score is not None for c in classifications):
            classifications = sorted(
                classifications, key=lambda c: c.score or 0.0, reverse=True
            )

        keywords = []
        for c in classifications[: self.max_labels]:
            label = normalize_label(c.label)
            if label:
                keywords.append(self.translator.translate(label))
        return [k for k in keywords if k][: self.max_keywords]

    async def _fallback(self, image: EncodedImage, raw: Optional[bytes]) -> list[str]:
        logger.warning("Using basic image analysis instead of a classification model")
        return await self.fallback.keywords(image, raw)

    async def _skip_model(self, model: str, error: UpstreamError):
        logger.warning(f"Model {model} error: {error.status} {error.details}")
        if error.status == 503:
            logger.info(f"Model is loading, waiting {self.warmup_backoff:g} seconds...")
            await asyncio.sleep(self.warmup_backoff)
        elif error.status == 404:
            logger.info(f"Model {model} not found, trying next...")
        elif error.status == 401:
            logger.info(f"Model {model} requires authentication, trying next...")

    async def _classify(self, client: httpx.AsyncClient, model: str, payload: str) -> Optional[list[str]]:
        """Ask one model for labels.

        Returns:
            Keywords, or None when the response holds no labels.

        Raises:
            UpstreamError: If the model answers with a non-success status.
        """
        response = await client.post(
            self.proxy_url,
            json={"model": model, "imageBase64": payload},
        )
        if not response.is_success:
            raise UpstreamError(response.status_code, response.text[:200])

        # DeepL translation blocks
        keywords = await asyncio.to_thread(
            self.to_keywords, classify_response(response.json())
        )
        if not keywords:
            logger.warning(f"No labels found in response of {model}")
            return None
        return keywords

    async def extract(self, image: EncodedImage, raw: Optional[bytes] = None) -> list[str]:
        if self.origin and urlparse(self.origin).scheme == "file":
            logger.warning("Opened from file://, the inference API is blocked; skipping it")
            return await self._fallback(image, raw)

        restricted = is_restricted_origin(self.origin)
        payload = image.payload

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for model in self.models:
                logger.info(f"Trying model: {model}")
                try:
                    keywords = await self._classify(client, model, payload)
                except UpstreamError as e:
                    await self._skip_model(model, e)
                    continue
                except httpx.TransportError as e:
                    if is_cross_origin_block(e) and restricted:
                        logger.error(f"Inference API is blocked for origin {self.origin}: {e}")
                        break
                    logger.warning(f"Inference API unavailable for model {model}: {e}")
                    continue
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning(f"Error with model {model}: {e}")
                    continue

                if keywords:
                    logger.info(f"Hugging Face keywords from {model}: {keywords}")
                    return keywords

        logger.info("All models failed, trying alternative...")
        return await self._fallback(image, raw)
