"""Image Heuristics Keyword Source

Offline fallback that derives keywords from pixel statistics:
orientation, resolution, lighting, contrast and dominant colors.
"""

import asyncio
import logging
from typing import Optional

import numpy as np
from PIL import Image

from .image_processor import EncodedImage
from .keyword_source import KeywordSource

logger = logging.getLogger(__name__)

# Bucket order breaks ties between equally frequent colors
COLOR_NAMES = [
    "красный",
    "оранжевый",
    "желтый",
    "зеленый",
    "голубой",
    "синий",
    "фиолетовый",
    "розовый",
    "белый",
    "серый",
    "черный",
    "коричневый",
    "бежевый",
]
(
    RED, ORANGE, YELLOW, GREEN, CYAN, BLUE, VIOLET, PINK,
    WHITE, GRAY, BLACK, BROWN, BEIGE,
) = range(len(COLOR_NAMES))

LANDSCAPE_KEYWORDS = ["пейзаж", "горизонтальное", "широкое"]
PORTRAIT_KEYWORDS = ["портрет", "вертикальное", "высокое"]
SQUARE_KEYWORDS = ["квадратное"]
HIGH_RESOLUTION_KEYWORDS = ["высокое разрешение"]

# (upper bound of average brightness, keywords)
LIGHTING_KEYWORDS = [
    (40, ["темное", "ночь", "темное время"]),
    (80, ["сумерки", "вечер", "рассвет"]),
    (150, ["дневное", "светлое"]),
    (200, ["яркое", "солнечное"]),
    (float("inf"), ["очень яркое", "переэкспонированное"]),
]
HIGH_CONTRAST_KEYWORDS = ["контрастное", "выразительное"]
LOW_CONTRAST_KEYWORDS = ["мягкое", "пастельное"]
NATURE_KEYWORDS = ["природа", "растительность"]
AUTUMN_KEYWORDS = ["осень", "земля"]


def classify_colors(rgb: np.ndarray) -> np.ndarray:
    """Assign every pixel of an ``(..., 3)`` RGB array to a color bucket.

    Returns:
        Integer array of bucket indexes into ``COLOR_NAMES``.
    """
    rgb = rgb.astype(np.float64)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]

    mx = rgb.max(axis=-1)
    mn = rgb.min(axis=-1)
    delta = mx - mn

    v = mx / 255
    s = np.divide(delta, mx, out=np.zeros_like(delta), where=mx > 0)

    safe_delta = np.where(delta == 0, 1, delta)
    h = np.where(
        mx == r,
        ((g - b) / safe_delta + np.where(g < b, 6, 0)) / 6,
        np.where(mx == g, ((b - r) / safe_delta + 2) / 6, ((r - g) / safe_delta + 4) / 6),
    )
    hue = np.where(delta == 0, 0, h) * 360

    conditions = [
        v < 0.2,
        (s < 0.1) & (v > 0.9),
        (s < 0.2) & (v > 0.7),
        (s < 0.2) & (v > 0.4),
        s < 0.2,
        # Brown and beige win over the orange and yellow hue slices
        (hue >= 15) & (hue < 45) & (v < 0.6),
        (hue >= 15) & (hue < 75) & (s < 0.35) & (v > 0.75),
        (hue < 15) | (hue >= 345),
        hue < 45,
        hue < 75,
        hue < 150,
        hue < 210,
        hue < 270,
        hue < 300,
    ]
    choices = [
        BLACK, WHITE, WHITE, GRAY, BLACK, BROWN, BEIGE,
        RED, ORANGE, YELLOW, GREEN, CYAN, BLUE, VIOLET,
    ]
    return np.select(conditions, choices, default=PINK)


class ImageHeuristics(KeywordSource):
    """Keyword source computed locally from the image pixels."""

    name = "image heuristics"

    def __init__(self, sample_size: int = 200, max_keywords: int = 10):
        """Initialize the analyzer.

        Args:
            sample_size: Long edge of the downsampled copy used for pixel stats.
            max_keywords: Maximum number of keywords returned.
        """
        self.sample_size = sample_size
        self.max_keywords = max_keywords

    def _sample(self, image: Image.Image) -> np.ndarray:
        width, height = image.size
        scale = min(1.0, self.sample_size / max(width, height))
        size = (max(1, int(width * scale)), max(1, int(height * scale)))
        sample = image.convert("RGB").resize(size, Image.Resampling.BILINEAR)
        return np.asarray(sample, dtype=np.float64)

    def analyze(self, image: Image.Image) -> list[str]:
        """Derive keywords from a decoded image.

        Args:
            image: PIL Image object.

        Returns:
            Deduplicated keywords, at most ``max_keywords``.
        """
        keywords = []
        width, height = image.size

        aspect_ratio = width / height
        if aspect_ratio > 1.5:
            keywords.extend(LANDSCAPE_KEYWORDS)
        elif aspect_ratio < 0.7:
            keywords.extend(PORTRAIT_KEYWORDS)
        elif abs(aspect_ratio - 1) < 0.1:
            keywords.extend(SQUARE_KEYWORDS)

        if width * height / 1_000_000 > 8:
            keywords.extend(HIGH_RESOLUTION_KEYWORDS)

        pixels = self._sample(image)
        pixel_count = pixels.shape[0] * pixels.shape[1]

        luma = pixels[..., 0] * 0.299 + pixels[..., 1] * 0.587 + pixels[..., 2] * 0.114
        brightness = float(luma.mean())
        contrast = float(luma.std())

        for bound, lighting in LIGHTING_KEYWORDS:
            if brightness < bound:
                keywords.extend(lighting)
                break

        if contrast > 60:
            keywords.extend(HIGH_CONTRAST_KEYWORDS)
        elif contrast < 20:
            keywords.extend(LOW_CONTRAST_KEYWORDS)

        counts = np.bincount(classify_colors(pixels).ravel(), minlength=len(COLOR_NAMES))
        ranked = sorted(
            (i for i in range(len(COLOR_NAMES)) if counts[i] > 0),
            key=lambda i: -counts[i],
        )
        keywords.extend(COLOR_NAMES[i] for i in ranked[:3])

        if counts[GREEN] + counts[YELLOW] > pixel_count * 0.3:
            keywords.extend(NATURE_KEYWORDS)
        if counts[BROWN] > pixel_count * 0.2:
            keywords.extend(AUTUMN_KEYWORDS)

        result = list(dict.fromkeys(keywords))[: self.max_keywords]
        logger.debug(
            f"Image heuristics: brightness={brightness:.1f} contrast={contrast:.1f} -> {result}"
        )
        return result

    def _analyze_encoded(self, image: EncodedImage) -> list[str]:
        with image.open() as img:
            img.load()
            return self.analyze(img)

    async def extract(self, image: EncodedImage, raw: Optional[bytes] = None) -> list[str]:
        return await asyncio.to_thread(self._analyze_encoded, image)
