"""EXIF Keyword Source

Derives season, time of day, GPS and camera keywords from the
metadata embedded in the original upload.
"""

import asyncio
import io
import logging
from datetime import datetime
from typing import Optional

from PIL import Image, ExifTags

from .image_processor import EncodedImage
from .keyword_source import KeywordSource

logger = logging.getLogger(__name__)

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"

GPS_KEYWORD = "GPS"


def season_keyword(month: int) -> str:
    if 3 <= month <= 5:
        return "весна"
    if 6 <= month <= 8:
        return "лето"
    if 9 <= month <= 11:
        return "осень"
    return "зима"


def time_of_day_keyword(hour: int) -> str:
    if 5 <= hour < 8:
        return "рассвет"
    if 8 <= hour < 12:
        return "утро"
    if 12 <= hour < 17:
        return "день"
    if 17 <= hour < 20:
        return "закат"
    return "ночь"


def metadata_keywords(
    taken_at: Optional[datetime],
    has_gps: bool = False,
    make: Optional[str] = None,
) -> list[str]:
    """Map capture metadata to keywords, at most one per category."""
    keywords = []
    if has_gps:
        keywords.append(GPS_KEYWORD)
    if taken_at is not None:
        keywords.append(season_keyword(taken_at.month))
        keywords.append(time_of_day_keyword(taken_at.hour))
    if make and make.strip():
        keywords.append(make.strip().lower())
    return keywords


def parse_exif_datetime(value) -> Optional[datetime]:
    """Parse an EXIF ``YYYY:MM:DD HH:MM:SS`` timestamp."""
    if isinstance(value, bytes):
        value = value.decode("ascii", errors="ignore")
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value.strip("\x00 ")[:19], EXIF_DATE_FORMAT)
    except ValueError:
        return None


class ExifKeywordSource(KeywordSource):
    """Keywords from EXIF capture time, GPS and camera make."""

    name = "EXIF"

    def read_metadata(self, raw: bytes) -> tuple[Optional[datetime], bool, Optional[str]]:
        """Read (capture time, GPS present, camera make) from image bytes."""
        with Image.open(io.BytesIO(raw)) as img:
            exif = img.getexif()

        exif_ifd = exif.get_ifd(ExifTags.IFD.Exif)
        taken_at = parse_exif_datetime(
            exif_ifd.get(ExifTags.Base.DateTimeOriginal)
        ) or parse_exif_datetime(exif.get(ExifTags.Base.DateTime))

        gps = exif.get_ifd(ExifTags.IFD.GPSInfo)
        has_gps = bool(gps.get(ExifTags.GPS.GPSLatitude) and gps.get(ExifTags.GPS.GPSLongitude))

        make = exif.get(ExifTags.Base.Make)
        if isinstance(make, bytes):
            make = make.decode("ascii", errors="ignore")
        if make is not None:
            make = str(make).strip("\x00 ")

        return taken_at, has_gps, make or None

    async def extract(self, image: EncodedImage, raw: Optional[bytes] = None) -> list[str]:
        taken_at, has_gps, make = await asyncio.to_thread(
            self.read_metadata, raw if raw is not None else image.data
        )
        keywords = metadata_keywords(taken_at, has_gps, make)
        logger.debug(f"EXIF keywords: {keywords}")
        return keywords
