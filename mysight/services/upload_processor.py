"""Upload Processor

Turns image files into stored photos: normalize, detect keywords,
record, persist. Files of a batch are processed strictly one after
another; a failing file is reported and the batch carries on.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from ..errors import CapacityExceededError
from .image_processor import ImageProcessor
from .keyword_detector import DetectionOptions, KeywordDetector
from .photo_library import PhotoLibrary
from .photo_store import PhotoRecord

logger = logging.getLogger(__name__)


@dataclass
class UploadError:
    """A file that could not be added."""

    filename: str
    message: str


@dataclass
class UploadReport:
    """Result of uploading a batch of files."""

    added: list[PhotoRecord] = field(default_factory=list)
    errors: list[UploadError] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class PhotoUploader:
    """Uploads image files into the photo library."""

    def __init__(
        self,
        image_processor: ImageProcessor,
        detector: KeywordDetector,
        library: PhotoLibrary,
        vision_api_key: Optional[str] = None,
        api_type: str = "combined",
    ):
        """Initialize the uploader.

        Args:
            image_processor: Normalizes uploaded images.
            detector: Detects keywords for new photos.
            library: Receives the new photos.
            vision_api_key: Google Vision API key, if any.
            api_type: Default keyword source selection.
        """
        self.image_processor = image_processor
        self.detector = detector
        self.library = library
        self.vision_api_key = vision_api_key
        self.api_type = api_type

    @staticmethod
    def guess_mime_type(path: Path) -> Optional[str]:
        mime_type, _ = mimetypes.guess_type(path.name)
        return mime_type

    def is_image(self, path: Path) -> bool:
        mime_type = self.guess_mime_type(path)
        return bool(mime_type and mime_type.startswith("image/"))

    @staticmethod
    def notice_for(keywords: list[str], api_type: str) -> str:
        """Informational message about the outcome of keyword detection."""
        if not keywords:
            if api_type == "huggingface":
                return (
                    "Hugging Face API unavailable. Deploy the inference proxy "
                    "(mysight serve) to enable it."
                )
            return "No keywords detected. Add them manually for better search."

        preview = ", ".join(keywords[:5])
        more = "..." if len(keywords) > 5 else ""
        return f"Detected {len(keywords)} keywords: {preview}{more}"

    async def process_file(
        self,
        path: Path,
        auto_keywords: bool = True,
        api_type: Optional[str] = None,
    ) -> PhotoRecord:
        """Build a photo record from an image file without storing it.

        Raises:
            ImageTooLargeError: If the file or its encoded form is too large.
            ImageDecodeError: If the file is not a decodable image.
            OSError: If the file cannot be read.
        """
        api_type = api_type or self.api_type
        path = Path(path)

        self.image_processor.check_file_size(path.stat().st_size)
        raw = await asyncio.to_thread(path.read_bytes)

        image = await asyncio.to_thread(
            self.image_processor.normalize, raw, self.guess_mime_type(path)
        )

        keywords = []
        if auto_keywords:
            logger.info(f"Starting keyword detection for {path.name} ({api_type})")
            options = DetectionOptions.for_api_type(api_type, self.vision_api_key)
            keywords = await self.detector.detect(image, raw, options)

        return PhotoRecord.create(
            image,
            filename=path.name,
            keywords=keywords,
            auto_tagged=auto_keywords,
            original_size=len(raw),
        )

    async def upload(
        self,
        paths: Iterable[Path],
        auto_keywords: bool = True,
        api_type: Optional[str] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> UploadReport:
        """Upload image files one by one.

        Args:
            paths: Files to upload; non-image files are skipped.
            auto_keywords: Detect keywords automatically.
            api_type: Keyword source selection for this batch.
            on_progress: Called with (processed, total) after each file.

        Returns:
            UploadReport with added photos, per-file errors and notices.
        """
        api_type = api_type or self.api_type
        report = UploadReport()

        images = []
        for path in map(Path, paths):
            if self.is_image(path):
                images.append(path)
            else:
                report.skipped.append(path)
                logger.debug(f"Skipping non-image file: {path}")

        total = len(images)
        for processed, path in enumerate(images, start=1):
            try:
                photo = await self.process_file(path, auto_keywords, api_type)
                self.library.add(photo)
                report.added.append(photo)
                if auto_keywords:
                    report.notices.append(
                        f"{path.name}: {self.notice_for(list(photo.keywords), api_type)}"
                    )
            except CapacityExceededError as e:
                logger.error(f"Could not save {path.name}: {e}")
                report.errors.append(
                    UploadError(path.name, f"Could not save the photo, storage may be full. {e}")
                )
            except Exception as e:
                logger.error(f"Error processing file {path.name}: {e}")
                report.errors.append(UploadError(path.name, str(e) or "Unknown error"))

            if on_progress:
                on_progress(processed, total)

        logger.info(
            f"Upload complete: {len(report.added)} added, "
            f"{len(report.errors)} failed, {len(report.skipped)} skipped"
        )
        return report
