"""Image Processing Service

Normalizes uploaded images before they are stored: enforces the raw
size ceiling, downsamples oversized images into a bounding box and
re-encodes them so the encoded payload fits the storage budget.
"""

import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ExifTags, UnidentifiedImageError

from ..errors import ImageDecodeError, ImageTooLargeError

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


@dataclass(frozen=True)
class EncodedImage:
    """An image serialized as mime type + bytes, rendered as a data URL."""

    mime_type: str
    data: bytes

    @property
    def payload(self) -> str:
        """Base64 text without the data-URI prefix."""
        return base64.b64encode(self.data).decode("ascii")

    @property
    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.payload}"

    @property
    def estimated_size(self) -> float:
        """Decoded size estimated from the data URL length (base64 adds ~33%)."""
        return len(self.data_url) * 3 / 4

    @classmethod
    def from_data_url(cls, data_url: str) -> "EncodedImage":
        """Parse a ``data:<mime>;base64,<payload>`` string.

        Raises:
            ValueError: If the string is not a base64 data URL.
        """
        header, sep, payload = data_url.partition(",")
        if not sep or not header.startswith("data:") or not header.endswith(";base64"):
            raise ValueError("Not a base64 data URL")

        mime_type = header[len("data:"):-len(";base64")] or "application/octet-stream"
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}") from e
        return cls(mime_type=mime_type, data=data)

    def open(self) -> Image.Image:
        """Decode the payload with Pillow."""
        return Image.open(io.BytesIO(self.data))


class ImageProcessor:
    """Normalizes images to fit the storage budget."""

    OUTPUT_FORMATS = {
        "image/jpeg": "JPEG",
        "image/jpg": "JPEG",
        "image/pjpeg": "JPEG",
        "image/png": "PNG",
        "image/webp": "WEBP",
    }
    DEFAULT_MIME = "image/jpeg"

    ORIENTATION_OPERATIONS = {
        2: (Image.Transpose.FLIP_LEFT_RIGHT,),
        3: (Image.Transpose.ROTATE_180,),
        4: (Image.Transpose.FLIP_TOP_BOTTOM,),
        5: (Image.Transpose.FLIP_LEFT_RIGHT, Image.Transpose.ROTATE_90),
        6: (Image.Transpose.ROTATE_270,),
        7: (Image.Transpose.FLIP_LEFT_RIGHT, Image.Transpose.ROTATE_270),
        8: (Image.Transpose.ROTATE_90,),
    }

    def __init__(
        self,
        max_file_size: int = 5 * MIB,
        max_width: int = 1920,
        max_height: int = 1920,
        passthrough_size: int = 2 * MIB,
        max_encoded_size: int = 4 * MIB,
        quality: int = 85,
    ):
        """Initialize the image processor.

        Args:
            max_file_size: Raw upload ceiling in bytes.
            max_width: Bounding box width in pixels.
            max_height: Bounding box height in pixels.
            passthrough_size: Images inside the box and below this encoded
                size are returned untouched.
            max_encoded_size: Encoded ceiling every returned image stays under.
            quality: Re-encoding quality (1-100).
        """
        self.max_file_size = max_file_size
        self.max_width = max_width
        self.max_height = max_height
        self.passthrough_size = passthrough_size
        self.max_encoded_size = max_encoded_size
        self.quality = quality

    def check_file_size(self, size: int) -> None:
        """Reject raw uploads above the ceiling.

        Raises:
            ImageTooLargeError: If ``size`` exceeds the raw ceiling.
        """
        if size > self.max_file_size:
            raise ImageTooLargeError(
                f"File is too large ({size / MIB:.2f}MB). "
                f"Maximum size: {self.max_file_size / MIB:.0f}MB",
                size=size,
                limit=self.max_file_size,
            )

    def _calculate_new_size(self, width: int, height: int) -> Tuple[int, int]:
        """Calculate dimensions that fit the bounding box, keeping aspect ratio.

        Never upscales. Fractional sizes are truncated.

        Args:
            width: Original width.
            height: Original height.

        Returns:
            Tuple of (new_width, new_height).
        """
        if width <= self.max_width and height <= self.max_height:
            return width, height

        # Compare max_width / width against max_height / height without floats
        if self.max_width * height <= self.max_height * width:
            return self.max_width, max(1, height * self.max_width // width)
        return max(1, width * self.max_height // height), self.max_height

    def _output_format(self, mime_type: Optional[str]) -> Tuple[str, str]:
        """Map a mime type to (output mime type, Pillow format)."""
        if mime_type and mime_type.lower() in self.OUTPUT_FORMATS:
            return mime_type.lower(), self.OUTPUT_FORMATS[mime_type.lower()]
        return self.DEFAULT_MIME, self.OUTPUT_FORMATS[self.DEFAULT_MIME]

    def _get_exif_orientation(self, image: Image.Image) -> Optional[int]:
        """Get EXIF orientation value from image.

        Args:
            image: PIL Image object.

        Returns:
            EXIF orientation value or None.
        """
        try:
            return image.getexif().get(ExifTags.Base.Orientation)
        except (AttributeError, KeyError, IndexError, OSError):
            return None

    def _apply_exif_orientation(self, image: Image.Image) -> Image.Image:
        """Apply EXIF orientation to image.

        Args:
            image: PIL Image object.

        Returns:
            Correctly oriented image.
        """
        orientation = self._get_exif_orientation(image)
        for op in self.ORIENTATION_OPERATIONS.get(orientation, ()):
            image = image.transpose(op)
        return image

    def _decode(self, raw: bytes) -> Image.Image:
        try:
            image = Image.open(io.BytesIO(raw))
            image.load()
        except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
            raise ImageDecodeError(f"Failed to load image: {e}") from e
        return image

    def normalize(self, raw: bytes, mime_type: Optional[str] = None) -> EncodedImage:
        """Normalize an uploaded image to fit the storage budget.

        Args:
            raw: Uploaded file bytes.
            mime_type: Mime type reported for the upload.

        Returns:
            The original image when it already fits, otherwise a
            downsampled and re-encoded copy.

        Raises:
            ImageTooLargeError: If the raw or re-encoded size is over the ceiling.
            ImageDecodeError: If the bytes are not a decodable image.
        """
        self.check_file_size(len(raw))

        image = self._decode(raw)
        source_mime = mime_type or Image.MIME.get(image.format or "", self.DEFAULT_MIME)
        source = EncodedImage(mime_type=source_mime, data=raw)

        image = self._apply_exif_orientation(image)
        width, height = image.size

        if (
            width <= self.max_width
            and height <= self.max_height
            and source.estimated_size < self.passthrough_size
            and source.estimated_size <= self.max_encoded_size
        ):
            return source

        new_width, new_height = self._calculate_new_size(width, height)
        out_mime, out_format = self._output_format(mime_type)

        if out_format == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        elif image.mode not in ("RGB", "RGBA", "L", "LA"):
            image = image.convert("RGBA")

        if (new_width, new_height) != (width, height):
            image = image.resize((new_width, new_height), Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        save_kwargs = {"quality": self.quality}
        if out_format == "JPEG":
            save_kwargs["optimize"] = True
        image.save(buffer, out_format, **save_kwargs)

        result = EncodedImage(mime_type=out_mime, data=buffer.getvalue())
        logger.info(
            f"Recompressed image ({width}x{height} -> {new_width}x{new_height}, "
            f"{len(raw)} -> {len(result.data)} bytes)"
        )

        if result.estimated_size > self.max_encoded_size:
            raise ImageTooLargeError(
                "Image is too large even after compression. Try reducing the resolution.",
                size=result.estimated_size,
                limit=self.max_encoded_size,
            )

        return result
