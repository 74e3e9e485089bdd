"""Services module for MySight."""

from .image_processor import EncodedImage, ImageProcessor
from .local_storage import LocalStorage
from .photo_store import PhotoRecord, PhotoStore
from .photo_library import PhotoLibrary, parse_keywords
from .search import NO_QUERY, SearchResult, search_photos
from .keyword_source import KeywordSource
from .exif_keywords import ExifKeywordSource
from .vision_service import VisionService
from .translation_service import TranslationService
from .huggingface_service import HuggingFaceService
from .image_heuristics import ImageHeuristics
from .keyword_detector import DetectionOptions, KeywordDetector
from .upload_processor import PhotoUploader, UploadReport
from .file_watcher import FileWatcher

__all__ = [
    "EncodedImage",
    "ImageProcessor",
    "LocalStorage",
    "PhotoRecord",
    "PhotoStore",
    "PhotoLibrary",
    "parse_keywords",
    "NO_QUERY",
    "SearchResult",
    "search_photos",
    "KeywordSource",
    "ExifKeywordSource",
    "VisionService",
    "TranslationService",
    "HuggingFaceService",
    "ImageHeuristics",
    "DetectionOptions",
    "KeywordDetector",
    "PhotoUploader",
    "UploadReport",
    "FileWatcher",
]
