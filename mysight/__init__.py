"""MySight Photo Keyword Search

Stores uploaded photos in a size-capped local store, tags them with
keywords from EXIF metadata, Google Cloud Vision, a Hugging Face
inference proxy or local pixel heuristics, and searches them by keyword.
"""

__version__ = "1.0.0"
__author__ = "MySight"
