#!/usr/bin/env python3
"""MySight - Main Application

A personal photo library with automatic keyword tagging. Photos are
normalized, tagged from their metadata and from image recognition
services, stored locally and found again by keyword search.

Usage:
    mysight [--config CONFIG] [--debug] COMMAND ...

Commands:
    upload PATHS       Add image files (or folders of images)
    search QUERY       Find photos by keyword
    list               List all photos
    tag ID KEYWORDS    Replace the keywords of a photo
    delete ID          Remove a photo
    serve              Run the inference proxy server
    watch FOLDER       Add new images dropped into a folder
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Iterable

from .errors import MySightError, PhotoNotFoundError
from .services import (
    ExifKeywordSource,
    FileWatcher,
    HuggingFaceService,
    ImageHeuristics,
    ImageProcessor,
    KeywordDetector,
    LocalStorage,
    PhotoLibrary,
    PhotoRecord,
    PhotoStore,
    PhotoUploader,
    TranslationService,
    UploadReport,
    VisionService,
    parse_keywords,
)
from .services.keyword_detector import API_TYPES
from .utils import Config, setup_logging

logger = logging.getLogger(__name__)


class MySight:
    """Main application orchestrator."""

    def __init__(self, config: Config):
        """Initialize the application.

        Args:
            config: Configuration instance.
        """
        self.config = config
        self._init_services()

    def _init_services(self):
        """Initialize all services."""
        self.storage = LocalStorage(
            self.config.storage_dir,
            quota_bytes=self.config.storage_quota_bytes,
        )
        self.store = PhotoStore(
            self.storage,
            key=self.config.storage_key,
            max_bytes=self.config.storage_max_bytes,
        )
        self.library = PhotoLibrary(self.store)

        self.image_processor = ImageProcessor(
            max_file_size=self.config.max_file_size,
            max_width=self.config.max_width,
            max_height=self.config.max_height,
            passthrough_size=self.config.passthrough_size,
            max_encoded_size=self.config.max_encoded_size,
            quality=self.config.jpeg_quality,
        )

        self.translation_service = TranslationService(
            use_deepl=self.config.use_deepl,
            api_key=self.config.deepl_api_key,
            target_lang=self.config.deepl_target_lang,
        )

        self.huggingface_service = HuggingFaceService(
            proxy_url=self.config.huggingface_proxy_url,
            models=self.config.huggingface_models,
            translator=self.translation_service,
            fallback=ImageHeuristics(),
            origin=self.config.huggingface_origin,
            warmup_backoff=self.config.huggingface_warmup_backoff,
            timeout=self.config.huggingface_timeout,
        )

        self.detector = KeywordDetector(
            inference=self.huggingface_service,
            exif=ExifKeywordSource(),
            vision_factory=self._create_vision_service,
        )

        self.uploader = PhotoUploader(
            image_processor=self.image_processor,
            detector=self.detector,
            library=self.library,
            vision_api_key=self.config.google_vision_api_key,
            api_type=self.config.api_type,
        )

        loaded = self.library.load()
        logger.debug(f"Library loaded with {loaded} photos")

    def _create_vision_service(self, api_key: str) -> VisionService:
        return VisionService(
            api_key=api_key,
            min_confidence=self.config.vision_min_confidence,
        )

    def upload(self, paths: Iterable[Path], auto_keywords: bool, api_type: str) -> UploadReport:
        def on_progress(processed: int, total: int):
            logger.info(f"Processing {processed} of {total}")

        return asyncio.run(
            self.uploader.upload(
                expand_paths(paths),
                auto_keywords=auto_keywords,
                api_type=api_type,
                on_progress=on_progress,
            )
        )

    def watch(self, folder: Path, auto_keywords: bool, api_type: str, scan: bool = False):
        """Upload images dropped into ``folder`` until interrupted."""

        def on_new_photo(path: Path):
            report = self.upload([path], auto_keywords, api_type)
            print_report(report)

        watcher = FileWatcher(folder, upload=on_new_photo)

        if scan:
            existing = watcher.scan_existing()
            logger.info(f"Found {len(existing)} existing photos in {folder}")
            if existing:
                print_report(self.upload(existing, auto_keywords, api_type))

        watcher.start()

        def signal_handler(signum, frame):
            logger.info(f"Received signal {signum}, shutting down...")
            watcher.stop()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            watcher.stop()


def expand_paths(paths: Iterable[Path]) -> list[Path]:
    """Replace folders by the files they contain."""
    expanded = []
    for path in map(Path, paths):
        if path.is_dir():
            expanded.extend(sorted(p for p in path.iterdir() if p.is_file()))
        else:
            expanded.append(path)
    return expanded


def format_photo(photo: PhotoRecord, highlight: Iterable[str] = ()) -> str:
    highlight = set(highlight)
    keywords = ", ".join(f"[{k}]" if k in highlight else k for k in photo.keywords)
    added = photo.added_at.strftime("%Y-%m-%d %H:%M")
    return f"{photo.id}  {added}  {photo.filename}\n    {keywords or '(no keywords)'}"


def print_report(report: UploadReport):
    for notice in report.notices:
        print(notice)
    if report.added:
        print(f"Added {len(report.added)} photo(s)")
    if report.errors:
        print("Errors:", file=sys.stderr)
        for error in report.errors:
            print(f"  {error.filename}: {error.message}", file=sys.stderr)


def cmd_upload(app: MySight, args) -> int:
    api_type = args.api or app.config.api_type
    auto_keywords = app.config.auto_keywords and not args.manual
    report = app.upload(args.paths, auto_keywords, api_type)
    print_report(report)
    if report.skipped:
        print(f"Skipped {len(report.skipped)} non-image file(s)")
    return 0 if report.success else 1


def cmd_search(app: MySight, args) -> int:
    result = app.library.search(" ".join(args.query))
    if not result.has_query:
        print("Enter a keyword to search for")
        return 0

    if not result.matches:
        print("No photos found")
        return 0

    print(f"Found {len(result.matches)} photo(s)")
    for photo in result.matches:
        print(format_photo(photo, result.matched_keywords(photo)))
    return 0


def cmd_list(app: MySight, args) -> int:
    if not len(app.library):
        print("No photos yet")
        return 0

    for photo in app.library:
        print(format_photo(photo))
    print(f"\n{len(app.library)} photo(s), {app.storage.usage() / 1024:.1f} KB stored")
    return 0


def cmd_tag(app: MySight, args) -> int:
    photo = app.library.update_keywords(args.id, parse_keywords(args.keywords))
    print(format_photo(photo))
    return 0


def cmd_delete(app: MySight, args) -> int:
    photo = app.library.delete(args.id)
    print(f"Deleted {photo.filename}")
    return 0


def cmd_serve(config: Config, args) -> int:
    import uvicorn

    from .proxy import create_app

    host = args.host or config.proxy_host
    port = args.port or config.proxy_port
    if not config.hf_token:
        logger.warning("HF_TOKEN is not set, inference requests will be refused")

    uvicorn.run(create_app(config), host=host, port=port)
    return 0


def cmd_watch(app: MySight, args) -> int:
    api_type = args.api or app.config.api_type
    app.watch(args.folder, app.config.auto_keywords and not args.manual, api_type, args.scan)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mysight",
        description="MySight photo library",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    upload = subparsers.add_parser("upload", help="Add image files")
    upload.add_argument("paths", type=Path, nargs="+", help="Image files or folders")
    upload.add_argument("--manual", action="store_true", help="Skip automatic keywords")
    upload.add_argument("--api", choices=API_TYPES, help="Keyword source selection")

    search = subparsers.add_parser("search", help="Find photos by keyword")
    search.add_argument("query", nargs="*", help="Search terms")

    subparsers.add_parser("list", help="List all photos")

    tag = subparsers.add_parser("tag", help="Replace the keywords of a photo")
    tag.add_argument("id", help="Photo id")
    tag.add_argument("keywords", help="Comma-separated keywords")

    delete = subparsers.add_parser("delete", help="Remove a photo")
    delete.add_argument("id", help="Photo id")

    serve = subparsers.add_parser("serve", help="Run the inference proxy server")
    serve.add_argument("--host", help="Bind address")
    serve.add_argument("--port", type=int, help="Bind port")

    watch = subparsers.add_parser("watch", help="Add new images dropped into a folder")
    watch.add_argument("folder", type=Path, help="Folder to watch")
    watch.add_argument("--scan", action="store_true", help="Upload images already present")
    watch.add_argument("--manual", action="store_true", help="Skip automatic keywords")
    watch.add_argument("--api", choices=API_TYPES, help="Keyword source selection")

    return parser


COMMANDS = {
    "upload": cmd_upload,
    "search": cmd_search,
    "list": cmd_list,
    "tag": cmd_tag,
    "delete": cmd_delete,
    "watch": cmd_watch,
}


def main(argv=None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Load configuration
    config = Config(args.config)

    # Set up logging
    log_level = "DEBUG" if args.debug or config.debug else config.log_level
    setup_logging(level=log_level, log_file=config.log_file)

    if args.command == "serve":
        return cmd_serve(config, args)

    try:
        app = MySight(config)
        return COMMANDS[args.command](app, args)
    except PhotoNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1
    except MySightError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
