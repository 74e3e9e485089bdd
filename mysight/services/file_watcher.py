"""Upload Folder Watcher

Watches a folder for image files dropped into it and hands each one to
an upload callback once its copy has settled. A single worker thread
hands files over one at a time, so uploads never overlap.
"""

import logging
import time
from pathlib import Path
from threading import Event, Thread
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif", ".bmp"})

UploadCallback = Callable[[Path], None]


class ImageDropHandler(FileSystemEventHandler):
    """Collects dropped images and uploads them once they stop changing."""

    def __init__(
        self,
        upload: UploadCallback,
        extensions: Iterable[str] = IMAGE_EXTENSIONS,
        settle_seconds: float = 2.0,
    ):
        """Initialize the handler.

        Args:
            upload: Called with the path of every settled image.
            extensions: Lowercase file extensions treated as images.
            settle_seconds: Time without writes before a file is uploaded.
        """
        super().__init__()
        self.upload = upload
        self.extensions = frozenset(extensions)
        self.settle_seconds = settle_seconds
        self._settling: dict[str, float] = {}
        self._worker: Optional[Thread] = None
        self._stopped = Event()

    def accepts(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    def settled(self, now: Optional[float] = None) -> list[str]:
        """Remove and return the files that have not changed for a while."""
        now = time.time() if now is None else now
        done = [
            key for key, touched in list(self._settling.items())
            if now - touched >= self.settle_seconds
        ]
        for key in done:
            self._settling.pop(key, None)
        return done

    def upload_settled(self, now: Optional[float] = None) -> int:
        """Upload every settled file that still exists.

        A path is handed over once per creation event, so a new file
        reusing an old name is uploaded again.

        Returns:
            Number of files the upload callback accepted.
        """
        count = 0
        for key in self.settled(now):
            path = Path(key)
            if not path.exists():
                continue

            logger.info(f"Uploading dropped image: {path.name}")
            try:
                self.upload(path)
            except Exception as e:
                logger.error(f"Upload of {path.name} failed: {e}")
                continue
            count += 1
        return count

    def _run(self):
        while not self._stopped.wait(0.5):
            self.upload_settled()

    def on_created(self, event: FileSystemEvent):
        path = Path(event.src_path)
        if event.is_directory or not self.accepts(path):
            return
        logger.debug(f"Image dropped: {path}")
        self._settling[str(path)] = time.time()

    def on_modified(self, event: FileSystemEvent):
        key = str(Path(event.src_path))
        if not event.is_directory and key in self._settling:
            self._settling[key] = time.time()

    def start(self):
        self._stopped.clear()
        self._worker = Thread(target=self._run, name="mysight-upload", daemon=True)
        self._worker.start()

    def stop(self):
        self._stopped.set()
        if self._worker is not None:
            self._worker.join(timeout=5.0)
            self._worker = None


class FileWatcher:
    """Uploads images dropped into a folder."""

    def __init__(
        self,
        folder: Path,
        upload: UploadCallback,
        extensions: Iterable[str] = IMAGE_EXTENSIONS,
        recursive: bool = False,
        settle_seconds: float = 2.0,
    ):
        """Initialize the watcher.

        Args:
            folder: Folder to watch.
            upload: Called with the path of every new image.
            extensions: Lowercase file extensions treated as images.
            recursive: Also watch subfolders.
            settle_seconds: Time without writes before a file is uploaded.
        """
        self.folder = Path(folder)
        self.recursive = recursive
        self.handler = ImageDropHandler(upload, extensions, settle_seconds)
        self._observer: Optional[Observer] = None

    def start(self):
        """Start watching the folder."""
        if self.is_running():
            logger.warning(f"Already watching {self.folder}")
            return
        if not self.folder.is_dir():
            raise FileNotFoundError(f"Folder to watch does not exist: {self.folder}")

        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.folder), recursive=self.recursive)
        self.handler.start()
        self._observer.start()
        logger.info(f"Watching {self.folder} for new images")

    def stop(self):
        """Stop watching the folder."""
        if not self.is_running():
            return
        self._observer.stop()
        self.handler.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
        logger.info(f"Stopped watching {self.folder}")

    def is_running(self) -> bool:
        return self._observer is not None

    def scan_existing(self) -> list[Path]:
        """Images already in the folder, sorted by path."""
        if not self.folder.is_dir():
            return []
        candidates = self.folder.rglob("*") if self.recursive else self.folder.iterdir()
        return sorted(p for p in candidates if p.is_file() and self.handler.accepts(p))
