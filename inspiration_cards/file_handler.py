import asyncio
import logging
import os
import threading
from typing import Dict

from watchdog.events import FileSystemEventHandler

from inspiration_cards.collection import CardCollection

logger = logging.getLogger(__name__)


class FileHandler(FileSystemEventHandler):
    """
    Watchdog handler for one collection folder.

    Runs on the observer thread; the actual work is handed to the asyncio
    loop that owns the collection.
    """

    def __init__(self, collection: CardCollection, loop: asyncio.AbstractEventLoop):
        self.collection = collection
        self.loop = loop
        self._ignore_paths: Dict[str, int] = {}
        self._ignore_lock = threading.Lock()

    def _process_file(self, event):
        if event.is_directory or os.path.basename(event.src_path).startswith("."):
            return

        file_path = event.dest_path if event.event_type == "moved" else event.src_path
        file_path = self._abs(file_path)

        if any(part == ".git" for part in file_path.split(os.sep)):
            return

        if event.event_type == "moved":
            if self._check_and_delete_ignore(
                event.src_path
            ) or self._check_and_delete_ignore(event.dest_path):
                return
            logger.info(f"EVENT: Moved: {event.src_path} → {event.dest_path}")
            self._submit_removed(self._abs(event.src_path))
            if self.collection.storage.is_card_path(file_path):
                self._submit_reload(file_path)
            return

        if not self.collection.storage.is_card_path(file_path):
            return

        if self._check_and_delete_ignore(file_path):
            return
        logger.info(f"EVENT: {str(event.event_type).capitalize()}: {event.src_path}")

        if event.event_type == "deleted":
            self._submit_removed(file_path)
        else:
            self._submit_reload(file_path)

    def _submit_reload(self, path: str) -> None:
        future = asyncio.run_coroutine_threadsafe(
            self.collection.reload(path), self.loop
        )
        future.add_done_callback(self._log_failure)

    def _submit_removed(self, path: str) -> None:
        self.loop.call_soon_threadsafe(self.collection.handle_removed, path)

    @staticmethod
    def _log_failure(future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Event processing failed: %r", error)

    def mark_to_ignore(self, path: str, count: int = 1) -> None:
        new_count = self._bump_ignore(path, count)
        logger.debug("MARKED TO IGNORE: %s (count=%d)", self._abs(path), new_count)

    def _check_and_delete_ignore(self, input_path: str) -> bool:
        with self._ignore_lock:
            cur = self._ignore_paths.get(self._abs(input_path), 0)
        if cur <= 0:
            return False

        remaining = self._bump_ignore(input_path, -1)
        logger.debug("IGNORED: %s (remaining=%d)", self._abs(input_path), remaining)
        return True

    def _bump_ignore(self, path: str, delta: int) -> int:
        abs_path = self._abs(path)
        with self._ignore_lock:
            cur = self._ignore_paths.get(abs_path, 0)
            new = cur + int(delta)

            if new <= 0:
                self._ignore_paths.pop(abs_path, None)
                return 0

            self._ignore_paths[abs_path] = new
            return new

    def _abs(self, p) -> str:
        if isinstance(p, bytes):
            p = p.decode(errors="surrogateescape")
        return os.path.abspath(p)

    def on_modified(self, event):
        self._process_file(event=event)

    def on_created(self, event):
        self._process_file(event=event)

    def on_moved(self, event):
        self._process_file(event=event)

    def on_deleted(self, event):
        self._process_file(event=event)
