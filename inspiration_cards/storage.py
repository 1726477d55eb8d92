from __future__ import annotations

import asyncio
import logging
import os
import random
import shutil
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Protocol

logger = logging.getLogger(__name__)

CARD_EXTENSION = ".md"
TRASH_DIR = ".trash"
NAME_PREFIX = "idea"


class StorageError(Exception):
    """A read/write/create/delete against the document storage failed."""


@dataclass(frozen=True)
class StoredDocument:
    identity: str
    text: str
    ctime: float
    mtime: float


class CardStorage(Protocol):
    async def read_text(self, identity: str) -> str: ...

    async def write_text(self, identity: str, text: str) -> None: ...

    async def create_text(self, path: str, text: str) -> str: ...

    async def delete_text(self, identity: str) -> None: ...


def _is_hidden(root: str, path: str) -> bool:
    rel = os.path.relpath(path, root)
    return any(part.startswith(".") for part in rel.split(os.sep))


class FolderStorage:
    """
    One collection = one folder of markdown documents.

    - identity: absolute file path
    - on_write: called with the path right before the daemon touches a file,
      so the watcher can skip the echo event
    """

    def __init__(self, root: str, on_write: Optional[Callable[[str], None]] = None):
        self.root = os.path.abspath(os.path.expanduser(root))
        self.on_write = on_write

    # ---------------- sync helpers (run in worker threads) ----------------

    def _mark(self, path: str) -> None:
        if self.on_write is not None:
            self.on_write(path)

    def _read(self, identity: str) -> str:
        try:
            with open(identity, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read {identity}: {e}") from e

    def _write(self, identity: str, text: str) -> None:
        try:
            self._mark(identity)
            with open(identity, "w", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            raise StorageError(f"Failed to write {identity}: {e}") from e

    def _create(self, path: str, text: str) -> str:
        path = os.path.abspath(path)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            self._mark(path)
            with open(path, "x", encoding="utf-8") as f:
                f.write(text)
        except OSError as e:
            raise StorageError(f"Failed to create {path}: {e}") from e
        return path

    def _delete(self, identity: str) -> None:
        trash_dir = os.path.join(self.root, TRASH_DIR)
        target = os.path.join(trash_dir, os.path.basename(identity))
        idx = 2
        while os.path.exists(target):
            base, ext = os.path.splitext(os.path.basename(identity))
            target = os.path.join(trash_dir, f"{base}-{idx}{ext}")
            idx += 1

        try:
            os.makedirs(trash_dir, exist_ok=True)
            self._mark(identity)
            shutil.move(identity, target)
        except OSError as e:
            raise StorageError(f"Failed to delete {identity}: {e}") from e
        logger.info("TRASHED: %s -> %s", identity, target)

    def stat_times(self, identity: str) -> tuple[float, float]:
        try:
            st = os.stat(identity)
        except OSError:
            return 0.0, 0.0
        ctime = getattr(st, "st_birthtime", None) or st.st_ctime
        return float(ctime), float(st.st_mtime)

    def is_card_path(self, path: str) -> bool:
        path = os.path.abspath(path)
        if not path.endswith(CARD_EXTENSION):
            return False
        try:
            inside = os.path.commonpath([path, self.root]) == self.root
        except ValueError:
            inside = False
        return inside and not _is_hidden(self.root, path)

    def _list(self) -> List[StoredDocument]:
        documents: List[StoredDocument] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                path = os.path.join(dirpath, name)
                if not self.is_card_path(path):
                    continue
                try:
                    text = self._read(path)
                except StorageError as e:
                    logger.error("%s", e)
                    continue
                ctime, mtime = self.stat_times(path)
                documents.append(StoredDocument(path, text, ctime, mtime))
        return documents

    # ---------------- async collaborator interface ----------------

    async def read_text(self, identity: str) -> str:
        return await asyncio.to_thread(self._read, identity)

    async def write_text(self, identity: str, text: str) -> None:
        await asyncio.to_thread(self._write, identity, text)

    async def create_text(self, path: str, text: str) -> str:
        return await asyncio.to_thread(self._create, path, text)

    async def delete_text(self, identity: str) -> None:
        await asyncio.to_thread(self._delete, identity)

    async def list_documents(self) -> List[StoredDocument]:
        return await asyncio.to_thread(self._list)

    # ---------------- naming ----------------

    def unique_path(self, when: Optional[datetime] = None) -> str:
        when = when or datetime.now()
        short_id = "".join(
            random.choices(string.ascii_uppercase + string.digits, k=4)
        )
        base = f"{NAME_PREFIX}-{when.strftime('%Y%m%d-%H%M')}-{short_id}"

        candidate = os.path.join(self.root, base + CARD_EXTENSION)
        idx = 2
        while os.path.exists(candidate):
            candidate = os.path.join(self.root, f"{base}-{idx}{CARD_EXTENSION}")
            idx += 1
        return candidate
