from __future__ import annotations

import logging
import random
import time
from typing import Callable, List, Optional, Tuple

from inspiration_cards.autosave import (
    DEFAULT_DEBOUNCE_SECONDS,
    AutosaveEngine,
    SaveOutcome,
)
from inspiration_cards.codec import Card, compose, parse
from inspiration_cards.geometry import (
    Geometry,
    GeometryResolver,
    Viewport,
    centered_geometry,
)
from inspiration_cards.lib import notify_throttled
from inspiration_cards.metadata import build_metadata, serialize_metadata
from inspiration_cards.storage import FolderStorage, StorageError
from inspiration_cards.store import CardStore, SortMode

logger = logging.getLogger(__name__)

CARD_COLORS = (
    "#4A86E9",
    "#7B61FF",
    "#47B881",
    "#F6C445",
    "#F59E0B",
    "#F05D6C",
    "#9CA3AF",
)


def pick_card_color() -> str:
    return random.choice(CARD_COLORS)


class CardCollection:
    """
    One open folder of cards: storage + store + autosave + geometry.

    Lifecycle: open() loads every document, close() flushes and clears.
    """

    def __init__(
        self,
        storage: FolderStorage,
        notify: Callable[[str], None] = notify_throttled,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        viewport: Viewport = Viewport(1920, 1080),
        normalize: bool = False,
    ):
        self.storage = storage
        self.notify = notify
        self.normalize = normalize
        self.store = CardStore()
        self.geometry = GeometryResolver(viewport)
        self.engine = AutosaveEngine(
            store=self.store,
            storage=storage,
            geometry=self.geometry,
            notify=notify,
            debounce_seconds=debounce_seconds,
        )

    # ---------------- lifecycle ----------------

    async def open(self) -> None:
        documents = await self.storage.list_documents()
        self.store.load(
            parse(doc.text, identity=doc.identity, ctime=doc.ctime, mtime=doc.mtime)
            for doc in documents
        )
        logger.info("OPENED: %s (%d cards)", self.storage.root, len(self.store))

        if self.normalize:
            for card in self.store.snapshot():
                self.engine.flush_save(card.identity)
            await self.engine.drain()

    async def close(self) -> None:
        await self.engine.close()
        self.store.clear()
        self.geometry.clear()
        logger.info("CLOSED: %s", self.storage.root)

    # ---------------- creation ----------------

    async def create_card(
        self, floating_geometry: Optional[Geometry] = None
    ) -> Optional[Card]:
        record = build_metadata(
            {},
            pinned=False,
            color=pick_card_color(),
            floating=floating_geometry is not None,
            geometry=floating_geometry,
        )
        text = compose(None, serialize_metadata(record), "")
        path = self.storage.unique_path()

        try:
            identity = await self.storage.create_text(path, text)
        except StorageError as e:
            logger.error("CREATE FAILED: %s: %s", path, e)
            self.notify("Failed to create card, please retry")
            return None

        now = time.time()
        card = parse(text, identity=identity, ctime=now, mtime=now)
        self.store.insert(card)
        if card.geometry is not None:
            self.geometry.remember(identity, card.geometry)
        logger.info("CREATED: %s", identity)
        return card

    async def create_centered_floating_card(self) -> Optional[Card]:
        return await self.create_card(
            floating_geometry=centered_geometry(self.geometry.viewport)
        )

    # ---------------- external changes ----------------

    async def reload(self, identity: str) -> Optional[Card]:
        """Re-read a document changed outside the engine."""
        try:
            text = await self.storage.read_text(identity)
        except StorageError as e:
            logger.error("%s", e)
            return None

        if self.engine.baseline(identity) == text:
            logger.debug("RELOAD SKIPPED (own write): %s", identity)
            return self.store.get(identity)

        ctime, mtime = self.storage.stat_times(identity)
        card = parse(text, identity=identity, ctime=ctime, mtime=mtime)
        self.store.insert(card)
        self.engine.rebase(identity)
        logger.info("RELOADED: %s", identity)

        if self.normalize:
            outcome = await self.engine.flush_save(identity)
            if outcome is SaveOutcome.WRITTEN:
                logger.info("NORMALIZED: %s", identity)
        return self.store.get(identity)

    def handle_removed(self, identity: str) -> None:
        if self.store.remove(identity) is None:
            return
        self.engine.forget(identity)
        self.geometry.forget(identity)
        logger.info("REMOVED: %s", identity)

    # ---------------- views ----------------

    def visible_cards(
        self, query: str = "", mode: SortMode = SortMode.CTIME_DESC
    ) -> List[Card]:
        return CardStore.sorted(CardStore.search(self.store.listed(), query), mode)

    def materialize_floating(
        self,
        mode: SortMode = SortMode.CTIME_DESC,
        anchor_left: float = 24,
        anchor_top: float = 84,
    ) -> List[Tuple[Card, Geometry]]:
        panels: List[Tuple[Card, Geometry]] = []
        for index, card in enumerate(CardStore.sorted(self.store.floating(), mode)):
            geometry = self.geometry.materialize(
                card.identity,
                card.geometry,
                index=index,
                anchor_left=anchor_left,
                anchor_top=anchor_top,
            )
            panels.append((card, geometry))
        return panels
