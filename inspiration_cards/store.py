from __future__ import annotations

import dataclasses
import logging
import re
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from inspiration_cards.codec import Card

logger = logging.getLogger(__name__)

# whitespace, including the ideographic space
_QUERY_SPLIT = re.compile(r"[\s\u3000]+")


class SortMode(str, Enum):
    CTIME_ASC = "ctime-asc"
    CTIME_DESC = "ctime-desc"
    MTIME_ASC = "mtime-asc"
    MTIME_DESC = "mtime-desc"


class CardStore:
    """
    Identity -> Card map for one open collection.

    Cards are frozen; a patch swaps in a new Card object in one assignment,
    so readers never see a half-applied update.
    """

    def __init__(self) -> None:
        self._cards: Dict[str, Card] = {}

    def __len__(self) -> int:
        return len(self._cards)

    def __contains__(self, identity: object) -> bool:
        return identity in self._cards

    def load(self, cards: Iterable[Card]) -> None:
        self._cards = {card.identity: card for card in cards}
        logger.info("STORE LOADED: %d cards", len(self._cards))

    def insert(self, card: Card) -> None:
        self._cards[card.identity] = card

    def patch(self, identity: str, **fields) -> Optional[Card]:
        current = self._cards.get(identity)
        if current is None:
            logger.debug("PATCH IGNORED (unknown): %s", identity)
            return None
        updated = dataclasses.replace(current, **fields)
        self._cards[identity] = updated
        return updated

    def remove(self, identity: str) -> Optional[Card]:
        return self._cards.pop(identity, None)

    def clear(self) -> None:
        self._cards.clear()

    def get(self, identity: str) -> Optional[Card]:
        return self._cards.get(identity)

    def snapshot(self) -> Tuple[Card, ...]:
        return tuple(self._cards.values())

    def pinned_other_than(self, identity: str) -> Optional[Card]:
        for card in self._cards.values():
            if card.is_pinned and card.identity != identity:
                return card
        return None

    def listed(self) -> List[Card]:
        return [card for card in self._cards.values() if not card.is_floating]

    def floating(self) -> List[Card]:
        return [card for card in self._cards.values() if card.is_floating]

    @staticmethod
    def search(cards: Iterable[Card], query: str) -> List[Card]:
        """Every query token must appear in the body or the tags line."""
        tokens = [t for t in _QUERY_SPLIT.split(query.lower()) if t]
        cards = list(cards)
        if not tokens:
            return cards

        def matches(card: Card) -> bool:
            body = card.body.lower()
            tags = card.tags_line.lower()
            return all(t in body or t in tags for t in tokens)

        return [card for card in cards if matches(card)]

    @staticmethod
    def sorted(
        cards: Iterable[Card], mode: SortMode = SortMode.CTIME_DESC
    ) -> List[Card]:
        attr = "ctime" if mode in (SortMode.CTIME_ASC, SortMode.CTIME_DESC) else "mtime"
        descending = mode in (SortMode.CTIME_DESC, SortMode.MTIME_DESC)

        ordered = sorted(cards, key=lambda c: getattr(c, attr), reverse=descending)
        # stable: pinned first, time order kept inside each group
        return sorted(ordered, key=lambda c: not c.is_pinned)
