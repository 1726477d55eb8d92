import asyncio
from typing import Dict, List, Optional, Tuple

import pytest

from inspiration_cards.autosave import AutosaveEngine
from inspiration_cards.codec import Card, parse
from inspiration_cards.geometry import GeometryResolver, Viewport
from inspiration_cards.metadata import compose_card
from inspiration_cards.storage import StorageError
from inspiration_cards.store import CardStore


class FakeStorage:
    """In-memory document storage with per-document write gates."""

    def __init__(self, docs: Optional[Dict[str, str]] = None):
        self.docs: Dict[str, str] = dict(docs or {})
        self.writes: List[Tuple[str, str]] = []
        self.deleted: List[str] = []
        self.fail_writes = False
        self.fail_deletes = False
        self.gates: Dict[str, asyncio.Event] = {}

    def hold(self, identity: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[identity] = gate
        return gate

    async def read_text(self, identity: str) -> str:
        await asyncio.sleep(0)
        if identity not in self.docs:
            raise StorageError(f"missing {identity}")
        return self.docs[identity]

    async def write_text(self, identity: str, text: str) -> None:
        gate = self.gates.get(identity)
        if gate is not None:
            await gate.wait()
        await asyncio.sleep(0)
        if self.fail_writes:
            raise StorageError("disk full")
        self.writes.append((identity, text))
        self.docs[identity] = text

    async def create_text(self, path: str, text: str) -> str:
        await asyncio.sleep(0)
        if path in self.docs:
            raise StorageError(f"exists {path}")
        self.docs[path] = text
        return path

    async def delete_text(self, identity: str) -> None:
        await asyncio.sleep(0)
        if self.fail_deletes:
            raise StorageError("read-only")
        self.docs.pop(identity, None)
        self.deleted.append(identity)


def canonical_text(body: str = "", **patches) -> str:
    _, text = compose_card(Card(), body=body, **patches)
    return text


class Harness:
    def __init__(self, docs: Dict[str, str], debounce_seconds: float = 0.02):
        self.storage = FakeStorage(docs)
        self.store = CardStore()
        self.store.load(parse(text, identity=key) for key, text in docs.items())
        self.notices: List[str] = []
        self.geometry = GeometryResolver(Viewport(1920, 1080))
        self.engine = AutosaveEngine(
            store=self.store,
            storage=self.storage,
            geometry=self.geometry,
            notify=self.notices.append,
            debounce_seconds=debounce_seconds,
        )

    def written_bodies(self, identity: str) -> List[str]:
        return [parse(text).body for key, text in self.storage.writes if key == identity]


@pytest.fixture
def make_harness():
    return Harness
