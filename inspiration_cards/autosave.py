"""
Per-card autosave: debounce + serialized write chain.

Every card gets its own chain. A job appended to a chain starts only after
the previous job of the same card has finished (success or reported
failure). Different cards never wait on each other.

Body/tags/images edits are debounced and coalesced; structural operations
(color, pin, floating, geometry, delete) skip the debounce but still go
through the chain.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from inspiration_cards.codec import Card, compose, parse
from inspiration_cards.geometry import Geometry, GeometryResolver, normalize_geometry
from inspiration_cards.lib import notify_throttled
from inspiration_cards.metadata import UNSET, compose_card
from inspiration_cards.storage import CardStorage, StorageError
from inspiration_cards.store import CardStore
from inspiration_cards.tokens import MAX_IMAGES, normalize_tag_line

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.3

_CONTENT_FIELDS = tuple(
    f.name for f in dataclasses.fields(Card) if f.name not in ("identity", "ctime")
)


class SaveOutcome(str, Enum):
    WRITTEN = "written"
    UNCHANGED = "unchanged"
    SUPERSEDED = "superseded"
    MISSING = "missing"
    FAILED = "failed"
    CONFLICT = "conflict"
    DELETED = "deleted"


@dataclass
class Draft:
    """Live values of the editing surface (not yet confirmed by storage)."""

    body: str
    tags_line: str
    images: List[str] = field(default_factory=list)
    tag_editor_focused: bool = False


@dataclass
class _CardState:
    draft: Draft
    baseline: str
    request_id: int = 0
    timer: Optional[asyncio.TimerHandle] = None
    tail: Optional[asyncio.Task] = None


def _baseline_of(card: Card) -> str:
    return compose(card.frontmatter_body, card.metadata_body, card.body)


def _differs(draft: Draft, committed: Draft) -> bool:
    return (
        draft.body.strip("\n") != committed.body.strip("\n")
        or normalize_tag_line(draft.tags_line) != committed.tags_line
        or list(draft.images) != list(committed.images)
    )


class AutosaveEngine:
    def __init__(
        self,
        store: CardStore,
        storage: CardStorage,
        geometry: GeometryResolver,
        notify: Callable[[str], None] = notify_throttled,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ):
        self.store = store
        self.storage = storage
        self.geometry = geometry
        self.notify = notify
        self.debounce_seconds = float(debounce_seconds)
        self._states: Dict[str, _CardState] = {}
        self._running: Set[asyncio.Task] = set()
        self._pin_claim: Optional[str] = None

    # ---------------- state ----------------

    def _state(self, identity: str) -> Optional[_CardState]:
        state = self._states.get(identity)
        if state is not None:
            return state

        card = self.store.get(identity)
        if card is None:
            return None

        state = _CardState(
            draft=Draft(
                body=card.body, tags_line=card.tags_line, images=list(card.images)
            ),
            baseline=_baseline_of(card),
        )
        self._states[identity] = state
        return state

    def draft(self, identity: str) -> Optional[Draft]:
        state = self._state(identity)
        return state.draft if state else None

    def baseline(self, identity: str) -> Optional[str]:
        state = self._states.get(identity)
        if state is not None:
            return state.baseline
        card = self.store.get(identity)
        return _baseline_of(card) if card else None

    def rebase(self, identity: str) -> None:
        """Drop draft + baseline after the document changed outside the engine."""
        state = self._states.pop(identity, None)
        if state is None:
            return
        unsaved = state.timer is not None
        self._cancel_timer(state)
        fresh = self._state(identity)
        if unsaved and fresh is not None and _differs(state.draft, fresh.draft):
            logger.warning("UNSAVED EDIT DISCARDED (changed on disk): %s", identity)
            self.notify("Card changed on disk, unsaved edits were discarded")
        if fresh is not None:
            # keep the chain so in-flight jobs stay ordered
            fresh.tail = state.tail
            fresh.request_id = state.request_id

    def forget(self, identity: str) -> None:
        state = self._states.pop(identity, None)
        if state is not None:
            self._cancel_timer(state)

    # ---------------- chain ----------------

    @staticmethod
    async def _run_after(
        previous: Optional[asyncio.Task],
        job: Callable[[], Awaitable[SaveOutcome]],
    ) -> SaveOutcome:
        if previous is not None and not previous.done():
            # wait without re-raising: its owner gets its result/error
            await asyncio.wait([previous])
        return await job()

    def _enqueue(
        self, state: _CardState, job: Callable[[], Awaitable[SaveOutcome]]
    ) -> "asyncio.Task[SaveOutcome]":
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_after(state.tail, job))
        state.tail = task
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    @staticmethod
    def _done(outcome: SaveOutcome) -> "asyncio.Future[SaveOutcome]":
        future = asyncio.get_running_loop().create_future()
        future.set_result(outcome)
        return future

    # ---------------- debounce ----------------

    @staticmethod
    def _cancel_timer(state: _CardState) -> None:
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None

    def schedule_save(
        self,
        identity: str,
        *,
        body: Any = UNSET,
        tags_line: Any = UNSET,
        images: Any = UNSET,
    ) -> bool:
        """
        Record a field edit and (re)start the debounce timer.
        Returns False for an unknown card.
        """
        state = self._state(identity)
        if state is None:
            logger.debug("SCHEDULE IGNORED (unknown): %s", identity)
            return False

        if body is not UNSET:
            state.draft.body = body
        if tags_line is not UNSET:
            state.draft.tags_line = tags_line
        if images is not UNSET:
            state.draft.images = list(images)

        self._cancel_timer(state)
        loop = asyncio.get_running_loop()
        state.timer = loop.call_later(
            self.debounce_seconds, self._on_debounce, identity
        )
        return True

    def _on_debounce(self, identity: str) -> None:
        state = self._states.get(identity)
        if state is None:
            return
        state.timer = None
        self._enqueue_content_save(state, identity)

    def flush_save(self, identity: str) -> "asyncio.Future[SaveOutcome]":
        """Skip the remaining debounce and enqueue a save now (blur, hotkey)."""
        state = self._state(identity)
        if state is None:
            return self._done(SaveOutcome.MISSING)
        self._cancel_timer(state)
        return self._enqueue_content_save(state, identity)

    def set_tag_editor_focus(self, identity: str, focused: bool) -> None:
        state = self._state(identity)
        if state is not None:
            state.draft.tag_editor_focused = focused

    def add_image(self, identity: str, path: str) -> bool:
        state = self._state(identity)
        if state is None:
            return False
        path = path.strip()
        if not path:
            return False
        if path in state.draft.images:
            self.notify("Image already attached")
            return False
        if len(state.draft.images) >= MAX_IMAGES:
            self.notify(f"At most {MAX_IMAGES} images per card")
            return False
        return self.schedule_save(identity, images=state.draft.images + [path])

    def remove_image(self, identity: str, path: str) -> bool:
        state = self._state(identity)
        if state is None:
            return False
        remaining = [p for p in state.draft.images if p != path]
        if len(remaining) == len(state.draft.images):
            return False
        return self.schedule_save(identity, images=remaining)

    # ---------------- content save ----------------

    def _enqueue_content_save(
        self, state: _CardState, identity: str
    ) -> "asyncio.Task[SaveOutcome]":
        state.request_id += 1
        request_id = state.request_id
        return self._enqueue(state, lambda: self._save_content(identity, request_id))

    async def _save_content(self, identity: str, request_id: int) -> SaveOutcome:
        state = self._states.get(identity)
        if state is None:
            return SaveOutcome.MISSING
        if request_id != state.request_id:
            # a newer save is queued behind us and will write the latest draft
            logger.debug("SAVE SUPERSEDED: %s (#%d)", identity, request_id)
            return SaveOutcome.SUPERSEDED

        card = self.store.get(identity)
        if card is None:
            return SaveOutcome.MISSING

        draft = state.draft
        normalized_tags = normalize_tag_line(draft.tags_line)
        if not draft.tag_editor_focused and normalized_tags != draft.tags_line:
            draft.tags_line = normalized_tags

        _, text = compose_card(
            card,
            body=draft.body,
            tags=normalized_tags,
            images=list(draft.images),
            remembered=self.geometry.lookup(identity),
        )
        return await self._write(
            identity, state, text, "Failed to save card, please retry"
        )

    async def _write(
        self, identity: str, state: _CardState, text: str, failure_message: str
    ) -> SaveOutcome:
        if text == state.baseline:
            logger.debug("SAVE SKIPPED (unchanged): %s", identity)
            return SaveOutcome.UNCHANGED

        try:
            await self.storage.write_text(identity, text)
        except StorageError as e:
            logger.error("SAVE FAILED: %s: %s", identity, e)
            self.notify(failure_message)
            return SaveOutcome.FAILED

        self._confirm(identity, state, text)
        logger.info("SAVED: %s", identity)
        return SaveOutcome.WRITTEN

    def _confirm(self, identity: str, state: _CardState, text: str) -> None:
        parsed = parse(text, identity=identity)
        fields = {name: getattr(parsed, name) for name in _CONTENT_FIELDS}
        fields["mtime"] = time.time()
        self.store.patch(identity, **fields)
        state.baseline = text

    # ---------------- structural operations ----------------

    def _structural(
        self,
        identity: str,
        failure_message: str,
        prepare: Callable[[Card], Union[Dict[str, Any], SaveOutcome]],
        settle: Optional[Callable[[SaveOutcome], None]] = None,
    ) -> "asyncio.Future[SaveOutcome]":
        """
        Immediate write through the card's chain.

        'prepare' runs inside the chain against the committed card and returns
        metadata patches, or a SaveOutcome to stop without writing (it reports
        its own reason). 'settle' always sees the final outcome.
        """
        state = self._state(identity)
        if state is None:
            return self._done(SaveOutcome.MISSING)

        async def attempt() -> SaveOutcome:
            card = self.store.get(identity)
            current = self._states.get(identity)
            if card is None or current is None:
                return SaveOutcome.MISSING
            patches = prepare(card)
            if isinstance(patches, SaveOutcome):
                return patches
            _, text = compose_card(
                card, remembered=self.geometry.lookup(identity), **patches
            )
            return await self._write(identity, current, text, failure_message)

        async def job() -> SaveOutcome:
            outcome = SaveOutcome.FAILED
            try:
                outcome = await attempt()
                return outcome
            finally:
                if settle is not None:
                    settle(outcome)

        return self._enqueue(state, job)

    def set_color(
        self, identity: str, color: Optional[str]
    ) -> "asyncio.Future[SaveOutcome]":
        """Set (or with None / an invalid value, clear) the card color."""
        return self._structural(
            identity,
            "Failed to set card color, please retry",
            lambda card: {"color": color},
        )

    def set_pinned(self, identity: str, pinned: bool) -> "asyncio.Future[SaveOutcome]":
        claimed = False

        def prepare(card: Card) -> Union[Dict[str, Any], SaveOutcome]:
            nonlocal claimed
            if pinned:
                other = self.store.pinned_other_than(identity)
                holder = other.identity if other is not None else self._pin_claim
                if holder is not None and holder != identity:
                    logger.info("PIN CONFLICT: %s (already pinned: %s)", identity, holder)
                    self.notify("Another card is already pinned")
                    return SaveOutcome.CONFLICT
                # held until the write settles; other cards' chains check it too
                self._pin_claim = identity
                claimed = True
            return {"pinned": pinned}

        def settle(outcome: SaveOutcome) -> None:
            if claimed and self._pin_claim == identity:
                self._pin_claim = None

        return self._structural(
            identity, "Failed to change pin state, please retry", prepare, settle
        )

    def set_floating(
        self,
        identity: str,
        floating: bool,
        geometry: Optional[Geometry] = None,
    ) -> "asyncio.Future[SaveOutcome]":
        if geometry is not None:
            geometry = normalize_geometry(geometry)

        def prepare(card: Card) -> Dict[str, Any]:
            if not floating:
                self.geometry.forget(identity)
            elif geometry is not None:
                self.geometry.remember(identity, geometry)

            patches: Dict[str, Any] = {"floating": floating, "geometry": geometry}
            if floating and card.is_pinned:
                patches["pinned"] = False
            return patches

        return self._structural(
            identity, "Failed to change floating state, please retry", prepare
        )

    def persist_geometry(
        self, identity: str, geometry: Geometry
    ) -> "asyncio.Future[SaveOutcome]":
        """Drag/resize ended: remember the geometry and write it if it changed."""
        geometry = normalize_geometry(geometry)

        def prepare(card: Card) -> Union[Dict[str, Any], SaveOutcome]:
            if not card.is_floating:
                return SaveOutcome.UNCHANGED
            self.geometry.remember(identity, geometry)
            return {"floating": True, "geometry": geometry}

        return self._structural(
            identity, "Failed to save card position, please retry", prepare
        )

    def delete(self, identity: str) -> "asyncio.Future[SaveOutcome]":
        state = self._state(identity)
        if state is None:
            return self._done(SaveOutcome.MISSING)
        self._cancel_timer(state)

        async def job() -> SaveOutcome:
            if self.store.get(identity) is None:
                return SaveOutcome.MISSING
            try:
                await self.storage.delete_text(identity)
            except StorageError as e:
                logger.error("DELETE FAILED: %s: %s", identity, e)
                self.notify("Failed to delete card, please retry")
                return SaveOutcome.FAILED

            self.store.remove(identity)
            self._states.pop(identity, None)
            self.geometry.forget(identity)
            logger.info("DELETED: %s", identity)
            return SaveOutcome.DELETED

        return self._enqueue(state, job)

    # ---------------- lifecycle ----------------

    def pending(self, identity: str) -> bool:
        state = self._states.get(identity)
        if state is None:
            return False
        return state.timer is not None or (
            state.tail is not None and not state.tail.done()
        )

    async def drain(self) -> None:
        """Wait until every queued job of every card has finished."""
        while self._running:
            await asyncio.wait(list(self._running))

    async def close(self) -> None:
        """Flush pending debounces, wait for all chains, drop all state."""
        for identity, state in list(self._states.items()):
            if state.timer is not None:
                self._cancel_timer(state)
                self._enqueue_content_save(state, identity)
        await self.drain()
        self._states.clear()
