from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

FLOATING_MIN_WIDTH = 280
FLOATING_MIN_BODY_HEIGHT = 40
DEFAULT_FLOATING_WIDTH = 280
DEFAULT_FLOATING_BODY_HEIGHT = 220

VIEWPORT_MARGIN = 8
# toolbar + tags row + image strip around the body area
PANEL_CHROME_HEIGHT = 140
CASCADE_STEP = 20
SIDE_GAP = 12


@dataclass(frozen=True)
class Geometry:
    """
    Floating panel geometry in viewport pixels.

    - left/top: panel position
    - width: panel width
    - height: height of the body area (not the whole panel)
    """

    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float


def normalize_geometry(geometry: Geometry) -> Geometry:
    """Round to whole pixels and enforce the minimum size."""
    return Geometry(
        left=round(geometry.left),
        top=round(geometry.top),
        width=max(FLOATING_MIN_WIDTH, round(geometry.width)),
        height=max(FLOATING_MIN_BODY_HEIGHT, round(geometry.height)),
    )


def clamp_to_viewport(geometry: Geometry, viewport: Viewport) -> Geometry:
    geometry = normalize_geometry(geometry)
    panel_height = geometry.height + PANEL_CHROME_HEIGHT

    max_left = max(VIEWPORT_MARGIN, viewport.width - geometry.width - VIEWPORT_MARGIN)
    max_top = max(VIEWPORT_MARGIN, viewport.height - panel_height - VIEWPORT_MARGIN)

    return Geometry(
        left=round(min(max(VIEWPORT_MARGIN, geometry.left), max_left)),
        top=round(min(max(VIEWPORT_MARGIN, geometry.top), max_top)),
        width=geometry.width,
        height=geometry.height,
    )


def centered_geometry(
    viewport: Viewport,
    width: float = DEFAULT_FLOATING_WIDTH,
    body_height: float = DEFAULT_FLOATING_BODY_HEIGHT,
) -> Geometry:
    size = normalize_geometry(Geometry(0, 0, width, body_height))
    panel_height = size.height + PANEL_CHROME_HEIGHT
    return clamp_to_viewport(
        Geometry(
            left=round((viewport.width - size.width) / 2),
            top=round((viewport.height - panel_height) / 2),
            width=size.width,
            height=size.height,
        ),
        viewport,
    )


def cascaded_geometry(
    viewport: Viewport,
    index: int,
    anchor_left: float = 24,
    anchor_top: float = 84,
    width: float = DEFAULT_FLOATING_WIDTH,
    body_height: float = DEFAULT_FLOATING_BODY_HEIGHT,
) -> Geometry:
    """Default for the N-th panel: left of the anchor, offset down by index."""
    width = max(FLOATING_MIN_WIDTH, round(width))
    return clamp_to_viewport(
        Geometry(
            left=round(anchor_left - width - SIDE_GAP),
            top=round(anchor_top + index * CASCADE_STEP),
            width=width,
            height=body_height,
        ),
        viewport,
    )


class GeometryResolver:
    """
    Keeps the last pointer/drag-end geometry per card for the running session.

    Priority when a panel materializes:
        1. remembered geometry (this session)
        2. geometry persisted in the card metadata
        3. cascaded default
    """

    def __init__(self, viewport: Viewport):
        self.viewport = viewport
        self._last_known: Dict[str, Geometry] = {}

    def remember(self, identity: str, geometry: Geometry) -> None:
        self._last_known[identity] = normalize_geometry(geometry)
        logger.debug("GEOMETRY REMEMBERED: %s %s", identity, geometry)

    def forget(self, identity: str) -> None:
        self._last_known.pop(identity, None)

    def lookup(self, identity: str) -> Optional[Geometry]:
        return self._last_known.get(identity)

    def clear(self) -> None:
        self._last_known.clear()

    def materialize(
        self,
        identity: str,
        persisted: Optional[Geometry],
        index: int = 0,
        anchor_left: float = 24,
        anchor_top: float = 84,
    ) -> Geometry:
        # the in-memory preset is consumed once the panel exists again
        remembered = self._last_known.pop(identity, None)
        if remembered is not None:
            return clamp_to_viewport(remembered, self.viewport)
        if persisted is not None:
            return clamp_to_viewport(persisted, self.viewport)
        return cascaded_geometry(
            self.viewport, index, anchor_left=anchor_left, anchor_top=anchor_top
        )
