"""
Card codec: document text <-> structured card.

Document layout (every block optional, fixed order, one blank line between):

    ---
    <frontmatter, opaque>
    ---

    <!---cw-data
    { ...metadata json... }
    --->

    <body>
"""

from __future__ import annotations

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from inspiration_cards.geometry import Geometry
from inspiration_cards.tokens import (
    extract_image_paths,
    extract_tag_tokens,
    format_tag_line,
    normalize_hex_color,
)

logger = logging.getLogger(__name__)

FRONTMATTER_DELIMITER = "---"
METADATA_OPEN = "<!---cw-data"
METADATA_CLOSE = "--->"

_FRONTMATTER = re.compile(r"\A---\n(.*?)\n---(?:\n|\Z)", re.DOTALL)
_METADATA = re.compile(r"<!---cw-data[^\S\n]*\n(.*?)\n--->", re.DOTALL)
_BARE_COLOR = re.compile(r'("color"\s*:\s*)(#[0-9a-fA-F]{6})')
_LEADING_NEWLINES = re.compile(r"\A\n+")
_TRAILING_NEWLINES = re.compile(r"\n+\Z")


@dataclass(frozen=True)
class Card:
    identity: str = ""
    frontmatter_body: Optional[str] = None
    metadata_body: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    body: str = ""
    tags_line: str = ""
    images: Tuple[str, ...] = ()
    color: Optional[str] = None
    is_pinned: bool = False
    is_floating: bool = False
    floating_x: Optional[float] = None
    floating_y: Optional[float] = None
    floating_width: Optional[float] = None
    floating_height: Optional[float] = None
    ctime: float = 0.0
    mtime: float = 0.0

    @property
    def geometry(self) -> Optional[Geometry]:
        if self.floating_x is None:
            return None
        return Geometry(
            left=self.floating_x,
            top=self.floating_y,
            width=self.floating_width,
            height=self.floating_height,
        )

    @property
    def tags(self) -> Tuple[str, ...]:
        return tuple(self.tags_line.split())


def normalize_line_endings(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def split_frontmatter(text: str) -> Tuple[Optional[str], str]:
    match = _FRONTMATTER.match(text)
    if not match:
        return None, text
    return match.group(1), text[match.end() :]


def split_metadata(text: str) -> Tuple[Optional[str], str]:
    match = _METADATA.search(text)
    if not match:
        return None, text
    return match.group(1), text[: match.start()] + text[match.end() :]


def parse_metadata(metadata_body: Optional[str]) -> Dict[str, Any]:
    """
    Parse the metadata interior. Never raises: anything unreadable is {}.

    The only repair done is quoting a bare '"color": #RRGGBB'.
    """
    normalized = (metadata_body or "").strip()
    if not normalized:
        return {}

    safe = _BARE_COLOR.sub(r'\1"\2"', normalized)
    try:
        parsed = json.loads(safe)
    except ValueError as e:
        logger.warning("Unreadable card metadata ignored: %s", e)
        return {}

    if not isinstance(parsed, dict):
        return {}
    return parsed


def normalize_finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_geometry(metadata: Dict[str, Any]) -> Optional[Geometry]:
    values = [
        normalize_finite_number(metadata.get(key))
        for key in ("floatx", "floaty", "floatw", "floath")
    ]
    if any(v is None for v in values):
        return None
    left, top, width, height = values
    return Geometry(left=left, top=top, width=width, height=height)


def parse(text: str, identity: str = "", ctime: float = 0.0, mtime: float = 0.0) -> Card:
    normalized = normalize_line_endings(text)
    frontmatter_body, rest = split_frontmatter(normalized)
    metadata_body, body = split_metadata(rest)
    metadata = parse_metadata(metadata_body)
    geometry = parse_geometry(metadata)

    return Card(
        identity=identity,
        frontmatter_body=frontmatter_body,
        metadata_body=metadata_body,
        metadata=metadata,
        body=_LEADING_NEWLINES.sub("", body),
        tags_line=format_tag_line(extract_tag_tokens(metadata.get("tags"))),
        images=tuple(extract_image_paths(metadata.get("images"))),
        color=normalize_hex_color(metadata.get("color")),
        is_pinned=metadata.get("ispinned") is True,
        is_floating=metadata.get("isfloating") is True,
        floating_x=geometry.left if geometry else None,
        floating_y=geometry.top if geometry else None,
        floating_width=geometry.width if geometry else None,
        floating_height=geometry.height if geometry else None,
        ctime=ctime,
        mtime=mtime,
    )


def _trim_block(text: str) -> str:
    return _TRAILING_NEWLINES.sub("", _LEADING_NEWLINES.sub("", text))


def compose(
    frontmatter_body: Optional[str],
    metadata_body: Optional[str],
    body: str,
) -> str:
    chunks = []
    if frontmatter_body and frontmatter_body.strip():
        fm = _TRAILING_NEWLINES.sub("", frontmatter_body)
        chunks.append(f"{FRONTMATTER_DELIMITER}\n{fm}\n{FRONTMATTER_DELIMITER}")
    if metadata_body and metadata_body.strip():
        md = _TRAILING_NEWLINES.sub("", metadata_body)
        chunks.append(f"{METADATA_OPEN}\n{md}\n{METADATA_CLOSE}")

    body = _trim_block(normalize_line_endings(body or ""))
    if body:
        chunks.append(body)
    return "\n\n".join(chunks)
