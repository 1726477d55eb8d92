"""
Builds the canonical metadata record written into the cw-data block.

The codec only knows the wrapper syntax; this module decides which fields
exist and in which order.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Tuple

from inspiration_cards.codec import Card, compose, parse_geometry
from inspiration_cards.geometry import Geometry, normalize_geometry
from inspiration_cards.tokens import (
    extract_image_paths,
    extract_tag_tokens,
    format_image_csv,
    format_tag_csv,
    normalize_hex_color,
)

METADATA_WARNING = "Managed by inspiration cards. Do not delete or edit by hand."

FIELD_ORDER = (
    "warning",
    "ispinned",
    "color",
    "tags",
    "images",
    "isfloating",
    "floatx",
    "floaty",
    "floatw",
    "floath",
)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def build_metadata(
    current: Optional[Dict[str, Any]],
    *,
    color: Any = UNSET,
    pinned: Any = UNSET,
    tags: Any = UNSET,
    images: Any = UNSET,
    floating: Any = UNSET,
    geometry: Optional[Geometry] = None,
    remembered: Optional[Geometry] = None,
) -> Dict[str, Any]:
    """
    Merge patches over the current record and return the canonical record.

    Fields left as UNSET keep their current (validated) value. Unknown keys
    of the current record are dropped.

    Geometry priority when floating: geometry patch > remembered > persisted.
    """
    current = current or {}

    if pinned is UNSET:
        pinned = current.get("ispinned")
    if color is UNSET:
        color = current.get("color")
    if tags is UNSET:
        tags = current.get("tags")
    if images is UNSET:
        images = current.get("images")
    if floating is UNSET:
        floating = current.get("isfloating") is True

    record: Dict[str, Any] = {
        "warning": METADATA_WARNING,
        "ispinned": pinned if isinstance(pinned, bool) else False,
    }

    color = normalize_hex_color(color)
    if color:
        record["color"] = color

    tags_csv = format_tag_csv(extract_tag_tokens(tags))
    if tags_csv:
        record["tags"] = tags_csv

    images_csv = format_image_csv(extract_image_paths(images))
    if images_csv:
        record["images"] = images_csv

    if floating:
        record["isfloating"] = True
        resolved = geometry or remembered or parse_geometry(current)
        if resolved is not None:
            resolved = normalize_geometry(resolved)
            record["floatx"] = resolved.left
            record["floaty"] = resolved.top
            record["floatw"] = resolved.width
            record["floath"] = resolved.height

    return record


def serialize_metadata(record: Dict[str, Any]) -> str:
    ordered = {key: record[key] for key in FIELD_ORDER if key in record}
    return json.dumps(ordered, indent=2, ensure_ascii=False)


def compose_card(
    card: Card,
    *,
    body: Optional[str] = None,
    remembered: Optional[Geometry] = None,
    **patches: Any,
) -> Tuple[str, str]:
    """Return (metadata_body, full_text) for the card with patches applied."""
    record = build_metadata(card.metadata, remembered=remembered, **patches)
    metadata_body = serialize_metadata(record)
    text = compose(
        card.frontmatter_body,
        metadata_body,
        card.body if body is None else body,
    )
    return metadata_body, text
