import re
from typing import Any, Iterable, List, Optional

MAX_IMAGES = 8

_DIRECT_TAG = re.compile(r"#[^\s,#]+")
_WHITESPACE = re.compile(r"\s")
_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def _raw_items(value: Any) -> List[str]:
    # accepts a single string or a list; anything else is ignored
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str)]
    return []


def extract_tag_tokens(value: Any) -> List[str]:
    """
    Extract canonical '#tag' tokens from a string or a list of strings.

    The input is split on commas first, then per segment:
    - '#a #b'  -> every '#'-run is taken directly
    - 'b'      -> bare word, prefixed with '#'
    - 'b c'    -> dropped (a tag never contains whitespace)

    First occurrence wins: '#a, #a, b' -> ['#a', '#b'].
    """
    tokens: List[str] = []
    seen: set[str] = set()

    def add(core: str) -> None:
        token = f"#{core}"
        if token in seen:
            return
        seen.add(token)
        tokens.append(token)

    for raw in _raw_items(value):
        for segment in raw.split(","):
            direct = _DIRECT_TAG.findall(segment)
            if direct:
                for match in direct:
                    add(match[1:])
                continue

            core = segment.strip()
            if not core or "#" in core or _WHITESPACE.search(core):
                continue
            add(core)

    return tokens


def format_tag_line(tokens: Iterable[str]) -> str:
    return " ".join(tokens)


def format_tag_csv(tokens: Iterable[str]) -> Optional[str]:
    joined = ",".join(tokens)
    return joined or None


def normalize_tag_line(value: str) -> str:
    return format_tag_line(extract_tag_tokens(value))


def normalize_image_paths(paths: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    normalized: List[str] = []
    for raw in paths:
        path = raw.strip()
        if not path or path in seen:
            continue
        seen.add(path)
        normalized.append(path)
        if len(normalized) >= MAX_IMAGES:
            break
    return normalized


def extract_image_paths(value: Any) -> List[str]:
    """Comma-separated path list (or list of such strings) -> unique paths, capped at 8."""
    paths: List[str] = []
    for item in _raw_items(value):
        paths.extend(item.split(","))
    return normalize_image_paths(paths)


def format_image_csv(paths: Iterable[str]) -> Optional[str]:
    normalized = normalize_image_paths(paths)
    return ",".join(normalized) if normalized else None


def normalize_hex_color(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not _HEX_COLOR.match(trimmed):
        return None
    return trimmed.upper()
