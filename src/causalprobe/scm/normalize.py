"""
Name and text normalization shared by the resolver, detector and presets.

Inline model specs describe nodes in a small closed set of shapes:

- a bare string (``"exercise_level"``)
- a mapping carrying any of ``id``, ``name``, ``label``, ``displayName``
  or ``title``

``parse_node_descriptor`` is the single place those shapes are turned
into a canonical key plus a display name.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_WHITESPACE = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[_-]+")
_CAMEL_BOUNDARY = re.compile(r"([a-z])([A-Z])")
_OPAQUE_CHARS = re.compile(r"[_.-]")
_ACRONYM = re.compile(r"^[A-Z0-9]+$")

KEY_FIELDS = ("id", "name", "label", "displayName", "title")
DISPLAY_FIELDS = ("label", "displayName", "title", "name", "id")


def normalize_token(value: str) -> str:
    """Lowercase and strip everything but ASCII letters and digits."""
    return _NON_ALNUM.sub("", value.lower())


def sanitize_text(value: str) -> str:
    """Collapse runs of whitespace and trim."""
    return _WHITESPACE.sub(" ", value).strip()


def unique_sorted(values: Iterable[str]) -> list[str]:
    """Sanitize, drop empties, dedupe and sort lexically."""
    return sorted({sanitize_text(v) for v in values if sanitize_text(v)})


def humanize_token(value: str) -> str:
    """
    Turn a snake_case, kebab-case or camelCase key into Title Case.

    All-caps tokens of at most two characters (``"IQ"``, ``"AI"``) are
    preserved as acronyms.

    >>> humanize_token("exercise_level")
    'Exercise Level'
    >>> humanize_token("bloodPressure")
    'Blood Pressure'
    """
    cleaned = sanitize_text(_CAMEL_BOUNDARY.sub(r"\1 \2", _SEPARATORS.sub(" ", value)))
    if not cleaned:
        return "Variable"

    parts = []
    for part in cleaned.split(" "):
        if len(part) <= 2 and _ACRONYM.match(part):
            parts.append(part)
        else:
            parts.append(part[0].upper() + part[1:])
    return " ".join(parts)


def is_opaque_key(value: str) -> bool:
    """
    True for machine-looking keys that should not be shown verbatim.

    Keys with separators (``a_b``, ``x.y``) or short single words
    (``X``, ``ses``) are opaque.
    """
    trimmed = sanitize_text(value)
    if not trimmed:
        return True
    if _OPAQUE_CHARS.search(trimmed):
        return True
    return " " not in trimmed and len(trimmed) <= 4


def read_string(record: Mapping[str, Any], keys: Iterable[str]) -> str | None:
    """Return the first non-empty string value among ``keys``."""
    for key in keys:
        raw = record.get(key)
        if isinstance(raw, str):
            sanitized = sanitize_text(raw)
            if sanitized:
                return sanitized
    return None


@dataclass(frozen=True)
class NodeDescriptor:
    """Canonical reading of one raw node entry."""

    key: str
    display_name: str
    aliases: tuple[str, ...]
    has_rich_display: bool


def parse_node_descriptor(node: Any) -> NodeDescriptor | None:
    """
    Normalize one raw node entry.

    Returns None for entries with no usable name, so callers can skip
    malformed input without special-casing it.
    """
    if isinstance(node, str):
        key = sanitize_text(node)
        if not key:
            return None
        rich = not is_opaque_key(key)
        return NodeDescriptor(
            key=key,
            display_name=key if rich else humanize_token(key),
            aliases=(key,),
            has_rich_display=rich,
        )

    if not isinstance(node, Mapping):
        return None

    values = {field: read_string(node, (field,)) for field in KEY_FIELDS}
    key = next((values[f] for f in KEY_FIELDS if values[f]), None)
    if key is None:
        return None

    display = next((values[f] for f in DISPLAY_FIELDS if values[f]), None)
    aliases = tuple(dict.fromkeys(v for v in (*values.values(), key) if v))
    name = values["name"]
    rich = bool(
        values["label"]
        or values["displayName"]
        or values["title"]
        or (name and not is_opaque_key(name))
    )

    return NodeDescriptor(
        key=key,
        display_name=display or humanize_token(key),
        aliases=aliases,
        has_rich_display=rich,
    )


def edge_key(source: str, target: str) -> str:
    """Stable string key for a directed edge."""
    return f"{source}=>{target}"
