"""Text component helpers."""

from __future__ import annotations

import json
import re
from typing import Any

from anvilscribe.nbt.tags import CompoundTag, ListTag, NbtTag, StringTag, to_python

FORMATTING_CODE = re.compile(r"§[0-9a-fk-or]", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

# Legacy colour names from JSON components mapped back to section codes so the
# raw outputs keep the formatting the player typed.
_COLOR_CODES = {
    "black": "0",
    "dark_blue": "1",
    "dark_green": "2",
    "dark_aqua": "3",
    "dark_red": "4",
    "dark_purple": "5",
    "gold": "6",
    "gray": "7",
    "dark_gray": "8",
    "blue": "9",
    "green": "a",
    "aqua": "b",
    "red": "c",
    "light_purple": "d",
    "yellow": "e",
    "white": "f",
}
_STYLE_CODES = {
    "obfuscated": "k",
    "bold": "l",
    "strikethrough": "m",
    "underlined": "n",
    "italic": "o",
}


def strip_formatting(text: str) -> str:
    """Remove ``§`` formatting codes."""
    return FORMATTING_CODE.sub("", text)


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _component_text(component: Any, depth: int = 0) -> str:
    if depth > 64:
        return ""
    if component is None:
        return ""
    if isinstance(component, str):
        return component
    if isinstance(component, (int, float)):
        return str(component)
    if isinstance(component, list):
        return "".join(_component_text(part, depth + 1) for part in component)
    if isinstance(component, dict):
        prefix = ""
        color = component.get("color")
        if isinstance(color, str) and color in _COLOR_CODES:
            prefix += "§" + _COLOR_CODES[color]
        for style, code in _STYLE_CODES.items():
            if component.get(style) in (True, 1, "true"):
                prefix += "§" + code
        text = component.get("text", "")
        if not text and "translate" in component:
            text = component["translate"]
        body = _component_text(text, depth + 1)
        body += _component_text(component.get("extra", []), depth + 1)
        return prefix + body
    return ""


def flatten_component(raw: str) -> str:
    """Flatten a JSON text component to text, keeping ``§`` codes.

    Plain strings and invalid JSON come back unchanged.
    """
    stripped = raw.strip()
    if not stripped or stripped[0] not in '{["':
        return raw
    try:
        parsed = json.loads(stripped)
    except ValueError:
        return raw
    return _component_text(parsed)


def component_from_tag(tag: NbtTag | None) -> str:
    """Text of a component stored either as a JSON string or as NBT (1.21.5+)."""
    match tag:
        case StringTag(value):
            return flatten_component(value)
        case CompoundTag() | ListTag():
            return _component_text(to_python(tag))
        case _:
            return ""


def strip_namespace(identifier: str) -> str:
    return identifier.split(":", 1)[1] if ":" in identifier else identifier


def normalize_id(identifier: str) -> str:
    """Lower-case id with the ``minecraft:`` namespace added when missing."""
    identifier = identifier.strip().lower()
    if not identifier:
        return ""
    return identifier if ":" in identifier else f"minecraft:{identifier}"
