"""
Tag Attribute Parsing for Saga.

Turns the inner text of one tag (``name="Thiết Kiếm" quantities=2``) into
a typed attribute bag. Parsing never raises: text with no recognizable
``key=value`` pairs simply yields an empty bag.
"""

from __future__ import annotations

import math
import re

from saga.models.quest import QuestObjective

AttributeValue = str | int | float | bool | list[QuestObjective]
Attributes = dict[str, AttributeValue]

# Quoted values keep whitespace; unquoted values stop at whitespace or "]"
ATTRIBUTE_PATTERN = re.compile(r'([A-Za-z0-9_]+)=("([^"]*)"|([^\s"\]]+))')

BOOLEAN_KEYS = frozenset({"isMainQuest", "equippable", "usable", "consumable", "learnable"})

NUMERIC_KEYS = frozenset(
    {
        "quantities",
        "uses",
        "durability",
        "damage",
        "repairedAmount",
        "years",
        "months",
        "days",
        "hours",
        "minutes",
        "currentExp",
    }
)


def to_number(raw: str) -> int | float | None:
    """
    Parse a numeric string.

    Returns an int for integral text, a float otherwise, or None when the
    text is blank, not numeric, or not finite.
    """
    text = raw.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_int(value: AttributeValue | None, default: int = 0) -> int:
    """Lenient integer read of an attribute: "12 exp" -> 12, junk -> default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        match = re.match(r"\s*([+-]?\d+)", value)
        if match:
            return int(match.group(1))
    return default


def parse_float(value: AttributeValue | None, default: float = 0.0) -> float:
    """Lenient float read of an attribute: "0.5x" -> 0.5, junk -> default."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = re.match(r"\s*([+-]?(?:\d+\.?\d*|\.\d+))", value)
        if match:
            return float(match.group(1))
    return default


def coerce_value(key: str, raw: str) -> AttributeValue:
    """Apply the per-key coercion rules to one raw value."""
    if key in BOOLEAN_KEYS:
        return raw.lower() == "true"
    if key == "objectives":
        return [
            QuestObjective(description=piece.strip())
            for piece in raw.split(";")
            if piece.strip()
        ]
    if key in NUMERIC_KEYS:
        number = to_number(raw)
        return raw if number is None else number
    return raw


def parse_attributes(text: str) -> Attributes:
    """
    Parse every ``key=value`` pair in a tag body.

    Later duplicates of a key win.

    Args:
        text: The tag body after the ``KIND:`` prefix

    Returns:
        Typed attributes, possibly empty
    """
    attributes: Attributes = {}
    for match in ATTRIBUTE_PATTERN.finditer(text):
        key = match.group(1)
        raw = match.group(3) if match.group(3) is not None else match.group(4)
        attributes[key] = coerce_value(key, raw)
    return attributes


def text_attr(attributes: Attributes, key: str) -> str | None:
    """A non-empty string attribute, or None."""
    value = attributes.get(key)
    if value is None or isinstance(value, list):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None
