"""
Reference ID Service for Saga.

Generates stable, human-scannable identifiers for entities:
``REF_<TYPE>_<CATEGORY>_<HASH>``, e.g. ``REF_IT_ITE_3FA2C01B``.
"""

from __future__ import annotations

import re
import secrets
from collections.abc import Iterable

from pydantic import BaseModel

from saga.models.entity import EntityType
from saga.models.state import GameState

REFERENCE_ID_PATTERN = re.compile(r"^REF_([A-Z]{2})_([A-Z]{3})_([A-F0-9]{8})$")

TYPE_PREFIXES: dict[str, str] = {
    "pc": "PC",
    "npc": "NP",
    "companion": "CO",
    "location": "LO",
    "item": "IT",
    "skill": "SK",
    "faction": "FA",
    "concept": "CN",
    "status_effect": "ST",
}

CATEGORY_PREFIXES: dict[str, str] = {
    "characters": "CHA",
    "locations": "LOC",
    "items": "ITE",
    "factions": "FAC",
    "concepts": "CON",
    "skills": "SKI",
    "statusEffects": "STA",
}

TYPE_CATEGORIES: dict[str, str] = {
    "pc": "characters",
    "npc": "characters",
    "companion": "characters",
    "location": "locations",
    "item": "items",
    "skill": "skills",
    "faction": "factions",
    "concept": "concepts",
    "status_effect": "statusEffects",
}


class ParsedReferenceId(BaseModel):
    """Components of a reference id."""

    valid: bool
    type_prefix: str | None = None
    category_prefix: str | None = None
    hash: str | None = None


def _type_value(entity_type: EntityType | str) -> str:
    return entity_type.value if isinstance(entity_type, EntityType) else entity_type


def generate_reference_id(
    entity_type: EntityType | str,
    category: str | None = None,
    existing: Iterable[str] = (),
) -> str:
    """
    Generate a new reference id.

    Args:
        entity_type: Entity kind; selects the two-letter prefix
        category: Optional category name; defaults from the entity kind
        existing: Ids already in use, which the result will not collide with

    Returns:
        A reference id matching REFERENCE_ID_PATTERN
    """
    type_name = _type_value(entity_type)
    category = category or TYPE_CATEGORIES.get(type_name, "concepts")
    type_prefix = TYPE_PREFIXES.get(type_name, type_name[:2].upper().ljust(2, "X"))
    category_prefix = CATEGORY_PREFIXES.get(category, category[:3].upper().ljust(3, "X"))

    taken = set(existing)
    while True:
        reference_id = f"REF_{type_prefix}_{category_prefix}_{secrets.token_hex(4).upper()}"
        if reference_id not in taken:
            return reference_id


def reference_id_for(state: GameState, entity_type: EntityType | str) -> str:
    """Generate a reference id unique among the entities of ``state``."""
    existing = (
        e.reference_id for e in state.known_entities.values() if e.reference_id
    )
    return generate_reference_id(entity_type, existing=existing)


def validate_reference_id(reference_id: str) -> bool:
    """Check whether a string is a well-formed reference id."""
    return REFERENCE_ID_PATTERN.match(reference_id) is not None


def parse_reference_id(reference_id: str) -> ParsedReferenceId:
    """Split a reference id into its prefixes and hash."""
    match = REFERENCE_ID_PATTERN.match(reference_id)
    if not match:
        return ParsedReferenceId(valid=False)
    return ParsedReferenceId(
        valid=True,
        type_prefix=match.group(1),
        category_prefix=match.group(2),
        hash=match.group(3),
    )
