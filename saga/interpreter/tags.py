"""
Tag Grammar for Saga.

Narrative text from the language model carries bracketed directives such
as ``[ITEM_AQUIRED: name="Bình Máu" quantities=2]``. This module defines
the closed set of directive kinds and the patterns used to find them.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel

TAG_PATTERN = re.compile(r"\[([A-Z_]+):\s*([^\]]+)\]")
REASONING_PATTERN = re.compile(r"\[COT_REASONING\]([\s\S]*?)\[/COT_REASONING\]\s*")


class TagKind(str, Enum):
    """Every directive kind the interpreter understands."""

    # Time and chronicle
    TIME_ELAPSED = "TIME_ELAPSED"
    CHRONICLE_TURN = "CHRONICLE_TURN"
    CHRONICLE_CHAPTER = "CHRONICLE_CHAPTER"
    CHRONICLE_MEMOIR = "CHRONICLE_MEMOIR"

    # Statuses
    STATUS_APPLIED_SELF = "STATUS_APPLIED_SELF"
    STATUS_APPLIED_NPC = "STATUS_APPLIED_NPC"
    STATUS_CURED_SELF = "STATUS_CURED_SELF"
    STATUS_CURED_NPC = "STATUS_CURED_NPC"

    # Lore
    LORE_PC = "LORE_PC"
    LORE_NPC = "LORE_NPC"
    LORE_ITEM = "LORE_ITEM"
    LORE_LOCATION = "LORE_LOCATION"
    LORE_FACTION = "LORE_FACTION"
    LORE_CONCEPT = "LORE_CONCEPT"
    LORE_SKILL = "LORE_SKILL"

    # Skill mechanics
    SKILL_EXP_REWARD = "SKILL_EXP_REWARD"
    SKILL_EXP_GAIN = "SKILL_EXP_GAIN"
    SKILL_BREAKTHROUGH = "SKILL_BREAKTHROUGH"
    SKILL_BREAKTHROUGH_ROLL = "SKILL_BREAKTHROUGH_ROLL"
    SKILL_LEARNED = "SKILL_LEARNED"
    SKILL_UPDATE = "SKILL_UPDATE"

    # Generic update
    ENTITY_UPDATE = "ENTITY_UPDATE"

    # Inventory ("AQUIRED" is the spelling the model is prompted with)
    ITEM_AQUIRED = "ITEM_AQUIRED"
    ITEM_CONSUMED = "ITEM_CONSUMED"
    ITEM_EQUIPPED = "ITEM_EQUIPPED"
    ITEM_UNEQUIPPED = "ITEM_UNEQUIPPED"
    ITEM_TRANSFORMED = "ITEM_TRANSFORMED"
    ITEM_UPDATED = "ITEM_UPDATED"
    ITEM_DAMAGED = "ITEM_DAMAGED"
    ITEM_REPAIRED = "ITEM_REPAIRED"
    ITEM_DISCARDED = "ITEM_DISCARDED"
    ITEM_LOST = "ITEM_LOST"
    SPECIAL_ITEM_GENERATE = "SPECIAL_ITEM_GENERATE"

    # People
    REALM_UPDATE = "REALM_UPDATE"
    COMPANION = "COMPANION"
    RELATIONSHIP_CHANGED = "RELATIONSHIP_CHANGED"

    # Quests
    QUEST_ASSIGNED = "QUEST_ASSIGNED"
    QUEST_UPDATED = "QUEST_UPDATED"
    QUEST_OBJECTIVE_COMPLETED = "QUEST_OBJECTIVE_COMPLETED"

    # Sentinel: world setup block, consumed elsewhere and ignored here
    DEFINE_REALM_SYSTEM = "DEFINE_REALM_SYSTEM"

    @classmethod
    def lookup(cls, name: str) -> TagKind | None:
        """Return the kind named ``name``, or None for unknown kinds."""
        try:
            return cls(name)
        except ValueError:
            return None


IGNORED_KINDS = frozenset({TagKind.DEFINE_REALM_SYSTEM})


class TagMatch(BaseModel):
    """One tag occurrence in a narrative."""

    raw: str
    name: str
    body: str

    @property
    def kind(self) -> TagKind | None:
        return TagKind.lookup(self.name)


def find_tags(text: str) -> list[TagMatch]:
    """All tag occurrences in ``text``, in order."""
    return [
        TagMatch(raw=m.group(0), name=m.group(1), body=m.group(2))
        for m in TAG_PATTERN.finditer(text)
    ]


def strip_tags(text: str) -> str:
    """Remove every tag occurrence from ``text``."""
    return TAG_PATTERN.sub("", text)


def extract_reasoning(text: str) -> tuple[str, str | None]:
    """
    Split off the first reasoning block.

    Returns:
        (text without the block, trimmed reasoning or None)
    """
    match = REASONING_PATTERN.search(text)
    if match is None:
        return text, None
    return text[: match.start()] + text[match.end() :], match.group(1).strip()
