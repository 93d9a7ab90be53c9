"""
Memory Models for Saga.

A memory is a short piece of narrative the game keeps feeding back to the
language model as context. Memories are scored for importance and are
soft-archived rather than deleted when the context budget runs out.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class MemoryCategory(str, Enum):
    """Thematic category used for scoring and reporting."""

    COMBAT = "combat"
    SOCIAL = "social"
    DISCOVERY = "discovery"
    STORY = "story"
    RELATIONSHIP = "relationship"
    GENERAL = "general"
    ARCHIVED = "archived"  # Set when the cleanup coordinator demotes a memory


class MemorySource(str, Enum):
    """Where a memory came from."""

    CHRONICLE = "chronicle"  # CHRONICLE_TURN tag
    MANUAL = "manual"  # Entered by the player
    AUTO_GENERATED = "auto_generated"  # Smart memory generator


class Memory(BaseModel):
    """
    A single memory entry.

    ``related_entities`` and ``tags`` are ``None`` until the enhancer has
    looked at the memory; an empty list means "looked, found nothing".
    """

    text: str
    pinned: bool = False
    importance: float | None = Field(default=None, ge=0, le=100)
    category: MemoryCategory | None = None
    source: MemorySource | None = None
    created_at: int | None = Field(default=None, alias="createdAt")
    last_accessed: int | None = Field(default=None, alias="lastAccessed")
    related_entities: list[str] | None = Field(default=None, alias="relatedEntities")
    tags: list[str] | None = None
    emotional_weight: float | None = Field(
        default=None, ge=-10, le=10, alias="emotionalWeight"
    )

    model_config = {"extra": "allow", "populate_by_name": True}
