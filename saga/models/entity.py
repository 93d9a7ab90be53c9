"""
Entity Models for Saga.

Defines the single open-ended record used for every named thing the
narrative can introduce: the player character, NPCs, companions, items,
skills, locations, factions and concepts.

Tag attributes arrive in camelCase (``learnedSkills``, ``currentExp``);
these are accepted as aliases so handlers can merge raw attribute bags
straight into an entity.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

Number = int | float


class EntityType(str, Enum):
    """Kinds of entities tracked in the known-entity collection."""

    PC = "pc"
    NPC = "npc"
    COMPANION = "companion"
    ITEM = "item"
    SKILL = "skill"
    LOCATION = "location"
    FACTION = "faction"
    CONCEPT = "concept"
    STATUS_EFFECT = "status_effect"  # Only used for reference-id prefixes


class Entity(BaseModel):
    """
    A named thing in the game world.

    Unknown attributes supplied by tags are preserved as model extras.
    """

    name: str = Field(min_length=1)
    type: EntityType
    description: str = ""
    reference_id: str | None = Field(default=None, alias="referenceId")

    # Items
    owner: str | None = None
    quantities: Number | None = None
    uses: Number | None = None
    durability: Number | None = None
    equippable: bool = False
    equipped: bool = False
    usable: bool = False
    consumable: bool = False

    # Characters
    learned_skills: list[str] = Field(default_factory=list, alias="learnedSkills")
    skills: list[str] = Field(default_factory=list)
    current_exp: Number | None = Field(default=None, alias="currentExp")
    realm: str | None = None
    relationship: str | None = None
    motivation: str | None = None

    # Skills
    learnable: bool = False
    mastery: str | None = None
    skill_exp: Number | None = Field(default=None, alias="skillExp")
    max_skill_exp: Number | None = Field(default=None, alias="maxSkillExp")
    skill_capped: bool = Field(default=False, alias="skillCapped")
    breakthrough_eligible: bool = Field(default=False, alias="breakthroughEligible")

    # Locations and bookkeeping
    discovered_at: int | None = Field(default=None, alias="discoveredAt")
    last_mentioned: int | None = Field(default=None, alias="lastMentioned")
    archived: bool = False

    model_config = {"extra": "allow", "populate_by_name": True}

    @field_validator("learned_skills", "skills", mode="before")
    @classmethod
    def split_skill_list(cls, value: Any) -> Any:
        """Accept comma-separated skill names as well as lists."""
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def is_character(self) -> bool:
        """Whether this entity can hold skills."""
        return self.type in (EntityType.PC, EntityType.NPC, EntityType.COMPANION)

    def skill_names(self) -> list[str]:
        """Skills held by this entity, whichever field carries them."""
        if self.type == EntityType.PC:
            return list(self.learned_skills)
        return list(self.skills)

    def merged(self, attributes: dict[str, Any]) -> Entity:
        """
        Return a copy with the given wire-format attributes layered on top.

        Args:
            attributes: camelCase attribute bag, typically from a tag

        Returns:
            A freshly validated Entity
        """
        data = self.model_dump(by_alias=True)
        data.update(attributes)
        return Entity.model_validate(data)

    def to_wire(self) -> dict[str, Any]:
        """Dump using camelCase attribute names."""
        return self.model_dump(by_alias=True, mode="json")


def create_entity(
    name: str,
    entity_type: EntityType | str,
    description: str = "",
    **attributes: Any,
) -> Entity:
    """
    Factory for creating an entity from wire-format attributes.

    Args:
        name: Unique entity name
        entity_type: Kind of entity
        description: Free-text description
        **attributes: Additional camelCase attributes

    Returns:
        A new Entity
    """
    data: dict[str, Any] = dict(attributes)
    data.update({"name": name, "type": entity_type, "description": description})
    return Entity.model_validate(data)
