"""
Game State Models for Saga.

The GameState aggregate is one snapshot of everything the interpreter and
the cleanup coordinator read and write. Snapshots are never mutated in
place by the core: every operation returns a new one.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from saga.models.entity import Entity, EntityType
from saga.models.history import CompressedHistorySegment, HistoryEntry
from saga.models.memory import Memory
from saga.models.quest import Quest
from saga.models.status import Status


class GameTime(BaseModel):
    """In-world calendar: 30-day months, 12-month years."""

    year: int = 1
    month: int = Field(default=1, ge=1, le=12)
    day: int = Field(default=1, ge=1, le=30)
    hour: int = Field(default=0, ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)

    def label(self) -> str:
        """Human-readable timestamp used in prompts."""
        return (
            f"{self.hour:02d}:{self.minute:02d} ngày {self.day}/{self.month}/{self.year}"
        )


class Chronicle(BaseModel):
    """Append-only narrative logs."""

    turn: list[str] = Field(default_factory=list)
    chapter: list[str] = Field(default_factory=list)
    memoir: list[str] = Field(default_factory=list)


class RealmTier(BaseModel):
    """One tier of the progression ladder."""

    name: str
    required_exp: float = Field(default=0, ge=0, alias="requiredExp")

    model_config = {"populate_by_name": True}


class WorldData(BaseModel):
    """Static world configuration relevant to the core."""

    realm_tiers: list[RealmTier] = Field(default_factory=list, alias="realmTiers")

    model_config = {"extra": "allow", "populate_by_name": True}


class GameState(BaseModel):
    """One immutable-by-convention snapshot of the full game state."""

    known_entities: dict[str, Entity] = Field(default_factory=dict, alias="knownEntities")
    party: list[Entity] = Field(default_factory=list)
    statuses: list[Status] = Field(default_factory=list)
    quests: list[Quest] = Field(default_factory=list)
    memories: list[Memory] = Field(default_factory=list)
    archived_memories: list[Memory] = Field(default_factory=list, alias="archivedMemories")
    game_history: list[HistoryEntry] = Field(default_factory=list, alias="gameHistory")
    compressed_history: list[CompressedHistorySegment] = Field(
        default_factory=list, alias="compressedHistory"
    )
    chronicle: Chronicle = Field(default_factory=Chronicle)
    game_time: GameTime = Field(default_factory=GameTime, alias="gameTime")
    turn_count: int = Field(default=0, ge=0, alias="turnCount")
    total_tokens: int = Field(default=0, ge=0, alias="totalTokens")
    location_discovery_order: list[str] = Field(
        default_factory=list, alias="locationDiscoveryOrder"
    )
    world_data: WorldData = Field(default_factory=WorldData, alias="worldData")

    model_config = {"populate_by_name": True}

    def find_pc(self) -> Entity | None:
        """Return the player character entity, if one is known."""
        for entity in self.known_entities.values():
            if entity.type == EntityType.PC:
                return entity
        return None

    def entities_of_type(self, *types: EntityType) -> list[Entity]:
        """All known entities whose type is one of ``types``."""
        return [e for e in self.known_entities.values() if e.type in types]

    def party_member(self, name: str) -> Entity | None:
        """Return the party copy with the given name."""
        for member in self.party:
            if member.name == name:
                return member
        return None

    def replace_party_member(self, entity: Entity) -> bool:
        """
        Swap the party copy with the same name for ``entity``.

        Returns True if a party member was replaced.
        """
        for index, member in enumerate(self.party):
            if member.name == entity.name:
                self.party[index] = entity
                return True
        return False
