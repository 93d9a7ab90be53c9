"""
Core Data Models for Saga.

These models define the game state the tag interpreter mutates and the
memory/history records the cleanup coordinator keeps within budget.
"""

from saga.models.entity import Entity, EntityType, Number, create_entity
from saga.models.history import (
    CompressedHistorySegment,
    HistoryEntry,
    HistoryPart,
    HistoryRole,
    create_model_entry,
    create_user_entry,
)
from saga.models.memory import Memory, MemoryCategory, MemorySource
from saga.models.quest import Quest, QuestObjective, QuestStatus
from saga.models.regex_rule import RegexPlacement, RegexRule, RegexSubstituteMode
from saga.models.state import Chronicle, GameState, GameTime, RealmTier, WorldData
from saga.models.status import Status, StatusType

__all__ = [
    # Entity
    "Entity",
    "EntityType",
    "Number",
    "create_entity",
    # History
    "CompressedHistorySegment",
    "HistoryEntry",
    "HistoryPart",
    "HistoryRole",
    "create_model_entry",
    "create_user_entry",
    # Memory
    "Memory",
    "MemoryCategory",
    "MemorySource",
    # Quest
    "Quest",
    "QuestObjective",
    "QuestStatus",
    # Regex rules
    "RegexPlacement",
    "RegexRule",
    "RegexSubstituteMode",
    # State
    "Chronicle",
    "GameState",
    "GameTime",
    "RealmTier",
    "WorldData",
    # Status
    "Status",
    "StatusType",
]
