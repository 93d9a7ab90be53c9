"""
Quest models for Saga.

Defines the data structures for narrative quests: ordered objectives,
free-text rewards and quest state tracking.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class QuestStatus(str, Enum):
    """Status of a quest in the player's journal."""

    ACTIVE = "active"  # Assigned and in progress
    COMPLETED = "completed"  # Successfully finished
    FAILED = "failed"  # Cannot be completed anymore


class QuestObjective(BaseModel):
    """
    A single objective within a quest.

    Objectives are completed by exact description match.
    """

    description: str
    """Human-readable description: "Tìm thảo dược trên núi" """

    completed: bool = False
    """Whether this objective has been satisfied."""


class Quest(BaseModel):
    """A quest tracked in the player's journal."""

    title: str = Field(min_length=1)
    """Unique display title; QUEST_* tags address quests by title."""

    description: str = ""
    objectives: list[QuestObjective] = Field(default_factory=list)

    giver: str | None = None
    """Name of the NPC who gave the quest, if any."""

    reward: str | None = None
    """Free-text reward; an embedded "<n> exp" is awarded on completion."""

    is_main_quest: bool = Field(default=False, alias="isMainQuest")
    status: QuestStatus = QuestStatus.ACTIVE

    model_config = {"extra": "allow", "populate_by_name": True}

    @property
    def all_objectives_complete(self) -> bool:
        """Whether every objective is done (False for quests without objectives)."""
        return bool(self.objectives) and all(o.completed for o in self.objectives)

    def complete_objective(self, description: str) -> bool:
        """
        Mark the objective with the given description complete.

        Returns True if a matching objective was found.
        """
        for objective in self.objectives:
            if objective.description == description:
                objective.completed = True
                return True
        return False
