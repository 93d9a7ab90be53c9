"""
Turn History Models for Saga.

Raw conversation entries exchanged with the language model, plus the
summarized segments that replace older entries once history grows.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


class HistoryRole(str, Enum):
    """Speaker of a history entry."""

    USER = "user"
    MODEL = "model"


class HistoryPart(BaseModel):
    """One text part of an entry payload."""

    text: str = ""


class HistoryEntry(BaseModel):
    """
    One raw turn entry.

    Model entries carry a JSON payload ``{"story": ..., "choices": [...]}``
    in their first part. User entries carry the framed player action.
    """

    role: HistoryRole
    parts: list[HistoryPart] = Field(default_factory=list)

    @property
    def text(self) -> str:
        """Concatenated text of all parts."""
        return "".join(part.text for part in self.parts)

    def story(self) -> str | None:
        """
        The narrative text of a model entry, if it parses.

        Returns None for user entries and for payloads that are not the
        expected JSON object.
        """
        if self.role != HistoryRole.MODEL:
            return None
        try:
            payload = json.loads(self.text)
        except json.JSONDecodeError:
            return None
        if isinstance(payload, dict) and isinstance(payload.get("story"), str):
            return payload["story"]
        return None

    def choices(self) -> list[str]:
        """Choices offered by a model entry, if any."""
        if self.role != HistoryRole.MODEL:
            return []
        try:
            payload = json.loads(self.text)
        except json.JSONDecodeError:
            return []
        if isinstance(payload, dict) and isinstance(payload.get("choices"), list):
            return [str(choice) for choice in payload["choices"]]
        return []


def create_user_entry(text: str) -> HistoryEntry:
    """Build a user entry from already-framed text."""
    return HistoryEntry(role=HistoryRole.USER, parts=[HistoryPart(text=text)])


def create_model_entry(story: str, choices: list[str] | None = None) -> HistoryEntry:
    """Build a model entry carrying the JSON story payload."""
    payload = json.dumps({"story": story, "choices": choices or []}, ensure_ascii=False)
    return HistoryEntry(role=HistoryRole.MODEL, parts=[HistoryPart(text=payload)])


class CompressedHistorySegment(BaseModel):
    """A summarized stand-in for a contiguous run of older entries."""

    turn_range: str = Field(alias="turnRange")
    summary: str
    key_actions: list[str] = Field(default_factory=list, alias="keyActions")
    important_events: list[str] = Field(default_factory=list, alias="importantEvents")
    recent_choices: list[str] = Field(default_factory=list, alias="recentChoices")
    story_flow: list[str] = Field(default_factory=list, alias="storyFlow")
    token_count: int = Field(default=0, ge=0, alias="tokenCount")
    compressed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), alias="compressedAt"
    )

    model_config = {"populate_by_name": True}
