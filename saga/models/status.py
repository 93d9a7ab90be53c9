"""
Status Models for Saga.

Buffs, debuffs and injuries attached to the player character or an NPC.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class StatusType(str, Enum):
    """Broad classification used by the per-owner status limit."""

    BUFF = "buff"
    DEBUFF = "debuff"
    NEUTRAL = "neutral"
    INJURY = "injury"


class Status(BaseModel):
    """
    An active status effect.

    ``type`` is kept as free text: narrative occasionally invents types,
    and the limit only needs equality between them. Known StatusType
    values are normalized to lower case.
    """

    name: str = Field(min_length=1)
    owner: str = "pc"
    description: str = ""
    type: str | None = None
    source: str | None = None
    duration: str | None = None
    effects: str | None = None
    cure_conditions: str | None = Field(default=None, alias="cureConditions")

    model_config = {"extra": "allow", "populate_by_name": True}

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if value.lower() in {t.value for t in StatusType}:
                return value.lower()
        return value
