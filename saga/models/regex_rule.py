"""
Text Substitution Rule Models for Saga.

User-authored find/replace rules that run at fixed injection points of the
turn pipeline (player input, model output, memory creation, ...).
"""

from __future__ import annotations

from enum import IntEnum

from pydantic import BaseModel, Field


class RegexPlacement(IntEnum):
    """Injection points a rule can run at."""

    PLAYER_INPUT = 1
    AI_OUTPUT = 2
    MEMORY_PROCESSING = 3
    ENTITY_DETECTION = 4
    QUEST_PROCESSING = 5
    DIALOGUE_FORMATTING = 6
    STAT_EXTRACTION = 7
    COMBAT_FORMATTING = 8


class RegexSubstituteMode(IntEnum):
    """How ``{{macro}}`` references inside the find pattern are expanded."""

    NONE = 0  # Leave macros untouched
    RAW = 1  # Insert macro values verbatim
    ESCAPED = 2  # Insert macro values regex-escaped


class RegexRule(BaseModel):
    """A single find/replace rule."""

    id: str
    name: str = ""
    find_regex: str = Field(alias="findRegex")
    replace_string: str = Field(default="", alias="replaceString")
    trim_strings: list[str] = Field(default_factory=list, alias="trimStrings")
    placement: list[RegexPlacement] = Field(default_factory=list)
    disabled: bool = False
    markdown_only: bool = Field(default=False, alias="markdownOnly")
    prompt_only: bool = Field(default=False, alias="promptOnly")
    run_on_edit: bool = Field(default=True, alias="runOnEdit")
    substitute_regex: RegexSubstituteMode = Field(
        default=RegexSubstituteMode.NONE, alias="substituteRegex"
    )
    min_depth: int | None = Field(default=None, alias="minDepth")
    max_depth: int | None = Field(default=None, alias="maxDepth")
    created_at: int = Field(default=0, alias="createdAt")

    model_config = {"populate_by_name": True}
