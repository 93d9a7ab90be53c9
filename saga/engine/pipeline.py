"""
Turn Pipeline for Saga.

The main orchestration layer that processes player turns:
1. Substitution rules on the player's input
2. Prompt assembly from memories, compressed history and recent turns
3. Narrative generation (the only await point)
4. Tag interpretation of the generated story and skill-usage experience
5. History bookkeeping and the once-per-turn cleanup
6. Snapshot persistence

A turn either completes fully or leaves the state exactly as it was.
"""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from saga.db.interfaces import SnapshotRepository
from saga.interpreter.core import TagInterpreter
from saga.models.history import HistoryRole, create_model_entry, create_user_entry
from saga.models.memory import Memory
from saga.models.regex_rule import RegexPlacement, RegexRule
from saga.models.state import GameState
from saga.services.cleanup import CleanupConfig, CleanupCoordinator, CleanupResult, apply
from saga.services.history import estimate_tokens
from saga.services.llm import LLMProvider
from saga.services.progression import award_skill_usage
from saga.services.regex_rules import (
    RegexProcessingParams,
    apply_regex_rules,
    macro_context_from_state,
)

logger = logging.getLogger(__name__)

ACTION_HEADER = "--- HÀNH ĐỘNG CỦA NGƯỜI CHƠI ---"

DEFAULT_SYSTEM_INSTRUCTION = (
    "Bạn là người dẫn truyện của một trò chơi nhập vai. "
    'Trả lời bằng JSON {"story": "...", "choices": ["..."]} và dùng các thẻ '
    "[TAG: key=value] để cập nhật trạng thái trò chơi."
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$")


# =============================================================================
# Configuration and Results
# =============================================================================


class PipelineConfig(BaseModel):
    """Turn pipeline settings."""

    # LLM settings
    max_tokens: int = Field(default=2048, ge=1)
    temperature: float = Field(default=0.8, ge=0, le=2)
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION

    # Prompt context
    max_prompt_memories: int = Field(default=30, ge=0)

    # Gating
    cooldown_seconds: float = Field(default=1.0, ge=0)

    model_config = {"frozen": True}


class TurnResult(BaseModel):
    """Result returned to the player."""

    display_text: str = ""
    choices: list[str] = Field(default_factory=list)
    state: GameState

    # Details
    events: list[str] = Field(default_factory=list)
    unprocessed_tags: list[str] = Field(default_factory=list)
    failed_tags: list[str] = Field(default_factory=list)
    reasoning: str | None = None
    cleanup: CleanupResult | None = None

    # Meta
    turn: int = 0
    processing_time_ms: int = 0
    skipped: bool = False

    # Error info (if any)
    error: str | None = None


def frame_player_action(action: str) -> str:
    """Wrap a player action the way history and prompts carry it."""
    return f'{ACTION_HEADER}\n"{action}"'


def parse_model_response(raw: str) -> tuple[str, list[str]]:
    """
    Extract ``story`` and ``choices`` from a model response.

    Responses that are not the expected JSON object are used verbatim as
    the story.
    """
    text = raw.strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return raw, []
    if not isinstance(payload, dict) or not isinstance(payload.get("story"), str):
        return raw, []
    choices = payload.get("choices")
    return payload["story"], [str(c) for c in choices] if isinstance(choices, list) else []


# =============================================================================
# Pipeline
# =============================================================================


@dataclass
class TurnPipeline:
    """
    Runs player turns against a game state.

    State is never mutated in place: each successful turn returns a new
    snapshot in its TurnResult.
    """

    provider: LLMProvider
    config: PipelineConfig = field(default_factory=PipelineConfig)
    cleanup_config: CleanupConfig = field(default_factory=CleanupConfig)
    regex_rules: list[RegexRule] = field(default_factory=list)
    repository: SnapshotRepository | None = None
    interpreter: TagInterpreter = field(default_factory=TagInterpreter)
    clock: Callable[[], float] = time.monotonic

    _coordinator: CleanupCoordinator = field(init=False)
    _last_call: float | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        if not self.interpreter.regex_rules:
            self.interpreter.regex_rules = self.regex_rules
        self._coordinator = CleanupCoordinator(self.cleanup_config)

    def build_messages(self, state: GameState, action: str) -> list[dict[str, str]]:
        """Chat messages for the next generation request."""
        system = [self.config.system_instruction]

        memories = self._prompt_memories(state.memories)
        if memories:
            system.append("KÝ ỨC:\n" + "\n".join(f"- {m.text}" for m in memories))
        if state.compressed_history:
            system.append(
                "TÓM TẮT LỊCH SỬ:\n"
                + "\n".join(f"- {segment.summary}" for segment in state.compressed_history)
            )

        messages = [{"role": "system", "content": "\n\n".join(system)}]
        for entry in state.game_history:
            role = "user" if entry.role == HistoryRole.USER else "assistant"
            messages.append({"role": role, "content": entry.text})
        messages.append({"role": "user", "content": frame_player_action(action)})
        return messages

    def _prompt_memories(self, memories: list[Memory]) -> list[Memory]:
        pinned = [m for m in memories if m.pinned]
        others = sorted(
            (m for m in memories if not m.pinned),
            key=lambda m: m.importance or 0,
            reverse=True,
        )
        return (pinned + others)[: self.config.max_prompt_memories]

    async def process_turn(self, state: GameState, action: str) -> TurnResult:
        """
        Process a single player turn.

        Args:
            state: Snapshot after the last successful turn (not modified)
            action: Raw text from the player

        Returns:
            TurnResult with the display text and the next snapshot; on a
            gated or failed generation, ``skipped`` is set and ``state`` is
            the input snapshot
        """
        start_time = time.time()

        now = self.clock()
        if self._last_call is not None and now - self._last_call < self.config.cooldown_seconds:
            logger.info("Turn skipped: cooldown active")
            return TurnResult(
                state=state, turn=state.turn_count, skipped=True, error="Cooldown active"
            )
        self._last_call = now

        macros = macro_context_from_state(state, action)
        action = apply_regex_rules(
            action,
            RegexPlacement.PLAYER_INPUT,
            self.regex_rules,
            RegexProcessingParams(depth=state.turn_count),
            macros,
        )
        messages = self.build_messages(state, action)

        try:
            raw = await self.provider.complete(
                messages=messages,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
        except Exception as e:
            logger.warning("Generation failed, state left unchanged: %s", e)
            return TurnResult(state=state, turn=state.turn_count, skipped=True, error=str(e))

        story, choices = parse_model_response(raw)
        story = apply_regex_rules(
            story,
            RegexPlacement.AI_OUTPUT,
            self.regex_rules,
            RegexProcessingParams(depth=state.turn_count),
            macros,
        )

        interpreted = self.interpreter.interpret(story, state)

        next_state = interpreted.state
        events = list(interpreted.events)
        for usage in award_skill_usage(next_state, action):
            events.append(f"Skill used: {usage.skill.name} +{usage.exp_gained} exp")
        next_state.game_history.append(create_user_entry(frame_player_action(action)))
        next_state.game_history.append(create_model_entry(story, choices))
        next_state.turn_count += 1
        next_state.total_tokens += estimate_tokens(
            "".join(m["content"] for m in messages) + raw
        )

        cleanup = self._coordinator.run(next_state)
        next_state = apply(next_state, cleanup)

        if self.repository is not None:
            self.repository.save(next_state)

        logger.info(
            "Turn %d processed: %d tags applied, %d unprocessed, %d failed",
            next_state.turn_count,
            len(interpreted.applied),
            len(interpreted.unprocessed_tags),
            len(interpreted.failed_tags),
        )
        return TurnResult(
            display_text=interpreted.display_text,
            choices=choices,
            state=next_state,
            events=events,
            unprocessed_tags=interpreted.unprocessed_tags,
            failed_tags=interpreted.failed_tags,
            reasoning=interpreted.reasoning,
            cleanup=cleanup,
            turn=next_state.turn_count,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )

    def rehydrate_transcript(self, state: GameState) -> list[str]:
        """
        Display texts of every stored model entry.

        Stories are replayed in dry-run mode, so tags are stripped but
        nothing is applied again.
        """
        texts = []
        for entry in state.game_history:
            story = entry.story()
            if story is None:
                continue
            result = self.interpreter.interpret(story, state, apply_side_effects=False)
            texts.append(result.display_text)
        return texts
