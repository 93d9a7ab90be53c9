"""
Unified Cleanup Coordinator for Saga.

Once per completed turn, keeps memories and history inside the context
budget:
1. Compress old history into a summarized segment
2. Generate smart memories from the last few turns
3. Rescore every memory and keep the most important ones that fit the
   memory token budget and the active-memory ceiling
4. Soft-archive everything else

The coordinator never mutates the state it is given; ``apply`` builds the
next snapshot from a CleanupResult.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from saga.models.history import CompressedHistorySegment, HistoryEntry
from saga.models.memory import Memory, MemoryCategory
from saga.models.state import GameState
from saga.services.enhancer import enhance_memory
from saga.services.history import (
    TOKENS_PER_CHAR,
    TOKENS_PER_ENTRY,
    HistoryConfig,
    manage_history,
)
from saga.services.importance import score_memory
from saga.services.smart_memory import (
    MemoryGenerationResult,
    SmartMemoryConfig,
    SmartMemoryGenerator,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================

ENV_PREFIX = "SAGA_"


class CleanupConfig(BaseModel):
    """
    Thresholds and budgets for the cleanup coordinator.

    Immutable; pass a new instance to change behavior.
    """

    # Memory thresholds
    max_active_memories: int = Field(default=120, ge=1)
    memory_cleanup_threshold: int = Field(default=150, ge=1)
    low_importance_threshold: float = Field(default=40, ge=0, le=100)
    low_importance_limit: int = Field(default=10, ge=0)

    # History thresholds
    max_active_history_entries: int = Field(default=70, ge=2)
    history_compression_threshold: int = Field(default=72, ge=2)
    summary_length: int = Field(default=200, ge=10)

    # Token management
    max_token_budget: int = Field(default=10000, ge=0)
    memory_token_ratio: float = Field(default=0.3, ge=0, le=1)

    # Smart memory generation
    enable_smart_memory_generation: bool = True
    smart_memory: SmartMemoryConfig = Field(
        default_factory=lambda: SmartMemoryConfig(lookback_turns=5)
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _threshold_covers_window(self) -> CleanupConfig:
        if self.history_compression_threshold < self.max_active_history_entries:
            raise ValueError(
                "history_compression_threshold must be >= max_active_history_entries"
            )
        return self

    @property
    def memory_token_budget(self) -> float:
        return self.max_token_budget * self.memory_token_ratio

    @property
    def history_config(self) -> HistoryConfig:
        return HistoryConfig(
            max_active_entries=self.max_active_history_entries,
            compression_threshold=self.history_compression_threshold,
            summary_length=self.summary_length,
        )

    @classmethod
    def from_env(cls, **overrides: object) -> CleanupConfig:
        """
        Build a config from ``SAGA_*`` environment variables.

        Each scalar field reads ``SAGA_<FIELD NAME>``, for example
        ``SAGA_MAX_ACTIVE_MEMORIES``. Explicit overrides win.
        """
        values: dict[str, object] = {}
        for name in cls.model_fields:
            if name == "smart_memory":
                continue
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)


# =============================================================================
# Result Models
# =============================================================================


class CleanupPhase(str, Enum):
    """Coordinator state machine."""

    IDLE = "idle"
    EVALUATING = "evaluating"
    NOOP = "noop"
    PROCESSING = "processing"  # Compress + generate + archive
    APPLIED = "applied"


class CleanupResult(BaseModel):
    """Everything one coordinator pass decided."""

    phase: CleanupPhase = CleanupPhase.NOOP
    cleanup_triggered: bool = False
    turn: int = 0

    # Memories
    kept: list[Memory] = Field(default_factory=list)
    enhanced: list[Memory] = Field(default_factory=list)
    archived: list[Memory] = Field(default_factory=list)
    active_memories: list[Memory] = Field(default_factory=list)

    # History
    compressed_segment: CompressedHistorySegment | None = None
    active_history: list[HistoryEntry] = Field(default_factory=list)
    history_original_size: int = 0
    history_new_size: int = 0

    smart_memories: MemoryGenerationResult | None = None
    tokens_saved: int = 0
    category_counts: dict[str, int] = Field(default_factory=dict)

    @property
    def total_processed(self) -> int:
        return len(self.archived) + len(self.enhanced)


class OptimizationStats(BaseModel):
    """Snapshot of the active memory set."""

    active_memories: int
    archived_memories: int
    average_importance: float
    category_distribution: dict[str, int] = Field(default_factory=dict)
    pinned_count: int = 0
    estimated_token_usage: int = 0


# =============================================================================
# Helpers
# =============================================================================

STALE_AFTER_TURNS = 10
RECENT_ACTIVITY_ENTRIES = 10
RESTORE_LOOKBACK_ENTRIES = 5
RESTORE_TERMS_PER_STORY = 10
DEFAULT_MAX_TO_RESTORE = 5


def estimate_memory_tokens(memory: Memory) -> int:
    """Estimated context cost of one memory including its metadata."""
    tokens = math.ceil(len(memory.text) * TOKENS_PER_CHAR)
    tokens += len(memory.tags or []) * 2
    tokens += len(memory.related_entities or []) * 3
    return tokens


def _recency(memory: Memory) -> int:
    return memory.last_accessed or memory.created_at or 0


def _archive(memory: Memory, turn: int) -> Memory:
    return memory.model_copy(update={"category": MemoryCategory.ARCHIVED, "last_accessed": turn})


def has_recent_entity_activity(name: str, state: GameState) -> bool:
    """Whether ``name`` appears in the last few raw history entries."""
    lowered = name.lower()
    return any(
        lowered in entry.text.lower()
        for entry in state.game_history[-RECENT_ACTIVITY_ENTRIES:]
    )


def needs_enhancement(memory: Memory, state: GameState) -> bool:
    """Metadata missing, older than ten turns, or tied to a recently active entity."""
    if memory.category is None or memory.related_entities is None or memory.tags is None:
        return True
    if state.turn_count - _recency(memory) > STALE_AFTER_TURNS:
        return True
    return any(has_recent_entity_activity(name, state) for name in memory.related_entities)


# =============================================================================
# Coordinator
# =============================================================================


@dataclass
class CleanupCoordinator:
    """
    Runs the unified cleanup at most once per turn.

    A second call for a turn that was already processed, or a call made
    while a pass is in progress, returns a no-op result.
    """

    config: CleanupConfig = field(default_factory=CleanupConfig)
    phase: CleanupPhase = field(default=CleanupPhase.IDLE, init=False)
    last_turn: int | None = field(default=None, init=False)

    def run(self, state: GameState) -> CleanupResult:
        """
        Evaluate and, when needed, perform cleanup for the current turn.

        Args:
            state: Snapshot after the turn's interpretation (not modified)

        Returns:
            CleanupResult; ``cleanup_triggered`` is False for a no-op
        """
        if self.phase not in (CleanupPhase.IDLE, CleanupPhase.NOOP, CleanupPhase.APPLIED):
            logger.warning("Cleanup already running; skipping nested call")
            return self._noop(state)
        if self.last_turn == state.turn_count:
            logger.debug("Cleanup already ran for turn %d", state.turn_count)
            return self._noop(state)

        self.phase = CleanupPhase.EVALUATING
        try:
            result = self._run(state)
        except Exception:
            self.phase = CleanupPhase.IDLE
            raise
        finally:
            self.last_turn = state.turn_count
        self.phase = result.phase
        return result

    def _noop(self, state: GameState) -> CleanupResult:
        return CleanupResult(
            phase=CleanupPhase.NOOP,
            turn=state.turn_count,
            kept=list(state.memories),
            active_memories=list(state.memories),
            active_history=list(state.game_history),
            history_original_size=len(state.game_history),
            history_new_size=len(state.game_history),
        )

    def history_needs_compression(self, state: GameState) -> bool:
        return len(state.game_history) > self.config.history_compression_threshold

    def memories_need_cleanup(self, memories: list[Memory]) -> bool:
        config = self.config
        low = sum(
            1 for m in memories if (m.importance or 0) < config.low_importance_threshold
        )
        return (
            len(memories) > config.max_active_memories
            or len(memories) > config.memory_cleanup_threshold
            or low > config.low_importance_limit
        )

    def _run(self, state: GameState) -> CleanupResult:
        config = self.config
        history_due = self.history_needs_compression(state)
        memory_due = self.memories_need_cleanup(state.memories)
        if not history_due and not memory_due:
            logger.debug(
                "Cleanup not needed: %d memories, %d history entries",
                len(state.memories),
                len(state.game_history),
            )
            return self._noop(state)

        self.phase = CleanupPhase.PROCESSING
        logger.info(
            "Cleanup at turn %d: %d memories, %d history entries",
            state.turn_count,
            len(state.memories),
            len(state.game_history),
        )

        history = manage_history(state.game_history, state.turn_count, config.history_config)

        generated: MemoryGenerationResult | None = None
        if config.enable_smart_memory_generation:
            generated = SmartMemoryGenerator(config.smart_memory).generate(state)

        candidates = [*state.memories, *(generated.memories if generated else [])]
        scored = [
            m.model_copy(update={"importance": score_memory(m, state).score}) for m in candidates
        ]

        if self.memories_need_cleanup(scored):
            kept, enhanced, archived, active = self.partition(scored, state)
        else:
            kept, enhanced, archived, active = scored, [], [], scored

        tokens_saved = history.saved_entries * TOKENS_PER_ENTRY + sum(
            estimate_memory_tokens(m) for m in archived
        )
        category_counts: dict[str, int] = {}
        for memory in active:
            key = memory.category.value if memory.category else "uncategorized"
            category_counts[key] = category_counts.get(key, 0) + 1

        triggered = (
            history.compressed
            or bool(archived or enhanced)
            or bool(generated and generated.memories)
        )
        result = CleanupResult(
            phase=CleanupPhase.APPLIED if triggered else CleanupPhase.NOOP,
            cleanup_triggered=triggered,
            turn=state.turn_count,
            kept=kept,
            enhanced=enhanced,
            archived=archived,
            active_memories=active,
            compressed_segment=history.compressed_segment,
            active_history=history.active_history,
            history_original_size=history.original_size,
            history_new_size=history.new_size,
            smart_memories=generated,
            tokens_saved=tokens_saved,
            category_counts=category_counts,
        )
        if triggered:
            logger.info(
                "Cleanup done: %d kept, %d enhanced, %d archived, %d generated, ~%d tokens saved",
                len(kept),
                len(enhanced),
                len(archived),
                len(generated.memories) if generated else 0,
                tokens_saved,
            )
        return result

    def partition(
        self, memories: list[Memory], state: GameState
    ) -> tuple[list[Memory], list[Memory], list[Memory], list[Memory]]:
        """
        Greedy budget-bounded selection over freshly scored memories.

        Pinned memories are admitted first, up to the active ceiling. The
        rest are admitted by importance (recency breaks ties) while they
        fit the memory token budget; low-importance ones are archived.

        Returns:
            (kept, enhanced, archived, active); ``active`` is kept plus
            enhanced in their original relative order
        """
        config = self.config
        budget = config.memory_token_budget
        turn = state.turn_count
        ordered = sorted(
            range(len(memories)),
            key=lambda i: (memories[i].importance or 0, _recency(memories[i])),
            reverse=True,
        )

        kept: list[Memory] = []
        enhanced: list[Memory] = []
        archived: list[Memory] = []
        admitted: dict[int, Memory] = {}
        usage = 0

        for index in ordered:
            memory = memories[index]
            if not memory.pinned:
                continue
            if len(admitted) < config.max_active_memories:
                admitted[index] = memory
                kept.append(memory)
                usage += estimate_memory_tokens(memory)
            else:
                archived.append(_archive(memory, turn))

        for index in ordered:
            memory = memories[index]
            if memory.pinned:
                continue
            if (memory.importance or 0) < config.low_importance_threshold:
                archived.append(_archive(memory, turn))
                continue

            refresh = needs_enhancement(memory, state)
            candidate = enhance_memory(memory, state).enhanced if refresh else memory
            cost = estimate_memory_tokens(candidate)
            if usage + cost <= budget and len(admitted) < config.max_active_memories:
                admitted[index] = candidate
                (enhanced if refresh else kept).append(candidate)
                usage += cost
            else:
                archived.append(_archive(memory, turn))

        active = [admitted[i] for i in sorted(admitted)]
        return kept, enhanced, archived, active


# =============================================================================
# Operations
# =============================================================================


def apply(state: GameState, result: CleanupResult) -> GameState:
    """
    Compose the next snapshot from a cleanup result.

    A no-op result returns ``state`` itself.
    """
    if not result.cleanup_triggered:
        return state
    updated = state.model_copy(deep=True)
    updated.memories = [m.model_copy(deep=True) for m in result.active_memories]
    updated.archived_memories = [
        *updated.archived_memories,
        *(m.model_copy(deep=True) for m in result.archived),
    ]
    updated.game_history = [e.model_copy(deep=True) for e in result.active_history]
    if result.compressed_segment is not None:
        updated.compressed_history = [
            *updated.compressed_history,
            result.compressed_segment.model_copy(deep=True),
        ]
    return updated


def coordinated_cleanup(state: GameState, config: CleanupConfig | None = None) -> CleanupResult:
    """One-off cleanup pass with a fresh coordinator."""
    return CleanupCoordinator(config or CleanupConfig()).run(state)


def recent_activity_terms(state: GameState) -> list[str]:
    """Words from recent narration plus party names and recent locations."""
    terms: list[str] = []
    for entry in state.game_history[-RESTORE_LOOKBACK_ENTRIES:]:
        story = entry.story()
        if story:
            words = [word for word in story.split() if len(word) > 3]
            terms += words[:RESTORE_TERMS_PER_STORY]
    terms += [member.name for member in state.party]
    terms += state.location_discovery_order[-3:]
    return list(dict.fromkeys(terms))


def restore_relevant_memories(
    archived: list[Memory],
    state: GameState,
    max_to_restore: int = DEFAULT_MAX_TO_RESTORE,
) -> list[Memory]:
    """
    Bring back archived memories that recent activity mentions again.

    Returns restored copies (most important first) stamped with the current
    turn; the archived category reverts to general.
    """
    if not archived:
        return []
    terms = [term.lower() for term in recent_activity_terms(state)]

    def relevant(memory: Memory) -> bool:
        text = memory.text.lower()
        entities = [e.lower() for e in memory.related_entities or []]
        return any(term in text or any(term in e for e in entities) for term in terms)

    matches = sorted(
        (m for m in archived if relevant(m)), key=lambda m: m.importance or 0, reverse=True
    )[:max_to_restore]
    if matches:
        logger.info("Restoring %d archived memories", len(matches))

    restored = []
    for memory in matches:
        category = (
            MemoryCategory.GENERAL if memory.category == MemoryCategory.ARCHIVED else memory.category
        )
        restored.append(
            memory.model_copy(update={"last_accessed": state.turn_count, "category": category})
        )
    return restored


def get_optimization_stats(
    memories: list[Memory], archived: list[Memory] | None = None
) -> OptimizationStats:
    """Counts, average importance and token usage of the active memories."""
    distribution: dict[str, int] = {}
    for memory in memories:
        if memory.category:
            distribution[memory.category.value] = distribution.get(memory.category.value, 0) + 1
    total_importance = sum(m.importance or 0 for m in memories)
    return OptimizationStats(
        active_memories=len(memories),
        archived_memories=len(archived or []),
        average_importance=total_importance / len(memories) if memories else 0.0,
        category_distribution=distribution,
        pinned_count=sum(1 for m in memories if m.pinned),
        estimated_token_usage=sum(estimate_memory_tokens(m) for m in memories),
    )
