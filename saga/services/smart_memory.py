"""
Smart Memory Generation for Saga.

Synthesizes new memories from the last few turns of history: notable
events in the model's narration, party relationships, completed quests
and freshly discovered locations. Generation is deterministic for a
given state and configuration.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from saga.models.entity import EntityType
from saga.models.history import HistoryEntry
from saga.models.memory import Memory, MemoryCategory, MemorySource
from saga.models.quest import QuestStatus
from saga.models.state import GameState
from saga.services.enhancer import enhance_memory

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


class SmartMemoryConfig(BaseModel):
    """Smart memory generation settings."""

    # Category toggles
    enable_event_memories: bool = True
    enable_relationship_memories: bool = True
    enable_discovery_memories: bool = True
    enable_combat_memories: bool = True
    enable_achievement_memories: bool = True

    # Limits
    min_importance_threshold: float = Field(default=50, ge=0, le=100)
    max_memories_per_turn: int = Field(default=1, ge=0, le=10)
    lookback_turns: int = Field(default=2, ge=1, le=20)

    model_config = {"frozen": True}


# =============================================================================
# Constants
# =============================================================================

HIGH_IMPORTANCE = 70
MEDIUM_IMPORTANCE = 40

EXACT_SIMILARITY = 0.8
OVERLAP_SIMILARITY = 0.6
SIGNIFICANT_OVERLAP = 0.5

MIN_MEMORY_LENGTH = 10
MAX_MEMORY_LENGTH = 300
MAX_SENTENCE_LENGTH = 200

STOP_WORDS = frozenset(
    {"và", "với", "của", "trong", "để", "cho", "từ", "có", "là", "được", "một", "này", "đó"}
)

CONTEXT_TAGS: list[tuple[str, tuple[str, ...]]] = [
    ("combat", ("chiến đấu", "tấn công", "đánh")),
    ("exploration", ("khám phá", "tìm thấy", "phát hiện")),
    ("learning", ("học", "kỹ năng", "phép thuật")),
    ("commerce", ("giao dịch", "mua", "bán")),
    ("dialogue", ("nói chuyện", "thuyết phục")),
]

_PUNCTUATION = re.compile(r"[.,!?;:]")
_WHITESPACE = re.compile(r"\s+")
_SENTENCE_END = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class EventPattern:
    """A narration pattern worth remembering and the config flag enabling it."""

    pattern: re.Pattern[str]
    category: MemoryCategory
    importance: float
    toggle: str


EVENT_PATTERNS = [
    EventPattern(
        re.compile(r"(khám phá|tìm thấy|phát hiện) ([^.!?]+)", re.IGNORECASE),
        MemoryCategory.DISCOVERY,
        60,
        "enable_discovery_memories",
    ),
    EventPattern(
        re.compile(r"(chiến đấu|tấn công|đánh bại|chiến thắng|thất bại) ([^.!?]+)", re.IGNORECASE),
        MemoryCategory.COMBAT,
        65,
        "enable_combat_memories",
    ),
    EventPattern(
        re.compile(r"(gặp gỡ|nói chuyện|thuyết phục|giao dịch) ([^.!?]+)", re.IGNORECASE),
        MemoryCategory.SOCIAL,
        55,
        "enable_relationship_memories",
    ),
    EventPattern(
        re.compile(r"(nhận được|thu thập|học được) ([^.!?]+)", re.IGNORECASE),
        MemoryCategory.GENERAL,
        50,
        "enable_event_memories",
    ),
    EventPattern(
        re.compile(r"(hoàn thành|đạt được|thành công) ([^.!?]+)", re.IGNORECASE),
        MemoryCategory.STORY,
        70,
        "enable_achievement_memories",
    ),
]


# =============================================================================
# Result Models
# =============================================================================


class GenerationStats(BaseModel):
    """Counters for one generation pass."""

    events_analyzed: int = 0
    memories_generated: int = 0
    high_importance_count: int = 0
    categories_covered: list[str] = Field(default_factory=list)


class MemoryGenerationResult(BaseModel):
    """New memories plus human-readable insights."""

    memories: list[Memory] = Field(default_factory=list)
    insights: list[str] = Field(default_factory=list)
    stats: GenerationStats = Field(default_factory=GenerationStats)


class GenerationSummary(BaseModel):
    """Aggregate view over a set of generated memories."""

    total_generated: int
    by_category: dict[str, int] = Field(default_factory=dict)
    by_importance: dict[str, int] = Field(default_factory=dict)
    average_importance: float = 0.0


# =============================================================================
# Similarity helpers
# =============================================================================


def normalize_memory_text(text: str) -> str:
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub("", text.lower())).strip()


def extract_keywords(text: str) -> list[str]:
    return [word for word in text.split(" ") if len(word) > 2 and word not in STOP_WORDS]


def text_similarity(words_a: list[str], words_b: list[str]) -> float:
    """Jaccard similarity of two keyword lists."""
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    set_a, set_b = set(words_a), set(words_b)
    return len(set_a & set_b) / len(set_a | set_b)


def has_significant_overlap(items_a: list[str], items_b: list[str]) -> bool:
    """At least half of the smaller list also appears in the other."""
    if not items_a and not items_b:
        return True
    if not items_a or not items_b:
        return False
    set_a = {item.lower() for item in items_a}
    set_b = {item.lower() for item in items_b}
    return len(set_a & set_b) / min(len(set_a), len(set_b)) >= SIGNIFICANT_OVERLAP


def is_duplicate_memory(candidate: Memory, existing: list[Memory]) -> bool:
    """
    Whether ``candidate`` repeats something already remembered.

    A candidate is a duplicate on identical normalized text, on keyword
    similarity above 0.8, or when it shares the category, related
    entities and tags of a memory it is at least 0.6 similar to.
    """
    text = normalize_memory_text(candidate.text)
    words = extract_keywords(text)
    for memory in existing:
        other = normalize_memory_text(memory.text)
        if text == other:
            return True
        similarity = text_similarity(words, extract_keywords(other))
        if similarity > EXACT_SIMILARITY:
            return True
        if (
            candidate.category == memory.category
            and similarity > OVERLAP_SIMILARITY
            and has_significant_overlap(
                candidate.related_entities or [], memory.related_entities or []
            )
            and has_significant_overlap(candidate.tags or [], memory.tags or [])
        ):
            return True
    return False


def deduplicate_memories(memories: list[Memory]) -> list[Memory]:
    unique: list[Memory] = []
    for memory in memories:
        if not is_duplicate_memory(memory, unique):
            unique.append(memory)
    return unique


# =============================================================================
# Generator
# =============================================================================


@dataclass
class SmartMemoryGenerator:
    """Builds memories from recent history."""

    config: SmartMemoryConfig = field(default_factory=SmartMemoryConfig)

    def generate(self, state: GameState) -> MemoryGenerationResult:
        """
        Generate new memories for the current turn.

        Args:
            state: Snapshot whose recent history is analyzed (not modified)

        Returns:
            MemoryGenerationResult with at most ``max_memories_per_turn`` memories
        """
        config = self.config
        memories: list[Memory] = []
        events_analyzed = 0

        for entry in self.recent_entries(state.game_history):
            if len(memories) >= config.max_memories_per_turn:
                break
            story = entry.story()
            if not story:
                continue
            events_analyzed += 1
            qualified = [
                memory
                for memory in self.analyze_story(story, state)
                if (memory.importance or 0) >= config.min_importance_threshold
                and not is_duplicate_memory(memory, state.memories + memories)
            ]
            memories.extend(qualified)

        extra: list[Memory] = []
        if config.enable_relationship_memories:
            extra += self.relationship_memories(state)
        if config.enable_achievement_memories:
            extra += self.achievement_memories(state)
        for memory in extra:
            if not is_duplicate_memory(memory, state.memories + memories):
                memories.append(memory)

        final = sorted(
            deduplicate_memories(memories), key=lambda m: m.importance or 0, reverse=True
        )[: config.max_memories_per_turn]

        categories = list(dict.fromkeys(m.category.value for m in final if m.category))
        high = sum(1 for m in final if (m.importance or 0) >= HIGH_IMPORTANCE)
        insights: list[str] = []
        if final:
            insights.append(f"Generated {len(final)} smart memories from recent events")
            if high:
                insights.append(f"{high} high-importance memories created")
            if categories:
                insights.append(f"Covered categories: {', '.join(categories)}")

        logger.debug(
            "Smart memory generation at turn %d: %d analyzed, %d generated",
            state.turn_count,
            events_analyzed,
            len(final),
        )
        return MemoryGenerationResult(
            memories=final,
            insights=insights,
            stats=GenerationStats(
                events_analyzed=events_analyzed,
                memories_generated=len(final),
                high_importance_count=high,
                categories_covered=categories,
            ),
        )

    def recent_entries(self, history: list[HistoryEntry]) -> list[HistoryEntry]:
        """The last ``lookback_turns`` turns (a user and a model entry each)."""
        count = min(self.config.lookback_turns * 2, len(history))
        return history[len(history) - count :]

    def analyze_story(self, story: str, state: GameState) -> list[Memory]:
        """Candidate memories for every enabled event pattern found in ``story``."""
        memories: list[Memory] = []
        for event in EVENT_PATTERNS:
            if not getattr(self.config, event.toggle):
                continue
            for match in event.pattern.finditer(story):
                text = memory_text_from_event(match.group(0), story)
                if not MIN_MEMORY_LENGTH < len(text) < MAX_MEMORY_LENGTH:
                    continue
                memory = Memory(
                    text=text,
                    source=MemorySource.AUTO_GENERATED,
                    category=event.category,
                    created_at=state.turn_count,
                    last_accessed=state.turn_count,
                    importance=event.importance,
                    tags=extract_tags(text, state),
                )
                memories.append(enhance_memory(memory, state).enhanced)
        return memories

    def relationship_memories(self, state: GameState) -> list[Memory]:
        memories = []
        for member in state.party:
            if not member.relationship:
                continue
            memory = Memory(
                text=f"Mối quan hệ với {member.name}: {member.relationship}",
                source=MemorySource.AUTO_GENERATED,
                category=MemoryCategory.RELATIONSHIP,
                created_at=state.turn_count,
                last_accessed=state.turn_count,
                importance=60,
                related_entities=[member.name],
                tags=["relationship", "party", member.name.lower()],
            )
            memories.append(enhance_memory(memory, state).enhanced)
        return memories

    def achievement_memories(self, state: GameState) -> list[Memory]:
        """Completed quests and locations discovered within the lookback window."""
        memories = []
        for quest in state.quests:
            if quest.status != QuestStatus.COMPLETED:
                continue
            memory = Memory(
                text=f"Hoàn thành nhiệm vụ: {quest.title}",
                source=MemorySource.AUTO_GENERATED,
                category=MemoryCategory.STORY,
                created_at=state.turn_count,
                last_accessed=state.turn_count,
                importance=80 if quest.is_main_quest else 60,
                related_entities=[quest.giver] if quest.giver else [],
                tags=["achievement", "quest", "main_quest" if quest.is_main_quest else "side_quest"],
            )
            memories.append(enhance_memory(memory, state).enhanced)

        for location in state.entities_of_type(EntityType.LOCATION):
            recent = (
                location.discovered_at is None
                or state.turn_count - location.discovered_at <= self.config.lookback_turns
            )
            if not recent or not location.description:
                continue
            memory = Memory(
                text=f"Khám phá địa điểm mới: {location.name}",
                source=MemorySource.AUTO_GENERATED,
                category=MemoryCategory.DISCOVERY,
                created_at=state.turn_count,
                last_accessed=state.turn_count,
                importance=55,
                related_entities=[location.name],
                tags=["discovery", EntityType.LOCATION.value, location.name.lower()],
            )
            memories.append(enhance_memory(memory, state).enhanced)
        return memories


def memory_text_from_event(event: str, story: str) -> str:
    """The sentence of ``story`` containing ``event``, or the event itself."""
    event = event.strip()
    for sentence in _SENTENCE_END.split(story):
        if event.lower() in sentence.lower():
            if len(sentence) < MAX_SENTENCE_LENGTH:
                return sentence.strip()
            break
    return event


def extract_tags(text: str, state: GameState) -> list[str]:
    """Entity and context tags for an event memory."""
    lowered = text.lower()
    tags: list[str] = []
    for entity in state.known_entities.values():
        if entity.name.lower() in lowered:
            tags += [entity.name.lower(), entity.type.value]
    tags += [tag for tag, words in CONTEXT_TAGS if any(w in lowered for w in words)]
    return list(dict.fromkeys(tags))


def generate_smart_memories(
    state: GameState, config: SmartMemoryConfig | None = None
) -> MemoryGenerationResult:
    """Standalone generation with the given (or default) settings."""
    return SmartMemoryGenerator(config or SmartMemoryConfig()).generate(state)


def get_generation_stats(memories: list[Memory]) -> GenerationSummary:
    """Category and importance breakdown of a set of memories."""
    by_category: dict[str, int] = {}
    by_importance = {"high": 0, "medium": 0, "low": 0}
    total = 0.0
    for memory in memories:
        if memory.category:
            key = memory.category.value
            by_category[key] = by_category.get(key, 0) + 1
        importance = memory.importance or 0
        total += importance
        if importance >= HIGH_IMPORTANCE:
            by_importance["high"] += 1
        elif importance >= MEDIUM_IMPORTANCE:
            by_importance["medium"] += 1
        else:
            by_importance["low"] += 1
    return GenerationSummary(
        total_generated=len(memories),
        by_category=by_category,
        by_importance=by_importance,
        average_importance=total / len(memories) if memories else 0.0,
    )
