"""
Memory Enhancement Service for Saga.

Fills in the metadata a raw memory is missing (timestamps, source,
category, related entities, emotional weight, tags) and recomputes its
importance. Enhancement never overwrites metadata that is already set,
except importance, which is always recomputed.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from saga.models.entity import Entity
from saga.models.memory import Memory, MemorySource
from saga.models.state import GameState
from saga.services.importance import analyze_emotional_weight, score_memory, suggest_category

MAX_TAGS = 10

_WHITESPACE = re.compile(r"\s+")

ACTION_TAGS: list[tuple[str, tuple[str, ...]]] = [
    ("combat", ("tấn công", "đánh", "chiến đấu")),
    ("dialogue", ("nói", "thuyết phục", "trò chuyện")),
    ("trade", ("mua", "bán", "giao dịch")),
    ("progression", ("học", "nâng cấp", "tiến bộ")),
    ("exploration", ("tìm", "khám phá", "phát hiện")),
    ("romance", ("yêu", "cưới", "hôn")),
    ("death", ("chết", "tử vong", "hi sinh")),
    ("mystery", ("bí mật", "bí ẩn", "ẩn giấu")),
]

MOOD_TAGS: list[tuple[str, tuple[str, ...]]] = [
    ("positive", ("vui", "hạnh phúc")),
    ("negative", ("buồn", "khó chịu")),
    ("important", ("quan trọng", "đặc biệt")),
    ("night", ("đêm", "tối")),
    ("day", ("ngày", "sáng")),
]


class EnhancementResult(BaseModel):
    """Enhanced memory plus a human-readable change log."""

    enhanced: Memory
    changes: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


def detect_source(text: str) -> MemorySource:
    """Guess where a memory came from by its wording."""
    if text.startswith("⭐") or "Biên niên sử" in text or "Chronicle" in text:
        return MemorySource.CHRONICLE
    if "tự động" in text or "hệ thống" in text or "AI generated" in text:
        return MemorySource.AUTO_GENERATED
    return MemorySource.MANUAL


def name_variations(name: str) -> list[str]:
    """Partial forms of a multi-word name that still identify it."""
    words = [word for word in name.split(" ") if len(word) > 1]
    variations = [word for word in words if len(word) > 2]
    if len(words) > 1:
        variations += [words[0], words[-1], f"{words[0]} {words[-1]}"]
    return variations


def extract_related_entities(text: str, entities: dict[str, Entity]) -> list[str]:
    """Names of known entities mentioned in ``text``, in entity order."""
    lowered = text.lower()
    related: list[str] = []
    for name, entity in entities.items():
        mentioned = name.lower() in lowered or any(
            variation.lower() in lowered for variation in name_variations(name)
        )
        if not mentioned:
            mentioned = any(skill.lower() in lowered for skill in entity.skills)
        if mentioned and name not in related:
            related.append(name)
    return related


def generate_tags(text: str, related_entities: list[str]) -> list[str]:
    """Action, entity, mood and time-of-day tags for a memory (at most 10)."""
    lowered = text.lower()
    tags = [tag for tag, words in ACTION_TAGS if any(w in lowered for w in words)]
    tags += ["entity:" + _WHITESPACE.sub("-", name.lower()) for name in related_entities]
    tags += [tag for tag, words in MOOD_TAGS if any(w in lowered for w in words)]
    return list(dict.fromkeys(tags))[:MAX_TAGS]


def enhance_memory(memory: Memory, state: GameState) -> EnhancementResult:
    """
    Enrich a memory with missing metadata and a fresh importance score.

    Args:
        memory: Memory to enhance (not modified)
        state: Snapshot supplying the turn and known entities

    Returns:
        EnhancementResult with the enhanced copy
    """
    enhanced = memory.model_copy(deep=True)
    changes: list[str] = []
    turn = state.turn_count

    if not enhanced.created_at:
        enhanced.created_at = turn
        changes.append("Added creation timestamp")
    if not enhanced.last_accessed:
        enhanced.last_accessed = turn
        changes.append("Added last accessed timestamp")
    if enhanced.source is None:
        enhanced.source = detect_source(enhanced.text)
        changes.append(f"Detected source: {enhanced.source.value}")
    if enhanced.category is None:
        enhanced.category = suggest_category(enhanced.text)
        changes.append(f"Auto-categorized as: {enhanced.category.value}")
    if not enhanced.related_entities:
        enhanced.related_entities = extract_related_entities(enhanced.text, state.known_entities)
        if enhanced.related_entities:
            changes.append(f"Found related entities: {', '.join(enhanced.related_entities)}")
    if enhanced.emotional_weight is None:
        enhanced.emotional_weight = analyze_emotional_weight(enhanced.text)
        if enhanced.emotional_weight:
            changes.append(f"Emotional weight: {enhanced.emotional_weight}")
    if not enhanced.tags:
        enhanced.tags = generate_tags(enhanced.text, enhanced.related_entities)
        if enhanced.tags:
            changes.append(f"Generated tags: {', '.join(enhanced.tags)}")

    analysis = score_memory(enhanced, state)
    enhanced.importance = analysis.score
    changes.append(f"Importance score: {analysis.score}/100")

    return EnhancementResult(
        enhanced=enhanced, changes=changes, suggestions=analysis.suggestions
    )


def track_memory_access(memory: Memory, turn: int) -> Memory:
    """Return a copy stamped as accessed on ``turn``."""
    return memory.model_copy(update={"last_accessed": turn})


def batch_enhance(memories: list[Memory], state: GameState) -> list[Memory]:
    """Enhance every memory in order."""
    return [enhance_memory(memory, state).enhanced for memory in memories]


def find_related_memories(target: Memory, memories: list[Memory]) -> list[Memory]:
    """
    Memories sharing an entity, or at least two tags, with ``target``.

    Sorted by importance, highest first.
    """
    if not target.related_entities:
        return []
    target_entities = set(target.related_entities)
    target_tags = set(target.tags or [])

    related = []
    for memory in memories:
        if memory is target:
            continue
        shares_entity = bool(target_entities & set(memory.related_entities or []))
        shares_tags = len(target_tags & set(memory.tags or [])) >= 2
        if shares_entity or shares_tags:
            related.append(memory)
    return sorted(related, key=lambda m: m.importance or 0, reverse=True)
