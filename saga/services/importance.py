"""
Importance Scoring Service for Saga.

Scores memories on a 0-100 salience scale. The score decides which
memories stay in the active context and which get archived, so it is
recomputed every time the cleanup coordinator ranks memories.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field

from saga.models.entity import EntityType
from saga.models.memory import Memory, MemoryCategory, MemorySource
from saga.models.state import GameState


# =============================================================================
# Constants
# =============================================================================

SOURCE_SCORES: dict[MemorySource | None, float] = {
    MemorySource.CHRONICLE: 30,
    MemorySource.MANUAL: 20,
}
DEFAULT_SOURCE_SCORE = 10
PINNED_BONUS = 50

CATEGORY_SCORES: dict[MemoryCategory, float] = {
    MemoryCategory.STORY: 15,
    MemoryCategory.RELATIONSHIP: 10,
    MemoryCategory.COMBAT: 8,
    MemoryCategory.DISCOVERY: 6,
    MemoryCategory.SOCIAL: 5,
}

CONTENT_SCORE_CAP = 50

# (patterns, points per match)
CONTENT_PATTERNS: list[tuple[list[re.Pattern[str]], float]] = [
    (
        [
            re.compile(r"chết|tử vong|hi sinh|thiệt mạng"),
            re.compile(r"cưới|kết hôn|đính hôn"),
            re.compile(r"chiến thắng|thắng lợi|đại thắng"),
            re.compile(r"thua cuộc|thất bại|thảm bại"),
            re.compile(r"yêu|phải lòng|si mê"),
        ],
        10,
    ),
    (
        [
            re.compile(r"học được|nâng cấp|tiến bộ|thăng cấp"),
            re.compile(r"gặp gỡ|kết bạn|đồng minh|thù địch"),
            re.compile(r"nhận được|tìm thấy|thu thập|mua được"),
            re.compile(r"bí mật|bí ẩn|khám phá|phát hiện"),
        ],
        5,
    ),
    (
        [
            re.compile(r"ăn|uống|ngủ|nghỉ ngơi"),
            re.compile(r"mua sắm|đi chợ|dạo phố"),
            re.compile(r"trò chuyện|nói chuyện|tám"),
        ],
        1,
    ),
]

# First match wins
CATEGORY_PATTERNS: list[tuple[MemoryCategory, re.Pattern[str]]] = [
    (MemoryCategory.COMBAT, re.compile(r"tấn công|đánh|chiến đấu|giết|chém|đâm|phòng thủ|né tránh")),
    (MemoryCategory.RELATIONSHIP, re.compile(r"yêu|ghét|bạn|thù|cưới|hôn|thân thiết|xa cách")),
    (MemoryCategory.DISCOVERY, re.compile(r"tìm thấy|khám phá|phát hiện|bí mật|bí ẩn|tìm kiếm")),
    (MemoryCategory.SOCIAL, re.compile(r"nói|thuyết phục|giao dịch|mua|bán|gặp gỡ|trò chuyện")),
    (MemoryCategory.STORY, re.compile(r"chết|cưới|chiến thắng|thất bại|kết thúc|bắt đầu")),
]

EMOTION_PATTERNS: list[tuple[list[re.Pattern[str]], float]] = [
    (
        [
            re.compile(r"hạnh phúc|vui mừng|phấn khích|tuyệt vời"),
            re.compile(r"yêu|phải lòng|si mê|đam mê"),
            re.compile(r"chiến thắng|thành công|đại thắng"),
        ],
        4,
    ),
    (
        [
            re.compile(r"vui|thoải mái|hài lòng|tốt"),
            re.compile(r"bạn bè|đồng minh|tin tưởng"),
        ],
        1.5,
    ),
    (
        [
            re.compile(r"chết|tử vong|thảm kịch|đau khổ"),
            re.compile(r"ghét|căm thù|thù địch|phản bội"),
            re.compile(r"thất bại|thảm bại|thua cuộc"),
        ],
        -4,
    ),
    (
        [
            re.compile(r"buồn|khó chịu|thất vọng|lo lắng"),
            re.compile(r"kẻ thù|đối địch|xung đột"),
        ],
        -1.5,
    ),
]


# =============================================================================
# Result Models
# =============================================================================


class ImportanceAnalysis(BaseModel):
    """Score plus the reasons that produced it."""

    score: float = Field(ge=0, le=100)
    reasons: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)


# =============================================================================
# Scoring
# =============================================================================


def _count_weighted(text: str, groups: list[tuple[list[re.Pattern[str]], float]]) -> float:
    total = 0.0
    for patterns, points in groups:
        for pattern in patterns:
            total += len(pattern.findall(text)) * points
    return total


def analyze_content_importance(text: str) -> float:
    """Keyword bonus for a memory text, capped at 50."""
    return min(CONTENT_SCORE_CAP, _count_weighted(text.lower(), CONTENT_PATTERNS))


def score_memory(memory: Memory, state: GameState) -> ImportanceAnalysis:
    """
    Compute the importance of a memory against the current state.

    Args:
        memory: Memory to score
        state: Snapshot providing the current turn and known entities

    Returns:
        ImportanceAnalysis with a clamped 0-100 score
    """
    reasons: list[str] = []
    suggestions: list[str] = []

    score = SOURCE_SCORES.get(memory.source, DEFAULT_SOURCE_SCORE)
    reasons.append(f"Source {memory.source.value if memory.source else 'unknown'} (+{score})")

    if memory.pinned:
        score += PINNED_BONUS
        reasons.append(f"User pinned (+{PINNED_BONUS})")

    if memory.created_at:
        recency = max(0.0, 20 - (state.turn_count - memory.created_at) * 0.5)
        if recency > 0:
            score += recency
            reasons.append(f"Recent creation (+{recency:.1f})")

    if memory.last_accessed:
        access = max(0.0, 15 - (state.turn_count - memory.last_accessed) * 0.3)
        if access > 0:
            score += access
            reasons.append(f"Recently accessed (+{access:.1f})")

    entity_bonus = 0
    for name in memory.related_entities or []:
        entity = state.known_entities.get(name)
        if entity is None:
            continue
        if entity.type == EntityType.COMPANION:
            entity_bonus += 10
        elif entity.type == EntityType.PC or entity.owner == "pc":
            entity_bonus += 5
        elif entity.type == EntityType.NPC:
            entity_bonus += 3
    if entity_bonus:
        score += entity_bonus
        reasons.append(f"Related entities (+{entity_bonus})")

    if memory.emotional_weight:
        emotional = abs(memory.emotional_weight) * 2
        score += emotional
        reasons.append(f"Emotional significance (+{emotional})")

    category_bonus = CATEGORY_SCORES.get(memory.category) if memory.category else None
    if category_bonus:
        score += category_bonus
        reasons.append(f"{memory.category.value.title()} category (+{category_bonus})")

    content = analyze_content_importance(memory.text)
    if content > 0:
        score += content
        reasons.append(f"Content keywords (+{content})")

    if not memory.created_at:
        suggestions.append("Add creation timestamp for recency tracking")
    if not memory.category:
        suggestions.append("Categorize memory for better importance scoring")
    if not memory.related_entities:
        suggestions.append("Link to related entities for context")
    if score < 30 and not memory.pinned:
        suggestions.append("Consider pinning if this memory is important to you")
    if score > 80 and not memory.pinned:
        suggestions.append("High-importance memory - consider auto-pinning")

    return ImportanceAnalysis(
        score=min(100.0, max(0.0, score)), reasons=reasons, suggestions=suggestions
    )


def calculate_entity_relevance(name: str, state: GameState) -> float:
    """Relevance (0-100) of a known entity to the current game."""
    entity = state.known_entities.get(name)
    if entity is None:
        return 0

    base_scores = {
        EntityType.PC: 50,
        EntityType.COMPANION: 40,
        EntityType.NPC: 20,
        EntityType.LOCATION: 15,
        EntityType.SKILL: 30,
    }
    if entity.type == EntityType.ITEM:
        score: float = 25 if entity.owner == "pc" else 5
    else:
        score = base_scores.get(entity.type, 10)

    if entity.last_mentioned:
        score += max(0, 20 - (state.turn_count - entity.last_mentioned))
    if state.party_member(name) is not None:
        score += 30
    if entity.archived:
        score *= 0.3
    return min(100, score)


def suggest_category(text: str) -> MemoryCategory:
    """Guess a memory category from its text."""
    lowered = text.lower()
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(lowered):
            return category
    return MemoryCategory.GENERAL


def analyze_emotional_weight(text: str) -> float:
    """Signed emotional weight of a text, clamped to -10..10."""
    return max(-10.0, min(10.0, _count_weighted(text.lower(), EMOTION_PATTERNS)))
