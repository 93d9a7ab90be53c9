"""
Tests for memory importance scoring.
"""

from __future__ import annotations

import pytest

from saga.models.entity import Entity, EntityType
from saga.models.memory import Memory, MemoryCategory, MemorySource
from saga.models.state import GameState
from saga.services.importance import (
    analyze_content_importance,
    analyze_emotional_weight,
    calculate_entity_relevance,
    score_memory,
    suggest_category,
)


@pytest.fixture
def state() -> GameState:
    pc = Entity(name="Lâm Phong", type=EntityType.PC)
    companion = Entity(name="Tiểu Vân", type=EntityType.COMPANION)
    npc = Entity(name="Lão Trần", type=EntityType.NPC)
    sword = Entity(name="Thiết Kiếm", type=EntityType.ITEM, owner="pc")
    stone = Entity(name="Đá", type=EntityType.ITEM)
    return GameState(
        known_entities={e.name: e for e in (pc, companion, npc, sword, stone)},
        party=[pc, companion],
        turn_count=20,
    )


def score(state: GameState, **fields: object) -> float:
    fields.setdefault("text", "...")
    return score_memory(Memory(**fields), state).score


class TestScoreMemory:
    """Tests for score_memory."""

    @pytest.mark.parametrize(
        "source, expected",
        [(MemorySource.CHRONICLE, 30), (MemorySource.MANUAL, 20), (None, 10)],
    )
    def test_source_base(self, state: GameState, source: MemorySource, expected: float) -> None:
        assert score(state, source=source) == expected

    def test_pinned_bonus(self, state: GameState) -> None:
        assert score(state, source=MemorySource.MANUAL, pinned=True) == 70

    def test_recency_decays(self, state: GameState) -> None:
        """Four turns old gives 20 - 4 * 0.5."""
        assert score(state, created_at=16) == 10 + 18

    def test_recency_floors_at_zero(self, state: GameState) -> None:
        state.turn_count = 60
        assert score(state, created_at=1) == 10

    def test_access_bonus(self, state: GameState) -> None:
        assert score(state, last_accessed=10) == pytest.approx(10 + 12)

    def test_related_entities(self, state: GameState) -> None:
        """Companion 10, player 5, player item 5, NPC 3, others nothing."""
        related = ["Tiểu Vân", "Lâm Phong", "Thiết Kiếm", "Lão Trần", "Đá", "Không Rõ"]
        assert score(state, related_entities=related) == 10 + 23

    def test_emotional_weight_magnitude(self, state: GameState) -> None:
        assert score(state, emotional_weight=-3) == 10 + 6

    def test_category_bonus(self, state: GameState) -> None:
        assert score(state, category=MemoryCategory.STORY) == 25
        assert score(state, category=MemoryCategory.GENERAL) == 10

    def test_clamped_to_hundred(self, state: GameState) -> None:
        result = score(
            state,
            text="chết " * 6,
            source=MemorySource.CHRONICLE,
            pinned=True,
            category=MemoryCategory.STORY,
        )
        assert result == 100

    def test_reasons_and_suggestions(self, state: GameState) -> None:
        analysis = score_memory(Memory(text="..."), state)
        assert analysis.reasons == ["Source unknown (+10)"]
        assert "Categorize memory for better importance scoring" in analysis.suggestions
        assert "Consider pinning if this memory is important to you" in analysis.suggestions


class TestContentAnalysis:
    """Tests for keyword-based analysis."""

    def test_major_event(self) -> None:
        assert analyze_content_importance("Lâm Phong chiến thắng") == 10

    def test_content_capped(self) -> None:
        assert analyze_content_importance("chết " * 6) == 50

    def test_neutral_text(self) -> None:
        assert analyze_content_importance("...") == 0

    def test_positive_emotion(self) -> None:
        assert analyze_emotional_weight("hạnh phúc") == 4

    def test_negative_emotion(self) -> None:
        assert analyze_emotional_weight("phản bội") == -4

    def test_emotion_clamped(self) -> None:
        assert analyze_emotional_weight("chết chết chết") == -10

    @pytest.mark.parametrize(
        "text, category",
        [
            ("Lâm Phong tấn công con sói", MemoryCategory.COMBAT),
            ("Họ kết bạn", MemoryCategory.RELATIONSHIP),
            ("Tìm thấy hang động", MemoryCategory.DISCOVERY),
            ("Thuyết phục lái buôn", MemoryCategory.SOCIAL),
            ("Ngồi ngắm trăng", MemoryCategory.GENERAL),
        ],
    )
    def test_suggest_category(self, text: str, category: MemoryCategory) -> None:
        assert suggest_category(text) == category


class TestEntityRelevance:
    """Tests for calculate_entity_relevance."""

    def test_party_member_bonus(self, state: GameState) -> None:
        assert calculate_entity_relevance("Lâm Phong", state) == 80

    def test_items_by_owner(self, state: GameState) -> None:
        assert calculate_entity_relevance("Thiết Kiếm", state) == 25
        assert calculate_entity_relevance("Đá", state) == 5

    def test_recent_mention(self, state: GameState) -> None:
        npc = state.known_entities["Lão Trần"]
        state.known_entities["Lão Trần"] = npc.model_copy(update={"last_mentioned": 18})
        assert calculate_entity_relevance("Lão Trần", state) == 20 + 18

    def test_archived_penalty(self, state: GameState) -> None:
        npc = state.known_entities["Lão Trần"]
        state.known_entities["Lão Trần"] = npc.model_copy(update={"archived": True})
        assert calculate_entity_relevance("Lão Trần", state) == pytest.approx(6)

    def test_unknown_entity(self, state: GameState) -> None:
        assert calculate_entity_relevance("Không Rõ", state) == 0
