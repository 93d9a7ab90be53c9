"""
Tests for the unified cleanup coordinator.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from saga.models.entity import Entity, EntityType
from saga.models.history import HistoryEntry, create_model_entry, create_user_entry
from saga.models.memory import Memory, MemoryCategory, MemorySource
from saga.models.state import GameState
from saga.services.cleanup import (
    CleanupConfig,
    CleanupCoordinator,
    CleanupPhase,
    apply,
    coordinated_cleanup,
    estimate_memory_tokens,
    get_optimization_stats,
    restore_relevant_memories,
)

TURN = 20


def memory(text: str = "...", created: int | None = TURN, **fields: object) -> Memory:
    """A fully enhanced manual memory; made this turn it scores 55."""
    fields.setdefault("source", MemorySource.MANUAL)
    return Memory(
        text=text,
        category=MemoryCategory.GENERAL,
        related_entities=[],
        tags=[],
        created_at=created,
        last_accessed=created,
        **fields,
    )


def low_memory(text: str = "...") -> Memory:
    """No source and no timestamps: scores 10."""
    return Memory(text=text, category=MemoryCategory.GENERAL, related_entities=[], tags=[])


def history(turns: int, last_story: str = "Trời yên tĩnh.") -> list[HistoryEntry]:
    entries: list[HistoryEntry] = []
    for turn in range(1, turns + 1):
        story = last_story if turn == turns else "Trời yên tĩnh."
        entries += [create_user_entry(f"Lượt {turn}"), create_model_entry(story)]
    return entries


@pytest.fixture
def config() -> CleanupConfig:
    return CleanupConfig(
        max_active_memories=3,
        memory_cleanup_threshold=3,
        enable_smart_memory_generation=False,
    )


# =============================================================================
# Configuration
# =============================================================================


class TestCleanupConfig:
    """Tests for CleanupConfig."""

    def test_defaults(self) -> None:
        config = CleanupConfig()
        assert config.max_active_memories == 120
        assert config.memory_cleanup_threshold == 150
        assert config.memory_token_budget == pytest.approx(3000)
        assert config.smart_memory.lookback_turns == 5

    def test_from_env(self) -> None:
        """SAGA_* variables feed the config; explicit overrides win."""
        env = {
            "SAGA_MAX_ACTIVE_MEMORIES": "50",
            "SAGA_MEMORY_TOKEN_RATIO": "0.5",
            "SAGA_SUMMARY_LENGTH": "120",
        }
        with patch.dict(os.environ, env, clear=True):
            config = CleanupConfig.from_env(summary_length=80)
        assert config.max_active_memories == 50
        assert config.memory_token_ratio == 0.5
        assert config.summary_length == 80

    def test_from_env_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert CleanupConfig.from_env() == CleanupConfig()

    def test_invalid_env_value(self) -> None:
        with patch.dict(os.environ, {"SAGA_MAX_ACTIVE_MEMORIES": "0"}, clear=True):
            with pytest.raises(ValidationError):
                CleanupConfig.from_env()

    def test_threshold_must_cover_window(self) -> None:
        with pytest.raises(ValidationError):
            CleanupConfig(max_active_history_entries=10, history_compression_threshold=5)

    def test_frozen(self) -> None:
        config = CleanupConfig()
        with pytest.raises(ValidationError):
            config.max_active_memories = 5


# =============================================================================
# Memory selection
# =============================================================================


class TestMemoryCleanup:
    """Tests for ceiling, budget and importance selection."""

    def test_ceiling_keeps_most_important(self, config: CleanupConfig) -> None:
        """Older memories score lower and are archived past the ceiling."""
        memories = [memory(str(i) * 3, created=TURN - i) for i in range(5)]
        state = GameState(memories=memories, turn_count=TURN)

        result = CleanupCoordinator(config).run(state)

        assert result.cleanup_triggered
        assert result.phase == CleanupPhase.APPLIED
        assert [m.text for m in result.active_memories] == ["000", "111", "222"]
        assert [m.text for m in result.archived] == ["333", "444"]
        assert all(m.category == MemoryCategory.ARCHIVED for m in result.archived)
        assert all(m.last_accessed == TURN for m in result.archived)
        assert result.category_counts == {"general": 3}

    def test_active_keeps_original_order(self, config: CleanupConfig) -> None:
        memories = [memory("aaa", created=TURN - 4), memory("bbb"), memory("ccc", created=TURN - 1)]
        memories += [low_memory("ddd"), low_memory("eee")]
        state = GameState(memories=memories, turn_count=TURN)
        result = CleanupCoordinator(config).run(state)
        assert [m.text for m in result.active_memories] == ["aaa", "bbb", "ccc"]

    def test_token_budget(self) -> None:
        """Eight tokens each against an eighteen token budget admits two."""
        config = CleanupConfig(
            max_active_memories=3,
            memory_cleanup_threshold=3,
            max_token_budget=36,
            memory_token_ratio=0.5,
            enable_smart_memory_generation=False,
        )
        memories = [memory("x" * 10, created=TURN - i) for i in range(5)]
        assert estimate_memory_tokens(memories[0]) == 8

        result = coordinated_cleanup(GameState(memories=memories, turn_count=TURN), config)
        assert len(result.active_memories) == 2
        assert len(result.archived) == 3

    def test_pinned_survive_any_budget(self) -> None:
        config = CleanupConfig(
            max_active_memories=3,
            memory_cleanup_threshold=3,
            max_token_budget=0,
            enable_smart_memory_generation=False,
        )
        pinned = low_memory("Ghi nhớ").model_copy(update={"pinned": True})
        memories = [memory(), memory(), pinned, memory(), memory()]
        result = coordinated_cleanup(GameState(memories=memories, turn_count=TURN), config)
        assert [m.text for m in result.active_memories] == ["Ghi nhớ"]
        assert result.active_memories[0].pinned
        assert len(result.archived) == 4

    def test_pinned_overflow_archived(self) -> None:
        """Pinned memories beyond the active ceiling are the only ones archived."""
        config = CleanupConfig(
            max_active_memories=2,
            memory_cleanup_threshold=2,
            enable_smart_memory_generation=False,
        )
        memories = [
            low_memory(f"Lời thề {i}").model_copy(update={"pinned": True}) for i in range(4)
        ]
        result = coordinated_cleanup(GameState(memories=memories, turn_count=TURN), config)
        assert [m.text for m in result.active_memories] == ["Lời thề 0", "Lời thề 1"]
        assert [m.text for m in result.archived] == ["Lời thề 2", "Lời thề 3"]

    def test_pinned_below_threshold_kept(self) -> None:
        config = CleanupConfig(
            low_importance_threshold=90,
            low_importance_limit=0,
            enable_smart_memory_generation=False,
        )
        pinned = low_memory("Ghi nhớ").model_copy(update={"pinned": True})
        state = GameState(memories=[memory("thường"), pinned], turn_count=TURN)
        result = coordinated_cleanup(state, config)

        assert [m.text for m in result.active_memories] == ["Ghi nhớ"]
        assert result.active_memories[0].importance < 90
        assert [m.text for m in result.archived] == ["thường"]

    def test_low_importance_archived(self) -> None:
        config = CleanupConfig(low_importance_limit=0, enable_smart_memory_generation=False)
        state = GameState(memories=[memory("good"), low_memory("bad")], turn_count=TURN)
        result = coordinated_cleanup(state, config)
        assert [m.text for m in result.active_memories] == ["good"]
        assert [m.text for m in result.archived] == ["bad"]

    def test_stale_memory_refreshed(self, config: CleanupConfig) -> None:
        """Memories untouched for over ten turns are re-enhanced."""
        stale = memory("Lâm Phong luyện kiếm", created=5)
        pc = Entity(name="Lâm Phong", type=EntityType.PC)
        state = GameState(
            known_entities={pc.name: pc},
            memories=[stale, memory("a"), memory("b"), memory("c")],
            turn_count=TURN,
        )
        config = config.model_copy(update={"max_active_memories": 4})
        result = CleanupCoordinator(config).run(state)
        assert [m.text for m in result.enhanced] == ["Lâm Phong luyện kiếm"]
        assert result.enhanced[0].related_entities == ["Lâm Phong"]

    def test_noop_below_thresholds(self, config: CleanupConfig) -> None:
        state = GameState(memories=[memory()], turn_count=TURN)
        result = CleanupCoordinator(config).run(state)
        assert not result.cleanup_triggered
        assert result.phase == CleanupPhase.NOOP
        assert apply(state, result) is state


# =============================================================================
# History and generation
# =============================================================================


class TestHistoryCleanup:
    """Tests for history compression through the coordinator."""

    def test_compresses_and_applies(self) -> None:
        config = CleanupConfig(
            max_active_history_entries=4,
            history_compression_threshold=6,
            enable_smart_memory_generation=False,
        )
        state = GameState(game_history=history(5), turn_count=5)
        result = CleanupCoordinator(config).run(state)

        assert result.cleanup_triggered
        assert result.history_original_size == 10
        assert result.history_new_size == 4
        assert result.tokens_saved >= 6 * 500

        updated = apply(state, result)
        assert updated.game_history == state.game_history[6:]
        assert len(updated.compressed_history) == 1
        assert updated.compressed_history[0].turn_range == "1-3"
        assert len(state.game_history) == 10

    def test_smart_memories_added(self) -> None:
        config = CleanupConfig(max_active_history_entries=4, history_compression_threshold=6)
        pc = Entity(name="Lâm Phong", type=EntityType.PC)
        state = GameState(
            known_entities={pc.name: pc},
            party=[pc],
            game_history=history(4, "Lâm Phong đánh bại con sói xám trong rừng."),
            turn_count=4,
        )
        result = CleanupCoordinator(config).run(state)
        assert len(result.smart_memories.memories) == 1
        updated = apply(state, result)
        assert [m.category for m in updated.memories] == [MemoryCategory.COMBAT]

    def test_archived_memories_accumulate(self, config: CleanupConfig) -> None:
        existing = low_memory("old").model_copy(update={"category": MemoryCategory.ARCHIVED})
        memories = [memory(str(i) * 3, created=TURN - i) for i in range(5)]
        state = GameState(memories=memories, archived_memories=[existing], turn_count=TURN)
        updated = apply(state, CleanupCoordinator(config).run(state))
        assert [m.text for m in updated.archived_memories] == ["old", "333", "444"]


# =============================================================================
# Coordinator state machine
# =============================================================================


class TestCoordinatorPhases:
    """Tests for once-per-turn and re-entrancy behavior."""

    def test_runs_once_per_turn(self, config: CleanupConfig) -> None:
        memories = [memory(str(i) * 3, created=TURN - i) for i in range(5)]
        state = GameState(memories=memories, turn_count=TURN)
        coordinator = CleanupCoordinator(config)

        assert coordinator.run(state).cleanup_triggered
        again = coordinator.run(state)
        assert not again.cleanup_triggered
        assert again.phase == CleanupPhase.NOOP

    def test_nested_call_is_noop(self, config: CleanupConfig) -> None:
        coordinator = CleanupCoordinator(config)
        coordinator.phase = CleanupPhase.PROCESSING
        memories = [memory(str(i) * 3, created=TURN - i) for i in range(5)]
        result = coordinator.run(GameState(memories=memories, turn_count=TURN))
        assert not result.cleanup_triggered
        assert len(result.active_memories) == 5

    def test_failure_resets_phase(
        self, config: CleanupConfig, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        coordinator = CleanupCoordinator(config)

        def boom(state: GameState) -> None:
            raise RuntimeError("boom")

        monkeypatch.setattr(coordinator, "_run", boom)
        with pytest.raises(RuntimeError):
            coordinator.run(GameState(turn_count=TURN))
        assert coordinator.phase == CleanupPhase.IDLE
        assert coordinator.last_turn == TURN


# =============================================================================
# Restoration and stats
# =============================================================================


class TestRestoreAndStats:
    """Tests for restore_relevant_memories and get_optimization_stats."""

    def test_restores_mentioned_memories(self) -> None:
        pc = Entity(name="Lâm Phong", type=EntityType.PC)
        state = GameState(known_entities={pc.name: pc}, party=[pc], turn_count=TURN)
        archived = [
            Memory(text="Lâm Phong gặp Lão Trần", category=MemoryCategory.ARCHIVED, importance=30),
            Memory(text="Sói xám trong rừng", category=MemoryCategory.ARCHIVED, importance=90),
            Memory(
                text="Bữa tiệc",
                category=MemoryCategory.STORY,
                related_entities=["Lâm Phong"],
                importance=50,
            ),
        ]
        restored = restore_relevant_memories(archived, state)
        assert [m.text for m in restored] == ["Bữa tiệc", "Lâm Phong gặp Lão Trần"]
        assert restored[1].category == MemoryCategory.GENERAL
        assert restored[0].category == MemoryCategory.STORY
        assert all(m.last_accessed == TURN for m in restored)

    def test_restore_limit(self) -> None:
        pc = Entity(name="Lâm Phong", type=EntityType.PC)
        state = GameState(party=[pc])
        archived = [Memory(text=f"Lâm Phong {i}", importance=i) for i in range(8)]
        restored = restore_relevant_memories(archived, state, max_to_restore=2)
        assert [m.text for m in restored] == ["Lâm Phong 7", "Lâm Phong 6"]

    def test_nothing_archived(self) -> None:
        assert restore_relevant_memories([], GameState()) == []

    def test_optimization_stats(self) -> None:
        memories = [
            memory("abc", importance=60, pinned=True),
            Memory(text="defgh", category=MemoryCategory.COMBAT, importance=20),
        ]
        stats = get_optimization_stats(memories, [low_memory()])
        assert stats.active_memories == 2
        assert stats.archived_memories == 1
        assert stats.average_importance == pytest.approx(40)
        assert stats.category_distribution == {"general": 1, "combat": 1}
        assert stats.pinned_count == 1
        assert stats.estimated_token_usage == 3 + 4

    def test_empty_stats(self) -> None:
        stats = get_optimization_stats([])
        assert stats.average_importance == 0.0
        assert stats.archived_memories == 0
