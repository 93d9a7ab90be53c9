"""
Tests for time, chronicle and status tag handlers.
"""

from __future__ import annotations

import random

import pytest

from saga.interpreter import TagInterpreter, apply_status_with_limit
from saga.interpreter.world import advance_time
from saga.models.entity import Entity, EntityType
from saga.models.memory import MemoryCategory, MemorySource
from saga.models.regex_rule import RegexPlacement, RegexRule
from saga.models.state import GameState, GameTime
from saga.models.status import Status


@pytest.fixture
def state() -> GameState:
    pc = Entity(name="Lâm Phong", type=EntityType.PC)
    return GameState(known_entities={pc.name: pc}, party=[pc], turn_count=4)


@pytest.fixture
def interpreter() -> TagInterpreter:
    return TagInterpreter(rng=random.Random(0))


# =============================================================================
# Time
# =============================================================================


class TestAdvanceTime:
    """Tests for calendar arithmetic."""

    def test_minutes_roll_into_hours(self) -> None:
        t = advance_time(GameTime(hour=10, minute=50), minutes=25)
        assert (t.hour, t.minute) == (11, 15)

    def test_hours_roll_into_days(self) -> None:
        t = advance_time(GameTime(day=5, hour=22), hours=5)
        assert (t.day, t.hour) == (6, 3)

    def test_thirty_day_months(self) -> None:
        """Day 31 does not exist; it becomes day 1 of the next month."""
        t = advance_time(GameTime(month=3, day=29), days=2)
        assert (t.month, t.day) == (4, 1)

    def test_year_rollover(self) -> None:
        """Rolling past the last hour of the year starts a new year."""
        t = advance_time(GameTime(year=1, month=12, day=30, hour=23, minute=30), minutes=45)
        assert (t.year, t.month, t.day, t.hour, t.minute) == (2, 1, 1, 0, 15)

    def test_months_and_years(self) -> None:
        t = advance_time(GameTime(year=3, month=11), months=3, years=1)
        assert (t.year, t.month) == (5, 2)

    def test_zero_advance_is_identity(self) -> None:
        start = GameTime(year=2, month=6, day=15, hour=8, minute=5)
        assert advance_time(start) == start


class TestTimeElapsedTag:
    """Tests for TIME_ELAPSED."""

    def test_tag_advances_clock(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret("[TIME_ELAPSED: days=1 hours=3]", state)
        assert result.state.game_time.day == 2
        assert result.state.game_time.hour == 3

    def test_zero_elapsed_still_applies(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        """An instant action is a valid, if empty, time step."""
        result = interpreter.interpret("[TIME_ELAPSED: minutes=0]", state)
        assert result.applied == ["[TIME_ELAPSED: minutes=0]"]
        assert result.state.game_time == state.game_time


# =============================================================================
# Chronicle
# =============================================================================


class TestChronicle:
    """Tests for chronicle tags."""

    def test_turn_entry_becomes_memory(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        """CHRONICLE_TURN logs the text and creates an enhanced memory."""
        text = '[CHRONICLE_TURN: text="Lâm Phong đánh bại sói xám."]'
        result = interpreter.interpret(text, state)

        assert result.state.chronicle.turn == ["Lâm Phong đánh bại sói xám."]
        (memory,) = result.state.memories
        assert memory.source == MemorySource.CHRONICLE
        assert memory.created_at == 4
        assert memory.category == MemoryCategory.COMBAT
        assert memory.related_entities == ["Lâm Phong"]
        assert memory.importance is not None
        assert memory.importance > 30
        assert not memory.pinned

    def test_memory_text_goes_through_rules(self, state: GameState) -> None:
        """Memory-processing substitution rules rewrite the memory text only."""
        rule = RegexRule(
            id="r1",
            find_regex="sói xám",
            replace_string="Lang Vương",
            placement=[RegexPlacement.MEMORY_PROCESSING],
        )
        interpreter = TagInterpreter(rng=random.Random(0), regex_rules=[rule])
        result = interpreter.interpret('[CHRONICLE_TURN: text="Gặp sói xám."]', state)
        assert result.state.chronicle.turn == ["Gặp sói xám."]
        assert result.state.memories[0].text == "Gặp Lang Vương."

    def test_chapter_and_memoir(self, interpreter: TagInterpreter, state: GameState) -> None:
        text = '[CHRONICLE_CHAPTER: text="Chương 1"] [CHRONICLE_MEMOIR: text="Hồi ức"]'
        result = interpreter.interpret(text, state)
        assert result.state.chronicle.chapter == ["Chương 1"]
        assert result.state.chronicle.memoir == ["Hồi ức"]
        assert result.state.memories == []


# =============================================================================
# Statuses
# =============================================================================


def debuff(name: str, owner: str = "pc") -> Status:
    return Status(name=name, owner=owner, type="debuff")


class TestStatusLimit:
    """Tests for the two-per-type status limit."""

    def test_third_status_evicts_oldest(self) -> None:
        """Three same-type statuses leave the newest two."""
        statuses: list[Status] = []
        for name in ("Trúng Độc", "Choáng", "Chảy Máu"):
            statuses = apply_status_with_limit(statuses, debuff(name))
        assert [s.name for s in statuses] == ["Choáng", "Chảy Máu"]

    def test_limit_is_per_owner_and_type(self) -> None:
        """Other owners and other types are not counted."""
        statuses = [debuff("A"), debuff("B"), debuff("A", owner="Lão Trần")]
        statuses = apply_status_with_limit(
            statuses, Status(name="Phấn Chấn", owner="pc", type="buff")
        )
        assert len(statuses) == 4

    def test_same_name_refreshes(self) -> None:
        """Re-applying a status replaces it instead of stacking."""
        statuses = apply_status_with_limit([debuff("Trúng Độc")], debuff("Trúng Độc"))
        assert len(statuses) == 1

    def test_untyped_status_appended(self) -> None:
        statuses = apply_status_with_limit([debuff("A"), debuff("B")], Status(name="Lạ"))
        assert [s.name for s in statuses] == ["A", "B", "Lạ"]


class TestStatusTags:
    """Tests for status tags."""

    def test_apply_and_cure_self(self, interpreter: TagInterpreter, state: GameState) -> None:
        applied = interpreter.interpret(
            '[STATUS_APPLIED_SELF: name="Trúng Độc" type=debuff duration="3 ngày"]', state
        )
        (status,) = applied.state.statuses
        assert status.owner == "pc"
        assert status.duration == "3 ngày"

        cured = interpreter.interpret('[STATUS_CURED_SELF: name="Trúng Độc"]', applied.state)
        assert cured.state.statuses == []

    def test_three_debuffs_through_tags(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        text = (
            "[STATUS_APPLIED_SELF: name=A type=debuff] "
            "[STATUS_APPLIED_SELF: name=B type=debuff] "
            "[STATUS_APPLIED_SELF: name=C type=debuff]"
        )
        result = interpreter.interpret(text, state)
        assert [s.name for s in result.state.statuses] == ["B", "C"]

    def test_npc_status_requires_npc_name(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        result = interpreter.interpret('[STATUS_APPLIED_NPC: name="Choáng"]', state)
        assert result.state.statuses == []
        assert result.applied == []

    def test_npc_status_owner(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret(
            '[STATUS_APPLIED_NPC: npcName="Lão Trần" name="Choáng" type=debuff]', state
        )
        assert result.state.statuses[0].owner == "Lão Trần"

        cured = interpreter.interpret(
            '[STATUS_CURED_NPC: npcName="Lão Trần" name="Choáng"]', result.state
        )
        assert cured.state.statuses == []

    def test_cure_unknown_status_is_noop(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        result = interpreter.interpret('[STATUS_CURED_SELF: name="Không Có"]', state)
        assert result.applied == []
