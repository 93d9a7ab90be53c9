"""
Tests for skill name normalization, merging and reference synchronization.
"""

from __future__ import annotations

import pytest

from saga.models.entity import Entity, EntityType
from saga.models.state import GameState
from saga.services.skills import (
    add_skill_to_holder,
    is_placeholder,
    merge_skills,
    replace_skill_references,
    skill_base_name,
    skill_rank,
    synchronize_skill_names,
)


class TestNames:
    """Tests for base names and ranks."""

    @pytest.mark.parametrize(
        "name, base",
        [
            ("Kiếm Pháp (Sơ Cấp)", "kiếm pháp"),
            ("Kiếm pháp cao cấp", "kiếm pháp"),
            ("Thân Pháp: bộ pháp nhẹ nhàng", "thân pháp"),
            ("  Hỏa   Cầu  Thuật ", "hỏa cầu thuật"),
        ],
    )
    def test_base_name(self, name: str, base: str) -> None:
        assert skill_base_name(name) == base

    @pytest.mark.parametrize(
        "name, rank",
        [
            ("Kiếm Pháp (Sơ Cấp)", 1),
            ("Kiếm Pháp Cơ Bản", 1),
            ("Kiếm Pháp (Trung Cấp)", 2),
            ("Kiếm Pháp Nâng Cao", 3),
            ("Kiếm Pháp (Đại Thành)", 4),
            ("Kiếm Pháp (Viên Mãn)", 5),
            ("Kiếm Pháp", 0),
        ],
    )
    def test_rank(self, name: str, rank: int) -> None:
        assert skill_rank(name) == rank

    @pytest.mark.parametrize("name", ["Chưa có", "none", "N/A", "  ", "Không có"])
    def test_placeholders(self, name: str) -> None:
        assert is_placeholder(name)


class TestMergeSkills:
    """Tests for merge_skills."""

    def test_adds_new(self) -> None:
        result = merge_skills(["Kiếm Pháp"], ["Thân Pháp"])
        assert result.skills == ["Kiếm Pháp", "Thân Pháp"]
        assert result.added == ["Thân Pháp"]
        assert result.changed

    def test_higher_rank_replaces_in_place(self) -> None:
        result = merge_skills(
            ["Thân Pháp", "Kiếm Pháp (Sơ Cấp)"], ["Kiếm Pháp (Cao Cấp)"]
        )
        assert result.skills == ["Thân Pháp", "Kiếm Pháp (Cao Cấp)"]
        assert result.upgraded == [("Kiếm Pháp (Sơ Cấp)", "Kiếm Pháp (Cao Cấp)")]

    def test_lower_rank_rejected(self) -> None:
        result = merge_skills(["Kiếm Pháp (Cao Cấp)"], ["Kiếm Pháp (Sơ Cấp)"])
        assert result.skills == ["Kiếm Pháp (Cao Cấp)"]
        assert result.rejected == ["Kiếm Pháp (Sơ Cấp)"]
        assert not result.changed

    def test_case_insensitive_duplicate(self) -> None:
        result = merge_skills(["Kiếm Pháp"], ["kiếm pháp"])
        assert result.skills == ["Kiếm Pháp"]
        assert not result.changed

    def test_placeholders_ignored(self) -> None:
        assert merge_skills([], ["Chưa có", "none"]).skills == []


@pytest.fixture
def state() -> GameState:
    pc = Entity(name="Lâm Phong", type=EntityType.PC, learned_skills=["Kiếm Pháp (Sơ Cấp)"])
    companion = Entity(
        name="Tiểu Vân", type=EntityType.COMPANION, skills=["Kiếm Pháp (Sơ Cấp)", "Y Thuật"]
    )
    npc = Entity(name="Lão Trần", type=EntityType.NPC, skills=["Rèn Đúc"])
    skill = Entity(name="Kiếm Pháp (Sơ Cấp)", type=EntityType.SKILL)
    return GameState(
        known_entities={e.name: e for e in (pc, companion, npc, skill)},
        party=[pc, companion],
    )


class TestReferences:
    """Tests for holder reference maintenance."""

    def test_replace_everywhere(self, state: GameState) -> None:
        updated = replace_skill_references(state, "Kiếm Pháp (Sơ Cấp)", "Kiếm Pháp (Trung Cấp)")
        assert sorted(updated) == ["Lâm Phong", "Tiểu Vân"]
        assert state.known_entities["Lâm Phong"].learned_skills == ["Kiếm Pháp (Trung Cấp)"]
        assert state.known_entities["Tiểu Vân"].skills == ["Kiếm Pháp (Trung Cấp)", "Y Thuật"]
        assert state.party[1].skills == ["Kiếm Pháp (Trung Cấp)", "Y Thuật"]

    def test_replace_restricted_to_holders(self, state: GameState) -> None:
        replace_skill_references(
            state, "Kiếm Pháp (Sơ Cấp)", "Kiếm Pháp (Trung Cấp)", holders={"Tiểu Vân"}
        )
        assert state.known_entities["Lâm Phong"].learned_skills == ["Kiếm Pháp (Sơ Cấp)"]
        assert state.party[0].learned_skills == ["Kiếm Pháp (Sơ Cấp)"]
        assert state.party[1].skills[0] == "Kiếm Pháp (Trung Cấp)"

    def test_replace_deduplicates(self, state: GameState) -> None:
        replace_skill_references(state, "Y Thuật", "Kiếm Pháp (Sơ Cấp)")
        assert state.known_entities["Tiểu Vân"].skills == ["Kiếm Pháp (Sơ Cấp)"]

    def test_add_to_holder_updates_party_copy(self, state: GameState) -> None:
        result = add_skill_to_holder(state, "Tiểu Vân", "Thân Pháp")
        assert result.added == ["Thân Pháp"]
        assert "Thân Pháp" in state.known_entities["Tiểu Vân"].skills
        assert "Thân Pháp" in state.party_member("Tiểu Vân").skills

    def test_add_to_pc_uses_learned_skills(self, state: GameState) -> None:
        add_skill_to_holder(state, "Lâm Phong", "Kiếm Pháp (Cao Cấp)")
        assert state.known_entities["Lâm Phong"].learned_skills == ["Kiếm Pháp (Cao Cấp)"]
        assert state.party[0].learned_skills == ["Kiếm Pháp (Cao Cấp)"]

    def test_synchronize_points_at_existing_entity(self) -> None:
        """A dangling held name resolves to the best same-base skill entity."""
        pc = Entity(name="Lâm Phong", type=EntityType.PC, learned_skills=["kiếm pháp"])
        state = GameState(
            known_entities={
                pc.name: pc,
                "Kiếm Pháp (Sơ Cấp)": Entity(name="Kiếm Pháp (Sơ Cấp)", type=EntityType.SKILL),
                "Kiếm Pháp (Cao Cấp)": Entity(name="Kiếm Pháp (Cao Cấp)", type=EntityType.SKILL),
            },
            party=[pc],
        )
        rewrites = synchronize_skill_names(state)
        assert rewrites == [("kiếm pháp", "Kiếm Pháp (Cao Cấp)")]
        assert state.find_pc().learned_skills == ["Kiếm Pháp (Cao Cấp)"]
        assert state.party[0].learned_skills == ["Kiếm Pháp (Cao Cấp)"]

    def test_synchronize_upgrades_outranked_entity(self) -> None:
        """A held name above an unheld skill entity renames that entity forward."""
        pc = Entity(name="Lâm Phong", type=EntityType.PC, learned_skills=["Kiếm Pháp (Cao Cấp)"])
        npc = Entity(name="Lão Trần", type=EntityType.NPC, skills=["Rèn Kiếm"])
        basic = Entity(name="Kiếm Pháp (Sơ Cấp)", type=EntityType.SKILL, description="Cơ bản")
        state = GameState(
            known_entities={pc.name: pc, basic.name: basic, npc.name: npc}, party=[pc]
        )

        rewrites = synchronize_skill_names(state)
        assert rewrites == [("Kiếm Pháp (Sơ Cấp)", "Kiếm Pháp (Cao Cấp)")]
        assert list(state.known_entities) == ["Lâm Phong", "Kiếm Pháp (Cao Cấp)", "Lão Trần"]
        assert state.known_entities["Kiếm Pháp (Cao Cấp)"].description == "Cơ bản"
        assert state.find_pc().learned_skills == ["Kiếm Pháp (Cao Cấp)"]
        assert state.party[0].learned_skills == ["Kiếm Pháp (Cao Cấp)"]

    def test_synchronize_keeps_lower_rank_for_other_holders(self) -> None:
        """The higher rank gets its own entity while others still hold the lower one."""
        pc = Entity(name="Lâm Phong", type=EntityType.PC, learned_skills=["Kiếm Pháp (Cao Cấp)"])
        npc = Entity(name="Lão Trần", type=EntityType.NPC, skills=["Kiếm Pháp (Sơ Cấp)"])
        basic = Entity(name="Kiếm Pháp (Sơ Cấp)", type=EntityType.SKILL, description="Cơ bản")
        state = GameState(
            known_entities={pc.name: pc, basic.name: basic, npc.name: npc}, party=[pc]
        )

        assert synchronize_skill_names(state) == []
        assert state.known_entities["Lão Trần"].skills == ["Kiếm Pháp (Sơ Cấp)"]
        assert state.find_pc().learned_skills == ["Kiếm Pháp (Cao Cấp)"]
        advanced = state.known_entities["Kiếm Pháp (Cao Cấp)"]
        assert advanced.type == EntityType.SKILL
        assert advanced.description == "Cơ bản"
        assert advanced.reference_id is not None
        assert "Kiếm Pháp (Sơ Cấp)" in state.known_entities

    def test_synchronize_leaves_unknown_skills(self, state: GameState) -> None:
        assert synchronize_skill_names(state) == []
        assert state.known_entities["Tiểu Vân"].skills == ["Kiếm Pháp (Sơ Cấp)", "Y Thuật"]
