"""
Tests for inventory tag handlers.
"""

from __future__ import annotations

import random

import pytest

from saga.interpreter import TagInterpreter
from saga.models.entity import Entity, EntityType
from saga.models.state import GameState


def item(name: str, **fields: object) -> Entity:
    return Entity(name=name, type=EntityType.ITEM, owner="pc", **fields)


@pytest.fixture
def state() -> GameState:
    pc = Entity(name="Lâm Phong", type=EntityType.PC)
    items = [
        item("Bình Máu", quantities=3, consumable=True),
        item("Thiết Kiếm", equippable=True, durability=80),
        item("Bùa Hộ Mệnh", uses=2),
        Entity(name="Kiếm Của Lão Trần", type=EntityType.ITEM, owner="Lão Trần", durability=50),
    ]
    entities = {pc.name: pc, **{i.name: i for i in items}}
    return GameState(known_entities=entities, party=[pc])


@pytest.fixture
def interpreter() -> TagInterpreter:
    return TagInterpreter(rng=random.Random(0))


class TestItemAcquired:
    """Tests for ITEM_AQUIRED."""

    def test_new_item_owned_by_player(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        result = interpreter.interpret(
            '[ITEM_AQUIRED: name="Đan Dược" description="Tăng công lực" quantities=2]', state
        )
        new_item = result.state.known_entities["Đan Dược"]
        assert new_item.type == EntityType.ITEM
        assert new_item.owner == "pc"
        assert new_item.quantities == 2
        assert new_item.reference_id.startswith("REF_IT_ITE_")

    def test_stacks_onto_owned_item(self, interpreter: TagInterpreter, state: GameState) -> None:
        """Acquiring q more of an item holding Q gives Q+q."""
        result = interpreter.interpret('[ITEM_AQUIRED: name="Bình Máu" quantities=4]', state)
        assert result.state.known_entities["Bình Máu"].quantities == 7

    def test_stacks_onto_uses(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_AQUIRED: name="Bùa Hộ Mệnh"]', state)
        stacked = result.state.known_entities["Bùa Hộ Mệnh"]
        assert stacked.uses == 3
        assert stacked.quantities is None

    def test_non_numeric_quantity_dropped(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        result = interpreter.interpret('[ITEM_AQUIRED: name="Đá Linh" quantities="vài"]', state)
        assert result.state.known_entities["Đá Linh"].quantities is None


class TestItemConsumed:
    """Tests for ITEM_CONSUMED."""

    def test_decrements(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_CONSUMED: name="Bình Máu" quantity=2]', state)
        assert result.state.known_entities["Bình Máu"].quantities == 1

    def test_default_amount_is_one(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_CONSUMED: name="Bùa Hộ Mệnh"]', state)
        assert result.state.known_entities["Bùa Hộ Mệnh"].uses == 1

    def test_removed_at_zero(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_CONSUMED: name="Bình Máu" quantity=3]', state)
        assert "Bình Máu" not in result.state.known_entities

    def test_item_without_count_removed(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        result = interpreter.interpret('[ITEM_CONSUMED: name="Thiết Kiếm"]', state)
        assert "Thiết Kiếm" not in result.state.known_entities

    def test_only_player_items(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_CONSUMED: name="Kiếm Của Lão Trần"]', state)
        assert "Kiếm Của Lão Trần" in result.state.known_entities
        assert result.applied == []


class TestEquipment:
    """Tests for ITEM_EQUIPPED and ITEM_UNEQUIPPED."""

    def test_equip_and_unequip(self, interpreter: TagInterpreter, state: GameState) -> None:
        equipped = interpreter.interpret('[ITEM_EQUIPPED: name="Thiết Kiếm"]', state)
        assert equipped.state.known_entities["Thiết Kiếm"].equipped

        unequipped = interpreter.interpret('[ITEM_UNEQUIPPED: name="Thiết Kiếm"]', equipped.state)
        assert not unequipped.state.known_entities["Thiết Kiếm"].equipped

    def test_non_equippable_refused(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_EQUIPPED: name="Bình Máu"]', state)
        assert not result.state.known_entities["Bình Máu"].equipped
        assert result.applied == []


class TestDurability:
    """Tests for ITEM_DAMAGED and ITEM_REPAIRED."""

    def test_damage_floors_at_zero(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_DAMAGED: name="Thiết Kiếm" damage=95]', state)
        assert result.state.known_entities["Thiết Kiếm"].durability == 0

    def test_repair_caps_at_hundred(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret('[ITEM_REPAIRED: name="Thiết Kiếm" repairedAmount=40]', state)
        assert result.state.known_entities["Thiết Kiếm"].durability == 100

    def test_damage_applies_to_any_owner(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        result = interpreter.interpret('[ITEM_DAMAGED: name="Kiếm Của Lão Trần" damage=10]', state)
        assert result.state.known_entities["Kiếm Của Lão Trần"].durability == 40

    def test_item_without_durability_ignored(
        self, interpreter: TagInterpreter, state: GameState
    ) -> None:
        result = interpreter.interpret('[ITEM_DAMAGED: name="Bình Máu" damage=10]', state)
        assert result.applied == []


class TestTransformAndRemove:
    """Tests for ITEM_TRANSFORMED, ITEM_UPDATED, ITEM_DISCARDED and ITEM_LOST."""

    def test_transform_replaces_item(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret(
            '[ITEM_TRANSFORMED: oldName="Thiết Kiếm" newName="Huyết Kiếm" durability=100]', state
        )
        entities = result.state.known_entities
        assert "Thiết Kiếm" not in entities
        assert entities["Huyết Kiếm"].owner == "pc"
        assert entities["Huyết Kiếm"].durability == 100
        assert entities["Huyết Kiếm"].description == "Vật phẩm được biến đổi từ Thiết Kiếm."

    def test_update_merges_fields(self, interpreter: TagInterpreter, state: GameState) -> None:
        result = interpreter.interpret(
            '[ITEM_UPDATED: name="Thiết Kiếm" description="Đã mài sắc" type=skill]', state
        )
        updated = result.state.known_entities["Thiết Kiếm"]
        assert updated.description == "Đã mài sắc"
        assert updated.type == EntityType.ITEM

    @pytest.mark.parametrize("kind", ["ITEM_DISCARDED", "ITEM_LOST"])
    def test_remove_owned_item(
        self, interpreter: TagInterpreter, state: GameState, kind: str
    ) -> None:
        result = interpreter.interpret(f'[{kind}: name="Bùa Hộ Mệnh"]', state)
        assert "Bùa Hộ Mệnh" not in result.state.known_entities
