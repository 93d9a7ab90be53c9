"""
Handler Context for the Saga tag interpreter.

Every tag handler receives a TagContext wrapping its own working copy of
the game state. Handlers mutate that copy freely; the interpreter only
commits it once the handler returns.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field

from saga.interpreter.attributes import Attributes
from saga.models.entity import Entity, EntityType
from saga.models.regex_rule import RegexRule
from saga.models.state import GameState
from saga.services.reference_ids import reference_id_for

logger = logging.getLogger(__name__)


@dataclass
class TagContext:
    """Per-tag working state handed to handlers."""

    state: GameState
    rng: random.Random
    regex_rules: list[RegexRule] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    appended_text: list[str] = field(default_factory=list)

    @property
    def turn(self) -> int:
        return self.state.turn_count

    def event(self, message: str) -> None:
        """Record an observability event for this tag."""
        logger.info(message)
        self.events.append(message)

    def new_reference_id(self, entity_type: EntityType | str) -> str:
        """Reference id unique within the working state."""
        return reference_id_for(self.state, entity_type)

    def find_entity(self, name: str | None) -> Entity | None:
        """Known entity by exact name."""
        if not name:
            return None
        return self.state.known_entities.get(name)

    def put_entity(self, entity: Entity, sync_party: bool = True) -> Entity:
        """
        Store an entity under its name.

        Also refreshes the party copy with the same name unless told not to.
        """
        self.state.known_entities[entity.name] = entity
        if sync_party:
            self.state.replace_party_member(entity)
        return entity

    def remove_entity(self, name: str) -> Entity | None:
        """Delete a known entity, returning it if it existed."""
        return self.state.known_entities.pop(name, None)

    def rename_entity(self, old_name: str, entity: Entity) -> None:
        """
        Atomically replace ``old_name`` with ``entity`` under its new name.

        Preserves the position of the entry in the known-entity map and
        renames the matching party copy.
        """
        rebuilt: dict[str, Entity] = {}
        for name, existing in self.state.known_entities.items():
            if name == old_name:
                rebuilt[entity.name] = entity
            elif name != entity.name:
                rebuilt[name] = existing
        if entity.name not in rebuilt:
            rebuilt[entity.name] = entity
        self.state.known_entities = rebuilt

        for index, member in enumerate(self.state.party):
            if member.name == old_name:
                self.state.party[index] = entity

    def owned_item(self, name: str | None) -> Entity | None:
        """A PC-owned item by name."""
        entity = self.find_entity(name)
        if entity is not None and entity.type == EntityType.ITEM and entity.owner == "pc":
            return entity
        return None


Handler = Callable[[TagContext, Attributes], bool]
"""
A tag handler.

Returns True when it changed the working state, False for a no-op (for
example a missing target). Exceptions mark the tag as failed and discard
the working copy.
"""
