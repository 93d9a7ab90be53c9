"""
Tag Interpreter for Saga.

Scans generated narrative for tags, dispatches each to its handler and
returns display-ready text. Every tag runs against its own deep copy of
the working state, so a handler that fails leaves nothing half-applied.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from saga.interpreter import characters, items, learning, lore, quests, world
from saga.interpreter.attributes import parse_attributes
from saga.interpreter.context import Handler, TagContext
from saga.interpreter.tags import (
    IGNORED_KINDS,
    TagKind,
    extract_reasoning,
    find_tags,
    strip_tags,
)
from saga.models.regex_rule import RegexRule
from saga.models.state import GameState
from saga.services.skills import synchronize_skill_names

logger = logging.getLogger(__name__)


HANDLERS: dict[TagKind, Handler] = {
    # Time and chronicle
    TagKind.TIME_ELAPSED: world.handle_time_elapsed,
    TagKind.CHRONICLE_TURN: world.handle_chronicle_turn,
    TagKind.CHRONICLE_CHAPTER: world.handle_chronicle_chapter,
    TagKind.CHRONICLE_MEMOIR: world.handle_chronicle_memoir,
    # Statuses
    TagKind.STATUS_APPLIED_SELF: world.handle_status_applied_self,
    TagKind.STATUS_APPLIED_NPC: world.handle_status_applied_npc,
    TagKind.STATUS_CURED_SELF: world.handle_status_cured_self,
    TagKind.STATUS_CURED_NPC: world.handle_status_cured_npc,
    # Lore
    TagKind.LORE_PC: lore.handle_lore_pc,
    TagKind.LORE_NPC: lore.handle_lore_npc,
    TagKind.LORE_ITEM: lore.handle_lore_item,
    TagKind.LORE_LOCATION: lore.handle_lore_location,
    TagKind.LORE_FACTION: lore.handle_lore_faction,
    TagKind.LORE_CONCEPT: lore.handle_lore_concept,
    TagKind.LORE_SKILL: lore.handle_lore_skill,
    # Skills
    TagKind.SKILL_EXP_REWARD: learning.handle_skill_exp_reward,
    TagKind.SKILL_EXP_GAIN: learning.handle_skill_exp_gain,
    TagKind.SKILL_BREAKTHROUGH: learning.handle_skill_breakthrough,
    TagKind.SKILL_BREAKTHROUGH_ROLL: learning.handle_skill_breakthrough_roll,
    TagKind.SKILL_LEARNED: learning.handle_skill_learned,
    TagKind.SKILL_UPDATE: learning.handle_skill_update,
    # Generic update
    TagKind.ENTITY_UPDATE: characters.handle_entity_update,
    # Inventory
    TagKind.ITEM_AQUIRED: items.handle_item_acquired,
    TagKind.ITEM_CONSUMED: items.handle_item_consumed,
    TagKind.ITEM_EQUIPPED: items.handle_item_equipped,
    TagKind.ITEM_UNEQUIPPED: items.handle_item_unequipped,
    TagKind.ITEM_TRANSFORMED: items.handle_item_transformed,
    TagKind.ITEM_UPDATED: items.handle_item_updated,
    TagKind.ITEM_DAMAGED: items.handle_item_damaged,
    TagKind.ITEM_REPAIRED: items.handle_item_repaired,
    TagKind.ITEM_DISCARDED: items.handle_item_removed,
    TagKind.ITEM_LOST: items.handle_item_removed,
    TagKind.SPECIAL_ITEM_GENERATE: items.handle_special_item_generate,
    # People
    TagKind.REALM_UPDATE: characters.handle_realm_update,
    TagKind.COMPANION: characters.handle_companion,
    TagKind.RELATIONSHIP_CHANGED: characters.handle_relationship_changed,
    # Quests
    TagKind.QUEST_ASSIGNED: quests.handle_quest_assigned,
    TagKind.QUEST_UPDATED: quests.handle_quest_updated,
    TagKind.QUEST_OBJECTIVE_COMPLETED: quests.handle_quest_objective_completed,
}


# =============================================================================
# Result Models
# =============================================================================


class InterpretResult(BaseModel):
    """Outcome of interpreting one narrative."""

    display_text: str
    state: GameState
    applied: list[str] = Field(default_factory=list)
    unprocessed_tags: list[str] = Field(default_factory=list)
    failed_tags: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)
    reasoning: str | None = None

    @property
    def changed(self) -> bool:
        """Whether any tag changed the state."""
        return bool(self.applied)


# =============================================================================
# Interpreter
# =============================================================================


@dataclass
class TagInterpreter:
    """
    Applies narrative tags to game state.

    Randomness (breakthrough attempts and eligibility rolls) comes from
    ``rng`` so callers can seed it.
    """

    rng: random.Random = field(default_factory=random.Random)
    regex_rules: list[RegexRule] = field(default_factory=list)

    def interpret(
        self,
        text: str,
        state: GameState,
        apply_side_effects: bool = True,
    ) -> InterpretResult:
        """
        Interpret a narrative.

        Args:
            text: Narrative text, possibly containing tags
            state: Current snapshot; never mutated
            apply_side_effects: False for a dry run that only cleans text

        Returns:
            InterpretResult with the display text and the resulting state
        """
        display = strip_tags(text)
        working = state.model_copy(deep=True)
        result = InterpretResult(display_text="", state=working)
        appended: list[str] = []

        if apply_side_effects:
            for tag in find_tags(text):
                working = self._apply_tag(tag.name, tag.body, tag.raw, working, result, appended)
            if result.applied:
                for old, new in synchronize_skill_names(working):
                    logger.info("Skill reference %s resolved to %s", old, new)
            result.state = working

        for extra in appended:
            display = display.rstrip() + " " + extra

        display, reasoning = extract_reasoning(display.strip())
        if reasoning is not None:
            logger.debug("Model reasoning: %s", reasoning)
        result.reasoning = reasoning
        result.display_text = display.strip()
        return result

    def _apply_tag(
        self,
        name: str,
        body: str,
        raw: str,
        state: GameState,
        result: InterpretResult,
        appended: list[str],
    ) -> GameState:
        """Run one tag against a private copy; return the state to carry on with."""
        kind = TagKind.lookup(name)
        if kind in IGNORED_KINDS:
            return state
        if kind is None:
            logger.warning("Unknown tag kind %s", name)
            result.unprocessed_tags.append(raw)
            return state

        attrs = parse_attributes(body)
        if not attrs:
            logger.warning("No attributes parsed from %s", raw)
            result.unprocessed_tags.append(raw)
            return state

        ctx = TagContext(
            state=state.model_copy(deep=True),
            rng=self.rng,
            regex_rules=self.regex_rules,
        )
        logger.debug("Dispatching %s %s", kind.value, attrs)
        try:
            changed = HANDLERS[kind](ctx, attrs)
        except Exception:
            logger.exception("Handler for %s failed; tag skipped", kind.value)
            result.failed_tags.append(raw)
            return state

        result.events.extend(ctx.events)
        appended.extend(ctx.appended_text)
        if changed:
            result.applied.append(raw)
        return ctx.state


def interpret(
    text: str,
    state: GameState,
    apply_side_effects: bool = True,
    rng: random.Random | None = None,
) -> InterpretResult:
    """Convenience wrapper around a one-off TagInterpreter."""
    interpreter = TagInterpreter(rng=rng or random.Random())
    return interpreter.interpret(text, state, apply_side_effects)
