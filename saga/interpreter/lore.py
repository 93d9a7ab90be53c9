"""
Lore Tag Handlers for Saga.

LORE_* directives introduce or refresh entities. The player character,
NPCs and locations are merged into existing records; items, factions,
concepts and skills are (re)defined outright.
"""

from __future__ import annotations

import logging
import re

from saga.interpreter.attributes import Attributes, text_attr
from saga.interpreter.context import TagContext
from saga.models.entity import Entity, EntityType
from saga.services.progression import apply_realm_progression
from saga.services.skills import is_placeholder, merge_skills

logger = logging.getLogger(__name__)

MOTIVATION_SIMILARITY = 0.7

_NON_WORD = re.compile(r"[^\w\s]")


def _defined(attrs: Attributes) -> Attributes:
    return {k: v for k, v in attrs.items() if v is not None and v != ""}


def _skill_list(value: object) -> list[str]:
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    if isinstance(value, list):
        return [str(s).strip() for s in value if str(s).strip()]
    return []


def motivation_similarity(current: str, proposed: str) -> float:
    """Share of words two motivations have in common (0-1)."""
    current_words = _NON_WORD.sub("", current.lower().strip()).split()
    proposed_words = _NON_WORD.sub("", proposed.lower().strip()).split()
    longest = max(len(current_words), len(proposed_words))
    if longest == 0:
        return 1.0
    shared = sum(1 for word in current_words if word in proposed_words)
    return shared / longest


def create_or_replace(ctx: TagContext, attrs: Attributes, entity_type: EntityType) -> bool:
    """Define an entity outright, replacing any record with the same name."""
    name = text_attr(attrs, "name")
    if name is None:
        logger.warning("LORE tag for %s without a name", entity_type.value)
        return False
    data = dict(attrs)
    data["type"] = entity_type
    data.setdefault("referenceId", ctx.new_reference_id(entity_type))
    entity = Entity.model_validate(data)
    ctx.put_entity(entity)
    logger.info("Defined %s %s (%s)", entity_type.value, entity.name, entity.reference_id)
    return True


def merge_or_create(ctx: TagContext, attrs: Attributes, entity_type: EntityType) -> Entity | None:
    """
    Merge attributes into an existing record of the same kind, or create one.

    The existing record keeps its reference id (and, for NPCs that have
    since become companions, its type).

    Returns the stored entity, or None when the tag has no name.
    """
    name = text_attr(attrs, "name")
    if name is None:
        logger.warning("LORE tag for %s without a name", entity_type.value)
        return None

    existing = ctx.find_entity(name)
    kinds = (EntityType.NPC, EntityType.COMPANION) if entity_type == EntityType.NPC else (entity_type,)
    if existing is not None and existing.type in kinds:
        updates = dict(attrs)
        updates.update({"type": existing.type, "referenceId": existing.reference_id, "name": name})
        entity = existing.merged(updates)
        logger.info("Updated existing %s %s", existing.type.value, name)
    else:
        data = dict(attrs)
        data["type"] = entity_type
        data["referenceId"] = ctx.new_reference_id(entity_type)
        entity = Entity.model_validate(data)
        logger.info("Created %s %s (%s)", entity_type.value, name, entity.reference_id)
    return ctx.put_entity(entity)


# =============================================================================
# Handlers
# =============================================================================


def handle_lore_pc(ctx: TagContext, attrs: Attributes) -> bool:
    """Create or update the player character and keep it first in the party."""
    attrs = _defined(attrs)
    if "learnedSkills" in attrs:
        attrs["learnedSkills"] = [
            s for s in _skill_list(attrs["learnedSkills"]) if not is_placeholder(s)
        ]
    existing = ctx.state.find_pc()

    if existing is None:
        if text_attr(attrs, "name") is None:
            logger.warning("LORE_PC cannot create a player character without a name")
            return False
        data = dict(attrs)
        data["type"] = EntityType.PC
        data.setdefault("referenceId", ctx.new_reference_id(EntityType.PC))
        pc = Entity.model_validate(data)
        ctx.state.known_entities[pc.name] = pc
        logger.info("Created player character %s (%s)", pc.name, pc.reference_id)
    else:
        updates = dict(attrs)
        proposed = text_attr(updates, "motivation")
        if proposed is not None and existing.motivation:
            similarity = motivation_similarity(existing.motivation, proposed)
            if similarity > MOTIVATION_SIMILARITY:
                logger.debug("Keeping player motivation (%.0f%% similar)", similarity * 100)
                del updates["motivation"]

        if "learnedSkills" in updates and existing.learned_skills:
            merge = merge_skills(existing.learned_skills, updates["learnedSkills"])
            updates["learnedSkills"] = merge.skills
            if merge.changed:
                logger.info(
                    "Player skills merged: added %s, upgraded %s",
                    merge.added,
                    merge.upgraded,
                )

        updates["type"] = EntityType.PC
        updates["name"] = text_attr(attrs, "name") or existing.name
        updates["referenceId"] = existing.reference_id or ctx.new_reference_id(EntityType.PC)
        pc = existing.merged(updates)
        if pc.name != existing.name:
            ctx.rename_entity(existing.name, pc)
        else:
            ctx.state.known_entities[pc.name] = pc

    ctx.state.party = [pc, *(m for m in ctx.state.party if m.type != EntityType.PC)]
    apply_realm_progression(ctx.state)
    return True


def handle_lore_npc(ctx: TagContext, attrs: Attributes) -> bool:
    return merge_or_create(ctx, attrs, EntityType.NPC) is not None


def handle_lore_location(ctx: TagContext, attrs: Attributes) -> bool:
    """Merge or create a location; new ones join the discovery order."""
    name = text_attr(attrs, "name")
    existing = ctx.find_entity(name)
    is_new = name is not None and (existing is None or existing.type != EntityType.LOCATION)
    if is_new:
        attrs = {**attrs, "discoveredAt": ctx.turn}
    location = merge_or_create(ctx, attrs, EntityType.LOCATION)
    if location is None:
        return False
    if is_new and location.name not in ctx.state.location_discovery_order:
        ctx.state.location_discovery_order.append(location.name)
    return True


def handle_lore_item(ctx: TagContext, attrs: Attributes) -> bool:
    return create_or_replace(ctx, attrs, EntityType.ITEM)


def handle_lore_faction(ctx: TagContext, attrs: Attributes) -> bool:
    return create_or_replace(ctx, attrs, EntityType.FACTION)


def handle_lore_concept(ctx: TagContext, attrs: Attributes) -> bool:
    return create_or_replace(ctx, attrs, EntityType.CONCEPT)


def handle_lore_skill(ctx: TagContext, attrs: Attributes) -> bool:
    """Define a skill; both name and description are required."""
    if text_attr(attrs, "name") is None or text_attr(attrs, "description") is None:
        logger.warning("LORE_SKILL requires name and description: %s", attrs)
        return False
    data = {k: v for k, v in attrs.items() if k != "referenceId"}
    return create_or_replace(ctx, data, EntityType.SKILL)
