"""
Character and Generic Update Tag Handlers for Saga.

ENTITY_UPDATE, REALM_UPDATE, COMPANION and RELATIONSHIP_CHANGED.
"""

from __future__ import annotations

import logging
import re

from saga.interpreter.attributes import Attributes, text_attr, to_number
from saga.interpreter.context import TagContext
from saga.models.entity import Entity, EntityType
from saga.services.progression import apply_realm_progression, evaluate_realm
from saga.services.skills import replace_skill_references

logger = logging.getLogger(__name__)

DEFAULT_COMPANION_RELATIONSHIP = "Đồng hành"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def _signed_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _as_number(value: object) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return to_number(str(value)) if value is not None else None


def handle_entity_update(ctx: TagContext, attrs: Attributes) -> bool:
    """
    Update arbitrary fields of a known entity.

    ``newDescription`` replaces the description, ``change`` + ``attribute``
    applies a signed delta to a numeric field and ``newName`` renames the
    entity (and, for skills, every reference to it).
    """
    name = text_attr(attrs, "name")
    entity = ctx.find_entity(name)
    if entity is None:
        logger.warning("ENTITY_UPDATE: %r is not a known entity", name)
        return False

    updates = {
        k: v
        for k, v in attrs.items()
        if k not in ("name", "newDescription", "change", "attribute", "newName")
    }
    new_description = text_attr(attrs, "newDescription")
    if new_description is not None:
        updates["description"] = new_description

    attribute = text_attr(attrs, "attribute")
    if attribute is not None and attrs.get("change") is not None:
        delta = _signed_int(attrs["change"])
        current = _as_number(entity.to_wire().get(attribute) or 0)
        if delta is None or current is None:
            logger.warning(
                "ENTITY_UPDATE %s: cannot apply change %r to %s", name, attrs["change"], attribute
            )
        else:
            updates[attribute] = current + delta

    if "currentExp" in updates:
        updates["currentExp"] = _as_number(updates["currentExp"]) or 0

    # The player's realm follows experience whenever tiers exist
    is_derived_pc = (
        entity.type == EntityType.PC
        and bool(ctx.state.world_data.realm_tiers)
        and bool(updates.get("currentExp", entity.current_exp))
    )
    if is_derived_pc and "realm" in updates:
        logger.warning(
            "ENTITY_UPDATE %s: realm %r ignored; realm follows experience",
            name,
            updates.pop("realm"),
        )

    new_name = text_attr(attrs, "newName")
    if new_name is not None and new_name != name:
        updates["name"] = new_name
        updated = entity.merged(updates)
        ctx.rename_entity(entity.name, updated)
        if entity.type == EntityType.SKILL:
            replace_skill_references(ctx.state, entity.name, new_name)
        logger.info("Renamed %s to %s", entity.name, new_name)
    else:
        ctx.put_entity(entity.merged(updates))

    if "currentExp" in updates or is_derived_pc:
        apply_realm_progression(ctx.state)
    return True


def handle_realm_update(ctx: TagContext, attrs: Attributes) -> bool:
    """
    Set a character's realm.

    The player's realm is derived from experience whenever the world
    defines realm tiers, so for the player the tag re-derives it instead.
    """
    target = ctx.find_entity(text_attr(attrs, "target"))
    realm = text_attr(attrs, "realm")
    if target is None or realm is None:
        return False

    tiers = ctx.state.world_data.realm_tiers
    if target.type == EntityType.PC and tiers and target.current_exp:
        derived = evaluate_realm(target.current_exp, tiers)
        if derived is not None:
            if derived != realm:
                logger.warning(
                    "REALM_UPDATE %s -> %s ignored; experience gives %s", target.name, realm, derived
                )
            apply_realm_progression(ctx.state)
            return True

    ctx.put_entity(target.model_copy(update={"realm": realm}))
    return True


def handle_companion(ctx: TagContext, attrs: Attributes) -> bool:
    """Add a companion to the party and the known entities."""
    if text_attr(attrs, "name") is None or text_attr(attrs, "description") is None:
        logger.warning("COMPANION requires name and description: %s", attrs)
        return False
    data = dict(attrs)
    data["type"] = EntityType.COMPANION
    data.setdefault("referenceId", ctx.new_reference_id(EntityType.COMPANION))
    if not text_attr(data, "relationship"):
        data["relationship"] = DEFAULT_COMPANION_RELATIONSHIP
    companion = Entity.model_validate(data)

    joined = ctx.state.party_member(companion.name) is None
    ctx.state.party = [m for m in ctx.state.party if m.name != companion.name] + [companion]
    ctx.state.known_entities[companion.name] = companion
    if joined:
        ctx.event(f"Companion joined: {companion.name} ({companion.relationship})")
    return True


def handle_relationship_changed(ctx: TagContext, attrs: Attributes) -> bool:
    entity = ctx.find_entity(text_attr(attrs, "npcName"))
    if entity is None:
        return False
    relationship = text_attr(attrs, "relationship")
    if relationship != entity.relationship:
        ctx.event(
            f"Relationship with {entity.name}: {entity.relationship or 'unknown'} -> {relationship}"
        )
    ctx.put_entity(entity.model_copy(update={"relationship": relationship}))
    return True
