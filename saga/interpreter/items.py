"""
Inventory Tag Handlers for Saga.

Every inventory directive addresses items by name and, except for damage
and repair, only touches items the player owns.
"""

from __future__ import annotations

import logging

from saga.interpreter.attributes import Attributes, parse_int, text_attr
from saga.interpreter.context import TagContext
from saga.models.entity import Entity, EntityType

logger = logging.getLogger(__name__)

MAX_DURABILITY = 100


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def handle_item_acquired(ctx: TagContext, attrs: Attributes) -> bool:
    """Stack onto an owned item of the same name, or create a new one."""
    name = text_attr(attrs, "name")
    if name is None:
        return False
    attrs = dict(attrs)
    if "quantities" in attrs and not _is_number(attrs["quantities"]):
        logger.warning("ITEM_AQUIRED %s: ignoring non-numeric quantity %r", name, attrs["quantities"])
        del attrs["quantities"]

    existing = ctx.owned_item(name)
    if existing is not None:
        incoming = attrs.get("quantities") or 1
        current = existing.quantities or existing.uses or 1
        total = current + incoming
        updates = {k: v for k, v in attrs.items() if k not in ("quantities", "uses", "type")}
        if existing.quantities:
            updates["quantities"] = total
        elif existing.uses:
            updates["uses"] = total
        else:
            updates["quantities"] = total
        ctx.put_entity(existing.merged(updates))
        logger.info("Stacked %s: %s + %s = %s", name, current, incoming, total)
        return True

    data = {"owner": "pc", **attrs}
    data["type"] = EntityType.ITEM
    data.setdefault("referenceId", ctx.new_reference_id(EntityType.ITEM))
    ctx.put_entity(Entity.model_validate(data))
    return True


def handle_item_consumed(ctx: TagContext, attrs: Attributes) -> bool:
    """Use up some of an owned item; it is removed once nothing remains."""
    name = text_attr(attrs, "name")
    item = ctx.owned_item(name)
    if item is None:
        return False

    amount = attrs.get("quantity") or attrs.get("quantities") or 1
    amount = amount if _is_number(amount) else parse_int(amount, 1)
    current = item.quantities or item.uses

    if not _is_number(current) or current <= amount:
        ctx.remove_entity(item.name)
        logger.info("Consumed last of %s", item.name)
        return True

    field = "quantities" if item.quantities else "uses"
    ctx.put_entity(item.model_copy(update={field: current - amount}))
    return True


def handle_item_equipped(ctx: TagContext, attrs: Attributes) -> bool:
    item = ctx.owned_item(text_attr(attrs, "name"))
    if item is None or not item.equippable:
        return False
    ctx.put_entity(item.model_copy(update={"equipped": True}))
    return True


def handle_item_unequipped(ctx: TagContext, attrs: Attributes) -> bool:
    item = ctx.owned_item(text_attr(attrs, "name"))
    if item is None:
        return False
    ctx.put_entity(item.model_copy(update={"equipped": False}))
    return True


def handle_item_transformed(ctx: TagContext, attrs: Attributes) -> bool:
    """Replace ``oldName`` with a new item ``newName``."""
    old_name = text_attr(attrs, "oldName")
    new_name = text_attr(attrs, "newName")
    if old_name is None or new_name is None:
        return False

    old_item = ctx.remove_entity(old_name)
    data = {k: v for k, v in attrs.items() if k not in ("oldName", "newName", "referenceId")}
    data.update(
        {
            "name": new_name,
            "type": EntityType.ITEM,
            "owner": (old_item.owner if old_item else None) or "pc",
            "description": text_attr(attrs, "description")
            or f"Vật phẩm được biến đổi từ {old_name}.",
            "referenceId": ctx.new_reference_id(EntityType.ITEM),
        }
    )
    ctx.put_entity(Entity.model_validate(data))
    logger.info("Transformed %s into %s", old_name, new_name)
    return True


def handle_item_updated(ctx: TagContext, attrs: Attributes) -> bool:
    item = ctx.owned_item(text_attr(attrs, "name"))
    if item is None:
        return False
    updates = {k: v for k, v in attrs.items() if k != "type"}
    ctx.put_entity(item.merged(updates))
    return True


def handle_item_damaged(ctx: TagContext, attrs: Attributes) -> bool:
    item = ctx.find_entity(text_attr(attrs, "name"))
    if item is None or not _is_number(item.durability):
        return False
    damage = attrs.get("damage") if _is_number(attrs.get("damage")) else 0
    ctx.put_entity(item.model_copy(update={"durability": max(0, item.durability - damage)}))
    return True


def handle_item_repaired(ctx: TagContext, attrs: Attributes) -> bool:
    item = ctx.find_entity(text_attr(attrs, "name"))
    if item is None or not _is_number(item.durability):
        return False
    amount = attrs.get("repairedAmount") if _is_number(attrs.get("repairedAmount")) else 0
    durability = min(MAX_DURABILITY, item.durability + amount)
    ctx.put_entity(item.model_copy(update={"durability": durability}))
    return True


def handle_item_removed(ctx: TagContext, attrs: Attributes) -> bool:
    """ITEM_DISCARDED and ITEM_LOST: forget an owned item entirely."""
    item = ctx.owned_item(text_attr(attrs, "name"))
    if item is None:
        return False
    ctx.remove_entity(item.name)
    return True


def handle_special_item_generate(ctx: TagContext, attrs: Attributes) -> bool:
    """Ask the model, via the display text, to invent special reward items."""
    quantity = attrs.get("quantities") or 1
    quest_title = text_attr(attrs, "questTitle")
    ctx.appended_text.append(
        f"[AI_GENERATE_SPECIAL_ITEM: Generate {quantity} unique mysterious special item(s) "
        f'as reward(s) for completing "{quest_title}". Create items with unique names, '
        "descriptions, and abilities. Then use ITEM_AQUIRED tag(s) to add them to inventory.]"
    )
    return True
