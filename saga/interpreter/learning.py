"""
Skill Tag Handlers for Saga.

Covers skill experience and breakthroughs as well as learning and
upgrading skills. Learning is rank-aware: a higher mastery of a skill
someone already knows replaces the lower one everywhere it is held.
"""

from __future__ import annotations

import logging

from saga.interpreter.attributes import Attributes, parse_float, parse_int, text_attr
from saga.interpreter.context import TagContext
from saga.models.entity import Entity, EntityType
from saga.services.progression import (
    DEFAULT_BREAKTHROUGH_RATE,
    add_skill_exp,
    attempt_breakthrough,
    roll_for_breakthrough_eligibility,
)
from saga.services.skills import (
    add_skill_to_holder,
    replace_skill_references,
    same_skill,
    skill_base_name,
    skill_rank,
)

logger = logging.getLogger(__name__)

MASTERY_STEPS = [
    ("Cơ Bản", "Sơ Cấp"),
    ("Sơ Cấp", "Trung Cấp"),
    ("Trung Cấp", "Cao Cấp"),
    ("Cao Cấp", "Đại Thành"),
    ("Đại Thành", "Viên Mãn"),
]

CHARACTER_TYPES = (EntityType.NPC, EntityType.COMPANION)


# =============================================================================
# Experience and breakthroughs
# =============================================================================


def _skill_entity(ctx: TagContext, name: str | None) -> Entity | None:
    entity = ctx.find_entity(name)
    if entity is None or entity.type != EntityType.SKILL:
        return None
    return entity


def handle_skill_exp_reward(ctx: TagContext, attrs: Attributes) -> bool:
    """Award experience to every skill the player has learned."""
    amount = parse_int(attrs.get("amount"))
    if amount <= 0:
        return False
    pc = ctx.state.find_pc()
    if pc is None or not pc.learned_skills:
        logger.warning("SKILL_EXP_REWARD: no player character or learned skills")
        return False

    updated = 0
    for skill_name in pc.learned_skills:
        skill = _skill_entity(ctx, skill_name)
        if skill is None:
            continue
        result = add_skill_exp(skill, amount)
        ctx.put_entity(result.skill)
        if result.exp_gained > 0:
            updated += 1
    if updated:
        logger.info("SKILL_EXP_REWARD: %s exp to %d skill(s)", amount, updated)
    return updated > 0


def handle_skill_exp_gain(ctx: TagContext, attrs: Attributes) -> bool:
    skill_name = text_attr(attrs, "skillName")
    amount = parse_int(attrs.get("amount"))
    if skill_name is None or amount <= 0:
        return False
    skill = _skill_entity(ctx, skill_name)
    if skill is None:
        logger.warning("SKILL_EXP_GAIN: skill %r not found", skill_name)
        return False
    result = add_skill_exp(skill, amount)
    ctx.put_entity(result.skill)
    return result.exp_gained > 0


def handle_skill_breakthrough(ctx: TagContext, attrs: Attributes) -> bool:
    skill_name = text_attr(attrs, "skillName")
    if skill_name is None:
        return False
    skill = _skill_entity(ctx, skill_name)
    if skill is None:
        logger.warning("SKILL_BREAKTHROUGH: skill %r not found", skill_name)
        return False
    rate = parse_float(attrs.get("successRate")) or DEFAULT_BREAKTHROUGH_RATE
    result = attempt_breakthrough(skill, ctx.rng, rate)
    ctx.put_entity(result.skill)
    if result.mastery_level_up:
        ctx.event(
            f"Breakthrough: {skill_name} {result.previous_mastery} -> {result.new_mastery}"
        )
    return True


def handle_skill_breakthrough_roll(ctx: TagContext, attrs: Attributes) -> bool:
    skills = ctx.state.entities_of_type(EntityType.SKILL)
    for skill in roll_for_breakthrough_eligibility(skills, ctx.rng):
        ctx.put_entity(skill)
    return bool(skills)


# =============================================================================
# Learning
# =============================================================================


def _still_held(ctx: TagContext, name: str) -> bool:
    holders = [*ctx.state.known_entities.values(), *ctx.state.party]
    return any(h.is_character and name in h.skill_names() for h in holders)


def _find_same_base_skill(ctx: TagContext, name: str) -> Entity | None:
    base = skill_base_name(name)
    for entity in ctx.state.entities_of_type(EntityType.SKILL):
        if entity.name != name and skill_base_name(entity.name) == base:
            return entity
    return None


def _infer_learner(ctx: TagContext, name: str, description: str) -> str | None:
    """Low-confidence learner guess from the skill's own text."""
    characters = ctx.state.entities_of_type(*CHARACTER_TYPES)
    context = f"{name} {description}".lower()
    for character in characters:
        if character.name.lower() in context:
            return character.name
    if "haki" in name.lower():
        for character in characters:
            if any("haki" in skill.lower() for skill in character.skills):
                return character.name
    return None


def resolve_learner(ctx: TagContext, learner: str | None, name: str, description: str) -> str | None:
    """
    Decide who learns a skill.

    Explicit learners are looked up among known NPCs and companions, then
    the party, then the player (by name or "pc"). Unknown learners fall
    back to the player with a warning. Without a learner, the skill text
    is searched for a character name before defaulting to the player.
    """
    pc = ctx.state.find_pc()
    pc_name = pc.name if pc else None

    if learner:
        entity = ctx.find_entity(learner)
        if entity is not None and entity.type in CHARACTER_TYPES:
            return learner
        member = ctx.state.party_member(learner)
        if member is not None and member.type in CHARACTER_TYPES:
            return learner
        if pc_name and (learner == pc_name or learner.lower() == "pc"):
            return pc_name
        logger.warning("SKILL_LEARNED: learner %r not found, defaulting to player", learner)
        ctx.event(f"Learner '{learner}' for {name} not found; defaulted to player")
        return pc_name

    inferred = _infer_learner(ctx, name, description)
    if inferred is not None:
        logger.warning("SKILL_LEARNED without learner: inferred %s for %s", inferred, name)
        ctx.event(f"Learner for {name} inferred as {inferred} (low confidence)")
        return inferred
    logger.warning("SKILL_LEARNED without learner: %s defaulted to player", name)
    ctx.event(f"Learner for {name} not given; defaulted to player")
    return pc_name


def handle_skill_learned(ctx: TagContext, attrs: Attributes) -> bool:
    """Create the skill entity and add it to the resolved learner."""
    name = text_attr(attrs, "name")
    description = text_attr(attrs, "description")
    if name is None or description is None:
        logger.warning("SKILL_LEARNED requires name and description: %s", attrs)
        return False
    learner = text_attr(attrs, "learner") or text_attr(attrs, "target")
    rest = {k: v for k, v in attrs.items() if k not in ("learner", "target", "referenceId")}
    rest["type"] = EntityType.SKILL

    duplicate = next(
        (
            e
            for e in ctx.state.entities_of_type(EntityType.SKILL)
            if same_skill(e.name, name)
        ),
        None,
    )
    if duplicate is not None:
        rest["name"] = duplicate.name
        rest["referenceId"] = duplicate.reference_id or ctx.new_reference_id(EntityType.SKILL)
        skill = duplicate.merged(rest)
        logger.info("SKILL_LEARNED refreshed existing skill %s", duplicate.name)
    else:
        previous = _find_same_base_skill(ctx, name)
        if previous is not None:
            new_rank, old_rank = skill_rank(name), skill_rank(previous.name)
            if new_rank < old_rank:
                logger.info("SKILL_LEARNED rejected %s: %s is already known", name, previous.name)
                return False
            if new_rank > old_rank:
                replace_skill_references(ctx.state, previous.name, name)
                ctx.remove_entity(previous.name)
                ctx.event(f"Skill upgraded: {previous.name} -> {name}")
        rest["referenceId"] = ctx.new_reference_id(EntityType.SKILL)
        skill = Entity.model_validate(rest)

    ctx.put_entity(skill)

    holder = resolve_learner(ctx, learner, name, description)
    if holder is not None:
        add_skill_to_holder(ctx.state, holder, skill.name)
    return True


def handle_skill_update(ctx: TagContext, attrs: Attributes) -> bool:
    """Rename a held skill (mastery step or evolution) for one or all holders."""
    old_skill = text_attr(attrs, "oldSkill")
    new_skill = text_attr(attrs, "newSkill")
    if old_skill is None or new_skill is None:
        logger.warning("SKILL_UPDATE requires oldSkill and newSkill")
        return False
    if old_skill == new_skill:
        logger.warning("SKILL_UPDATE: oldSkill and newSkill are the same")
        return False

    description = text_attr(attrs, "description")
    if description is not None:
        data = {
            k: v
            for k, v in attrs.items()
            if k not in ("oldSkill", "newSkill", "target", "referenceId")
        }
        data.update({"name": new_skill, "type": EntityType.SKILL})
        data["referenceId"] = ctx.new_reference_id(EntityType.SKILL)
        ctx.put_entity(Entity.model_validate(data))

    is_mastery = any(a in old_skill and b in new_skill for a, b in MASTERY_STEPS)
    label = "Mastery" if is_mastery else "Evolved"

    target = text_attr(attrs, "target")
    holders: set[str] | None = None
    if target is not None:
        holders = {target}
        pc = ctx.state.find_pc()
        if pc is not None and target.lower() == "pc":
            holders.add(pc.name)

    updated = replace_skill_references(ctx.state, old_skill, new_skill, holders)
    if updated:
        if ctx.find_entity(old_skill) is not None and not _still_held(ctx, old_skill):
            ctx.remove_entity(old_skill)
        ctx.event(f"{label}: {old_skill} -> {new_skill} for {', '.join(updated)}")
    else:
        logger.warning("SKILL_UPDATE: nobody holds %r", old_skill)
    return bool(updated) or description is not None
