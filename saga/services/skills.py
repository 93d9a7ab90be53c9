"""
Skill Synchronization Service for Saga.

Skills are referenced by name from several places at once: the flat
known-entity map, the player's ``learnedSkills``, NPC and companion
``skills`` lists, and the party copies of all of those. This module keeps
those references consistent when a skill is renamed or upgraded, and
implements the rank-aware merge used whenever new skills are learned.
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field

from saga.models.entity import Entity, EntityType
from saga.models.state import GameState
from saga.services.reference_ids import reference_id_for

logger = logging.getLogger(__name__)


PLACEHOLDER_SKILLS = frozenset(
    {
        "chưa có",
        "chua co",
        "none",
        "n/a",
        "không có",
        "khong co",
        "",
        "null",
        "undefined",
    }
)

_PARENTHETICAL = re.compile(r"\s*\([^)]*\)\s*")
_MASTERY_WORDS = re.compile(
    r"\s*(viên mãn|đại thành|tối cao|cao cấp|nâng cao|trung cấp|sơ cấp|cơ bản|cấp độ \d+)\s*"
)
_AFTER_COLON = re.compile(r"\s*:.*$")
_WHITESPACE = re.compile(r"\s+")

# Checked in order; first hit wins
_RANK_WORDS: list[tuple[tuple[str, ...], int]] = [
    (("viên mãn",), 5),
    (("đại thành",), 4),
    (("cao cấp", "nâng cao"), 3),
    (("trung cấp",), 2),
    (("sơ cấp", "cơ bản"), 1),
    (("tối cao",), 4),
]


def is_placeholder(name: str) -> bool:
    """Whether a skill name is a "no skills" placeholder."""
    return name.strip().lower() in PLACEHOLDER_SKILLS


def skill_base_name(name: str) -> str:
    """
    Normalize a skill name to its mastery-independent base.

    "Kiếm Pháp (Sơ Cấp)" and "Kiếm pháp cao cấp" share the base "kiếm pháp".
    """
    base = _WHITESPACE.sub(" ", name.lower()).strip()
    base = _PARENTHETICAL.sub(" ", base)
    base = _MASTERY_WORDS.sub(" ", base)
    base = _AFTER_COLON.sub("", base)
    return _WHITESPACE.sub(" ", base).strip()


def skill_rank(name: str) -> int:
    """Numeric mastery rank (0-5) named in a skill; 0 when none is recognized."""
    lowered = name.lower()
    for words, rank in _RANK_WORDS:
        if any(word in lowered for word in words):
            return rank
    return 0


def same_skill(a: str, b: str) -> bool:
    """Case-insensitive exact name equality."""
    return a.strip().lower() == b.strip().lower()


# =============================================================================
# Rank-aware merge
# =============================================================================


class SkillMergeResult(BaseModel):
    """Outcome of merging new skill names into a holder's list."""

    skills: list[str] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    upgraded: list[tuple[str, str]] = Field(
        default_factory=list, description="(old name, new name) pairs"
    )
    rejected: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.upgraded)


def merge_skills(existing: list[str], new_skills: list[str]) -> SkillMergeResult:
    """
    Merge new skill names into an existing list.

    A same-base skill at a higher rank replaces the lower one in place; a
    lower rank is rejected; an equal rank is added as a specialization
    unless it is a case-insensitive duplicate. Placeholders are ignored.
    """
    result = SkillMergeResult(skills=list(existing))
    for new_skill in new_skills:
        new_skill = new_skill.strip()
        if is_placeholder(new_skill):
            continue
        base = skill_base_name(new_skill)
        match = next((s for s in result.skills if skill_base_name(s) == base), None)

        if match is not None and not same_skill(match, new_skill):
            new_rank, old_rank = skill_rank(new_skill), skill_rank(match)
            if new_rank > old_rank:
                result.skills[result.skills.index(match)] = new_skill
                result.upgraded.append((match, new_skill))
                logger.info("Skill upgraded: %s -> %s", match, new_skill)
                continue
            if new_rank < old_rank:
                result.rejected.append(new_skill)
                logger.info("Rejected lower-rank skill %s (holds %s)", new_skill, match)
                continue

        if any(same_skill(s, new_skill) for s in result.skills):
            continue
        result.skills.append(new_skill)
        result.added.append(new_skill)
    return result


# =============================================================================
# Holder reconciliation
# =============================================================================


def _with_skill_list(holder: Entity, skills: list[str]) -> Entity:
    field = "learned_skills" if holder.type == EntityType.PC else "skills"
    return holder.model_copy(update={field: skills})


def _replace_in_list(skills: list[str], old_name: str, new_name: str) -> list[str] | None:
    if old_name not in skills:
        return None
    replaced: list[str] = []
    for skill in skills:
        candidate = new_name if skill == old_name else skill
        if candidate not in replaced:
            replaced.append(candidate)
    return replaced


def replace_skill_references(
    state: GameState,
    old_name: str,
    new_name: str,
    holders: set[str] | None = None,
) -> list[str]:
    """
    Rename a skill in every holder list, in place.

    Args:
        state: Working state to mutate
        old_name: Skill name to replace
        new_name: Replacement skill name
        holders: Restrict to these holder names; None means everyone

    Returns:
        Names of the holders that were updated
    """
    updated: list[str] = []
    for key, entity in list(state.known_entities.items()):
        if not entity.is_character or (holders is not None and entity.name not in holders):
            continue
        skills = _replace_in_list(entity.skill_names(), old_name, new_name)
        if skills is not None:
            state.known_entities[key] = _with_skill_list(entity, skills)
            updated.append(entity.name)

    for index, member in enumerate(state.party):
        if holders is not None and member.name not in holders:
            continue
        skills = _replace_in_list(member.skill_names(), old_name, new_name)
        if skills is not None:
            state.party[index] = _with_skill_list(member, skills)
            if member.name not in updated:
                updated.append(member.name)

    if updated:
        logger.info("Skill %s renamed to %s for %s", old_name, new_name, ", ".join(updated))
    return updated


def add_skill_to_holder(state: GameState, holder_name: str, skill_name: str) -> SkillMergeResult:
    """
    Merge a skill into a holder's list and its party copy, in place.

    Returns the merge result for the known-entity record (or the party copy
    when the holder only exists in the party).
    """
    result = SkillMergeResult()
    entity = state.known_entities.get(holder_name)
    if entity is not None:
        result = merge_skills(entity.skill_names(), [skill_name])
        state.known_entities[holder_name] = _with_skill_list(entity, result.skills)

    member = state.party_member(holder_name)
    if member is not None:
        party_result = merge_skills(member.skill_names(), [skill_name])
        state.replace_party_member(_with_skill_list(member, party_result.skills))
        if entity is None:
            result = party_result
    return result


def _is_held(state: GameState, name: str) -> bool:
    holders = [*state.known_entities.values(), *state.party]
    return any(h.is_character and name in h.skill_names() for h in holders)


def _rename_skill_entity(state: GameState, old_name: str, new_name: str) -> None:
    """Rename a skill entity in place, keeping its position in the map."""
    rebuilt: dict[str, Entity] = {}
    for name, entity in state.known_entities.items():
        if name == old_name:
            rebuilt[new_name] = entity.model_copy(update={"name": new_name})
        elif name != new_name:
            rebuilt[name] = entity
    state.known_entities = rebuilt


def synchronize_skill_names(state: GameState) -> list[tuple[str, str]]:
    """
    Point dangling holder references at existing skill entities.

    A held name with no skill entity is rewritten to the highest-rank skill
    entity sharing its base name. When the held name outranks that entity,
    a new entity is defined for the held name while anyone still holds the
    lower rank; otherwise the entity itself is renamed forward.
    Returns the (old, new) rewrites made.
    """
    skill_entities = [e.name for e in state.entities_of_type(EntityType.SKILL)]
    by_base: dict[str, str] = {}
    for name in skill_entities:
        base = skill_base_name(name)
        if base not in by_base or skill_rank(name) > skill_rank(by_base[base]):
            by_base[base] = name

    rewrites: list[tuple[str, str]] = []
    holder_names = [e.name for e in state.known_entities.values() if e.is_character]
    holder_names += [m.name for m in state.party if m.name not in holder_names]
    for holder in holder_names:
        entity = state.known_entities.get(holder) or state.party_member(holder)
        if entity is None:
            continue
        for held in entity.skill_names():
            if held in state.known_entities:
                continue
            base = skill_base_name(held)
            target = by_base.get(base)
            if not target or target == held:
                continue
            if skill_rank(held) > skill_rank(target):
                if _is_held(state, target):
                    # Others keep the lower rank; define the higher one beside it
                    lower = state.known_entities[target]
                    state.known_entities[held] = lower.model_copy(
                        update={
                            "name": held,
                            "reference_id": reference_id_for(state, EntityType.SKILL),
                        }
                    )
                    logger.info("Skill entity %s defined from %s", held, target)
                else:
                    _rename_skill_entity(state, target, held)
                    replace_skill_references(state, target, held)
                    logger.info("Skill entity %s upgraded to %s", target, held)
                    rewrites.append((target, held))
                by_base[base] = held
            else:
                replace_skill_references(state, held, target, holders={holder})
                rewrites.append((held, target))
    return rewrites
