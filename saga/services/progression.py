"""
Progression Service for Saga.

Two progression ladders live here:

- The character realm, a pure function of ``currentExp`` and the world's
  ordered realm tier table.
- Skill mastery, advanced through capped skill experience and
  probabilistic breakthroughs.

Randomness is always injected as a ``random.Random`` so results are
reproducible in tests.
"""

from __future__ import annotations

import logging
import random

from pydantic import BaseModel

from saga.models.entity import Entity, EntityType, Number
from saga.models.state import GameState, RealmTier
from saga.services.skills import skill_base_name

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MASTERY_ORDER: list[str] = ["Sơ Cấp", "Trung Cấp", "Cao Cấp", "Đại Thành", "Viên Mãn"]

MASTERY_THRESHOLDS: dict[str, int] = {
    "Sơ Cấp": 100,
    "Trung Cấp": 300,
    "Cao Cấp": 600,
    "Đại Thành": 1000,
    "Viên Mãn": 1500,
}

MAX_MASTERY = MASTERY_ORDER[-1]

DEFAULT_BREAKTHROUGH_RATE = 0.75
BREAKTHROUGH_ELIGIBILITY_CHANCE = 0.20


SKILL_USAGE_VERBS = [
    "dùng",
    "sử dụng",
    "kích hoạt",
    "thi triển",
    "phản đòn bằng",
    "tu luyện",
    "luyện tập",
    "with",
    "using",
    "practice",
    "train",
]


# =============================================================================
# Realm Progression
# =============================================================================


def evaluate_realm(current_exp: Number, tiers: list[RealmTier]) -> str | None:
    """
    Compute the realm for an experience total.

    Args:
        current_exp: Accumulated experience
        tiers: Realm tier table, in any order

    Returns:
        Name of the highest tier whose requirement is met, or None
    """
    reached = [tier for tier in tiers if tier.required_exp <= current_exp]
    if not reached:
        return None
    return max(reached, key=lambda tier: tier.required_exp).name


def apply_realm_progression(state: GameState) -> str | None:
    """
    Re-derive the player character's realm in place.

    Only the PC progresses, and only once it has a non-zero experience
    total. When no tier qualifies the existing realm is kept.

    Returns:
        The new realm name if it changed, else None
    """
    pc = state.find_pc()
    tiers = state.world_data.realm_tiers
    if pc is None or not tiers or not pc.current_exp:
        return None

    realm = evaluate_realm(pc.current_exp, tiers)
    if realm is None or realm == pc.realm:
        return None

    logger.info("Realm progression for %s: %s -> %s", pc.name, pc.realm, realm)
    updated = pc.model_copy(update={"realm": realm})
    state.known_entities[pc.name] = updated
    state.replace_party_member(updated)
    return realm


# =============================================================================
# Skill Experience
# =============================================================================


class SkillExpResult(BaseModel):
    """Result of a skill experience or breakthrough operation."""

    skill: Entity
    exp_gained: Number = 0
    mastery_level_up: bool = False
    previous_mastery: str | None = None
    new_mastery: str | None = None


def _mastery_of(skill: Entity) -> str:
    if skill.mastery in MASTERY_THRESHOLDS:
        return skill.mastery
    return MASTERY_ORDER[0]


def initialize_skill_exp(skill: Entity) -> Entity:
    """Fill in default experience bookkeeping on a skill entity."""
    if skill.type != EntityType.SKILL:
        return skill
    mastery = _mastery_of(skill)
    return skill.model_copy(
        update={
            "skill_exp": skill.skill_exp or 0,
            "max_skill_exp": MASTERY_THRESHOLDS[mastery],
            "mastery": mastery,
        }
    )


def add_skill_exp(skill: Entity, amount: Number) -> SkillExpResult:
    """
    Add experience to a skill without ever overflowing its cap.

    Reaching the cap marks the skill capped; it then needs a breakthrough
    before gaining more. Mastery never advances here.
    """
    if skill.type != EntityType.SKILL or amount <= 0:
        return SkillExpResult(skill=skill)

    skill = initialize_skill_exp(skill)
    mastery = _mastery_of(skill)
    current = skill.skill_exp or 0
    maximum = skill.max_skill_exp or MASTERY_THRESHOLDS[mastery]

    if skill.skill_capped or current >= maximum:
        logger.debug("Skill %s is capped at %s/%s", skill.name, current, maximum)
        capped = skill.model_copy(
            update={"skill_capped": True, "breakthrough_eligible": mastery != MAX_MASTERY}
        )
        return SkillExpResult(skill=capped)

    new_exp = min(current + amount, maximum)
    became_capped = new_exp >= maximum
    updated = skill.model_copy(
        update={
            "skill_exp": new_exp,
            "skill_capped": became_capped,
            "breakthrough_eligible": became_capped and mastery != MAX_MASTERY,
        }
    )
    if became_capped:
        logger.info("Skill %s reached its cap (%s/%s)", skill.name, new_exp, maximum)
    return SkillExpResult(skill=updated, exp_gained=new_exp - current)


def attempt_breakthrough(
    skill: Entity,
    rng: random.Random,
    success_rate: float = DEFAULT_BREAKTHROUGH_RATE,
) -> SkillExpResult:
    """
    Try to advance a capped skill to the next mastery level.

    On success experience resets and the next cap applies; on failure the
    skill stays capped and loses its eligibility until the next roll.
    """
    if (
        skill.type != EntityType.SKILL
        or not skill.skill_capped
        or skill.mastery == MAX_MASTERY
    ):
        logger.warning("Invalid breakthrough attempt for skill %s", skill.name)
        return SkillExpResult(skill=skill)

    mastery = _mastery_of(skill)
    index = MASTERY_ORDER.index(mastery)
    if rng.random() < success_rate and index < len(MASTERY_ORDER) - 1:
        new_mastery = MASTERY_ORDER[index + 1]
        logger.info("Breakthrough succeeded for %s: %s -> %s", skill.name, mastery, new_mastery)
        updated = skill.model_copy(
            update={
                "mastery": new_mastery,
                "skill_exp": 0,
                "max_skill_exp": MASTERY_THRESHOLDS[new_mastery],
                "skill_capped": False,
                "breakthrough_eligible": False,
            }
        )
        return SkillExpResult(
            skill=updated,
            mastery_level_up=True,
            previous_mastery=mastery,
            new_mastery=new_mastery,
        )

    logger.info("Breakthrough failed for %s, remains at %s", skill.name, mastery)
    return SkillExpResult(skill=skill.model_copy(update={"breakthrough_eligible": False}))


def roll_for_breakthrough_eligibility(
    skills: list[Entity], rng: random.Random
) -> list[Entity]:
    """Give every capped, not-yet-eligible skill a chance to become eligible."""
    rolled = []
    for skill in skills:
        if (
            skill.type == EntityType.SKILL
            and skill.skill_capped
            and not skill.breakthrough_eligible
            and skill.mastery != MAX_MASTERY
            and rng.random() < BREAKTHROUGH_ELIGIBILITY_CHANCE
        ):
            logger.info("Skill %s became eligible for breakthrough", skill.name)
            skill = skill.model_copy(update={"breakthrough_eligible": True})
        rolled.append(skill)
    return rolled


def can_gain_exp(skill: Entity) -> bool:
    """Whether the skill may still gain experience."""
    return skill.type == EntityType.SKILL and not skill.skill_capped


def detect_skill_usage(text: str, skills: list[Entity]) -> list[Entity]:
    """
    Skills used in ``text``.

    A skill counts when its full name appears, or when a usage verb is
    followed by its mastery-independent base name ("dùng kiếm pháp").
    """
    lowered = text.lower()
    used = []
    for skill in skills:
        if skill.type != EntityType.SKILL:
            continue
        base = skill_base_name(skill.name)
        if skill.name.lower() in lowered or (
            base and any(f"{verb} {base}" in lowered for verb in SKILL_USAGE_VERBS)
        ):
            used.append(skill)
    return used


def calculate_skill_exp_gain(context: str) -> int:
    """Experience awarded for one use of a skill in the given context."""
    lowered = context.lower()
    if any(word in lowered for word in ("tu luyện", "luyện tập", "train", "practice")):
        return 15
    combat_words = ("chiến đấu", "đánh", "tấn công", "phản đòn", "combat", "attack", "fight")
    if any(word in lowered for word in combat_words):
        return 10
    return 5


def award_skill_usage(state: GameState, action: str) -> list[SkillExpResult]:
    """
    Grant usage experience to the player's skills named in an action, in place.

    Capped skills are skipped; they need a breakthrough first.
    """
    pc = state.find_pc()
    if pc is None or not pc.learned_skills:
        return []
    held = [
        state.known_entities[name]
        for name in pc.learned_skills
        if name in state.known_entities
    ]
    amount = calculate_skill_exp_gain(action)
    results = []
    for skill in detect_skill_usage(action, held):
        if not can_gain_exp(skill):
            continue
        result = add_skill_exp(skill, amount)
        state.known_entities[skill.name] = result.skill
        results.append(result)
        logger.info("Skill %s used: +%s exp", skill.name, result.exp_gained)
    return results
