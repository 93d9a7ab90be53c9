"""
Quest Tag Handlers for Saga.

Quests are addressed by title. Completing a quest awards any experience
named in its reward text ("200 exp", "50 kinh nghiệm") to the player,
once per transition into the completed state.
"""

from __future__ import annotations

import logging
import re

from saga.interpreter.attributes import Attributes, text_attr
from saga.interpreter.context import TagContext
from saga.models.quest import Quest, QuestStatus
from saga.services.progression import apply_realm_progression

logger = logging.getLogger(__name__)

REWARD_EXP_PATTERN = re.compile(r"(\d+)\s*(?:exp|kinh nghiệm|experience)", re.IGNORECASE)


def _find_quest(ctx: TagContext, title: str | None) -> Quest | None:
    if title is None:
        return None
    for quest in ctx.state.quests:
        if quest.title == title:
            return quest
    return None


def award_quest_reward(ctx: TagContext, quest: Quest) -> int:
    """
    Grant the experience named in a quest's reward to the player.

    Returns the experience awarded (0 when none applies).
    """
    if not quest.reward:
        return 0
    match = REWARD_EXP_PATTERN.search(quest.reward)
    pc = ctx.state.find_pc()
    if match is None or pc is None:
        return 0

    amount = int(match.group(1))
    updated = pc.model_copy(update={"current_exp": (pc.current_exp or 0) + amount})
    ctx.put_entity(updated)
    apply_realm_progression(ctx.state)
    ctx.event(f"Quest '{quest.title}' completed: +{amount} exp")
    return amount


def _complete(ctx: TagContext, quest: Quest) -> None:
    was_completed = quest.status == QuestStatus.COMPLETED
    quest.status = QuestStatus.COMPLETED
    if not was_completed:
        award_quest_reward(ctx, quest)


def handle_quest_assigned(ctx: TagContext, attrs: Attributes) -> bool:
    title = text_attr(attrs, "title")
    if title is None:
        logger.warning("QUEST_ASSIGNED without a title")
        return False
    objectives = attrs.get("objectives")
    quest = Quest(
        title=title,
        description=text_attr(attrs, "description") or "",
        objectives=objectives if isinstance(objectives, list) else [],
        giver=text_attr(attrs, "giver"),
        reward=text_attr(attrs, "reward"),
        is_main_quest=attrs.get("isMainQuest") is True,
        status=QuestStatus.ACTIVE,
    )
    ctx.state.quests = [q for q in ctx.state.quests if q.title != title] + [quest]
    return True


def handle_quest_updated(ctx: TagContext, attrs: Attributes) -> bool:
    quest = _find_quest(ctx, text_attr(attrs, "title"))
    status_text = text_attr(attrs, "status")
    if quest is None or status_text is None:
        return False
    try:
        status = QuestStatus(status_text.lower())
    except ValueError:
        logger.warning("QUEST_UPDATED %s: unknown status %r", quest.title, status_text)
        return False

    if status == QuestStatus.COMPLETED:
        _complete(ctx, quest)
    else:
        quest.status = status
    return True


def handle_quest_objective_completed(ctx: TagContext, attrs: Attributes) -> bool:
    quest = _find_quest(ctx, text_attr(attrs, "questTitle"))
    description = text_attr(attrs, "objectiveDescription")
    if quest is None or description is None:
        return False
    if not quest.complete_objective(description):
        logger.warning("Quest %s has no objective %r", quest.title, description)
        return False
    if quest.all_objectives_complete:
        _complete(ctx, quest)
    return True
