"""
World Tag Handlers for Saga.

Time, chronicle and status directives.
"""

from __future__ import annotations

import logging

from saga.interpreter.attributes import Attributes, parse_int, text_attr
from saga.interpreter.context import TagContext
from saga.models.memory import Memory, MemorySource
from saga.models.regex_rule import RegexPlacement
from saga.models.state import GameTime
from saga.models.status import Status
from saga.services.enhancer import enhance_memory
from saga.services.regex_rules import (
    RegexProcessingParams,
    apply_regex_rules,
    macro_context_from_state,
)

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30
MONTHS_PER_YEAR = 12
MAX_STATUSES_PER_TYPE = 2


# =============================================================================
# Time
# =============================================================================


def advance_time(
    current: GameTime,
    years: int = 0,
    months: int = 0,
    days: int = 0,
    hours: int = 0,
    minutes: int = 0,
) -> GameTime:
    """
    Advance the in-world calendar.

    Minutes roll into hours and hours into days; days beyond 30 roll into
    months and months beyond 12 into years.
    """
    minute = current.minute + minutes
    hour = current.hour + minute // 60
    minute %= 60

    hour += hours
    day = current.day + hour // 24
    hour %= 24

    day += days
    month = current.month
    if day > DAYS_PER_MONTH:
        month += (day - 1) // DAYS_PER_MONTH
        day = (day - 1) % DAYS_PER_MONTH + 1

    month += months
    year = current.year
    if month > MONTHS_PER_YEAR:
        year += (month - 1) // MONTHS_PER_YEAR
        month = (month - 1) % MONTHS_PER_YEAR + 1

    return GameTime(year=year + years, month=month, day=day, hour=hour, minute=minute)


def handle_time_elapsed(ctx: TagContext, attrs: Attributes) -> bool:
    # Applied even when every component is zero (instant actions)
    ctx.state.game_time = advance_time(
        ctx.state.game_time,
        years=parse_int(attrs.get("years")),
        months=parse_int(attrs.get("months")),
        days=parse_int(attrs.get("days")),
        hours=parse_int(attrs.get("hours")),
        minutes=parse_int(attrs.get("minutes")),
    )
    return True


# =============================================================================
# Chronicle
# =============================================================================


def handle_chronicle_turn(ctx: TagContext, attrs: Attributes) -> bool:
    """Log the turn summary and turn it into an enhanced memory."""
    text = text_attr(attrs, "text")
    if text is None:
        return False
    ctx.state.chronicle.turn.append(text)

    processed = apply_regex_rules(
        text,
        RegexPlacement.MEMORY_PROCESSING,
        ctx.regex_rules,
        RegexProcessingParams(depth=ctx.turn, is_edit=False),
        macro_context_from_state(ctx.state),
    )
    memory = Memory(
        text=processed,
        pinned=False,
        source=MemorySource.CHRONICLE,
        created_at=ctx.turn,
        last_accessed=ctx.turn,
    )
    enhanced = enhance_memory(memory, ctx.state).enhanced
    ctx.state.memories.append(enhanced)
    logger.debug("Chronicle memory created with importance %s", enhanced.importance)
    return True


def handle_chronicle_chapter(ctx: TagContext, attrs: Attributes) -> bool:
    text = text_attr(attrs, "text")
    if text is None:
        return False
    ctx.state.chronicle.chapter.append(text)
    return True


def handle_chronicle_memoir(ctx: TagContext, attrs: Attributes) -> bool:
    text = text_attr(attrs, "text")
    if text is None:
        return False
    ctx.state.chronicle.memoir.append(text)
    return True


# =============================================================================
# Statuses
# =============================================================================


def apply_status_with_limit(statuses: list[Status], new_status: Status) -> list[Status]:
    """
    Add a status, enforcing at most two per (owner, type).

    A status with the same owner and name is replaced (refresh). When the
    owner already holds two of the same type, only the newest survives
    next to the new one. Untyped statuses are appended as-is.
    """
    if not new_status.type:
        return [*statuses, new_status]

    owner = new_status.owner
    remaining = [
        s for s in statuses if not (s.owner == owner and s.name == new_status.name)
    ]
    others = [s for s in remaining if s.owner != owner]
    owned = [s for s in remaining if s.owner == owner]
    same_type = [s for s in owned if s.type == new_status.type]
    other_types = [s for s in owned if s.type != new_status.type]

    if len(same_type) >= MAX_STATUSES_PER_TYPE:
        evicted = same_type[: len(same_type) - (MAX_STATUSES_PER_TYPE - 1)]
        logger.info(
            "Status limit reached for %s (%s); evicting %s",
            owner,
            new_status.type,
            ", ".join(s.name for s in evicted),
        )
        same_type = same_type[-(MAX_STATUSES_PER_TYPE - 1) :]

    return [*others, *other_types, *same_type, new_status]


def _status_from(attrs: Attributes, owner: str) -> Status:
    data = {k: v for k, v in attrs.items() if k != "npcName"}
    data["owner"] = owner
    return Status.model_validate(data)


def handle_status_applied_self(ctx: TagContext, attrs: Attributes) -> bool:
    if text_attr(attrs, "name") is None:
        return False
    ctx.state.statuses = apply_status_with_limit(ctx.state.statuses, _status_from(attrs, "pc"))
    return True


def handle_status_applied_npc(ctx: TagContext, attrs: Attributes) -> bool:
    owner = text_attr(attrs, "npcName")
    if owner is None or text_attr(attrs, "name") is None:
        logger.warning("STATUS_APPLIED_NPC without npcName or name: %s", attrs)
        return False
    ctx.state.statuses = apply_status_with_limit(ctx.state.statuses, _status_from(attrs, owner))
    return True


def _cure(ctx: TagContext, name: str | None, owner: str | None) -> bool:
    before = len(ctx.state.statuses)
    ctx.state.statuses = [
        s for s in ctx.state.statuses if not (s.name == name and s.owner == owner)
    ]
    return len(ctx.state.statuses) != before


def handle_status_cured_self(ctx: TagContext, attrs: Attributes) -> bool:
    return _cure(ctx, text_attr(attrs, "name"), "pc")


def handle_status_cured_npc(ctx: TagContext, attrs: Attributes) -> bool:
    return _cure(ctx, text_attr(attrs, "name"), text_attr(attrs, "npcName"))
