"""
History Compression Service for Saga.

Keeps the raw turn history to a sliding window. Once history grows past
the compression threshold, everything older than the most recent
``max_active_entries`` entries is folded into a single
CompressedHistorySegment. Surviving entries keep their order.
"""

from __future__ import annotations

import logging
import math
import re

from pydantic import BaseModel, Field, model_validator

from saga.models.history import CompressedHistorySegment, HistoryEntry, HistoryRole

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration
# =============================================================================


class HistoryConfig(BaseModel):
    """Sliding-window settings for raw history."""

    max_active_entries: int = Field(default=70, ge=2)
    compression_threshold: int = Field(default=72, ge=2)
    summary_length: int = Field(default=200, ge=10)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _threshold_covers_window(self) -> HistoryConfig:
        if self.compression_threshold < self.max_active_entries:
            raise ValueError("compression_threshold must be >= max_active_entries")
        return self


# =============================================================================
# Constants
# =============================================================================

TOKENS_PER_ENTRY = 500
TOKENS_PER_CHAR = 0.8

MAX_ACTION_LENGTH = 50
MAX_EVENT_LENGTH = 100
MAX_EVENTS_PER_STORY = 5
MAX_KEY_ACTIONS = 10
MAX_IMPORTANT_EVENTS = 10
MAX_RECENT_CHOICES = 8
MAX_STORY_FLOW = 3

PLAYER_ACTION_PATTERN = re.compile(r'--- HÀNH ĐỘNG CỦA NGƯỜI CHƠI ---\n"([^"]+)"')
SYSTEM_ACTION = "SYSTEM_RULE_UPDATE"

IMPORTANT_ACTION_KEYWORDS = (
    # Combat
    "tấn công",
    "đánh",
    "chiến đấu",
    "giết",
    "chém",
    "đâm",
    # Social
    "nói với",
    "hỏi",
    "thuyết phục",
    "giao dịch",
    "mua",
    "bán",
    # Movement
    "đi đến",
    "di chuyển",
    "rời khỏi",
    "về",
    # Items and skills
    "sử dụng",
    "học",
    "trang bị",
    "lấy",
    # Decisions
    "quyết định",
    "chọn",
    "tìm kiếm",
    "khám phá",
)

IMPORTANT_EVENT_PATTERNS = [
    re.compile(r"nhận được ([^.!?]+)", re.IGNORECASE),
    re.compile(r"tìm thấy ([^.!?]+)", re.IGNORECASE),
    re.compile(r"thu thập ([^.!?]+)", re.IGNORECASE),
    re.compile(r"(đánh bại|chiến thắng|thua|chết) ([^.!?]+)", re.IGNORECASE),
    re.compile(r"học được ([^.!?]+)", re.IGNORECASE),
    re.compile(r"nâng cấp ([^.!?]+)", re.IGNORECASE),
    re.compile(r"phát hiện ([^.!?]+)", re.IGNORECASE),
    re.compile(r"gặp ([^.!?]+)", re.IGNORECASE),
    re.compile(r"(bị|được) ([^.!?]+)", re.IGNORECASE),
]

_SENTENCE_END = re.compile(r"[.!?]+")


# =============================================================================
# Result Models
# =============================================================================


class HistoryResult(BaseModel):
    """Outcome of one sliding-window pass."""

    active_history: list[HistoryEntry]
    compressed_segment: CompressedHistorySegment | None = None
    original_size: int = 0
    new_size: int = 0
    saved_entries: int = 0

    @property
    def compressed(self) -> bool:
        return self.compressed_segment is not None


class HistoryStats(BaseModel):
    """Size and savings estimate across active and compressed history."""

    active_entries: int
    compressed_segments: int
    total_original_entries: int
    compression_ratio: float
    estimated_tokens_saved: int


# =============================================================================
# Helpers
# =============================================================================


def estimate_tokens(text: str) -> int:
    """Conservative token estimate for Vietnamese text."""
    return math.ceil(len(text) * TOKENS_PER_CHAR)


def is_important_action(action: str) -> bool:
    lowered = action.lower()
    return any(keyword in lowered for keyword in IMPORTANT_ACTION_KEYWORDS)


def summarize_action(action: str) -> str:
    if len(action) > MAX_ACTION_LENGTH:
        return action[: MAX_ACTION_LENGTH - 3] + "..."
    return action


def extract_important_events(story: str) -> list[str]:
    """Short notable-event phrases from one story, at most five."""
    events = [
        match.group(0).strip()
        for pattern in IMPORTANT_EVENT_PATTERNS
        for match in pattern.finditer(story)
        if len(match.group(0)) < MAX_EVENT_LENGTH
    ]
    return events[:MAX_EVENTS_PER_STORY]


def create_summary(
    actions: list[str], events: list[str], start_turn: int, end_turn: int, max_length: int
) -> str:
    summary = f"Lượt: {start_turn}-{end_turn}: "
    parts = []
    if actions:
        parts.append(f"{len(actions)} hành động quan trọng")
    if events:
        parts.append(f"{len(events)} sự kiện đáng chú ý")
    summary += ", ".join(parts) if parts else "các hoạt động thường ngày"
    summary += "."
    if len(summary) > max_length:
        summary = summary[: max_length - 3] + "..."
    return summary


def covered_turns(history_size: int, compressed_count: int, turn_count: int) -> tuple[int, int]:
    """
    Turn range covered by the oldest ``compressed_count`` entries.

    History ends at ``turn_count`` with two entries per turn, so the first
    active entry belongs to turn ``turn_count - ceil(size / 2) + 1``.
    """
    first = max(1, turn_count - (history_size + 1) // 2 + 1)
    last = max(first, first + (compressed_count + 1) // 2 - 1)
    return first, min(last, max(turn_count, first))


def parse_turn_range(turn_range: str) -> tuple[int, int]:
    start, _, end = turn_range.partition("-")
    try:
        first = int(start)
        return first, int(end) if end else first
    except ValueError:
        return 0, -1


def compress_history_segment(
    entries: list[HistoryEntry],
    start_turn: int,
    end_turn: int,
    summary_length: int,
) -> CompressedHistorySegment:
    """
    Summarize a contiguous run of entries.

    Args:
        entries: Entries to fold, oldest first
        start_turn: First turn covered
        end_turn: Last turn covered
        summary_length: Maximum summary length in characters

    Returns:
        The compressed segment
    """
    key_actions: list[str] = []
    important_events: list[str] = []
    recent_choices: list[str] = []
    story_flow: list[str] = []

    for entry in entries:
        if entry.role == HistoryRole.USER:
            match = PLAYER_ACTION_PATTERN.search(entry.text)
            if match and match.group(1) != SYSTEM_ACTION and is_important_action(match.group(1)):
                key_actions.append(summarize_action(match.group(1)))
            continue

        story = entry.story()
        if story:
            important_events.extend(extract_important_events(story))
            lines = [line.strip() for line in _SENTENCE_END.split(story) if len(line.strip()) > 10]
            if lines:
                story_flow.append(lines[-1])
        recent_choices.extend(choice.strip() for choice in entry.choices() if choice.strip())

    key_actions = key_actions[:MAX_KEY_ACTIONS]
    important_events = important_events[:MAX_IMPORTANT_EVENTS]
    recent_choices = recent_choices[:MAX_RECENT_CHOICES]
    story_flow = story_flow[:MAX_STORY_FLOW]

    summary = create_summary(key_actions, important_events, start_turn, end_turn, summary_length)
    token_count = estimate_tokens(
        " ".join([summary, *key_actions, *important_events, *recent_choices, *story_flow])
    )
    return CompressedHistorySegment(
        turn_range=f"{start_turn}-{end_turn}",
        summary=summary,
        key_actions=key_actions,
        important_events=important_events,
        recent_choices=recent_choices,
        story_flow=story_flow,
        token_count=token_count,
    )


# =============================================================================
# Operations
# =============================================================================


def manage_history(
    history: list[HistoryEntry],
    turn_count: int,
    config: HistoryConfig | None = None,
) -> HistoryResult:
    """
    Apply the sliding window to raw history.

    Args:
        history: Active history, oldest first (not modified)
        turn_count: Turn the history ends at
        config: Window settings

    Returns:
        HistoryResult with the surviving entries and any new segment
    """
    config = config or HistoryConfig()
    original_size = len(history)
    if original_size <= config.compression_threshold:
        logger.debug(
            "History %d/%d entries, no compression needed",
            original_size,
            config.compression_threshold,
        )
        return HistoryResult(
            active_history=list(history), original_size=original_size, new_size=original_size
        )

    split = original_size - config.max_active_entries
    to_compress, active = history[:split], history[split:]
    start_turn, end_turn = covered_turns(original_size, len(to_compress), turn_count)
    segment = compress_history_segment(to_compress, start_turn, end_turn, config.summary_length)

    logger.info(
        "Compressed %d history entries (turns %s) into %d tokens; %d remain active",
        len(to_compress),
        segment.turn_range,
        segment.token_count,
        len(active),
    )
    return HistoryResult(
        active_history=list(active),
        compressed_segment=segment,
        original_size=original_size,
        new_size=len(active),
        saved_entries=len(to_compress),
    )


def get_history_stats(
    active_history: list[HistoryEntry],
    segments: list[CompressedHistorySegment],
) -> HistoryStats:
    """Estimate how much the compressed segments save."""
    original_entries = 0
    tokens_saved = 0
    compressed_units = 0.0
    for segment in segments:
        first, last = parse_turn_range(segment.turn_range)
        entries = max(0, last - first + 1) * 2
        original_entries += entries
        tokens_saved += entries * TOKENS_PER_ENTRY - segment.token_count
        compressed_units += segment.token_count / TOKENS_PER_ENTRY

    total = len(active_history) + original_entries
    ratio = (len(active_history) + compressed_units) / total if total else 1.0
    return HistoryStats(
        active_entries=len(active_history),
        compressed_segments=len(segments),
        total_original_entries=total,
        compression_ratio=ratio,
        estimated_tokens_saved=tokens_saved,
    )
