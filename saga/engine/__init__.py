"""
Turn Engine for Saga.

The engine runs one player turn end to end:
- Prompt assembly (memories, compressed history, recent turns)
- Narrative generation through an LLM provider
- Tag interpretation and the once-per-turn cleanup
- Snapshot persistence
"""

from __future__ import annotations

from saga.engine.pipeline import (
    PipelineConfig,
    TurnPipeline,
    TurnResult,
    frame_player_action,
    parse_model_response,
)

__all__ = [
    "PipelineConfig",
    "TurnPipeline",
    "TurnResult",
    "frame_player_action",
    "parse_model_response",
]
