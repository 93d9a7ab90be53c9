"""
Service layer for Saga.

Services hold the game rules the tag interpreter and the cleanup
coordinator build on: progression, skill reconciliation, memory scoring
and enhancement, history compression and narrative generation.
"""

from __future__ import annotations

from saga.services.cleanup import (
    CleanupConfig,
    CleanupCoordinator,
    CleanupPhase,
    CleanupResult,
    apply,
    coordinated_cleanup,
    estimate_memory_tokens,
    get_optimization_stats,
    restore_relevant_memories,
)
from saga.services.enhancer import EnhancementResult, enhance_memory
from saga.services.history import HistoryConfig, HistoryResult, get_history_stats, manage_history
from saga.services.importance import ImportanceAnalysis, score_memory
from saga.services.llm import LLMProvider, MockLLMProvider, OpenRouterProvider, create_provider
from saga.services.progression import apply_realm_progression, evaluate_realm
from saga.services.regex_rules import RegexEngine, apply_regex_rules
from saga.services.smart_memory import (
    MemoryGenerationResult,
    SmartMemoryConfig,
    SmartMemoryGenerator,
    generate_smart_memories,
    get_generation_stats,
)

__all__ = [
    # Cleanup
    "CleanupConfig",
    "CleanupCoordinator",
    "CleanupPhase",
    "CleanupResult",
    "apply",
    "coordinated_cleanup",
    "estimate_memory_tokens",
    "get_optimization_stats",
    "restore_relevant_memories",
    # Memory
    "EnhancementResult",
    "ImportanceAnalysis",
    "MemoryGenerationResult",
    "SmartMemoryConfig",
    "SmartMemoryGenerator",
    "enhance_memory",
    "generate_smart_memories",
    "get_generation_stats",
    "score_memory",
    # History
    "HistoryConfig",
    "HistoryResult",
    "get_history_stats",
    "manage_history",
    # Progression
    "apply_realm_progression",
    "evaluate_realm",
    # Text substitution
    "RegexEngine",
    "apply_regex_rules",
    # LLM
    "LLMProvider",
    "MockLLMProvider",
    "OpenRouterProvider",
    "create_provider",
]
