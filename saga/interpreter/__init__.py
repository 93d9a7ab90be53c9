"""
Narrative Tag Interpreter for Saga.

Generated narrative carries bracketed directives that change the game
state. This package parses them and applies them:
- Attribute parsing (typed key=value bags)
- Handler dispatch per tag kind
- Copy-on-write state updates with per-tag failure isolation
"""

from __future__ import annotations

from saga.interpreter.attributes import (
    AttributeValue,
    Attributes,
    parse_attributes,
)
from saga.interpreter.context import Handler, TagContext
from saga.interpreter.core import HANDLERS, InterpretResult, TagInterpreter, interpret
from saga.interpreter.tags import (
    IGNORED_KINDS,
    TagKind,
    TagMatch,
    extract_reasoning,
    find_tags,
    strip_tags,
)
from saga.interpreter.world import apply_status_with_limit

__all__ = [
    # Interpreter
    "HANDLERS",
    "InterpretResult",
    "TagInterpreter",
    "interpret",
    # Handler plumbing
    "Handler",
    "TagContext",
    # Grammar
    "AttributeValue",
    "Attributes",
    "IGNORED_KINDS",
    "TagKind",
    "TagMatch",
    "extract_reasoning",
    "find_tags",
    "parse_attributes",
    "strip_tags",
    # Status rules
    "apply_status_with_limit",
]
