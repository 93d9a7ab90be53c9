"""
Text Substitution Rule Engine for Saga.

Runs user-authored find/replace rules at the pipeline's injection points.
Patterns may be written bare (``\\bfoo\\b``, replaced globally) or in
slash form with flags (``/foo/gi``). Replacement strings understand
``{{match}}``, ``$0``..``$n`` and the game macros listed in MACRO_NAMES.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from pydantic import BaseModel

from saga.models.regex_rule import RegexPlacement, RegexRule, RegexSubstituteMode
from saga.models.state import GameState, GameTime

logger = logging.getLogger(__name__)

MACRO_NAMES = ("player", "character", "location", "time", "hp", "mana", "level", "exp", "action")

_SLASH_PATTERN = re.compile(r"^/(.+)/([gimsuy]*)$", re.DOTALL)
_GROUP_REFERENCE = re.compile(r"\$(\d+)")
_MATCH_MACRO = re.compile(r"\{\{match\}\}", re.IGNORECASE)
_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}


class RegexProcessingParams(BaseModel):
    """Where in the pipeline a piece of text is being processed."""

    is_markdown: bool = False
    is_prompt: bool = False
    is_edit: bool = False
    depth: int | None = None


class MacroContext(BaseModel):
    """Values substituted for ``{{macro}}`` references."""

    player_name: str | None = None
    current_location: str | None = None
    current_time: GameTime | None = None
    last_action: str | None = None
    current_hp: int | None = None
    current_mana: int | None = None
    level: str | None = None
    experience: float | None = None

    def values(self) -> dict[str, str]:
        """Macro name -> substituted text."""
        if self.current_time is None:
            time_text = "Unknown Time"
        else:
            t = self.current_time
            time_text = f"{t.day}/{t.month}/{t.year}:{t.hour}"
        player = self.player_name or "Player"
        return {
            "player": player,
            "character": player,
            "location": self.current_location or "Unknown Location",
            "time": time_text,
            "hp": str(self.current_hp or 0),
            "mana": str(self.current_mana or 0),
            "level": self.level or "1",
            "exp": str(self.experience or 0),
            "action": self.last_action or "",
        }


def macro_context_from_state(state: GameState, last_action: str | None = None) -> MacroContext:
    """Build the macro context for a snapshot."""
    pc = state.find_pc()
    location = state.location_discovery_order[-1] if state.location_discovery_order else None
    return MacroContext(
        player_name=pc.name if pc else None,
        current_location=location,
        current_time=state.game_time,
        last_action=last_action,
        level=pc.realm if pc else None,
        experience=pc.current_exp if pc else None,
    )


def compile_rule_pattern(pattern: str) -> tuple[re.Pattern[str], int] | None:
    """
    Compile a rule pattern.

    Returns:
        (compiled pattern, replacement count) where a count of 0 means
        replace every match, or None if the pattern is invalid
    """
    match = _SLASH_PATTERN.match(pattern)
    try:
        if match:
            flags = 0
            for flag in match.group(2):
                flags |= _FLAG_MAP.get(flag, 0)
            count = 0 if "g" in match.group(2) else 1
            return re.compile(match.group(1), flags), count
        return re.compile(pattern), 0
    except re.error as e:
        logger.warning("Invalid substitution pattern %r: %s", pattern, e)
        return None


def validate_pattern(pattern: str) -> str | None:
    """Return an error message for an invalid pattern, or None."""
    try:
        re.compile(pattern)
    except re.error as e:
        return str(e)
    return None


@dataclass
class RegexEngine:
    """Applies substitution rules with a given macro context."""

    macros: MacroContext = field(default_factory=MacroContext)

    def substitute_macros(self, text: str, escape: bool = False) -> str:
        """Replace ``{{macro}}`` references (case-insensitive) with their values."""
        for name, value in self.macros.values().items():
            replacement = re.escape(value) if escape else value
            text = re.sub(
                r"\{\{" + name + r"\}\}",
                lambda _m, r=replacement: r,
                text,
                flags=re.IGNORECASE,
            )
        return text

    def _trim(self, text: str, trim_strings: list[str]) -> str:
        for trim in trim_strings:
            if trim:
                try:
                    text = re.sub(self.substitute_macros(trim), "", text)
                except re.error as e:
                    logger.warning("Invalid trim string %r: %s", trim, e)
        return text

    def _applies(self, rule: RegexRule, params: RegexProcessingParams) -> bool:
        if rule.disabled or not rule.find_regex:
            return False
        if params.depth is not None:
            if rule.min_depth is not None and params.depth < rule.min_depth:
                return False
            if rule.max_depth is not None and params.depth > rule.max_depth:
                return False
        if params.is_edit and not rule.run_on_edit:
            return False
        return (
            (rule.markdown_only and params.is_markdown)
            or (rule.prompt_only and params.is_prompt)
            or (
                not rule.markdown_only
                and not rule.prompt_only
                and not params.is_markdown
                and not params.is_prompt
            )
        )

    def run_rule(
        self, rule: RegexRule, text: str, params: RegexProcessingParams | None = None
    ) -> str:
        """Apply one rule; invalid or inapplicable rules leave the text unchanged."""
        params = params or RegexProcessingParams()
        if not text or not self._applies(rule, params):
            return text

        pattern = rule.find_regex
        if rule.substitute_regex == RegexSubstituteMode.RAW:
            pattern = self.substitute_macros(pattern)
        elif rule.substitute_regex == RegexSubstituteMode.ESCAPED:
            pattern = self.substitute_macros(pattern, escape=True)

        compiled = compile_rule_pattern(pattern)
        if compiled is None:
            return text
        regex, count = compiled

        def replace(match: re.Match[str]) -> str:
            whole = match.group(0)
            groups = match.groups()

            def group_value(ref: re.Match[str]) -> str:
                index = int(ref.group(1))
                if index == 0:
                    return whole
                if index > len(groups) or groups[index - 1] is None:
                    return ""
                return self._trim(groups[index - 1], rule.trim_strings)

            replacement = _MATCH_MACRO.sub(lambda _m: whole, rule.replace_string)
            replacement = _GROUP_REFERENCE.sub(group_value, replacement)
            return self.substitute_macros(replacement)

        return regex.sub(replace, text, count=count)

    def process_text(
        self,
        text: str,
        placement: RegexPlacement,
        rules: list[RegexRule],
        params: RegexProcessingParams | None = None,
    ) -> str:
        """Apply every enabled rule for ``placement``, oldest rule first."""
        if not text or not rules:
            return text
        applicable = [r for r in rules if not r.disabled and placement in r.placement]
        applicable.sort(key=lambda r: r.created_at)
        for rule in applicable:
            text = self.run_rule(rule, text, params)
        return text


def apply_regex_rules(
    text: str,
    placement: RegexPlacement,
    rules: list[RegexRule],
    params: RegexProcessingParams | None = None,
    macros: MacroContext | None = None,
) -> str:
    """
    Run the rules registered for ``placement`` over ``text``.

    Args:
        text: Input text
        placement: Injection point being processed
        rules: All known rules; disabled and other-placement rules are skipped
        params: Processing context (depth, markdown/prompt/edit flags)
        macros: Macro values; defaults are used when omitted

    Returns:
        The substituted text
    """
    engine = RegexEngine(macros=macros or MacroContext())
    return engine.process_text(text, placement, rules, params)
