"""Declarative extension rules attached to ``Lore Rule:`` cards.

A rule card's notes hold one rule per line::

    on after_generate when title contains "Elena" do set entry "{entry} Sails the Gull."
    on turn_end when turn >= 10 do message "Lore Cards: ten turns in."
    on after_command do append_memory "Journal" "asked about {title}"

Rules see a copy of the event payload. The only ways to affect the session
are the actions below; ``set`` is limited to the fields an event declares
writable.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .cards import find_card, is_rule_card
from .errors import RuleEvaluationError, RuleSyntaxError
from .types import SessionState, TurnHost

logger = logging.getLogger(__name__)

WRITABLE_FIELDS: dict[str, frozenset[str]] = {
    "before_command": frozenset(),
    "after_command": frozenset(),
    "turn_start": frozenset(),
    "before_context": frozenset(),
    "after_context": frozenset(),
    "before_generate": frozenset({"entry_seed"}),
    "after_generate": frozenset({"entry"}),
    "before_compress": frozenset(),
    "after_compress": frozenset(),
    "turn_end": frozenset(),
}
OPERATORS = ("contains", "==", "!=", "matches", ">=", "<=")
ACTION_ARITY = {"message": 1, "rename": 2, "append_memory": 2, "set": 2}

_FENCE_RE = re.compile(r"```[a-zA-Z]*\n?(.*?)```", re.DOTALL)
_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


@dataclass
class Condition:
    field: str
    op: str
    value: str


@dataclass
class Rule:
    event: str
    action: str
    args: list[str]
    conditions: list[Condition] = field(default_factory=list)


def _tokenize(line: str) -> list[str]:
    lexer = shlex.shlex(line, posix=True)
    lexer.whitespace_split = True
    lexer.escape = ""
    lexer.commenters = ""
    try:
        return list(lexer)
    except ValueError as exc:
        raise RuleSyntaxError(line, str(exc)) from exc


def parse_rule_line(line: str) -> Rule:
    tokens = _tokenize(line)
    if len(tokens) < 4 or tokens[0].lower() != "on":
        raise RuleSyntaxError(line, "expected 'on <event> ... do <action>'")
    event = tokens[1].lower()
    if event not in WRITABLE_FIELDS:
        raise RuleSyntaxError(line, f"unknown event {event}")

    lowered = [token.lower() for token in tokens]
    if "do" not in lowered[2:]:
        raise RuleSyntaxError(line, "missing 'do'")
    do_index = lowered.index("do", 2)

    conditions: list[Condition] = []
    clause = tokens[2:do_index]
    if clause:
        if clause[0].lower() != "when":
            raise RuleSyntaxError(line, "expected 'when' before conditions")
        parts = clause[1:]
        while parts:
            if len(parts) < 3:
                raise RuleSyntaxError(line, "incomplete condition")
            name, op, value = parts[0], parts[1].lower(), parts[2]
            if op not in OPERATORS:
                raise RuleSyntaxError(line, f"unknown operator {op}")
            conditions.append(Condition(field=name, op=op, value=value))
            parts = parts[3:]
            if parts:
                if parts[0].lower() != "and":
                    raise RuleSyntaxError(line, "conditions must be joined with 'and'")
                parts = parts[1:]

    action_tokens = tokens[do_index + 1 :]
    if not action_tokens:
        raise RuleSyntaxError(line, "missing action")
    action = action_tokens[0].lower()
    args = action_tokens[1:]
    if action not in ACTION_ARITY:
        raise RuleSyntaxError(line, f"unknown action {action}")
    if len(args) != ACTION_ARITY[action]:
        raise RuleSyntaxError(line, f"{action} takes {ACTION_ARITY[action]} argument(s)")
    if action == "set" and args[0] not in WRITABLE_FIELDS[event]:
        raise RuleSyntaxError(line, f"{args[0]} is not writable on {event}")
    return Rule(event=event, action=action, args=args, conditions=conditions)


def rules_text_from_card(description: str) -> str:
    match = _FENCE_RE.search(description or "")
    return (match.group(1) if match else description or "").strip()


def parse_rules(text: str) -> list[Rule]:
    rules = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        rules.append(parse_rule_line(line))
    return rules


def render_template(template: str, payload: dict[str, Any]) -> str:
    def _sub(match: re.Match) -> str:
        name = match.group(1)
        if name not in payload:
            return match.group(0)
        value = payload[name]
        return "" if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_sub, template)


def _condition_holds(condition: Condition, payload: dict[str, Any]) -> bool:
    raw = payload.get(condition.field)
    actual = "" if raw is None else str(raw)
    expected = render_template(condition.value, payload)
    if condition.op == "contains":
        return expected.lower() in actual.lower()
    if condition.op == "==":
        return actual == expected
    if condition.op == "!=":
        return actual != expected
    if condition.op == "matches":
        try:
            return re.search(expected, actual) is not None
        except re.error as exc:
            raise RuleEvaluationError(f"bad pattern {expected!r}: {exc}") from exc
    try:
        left, right = float(actual), float(expected)
    except ValueError as exc:
        raise RuleEvaluationError(f"{condition.field} is not numeric") from exc
    return left >= right if condition.op == ">=" else left <= right


class RuleRunner:
    def __init__(
        self,
        state: SessionState,
        host: TurnHost,
        *,
        logger: logging.Logger | None = None,
    ):
        self._state = state
        self._host = host
        self._logger = logger or logging.getLogger(__name__)
        self._memory_writer: Optional[Callable[[str, str], bool]] = None

    def bind_memory_writer(self, writer: Callable[[str, str], bool]) -> None:
        self._memory_writer = writer

    def run(self, event: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Evaluate every rule card for ``event``; return the (possibly updated) payload copy."""
        working = dict(payload)
        working.setdefault("turn", self._host.turn)
        if not self._state.config.enable_rules:
            return working
        for card in list(self._host.cards.list_cards()):
            if not is_rule_card(card):
                continue
            try:
                for rule in parse_rules(rules_text_from_card(card.description)):
                    if rule.event != event:
                        continue
                    if all(_condition_holds(c, working) for c in rule.conditions):
                        self._perform(rule, working)
            except Exception as exc:
                self._logger.warning("Rule card %r failed on %s: %s", card.title, event, exc)
                self._host.message = f'Lore Cards rule error in "{card.title}": {exc}'
        return working

    def _perform(self, rule: Rule, working: dict[str, Any]) -> None:
        args = [render_template(arg, working) for arg in rule.args]
        if rule.action == "message":
            self._host.message = args[0]
        elif rule.action == "set":
            working[rule.args[0]] = args[1]
        elif rule.action == "rename":
            self._rename(args[0], args[1])
        elif rule.action == "append_memory":
            if self._memory_writer is None:
                raise RuleEvaluationError("memory writes are unavailable here")
            self._memory_writer(args[0], args[1])

    def _rename(self, old_title: str, new_title: str) -> None:
        card = find_card(self._host.cards, old_title)
        if card is None:
            raise RuleEvaluationError(f"no card titled {old_title!r}")
        clash = find_card(self._host.cards, new_title)
        if clash is not None and clash is not card:
            raise RuleEvaluationError(f"a card titled {new_title!r} already exists")
        if not new_title.strip():
            raise RuleEvaluationError("new title is empty")
        card.title = new_title.strip()
