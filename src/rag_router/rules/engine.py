"""Rule-engine collaborator: a line-oriented rule language over `rule_engine`.

Source format, one rule per line (blank lines and ``#`` comments ignored)::

    rule big_order salience 10: when total > 100 then discount = 10; tier = "gold"
    when discount >= 10 then note = "discounted"

Conditions and the right-hand side of every assignment are `rule_engine`
expressions evaluated against the current facts. Rules run highest salience
first (ties keep source order); after any rule fires the agenda restarts so
later rules see its assignments. Each rule fires at most once per execution.
"""

from __future__ import annotations

import re
from collections import UserDict
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import rule_engine
from loguru import logger
from rule_engine.errors import EngineError, RuleSyntaxError, SymbolResolutionError

from rag_router.errors import CollaboratorError, RuleParseError

_RULE_LINE = re.compile(
    r"^(?:rule\s+(?P<name>[\w.-]+)(?:\s+salience\s+(?P<salience>-?\d+))?\s*:\s*)?"
    r"when\s+(?P<condition>.+?)\s+then\s+(?P<actions>.+)$"
)
_ACTION = re.compile(r"^(?P<key>[A-Za-z_]\w*)\s*=(?!=)\s*(?P<expr>.+)$")


class Facts(UserDict):
    """Mutable fact collection handed to the rule engine."""

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value


RuleSet = Sequence[Any]


class RuleEngine(Protocol):
    def parse(self, source: str) -> RuleSet:
        """Parse rule source into an opaque, immutable rule set."""

    def execute(self, facts: Facts, rules: RuleSet) -> Facts:
        """Run `rules` over `facts`, returning the (possibly mutated) facts."""


@dataclass(frozen=True, slots=True)
class Rule:
    name: str
    salience: int
    condition: rule_engine.Rule
    actions: tuple[tuple[str, rule_engine.Rule], ...]
    source: str


class DeclarativeRuleEngine:
    """Forward-chaining `RuleEngine` with `rule_engine` expressions."""

    def parse(self, source: str) -> tuple[Rule, ...]:
        parsed: list[Rule] = []
        for lineno, raw in enumerate(source.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            match = _RULE_LINE.match(line)
            if match is None:
                raise RuleParseError(
                    f"Line {lineno}: expected 'when <condition> then <actions>'", details=line
                )
            name = match.group("name") or f"rule_{lineno}"
            salience = int(match.group("salience") or 0)
            condition = _compile(match.group("condition"), lineno)
            actions = tuple(
                _parse_action(part, lineno)
                for part in match.group("actions").split(";")
                if part.strip()
            )
            if not actions:
                raise RuleParseError(f"Line {lineno}: rule {name} has no actions", details=line)
            parsed.append(Rule(name, salience, condition, actions, line))

        parsed.sort(key=lambda rule: -rule.salience)
        return tuple(parsed)

    def execute(self, facts: Facts, rules: RuleSet) -> Facts:
        fired: set[int] = set()
        progress = True
        while progress:
            progress = False
            for index, rule in enumerate(rules):
                if index in fired or not _matches(rule, facts):
                    continue
                for key, expression in rule.actions:
                    facts[key] = _plain(_evaluate(rule, expression, facts))
                fired.add(index)
                progress = True
                logger.debug("Rule {} fired", rule.name)
                break
        return facts


def _compile(text: str, lineno: int) -> rule_engine.Rule:
    try:
        return rule_engine.Rule(text.strip())
    except RuleSyntaxError as exc:
        raise RuleParseError(
            f"Line {lineno}: invalid expression {text!r}", details=str(exc)
        ) from exc
    except EngineError as exc:
        raise RuleParseError(
            f"Line {lineno}: cannot compile {text!r}", details=str(exc)
        ) from exc


def _parse_action(text: str, lineno: int) -> tuple[str, rule_engine.Rule]:
    match = _ACTION.match(text.strip())
    if match is None:
        raise RuleParseError(
            f"Line {lineno}: expected '<key> = <expression>'", details=text.strip()
        )
    return match.group("key"), _compile(match.group("expr"), lineno)


def _matches(rule: Rule, facts: Facts) -> bool:
    try:
        return bool(rule.condition.matches(dict(facts)))
    except SymbolResolutionError:
        return False
    except (EngineError, TypeError, ValueError) as exc:
        raise CollaboratorError(
            f"Rule {rule.name} condition failed", details=str(exc), rule=rule.name
        ) from exc


def _evaluate(rule: Rule, expression: rule_engine.Rule, facts: Facts) -> Any:
    try:
        return expression.evaluate(dict(facts))
    except (EngineError, TypeError, ValueError) as exc:
        raise CollaboratorError(
            f"Rule {rule.name} action failed", details=str(exc), rule=rule.name
        ) from exc


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value
