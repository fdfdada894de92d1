"""Named fact collections and rule sets executed through a `RuleEngine`."""

from __future__ import annotations

import threading
from typing import Any

from loguru import logger

from rag_router.errors import CollaboratorError, NotFoundError, RouterError
from rag_router.rules.engine import DeclarativeRuleEngine, Facts, RuleEngine, RuleSet


class RuleEvaluator:
    """Owns fact collections and parsed rule sets.

    `evaluate` only reports success or failure: the facts collection is the
    whole result, and which rules fired is not exposed.
    """

    def __init__(self, engine: RuleEngine | None = None) -> None:
        self.engine = engine or DeclarativeRuleEngine()
        self._rule_sets: dict[str, RuleSet] = {}
        self._facts: dict[str, Facts] = {}
        self._lock = threading.RLock()

    def define_rules(self, name: str, source: str) -> None:
        try:
            rules = self.engine.parse(source)
        except RouterError:
            raise
        except Exception as exc:
            raise CollaboratorError(
                f"Rule engine failed to parse {name}", details=str(exc)
            ) from exc
        with self._lock:
            self._rule_sets[name] = rules
        logger.info("Defined rule set {} ({} rules)", name, len(rules))

    def rules(self, name: str) -> RuleSet:
        with self._lock:
            rules = self._rule_sets.get(name)
        if rules is None:
            raise NotFoundError(
                f"Rule set not found: {name}", resource_type="rule_set", resource_id=name
            )
        return rules

    def rule_sets(self) -> set[str]:
        with self._lock:
            return set(self._rule_sets)

    def facts(self, name: str) -> Facts:
        """The named collection, created empty on first access."""
        with self._lock:
            return self._facts.setdefault(name, Facts())

    def get_facts(self, name: str) -> Facts:
        with self._lock:
            facts = self._facts.get(name)
        if facts is None:
            raise NotFoundError(
                f"Facts not found: {name}", resource_type="facts", resource_id=name
            )
        return facts

    def fact_collections(self) -> set[str]:
        with self._lock:
            return set(self._facts)

    def set_fact(self, name: str, key: str, value: Any) -> None:
        self.facts(name).set(key, value)

    def drop_facts(self, name: str) -> None:
        with self._lock:
            if self._facts.pop(name, None) is None:
                raise NotFoundError(
                    f"Facts not found: {name}", resource_type="facts", resource_id=name
                )

    def evaluate(self, rule_set: str, facts_name: str) -> None:
        rules = self.rules(rule_set)
        facts = self.get_facts(facts_name)
        with self._lock:
            try:
                result = self.engine.execute(facts, rules)
            except RouterError:
                raise
            except Exception as exc:
                raise CollaboratorError(
                    f"Rule engine failed on {rule_set}", details=str(exc), facts=facts_name
                ) from exc
            if result is not facts:
                facts.clear()
                facts.update(result)
        logger.debug("Evaluated rule set {} over facts {}", rule_set, facts_name)
