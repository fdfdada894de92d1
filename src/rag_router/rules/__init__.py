"""Rule evaluation over named fact collections."""

from .adapter import RuleEvaluator
from .engine import DeclarativeRuleEngine, Facts, Rule, RuleEngine, RuleSet

__all__ = ["DeclarativeRuleEngine", "Facts", "Rule", "RuleEngine", "RuleEvaluator", "RuleSet"]
