"""Deterministic triage rules engine.

This engine evaluates a patient record against the triage rules of a
profile. All decisions are:
- Deterministic (same input = same output)
- Explainable (every matched rule is reported, most severe first)
- Fail-safe (a rule that cannot be evaluated simply does not match)
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from shifa.rules.conditions import ConditionEvaluator
from shifa.rules.models import Rule, TriagePriority, TriageResult

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.5
DEFAULT_ACTIONS = ("Standard assessment", "Basic care as needed")


def default_result() -> TriageResult:
    """Result for a record that matches no rule."""
    return TriageResult(
        priority=TriagePriority.GREEN,
        matched_rules=(),
        confidence=DEFAULT_CONFIDENCE,
        actions=DEFAULT_ACTIONS,
        reassess_time=None,
    )


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class RuleEngine:
    """Matches, ranks and aggregates triage rules.

    The rule set is fixed at construction; a new configuration needs a new
    engine.
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        """Initialize engine.

        Args:
            rules: Rules in declaration order
            evaluator: Condition evaluator (a private one by default)
        """
        self._rules = tuple(rules)
        self._critical_rules = tuple(r for r in self._rules if r.is_critical)
        self.evaluator = evaluator or ConditionEvaluator()

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def critical_rules(self) -> tuple[Rule, ...]:
        return self._critical_rules

    def match(self, record: Mapping[str, Any]) -> list[Rule]:
        """Get the rules whose condition holds, in declaration order."""
        return [
            rule for rule in self._rules
            if self.evaluator.evaluate(rule.condition, record)
        ]

    def evaluate(self, record: Mapping[str, Any]) -> TriageResult:
        """Evaluate a patient record against every rule.

        Args:
            record: Patient record, complete or partial

        Returns:
            TriageResult; the default GREEN result when nothing matches
        """
        matches = self.match(record)

        if not matches:
            logger.debug("No triage rule matched; using default result")
            return default_result()

        # sorted() is stable, so ties keep declaration order
        ranked = sorted(matches, key=lambda r: r.weight)
        primary = ranked[0]

        confidence = _clamp(sum(r.confidence for r in ranked) / len(ranked))

        actions: list[str] = []
        seen: set[str] = set()
        for rule in ranked:
            for action in rule.actions:
                if action not in seen:
                    seen.add(action)
                    actions.append(action)

        logger.debug(
            f"Matched {len(ranked)} rule(s): {[r.id for r in ranked]}; "
            f"primary={primary.id} priority={primary.priority.value}"
        )

        return TriageResult(
            priority=primary.priority,
            matched_rules=tuple(ranked),
            confidence=confidence,
            actions=tuple(actions),
            reassess_time=primary.reassess_time,
        )

    def critical_matches(self, record: Mapping[str, Any]) -> list[Rule]:
        """Get the critical rules that hold for a (partial) record."""
        return [
            rule for rule in self._critical_rules
            if self.evaluator.evaluate(rule.condition, record)
        ]

    def has_critical_condition(self, record: Mapping[str, Any]) -> bool:
        """Check a partial record against the critical rules only.

        Meant to run after every answer. A critical rule that fails to
        evaluate counts as not matching and the scan continues.
        """
        return any(
            self.evaluator.evaluate(rule.condition, record)
            for rule in self._critical_rules
        )
