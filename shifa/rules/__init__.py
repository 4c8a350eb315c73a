"""Deterministic triage rules engine.

This module provides a YAML-configured rules engine for triage priority
assignment. Conditions are declarative expressions, never executable code.
"""

from shifa.rules.conditions import (
    Condition,
    ConditionEvaluator,
    compile_condition,
    evaluate_condition,
)
from shifa.rules.engine import RuleEngine, default_result
from shifa.rules.loader import RulesetLoader, compute_ruleset_hash, load_ruleset
from shifa.rules.models import (
    AssessmentStep,
    Rule,
    StepOption,
    StepType,
    TriageConfig,
    TriagePriority,
    TriageResult,
    priority_weight,
)

__all__ = [
    "Condition",
    "ConditionEvaluator",
    "compile_condition",
    "evaluate_condition",
    "RuleEngine",
    "default_result",
    "RulesetLoader",
    "load_ruleset",
    "compute_ruleset_hash",
    "AssessmentStep",
    "Rule",
    "StepOption",
    "StepType",
    "TriageConfig",
    "TriagePriority",
    "TriageResult",
    "priority_weight",
]
