"""Rule, assessment step and triage configuration data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from shifa.core.exceptions import ConfigError
from shifa.rules.conditions import Condition, compile_condition


class TriagePriority(str, Enum):
    """Triage priority tier.

    BLACK = deceased/expectant, RED = immediate, YELLOW = urgent,
    GREEN = minor.
    """

    BLACK = "BLACK"
    RED = "RED"
    YELLOW = "YELLOW"
    GREEN = "GREEN"


# Lower weight = reported first when several rules match.
# NOTE: BLACK sorts ahead of RED; pending clinical review of this ordering.
PRIORITY_WEIGHTS = {
    TriagePriority.BLACK: 0,
    TriagePriority.RED: 1,
    TriagePriority.YELLOW: 2,
    TriagePriority.GREEN: 3,
}
UNKNOWN_PRIORITY_WEIGHT = 4


def priority_weight(priority: Any) -> int:
    """Get the sort weight of a priority (unknown values sort last)."""
    try:
        return PRIORITY_WEIGHTS[TriagePriority(priority)]
    except (ValueError, KeyError):
        return UNKNOWN_PRIORITY_WEIGHT


class StepType(str, Enum):
    """How an assessment step is answered."""

    SINGLE = "single"  # exactly one option value
    SCALE = "scale"  # one integer in [min_value, max_value]
    MULTI = "multi"  # list of option values, committed explicitly


OPTION_COLORS = {"green", "yellow", "orange", "red", "gray", "blue"}

DEFAULT_SCALE_MIN = 1
DEFAULT_SCALE_MAX = 10


@dataclass(frozen=True)
class StepOption:
    """A selectable answer for an assessment step."""

    value: Any
    label: str
    color: str = "gray"
    critical: bool = False
    description: str | None = None


@dataclass(frozen=True)
class Rule:
    """A triage rule: condition, priority tier, confidence and actions."""

    id: str
    name: str
    condition: Condition
    priority: TriagePriority
    confidence: float
    actions: tuple[str, ...] = ()
    reassess_time: int | None = None  # minutes
    is_critical: bool = False

    @property
    def weight(self) -> int:
        return priority_weight(self.priority)


@dataclass(frozen=True)
class AssessmentStep:
    """One question of the adaptive questionnaire, bound to a record field."""

    id: str
    question: str
    type: StepType
    field: str
    required: bool = True
    options: tuple[StepOption, ...] = ()
    skip_if: Condition | None = None
    description: str | None = None
    help_text: str | None = None
    min_value: int = DEFAULT_SCALE_MIN
    max_value: int = DEFAULT_SCALE_MAX

    @property
    def option_values(self) -> list[Any]:
        return [option.value for option in self.options]

    def get_option(self, value: Any) -> StepOption | None:
        """Get the option declared for a value."""
        for option in self.options:
            if option.value == value:
                return option
        return None


@dataclass(frozen=True)
class TriageResult:
    """Final classification of one assessment session."""

    priority: TriagePriority
    matched_rules: tuple[Rule, ...] = ()
    confidence: float = 0.5
    actions: tuple[str, ...] = ()
    reassess_time: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Plain view of the result for exporters."""
        return {
            "priority": self.priority.value,
            "matched_rules": [
                {"id": r.id, "name": r.name, "priority": r.priority.value}
                for r in self.matched_rules
            ],
            "confidence": round(self.confidence, 3),
            "actions": list(self.actions),
            "reassess_time": self.reassess_time,
        }


@dataclass(frozen=True)
class TriageConfig:
    """A loaded, validated triage profile (rules + assessment flow)."""

    id: str
    name: str
    version: str
    description: str = ""
    rules: tuple[Rule, ...] = ()
    steps: tuple[AssessmentStep, ...] = ()
    content_hash: str = field(default="", repr=False)

    @property
    def invalid_conditions(self) -> list[Condition]:
        """Conditions that failed to compile (they never match)."""
        conditions = [r.condition for r in self.rules]
        conditions.extend(s.skip_if for s in self.steps if s.skip_if is not None)
        return [c for c in conditions if not c.is_valid]

    @classmethod
    def from_dict(
        cls,
        data: Any,
        content_hash: str = "",
        strict: bool = False,
    ) -> "TriageConfig":
        """Create a TriageConfig from a parsed configuration document.

        Every rule condition and skip predicate is compiled here, once.

        Args:
            data: Parsed YAML document
            content_hash: SHA-256 of the raw document
            strict: Raise on malformed expressions instead of keeping them
                as never-matching conditions

        Returns:
            Validated TriageConfig

        Raises:
            ConfigError: If the document is structurally invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Triage configuration must be a mapping")

        rules_data = data.get("triage_rules")
        steps_data = data.get("assessment_flow")
        if not isinstance(rules_data, list):
            raise ConfigError("Triage configuration is missing 'triage_rules'")
        if not isinstance(steps_data, list):
            raise ConfigError("Triage configuration is missing 'assessment_flow'")

        rules = []
        seen_rule_ids: set[str] = set()
        for index, rule_data in enumerate(rules_data):
            rule = _parse_rule(rule_data, index, strict)
            if rule.id in seen_rule_ids:
                raise ConfigError(f"Duplicate rule id: {rule.id}")
            seen_rule_ids.add(rule.id)
            rules.append(rule)

        steps = []
        seen_step_ids: set[str] = set()
        seen_fields: set[str] = set()
        for index, step_data in enumerate(steps_data):
            step = _parse_step(step_data, index, strict)
            if step.id in seen_step_ids:
                raise ConfigError(f"Duplicate step id: {step.id}")
            if step.field in seen_fields:
                raise ConfigError(f"Field bound to more than one step: {step.field}")
            seen_step_ids.add(step.id)
            seen_fields.add(step.field)
            steps.append(step)

        return cls(
            id=str(data.get("id", "unknown")),
            name=str(data.get("name", data.get("id", "unknown"))),
            version=str(data.get("version", "unknown")),
            description=data.get("description") or "",
            rules=tuple(rules),
            steps=tuple(steps),
            content_hash=content_hash,
        )


def _require(data: dict, key: str, where: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigError(f"{where} is missing '{key}'")
    return data[key]


def _compile(source: Any, where: str, strict: bool) -> Condition:
    condition = compile_condition(source)
    if strict and not condition.is_valid:
        raise ConfigError(f"{where} has an invalid condition: {condition.error}")
    return condition


def _parse_rule(rule_data: Any, index: int, strict: bool) -> Rule:
    where = f"Rule #{index + 1}"
    if not isinstance(rule_data, dict):
        raise ConfigError(f"{where} must be a mapping")

    rule_id = str(_require(rule_data, "id", where))
    where = f"Rule '{rule_id}'"

    try:
        priority = TriagePriority(str(_require(rule_data, "priority", where)).upper())
    except ValueError as exc:
        raise ConfigError(f"{where} has unknown priority: {rule_data['priority']}") from exc

    confidence = _require(rule_data, "confidence", where)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise ConfigError(f"{where} confidence must be a number")
    if not 0.0 <= confidence <= 1.0:
        raise ConfigError(f"{where} confidence must be within [0, 1]")

    actions = rule_data.get("actions", [])
    if not isinstance(actions, list) or not all(isinstance(a, str) for a in actions):
        raise ConfigError(f"{where} actions must be a list of strings")

    reassess_time = rule_data.get("reassess_time")
    if reassess_time is not None and (
        isinstance(reassess_time, bool) or not isinstance(reassess_time, int)
    ):
        raise ConfigError(f"{where} reassess_time must be whole minutes")

    return Rule(
        id=rule_id,
        name=str(rule_data.get("name", rule_id)),
        condition=_compile(_require(rule_data, "condition", where), where, strict),
        priority=priority,
        confidence=float(confidence),
        actions=tuple(actions),
        reassess_time=reassess_time,
        is_critical=bool(rule_data.get("is_critical", False)),
    )


def _parse_option(option_data: Any, where: str) -> StepOption:
    if not isinstance(option_data, dict) or "value" not in option_data:
        raise ConfigError(f"{where} has an option without a value")

    color = option_data.get("color", "gray")
    if not isinstance(color, str) or color not in OPTION_COLORS:
        raise ConfigError(f"{where} option has unknown color: {color}")

    return StepOption(
        value=option_data["value"],
        label=str(option_data.get("label", option_data["value"])),
        color=color,
        critical=bool(option_data.get("critical", False)),
        description=option_data.get("description"),
    )


def _parse_step(step_data: Any, index: int, strict: bool) -> AssessmentStep:
    where = f"Step #{index + 1}"
    if not isinstance(step_data, dict):
        raise ConfigError(f"{where} must be a mapping")

    step_id = str(_require(step_data, "id", where))
    where = f"Step '{step_id}'"

    try:
        step_type = StepType(_require(step_data, "type", where))
    except ValueError as exc:
        raise ConfigError(f"{where} has unknown type: {step_data['type']}") from exc

    options_data = step_data.get("options") or []
    if not isinstance(options_data, list):
        raise ConfigError(f"{where} options must be a list")
    options = tuple(_parse_option(o, where) for o in options_data)
    if step_type in (StepType.SINGLE, StepType.MULTI) and not options:
        raise ConfigError(f"{where} of type '{step_type.value}' needs options")

    min_value = step_data.get("min_value", DEFAULT_SCALE_MIN)
    max_value = step_data.get("max_value", DEFAULT_SCALE_MAX)
    if not isinstance(min_value, int) or not isinstance(max_value, int) or min_value > max_value:
        raise ConfigError(f"{where} has an invalid scale range")

    skip_if = step_data.get("skip_if")

    return AssessmentStep(
        id=step_id,
        question=str(_require(step_data, "question", where)),
        type=step_type,
        field=str(_require(step_data, "field", where)),
        required=bool(step_data.get("required", True)),
        options=options,
        skip_if=_compile(skip_if, where, strict) if skip_if is not None else None,
        description=step_data.get("description"),
        help_text=step_data.get("help_text"),
        min_value=min_value,
        max_value=max_value,
    )
