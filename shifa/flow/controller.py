"""Adaptive assessment flow.

Walks the assessment steps in their declared order and decides which question
to ask next for a partial patient record. The controller holds no per-session
state: everything it needs comes from the record passed in.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from shifa.core.exceptions import AnswerValidationError
from shifa.rules.conditions import ConditionEvaluator
from shifa.rules.models import AssessmentStep, StepType

logger = logging.getLogger(__name__)


def is_answered(record: Mapping[str, Any], field: str) -> bool:
    """Check whether a (possibly dotted) field has a value in the record."""
    current: Any = record
    for part in field.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return False
        current = current[part]
    return current is not None


class FlowController:
    """Chooses the next assessment step.

    Steps are never reordered; declaration order is traversal priority.
    """

    def __init__(
        self,
        steps: Iterable[AssessmentStep],
        evaluator: ConditionEvaluator | None = None,
    ) -> None:
        """Initialize controller.

        Args:
            steps: Assessment steps in declaration order
            evaluator: Condition evaluator for skip predicates
        """
        self._steps = tuple(steps)
        self._index = {step.id: i for i, step in enumerate(self._steps)}
        self._by_field = {step.field: step for step in self._steps}
        self.evaluator = evaluator or ConditionEvaluator()

    @property
    def steps(self) -> tuple[AssessmentStep, ...]:
        return self._steps

    def is_skipped(self, step: AssessmentStep, record: Mapping[str, Any]) -> bool:
        """Check a step's skip predicate against the record."""
        if step.skip_if is None:
            return False
        return self.evaluator.evaluate(step.skip_if, record)

    def get_next_step(self, record: Mapping[str, Any]) -> AssessmentStep | None:
        """Get the next step that needs an answer.

        Skipped steps are bypassed entirely, even when required and
        unanswered.

        Args:
            record: Current partial patient record

        Returns:
            First required, non-skipped, unanswered step, or None when the
            questionnaire is exhausted
        """
        for step in self._steps:
            if self.is_skipped(step, record):
                continue
            if step.required and not is_answered(record, step.field):
                return step
        return None

    def get_step_index(self, step_id: str) -> int:
        """Get the position of a step, or -1 if unknown."""
        return self._index.get(step_id, -1)

    def get_total_steps(self) -> int:
        return len(self._steps)

    def get_step(self, step_id: str) -> AssessmentStep | None:
        index = self._index.get(step_id)
        return self._steps[index] if index is not None else None

    def get_step_for_field(self, field: str) -> AssessmentStep | None:
        return self._by_field.get(field)

    def has_field(self, field: str) -> bool:
        return field in self._by_field

    def validate_answer(self, step: AssessmentStep, value: Any) -> Any:
        """Validate an answer against its step.

        Args:
            step: Step being answered
            value: Submitted value

        Returns:
            Normalized value (multi answers become a list)

        Raises:
            AnswerValidationError: If the value does not fit the step
        """
        if step.type == StepType.SCALE:
            if isinstance(value, bool) or not isinstance(value, int):
                raise AnswerValidationError(
                    f"'{step.field}' expects a whole number", step.field
                )
            if not step.min_value <= value <= step.max_value:
                raise AnswerValidationError(
                    f"'{step.field}' must be between {step.min_value} and {step.max_value}",
                    step.field,
                )
            return value

        if step.type == StepType.MULTI:
            if not isinstance(value, (list, tuple)):
                raise AnswerValidationError(
                    f"'{step.field}' expects a list of values", step.field
                )
            values = list(dict.fromkeys(value)) if _hashable(value) else list(value)
            if step.options:
                unknown = [v for v in values if step.get_option(v) is None]
                if unknown:
                    raise AnswerValidationError(
                        f"'{step.field}' has unknown option(s): {unknown}", step.field
                    )
            return values

        # single
        if step.options and step.get_option(value) is None:
            raise AnswerValidationError(
                f"'{step.field}' has no option {value!r}", step.field
            )
        return value


def _hashable(values: Iterable[Any]) -> bool:
    try:
        for value in values:
            hash(value)
    except TypeError:
        return False
    return True
