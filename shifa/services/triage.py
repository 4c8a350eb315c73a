"""Triage session orchestrating the flow controller and rules engine."""

import copy
import logging
import uuid
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from shifa.core.exceptions import SessionStateError
from shifa.core.logging import assessment_logger
from shifa.flow.controller import FlowController
from shifa.rules.conditions import ConditionEvaluator
from shifa.rules.engine import RuleEngine
from shifa.rules.models import AssessmentStep, StepType, TriageConfig, TriageResult

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Assessment session state."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    CRITICAL_HALT = "critical_halt"  # Critical rule matched mid-assessment
    COMPLETED = "completed"  # Every required step answered


TERMINAL_STATES = (SessionState.CRITICAL_HALT, SessionState.COMPLETED)


def _set_field(record: dict[str, Any], field: str, value: Any) -> None:
    """Write a (possibly dotted) field into the record."""
    parts = field.split(".")
    current = record
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    current[parts[-1]] = value


def _unset_field(record: dict[str, Any], field: str) -> None:
    """Remove a (possibly dotted) field, pruning parents left empty."""
    head, _, rest = field.partition(".")
    if not rest:
        record.pop(head, None)
        return
    child = record.get(head)
    if isinstance(child, dict):
        _unset_field(child, rest)
        if not child:
            del record[head]


class TriageSession:
    """One patient assessment.

    Drives the session state machine:

        NOT_STARTED --start()--> IN_PROGRESS
        IN_PROGRESS --answer() matches a critical rule--> CRITICAL_HALT
        IN_PROGRESS --no step left to ask--> COMPLETED
        IN_PROGRESS --go_back()--> IN_PROGRESS
        any state --restart()--> NOT_STARTED

    Each session owns its own rules engine and flow controller built from an
    immutable TriageConfig. Calls against one session must be serialized by
    the caller.
    """

    def __init__(
        self,
        config: TriageConfig,
        profile: str = "default",
        session_id: str | None = None,
    ) -> None:
        """Initialize session.

        Args:
            config: Loaded triage configuration
            profile: Profile name the configuration was loaded from
            session_id: Identifier used in logs (generated if omitted)
        """
        self.config = config
        self.profile = profile
        self.session_id = session_id or str(uuid.uuid4())

        self.evaluator = ConditionEvaluator()
        self.engine = RuleEngine(config.rules, self.evaluator)
        self.flow = FlowController(config.steps, self.evaluator)

        self.state = SessionState.NOT_STARTED
        self._record: dict[str, Any] = {}
        self._pending: dict[str, list[Any]] = {}
        self._answered_steps: list[str] = []
        self._result: TriageResult | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def answered_steps(self) -> list[str]:
        """Step ids in the order they were answered."""
        return list(self._answered_steps)

    def start(self) -> None:
        """Begin the assessment with an empty patient record.

        Raises:
            SessionStateError: If the session was already started
        """
        if self.state != SessionState.NOT_STARTED:
            raise SessionStateError(
                f"Cannot start a session in state '{self.state.value}'; restart it first"
            )

        self._record = {}
        self._pending = {}
        self._answered_steps = []
        self._result = None
        self.state = SessionState.IN_PROGRESS
        self._log("start", {"steps": self.flow.get_total_steps()})

        # A flow with nothing to ask completes straight away
        if self.flow.get_next_step(self._record) is None:
            self._finish(SessionState.COMPLETED)

    def answer(self, field: str, value: Any) -> None:
        """Record an answer for a field.

        Single and scale answers are written to the record immediately and
        the record is checked against the critical rules. Multi answers are
        held as a pending selection until ``complete_step`` is called.

        Answers for fields that no step asks about are ignored.

        Raises:
            SessionStateError: If the session is not in progress
            AnswerValidationError: If the value does not fit the step
        """
        self._require_in_progress("answer")

        step = self.flow.get_step_for_field(field)
        if step is None:
            logger.info(f"Ignoring answer for unknown field '{field}'")
            return

        value = self.flow.validate_answer(step, value)

        if step.type == StepType.MULTI:
            self._pending[field] = value
            return

        self._commit(step, value)

    def complete_step(self, field: str) -> None:
        """Commit the pending selection of a multi step and advance.

        An empty selection is a valid answer ("none of these").

        Raises:
            SessionStateError: If the session is not in progress or the field
                does not belong to a multi step
        """
        self._require_in_progress("complete a step")

        step = self.flow.get_step_for_field(field)
        if step is None or step.type != StepType.MULTI:
            raise SessionStateError(f"'{field}' is not a multiple-choice step")

        self._commit(step, self._pending.pop(field, []))

    def go_back(self) -> AssessmentStep:
        """Undo the most recently committed step.

        The step's field is removed from the record and any uncommitted
        selection is discarded, so the undone step is asked again.

        Returns:
            The step that was undone

        Raises:
            SessionStateError: If the session is not in progress or nothing
                has been answered yet
        """
        self._require_in_progress("go back")
        if not self._answered_steps:
            raise SessionStateError("No answered step to go back to")

        step_id = self._answered_steps.pop()
        step = self.flow.get_step(step_id)
        _unset_field(self._record, step.field)
        self._pending = {}
        self._log("back", {"step": step_id, "answered": len(self._answered_steps)})
        return step

    def get_pending_selection(self, field: str) -> list[Any]:
        """Get the uncommitted selection of a multi step."""
        return list(self._pending.get(field, []))

    def get_current_step(self) -> AssessmentStep | None:
        """Get the step to present next, or None if there is none."""
        if self.state != SessionState.IN_PROGRESS:
            return None
        return self.flow.get_next_step(self._record)

    def get_progress(self) -> float:
        """Get progress as (current step index + 1) / total steps."""
        if self.state == SessionState.NOT_STARTED:
            return 0.0

        total = self.flow.get_total_steps()
        step = self.get_current_step()
        if step is None or total == 0:
            return 1.0
        return (self.flow.get_step_index(step.id) + 1) / total

    def get_result(self) -> TriageResult:
        """Get the final triage result.

        Raises:
            SessionStateError: If the session has not reached a result
        """
        if not self.is_terminal or self._result is None:
            raise SessionStateError(
                f"No triage result in state '{self.state.value}'"
            )
        return self._result

    def get_record(self) -> Mapping[str, Any]:
        """Get a read-only snapshot of the patient record."""
        return MappingProxyType(copy.deepcopy(self._record))

    def restart(self) -> None:
        """Abandon the current assessment and return to NOT_STARTED."""
        previous = self.state
        self._record = {}
        self._pending = {}
        self._answered_steps = []
        self._result = None
        self.state = SessionState.NOT_STARTED
        self._log("restart", {"from_state": previous.value})

    def _commit(self, step: AssessmentStep, value: Any) -> None:
        _set_field(self._record, step.field, value)
        if step.id in self._answered_steps:
            self._answered_steps.remove(step.id)
        self._answered_steps.append(step.id)

        if self.engine.has_critical_condition(self._record):
            critical = self.engine.critical_matches(self._record)
            self._finish(
                SessionState.CRITICAL_HALT,
                {"critical_rules": [r.id for r in critical], "after_step": step.id},
            )
            return

        if self.flow.get_next_step(self._record) is None:
            self._finish(SessionState.COMPLETED)

    def _finish(self, state: SessionState, metadata: dict[str, Any] | None = None) -> None:
        self._result = self.engine.evaluate(self._record)
        self._pending = {}
        self.state = state
        self._log(
            state.value,
            {
                **(metadata or {}),
                "priority": self._result.priority.value,
                "confidence": round(self._result.confidence, 3),
                "answered": len(self._answered_steps),
            },
        )

    def _require_in_progress(self, action: str) -> None:
        if self.state != SessionState.IN_PROGRESS:
            raise SessionStateError(
                f"Cannot {action} in state '{self.state.value}'"
            )

    def _log(self, action: str, metadata: dict[str, Any]) -> None:
        assessment_logger.log(
            action=action,
            session_id=self.session_id,
            profile=self.profile,
            metadata={
                "ruleset_version": self.config.version,
                "ruleset_hash": self.config.content_hash[:12],
                **metadata,
            },
        )
