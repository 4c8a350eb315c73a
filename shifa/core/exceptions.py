"""Exception taxonomy for the triage core."""


class TriageError(Exception):
    """Base class for triage errors."""


class ConfigError(TriageError):
    """Triage configuration is missing, unreadable or structurally invalid.

    Fatal for the engine built from it. There is no automatic retry; the
    caller reloads the configuration and builds a new engine.
    """


class ConditionError(TriageError):
    """Base class for condition expression failures."""

    def __init__(self, message: str, expression: str = "") -> None:
        super().__init__(message)
        self.expression = expression


class ConditionSyntaxError(ConditionError):
    """Expression could not be parsed or uses a construct outside the grammar."""


class ConditionEvaluationError(ConditionError):
    """Expression failed while being evaluated against a patient record."""


class SessionStateError(TriageError):
    """Session operation called in a state that does not allow it."""


class AnswerValidationError(TriageError, ValueError):
    """Answer value does not fit the assessment step it targets."""

    def __init__(self, message: str, field: str) -> None:
        super().__init__(message)
        self.field = field


class SessionNotFoundError(TriageError, KeyError):
    """No session is registered under the given id."""
