"""Pydantic schemas for triage session operations."""

from typing import Any

from pydantic import BaseModel, Field

from shifa.rules.models import AssessmentStep, StepType, TriageResult
from shifa.services.triage import SessionState, TriageSession


class SessionCreate(BaseModel):
    """Schema for creating an assessment session."""

    profile: str | None = Field(None, description="Triage profile (defaults to the configured default)")


class AnswerSubmit(BaseModel):
    """Schema for submitting one answer."""

    field: str = Field(..., min_length=1, description="Patient record field")
    value: Any = Field(..., description="Option value, scale value or list of values")


class StepOptionRead(BaseModel):
    """Schema for reading a step option."""

    value: Any
    label: str
    color: str
    critical: bool = False
    description: str | None = None


class StepRead(BaseModel):
    """Schema for reading an assessment step."""

    id: str
    question: str
    type: str
    field: str
    required: bool
    options: list[StepOptionRead] = []
    description: str | None = None
    help_text: str | None = None
    min_value: int | None = None
    max_value: int | None = None
    index: int
    total: int

    @classmethod
    def from_step(cls, step: AssessmentStep, index: int, total: int) -> "StepRead":
        is_scale = step.type == StepType.SCALE
        return cls(
            id=step.id,
            question=step.question,
            type=step.type.value,
            field=step.field,
            required=step.required,
            options=[
                StepOptionRead(
                    value=o.value,
                    label=o.label,
                    color=o.color,
                    critical=o.critical,
                    description=o.description,
                )
                for o in step.options
            ],
            description=step.description,
            help_text=step.help_text,
            min_value=step.min_value if is_scale else None,
            max_value=step.max_value if is_scale else None,
            index=index,
            total=total,
        )


class MatchedRuleRead(BaseModel):
    """Schema for a rule that contributed to a result."""

    id: str
    name: str
    priority: str
    confidence: float
    is_critical: bool


class TriageResultRead(BaseModel):
    """Schema for reading a triage result."""

    priority: str
    matched_rules: list[MatchedRuleRead]
    confidence: float
    actions: list[str]
    reassess_time: int | None = None
    ruleset_version: str
    ruleset_hash: str

    @classmethod
    def from_result(cls, result: TriageResult, session: TriageSession) -> "TriageResultRead":
        return cls(
            priority=result.priority.value,
            matched_rules=[
                MatchedRuleRead(
                    id=r.id,
                    name=r.name,
                    priority=r.priority.value,
                    confidence=r.confidence,
                    is_critical=r.is_critical,
                )
                for r in result.matched_rules
            ],
            confidence=result.confidence,
            actions=list(result.actions),
            reassess_time=result.reassess_time,
            ruleset_version=session.config.version,
            ruleset_hash=session.config.content_hash,
        )


class SessionRead(BaseModel):
    """Schema for reading session status."""

    id: str
    profile: str
    state: SessionState
    current_step: StepRead | None = None
    progress: float
    answered_steps: list[str]
    pending_selection: list[Any] | None = None

    @classmethod
    def from_session(cls, session: TriageSession) -> "SessionRead":
        step = session.get_current_step()
        current = None
        pending = None
        if step is not None:
            current = StepRead.from_step(
                step,
                index=session.flow.get_step_index(step.id),
                total=session.flow.get_total_steps(),
            )
            if step.type == StepType.MULTI:
                pending = session.get_pending_selection(step.field)

        return cls(
            id=session.session_id,
            profile=session.profile,
            state=session.state,
            current_step=current,
            progress=session.get_progress(),
            answered_steps=session.answered_steps,
            pending_selection=pending,
        )


class RecordRead(BaseModel):
    """Schema for reading the patient record snapshot."""

    id: str
    state: SessionState
    record: dict[str, Any]


class ProfileRead(BaseModel):
    """Schema for reading triage profile metadata."""

    name: str
    filename: str
    id: str
    version: str
    description: str = ""
    hash: str
