"""Pydantic schemas for request/response validation."""

from shifa.schemas.triage import (
    AnswerSubmit,
    MatchedRuleRead,
    ProfileRead,
    RecordRead,
    SessionCreate,
    SessionRead,
    StepOptionRead,
    StepRead,
    TriageResultRead,
)

__all__ = [
    "AnswerSubmit",
    "MatchedRuleRead",
    "ProfileRead",
    "RecordRead",
    "SessionCreate",
    "SessionRead",
    "StepOptionRead",
    "StepRead",
    "TriageResultRead",
]
