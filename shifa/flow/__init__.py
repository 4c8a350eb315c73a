"""Adaptive questionnaire flow."""

from shifa.flow.controller import FlowController, is_answered

__all__ = ["FlowController", "is_answered"]
