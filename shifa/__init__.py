"""Shifa triage: rule-based priority classification with an adaptive questionnaire."""

__version__ = "0.1.0"
