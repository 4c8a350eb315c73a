"""Pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient

from shifa.api.deps import get_session_store
from shifa.main import app
from shifa.rules.loader import RulesetLoader
from shifa.rules.models import TriageConfig
from shifa.services.sessions import SessionStore


@pytest.fixture
def make_rule() -> Callable[..., dict[str, Any]]:
    """Build a rule definition as it appears in a ruleset document."""

    def _make_rule(
        rule_id: str,
        condition: str,
        priority: str = "GREEN",
        confidence: float = 0.8,
        actions: list[str] | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        return {
            "id": rule_id,
            "name": rule_id.replace("_", " ").title(),
            "condition": condition,
            "priority": priority,
            "confidence": confidence,
            "actions": actions if actions is not None else [f"Action for {rule_id}"],
            **extra,
        }

    return _make_rule


@pytest.fixture
def make_step() -> Callable[..., dict[str, Any]]:
    """Build a step definition as it appears in a ruleset document."""

    def _make_step(
        field: str,
        step_type: str = "single",
        options: list[Any] | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        if options is None and step_type != "scale":
            options = ["yes", "no"]
        return {
            "id": extra.pop("id", field),
            "question": f"{field}?",
            "type": step_type,
            "field": field,
            "required": extra.pop("required", True),
            "options": [{"value": v, "label": str(v)} for v in options or []],
            **extra,
        }

    return _make_step


@pytest.fixture
def make_config() -> Callable[..., TriageConfig]:
    """Build a validated TriageConfig from rule and step definitions."""

    def _make_config(
        rules: list[dict[str, Any]] | None = None,
        steps: list[dict[str, Any]] | None = None,
        strict: bool = False,
    ) -> TriageConfig:
        return TriageConfig.from_dict(
            {
                "id": "test-profile",
                "name": "Test Profile",
                "version": "0.0.1",
                "triage_rules": rules or [],
                "assessment_flow": steps or [],
            },
            content_hash="0" * 64,
            strict=strict,
        )

    return _make_config


@pytest.fixture(scope="module")
def loader() -> RulesetLoader:
    """Ruleset loader over the repository rulesets."""
    return RulesetLoader()


@pytest.fixture(scope="module")
def mass_casualty_config(loader: RulesetLoader) -> TriageConfig:
    """The mass casualty reference profile."""
    return loader.load_config("mass-casualty")


@pytest.fixture(scope="module")
def first_responder_config(loader: RulesetLoader) -> TriageConfig:
    """The first responder reference profile."""
    return loader.load_config("first-responder")


@pytest.fixture
def store() -> SessionStore:
    """Fresh in-memory session store."""
    return SessionStore(loader=RulesetLoader(), max_sessions=10)


@pytest.fixture
def client(store: SessionStore) -> Generator[TestClient, None, None]:
    """Create FastAPI test client with an isolated session store."""
    app.dependency_overrides[get_session_store] = lambda: store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
