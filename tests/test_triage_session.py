"""Tests for the triage session state machine."""

import pytest

from shifa.core.exceptions import AnswerValidationError, SessionStateError
from shifa.rules.models import TriagePriority
from shifa.services.triage import SessionState, TriageSession


@pytest.fixture
def ten_step_session(make_config, make_rule, make_step) -> TriageSession:
    """Ten yes/no steps; answering 'yes' to q3 is critical."""
    config = make_config(
        rules=[
            make_rule(
                "RED_Q3",
                "q3 == 'yes'",
                priority="RED",
                confidence=0.9,
                is_critical=True,
                reassess_time=5,
            ),
            make_rule("YELLOW_Q9", "q9 == 'yes'", priority="YELLOW", confidence=0.6),
            make_rule("GREEN_ALL_NO", "q1 == 'no' and q10 == 'no'", confidence=0.8),
        ],
        steps=[make_step(f"q{i}") for i in range(1, 11)],
    )
    return TriageSession(config, profile="test")


@pytest.fixture
def multi_session(make_config, make_rule, make_step) -> TriageSession:
    """Bleeding, injuries (multi) and pain."""
    config = make_config(
        rules=[
            make_rule("RED_BLEED", "bleeding == 'severe'", priority="RED", is_critical=True),
            make_rule("RED_CHEST_PAIN", "'chest' in injuries and pain >= 7", priority="RED"),
        ],
        steps=[
            make_step("bleeding", options=["none", "minor", "severe"]),
            make_step("injuries", "multi", options=["head", "chest", "extremities"]),
            make_step("pain", "scale"),
        ],
    )
    return TriageSession(config, profile="test")


def answer_all_no(session: TriageSession, upto: int = 10) -> None:
    for i in range(1, upto + 1):
        session.answer(f"q{i}", "no")


class TestLifecycle:
    """Tests for state transitions."""

    def test_new_session_not_started(self, ten_step_session: TriageSession) -> None:
        """Test initial state."""
        assert ten_step_session.state == SessionState.NOT_STARTED
        assert ten_step_session.get_current_step() is None
        assert ten_step_session.get_progress() == 0.0
        assert ten_step_session.session_id

    def test_start(self, ten_step_session: TriageSession) -> None:
        """Test that start moves to IN_PROGRESS at the first step."""
        ten_step_session.start()

        assert ten_step_session.state == SessionState.IN_PROGRESS
        assert ten_step_session.get_current_step().field == "q1"
        assert ten_step_session.get_record() == {}

    def test_start_twice_raises(self, ten_step_session: TriageSession) -> None:
        """Test that a started session cannot be started again."""
        ten_step_session.start()

        with pytest.raises(SessionStateError):
            ten_step_session.start()

    def test_answer_before_start_raises(self, ten_step_session: TriageSession) -> None:
        """Test that answers need a started session."""
        with pytest.raises(SessionStateError):
            ten_step_session.answer("q1", "no")

    def test_completes_when_no_step_left(self, ten_step_session: TriageSession) -> None:
        """Test normal completion after the last required step."""
        ten_step_session.start()
        answer_all_no(ten_step_session)

        assert ten_step_session.state == SessionState.COMPLETED
        assert ten_step_session.get_current_step() is None
        assert ten_step_session.get_progress() == 1.0

        result = ten_step_session.get_result()
        assert result.priority == TriagePriority.GREEN
        assert [r.id for r in result.matched_rules] == ["GREEN_ALL_NO"]

    def test_answer_after_completion_raises(self, ten_step_session: TriageSession) -> None:
        """Test that a finished session rejects further answers."""
        ten_step_session.start()
        answer_all_no(ten_step_session)

        with pytest.raises(SessionStateError):
            ten_step_session.answer("q1", "yes")

    def test_empty_flow_completes_on_start(self, make_config) -> None:
        """Test that a configuration without steps completes immediately."""
        session = TriageSession(make_config())
        session.start()

        assert session.state == SessionState.COMPLETED
        assert session.get_result().priority == TriagePriority.GREEN
        assert session.get_result().confidence == 0.5


class TestCriticalHalt:
    """Tests for early termination on critical rules."""

    def test_halts_after_third_answer(self, ten_step_session: TriageSession) -> None:
        """Test that a critical match halts without visiting later steps."""
        ten_step_session.start()
        ten_step_session.answer("q1", "no")
        ten_step_session.answer("q2", "no")

        assert ten_step_session.state == SessionState.IN_PROGRESS

        ten_step_session.answer("q3", "yes")

        assert ten_step_session.state == SessionState.CRITICAL_HALT
        assert ten_step_session.get_current_step() is None
        assert ten_step_session.answered_steps == ["q1", "q2", "q3"]
        assert set(ten_step_session.get_record()) == {"q1", "q2", "q3"}

    def test_halt_result(self, ten_step_session: TriageSession) -> None:
        """Test the result produced by a critical halt."""
        ten_step_session.start()
        answer_all_no(ten_step_session, upto=2)
        ten_step_session.answer("q3", "yes")

        result = ten_step_session.get_result()

        assert result.priority == TriagePriority.RED
        assert result.matched_rules[0].id == "RED_Q3"
        assert result.reassess_time == 5

    def test_halt_is_terminal(self, ten_step_session: TriageSession) -> None:
        """Test that no answers are accepted after a halt."""
        ten_step_session.start()
        ten_step_session.answer("q3", "yes")

        assert ten_step_session.is_terminal

        with pytest.raises(SessionStateError):
            ten_step_session.answer("q4", "no")

    def test_out_of_order_answer_can_halt(self, ten_step_session: TriageSession) -> None:
        """Test that answering a later field first is checked too."""
        ten_step_session.start()
        ten_step_session.answer("q3", "yes")

        assert ten_step_session.state == SessionState.CRITICAL_HALT


class TestAnswers:
    """Tests for answer handling."""

    def test_unknown_field_is_ignored(self, ten_step_session: TriageSession) -> None:
        """Test that an answer for a field no step asks about is a no-op."""
        ten_step_session.start()
        ten_step_session.answer("shoe_size", 42)

        assert ten_step_session.get_record() == {}
        assert ten_step_session.state == SessionState.IN_PROGRESS

    def test_invalid_value_rejected(self, ten_step_session: TriageSession) -> None:
        """Test that a value outside the step options is rejected."""
        ten_step_session.start()

        with pytest.raises(AnswerValidationError):
            ten_step_session.answer("q1", "maybe")

        assert ten_step_session.get_record() == {}

    def test_answer_overwrites_field(self, ten_step_session: TriageSession) -> None:
        """Test that re-answering a field replaces its value."""
        ten_step_session.start()
        ten_step_session.answer("q1", "yes")
        ten_step_session.answer("q1", "no")

        assert ten_step_session.get_record()["q1"] == "no"
        assert ten_step_session.answered_steps == ["q1"]

    def test_record_snapshot_is_read_only(self, ten_step_session: TriageSession) -> None:
        """Test that callers cannot change the record through the snapshot."""
        ten_step_session.start()
        ten_step_session.answer("q1", "no")
        record = ten_step_session.get_record()

        with pytest.raises(TypeError):
            record["q1"] = "yes"  # type: ignore[index]

        assert ten_step_session.get_record()["q1"] == "no"

    def test_progress_advances(self, ten_step_session: TriageSession) -> None:
        """Test progress as (current index + 1) / total."""
        ten_step_session.start()

        assert ten_step_session.get_progress() == pytest.approx(0.1)

        answer_all_no(ten_step_session, upto=4)

        assert ten_step_session.get_progress() == pytest.approx(0.5)


class TestMultiChoiceSteps:
    """Tests for multi-select steps."""

    def test_selection_pending_until_completed(self, multi_session: TriageSession) -> None:
        """Test that a multi answer waits for complete_step."""
        multi_session.start()
        multi_session.answer("bleeding", "minor")
        multi_session.answer("injuries", ["chest", "head"])

        assert multi_session.get_pending_selection("injuries") == ["chest", "head"]
        assert "injuries" not in multi_session.get_record()
        assert multi_session.get_current_step().field == "injuries"

        multi_session.complete_step("injuries")

        assert multi_session.get_record()["injuries"] == ["chest", "head"]
        assert multi_session.get_pending_selection("injuries") == []
        assert multi_session.get_current_step().field == "pain"

    def test_selection_replaced(self, multi_session: TriageSession) -> None:
        """Test that a new selection replaces the pending one."""
        multi_session.start()
        multi_session.answer("bleeding", "none")
        multi_session.answer("injuries", ["head"])
        multi_session.answer("injuries", ["extremities"])
        multi_session.complete_step("injuries")

        assert multi_session.get_record()["injuries"] == ["extremities"]

    def test_complete_without_selection(self, multi_session: TriageSession) -> None:
        """Test that completing with nothing selected records an empty list."""
        multi_session.start()
        multi_session.answer("bleeding", "none")
        multi_session.complete_step("injuries")

        assert multi_session.get_record()["injuries"] == []

    def test_complete_non_multi_step_raises(self, multi_session: TriageSession) -> None:
        """Test that complete_step only applies to multi steps."""
        multi_session.start()

        with pytest.raises(SessionStateError):
            multi_session.complete_step("bleeding")

    def test_full_assessment(self, multi_session: TriageSession) -> None:
        """Test a complete run that ends on a non-critical RED rule."""
        multi_session.start()
        multi_session.answer("bleeding", "minor")
        multi_session.answer("injuries", ["chest"])
        multi_session.complete_step("injuries")
        multi_session.answer("pain", 8)

        assert multi_session.state == SessionState.COMPLETED
        assert multi_session.get_result().priority == TriagePriority.RED

    def test_critical_answer_halts(self, multi_session: TriageSession) -> None:
        """Test that a critical first answer halts immediately."""
        multi_session.start()
        multi_session.answer("bleeding", "severe")

        assert multi_session.state == SessionState.CRITICAL_HALT
        assert multi_session.get_result().matched_rules[0].id == "RED_BLEED"


class TestResultAndRestart:
    """Tests for result access and restart."""

    def test_result_before_finish_raises(self, ten_step_session: TriageSession) -> None:
        """Test that the result is not available mid-assessment."""
        with pytest.raises(SessionStateError):
            ten_step_session.get_result()

        ten_step_session.start()

        with pytest.raises(SessionStateError):
            ten_step_session.get_result()

    def test_restart_from_halt(self, ten_step_session: TriageSession) -> None:
        """Test that restart clears the record and returns to NOT_STARTED."""
        ten_step_session.start()
        ten_step_session.answer("q3", "yes")
        ten_step_session.restart()

        assert ten_step_session.state == SessionState.NOT_STARTED
        assert ten_step_session.get_record() == {}
        assert ten_step_session.answered_steps == []

        with pytest.raises(SessionStateError):
            ten_step_session.get_result()

    def test_restart_then_start(self, ten_step_session: TriageSession) -> None:
        """Test a fresh assessment after restart."""
        ten_step_session.start()
        ten_step_session.answer("q1", "yes")
        ten_step_session.restart()
        ten_step_session.start()

        assert ten_step_session.get_current_step().field == "q1"


class TestGoBack:
    """Tests for undoing the last committed step."""

    def test_go_back_undoes_last_answer(self, ten_step_session: TriageSession) -> None:
        """Test that the last answer is removed and its step asked again."""
        ten_step_session.start()
        ten_step_session.answer("q1", "no")
        ten_step_session.answer("q2", "no")

        undone = ten_step_session.go_back()

        assert undone.id == "q2"
        assert ten_step_session.state == SessionState.IN_PROGRESS
        assert ten_step_session.get_record() == {"q1": "no"}
        assert ten_step_session.answered_steps == ["q1"]
        assert ten_step_session.get_current_step().field == "q2"

    def test_go_back_repeatedly(self, ten_step_session: TriageSession) -> None:
        """Test walking back to the first step, then past it."""
        ten_step_session.start()
        ten_step_session.answer("q1", "no")
        ten_step_session.answer("q2", "no")
        ten_step_session.go_back()
        ten_step_session.go_back()

        assert ten_step_session.get_record() == {}
        assert ten_step_session.get_current_step().field == "q1"
        assert ten_step_session.get_progress() == pytest.approx(0.1)

        with pytest.raises(SessionStateError):
            ten_step_session.go_back()

    def test_go_back_follows_answer_order(self, ten_step_session: TriageSession) -> None:
        """Test that the most recently answered step is undone, not the last declared."""
        ten_step_session.start()
        ten_step_session.answer("q5", "no")
        ten_step_session.answer("q1", "no")

        assert ten_step_session.go_back().id == "q1"
        assert ten_step_session.get_record() == {"q5": "no"}

    def test_go_back_clears_pending_selection(self, multi_session: TriageSession) -> None:
        """Test that an uncommitted multi selection is discarded."""
        multi_session.start()
        multi_session.answer("bleeding", "none")
        multi_session.answer("injuries", ["head"])

        multi_session.go_back()

        assert multi_session.get_pending_selection("injuries") == []
        assert multi_session.get_record() == {}
        assert multi_session.get_current_step().field == "bleeding"

    def test_go_back_removes_nested_field(self, make_config, make_step) -> None:
        """Test that undoing a dotted field leaves no empty parent behind."""
        config = make_config(steps=[
            make_step("vitals.pulse", options=["present", "absent"], id="pulse"),
            make_step("vitals.breathing", options=["normal", "absent"], id="breathing"),
            make_step("pain", "scale"),
        ])
        session = TriageSession(config, profile="test")
        session.start()
        session.answer("vitals.pulse", "present")
        session.answer("vitals.breathing", "normal")

        session.go_back()
        assert session.get_record() == {"vitals": {"pulse": "present"}}

        session.go_back()
        assert session.get_record() == {}

    def test_go_back_not_in_progress_raises(self, ten_step_session: TriageSession) -> None:
        """Test that going back is refused before start and after a halt."""
        with pytest.raises(SessionStateError):
            ten_step_session.go_back()

        ten_step_session.start()
        ten_step_session.answer("q3", "yes")
        assert ten_step_session.state == SessionState.CRITICAL_HALT

        with pytest.raises(SessionStateError):
            ten_step_session.go_back()
