"""
Tests for teacher decision validation and the fallback decision.
"""

import json

import pytest

from charla.shared.exceptions import DecisionValidationError
from charla.tutor.decision import (
    FALLBACK_REPLY,
    GetHintTool,
    GradeQuizTool,
    TeacherDecision,
    create_fallback_decision,
    validate_decision,
)


def _raw(**overrides):
    raw = {
        "feedback": "good",
        "isMistake": False,
        "shouldRetry": False,
        "tool": None,
        "reply": "¡Perfecto!",
    }
    raw.update(overrides)
    return raw


def test_valid_decision_without_tool():
    decision = validate_decision(_raw())
    assert isinstance(decision, TeacherDecision)
    assert decision.tool is None
    assert decision.reply == "¡Perfecto!"
    assert decision.requests_retry is False


def test_valid_decision_from_json_string():
    decision = validate_decision(json.dumps(_raw(nextPhase="quiz")))
    assert decision.next_phase == "quiz"


def test_tool_is_parsed_into_typed_variant():
    decision = validate_decision(
        _raw(tool={"name": "grade_quiz", "args": {"quizId": "q1", "answers": [0, -1, 2]}})
    )
    assert isinstance(decision.tool, GradeQuizTool)
    assert decision.tool.args.quiz_id == "q1"
    assert decision.tool.args.answers == [0, -1, 2]


def test_get_hint_args_are_optional():
    decision = validate_decision(_raw(tool={"name": "get_hint"}))
    assert isinstance(decision.tool, GetHintTool)
    assert decision.tool.args.topic is None


def test_retry_requires_correction():
    with pytest.raises(DecisionValidationError) as exc_info:
        validate_decision(_raw(isMistake=True, shouldRetry=True))
    assert "correction" in str(exc_info.value)


def test_retry_with_correction_requests_retry():
    decision = validate_decision(
        _raw(isMistake=True, shouldRetry=True, correction="Quiero ir al centro")
    )
    assert decision.requests_retry is True


def test_should_retry_without_mistake_does_not_request_retry():
    decision = validate_decision(_raw(isMistake=False, shouldRetry=True, correction="Hola"))
    assert decision.requests_retry is False


@pytest.mark.parametrize(
    "overrides, path",
    [
        ({"reply": ""}, "reply"),
        ({"feedback": ""}, "feedback"),
        ({"isMistake": "false"}, "isMistake"),
        ({"nextPhase": "lobby"}, "nextPhase"),
        ({"tool": {"name": "launch_rocket", "args": {}}}, "tool"),
        ({"tool": {"name": "start_quiz", "args": {}}}, "tool.start_quiz.args.quizId"),
        ({"tool": {"name": "grade_quiz", "args": {"quizId": "q", "answers": [0, -2]}}}, "tool.grade_quiz.args.answers.1"),
    ],
)
def test_invalid_decisions_list_failing_paths(overrides, path):
    with pytest.raises(DecisionValidationError) as exc_info:
        validate_decision(_raw(**overrides))
    assert any(issue.startswith(path) for issue in exc_info.value.issues), exc_info.value.issues


def test_missing_required_fields():
    with pytest.raises(DecisionValidationError) as exc_info:
        validate_decision({"reply": "hola"})
    paths = {issue.split(":")[0] for issue in exc_info.value.issues}
    assert {"feedback", "isMistake", "shouldRetry"} <= paths


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", 42, None])
def test_non_object_input_is_rejected(raw):
    with pytest.raises(DecisionValidationError):
        validate_decision(raw)


def test_fallback_decision_is_fixed_and_valid():
    fallback = create_fallback_decision()
    assert fallback.feedback == "fallback"
    assert fallback.reply == FALLBACK_REPLY
    assert fallback.tool is None
    assert fallback.is_mistake is False
    assert fallback.should_retry is False
    assert validate_decision(fallback.model_dump(by_alias=True)) == fallback
