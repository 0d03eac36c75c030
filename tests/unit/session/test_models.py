"""
Tests for session models.
"""

import pytest
from pydantic import ValidationError

from charla.session.models import PendingRetry, Role, Session, SessionPhase, TranscriptMessage


@pytest.mark.parametrize(
    "current, target, expected",
    [
        (SessionPhase.ROLEPLAY, SessionPhase.QUIZ, SessionPhase.QUIZ),
        (SessionPhase.QUIZ, SessionPhase.COMPLETED, SessionPhase.COMPLETED),
        (SessionPhase.COMPLETED, SessionPhase.QUIZ, SessionPhase.COMPLETED),
        (SessionPhase.QUIZ, SessionPhase.ROLEPLAY, SessionPhase.QUIZ),
    ],
)
def test_phase_never_regresses(current, target, expected):
    assert current.advance_to(target) == expected


def test_transcript_messages_are_frozen():
    message = TranscriptMessage(role=Role.LEARNER, text="Hola")
    with pytest.raises(ValidationError):
        message.text = "Adiós"


def test_pending_retry_requires_expected_text():
    with pytest.raises(ValidationError):
        PendingRetry(expected="", attempts=0)
    with pytest.raises(ValidationError):
        PendingRetry(expected="Hola", attempts=-1)


def test_session_dumps_camel_case():
    session = Session(level_id="A1", scenario_id="taxi")
    data = session.model_dump(mode="json", by_alias=True)
    assert data["levelId"] == "A1"
    assert data["turnCount"] == 0
    assert data["phase"] == "roleplay"
    assert Session.model_validate(data) == session
