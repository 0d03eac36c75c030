"""
Pydantic models for session state.

A Session is owned by the engine: created on start, replaced by a new
snapshot once per processed turn or tool application, never deleted in
normal operation.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from charla.tutor.decision import TeacherDecision


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class WireModel(BaseModel):
    """Base for models that travel as camelCase JSON."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenWireModel(WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class SessionPhase(str, Enum):
    """Coarse lesson stage. Only ever advances in declaration order."""
    ROLEPLAY = "roleplay"
    QUIZ = "quiz"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _PHASE_RANK[self]

    def advance_to(self, target: "SessionPhase") -> "SessionPhase":
        """Return the later of the two phases."""
        return target if target.rank > self.rank else self


_PHASE_RANK = {
    SessionPhase.ROLEPLAY: 0,
    SessionPhase.QUIZ: 1,
    SessionPhase.COMPLETED: 2,
}


class Role(str, Enum):
    LEARNER = "learner"
    TUTOR = "tutor"


class TranscriptMessage(FrozenWireModel):
    """One line of the conversation. Immutable once appended."""
    id: str = Field(default_factory=new_id)
    role: Role
    text: str = Field(min_length=1)
    ts: datetime = Field(default_factory=utcnow)


class Mistake(FrozenWireModel):
    """Learner mistake recorded through the log_mistake tool."""
    id: str = Field(default_factory=new_id)
    type: str = Field(default="general", min_length=1)
    original: str = Field(min_length=1)
    corrected: Optional[str] = None
    ts: datetime = Field(default_factory=utcnow)


class PendingRetry(FrozenWireModel):
    """Open correction the learner must reproduce before moving on."""
    expected: str = Field(min_length=1)
    attempts: int = Field(default=0, ge=0)


class ActiveQuiz(FrozenWireModel):
    quiz_id: str = Field(min_length=1)
    started_at: datetime = Field(default_factory=utcnow)


class QuizResult(FrozenWireModel):
    quiz_id: str = Field(min_length=1)
    score: int = Field(ge=0, le=100)
    total: int = Field(gt=0)
    answers: List[int]
    completed_at: datetime = Field(default_factory=utcnow)


class SessionCompletion(FrozenWireModel):
    summary: str = Field(min_length=1)
    completed_at: datetime = Field(default_factory=utcnow)


class Session(WireModel):
    """Complete conversation state for one learner and scenario."""
    id: str = Field(default_factory=new_id)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    level_id: str = Field(min_length=1)
    scenario_id: str = Field(min_length=1)
    phase: SessionPhase = SessionPhase.ROLEPLAY
    transcript: List[TranscriptMessage] = Field(default_factory=list)
    turn_count: int = Field(default=0, ge=0)
    mistakes: List[Mistake] = Field(default_factory=list)
    post_quiz_id: Optional[str] = None
    pending_retry: Optional[PendingRetry] = None
    last_decision: Optional[TeacherDecision] = None
    active_quiz: Optional[ActiveQuiz] = None
    quiz_result: Optional[QuizResult] = None
    completion: Optional[SessionCompletion] = None
    # Incremented by the store on every save.
    version: int = Field(default=0, ge=0)


class TurnTiming(WireModel):
    llm_ms: int = 0
    tool_ms: int = 0


class TurnResult(WireModel):
    session: Session
    timing: TurnTiming
    # None when the retry gate answered without asking the model
    decision: Optional[TeacherDecision] = None


class SessionSummary(WireModel):
    turns: int = Field(ge=0)
    has_quiz: bool
    quiz_id: Optional[str] = None
