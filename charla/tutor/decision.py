"""
Teacher decision schema, validation and fallback.

The model proposes a decision; nothing in it is trusted until it passes
validate_decision. Anything that does not pass is replaced by the fixed
fallback decision.
"""

import json
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from charla.shared.exceptions import DecisionValidationError

FALLBACK_REPLY = "Sorry—something glitched. Please try that again."

ToolName = Literal["start_quiz", "grade_quiz", "get_hint", "log_mistake", "mark_complete"]


class DecisionModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ─── Tool arguments ──────────────────────────────────────────────────────────

class StartQuizArgs(DecisionModel):
    quiz_id: StrictStr = Field(min_length=1)


class GradeQuizArgs(DecisionModel):
    quiz_id: StrictStr = Field(min_length=1)
    # answers[i] answers question i; -1 means unanswered
    answers: List[Annotated[StrictInt, Field(ge=-1)]]


class GetHintArgs(DecisionModel):
    topic: Optional[StrictStr] = None


class LogMistakeArgs(DecisionModel):
    original: StrictStr = Field(min_length=1)
    corrected: StrictStr = Field(min_length=1)
    type: Optional[StrictStr] = None


class MarkCompleteArgs(DecisionModel):
    summary: StrictStr = Field(min_length=1)


# ─── Tool variants ───────────────────────────────────────────────────────────

class StartQuizTool(DecisionModel):
    name: Literal["start_quiz"]
    args: StartQuizArgs


class GradeQuizTool(DecisionModel):
    name: Literal["grade_quiz"]
    args: GradeQuizArgs


class GetHintTool(DecisionModel):
    name: Literal["get_hint"]
    args: GetHintArgs = Field(default_factory=GetHintArgs)


class LogMistakeTool(DecisionModel):
    name: Literal["log_mistake"]
    args: LogMistakeArgs


class MarkCompleteTool(DecisionModel):
    name: Literal["mark_complete"]
    args: MarkCompleteArgs


Tool = Annotated[
    Union[StartQuizTool, GradeQuizTool, GetHintTool, LogMistakeTool, MarkCompleteTool],
    Field(discriminator="name"),
]


class TeacherDecision(DecisionModel):
    """Structured tutor decision for one turn. `reply` is the only text the learner sees."""
    feedback: StrictStr = Field(min_length=1)
    correction: Optional[StrictStr] = None
    is_mistake: StrictBool
    should_retry: StrictBool
    next_phase: Optional[Literal["roleplay", "quiz", "completed"]] = None
    tool: Optional[Tool] = None
    reply: StrictStr = Field(min_length=1)

    @model_validator(mode="after")
    def _retry_requires_correction(self) -> "TeacherDecision":
        if self.should_retry and not (self.correction and self.correction.strip()):
            raise ValueError("correction is required when shouldRetry is true")
        return self

    @property
    def requests_retry(self) -> bool:
        """True when the learner must repeat the correction next turn."""
        return self.is_mistake and self.should_retry and bool(self.correction)


def _format_issues(err: ValidationError) -> List[str]:
    issues = []
    for issue in err.errors():
        path = ".".join(str(part) for part in issue["loc"]) or "(root)"
        issues.append(f"{path}: {issue['msg']}")
    return issues


def validate_decision(raw: Any) -> TeacherDecision:
    """
    Validate a raw model decision.

    Args:
        raw: Decoded JSON object, JSON string, or TeacherDecision

    Returns:
        Validated TeacherDecision

    Raises:
        DecisionValidationError listing every failing path
    """
    if isinstance(raw, TeacherDecision):
        return raw

    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise DecisionValidationError(f"Decision is not valid JSON: {e}") from e

    if not isinstance(raw, dict):
        raise DecisionValidationError(
            f"Decision must be a JSON object, got {type(raw).__name__}"
        )

    try:
        return TeacherDecision.model_validate(raw)
    except ValidationError as e:
        issues = _format_issues(e)
        raise DecisionValidationError(
            "Decision doesn't match TeacherDecision schema: " + "; ".join(issues),
            issues=issues,
        ) from e


def create_fallback_decision() -> TeacherDecision:
    """Fixed decision used whenever the model fails or returns an invalid decision."""
    return TeacherDecision(
        feedback="fallback",
        is_mistake=False,
        should_retry=False,
        next_phase=None,
        tool=None,
        reply=FALLBACK_REPLY,
    )

