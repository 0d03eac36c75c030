"""
Server-authoritative tool execution.

execute_tool evaluates a tool against the pre-turn session and returns a
result; it never mutates the session. apply_tool_result turns a result
into a new session snapshot. Both dispatch with an exhaustive match, so a
new Tool variant has to be handled in both places.
"""

from datetime import datetime
from typing import Any, Dict, Optional, assert_never

from pydantic import BaseModel, Field

from charla.content.loader import ContentRepository
from charla.session.models import (
    ActiveQuiz,
    Mistake,
    QuizResult,
    Session,
    SessionCompletion,
    SessionPhase,
    utcnow,
)
from charla.tutor.decision import (
    GetHintTool,
    GradeQuizTool,
    LogMistakeTool,
    MarkCompleteTool,
    StartQuizTool,
    Tool,
    ToolName,
)

HINT_TEMPLATES: Dict[str, str] = {
    "greeting": 'Try greeting first with "Hola" or "¿Cómo estás?"',
    "polite": 'Use "Por favor" and "Gracias" to be polite',
    "directions": 'Ask "¿Dónde está...?" for locations',
    "numbers": "Remember numbers 1-10: uno, dos, tres, cuatro, cinco...",
    "time": 'Ask "¿Qué hora es?" to ask for the time',
    "food": 'Use "Me gustaría..." to order food',
}


class ToolResult(BaseModel):
    """Outcome of one tool execution."""
    tool_name: ToolName
    success: bool
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


def _failure(tool_name: ToolName, message: str) -> ToolResult:
    return ToolResult(tool_name=tool_name, success=False, message=message)


def round_half_up(value: float) -> int:
    """Round .5 away from zero (Python's round() is banker's rounding)."""
    return int(value + 0.5)


# ─── Executors ───────────────────────────────────────────────────────────────

def _start_quiz(tool: StartQuizTool, content: ContentRepository, now: datetime) -> ToolResult:
    quiz_id = tool.args.quiz_id
    quiz = content.quiz(quiz_id)
    if quiz is None:
        return _failure("start_quiz", f"Quiz not found: {quiz_id}")

    return ToolResult(
        tool_name="start_quiz",
        success=True,
        message=f'Quiz "{quiz_id}" started with {len(quiz.items)} questions',
        data={"active_quiz": ActiveQuiz(quiz_id=quiz_id, started_at=now)},
    )


def _grade_quiz(tool: GradeQuizTool, content: ContentRepository, now: datetime) -> ToolResult:
    quiz_id = tool.args.quiz_id
    answers = list(tool.args.answers)

    quiz = content.quiz(quiz_id)
    if quiz is None:
        return _failure("grade_quiz", f"Quiz not found: {quiz_id}")

    if len(answers) != len(quiz.items):
        return _failure(
            "grade_quiz",
            f"Expected {len(quiz.items)} answers, got {len(answers)}",
        )

    for index, (answer, item) in enumerate(zip(answers, quiz.items)):
        option_count = len(item.options)
        if answer < -1 or answer >= option_count:
            return _failure(
                "grade_quiz",
                f"Answer {index} ({answer}) is out of range [-1, {option_count - 1}]",
            )

    # -1 (unanswered) never equals a correct index
    correct = sum(1 for answer, item in zip(answers, quiz.items) if answer == item.correct_index)
    total = len(quiz.items)
    score = round_half_up(correct / total * 100)

    return ToolResult(
        tool_name="grade_quiz",
        success=True,
        message=f"Quiz graded: {correct}/{total} correct ({score}%)",
        data={
            "quiz_result": QuizResult(
                quiz_id=quiz_id,
                score=score,
                total=total,
                answers=answers,
                completed_at=now,
            ),
            "correct": correct,
        },
    )


def _get_hint(tool: GetHintTool, session: Session, content: ContentRepository) -> ToolResult:
    topic = (tool.args.topic or "").strip().lower()
    hint = HINT_TEMPLATES.get(topic)

    if hint is None:
        scenario = content.scenario(session.scenario_id)
        if scenario is not None:
            goals = "; ".join(scenario.learning_goals)
            hint = f"Review the learning goals for this lesson ({goals}) and try using that vocabulary."
        else:
            hint = "Review the learning goals and try using the vocabulary from this lesson."

    return ToolResult(tool_name="get_hint", success=True, message=hint)


def _log_mistake(tool: LogMistakeTool, now: datetime) -> ToolResult:
    args = tool.args
    mistake = Mistake(
        type=args.type or "general",
        original=args.original,
        corrected=args.corrected,
        ts=now,
    )
    return ToolResult(
        tool_name="log_mistake",
        success=True,
        message=f'Logged mistake: "{args.original}" → "{args.corrected}"',
        data={"mistake": mistake},
    )


def _mark_complete(tool: MarkCompleteTool, now: datetime) -> ToolResult:
    completion = SessionCompletion(summary=tool.args.summary, completed_at=now)
    return ToolResult(
        tool_name="mark_complete",
        success=True,
        message="Session marked as completed",
        data={"completion": completion},
    )


def execute_tool(
    tool: Tool,
    session: Session,
    content: ContentRepository,
    now: Optional[datetime] = None
) -> ToolResult:
    """
    Evaluate a requested tool against the current session.

    Args:
        tool: Validated tool request
        session: Session as it was before this turn; not modified
        content: Content repository for quiz and scenario lookups
        now: Timestamp for created records (defaults to current UTC time)

    Returns:
        ToolResult with success flag, message and structured data
    """
    now = now or utcnow()

    match tool:
        case StartQuizTool():
            return _start_quiz(tool, content, now)
        case GradeQuizTool():
            return _grade_quiz(tool, content, now)
        case GetHintTool():
            return _get_hint(tool, session, content)
        case LogMistakeTool():
            return _log_mistake(tool, now)
        case MarkCompleteTool():
            return _mark_complete(tool, now)
        case _:
            assert_never(tool)


def apply_tool_result(
    session: Session,
    result: ToolResult,
    now: Optional[datetime] = None
) -> Session:
    """
    Produce the session snapshot that follows a tool result.

    Failed results only refresh updated_at. Phase changes never move
    backwards.
    """
    now = now or utcnow()
    update: Dict[str, Any] = {"updated_at": now}

    if not result.success:
        return session.model_copy(update=update)

    tool_name: ToolName = result.tool_name
    match tool_name:
        case "start_quiz":
            update["phase"] = session.phase.advance_to(SessionPhase.QUIZ)
            update["active_quiz"] = result.data["active_quiz"]
        case "grade_quiz":
            # Phase stays put; completion is a separate mark_complete
            update["quiz_result"] = result.data["quiz_result"]
        case "get_hint":
            pass
        case "log_mistake":
            update["mistakes"] = [*session.mistakes, result.data["mistake"]]
        case "mark_complete":
            update["phase"] = session.phase.advance_to(SessionPhase.COMPLETED)
            update["completion"] = result.data["completion"]
        case _:
            assert_never(tool_name)

    return session.model_copy(update=update)
