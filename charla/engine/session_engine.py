"""
Turn-processing engine.

Owns the session phase state machine and is the only component that talks
to persistence and to the language-model collaborator. A conversational
turn always produces a tutor reply and a persisted state update; only
structurally invalid requests are rejected.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import ValidationError

from charla.content.loader import ContentRepository
from charla.content.models import Persona, Scenario
from charla.session.models import (
    PendingRetry,
    QuizResult,
    Role,
    Session,
    SessionPhase,
    SessionSummary,
    TranscriptMessage,
    TurnResult,
    TurnTiming,
    utcnow,
)
from charla.session.store import SessionStore
from charla.shared.config import EngineConfig, settings
from charla.shared.exceptions import InvalidPhaseError, InvalidRequestError, NotFoundError
from charla.shared.logging import get_logger, log_with_context
from charla.tutor.decision import (
    GradeQuizArgs,
    GradeQuizTool,
    TeacherDecision,
    create_fallback_decision,
)
from charla.tutor.normalize import is_exact_match
from charla.tutor.retry import generate_retry_message
from charla.tutor.teacher import TeacherCollaborator, transcript_window
from charla.tutor.tools import ToolResult, apply_tool_result, execute_tool

logger = get_logger(__name__)


@dataclass
class QuizSubmission:
    """Outcome of the authoritative quiz-submit path."""
    success: bool
    message: str
    result: Optional[QuizResult] = None


@dataclass
class _RetryGate:
    """What the retry gate decided for this turn."""
    pending_retry: Optional[PendingRetry]
    nudge: Optional[str] = None


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


class SessionEngine:
    """Creates sessions and processes learner turns."""

    def __init__(
        self,
        store: SessionStore,
        content: ContentRepository,
        teacher: TeacherCollaborator,
        config: Optional[EngineConfig] = None
    ):
        self.store = store
        self.content = content
        self.teacher = teacher
        self.config = config or settings.engine

    # ─── Lookups ─────────────────────────────────────────────────────────────

    def _scenario_and_persona(self, scenario_id: str) -> Tuple[Scenario, Persona]:
        scenario = self.content.scenario(scenario_id)
        if scenario is None:
            raise NotFoundError(f"Scenario not found: {scenario_id}")
        persona = self.content.persona(scenario.persona_id)
        if persona is None:
            raise NotFoundError(f"Persona not found: {scenario.persona_id}")
        return scenario, persona

    def _load(self, session_id: str) -> Session:
        session = self.store.load(session_id)
        if session is None:
            raise NotFoundError(f"Session not found: {session_id}")
        return session

    # ─── Session lifecycle ───────────────────────────────────────────────────

    async def create_session(self, level_id: str, scenario_id: str) -> Session:
        """
        Start a new roleplay session.

        Raises:
            NotFoundError if the scenario or its persona is unknown
            InvalidRequestError if the scenario belongs to another level
        """
        scenario, _ = self._scenario_and_persona(scenario_id)
        if scenario.level_id != level_id:
            raise InvalidRequestError(
                f'Scenario "{scenario_id}" does not belong to level "{level_id}"'
            )

        now = utcnow()
        session = Session(
            created_at=now,
            updated_at=now,
            level_id=level_id,
            scenario_id=scenario_id,
            phase=SessionPhase.ROLEPLAY,
            transcript=[TranscriptMessage(role=Role.TUTOR, text=scenario.initial_message, ts=now)],
            turn_count=0,
            post_quiz_id=scenario.post_quiz_id,
        )
        session = self.store.create(session)

        log_with_context(
            logger, logging.INFO, "Created session",
            session_id=session.id, action="create_session", scenario_id=scenario_id,
        )
        return session

    async def get_session(self, session_id: str) -> Session:
        return self._load(session_id)

    async def end_session(self, session_id: str) -> Tuple[Session, SessionSummary]:
        """Force the session to completed and summarize it."""
        async with self.store.serialized(session_id):
            session = self._load(session_id)
            completed = session.model_copy(
                update={"phase": SessionPhase.COMPLETED, "updated_at": utcnow()}
            )
            completed = self.store.save(completed)

        summary = SessionSummary(
            turns=completed.turn_count,
            has_quiz=completed.post_quiz_id is not None,
            quiz_id=completed.post_quiz_id,
        )
        log_with_context(
            logger, logging.INFO, f"Ended session with {summary.turns} turns",
            session_id=session_id, action="end_session",
        )
        return completed, summary

    # ─── Turn processing ─────────────────────────────────────────────────────

    async def process_turn(self, session_id: str, learner_text: str) -> TurnResult:
        """
        Process one learner turn.

        Raises:
            NotFoundError if the session (or its scenario/persona) is unknown
            InvalidPhaseError if the session is not in roleplay
            InvalidRequestError if the learner text is empty
        """
        if not learner_text or not learner_text.strip():
            raise InvalidRequestError("Learner text is empty")

        async with self.store.serialized(session_id):
            return await self._process_turn(session_id, learner_text)

    async def _process_turn(self, session_id: str, learner_text: str) -> TurnResult:
        session = self._load(session_id)
        if session.phase != SessionPhase.ROLEPLAY:
            raise InvalidPhaseError(f"Cannot process turn in {session.phase.value} phase")
        scenario, persona = self._scenario_and_persona(session.scenario_id)

        learner_message = TranscriptMessage(role=Role.LEARNER, text=learner_text)

        gate = self._check_retry(session, learner_text, persona)
        if gate.nudge is not None:
            updated = self._finish_turn(session, learner_message, gate.nudge, gate.pending_retry)
            updated = self.store.save(updated)
            log_with_context(
                logger, logging.INFO, f"Retry attempt {gate.pending_retry.attempts}",
                session_id=session_id, action="retry_nudge",
            )
            return TurnResult(session=updated, timing=TurnTiming(llm_ms=0, tool_ms=0))

        # Decision generation
        window = transcript_window(
            [*session.transcript, learner_message], self.config.transcript_window
        )
        llm_start = time.perf_counter()
        decision = await self._generate_decision(session_id, window, scenario, persona, gate.pending_retry)
        llm_ms = _elapsed_ms(llm_start)

        # Tool execution, at most once
        tool_start = time.perf_counter()
        session, final_decision, tool_result = await self._run_tool(
            session, decision, scenario, persona
        )
        tool_ms = _elapsed_ms(tool_start) if decision.tool is not None else 0

        next_retry = None
        if final_decision.requests_retry:
            next_retry = PendingRetry(expected=final_decision.correction, attempts=0)

        updated = self._finish_turn(
            session, learner_message, final_decision.reply, next_retry, final_decision
        )
        updated = self.store.save(updated)

        log_with_context(
            logger, logging.INFO, f"Processed turn {updated.turn_count}",
            session_id=session_id, action="process_turn",
            llm_ms=llm_ms, tool_ms=tool_ms,
            tool=tool_result.tool_name if tool_result else None,
            tool_success=tool_result.success if tool_result else None,
            retry=next_retry is not None,
        )
        return TurnResult(
            session=updated,
            timing=TurnTiming(llm_ms=llm_ms, tool_ms=tool_ms),
            decision=final_decision,
        )

    def _check_retry(self, session: Session, learner_text: str, persona: Persona) -> _RetryGate:
        pending = session.pending_retry
        if pending is None:
            return _RetryGate(pending_retry=None)

        if is_exact_match(learner_text, pending.expected):
            log_with_context(
                logger, logging.INFO, "Retry success",
                session_id=session.id, action="retry_success",
            )
            return _RetryGate(pending_retry=None)

        attempts = pending.attempts + 1
        escalated = PendingRetry(expected=pending.expected, attempts=attempts)
        if attempts < self.config.max_retry_attempts:
            nudge = generate_retry_message(pending.expected, attempts, persona)
            return _RetryGate(pending_retry=escalated, nudge=nudge)

        log_with_context(
            logger, logging.INFO,
            f"Max retries ({self.config.max_retry_attempts}) reached, asking the model",
            session_id=session.id, action="retry_escalate",
        )
        return _RetryGate(pending_retry=escalated)

    async def _generate_decision(
        self,
        session_id: str,
        window: List[TranscriptMessage],
        scenario: Scenario,
        persona: Persona,
        pending_retry: Optional[PendingRetry]
    ) -> TeacherDecision:
        try:
            return await self.teacher.generate_decision(
                window, scenario, persona, pending_retry=pending_retry
            )
        except Exception as e:
            # Timeouts, malformed output and schema violations all end up here.
            log_with_context(
                logger, logging.WARNING, f"Teacher decision failed, using fallback: {e}",
                session_id=session_id, action="decision_fallback",
                error_type=type(e).__name__,
            )
            return create_fallback_decision()

    async def _run_tool(
        self,
        session: Session,
        decision: TeacherDecision,
        scenario: Scenario,
        persona: Persona
    ) -> Tuple[Session, TeacherDecision, Optional[ToolResult]]:
        """Execute the decision's tool (if any) and pick the reply to show."""
        if decision.tool is None:
            return session, decision, None

        result = execute_tool(decision.tool, session, self.content)
        log_with_context(
            logger, logging.INFO,
            f"Tool result: {'SUCCESS' if result.success else 'FAILURE'} - {result.message}",
            session_id=session.id, action="execute_tool", tool=result.tool_name,
        )
        session = apply_tool_result(session, result)

        if not result.success:
            return session, decision.model_copy(update={"tool": None}), result

        reply = result.message
        if result.tool_name in self.config.narrated_tools:
            try:
                reply = await self.teacher.generate_narration(
                    result.tool_name, result, scenario, persona
                )
            except Exception as e:
                log_with_context(
                    logger, logging.WARNING, f"Tool narration failed, using tool message: {e}",
                    session_id=session.id, action="narration_fallback", tool=result.tool_name,
                )

        # tool=None so the stored decision can never re-trigger a tool
        final_decision = decision.model_copy(update={"reply": reply, "tool": None})
        return session, final_decision, result

    def _finish_turn(
        self,
        session: Session,
        learner_message: TranscriptMessage,
        tutor_text: str,
        pending_retry: Optional[PendingRetry],
        decision: Optional[TeacherDecision] = None
    ) -> Session:
        now = utcnow()
        tutor_message = TranscriptMessage(role=Role.TUTOR, text=tutor_text, ts=now)
        update = {
            "transcript": [*session.transcript, learner_message, tutor_message],
            "turn_count": session.turn_count + 1,
            "pending_retry": pending_retry,
            "updated_at": now,
        }
        if decision is not None:
            update["last_decision"] = decision
        return session.model_copy(update=update)

    # ─── Authoritative quiz submission ───────────────────────────────────────

    async def submit_quiz(
        self,
        session_id: str,
        quiz_id: str,
        answers: List[int]
    ) -> Tuple[QuizSubmission, Session]:
        """
        Grade quiz answers submitted directly by the UI.

        Uses the same grade_quiz executor and applier as the conversational path.

        Raises:
            NotFoundError if the session is unknown
            InvalidPhaseError if the session is completed
            InvalidRequestError if the quiz is not this session's quiz
        """
        async with self.store.serialized(session_id):
            session = self._load(session_id)
            if session.phase == SessionPhase.COMPLETED:
                raise InvalidPhaseError("Cannot submit a quiz for a completed session")

            allowed = {session.post_quiz_id}
            if session.active_quiz is not None:
                allowed.add(session.active_quiz.quiz_id)
            if quiz_id not in allowed:
                raise InvalidRequestError(f"Quiz {quiz_id} is not available for this session")

            try:
                tool = GradeQuizTool(
                    name="grade_quiz", args=GradeQuizArgs(quiz_id=quiz_id, answers=answers)
                )
            except ValidationError as e:
                raise InvalidRequestError(f"Invalid quiz answers: {e.errors()[0]['msg']}") from e

            result = execute_tool(tool, session, self.content)
            updated = self.store.save(apply_tool_result(session, result))

        log_with_context(
            logger, logging.INFO, f"Quiz submitted: {result.message}",
            session_id=session_id, action="submit_quiz", success=result.success,
        )
        return (
            QuizSubmission(
                success=result.success,
                message=result.message,
                result=result.data.get("quiz_result"),
            ),
            updated,
        )
