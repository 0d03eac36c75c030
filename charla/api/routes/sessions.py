"""
Session endpoints: start, read, turn, end and authoritative quiz submit.
"""

import time
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from charla.api.dependencies import EngineDep
from charla.api.schemas import (
    EndSessionRequest,
    QuizSubmitRequest,
    StartSessionRequest,
    TurnRequest,
    error_response,
    new_request_id,
    success_response,
)
from charla.engine.session_engine import SessionEngine
from charla.session.models import Session
from charla.shared.logging import get_logger
from charla.voice.tts import synthesize_speech

logger = get_logger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * 1000)


def _tts_voice(engine: SessionEngine, session: Session) -> Optional[str]:
    scenario = engine.content.scenario(session.scenario_id)
    if scenario is None:
        return None
    persona = engine.content.persona(scenario.persona_id)
    return persona.tts_voice_id if persona else None


def _json(body: dict, request_id: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers={"X-Request-Id": request_id})


@router.post("/start")
async def start_session(body: StartSessionRequest, engine: EngineDep):
    request_id = new_request_id()
    session = await engine.create_session(body.level_id, body.scenario_id)
    return _json(success_response({"session": session}, request_id=request_id), request_id)


@router.post("/turn")
async def process_turn(body: TurnRequest, request: Request, engine: EngineDep):
    """
    Process one learner turn and optionally synthesize the tutor reply.

    Timing covers the model call, tool execution, TTS and the whole request.
    """
    request_id = new_request_id()
    start = time.perf_counter()

    result = await engine.process_turn(body.session_id, body.user_text)
    session = result.session

    tts = None
    tts_ms = 0
    if body.tts_enabled and session.transcript:
        tts_start = time.perf_counter()
        tts = await synthesize_speech(
            session.transcript[-1].text,
            voice_id=_tts_voice(engine, session),
            client=getattr(request.app.state, "http_client", None),
        )
        tts_ms = _elapsed_ms(tts_start)

    timing = {
        "llmMs": result.timing.llm_ms,
        "toolMs": result.timing.tool_ms,
        "ttsMs": tts_ms,
        "totalMs": _elapsed_ms(start),
    }
    data = {"session": session, "decision": result.decision}
    if tts is not None:
        data["tts"] = tts
    return _json(success_response(data, timing=timing, request_id=request_id), request_id)


@router.post("/end")
async def end_session(body: EndSessionRequest, engine: EngineDep):
    session, summary = await engine.end_session(body.session_id)
    return success_response({"session": session, "summary": summary})


@router.post("/quiz/submit")
async def submit_quiz(body: QuizSubmitRequest, engine: EngineDep):
    submission, session = await engine.submit_quiz(body.session_id, body.quiz_id, body.answers)
    if not submission.success:
        return JSONResponse(status_code=400, content=error_response(submission.message))
    return success_response({"result": submission.result, "session": session})


@router.get("/{session_id}")
async def get_session(session_id: str, engine: EngineDep):
    session = await engine.get_session(session_id)
    return success_response({"session": session})
