"""
Speech-to-text endpoint.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import JSONResponse

from charla.api.schemas import new_request_id, success_response
from charla.shared.logging import get_logger, log_with_context
from charla.voice.stt import transcribe_audio

logger = get_logger(__name__)

router = APIRouter(prefix="/api/stt", tags=["stt"])


@router.post("/transcribe")
async def transcribe(
    audio: UploadFile = File(...),
    language: Optional[str] = Form(None),
    session_id: Optional[str] = Form(None, alias="sessionId"),
):
    """Transcribe a multipart `audio` upload; `language` is an optional ISO 639-1 hint."""
    request_id = new_request_id()
    start = time.perf_counter()

    data = await audio.read()
    stt_start = time.perf_counter()
    text = await transcribe_audio(
        data,
        filename=audio.filename or "audio.webm",
        language=language,
        mime_type=audio.content_type or "audio/webm",
    )
    stt_ms = round((time.perf_counter() - stt_start) * 1000)
    total_ms = round((time.perf_counter() - start) * 1000)

    log_with_context(
        logger, logging.INFO, f"Transcription completed sttMs={stt_ms} totalMs={total_ms}",
        session_id=session_id, action="transcribe", request_id=request_id,
    )
    return JSONResponse(
        content=success_response(
            {"text": text},
            timing={"sttMs": stt_ms, "totalMs": total_ms},
            request_id=request_id,
        ),
        headers={"X-Request-Id": request_id},
    )
