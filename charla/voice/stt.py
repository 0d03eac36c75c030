"""
Speech-to-text through the OpenAI transcription API.
"""

import re
import time
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from charla.shared.config import LLMConfig, STTConfig, settings
from charla.shared.exceptions import InvalidRequestError, TranscriptionError
from charla.shared.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_AUDIO_TYPES = (
    "audio/webm",
    "audio/wav",
    "audio/mp3",
    "audio/mpeg",
    "audio/mp4",
    "audio/m4a",
    "audio/aac",
    "audio/ogg",
    "audio/opus",
)

_LANGUAGE_CODE = re.compile(r"^[a-z]{2}$", re.IGNORECASE)


def is_supported_audio_type(mime_type: str) -> bool:
    """Accept parameterized types such as "audio/webm;codecs=opus"."""
    return mime_type.lower().startswith(SUPPORTED_AUDIO_TYPES)


async def transcribe_audio(
    data: bytes,
    filename: str,
    language: Optional[str] = None,
    mime_type: str = "audio/webm",
    config: Optional[STTConfig] = None,
    llm_config: Optional[LLMConfig] = None,
    client: Optional[AsyncOpenAI] = None
) -> str:
    """
    Transcribe recorded learner audio.

    Args:
        data: Raw audio bytes
        filename: Upload filename (the provider uses its extension)
        language: ISO 639-1 hint; defaults to the configured language
        mime_type: Upload content type

    Returns:
        Transcribed text, stripped

    Raises:
        InvalidRequestError for empty, oversized or unsupported audio
        TranscriptionError if the provider call fails or returns no text
    """
    config = config or settings.stt
    llm_config = llm_config or settings.llm

    if not data:
        raise InvalidRequestError("Audio file is empty")
    max_bytes = config.max_audio_mb * 1024 * 1024
    if len(data) > max_bytes:
        raise InvalidRequestError(
            f"Audio file too large ({len(data)} bytes), max is {config.max_audio_mb}MB"
        )
    if not is_supported_audio_type(mime_type):
        supported = ", ".join(t.replace("audio/", "") for t in SUPPORTED_AUDIO_TYPES)
        raise InvalidRequestError(
            f"Unsupported audio format: {mime_type}. Supported formats: {supported}"
        )

    if client is None:
        if not llm_config.openai_api_key:
            raise TranscriptionError("OPENAI_API_KEY not configured")
        client = AsyncOpenAI(api_key=llm_config.openai_api_key, timeout=config.timeout_seconds)

    params = {
        "model": config.model,
        "file": (filename or "audio.webm", data, mime_type),
    }
    language = language or config.language
    if language and _LANGUAGE_CODE.match(language):
        params["language"] = language.lower()

    start = time.perf_counter()
    try:
        response = await client.audio.transcriptions.create(**params)
    except OpenAIError as e:
        logger.error(f"STT [openai] failed: {e}")
        raise TranscriptionError(f"Transcription failed: {e}") from e

    text = getattr(response, "text", None)
    if not isinstance(text, str):
        raise TranscriptionError("Transcription response has no text")

    elapsed = int((time.perf_counter() - start) * 1000)
    logger.info(f"STT [openai]: {elapsed}ms, {len(data)} bytes, text='{text[:50]}'")
    return text.strip()
