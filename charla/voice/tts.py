"""
Text-to-speech through the Inworld TTS API.

TTS is best effort: every failure is logged and turned into None so a
turn never fails because audio could not be produced.
"""

import base64
import time
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from charla.shared.config import TTSConfig, settings
from charla.shared.logging import get_logger

logger = get_logger(__name__)

TTS_MIME_TYPE = "audio/mp3"


class TtsPayload(BaseModel):
    """Synthesized audio ready to send to the browser."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    mime_type: str = TTS_MIME_TYPE
    audio_base64: str


async def synthesize_speech(
    text: str,
    voice_id: Optional[str] = None,
    config: Optional[TTSConfig] = None,
    client: Optional[httpx.AsyncClient] = None
) -> Optional[TtsPayload]:
    """
    Synthesize `text` as MP3.

    Args:
        text: Tutor reply to speak
        voice_id: Persona voice; falls back to the configured voice, then "default"
        config: TTS settings (defaults to global settings)
        client: Optional shared HTTP client

    Returns:
        TtsPayload, or None when TTS is skipped or fails
    """
    config = config or settings.tts

    if not config.api_key:
        logger.warning("Inworld API key not configured, skipping TTS")
        return None
    if not text.strip():
        logger.warning("Empty text provided, skipping TTS")
        return None
    if len(text) > config.max_text_length:
        logger.warning(
            f"Text too long ({len(text)} chars), max is {config.max_text_length}. Skipping TTS."
        )
        return None

    payload = {
        "text": text,
        "voice": voice_id or config.voice or "default",
        "output_format": {"type": TTS_MIME_TYPE},
    }
    headers = {
        "Authorization": f"Bearer {config.api_key}",
        "Content-Type": "application/json",
    }

    start = time.perf_counter()
    try:
        if client is not None:
            response = await client.post(
                config.url, json=payload, headers=headers, timeout=config.timeout_seconds
            )
        else:
            async with httpx.AsyncClient(timeout=config.timeout_seconds) as own_client:
                response = await own_client.post(config.url, json=payload, headers=headers)

        if response.status_code != 200:
            logger.error(f"TTS [inworld] HTTP {response.status_code}: {response.text[:200]}")
            return None
        audio = response.content
    except httpx.TimeoutException:
        logger.warning(f"TTS [inworld] request timed out after {config.timeout_seconds}s")
        return None
    except httpx.HTTPError as e:
        logger.warning(f"TTS [inworld] failed to synthesize speech: {e}")
        return None

    elapsed = int((time.perf_counter() - start) * 1000)
    logger.info(f"TTS [inworld]: {elapsed}ms, {len(audio)} bytes")

    return TtsPayload(audio_base64=base64.b64encode(audio).decode("ascii"))
