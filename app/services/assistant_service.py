"""
ASSISTANT SERVICE MODULE
========================

The request handlers behind /api/chat, /api/tts and /api/health. The API layer
(app.main) only parses JSON and turns a HandlerResult into a response; all
validation, payload building and error mapping happens here.

FLOW (chat and speech):
  1. Validate input (ValidationError -> 400, no upstream call is made).
  2. Build the generateContent payload.
  3. UpstreamClient.generate() (retries 429/5xx/network errors internally).
  4. Normalize the response (UpstreamShapeError -> 500).
  5. Return HandlerResult(200, ChatResponse/SpeechResponse).

Any failure becomes HandlerResult(status, ErrorResponse); these methods never raise.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import BaseModel

from app.errors import AuraError, ValidationError
from app.models import ChatResponse, ErrorResponse, HealthResponse, SourceModel, SpeechResponse
from app.services.normalizer import normalize_chat, normalize_speech
from app.services.upstream_client import UpstreamClient
from app.utils.time_info import get_timestamp
from config import (
    AURA_SYSTEM_INSTRUCTION,
    DEFAULT_IMAGE_MIME_TYPE,
    TTS_MODEL,
    TTS_VOICE_NAME,
    Settings,
)

logger = logging.getLogger("AURA")


@dataclass(frozen=True)
class HandlerResult:
    status_code: int
    body: BaseModel

    @property
    def success(self) -> bool:
        return self.status_code == 200


# ==============================================================================
# PAYLOAD BUILDERS
# ==============================================================================

def split_image_data(image_data: str, mime_type: Optional[str] = None) -> Tuple[str, str]:
    """
    Return (mime_type, base64_data) for an inline image.

    A data: URL prefix ("data:image/png;base64,...") is stripped and its MIME type
    used unless one was given explicitly; otherwise JPEG is assumed.
    """
    if image_data.startswith("data:") and "," in image_data:
        header, image_data = image_data.split(",", 1)
        declared = header[len("data:"):].split(";", 1)[0]
        mime_type = mime_type or declared or None
    return (mime_type or DEFAULT_IMAGE_MIME_TYPE), image_data


def build_chat_payload(
    message: str,
    image_data: Optional[str] = None,
    is_command: bool = False,
    image_mime_type: Optional[str] = None,
) -> dict:
    parts = [{"text": message}]
    if image_data:
        mime_type, data = split_image_data(image_data, image_mime_type)
        parts.append({"inlineData": {"mimeType": mime_type, "data": data}})

    return {
        "contents": [{"role": "user", "parts": parts}],
        # Device commands don't need web grounding.
        "tools": [] if is_command else [{"google_search": {}}],
        "systemInstruction": {"parts": [{"text": AURA_SYSTEM_INSTRUCTION}]},
    }


def build_speech_payload(text: str) -> dict:
    return {
        "contents": [{"parts": [{"text": text}]}],
        "generationConfig": {
            "responseModalities": ["AUDIO"],
            "speechConfig": {
                "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": TTS_VOICE_NAME}}
            },
        },
        "model": TTS_MODEL,
    }


# ==============================================================================
# SERVICE
# ==============================================================================

class AssistantService:
    """Chat, speech and health handlers. One instance is shared by all requests."""

    def __init__(self, settings: Settings, client: UpstreamClient):
        self.settings = settings
        self.client = client

    @staticmethod
    def _failure(exc: Exception, fallback: str, label: str) -> HandlerResult:
        if isinstance(exc, ValidationError):
            logger.warning("%s rejected: %s", label, exc)
            return HandlerResult(exc.status_code, ErrorResponse(error=exc.message))
        logger.error("%s Error: %s", label, exc, exc_info=not isinstance(exc, AuraError))
        status = exc.status_code if isinstance(exc, AuraError) else 500
        return HandlerResult(status, ErrorResponse(error=str(exc) or fallback))

    async def chat(
        self,
        message: Optional[str],
        image_data: Optional[str] = None,
        is_command: bool = False,
        image_mime_type: Optional[str] = None,
    ) -> HandlerResult:
        try:
            if not message:
                raise ValidationError("Message is required")

            payload = build_chat_payload(message, image_data, is_command, image_mime_type)
            body = await self.client.generate(self.settings.llm_url, payload)
            result = normalize_chat(body, has_image=bool(image_data))

            return HandlerResult(
                200,
                ChatResponse(
                    text=result.clean_text,
                    emotion=result.emotion.value,
                    sources=[SourceModel(uri=s.uri, title=s.title) for s in result.sources],
                    hasImage=result.has_image,
                ),
            )
        except Exception as e:
            return self._failure(e, "Internal server error", "Chat API")

    async def speech(self, text: Optional[str]) -> HandlerResult:
        try:
            if not text:
                raise ValidationError("Text is required for TTS")

            body = await self.client.generate(self.settings.tts_url, build_speech_payload(text))
            result = normalize_speech(body)

            return HandlerResult(
                200, SpeechResponse(audioData=result.audio_data, mimeType=result.mime_type)
            )
        except Exception as e:
            return self._failure(e, "TTS generation failed", "TTS API")

    def health(self) -> HealthResponse:
        """Never calls upstream and never fails, even without an API key."""
        return HealthResponse(
            status="OK",
            timestamp=get_timestamp(),
            hasApiKey=self.settings.has_api_key,
        )
