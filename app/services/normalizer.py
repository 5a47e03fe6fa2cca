"""
RESPONSE NORMALIZER MODULE
==========================

Turns Gemini's generateContent JSON into the small structures the handlers
return to the browser.

  normalize_chat(body)   -> NormalizedChatResult  (clean text, emotion, sources)
  normalize_speech(body) -> NormalizedSpeechResult (base64 audio, MIME type)

Both raise UpstreamShapeError when a field they need is missing; the handlers
report that as a 500 like any other upstream failure.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List

from pydantic import ValidationError as PydanticValidationError

from app.errors import UpstreamShapeError
from app.models import Candidate, GenerateContentResponse, Part


class Emotion(str, Enum):
    NEUTRAL = "NEUTRAL"
    JOY = "JOY"
    INTEREST = "INTEREST"
    CONFUSION = "CONFUSION"


# A tag only counts at the very start of the answer (after whitespace).
_EMOTION_TAG = re.compile(
    r"^\s*\[EMOTION:\s*(" + "|".join(e.value for e in Emotion) + r")\s*\]",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Source:
    uri: str
    title: str


@dataclass(frozen=True)
class NormalizedChatResult:
    clean_text: str
    emotion: Emotion = Emotion.NEUTRAL
    sources: List[Source] = field(default_factory=list)
    has_image: bool = False


@dataclass(frozen=True)
class NormalizedSpeechResult:
    audio_data: str
    mime_type: str


def extract_emotion(text: str):
    """Return (emotion, text without the tag). Untagged text is returned unmodified."""
    match = _EMOTION_TAG.match(text)
    if not match:
        return Emotion.NEUTRAL, text
    return Emotion(match.group(1).upper()), text[match.end():].strip()


def _parse(raw_body: Any) -> GenerateContentResponse:
    try:
        return GenerateContentResponse.model_validate(raw_body)
    except PydanticValidationError as e:
        raise UpstreamShapeError(f"Invalid response structure from LLM: {e.error_count()} error(s)") from e


def _first_candidate(response: GenerateContentResponse) -> Candidate:
    if not response.candidates:
        raise UpstreamShapeError("Invalid response structure from LLM")
    return response.candidates[0]


def _first_part(candidate: Candidate) -> Part:
    if candidate.content is None or not candidate.content.parts:
        raise UpstreamShapeError("Invalid response structure from LLM")
    return candidate.content.parts[0]


def _sources(candidate: Candidate) -> List[Source]:
    if candidate.groundingMetadata is None:
        return []
    sources = []
    for attribution in candidate.groundingMetadata.groundingAttributions or []:
        if attribution is None:
            continue
        web = attribution.web
        if web is not None and web.uri and web.title:
            sources.append(Source(uri=web.uri, title=web.title))
    return sources


def normalize_chat(raw_body: Any, has_image: bool = False) -> NormalizedChatResult:
    candidate = _first_candidate(_parse(raw_body))
    text = _first_part(candidate).text
    if text is None:
        raise UpstreamShapeError("LLM response contained no text")

    emotion, clean_text = extract_emotion(text)
    return NormalizedChatResult(
        clean_text=clean_text,
        emotion=emotion,
        sources=_sources(candidate),
        has_image=has_image,
    )


def normalize_speech(raw_body: Any) -> NormalizedSpeechResult:
    candidate = _first_candidate(_parse(raw_body))
    inline = _first_part(candidate).inlineData
    if inline is None or not inline.data or not inline.mimeType:
        raise UpstreamShapeError("TTS failed to generate audio data")
    return NormalizedSpeechResult(audio_data=inline.data, mime_type=inline.mimeType)
