"""
DATA MODELS MODULE
==================

This file defines the Pydantic models used for API requests and responses, and
the models Gemini's generateContent JSON is parsed into. FastAPI uses the
request models to parse incoming JSON; the normalizer uses the upstream models
so a missing field becomes an explicit error instead of a silent None deep
inside a dict walk.

MODELS:
  ChatRequest       - Body of POST /api/chat.
  SpeechRequest     - Body of POST /api/tts.
  ChatResponse      - Successful /api/chat reply (text, emotion, sources, hasImage).
  SpeechResponse    - Successful /api/tts reply (base64 audio + MIME type).
  ErrorResponse     - {success: false, error} for any failure.
  HealthResponse    - Body of GET /api/health.

  GenerateContentResponse and friends - Gemini's response shape (extra fields ignored).
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

# ==============================================================================
# REQUEST MODELS
# ==============================================================================

class ChatRequest(BaseModel):
    """
    Request body for POST /api/chat.

    - message: The user's text. Optional here so that an empty or missing message
      reaches the handler and gets the same 400 {success: false} body as the
      browser expects (instead of FastAPI's 422).
    - imageData: Optional base64 image (raw or as a data: URL).
    - imageMimeType: Optional MIME type for imageData; JPEG is assumed otherwise.
    - isCommand: Device commands skip Google Search grounding.
    """
    message: Optional[str] = None
    imageData: Optional[str] = None
    imageMimeType: Optional[str] = None
    isCommand: bool = False


class SpeechRequest(BaseModel):
    """Request body for POST /api/tts. `text` is validated by the handler."""
    text: Optional[str] = None

# ==============================================================================
# RESPONSE MODELS
# ==============================================================================

class SourceModel(BaseModel):
    uri: str
    title: str


class ChatResponse(BaseModel):
    success: bool = True
    text: str
    emotion: str
    sources: List[SourceModel] = Field(default_factory=list)
    hasImage: bool = False


class SpeechResponse(BaseModel):
    success: bool = True
    audioData: str
    mimeType: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class HealthResponse(BaseModel):
    status: str = "OK"
    timestamp: str
    hasApiKey: bool

# ==============================================================================
# UPSTREAM (GEMINI) RESPONSE MODELS
# ==============================================================================
# Only the fields we read are declared; everything else Gemini sends is ignored.

class _Upstream(BaseModel):
    model_config = ConfigDict(extra="ignore")


class InlineData(_Upstream):
    mimeType: Optional[str] = None
    data: Optional[str] = None


class Part(_Upstream):
    text: Optional[str] = None
    inlineData: Optional[InlineData] = None


class Content(_Upstream):
    role: Optional[str] = None
    parts: List[Part] = Field(default_factory=list)


class WebSource(_Upstream):
    uri: Optional[str] = None
    title: Optional[str] = None


class GroundingAttribution(_Upstream):
    web: Optional[WebSource] = None


class GroundingMetadata(_Upstream):
    groundingAttributions: Optional[List[Optional[GroundingAttribution]]] = None


class Candidate(_Upstream):
    content: Optional[Content] = None
    groundingMetadata: Optional[GroundingMetadata] = None


class GenerateContentResponse(_Upstream):
    candidates: List[Candidate] = Field(default_factory=list)
