"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all AURA settings: the Gemini API key, upstream endpoints,
  retry policy, the AURA system instruction, and the offline cache constants.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so the API key stays out of code).
  - Exposes fixed constants (upstream URLs, voice preset, cache generation names,
    static asset manifest).
  - Builds an immutable Settings object once at startup via load_settings().
    The app factory passes it explicitly into the upstream client and handlers,
    so nothing reads the environment per request.

USAGE:
  from config import load_settings, AURA_SYSTEM_INSTRUCTION
  settings = load_settings()
"""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional
from dotenv import load_dotenv


logger = logging.getLogger("AURA")


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


# -----------------------------------------------------------------------------
# BASE PATH
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent

# Static frontend (index.html, manifest, icons). Served by app.main.
PUBLIC_DIR = BASE_DIR / "public"

# ============================================================================
# GEMINI API CONFIGURATION
# ============================================================================
# Chat and TTS both go through generateContent; only the model differs.
# The API key is appended as the `key` query parameter by the upstream client.

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"
LLM_MODEL = "gemini-2.5-flash-preview-09-2025"
TTS_MODEL = "gemini-2.5-flash-preview-tts"
API_LLM_URL = f"{GEMINI_API_BASE}/{LLM_MODEL}:generateContent"
API_TTS_URL = f"{GEMINI_API_BASE}/{TTS_MODEL}:generateContent"

# Prebuilt voice used for every TTS request.
TTS_VOICE_NAME = "Kore"

# Inline images without a declared MIME type are sent as JPEG.
DEFAULT_IMAGE_MIME_TYPE = "image/jpeg"

# ============================================================================
# RETRY POLICY
# ============================================================================
# Attempt n (starting at 1) that fails with a retryable error waits
# RETRY_BASE_DELAY * 2**n seconds before the next attempt: 2s, 4s, ...

DEFAULT_MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds
DEFAULT_UPSTREAM_TIMEOUT = 60.0  # seconds

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3000

# ============================================================================
# AURA PERSONALITY CONFIGURATION
# ============================================================================
# The model must start every answer with one of the four emotion tags;
# app.services.normalizer strips the tag and returns it separately.

AURA_SYSTEM_INSTRUCTION = (
    "You are AURA, an advanced AI Humanoid Assistant. Before your response, you MUST "
    "prepend an emotion tag. Choose the most appropriate tag from: [EMOTION: NEUTRAL], "
    "[EMOTION: JOY], [EMOTION: INTEREST], or [EMOTION: CONFUSION]. "
    "Example: [EMOTION: JOY] That is a fantastic question! Now, provide your concise, "
    "professional, and helpful answer. If the user provides an image, analyze it and "
    "describe what you see before answering the question."
)

# ============================================================================
# OFFLINE CACHE CONFIGURATION
# ============================================================================
# Bump CACHE_VERSION whenever the static manifest changes: activation purges
# every generation whose name is not one of CacheGeneration's values.

CACHE_VERSION = "v4.4.0"


class CacheGeneration(str, Enum):
    """The only cache names considered current. Everything else is stale."""

    UMBRELLA = f"aura-system-{CACHE_VERSION}"
    STATIC = f"aura-static-{CACHE_VERSION}"
    DYNAMIC = f"aura-dynamic-{CACHE_VERSION}"


# Precached on install (all-or-nothing).
STATIC_ASSETS = (
    "/",
    "/index.html",
    "/manifest.json",
    "/css/styles.css",
    "/js/app.js",
    "/icons/icon-72x72.png",
    "/icons/icon-96x96.png",
    "/icons/icon-128x128.png",
    "/icons/icon-144x144.png",
    "/icons/icon-152x152.png",
    "/icons/icon-192x192.png",
    "/icons/icon-384x384.png",
    "/icons/icon-512x512.png",
    "/aura-logo.svg",
)

# Requests under this path are handled network-first.
API_PREFIX = "/api/"

# Tag registered by the frontend for background sync.
BACKGROUND_SYNC_TAG = "background-sync"

# Push notification defaults.
NOTIFICATION_DEFAULT_TITLE = "AURA AI"
NOTIFICATION_DEFAULT_BODY = "AURA System Notification"
NOTIFICATION_ICON = "/icons/icon-192x192.png"
NOTIFICATION_BADGE = "/icons/badge-72x72.png"
NOTIFICATION_VIBRATE = (100, 50, 100)


# ============================================================================
# SETTINGS
# ============================================================================

@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration, read once at startup and never mutated.

    A missing API key does not stop the server: /api/health reports
    hasApiKey=false and every upstream call is rejected by Gemini.
    """

    gemini_api_key: str = ""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    llm_url: str = API_LLM_URL
    tts_url: str = API_TTS_URL
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = RETRY_BASE_DELAY
    upstream_timeout: float = DEFAULT_UPSTREAM_TIMEOUT

    @property
    def has_api_key(self) -> bool:
        return bool(self.gemini_api_key)


def _parse_number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from the process environment (or `environ`, for tests).

    Reads GEMINI_API_KEY, HOST, PORT, UPSTREAM_TIMEOUT and UPSTREAM_MAX_RETRIES.
    Invalid numbers fall back to their defaults with a warning.
    """
    if environ is None:
        environ = os.environ

    return Settings(
        gemini_api_key=environ.get("GEMINI_API_KEY", "").strip(),
        host=environ.get("HOST", "").strip() or DEFAULT_HOST,
        port=_parse_number(environ, "PORT", DEFAULT_PORT, int),
        # At least one attempt is always made.
        max_retries=max(1, _parse_number(environ, "UPSTREAM_MAX_RETRIES", DEFAULT_MAX_RETRIES, int)),
        upstream_timeout=_parse_number(environ, "UPSTREAM_TIMEOUT", DEFAULT_UPSTREAM_TIMEOUT, float),
    )
