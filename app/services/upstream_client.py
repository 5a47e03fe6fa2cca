"""
UPSTREAM CLIENT MODULE
======================

POSTs JSON payloads to Gemini's generateContent endpoints and applies the retry
policy. Used by AssistantService for both /api/chat and /api/tts.

CLASSIFICATION (one attempt):
  - network error / timeout          -> RetryableFailure
  - 2xx with a JSON body             -> Success(body)
  - 2xx with a non-JSON body         -> TerminalFailure(UpstreamShapeError)
  - 429 or >= 500                    -> RetryableFailure
  - any other status (400, 403, 404) -> TerminalFailure, no retry

RETRY:
  Each call gets its own budget of max_retries attempts (nothing is shared
  between calls). After failed attempt n the client waits base_delay * 2**n
  seconds. When the budget runs out the result is
  TerminalFailure("all retry attempts failed") carrying the last error as cause.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional, Union

import httpx

from app.errors import (
    UpstreamError,
    UpstreamShapeError,
    UpstreamStatusError,
    UpstreamTransportError,
    is_retryable_status,
)
from app.utils.retry import Sleep, with_retry
from config import Settings

logger = logging.getLogger("AURA")


# ==============================================================================
# REQUEST / OUTCOME TYPES
# ==============================================================================

@dataclass
class UpstreamRequest:
    """One logical upstream call. `attempts` counts requests actually issued."""
    url: str
    payload: Any
    attempts: int = 0


@dataclass(frozen=True)
class Success:
    body: Any
    retryable = False


@dataclass(frozen=True)
class RetryableFailure:
    error: UpstreamError
    retryable = True

    def __str__(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class TerminalFailure:
    error: UpstreamError
    retryable = False


UpstreamOutcome = Union[Success, RetryableFailure, TerminalFailure]


# ==============================================================================
# CLIENT
# ==============================================================================

class UpstreamClient:
    """
    Sends generateContent requests with retry/backoff.

    http_client: optional shared httpx.AsyncClient (tests pass one built on
    httpx.MockTransport). Without it a short-lived client is opened per call.
    sleep: awaitable used for backoff waits; defaults to asyncio.sleep.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings
        self.http_client = http_client
        self.sleep = sleep

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(timeout=self.settings.upstream_timeout) as client:
            yield client

    async def _attempt(self, client: httpx.AsyncClient, request: UpstreamRequest) -> UpstreamOutcome:
        request.attempts += 1
        try:
            response = await client.post(
                request.url,
                params={"key": self.settings.gemini_api_key},
                json=request.payload,
            )
        except httpx.HTTPError as e:
            # Never include the request URL: it carries the API key.
            return RetryableFailure(UpstreamTransportError(f"Upstream request failed: {type(e).__name__}"))

        if response.is_success:
            try:
                return Success(response.json())
            except ValueError:
                return TerminalFailure(UpstreamShapeError("Upstream returned a non-JSON body"))

        error = UpstreamStatusError(response.status_code)
        if is_retryable_status(response.status_code):
            return RetryableFailure(error)
        logger.error("Upstream rejected request with status %s", response.status_code)
        return TerminalFailure(error)

    async def send(self, url: str, payload: Any) -> UpstreamOutcome:
        """Issue the request with retries. Never raises for upstream failures."""
        request = UpstreamRequest(url=url, payload=payload)

        async with self._session() as client:
            outcome = await with_retry(
                lambda: self._attempt(client, request),
                is_retryable=lambda result: result.retryable,
                max_retries=self.settings.max_retries,
                initial_delay=self.settings.retry_base_delay,
                sleep=self.sleep,
            )

        if isinstance(outcome, RetryableFailure):
            logger.error(
                "Giving up after %s attempts: %s", request.attempts, outcome.error
            )
            exhausted = UpstreamError("All retry attempts failed")
            exhausted.__cause__ = outcome.error
            return TerminalFailure(exhausted)
        return outcome

    async def generate(self, url: str, payload: Any) -> Any:
        """Like send(), but returns the parsed body or raises the terminal error."""
        outcome = await self.send(url, payload)
        if isinstance(outcome, Success):
            return outcome.body
        raise outcome.error
