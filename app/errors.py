"""
ERRORS MODULE
=============

Exception taxonomy shared by the handlers, the upstream client and the offline
cache manager. Every error carries the HTTP status it maps to, so the handlers
can turn any of them into a {success: false, error} body without a lookup table.

  ValidationError         - missing required input (400).
  UpstreamTransportError  - network-level failure talking to Gemini (retryable).
  UpstreamStatusError     - non-2xx from Gemini; 429/5xx retryable, rest terminal.
  UpstreamShapeError      - 2xx from Gemini without the fields we need (500).
  CacheInstallError       - a static asset could not be precached.
  NetworkError            - a fetch issued by the offline cache manager failed.
"""

from typing import Optional


class AuraError(Exception):
    """Base class. `status_code` is the HTTP status reported to the browser."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(AuraError):
    status_code = 400


class UpstreamError(AuraError):
    """Anything that went wrong between us and the upstream service."""

    retryable = False


class UpstreamTransportError(UpstreamError):
    retryable = True


class UpstreamStatusError(UpstreamError):
    def __init__(self, status: int, message: Optional[str] = None):
        super().__init__(message or f"API returned status {status}")
        self.status = status

    @property
    def retryable(self) -> bool:
        return is_retryable_status(self.status)


class UpstreamShapeError(UpstreamError):
    pass


class CacheInstallError(AuraError):
    def __init__(self, message: str, failed: tuple = ()):
        super().__init__(message)
        self.failed = failed


class NetworkError(AuraError):
    pass


def is_retryable_status(status: int) -> bool:
    """429 (rate limited) and every 5xx are worth another attempt."""
    return status == 429 or status >= 500
