"""
UTILITIES PACKAGE
=================

Helpers used by the services (no HTTP, no business logic):

  time_info - get_timestamp(): current UTC time for /api/health.
  retry     - with_retry(fn, is_retryable): awaits fn(); retries with exponential backoff.
"""
