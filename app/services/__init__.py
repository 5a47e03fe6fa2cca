"""
SERVICES PACKAGE
=================

Business logic lives here. The API layer (app.main) calls these services;
they don't handle HTTP routing.

MODULES:
    assistant_service - chat / speech / health handlers
    upstream_client   - Gemini generateContent calls with retry/backoff
    normalizer        - emotion tag, sources and audio extraction
    offline_cache     - service-worker cache manager (install, activate, fetch, push)
    cache_storage     - named cache generations and request/response snapshots
    worker_clients    - window clients and notifications seen by the cache manager
"""
