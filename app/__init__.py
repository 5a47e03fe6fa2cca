"""
AURA APPLICATION PACKAGE
========================

Main Python package for the AURA backend.

  from app.main import app, create_app
  from app.services.assistant_service import AssistantService

FILE STRUCTURE:
  app/
    __init__.py   - This file; marks 'app' as a package.
    main.py       - FastAPI app factory and HTTP endpoints (/api/chat, /api/tts, /api/health, /).
    models.py     - Pydantic models for API bodies and Gemini responses.
    errors.py     - Exception taxonomy (validation, upstream, cache).
    services/     - Handlers, upstream client, normalizer, offline cache manager.
    utils/        - Helpers: retry with backoff, timestamps.
"""
