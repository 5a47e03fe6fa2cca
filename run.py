"""
RUN SCRIPT - Start the AURA backend
===================================

PURPOSE:
  Single entry point to start the backend.

WHAT IT DOES:
  - Reads HOST/PORT from .env / environment (default 0.0.0.0:3000).
  - Runs app.main:app with uvicorn.

USAGE:
  python run.py

  Then open http://localhost:3000 in the browser.

NOTE:
  Set GEMINI_API_KEY in .env first. Without it the server still starts, but
  /api/chat and /api/tts fail and /api/health reports hasApiKey=false.
"""

import uvicorn

from config import load_settings

# ------------------------------------------------------------------------------
# ENTRY POINT
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    settings = load_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
    )
