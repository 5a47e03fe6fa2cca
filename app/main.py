"""
AURA MAIN API
=============

This module defines the FastAPI application and all HTTP endpoints. The browser
frontend (public/) talks to these endpoints; the endpoints forward to Gemini via
AssistantService.

ENDPOINTS:
  POST /api/chat    - Chat with AURA (optional image, optional Google Search grounding).
  POST /api/tts     - Text-to-speech with the prebuilt "Kore" voice.
  GET  /api/health  - Liveness + whether GEMINI_API_KEY is configured. Never calls Gemini.
  GET  /            - The frontend entry document (public/index.html).
  Everything else under public/ is served as static files.

CONFIGURATION:
  create_app() builds Settings once (from .env / environment) unless given one,
  creates the UpstreamClient and AssistantService, and stores the service on
  app.state. Endpoints get it through the get_service dependency.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from app.models import ChatRequest, ErrorResponse, HealthResponse, SpeechRequest
from app.services.assistant_service import AssistantService, HandlerResult
from app.services.upstream_client import UpstreamClient
from config import PUBLIC_DIR, Settings, load_settings


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("AURA")


def print_title():
    """Print the AURA banner to the console when the server starts."""
    CYAN = "\033[96m"
    MAGENTA = "\033[95m"
    WHITE = "\033[97m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    banner = f"""
{BOLD}{CYAN}     █████╗ ██╗   ██╗██████╗  █████╗
{CYAN}    ██╔══██╗██║   ██║██╔══██╗██╔══██╗
{MAGENTA}    ███████║██║   ██║██████╔╝███████║
{MAGENTA}    ██╔══██║██║   ██║██╔══██╗██╔══██║
{MAGENTA}    ██║  ██║╚██████╔╝██║  ██║██║  ██║
{CYAN}    ╚═╝  ╚═╝ ╚═════╝ ╚═╝  ╚═╝╚═╝  ╚═╝{RESET}
      {WHITE}{BOLD}AI Humanoid Assistant{RESET}
"""
    print(banner)


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup status. Services are built in create_app(), not here."""
    settings: Settings = app.state.settings

    print_title()
    logger.info("=" * 60)
    logger.info("AURA Backend Server running on port %s", settings.port)
    if settings.has_api_key:
        logger.info("API Key Status: Loaded")
    else:
        logger.warning("API Key Status: Missing (chat and tts will fail upstream)")
    logger.info("Server URL: http://localhost:%s", settings.port)
    logger.info("=" * 60)

    yield

    logger.info("Shutting down AURA backend")


# -------------------------------------------------------------------------
# DEPENDENCIES
# -------------------------------------------------------------------------

def get_service(request: Request) -> AssistantService:
    return request.app.state.assistant_service


def _to_response(result: HandlerResult) -> JSONResponse:
    return JSONResponse(status_code=result.status_code, content=result.body.model_dump())


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        first_error = exc.errors()[0]["msg"] if exc.errors() else "Invalid request"
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error=first_error).model_dump(),
        )


# =========================================================================
# APP FACTORY
# =========================================================================

def create_app(
    settings: Optional[Settings] = None,
    client: Optional[UpstreamClient] = None,
) -> FastAPI:
    settings = settings or load_settings()
    client = client or UpstreamClient(settings)

    app = FastAPI(
        title="AURA API",
        description="Backend proxy for the AURA assistant",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.assistant_service = AssistantService(settings, client)

    # The frontend may be served from another origin during development.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    @app.post("/api/chat")
    async def chat(
        request: ChatRequest,
        service: AssistantService = Depends(get_service),
    ):
        """Chat with AURA. 400 for a missing message, 500 for upstream failures."""
        result = await service.chat(
            request.message,
            image_data=request.imageData,
            is_command=request.isCommand,
            image_mime_type=request.imageMimeType,
        )
        return _to_response(result)

    @app.post("/api/tts")
    async def tts(
        request: SpeechRequest,
        service: AssistantService = Depends(get_service),
    ):
        """Synthesize speech. 400 for missing text, 500 for upstream failures."""
        return _to_response(await service.speech(request.text))

    @app.get("/api/health", response_model=HealthResponse)
    async def health(service: AssistantService = Depends(get_service)):
        return service.health()

    @app.get("/", include_in_schema=False)
    async def index():
        return FileResponse(PUBLIC_DIR / "index.html")

    # Registered last so the API routes above take precedence.
    app.mount("/", StaticFiles(directory=PUBLIC_DIR, check_dir=False), name="public")

    return app


app = create_app()


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m app.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py); used if someone does python -m app.main"""
    settings = app.state.settings
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        log_level="info"
    )

if __name__ == "__main__":
    run()
