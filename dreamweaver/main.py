"""Dreamweaver service: streams story sessions over WebSockets."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from . import __version__
from .config import get_settings
from .errors import DreamweaverError, UpstreamError, ValidationError
from .models.music import MUSIC_CATALOG
from .routers import sessions, tracks

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    settings = get_settings()
    logger.info(f"Dreamweaver {__version__} starting")
    logger.info(
        f"Models: text={settings.gemini_text_model} speech={settings.gemini_tts_model} "
        f"image={settings.gemini_image_model}"
    )
    if not settings.google_api_key:
        logger.warning("GOOGLE_API_KEY is not set; sessions will fail to start")
    if settings.media_dir is not None:
        logger.info(f"Narration files kept under {settings.media_dir}")

    yield
    logger.info("Dreamweaver shutting down")


app = FastAPI(
    title="Dreamweaver",
    description="Interactive storytelling: streamed narration, illustrations and mood music",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router)
app.include_router(tracks.router)

# Cached narration WAVs, addressable while their sentence is in the lookahead window
if settings.media_dir is not None:
    settings.media_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/media", StaticFiles(directory=settings.media_dir), name="media")


@app.exception_handler(DreamweaverError)
async def dreamweaver_error_handler(request: Request, exc: DreamweaverError) -> JSONResponse:
    if isinstance(exc, ValidationError):
        status_code = 422
    elif isinstance(exc, UpstreamError):
        status_code = 503 if exc.retryable else 502
    else:
        status_code = 500
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.get("/")
async def root() -> dict[str, str]:
    return {"name": "Dreamweaver", "version": __version__, "status": "running"}


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    settings = get_settings()
    return {
        "status": "healthy",
        "text_model": settings.gemini_text_model,
        "speech_model": settings.gemini_tts_model,
        "image_model": settings.gemini_image_model,
        "api_key_configured": bool(settings.google_api_key),
        "music_tracks": len(MUSIC_CATALOG),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dreamweaver.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        # Sessions run for many minutes; keep idle sockets alive
        ws_ping_interval=60.0,
        ws_ping_timeout=60.0,
    )
