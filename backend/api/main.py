"""
FastAPI application entry point.

Run with: uvicorn api.main:app
"""
import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment variables from backend/.env (optional) before other imports that read env
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(env_path)

from api import state
from api.routes import images, media
from db import init_db
from services.metadata_extractor import register_heif_opener
from settings import settings

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

# Create app
app = FastAPI(
    title="Photo Frame API",
    description="Serves face-aware cropped, captioned photos for a digital photo frame",
    version="0.1.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "HEAD", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Image-Filename"],
)

# Include routers
app.include_router(images.router, prefix="/image", tags=["image"])
app.include_router(media.router, prefix="/media", tags=["media"])


@app.on_event("startup")
def startup_event():
    """Initialize the ledger, load fonts and have one photo ready before serving."""
    # Register HEIF/HEIC opener (for iPhone photos)
    if register_heif_opener():
        logger.info("HEIF support enabled")
    init_db()
    frame = state.get_photo_frame()
    if settings.CACHE_WARM_ON_STARTUP:
        # Cache an image on startup to speed up the first request
        frame.warm(settings.CACHE_WARM_WIDTH, settings.CACHE_WARM_HEIGHT)


@app.on_event("shutdown")
def shutdown_event():
    frame = state.peek_photo_frame()
    if frame is not None:
        frame.close()


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}
