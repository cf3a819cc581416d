"""
Email Logo API
FastAPI application that turns an uploaded logo into an email-safe HTML
snippet with VML, SVG and PNG fallbacks.
"""

import logging
import os
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import config
from app.routers import jobs, platforms, uploads
from app.services.job_store import cleanup_expired_files

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Email Logo API",
    description="Layered VML/SVG/PNG logo snippets for email clients",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes the local dev front-end (http://localhost:3000 and
    :3001). Additional origins come from the CORS_ORIGINS environment
    variable as a comma-separated list. Duplicates are removed while
    preserving order.
    """
    always_included = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    seen: set = set()
    origins: List[str] = []
    for origin in always_included + config.CORS_ORIGINS:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])
app.include_router(jobs.router, prefix="/api/jobs", tags=["jobs"])
app.include_router(platforms.router, prefix="/api/platforms", tags=["platforms"])


@app.on_event("startup")
async def startup() -> None:
    """Remove uploads and job files left over from earlier runs, then log where the API listens."""
    try:
        removed = cleanup_expired_files()
    except OSError as e:
        logger.error(f"Startup cleanup failed: {e}")
        removed = 0

    host_port = os.getenv("HOST_PORT", "8000")
    logger.info(
        "Email Logo API running at http://localhost:%s (uploads: %s, results: %s, %d expired file(s) removed)",
        host_port,
        config.UPLOAD_DIR,
        config.RESULTS_DIR,
        removed,
    )


@app.get("/")
async def root():
    return {"message": "Email Logo API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok"}
