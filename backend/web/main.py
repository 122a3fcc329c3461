"""OpenWork Web Backend - FastAPI Application."""

import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.web.core.lifespan import lifespan
from backend.web.routers import models, threads

logging.basicConfig(
    level=os.environ.get("OPENWORK_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI app
app = FastAPI(title="OpenWork Backend", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(threads.router)
app.include_router(models.router)


def _resolve_port() -> int:
    """Resolve backend port: OPENWORK_PORT > PORT > 8001."""
    port = os.environ.get("OPENWORK_PORT") or os.environ.get("PORT")
    return int(port) if port else 8001


def main() -> None:
    uvicorn.run("backend.web.main:app", host="127.0.0.1", port=_resolve_port())


if __name__ == "__main__":
    main()
