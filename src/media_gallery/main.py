"""FastAPI application entry point."""

from __future__ import annotations

import os

import uvicorn
from fastapi import FastAPI

from .config import AppConfig, load_config
from .dependencies import include_routers
from .lifecycle import lifespan
from .logging import configure_logging


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build FastAPI instance with configured dependencies."""
    configure_logging()
    cfg = config or load_config()
    app = FastAPI(title="Media Gallery", lifespan=lifespan)
    include_routers(app, cfg)
    return app


def run() -> None:
    uvicorn.run(
        "media_gallery.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8080)),
    )


if __name__ == "__main__":
    run()
