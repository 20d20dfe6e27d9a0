"""
FastAPI application entry point for the planner backend.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.config import get_settings
from backend.errors import install_error_handlers
from backend.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="90-Day Planner Backend", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    install_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
