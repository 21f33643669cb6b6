from __future__ import annotations

from typing import List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from strongroom import Config

from foyer import lifecycle
from foyer.api import files, health, recycle_bin
from foyer.api.common import install_error_handlers
from foyer.lifecycle import Services

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
]


def create_app(
    services: Optional[Services] = None,
    origins: Optional[List[str]] = None,
    manage_lifecycle: bool = True,
) -> FastAPI:
    """
    Build the Strongroom HTTP application.

    Args:
        services: Wired gates (built from config when omitted)
        origins: CORS origins (CORS_ORIGINS config by default)
        manage_lifecycle: Run startup/shutdown with the server
    """
    services = services or Services()

    app = FastAPI(title="Strongroom")
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or Config.get("CORS_ORIGINS", DEFAULT_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    install_error_handlers(app)

    app.include_router(files.create_router(services))
    app.include_router(recycle_bin.create_router(services))
    app.include_router(health.create_router(services))

    if manage_lifecycle:
        @app.on_event("startup")
        async def startup_event():
            await lifecycle.startup(services)

        @app.on_event("shutdown")
        async def shutdown_event():
            await lifecycle.shutdown(services)

    return app


__all__ = ["create_app"]
