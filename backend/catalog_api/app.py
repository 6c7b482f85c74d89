"""FastAPI application for the Mediadex catalog."""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import health, imports, jobs, library
from .settings import CatalogSettings
from .state import AppState


def create_app(settings: CatalogSettings | None = None) -> FastAPI:
    """Wire settings, stores and the import queue into a new application."""

    app_state = AppState(settings=settings or CatalogSettings())

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        app_state.engine.dispose()

    app = FastAPI(title="Mediadex Catalog API", version="0.1.0", lifespan=lifespan)
    app.state.app_state = app_state

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_state.settings.cors_origins,
        allow_credentials="*" not in app_state.settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for module in (health, imports, jobs, library):
        app.include_router(module.router)
    return app
