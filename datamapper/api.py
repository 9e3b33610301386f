"""
FastAPI application exposing CRUD routes for a set of models.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Sequence

import structlog
from fastapi import FastAPI

from .connections.base import Connection
from .context import set_default_connection
from .model import Model
from .routes import Dependency, create_crud_router

logger = structlog.get_logger()


def create_app(
    models: Sequence[Model],
    connection: Optional[Connection] = None,
    dependencies: Sequence[Dependency] = (),
    title: str = "datamapper",
) -> FastAPI:
    """
    Build an app with one CRUD router per model.

    On startup the lifespan makes ``connection`` the default connection and
    initialises every model; on shutdown the connection is closed.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # Startup
        if connection is not None:
            set_default_connection(connection)
        try:
            for model in models:
                await model.init()
            logger.info("models_initialized", tables=[model.table for model in models])
        except Exception as e:
            logger.error("startup_failed", error=str(e))
            raise

        yield

        # Shutdown
        if connection is not None:
            await connection.close()
        logger.info("shutdown_complete")

    app = FastAPI(title=title, version=importlib.metadata.version("datamapper"), lifespan=lifespan)

    @app.get("/healthz")
    def healthz() -> Dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/tables")
    def tables() -> Dict[str, Any]:
        """List served tables with their schema versions."""
        return {model.table: {"version": model.version} for model in models}

    for model in models:
        app.include_router(create_crud_router(model, dependencies))

    return app
